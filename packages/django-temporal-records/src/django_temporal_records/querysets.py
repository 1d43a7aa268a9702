"""QuerySet helpers for year-versioned records."""
from django.db import models
from django.db.models import F, Q, Window
from django.db.models.functions import RowNumber


class YearVersionedQuerySet(models.QuerySet):
    """
    QuerySet for records keyed by (identity, effective_year).

    A record applies from its effective_year until a later record for the
    same identity takes over, or until its effective_year_end (exclusive).

    Query pattern for "what applies in year Y":
        effective_year <= Y AND (effective_year_end IS NULL OR effective_year_end > Y)
        then the row with the greatest effective_year per identity.
    """

    def for_identity(self, identity):
        """Restrict to one entity, e.g. {'property_id': 'P-1'}."""
        return self.filter(**identity)

    def exact_year(self, year):
        """Return records physically stored for exactly this year."""
        return self.filter(effective_year=year)

    def as_of_year(self, year):
        """
        Return records that could apply in the given year.

        Args:
            year: The assessment year to query as of

        Returns:
            QuerySet of candidate records, several per identity possible
        """
        return self.filter(
            effective_year__lte=year
        ).filter(
            Q(effective_year_end__isnull=True) | Q(effective_year_end__gt=year)
        )

    def latest_first(self):
        return self.order_by('-effective_year')

    def effective_for_year(self, year):
        """
        Return the single effective record per identity for the year.

        Ranks candidates with ROW_NUMBER() partitioned by the model's
        identity_fields and ordered by effective_year descending, keeping
        rank 1. One query regardless of how many identities are in scope.
        """
        partition = [F(name) for name in self.model.identity_fields]
        return self.as_of_year(year).annotate(
            temporal_rank=Window(
                expression=RowNumber(),
                partition_by=partition,
                order_by=F('effective_year').desc(),
            )
        ).filter(temporal_rank=1)


class ActiveRecordManager(models.Manager.from_queryset(YearVersionedQuerySet)):
    """Manager that excludes soft-deleted records by default.

    Use .with_deleted() to include soft-deleted records.
    Use .deleted_only() to get only soft-deleted records.
    """

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)

    def with_deleted(self):
        return super().get_queryset()

    def deleted_only(self):
        return super().get_queryset().filter(deleted_at__isnull=False)
