"""Year-versioned record base model and job tracking model.

This module provides:
- YearVersionedModel: abstract base for any record versioned by assessment year
- RecalculationJob: persisted progress state for bulk recalculation jobs

Usage:
    from django_temporal_records.models import YearVersionedModel

    class LandAssessment(YearVersionedModel):
        identity_fields = ('property_id',)

        property_id = models.CharField(max_length=255)
        market_value = models.FloatField(default=0)

        class Meta(YearVersionedModel.Meta):
            constraints = [
                models.UniqueConstraint(
                    fields=['property_id', 'effective_year'],
                    condition=models.Q(deleted_at__isnull=True),
                    name='unique_active_land_assessment_year',
                ),
            ]
"""
import copy

from django.conf import settings
from django.core.exceptions import FieldDoesNotExist, ValidationError
from django.db import models, router, transaction
from django.utils import timezone

from .exceptions import ConcurrentModificationError
from .querysets import ActiveRecordManager, YearVersionedQuerySet


class YearVersionedModel(models.Model):
    """
    Abstract base for records that are versioned per assessment year.

    Each concrete model declares which fields identify "the same entity"
    across years. A year with no physical record inherits the nearest
    earlier record's values.

    Class attributes:
        identity_fields: Field names forming the stable identity key
        chains_versions: Keep previous/next links and close superseded
            records with effective_year_end
        temporal_system_fields: Fields never cloned forward and never patchable

    Attributes:
        effective_year: First year these values apply
        effective_year_end: Stops applying before this year (null = current)
        source_effective_year: Year this record was cloned from
        created_from_recalculation: Created by a bulk recalculation
        row_version: Optimistic lock counter
        deleted_at: Soft delete timestamp, None if active
    """

    identity_fields: tuple = ()
    chains_versions = False

    temporal_system_fields = frozenset({
        'id',
        'effective_year',
        'effective_year_end',
        'source_effective_year',
        'created_from_recalculation',
        'copied_at',
        'recalculated_at',
        'recalculated_by',
        'created_by',
        'updated_by',
        'created_at',
        'updated_at',
        'deleted_at',
        'row_version',
        'previous_version',
        'next_version',
    })

    effective_year = models.PositiveIntegerField(
        db_index=True,
        help_text="First assessment year these values apply to"
    )
    effective_year_end = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Values stop applying before this year (null = still current)"
    )
    source_effective_year = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Year of the record this one was copied from"
    )
    created_from_recalculation = models.BooleanField(default=False)
    copied_at = models.DateTimeField(null=True, blank=True)

    recalculated_at = models.DateTimeField(null=True, blank=True)
    recalculated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    row_version = models.PositiveIntegerField(default=1)

    objects = ActiveRecordManager()
    all_objects = models.Manager.from_queryset(YearVersionedQuerySet)()

    class Meta:
        abstract = True

    def __str__(self):
        identity = ", ".join(f"{k}={v}" for k, v in self.identity().items())
        return f"{self._meta.object_name}({identity}) @ {self.effective_year}"

    # -----------------------------
    # Identity and payload
    # -----------------------------

    def identity(self) -> dict:
        """Return the identity key as a filter dict."""
        return {
            name: getattr(self, self._meta.get_field(name).attname)
            for name in self.identity_fields
        }

    @classmethod
    def payload_fields(cls) -> list:
        """Concrete fields carrying domain values (identity included)."""
        return [
            field for field in cls._meta.concrete_fields
            if not field.primary_key and field.name not in cls.temporal_system_fields
        ]

    @classmethod
    def patchable_field(cls, key: str):
        """
        Resolve a patch key (field name or attname) to a payload field.

        Returns None for identity fields, system fields and unknown keys.
        """
        if key in cls.identity_fields or key in cls.temporal_system_fields:
            return None
        try:
            field = cls._meta.get_field(key)
        except FieldDoesNotExist:
            field = next(
                (f for f in cls._meta.concrete_fields if f.attname == key),
                None,
            )
        if field is None or not field.concrete or field.primary_key:
            return None
        if field.name in cls.identity_fields or field.name in cls.temporal_system_fields:
            return None
        return field

    def clone_payload(self) -> dict:
        """Copy payload values, suitable for creating a new year's record."""
        return {
            field.attname: copy.deepcopy(getattr(self, field.attname))
            for field in self.payload_fields()
        }

    def apply_patch(self, patch) -> tuple[list, list]:
        """
        Set patch values onto payload fields.

        Returns:
            Tuple of (applied_keys, ignored_keys)
        """
        applied, ignored = [], []
        for key, value in patch.items():
            field = self.patchable_field(key)
            if field is None:
                ignored.append(key)
                continue
            attname = field.attname if key == field.attname else field.name
            setattr(self, attname, copy.deepcopy(value))
            applied.append(key)
        return applied, ignored

    # -----------------------------
    # Validation and persistence
    # -----------------------------

    def clean(self):
        """Validate that effective_year_end > effective_year when set."""
        super().clean()
        if self.effective_year_end is not None and self.effective_year is not None:
            if self.effective_year_end <= self.effective_year:
                raise ValidationError({
                    'effective_year_end': 'effective_year_end must be greater than effective_year'
                })

    def save(self, *args, **kwargs):
        """Save, failing if the row changed since it was read."""
        if self._state.adding:
            return super().save(*args, **kwargs)

        using = kwargs.get('using') or router.db_for_write(type(self), instance=self)
        with transaction.atomic(using=using):
            bumped = type(self)._base_manager.using(using).filter(
                pk=self.pk,
                row_version=self.row_version,
            ).update(row_version=models.F('row_version') + 1)
            if not bumped:
                raise ConcurrentModificationError(
                    self._meta.label, self.identity(), self.effective_year
                )
            self.row_version += 1
            update_fields = kwargs.get('update_fields')
            if update_fields is not None:
                kwargs['update_fields'] = {*update_fields, 'row_version'}
            super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        """Soft delete the record by setting deleted_at timestamp."""
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted_at', 'updated_at'])

    def hard_delete(self, using=None, keep_parents=False):
        """Permanently delete the record from the database."""
        super().delete(using=using, keep_parents=keep_parents)

    def restore(self):
        """Restore a soft-deleted record by clearing deleted_at."""
        self.deleted_at = None
        self.save(update_fields=['deleted_at', 'updated_at'])

    @property
    def is_active(self):
        return self.deleted_at is None

    @property
    def is_inherited_copy(self):
        """True if this record was cloned forward from an earlier year."""
        return self.source_effective_year is not None


# PRIMITIVES: allow-plain-model
class RecalculationJob(models.Model):
    """
    Poll-able progress state for a bulk recalculation job.

    Backs DatabaseProgressTracker so a job started in one worker can be
    polled from another. Terminal jobs are swept after a retention window
    by the cleanup_recalculation_jobs command.
    """

    class Status(models.TextChoices):
        STARTING = 'starting', 'Starting'
        RUNNING = 'running', 'Running'
        COMPLETED = 'completed', 'Completed'
        FAILED = 'failed', 'Failed'
        CANCELLED = 'cancelled', 'Cancelled'

    TERMINAL_STATUSES = (Status.COMPLETED, Status.FAILED, Status.CANCELLED)

    job_id = models.CharField(max_length=64, unique=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.STARTING,
    )
    progress = models.PositiveSmallIntegerField(default=0)
    data = models.JSONField(default=dict, blank=True)

    # Timestamps  # PRIMITIVES: allow-manual-timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    last_updated = models.DateTimeField(db_index=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'last_updated'], name='temporal_job_status_updated'),
        ]

    def __str__(self):
        return f"{self.job_id} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES
