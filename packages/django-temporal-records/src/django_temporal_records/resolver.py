"""Temporal resolution: which record applies in a given year.

A year without its own physical record inherits the most recent earlier
record. None is a normal answer ("no data yet"), never an error.
"""
from dataclasses import dataclass, field

from .changes import get_nested_value


def get_effective_record(model, identity: dict, year: int):
    """
    Get the record that applies to an entity in a year.

    Args:
        model: A YearVersionedModel subclass
        identity: Filter selecting the entity, e.g. {'property_id': 'P-1'}
        year: Target year (any value, including years with no data)

    Returns:
        The record with the greatest effective_year <= year, or None
    """
    return (
        model.objects
        .for_identity(identity)
        .as_of_year(year)
        .latest_first()
        .first()
    )


def get_effective_records_for_scope(
    model,
    scope: dict,
    year: int,
    order_by=None,
    offset: int = 0,
    limit: int = None,
) -> list:
    """
    Get each entity's effective record within a scope in one query.

    Args:
        model: A YearVersionedModel subclass
        scope: Filter selecting many entities, e.g. {'municipality_id': 'M-1'}
        year: Target year
        order_by: Optional ordering (defaults to the identity fields)
        offset: Rows to skip
        limit: Maximum rows to return (None for all)

    Returns:
        List with one record per distinct identity that has data for the year
    """
    queryset = (
        model.objects
        .filter(**scope)
        .effective_for_year(year)
        .order_by(*(order_by or model.identity_fields))
    )
    if limit is not None:
        return list(queryset[offset:offset + limit])
    if offset:
        return list(queryset[offset:])
    return list(queryset)


@dataclass
class YearHistoryEntry:
    """Which record applies in one year, and whether it is inherited."""

    year: int
    effective_year: int | None
    is_inherited: bool
    has_data: bool
    values: dict = field(default_factory=dict)


def get_year_history(
    model,
    identity: dict,
    start_year: int,
    end_year: int,
    value_fields=(),
) -> list[YearHistoryEntry]:
    """
    Show, year by year, which record applies to an entity.

    Loads the entity's records once and resolves every year in memory.

    Args:
        model: A YearVersionedModel subclass
        identity: Filter selecting the entity
        start_year: First year of the range (inclusive)
        end_year: Last year of the range (inclusive)
        value_fields: Dot paths to copy from the applying record

    Returns:
        One YearHistoryEntry per year in the range
    """
    records = list(
        model.objects
        .for_identity(identity)
        .filter(effective_year__lte=end_year)
        .latest_first()
    )

    history = []
    for year in range(start_year, end_year + 1):
        record = next(
            (
                r for r in records
                if r.effective_year <= year
                and (r.effective_year_end is None or year < r.effective_year_end)
            ),
            None,
        )
        entry = YearHistoryEntry(
            year=year,
            effective_year=record.effective_year if record else None,
            is_inherited=record is None or record.effective_year != year,
            has_data=record is not None,
        )
        if record is not None:
            entry.values = {
                path: get_nested_value(record, path) for path in value_fields
            }
        history.append(entry)
    return history
