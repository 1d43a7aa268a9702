"""Change detection between stored and freshly calculated values.

Pure functions with no database access. Used by bulk recalculation to
decide whether a calculation result warrants a write at all.

Usage:
    from django_temporal_records.changes import has_changed

    has_changed(
        {'calculated_totals': {'total_market_value': 100.004}},
        {'calculated_totals': {'total_market_value': 100.006}},
        ['calculated_totals.total_market_value'],
    )
    # False: within the default 0.01 tolerance
"""
from collections.abc import Mapping
from numbers import Number

from .conf import change_tolerance


def get_nested_value(obj, path: str):
    """
    Get a value from nested mappings/objects using dot notation.

    Mappings are traversed by key, anything else by attribute. A missing
    key or attribute anywhere along the path yields None.

    Args:
        obj: Dict, model instance, or any object
        path: Dot-separated path, e.g. 'calculated_totals.total_market_value'

    Returns:
        The value at the path, or None if not found
    """
    if obj is None or not path:
        return None

    current = obj
    for part in path.split('.'):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


def _is_number(value) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _values_differ(existing, candidate, tolerance: float) -> bool:
    if existing is None:
        return candidate is not None
    if candidate is None:
        return True
    if _is_number(existing) and _is_number(candidate):
        return abs(float(existing) - float(candidate)) > tolerance
    return existing != candidate


def has_changed(existing, candidate, field_paths, tolerance: float = None) -> bool:
    """
    Check whether any material field differs between two value sets.

    Only the listed field_paths are compared. Numbers are compared with an
    absolute tolerance to absorb floating point noise; everything else uses
    strict equality. A value appearing where there was none (or
    disappearing) counts as a change.

    Args:
        existing: Stored record (model instance or dict)
        candidate: Newly calculated values
        field_paths: Dot-separated paths considered material
        tolerance: Absolute numeric tolerance (defaults to
            TEMPORAL_RECORDS_CHANGE_TOLERANCE, 0.01)

    Returns:
        True on the first differing field, False if all match
    """
    if tolerance is None:
        tolerance = change_tolerance()

    for path in field_paths:
        if _values_differ(
            get_nested_value(existing, path),
            get_nested_value(candidate, path),
            tolerance,
        ):
            return True
    return False


def changed_fields(existing, candidate, field_paths, tolerance: float = None) -> list:
    """Return every material path that differs, in field_paths order."""
    if tolerance is None:
        tolerance = change_tolerance()

    return [
        path for path in field_paths
        if _values_differ(
            get_nested_value(existing, path),
            get_nested_value(candidate, path),
            tolerance,
        )
    ]
