"""Django Temporal Records - Year-versioned copy-on-write records for Django."""

__version__ = "0.1.0"

__all__ = [
    # Models
    "YearVersionedModel",
    "RecalculationJob",
    # QuerySets
    "YearVersionedQuerySet",
    # Resolver
    "get_effective_record",
    "get_effective_records_for_scope",
    "get_year_history",
    # Engine
    "get_or_create_for_year",
    "update_for_year",
    # Change detection
    "has_changed",
    "get_nested_value",
    # Recalculation
    "bulk_recalculate_for_year",
    "abulk_recalculate_for_year",
    "RecalculationResult",
    # Progress
    "InMemoryProgressTracker",
    "DatabaseProgressTracker",
    "JobStatus",
    # Jobs
    "RecalculationJobRunner",
    # Locks
    "ensure_year_unlocked",
    # Exceptions
    "TemporalRecordsError",
    "ConcurrentModificationError",
    "YearLockedError",
]

_LAZY = {
    "YearVersionedModel": "models",
    "RecalculationJob": "models",
    "YearVersionedQuerySet": "querysets",
    "get_effective_record": "resolver",
    "get_effective_records_for_scope": "resolver",
    "get_year_history": "resolver",
    "get_or_create_for_year": "engine",
    "update_for_year": "engine",
    "has_changed": "changes",
    "get_nested_value": "changes",
    "bulk_recalculate_for_year": "recalculation",
    "abulk_recalculate_for_year": "recalculation",
    "RecalculationResult": "recalculation",
    "InMemoryProgressTracker": "progress",
    "DatabaseProgressTracker": "progress",
    "JobStatus": "progress",
    "RecalculationJobRunner": "jobs",
    "ensure_year_unlocked": "locks",
    "TemporalRecordsError": "exceptions",
    "ConcurrentModificationError": "exceptions",
    "YearLockedError": "exceptions",
}


def __getattr__(name):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name in _LAZY:
        from importlib import import_module
        module = import_module(f"django_temporal_records.{_LAZY[name]}")
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
