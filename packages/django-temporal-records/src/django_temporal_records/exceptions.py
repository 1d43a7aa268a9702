"""Exceptions for django-temporal-records."""


class TemporalRecordsError(Exception):
    """Base exception for temporal record errors."""
    pass


class ConcurrentModificationError(TemporalRecordsError):
    """A record changed between read and write.

    Raised when an optimistic-lock check fails on save, or when another
    writer created the same (identity, year) record first. Callers decide
    whether to refetch and retry.
    """

    def __init__(self, model_label: str, identity: dict, year: int, reason: str = None):
        self.model_label = model_label
        self.identity = identity
        self.year = year
        self.reason = reason or "record was modified by another writer"
        super().__init__(
            f"{model_label} {identity} for {year}: {self.reason}"
        )


class YearLockedError(TemporalRecordsError):
    """Raised when a write targets a locked year."""

    is_year_locked = True

    def __init__(self, scope_id, year: int):
        self.scope_id = scope_id
        self.year = year
        super().__init__(f"Year {year} is locked and cannot be modified")


class TrackerNotRunningError(TemporalRecordsError):
    """Progress tracker was used before start() or after stop()."""
    pass


class JobNotFoundError(TemporalRecordsError):
    """Raised when a job id is unknown to the runner."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Recalculation job '{job_id}' not found")
