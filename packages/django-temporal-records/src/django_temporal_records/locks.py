"""Year lock gate.

Whether a year may be written is owned by whichever app tracks assessment
years. This module only defines the seam, so the temporal engine never
imports that app.
"""
from typing import Protocol, runtime_checkable

from .exceptions import YearLockedError


@runtime_checkable
class YearLockGate(Protocol):
    def is_year_locked(self, scope_id, year: int) -> bool:
        ...


def ensure_year_unlocked(gate: YearLockGate, scope_id, year: int) -> None:
    """
    Raise YearLockedError if the gate reports the year as locked.

    Call before any write for the year so a locked year is never touched.
    """
    if gate.is_year_locked(scope_id, year):
        raise YearLockedError(scope_id, year)
