"""Progress reporting for long-running recalculation jobs.

Two ProgressSink implementations share one protocol:

- InMemoryProgressTracker: per-process dictionary, fastest, lost on restart
- DatabaseProgressTracker: RecalculationJob rows, pollable from any worker

Neither starts background timers. Terminal jobs are removed by an explicit
sweep(): call it from run_periodic_sweep() on the host's event loop, or from
the cleanup_recalculation_jobs management command for the database tracker.

Usage:
    tracker = InMemoryProgressTracker()
    tracker.start()
    tracker.update('job-1', {'status': 'running', 'progress': 40})
    tracker.get('job-1').progress  # 40
"""
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Protocol, runtime_checkable

from django.db import transaction
from django.utils import timezone

from . import conf
from .exceptions import TrackerNotRunningError

logger = logging.getLogger(__name__)


class JobStatus:
    STARTING = 'starting'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'

    TERMINAL = frozenset({COMPLETED, FAILED, CANCELLED})


@dataclass
class JobState:
    """Snapshot of a job's progress."""

    job_id: str
    status: str = JobStatus.STARTING
    progress: int = 0
    data: dict = field(default_factory=dict)
    last_updated: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def to_dict(self) -> dict:
        return {
            'job_id': self.job_id,
            'status': self.status,
            'progress': self.progress,
            'last_updated': self.last_updated.isoformat() if self.last_updated else None,
            **self.data,
        }


@runtime_checkable
class ProgressSink(Protocol):
    """Anything a recalculation job can report progress to."""

    def update(self, job_id: str, data: dict) -> JobState:
        ...

    def get(self, job_id: str) -> Optional[JobState]:
        ...


def _default_retention() -> timedelta:
    return timedelta(seconds=conf.job_retention_seconds())


def _split_update(data: dict):
    """Pull status and progress out of an update, leaving the rest as data."""
    data = dict(data)
    status = data.pop('status', None)
    progress = data.pop('progress', None)
    if progress is not None:
        progress = max(0, min(100, int(progress)))
    return status, progress, data


class InMemoryProgressTracker:
    """
    Thread-safe, process-local progress tracker.

    Updates merge into the existing state, so a job can report counts
    incrementally. Terminal jobs older than the retention window are
    dropped by sweep().

    Args:
        retention: How long terminal jobs stay visible
            (default TEMPORAL_RECORDS_JOB_RETENTION_SECONDS)
        clock: Callable returning the current aware datetime
    """

    def __init__(self, retention: timedelta = None, clock=None):
        self.retention = retention if retention is not None else _default_retention()
        self.clock = clock or timezone.now
        self._jobs = {}
        self._lock = threading.Lock()
        self._running = False

    def start(self):
        self._running = True
        return self

    def stop(self):
        """Stop accepting updates and drop all tracked jobs."""
        with self._lock:
            self._running = False
            self._jobs.clear()

    @property
    def is_running(self) -> bool:
        return self._running

    def update(self, job_id: str, data: dict) -> JobState:
        if not self._running:
            raise TrackerNotRunningError(
                f"Cannot update job '{job_id}': progress tracker is not running"
            )
        status, progress, extra = _split_update(data)
        with self._lock:
            state = self._jobs.get(job_id) or JobState(job_id=job_id)
            if status is not None:
                state.status = status
            if progress is not None:
                state.progress = progress
            state.data.update(extra)
            state.last_updated = self.clock()
            self._jobs[job_id] = state
            return JobState(
                job_id=state.job_id,
                status=state.status,
                progress=state.progress,
                data=dict(state.data),
                last_updated=state.last_updated,
            )

    def get(self, job_id: str) -> Optional[JobState]:
        with self._lock:
            state = self._jobs.get(job_id)
            if state is None:
                return None
            return JobState(
                job_id=state.job_id,
                status=state.status,
                progress=state.progress,
                data=dict(state.data),
                last_updated=state.last_updated,
            )

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def active_jobs(self) -> list:
        """Jobs that have not reached a terminal status."""
        with self._lock:
            return [
                state.job_id for state in self._jobs.values()
                if not state.is_terminal
            ]

    def sweep(self) -> int:
        """
        Remove terminal jobs last updated longer ago than retention.

        Returns:
            Number of jobs removed
        """
        cutoff = self.clock() - self.retention
        with self._lock:
            expired = [
                job_id for job_id, state in self._jobs.items()
                if state.is_terminal and state.last_updated < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            logger.debug(f"Swept {len(expired)} expired recalculation jobs")
        return len(expired)

    def __len__(self):
        with self._lock:
            return len(self._jobs)


class DatabaseProgressTracker:
    """
    Progress tracker persisted in the RecalculationJob table.

    Lets a job running in one worker be polled from another. Always
    running; stop() is not needed.
    """

    is_running = True

    def __init__(self, retention: timedelta = None, clock=None):
        self.retention = retention if retention is not None else _default_retention()
        self.clock = clock or timezone.now

    @staticmethod
    def _to_state(job) -> JobState:
        return JobState(
            job_id=job.job_id,
            status=job.status,
            progress=job.progress,
            data=dict(job.data),
            last_updated=job.last_updated,
        )

    def update(self, job_id: str, data: dict) -> JobState:
        from .models import RecalculationJob

        status, progress, extra = _split_update(data)
        with transaction.atomic():
            job = (
                RecalculationJob.objects
                .select_for_update()
                .filter(job_id=job_id)
                .first()
            )
            if job is None:
                job = RecalculationJob(job_id=job_id)
            if status is not None:
                job.status = status
            if progress is not None:
                job.progress = progress
            job.data = {**job.data, **extra}
            job.last_updated = self.clock()
            job.save()
        return self._to_state(job)

    def get(self, job_id: str) -> Optional[JobState]:
        from .models import RecalculationJob

        job = RecalculationJob.objects.filter(job_id=job_id).first()
        return self._to_state(job) if job else None

    def delete(self, job_id: str) -> bool:
        from .models import RecalculationJob

        deleted, _ = RecalculationJob.objects.filter(job_id=job_id).delete()
        return deleted > 0

    def active_jobs(self) -> list:
        from .models import RecalculationJob

        return list(
            RecalculationJob.objects
            .exclude(status__in=RecalculationJob.TERMINAL_STATUSES)
            .values_list('job_id', flat=True)
        )

    def expired_jobs(self):
        """QuerySet of terminal jobs older than the retention window."""
        from .models import RecalculationJob

        return RecalculationJob.objects.filter(
            status__in=RecalculationJob.TERMINAL_STATUSES,
            last_updated__lt=self.clock() - self.retention,
        )

    def sweep(self) -> int:
        deleted, _ = self.expired_jobs().delete()
        if deleted:
            logger.debug(f"Swept {deleted} expired recalculation jobs")
        return deleted

    def __len__(self):
        from .models import RecalculationJob

        return RecalculationJob.objects.count()


async def run_periodic_sweep(tracker, interval: float, stop_event: asyncio.Event):
    """
    Sweep a tracker every `interval` seconds until stop_event is set.

    The host schedules this explicitly, e.g.
    asyncio.create_task(run_periodic_sweep(tracker, 300, stop_event)).
    A database tracker's sweep runs in a worker thread.
    """
    from asgiref.sync import sync_to_async

    sweep = tracker.sweep
    if isinstance(tracker, DatabaseProgressTracker):
        sweep = sync_to_async(tracker.sweep)

    while not stop_event.is_set():
        result = sweep()
        if asyncio.iscoroutine(result):
            await result
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
