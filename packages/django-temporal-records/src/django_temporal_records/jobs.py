"""Fire-and-forget bulk recalculation jobs.

A job runs as a single asyncio task on the caller's event loop. Its state
moves starting -> running -> completed | failed | cancelled and is
published to a progress sink so another request can poll it.

Usage:
    runner = RecalculationJobRunner(DatabaseProgressTracker())
    job_id = await runner.submit(
        LandAssessment, {'municipality_id': 'M-1'}, 2025,
        calculate, LAND_VALUE_FIELDS,
    )
    ...
    result = await runner.wait(job_id)
"""
import asyncio
import functools
import logging
import threading
import uuid

from asgiref.sync import sync_to_async

from . import conf
from .exceptions import JobNotFoundError
from .progress import JobStatus
from .recalculation import abulk_recalculate_for_year

logger = logging.getLogger(__name__)


class RecalculationJobRunner:
    """
    Runs bulk recalculations in the background and reports their progress.

    Args:
        progress_sink: ProgressSink receiving job state
        on_complete: Optional callable (job_id, result) invoked after a job
            completes or is cancelled
        error_detail_limit: Per-entity errors copied into the final job
            state (default TEMPORAL_RECORDS_JOB_ERROR_DETAIL_LIMIT)
    """

    def __init__(self, progress_sink, on_complete=None, error_detail_limit: int = None):
        self.progress_sink = progress_sink
        self.on_complete = on_complete
        self.error_detail_limit = (
            error_detail_limit if error_detail_limit is not None
            else conf.job_error_detail_limit()
        )
        self._tasks = {}
        self._cancel_flags = {}

    async def _report(self, job_id: str, data: dict):
        return await sync_to_async(self.progress_sink.update)(job_id, data)

    async def submit(
        self,
        model,
        scope: dict,
        year: int,
        calculate_fn,
        field_paths,
        job_id: str = None,
        **options,
    ) -> str:
        """
        Record the job as starting and schedule it; return its id at once.

        Must be awaited from a running event loop. Extra keyword options are
        passed to abulk_recalculate_for_year().
        """
        job_id = job_id or uuid.uuid4().hex
        self._cancel_flags[job_id] = threading.Event()
        await self._report(job_id, {
            'status': JobStatus.STARTING,
            'progress': 0,
            'model': model._meta.label,
            'scope': scope,
            'year': year,
        })

        task = asyncio.create_task(
            self.run(job_id, model, scope, year, calculate_fn, field_paths, **options),
            name=f"recalculation-{job_id}",
        )
        self._tasks[job_id] = task
        task.add_done_callback(functools.partial(self._forget, job_id))
        logger.info(f"Submitted recalculation job {job_id} for {model._meta.label} {scope} {year}")
        return job_id

    async def run(
        self,
        job_id: str,
        model,
        scope: dict,
        year: int,
        calculate_fn,
        field_paths,
        **options,
    ):
        """
        Run a recalculation to completion under job_id.

        Returns:
            RecalculationResult

        Raises:
            Whatever aborted the job as a whole, after marking it failed
        """
        cancel_flag = self._cancel_flags.setdefault(job_id, threading.Event())
        try:
            await self._report(job_id, {'status': JobStatus.RUNNING})
            result = await abulk_recalculate_for_year(
                model,
                scope,
                year,
                calculate_fn,
                field_paths,
                progress_sink=self.progress_sink,
                job_id=job_id,
                should_cancel=cancel_flag.is_set,
                **options,
            )
        except Exception as exc:
            logger.exception(f"Recalculation job {job_id} failed")
            await self._report(job_id, {
                'status': JobStatus.FAILED,
                'error': str(exc),
                'error_type': type(exc).__name__,
            })
            raise
        finally:
            self._cancel_flags.pop(job_id, None)

        summary = result.to_dict(error_limit=self.error_detail_limit)
        if result.cancelled:
            await self._report(job_id, {
                'status': JobStatus.CANCELLED,
                'progress': result.progress,
                **summary,
            })
        else:
            await self._report(job_id, {
                'status': JobStatus.COMPLETED,
                'progress': 100,
                **summary,
            })
        logger.info(f"Recalculation job {job_id} finished: {summary['created']} created, "
                    f"{summary['updated']} updated, {summary['error_count']} errors")

        if self.on_complete is not None:
            try:
                self.on_complete(job_id, result)
            except Exception:
                logger.exception(f"on_complete callback failed for job {job_id}")
        return result

    def _forget(self, job_id: str, task):
        """Drop a finished task; its outcome lives on in the progress sink."""
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if not task.cancelled():
            # run() already logged and reported the failure
            task.exception()

    async def wait(self, job_id: str):
        """
        Await a running job and return its RecalculationResult.

        Finished jobs are forgotten, so waiting on one raises
        JobNotFoundError; poll the progress sink for their state instead.
        """
        task = self._tasks.get(job_id)
        if task is None:
            raise JobNotFoundError(job_id)
        return await task

    def cancel(self, job_id: str):
        """Ask a running job to stop before its next batch."""
        flag = self._cancel_flags.get(job_id)
        if flag is None:
            raise JobNotFoundError(job_id)
        flag.set()
        logger.info(f"Cancellation requested for recalculation job {job_id}")

    @property
    def active_job_ids(self) -> list:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]
