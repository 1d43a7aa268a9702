"""Bulk recalculation of year-versioned records.

Applies a caller-supplied calculation across every entity in a scope and
writes only where values materially changed, so a year in which nothing
moved costs no new rows. One entity's failure never stops the job.

Usage:
    from django_temporal_records.recalculation import bulk_recalculate_for_year

    def calculate(identity, year):
        return {'market_value': land_calculator.value_for(identity['property_id'], year)}

    result = bulk_recalculate_for_year(
        LandAssessment,
        {'municipality_id': 'M-1'},
        2025,
        calculate,
        ['market_value'],
    )
    result.created, result.updated, result.unchanged, result.errors
"""
import asyncio
import inspect
import logging
from dataclasses import asdict, dataclass, field

from asgiref.sync import sync_to_async
from django.db import transaction
from django.utils import timezone

from . import conf
from .changes import has_changed
from .engine import clone_forward, persist_changes, persist_new_record
from .resolver import get_effective_records_for_scope

logger = logging.getLogger(__name__)

CREATED = 'created'
UPDATED = 'updated'
UNCHANGED = 'unchanged'


@dataclass
class RecalculationFailure:
    """One entity that could not be recalculated."""

    identity: dict
    error: str
    error_type: str

    @classmethod
    def from_exception(cls, identity: dict, exc: Exception) -> 'RecalculationFailure':
        return cls(identity=identity, error=str(exc), error_type=type(exc).__name__)


@dataclass
class RecalculationResult:
    """
    Aggregate outcome of a bulk recalculation.

    Every processed entity lands in exactly one bucket:
        created + updated + unchanged + len(errors) == total_processed
    """

    created: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: list = field(default_factory=list)
    total_processed: int = 0
    total_count: int = 0
    cancelled: bool = False

    def add(self, outcome: str):
        if outcome == CREATED:
            self.created += 1
        elif outcome == UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1
        self.total_processed += 1

    def add_failure(self, identity: dict, exc: Exception):
        self.errors.append(RecalculationFailure.from_exception(identity, exc))
        self.total_processed += 1

    @property
    def progress(self) -> int:
        if not self.total_count:
            return 100
        return round(self.total_processed / self.total_count * 100)

    def progress_data(self) -> dict:
        """Cumulative counts in the shape reported to a progress sink."""
        return {
            'status': 'running',
            'progress': self.progress,
            'total_count': self.total_count,
            'processed_count': self.total_processed,
            'created_count': self.created,
            'updated_count': self.updated,
            'unchanged_count': self.unchanged,
            'error_count': len(self.errors),
        }

    def to_dict(self, error_limit: int = None) -> dict:
        errors = self.errors if error_limit is None else self.errors[:error_limit]
        return {
            'created': self.created,
            'updated': self.updated,
            'unchanged': self.unchanged,
            'total_processed': self.total_processed,
            'total_count': self.total_count,
            'cancelled': self.cancelled,
            'error_count': len(self.errors),
            'errors': [asdict(error) for error in errors],
        }


def apply_calculation(
    model,
    effective_record,
    year: int,
    values,
    field_paths,
    tolerance: float,
    actor=None,
) -> str:
    """
    Write one entity's calculated values for a year if they changed.

    Compares against the exact-year record when there is one (updating it
    in place), otherwise against the inherited record (branching a new
    year record only on change).

    Returns:
        CREATED, UPDATED or UNCHANGED
    """
    identity = effective_record.identity()
    with transaction.atomic():
        exact = (
            model.objects
            .select_for_update()
            .for_identity(identity)
            .exact_year(year)
            .first()
        )
        now = timezone.now()

        if exact is not None:
            if not has_changed(exact, values, field_paths, tolerance):
                return UNCHANGED
            exact.apply_patch(values)
            exact.recalculated_at = now
            exact.recalculated_by = actor
            persist_changes(exact)
            return UPDATED

        if not has_changed(effective_record, values, field_paths, tolerance):
            return UNCHANGED

        record = clone_forward(effective_record, year, actor=actor)
        record.apply_patch(values)
        record.created_from_recalculation = True
        record.recalculated_at = now
        record.recalculated_by = actor
        persist_new_record(record, ancestor=effective_record)
        return CREATED


def _resolve_batch_size(batch_size) -> int:
    if batch_size is None:
        batch_size = conf.batch_size()
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return batch_size


def _batches(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _report_progress(progress_sink, job_id, result: RecalculationResult):
    if progress_sink is None:
        return
    progress_sink.update(job_id, result.progress_data())


def _log_summary(model, scope, year, result: RecalculationResult):
    logger.info(
        f"Recalculated {model._meta.label} {scope} for {year}: "
        f"created={result.created} updated={result.updated} "
        f"unchanged={result.unchanged} errors={len(result.errors)}"
        + (" (cancelled)" if result.cancelled else "")
    )


def bulk_recalculate_for_year(
    model,
    scope: dict,
    year: int,
    calculate_fn,
    field_paths,
    batch_size: int = None,
    actor=None,
    progress_sink=None,
    job_id: str = None,
    tolerance: float = None,
    should_cancel=None,
) -> RecalculationResult:
    """
    Recalculate every entity in a scope for a year.

    Args:
        model: A YearVersionedModel subclass
        scope: Filter selecting the entities, e.g. {'municipality_id': 'M-1'}
        year: Target year
        calculate_fn: Callable (identity, year) -> candidate values; may raise
        field_paths: Dot paths that count as a material change
        batch_size: Entities between progress reports
            (default TEMPORAL_RECORDS_BATCH_SIZE)
        actor: User stamped as recalculated_by (optional)
        progress_sink: Object with update(job_id, data) (optional)
        job_id: Job id passed to the progress sink
        tolerance: Numeric tolerance for change detection
        should_cancel: Callable checked between batches (optional)

    Returns:
        RecalculationResult; never raises for per-entity failures
    """
    batch_size = _resolve_batch_size(batch_size)
    if tolerance is None:
        tolerance = conf.change_tolerance()

    effective_records = get_effective_records_for_scope(model, scope, year)
    result = RecalculationResult(total_count=len(effective_records))
    logger.info(
        f"Recalculating {result.total_count} {model._meta.label} records "
        f"in {scope} for {year}"
    )

    for batch in _batches(effective_records, batch_size):
        if should_cancel is not None and should_cancel():
            result.cancelled = True
            break

        for effective_record in batch:
            identity = effective_record.identity()
            try:
                values = calculate_fn(identity, year)
                outcome = apply_calculation(
                    model, effective_record, year, values, field_paths, tolerance, actor
                )
            except Exception as exc:
                logger.exception(f"Recalculation failed for {model._meta.label} {identity}")
                result.add_failure(identity, exc)
            else:
                result.add(outcome)

        _report_progress(progress_sink, job_id, result)

    _log_summary(model, scope, year, result)
    return result


def _as_async(calculate_fn):
    if inspect.iscoroutinefunction(calculate_fn):
        return calculate_fn
    return sync_to_async(calculate_fn)


async def abulk_recalculate_for_year(
    model,
    scope: dict,
    year: int,
    calculate_fn,
    field_paths,
    batch_size: int = None,
    actor=None,
    progress_sink=None,
    job_id: str = None,
    tolerance: float = None,
    should_cancel=None,
) -> RecalculationResult:
    """
    Async version of bulk_recalculate_for_year().

    Database work runs through sync_to_async; coroutine calculate
    functions are awaited directly. Control returns to the event loop
    after every entity.
    """
    batch_size = _resolve_batch_size(batch_size)
    if tolerance is None:
        tolerance = conf.change_tolerance()

    effective_records = await sync_to_async(get_effective_records_for_scope)(
        model, scope, year
    )
    result = RecalculationResult(total_count=len(effective_records))
    logger.info(
        f"Recalculating {result.total_count} {model._meta.label} records "
        f"in {scope} for {year}"
    )

    calculate = _as_async(calculate_fn)
    apply = sync_to_async(apply_calculation)
    report = sync_to_async(_report_progress)

    for batch in _batches(effective_records, batch_size):
        if should_cancel is not None and should_cancel():
            result.cancelled = True
            break

        for effective_record in batch:
            identity = effective_record.identity()
            try:
                values = await calculate(identity, year)
                outcome = await apply(
                    model, effective_record, year, values, field_paths, tolerance, actor
                )
            except Exception as exc:
                logger.exception(f"Recalculation failed for {model._meta.label} {identity}")
                result.add_failure(identity, exc)
            else:
                result.add(outcome)
            await asyncio.sleep(0)

        await report(progress_sink, job_id, result)

    _log_summary(model, scope, year, result)
    return result
