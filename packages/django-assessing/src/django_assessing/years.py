"""Assessment year registry.

Owns year-level state: which years exist, which are locked or hidden,
fiscal milestones and cached totals. Locking lives here, and the engine
sees it only through AssessmentYearLockGate.

Usage:
    from django_assessing.years import create_year_from, lock_year

    # Roll 2024 forward. 2024 becomes locked; 2025 starts hidden and
    # inherits every 2024 record until one is edited.
    create_year_from('M-1', 2024, 2025, actor=request.user)
"""
import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from django_temporal_records.resolver import get_effective_records_for_scope

from .exceptions import AssessmentYearExistsError, AssessmentYearNotFoundError
from .models import AssessmentYear, BuildingAssessment, LandAssessment

logger = logging.getLogger(__name__)

MILESTONE_FIELDS = (
    'warrant_created_at',
    'bills_generated_at',
    'tax_rate',
    'commitment_date',
)


class AssessmentYearLockGate:
    """Year lock gate backed by AssessmentYear rows.

    A year with no AssessmentYear row is unlocked.
    """

    def is_year_locked(self, scope_id, year: int) -> bool:
        return AssessmentYear.objects.filter(
            municipality_id=scope_id,
            year=year,
            is_locked=True,
        ).exists()


def get_year(municipality_id, year: int):
    return AssessmentYear.objects.filter(municipality_id=municipality_id, year=year).first()


def _require_year(municipality_id, year: int) -> AssessmentYear:
    assessment_year = get_year(municipality_id, year)
    if assessment_year is None:
        raise AssessmentYearNotFoundError(municipality_id, year)
    return assessment_year


def get_active_year(municipality_id):
    """Most recent year that is neither locked nor hidden."""
    return AssessmentYear.objects.filter(
        municipality_id=municipality_id,
        is_locked=False,
        is_hidden=False,
    ).order_by('-year').first()


def get_visible_years(municipality_id, is_staff: bool = False) -> list:
    """Years a user may see, newest first. Staff also see hidden years."""
    qs = AssessmentYear.objects.filter(municipality_id=municipality_id)
    if not is_staff:
        qs = qs.filter(is_hidden=False)
    return list(qs.order_by('-year'))


@transaction.atomic
def create_year_from(municipality_id, source_year: int, target_year: int, actor=None) -> AssessmentYear:
    """
    Open a new assessment year from an existing one.

    No assessment records are copied; the new year inherits them through
    temporal resolution. The source year is locked and the new year starts
    hidden and unlocked.

    Raises:
        AssessmentYearExistsError: If target_year already exists
    """
    if AssessmentYear.objects.filter(municipality_id=municipality_id, year=target_year).exists():
        raise AssessmentYearExistsError(municipality_id, target_year)

    AssessmentYear.objects.filter(
        municipality_id=municipality_id,
        year=source_year,
    ).update(is_locked=True, updated_at=timezone.now())

    try:
        with transaction.atomic():
            assessment_year = AssessmentYear(
                municipality_id=municipality_id,
                year=target_year,
                is_locked=False,
                is_hidden=True,
                source_year=source_year,
                created_by=actor,
            )
            assessment_year.full_clean(validate_constraints=False)
            assessment_year.save()
    except IntegrityError as exc:
        raise AssessmentYearExistsError(municipality_id, target_year) from exc

    logger.info(f"Created assessment year {target_year} from {source_year} for {municipality_id}")
    return assessment_year


def lock_year(municipality_id, year: int) -> AssessmentYear:
    """Lock a year, creating its row (visible) if it does not exist yet."""
    assessment_year, created = AssessmentYear.objects.get_or_create(
        municipality_id=municipality_id,
        year=year,
        defaults={'is_locked': True, 'is_hidden': False},
    )
    if not created and not assessment_year.is_locked:
        assessment_year.is_locked = True
        assessment_year.save(update_fields=['is_locked', 'updated_at'])
    logger.info(f"Locked assessment year {year} for {municipality_id}")
    return assessment_year


def unlock_year(municipality_id, year: int) -> AssessmentYear:
    assessment_year = _require_year(municipality_id, year)
    if assessment_year.is_locked:
        assessment_year.is_locked = False
        assessment_year.save(update_fields=['is_locked', 'updated_at'])
        logger.info(f"Unlocked assessment year {year} for {municipality_id}")
    return assessment_year


def set_visibility(municipality_id, year: int, is_hidden: bool) -> AssessmentYear:
    assessment_year = _require_year(municipality_id, year)
    assessment_year.is_hidden = is_hidden
    assessment_year.save(update_fields=['is_hidden', 'updated_at'])
    return assessment_year


def update_milestones(municipality_id, year: int, milestones: dict) -> AssessmentYear:
    """
    Update fiscal milestones. Keys outside MILESTONE_FIELDS are ignored.

    Raises:
        AssessmentYearNotFoundError: If the year does not exist
        ValidationError: If a milestone value is invalid (e.g. negative tax rate)
    """
    assessment_year = _require_year(municipality_id, year)
    changed = [name for name in MILESTONE_FIELDS if name in milestones]
    for name in changed:
        setattr(assessment_year, name, milestones[name])
    if changed:
        assessment_year.full_clean(validate_unique=False, validate_constraints=False)
        assessment_year.save(update_fields=[*changed, 'updated_at'])
    return assessment_year


def recalculate_totals(municipality_id, year: int) -> dict:
    """
    Recompute and cache the year's totals from effective records.

    Inherited records count toward the year they are effective in, so a
    freshly created year reports the same totals as its source year.
    """
    assessment_year = _require_year(municipality_id, year)
    scope = {'municipality_id': municipality_id}
    land_records = get_effective_records_for_scope(LandAssessment, scope, year)
    building_records = get_effective_records_for_scope(BuildingAssessment, scope, year)

    total_land_value = sum(record.market_value for record in land_records)
    total_building_value = sum(record.building_value for record in building_records)
    parcels = {record.property_id for record in land_records}
    parcels.update(record.property_id for record in building_records)

    totals = {
        'total_land_value': total_land_value,
        'total_building_value': total_building_value,
        'total_assessed_value': (
            sum(record.taxable_value for record in land_records)
            + sum(record.assessed_value for record in building_records)
        ),
        'total_current_use_credit': sum(record.current_use_credit for record in land_records),
        'parcel_count': len(parcels),
        'last_calculated': timezone.now().isoformat(),
    }
    assessment_year.cached_totals = totals
    assessment_year.save(update_fields=['cached_totals', 'updated_at'])
    return totals


def record_recalculation(municipality_id, year: int, kind: str, result) -> bool:
    """Stamp the year with the outcome of a bulk recalculation.

    Returns False if the year has no AssessmentYear row.
    """
    updated = AssessmentYear.objects.filter(
        municipality_id=municipality_id,
        year=year,
    ).update(
        last_recalculation_at=timezone.now(),
        last_recalculation_kind=kind,
        last_recalculation_created=result.created,
        updated_at=timezone.now(),
    )
    return bool(updated)
