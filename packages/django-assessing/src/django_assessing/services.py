"""Assessment services.

Every write checks the year lock gate before touching a record, then goes
through the copy-on-write engine so earlier years are never modified.

Usage:
    from django_assessing.services import update_land_assessment

    update_land_assessment(
        'P-17', 'M-1', 2025,
        {'market_value': 125000, 'change_reason': 'revaluation'},
        actor=request.user,
    )
"""
import logging

from asgiref.sync import sync_to_async

from django_temporal_records.engine import get_or_create_for_year, update_for_year
from django_temporal_records.locks import ensure_year_unlocked
from django_temporal_records.recalculation import bulk_recalculate_for_year
from django_temporal_records.resolver import get_effective_record

from . import conf
from .models import AssessmentYear, BuildingAssessment, BuildingCalculationConfig, LandAssessment
from .years import record_recalculation

logger = logging.getLogger(__name__)

# Fields whose change makes a recalculated record worth storing
LAND_VALUE_FIELDS = (
    'market_value',
    'taxable_value',
    'current_use_credit',
    'calculated_totals.total_market_value',
    'calculated_totals.total_assessed_value',
    'calculated_totals.total_current_use_credit',
)

BUILDING_VALUE_FIELDS = (
    'base_rate',
    'replacement_cost_new',
    'building_value',
    'assessed_value',
)

CONFIG_SECTIONS = (
    'bedroom_bath_config',
    'calculation_factors',
    'ratio_adjustments',
    'special_adjustments',
    'miscellaneous_points',
    'economies_of_scale',
)


def _gate(gate):
    return gate if gate is not None else conf.get_lock_gate()


def _land_lookup(property_id, municipality_id) -> dict:
    return {'property_id': property_id, 'municipality_id': municipality_id}


def _building_lookup(property_id, municipality_id, card_number) -> dict:
    return {
        'property_id': property_id,
        'municipality_id': municipality_id,
        'card_number': card_number,
    }


# -----------------------------
# Land
# -----------------------------

def get_land_assessment(property_id, municipality_id, year: int, create_if_missing=False, actor=None, gate=None):
    """
    Land assessment for a year.

    Without create_if_missing this may return a record belonging to an
    earlier year (inherited), or None.
    """
    if create_if_missing:
        ensure_year_unlocked(_gate(gate), municipality_id, year)
    return get_or_create_for_year(
        LandAssessment,
        _land_lookup(property_id, municipality_id),
        year,
        create_if_missing=create_if_missing,
        actor=actor,
    )


def update_land_assessment(property_id, municipality_id, year: int, changes: dict, create_new=False, actor=None, gate=None):
    """
    Apply changes to a property's land assessment for a year.

    Raises:
        YearLockedError: If the year is locked (nothing is written)
    """
    ensure_year_unlocked(_gate(gate), municipality_id, year)
    return update_for_year(
        LandAssessment,
        _land_lookup(property_id, municipality_id),
        year,
        changes,
        create_new=create_new,
        actor=actor,
    )


# -----------------------------
# Building
# -----------------------------

def get_building_assessment(property_id, municipality_id, year: int, card_number=1, create_if_missing=False, actor=None, gate=None):
    if create_if_missing:
        ensure_year_unlocked(_gate(gate), municipality_id, year)
    return get_or_create_for_year(
        BuildingAssessment,
        _building_lookup(property_id, municipality_id, card_number),
        year,
        create_if_missing=create_if_missing,
        actor=actor,
    )


def update_building_assessment(property_id, municipality_id, year: int, changes: dict, card_number=1, create_new=False, actor=None, gate=None):
    """
    Apply changes to one building card for a year.

    Raises:
        YearLockedError: If the year is locked (nothing is written)
    """
    ensure_year_unlocked(_gate(gate), municipality_id, year)
    return update_for_year(
        BuildingAssessment,
        _building_lookup(property_id, municipality_id, card_number),
        year,
        changes,
        create_new=create_new,
        actor=actor,
    )


# -----------------------------
# Building calculation config
# -----------------------------

def get_building_config(municipality_id, year: int, actor=None, gate=None):
    """
    Building calculation config for a year, created with defaults if the
    municipality has none.

    A locked year is never written: its effective config is returned
    as-is (or None if nothing was ever configured).
    """
    identity = {'municipality_id': municipality_id}
    if _gate(gate).is_year_locked(municipality_id, year):
        return get_or_create_for_year(BuildingCalculationConfig, identity, year)
    return get_or_create_for_year(
        BuildingCalculationConfig,
        identity,
        year,
        create_if_missing=True,
        actor=actor,
    )


def update_building_config(municipality_id, year: int, changes: dict, actor=None, gate=None):
    """
    Update the config for a year.

    Section dictionaries are merged into the effective config's sections, so
    {'bedroom_bath_config': {'base': 6}} changes only that key. Editing a
    year with no config of its own supersedes the earlier config in the
    version chain.

    Raises:
        YearLockedError: If the year is locked (nothing is written)
    """
    ensure_year_unlocked(_gate(gate), municipality_id, year)
    identity = {'municipality_id': municipality_id}

    patch = dict(changes)
    current = get_effective_record(BuildingCalculationConfig, identity, year)
    if current is not None:
        for section in CONFIG_SECTIONS:
            value = patch.get(section)
            if isinstance(value, dict):
                patch[section] = {**getattr(current, section), **value}

    return update_for_year(
        BuildingCalculationConfig,
        identity,
        year,
        patch,
        actor=actor,
    )


# -----------------------------
# Recalculation
# -----------------------------

def recalculate_land_assessments(municipality_id, year: int, calculate_fn, actor=None, gate=None, **options):
    """
    Recalculate every land assessment in a municipality for a year.

    calculate_fn(identity, year) returns the new values for one property.
    Only properties whose LAND_VALUE_FIELDS moved get written.

    Raises:
        YearLockedError: If the year is locked (nothing is written)
    """
    ensure_year_unlocked(_gate(gate), municipality_id, year)
    result = bulk_recalculate_for_year(
        LandAssessment,
        {'municipality_id': municipality_id},
        year,
        calculate_fn,
        LAND_VALUE_FIELDS,
        actor=actor,
        **options,
    )
    record_recalculation(municipality_id, year, AssessmentYear.RecalculationKind.LAND, result)
    return result


def recalculate_building_assessments(municipality_id, year: int, calculate_fn, actor=None, gate=None, **options):
    """Building counterpart of recalculate_land_assessments()."""
    ensure_year_unlocked(_gate(gate), municipality_id, year)
    result = bulk_recalculate_for_year(
        BuildingAssessment,
        {'municipality_id': municipality_id},
        year,
        calculate_fn,
        BUILDING_VALUE_FIELDS,
        actor=actor,
        **options,
    )
    record_recalculation(municipality_id, year, AssessmentYear.RecalculationKind.BUILDING, result)
    return result


async def submit_land_recalculation(runner, municipality_id, year: int, calculate_fn, actor=None, gate=None, **options) -> str:
    """
    Start a background land recalculation and return its job id.

    The lock check happens before the job is submitted, so a locked year
    fails fast instead of producing a failed job.
    """
    await sync_to_async(ensure_year_unlocked)(_gate(gate), municipality_id, year)
    job_id = await runner.submit(
        LandAssessment,
        {'municipality_id': municipality_id},
        year,
        calculate_fn,
        LAND_VALUE_FIELDS,
        actor=actor,
        **options,
    )
    logger.info(f"Submitted land recalculation {job_id} for {municipality_id} {year}")
    return job_id
