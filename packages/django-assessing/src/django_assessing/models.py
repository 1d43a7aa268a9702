"""Assessment models.

Land, building and building-configuration records are year-versioned: a
year without its own row inherits the most recent earlier row. Only years
whose values actually changed get a physical record.

AssessmentYear is plain year-level metadata (lock and visibility flags,
fiscal milestones, cached totals) and is not versioned.
"""
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from django_temporal_records.models import YearVersionedModel


def default_land_totals():
    return {
        'total_acreage': 0,
        'total_frontage': 0,
        'total_market_value': 0,
        'total_current_use_value': 0,
        'total_assessed_value': 0,
        'total_current_use_credit': 0,
    }


def default_depreciation():
    return {
        'normal': {'percentage': 0, 'description': ''},
        'physical': {'percentage': 0, 'notes': ''},
        'functional': {'percentage': 0, 'notes': ''},
        'economic': {'percentage': 0, 'notes': ''},
        'temporary': {'percentage': 0, 'notes': ''},
    }


def default_bedroom_bath_config():
    return {
        'base': 5,
        'per_bedroom': 3,
        'per_full_bath': 2,
        'per_half_bath': 0.8,
    }


def default_calculation_factors():
    return {
        'point_multiplier': 1.0,
        'base_rate': 100,
    }


def default_ratio_adjustments():
    return {
        'luxury_threshold': 1.0,
        'luxury_modifier': 1.1,
        'good_ratio_threshold': 0.75,
        'good_ratio_modifier': 1.05,
        'poor_ratio_threshold': 0.5,
        'poor_ratio_modifier': 0.95,
    }


def default_special_adjustments():
    return {
        'three_br_no_half_bath_modifier': 0.97,
        'two_br_one_half_bath_ideal_modifier': 1.03,
    }


def default_miscellaneous_points():
    return {
        'air_conditioning': {'points_per_10_percent': 1},
        'generator': {'default_points': 5},
        'extra_kitchen': {'points_per_kitchen': 1},
    }


def default_economies_of_scale():
    # sizes in square feet
    return {
        'residential': {
            'median_size': 1800,
            'smallest_size': 100,
            'smallest_factor': 3.0,
            'largest_size': 15000,
            'largest_factor': 0.75,
        },
        'commercial': {
            'median_size': 5000,
            'smallest_size': 500,
            'smallest_factor': 2.5,
            'largest_size': 50000,
            'largest_factor': 0.8,
        },
        'industrial': {
            'median_size': 10000,
            'smallest_size': 1000,
            'smallest_factor': 2.0,
            'largest_size': 100000,
            'largest_factor': 0.85,
        },
        'manufactured': {
            'median_size': 1200,
            'smallest_size': 50,
            'smallest_factor': 4.0,
            'largest_size': 3000,
            'largest_factor': 0.7,
        },
    }


def default_cached_totals():
    return {
        'total_land_value': 0,
        'total_building_value': 0,
        'total_assessed_value': 0,
        'total_current_use_credit': 0,
        'parcel_count': 0,
        'last_calculated': None,
    }


class LandAssessment(YearVersionedModel):
    """
    Land values for a property (parcel level, not card specific).

    Identity is the property; municipality_id scopes bulk operations.
    """

    identity_fields = ('property_id',)

    class ChangeReason(models.TextChoices):
        REVALUATION = 'revaluation', 'Revaluation'
        APPEAL = 'appeal', 'Appeal'
        NEW_CONSTRUCTION = 'new_construction', 'New Construction'
        MARKET_CORRECTION = 'market_correction', 'Market Correction'
        CYCLICAL_REVIEW = 'cyclical_review', 'Cyclical Review'
        ZONING_CHANGE = 'zoning_change', 'Zoning Change'
        LAND_USE_CHANGE = 'land_use_change', 'Land Use Change'

    property_id = models.CharField(max_length=255, db_index=True)
    municipality_id = models.CharField(max_length=255, db_index=True)

    zone_code = models.CharField(max_length=50, blank=True, default='')
    neighborhood_code = models.CharField(max_length=50, blank=True, default='')
    taxation_category = models.CharField(max_length=50, blank=True, default='')

    market_value = models.FloatField(default=0)
    taxable_value = models.FloatField(default=0)
    current_use_credit = models.FloatField(default=0)

    land_use_details = models.JSONField(
        default=list,
        blank=True,
        help_text="Land lines: land_use_type, size, size_unit (AC/FF), calculated factors"
    )
    calculated_totals = models.JSONField(default=default_land_totals, blank=True)
    last_calculated = models.DateTimeField(null=True, blank=True)

    change_reason = models.CharField(
        max_length=30,
        choices=ChangeReason.choices,
        blank=True,
        default='',
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['property_id', 'effective_year'],
                condition=models.Q(deleted_at__isnull=True),
                name='unique_active_land_assessment_year',
            ),
        ]
        indexes = [
            models.Index(fields=['municipality_id', 'effective_year'], name='land_muni_year_idx'),
            models.Index(fields=['property_id', 'effective_year'], name='land_property_year_idx'),
        ]


class BuildingAssessment(YearVersionedModel):
    """
    Building values for one card of a property.

    A property can carry several buildings; each card is its own
    versioned entity.
    """

    identity_fields = ('property_id', 'card_number')

    class ChangeReason(models.TextChoices):
        REVALUATION = 'revaluation', 'Revaluation'
        APPEAL = 'appeal', 'Appeal'
        NEW_CONSTRUCTION = 'new_construction', 'New Construction'
        RENOVATION = 'renovation', 'Renovation'
        MARKET_CORRECTION = 'market_correction', 'Market Correction'
        CYCLICAL_REVIEW = 'cyclical_review', 'Cyclical Review'
        CONDITION_CHANGE = 'condition_change', 'Condition Change'
        CODE_UPDATE = 'code_update', 'Code Update'
        SKETCH_UPDATE = 'sketch_update', 'Sketch Update'

    property_id = models.CharField(max_length=255, db_index=True)
    municipality_id = models.CharField(max_length=255, db_index=True)
    card_number = models.PositiveIntegerField(default=1)

    building_model = models.CharField(max_length=100, blank=True, default='')
    frame = models.CharField(max_length=100, blank=True, default='')
    quality_grade = models.CharField(max_length=50, blank=True, default='')
    story_height = models.CharField(max_length=50, blank=True, default='')
    year_built = models.PositiveIntegerField(null=True, blank=True)

    bedrooms = models.PositiveSmallIntegerField(default=0)
    full_baths = models.PositiveSmallIntegerField(default=0)
    half_baths = models.PositiveSmallIntegerField(default=0)
    effective_area = models.FloatField(default=0)

    base_rate = models.FloatField(default=0)
    replacement_cost_new = models.FloatField(default=0)
    building_value = models.FloatField(default=0)
    assessed_value = models.FloatField(default=0)

    depreciation = models.JSONField(default=default_depreciation, blank=True)
    total_depreciation = models.FloatField(default=0)
    last_calculated = models.DateTimeField(null=True, blank=True)

    change_reason = models.CharField(
        max_length=30,
        choices=ChangeReason.choices,
        blank=True,
        default='',
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['property_id', 'card_number', 'effective_year'],
                condition=models.Q(deleted_at__isnull=True),
                name='unique_active_building_card_year',
            ),
        ]
        indexes = [
            models.Index(fields=['municipality_id', 'effective_year'], name='building_muni_year_idx'),
        ]


class BuildingCalculationConfig(YearVersionedModel):
    """
    Per-municipality parameters for building value calculations.

    Versions form an explicit chain: a new year's config points back at
    the one it superseded, and the superseded config is closed with
    effective_year_end.
    """

    identity_fields = ('municipality_id',)
    chains_versions = True

    class ChangeReason(models.TextChoices):
        INITIAL_SETUP = 'initial_setup', 'Initial Setup'
        RATE_ADJUSTMENT = 'rate_adjustment', 'Rate Adjustment'
        REVALUATION = 'revaluation', 'Revaluation'
        POLICY_CHANGE = 'policy_change', 'Policy Change'
        ANNUAL_UPDATE = 'annual_update', 'Annual Update'
        ECONOMIES_OF_SCALE_UPDATE = 'economies_of_scale_update', 'Economies of Scale Update'

    municipality_id = models.CharField(max_length=255, db_index=True)

    bedroom_bath_config = models.JSONField(default=default_bedroom_bath_config, blank=True)
    calculation_factors = models.JSONField(default=default_calculation_factors, blank=True)
    ratio_adjustments = models.JSONField(default=default_ratio_adjustments, blank=True)
    special_adjustments = models.JSONField(default=default_special_adjustments, blank=True)
    miscellaneous_points = models.JSONField(default=default_miscellaneous_points, blank=True)
    economies_of_scale = models.JSONField(default=default_economies_of_scale, blank=True)

    change_reason = models.CharField(
        max_length=30,
        choices=ChangeReason.choices,
        default=ChangeReason.INITIAL_SETUP,
    )

    previous_version = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    next_version = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['municipality_id', 'effective_year'],
                condition=models.Q(deleted_at__isnull=True),
                name='unique_active_building_config_year',
            ),
        ]

    def to_calculation_config(self) -> dict:
        """Flatten into the shape building calculators consume."""
        return {
            **self.bedroom_bath_config,
            **self.calculation_factors,
            'ratio_adjustments': self.ratio_adjustments,
            'special_adjustments': self.special_adjustments,
            'miscellaneous_points': self.miscellaneous_points,
            'economies_of_scale': self.economies_of_scale,
        }


# PRIMITIVES: allow-plain-model
class AssessmentYear(models.Model):
    """
    Year-level metadata for a municipality's assessing.

    Creating a year is instant: assessment data inherits through temporal
    queries until a record is modified for the new year.

    Locked years reject writes to versioned records. Hidden years are
    visible to staff only.
    """

    class RecalculationKind(models.TextChoices):
        LAND = 'land', 'Land'
        BUILDING = 'building', 'Building'
        FEATURES = 'features', 'Features'
        VIEW = 'view', 'View'
        ALL = 'all', 'All'

    municipality_id = models.CharField(max_length=255, db_index=True)
    year = models.PositiveIntegerField(
        validators=[MinValueValidator(2000), MaxValueValidator(2099)],
        db_index=True,
    )

    is_locked = models.BooleanField(
        default=False,
        help_text="Locked years cannot be modified. A source year is locked when a new year is created from it."
    )
    is_hidden = models.BooleanField(
        default=True,
        help_text="Hidden years are visible to staff only"
    )
    source_year = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Year this assessment year was created from"
    )

    cached_totals = models.JSONField(default=default_cached_totals, blank=True)

    # Fiscal milestones
    warrant_created_at = models.DateTimeField(null=True, blank=True)
    bills_generated_at = models.DateTimeField(null=True, blank=True)
    tax_rate = models.DecimalField(
        max_digits=10,
        decimal_places=4,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text="Tax rate per $1000 of assessed value"
    )
    commitment_date = models.DateField(null=True, blank=True)

    # Recalculation tracking
    last_recalculation_at = models.DateTimeField(null=True, blank=True)
    last_recalculation_kind = models.CharField(
        max_length=20,
        choices=RecalculationKind.choices,
        blank=True,
        default='',
    )
    last_recalculation_created = models.PositiveIntegerField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['municipality_id', 'year'],
                name='unique_assessment_year',
            ),
        ]
        indexes = [
            models.Index(fields=['municipality_id', 'is_hidden', 'year'], name='assessment_year_visible_idx'),
        ]
        ordering = ['-year']

    def __str__(self):
        return f"{self.municipality_id} {self.year}"
