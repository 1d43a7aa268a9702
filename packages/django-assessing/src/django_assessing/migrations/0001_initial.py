# Generated manually for standalone django-assessing package

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import django_assessing.models


def year_versioned_fields():
    """Columns every year-versioned table carries."""
    return [
        (
            "id",
            models.BigAutoField(
                auto_created=True,
                primary_key=True,
                serialize=False,
                verbose_name="ID",
            ),
        ),
        (
            "effective_year",
            models.PositiveIntegerField(
                db_index=True,
                help_text="First assessment year these values apply to",
            ),
        ),
        (
            "effective_year_end",
            models.PositiveIntegerField(
                blank=True,
                null=True,
                help_text="Values stop applying before this year (null = still current)",
            ),
        ),
        (
            "source_effective_year",
            models.PositiveIntegerField(
                blank=True,
                null=True,
                help_text="Year of the record this one was copied from",
            ),
        ),
        ("created_from_recalculation", models.BooleanField(default=False)),
        ("copied_at", models.DateTimeField(blank=True, null=True)),
        ("recalculated_at", models.DateTimeField(blank=True, null=True)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        ("deleted_at", models.DateTimeField(blank=True, null=True)),
        ("row_version", models.PositiveIntegerField(default=1)),
        (
            "recalculated_by",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to=settings.AUTH_USER_MODEL,
            ),
        ),
        (
            "created_by",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to=settings.AUTH_USER_MODEL,
            ),
        ),
        (
            "updated_by",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to=settings.AUTH_USER_MODEL,
            ),
        ),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AssessmentYear",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("municipality_id", models.CharField(db_index=True, max_length=255)),
                (
                    "year",
                    models.PositiveIntegerField(
                        db_index=True,
                        validators=[
                            django.core.validators.MinValueValidator(2000),
                            django.core.validators.MaxValueValidator(2099),
                        ],
                    ),
                ),
                (
                    "is_locked",
                    models.BooleanField(
                        default=False,
                        help_text="Locked years cannot be modified. A source year is locked when a new year is created from it.",
                    ),
                ),
                (
                    "is_hidden",
                    models.BooleanField(
                        default=True,
                        help_text="Hidden years are visible to staff only",
                    ),
                ),
                (
                    "source_year",
                    models.PositiveIntegerField(
                        blank=True,
                        null=True,
                        help_text="Year this assessment year was created from",
                    ),
                ),
                (
                    "cached_totals",
                    models.JSONField(
                        blank=True,
                        default=django_assessing.models.default_cached_totals,
                    ),
                ),
                ("warrant_created_at", models.DateTimeField(blank=True, null=True)),
                ("bills_generated_at", models.DateTimeField(blank=True, null=True)),
                (
                    "tax_rate",
                    models.DecimalField(
                        blank=True,
                        decimal_places=4,
                        max_digits=10,
                        null=True,
                        help_text="Tax rate per $1000 of assessed value",
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                ("commitment_date", models.DateField(blank=True, null=True)),
                ("last_recalculation_at", models.DateTimeField(blank=True, null=True)),
                (
                    "last_recalculation_kind",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("land", "Land"),
                            ("building", "Building"),
                            ("features", "Features"),
                            ("view", "View"),
                            ("all", "All"),
                        ],
                        default="",
                        max_length=20,
                    ),
                ),
                (
                    "last_recalculation_created",
                    models.PositiveIntegerField(blank=True, null=True),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-year"],
                "indexes": [
                    models.Index(
                        fields=["municipality_id", "is_hidden", "year"],
                        name="assessment_year_visible_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("municipality_id", "year"),
                        name="unique_assessment_year",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="LandAssessment",
            fields=year_versioned_fields() + [
                ("property_id", models.CharField(db_index=True, max_length=255)),
                ("municipality_id", models.CharField(db_index=True, max_length=255)),
                ("zone_code", models.CharField(blank=True, default="", max_length=50)),
                ("neighborhood_code", models.CharField(blank=True, default="", max_length=50)),
                ("taxation_category", models.CharField(blank=True, default="", max_length=50)),
                ("market_value", models.FloatField(default=0)),
                ("taxable_value", models.FloatField(default=0)),
                ("current_use_credit", models.FloatField(default=0)),
                (
                    "land_use_details",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Land lines: land_use_type, size, size_unit (AC/FF), calculated factors",
                    ),
                ),
                (
                    "calculated_totals",
                    models.JSONField(
                        blank=True,
                        default=django_assessing.models.default_land_totals,
                    ),
                ),
                ("last_calculated", models.DateTimeField(blank=True, null=True)),
                (
                    "change_reason",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("revaluation", "Revaluation"),
                            ("appeal", "Appeal"),
                            ("new_construction", "New Construction"),
                            ("market_correction", "Market Correction"),
                            ("cyclical_review", "Cyclical Review"),
                            ("zoning_change", "Zoning Change"),
                            ("land_use_change", "Land Use Change"),
                        ],
                        default="",
                        max_length=30,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["municipality_id", "effective_year"],
                        name="land_muni_year_idx",
                    ),
                    models.Index(
                        fields=["property_id", "effective_year"],
                        name="land_property_year_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted_at__isnull", True)),
                        fields=("property_id", "effective_year"),
                        name="unique_active_land_assessment_year",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BuildingAssessment",
            fields=year_versioned_fields() + [
                ("property_id", models.CharField(db_index=True, max_length=255)),
                ("municipality_id", models.CharField(db_index=True, max_length=255)),
                ("card_number", models.PositiveIntegerField(default=1)),
                ("building_model", models.CharField(blank=True, default="", max_length=100)),
                ("frame", models.CharField(blank=True, default="", max_length=100)),
                ("quality_grade", models.CharField(blank=True, default="", max_length=50)),
                ("story_height", models.CharField(blank=True, default="", max_length=50)),
                ("year_built", models.PositiveIntegerField(blank=True, null=True)),
                ("bedrooms", models.PositiveSmallIntegerField(default=0)),
                ("full_baths", models.PositiveSmallIntegerField(default=0)),
                ("half_baths", models.PositiveSmallIntegerField(default=0)),
                ("effective_area", models.FloatField(default=0)),
                ("base_rate", models.FloatField(default=0)),
                ("replacement_cost_new", models.FloatField(default=0)),
                ("building_value", models.FloatField(default=0)),
                ("assessed_value", models.FloatField(default=0)),
                (
                    "depreciation",
                    models.JSONField(
                        blank=True,
                        default=django_assessing.models.default_depreciation,
                    ),
                ),
                ("total_depreciation", models.FloatField(default=0)),
                ("last_calculated", models.DateTimeField(blank=True, null=True)),
                (
                    "change_reason",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("revaluation", "Revaluation"),
                            ("appeal", "Appeal"),
                            ("new_construction", "New Construction"),
                            ("renovation", "Renovation"),
                            ("market_correction", "Market Correction"),
                            ("cyclical_review", "Cyclical Review"),
                            ("condition_change", "Condition Change"),
                            ("code_update", "Code Update"),
                            ("sketch_update", "Sketch Update"),
                        ],
                        default="",
                        max_length=30,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["municipality_id", "effective_year"],
                        name="building_muni_year_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted_at__isnull", True)),
                        fields=("property_id", "card_number", "effective_year"),
                        name="unique_active_building_card_year",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BuildingCalculationConfig",
            fields=year_versioned_fields() + [
                ("municipality_id", models.CharField(db_index=True, max_length=255)),
                (
                    "bedroom_bath_config",
                    models.JSONField(
                        blank=True,
                        default=django_assessing.models.default_bedroom_bath_config,
                    ),
                ),
                (
                    "calculation_factors",
                    models.JSONField(
                        blank=True,
                        default=django_assessing.models.default_calculation_factors,
                    ),
                ),
                (
                    "ratio_adjustments",
                    models.JSONField(
                        blank=True,
                        default=django_assessing.models.default_ratio_adjustments,
                    ),
                ),
                (
                    "special_adjustments",
                    models.JSONField(
                        blank=True,
                        default=django_assessing.models.default_special_adjustments,
                    ),
                ),
                (
                    "miscellaneous_points",
                    models.JSONField(
                        blank=True,
                        default=django_assessing.models.default_miscellaneous_points,
                    ),
                ),
                (
                    "economies_of_scale",
                    models.JSONField(
                        blank=True,
                        default=django_assessing.models.default_economies_of_scale,
                    ),
                ),
                (
                    "change_reason",
                    models.CharField(
                        choices=[
                            ("initial_setup", "Initial Setup"),
                            ("rate_adjustment", "Rate Adjustment"),
                            ("revaluation", "Revaluation"),
                            ("policy_change", "Policy Change"),
                            ("annual_update", "Annual Update"),
                            ("economies_of_scale_update", "Economies of Scale Update"),
                        ],
                        default="initial_setup",
                        max_length=30,
                    ),
                ),
                (
                    "previous_version",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="django_assessing.buildingcalculationconfig",
                    ),
                ),
                (
                    "next_version",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="django_assessing.buildingcalculationconfig",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted_at__isnull", True)),
                        fields=("municipality_id", "effective_year"),
                        name="unique_active_building_config_year",
                    ),
                ],
            },
        ),
    ]
