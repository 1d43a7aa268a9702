"""Django Assessing - Year-versioned property assessments and assessment years."""

__version__ = "0.1.0"

__all__ = [
    # Models
    "AssessmentYear",
    "LandAssessment",
    "BuildingAssessment",
    "BuildingCalculationConfig",
    # Years
    "AssessmentYearLockGate",
    "create_year_from",
    "lock_year",
    # Services
    "update_land_assessment",
    "update_building_assessment",
    "update_building_config",
    "recalculate_land_assessments",
    # Exceptions
    "AssessingError",
    "AssessmentYearExistsError",
    "AssessmentYearNotFoundError",
]

_LAZY = {
    "AssessmentYear": "models",
    "LandAssessment": "models",
    "BuildingAssessment": "models",
    "BuildingCalculationConfig": "models",
    "AssessmentYearLockGate": "years",
    "create_year_from": "years",
    "lock_year": "years",
    "update_land_assessment": "services",
    "update_building_assessment": "services",
    "update_building_config": "services",
    "recalculate_land_assessments": "services",
    "AssessingError": "exceptions",
    "AssessmentYearExistsError": "exceptions",
    "AssessmentYearNotFoundError": "exceptions",
}


def __getattr__(name):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name in _LAZY:
        from importlib import import_module
        module = import_module(f"django_assessing.{_LAZY[name]}")
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
