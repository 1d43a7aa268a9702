"""Django Temporal Records configuration.

All settings can be overridden in your Django settings.py.

Example:
    # settings.py
    TEMPORAL_RECORDS_CHANGE_TOLERANCE = 0.5
    TEMPORAL_RECORDS_BATCH_SIZE = 250
"""

from django.conf import settings


DEFAULT_CHANGE_TOLERANCE = 0.01
DEFAULT_BATCH_SIZE = 100
DEFAULT_JOB_RETENTION_SECONDS = 60 * 60
DEFAULT_JOB_ERROR_DETAIL_LIMIT = 10


def get_setting(name: str, default=None):
    """Get a setting with TEMPORAL_RECORDS_ prefix."""
    return getattr(settings, f"TEMPORAL_RECORDS_{name}", default)


def change_tolerance() -> float:
    """Absolute numeric tolerance used by change detection."""
    return float(get_setting("CHANGE_TOLERANCE", DEFAULT_CHANGE_TOLERANCE))


def batch_size() -> int:
    """Number of entities processed between progress reports."""
    return int(get_setting("BATCH_SIZE", DEFAULT_BATCH_SIZE))


def job_retention_seconds() -> int:
    """How long terminal job states are kept before sweeping."""
    return int(get_setting("JOB_RETENTION_SECONDS", DEFAULT_JOB_RETENTION_SECONDS))


def job_error_detail_limit() -> int:
    """How many per-entity errors are copied into a completed job's state."""
    return int(get_setting("JOB_ERROR_DETAIL_LIMIT", DEFAULT_JOB_ERROR_DETAIL_LIMIT))


# =============================================================================
# DEFAULT SETTINGS REFERENCE
# =============================================================================

# TEMPORAL_RECORDS_CHANGE_TOLERANCE = 0.01  # numeric noise ignored by has_changed()
# TEMPORAL_RECORDS_BATCH_SIZE = 100  # entities per progress checkpoint
# TEMPORAL_RECORDS_JOB_RETENTION_SECONDS = 3600  # terminal job retention
# TEMPORAL_RECORDS_JOB_ERROR_DETAIL_LIMIT = 10  # error details kept on job state
