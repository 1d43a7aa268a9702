"""Django Assessing configuration.

All settings can be overridden in your Django settings.py.

Example:
    # settings.py
    ASSESSING_LOCK_GATE = 'myproject.billing.BillingPeriodLockGate'
"""

from django.conf import settings
from django.utils.module_loading import import_string


DEFAULT_LOCK_GATE = 'django_assessing.years.AssessmentYearLockGate'


def get_setting(name: str, default=None):
    """Get a setting with ASSESSING_ prefix."""
    return getattr(settings, f"ASSESSING_{name}", default)


def get_lock_gate():
    """Instantiate the configured year lock gate."""
    return import_string(get_setting("LOCK_GATE", DEFAULT_LOCK_GATE))()
