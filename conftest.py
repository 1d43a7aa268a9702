# conftest.py
"""
Pytest configuration shared by package tests and repo-level contract tests.
"""
import django
import pytest
from django.conf import settings


def pytest_configure():
    if not settings.configured:
        settings.configure(
            DEBUG=True,
            SECRET_KEY="test-secret-key-for-package-tests",
            DATABASES={
                "default": {
                    "ENGINE": "django.db.backends.sqlite3",
                    "NAME": ":memory:",
                }
            },
            INSTALLED_APPS=[
                "django.contrib.contenttypes",
                "django.contrib.auth",
                # Tier 0
                "django_temporal_records",
                # Tier 1
                "django_assessing",
                # Test apps
                "temporal_testapp",
            ],
            DEFAULT_AUTO_FIELD="django.db.models.BigAutoField",
            USE_TZ=True,
            LOGGING={
                "version": 1,
                "disable_existing_loggers": False,
                "handlers": {
                    "console": {"class": "logging.StreamHandler"},
                },
                "loggers": {
                    "django_temporal_records": {"handlers": ["console"], "level": "WARNING"},
                    "django_assessing": {"handlers": ["console"], "level": "WARNING"},
                },
            },
        )
    django.setup()


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(username="assessor", password="x")


@pytest.fixture
def make_parcel():
    """Create an active ParcelRecord for a year."""
    from temporal_testapp.models import ParcelRecord

    def _make(parcel_id, year, value=100.0, district="north", **fields):
        return ParcelRecord.objects.create(
            parcel_id=parcel_id,
            district=district,
            effective_year=year,
            value=value,
            **fields,
        )

    return _make
