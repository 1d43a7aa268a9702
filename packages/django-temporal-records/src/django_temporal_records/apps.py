"""Django app configuration for django-temporal-records."""

from django.apps import AppConfig


class DjangoTemporalRecordsConfig(AppConfig):
    """App configuration for django-temporal-records."""

    name = 'django_temporal_records'
    verbose_name = 'Temporal Records'
    default_auto_field = 'django.db.models.BigAutoField'
