"""Django Assessing app configuration."""

from django.apps import AppConfig


class DjangoAssessingConfig(AppConfig):
    """Configuration for django-assessing app."""

    name = "django_assessing"
    verbose_name = "Assessing"
    default_auto_field = "django.db.models.BigAutoField"
