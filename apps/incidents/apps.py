"""Django app configuration for the incidents app."""

from django.apps import AppConfig


class IncidentsConfig(AppConfig):
    """Configuration for the Incidents app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.incidents"
    verbose_name = "Incidents"
