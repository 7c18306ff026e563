"""Django app configuration for the components app."""

from django.apps import AppConfig


class ComponentsConfig(AppConfig):
    """Configuration for the Components app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.components"
    verbose_name = "Components"
