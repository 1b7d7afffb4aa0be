"""
Common app configuration for the Autoparts Commerce Platform.
"""

from django.apps import AppConfig


class CommonConfig(AppConfig):
    """Shared types, money helpers and decorators."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.common"
    verbose_name = "Common"
