"""
Pricing app configuration for the Autoparts Commerce Platform.
"""

from django.apps import AppConfig


class PricingConfig(AppConfig):
    """Configuration for the Pricing Context app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.pricing"
    verbose_name = "Pricing Context"

    def ready(self) -> None:
        """Import signals when app is ready."""
        # Import signals to register them
        from . import signals  # noqa: F401
