"""
Checkout app configuration for the Autoparts Commerce Platform.
"""

from django.apps import AppConfig


class CheckoutConfig(AppConfig):
    """Configuration for the Checkout app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.checkout"
    verbose_name = "Checkout"
