"""
Wallet app configuration for the Autoparts Commerce Platform.
"""

from django.apps import AppConfig


class WalletConfig(AppConfig):
    """Configuration for the loyalty points Wallet app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.wallet"
    verbose_name = "Wallet"
