"""
Customers app configuration for the Autoparts Commerce Platform.
"""

from django.apps import AppConfig


class CustomersConfig(AppConfig):
    """Configuration for the Customers app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.customers"
    verbose_name = "Customers"
