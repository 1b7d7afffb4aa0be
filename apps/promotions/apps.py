"""
Promotions app configuration for the Autoparts Commerce Platform.
"""

from django.apps import AppConfig


class PromotionsConfig(AppConfig):
    """Configuration for the Promotions app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.promotions"
    verbose_name = "Vouchers & Loyalty Tiers"
