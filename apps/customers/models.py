"""
Customer models for the Autoparts Commerce Platform
Customer record (class, monthly spend, tier) with soft delete and type-change audit.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from django.conf import settings
from django.db import models, transaction
from django.db.models.query import QuerySet
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.common.constants import CUSTOMER_CLASS_MERCHANT, CUSTOMER_CLASS_NORMAL

logger = logging.getLogger(__name__)


class SoftDeleteManager(models.Manager["Customer"]):
    """Manager for soft delete operations"""

    def get_queryset(self) -> QuerySet[Customer]:
        """Only show non-deleted records by default"""
        return super().get_queryset().filter(deleted_at__isnull=True)

    def with_deleted(self) -> QuerySet[Customer]:
        """Show all records including soft-deleted"""
        return super().get_queryset()


class SoftDeleteModel(models.Model):
    """Abstract model with soft delete capabilities"""

    deleted_at = models.DateTimeField(null=True, blank=True)

    all_objects = models.Manager()  # Manager - All records including soft-deleted
    objects = SoftDeleteManager()  # SoftDeleteManager - Only non-deleted records

    class Meta:
        abstract = True

    def soft_delete(self) -> None:
        with transaction.atomic():
            logger.warning(
                f"⚡ [Customer] Soft delete: {self.__class__.__name__} ID {self.pk}",
                extra={"model": self.__class__.__name__, "record_id": self.pk, "operation": "soft_delete"},
            )
            self.deleted_at = timezone.now()
            self.save(update_fields=["deleted_at"])

    def restore(self) -> None:
        with transaction.atomic():
            logger.info(
                f"⚡ [Customer] Restore: {self.__class__.__name__} ID {self.pk}",
                extra={"model": self.__class__.__name__, "record_id": self.pk, "operation": "restore"},
            )
            self.deleted_at = None
            self.save(update_fields=["deleted_at"])

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class Customer(SoftDeleteModel):
    """
    Store customer - the pricing and loyalty view of a registered account.

    `customer_type` selects the price column (normal = B2C retail,
    merchant = B2B wholesale). `monthly_spend_cents` is the rolling spend for
    the calendar month starting at `spend_period_start`; a stale period counts
    as zero spend until the next mutation rolls it over.
    """

    CUSTOMER_TYPE_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (CUSTOMER_CLASS_NORMAL, _("Normal (retail)")),
        (CUSTOMER_CLASS_MERCHANT, _("Merchant (wholesale)")),
    )

    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("active", _("Active")),
        ("inactive", _("Inactive")),
        ("suspended", _("Suspended")),
    )

    # Core Identity Fields
    name = models.CharField(max_length=255)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=30, blank=True)
    customer_type = models.CharField(max_length=20, choices=CUSTOMER_TYPE_CHOICES, default=CUSTOMER_CLASS_NORMAL)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="active")

    # Loyalty
    monthly_spend_cents = models.BigIntegerField(
        default=0, help_text=_("Completed-order spend for the current calendar month, in cents")
    )
    spend_period_start = models.DateField(
        null=True, blank=True, help_text=_("First day of the month monthly_spend_cents belongs to")
    )
    current_tier = models.ForeignKey(
        "promotions.LoyaltyTier",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="customers",
    )
    tier_assigned_at = models.DateTimeField(null=True, blank=True)

    # Audit Fields
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "customers"
        verbose_name = _("Customer")
        verbose_name_plural = _("Customers")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["customer_type"]),
            models.Index(fields=["spend_period_start"]),
            models.Index(fields=["deleted_at"]),  # For soft delete queries
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=models.Q(monthly_spend_cents__gte=0),
                name="customer_monthly_spend_non_negative",
            ),
        )

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"

    @property
    def is_merchant(self) -> bool:
        return self.customer_type == CUSTOMER_CLASS_MERCHANT


class CustomerTypeChange(models.Model):
    """Audit trail of admin changes to a customer's pricing class"""

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name="type_changes")
    old_type = models.CharField(max_length=20, choices=Customer.CUSTOMER_TYPE_CHOICES)
    new_type = models.CharField(max_length=20, choices=Customer.CUSTOMER_TYPE_CHOICES)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="customer_type_changes",
    )
    reason = models.CharField(max_length=255, blank=True)
    changed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "customer_type_changes"
        ordering: ClassVar[list[str]] = ["-changed_at", "-id"]
        indexes: ClassVar[tuple[models.Index, ...]] = (models.Index(fields=["customer", "-changed_at"]),)

    def __str__(self) -> str:
        return f"{self.customer_id}: {self.old_type} -> {self.new_type}"
