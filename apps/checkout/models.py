"""
Checkout records for the Autoparts Commerce Platform.

One row per confirmed checkout attempt; the unique idempotency key makes a
retried confirmation replay the stored totals instead of charging twice.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import ClassVar

from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.common.money import from_cents


class Checkout(models.Model):
    """Totals of a confirmed checkout, snapshotted at confirmation time"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    idempotency_key = models.CharField(max_length=100, unique=True)
    customer = models.ForeignKey("customers.Customer", on_delete=models.PROTECT, related_name="checkouts")
    order_reference = models.CharField(max_length=100, blank=True, db_index=True)

    # Pricing snapshot (cents)
    pricing_mode = models.CharField(max_length=10)
    subtotal_cents = models.BigIntegerField(default=0)
    voucher_discount_cents = models.BigIntegerField(default=0)
    tier_discount_cents = models.BigIntegerField(default=0)
    shipping_cents = models.BigIntegerField(default=0)
    total_cents = models.BigIntegerField(default=0)

    points_earned = models.BigIntegerField(default=0)
    voucher_redemption = models.OneToOneField(
        "promotions.VoucherRedemption",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="checkout",
    )
    tier = models.ForeignKey(
        "promotions.LoyaltyTier",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text=_("Tier whose benefits were applied"),
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "checkouts"
        verbose_name = _("Checkout")
        verbose_name_plural = _("Checkouts")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (models.Index(fields=["customer", "-created_at"]),)
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(condition=models.Q(total_cents__gte=0), name="checkout_total_non_negative"),
        )

    def __str__(self) -> str:
        return f"Checkout {self.order_reference or self.idempotency_key}: {self.total}"

    @property
    def merchandise_cents(self) -> int:
        return self.subtotal_cents - self.voucher_discount_cents - self.tier_discount_cents

    @property
    def total(self) -> Decimal:
        return from_cents(self.total_cents)
