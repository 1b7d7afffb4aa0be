"""
Vouchers and loyalty tier models for the Autoparts Commerce Platform.

Supports:
- Voucher codes (percentage or fixed amount, case-insensitive codes)
- Usage limits (global and per customer) with atomic counters
- Customer class restrictions (all, normal/retail, merchant/wholesale)
- Idempotent redemptions keyed by checkout attempt
- Loyalty tiers unlocked by monthly spend, with an audit trail of tier changes
- Reward items bought with loyalty points, optionally issuing a voucher
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.common.constants import (
    CUSTOMER_CLASS_MERCHANT,
    CUSTOMER_CLASS_NORMAL,
    DEFAULT_MAX_USAGE_PER_USER,
    DEFAULT_POINTS_MULTIPLIER,
    DEFAULT_REWARD_VOUCHER_VALIDITY_DAYS,
    GENERATED_CODE_CHARS,
    GENERATED_CODE_LENGTH,
    MAX_PERCENTAGE,
    VOUCHER_CODE_MAX_LENGTH,
)
from apps.common.money import from_cents

logger = logging.getLogger(__name__)

# ===============================================================================
# Constants
# ===============================================================================

DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FIXED_AMOUNT = "FIXED_AMOUNT"

RESTRICTION_ALL = "ALL"
RESTRICTION_NORMAL = "NORMAL"
RESTRICTION_MERCHANT = "MERCHANT"

# Customer class allowed by each restriction (ALL allows every class)
RESTRICTION_CUSTOMER_CLASS: dict[str, str] = {
    RESTRICTION_NORMAL: CUSTOMER_CLASS_NORMAL,
    RESTRICTION_MERCHANT: CUSTOMER_CLASS_MERCHANT,
}


# ===============================================================================
# Voucher Model
# ===============================================================================


class Voucher(models.Model):
    """
    Redeemable code granting a bounded discount on a cart subtotal.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Voucher identification
    code = models.CharField(
        max_length=VOUCHER_CODE_MAX_LENGTH,
        unique=True,
        db_index=True,
        help_text=_("Unique voucher code (case-insensitive, stored upper-case)"),
    )
    name = models.CharField(max_length=200, blank=True, help_text=_("Internal name for this voucher"))
    description = models.TextField(blank=True, help_text=_("Description shown to customers"))

    # Discount type and value
    DISCOUNT_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (DISCOUNT_PERCENTAGE, _("Percentage Discount")),
        (DISCOUNT_FIXED_AMOUNT, _("Fixed Amount Discount")),
    )
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPES)
    discount_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text=_("Percentage off the cart subtotal (0-100)"),
    )
    discount_amount_cents = models.BigIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text=_("Fixed discount in cents"),
    )
    max_discount_cents = models.BigIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text=_("Cap for percentage discounts in cents (blank for no cap)"),
    )

    # Requirements
    min_purchase_cents = models.BigIntegerField(
        default=0, validators=[MinValueValidator(0)], help_text=_("Minimum cart subtotal in cents")
    )

    CUSTOMER_TYPE_RESTRICTIONS: ClassVar[tuple[tuple[str, Any], ...]] = (
        (RESTRICTION_ALL, _("All Customers")),
        (RESTRICTION_NORMAL, _("Normal (retail) customers only")),
        (RESTRICTION_MERCHANT, _("Merchant (wholesale) customers only")),
    )
    customer_type_restriction = models.CharField(
        max_length=20, choices=CUSTOMER_TYPE_RESTRICTIONS, default=RESTRICTION_ALL
    )

    # Usage limits
    max_usage_total = models.PositiveIntegerField(
        null=True, blank=True, help_text=_("Total redemptions allowed (blank for unlimited)")
    )
    max_usage_per_user = models.PositiveIntegerField(
        default=DEFAULT_MAX_USAGE_PER_USER, help_text=_("Redemptions allowed per customer")
    )
    current_usage_count = models.PositiveIntegerField(default=0)
    total_discount_cents = models.BigIntegerField(default=0, help_text=_("Total discount granted so far"))

    # Validity
    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField(null=True, blank=True, help_text=_("Blank for no expiry"))
    is_active = models.BooleanField(default=True)

    # Audit
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_vouchers",
    )

    class Meta:
        db_table = "promotion_vouchers"
        verbose_name = _("Voucher")
        verbose_name_plural = _("Vouchers")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["is_active", "valid_from", "valid_until"], name="idx_voucher_validity"),
            models.Index(fields=["customer_type_restriction"]),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=Q(max_usage_total__isnull=True) | Q(current_usage_count__lte=F("max_usage_total")),
                name="voucher_usage_within_total_limit",
            ),
        )

    def __str__(self) -> str:
        return self.code

    def save(self, *args: Any, **kwargs: Any) -> None:
        """Normalize code to uppercase before saving."""
        if self.code:
            self.code = self.code.upper().strip()
        super().save(*args, **kwargs)

    # Maximum attempts for code generation to prevent infinite loops
    MAX_CODE_GENERATION_ATTEMPTS = 100

    @classmethod
    def generate_code(
        cls,
        prefix: str = "",
        length: int = GENERATED_CODE_LENGTH,
        max_attempts: int | None = None,
    ) -> str:
        """
        Generate an unused voucher code such as `REWARD-7KQ2M9XA`.

        Raises:
            ValueError: If no unused code is found within max_attempts.
        """
        if max_attempts is None:
            max_attempts = cls.MAX_CODE_GENERATION_ATTEMPTS

        prefix = prefix.upper().strip().rstrip("-")
        for _attempt in range(max_attempts):
            random_part = "".join(secrets.choice(GENERATED_CODE_CHARS) for _ in range(length))
            code = f"{prefix}-{random_part}" if prefix else random_part
            if not cls.objects.filter(code=code).exists():
                return code

        raise ValueError(f"Could not generate unique voucher code after {max_attempts} attempts")

    def clean(self) -> None:
        """Validate voucher configuration."""
        super().clean()
        self._validate_discount_values()
        self._validate_dates()

    def _validate_discount_values(self) -> None:
        if self.discount_type == DISCOUNT_PERCENTAGE:
            if self.discount_percent is None:
                raise ValidationError("Percentage discount requires discount_percent value")
            if self.discount_percent < 0 or self.discount_percent > MAX_PERCENTAGE:
                raise ValidationError("Percentage must be between 0 and 100")
        elif self.discount_type == DISCOUNT_FIXED_AMOUNT:
            if self.discount_amount_cents is None:
                raise ValidationError("Fixed discount requires discount_amount_cents value")
            if self.discount_amount_cents < 0:
                raise ValidationError("Fixed discount amount cannot be negative")

    def _validate_dates(self) -> None:
        if self.valid_until and self.valid_from and self.valid_until < self.valid_from:
            raise ValidationError("valid_until must be after valid_from")

    @property
    def discount_value(self) -> Decimal:
        """Percent for PERCENTAGE vouchers, currency amount for FIXED_AMOUNT vouchers"""
        if self.discount_type == DISCOUNT_PERCENTAGE:
            return self.discount_percent or Decimal("0")
        return from_cents(self.discount_amount_cents or 0)

    @property
    def remaining_uses(self) -> int | None:
        """Get remaining uses, or None if unlimited."""
        if self.max_usage_total is None:
            return None
        return max(0, self.max_usage_total - self.current_usage_count)

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or timezone.now()
        return self.valid_until is not None and now > self.valid_until

    def is_not_yet_valid(self, now: datetime | None = None) -> bool:
        now = now or timezone.now()
        return now < self.valid_from

    def allows_customer_class(self, customer_class: str) -> bool:
        if self.customer_type_restriction == RESTRICTION_ALL:
            return True
        return RESTRICTION_CUSTOMER_CLASS.get(self.customer_type_restriction) == customer_class


class VoucherUsage(models.Model):
    """Per-customer redemption counter for a voucher"""

    voucher = models.ForeignKey(Voucher, on_delete=models.CASCADE, related_name="usages")
    customer = models.ForeignKey("customers.Customer", on_delete=models.CASCADE, related_name="voucher_usages")
    usage_count = models.PositiveIntegerField(default=0)
    last_used_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "promotion_voucher_usages"
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.UniqueConstraint(fields=["voucher", "customer"], name="unique_voucher_usage_per_customer"),
        )

    def __str__(self) -> str:
        return f"{self.voucher_id} x{self.usage_count} by {self.customer_id}"


class VoucherRedemption(models.Model):
    """
    One applied voucher on one checkout attempt.
    The idempotency key makes retried checkouts count a voucher use once.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    voucher = models.ForeignKey(Voucher, on_delete=models.PROTECT, related_name="redemptions")
    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="voucher_redemptions",
    )
    idempotency_key = models.CharField(max_length=100, unique=True)
    order_reference = models.CharField(max_length=100, blank=True)

    STATUS_APPLIED = "applied"
    STATUS_REVERSED = "reversed"
    STATUS_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        (STATUS_APPLIED, "Applied"),
        (STATUS_REVERSED, "Reversed (Order Cancelled)"),
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_APPLIED)

    # Discount calculation snapshot
    discount_type = models.CharField(max_length=20, help_text=_("Discount type at time of redemption"))
    discount_value = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text=_("Discount value (percent or amount) at time of redemption"),
    )
    discount_cents = models.BigIntegerField(default=0, help_text=_("Actual discount amount applied in cents"))
    cart_subtotal_cents = models.BigIntegerField(help_text=_("Cart subtotal before discount"))

    created_at = models.DateTimeField(auto_now_add=True)
    reversed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "promotion_voucher_redemptions"
        verbose_name = _("Voucher Redemption")
        verbose_name_plural = _("Voucher Redemptions")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["voucher", "status"]),
            models.Index(fields=["customer", "-created_at"]),
        )

    def __str__(self) -> str:
        return f"{self.voucher_id} [{self.idempotency_key}] {self.status}"


# ===============================================================================
# Loyalty Tier Models
# ===============================================================================


class LoyaltyTier(models.Model):
    """
    Loyalty tier unlocked by monthly spend. Level 1 is the best tier.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Tier identity
    tier_name = models.CharField(max_length=100)
    tier_level = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1)], help_text=_("1 is the best tier; higher numbers rank lower")
    )
    description = models.TextField(blank=True)

    # Qualification
    min_monthly_spending_cents = models.BigIntegerField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text=_("Monthly spend in cents needed to qualify"),
    )

    # Benefits
    discount_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text=_("Automatic discount for tier members"),
    )
    points_multiplier = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=DEFAULT_POINTS_MULTIPLIER,
        validators=[MinValueValidator(0)],
        help_text=_("Point earning multiplier"),
    )
    free_shipping_threshold_cents = models.BigIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text=_("Order value in cents from which shipping is free (blank for none)"),
    )
    has_priority_support = models.BooleanField(default=False)
    has_early_access = models.BooleanField(default=False)

    # Display
    badge_color = models.CharField(max_length=20, default="gray")
    badge_icon = models.CharField(max_length=50, blank=True)
    display_order = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_loyalty_tiers"
        verbose_name = _("Loyalty Tier")
        verbose_name_plural = _("Loyalty Tiers")
        ordering: ClassVar[tuple[str, ...]] = ("tier_level", "display_order")
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.UniqueConstraint(
                fields=["tier_level"],
                condition=Q(is_active=True),
                name="unique_active_tier_level",
            ),
        )

    def __str__(self) -> str:
        return f"{self.tier_name} (level {self.tier_level})"

    def clean(self) -> None:
        super().clean()
        if self.is_active:
            clash = LoyaltyTier.objects.filter(tier_level=self.tier_level, is_active=True).exclude(pk=self.pk)
            if clash.exists():
                raise ValidationError({"tier_level": _("Another active tier already uses this level")})


class TierChange(models.Model):
    """Audit trail of every tier transition, including automatic month-start downgrades"""

    REASON_ORDER_COMPLETED = "order_completed"
    REASON_ADMIN_ADJUSTMENT = "admin_adjustment"
    REASON_ADMIN_OVERRIDE = "admin_override"
    REASON_MONTHLY_RESET = "monthly_reset"
    REASON_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (REASON_ORDER_COMPLETED, _("Order completed")),
        (REASON_ADMIN_ADJUSTMENT, _("Admin spend adjustment")),
        (REASON_ADMIN_OVERRIDE, _("Admin tier override")),
        (REASON_MONTHLY_RESET, _("Monthly reset")),
    )

    customer = models.ForeignKey("customers.Customer", on_delete=models.CASCADE, related_name="tier_changes")
    from_tier = models.ForeignKey(
        LoyaltyTier, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    to_tier = models.ForeignKey(
        LoyaltyTier, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    reason = models.CharField(max_length=30, choices=REASON_CHOICES)
    monthly_spend_cents = models.BigIntegerField(help_text=_("Monthly spend when the change happened"))
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="tier_changes",
    )
    note = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "promotion_tier_changes"
        ordering: ClassVar[tuple[str, ...]] = ("-created_at", "-id")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["customer", "-created_at"]),
            models.Index(fields=["reason", "-created_at"]),
        )

    def __str__(self) -> str:
        return f"{self.customer_id}: {self.from_tier_id} -> {self.to_tier_id} ({self.reason})"

    @property
    def is_downgrade(self) -> bool:
        if self.to_tier is None:
            return self.from_tier is not None
        if self.from_tier is None:
            return False
        return self.to_tier.tier_level > self.from_tier.tier_level


# ===============================================================================
# Points Rewards Models
# ===============================================================================


class RewardItem(models.Model):
    """
    Something customers can buy with loyalty points: a voucher issued on the
    spot, or merchandise shipped later.
    """

    ITEM_VOUCHER = "VOUCHER"
    ITEM_MERCHANDISE = "MERCHANDISE"
    ITEM_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (ITEM_VOUCHER, _("Voucher")),
        (ITEM_MERCHANDISE, _("Merchandise")),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    image_url = models.URLField(blank=True)
    item_type = models.CharField(max_length=20, choices=ITEM_TYPES, default=ITEM_VOUCHER)
    points_required = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    # Issued voucher terms (VOUCHER items)
    voucher_code_prefix = models.CharField(max_length=20, blank=True)
    voucher_discount_type = models.CharField(max_length=20, choices=Voucher.DISCOUNT_TYPES, blank=True)
    voucher_discount_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    voucher_discount_amount_cents = models.BigIntegerField(null=True, blank=True, validators=[MinValueValidator(0)])
    voucher_min_purchase_cents = models.BigIntegerField(default=0, validators=[MinValueValidator(0)])
    voucher_validity_days = models.PositiveIntegerField(default=DEFAULT_REWARD_VOUCHER_VALIDITY_DAYS)

    # Stock and delivery (MERCHANDISE items)
    stock_quantity = models.PositiveIntegerField(null=True, blank=True, help_text=_("Blank for unlimited"))
    shipping_required = models.BooleanField(default=False)

    # Availability
    available_from = models.DateTimeField(null=True, blank=True)
    available_until = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    display_order = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_reward_items"
        verbose_name = _("Reward Item")
        verbose_name_plural = _("Reward Items")
        ordering: ClassVar[tuple[str, ...]] = ("display_order", "points_required")

    def __str__(self) -> str:
        return f"{self.name} ({self.points_required} pts)"

    def clean(self) -> None:
        super().clean()
        if self.available_from and self.available_until and self.available_until < self.available_from:
            raise ValidationError("available_until must be after available_from")
        if self.item_type == self.ITEM_VOUCHER:
            if self.voucher_discount_type == DISCOUNT_PERCENTAGE and self.voucher_discount_percent is None:
                raise ValidationError("Percentage reward vouchers require voucher_discount_percent")
            if self.voucher_discount_type == DISCOUNT_FIXED_AMOUNT and self.voucher_discount_amount_cents is None:
                raise ValidationError("Fixed reward vouchers require voucher_discount_amount_cents")
            if not self.voucher_discount_type:
                raise ValidationError("Voucher rewards require voucher_discount_type")

    @property
    def issues_voucher(self) -> bool:
        return self.item_type == self.ITEM_VOUCHER

    @property
    def is_in_stock(self) -> bool:
        return self.stock_quantity is None or self.stock_quantity > 0

    def is_available(self, now: datetime | None = None) -> bool:
        now = now or timezone.now()
        if not self.is_active or not self.is_in_stock:
            return False
        if self.available_from is not None and now < self.available_from:
            return False
        return self.available_until is None or now <= self.available_until


class PointRedemption(models.Model):
    """A customer's purchase of a reward item with points"""

    STATUS_PENDING = "PENDING"
    STATUS_COMPLETED = "COMPLETED"
    STATUS_CANCELLED = "CANCELLED"
    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (STATUS_PENDING, _("Pending fulfilment")),
        (STATUS_COMPLETED, _("Completed")),
        (STATUS_CANCELLED, _("Cancelled")),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    customer = models.ForeignKey("customers.Customer", on_delete=models.PROTECT, related_name="point_redemptions")
    reward_item = models.ForeignKey(RewardItem, on_delete=models.PROTECT, related_name="redemptions")
    points_spent = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    generated_voucher = models.OneToOneField(
        Voucher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="point_redemption",
    )
    wallet_transaction = models.ForeignKey(
        "wallet.WalletTransaction",
        on_delete=models.PROTECT,
        related_name="point_redemptions",
    )
    shipping_address = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_point_redemptions"
        verbose_name = _("Point Redemption")
        verbose_name_plural = _("Point Redemptions")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["customer", "-created_at"]),
            models.Index(fields=["status"]),
        )

    def __str__(self) -> str:
        return f"{self.customer_id}: {self.reward_item_id} for {self.points_spent} pts ({self.status})"
