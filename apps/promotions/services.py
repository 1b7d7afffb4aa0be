"""
Promotion services for the Autoparts Commerce Platform.
Voucher evaluation and redemption, loyalty tier resolution and points rewards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError, models, transaction
from django.db.models import F
from django.utils import timezone

from apps.common.constants import CUSTOMER_CLASS_NORMAL, DEFAULT_POINTS_MULTIPLIER
from apps.common.decorators import monitor_performance
from apps.common.types import Cents, IdempotencyKey
from apps.customers.models import Customer
from apps.customers.services import CustomerNotFoundError
from apps.wallet.models import EARN_ADJUSTMENT, SPEND_REDEMPTION
from apps.wallet.services import WalletService

from .calculations import (
    CONFLICT,
    ERROR_MESSAGES,
    VoucherEvaluation,
    VoucherTerms,
    evaluate_voucher_terms,
    select_tier,
)
from .config import get_voucher_expiry_warning_days
from .models import (
    RESTRICTION_ALL,
    RESTRICTION_CUSTOMER_CLASS,
    LoyaltyTier,
    PointRedemption,
    RewardItem,
    TierChange,
    Voucher,
    VoucherRedemption,
    VoucherUsage,
)
from .policy import SpendPeriodPolicy, default_policy
from .signals import TierChanged, tier_changed

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

logger = logging.getLogger(__name__)

IDEMPOTENCY_KEY_REUSED = "IDEMPOTENCY_KEY_REUSED"


# ===============================================================================
# Data Classes for Results
# ===============================================================================


@dataclass
class VoucherApplyResult:
    """
    Result of applying a voucher at checkout.

    Attributes:
        success: Whether the voucher use was recorded.
        discount_cents: Discount granted in cents.
        redemption_id: UUID of the VoucherRedemption record.
        error_code: Evaluation reason code, CONFLICT, or IDEMPOTENCY_KEY_REUSED.
        error_message: Human-readable error message if application failed.
        replayed: True when the idempotency key had already been applied.
        warnings: Optional list of warnings about the applied voucher.
    """

    success: bool
    discount_cents: Cents = 0
    redemption_id: str | None = None
    error_code: str = ""
    error_message: str = ""
    replayed: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def is_retryable(self) -> bool:
        return self.error_code == CONFLICT


class _UsageConflict(Exception):
    """Internal: a conditional usage update matched no row"""


def voucher_terms(voucher: Voucher) -> VoucherTerms:
    return VoucherTerms(
        code=voucher.code,
        discount_type=voucher.discount_type,
        discount_percent=voucher.discount_percent,
        discount_amount_cents=voucher.discount_amount_cents,
        max_discount_cents=voucher.max_discount_cents,
        min_purchase_cents=voucher.min_purchase_cents,
        max_usage_total=voucher.max_usage_total,
        max_usage_per_user=voucher.max_usage_per_user,
        current_usage_count=voucher.current_usage_count,
        customer_type_restriction=voucher.customer_type_restriction,
        valid_from=voucher.valid_from,
        valid_until=voucher.valid_until,
        is_active=voucher.is_active,
    )


# ===============================================================================
# Voucher Service
# ===============================================================================


class VoucherService:
    """
    Service for voucher evaluation and redemption.
    Evaluation never mutates; apply/reverse own every counter change.
    """

    @staticmethod
    def normalize_code(code: str) -> str:
        """Normalize voucher code to uppercase and trimmed."""
        return code.upper().strip()

    @classmethod
    def get_voucher_by_code(cls, code: str) -> Voucher | None:
        """Get voucher by code (case-insensitive)."""
        try:
            return Voucher.objects.get(code=cls.normalize_code(code))
        except Voucher.DoesNotExist:
            return None

    @staticmethod
    def customer_usage_count(voucher: Voucher, customer: Customer | None) -> int:
        if customer is None:
            return 0
        usage = VoucherUsage.objects.filter(voucher=voucher, customer=customer).values_list("usage_count", flat=True)
        return usage.first() or 0

    @classmethod
    def evaluate(
        cls,
        code: str,
        customer: Customer | None,
        cart_subtotal_cents: Cents,
        now: datetime | None = None,
    ) -> VoucherEvaluation:
        """
        Check a voucher against a cart without changing any counters.

        Anonymous carts are evaluated as a normal (retail) customer with no
        previous uses.
        """
        now = now or timezone.now()
        voucher = cls.get_voucher_by_code(code)
        customer_class = customer.customer_type if customer is not None else CUSTOMER_CLASS_NORMAL

        evaluation = evaluate_voucher_terms(
            voucher_terms(voucher) if voucher is not None else None,
            customer_class=customer_class,
            cart_subtotal_cents=cart_subtotal_cents,
            customer_usage_count=cls.customer_usage_count(voucher, customer) if voucher is not None else 0,
            now=now,
            expiry_warning_days=get_voucher_expiry_warning_days(),
        )
        if not evaluation.code:
            evaluation.code = cls.normalize_code(code)

        logger.debug(
            f"🎟️ [Voucher] Evaluated {evaluation.code}: {'valid' if evaluation.is_valid else evaluation.error_code}",
            extra={
                "voucher_code": evaluation.code,
                "customer_id": customer.pk if customer is not None else None,
                "discount_cents": evaluation.discount_cents,
                "error_code": evaluation.error_code,
            },
        )
        return evaluation

    @staticmethod
    def increment_voucher_usage(voucher: Voucher, customer: Customer, discount_cents: Cents) -> bool:
        """
        Count one use of `voucher` by `customer` with conditional updates.

        Each counter is only incremented while it is below its limit, so two
        racing checkouts cannot both take the last slot. Returns False (and
        leaves the per-user counter untouched) when either limit is reached.
        Must run inside a transaction so a per-user failure rolls back the
        global increment.
        """
        limit_ok = models.Q(max_usage_total__isnull=True) | models.Q(current_usage_count__lt=F("max_usage_total"))
        updated = (
            Voucher.objects.filter(pk=voucher.pk, is_active=True)
            .filter(limit_ok)
            .update(
                current_usage_count=F("current_usage_count") + 1,
                total_discount_cents=F("total_discount_cents") + discount_cents,
            )
        )
        if updated == 0:
            return False

        usage, _created = VoucherUsage.objects.get_or_create(voucher=voucher, customer=customer)
        updated = VoucherUsage.objects.filter(pk=usage.pk, usage_count__lt=voucher.max_usage_per_user).update(
            usage_count=F("usage_count") + 1,
            last_used_at=timezone.now(),
        )
        return updated == 1

    @classmethod
    def _replay(cls, redemption: VoucherRedemption, code: str) -> VoucherApplyResult:
        if redemption.status != VoucherRedemption.STATUS_APPLIED or redemption.voucher.code != cls.normalize_code(code):
            return VoucherApplyResult(
                success=False,
                redemption_id=str(redemption.pk),
                error_code=IDEMPOTENCY_KEY_REUSED,
                error_message="This checkout attempt was already used for a different or cancelled redemption",
            )
        return VoucherApplyResult(
            success=True,
            discount_cents=redemption.discount_cents,
            redemption_id=str(redemption.pk),
            replayed=True,
        )

    @classmethod
    @transaction.atomic
    @monitor_performance(max_duration_seconds=5.0, alert_threshold=1.0)
    def apply_voucher(  # noqa: PLR0913
        cls,
        code: str,
        customer_id: int,
        cart_subtotal_cents: Cents,
        idempotency_key: IdempotencyKey,
        order_reference: str = "",
        now: datetime | None = None,
    ) -> VoucherApplyResult:
        """
        Redeem a voucher exactly once per idempotency key.

        Replays of an already applied key return the original result without
        touching any counter. A lost race on the usage counters returns
        error_code CONFLICT; the caller must re-evaluate before retrying.
        """
        if not idempotency_key:
            raise ValueError("idempotency_key is required to apply a voucher")

        existing = VoucherRedemption.objects.select_related("voucher").filter(idempotency_key=idempotency_key).first()
        if existing is not None:
            logger.info(
                f"🔁 [Voucher] Replayed redemption for key {idempotency_key}",
                extra={"idempotency_key": idempotency_key, "redemption_id": str(existing.pk)},
            )
            return cls._replay(existing, code)

        try:
            customer = Customer.objects.get(pk=customer_id)
        except Customer.DoesNotExist as e:
            raise CustomerNotFoundError(customer_id) from e

        evaluation = cls.evaluate(code, customer, cart_subtotal_cents, now=now)
        if not evaluation.is_valid:
            return VoucherApplyResult(
                success=False,
                error_code=evaluation.error_code,
                error_message=evaluation.error_message,
            )

        voucher = cls.get_voucher_by_code(code)
        if voucher is None:  # deleted between evaluate and apply
            return VoucherApplyResult(success=False, error_code=CONFLICT, error_message=ERROR_MESSAGES[CONFLICT])

        try:
            with transaction.atomic():
                redemption = VoucherRedemption.objects.create(
                    voucher=voucher,
                    customer=customer,
                    idempotency_key=idempotency_key,
                    order_reference=order_reference,
                    discount_type=voucher.discount_type,
                    discount_value=voucher.discount_value,
                    discount_cents=evaluation.discount_cents,
                    cart_subtotal_cents=cart_subtotal_cents,
                )
                if not cls.increment_voucher_usage(voucher, customer, evaluation.discount_cents):
                    raise _UsageConflict
        except IntegrityError:
            # A concurrent request with the same key committed first
            existing = VoucherRedemption.objects.select_related("voucher").get(idempotency_key=idempotency_key)
            return cls._replay(existing, code)
        except _UsageConflict:
            logger.warning(
                f"⚠️ [Voucher] Usage conflict applying {voucher.code} for customer {customer_id}",
                extra={"voucher_code": voucher.code, "customer_id": customer_id, "idempotency_key": idempotency_key},
            )
            return VoucherApplyResult(success=False, error_code=CONFLICT, error_message=ERROR_MESSAGES[CONFLICT])

        logger.info(
            f"🎟️ [Voucher] Applied {voucher.code} for customer {customer_id}: {evaluation.discount_cents} cents",
            extra={
                "voucher_code": voucher.code,
                "customer_id": customer_id,
                "discount_cents": evaluation.discount_cents,
                "redemption_id": str(redemption.pk),
                "idempotency_key": idempotency_key,
            },
        )
        return VoucherApplyResult(
            success=True,
            discount_cents=evaluation.discount_cents,
            redemption_id=str(redemption.pk),
            warnings=evaluation.warnings,
        )

    @classmethod
    @transaction.atomic
    def reverse_redemption(cls, idempotency_key: IdempotencyKey) -> bool:
        """
        Undo an applied redemption (order cancelled). Returns False when there
        is nothing to reverse, so repeated calls decrement the counters once.
        """
        redemption = (
            VoucherRedemption.objects.select_for_update().filter(idempotency_key=idempotency_key).first()
        )
        if redemption is None or redemption.status != VoucherRedemption.STATUS_APPLIED:
            return False

        redemption.status = VoucherRedemption.STATUS_REVERSED
        redemption.reversed_at = timezone.now()
        redemption.save(update_fields=["status", "reversed_at"])

        Voucher.objects.filter(pk=redemption.voucher_id, current_usage_count__gt=0).update(
            current_usage_count=F("current_usage_count") - 1,
            total_discount_cents=F("total_discount_cents") - redemption.discount_cents,
        )
        if redemption.customer_id is not None:
            VoucherUsage.objects.filter(
                voucher_id=redemption.voucher_id, customer_id=redemption.customer_id, usage_count__gt=0
            ).update(usage_count=F("usage_count") - 1)

        logger.info(
            f"↩️ [Voucher] Reversed redemption {redemption.pk}",
            extra={"redemption_id": str(redemption.pk), "idempotency_key": idempotency_key},
        )
        return True

    @classmethod
    def available_vouchers_for_customer(
        cls,
        customer: Customer | None,
        cart_subtotal_cents: Cents | None = None,
        now: datetime | None = None,
    ) -> list[Voucher]:
        """
        Vouchers the customer could use right now.
        Used for suggesting vouchers at checkout.
        """
        now = now or timezone.now()
        customer_class = customer.customer_type if customer is not None else CUSTOMER_CLASS_NORMAL
        allowed_restrictions = [RESTRICTION_ALL] + [
            restriction
            for restriction, restricted_class in RESTRICTION_CUSTOMER_CLASS.items()
            if restricted_class == customer_class
        ]

        queryset = (
            Voucher.objects.filter(
                is_active=True,
                valid_from__lte=now,
                customer_type_restriction__in=allowed_restrictions,
            )
            .filter(models.Q(valid_until__isnull=True) | models.Q(valid_until__gte=now))
            .filter(models.Q(max_usage_total__isnull=True) | models.Q(current_usage_count__lt=F("max_usage_total")))
        )
        if cart_subtotal_cents is not None:
            queryset = queryset.filter(min_purchase_cents__lte=cart_subtotal_cents)

        if customer is not None:
            used = dict(VoucherUsage.objects.filter(customer=customer).values_list("voucher_id", "usage_count"))
            return [voucher for voucher in queryset if used.get(voucher.pk, 0) < voucher.max_usage_per_user]
        return list(queryset)


# ===============================================================================
# Tier Service
# ===============================================================================


@dataclass(frozen=True)
class TierBenefits:
    """Perks of a customer's tier; baseline values when the customer has no tier"""

    tier_id: str | None = None
    tier_name: str = ""
    tier_level: int | None = None
    discount_percent: Decimal = Decimal("0.00")
    points_multiplier: Decimal = DEFAULT_POINTS_MULTIPLIER
    free_shipping_threshold_cents: Cents | None = None
    has_priority_support: bool = False
    has_early_access: bool = False

    def qualifies_for_free_shipping(self, order_value_cents: Cents) -> bool:
        return self.free_shipping_threshold_cents is not None and order_value_cents >= self.free_shipping_threshold_cents


BASELINE_BENEFITS = TierBenefits()


class TierService:
    """
    Loyalty tier resolution. Recomputation only happens on spend mutations
    (completed order, admin adjustment, monthly reset) and admin overrides;
    reads never change a customer's tier.
    """

    @staticmethod
    def list_active_tiers() -> list[LoyaltyTier]:
        return list(LoyaltyTier.objects.filter(is_active=True).order_by("tier_level"))

    @classmethod
    def resolve_tier(cls, monthly_spend_cents: Cents, tiers: list[LoyaltyTier] | None = None) -> LoyaltyTier | None:
        return select_tier(tiers if tiers is not None else cls.list_active_tiers(), monthly_spend_cents)

    @staticmethod
    def tier_benefits(tier: LoyaltyTier | None) -> TierBenefits:
        if tier is None:
            return BASELINE_BENEFITS
        return TierBenefits(
            tier_id=str(tier.pk),
            tier_name=tier.tier_name,
            tier_level=tier.tier_level,
            discount_percent=tier.discount_percent,
            points_multiplier=tier.points_multiplier,
            free_shipping_threshold_cents=tier.free_shipping_threshold_cents,
            has_priority_support=tier.has_priority_support,
            has_early_access=tier.has_early_access,
        )

    @staticmethod
    def effective_monthly_spend(customer: Customer, policy: SpendPeriodPolicy | None = None) -> Cents:
        policy = policy or default_policy()
        return policy.effective_spend(customer.monthly_spend_cents, customer.spend_period_start)

    @classmethod
    def current_benefits(
        cls,
        customer: Customer | None,
        policy: SpendPeriodPolicy | None = None,
        at: datetime | None = None,
    ) -> TierBenefits:
        """
        Benefits a customer may use right now, without writing anything.

        The stored tier applies while its spend period is current. Once the
        month has turned and the reset has not caught up yet, the customer
        only gets what zero spend qualifies for.
        """
        if customer is None:
            return BASELINE_BENEFITS
        policy = policy or default_policy()
        if policy.is_current(customer.spend_period_start, at):
            return cls.tier_benefits(customer.current_tier)
        return cls.tier_benefits(cls.resolve_tier(0))

    # ------------------------------------------------------------------
    # Internals (caller holds the customer row lock)
    # ------------------------------------------------------------------

    @staticmethod
    def _lock_customer(customer_id: int) -> Customer:
        try:
            return Customer.objects.select_for_update().get(pk=customer_id)
        except Customer.DoesNotExist as e:
            raise CustomerNotFoundError(customer_id) from e

    @staticmethod
    def _roll_period(customer: Customer, policy: SpendPeriodPolicy) -> bool:
        """Start a fresh spend period when the stored one is stale. Returns True if rolled."""
        current = policy.period_start()
        if customer.spend_period_start == current:
            return False
        customer.monthly_spend_cents = 0
        customer.spend_period_start = current
        customer.save(update_fields=["monthly_spend_cents", "spend_period_start", "updated_at"])
        return True

    @staticmethod
    def _assign_tier(  # noqa: PLR0913
        customer: Customer,
        new_tier: LoyaltyTier | None,
        reason: str,
        changed_by: AbstractBaseUser | None = None,
        note: str = "",
        now: datetime | None = None,
    ) -> TierChange | None:
        old_tier_id = customer.current_tier_id
        new_tier_id = new_tier.pk if new_tier is not None else None
        if old_tier_id == new_tier_id:
            return None

        customer.current_tier = new_tier
        customer.tier_assigned_at = now or timezone.now()
        customer.save(update_fields=["current_tier", "tier_assigned_at", "updated_at"])

        change = TierChange.objects.create(
            customer=customer,
            from_tier_id=old_tier_id,
            to_tier=new_tier,
            reason=reason,
            monthly_spend_cents=customer.monthly_spend_cents,
            changed_by=changed_by,
            note=note,
        )

        event = TierChanged(
            customer_id=customer.pk,
            from_tier_id=str(old_tier_id) if old_tier_id else None,
            to_tier_id=str(new_tier_id) if new_tier_id else None,
            reason=reason,
            monthly_spend_cents=customer.monthly_spend_cents,
        )
        transaction.on_commit(lambda: tier_changed.send(sender=TierChange, event=event))

        log = logger.warning if change.is_downgrade else logger.info
        log(
            f"🎖️ [Tier] Customer {customer.pk} moved {old_tier_id or 'no tier'} -> "
            f"{new_tier.tier_name if new_tier else 'no tier'} ({reason})",
            extra={
                "customer_id": customer.pk,
                "from_tier": str(old_tier_id) if old_tier_id else None,
                "to_tier": str(new_tier_id) if new_tier_id else None,
                "reason": reason,
                "monthly_spend_cents": customer.monthly_spend_cents,
            },
        )
        return change

    @classmethod
    def _recompute_locked(  # noqa: PLR0913
        cls,
        customer: Customer,
        reason: str,
        policy: SpendPeriodPolicy,
        changed_by: AbstractBaseUser | None = None,
        note: str = "",
    ) -> LoyaltyTier | None:
        cls._roll_period(customer, policy)
        new_tier = cls.resolve_tier(customer.monthly_spend_cents)
        cls._assign_tier(customer, new_tier, reason, changed_by=changed_by, note=note, now=policy.now())
        return new_tier

    # ------------------------------------------------------------------
    # Recompute triggers
    # ------------------------------------------------------------------

    @classmethod
    @transaction.atomic
    def recompute(
        cls,
        customer_id: int,
        reason: str = TierChange.REASON_ADMIN_ADJUSTMENT,
        changed_by: AbstractBaseUser | None = None,
        policy: SpendPeriodPolicy | None = None,
    ) -> LoyaltyTier | None:
        """Re-derive the customer's tier from current-month spend"""
        customer = cls._lock_customer(customer_id)
        return cls._recompute_locked(customer, reason, policy or default_policy(), changed_by=changed_by)

    @classmethod
    @transaction.atomic
    def record_completed_order(
        cls,
        customer_id: int,
        amount_cents: Cents,
        policy: SpendPeriodPolicy | None = None,
        order_reference: str = "",
    ) -> LoyaltyTier | None:
        """Add a completed order to this month's spend and recompute the tier"""
        if amount_cents < 0:
            raise ValueError("Order amount cannot be negative")
        policy = policy or default_policy()

        customer = cls._lock_customer(customer_id)
        cls._roll_period(customer, policy)
        Customer.objects.filter(pk=customer.pk).update(monthly_spend_cents=F("monthly_spend_cents") + amount_cents)
        customer.refresh_from_db(fields=["monthly_spend_cents"])

        logger.info(
            f"🛒 [Tier] Recorded {amount_cents} cents for customer {customer_id}",
            extra={
                "customer_id": customer_id,
                "amount_cents": amount_cents,
                "monthly_spend_cents": customer.monthly_spend_cents,
                "order_reference": order_reference,
            },
        )
        return cls._recompute_locked(customer, TierChange.REASON_ORDER_COMPLETED, policy, note=order_reference)

    @classmethod
    @transaction.atomic
    def adjust_monthly_spend(
        cls,
        customer_id: int,
        delta_cents: Cents,
        changed_by: AbstractBaseUser | None = None,
        note: str = "",
        policy: SpendPeriodPolicy | None = None,
    ) -> LoyaltyTier | None:
        """Admin correction of this month's spend (never below zero), then recompute"""
        policy = policy or default_policy()
        customer = cls._lock_customer(customer_id)
        cls._roll_period(customer, policy)

        customer.monthly_spend_cents = max(0, customer.monthly_spend_cents + delta_cents)
        customer.save(update_fields=["monthly_spend_cents", "updated_at"])

        return cls._recompute_locked(
            customer, TierChange.REASON_ADMIN_ADJUSTMENT, policy, changed_by=changed_by, note=note
        )

    @classmethod
    @transaction.atomic
    def override_tier(
        cls,
        customer_id: int,
        tier: LoyaltyTier | None,
        changed_by: AbstractBaseUser | None = None,
        note: str = "",
        policy: SpendPeriodPolicy | None = None,
    ) -> TierChange | None:
        """Pin a tier by hand for the current month; it stands until the next recompute trigger"""
        if tier is not None and not tier.is_active:
            raise ValueError(f"Cannot assign inactive tier {tier.tier_name}")
        policy = policy or default_policy()
        customer = cls._lock_customer(customer_id)
        cls._roll_period(customer, policy)
        return cls._assign_tier(
            customer, tier, TierChange.REASON_ADMIN_OVERRIDE, changed_by=changed_by, note=note, now=policy.now()
        )

    @classmethod
    def stale_customer_ids(cls, policy: SpendPeriodPolicy | None = None) -> list[int]:
        """Customers whose stored spend period is not the current month"""
        policy = policy or default_policy()
        current = policy.period_start()
        return list(
            Customer.objects.filter(models.Q(spend_period_start__isnull=True) | models.Q(spend_period_start__lt=current))
            .order_by("pk")
            .values_list("pk", flat=True)
        )

    @classmethod
    def reset_monthly_spend(cls, policy: SpendPeriodPolicy | None = None) -> int:
        """
        Apply the month boundary to every customer with a stale spend period.

        Each customer is reset and re-tiered in its own transaction; running
        the reset again in the same month is a no-op. Returns the number of
        customers reset.
        """
        policy = policy or default_policy()
        reset_count = 0
        for customer_id in cls.stale_customer_ids(policy):
            with transaction.atomic():
                customer = Customer.objects.select_for_update().filter(pk=customer_id).first()
                if customer is None or not cls._roll_period(customer, policy):
                    continue
                cls._recompute_locked(customer, TierChange.REASON_MONTHLY_RESET, policy)
                reset_count += 1

        logger.info(
            f"📅 [Tier] Monthly spend reset for {reset_count} customer(s), period {policy.period_start()}",
            extra={"reset_count": reset_count, "period_start": str(policy.period_start())},
        )
        return reset_count


# ===============================================================================
# Points Reward Service
# ===============================================================================

REWARD_NOT_FOUND = "REWARD_NOT_FOUND"
REWARD_UNAVAILABLE = "REWARD_UNAVAILABLE"
REWARD_OUT_OF_STOCK = "REWARD_OUT_OF_STOCK"
INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"
SHIPPING_ADDRESS_REQUIRED = "SHIPPING_ADDRESS_REQUIRED"


@dataclass
class RewardRedemptionResult:
    success: bool
    redemption_id: str | None = None
    voucher_code: str = ""
    points_spent: int = 0
    balance_after: int | None = None
    error_code: str = ""
    error_message: str = ""


class RewardService:
    """
    Spending loyalty points on reward items.

    A redemption debits the wallet, takes one unit of stock and (for voucher
    rewards) issues a single-use voucher in one transaction.
    """

    @staticmethod
    def available_rewards(now: datetime | None = None) -> list[RewardItem]:
        now = now or timezone.now()
        items = RewardItem.objects.filter(is_active=True).order_by("display_order", "points_required")
        return [item for item in items if item.is_available(now)]

    @staticmethod
    def redemptions_for_customer(customer_id: int) -> list[PointRedemption]:
        return list(
            PointRedemption.objects.filter(customer_id=customer_id)
            .select_related("reward_item", "generated_voucher")
            .order_by("-created_at")
        )

    @staticmethod
    def _issue_voucher(item: RewardItem, now: datetime) -> Voucher:
        return Voucher.objects.create(
            code=Voucher.generate_code(prefix=item.voucher_code_prefix or "REWARD"),
            name=f"Reward: {item.name}",
            description=item.description,
            discount_type=item.voucher_discount_type,
            discount_percent=item.voucher_discount_percent,
            discount_amount_cents=item.voucher_discount_amount_cents,
            min_purchase_cents=item.voucher_min_purchase_cents,
            max_usage_total=1,
            max_usage_per_user=1,
            valid_from=now,
            valid_until=now + timedelta(days=item.voucher_validity_days),
        )

    @classmethod
    @transaction.atomic
    def redeem_reward(
        cls,
        customer_id: int,
        reward_item_id: str,
        shipping_address: str = "",
        now: datetime | None = None,
    ) -> RewardRedemptionResult:
        """
        Buy `reward_item_id` with the customer's points.

        Unavailable items and short balances come back as failed results with
        nothing written. An unknown customer raises CustomerNotFoundError.
        """
        now = now or timezone.now()
        if not Customer.objects.filter(pk=customer_id).exists():
            raise CustomerNotFoundError(customer_id)

        item = RewardItem.objects.select_for_update().filter(pk=reward_item_id).first()
        if item is None:
            return RewardRedemptionResult(
                success=False, error_code=REWARD_NOT_FOUND, error_message="Reward not found"
            )
        if not item.is_in_stock:
            return RewardRedemptionResult(
                success=False, error_code=REWARD_OUT_OF_STOCK, error_message=f"{item.name} is out of stock"
            )
        if not item.is_available(now):
            return RewardRedemptionResult(
                success=False, error_code=REWARD_UNAVAILABLE, error_message=f"{item.name} is not available"
            )
        if item.shipping_required and not shipping_address.strip():
            return RewardRedemptionResult(
                success=False,
                error_code=SHIPPING_ADDRESS_REQUIRED,
                error_message="A shipping address is required for this reward",
            )

        debit = WalletService.append_transaction(
            customer_id,
            SPEND_REDEMPTION,
            item.points_required,
            description=f"Redeemed {item.name}",
            reference=f"reward:{item.pk}",
        )
        if debit.is_err():
            return RewardRedemptionResult(
                success=False,
                error_code=INSUFFICIENT_POINTS,
                error_message=debit.unwrap_err(),
                balance_after=WalletService.balance(customer_id),
            )
        entry = debit.unwrap()

        if item.stock_quantity is not None:
            RewardItem.objects.filter(pk=item.pk).update(stock_quantity=F("stock_quantity") - 1)

        voucher = cls._issue_voucher(item, now) if item.issues_voucher else None
        redemption = PointRedemption.objects.create(
            customer_id=customer_id,
            reward_item=item,
            points_spent=item.points_required,
            status=PointRedemption.STATUS_COMPLETED if voucher is not None else PointRedemption.STATUS_PENDING,
            generated_voucher=voucher,
            wallet_transaction=entry,
            shipping_address=shipping_address.strip(),
        )

        logger.info(
            f"🎁 [Rewards] Customer {customer_id} redeemed {item.name} for {item.points_required} pts",
            extra={
                "customer_id": customer_id,
                "reward_item_id": str(item.pk),
                "redemption_id": str(redemption.pk),
                "points_spent": item.points_required,
                "balance_after": entry.balance_after,
                "voucher_code": voucher.code if voucher is not None else None,
            },
        )
        return RewardRedemptionResult(
            success=True,
            redemption_id=str(redemption.pk),
            voucher_code=voucher.code if voucher is not None else "",
            points_spent=item.points_required,
            balance_after=entry.balance_after,
        )

    @staticmethod
    @transaction.atomic
    def complete_redemption(redemption_id: str) -> bool:
        """Mark pending merchandise as shipped. Returns False unless it was pending."""
        updated = PointRedemption.objects.filter(pk=redemption_id, status=PointRedemption.STATUS_PENDING).update(
            status=PointRedemption.STATUS_COMPLETED, updated_at=timezone.now()
        )
        return updated == 1

    @staticmethod
    @transaction.atomic
    def cancel_redemption(redemption_id: str) -> bool:
        """
        Cancel a pending redemption: refund the points and return the stock.
        Returns False when the redemption is unknown or no longer pending.
        """
        redemption = (
            PointRedemption.objects.select_for_update()
            .select_related("reward_item")
            .filter(pk=redemption_id, status=PointRedemption.STATUS_PENDING)
            .first()
        )
        if redemption is None:
            return False

        WalletService.append_transaction(
            redemption.customer_id,
            EARN_ADJUSTMENT,
            redemption.points_spent,
            description=f"Refund for cancelled {redemption.reward_item.name}",
            reference=f"reward:{redemption.reward_item_id}",
        ).unwrap()
        if redemption.reward_item.stock_quantity is not None:
            RewardItem.objects.filter(pk=redemption.reward_item_id).update(stock_quantity=F("stock_quantity") + 1)

        redemption.status = PointRedemption.STATUS_CANCELLED
        redemption.save(update_fields=["status", "updated_at"])

        logger.info(
            f"↩️ [Rewards] Cancelled redemption {redemption_id}, refunded {redemption.points_spent} pts",
            extra={"redemption_id": str(redemption_id), "customer_id": redemption.customer_id},
        )
        return True
