"""
Pure voucher and tier rules.

These functions take plain values (no ORM access) so the rules are
unit-testable without a database; `apps.promotions.services` feeds them from
the models and owns every mutation.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Protocol, TypeVar

from apps.common.money import clamp, percent_of
from apps.common.types import Cents

from .models import DISCOUNT_FIXED_AMOUNT, DISCOUNT_PERCENTAGE, RESTRICTION_ALL, RESTRICTION_CUSTOMER_CLASS

# ===============================================================================
# Evaluation reason codes (checked in this order)
# ===============================================================================

NOT_FOUND = "NOT_FOUND"
EXPIRED = "EXPIRED"
NOT_YET_STARTED = "NOT_YET_STARTED"
CUSTOMER_TYPE_NOT_ELIGIBLE = "CUSTOMER_TYPE_NOT_ELIGIBLE"
MINIMUM_PURCHASE_NOT_MET = "MINIMUM_PURCHASE_NOT_MET"
GLOBAL_LIMIT_REACHED = "GLOBAL_LIMIT_REACHED"
PER_USER_LIMIT_REACHED = "PER_USER_LIMIT_REACHED"
# Lost the race on the conditional usage update; re-evaluate before retrying
CONFLICT = "CONFLICT"

ERROR_MESSAGES: dict[str, str] = {
    NOT_FOUND: "Invalid voucher code",
    EXPIRED: "Voucher has expired",
    NOT_YET_STARTED: "Voucher is not yet valid",
    CUSTOMER_TYPE_NOT_ELIGIBLE: "Voucher is not available for your account type",
    MINIMUM_PURCHASE_NOT_MET: "Minimum purchase amount not met",
    GLOBAL_LIMIT_REACHED: "Voucher usage limit reached",
    PER_USER_LIMIT_REACHED: "You have reached the usage limit for this voucher",
    CONFLICT: "Voucher was redeemed concurrently, please try again",
}


@dataclass(frozen=True)
class VoucherTerms:
    """Snapshot of the voucher fields the rules depend on"""

    code: str
    discount_type: str
    discount_percent: Decimal | None = None
    discount_amount_cents: Cents | None = None
    max_discount_cents: Cents | None = None
    min_purchase_cents: Cents = 0
    max_usage_total: int | None = None
    max_usage_per_user: int = 1
    current_usage_count: int = 0
    customer_type_restriction: str = RESTRICTION_ALL
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool = True


@dataclass
class VoucherEvaluation:
    """
    Result of evaluating a voucher against a cart.

    Attributes:
        is_valid: Whether the voucher can be applied.
        discount_cents: Discount for the cart when valid, 0 otherwise.
        error_code: Machine-readable reason when invalid (see module constants).
        error_message: Human-readable reason when invalid.
        warnings: Non-blocking notes, e.g. "Voucher expires in 2 day(s)".
    """

    is_valid: bool
    code: str = ""
    discount_cents: Cents = 0
    error_code: str = ""
    error_message: str = ""
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, error_code: str, code: str = "") -> VoucherEvaluation:
        return cls(is_valid=False, code=code, error_code=error_code, error_message=ERROR_MESSAGES[error_code])


def calculate_voucher_discount(terms: VoucherTerms, cart_subtotal_cents: Cents) -> Cents:
    """
    Discount for a cart, always within [0, cart_subtotal_cents].

    FIXED_AMOUNT: the amount, clamped to the subtotal.
    PERCENTAGE: subtotal * percent / 100 rounded half-up to a cent, capped at
    max_discount_cents when set, then clamped to the subtotal.
    """
    subtotal = max(0, cart_subtotal_cents)

    if terms.discount_type == DISCOUNT_FIXED_AMOUNT:
        discount = terms.discount_amount_cents or 0
    elif terms.discount_type == DISCOUNT_PERCENTAGE:
        discount = percent_of(subtotal, terms.discount_percent or Decimal("0"))
        if terms.max_discount_cents is not None:
            discount = min(discount, terms.max_discount_cents)
    else:
        raise ValueError(f"Unsupported discount type: {terms.discount_type}")

    return clamp(discount, 0, subtotal)


def evaluate_voucher_terms(  # noqa: PLR0911
    terms: VoucherTerms | None,
    customer_class: str,
    cart_subtotal_cents: Cents,
    customer_usage_count: int,
    now: datetime,
    expiry_warning_days: int = 3,
) -> VoucherEvaluation:
    """Run the eligibility checks in order, stopping at the first failure"""
    if cart_subtotal_cents < 0:
        raise ValueError("Cart subtotal cannot be negative")

    if terms is None or not terms.is_active:
        return VoucherEvaluation.failure(NOT_FOUND, code=terms.code if terms else "")

    if terms.valid_from is not None and now < terms.valid_from:
        return VoucherEvaluation.failure(NOT_YET_STARTED, code=terms.code)
    if terms.valid_until is not None and now > terms.valid_until:
        return VoucherEvaluation.failure(EXPIRED, code=terms.code)

    if terms.customer_type_restriction != RESTRICTION_ALL and (
        RESTRICTION_CUSTOMER_CLASS.get(terms.customer_type_restriction) != customer_class
    ):
        return VoucherEvaluation.failure(CUSTOMER_TYPE_NOT_ELIGIBLE, code=terms.code)

    if cart_subtotal_cents < terms.min_purchase_cents:
        return VoucherEvaluation.failure(MINIMUM_PURCHASE_NOT_MET, code=terms.code)

    if terms.max_usage_total is not None and terms.current_usage_count >= terms.max_usage_total:
        return VoucherEvaluation.failure(GLOBAL_LIMIT_REACHED, code=terms.code)

    if customer_usage_count >= terms.max_usage_per_user:
        return VoucherEvaluation.failure(PER_USER_LIMIT_REACHED, code=terms.code)

    warnings = []
    if terms.valid_until is not None and terms.valid_until - now <= timedelta(days=expiry_warning_days):
        days_left = (terms.valid_until - now).days
        warnings.append(f"Voucher expires in {days_left} day(s)")

    return VoucherEvaluation(
        is_valid=True,
        code=terms.code,
        discount_cents=calculate_voucher_discount(terms, cart_subtotal_cents),
        warnings=warnings,
    )


# ===============================================================================
# Tier selection
# ===============================================================================


class TierLike(Protocol):
    tier_level: int
    min_monthly_spending_cents: int
    is_active: bool


TierT = TypeVar("TierT", bound=TierLike)


def select_tier(tiers: Iterable[TierT], monthly_spend_cents: Cents) -> TierT | None:
    """
    Best tier the spend qualifies for: among active tiers whose threshold is
    met, the one with the lowest level. None when nothing qualifies.
    """
    candidates = [
        tier for tier in tiers if tier.is_active and tier.min_monthly_spending_cents <= monthly_spend_cents
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda tier: (tier.tier_level, -tier.min_monthly_spending_cents))
