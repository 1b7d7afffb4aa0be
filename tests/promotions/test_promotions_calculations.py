# ===============================================================================
# VOUCHER AND TIER RULE TESTS (pure, no database)
# ===============================================================================

from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from apps.promotions.calculations import (
    CUSTOMER_TYPE_NOT_ELIGIBLE,
    EXPIRED,
    GLOBAL_LIMIT_REACHED,
    MINIMUM_PURCHASE_NOT_MET,
    NOT_FOUND,
    NOT_YET_STARTED,
    PER_USER_LIMIT_REACHED,
    VoucherTerms,
    calculate_voucher_discount,
    evaluate_voucher_terms,
    select_tier,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)

SAVE20 = VoucherTerms(
    code="SAVE20",
    discount_type="PERCENTAGE",
    discount_percent=Decimal("20"),
    max_discount_cents=5_000,
    min_purchase_cents=10_000,
    valid_from=NOW - timedelta(days=30),
)


def evaluate(terms, subtotal=40_000, customer_class="normal", usage=0, now=NOW):
    return evaluate_voucher_terms(terms, customer_class, subtotal, usage, now)


class TestVoucherEvaluation:
    def test_save20_caps_discount(self):
        evaluation = evaluate(SAVE20, subtotal=40_000)

        assert evaluation.is_valid
        assert evaluation.discount_cents == 5_000  # 80.00 capped to 50.00

    def test_save20_minimum_not_met(self):
        evaluation = evaluate(SAVE20, subtotal=9_000)

        assert not evaluation.is_valid
        assert evaluation.error_code == MINIMUM_PURCHASE_NOT_MET
        assert evaluation.discount_cents == 0

    def test_minimum_is_inclusive(self):
        assert evaluate(SAVE20, subtotal=10_000).is_valid

    def test_missing_voucher(self):
        assert evaluate(None).error_code == NOT_FOUND

    def test_inactive_voucher_is_not_found(self):
        assert evaluate(replace(SAVE20, is_active=False)).error_code == NOT_FOUND

    def test_not_yet_started(self):
        assert evaluate(replace(SAVE20, valid_from=NOW + timedelta(seconds=1))).error_code == NOT_YET_STARTED

    def test_expired(self):
        assert evaluate(replace(SAVE20, valid_until=NOW - timedelta(seconds=1))).error_code == EXPIRED

    def test_valid_until_is_inclusive(self):
        assert evaluate(replace(SAVE20, valid_until=NOW)).is_valid

    @pytest.mark.parametrize(
        ("restriction", "customer_class", "allowed"),
        [
            ("ALL", "merchant", True),
            ("NORMAL", "normal", True),
            ("NORMAL", "merchant", False),
            ("MERCHANT", "merchant", True),
            ("MERCHANT", "normal", False),
        ],
    )
    def test_customer_type_restriction(self, restriction, customer_class, allowed):
        evaluation = evaluate(replace(SAVE20, customer_type_restriction=restriction), customer_class=customer_class)

        assert evaluation.is_valid is allowed
        if not allowed:
            assert evaluation.error_code == CUSTOMER_TYPE_NOT_ELIGIBLE

    def test_global_limit(self):
        terms = replace(SAVE20, max_usage_total=10, current_usage_count=10)

        assert evaluate(terms).error_code == GLOBAL_LIMIT_REACHED

    def test_per_user_limit(self):
        assert evaluate(replace(SAVE20, max_usage_per_user=2), usage=2).error_code == PER_USER_LIMIT_REACHED

    def test_checks_short_circuit_in_order(self):
        # Expired, wrong class, under minimum and exhausted: expiry is reported
        terms = replace(
            SAVE20,
            valid_until=NOW - timedelta(days=1),
            customer_type_restriction="MERCHANT",
            max_usage_total=1,
            current_usage_count=1,
        )

        assert evaluate(terms, subtotal=100).error_code == EXPIRED

    def test_expiry_warning(self):
        evaluation = evaluate(replace(SAVE20, valid_until=NOW + timedelta(days=2, hours=1)))

        assert evaluation.is_valid
        assert evaluation.warnings == ["Voucher expires in 2 day(s)"]

    def test_negative_subtotal_is_a_caller_bug(self):
        with pytest.raises(ValueError):
            evaluate(SAVE20, subtotal=-1)

    def test_evaluation_does_not_mutate_terms(self):
        evaluate(SAVE20)
        evaluate(SAVE20)

        assert SAVE20.current_usage_count == 0


class TestDiscountBounds:
    @pytest.mark.parametrize("subtotal", [0, 1, 999, 5_000, 123_457])
    @pytest.mark.parametrize(
        "terms",
        [
            VoucherTerms(code="F", discount_type="FIXED_AMOUNT", discount_amount_cents=2_500),
            VoucherTerms(code="P", discount_type="PERCENTAGE", discount_percent=Decimal("100")),
            VoucherTerms(code="P", discount_type="PERCENTAGE", discount_percent=Decimal("33.33")),
            VoucherTerms(code="C", discount_type="PERCENTAGE", discount_percent=Decimal("50"), max_discount_cents=10),
        ],
    )
    def test_discount_within_zero_and_subtotal(self, terms, subtotal):
        discount = calculate_voucher_discount(terms, subtotal)

        assert 0 <= discount <= subtotal

    def test_fixed_amount_clamped_to_subtotal(self):
        terms = VoucherTerms(code="F", discount_type="FIXED_AMOUNT", discount_amount_cents=2_500)

        assert calculate_voucher_discount(terms, 1_000) == 1_000
        assert calculate_voucher_discount(terms, 10_000) == 2_500

    def test_cap_smaller_than_percentage(self):
        terms = VoucherTerms(code="C", discount_type="PERCENTAGE", discount_percent=Decimal("50"), max_discount_cents=10)

        assert calculate_voucher_discount(terms, 10_000) == 10

    def test_percentage_rounds_half_up(self):
        terms = VoucherTerms(code="P", discount_type="PERCENTAGE", discount_percent=Decimal("12.5"))

        assert calculate_voucher_discount(terms, 999) == 125

    def test_unknown_discount_type_raises(self):
        with pytest.raises(ValueError):
            calculate_voucher_discount(VoucherTerms(code="X", discount_type="BOGO"), 1_000)


@dataclass
class Tier:
    name: str
    tier_level: int
    min_monthly_spending_cents: int
    is_active: bool = True


TIER_A = Tier("A", 1, 500_000)
TIER_B = Tier("B", 2, 100_000)


class TestSelectTier:
    def test_spend_between_thresholds_gets_lower_tier(self):
        assert select_tier([TIER_A, TIER_B], 300_000) is TIER_B

    def test_best_qualifying_tier_wins(self):
        assert select_tier([TIER_B, TIER_A], 500_000) is TIER_A

    def test_no_spend_no_tier(self):
        assert select_tier([TIER_A, TIER_B], 0) is None

    def test_inactive_tier_is_ignored(self):
        inactive_a = replace(TIER_A, is_active=False)

        assert select_tier([inactive_a, TIER_B], 900_000) is TIER_B

    def test_selection_is_monotonic_in_spend(self):
        tiers = [TIER_A, TIER_B, Tier("C", 3, 10_000), Tier("Odd", 4, 800_000)]
        previous_level = None
        for spend in range(0, 1_000_001, 5_000):
            tier = select_tier(tiers, spend)
            level = tier.tier_level if tier else None
            if previous_level is not None:
                assert level is not None and level <= previous_level
            previous_level = level
