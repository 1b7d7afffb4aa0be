# ===============================================================================
# CHECKOUT QUOTE AND CONFIRMATION TESTS
# ===============================================================================

from datetime import UTC, date, datetime
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.test import TestCase

from apps.checkout.models import Checkout
from apps.checkout.services import (
    CHECKOUT_INVALID,
    CHECKOUT_KEY_REUSED,
    CheckoutLine,
    CheckoutService,
)
from apps.customers.models import Customer
from apps.customers.services import CustomerNotFoundError
from apps.pricing.services import PricingContextCache, PricingContextResolver
from apps.promotions.calculations import MINIMUM_PURCHASE_NOT_MET, PER_USER_LIMIT_REACHED
from apps.promotions.models import Voucher, VoucherRedemption
from apps.promotions.policy import SpendPeriodPolicy
from apps.wallet.models import EARN_ORDER, WalletTransaction
from apps.wallet.services import WalletService
from tests.factories.catalog_factories import (
    create_color_product,
    create_customer,
    create_merchant,
    create_product,
    create_variant,
    link_variant,
)
from tests.factories.promotion_factories import create_gold_and_silver, create_percentage_voucher


def build_headlamp():
    """Headlamp with a required side (stock 10/4) and optional bulb upgrade"""
    product = create_product("Headlamp")
    left = create_variant("side", "Left", selling_price_cents=20_000, stock_quantity=10, merchant_price_cents=15_000)
    right = create_variant("side", "Right", selling_price_cents=20_000, stock_quantity=4)
    led = create_variant("bulb", "LED", selling_price_cents=5_000, stock_quantity=6)
    link_variant(product, left, is_required=True, display_order=1)
    link_variant(product, right, is_required=True, display_order=2)
    link_variant(product, led, display_order=3)
    return product, left, right, led


@pytest.mark.django_db
class TestCheckoutQuote:
    def test_anonymous_quote_uses_retail_prices(self):
        product, left, _right, led = build_headlamp()
        line = CheckoutLine(str(product.pk), {"side": str(left.pk), "bulb": str(led.pk)}, quantity=2)

        quote = CheckoutService.quote(None, [line], shipping_cents=1_500)

        assert quote.context.pricing_mode == "B2C"
        assert quote.subtotal_cents == 50_000
        assert quote.shipping_cents == 1_500
        assert quote.total_cents == 51_500
        assert quote.points_to_earn == 0
        assert quote.is_payable

    def test_merchant_quote_uses_merchant_prices(self):
        product, left, _right, _led = build_headlamp()
        merchant = create_merchant()

        quote = CheckoutService.quote(merchant.pk, [CheckoutLine(str(product.pk), {"side": str(left.pk)})])

        assert quote.context.pricing_mode == "B2B"
        assert quote.subtotal_cents == 15_000

    def test_incomplete_line_is_a_problem_not_an_error(self):
        product, _left, _right, led = build_headlamp()

        quote = CheckoutService.quote(None, [CheckoutLine(str(product.pk), {"bulb": str(led.pk)})])

        assert not quote.is_payable
        assert quote.lines[0].incomplete.missing_groups == ("side",)
        assert quote.subtotal_cents == 0

    def test_quantity_above_stock_is_a_problem(self):
        product, _left, right, _led = build_headlamp()

        quote = CheckoutService.quote(None, [CheckoutLine(str(product.pk), {"side": str(right.pk)}, quantity=5)])

        assert not quote.is_payable
        assert quote.problems[0].startswith("INSUFFICIENT_STOCK")

    def test_out_of_stock_variant_blocks_checkout(self):
        product, _red, blue = create_color_product()

        quote = CheckoutService.quote(None, [CheckoutLine(str(product.pk), {"color": str(blue.pk)})])

        assert quote.lines[0].quote.total_price_cents == 1_500
        assert not quote.is_payable

    def test_voucher_then_tier_discount_then_free_shipping(self):
        gold, _silver = create_gold_and_silver()
        customer = create_customer(current_tier=gold, spend_period_start=SpendPeriodPolicy().period_start())
        create_percentage_voucher("SAVE20", max_discount_cents=5_000, min_purchase_cents=10_000)
        product, left, _right, _led = build_headlamp()
        line = CheckoutLine(str(product.pk), {"side": str(left.pk)}, quantity=2)

        quote = CheckoutService.quote(customer.pk, [line], voucher_code="save20", shipping_cents=2_000)

        assert quote.subtotal_cents == 40_000
        assert quote.voucher.is_valid
        assert quote.voucher_discount_cents == 5_000
        assert quote.tier_discount_cents == 3_500  # 10% of 350.00
        assert quote.free_shipping
        assert quote.shipping_cents == 0
        assert quote.total_cents == 31_500
        assert quote.points_to_earn == 630  # 315 units x 2.00

    def test_invalid_voucher_gives_no_discount(self, customer):
        create_percentage_voucher("SAVE20", min_purchase_cents=100_000)
        product, left, _right, _led = build_headlamp()

        quote = CheckoutService.quote(customer.pk, [CheckoutLine(str(product.pk), {"side": str(left.pk)})], "SAVE20")

        assert quote.voucher.error_code == MINIMUM_PURCHASE_NOT_MET
        assert quote.voucher_discount_cents == 0
        assert quote.total_cents == 20_000

    def test_quote_mutates_nothing(self, customer):
        voucher = create_percentage_voucher("SAVE20")
        product, left, _right, _led = build_headlamp()

        CheckoutService.quote(customer.pk, [CheckoutLine(str(product.pk), {"side": str(left.pk)})], "SAVE20")

        voucher.refresh_from_db()
        customer.refresh_from_db()
        assert voucher.current_usage_count == 0
        assert customer.monthly_spend_cents == 0
        assert not WalletTransaction.objects.exists()

    def test_last_month_tier_no_longer_applies(self):
        gold, _silver = create_gold_and_silver()
        customer = create_customer(
            current_tier=gold, monthly_spend_cents=600_000, spend_period_start=date(2024, 6, 1)
        )
        product, left, _right, _led = build_headlamp()
        line = CheckoutLine(str(product.pk), {"side": str(left.pk)})

        july = CheckoutService.quote(customer.pk, [line], shipping_cents=2_000, now=datetime(2024, 7, 1, 1, tzinfo=UTC))
        june = CheckoutService.quote(customer.pk, [line], shipping_cents=2_000, now=datetime(2024, 6, 30, 1, tzinfo=UTC))

        assert july.tier_benefits.tier_id is None
        assert july.tier_discount_cents == 0
        assert not july.free_shipping
        assert july.points_to_earn == 200
        assert june.tier_discount_cents == 2_000
        customer.refresh_from_db()
        assert customer.current_tier == gold
        assert customer.spend_period_start == date(2024, 6, 1)

    def test_customer_store_failure_quotes_as_anonymous(self):
        gold, _silver = create_gold_and_silver()
        customer = create_customer(current_tier=gold, spend_period_start=SpendPeriodPolicy().period_start())
        create_percentage_voucher("SAVE20")
        product, left, _right, _led = build_headlamp()
        line = CheckoutLine(str(product.pk), {"side": str(left.pk)})

        with patch("apps.checkout.services.CustomerService.find_customer", side_effect=DatabaseError("store down")):
            quote = CheckoutService.quote(customer.pk, [line], voucher_code="SAVE20")

        assert quote.is_degraded
        assert "store down" in quote.warnings[0]
        assert quote.is_payable
        assert quote.context.pricing_mode == "B2C"
        assert quote.voucher.is_valid
        assert quote.voucher_discount_cents == 4_000
        assert quote.tier_discount_cents == 0
        assert quote.points_to_earn == 0
        assert quote.total_cents == 16_000

    def test_lookup_failure_after_cached_context_still_quotes(self):
        merchant = create_merchant()
        context_cache = PricingContextCache(scope="session-a")
        PricingContextResolver(context_cache).resolve(merchant.pk)
        product, left, _right, _led = build_headlamp()
        line = CheckoutLine(str(product.pk), {"side": str(left.pk)})

        with patch("apps.checkout.services.CustomerService.find_customer", side_effect=DatabaseError("store down")):
            quote = CheckoutService.quote(merchant.pk, [line], context_cache=context_cache)

        assert quote.context.pricing_mode == "B2B"
        assert quote.subtotal_cents == 15_000
        assert quote.warnings == ["Customer lookup failed: store down"]
        assert quote.tier_discount_cents == 0
        assert quote.points_to_earn == 0


class CheckoutConfirmTestCase(TestCase):
    def setUp(self):
        self.gold, self.silver = create_gold_and_silver()
        self.customer = create_customer()
        self.voucher = create_percentage_voucher("SAVE20", max_discount_cents=5_000, min_purchase_cents=10_000)
        self.product, self.left, self.right, self.led = build_headlamp()
        self.lines = [CheckoutLine(str(self.product.pk), {"side": str(self.left.pk)}, quantity=2)]

    def test_confirm_applies_everything_once(self):
        confirmation = CheckoutService.confirm(
            self.customer.pk, self.lines, idempotency_key="chk-1", order_reference="SO-1", voucher_code="SAVE20"
        )

        self.assertTrue(confirmation.success)
        self.assertEqual(confirmation.total_cents, 35_000)

        checkout = Checkout.objects.get(pk=confirmation.checkout_id)
        self.assertEqual(checkout.voucher_discount_cents, 5_000)
        self.assertEqual(checkout.voucher_redemption.idempotency_key, "chk-1")

        self.voucher.refresh_from_db()
        self.assertEqual(self.voucher.current_usage_count, 1)

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.monthly_spend_cents, 35_000)

        entry = WalletTransaction.objects.get(wallet__customer=self.customer)
        self.assertEqual((entry.transaction_type, entry.amount, entry.reference), (EARN_ORDER, 350, "SO-1"))
        self.assertEqual(confirmation.points_earned, 350)

    def test_retried_confirmation_replays(self):
        first = CheckoutService.confirm(self.customer.pk, self.lines, idempotency_key="chk-1", voucher_code="SAVE20")
        second = CheckoutService.confirm(self.customer.pk, self.lines, idempotency_key="chk-1", voucher_code="SAVE20")

        self.assertTrue(second.replayed)
        self.assertEqual(second.checkout_id, first.checkout_id)
        self.assertEqual(Checkout.objects.count(), 1)
        self.assertEqual(VoucherRedemption.objects.count(), 1)
        self.assertEqual(WalletService.balance(self.customer.pk), first.points_earned)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.monthly_spend_cents, 35_000)

    def test_key_of_another_customer_is_rejected(self):
        CheckoutService.confirm(self.customer.pk, self.lines, idempotency_key="chk-1")

        result = CheckoutService.confirm(create_customer().pk, self.lines, idempotency_key="chk-1")

        self.assertEqual(result.error_code, CHECKOUT_KEY_REUSED)

    def test_spend_crossing_threshold_upgrades_tier(self):
        lines = [CheckoutLine(str(self.product.pk), {"side": str(self.left.pk)}, quantity=6)]

        CheckoutService.confirm(self.customer.pk, lines, idempotency_key="chk-1")

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.monthly_spend_cents, 120_000)
        self.assertEqual(self.customer.current_tier, self.silver)

    def test_invalid_cart_changes_nothing(self):
        lines = [CheckoutLine(str(self.product.pk), {"bulb": str(self.led.pk)})]

        result = CheckoutService.confirm(self.customer.pk, lines, idempotency_key="chk-1", voucher_code="SAVE20")

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, CHECKOUT_INVALID)
        self.assertFalse(Checkout.objects.exists())
        self.assertFalse(VoucherRedemption.objects.exists())

    def test_empty_cart_is_invalid(self):
        result = CheckoutService.confirm(self.customer.pk, [], idempotency_key="chk-1")

        self.assertEqual(result.error_code, CHECKOUT_INVALID)
        self.assertEqual(result.problems, ["Cart is empty"])

    def test_exhausted_voucher_fails_whole_checkout(self):
        CheckoutService.confirm(self.customer.pk, self.lines, idempotency_key="chk-1", voucher_code="SAVE20")

        result = CheckoutService.confirm(self.customer.pk, self.lines, idempotency_key="chk-2", voucher_code="SAVE20")

        self.assertEqual(result.error_code, PER_USER_LIMIT_REACHED)
        self.assertEqual(Checkout.objects.count(), 1)
        self.assertEqual(Voucher.objects.get(pk=self.voucher.pk).current_usage_count, 1)

    def test_unknown_customer_raises(self):
        with self.assertRaises(CustomerNotFoundError):
            CheckoutService.confirm(999_999, self.lines, idempotency_key="chk-1")

    def test_confirm_rolls_previous_month_spend(self):
        Customer.objects.filter(pk=self.customer.pk).update(
            monthly_spend_cents=900_000, spend_period_start=date(2000, 1, 1)
        )

        CheckoutService.confirm(self.customer.pk, self.lines, idempotency_key="chk-1")

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.monthly_spend_cents, 40_000)
