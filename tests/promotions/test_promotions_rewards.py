# ===============================================================================
# POINTS REWARD REDEMPTION TESTS
# ===============================================================================

from datetime import timedelta

import pytest
from django.core.exceptions import ValidationError
from django.utils import timezone

from apps.customers.services import CustomerNotFoundError
from apps.promotions.models import PointRedemption, RewardItem, Voucher
from apps.promotions.services import (
    INSUFFICIENT_POINTS,
    REWARD_NOT_FOUND,
    REWARD_OUT_OF_STOCK,
    REWARD_UNAVAILABLE,
    SHIPPING_ADDRESS_REQUIRED,
    RewardService,
    VoucherService,
)
from apps.wallet.models import EARN_ADJUSTMENT, EARN_BONUS, SPEND_REDEMPTION, WalletTransaction
from apps.wallet.services import WalletService
from tests.factories.promotion_factories import create_merchandise_reward, create_voucher_reward


def give_points(customer, points):
    WalletService.append_transaction(customer.pk, EARN_BONUS, points, description="Welcome bonus").unwrap()


@pytest.mark.django_db
class TestRedeemVoucherReward:
    def test_redemption_spends_points_and_issues_single_use_voucher(self, customer):
        give_points(customer, 800)
        reward = create_voucher_reward(points_required=500)

        result = RewardService.redeem_reward(customer.pk, str(reward.pk))

        assert result.success
        assert result.points_spent == 500
        assert result.balance_after == 300
        assert result.voucher_code.startswith("PTS-")

        voucher = Voucher.objects.get(code=result.voucher_code)
        assert voucher.name == "Reward: RM10 Off Voucher"
        assert (voucher.max_usage_total, voucher.max_usage_per_user) == (1, 1)
        assert voucher.discount_amount_cents == 1_000
        assert voucher.valid_until - voucher.valid_from == timedelta(days=30)

        redemption = PointRedemption.objects.get(pk=result.redemption_id)
        assert redemption.status == PointRedemption.STATUS_COMPLETED
        assert redemption.generated_voucher == voucher
        assert redemption.wallet_transaction.transaction_type == SPEND_REDEMPTION
        assert redemption.wallet_transaction.balance_after == 300

    def test_issued_voucher_works_at_checkout(self, customer):
        give_points(customer, 500)
        result = RewardService.redeem_reward(customer.pk, str(create_voucher_reward().pk))

        evaluation = VoucherService.evaluate(result.voucher_code.lower(), customer, 5_000)

        assert evaluation.is_valid
        assert evaluation.discount_cents == 1_000

    def test_short_balance_is_refused_without_writing(self, customer):
        give_points(customer, 499)
        reward = create_voucher_reward(points_required=500)

        result = RewardService.redeem_reward(customer.pk, str(reward.pk))

        assert not result.success
        assert result.error_code == INSUFFICIENT_POINTS
        assert result.balance_after == 499
        assert WalletService.balance(customer.pk) == 499
        assert not PointRedemption.objects.exists()
        assert not Voucher.objects.exists()
        assert not WalletTransaction.objects.filter(transaction_type=SPEND_REDEMPTION).exists()

    def test_ledger_stays_consistent(self, customer):
        give_points(customer, 1_000)
        reward = create_voucher_reward(points_required=400)

        RewardService.redeem_reward(customer.pk, str(reward.pk))
        RewardService.redeem_reward(customer.pk, str(reward.pk))
        refused = RewardService.redeem_reward(customer.pk, str(reward.pk))

        assert refused.error_code == INSUFFICIENT_POINTS
        assert WalletService.verify_ledger(customer.pk).is_consistent
        assert WalletService.summary(customer.pk).total_spent_points == 800

    def test_unknown_reward(self, customer):
        result = RewardService.redeem_reward(customer.pk, "2b1f3f5e-0000-4000-8000-000000000000")

        assert result.error_code == REWARD_NOT_FOUND

    def test_unknown_customer_raises(self):
        reward = create_voucher_reward()

        with pytest.raises(CustomerNotFoundError):
            RewardService.redeem_reward(999_999, str(reward.pk))

    def test_outside_availability_window(self, customer):
        give_points(customer, 1_000)
        now = timezone.now()
        upcoming = create_voucher_reward(available_from=now + timedelta(days=1))
        ended = create_voucher_reward(available_until=now - timedelta(days=1))
        inactive = create_voucher_reward(is_active=False)

        for reward in (upcoming, ended, inactive):
            assert RewardService.redeem_reward(customer.pk, str(reward.pk)).error_code == REWARD_UNAVAILABLE
        assert WalletService.balance(customer.pk) == 1_000


@pytest.mark.django_db
class TestRedeemMerchandiseReward:
    def test_merchandise_takes_stock_and_waits_for_fulfilment(self, customer):
        give_points(customer, 1_000)
        reward = create_merchandise_reward(stock_quantity=2)

        result = RewardService.redeem_reward(customer.pk, str(reward.pk), shipping_address="12 Jalan Ampang, KL")

        reward.refresh_from_db()
        redemption = PointRedemption.objects.get(pk=result.redemption_id)
        assert result.voucher_code == ""
        assert reward.stock_quantity == 1
        assert redemption.status == PointRedemption.STATUS_PENDING
        assert redemption.generated_voucher is None
        assert redemption.shipping_address == "12 Jalan Ampang, KL"

    def test_shipping_address_required(self, customer):
        give_points(customer, 1_000)
        reward = create_merchandise_reward()

        result = RewardService.redeem_reward(customer.pk, str(reward.pk), shipping_address="   ")

        assert result.error_code == SHIPPING_ADDRESS_REQUIRED
        assert WalletService.balance(customer.pk) == 1_000

    def test_out_of_stock(self, customer):
        give_points(customer, 1_000)
        reward = create_merchandise_reward(stock_quantity=1, shipping_required=False)

        assert RewardService.redeem_reward(customer.pk, str(reward.pk)).success
        result = RewardService.redeem_reward(customer.pk, str(reward.pk))

        assert result.error_code == REWARD_OUT_OF_STOCK
        assert WalletService.balance(customer.pk) == 700

    def test_unlimited_stock_is_never_decremented(self, customer):
        give_points(customer, 1_000)
        reward = create_merchandise_reward(stock_quantity=None, shipping_required=False)

        RewardService.redeem_reward(customer.pk, str(reward.pk))

        reward.refresh_from_db()
        assert reward.stock_quantity is None

    def test_cancel_refunds_points_and_stock_once(self, customer):
        give_points(customer, 1_000)
        reward = create_merchandise_reward(stock_quantity=2, shipping_required=False)
        result = RewardService.redeem_reward(customer.pk, str(reward.pk))

        assert RewardService.cancel_redemption(result.redemption_id) is True
        assert RewardService.cancel_redemption(result.redemption_id) is False

        reward.refresh_from_db()
        assert reward.stock_quantity == 2
        assert WalletService.balance(customer.pk) == 1_000
        assert WalletService.history(customer.pk, limit=1)[0].transaction_type == EARN_ADJUSTMENT
        assert PointRedemption.objects.get(pk=result.redemption_id).status == PointRedemption.STATUS_CANCELLED

    def test_completed_redemption_cannot_be_cancelled(self, customer):
        give_points(customer, 1_000)
        reward = create_merchandise_reward(shipping_required=False)
        result = RewardService.redeem_reward(customer.pk, str(reward.pk))

        assert RewardService.complete_redemption(result.redemption_id) is True
        assert RewardService.cancel_redemption(result.redemption_id) is False
        assert WalletService.balance(customer.pk) == 700


@pytest.mark.django_db
class TestRewardCatalog:
    def test_available_rewards_hide_unavailable_items(self):
        now = timezone.now()
        shown = create_voucher_reward("Shown", display_order=2)
        first = create_merchandise_reward("First", display_order=1)
        create_merchandise_reward("Sold out", stock_quantity=0)
        create_voucher_reward("Upcoming", available_from=now + timedelta(days=1))

        assert RewardService.available_rewards(now) == [first, shown]

    def test_redemptions_listed_newest_first(self, customer):
        give_points(customer, 2_000)
        first = RewardService.redeem_reward(customer.pk, str(create_voucher_reward("A").pk))
        second = RewardService.redeem_reward(customer.pk, str(create_voucher_reward("B").pk))

        redemptions = RewardService.redemptions_for_customer(customer.pk)

        assert {str(r.pk) for r in redemptions} == {first.redemption_id, second.redemption_id}
        assert redemptions[0].created_at >= redemptions[1].created_at

    def test_generated_codes_are_unique_and_prefixed(self):
        codes = {Voucher.generate_code(prefix="pts") for _ in range(20)}

        assert len(codes) == 20
        assert all(code.startswith("PTS-") and len(code) == 12 for code in codes)

    def test_voucher_reward_requires_discount_terms(self):
        reward = RewardItem(name="Broken", item_type=RewardItem.ITEM_VOUCHER, points_required=10)

        with pytest.raises(ValidationError, match="voucher_discount_type"):
            reward.clean()
