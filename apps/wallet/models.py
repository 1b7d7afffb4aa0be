"""
Loyalty points wallet for the Autoparts Commerce Platform.

`WalletTransaction` rows are an append-only ledger; `Wallet` keeps the
running totals and is the per-customer lock that serializes appends.
"""

from __future__ import annotations

from typing import Any, ClassVar

from django.db import models
from django.utils.translation import gettext_lazy as _

# ===============================================================================
# Transaction types
# ===============================================================================

EARN_ORDER = "EARN_ORDER"
EARN_BONUS = "EARN_BONUS"
EARN_ADJUSTMENT = "EARN_ADJUSTMENT"
SPEND_REDEMPTION = "SPEND_REDEMPTION"
SPEND_ADJUSTMENT = "SPEND_ADJUSTMENT"
SPEND_EXPIRY = "SPEND_EXPIRY"

EARN_PREFIX = "EARN_"
SPEND_PREFIX = "SPEND_"


def is_earn_type(transaction_type: str) -> bool:
    return transaction_type.startswith(EARN_PREFIX)


class Wallet(models.Model):
    """Per-customer points balance and lifetime totals"""

    customer = models.OneToOneField("customers.Customer", on_delete=models.CASCADE, related_name="wallet")
    points_balance = models.BigIntegerField(default=0)
    total_earned_points = models.BigIntegerField(default=0)
    total_spent_points = models.BigIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "wallets"
        verbose_name = _("Wallet")
        verbose_name_plural = _("Wallets")
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(condition=models.Q(points_balance__gte=0), name="wallet_balance_non_negative"),
        )

    def __str__(self) -> str:
        return f"Wallet {self.customer_id}: {self.points_balance} pts"


class WalletTransaction(models.Model):
    """
    One ledger entry. `amount` is a positive magnitude; the direction comes
    from the EARN_/SPEND_ type prefix. `balance_after` is the wallet balance
    once this entry is applied.
    """

    TRANSACTION_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (EARN_ORDER, _("Earned from order")),
        (EARN_BONUS, _("Bonus points")),
        (EARN_ADJUSTMENT, _("Manual credit")),
        (SPEND_REDEMPTION, _("Redeemed")),
        (SPEND_ADJUSTMENT, _("Manual debit")),
        (SPEND_EXPIRY, _("Expired")),
    )

    wallet = models.ForeignKey(Wallet, on_delete=models.CASCADE, related_name="transactions")
    transaction_type = models.CharField(max_length=30, choices=TRANSACTION_TYPES)
    amount = models.PositiveBigIntegerField(help_text=_("Points moved by this entry (always positive)"))
    balance_after = models.BigIntegerField()
    description = models.CharField(max_length=255)
    reference = models.CharField(max_length=100, blank=True, help_text=_("Order reference or other source id"))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "wallet_transactions"
        verbose_name = _("Wallet Transaction")
        verbose_name_plural = _("Wallet Transactions")
        ordering: ClassVar[tuple[str, ...]] = ("id",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["wallet", "id"]),
            models.Index(fields=["reference"]),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=models.Q(balance_after__gte=0), name="wallet_transaction_balance_non_negative"
            ),
        )

    def __str__(self) -> str:
        return f"{self.transaction_type} {self.signed_amount} -> {self.balance_after}"

    @property
    def is_earn(self) -> bool:
        return is_earn_type(self.transaction_type)

    @property
    def signed_amount(self) -> int:
        return self.amount if self.is_earn else -self.amount
