"""
Wallet ledger services for the Autoparts Commerce Platform.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.db.models import Case, F, IntegerField, Sum, When

from apps.common.constants import DEFAULT_POINTS_MULTIPLIER
from apps.common.money import floor_units
from apps.common.types import Cents, Err, Ok, Points, Result
from apps.customers.models import Customer
from apps.customers.services import CustomerNotFoundError

from .config import get_points_per_currency_unit
from .models import EARN_PREFIX, Wallet, WalletTransaction, is_earn_type

logger = logging.getLogger(__name__)

INSUFFICIENT_BALANCE = "Insufficient points balance"


@dataclass(frozen=True)
class WalletSummary:
    customer_id: int
    points_balance: Points
    total_earned_points: Points
    total_spent_points: Points
    transaction_count: int


@dataclass(frozen=True)
class LedgerVerification:
    """Outcome of replaying a wallet's ledger against its stored balance"""

    is_consistent: bool
    expected_balance: Points
    recorded_balance: Points
    drift: Points
    first_bad_transaction_id: int | None = None


class WalletService:
    """Append-only points ledger; appends are serialized per customer by locking the wallet row"""

    @staticmethod
    def get_or_create_wallet(customer_id: int) -> Wallet:
        if not Customer.objects.filter(pk=customer_id).exists():
            raise CustomerNotFoundError(customer_id)
        wallet, _created = Wallet.objects.get_or_create(customer_id=customer_id)
        return wallet

    @classmethod
    @transaction.atomic
    def append_transaction(
        cls,
        customer_id: int,
        transaction_type: str,
        amount: Points,
        description: str,
        reference: str = "",
    ) -> Result[WalletTransaction, str]:
        """
        Append one entry and return it with its `balance_after`.

        A spend larger than the balance is refused with Err and nothing is
        written. Invalid types or negative amounts are caller bugs and raise.
        """
        if transaction_type not in dict(WalletTransaction.TRANSACTION_TYPES):
            raise ValueError(f"Unknown wallet transaction type: {transaction_type}")
        if amount < 0:
            raise ValueError("Wallet transaction amount must be a positive magnitude")

        cls.get_or_create_wallet(customer_id)
        wallet = Wallet.objects.select_for_update().get(customer_id=customer_id)

        if is_earn_type(transaction_type):
            new_balance = wallet.points_balance + amount
            wallet.total_earned_points += amount
        else:
            new_balance = wallet.points_balance - amount
            if new_balance < 0:
                logger.info(
                    f"🪙 [Wallet] Refused {transaction_type} of {amount} for customer {customer_id}: "
                    f"balance {wallet.points_balance}",
                    extra={"customer_id": customer_id, "amount": amount, "balance": wallet.points_balance},
                )
                return Err(INSUFFICIENT_BALANCE)
            wallet.total_spent_points += amount

        wallet.points_balance = new_balance
        wallet.save(update_fields=["points_balance", "total_earned_points", "total_spent_points", "updated_at"])

        entry = WalletTransaction.objects.create(
            wallet=wallet,
            transaction_type=transaction_type,
            amount=amount,
            balance_after=new_balance,
            description=description,
            reference=reference,
        )

        logger.info(
            f"🪙 [Wallet] {transaction_type} {amount} pts for customer {customer_id}, balance {new_balance}",
            extra={
                "customer_id": customer_id,
                "transaction_type": transaction_type,
                "amount": amount,
                "balance_after": new_balance,
                "reference": reference,
            },
        )
        return Ok(entry)

    @staticmethod
    def balance(customer_id: int) -> Points:
        value = Wallet.objects.filter(customer_id=customer_id).values_list("points_balance", flat=True).first()
        return value or 0

    @staticmethod
    def history(customer_id: int, limit: int | None = None) -> list[WalletTransaction]:
        """Ledger entries, newest first"""
        queryset = WalletTransaction.objects.filter(wallet__customer_id=customer_id).order_by("-id")
        if limit is not None:
            queryset = queryset[:limit]
        return list(queryset)

    @classmethod
    def summary(cls, customer_id: int) -> WalletSummary:
        wallet = cls.get_or_create_wallet(customer_id)
        return WalletSummary(
            customer_id=customer_id,
            points_balance=wallet.points_balance,
            total_earned_points=wallet.total_earned_points,
            total_spent_points=wallet.total_spent_points,
            transaction_count=wallet.transactions.count(),
        )

    @staticmethod
    def verify_ledger(customer_id: int) -> LedgerVerification:
        """Replay every entry in creation order and compare with the stored balance"""
        wallet = Wallet.objects.filter(customer_id=customer_id).first()
        if wallet is None:
            return LedgerVerification(is_consistent=True, expected_balance=0, recorded_balance=0, drift=0)

        running = 0
        first_bad = None
        for entry in wallet.transactions.order_by("id"):
            running += entry.signed_amount
            if first_bad is None and (running < 0 or running != entry.balance_after):
                first_bad = entry.pk

        # Cross-check the fold with the database aggregate
        aggregate = wallet.transactions.aggregate(
            total=Sum(
                Case(
                    When(transaction_type__startswith=EARN_PREFIX, then=F("amount")),
                    default=-F("amount"),
                    output_field=IntegerField(),
                )
            )
        )["total"] or 0

        drift = wallet.points_balance - running
        is_consistent = drift == 0 and first_bad is None and aggregate == running
        if not is_consistent:
            logger.error(
                f"🔥 [Wallet] Ledger drift for customer {customer_id}: stored {wallet.points_balance}, "
                f"replayed {running}",
                extra={"customer_id": customer_id, "drift": drift, "first_bad_transaction_id": first_bad},
            )
        return LedgerVerification(
            is_consistent=is_consistent,
            expected_balance=running,
            recorded_balance=wallet.points_balance,
            drift=drift,
            first_bad_transaction_id=first_bad,
        )

    @staticmethod
    def points_for_order(amount_cents: Cents, multiplier: Decimal = DEFAULT_POINTS_MULTIPLIER) -> Points:
        """floor(currency units * points rate * tier multiplier)"""
        if amount_cents <= 0:
            return 0
        return floor_units(amount_cents, get_points_per_currency_unit() * multiplier)
