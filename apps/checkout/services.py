"""
Checkout services for the Autoparts Commerce Platform.

`quote` is read-only: it prices every line for the resolved pricing context,
evaluates the voucher and applies tier perks. `confirm` re-quotes and performs
the apply steps (voucher redemption, monthly spend, points) in one
transaction, exactly once per idempotency key.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from django.db import DatabaseError, IntegrityError, transaction

from apps.common.money import percent_of
from apps.common.types import Cents, IdempotencyKey, Points
from apps.customers.services import CustomerNotFoundError, CustomerService
from apps.pricing.services import PricingContext, PricingContextCache, PricingContextResolver
from apps.products.configuration import ConfigurationIncomplete, ConfigurationQuote
from apps.products.services import CatalogService
from apps.promotions.calculations import VoucherEvaluation
from apps.promotions.services import TierBenefits, TierService, VoucherService
from apps.wallet.models import EARN_ORDER
from apps.wallet.services import WalletService

from .models import Checkout

logger = logging.getLogger(__name__)

# Checkout-level error codes; voucher failures reuse the voucher reason codes
CHECKOUT_INVALID = "CHECKOUT_INVALID"
INCOMPLETE_CONFIGURATION = "INCOMPLETE_CONFIGURATION"
INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
CHECKOUT_KEY_REUSED = "CHECKOUT_KEY_REUSED"


# ===============================================================================
# Data Classes
# ===============================================================================


@dataclass(frozen=True)
class CheckoutLine:
    product_id: str
    selection: Mapping[str, str]
    quantity: int = 1


@dataclass(frozen=True)
class LineQuote:
    line: CheckoutLine
    quote: ConfigurationQuote | None = None
    incomplete: ConfigurationIncomplete | None = None
    problem: str = ""

    @property
    def line_total_cents(self) -> Cents:
        if self.quote is None:
            return 0
        return self.quote.total_price_cents * self.line.quantity


@dataclass
class CheckoutQuote:
    """
    Priced cart. Amounts are applied in this order: voucher on the subtotal,
    tier discount on what remains, then shipping (waived above the tier's
    free-shipping threshold).
    """

    context: PricingContext
    lines: list[LineQuote]
    subtotal_cents: Cents = 0
    voucher: VoucherEvaluation | None = None
    voucher_discount_cents: Cents = 0
    tier_benefits: TierBenefits = field(default_factory=TierBenefits)
    tier_discount_cents: Cents = 0
    shipping_cents: Cents = 0
    free_shipping: bool = False
    points_to_earn: Points = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        """Customer data was unavailable; priced as an anonymous retail cart"""
        return bool(self.warnings)

    @property
    def problems(self) -> list[str]:
        return [line.problem for line in self.lines if line.problem]

    @property
    def is_payable(self) -> bool:
        return bool(self.lines) and not self.problems

    @property
    def merchandise_cents(self) -> Cents:
        return self.subtotal_cents - self.voucher_discount_cents - self.tier_discount_cents

    @property
    def total_cents(self) -> Cents:
        return self.merchandise_cents + self.shipping_cents


@dataclass
class CheckoutConfirmation:
    success: bool
    checkout_id: str | None = None
    total_cents: Cents = 0
    points_earned: Points = 0
    quote: CheckoutQuote | None = None
    error_code: str = ""
    error_message: str = ""
    problems: list[str] = field(default_factory=list)
    replayed: bool = False


class _CheckoutAborted(Exception):
    """Internal: roll back the confirmation savepoint and report `result`"""

    def __init__(self, result: CheckoutConfirmation) -> None:
        super().__init__(result.error_code)
        self.result = result


# ===============================================================================
# Checkout Service
# ===============================================================================


class CheckoutService:
    @staticmethod
    def _quote_line(line: CheckoutLine, context: PricingContext) -> LineQuote:
        if line.quantity < 1:
            raise ValueError(f"Quantity must be at least 1 for product {line.product_id}")

        result = CatalogService.quote(line.product_id, line.selection, context)
        if result.is_err():
            incomplete = result.unwrap_err()
            return LineQuote(line=line, incomplete=incomplete, problem=f"{INCOMPLETE_CONFIGURATION}: {incomplete.message}")

        quote = result.unwrap()
        if line.quantity > quote.available_stock:
            return LineQuote(
                line=line,
                quote=quote,
                problem=f"{INSUFFICIENT_STOCK}: {quote.available_stock} available for product {line.product_id}",
            )
        return LineQuote(line=line, quote=quote)

    @classmethod
    def quote(  # noqa: PLR0913
        cls,
        customer_id: int | None,
        lines: Sequence[CheckoutLine],
        voucher_code: str | None = None,
        shipping_cents: Cents = 0,
        now: datetime | None = None,
        context_cache: PricingContextCache | None = None,
    ) -> CheckoutQuote:
        """Price a cart without mutating anything"""
        if shipping_cents < 0:
            raise ValueError("Shipping cannot be negative")

        context = PricingContextResolver(context_cache).resolve(customer_id)
        warnings = list(context.warnings)
        customer = None
        if customer_id is not None and not context.degraded:
            try:
                customer = CustomerService.find_customer(customer_id)
            except DatabaseError as e:
                logger.warning(
                    f"⚠️ [Checkout] Customer lookup failed, quoting customer {customer_id} as anonymous: {e}",
                    extra={"customer_id": customer_id, "degraded": True},
                )
                warnings.append(f"Customer lookup failed: {e}")

        checkout_quote = CheckoutQuote(
            context=context,
            lines=[cls._quote_line(line, context) for line in lines],
            warnings=warnings,
        )
        checkout_quote.subtotal_cents = sum(line.line_total_cents for line in checkout_quote.lines)

        if voucher_code:
            checkout_quote.voucher = VoucherService.evaluate(
                voucher_code, customer, checkout_quote.subtotal_cents, now=now
            )
            if checkout_quote.voucher.is_valid:
                checkout_quote.voucher_discount_cents = checkout_quote.voucher.discount_cents

        benefits = TierService.current_benefits(customer, at=now)
        checkout_quote.tier_benefits = benefits
        checkout_quote.tier_discount_cents = percent_of(
            checkout_quote.subtotal_cents - checkout_quote.voucher_discount_cents, benefits.discount_percent
        )

        checkout_quote.free_shipping = benefits.qualifies_for_free_shipping(checkout_quote.merchandise_cents)
        checkout_quote.shipping_cents = 0 if checkout_quote.free_shipping else shipping_cents

        if customer is not None:
            checkout_quote.points_to_earn = WalletService.points_for_order(
                checkout_quote.merchandise_cents, benefits.points_multiplier
            )
        return checkout_quote

    @staticmethod
    def _replay(checkout: Checkout, customer_id: int) -> CheckoutConfirmation:
        if checkout.customer_id != customer_id:
            return CheckoutConfirmation(
                success=False,
                checkout_id=str(checkout.pk),
                error_code=CHECKOUT_KEY_REUSED,
                error_message="This checkout attempt belongs to another customer",
            )
        return CheckoutConfirmation(
            success=True,
            checkout_id=str(checkout.pk),
            total_cents=checkout.total_cents,
            points_earned=checkout.points_earned,
            replayed=True,
        )

    @classmethod
    @transaction.atomic
    def confirm(  # noqa: PLR0913
        cls,
        customer_id: int,
        lines: Sequence[CheckoutLine],
        idempotency_key: IdempotencyKey,
        order_reference: str = "",
        voucher_code: str | None = None,
        shipping_cents: Cents = 0,
        now: datetime | None = None,
        context_cache: PricingContextCache | None = None,
    ) -> CheckoutConfirmation:
        """
        Complete a checkout: redeem the voucher, add the order to this month's
        spend (re-tiering the customer) and earn points.

        Either every step is recorded or none is. Stock is not decremented
        here; fulfilment owns inventory.
        """
        if not idempotency_key:
            raise ValueError("idempotency_key is required to confirm a checkout")

        existing = Checkout.objects.filter(idempotency_key=idempotency_key).first()
        if existing is not None:
            return cls._replay(existing, customer_id)

        if CustomerService.find_customer(customer_id) is None:
            raise CustomerNotFoundError(customer_id)

        checkout_quote = cls.quote(
            customer_id, lines, voucher_code, shipping_cents=shipping_cents, now=now, context_cache=context_cache
        )
        if not checkout_quote.is_payable:
            return CheckoutConfirmation(
                success=False,
                quote=checkout_quote,
                error_code=CHECKOUT_INVALID,
                error_message="Cart cannot be checked out",
                problems=checkout_quote.problems or ["Cart is empty"],
            )
        if checkout_quote.voucher is not None and not checkout_quote.voucher.is_valid:
            return CheckoutConfirmation(
                success=False,
                quote=checkout_quote,
                error_code=checkout_quote.voucher.error_code,
                error_message=checkout_quote.voucher.error_message,
            )

        try:
            with transaction.atomic():
                checkout = cls._record(customer_id, checkout_quote, idempotency_key, order_reference, voucher_code, now)
        except IntegrityError:
            # Concurrent confirmation with the same key committed first
            return cls._replay(Checkout.objects.get(idempotency_key=idempotency_key), customer_id)
        except _CheckoutAborted as aborted:
            return aborted.result

        logger.info(
            f"🧾 [Checkout] Confirmed {checkout.order_reference or checkout.pk} for customer {customer_id}: "
            f"{checkout.total_cents} cents, {checkout.points_earned} pts",
            extra={
                "customer_id": customer_id,
                "checkout_id": str(checkout.pk),
                "idempotency_key": idempotency_key,
                "total_cents": checkout.total_cents,
                "voucher_discount_cents": checkout.voucher_discount_cents,
                "tier_discount_cents": checkout.tier_discount_cents,
                "points_earned": checkout.points_earned,
            },
        )
        return CheckoutConfirmation(
            success=True,
            checkout_id=str(checkout.pk),
            total_cents=checkout.total_cents,
            points_earned=checkout.points_earned,
            quote=checkout_quote,
        )

    @classmethod
    def _record(  # noqa: PLR0913
        cls,
        customer_id: int,
        checkout_quote: CheckoutQuote,
        idempotency_key: IdempotencyKey,
        order_reference: str,
        voucher_code: str | None,
        now: datetime | None,
    ) -> Checkout:
        benefits = checkout_quote.tier_benefits
        checkout = Checkout.objects.create(
            idempotency_key=idempotency_key,
            customer_id=customer_id,
            order_reference=order_reference,
            pricing_mode=checkout_quote.context.pricing_mode,
            subtotal_cents=checkout_quote.subtotal_cents,
            voucher_discount_cents=checkout_quote.voucher_discount_cents,
            tier_discount_cents=checkout_quote.tier_discount_cents,
            shipping_cents=checkout_quote.shipping_cents,
            total_cents=checkout_quote.total_cents,
            tier_id=benefits.tier_id,
        )

        if voucher_code:
            applied = VoucherService.apply_voucher(
                voucher_code,
                customer_id,
                checkout_quote.subtotal_cents,
                idempotency_key=idempotency_key,
                order_reference=order_reference,
                now=now,
            )
            if not applied.success:
                raise _CheckoutAborted(
                    CheckoutConfirmation(
                        success=False,
                        quote=checkout_quote,
                        error_code=applied.error_code,
                        error_message=applied.error_message,
                    )
                )
            checkout.voucher_redemption_id = applied.redemption_id

        TierService.record_completed_order(
            customer_id, checkout_quote.merchandise_cents, order_reference=order_reference or str(checkout.pk)
        )

        points = WalletService.points_for_order(checkout_quote.merchandise_cents, benefits.points_multiplier)
        if points > 0:
            WalletService.append_transaction(
                customer_id,
                EARN_ORDER,
                points,
                description=f"Points for order {order_reference or checkout.pk}",
                reference=order_reference or str(checkout.pk),
            ).unwrap()
        checkout.points_earned = points
        checkout.save(update_fields=["voucher_redemption", "points_earned"])
        return checkout
