"""
Pricing Context Resolver for the Autoparts Commerce Platform.

Every consumer that needs to know which price column a customer sees goes
through `PricingContextResolver.resolve()`. Anonymous visitors, unknown or
soft-deleted customers and failed lookups all resolve to the same retail
fallback; lookup failures are reported as warnings on the returned context
and never block pricing.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field, replace
from typing import Any

from django.core.cache import cache
from django.db import DatabaseError

from apps.common.constants import (
    CUSTOMER_CLASS_MERCHANT,
    CUSTOMER_CLASS_NORMAL,
    PRICE_LABEL_MERCHANT,
    PRICE_LABEL_NORMAL,
    PRICING_MODE_B2B,
    PRICING_MODE_B2C,
)
from apps.common.types import CacheKey, Cents
from apps.customers.services import CustomerService
from apps.pricing.config import CONTEXT_CACHE_PREFIX, CONTEXT_GENERATION_PREFIX, get_context_cache_timeout

logger = logging.getLogger(__name__)

# ===============================================================================
# PRICING CONTEXT
# ===============================================================================

PRICE_COLUMN_NORMAL = "selling_price_cents"
PRICE_COLUMN_MERCHANT = "merchant_price_cents"


@dataclass(frozen=True)
class PricingContext:
    """Which customer class and price column apply to a pricing computation"""

    customer_class: str
    pricing_mode: str
    shows_merchant_price: bool
    customer_id: int | None = None
    degraded: bool = False
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def price_column(self) -> str:
        return PRICE_COLUMN_MERCHANT if self.shows_merchant_price else PRICE_COLUMN_NORMAL

    @property
    def is_merchant(self) -> bool:
        return self.customer_class == CUSTOMER_CLASS_MERCHANT

    @classmethod
    def for_customer_class(cls, customer_class: str, customer_id: int | None = None) -> PricingContext:
        if customer_class == CUSTOMER_CLASS_MERCHANT:
            return cls(
                customer_class=CUSTOMER_CLASS_MERCHANT,
                pricing_mode=PRICING_MODE_B2B,
                shows_merchant_price=True,
                customer_id=customer_id,
            )
        return cls(
            customer_class=CUSTOMER_CLASS_NORMAL,
            pricing_mode=PRICING_MODE_B2C,
            shows_merchant_price=False,
            customer_id=customer_id,
        )


# Anonymous / missing profile / degraded lookups all resolve to retail pricing
FALLBACK_CONTEXT = PricingContext(
    customer_class=CUSTOMER_CLASS_NORMAL,
    pricing_mode=PRICING_MODE_B2C,
    shows_merchant_price=False,
)


def display_price(normal_price_cents: Cents, merchant_price_cents: Cents | None, context: PricingContext) -> Cents:
    """Price shown to the customer: the merchant price when it applies and is set, else the normal price"""
    if context.shows_merchant_price and merchant_price_cents is not None and merchant_price_cents > 0:
        return merchant_price_cents
    return normal_price_cents


def price_label(context: PricingContext) -> str:
    return PRICE_LABEL_MERCHANT if context.shows_merchant_price else PRICE_LABEL_NORMAL


# ===============================================================================
# CONTEXT CACHE
# ===============================================================================


class PricingContextCache:
    """
    Explicitly invalidated cache of resolved pricing contexts.

    Instances are owned by a request or session scope (`scope` is usually the
    session key). Invalidation is global per customer: it rotates a
    generation token shared by every scope, so a context cached anywhere
    before the customer's type changed can never be served again.
    """

    def __init__(self, scope: str = "default", timeout: int | None = None) -> None:
        self.scope = scope
        self.timeout = timeout if timeout is not None else get_context_cache_timeout()

    # ------------------------------------------------------------------
    # Generation tokens
    # ------------------------------------------------------------------

    @staticmethod
    def _generation_key(customer_id: int) -> CacheKey:
        return f"{CONTEXT_GENERATION_PREFIX}:{customer_id}"

    @classmethod
    def _current_generation(cls, customer_id: int) -> str:
        key = cls._generation_key(customer_id)
        generation = cache.get(key)
        if generation is None:
            # First use, or the token was evicted: start a fresh generation so
            # entries cached under an evicted token stay unreachable
            cache.add(key, uuid.uuid4().hex, timeout=None)
            generation = cache.get(key)
        return str(generation)

    @classmethod
    def invalidate_customer(cls, customer_id: int) -> None:
        """Drop every cached context for `customer_id`, across all scopes"""
        cache.set(cls._generation_key(customer_id), uuid.uuid4().hex, timeout=None)
        logger.debug(
            f"🧹 [Pricing] Invalidated cached pricing contexts for customer {customer_id}",
            extra={"customer_id": customer_id},
        )

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def generation(self, customer_id: int) -> str:
        """Token one resolve reads and writes under; capture it before the customer lookup"""
        return self._current_generation(customer_id)

    def _entry_key(self, customer_id: int, generation: str | None = None) -> CacheKey:
        if generation is None:
            generation = self._current_generation(customer_id)
        return f"{CONTEXT_CACHE_PREFIX}:{self.scope}:{customer_id}:{generation}"

    def get(self, customer_id: int, generation: str | None = None) -> PricingContext | None:
        payload: dict[str, Any] | None = cache.get(self._entry_key(customer_id, generation))
        if payload is None:
            return None
        payload["warnings"] = tuple(payload.get("warnings", ()))
        return PricingContext(**payload)

    def set(self, context: PricingContext, generation: str | None = None) -> None:
        """
        Store `context` under `generation`, the token captured before the
        lookup that built it. If the customer was invalidated in between, the
        entry lands under a retired token and is never served.
        """
        if context.customer_id is None or context.degraded:
            return
        cache.set(self._entry_key(context.customer_id, generation), asdict(context), timeout=self.timeout)

    def delete(self, customer_id: int) -> None:
        cache.delete(self._entry_key(customer_id))


# ===============================================================================
# RESOLVER
# ===============================================================================


class PricingContextResolver:
    """Resolve a customer id (or None for anonymous) to a PricingContext"""

    def __init__(self, context_cache: PricingContextCache | None = None) -> None:
        self.context_cache = context_cache

    def resolve(self, customer_id: int | None) -> PricingContext:
        if customer_id is None:
            return FALLBACK_CONTEXT

        generation = None
        try:
            if self.context_cache is not None:
                generation = self.context_cache.generation(customer_id)
                cached = self.context_cache.get(customer_id, generation)
                if cached is not None:
                    return cached

            customer = CustomerService.find_customer(customer_id)
        except DatabaseError as e:
            logger.warning(
                f"⚠️ [Pricing] Customer lookup failed, using retail pricing for customer {customer_id}: {e}",
                extra={"customer_id": customer_id, "degraded": True},
            )
            return replace(
                FALLBACK_CONTEXT,
                customer_id=customer_id,
                degraded=True,
                warnings=(f"Pricing context lookup failed: {e}",),
            )

        if customer is None:
            logger.debug(
                f"ℹ️ [Pricing] No customer profile for {customer_id}, using retail pricing",
                extra={"customer_id": customer_id},
            )
            return FALLBACK_CONTEXT

        context = PricingContext.for_customer_class(customer.customer_type, customer_id=customer.pk)
        if self.context_cache is not None:
            try:
                self.context_cache.set(context, generation)
            except DatabaseError as e:
                logger.warning(
                    f"⚠️ [Pricing] Could not cache pricing context for customer {customer_id}: {e}",
                    extra={"customer_id": customer_id},
                )
        return context
