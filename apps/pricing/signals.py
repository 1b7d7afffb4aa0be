"""
Pricing signal handlers.
Keep cached pricing contexts consistent with customer type changes.
"""

from __future__ import annotations

import logging
from typing import Any

from django.dispatch import receiver

from apps.customers.signals import CustomerTypeChanged, customer_type_changed
from apps.pricing.services import PricingContextCache

logger = logging.getLogger(__name__)


@receiver(customer_type_changed, dispatch_uid="pricing_invalidate_on_customer_type_change")
def invalidate_pricing_context(sender: Any, event: CustomerTypeChanged, **kwargs: Any) -> None:
    """Drop cached pricing contexts as soon as a customer's class changes"""
    PricingContextCache.invalidate_customer(event.customer_id)
    logger.info(
        f"🔄 [Pricing] Customer {event.customer_id} is now {event.new_type}; pricing context invalidated",
        extra={"customer_id": event.customer_id, "old_type": event.old_type, "new_type": event.new_type},
    )
