"""
Promotions domain events.

`tier_changed` is sent after the transaction that moved a customer between
tiers commits, with a typed `TierChanged` payload as the `event` keyword.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.dispatch import Signal


@dataclass(frozen=True)
class TierChanged:
    customer_id: int
    from_tier_id: str | None
    to_tier_id: str | None
    reason: str
    monthly_spend_cents: int


tier_changed = Signal()
