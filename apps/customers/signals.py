"""
Customer domain events.

`customer_type_changed` is sent after the transaction that changed a
customer's pricing class commits. Receivers get a typed
`CustomerTypeChanged` payload as the `event` keyword argument.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.dispatch import Signal


@dataclass(frozen=True)
class CustomerTypeChanged:
    customer_id: int
    old_type: str
    new_type: str
    changed_by_id: int | None = None


customer_type_changed = Signal()
