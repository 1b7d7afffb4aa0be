"""
Monthly spend period policy.

A customer's monthly spend belongs to the calendar month that contains the
moment it was recorded, with months starting at midnight on the 1st in the
store's operating timezone. Every spend read and mutation goes through one
`SpendPeriodPolicy` so the boundary is decided in exactly one place; tests
inject a fixed clock and timezone.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from django.utils import timezone

from apps.common.types import Cents
from apps.promotions.config import get_store_timezone


@dataclass(frozen=True)
class SpendPeriodPolicy:
    tz: ZoneInfo = field(default_factory=get_store_timezone)
    clock: Callable[[], datetime] = timezone.now

    def now(self) -> datetime:
        return self.clock()

    def period_start(self, at: datetime | None = None) -> date:
        """First day of the month containing `at` (default: now), in store time"""
        moment = at if at is not None else self.now()
        local = moment.astimezone(self.tz)
        return local.date().replace(day=1)

    def period_start_datetime(self, at: datetime | None = None) -> datetime:
        """First instant of the month containing `at`, as an aware datetime"""
        return datetime.combine(self.period_start(at), time.min, tzinfo=self.tz)

    def next_period_start_datetime(self, at: datetime | None = None) -> datetime:
        start = self.period_start(at)
        if start.month == 12:  # noqa: PLR2004
            following = start.replace(year=start.year + 1, month=1)
        else:
            following = start.replace(month=start.month + 1)
        return datetime.combine(following, time.min, tzinfo=self.tz)

    def is_current(self, period_start: date | None, at: datetime | None = None) -> bool:
        return period_start is not None and period_start == self.period_start(at)

    def effective_spend(self, monthly_spend_cents: Cents, period_start: date | None, at: datetime | None = None) -> Cents:
        """Spend that counts right now: a stale period counts as zero"""
        return monthly_spend_cents if self.is_current(period_start, at) else 0


def default_policy() -> SpendPeriodPolicy:
    return SpendPeriodPolicy()
