"""
Wallet configuration for the Autoparts Commerce Platform.

Values are read at call time so `override_settings` applies in tests.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.conf import settings

from apps.common.constants import DEFAULT_POINTS_PER_CURRENCY_UNIT

logger = logging.getLogger(__name__)


def get_points_per_currency_unit() -> Decimal:
    """Points earned per whole currency unit spent, before the tier multiplier"""
    value = getattr(settings, "LOYALTY_POINTS_PER_CURRENCY_UNIT", DEFAULT_POINTS_PER_CURRENCY_UNIT)
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning(
            f"⚠️ [Wallet] Invalid LOYALTY_POINTS_PER_CURRENCY_UNIT={value!r}, "
            f"using default {DEFAULT_POINTS_PER_CURRENCY_UNIT}",
            extra={"setting": "LOYALTY_POINTS_PER_CURRENCY_UNIT"},
        )
        return DEFAULT_POINTS_PER_CURRENCY_UNIT
    if not rate.is_finite() or rate < 0:
        logger.warning(
            f"⚠️ [Wallet] LOYALTY_POINTS_PER_CURRENCY_UNIT={value!r} out of range, "
            f"using default {DEFAULT_POINTS_PER_CURRENCY_UNIT}",
            extra={"setting": "LOYALTY_POINTS_PER_CURRENCY_UNIT"},
        )
        return DEFAULT_POINTS_PER_CURRENCY_UNIT
    return rate
