"""
Centralized promotions configuration for the Autoparts Commerce Platform.

Values are read at call time so `override_settings` applies in tests.
"""

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings

from apps.common.constants import DEFAULT_VOUCHER_EXPIRY_WARNING_DAYS

logger = logging.getLogger(__name__)

DEFAULT_STORE_TIMEZONE = "Asia/Kuala_Lumpur"

# ===============================================================================
# HELPER: SAFE VALUE PARSING
# ===============================================================================


def _get_non_negative_int(setting_name: str, default: int) -> int:
    """Get a non-negative integer from settings with validation."""
    value = getattr(settings, setting_name, default)
    try:
        result = int(value)
    except (TypeError, ValueError):
        logger.warning(
            f"⚠️ [Promotions] Invalid {setting_name}={value!r}, using default {default}",
            extra={"setting": setting_name},
        )
        result = default
    return max(0, result)


# ===============================================================================
# SPEND PERIOD
# ===============================================================================


def get_store_timezone() -> ZoneInfo:
    """Operating timezone that defines where a calendar month starts"""
    name = getattr(settings, "STORE_TIMEZONE", DEFAULT_STORE_TIMEZONE) or DEFAULT_STORE_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.error(
            f"🔥 [Promotions] Unknown STORE_TIMEZONE {name!r}, falling back to {DEFAULT_STORE_TIMEZONE}",
            extra={"setting": "STORE_TIMEZONE"},
        )
        return ZoneInfo(DEFAULT_STORE_TIMEZONE)


# ===============================================================================
# VOUCHERS
# ===============================================================================


def get_voucher_expiry_warning_days() -> int:
    return _get_non_negative_int("VOUCHER_EXPIRY_WARNING_DAYS", DEFAULT_VOUCHER_EXPIRY_WARNING_DAYS)


# ===============================================================================
# SCHEDULED JOBS
# ===============================================================================

MONTHLY_RESET_SCHEDULE_NAME = "promotions-monthly-spend-reset"
MONTHLY_RESET_TASK = "apps.promotions.tasks.reset_monthly_spend_task"
