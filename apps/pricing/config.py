"""
Pricing configuration for the Autoparts Commerce Platform.

Values are read at call time so `override_settings` applies in tests.
"""

import logging

from django.conf import settings

logger = logging.getLogger(__name__)

# ===============================================================================
# HELPER: SAFE VALUE PARSING
# ===============================================================================

DEFAULT_CONTEXT_CACHE_TIMEOUT = 86400  # One session day


def _get_positive_int(setting_name: str, default: int) -> int:
    """Get a positive integer from settings with validation."""
    value = getattr(settings, setting_name, default)
    try:
        result = int(value)
    except (TypeError, ValueError):
        logger.warning(
            f"⚠️ [Pricing] Invalid {setting_name}={value!r}, using default {default}",
            extra={"setting": setting_name},
        )
        result = default
    return max(1, result)  # Ensure at least 1


# ===============================================================================
# PRICING CONTEXT CACHE
# ===============================================================================


def get_context_cache_timeout() -> int:
    """Seconds a resolved pricing context may be served from cache"""
    return _get_positive_int("PRICING_CONTEXT_CACHE_TIMEOUT", DEFAULT_CONTEXT_CACHE_TIMEOUT)


CONTEXT_CACHE_PREFIX = "pricing_ctx"
CONTEXT_GENERATION_PREFIX = "pricing_ctx_gen"
