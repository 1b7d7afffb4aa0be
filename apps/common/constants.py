"""
Autoparts Commerce Platform Constants

Centralized constants for customer classes, pricing columns and loyalty rules.
This file serves as the single source of truth for business rules that span multiple apps.
"""

from decimal import Decimal
from typing import Final

# ===============================================================================
# CUSTOMER CLASSES 🏷️
# ===============================================================================

CUSTOMER_CLASS_NORMAL: Final[str] = "normal"  # B2C / retail
CUSTOMER_CLASS_MERCHANT: Final[str] = "merchant"  # B2B / wholesale

PRICING_MODE_B2C: Final[str] = "B2C"
PRICING_MODE_B2B: Final[str] = "B2B"

PRICE_LABEL_NORMAL: Final[str] = "Price"
PRICE_LABEL_MERCHANT: Final[str] = "Merchant Price"

# ===============================================================================
# MONEY & PERCENTAGES 💰
# ===============================================================================

CENTS_PER_UNIT: Final[int] = 100
PERCENT_BASE: Final[Decimal] = Decimal("100")
MAX_PERCENTAGE: Final[Decimal] = Decimal("100.00")

# ===============================================================================
# LOYALTY 🎖️
# ===============================================================================

DEFAULT_POINTS_PER_CURRENCY_UNIT: Final[Decimal] = Decimal("1")
DEFAULT_POINTS_MULTIPLIER: Final[Decimal] = Decimal("1.00")
BEST_TIER_LEVEL: Final[int] = 1  # Lower level number == better tier

# ===============================================================================
# VOUCHERS 🎟️
# ===============================================================================

VOUCHER_CODE_MAX_LENGTH: Final[int] = 50
DEFAULT_MAX_USAGE_PER_USER: Final[int] = 1
DEFAULT_VOUCHER_EXPIRY_WARNING_DAYS: Final[int] = 3
GENERATED_CODE_CHARS: Final[str] = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # No 0/O or 1/I
GENERATED_CODE_LENGTH: Final[int] = 8
DEFAULT_REWARD_VOUCHER_VALIDITY_DAYS: Final[int] = 30
