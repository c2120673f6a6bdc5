"""
Constants for the menu costing engine.

This module defines system-wide constants including:
- Application metadata
- Decimal storage scales used when caching derived costs
- Pricing fallbacks and tolerances
"""

from decimal import Decimal

# ============================================================================
# Application Metadata
# ============================================================================

APP_VERSION = "0.1.0"
DATABASE_FILENAME = "menu_costing.db"

# ============================================================================
# Decimal Scales
# ============================================================================

# Unit conversion factors, e.g. kg -> 1000.000000
CONVERSION_FACTOR_QUANT = Decimal("0.000001")

# Currency per base unit (g / ml / un); kept finer than money so that
# quantity-in-base x unit-cost does not lose cents on large quantities
UNIT_COST_QUANT = Decimal("0.00000001")

# Purchased and used quantities, recipe yields
QUANTITY_QUANT = Decimal("0.000001")

# Size multipliers applied to a product base cost
MULTIPLIER_QUANT = Decimal("0.0001")

# Prices, item costs, totals, margins
MONEY_QUANT = Decimal("0.0001")

# Yield percentages, margin percentages, percentage changes
PERCENT_QUANT = Decimal("0.0001")

# ============================================================================
# Pricing
# ============================================================================

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
MINUTES_PER_HOUR = Decimal("60")

# Markup applied by the simulator when the current margin cannot be preserved
FALLBACK_MARKUP = Decimal("1.3")

# Listings whose margin is within this many points of the previous target
# margin are re-priced when the target changes
TARGET_MARGIN_TOLERANCE = Decimal("0.5")

# ============================================================================
# Validation Limits
# ============================================================================

MAX_NAME_LENGTH = 200
MAX_ABBREVIATION_LENGTH = 20
MAX_DESCRIPTION_LENGTH = 2000

# ============================================================================
# Error Messages
# ============================================================================

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_NUMBER = "Must be a valid number"
ERROR_INVALID_POSITIVE = "Must be greater than zero"
ERROR_INVALID_NON_NEGATIVE = "Must be zero or greater"
