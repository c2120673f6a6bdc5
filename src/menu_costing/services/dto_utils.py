"""DTO and decimal utilities for the service layer.

Every value the engine caches goes through one of the quantize helpers so
stored scales stay consistent across cascades:

- factors: 6 dp (unit conversion factors)
- unit costs: 8 dp (currency per base unit)
- quantities: 6 dp (entry, line and variation quantities, recipe yields)
- multipliers: 4 dp (size options)
- money: 4 dp (prices, line costs, totals, margins)
- percent: 4 dp (yields, margin percentages, percentage changes)

All rounding is ROUND_HALF_UP.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from ..utils.constants import (
    CONVERSION_FACTOR_QUANT,
    MONEY_QUANT,
    MULTIPLIER_QUANT,
    PERCENT_QUANT,
    QUANTITY_QUANT,
    UNIT_COST_QUANT,
    ZERO,
)

Number = Union[Decimal, float, int, str]


def to_decimal(value: Union[Number, None], default: Decimal = ZERO) -> Decimal:
    """
    Convert a numeric input to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary
    expansion.

    Args:
        value: Decimal, int, float or numeric string
        default: Returned when value is None

    Raises:
        ValueError: If value is not numeric
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e


def quantize_factor(value: Number) -> Decimal:
    return to_decimal(value).quantize(CONVERSION_FACTOR_QUANT, rounding=ROUND_HALF_UP)


def quantize_unit_cost(value: Number) -> Decimal:
    return to_decimal(value).quantize(UNIT_COST_QUANT, rounding=ROUND_HALF_UP)


def quantize_quantity(value: Number) -> Decimal:
    return to_decimal(value).quantize(QUANTITY_QUANT, rounding=ROUND_HALF_UP)


def quantize_multiplier(value: Number) -> Decimal:
    return to_decimal(value).quantize(MULTIPLIER_QUANT, rounding=ROUND_HALF_UP)


def quantize_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def quantize_percent(value: Number) -> Decimal:
    return to_decimal(value).quantize(PERCENT_QUANT, rounding=ROUND_HALF_UP)


def percentage_change(old: Decimal, new: Decimal) -> Decimal:
    """
    Percentage change from old to new, 0 when old is not positive.

    Examples:
        >>> percentage_change(Decimal("5"), Decimal("6"))
        Decimal('20.0000')
    """
    if old <= 0:
        return quantize_percent(ZERO)
    return quantize_percent((new - old) / old * 100)


def cost_to_string(value: Union[Number, None]) -> str:
    """
    Convert a cost value to a 2-decimal string format.

    This is the display format for costs in CLI output and JSON reports.

    Args:
        value: Cost value (Decimal, float, int, str, or None)

    Returns:
        String formatted as "12.34" (2 decimal places).
        Returns "0.00" if value is None.

    Examples:
        >>> cost_to_string(Decimal("12.345"))
        '12.35'
        >>> cost_to_string(None)
        '0.00'
    """
    if value is None:
        return "0.00"

    decimal_value = Decimal(str(value))
    rounded = decimal_value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return str(rounded)
