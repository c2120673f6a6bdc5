"""
Input validation functions for the menu costing engine.

This module provides validation functions for all service inputs:
- Numeric validation (positive, non-negative, ranges) over Decimal values
- String validation (length, required fields)
- Enum membership (measurement classes, fee and apportionment kinds)
- Record-level validators used by the services before any write

Every validator returns a tuple: (is_valid, error_message) for single
fields, (is_valid, list_of_errors) for whole records.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional, Tuple

from ..models.enums import ApportionmentType, MeasurementClass
from .constants import (
    MAX_ABBREVIATION_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    MULTIPLIER_QUANT,
    QUANTITY_QUANT,
    ERROR_REQUIRED_FIELD,
    ERROR_INVALID_NUMBER,
    ERROR_INVALID_POSITIVE,
    ERROR_INVALID_NON_NEGATIVE,
)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise TypeError("not a number")
    result = Decimal(str(value))
    if not result.is_finite():
        raise InvalidOperation("not a finite number")
    return result


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """A blank or whitespace-only string counts as missing."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_string_length(
    value: Optional[str], max_length: int, field_name: str = "Field"
) -> Tuple[bool, str]:
    if value is not None and len(value) > max_length:
        return False, f"{field_name}: At most {max_length} characters allowed"
    return True, ""


def validate_positive_number(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """
    Check that ``value`` is a finite number strictly above zero.

    Decimals, ints, floats and numeric strings are accepted; booleans and
    None are reported as not numeric.
    """
    try:
        number = _to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if number <= 0:
        return False, f"{field_name}: {ERROR_INVALID_POSITIVE}"
    return True, ""


def validate_quantity(value: Any, field_name: str = "Quantity") -> Tuple[bool, str]:
    """
    Positive number that stays positive once rounded to the stored scale.

    Quantities are kept at QUANTITY_QUANT; anything smaller would be stored
    as zero.
    """
    is_valid, error = validate_positive_number(value, field_name)
    if not is_valid:
        return is_valid, error
    if _to_decimal(value).quantize(QUANTITY_QUANT, rounding=ROUND_HALF_UP) <= 0:
        return False, f"{field_name}: Must be at least {QUANTITY_QUANT}"
    return True, ""


def validate_non_negative_number(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """Like validate_positive_number(), but zero passes."""
    try:
        number = _to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if number < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    return True, ""


def validate_number_range(
    value: Any, min_value, max_value, field_name: str = "Field", include_max: bool = True
) -> Tuple[bool, str]:
    """
    Check ``min_value <= value <= max_value``.

    With include_max=False the upper bound is exclusive, as for margins,
    which must stay below 100%.
    """
    try:
        number = _to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"

    too_high = number > max_value if include_max else number >= max_value
    if number < min_value or too_high:
        upper = "" if include_max else " (exclusive)"
        return False, f"{field_name}: Must be between {min_value} and {max_value}{upper}"
    return True, ""


def validate_choice(value: Any, choices: Iterable, field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a value is one of the allowed enum values.

    Accepts either enum members or their string values.

    Returns:
        Tuple of (is_valid, error_message)
    """
    allowed = [getattr(choice, "value", choice) for choice in choices]
    if getattr(value, "value", value) not in allowed:
        return False, f"{field_name}: Must be one of {', '.join(str(a) for a in allowed)}"
    return True, ""


def validate_name(value: Optional[str], field_name: str = "Name") -> Tuple[bool, str]:
    """Required string no longer than MAX_NAME_LENGTH."""
    is_valid, error = validate_required_string(value, field_name)
    if not is_valid:
        return is_valid, error
    return validate_string_length(value, MAX_NAME_LENGTH, field_name)


def _collect(errors: List[str], result: Tuple[bool, str]) -> None:
    is_valid, error = result
    if not is_valid:
        errors.append(error)


def validate_unit_data(
    name: Optional[str], abbreviation: Optional[str], measurement_class: Any, conversion_factor: Any
) -> Tuple[bool, List[str]]:
    """
    Validate all fields for a unit.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []
    _collect(errors, validate_name(name, "Unit Name"))
    _collect(errors, validate_required_string(abbreviation, "Abbreviation"))
    _collect(errors, validate_string_length(abbreviation, MAX_ABBREVIATION_LENGTH, "Abbreviation"))
    _collect(errors, validate_choice(measurement_class, MeasurementClass, "Measurement Class"))
    _collect(errors, validate_positive_number(conversion_factor, "Conversion Factor"))
    return len(errors) == 0, errors


def validate_entry_data(quantity: Any, total_price: Any) -> Tuple[bool, List[str]]:
    """
    Validate the numeric fields of a purchase entry.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []
    _collect(errors, validate_quantity(quantity, "Quantity"))
    _collect(errors, validate_non_negative_number(total_price, "Total Price"))
    return len(errors) == 0, errors


def validate_recipe_data(
    name: Optional[str],
    yield_quantity: Any,
    prep_time_minutes: Any = None,
    description: Optional[str] = None,
) -> Tuple[bool, List[str]]:
    """
    Validate all fields for a recipe.

    Yield quantity is not checked here: a non-positive yield is reported
    as InvalidYield by the recipe service.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []
    _collect(errors, validate_name(name, "Recipe Name"))
    if yield_quantity is None:
        errors.append(f"Yield Quantity: {ERROR_REQUIRED_FIELD}")
    if prep_time_minutes is not None:
        _collect(errors, validate_non_negative_number(prep_time_minutes, "Prep Time"))
    _collect(errors, validate_string_length(description, MAX_DESCRIPTION_LENGTH, "Description"))
    return len(errors) == 0, errors


def validate_menu_data(
    name: Optional[str],
    apportionment_type: Any,
    apportionment_value: Any = None,
    target_margin: Any = None,
) -> Tuple[bool, List[str]]:
    """
    Validate all fields for a menu.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []
    _collect(errors, validate_name(name, "Menu Name"))
    _collect(errors, validate_choice(apportionment_type, ApportionmentType, "Apportionment Type"))
    if apportionment_value is not None:
        _collect(errors, validate_non_negative_number(apportionment_value, "Apportionment Value"))
    if target_margin is not None:
        _collect(
            errors,
            validate_number_range(target_margin, 0, 100, "Target Margin", include_max=False),
        )
    return len(errors) == 0, errors


def validate_multiplier(value: Any, field_name: str = "Multiplier") -> Tuple[bool, str]:
    """Positive number that stays positive at MULTIPLIER_QUANT."""
    is_valid, error = validate_positive_number(value, field_name)
    if not is_valid:
        return is_valid, error
    if _to_decimal(value).quantize(MULTIPLIER_QUANT, rounding=ROUND_HALF_UP) <= 0:
        return False, f"{field_name}: Must be at least {MULTIPLIER_QUANT}"
    return True, ""


def validate_size_options(options: Any) -> Tuple[bool, List[str]]:
    """
    Validate the options of a size group.

    Each option is a mapping with "name", "multiplier" and an optional
    "is_reference". A group needs at least one option, distinct names and
    exactly one reference option.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []
    if not options:
        return False, ["Options: A size group needs at least one option"]

    names = set()
    for position, option in enumerate(options, start=1):
        _collect(errors, validate_name(option.get("name"), f"Option {position} Name"))
        _collect(errors, validate_multiplier(option.get("multiplier"), f"Option {position} Multiplier"))
        name = (option.get("name") or "").strip()
        if name in names:
            errors.append(f"Option {position} Name: '{name}' is repeated")
        names.add(name)

    references = sum(1 for option in options if option.get("is_reference"))
    if references != 1:
        errors.append(f"Options: Exactly one reference option is required, got {references}")
    return len(errors) == 0, errors
