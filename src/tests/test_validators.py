"""
Tests for input validators.

Tests cover:
- Required strings and length limits
- Positive, non-negative and ranged numbers, quantities at the stored scale
- Enum choices
- Record validators for units, entries, recipes, menus and size options
"""

from decimal import Decimal

import pytest

from menu_costing.models import ApportionmentType, MeasurementClass
from menu_costing.utils.validators import (
    validate_choice,
    validate_entry_data,
    validate_menu_data,
    validate_multiplier,
    validate_name,
    validate_non_negative_number,
    validate_number_range,
    validate_positive_number,
    validate_quantity,
    validate_recipe_data,
    validate_required_string,
    validate_size_options,
    validate_unit_data,
)


class TestFieldValidators:
    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_required_string_missing(self, value):
        is_valid, error = validate_required_string(value, "Name")
        assert not is_valid
        assert error == "Name: This field is required"

    def test_name_too_long(self):
        is_valid, error = validate_name("x" * 201)
        assert not is_valid
        assert "200 characters" in error

    @pytest.mark.parametrize("value", [1, "0.5", Decimal("3"), 2.5])
    def test_positive_accepts(self, value):
        assert validate_positive_number(value) == (True, "")

    @pytest.mark.parametrize("value", [0, -1, "abc", None, True, "NaN", "Infinity"])
    def test_positive_rejects(self, value):
        assert validate_positive_number(value)[0] is False

    def test_non_negative_allows_zero(self):
        assert validate_non_negative_number(0) == (True, "")
        assert validate_non_negative_number(-0.01)[0] is False

    @pytest.mark.parametrize("value", ["0.000001", "0.0000005", Decimal("0.00015")])
    def test_quantity_accepts_stored_scale(self, value):
        assert validate_quantity(value) == (True, "")

    def test_quantity_rejects_what_rounds_to_zero(self):
        is_valid, error = validate_quantity(Decimal("0.0000004"), "Quantity")
        assert not is_valid
        assert error == "Quantity: Must be at least 0.000001"

    def test_range_exclusive_max(self):
        assert validate_number_range(99.99, 0, 100, include_max=False)[0] is True
        is_valid, error = validate_number_range(100, 0, 100, "Margin", include_max=False)
        assert not is_valid
        assert "(exclusive)" in error

    def test_choice_accepts_members_and_values(self):
        assert validate_choice("weight", MeasurementClass)[0] is True
        assert validate_choice(MeasurementClass.COUNT, MeasurementClass)[0] is True
        assert validate_choice("length", MeasurementClass)[0] is False


class TestRecordValidators:
    def test_unit_collects_all_errors(self):
        is_valid, errors = validate_unit_data("", "", "length", 0)
        assert not is_valid
        assert len(errors) == 4

    def test_entry(self):
        assert validate_entry_data(1, 0) == (True, [])
        is_valid, errors = validate_entry_data(0, -1)
        assert not is_valid
        assert len(errors) == 2

    def test_recipe_yield_required_but_not_range_checked(self):
        assert validate_recipe_data("Dough", 0)[0] is True
        is_valid, errors = validate_recipe_data("Dough", None, prep_time_minutes=-5)
        assert not is_valid
        assert len(errors) == 2

    def test_menu(self):
        assert validate_menu_data("Dine-in", ApportionmentType.FIXED_PER_PRODUCT, 2, 30)[0]
        is_valid, errors = validate_menu_data("Dine-in", "monthly", -1, 100)
        assert not is_valid
        assert len(errors) == 3

    def test_multiplier_at_stored_scale(self):
        assert validate_multiplier("0.0001")[0] is True
        is_valid, error = validate_multiplier(Decimal("0.00004"))
        assert not is_valid
        assert "0.0001" in error

    def test_size_options(self):
        options = [
            {"name": "Small", "multiplier": "0.8", "is_reference": True},
            {"name": "Large", "multiplier": "1.3"},
        ]
        assert validate_size_options(options) == (True, [])

        is_valid, errors = validate_size_options(
            [{"name": "", "multiplier": 0}, {"name": "Large", "multiplier": 1}]
        )
        assert not is_valid
        assert len(errors) == 3
