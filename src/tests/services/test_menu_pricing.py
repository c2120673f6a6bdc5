"""
Tests for the menu pricing calculator.

Tests cover:
- Fee and apportionment arithmetic for each policy
- Margin percentage at zero sale price
- Suggested prices and unreachable margins

These tests work on transient Menu objects; nothing touches the database.
"""

from decimal import Decimal

import pytest

from menu_costing.models import ApportionmentType, FeeType, Menu, MenuFee
from menu_costing.services import menu_pricing
from menu_costing.services.exceptions import InvalidMargin


def make_menu(apportionment_type=ApportionmentType.PERCENTAGE_OF_SALE, value=None, fees=()):
    menu = Menu(
        name="Test",
        apportionment_type=apportionment_type,
        apportionment_value=Decimal(str(value)) if value is not None else None,
    )
    menu.fees = [
        MenuFee(name=f"fee {i}", fee_type=fee_type, value=Decimal(str(amount)), is_active=active)
        for i, (fee_type, amount, active) in enumerate(fees)
    ]
    return menu


CARD_FEES = [(FeeType.PERCENTAGE, 10, True), (FeeType.FIXED, 1, True)]


class TestPrice:
    def test_full_breakdown(self):
        menu = make_menu(value=5, fees=CARD_FEES)
        result = menu_pricing.price(menu, Decimal("10"), Decimal("40"), Decimal("0"))

        assert result.fees_cost == Decimal("5")
        assert result.apportioned_fixed_cost == Decimal("2")
        assert result.total_cost == Decimal("17")
        assert result.margin_value == Decimal("23")
        assert result.margin_percentage == Decimal("57.5")

    def test_inactive_fee_ignored(self):
        menu = make_menu(fees=[(FeeType.FIXED, 3, False), (FeeType.FIXED, 1, True)])
        assert menu_pricing.price(menu, 10, 20, 0).fees_cost == Decimal("1")

    def test_fixed_per_product(self):
        menu = make_menu(ApportionmentType.FIXED_PER_PRODUCT, 2.5)
        result = menu_pricing.price(menu, 10, 20, Decimal("9999"))
        assert result.apportioned_fixed_cost == Decimal("2.5")

    def test_proportional_to_sales(self):
        menu = make_menu(ApportionmentType.PROPORTIONAL_TO_SALES, 1000)
        result = menu_pricing.price(menu, 10, 20, Decimal("3000"))
        assert result.apportioned_fixed_cost == Decimal("3")

    @pytest.mark.parametrize("value", [None, 0])
    def test_unset_policy_apportions_nothing(self, value):
        menu = make_menu(ApportionmentType.PROPORTIONAL_TO_SALES, value)
        assert menu_pricing.price(menu, 10, 20, Decimal("3000")).apportioned_fixed_cost == 0

    def test_zero_sale_price(self):
        result = menu_pricing.price(make_menu(), 10, 0, 0)
        assert result.margin_value == Decimal("-10")
        assert result.margin_percentage == Decimal("0")

    def test_negative_margin(self):
        result = menu_pricing.price(make_menu(), 12, 10, 0)
        assert result.margin_percentage == Decimal("-20")


class TestSuggestPrice:
    def test_reaches_target_margin(self):
        menu = make_menu(value=5, fees=CARD_FEES)
        suggested = menu_pricing.suggest_price(menu, 10, 30, 0)

        assert suggested == Decimal("20.0000")
        assert menu_pricing.price(menu, 10, suggested, 0).margin_percentage == Decimal("30")

    def test_flat_apportionment_added_to_cost(self):
        menu = make_menu(ApportionmentType.FIXED_PER_PRODUCT, 2)
        assert menu_pricing.suggest_price(menu, 10, 40, 0) == Decimal("20")

    def test_unreachable_margin(self):
        menu = make_menu(fees=[(FeeType.PERCENTAGE, 10, True)])
        with pytest.raises(InvalidMargin):
            menu_pricing.suggest_price(menu, 10, 90, 0)
