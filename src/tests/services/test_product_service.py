"""
Tests for Product Service.

Tests cover:
- Product base cost from compositions of every kind
- Counted product lines and optional units
- Self reference, cycles and unit validation
- Deletion guards and product updates
"""

from decimal import Decimal

import pytest

from menu_costing.models import ItemRef
from menu_costing.services import menu_service, product_service
from menu_costing.services.exceptions import (
    CircularReference,
    IncompatibleMeasurementClass,
    ItemInUse,
    ProductNotFound,
    SelfReference,
    ValidationError,
)


class TestProductCost:
    def test_recipe_portion(self, pizza_chain):
        assert product_service.get_product(pizza_chain.pizza.id).base_cost == Decimal("2.50")

    def test_recipe_in_multiple_of_yield_unit(self, workspace, units, pizza_chain):
        calzone = product_service.create_product(workspace.id, "Calzone Tray")
        result = product_service.upsert_product_composition(
            calzone.id, ItemRef.recipe(pizza_chain.dough.id), 1, units.dz.id
        )
        assert result.value == Decimal("30.00")

    def test_ingredient_without_unit_is_base_quantity(self, workspace, flour):
        bag = product_service.create_product(workspace.id, "Flour Bag")
        result = product_service.upsert_product_composition(
            bag.id, ItemRef.ingredient(flour.id), 100
        )
        assert result.value == Decimal("0.50")

    def test_product_counted(self, workspace, pizza_chain):
        meal = product_service.create_product(workspace.id, "Family Meal")
        result = product_service.upsert_product_composition(
            meal.id, ItemRef.product(pizza_chain.pizza.id), 2
        )
        assert result.value == Decimal("5.00")

    def test_mixed_lines_sum(self, workspace, units, pizza_chain):
        combo = product_service.create_product(workspace.id, "Combo")
        product_service.upsert_product_composition(
            combo.id, ItemRef.ingredient(pizza_chain.flour.id), 100, units.g.id
        )
        result = product_service.upsert_product_composition(
            combo.id, ItemRef.recipe(pizza_chain.dough.id), 1, units.un.id
        )
        assert result.value == Decimal("3.00")
        assert len(product_service.get_compositions(combo.id)) == 2

    def test_delete_composition_recomputes(self, pizza_chain):
        (line,) = product_service.get_compositions(pizza_chain.pizza.id)
        result = product_service.delete_product_composition(line.id)
        assert result.value == Decimal("0")


class TestCompositionValidation:
    def test_product_line_with_unit_rejected(self, workspace, units, pizza_chain):
        meal = product_service.create_product(workspace.id, "Family Meal")
        with pytest.raises(ValidationError, match="take no unit"):
            product_service.upsert_product_composition(
                meal.id, ItemRef.product(pizza_chain.pizza.id), 2, units.un.id
            )

    def test_self_reference(self, pizza_chain):
        pizza = ItemRef.product(pizza_chain.pizza.id)
        with pytest.raises(SelfReference):
            product_service.upsert_product_composition(pizza.id, pizza, 1)

    def test_circular_reference(self, workspace, pizza_chain):
        meal = product_service.create_product(workspace.id, "Family Meal")
        product_service.upsert_product_composition(
            meal.id, ItemRef.product(pizza_chain.pizza.id), 2
        )
        with pytest.raises(CircularReference):
            product_service.upsert_product_composition(
                pizza_chain.pizza.id, ItemRef.product(meal.id), 1
            )

    def test_incompatible_unit(self, pizza_chain, units):
        with pytest.raises(IncompatibleMeasurementClass):
            product_service.upsert_product_composition(
                pizza_chain.pizza.id, ItemRef.ingredient(pizza_chain.flour.id), 1, units.l.id
            )

    @pytest.mark.parametrize("quantity", [0, Decimal("0.0000004")])
    def test_non_positive_quantity(self, pizza_chain, units, quantity):
        with pytest.raises(ValidationError, match="Quantity"):
            product_service.upsert_product_composition(
                pizza_chain.pizza.id, ItemRef.recipe(pizza_chain.dough.id), quantity, units.un.id
            )


class TestProductLifecycle:
    def test_update_product(self, pizza_chain):
        product_service.update_product(pizza_chain.pizza.id, name="Margherita", is_active=False)
        product = product_service.get_product(pizza_chain.pizza.id)
        assert product.name == "Margherita"
        assert product.is_active is False

    def test_delete_listed_product_rejected(self, pizza_chain, menu):
        menu_service.upsert_menu_item(menu.id, ItemRef.product(pizza_chain.pizza.id), 10)
        with pytest.raises(ItemInUse, match="menu items"):
            product_service.delete_product(pizza_chain.pizza.id)

    def test_delete_product(self, pizza_chain):
        product_service.delete_product(pizza_chain.pizza.id)
        with pytest.raises(ProductNotFound):
            product_service.get_product(pizza_chain.pizza.id)
