"""
Tests for the cost cascade.

Tests cover:
- Ingredient price changes reaching recipes, products and listings
- Diamond-shaped graphs converging in one run
- Recipes used in multiples of their yield unit
- Completeness (unrelated items untouched) and idempotence
"""

from decimal import Decimal

import pytest

from menu_costing.models import ItemRef
from menu_costing.services import (
    cascade_service,
    ingredient_service,
    menu_service,
    product_service,
    recipe_service,
    workspace_service,
)
from menu_costing.services.exceptions import WorkspaceNotFound


@pytest.fixture
def combo(workspace, units, pizza_chain):
    """Product reaching Flour directly and through Dough."""
    combo = product_service.create_product(workspace.id, "Combo")
    product_service.upsert_product_composition(
        combo.id, ItemRef.ingredient(pizza_chain.flour.id), 100, units.g.id
    )
    product_service.upsert_product_composition(
        combo.id, ItemRef.recipe(pizza_chain.dough.id), 1, units.un.id
    )
    return combo


class TestPropagation:
    def test_price_change_reaches_every_level(self, pizza_chain):
        result = ingredient_service.set_manual_price(pizza_chain.flour.id, Decimal("6"))

        dough = recipe_service.get_recipe(pizza_chain.dough.id)
        assert dough.total_cost == Decimal("6.00")
        assert dough.cost_per_portion == Decimal("3.00")
        assert product_service.get_product(pizza_chain.pizza.id).base_cost == Decimal("3.00")
        assert list(result.cascade.updated) == [
            ItemRef.recipe(pizza_chain.dough.id),
            ItemRef.product(pizza_chain.pizza.id),
        ]

    def test_line_costs_refreshed(self, pizza_chain):
        ingredient_service.set_manual_price(pizza_chain.flour.id, Decimal("6"))
        (line,) = recipe_service.get_recipe_items(pizza_chain.dough.id)
        assert line.calculated_cost == Decimal("6.00")

    def test_diamond_converges(self, pizza_chain, combo):
        assert product_service.get_product(combo.id).base_cost == Decimal("3.00")

        result = ingredient_service.set_manual_price(pizza_chain.flour.id, Decimal("6"))

        assert product_service.get_product(combo.id).base_cost == Decimal("3.60")
        updated = list(result.cascade.updated)
        assert updated.index(ItemRef.recipe(pizza_chain.dough.id)) < updated.index(
            ItemRef.product(combo.id)
        )

    def test_recipe_in_dozens(self, workspace, units, pizza_chain):
        tray = product_service.create_product(workspace.id, "Calzone Tray")
        product_service.upsert_product_composition(
            tray.id, ItemRef.recipe(pizza_chain.dough.id), 1, units.dz.id
        )
        ingredient_service.set_manual_price(pizza_chain.flour.id, Decimal("6"))
        assert product_service.get_product(tray.id).base_cost == Decimal("36.00")

    def test_unrelated_items_untouched(self, workspace, units, pizza_chain):
        salt = ingredient_service.create_ingredient(
            workspace.id, "Salt", "weight", units.kg.id, price=2
        )
        brine = recipe_service.create_recipe(workspace.id, "Brine", 1, units.l.id)
        recipe_service.upsert_recipe_item(brine.id, ItemRef.ingredient(salt.id), 50, units.g.id)

        result = ingredient_service.set_manual_price(pizza_chain.flour.id, Decimal("6"))

        assert ItemRef.recipe(brine.id) not in result.cascade.updated
        assert recipe_service.get_recipe(brine.id).total_cost == Decimal("0.10")

    def test_listings_repriced(self, pizza_chain, menu):
        listing = menu_service.upsert_menu_item(
            menu.id, ItemRef.product(pizza_chain.pizza.id), Decimal("10")
        )
        result = ingredient_service.set_manual_price(pizza_chain.flour.id, Decimal("6"))

        assert result.cascade.repriced_menu_items == [listing.entity_id]
        (menu_item,) = menu_service.get_menu_items(menu.id)
        assert menu_item.total_cost == Decimal("3.00")
        assert menu_item.margin_percentage == Decimal("70")

    def test_labor_rate_reaches_products(self, workspace, pizza_chain):
        recipe_service.set_recipe_attributes(pizza_chain.dough.id, prep_time_minutes=60)
        workspace_service.set_labor_cost_per_hour(workspace.id, Decimal("30"))

        dough = recipe_service.get_recipe(pizza_chain.dough.id)
        assert dough.labor_cost == Decimal("30.00")
        assert dough.cost_per_portion == Decimal("17.50")
        assert product_service.get_product(pizza_chain.pizza.id).base_cost == Decimal("17.50")


class TestRecalculateWorkspace:
    def test_idempotent(self, workspace, pizza_chain, combo):
        before = {
            "dough": recipe_service.get_recipe(pizza_chain.dough.id).cost_per_portion,
            "pizza": product_service.get_product(pizza_chain.pizza.id).base_cost,
            "combo": product_service.get_product(combo.id).base_cost,
        }

        first = cascade_service.recalculate_workspace(workspace.id)
        second = cascade_service.recalculate_workspace(workspace.id)

        assert first.updated == second.updated
        assert first.updated[ItemRef.recipe(pizza_chain.dough.id)] == before["dough"]
        assert first.updated[ItemRef.product(pizza_chain.pizza.id)] == before["pizza"]
        assert first.updated[ItemRef.product(combo.id)] == before["combo"]

    def test_includes_empty_recipes(self, workspace, units):
        empty = recipe_service.create_recipe(workspace.id, "Empty", 1, units.un.id)
        result = cascade_service.recalculate_workspace(workspace.id)
        assert result.updated[ItemRef.recipe(empty.id)] == Decimal("0")
        assert result.source is None

    def test_unknown_workspace(self, test_db):
        with pytest.raises(WorkspaceNotFound):
            cascade_service.recalculate_workspace(99)
