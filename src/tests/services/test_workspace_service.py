"""
Tests for Workspace Service.

Tests cover:
- Workspace creation and lookup
- Labor rate changes recomputing recipes
- Fixed cost CRUD and the active total
"""

from decimal import Decimal

import pytest

from menu_costing.models import ItemRef
from menu_costing.services import recipe_service, workspace_service
from menu_costing.services.exceptions import (
    DatabaseError,
    FixedCostNotFound,
    ValidationError,
    WorkspaceNotFound,
)


class TestWorkspace:
    def test_create_and_get(self, test_db):
        created = workspace_service.create_workspace("Cafe", "cafe", Decimal("25"))
        workspace = workspace_service.get_workspace(created.id)
        assert workspace.slug == "cafe"
        assert workspace.labor_cost_per_hour == Decimal("25")

    def test_blank_name_rejected(self, test_db):
        with pytest.raises(ValidationError):
            workspace_service.create_workspace("  ", "cafe")

    def test_duplicate_slug_is_database_error(self, workspace):
        with pytest.raises(DatabaseError):
            workspace_service.create_workspace("Other", workspace.slug)

    def test_unknown_workspace(self, test_db):
        with pytest.raises(WorkspaceNotFound):
            workspace_service.get_workspace(42)


class TestLaborCost:
    def test_labor_rate_recomputes_recipes(self, workspace, units, pizza_chain):
        recipe_service.set_recipe_attributes(pizza_chain.dough.id, prep_time_minutes=60)
        # No rate yet: labor is free
        assert recipe_service.get_recipe(pizza_chain.dough.id).cost_per_portion == Decimal("2.50")

        result = workspace_service.set_labor_cost_per_hour(workspace.id, Decimal("30"))

        dough = recipe_service.get_recipe(pizza_chain.dough.id)
        assert dough.labor_cost == Decimal("30.00")
        assert dough.cost_per_portion == Decimal("17.50")
        assert result.cascade.updated[ItemRef.recipe(dough.id)] == Decimal("17.50")
        assert result.cascade.updated[ItemRef.product(pizza_chain.pizza.id)] == Decimal("17.50")

    def test_clearing_labor_rate(self, workspace, units, pizza_chain):
        workspace_service.set_labor_cost_per_hour(workspace.id, 30)
        recipe_service.set_recipe_attributes(pizza_chain.dough.id, prep_time_minutes=30)
        workspace_service.set_labor_cost_per_hour(workspace.id, None)
        dough = recipe_service.get_recipe(pizza_chain.dough.id)
        assert dough.labor_cost == Decimal("0")
        assert dough.cost_per_portion == Decimal("2.50")

    def test_negative_rate_rejected(self, workspace):
        with pytest.raises(ValidationError):
            workspace_service.set_labor_cost_per_hour(workspace.id, -1)


class TestFixedCosts:
    def test_active_total(self, workspace):
        workspace_service.create_fixed_cost(workspace.id, "Rent", Decimal("2000"))
        result = workspace_service.create_fixed_cost(workspace.id, "Power", Decimal("500"))
        workspace_service.create_fixed_cost(workspace.id, "Old", Decimal("99"), is_active=False)

        assert result.value == Decimal("2500")
        assert workspace_service.get_active_fixed_costs_total(workspace.id) == Decimal("2500")

    def test_update_and_delete(self, workspace):
        rent = workspace_service.create_fixed_cost(workspace.id, "Rent", 2000)
        result = workspace_service.update_fixed_cost(rent.entity_id, value=1500)
        assert result.value == Decimal("1500")

        result = workspace_service.update_fixed_cost(rent.entity_id, is_active=False)
        assert result.value == Decimal("0")

        workspace_service.delete_fixed_cost(rent.entity_id)
        assert workspace_service.get_fixed_costs(workspace.id) == []

    def test_missing_fixed_cost(self, workspace):
        with pytest.raises(FixedCostNotFound):
            workspace_service.delete_fixed_cost(404)

    def test_negative_value_rejected(self, workspace):
        with pytest.raises(ValidationError):
            workspace_service.create_fixed_cost(workspace.id, "Rent", -10)
