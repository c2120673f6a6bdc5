"""
Tests for Variation Service.

Tests cover:
- Yield percentage and cost of trimmed and hydrated variations
- Invalid inputs and unit classes
- Deletion and the has_variations flag
- Cost following the parent ingredient
"""

from decimal import Decimal

import pytest

from menu_costing.models import ItemRef
from menu_costing.services import (
    ingredient_service,
    recipe_service,
    variation_service,
)
from menu_costing.services.exceptions import (
    IncompatibleMeasurementClass,
    InvalidYieldInput,
    ItemInUse,
    ValidationError,
)


@pytest.fixture
def onion(workspace, units):
    return ingredient_service.create_ingredient(
        workspace.id, "Onion", "weight", units.kg.id, price=Decimal("4")
    )


def peel(onion, units, **kwargs):
    return variation_service.upsert_variation(
        onion.id, "Peeled", 1, units.kg.id, 800, units.g.id, **kwargs
    )


class TestUpsertVariation:
    def test_trimmed_yield_raises_cost(self, onion, units):
        result = peel(onion, units)

        variation = variation_service.get_variations(onion.id)[0]
        assert variation.yield_percentage == Decimal("80")
        assert result.value == Decimal("0.005")
        assert ingredient_service.get_ingredient(onion.id).has_variations is True

    def test_hydrated_yield_above_hundred(self, workspace, units):
        rice = ingredient_service.create_ingredient(
            workspace.id, "Rice", "weight", units.kg.id, price=Decimal("4")
        )
        result = variation_service.upsert_variation(
            rice.id, "Cooked", 100, units.g.id, 250, units.g.id
        )
        assert variation_service.get_variations(rice.id)[0].yield_percentage == Decimal("250")
        assert result.value == Decimal("0.0016")

    def test_update_existing(self, onion, units):
        created = peel(onion, units)
        updated = variation_service.upsert_variation(
            onion.id, "Peeled", 1, units.kg.id, 500, units.g.id, variation_id=created.entity_id
        )
        assert updated.entity_id == created.entity_id
        assert updated.value == Decimal("0.008")
        assert len(variation_service.get_variations(onion.id)) == 1

    def test_zero_input_rejected(self, onion, units):
        with pytest.raises(InvalidYieldInput):
            variation_service.upsert_variation(onion.id, "Peeled", 0, units.kg.id, 800, units.g.id)

    def test_zero_output_rejected(self, onion, units):
        with pytest.raises(ValidationError, match="Output Quantity"):
            variation_service.upsert_variation(onion.id, "Peeled", 1, units.kg.id, 0, units.g.id)

    def test_yield_from_stored_quantities(self, onion, units):
        result = variation_service.upsert_variation(
            onion.id, "Shaved", Decimal("0.0000015"), units.kg.id, Decimal("0.001"), units.g.id
        )

        (variation,) = variation_service.get_variations(onion.id)
        assert variation.input_quantity == Decimal("0.000002")
        assert variation.output_quantity == Decimal("0.001")
        assert variation.yield_percentage == Decimal("50")
        assert result.value == Decimal("0.008")

    def test_input_below_stored_scale_rejected(self, onion, units):
        with pytest.raises(InvalidYieldInput):
            variation_service.upsert_variation(
                onion.id, "Peeled", Decimal("0.0000004"), units.kg.id, 800, units.g.id
            )

    def test_output_below_stored_scale_rejected(self, onion, units):
        with pytest.raises(ValidationError, match="at least 0.000001"):
            variation_service.upsert_variation(
                onion.id, "Peeled", 1, units.kg.id, Decimal("0.0000004"), units.g.id
            )

    def test_unit_of_other_class_rejected(self, onion, units):
        with pytest.raises(IncompatibleMeasurementClass):
            variation_service.upsert_variation(onion.id, "Juice", 1, units.kg.id, 300, units.ml.id)

    def test_follows_parent_price(self, onion, units):
        created = peel(onion, units)
        result = ingredient_service.set_manual_price(onion.id, Decimal("8"))

        assert result.cascade.updated[ItemRef.variation(created.entity_id)] == Decimal("0.01")


class TestDeleteVariation:
    def test_last_deletion_clears_flag(self, onion, units):
        created = peel(onion, units)
        variation_service.delete_variation(created.entity_id)

        assert variation_service.get_variations(onion.id) == []
        assert ingredient_service.get_ingredient(onion.id).has_variations is False

    def test_in_use_rejected(self, workspace, onion, units):
        created = peel(onion, units)
        salsa = recipe_service.create_recipe(workspace.id, "Salsa", 1, units.kg.id)
        recipe_service.upsert_recipe_item(
            salsa.id, ItemRef.variation(created.entity_id), 200, units.g.id
        )
        with pytest.raises(ItemInUse):
            variation_service.delete_variation(created.entity_id)

    def test_ingredient_delete_blocked_by_variation_use(self, workspace, onion, units):
        created = peel(onion, units)
        salsa = recipe_service.create_recipe(workspace.id, "Salsa", 1, units.kg.id)
        recipe_service.upsert_recipe_item(
            salsa.id, ItemRef.variation(created.entity_id), 200, units.g.id
        )
        with pytest.raises(ItemInUse):
            ingredient_service.delete_ingredient(onion.id)
