"""
Tests for Size Service.

Tests cover:
- Size group creation rules (options, reference, multipliers)
- Option edits, reference moves and listing repricing
- Deletion guards
- Attaching products to size groups
"""

from decimal import Decimal

import pytest

from menu_costing.models import ItemRef
from menu_costing.services import menu_service, product_service, size_service, workspace_service
from menu_costing.services.exceptions import (
    ItemInUse,
    SizeGroupNotFound,
    SizeOptionNotFound,
    ValidationError,
)


def options_by_name(size_group_id):
    return {o.name: o for o in size_service.get_size_group(size_group_id).options}


class TestCreateSizeGroup:
    def test_options_kept_in_order(self, workspace):
        group = size_service.create_size_group(
            workspace.id,
            "Drinks",
            [
                {"name": " Small ", "multiplier": "0.75"},
                {"name": "Medium", "multiplier": 1, "is_reference": True},
                {"name": "Large", "multiplier": "1.25"},
            ],
        )
        assert [o.name for o in group.options] == ["Small", "Medium", "Large"]
        assert [o.sort_order for o in group.options] == [0, 1, 2]
        assert group.reference_option.name == "Medium"
        assert group.options[0].multiplier == Decimal("0.75")

    def test_needs_an_option(self, workspace):
        with pytest.raises(ValidationError, match="at least one option"):
            size_service.create_size_group(workspace.id, "Empty", [])

    @pytest.mark.parametrize("flags", [(False, False), (True, True)])
    def test_exactly_one_reference(self, workspace, flags):
        options = [
            {"name": "Small", "multiplier": 1, "is_reference": flags[0]},
            {"name": "Large", "multiplier": 2, "is_reference": flags[1]},
        ]
        with pytest.raises(ValidationError, match="Exactly one reference"):
            size_service.create_size_group(workspace.id, "Drinks", options)

    @pytest.mark.parametrize("multiplier", [0, -1, Decimal("0.00004"), "abc"])
    def test_multiplier_must_stay_positive(self, workspace, multiplier):
        options = [{"name": "Only", "multiplier": multiplier, "is_reference": True}]
        with pytest.raises(ValidationError, match="Multiplier"):
            size_service.create_size_group(workspace.id, "Drinks", options)

    def test_repeated_option_name(self, workspace):
        options = [
            {"name": "Large", "multiplier": 1, "is_reference": True},
            {"name": "Large", "multiplier": 2},
        ]
        with pytest.raises(ValidationError, match="repeated"):
            size_service.create_size_group(workspace.id, "Drinks", options)

    def test_blank_name(self, workspace):
        with pytest.raises(ValidationError, match="Size Group Name"):
            size_service.create_size_group(
                workspace.id, " ", [{"name": "One", "multiplier": 1, "is_reference": True}]
            )

    def test_listed_by_workspace(self, workspace, pizza_sizes):
        assert [g.name for g in size_service.get_size_groups(workspace.id)] == ["Pizza sizes"]

    def test_rename(self, pizza_sizes):
        size_service.update_size_group(pizza_sizes.group.id, name="Pizzas")
        assert size_service.get_size_group(pizza_sizes.group.id).name == "Pizzas"


class TestUpsertSizeOption:
    def test_new_option_goes_last(self, pizza_sizes):
        result = size_service.upsert_size_option(pizza_sizes.group.id, "Family", Decimal("2.2"))
        assert result.value == Decimal("2.2")
        options = size_service.get_size_group(pizza_sizes.group.id).options
        assert [o.name for o in options] == ["Medium", "Large", "Family"]

    def test_multiplier_change_reprices_listing(self, menu, pizza_chain, pizza_sizes):
        listed = menu_service.upsert_menu_item(
            menu.id, ItemRef.product(pizza_chain.pizza.id), 10, size_option_id=pizza_sizes.large.id
        )

        result = size_service.upsert_size_option(
            pizza_sizes.group.id, "Large", 2, option_id=pizza_sizes.large.id
        )

        assert result.cascade.repriced_menu_items == [listed.entity_id]
        (menu_item,) = menu_service.get_menu_items(menu.id)
        assert menu_item.total_cost == Decimal("5")
        assert menu_item.margin_percentage == Decimal("50")

    def test_rename_only_reprices_nothing(self, menu, pizza_chain, pizza_sizes):
        menu_service.upsert_menu_item(
            menu.id, ItemRef.product(pizza_chain.pizza.id), 10, size_option_id=pizza_sizes.large.id
        )
        result = size_service.upsert_size_option(
            pizza_sizes.group.id, "Big", Decimal("1.5"), option_id=pizza_sizes.large.id
        )
        assert result.cascade.repriced_menu_items == []

    def test_marking_reference_moves_it(self, pizza_sizes):
        size_service.upsert_size_option(
            pizza_sizes.group.id, "Large", Decimal("1.5"), is_reference=True,
            option_id=pizza_sizes.large.id,
        )
        options = options_by_name(pizza_sizes.group.id)
        assert options["Large"].is_reference is True
        assert options["Medium"].is_reference is False

    def test_unmarking_only_reference_rejected(self, pizza_sizes):
        with pytest.raises(ValidationError, match="reference size"):
            size_service.upsert_size_option(
                pizza_sizes.group.id, "Medium", 1, option_id=pizza_sizes.medium.id
            )

    def test_duplicate_name_rejected(self, pizza_sizes):
        with pytest.raises(ValidationError, match="already exists"):
            size_service.upsert_size_option(pizza_sizes.group.id, "Large", 3)

    def test_option_of_other_group_rejected(self, workspace, pizza_sizes):
        cups = size_service.create_size_group(
            workspace.id, "Cups", [{"name": "Cup", "multiplier": 1, "is_reference": True}]
        )
        with pytest.raises(ValidationError, match="does not belong"):
            size_service.upsert_size_option(
                cups.id, "Large", 2, option_id=pizza_sizes.large.id
            )

    def test_unknown_option(self, pizza_sizes):
        with pytest.raises(SizeOptionNotFound):
            size_service.upsert_size_option(pizza_sizes.group.id, "Large", 2, option_id=999)


class TestDeletion:
    def test_delete_option(self, pizza_sizes):
        size_service.delete_size_option(pizza_sizes.large.id)
        assert list(options_by_name(pizza_sizes.group.id)) == ["Medium"]

    def test_listed_option_in_use(self, menu, pizza_chain, pizza_sizes):
        menu_service.upsert_menu_item(
            menu.id, ItemRef.product(pizza_chain.pizza.id), 10, size_option_id=pizza_sizes.large.id
        )
        with pytest.raises(ItemInUse) as exc_info:
            size_service.delete_size_option(pizza_sizes.large.id)
        assert exc_info.value.deps == {"menu_items": 1}

    def test_reference_option_kept(self, pizza_sizes):
        with pytest.raises(ValidationError, match="reference size"):
            size_service.delete_size_option(pizza_sizes.medium.id)

    def test_last_option_kept(self, workspace):
        group = size_service.create_size_group(
            workspace.id, "Cups", [{"name": "Cup", "multiplier": 1, "is_reference": True}]
        )
        with pytest.raises(ValidationError, match="last option"):
            size_service.delete_size_option(group.options[0].id)

    def test_group_used_by_product(self, pizza_sizes):
        with pytest.raises(ItemInUse) as exc_info:
            size_service.delete_size_group(pizza_sizes.group.id)
        assert exc_info.value.deps == {"products": 1}

    def test_delete_unused_group(self, workspace):
        group = size_service.create_size_group(
            workspace.id, "Cups", [{"name": "Cup", "multiplier": 1, "is_reference": True}]
        )
        size_service.delete_size_group(group.id)
        with pytest.raises(SizeGroupNotFound):
            size_service.get_size_group(group.id)


class TestProductSizeGroup:
    def test_attach_at_creation(self, workspace, pizza_sizes):
        calzone = product_service.create_product(
            workspace.id, "Calzone", size_group_id=pizza_sizes.group.id
        )
        assert calzone.size_group_id == pizza_sizes.group.id

    def test_group_of_other_workspace_rejected(self, pizza_sizes):
        other = workspace_service.create_workspace("Other", "other")
        with pytest.raises(ValidationError, match="another workspace"):
            product_service.create_product(other.id, "Pizza", size_group_id=pizza_sizes.group.id)

    def test_unknown_group(self, workspace):
        with pytest.raises(SizeGroupNotFound):
            product_service.create_product(workspace.id, "Pizza", size_group_id=999)

    def test_detach(self, pizza_chain, pizza_sizes):
        product = product_service.set_product_size_group(pizza_chain.pizza.id, None)
        assert product.size_group_id is None

    def test_change_blocked_by_sized_listing(self, menu, pizza_chain, pizza_sizes):
        menu_service.upsert_menu_item(
            menu.id, ItemRef.product(pizza_chain.pizza.id), 10, size_option_id=pizza_sizes.large.id
        )
        with pytest.raises(ValidationError, match="listed at 1 size"):
            product_service.set_product_size_group(pizza_chain.pizza.id, None)
