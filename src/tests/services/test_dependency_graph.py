"""
Tests for the dependency graph queries.

Tests cover:
- direct_dependents() and direct_components()
- would_create_cycle() for direct and deep cycles
- topological_order() with shared dependents
- find_references() and menu_items_listing()
"""

import pytest

from menu_costing.models import ItemRef
from menu_costing.services import (
    dependency_graph,
    menu_service,
    product_service,
    variation_service,
)
from menu_costing.services.database import session_scope


@pytest.fixture
def graph(workspace, units, pizza_chain):
    """pizza_chain plus a peeled variation and a Combo using Flour twice over."""
    peeled = variation_service.upsert_variation(
        pizza_chain.flour.id, "Sifted", 1, units.kg.id, 900, units.g.id
    )
    combo = product_service.create_product(workspace.id, "Combo")
    product_service.upsert_product_composition(
        combo.id, ItemRef.ingredient(pizza_chain.flour.id), 100, units.g.id
    )
    product_service.upsert_product_composition(combo.id, ItemRef.product(pizza_chain.pizza.id), 1)
    return {
        "flour": ItemRef.ingredient(pizza_chain.flour.id),
        "sifted": ItemRef.variation(peeled.entity_id),
        "dough": ItemRef.recipe(pizza_chain.dough.id),
        "pizza": ItemRef.product(pizza_chain.pizza.id),
        "combo": ItemRef.product(combo.id),
    }


class TestEdges:
    def test_direct_dependents_of_ingredient(self, graph):
        with session_scope() as session:
            dependents = dependency_graph.direct_dependents(session, graph["flour"])
        assert dependents == [graph["sifted"], graph["dough"], graph["combo"]]

    def test_direct_components(self, graph):
        with session_scope() as session:
            assert dependency_graph.direct_components(session, graph["combo"]) == [
                graph["flour"],
                graph["pizza"],
            ]
            assert dependency_graph.direct_components(session, graph["sifted"]) == [
                graph["flour"]
            ]
            assert dependency_graph.direct_components(session, graph["flour"]) == []


class TestCycles:
    def test_self_edge_is_cycle(self, graph):
        with session_scope() as session:
            assert dependency_graph.would_create_cycle(session, graph["pizza"], graph["pizza"])

    def test_deep_cycle(self, graph):
        # combo -> pizza -> dough; making combo a line of dough closes the loop
        with session_scope() as session:
            assert dependency_graph.would_create_cycle(session, graph["dough"], graph["combo"])

    def test_no_cycle(self, graph):
        with session_scope() as session:
            assert not dependency_graph.would_create_cycle(session, graph["combo"], graph["dough"])


class TestOrdering:
    def test_topological_order_respects_dependencies(self, graph):
        with session_scope() as session:
            order = dependency_graph.affected_in_order(session, graph["flour"])

        assert graph["flour"] not in order
        assert len(order) == len(set(order))
        assert set(order) == {graph["sifted"], graph["dough"], graph["pizza"], graph["combo"]}
        assert order.index(graph["dough"]) < order.index(graph["pizza"])
        assert order.index(graph["pizza"]) < order.index(graph["combo"])


class TestReferences:
    def test_find_references(self, graph, menu):
        menu_service.upsert_menu_item(menu.id, graph["pizza"], 10)
        with session_scope() as session:
            assert dependency_graph.find_references(session, graph["pizza"]) == {
                "product_compositions": 1,
                "menu_items": 1,
            }
            assert dependency_graph.find_references(session, graph["sifted"]) == {}

    def test_variations_are_never_listed(self, graph):
        with session_scope() as session:
            assert dependency_graph.menu_items_listing(session, graph["sifted"]) == []
