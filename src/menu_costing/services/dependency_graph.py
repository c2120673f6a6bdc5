"""
Dependency graph over costed items.

Edges point from a component to the items whose cost is built from it:

    ingredient -> its variations
    ingredient / variation / recipe / product -> recipes and products
        whose lines reference it
    ingredient / recipe / product -> menu listings (leaves of the graph)

The graph is not stored separately; it is queried on demand from the
RecipeItem, ProductComposition and MenuItem reference columns. Cycles are
rejected when a line is written (would_create_cycle), so the graph stays a
DAG and affected_in_order can return a topological order.
"""

from collections import deque
from typing import Dict, List

from sqlalchemy.orm import Session

from ..models import (
    IngredientVariation,
    ItemKind,
    ItemRef,
    MenuItem,
    ProductComposition,
    RecipeItem,
)
from .cost_aggregator import load_item


def _owners(session: Session, line_model, owner_column, ref: ItemRef) -> List[int]:
    if not line_model.accepts(ref.kind):
        return []
    rows = (
        session.query(owner_column)
        .filter(line_model.references(ref))
        .distinct()
        .order_by(owner_column)
        .all()
    )
    return [row[0] for row in rows]


def direct_dependents(session: Session, ref: ItemRef) -> List[ItemRef]:
    """
    Items whose cached cost is computed directly from ``ref``.

    Menu listings are not included; see menu_items_listing.
    """
    dependents: List[ItemRef] = []

    if ref.kind == ItemKind.INGREDIENT:
        variation_ids = (
            session.query(IngredientVariation.id)
            .filter(IngredientVariation.ingredient_id == ref.id)
            .order_by(IngredientVariation.id)
            .all()
        )
        dependents.extend(ItemRef.variation(row[0]) for row in variation_ids)

    dependents.extend(
        ItemRef.recipe(recipe_id)
        for recipe_id in _owners(session, RecipeItem, RecipeItem.recipe_id, ref)
    )
    dependents.extend(
        ItemRef.product(product_id)
        for product_id in _owners(session, ProductComposition, ProductComposition.product_id, ref)
    )
    return dependents


def menu_items_listing(session: Session, ref: ItemRef) -> List[MenuItem]:
    """Menu listings that sell ``ref`` directly."""
    if not MenuItem.accepts(ref.kind):
        return []
    return session.query(MenuItem).filter(MenuItem.references(ref)).order_by(MenuItem.id).all()


def find_references(session: Session, ref: ItemRef) -> Dict[str, int]:
    """
    Count the records that reference ``ref``.

    Returns:
        Dict with keys 'recipe_items', 'product_compositions', 'menu_items'
        (only non-zero counts)
    """
    counts = {}
    for key, model in (
        ("recipe_items", RecipeItem),
        ("product_compositions", ProductComposition),
        ("menu_items", MenuItem),
    ):
        if model.accepts(ref.kind):
            count = session.query(model).filter(model.references(ref)).count()
            if count:
                counts[key] = count
    return counts


def direct_components(session: Session, ref: ItemRef) -> List[ItemRef]:
    """Items ``ref``'s own cost is computed from (downward edges)."""
    item = load_item(session, ref)
    if ref.kind == ItemKind.VARIATION:
        return [ItemRef.ingredient(item.ingredient_id)]
    if ref.kind == ItemKind.RECIPE:
        return [line.item_ref for line in item.items]
    if ref.kind == ItemKind.PRODUCT:
        return [line.item_ref for line in item.compositions]
    return []


def would_create_cycle(session: Session, owner: ItemRef, component: ItemRef) -> bool:
    """
    Check if making ``component`` a line of ``owner`` would close a cycle.

    Algorithm:
        Breadth-first traversal down from the component with visited
        tracking; reaching the owner means the owner already feeds the
        component.

    Returns:
        True if the new edge would create a cycle (including component == owner)
    """
    visited = set()
    queue = deque([component])

    while queue:
        current = queue.popleft()

        if current == owner:
            return True

        if current in visited:
            continue
        visited.add(current)

        # Ingredients and variations never contain recipes or products
        if current.kind in (ItemKind.RECIPE, ItemKind.PRODUCT):
            queue.extend(direct_components(session, current))

    return False


def topological_order(session: Session, roots: List[ItemRef]) -> List[ItemRef]:
    """
    Every item computed from ``roots``, roots included, in dependency order.

    Depth-first traversal over direct_dependents with a visited set; the
    reverse post-order is a topological order, so each item comes after
    everything it depends on. Items reachable by several paths appear once.
    """
    visited = set()
    post_order: List[ItemRef] = []

    for root in roots:
        if root in visited:
            continue
        visited.add(root)
        stack = [(root, iter(direct_dependents(session, root)))]
        while stack:
            node, children = stack[-1]
            for child in children:
                if child not in visited:
                    visited.add(child)
                    stack.append((child, iter(direct_dependents(session, child))))
                    break
            else:
                stack.pop()
                post_order.append(node)

    post_order.reverse()
    return post_order


def affected_in_order(session: Session, source: ItemRef) -> List[ItemRef]:
    """
    Items transitively computed from ``source``, source excluded, in
    dependency order.
    """
    order = topological_order(session, [source])
    return [ref for ref in order if ref != source]
