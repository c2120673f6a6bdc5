"""
Cascade scheduler: keeps every cached cost consistent after a change.

propagate(session, source) runs after a leaf mutation has been written to
the session. It walks the dependents of the source once each, in
topological order, recomputing every variation, recipe and product whose
cost is built from the source, then re-prices every menu listing that sells
the source or any recomputed item.

Each item is recomputed only after everything it depends on, so graphs where
two paths lead into the same owner converge in a single run. The caller's
session_scope() wraps the mutation and the cascade in one transaction.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Ingredient, ItemKind, ItemRef, Product, Recipe
from . import cost_aggregator, dependency_graph, menu_pricing
from .database import run_in_session
from .dto import CascadeResult
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def propagate(session: Session, source: ItemRef) -> CascadeResult:
    """
    Recompute everything downstream of ``source``.

    The source's own cached value must already be up to date; it is not
    recomputed here.

    Args:
        session: Session holding the mutation that triggered the cascade
        source: Item whose cost changed

    Returns:
        CascadeResult with each recomputed item's new value and the
        repriced menu listings
    """
    session.flush()
    result = CascadeResult(source=source)
    changed = {source}

    for ref in dependency_graph.affected_in_order(session, source):
        value = cost_aggregator.recompute(session, ref, only=changed)
        changed.add(ref)
        result.updated[ref] = value
        log_operation(
            logger,
            "propagate",
            "recomputed",
            level=logging.DEBUG,
            source=str(source),
            item=str(ref),
            value=str(value),
        )

    session.flush()

    fixed_costs_by_workspace = {}
    for ref in [source, *result.updated]:
        for menu_item in dependency_graph.menu_items_listing(session, ref):
            if menu_item.id in result.repriced_menu_items:
                continue
            workspace_id = menu_item.menu.workspace_id
            if workspace_id not in fixed_costs_by_workspace:
                fixed_costs_by_workspace[workspace_id] = menu_pricing.active_fixed_costs_total(
                    session, workspace_id
                )
            menu_pricing.reprice_menu_item(
                session, menu_item, fixed_costs_by_workspace[workspace_id]
            )
            result.repriced_menu_items.append(menu_item.id)

    session.flush()

    log_operation(
        logger,
        "propagate",
        "success",
        level=logging.DEBUG,
        source=str(source),
        updated_count=len(result.updated),
        repriced_count=len(result.repriced_menu_items),
    )
    return result


def recompute_and_propagate(session: Session, ref: ItemRef) -> CascadeResult:
    """Recompute ``ref`` itself, then everything downstream of it."""
    value = cost_aggregator.recompute(session, ref)
    result = propagate(session, ref)
    result.updated = {ref: value, **result.updated}
    return result


def recalculate_workspace(workspace_id: int, session: Optional[Session] = None) -> CascadeResult:
    """
    Rebuild every cached cost of a workspace from its ingredients up.

    Variations, recipes and products are recomputed in dependency order, then
    every menu listing is repriced. Running it on an already consistent
    workspace changes no values.

    Args:
        workspace_id: Workspace to recalculate
        session: Optional session for transactional composition

    Returns:
        CascadeResult without a source, listing every recomputed item and
        repriced listing

    Raises:
        WorkspaceNotFound: If the workspace doesn't exist
        DatabaseError: If database operation fails
    """

    def _impl(sess: Session) -> CascadeResult:
        cost_aggregator.get_workspace(sess, workspace_id)
        return recalculate_workspace_in(sess, workspace_id)

    return run_in_session(
        _impl, session, operation="recalculate_workspace", service_logger=logger
    )


def recalculate_workspace_in(session: Session, workspace_id: int) -> CascadeResult:
    """Body of recalculate_workspace, for callers already holding a session."""
    roots = [
        ItemRef.ingredient(row[0])
        for row in session.query(Ingredient.id)
        .filter(Ingredient.workspace_id == workspace_id)
        .order_by(Ingredient.id)
    ]
    # Recipes and products without lines are not reachable from any ingredient
    roots.extend(
        ItemRef.recipe(row[0])
        for row in session.query(Recipe.id)
        .filter(Recipe.workspace_id == workspace_id)
        .order_by(Recipe.id)
    )
    roots.extend(
        ItemRef.product(row[0])
        for row in session.query(Product.id)
        .filter(Product.workspace_id == workspace_id)
        .order_by(Product.id)
    )

    result = CascadeResult(source=None)
    for ref in dependency_graph.topological_order(session, roots):
        if ref.kind == ItemKind.INGREDIENT:
            continue
        result.updated[ref] = cost_aggregator.recompute(session, ref)

    session.flush()
    result.repriced_menu_items = menu_pricing.reprice_workspace_menus(session, workspace_id)
    session.flush()

    log_operation(
        logger,
        "recalculate_workspace",
        "success",
        workspace_id=workspace_id,
        updated_count=len(result.updated),
        repriced_count=len(result.repriced_menu_items),
    )
    return result
