"""
Composite cost aggregation for variations, recipes and products.

Each derived cost is a materialized value that can always be rebuilt from
upstream state. This module holds the recompute functions keyed by ItemRef;
it writes cached fields on the loaded rows but never commits and never
walks the dependency graph (see cascade_service for that).

Per-line cost:
    ingredient -> quantity_in_base * base_cost_per_unit
    variation  -> quantity_in_base * calculated_cost
    recipe     -> quantity_in_base * cost_per_portion / yield_unit.conversion_factor
    product    -> quantity (bare count) * base_cost

Aggregates:
    recipe.total_cost       = sum of line costs
    recipe.labor_cost       = prep_time_minutes / 60 * workspace.labor_cost_per_hour
    recipe.cost_per_portion = (total_cost + labor_cost) / yield_quantity
    product.base_cost       = sum of line costs
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional, Set

from sqlalchemy.orm import Session

from ..models import (
    Ingredient,
    IngredientVariation,
    ItemKind,
    ItemRef,
    MeasurementClass,
    Product,
    Recipe,
    Unit,
    Workspace,
)
from ..utils.constants import HUNDRED, MINUTES_PER_HOUR, ONE, ZERO
from .dto_utils import quantize_money, quantize_unit_cost, to_decimal
from .exceptions import (
    IncompatibleMeasurementClass,
    IngredientNotFound,
    InvalidYield,
    InvalidYieldInput,
    ProductNotFound,
    RecipeNotFound,
    UnitNotFound,
    VariationNotFound,
    WorkspaceNotFound,
)
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

_MODEL_BY_KIND = {
    ItemKind.INGREDIENT: (Ingredient, IngredientNotFound),
    ItemKind.VARIATION: (IngredientVariation, VariationNotFound),
    ItemKind.RECIPE: (Recipe, RecipeNotFound),
    ItemKind.PRODUCT: (Product, ProductNotFound),
}


# ============================================================================
# Lookups
# ============================================================================


def get_unit(session: Session, unit_id: int) -> Unit:
    unit = session.get(Unit, unit_id)
    if unit is None:
        raise UnitNotFound(unit_id)
    return unit


def get_workspace(session: Session, workspace_id: int) -> Workspace:
    workspace = session.get(Workspace, workspace_id)
    if workspace is None:
        raise WorkspaceNotFound(workspace_id)
    return workspace


def load_item(session: Session, ref: ItemRef):
    """
    Load the row an ItemRef points at.

    Raises:
        NotFound subclass matching ref.kind
    """
    model, not_found = _MODEL_BY_KIND[ref.kind]
    item = session.get(model, ref.id)
    if item is None:
        raise not_found(ref.id)
    return item


def item_name(session: Session, ref: ItemRef) -> str:
    item = load_item(session, ref)
    if ref.kind == ItemKind.VARIATION:
        return f"{item.ingredient.name} ({item.name})"
    return item.name


def item_workspace_id(session: Session, ref: ItemRef) -> int:
    item = load_item(session, ref)
    if ref.kind == ItemKind.VARIATION:
        return item.ingredient.workspace_id
    return item.workspace_id


def measurement_class_of(session: Session, ref: ItemRef) -> Optional[MeasurementClass]:
    """
    Measurement class quantities of ``ref`` are expressed in.

    Products are counted, not measured, and return None.
    """
    item = load_item(session, ref)
    if ref.kind == ItemKind.INGREDIENT:
        return item.measurement_class
    if ref.kind == ItemKind.VARIATION:
        return item.output_unit.measurement_class
    if ref.kind == ItemKind.RECIPE:
        return item.yield_unit.measurement_class
    return None


def ensure_compatible(unit: Unit, measurement_class: MeasurementClass, context: str = "") -> None:
    """
    Reject a unit whose class differs from the measured item's class.

    Raises:
        IncompatibleMeasurementClass
    """
    if unit.measurement_class != measurement_class:
        raise IncompatibleMeasurementClass(
            unit.measurement_class.value, measurement_class.value, context
        )


def to_base(quantity, unit: Optional[Unit]) -> Decimal:
    """Quantity in base units; no unit means the quantity already is."""
    quantity = to_decimal(quantity)
    if unit is None:
        return quantity
    return quantity * unit.conversion_factor


# ============================================================================
# Per-line cost
# ============================================================================


def unit_cost_of(session: Session, ref: ItemRef) -> Decimal:
    """
    Current cost of one base unit of ``ref`` (one item for products).
    """
    item = load_item(session, ref)
    if ref.kind == ItemKind.INGREDIENT:
        return to_decimal(item.base_cost_per_unit)
    if ref.kind == ItemKind.VARIATION:
        return to_decimal(item.calculated_cost)
    if ref.kind == ItemKind.RECIPE:
        factor = item.yield_unit.conversion_factor if item.yield_unit else ONE
        return to_decimal(item.cost_per_portion) / factor
    return to_decimal(item.base_cost)


def item_cost(session: Session, ref: ItemRef, quantity, unit_id: Optional[int]) -> Decimal:
    """
    Cost of one composition line.

    Product references use the quantity as a bare count; other kinds are
    converted to base units first (unit_id None = already in base units).
    """
    if ref.kind == ItemKind.PRODUCT:
        return quantize_money(to_decimal(quantity) * unit_cost_of(session, ref))
    unit = get_unit(session, unit_id) if unit_id is not None else None
    return quantize_money(to_base(quantity, unit) * unit_cost_of(session, ref))


# ============================================================================
# Aggregates
# ============================================================================


def yield_percentage(input_quantity, input_unit: Unit, output_quantity, output_unit: Unit) -> Decimal:
    """
    Output base quantity over input base quantity, times 100.

    Raises:
        InvalidYieldInput: If the input base quantity is not positive
    """
    input_base = to_base(input_quantity, input_unit)
    if input_base <= 0:
        raise InvalidYieldInput(input_base)
    return to_base(output_quantity, output_unit) / input_base * HUNDRED


def variation_cost(base_cost_per_unit, yield_pct) -> Decimal:
    """Ingredient base cost spread over the usable yield."""
    return quantize_unit_cost(to_decimal(base_cost_per_unit) / (to_decimal(yield_pct) / HUNDRED))


def recompute_variation(session: Session, variation: IngredientVariation) -> Decimal:
    """Refresh calculated_cost from the parent's base cost and the stored yield."""
    variation.calculated_cost = variation_cost(
        variation.ingredient.base_cost_per_unit, variation.yield_percentage
    )
    return variation.calculated_cost


def _refresh_lines(session: Session, lines: Iterable, only: Optional[Set[ItemRef]]) -> Decimal:
    total = ZERO
    for line in lines:
        ref = line.item_ref
        if only is None or ref in only:
            line.calculated_cost = item_cost(session, ref, line.quantity, line.unit_id)
        total += to_decimal(line.calculated_cost)
    return total


def labor_cost(prep_time_minutes, labor_cost_per_hour) -> Decimal:
    if not prep_time_minutes or labor_cost_per_hour is None:
        return quantize_money(ZERO)
    return quantize_money(
        to_decimal(prep_time_minutes) / MINUTES_PER_HOUR * to_decimal(labor_cost_per_hour)
    )


def recompute_recipe(
    session: Session, recipe: Recipe, only: Optional[Set[ItemRef]] = None
) -> Decimal:
    """
    Refresh a recipe's line costs and aggregates.

    Args:
        session: Active session
        recipe: Recipe to refresh
        only: If given, only lines referencing these items are re-costed;
            the other lines keep their cached cost

    Returns:
        New cost_per_portion

    Raises:
        InvalidYield: If yield_quantity is not positive
    """
    yield_quantity = to_decimal(recipe.yield_quantity)
    if yield_quantity <= 0:
        raise InvalidYield(recipe.id, yield_quantity)

    workspace = get_workspace(session, recipe.workspace_id)
    total = _refresh_lines(session, recipe.items, only)
    labor = labor_cost(recipe.prep_time_minutes, workspace.labor_cost_per_hour)

    recipe.total_cost = quantize_money(total)
    recipe.labor_cost = labor
    recipe.cost_per_portion = quantize_money((total + labor) / yield_quantity)
    return recipe.cost_per_portion


def recompute_product(
    session: Session, product: Product, only: Optional[Set[ItemRef]] = None
) -> Decimal:
    """
    Refresh a product's line costs and base cost.

    Returns:
        New base_cost
    """
    product.base_cost = quantize_money(_refresh_lines(session, product.compositions, only))
    return product.base_cost


def recompute(session: Session, ref: ItemRef, only: Optional[Set[ItemRef]] = None) -> Decimal:
    """
    Rebuild the cached aggregate of ``ref`` from current upstream values.

    Ingredients are leaves: their cost comes from the ledger, so the current
    base cost is returned unchanged.

    Returns:
        The item's new aggregate value
    """
    item = load_item(session, ref)
    if ref.kind == ItemKind.INGREDIENT:
        value = to_decimal(item.base_cost_per_unit)
    elif ref.kind == ItemKind.VARIATION:
        value = recompute_variation(session, item)
    elif ref.kind == ItemKind.RECIPE:
        value = recompute_recipe(session, item, only)
    else:
        value = recompute_product(session, item, only)

    log_operation(
        logger, "recompute", "success", level=logging.DEBUG, item=str(ref), value=str(value)
    )
    return value