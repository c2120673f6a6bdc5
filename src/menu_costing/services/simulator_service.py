"""
What-if simulator: the impact of a hypothetical ingredient price.

Nothing is written. The simulation replays the cost math as ratios over
the currently cached values:

    ratio = new base cost / current base cost (1 if current is 0)

- variations of the ingredient scale by ratio
- recipes using the ingredient or a variation directly change by the sum
  of those lines' cost * (ratio - 1)
- products change by cost * (ratio - 1) for ingredient/variation lines and
  by cost * (recipe ratio - 1) for lines using an affected recipe
- menu listings of the ingredient, an affected recipe or an affected
  product scale their total cost by the matching ratio

Recipes nested inside other recipes are not followed: a product that
reaches the ingredient through two recipe hops only sees the first hop.
This approximation is kept on purpose; recalculate_workspace gives the
exact figures once a price is actually recorded.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models import (
    Ingredient,
    IngredientVariation,
    ItemRef,
    MenuItem,
    Product,
    ProductComposition,
    Recipe,
    RecipeItem,
)
from ..utils.constants import FALLBACK_MARKUP, HUNDRED, ONE, ZERO
from ..utils.validators import validate_non_negative_number
from .database import run_read_only
from .dto import (
    CostChange,
    ImpactReport,
    ImpactSummary,
    IngredientImpact,
    MenuItemImpact,
)
from .dto_utils import (
    percentage_change,
    quantize_factor,
    quantize_money,
    quantize_percent,
    quantize_unit_cost,
    to_decimal,
)
from .exceptions import IngredientNotFound, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _ratio(current: Decimal, new: Decimal) -> Decimal:
    return new / current if current > 0 else ONE


def _cost_change(ref: ItemRef, name: str, current: Decimal, new: Decimal, quantize) -> CostChange:
    return CostChange(
        ref=ref,
        name=name,
        current_cost=quantize(current),
        new_cost=quantize(new),
        difference=quantize(new - current),
        percentage_change=percentage_change(current, new),
    )


def suggested_price(new_cost: Decimal, current_margin_percentage: Decimal) -> Decimal:
    """
    Price that keeps the current margin percentage at the new cost.

    Margins outside [0, 100) fall back to a FALLBACK_MARKUP markup on cost.
    """
    if ZERO <= current_margin_percentage < HUNDRED:
        return new_cost / (ONE - current_margin_percentage / HUNDRED)
    return new_cost * FALLBACK_MARKUP


def _menu_item_impact(
    menu_item: MenuItem, menu_name: str, item_name: str, ratio: Decimal
) -> MenuItemImpact:
    sale_price = to_decimal(menu_item.sale_price)
    current_cost = to_decimal(menu_item.total_cost)
    new_cost = current_cost * ratio
    current_margin = sale_price - current_cost
    new_margin = sale_price - new_cost
    if sale_price > 0:
        current_margin_pct = current_margin / sale_price * HUNDRED
        new_margin_pct = new_margin / sale_price * HUNDRED
    else:
        current_margin_pct = ZERO
        new_margin_pct = ZERO
    suggested = suggested_price(new_cost, current_margin_pct)

    return MenuItemImpact(
        menu_item_id=menu_item.id,
        menu_id=menu_item.menu_id,
        menu_name=menu_name,
        item=menu_item.item_ref,
        item_name=item_name,
        sale_price=quantize_money(sale_price),
        current_cost=quantize_money(current_cost),
        new_cost=quantize_money(new_cost),
        current_margin=quantize_money(current_margin),
        new_margin=quantize_money(new_margin),
        current_margin_percentage=quantize_percent(current_margin_pct),
        new_margin_percentage=quantize_percent(new_margin_pct),
        suggested_price=quantize_money(suggested),
        price_increase=quantize_money(max(ZERO, suggested - sale_price)),
        size_name=menu_item.size_option.name if menu_item.size_option else None,
    )


def _by_id(sess: Session, model, ids):
    if not ids:
        return []
    return sess.query(model).filter(model.id.in_(list(ids))).order_by(model.id).all()


def _listings(sess: Session, column, ids) -> List[MenuItem]:
    if not ids:
        return []
    return sess.query(MenuItem).filter(column.in_(ids)).order_by(MenuItem.id).all()


def _simulate(sess: Session, ingredient_id: int, new_price: Decimal) -> ImpactReport:
    ingredient = sess.get(Ingredient, ingredient_id)
    if ingredient is None:
        raise IngredientNotFound(ingredient_id)

    price_unit = ingredient.price_unit
    current_base = to_decimal(ingredient.base_cost_per_unit)
    new_base = quantize_unit_cost(new_price / price_unit.conversion_factor)
    ratio = _ratio(current_base, new_base)

    # Variations
    variations = (
        sess.query(IngredientVariation)
        .filter(IngredientVariation.ingredient_id == ingredient_id)
        .order_by(IngredientVariation.id)
        .all()
    )
    variation_ids = [v.id for v in variations]
    variation_changes = [
        _cost_change(
            ItemRef.variation(v.id),
            v.name,
            to_decimal(v.calculated_cost),
            to_decimal(v.calculated_cost) * ratio,
            quantize_unit_cost,
        )
        for v in variations
    ]

    # Recipes using the ingredient or a variation directly
    leaf_filters = [RecipeItem.component_ingredient_id == ingredient_id]
    if variation_ids:
        leaf_filters.append(RecipeItem.component_variation_id.in_(variation_ids))
    recipe_deltas: Dict[int, Decimal] = {}
    for line in sess.query(RecipeItem).filter(or_(*leaf_filters)).order_by(RecipeItem.id):
        recipe_deltas[line.recipe_id] = recipe_deltas.get(line.recipe_id, ZERO) + to_decimal(
            line.calculated_cost
        ) * (ratio - ONE)

    recipe_changes: List[CostChange] = []
    recipe_ratios: Dict[int, Decimal] = {}
    for recipe in _by_id(sess, Recipe, recipe_deltas):
        current = to_decimal(recipe.total_cost)
        new = current + recipe_deltas[recipe.id]
        recipe_changes.append(
            _cost_change(ItemRef.recipe(recipe.id), recipe.name, current, new, quantize_money)
        )
        if current > 0:
            recipe_ratios[recipe.id] = new / current

    # Products using the ingredient, a variation or an affected recipe
    composition_filters = [ProductComposition.component_ingredient_id == ingredient_id]
    if variation_ids:
        composition_filters.append(ProductComposition.component_variation_id.in_(variation_ids))
    if recipe_deltas:
        composition_filters.append(ProductComposition.component_recipe_id.in_(list(recipe_deltas)))
    product_deltas: Dict[int, Decimal] = {}
    for line in (
        sess.query(ProductComposition)
        .filter(or_(*composition_filters))
        .order_by(ProductComposition.id)
    ):
        delta = product_deltas.get(line.product_id, ZERO)
        line_cost = to_decimal(line.calculated_cost)
        if line.component_recipe_id is not None:
            recipe_ratio = recipe_ratios.get(line.component_recipe_id)
            if recipe_ratio is not None:
                delta += line_cost * (recipe_ratio - ONE)
        else:
            delta += line_cost * (ratio - ONE)
        product_deltas[line.product_id] = delta

    product_changes: List[CostChange] = []
    product_ratios: Dict[int, Decimal] = {}
    for product in _by_id(sess, Product, product_deltas):
        current = to_decimal(product.base_cost)
        new = current + product_deltas[product.id]
        product_changes.append(
            _cost_change(ItemRef.product(product.id), product.name, current, new, quantize_money)
        )
        product_ratios[product.id] = _ratio(current, new)

    # Menu listings of the ingredient, an affected recipe or an affected product
    recipe_names = {c.ref.id: c.name for c in recipe_changes}
    product_names = {c.ref.id: c.name for c in product_changes}
    menu_item_impacts: List[MenuItemImpact] = []

    listings = [
        (menu_item, ingredient.name, ratio)
        for menu_item in _listings(sess, MenuItem.ingredient_id, [ingredient_id])
    ]
    listings.extend(
        (menu_item, recipe_names[menu_item.recipe_id], recipe_ratios.get(menu_item.recipe_id, ONE))
        for menu_item in _listings(sess, MenuItem.recipe_id, list(recipe_deltas))
    )
    listings.extend(
        (menu_item, product_names[menu_item.product_id], product_ratios[menu_item.product_id])
        for menu_item in _listings(sess, MenuItem.product_id, list(product_deltas))
    )
    for menu_item, item_name, item_ratio in listings:
        menu_item_impacts.append(
            _menu_item_impact(menu_item, menu_item.menu.name, item_name, item_ratio)
        )

    all_changes = [c.percentage_change for c in variation_changes + recipe_changes + product_changes]
    average = sum(all_changes, ZERO) / len(all_changes) if all_changes else ZERO

    return ImpactReport(
        ingredient=IngredientImpact(
            id=ingredient.id,
            name=ingredient.name,
            price_unit=price_unit.abbreviation or price_unit.name,
            current_price=quantize_money(ingredient.average_price),
            new_price=quantize_money(new_price),
            current_base_cost=quantize_unit_cost(current_base),
            new_base_cost=new_base,
            price_ratio=quantize_factor(ratio),
        ),
        variations=variation_changes,
        recipes=recipe_changes,
        products=product_changes,
        menu_items=menu_item_impacts,
        summary=ImpactSummary(
            total_variations_affected=len(variation_changes),
            total_recipes_affected=len(recipe_changes),
            total_products_affected=len(product_changes),
            total_menu_items_affected=len(menu_item_impacts),
            average_cost_increase=quantize_percent(average),
            menu_items_with_negative_margin=sum(
                1 for impact in menu_item_impacts if impact.new_margin < 0
            ),
        ),
    )


def simulate(ingredient_id: int, new_price, session: Optional[Session] = None) -> ImpactReport:
    """
    Report what a new ingredient price would do, without changing anything.

    Args:
        ingredient_id: Ingredient whose price changes
        new_price: Hypothetical price per the ingredient's price unit
        session: Optional session; when omitted the work runs in a session
            that is always rolled back

    Returns:
        ImpactReport with the affected variations, recipes, products and
        menu listings and a summary

    Raises:
        IngredientNotFound: If the ingredient doesn't exist
        ValidationError: If the price is negative
    """
    is_valid, error = validate_non_negative_number(new_price, "New Price")
    if not is_valid:
        raise ValidationError([error])

    def _impl(sess: Session) -> ImpactReport:
        report = _simulate(sess, ingredient_id, to_decimal(new_price))
        log_operation(
            logger,
            "simulate",
            "success",
            ingredient_id=ingredient_id,
            new_price=str(new_price),
            recipes_affected=report.summary.total_recipes_affected,
            products_affected=report.summary.total_products_affected,
            menu_items_affected=report.summary.total_menu_items_affected,
        )
        return report

    return run_read_only(_impl, session, operation="simulate", service_logger=logger)
