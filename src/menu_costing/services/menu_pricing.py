"""
Menu pricing calculator.

Given an item cost and a sale price on a menu:

    fees_cost             = sum(active fixed fees) + sale_price * sum(active percentage fees) / 100
    apportioned_fixed     = depends on the menu's apportionment policy:
        percentage_of_sale    -> sale_price * value / 100
        fixed_per_product     -> value
        proportional_to_sales -> active workspace fixed costs total / value
    total_cost            = item_cost + fees_cost + apportioned_fixed
    margin_value          = sale_price - total_cost
    margin_percentage     = margin_value / sale_price * 100 (0 if sale_price <= 0)

A policy value that is unset or not positive apportions nothing.

Repricing is menu-scoped: it is triggered by cost cascades for the listed
item and by fee, policy or fixed cost edits for every listing of a menu.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import (
    ApportionmentType,
    FeeType,
    FixedCost,
    ItemKind,
    ItemRef,
    Menu,
    MenuItem,
)
from ..utils.constants import HUNDRED, ONE, ZERO
from .cost_aggregator import load_item
from .dto import PricingResult
from .dto_utils import quantize_money, quantize_percent, to_decimal
from .exceptions import InvalidMargin
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def active_fixed_costs_total(session: Session, workspace_id: int) -> Decimal:
    """Sum of the workspace's active monthly fixed costs."""
    total = (
        session.query(func.coalesce(func.sum(FixedCost.value), 0))
        .filter(FixedCost.workspace_id == workspace_id, FixedCost.is_active.is_(True))
        .scalar()
    )
    return quantize_money(to_decimal(total))


def fee_totals(menu: Menu) -> Tuple[Decimal, Decimal]:
    """
    Active fees of a menu.

    Returns:
        (sum of fixed fees, sum of percentage fees)
    """
    fixed = ZERO
    percentage = ZERO
    for fee in menu.fees:
        if not fee.is_active:
            continue
        if fee.fee_type == FeeType.FIXED:
            fixed += to_decimal(fee.value)
        else:
            percentage += to_decimal(fee.value)
    return fixed, percentage


def _policy_value(menu: Menu) -> Decimal:
    value = to_decimal(menu.apportionment_value)
    return value if value > 0 else ZERO


def apportionment_terms(menu: Menu, fixed_costs_total: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Split the apportionment policy into a flat amount and a sale percentage.

    Returns:
        (flat amount per sale, percentage of sale)
    """
    value = _policy_value(menu)
    if value == ZERO:
        return ZERO, ZERO
    if menu.apportionment_type == ApportionmentType.PERCENTAGE_OF_SALE:
        return ZERO, value
    if menu.apportionment_type == ApportionmentType.FIXED_PER_PRODUCT:
        return value, ZERO
    return to_decimal(fixed_costs_total) / value, ZERO


def price(menu: Menu, item_cost, sale_price, fixed_costs_total) -> PricingResult:
    """
    Price one item on a menu. Pure arithmetic, nothing is written.

    Args:
        menu: Menu whose fees and apportionment policy apply
        item_cost: Cost of the listed item
        sale_price: Customer price
        fixed_costs_total: Active monthly fixed costs of the workspace

    Returns:
        PricingResult breakdown
    """
    item_cost = to_decimal(item_cost)
    sale_price = to_decimal(sale_price)

    fixed_fees, percentage_fees = fee_totals(menu)
    fees_cost = fixed_fees + sale_price * percentage_fees / HUNDRED

    flat, percentage = apportionment_terms(menu, to_decimal(fixed_costs_total))
    apportioned = flat + sale_price * percentage / HUNDRED

    total_cost = quantize_money(item_cost + fees_cost + apportioned)
    margin_value = quantize_money(sale_price - total_cost)
    if sale_price > 0:
        margin_percentage = quantize_percent(margin_value / sale_price * HUNDRED)
    else:
        margin_percentage = quantize_percent(ZERO)

    return PricingResult(
        item_cost=quantize_money(item_cost),
        sale_price=quantize_money(sale_price),
        fees_cost=quantize_money(fees_cost),
        apportioned_fixed_cost=quantize_money(apportioned),
        total_cost=total_cost,
        margin_value=margin_value,
        margin_percentage=margin_percentage,
    )


def suggest_price(menu: Menu, item_cost, target_margin, fixed_costs_total) -> Decimal:
    """
    Sale price that yields ``target_margin`` percent after fees and apportionment.

    price = (item_cost + fixed fees + flat apportionment)
            / (1 - margin% - percentage fees% - percentage apportionment%)

    Raises:
        InvalidMargin: If the denominator is not positive
    """
    target_margin = to_decimal(target_margin)
    fixed_fees, percentage_fees = fee_totals(menu)
    flat, percentage = apportionment_terms(menu, to_decimal(fixed_costs_total))

    denominator = ONE - (target_margin + percentage_fees + percentage) / HUNDRED
    if denominator <= 0:
        raise InvalidMargin(
            target_margin,
            f"margin plus percentage fees ({percentage_fees}%) and apportionment "
            f"({percentage}%) reach 100%",
        )
    return quantize_money((to_decimal(item_cost) + fixed_fees + flat) / denominator)


def listing_cost(session: Session, ref: ItemRef, size_option=None) -> Decimal:
    """
    Item cost a menu listing is priced from.

    product -> base_cost (times the size multiplier when listed at a size),
    ingredient -> average_price, recipe -> total_cost
    """
    item = load_item(session, ref)
    if ref.kind == ItemKind.PRODUCT:
        if size_option is not None:
            return quantize_money(to_decimal(item.base_cost) * to_decimal(size_option.multiplier))
        return to_decimal(item.base_cost)
    if ref.kind == ItemKind.INGREDIENT:
        return to_decimal(item.average_price)
    return to_decimal(item.total_cost)


def apply_pricing(menu_item: MenuItem, result: PricingResult) -> None:
    menu_item.total_cost = result.total_cost
    menu_item.margin_value = result.margin_value
    menu_item.margin_percentage = result.margin_percentage


def reprice_menu_item(
    session: Session, menu_item: MenuItem, fixed_costs_total: Optional[Decimal] = None
) -> PricingResult:
    """Recompute and store a listing's total cost and margin."""
    menu = menu_item.menu
    if fixed_costs_total is None:
        fixed_costs_total = active_fixed_costs_total(session, menu.workspace_id)
    result = price(
        menu,
        listing_cost(session, menu_item.item_ref, menu_item.size_option),
        menu_item.sale_price,
        fixed_costs_total,
    )
    apply_pricing(menu_item, result)
    log_operation(
        logger,
        "reprice_menu_item",
        "success",
        level=logging.DEBUG,
        menu_item_id=menu_item.id,
        total_cost=str(result.total_cost),
        margin_percentage=str(result.margin_percentage),
    )
    return result


def reprice_menu(session: Session, menu: Menu) -> List[int]:
    """
    Reprice every listing of a menu.

    Returns:
        Ids of the repriced listings
    """
    fixed_costs_total = active_fixed_costs_total(session, menu.workspace_id)
    repriced = []
    for menu_item in menu.items:
        reprice_menu_item(session, menu_item, fixed_costs_total)
        repriced.append(menu_item.id)
    return repriced


def reprice_workspace_menus(session: Session, workspace_id: int) -> List[int]:
    """Reprice every listing of every menu in a workspace."""
    repriced = []
    for menu in session.query(Menu).filter(Menu.workspace_id == workspace_id).order_by(Menu.id):
        repriced.extend(reprice_menu(session, menu))
    return repriced
