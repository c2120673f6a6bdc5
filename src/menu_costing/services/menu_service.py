"""
Menu service: menus, fees, apportionment policy and listings.

Every change to what a listing's margin depends on reprices it right away:
- a fee or the apportionment policy -> every listing of the menu
- a listing's item or sale price    -> that listing
Cost changes of the listed items reach listings through cascade_service.

All functions accept an optional session parameter to support being called
from other service functions that need to maintain transactional atomicity.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import (
    ApportionmentType,
    FeeType,
    ItemKind,
    ItemRef,
    Menu,
    MenuFee,
    MenuItem,
    Product,
    SizeOption,
)
from ..utils.constants import TARGET_MARGIN_TOLERANCE
from ..utils.validators import (
    validate_choice,
    validate_menu_data,
    validate_name,
    validate_non_negative_number,
    validate_number_range,
)
from . import cost_aggregator, menu_pricing
from .database import run_in_session, run_read_only
from .dto import CascadeResult, MutationResult, PricingResult
from .dto_utils import quantize_money, quantize_percent, to_decimal
from .exceptions import (
    InvalidMargin,
    MenuFeeNotFound,
    MenuItemNotFound,
    MenuNotFound,
    SizeOptionNotFound,
    ValidationError,
)
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


# ============================================================================
# Helpers
# ============================================================================


def _get_menu(sess: Session, menu_id: int) -> Menu:
    menu = sess.get(Menu, menu_id)
    if menu is None:
        raise MenuNotFound(menu_id)
    return menu


def _get_fee(sess: Session, fee_id: int) -> MenuFee:
    fee = sess.get(MenuFee, fee_id)
    if fee is None:
        raise MenuFeeNotFound(fee_id)
    return fee


def _get_menu_item(sess: Session, menu_item_id: int) -> MenuItem:
    menu_item = sess.get(MenuItem, menu_item_id)
    if menu_item is None:
        raise MenuItemNotFound(menu_item_id)
    return menu_item


def _reprice(sess: Session, menu: Menu) -> CascadeResult:
    sess.flush()
    result = CascadeResult(source=None)
    result.repriced_menu_items = menu_pricing.reprice_menu(sess, menu)
    sess.flush()
    return result


def _optional_money(value) -> Optional[Decimal]:
    return quantize_money(value) if value is not None else None


# ============================================================================
# Menus
# ============================================================================


def create_menu(
    workspace_id: int,
    name: str,
    apportionment_type=ApportionmentType.PERCENTAGE_OF_SALE,
    apportionment_value=None,
    target_margin=None,
    description: Optional[str] = None,
    session: Optional[Session] = None,
) -> Menu:
    """
    Create a menu.

    Args:
        workspace_id: Owning workspace
        name: Menu name
        apportionment_type: percentage_of_sale, fixed_per_product or
            proportional_to_sales
        apportionment_value: Percentage, amount per sale, or estimated
            monthly unit sales, depending on the type
        target_margin: Optional margin percentage in [0, 100)
        description: Optional description
        session: Optional session for transactional composition

    Returns:
        Created Menu

    Raises:
        WorkspaceNotFound: If the workspace doesn't exist
        ValidationError: On invalid fields
    """
    is_valid, errors = validate_menu_data(name, apportionment_type, apportionment_value, target_margin)
    if not is_valid:
        raise ValidationError(errors)

    def _impl(sess: Session) -> Menu:
        cost_aggregator.get_workspace(sess, workspace_id)
        menu = Menu(
            workspace_id=workspace_id,
            name=name.strip(),
            description=description,
            apportionment_type=ApportionmentType(
                getattr(apportionment_type, "value", apportionment_type)
            ),
            apportionment_value=_optional_money(apportionment_value),
            target_margin=(
                quantize_percent(target_margin) if target_margin is not None else None
            ),
        )
        sess.add(menu)
        sess.flush()
        log_operation(logger, "create_menu", "success", menu_id=menu.id)
        return menu

    return run_in_session(_impl, session, operation="create_menu", service_logger=logger)


def get_menu(menu_id: int, session: Optional[Session] = None) -> Menu:
    """
    Retrieve a menu by ID.

    Raises:
        MenuNotFound: If the menu doesn't exist
    """
    return run_in_session(lambda sess: _get_menu(sess, menu_id), session, operation="get_menu")


def delete_menu(menu_id: int, session: Optional[Session] = None) -> None:
    """
    Delete a menu with its fees and listings.

    Raises:
        MenuNotFound: If the menu doesn't exist
    """

    def _impl(sess: Session) -> None:
        sess.delete(_get_menu(sess, menu_id))
        sess.flush()
        log_operation(logger, "delete_menu", "success", menu_id=menu_id)

    run_in_session(_impl, session, operation="delete_menu", service_logger=logger)


def set_menu_apportionment(
    menu_id: int, apportionment_type, apportionment_value, session: Optional[Session] = None
) -> MutationResult:
    """
    Change how fixed costs are charged to the menu's sales and reprice it.

    Returns:
        MutationResult with the menu id and the repriced listings

    Raises:
        MenuNotFound: If the menu doesn't exist
        ValidationError: On an unknown type or negative value
    """
    errors = []
    is_valid, error = validate_choice(apportionment_type, ApportionmentType, "Apportionment Type")
    if not is_valid:
        errors.append(error)
    if apportionment_value is not None:
        is_valid, error = validate_non_negative_number(apportionment_value, "Apportionment Value")
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> MutationResult:
        menu = _get_menu(sess, menu_id)
        menu.apportionment_type = ApportionmentType(
            getattr(apportionment_type, "value", apportionment_type)
        )
        menu.apportionment_value = _optional_money(apportionment_value)
        cascade = _reprice(sess, menu)
        log_operation(
            logger,
            "set_menu_apportionment",
            "success",
            menu_id=menu.id,
            apportionment_type=menu.apportionment_type.value,
            repriced_count=len(cascade.repriced_menu_items),
        )
        return MutationResult(menu.id, menu.apportionment_value, cascade)

    return run_in_session(
        _impl, session, operation="set_menu_apportionment", service_logger=logger
    )


# ============================================================================
# Fees
# ============================================================================


def upsert_menu_fee(
    menu_id: int,
    name: str,
    fee_type,
    value,
    is_active: bool = True,
    fee_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Add or edit a menu fee and reprice every listing of the menu.

    Args:
        menu_id: Owning menu
        name: Fee name
        fee_type: "fixed" (amount per sale) or "percentage" (of the sale price)
        value: Amount or percentage
        is_active: Inactive fees are ignored by pricing
        fee_id: Existing fee to edit, or None to add one
        session: Optional session for transactional composition

    Returns:
        MutationResult with the fee id and the repriced listings

    Raises:
        MenuNotFound, MenuFeeNotFound: If a reference doesn't exist
        ValidationError: On a blank name, unknown type or negative value
    """
    errors = []
    for is_valid, error in (
        validate_name(name, "Fee Name"),
        validate_choice(fee_type, FeeType, "Fee Type"),
        validate_non_negative_number(value, "Fee Value"),
    ):
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> MutationResult:
        menu = _get_menu(sess, menu_id)
        if fee_id is None:
            fee = MenuFee()
            menu.fees.append(fee)
        else:
            fee = _get_fee(sess, fee_id)
            if fee.menu_id != menu.id:
                raise ValidationError([f"Fee {fee_id} does not belong to menu {menu_id}"])

        fee.name = name.strip()
        fee.fee_type = FeeType(getattr(fee_type, "value", fee_type))
        fee.value = quantize_money(value)
        fee.is_active = is_active
        cascade = _reprice(sess, menu)

        log_operation(
            logger,
            "upsert_menu_fee",
            "success",
            menu_id=menu.id,
            fee_id=fee.id,
            repriced_count=len(cascade.repriced_menu_items),
        )
        return MutationResult(fee.id, fee.value, cascade)

    return run_in_session(_impl, session, operation="upsert_menu_fee", service_logger=logger)


def delete_menu_fee(fee_id: int, session: Optional[Session] = None) -> MutationResult:
    """
    Remove a menu fee and reprice every listing of the menu.

    Raises:
        MenuFeeNotFound: If the fee doesn't exist
    """

    def _impl(sess: Session) -> MutationResult:
        fee = _get_fee(sess, fee_id)
        menu = fee.menu
        menu.fees.remove(fee)
        sess.delete(fee)
        cascade = _reprice(sess, menu)
        log_operation(logger, "delete_menu_fee", "success", menu_id=menu.id, fee_id=fee_id)
        return MutationResult(fee_id, None, cascade)

    return run_in_session(_impl, session, operation="delete_menu_fee", service_logger=logger)


def get_menu_fees(menu_id: int, session: Optional[Session] = None) -> List[MenuFee]:
    def _impl(sess: Session) -> List[MenuFee]:
        _get_menu(sess, menu_id)
        return sess.query(MenuFee).filter(MenuFee.menu_id == menu_id).order_by(MenuFee.id).all()

    return run_in_session(_impl, session, operation="get_menu_fees")


# ============================================================================
# Listings
# ============================================================================


def upsert_menu_item(
    menu_id: int,
    item_ref: ItemRef,
    sale_price,
    menu_item_id: Optional[int] = None,
    size_option_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    List an item on a menu (or edit a listing) and price it.

    Products, ingredients and recipes can be listed; each at most once per
    menu. A product with a size group may instead be listed once per size,
    and is then costed at its base cost times the size multiplier.

    Args:
        menu_id: Menu to list on
        item_ref: Product, ingredient or recipe sold
        sale_price: Customer price
        menu_item_id: Existing listing to edit, or None to add one
        size_option_id: Size of the product's group to list it at, or None
        session: Optional session for transactional composition

    Returns:
        MutationResult with the listing id and its new margin percentage

    Raises:
        MenuNotFound, MenuItemNotFound, SizeOptionNotFound, or the NotFound
            of the listed item
        ValidationError: On a negative price, a variation, an item of another
            workspace, a size outside the product's group or a duplicate listing
    """
    errors = []
    is_valid, error = validate_non_negative_number(sale_price, "Sale Price")
    if not is_valid:
        errors.append(error)
    if not MenuItem.accepts(item_ref.kind):
        errors.append(f"A {item_ref.kind.value} cannot be listed on a menu")
    if size_option_id is not None and item_ref.kind != ItemKind.PRODUCT:
        errors.append("Only products can be listed at a size")
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> MutationResult:
        menu = _get_menu(sess, menu_id)
        if cost_aggregator.item_workspace_id(sess, item_ref) != menu.workspace_id:
            raise ValidationError([f"{item_ref} belongs to another workspace"])

        size_option = None
        if size_option_id is not None:
            size_option = sess.get(SizeOption, size_option_id)
            if size_option is None:
                raise SizeOptionNotFound(size_option_id)
            product = sess.get(Product, item_ref.id)
            if product.size_group_id != size_option.size_group_id:
                raise ValidationError(
                    [f"Size '{size_option.name}' is not in the size group of {item_ref}"]
                )

        duplicate = (
            sess.query(MenuItem)
            .filter(
                MenuItem.menu_id == menu.id,
                MenuItem.references(item_ref),
                MenuItem.size_option_id == size_option_id,
            )
            .first()
        )
        if duplicate is not None and duplicate.id != menu_item_id:
            listed = f"{item_ref} ({size_option.name})" if size_option else str(item_ref)
            raise ValidationError([f"{listed} is already listed on menu {menu_id}"])

        if menu_item_id is None:
            menu_item = MenuItem()
            menu.items.append(menu_item)
        else:
            menu_item = _get_menu_item(sess, menu_item_id)
            if menu_item.menu_id != menu.id:
                raise ValidationError(
                    [f"Menu item {menu_item_id} does not belong to menu {menu_id}"]
                )

        menu_item.set_item_ref(item_ref)
        menu_item.size_option = size_option
        menu_item.sale_price = quantize_money(sale_price)
        result = menu_pricing.reprice_menu_item(sess, menu_item)
        sess.flush()

        log_operation(
            logger,
            "upsert_menu_item",
            "success",
            menu_id=menu.id,
            menu_item_id=menu_item.id,
            item=str(item_ref),
            size_option_id=size_option_id,
            margin_percentage=str(result.margin_percentage),
        )
        return MutationResult(menu_item.id, result.margin_percentage, None)

    return run_in_session(_impl, session, operation="upsert_menu_item", service_logger=logger)


def delete_menu_item(menu_item_id: int, session: Optional[Session] = None) -> None:
    """
    Remove a listing.

    Raises:
        MenuItemNotFound: If the listing doesn't exist
    """

    def _impl(sess: Session) -> None:
        menu_item = _get_menu_item(sess, menu_item_id)
        menu_item.menu.items.remove(menu_item)
        sess.delete(menu_item)
        sess.flush()
        log_operation(logger, "delete_menu_item", "success", menu_item_id=menu_item_id)

    run_in_session(_impl, session, operation="delete_menu_item", service_logger=logger)


def get_menu_items(menu_id: int, session: Optional[Session] = None) -> List[MenuItem]:
    """
    Listings of a menu.

    Raises:
        MenuNotFound: If the menu doesn't exist
    """

    def _impl(sess: Session) -> List[MenuItem]:
        _get_menu(sess, menu_id)
        return (
            sess.query(MenuItem).filter(MenuItem.menu_id == menu_id).order_by(MenuItem.id).all()
        )

    return run_in_session(_impl, session, operation="get_menu_items")


# ============================================================================
# Pricing and target margin
# ============================================================================


def price_menu_item(
    menu_id: int, item_cost, sale_price, session: Optional[Session] = None
) -> PricingResult:
    """
    Price an arbitrary item cost on a menu without storing anything.

    Args:
        menu_id: Menu whose fees and apportionment apply
        item_cost: Cost of the item
        sale_price: Customer price

    Returns:
        PricingResult breakdown

    Raises:
        MenuNotFound: If the menu doesn't exist
        ValidationError: On negative inputs
    """
    errors = []
    for is_valid, error in (
        validate_non_negative_number(item_cost, "Item Cost"),
        validate_non_negative_number(sale_price, "Sale Price"),
    ):
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> PricingResult:
        menu = _get_menu(sess, menu_id)
        fixed_costs_total = menu_pricing.active_fixed_costs_total(sess, menu.workspace_id)
        return menu_pricing.price(menu, item_cost, sale_price, fixed_costs_total)

    return run_read_only(_impl, session, operation="price_menu_item", service_logger=logger)


def suggest_sale_price(
    menu_id: int, item_cost, target_margin_pct, session: Optional[Session] = None
) -> Decimal:
    """
    Sale price that reaches a target margin on a menu.

    Raises:
        MenuNotFound: If the menu doesn't exist
        InvalidMargin: If margin plus percentage fees and apportionment
            reach 100%
    """
    is_valid, error = validate_non_negative_number(item_cost, "Item Cost")
    if not is_valid:
        raise ValidationError([error])

    def _impl(sess: Session) -> Decimal:
        menu = _get_menu(sess, menu_id)
        fixed_costs_total = menu_pricing.active_fixed_costs_total(sess, menu.workspace_id)
        return menu_pricing.suggest_price(menu, item_cost, target_margin_pct, fixed_costs_total)

    return run_read_only(_impl, session, operation="suggest_sale_price", service_logger=logger)


def set_menu_target_margin(
    menu_id: int,
    target_margin,
    reprice_existing: bool = False,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Store a menu's target margin, optionally moving listings along with it.

    With reprice_existing, listings whose current margin is within
    TARGET_MARGIN_TOLERANCE points of the previous target get a new sale
    price that reaches the new target. Listings priced by hand away from
    the old target, and listings the new target cannot be reached for,
    are left alone.

    Returns:
        MutationResult with the stored target and the repriced listings

    Raises:
        MenuNotFound: If the menu doesn't exist
        ValidationError: If the target is outside [0, 100)
    """
    is_valid, error = validate_number_range(
        target_margin, 0, 100, "Target Margin", include_max=False
    )
    if not is_valid:
        raise ValidationError([error])

    def _impl(sess: Session) -> MutationResult:
        menu = _get_menu(sess, menu_id)
        previous = menu.target_margin
        menu.target_margin = quantize_percent(target_margin)
        sess.flush()

        cascade = CascadeResult(source=None)
        if reprice_existing and previous is not None:
            fixed_costs_total = menu_pricing.active_fixed_costs_total(sess, menu.workspace_id)
            for menu_item in menu.items:
                current_margin = to_decimal(menu_item.margin_percentage)
                if abs(current_margin - to_decimal(previous)) > TARGET_MARGIN_TOLERANCE:
                    continue
                item_cost = menu_pricing.listing_cost(
                    sess, menu_item.item_ref, menu_item.size_option
                )
                try:
                    new_price = menu_pricing.suggest_price(
                        menu, item_cost, menu.target_margin, fixed_costs_total
                    )
                except InvalidMargin as e:
                    log_operation(
                        logger,
                        "set_menu_target_margin",
                        "skipped",
                        level=logging.DEBUG,
                        menu_item_id=menu_item.id,
                        error=str(e),
                    )
                    continue
                menu_item.sale_price = new_price
                menu_pricing.apply_pricing(
                    menu_item, menu_pricing.price(menu, item_cost, new_price, fixed_costs_total)
                )
                cascade.repriced_menu_items.append(menu_item.id)
            sess.flush()

        log_operation(
            logger,
            "set_menu_target_margin",
            "success",
            menu_id=menu.id,
            target_margin=str(menu.target_margin),
            repriced_count=len(cascade.repriced_menu_items),
        )
        return MutationResult(menu.id, menu.target_margin, cascade)

    return run_in_session(
        _impl, session, operation="set_menu_target_margin", service_logger=logger
    )
