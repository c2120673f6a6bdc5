"""
Ingredient service: ingredients and their cost ledger.

An ingredient's base_cost_per_unit (currency per g / ml / un) comes either
from a manual price or from the quantity-weighted average of its purchase
entries:

    base_cost_per_unit = sum(entry.total_price) / sum(entry.quantity * entry.unit.factor)
    average_price      = base_cost_per_unit * price_unit.conversion_factor

With a manual price the entries are still recorded but no longer drive the
cost. When there are no entries the previous cost is kept. Every successful
recompute cascades to variations, recipes, products and menu listings.

All functions accept an optional session parameter to support being called
from other service functions that need to maintain transactional atomicity.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import Entry, Ingredient, ItemRef, MeasurementClass
from ..utils.constants import ZERO
from ..utils.datetime_utils import utc_today
from ..utils.validators import (
    validate_choice,
    validate_entry_data,
    validate_name,
    validate_non_negative_number,
    validate_positive_number,
    validate_quantity,
)
from . import cascade_service, cost_aggregator, dependency_graph, menu_pricing
from .database import run_in_session
from .dto import MutationResult
from .dto_utils import quantize_money, quantize_quantity, quantize_unit_cost, to_decimal
from .exceptions import (
    DivisionByZero,
    EntryNotFound,
    IngredientNotFound,
    ItemInUse,
    ValidationError,
)
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


# ============================================================================
# Helpers
# ============================================================================


def _get_ingredient(sess: Session, ingredient_id: int) -> Ingredient:
    ingredient = sess.get(Ingredient, ingredient_id)
    if ingredient is None:
        raise IngredientNotFound(ingredient_id)
    return ingredient


def _get_entry(sess: Session, entry_id: int) -> Entry:
    entry = sess.get(Entry, entry_id)
    if entry is None:
        raise EntryNotFound(entry_id)
    return entry


def _compatible_unit(sess: Session, ingredient: Ingredient, unit_id: int, context: str):
    unit = cost_aggregator.get_unit(sess, unit_id)
    cost_aggregator.ensure_compatible(unit, ingredient.measurement_class, context)
    return unit


def _set_base_cost(ingredient: Ingredient, base_cost_per_unit) -> None:
    ingredient.base_cost_per_unit = quantize_unit_cost(base_cost_per_unit)
    ingredient.average_price = quantize_money(
        ingredient.base_cost_per_unit * ingredient.price_unit.conversion_factor
    )


def _recompute_from_entries(sess: Session, ingredient: Ingredient) -> bool:
    """
    Apply the weighted-average rule.

    Returns:
        True if the cost was recomputed, False if it was left as is
        (manual price, or no entries)

    Raises:
        DivisionByZero: If the entries add up to zero base quantity. Stored
            quantities and conversion factors are positive, so this only
            guards against rows written around the services.
    """
    if ingredient.manual_price_override:
        return False

    entries = (
        sess.query(Entry).filter(Entry.ingredient_id == ingredient.id).order_by(Entry.id).all()
    )
    if not entries:
        return False

    total_price = ZERO
    total_base_quantity = ZERO
    for entry in entries:
        total_price += to_decimal(entry.total_price)
        total_base_quantity += cost_aggregator.to_base(entry.quantity, entry.unit)

    if total_base_quantity == 0:
        raise DivisionByZero(ingredient.id)

    _set_base_cost(ingredient, total_price / total_base_quantity)
    return True


def _cascade(sess: Session, ingredient: Ingredient, operation: str, **context) -> MutationResult:
    cascade = cascade_service.propagate(sess, ItemRef.ingredient(ingredient.id))
    log_operation(
        logger,
        operation,
        "success",
        ingredient_id=ingredient.id,
        base_cost_per_unit=str(ingredient.base_cost_per_unit),
        average_price=str(ingredient.average_price),
        updated_count=len(cascade.updated),
        **context,
    )
    return cascade


# ============================================================================
# Ingredients
# ============================================================================


def create_ingredient(
    workspace_id: int,
    name: str,
    measurement_class,
    price_unit_id: int,
    price=None,
    price_quantity=1,
    description: Optional[str] = None,
    session: Optional[Session] = None,
) -> Ingredient:
    """
    Create an ingredient.

    Args:
        workspace_id: Owning workspace
        name: Ingredient name
        measurement_class: "weight", "volume" or "count"
        price_unit_id: Unit the average price is quoted in (same class)
        price: Optional price paid for ``price_quantity`` price units; a
            positive price becomes a manual price
        price_quantity: How many price units ``price`` buys (default 1)
        description: Optional description
        session: Optional session for transactional composition

    Returns:
        Created Ingredient

    Raises:
        WorkspaceNotFound, UnitNotFound: If a reference doesn't exist
        IncompatibleMeasurementClass: If the price unit is of another class
        ValidationError: On invalid fields
    """
    errors = []
    for is_valid, error in (
        validate_name(name, "Ingredient Name"),
        validate_choice(measurement_class, MeasurementClass, "Measurement Class"),
        validate_positive_number(price_quantity, "Price Quantity"),
    ):
        if not is_valid:
            errors.append(error)
    if price is not None:
        is_valid, error = validate_non_negative_number(price, "Price")
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    measurement_class = MeasurementClass(getattr(measurement_class, "value", measurement_class))

    def _impl(sess: Session) -> Ingredient:
        cost_aggregator.get_workspace(sess, workspace_id)
        ingredient = Ingredient(
            workspace_id=workspace_id,
            name=name.strip(),
            description=description,
            measurement_class=measurement_class,
            price_unit_id=price_unit_id,
        )
        price_unit = _compatible_unit(sess, ingredient, price_unit_id, "price unit")
        ingredient.price_unit = price_unit

        average_price = to_decimal(price) / to_decimal(price_quantity) if price is not None else ZERO
        ingredient.average_price = quantize_money(average_price)
        ingredient.base_cost_per_unit = quantize_unit_cost(
            average_price / price_unit.conversion_factor
        )
        ingredient.manual_price_override = average_price > 0

        sess.add(ingredient)
        sess.flush()
        log_operation(
            logger,
            "create_ingredient",
            "success",
            ingredient_id=ingredient.id,
            base_cost_per_unit=str(ingredient.base_cost_per_unit),
        )
        return ingredient

    return run_in_session(_impl, session, operation="create_ingredient", service_logger=logger)


def update_ingredient(
    ingredient_id: int,
    name: Optional[str] = None,
    price_unit_id: Optional[int] = None,
    description: Optional[str] = None,
    session: Optional[Session] = None,
) -> Ingredient:
    """
    Rename an ingredient or change the unit its price is shown in.

    Changing the price unit re-expresses average_price in the new unit;
    base_cost_per_unit and everything downstream stay the same, except
    menu listings of the ingredient itself, which are priced from
    average_price and get repriced.

    Raises:
        IngredientNotFound, UnitNotFound: If a reference doesn't exist
        IncompatibleMeasurementClass: If the new price unit is of another class
        ValidationError: If the name is blank
    """
    if name is not None:
        is_valid, error = validate_name(name, "Ingredient Name")
        if not is_valid:
            raise ValidationError([error])

    def _impl(sess: Session) -> Ingredient:
        ingredient = _get_ingredient(sess, ingredient_id)
        if name is not None:
            ingredient.name = name.strip()
        if description is not None:
            ingredient.description = description
        if price_unit_id is not None and price_unit_id != ingredient.price_unit_id:
            price_unit = _compatible_unit(sess, ingredient, price_unit_id, "price unit")
            ingredient.price_unit = price_unit
            ingredient.average_price = quantize_money(
                ingredient.base_cost_per_unit * price_unit.conversion_factor
            )
            sess.flush()
            for menu_item in dependency_graph.menu_items_listing(
                sess, ItemRef.ingredient(ingredient.id)
            ):
                menu_pricing.reprice_menu_item(sess, menu_item)
        sess.flush()
        log_operation(logger, "update_ingredient", "success", ingredient_id=ingredient.id)
        return ingredient

    return run_in_session(_impl, session, operation="update_ingredient", service_logger=logger)


def delete_ingredient(ingredient_id: int, session: Optional[Session] = None) -> None:
    """
    Delete an ingredient with its variations and entries.

    Raises:
        IngredientNotFound: If the ingredient doesn't exist
        ItemInUse: If the ingredient or one of its variations is referenced
            by a recipe, product or menu
    """

    def _impl(sess: Session) -> None:
        ingredient = _get_ingredient(sess, ingredient_id)
        usage = dependency_graph.find_references(sess, ItemRef.ingredient(ingredient_id))
        for variation in ingredient.variations:
            for key, count in dependency_graph.find_references(
                sess, ItemRef.variation(variation.id)
            ).items():
                usage[key] = usage.get(key, 0) + count
        if usage:
            raise ItemInUse(f"ingredient '{ingredient.name}'", usage)
        sess.delete(ingredient)
        sess.flush()
        log_operation(logger, "delete_ingredient", "success", ingredient_id=ingredient_id)

    run_in_session(_impl, session, operation="delete_ingredient", service_logger=logger)


def get_ingredient(ingredient_id: int, session: Optional[Session] = None) -> Ingredient:
    """
    Retrieve an ingredient by ID.

    Raises:
        IngredientNotFound: If the ingredient doesn't exist
    """
    return run_in_session(
        lambda sess: _get_ingredient(sess, ingredient_id), session, operation="get_ingredient"
    )


def get_ingredients(workspace_id: int, session: Optional[Session] = None) -> List[Ingredient]:
    """List a workspace's ingredients by name."""
    return run_in_session(
        lambda sess: sess.query(Ingredient)
        .filter(Ingredient.workspace_id == workspace_id)
        .order_by(Ingredient.name)
        .all(),
        session,
        operation="get_ingredients",
    )


# ============================================================================
# Manual price
# ============================================================================


def set_manual_price(
    ingredient_id: int, price_per_price_unit, session: Optional[Session] = None
) -> MutationResult:
    """
    Set the ingredient's price by hand and cascade.

    Entries keep being recorded but stop driving the cost until
    clear_manual_price() is called.

    Args:
        ingredient_id: Ingredient to price
        price_per_price_unit: Currency per one price unit (e.g. per kg)

    Returns:
        MutationResult with the new base_cost_per_unit and the cascade

    Raises:
        IngredientNotFound: If the ingredient doesn't exist
        ValidationError: If the price is negative
    """
    is_valid, error = validate_non_negative_number(price_per_price_unit, "Price")
    if not is_valid:
        raise ValidationError([error])

    def _impl(sess: Session) -> MutationResult:
        ingredient = _get_ingredient(sess, ingredient_id)
        price = to_decimal(price_per_price_unit)
        ingredient.manual_price_override = True
        ingredient.average_price = quantize_money(price)
        ingredient.base_cost_per_unit = quantize_unit_cost(
            price / ingredient.price_unit.conversion_factor
        )
        cascade = _cascade(sess, ingredient, "set_manual_price")
        return MutationResult(ingredient.id, ingredient.base_cost_per_unit, cascade)

    return run_in_session(_impl, session, operation="set_manual_price", service_logger=logger)


set_manual_ingredient_price = set_manual_price


def clear_manual_price(ingredient_id: int, session: Optional[Session] = None) -> MutationResult:
    """
    Turn the manual price off and recompute the cost from the entries.

    Without entries the manual value stays as the current cost.

    Raises:
        IngredientNotFound: If the ingredient doesn't exist
        DivisionByZero: If the entries add up to zero base quantity
    """

    def _impl(sess: Session) -> MutationResult:
        ingredient = _get_ingredient(sess, ingredient_id)
        ingredient.manual_price_override = False
        if not _recompute_from_entries(sess, ingredient):
            sess.flush()
            return MutationResult(ingredient.id, ingredient.base_cost_per_unit, None)
        cascade = _cascade(sess, ingredient, "clear_manual_price")
        return MutationResult(ingredient.id, ingredient.base_cost_per_unit, cascade)

    return run_in_session(_impl, session, operation="clear_manual_price", service_logger=logger)


# ============================================================================
# Entries
# ============================================================================


def record_entry(
    ingredient_id: int,
    quantity,
    unit_id: int,
    total_price,
    entry_date: Optional[date] = None,
    supplier: Optional[str] = None,
    observation: Optional[str] = None,
    use_as_manual_price: bool = False,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Record a purchase and recompute the ingredient's cost.

    Args:
        ingredient_id: Purchased ingredient
        quantity: Amount bought, in ``unit_id``
        unit_id: Unit of quantity (same class as the ingredient)
        total_price: Total paid
        entry_date: Purchase date (default: today, UTC)
        supplier: Optional supplier name
        observation: Optional note
        use_as_manual_price: If True, this purchase's price per base unit
            becomes the ingredient's manual price instead of feeding the
            weighted average
        session: Optional session for transactional composition

    Returns:
        MutationResult with the entry id, the ingredient's base cost and
        the cascade (None if the cost was left unchanged)

    Raises:
        IngredientNotFound, UnitNotFound: If a reference doesn't exist
        IncompatibleMeasurementClass: If the unit is of another class
        DivisionByZero: If the entries add up to zero base quantity
        ValidationError: On invalid quantity/price
    """
    is_valid, errors = validate_entry_data(quantity, total_price)
    if not is_valid:
        raise ValidationError(errors)

    def _impl(sess: Session) -> MutationResult:
        ingredient = _get_ingredient(sess, ingredient_id)
        unit = _compatible_unit(sess, ingredient, unit_id, "entry unit")

        entry = Entry(
            ingredient_id=ingredient.id,
            entry_date=entry_date or utc_today(),
            quantity=quantize_quantity(quantity),
            unit_id=unit.id,
            total_price=quantize_money(total_price),
            supplier=supplier,
            observation=observation.strip() if observation else None,
        )
        entry.unit = unit
        sess.add(entry)
        sess.flush()

        if use_as_manual_price:
            ingredient.manual_price_override = True
            _set_base_cost(
                ingredient, to_decimal(entry.total_price) / cost_aggregator.to_base(entry.quantity, unit)
            )
            recomputed = True
        else:
            recomputed = _recompute_from_entries(sess, ingredient)

        cascade = None
        if recomputed:
            cascade = _cascade(sess, ingredient, "record_entry", entry_id=entry.id)
        else:
            log_operation(
                logger,
                "record_entry",
                "success",
                ingredient_id=ingredient.id,
                entry_id=entry.id,
                cost_unchanged=True,
            )
        return MutationResult(entry.id, ingredient.base_cost_per_unit, cascade)

    return run_in_session(_impl, session, operation="record_entry", service_logger=logger)


def update_entry(
    entry_id: int,
    quantity=None,
    unit_id: Optional[int] = None,
    total_price=None,
    entry_date: Optional[date] = None,
    supplier: Optional[str] = None,
    observation: Optional[str] = None,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Edit a purchase entry and recompute the ingredient's cost.

    Only the arguments that are not None are changed.

    Raises:
        EntryNotFound, UnitNotFound: If a reference doesn't exist
        IncompatibleMeasurementClass: If the new unit is of another class
        DivisionByZero: If the entries add up to zero base quantity
        ValidationError: On invalid quantity/price
    """
    errors = []
    if quantity is not None:
        is_valid, error = validate_quantity(quantity, "Quantity")
        if not is_valid:
            errors.append(error)
    if total_price is not None:
        is_valid, error = validate_non_negative_number(total_price, "Total Price")
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> MutationResult:
        entry = _get_entry(sess, entry_id)
        ingredient = entry.ingredient
        if unit_id is not None:
            entry.unit = _compatible_unit(sess, ingredient, unit_id, "entry unit")
        if quantity is not None:
            entry.quantity = quantize_quantity(quantity)
        if total_price is not None:
            entry.total_price = quantize_money(total_price)
        if entry_date is not None:
            entry.entry_date = entry_date
        if supplier is not None:
            entry.supplier = supplier
        if observation is not None:
            entry.observation = observation.strip() or None
        sess.flush()

        cascade = None
        if _recompute_from_entries(sess, ingredient):
            cascade = _cascade(sess, ingredient, "update_entry", entry_id=entry.id)
        return MutationResult(entry.id, ingredient.base_cost_per_unit, cascade)

    return run_in_session(_impl, session, operation="update_entry", service_logger=logger)


def remove_entry(entry_id: int, session: Optional[Session] = None) -> MutationResult:
    """
    Delete a purchase entry and recompute the ingredient's cost.

    Removing the last entry leaves the cost as it was.

    Raises:
        EntryNotFound: If the entry doesn't exist
    """

    def _impl(sess: Session) -> MutationResult:
        entry = _get_entry(sess, entry_id)
        ingredient = entry.ingredient
        ingredient.entries.remove(entry)
        sess.delete(entry)
        sess.flush()

        cascade = None
        if _recompute_from_entries(sess, ingredient):
            cascade = _cascade(sess, ingredient, "remove_entry", entry_id=entry_id)
        else:
            log_operation(
                logger,
                "remove_entry",
                "success",
                ingredient_id=ingredient.id,
                entry_id=entry_id,
                cost_unchanged=True,
            )
        return MutationResult(entry_id, ingredient.base_cost_per_unit, cascade)

    return run_in_session(_impl, session, operation="remove_entry", service_logger=logger)


def get_entries(ingredient_id: int, session: Optional[Session] = None) -> List[Entry]:
    """
    List an ingredient's entries, most recent first.

    Raises:
        IngredientNotFound: If the ingredient doesn't exist
    """

    def _impl(sess: Session) -> List[Entry]:
        _get_ingredient(sess, ingredient_id)
        return (
            sess.query(Entry)
            .filter(Entry.ingredient_id == ingredient_id)
            .order_by(Entry.entry_date.desc(), Entry.id.desc())
            .all()
        )

    return run_in_session(_impl, session, operation="get_entries")
