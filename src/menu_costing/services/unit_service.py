"""Unit Service - the per-workspace unit conversion table.

Every quantity that enters a cost formula is first converted to its
measurement class's base unit (g, ml, un) through the unit's conversion
factor. Units of different classes are never mixed.

All functions accept an optional session parameter to support being called
from other service functions that need to maintain transactional atomicity.

Example Usage:
    >>> from menu_costing.services import unit_service
    >>> kg = unit_service.create_unit(ws.id, "kilogram", "kg", "weight", 1000)
    >>> unit_service.to_base(Decimal("2.5"), kg.id)
    Decimal('2500.0000000')
"""

from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models import (
    Entry,
    Ingredient,
    IngredientVariation,
    MeasurementClass,
    ProductComposition,
    Recipe,
    RecipeItem,
    Unit,
)
from ..utils.constants import ONE
from ..utils.validators import validate_choice, validate_name, validate_unit_data
from . import cost_aggregator
from .database import run_in_session
from .dto_utils import quantize_factor, to_decimal
from .exceptions import BaseUnitImmutable, ItemInUse, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _unit_usage(sess: Session, unit_id: int) -> Dict[str, int]:
    """Count the records measured in a unit."""
    usage = {
        "ingredients": sess.query(Ingredient).filter(Ingredient.price_unit_id == unit_id).count(),
        "variations": sess.query(IngredientVariation)
        .filter(
            or_(
                IngredientVariation.input_unit_id == unit_id,
                IngredientVariation.output_unit_id == unit_id,
            )
        )
        .count(),
        "entries": sess.query(Entry).filter(Entry.unit_id == unit_id).count(),
        "recipes": sess.query(Recipe).filter(Recipe.yield_unit_id == unit_id).count(),
        "recipe_items": sess.query(RecipeItem).filter(RecipeItem.unit_id == unit_id).count(),
        "product_compositions": sess.query(ProductComposition)
        .filter(ProductComposition.unit_id == unit_id)
        .count(),
    }
    return {key: count for key, count in usage.items() if count}


def create_unit(
    workspace_id: int,
    name: str,
    abbreviation: str,
    measurement_class,
    conversion_factor,
    is_base: bool = False,
    session: Optional[Session] = None,
) -> Unit:
    """
    Create a unit in a workspace's conversion table.

    Args:
        workspace_id: Owning workspace
        name: Unit name (e.g., "kilogram")
        abbreviation: Unique abbreviation within the workspace (e.g., "kg")
        measurement_class: "weight", "volume" or "count" (or MeasurementClass)
        conversion_factor: Base units per one of this unit (> 0)
        is_base: Mark as the class's base unit (factor must be 1)
        session: Optional session for transactional composition

    Returns:
        Created Unit

    Raises:
        WorkspaceNotFound: If the workspace doesn't exist
        ValidationError: On invalid fields, a base unit whose factor is not 1,
            a second base unit for the class, or a duplicate abbreviation
    """
    is_valid, errors = validate_unit_data(name, abbreviation, measurement_class, conversion_factor)
    if not is_valid:
        raise ValidationError(errors)

    measurement_class = MeasurementClass(getattr(measurement_class, "value", measurement_class))
    factor = quantize_factor(conversion_factor)
    if is_base and factor != ONE:
        raise ValidationError(["Conversion Factor: A base unit must have factor 1"])

    def _impl(sess: Session) -> Unit:
        cost_aggregator.get_workspace(sess, workspace_id)

        errors = []
        if is_base:
            existing_base = (
                sess.query(Unit)
                .filter(
                    Unit.workspace_id == workspace_id,
                    Unit.measurement_class == measurement_class,
                    Unit.is_base.is_(True),
                )
                .first()
            )
            if existing_base is not None:
                errors.append(
                    f"Is Base: '{existing_base.abbreviation}' is already the base "
                    f"{measurement_class.value} unit"
                )
        duplicate = (
            sess.query(Unit)
            .filter(Unit.workspace_id == workspace_id, Unit.abbreviation == abbreviation.strip())
            .first()
        )
        if duplicate is not None:
            errors.append(f"Abbreviation: '{abbreviation}' already exists")
        if errors:
            raise ValidationError(errors)

        unit = Unit(
            workspace_id=workspace_id,
            name=name.strip(),
            abbreviation=abbreviation.strip(),
            measurement_class=measurement_class,
            conversion_factor=factor,
            is_base=is_base,
        )
        sess.add(unit)
        sess.flush()
        log_operation(
            logger,
            "create_unit",
            "success",
            unit_id=unit.id,
            abbreviation=unit.abbreviation,
            conversion_factor=str(factor),
        )
        return unit

    return run_in_session(_impl, session, operation="create_unit", service_logger=logger)


def update_unit(
    unit_id: int,
    name: Optional[str] = None,
    abbreviation: Optional[str] = None,
    conversion_factor=None,
    session: Optional[Session] = None,
) -> Unit:
    """
    Rename a unit or change its conversion factor.

    The factor can only change while nothing is measured in the unit; a new
    factor would otherwise silently re-value every cached cost built from it.

    Raises:
        UnitNotFound: If the unit doesn't exist
        BaseUnitImmutable: If the unit is a base unit
        ItemInUse: If the factor changes while the unit is in use
        ValidationError: On invalid fields
    """
    errors = []
    if name is not None:
        is_valid, error = validate_name(name, "Unit Name")
        if not is_valid:
            errors.append(error)
    if abbreviation is not None and not abbreviation.strip():
        errors.append("Abbreviation: This field is required")
    if conversion_factor is not None:
        try:
            if to_decimal(conversion_factor) <= 0:
                errors.append("Conversion Factor: Must be greater than zero")
        except ValueError:
            errors.append("Conversion Factor: Must be a valid number")
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> Unit:
        unit = cost_aggregator.get_unit(sess, unit_id)
        if unit.is_base:
            raise BaseUnitImmutable(unit_id)

        if conversion_factor is not None:
            factor = quantize_factor(conversion_factor)
            if factor != unit.conversion_factor:
                usage = _unit_usage(sess, unit_id)
                if usage:
                    raise ItemInUse(f"unit '{unit.abbreviation}'", usage)
                unit.conversion_factor = factor
        if name is not None:
            unit.name = name.strip()
        if abbreviation is not None:
            unit.abbreviation = abbreviation.strip()

        sess.flush()
        log_operation(logger, "update_unit", "success", unit_id=unit.id)
        return unit

    return run_in_session(_impl, session, operation="update_unit", service_logger=logger)


def delete_unit(unit_id: int, session: Optional[Session] = None) -> None:
    """
    Delete an unused, non-base unit.

    Raises:
        UnitNotFound: If the unit doesn't exist
        BaseUnitImmutable: If the unit is a base unit
        ItemInUse: If anything is measured in the unit
    """

    def _impl(sess: Session) -> None:
        unit = cost_aggregator.get_unit(sess, unit_id)
        if unit.is_base:
            raise BaseUnitImmutable(unit_id)
        usage = _unit_usage(sess, unit_id)
        if usage:
            raise ItemInUse(f"unit '{unit.abbreviation}'", usage)
        sess.delete(unit)
        sess.flush()
        log_operation(logger, "delete_unit", "success", unit_id=unit_id)

    run_in_session(_impl, session, operation="delete_unit", service_logger=logger)


def get_unit(unit_id: int, session: Optional[Session] = None) -> Unit:
    """
    Retrieve a unit by ID.

    Raises:
        UnitNotFound: If the unit doesn't exist
    """
    return run_in_session(
        lambda sess: cost_aggregator.get_unit(sess, unit_id), session, operation="get_unit"
    )


def get_units_by_class(
    workspace_id: int, measurement_class, session: Optional[Session] = None
) -> List[Unit]:
    """
    Get a workspace's units of one measurement class, base unit first.

    Raises:
        ValidationError: If the measurement class is unknown
    """
    is_valid, error = validate_choice(measurement_class, MeasurementClass, "Measurement Class")
    if not is_valid:
        raise ValidationError([error])
    measurement_class = MeasurementClass(getattr(measurement_class, "value", measurement_class))

    def _impl(sess: Session) -> List[Unit]:
        return (
            sess.query(Unit)
            .filter(Unit.workspace_id == workspace_id, Unit.measurement_class == measurement_class)
            .order_by(Unit.is_base.desc(), Unit.conversion_factor, Unit.abbreviation)
            .all()
        )

    return run_in_session(_impl, session, operation="get_units_by_class")


def to_base(quantity, unit_id: int, session: Optional[Session] = None) -> Decimal:
    """
    Convert a quantity in ``unit_id`` to its class's base unit.

    Raises:
        UnitNotFound: If the unit doesn't exist
    """
    return run_in_session(
        lambda sess: cost_aggregator.to_base(quantity, cost_aggregator.get_unit(sess, unit_id)),
        session,
        operation="to_base",
    )


def ensure_compatible(unit: Unit, measurement_class, context: str = "") -> None:
    """
    Check that ``unit`` measures ``measurement_class``.

    Raises:
        IncompatibleMeasurementClass: If the classes differ
    """
    measurement_class = MeasurementClass(getattr(measurement_class, "value", measurement_class))
    cost_aggregator.ensure_compatible(unit, measurement_class, context)
