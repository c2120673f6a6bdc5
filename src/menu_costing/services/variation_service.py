"""
Variation service: processed forms of an ingredient.

A variation records how much usable output a measured input produces
(peeled, deboned, cooked). Its cost per output base unit is the parent's
base cost spread over that yield; see cost_aggregator.variation_cost.
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import Ingredient, IngredientVariation, ItemRef
from ..utils.validators import validate_name, validate_quantity
from . import cascade_service, cost_aggregator, dependency_graph
from .database import run_in_session
from .dto import MutationResult
from .dto_utils import quantize_percent, quantize_quantity
from .exceptions import IngredientNotFound, ItemInUse, ValidationError, VariationNotFound
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _get_variation(sess: Session, variation_id: int) -> IngredientVariation:
    variation = sess.get(IngredientVariation, variation_id)
    if variation is None:
        raise VariationNotFound(variation_id)
    return variation


def upsert_variation(
    ingredient_id: int,
    name: str,
    input_quantity,
    input_unit_id: int,
    output_quantity,
    output_unit_id: int,
    variation_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Create or update a variation and cascade its new cost.

    Yield above 100% (hydration gain) is accepted.

    Args:
        ingredient_id: Parent ingredient
        name: Variation name
        input_quantity: Raw amount measured, in input_unit_id
        input_unit_id: Unit of the raw amount
        output_quantity: Usable amount obtained, in output_unit_id
        output_unit_id: Unit of the usable amount; becomes the variation's unit
        variation_id: Existing variation to update, or None to create
        session: Optional session for transactional composition

    Returns:
        MutationResult with the variation id, its calculated_cost and the cascade

    Raises:
        IngredientNotFound, VariationNotFound, UnitNotFound
        IncompatibleMeasurementClass: If a unit is not of the ingredient's class
        InvalidYieldInput: If the input base quantity is not positive
        ValidationError: On a blank name or non-positive output quantity
    """
    errors = []
    for is_valid, error in (
        validate_name(name, "Variation Name"),
        validate_quantity(output_quantity, "Output Quantity"),
    ):
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> MutationResult:
        ingredient = sess.get(Ingredient, ingredient_id)
        if ingredient is None:
            raise IngredientNotFound(ingredient_id)

        input_unit = cost_aggregator.get_unit(sess, input_unit_id)
        output_unit = cost_aggregator.get_unit(sess, output_unit_id)
        cost_aggregator.ensure_compatible(input_unit, ingredient.measurement_class, "input unit")
        cost_aggregator.ensure_compatible(
            output_unit, ingredient.measurement_class, "output unit"
        )
        # yield is derived from the quantities exactly as they are stored
        stored_input = quantize_quantity(input_quantity)
        stored_output = quantize_quantity(output_quantity)
        yield_pct = quantize_percent(
            cost_aggregator.yield_percentage(stored_input, input_unit, stored_output, output_unit)
        )

        if variation_id is None:
            variation = IngredientVariation()
            ingredient.variations.append(variation)
        else:
            variation = _get_variation(sess, variation_id)
            if variation.ingredient_id != ingredient.id:
                raise ValidationError(
                    [f"Variation {variation_id} does not belong to ingredient {ingredient_id}"]
                )

        variation.name = name.strip()
        variation.input_quantity = stored_input
        variation.input_unit = input_unit
        variation.output_quantity = stored_output
        variation.output_unit = output_unit
        variation.yield_percentage = yield_pct
        variation.calculated_cost = cost_aggregator.variation_cost(
            ingredient.base_cost_per_unit, yield_pct
        )
        ingredient.has_variations = True
        sess.flush()

        cascade = cascade_service.propagate(sess, ItemRef.variation(variation.id))
        log_operation(
            logger,
            "upsert_variation",
            "success",
            variation_id=variation.id,
            ingredient_id=ingredient.id,
            yield_percentage=str(variation.yield_percentage),
            calculated_cost=str(variation.calculated_cost),
            updated_count=len(cascade.updated),
        )
        return MutationResult(variation.id, variation.calculated_cost, cascade)

    return run_in_session(_impl, session, operation="upsert_variation", service_logger=logger)


def delete_variation(variation_id: int, session: Optional[Session] = None) -> None:
    """
    Delete a variation.

    Deleting the last variation clears the ingredient's has_variations flag.

    Raises:
        VariationNotFound: If the variation doesn't exist
        ItemInUse: If a recipe or product still uses the variation
    """

    def _impl(sess: Session) -> None:
        variation = _get_variation(sess, variation_id)
        usage = dependency_graph.find_references(sess, ItemRef.variation(variation_id))
        if usage:
            raise ItemInUse(f"variation '{variation.name}'", usage)

        ingredient = variation.ingredient
        ingredient.variations.remove(variation)
        sess.delete(variation)
        ingredient.has_variations = bool(ingredient.variations)
        sess.flush()
        log_operation(
            logger,
            "delete_variation",
            "success",
            variation_id=variation_id,
            ingredient_id=ingredient.id,
            has_variations=ingredient.has_variations,
        )

    run_in_session(_impl, session, operation="delete_variation", service_logger=logger)


def get_variations(ingredient_id: int, session: Optional[Session] = None) -> List[IngredientVariation]:
    """
    List an ingredient's variations.

    Raises:
        IngredientNotFound: If the ingredient doesn't exist
    """

    def _impl(sess: Session) -> List[IngredientVariation]:
        if sess.get(Ingredient, ingredient_id) is None:
            raise IngredientNotFound(ingredient_id)
        return (
            sess.query(IngredientVariation)
            .filter(IngredientVariation.ingredient_id == ingredient_id)
            .order_by(IngredientVariation.id)
            .all()
        )

    return run_in_session(_impl, session, operation="get_variations")
