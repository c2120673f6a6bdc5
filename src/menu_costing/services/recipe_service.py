"""
Recipe service: recipes, their composition lines and preparation steps.

A recipe's cost is rebuilt from its lines whenever a line or an attribute
(yield, prep time) changes, and the change is cascaded to every recipe,
product and menu listing built from it.

All functions accept an optional session parameter to support being called
from other service functions that need to maintain transactional atomicity.
"""

from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import ItemRef, Recipe, RecipeItem, RecipeStep
from ..utils.validators import (
    validate_name,
    validate_quantity,
    validate_recipe_data,
    validate_required_string,
)
from . import cascade_service, cost_aggregator, dependency_graph
from .composition_utils import check_component
from .database import run_in_session
from .dto import MutationResult
from .dto_utils import quantize_quantity
from .exceptions import (
    IncompatibleMeasurementClass,
    InvalidYield,
    ItemInUse,
    RecipeItemNotFound,
    RecipeNotFound,
    RecipeStepNotFound,
    ValidationError,
)
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


# ============================================================================
# Helpers
# ============================================================================


def _get_recipe(sess: Session, recipe_id: int) -> Recipe:
    recipe = sess.get(Recipe, recipe_id)
    if recipe is None:
        raise RecipeNotFound(recipe_id)
    return recipe


def _get_item(sess: Session, item_id: int) -> RecipeItem:
    item = sess.get(RecipeItem, item_id)
    if item is None:
        raise RecipeItemNotFound(item_id)
    return item


def _get_step(sess: Session, step_id: int) -> RecipeStep:
    step = sess.get(RecipeStep, step_id)
    if step is None:
        raise RecipeStepNotFound(step_id)
    return step


def _recompute(sess: Session, recipe: Recipe, operation: str, **context) -> MutationResult:
    cascade = cascade_service.recompute_and_propagate(sess, ItemRef.recipe(recipe.id))
    log_operation(
        logger,
        operation,
        "success",
        recipe_id=recipe.id,
        total_cost=str(recipe.total_cost),
        cost_per_portion=str(recipe.cost_per_portion),
        updated_count=len(cascade.updated),
        **context,
    )
    return cascade


# ============================================================================
# Recipes
# ============================================================================


def create_recipe(
    workspace_id: int,
    name: str,
    yield_quantity,
    yield_unit_id: int,
    prep_time_minutes: Optional[int] = None,
    description: Optional[str] = None,
    session: Optional[Session] = None,
) -> Recipe:
    """
    Create a recipe without lines.

    Its labor cost is computed right away from prep time and the
    workspace's hourly rate.

    Args:
        workspace_id: Owning workspace
        name: Recipe name
        yield_quantity: Portions one batch produces, in yield_unit_id
        yield_unit_id: Unit of the yield
        prep_time_minutes: Optional labor time per batch
        description: Optional description
        session: Optional session for transactional composition

    Returns:
        Created Recipe

    Raises:
        ValidationError: On a blank name or negative prep time
        InvalidYield: If yield_quantity is not positive at the stored scale
        WorkspaceNotFound, UnitNotFound: If a reference doesn't exist
    """
    is_valid, errors = validate_recipe_data(name, yield_quantity, prep_time_minutes, description)
    if not is_valid:
        raise ValidationError(errors)
    if quantize_quantity(yield_quantity) <= 0:
        raise InvalidYield(None, yield_quantity)

    def _impl(sess: Session) -> Recipe:
        cost_aggregator.get_workspace(sess, workspace_id)
        yield_unit = cost_aggregator.get_unit(sess, yield_unit_id)

        recipe = Recipe(
            workspace_id=workspace_id,
            name=name.strip(),
            description=description,
            yield_quantity=quantize_quantity(yield_quantity),
            yield_unit=yield_unit,
            prep_time_minutes=prep_time_minutes,
        )
        sess.add(recipe)
        sess.flush()
        cost_aggregator.recompute_recipe(sess, recipe)
        sess.flush()

        log_operation(
            logger,
            "create_recipe",
            "success",
            recipe_id=recipe.id,
            cost_per_portion=str(recipe.cost_per_portion),
        )
        return recipe

    return run_in_session(_impl, session, operation="create_recipe", service_logger=logger)


def set_recipe_attributes(
    recipe_id: int,
    name: Optional[str] = None,
    yield_quantity=None,
    yield_unit_id: Optional[int] = None,
    prep_time_minutes: Optional[int] = None,
    description: Optional[str] = None,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Change a recipe's attributes, recompute it and cascade.

    Only the arguments that are not None are changed. The yield unit may
    change class only while no other recipe or product uses the recipe.

    Returns:
        MutationResult with the recipe id, its new cost_per_portion and the cascade

    Raises:
        RecipeNotFound, UnitNotFound: If a reference doesn't exist
        InvalidYield: If the new yield is not positive at the stored scale
        IncompatibleMeasurementClass: If a used recipe's yield unit changes class
        ValidationError: On a blank name or negative prep time
    """
    errors = []
    if name is not None:
        is_valid, error = validate_name(name, "Recipe Name")
        if not is_valid:
            errors.append(error)
    if prep_time_minutes is not None and prep_time_minutes < 0:
        errors.append("Prep Time: Must be non-negative")
    if errors:
        raise ValidationError(errors)
    if yield_quantity is not None and quantize_quantity(yield_quantity) <= 0:
        raise InvalidYield(recipe_id, yield_quantity)

    def _impl(sess: Session) -> MutationResult:
        recipe = _get_recipe(sess, recipe_id)

        if yield_unit_id is not None and yield_unit_id != recipe.yield_unit_id:
            new_unit = cost_aggregator.get_unit(sess, yield_unit_id)
            old_class = recipe.yield_unit.measurement_class
            if new_unit.measurement_class != old_class:
                usage = dependency_graph.find_references(sess, ItemRef.recipe(recipe.id))
                if usage.get("recipe_items") or usage.get("product_compositions"):
                    raise IncompatibleMeasurementClass(
                        new_unit.measurement_class.value,
                        old_class.value,
                        "yield unit of a recipe in use",
                    )
            recipe.yield_unit = new_unit

        if name is not None:
            recipe.name = name.strip()
        if description is not None:
            recipe.description = description
        if yield_quantity is not None:
            recipe.yield_quantity = quantize_quantity(yield_quantity)
        if prep_time_minutes is not None:
            recipe.prep_time_minutes = prep_time_minutes
        sess.flush()

        cascade = _recompute(sess, recipe, "set_recipe_attributes")
        return MutationResult(recipe.id, recipe.cost_per_portion, cascade)

    return run_in_session(
        _impl, session, operation="set_recipe_attributes", service_logger=logger
    )


def delete_recipe(recipe_id: int, session: Optional[Session] = None) -> None:
    """
    Delete a recipe with its lines and steps.

    Raises:
        RecipeNotFound: If the recipe doesn't exist
        ItemInUse: If another recipe, a product or a menu still uses it
    """

    def _impl(sess: Session) -> None:
        recipe = _get_recipe(sess, recipe_id)
        usage = dependency_graph.find_references(sess, ItemRef.recipe(recipe_id))
        if usage:
            raise ItemInUse(f"recipe '{recipe.name}'", usage)
        sess.delete(recipe)
        sess.flush()
        log_operation(logger, "delete_recipe", "success", recipe_id=recipe_id)

    run_in_session(_impl, session, operation="delete_recipe", service_logger=logger)


def get_recipe(recipe_id: int, session: Optional[Session] = None) -> Recipe:
    """
    Retrieve a recipe by ID.

    Raises:
        RecipeNotFound: If the recipe doesn't exist
    """
    return run_in_session(lambda sess: _get_recipe(sess, recipe_id), session, operation="get_recipe")


def get_recipe_items(recipe_id: int, session: Optional[Session] = None) -> List[RecipeItem]:
    """Lines of a recipe in display order."""

    def _impl(sess: Session) -> List[RecipeItem]:
        _get_recipe(sess, recipe_id)
        return (
            sess.query(RecipeItem)
            .filter(RecipeItem.recipe_id == recipe_id)
            .order_by(RecipeItem.sort_order, RecipeItem.id)
            .all()
        )

    return run_in_session(_impl, session, operation="get_recipe_items")


# ============================================================================
# Recipe items
# ============================================================================


def upsert_recipe_item(
    recipe_id: int,
    item_ref: ItemRef,
    quantity,
    unit_id: int,
    item_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Add or edit a line of a recipe, recompute the recipe and cascade.

    New lines are appended after the existing ones.

    Args:
        recipe_id: Owning recipe
        item_ref: Ingredient, variation or recipe used
        quantity: Amount used, in unit_id
        unit_id: Unit of quantity (same class as the referenced item)
        item_id: Existing line to edit, or None to add one
        session: Optional session for transactional composition

    Returns:
        MutationResult with the line id, the recipe's new cost_per_portion
        and the cascade

    Raises:
        RecipeNotFound, RecipeItemNotFound, UnitNotFound, or the NotFound of
            the referenced item
        SelfReference: If the recipe would contain itself
        CircularReference: If the referenced recipe already uses this recipe
        IncompatibleMeasurementClass: If the unit's class differs from the item's
        ValidationError: On a non-positive quantity, a missing unit or a
            product reference
    """
    errors = []
    is_valid, error = validate_quantity(quantity, "Quantity")
    if not is_valid:
        errors.append(error)
    if unit_id is None:
        errors.append("Unit: This field is required")
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> MutationResult:
        recipe = _get_recipe(sess, recipe_id)
        owner = ItemRef.recipe(recipe.id)
        unit = check_component(sess, owner, RecipeItem, item_ref, unit_id)

        if item_id is None:
            last = (
                sess.query(func.max(RecipeItem.sort_order))
                .filter(RecipeItem.recipe_id == recipe.id)
                .scalar()
            )
            line = RecipeItem(sort_order=0 if last is None else last + 1)
            recipe.items.append(line)
        else:
            line = _get_item(sess, item_id)
            if line.recipe_id != recipe.id:
                raise ValidationError([f"Recipe item {item_id} does not belong to recipe {recipe_id}"])

        line.set_item_ref(item_ref)
        line.quantity = quantize_quantity(quantity)
        line.unit = unit
        line.calculated_cost = cost_aggregator.item_cost(sess, item_ref, line.quantity, unit.id)
        sess.flush()

        cascade = _recompute(sess, recipe, "upsert_recipe_item", item_id=line.id, item=str(item_ref))
        return MutationResult(line.id, recipe.cost_per_portion, cascade)

    return run_in_session(_impl, session, operation="upsert_recipe_item", service_logger=logger)


def delete_recipe_item(item_id: int, session: Optional[Session] = None) -> MutationResult:
    """
    Remove a line from its recipe, recompute the recipe and cascade.

    Returns:
        MutationResult with the removed line id, the recipe's new
        cost_per_portion and the cascade

    Raises:
        RecipeItemNotFound: If the line doesn't exist
    """

    def _impl(sess: Session) -> MutationResult:
        line = _get_item(sess, item_id)
        recipe = line.recipe
        recipe.items.remove(line)
        sess.delete(line)
        sess.flush()

        cascade = _recompute(sess, recipe, "delete_recipe_item", item_id=item_id)
        return MutationResult(item_id, recipe.cost_per_portion, cascade)

    return run_in_session(_impl, session, operation="delete_recipe_item", service_logger=logger)


# ============================================================================
# Preparation steps
# ============================================================================


def add_recipe_step(
    recipe_id: int,
    instruction: str,
    step_number: Optional[int] = None,
    session: Optional[Session] = None,
) -> RecipeStep:
    """
    Add a preparation step.

    Without step_number the step is appended; with one, the steps from that
    position on move down by one.

    Raises:
        RecipeNotFound: If the recipe doesn't exist
        ValidationError: On a blank instruction or step_number < 1
    """
    is_valid, error = validate_required_string(instruction, "Instruction")
    if not is_valid:
        raise ValidationError([error])
    if step_number is not None and step_number < 1:
        raise ValidationError(["Step Number: Must be at least 1"])

    def _impl(sess: Session) -> RecipeStep:
        recipe = _get_recipe(sess, recipe_id)
        steps = list(recipe.steps)
        position = len(steps) + 1 if step_number is None else min(step_number, len(steps) + 1)
        for step in steps:
            if step.step_number >= position:
                step.step_number += 1
        new_step = RecipeStep(step_number=position, instruction=instruction.strip())
        recipe.steps.append(new_step)
        sess.flush()
        log_operation(
            logger, "add_recipe_step", "success", recipe_id=recipe.id, step_number=position
        )
        return new_step

    return run_in_session(_impl, session, operation="add_recipe_step", service_logger=logger)


def update_recipe_step(
    step_id: int,
    instruction: Optional[str] = None,
    step_number: Optional[int] = None,
    session: Optional[Session] = None,
) -> RecipeStep:
    """
    Edit a step's text or move it to another position.

    Raises:
        RecipeStepNotFound: If the step doesn't exist
        ValidationError: On a blank instruction or step_number < 1
    """
    if instruction is not None:
        is_valid, error = validate_required_string(instruction, "Instruction")
        if not is_valid:
            raise ValidationError([error])
    if step_number is not None and step_number < 1:
        raise ValidationError(["Step Number: Must be at least 1"])

    def _impl(sess: Session) -> RecipeStep:
        step = _get_step(sess, step_id)
        if instruction is not None:
            step.instruction = instruction.strip()
        if step_number is not None and step_number != step.step_number:
            others = [s for s in step.recipe.steps if s.id != step.id]
            others.sort(key=lambda s: s.step_number)
            position = min(step_number, len(others) + 1)
            others.insert(position - 1, step)
            for number, s in enumerate(others, start=1):
                s.step_number = number
        sess.flush()
        log_operation(logger, "update_recipe_step", "success", step_id=step.id)
        return step

    return run_in_session(_impl, session, operation="update_recipe_step", service_logger=logger)


def remove_recipe_step(step_id: int, session: Optional[Session] = None) -> None:
    """
    Delete a step and close the gap in the numbering.

    Raises:
        RecipeStepNotFound: If the step doesn't exist
    """

    def _impl(sess: Session) -> None:
        step = _get_step(sess, step_id)
        recipe = step.recipe
        recipe.steps.remove(step)
        sess.delete(step)
        for number, remaining in enumerate(
            sorted(recipe.steps, key=lambda s: s.step_number), start=1
        ):
            remaining.step_number = number
        sess.flush()
        log_operation(logger, "remove_recipe_step", "success", step_id=step_id)

    run_in_session(_impl, session, operation="remove_recipe_step", service_logger=logger)


def get_recipe_steps(recipe_id: int, session: Optional[Session] = None) -> List[RecipeStep]:
    """Steps of a recipe in order."""

    def _impl(sess: Session) -> List[RecipeStep]:
        _get_recipe(sess, recipe_id)
        return (
            sess.query(RecipeStep)
            .filter(RecipeStep.recipe_id == recipe_id)
            .order_by(RecipeStep.step_number)
            .all()
        )

    return run_in_session(_impl, session, operation="get_recipe_steps")
