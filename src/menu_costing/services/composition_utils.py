"""
Validation shared by recipe items and product compositions.

Both line types point an owner (recipe or product) at a component item.
check_component applies every rule a new or edited line must satisfy
before anything is written.
"""

from typing import Optional

from sqlalchemy.orm import Session

from ..models import ItemKind, ItemRef, Unit
from . import cost_aggregator, dependency_graph
from .exceptions import CircularReference, SelfReference, ValidationError


def check_component(
    session: Session, owner: ItemRef, line_model, component: ItemRef, unit_id: Optional[int]
) -> Optional[Unit]:
    """
    Validate a composition line of ``owner`` pointing at ``component``.

    Args:
        session: Active session
        owner: Recipe or product the line belongs to
        line_model: RecipeItem or ProductComposition
        component: Referenced item
        unit_id: Unit of the line's quantity, or None

    Returns:
        The resolved Unit, or None when the line has no unit

    Raises:
        ValidationError: If the line type cannot hold this kind, the
            component is in another workspace, or a product is given a unit
        SelfReference: If component is the owner itself
        NotFound subclass: If the component or unit doesn't exist
        CircularReference: If the owner already feeds the component
        IncompatibleMeasurementClass: If the unit's class differs from the
            component's class
    """
    if not line_model.accepts(component.kind):
        raise ValidationError(
            [f"A {owner.kind.value} cannot contain a {component.kind.value}"]
        )
    if component == owner:
        raise SelfReference(owner)

    if cost_aggregator.item_workspace_id(session, component) != cost_aggregator.item_workspace_id(
        session, owner
    ):
        raise ValidationError([f"{component} belongs to another workspace"])

    if dependency_graph.would_create_cycle(session, owner, component):
        raise CircularReference(owner, component)

    if component.kind == ItemKind.PRODUCT:
        if unit_id is not None:
            raise ValidationError(["Product components are counted and take no unit"])
        return None

    if unit_id is None:
        return None
    unit = cost_aggregator.get_unit(session, unit_id)
    cost_aggregator.ensure_compatible(
        unit, cost_aggregator.measurement_class_of(session, component), str(component)
    )
    return unit
