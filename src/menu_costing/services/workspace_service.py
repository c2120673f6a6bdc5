"""
Workspace service: workspace settings and monthly fixed costs.

The costing engine reads two settings from a workspace: the hourly labor
rate (recipe labor cost) and the active fixed costs (proportional menu
apportionment). Changing either recomputes what depends on it:

- labor rate  -> every recipe of the workspace, cascaded downstream
- fixed costs -> every menu listing of the workspace
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import FixedCost, Workspace
from ..utils.validators import (
    validate_name,
    validate_non_negative_number,
    validate_required_string,
)
from . import cascade_service, cost_aggregator, menu_pricing
from .database import run_in_session
from .dto import CascadeResult, MutationResult
from .dto_utils import quantize_money, to_decimal
from .exceptions import FixedCostNotFound, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


# ============================================================================
# Workspaces
# ============================================================================


def create_workspace(
    name: str,
    slug: str,
    labor_cost_per_hour=None,
    session: Optional[Session] = None,
) -> Workspace:
    """
    Create a workspace.

    Args:
        name: Display name
        slug: Unique short identifier
        labor_cost_per_hour: Optional hourly labor rate
        session: Optional session for transactional composition

    Returns:
        Created Workspace

    Raises:
        ValidationError: If name/slug are blank or the rate is negative
    """
    errors = []
    for is_valid, error in (
        validate_name(name, "Workspace Name"),
        validate_required_string(slug, "Slug"),
    ):
        if not is_valid:
            errors.append(error)
    if labor_cost_per_hour is not None:
        is_valid, error = validate_non_negative_number(labor_cost_per_hour, "Labor Cost Per Hour")
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> Workspace:
        workspace = Workspace(
            name=name.strip(),
            slug=slug.strip(),
            labor_cost_per_hour=(
                quantize_money(labor_cost_per_hour) if labor_cost_per_hour is not None else None
            ),
        )
        sess.add(workspace)
        sess.flush()
        log_operation(logger, "create_workspace", "success", workspace_id=workspace.id)
        return workspace

    return run_in_session(_impl, session, operation="create_workspace", service_logger=logger)


def get_workspace(workspace_id: int, session: Optional[Session] = None) -> Workspace:
    """
    Retrieve a workspace by ID.

    Raises:
        WorkspaceNotFound: If the workspace doesn't exist
    """
    return run_in_session(
        lambda sess: cost_aggregator.get_workspace(sess, workspace_id),
        session,
        operation="get_workspace",
    )


def set_labor_cost_per_hour(
    workspace_id: int, labor_cost_per_hour, session: Optional[Session] = None
) -> MutationResult:
    """
    Change the hourly labor rate and recompute every recipe of the workspace.

    Args:
        workspace_id: Workspace to update
        labor_cost_per_hour: New rate, or None to stop charging labor

    Returns:
        MutationResult with the stored rate and the cascade over all recipes

    Raises:
        WorkspaceNotFound: If the workspace doesn't exist
        ValidationError: If the rate is negative
    """
    if labor_cost_per_hour is not None:
        is_valid, error = validate_non_negative_number(labor_cost_per_hour, "Labor Cost Per Hour")
        if not is_valid:
            raise ValidationError([error])

    def _impl(sess: Session) -> MutationResult:
        workspace = cost_aggregator.get_workspace(sess, workspace_id)
        workspace.labor_cost_per_hour = (
            quantize_money(labor_cost_per_hour) if labor_cost_per_hour is not None else None
        )
        sess.flush()

        cascade = cascade_service.recalculate_workspace_in(sess, workspace_id)

        log_operation(
            logger,
            "set_labor_cost_per_hour",
            "success",
            workspace_id=workspace_id,
            labor_cost_per_hour=str(workspace.labor_cost_per_hour),
            updated_count=len(cascade.updated),
        )
        return MutationResult(workspace.id, workspace.labor_cost_per_hour, cascade)

    return run_in_session(
        _impl, session, operation="set_labor_cost_per_hour", service_logger=logger
    )


# ============================================================================
# Fixed costs
# ============================================================================


def _get_fixed_cost(sess: Session, fixed_cost_id: int) -> FixedCost:
    fixed_cost = sess.get(FixedCost, fixed_cost_id)
    if fixed_cost is None:
        raise FixedCostNotFound(fixed_cost_id)
    return fixed_cost


def _validate_fixed_cost(name, value) -> None:
    errors = []
    if name is not None:
        is_valid, error = validate_name(name, "Fixed Cost Name")
        if not is_valid:
            errors.append(error)
    if value is not None:
        is_valid, error = validate_non_negative_number(value, "Value")
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)


def _reprice_after_fixed_cost_change(sess: Session, fixed_cost: FixedCost) -> MutationResult:
    sess.flush()
    cascade = CascadeResult(source=None)
    cascade.repriced_menu_items = menu_pricing.reprice_workspace_menus(
        sess, fixed_cost.workspace_id
    )
    total = menu_pricing.active_fixed_costs_total(sess, fixed_cost.workspace_id)
    return MutationResult(fixed_cost.id, total, cascade)


def create_fixed_cost(
    workspace_id: int,
    name: str,
    value,
    description: Optional[str] = None,
    is_active: bool = True,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Add a monthly fixed cost and reprice every menu of the workspace.

    Returns:
        MutationResult whose value is the new active fixed cost total

    Raises:
        WorkspaceNotFound: If the workspace doesn't exist
        ValidationError: If name is blank or value negative
    """
    if value is None:
        raise ValidationError(["Value: This field is required"])
    _validate_fixed_cost(name, value)

    def _impl(sess: Session) -> MutationResult:
        cost_aggregator.get_workspace(sess, workspace_id)
        fixed_cost = FixedCost(
            workspace_id=workspace_id,
            name=name.strip(),
            description=description,
            value=quantize_money(value),
            is_active=is_active,
        )
        sess.add(fixed_cost)
        result = _reprice_after_fixed_cost_change(sess, fixed_cost)
        log_operation(
            logger,
            "create_fixed_cost",
            "success",
            fixed_cost_id=fixed_cost.id,
            active_total=str(result.value),
        )
        return result

    return run_in_session(_impl, session, operation="create_fixed_cost", service_logger=logger)


def update_fixed_cost(
    fixed_cost_id: int,
    name: Optional[str] = None,
    value=None,
    description: Optional[str] = None,
    is_active: Optional[bool] = None,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Edit a fixed cost and reprice every menu of its workspace.

    Only the arguments that are not None are changed.

    Raises:
        FixedCostNotFound: If the fixed cost doesn't exist
        ValidationError: If name is blank or value negative
    """
    _validate_fixed_cost(name, value)

    def _impl(sess: Session) -> MutationResult:
        fixed_cost = _get_fixed_cost(sess, fixed_cost_id)
        if name is not None:
            fixed_cost.name = name.strip()
        if value is not None:
            fixed_cost.value = quantize_money(value)
        if description is not None:
            fixed_cost.description = description
        if is_active is not None:
            fixed_cost.is_active = is_active
        result = _reprice_after_fixed_cost_change(sess, fixed_cost)
        log_operation(
            logger,
            "update_fixed_cost",
            "success",
            fixed_cost_id=fixed_cost.id,
            active_total=str(result.value),
        )
        return result

    return run_in_session(_impl, session, operation="update_fixed_cost", service_logger=logger)


def delete_fixed_cost(fixed_cost_id: int, session: Optional[Session] = None) -> MutationResult:
    """
    Delete a fixed cost and reprice every menu of its workspace.

    Raises:
        FixedCostNotFound: If the fixed cost doesn't exist
    """

    def _impl(sess: Session) -> MutationResult:
        fixed_cost = _get_fixed_cost(sess, fixed_cost_id)
        workspace_id = fixed_cost.workspace_id
        sess.delete(fixed_cost)
        sess.flush()
        cascade = CascadeResult(source=None)
        cascade.repriced_menu_items = menu_pricing.reprice_workspace_menus(sess, workspace_id)
        total = menu_pricing.active_fixed_costs_total(sess, workspace_id)
        log_operation(
            logger,
            "delete_fixed_cost",
            "success",
            fixed_cost_id=fixed_cost_id,
            active_total=str(total),
        )
        return MutationResult(fixed_cost_id, total, cascade)

    return run_in_session(_impl, session, operation="delete_fixed_cost", service_logger=logger)


def get_fixed_costs(workspace_id: int, session: Optional[Session] = None) -> List[FixedCost]:
    """List a workspace's fixed costs, active or not."""
    return run_in_session(
        lambda sess: sess.query(FixedCost)
        .filter(FixedCost.workspace_id == workspace_id)
        .order_by(FixedCost.name)
        .all(),
        session,
        operation="get_fixed_costs",
    )


def get_active_fixed_costs_total(workspace_id: int, session: Optional[Session] = None) -> Decimal:
    """Sum of the workspace's active monthly fixed costs."""
    return run_in_session(
        lambda sess: to_decimal(menu_pricing.active_fixed_costs_total(sess, workspace_id)),
        session,
        operation="get_active_fixed_costs_total",
    )
