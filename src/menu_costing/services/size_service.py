"""Size Service - size groups and the options products are sold in.

A product attached to a size group can be listed on a menu once per size;
the listing is costed at the product's base cost times the option's
multiplier. Changing a multiplier reprices every listing at that size.

All functions accept an optional session parameter to support being called
from other service functions that need to maintain transactional atomicity.

Example Usage:
    >>> from menu_costing.services import size_service
    >>> group = size_service.create_size_group(ws.id, "Pizza sizes", [
    ...     {"name": "Medium", "multiplier": 1, "is_reference": True},
    ...     {"name": "Large", "multiplier": "1.4"},
    ... ])
"""

from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from ..models import MenuItem, Product, SizeGroup, SizeOption
from ..utils.validators import validate_multiplier, validate_name, validate_size_options
from . import cost_aggregator, menu_pricing
from .database import run_in_session
from .dto import CascadeResult, MutationResult
from .dto_utils import quantize_multiplier
from .exceptions import ItemInUse, SizeGroupNotFound, SizeOptionNotFound, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def load_size_group(sess: Session, size_group_id: int) -> SizeGroup:
    size_group = sess.get(SizeGroup, size_group_id)
    if size_group is None:
        raise SizeGroupNotFound(size_group_id)
    return size_group


def _get_option(sess: Session, option_id: int) -> SizeOption:
    option = sess.get(SizeOption, option_id)
    if option is None:
        raise SizeOptionNotFound(option_id)
    return option


def _listings_at(sess: Session, option_ids: List[int]) -> List[MenuItem]:
    if not option_ids:
        return []
    return (
        sess.query(MenuItem)
        .filter(MenuItem.size_option_id.in_(option_ids))
        .order_by(MenuItem.id)
        .all()
    )


def _group_usage(sess: Session, size_group: SizeGroup) -> Dict[str, int]:
    usage = {
        "products": sess.query(Product).filter(Product.size_group_id == size_group.id).count(),
        "menu_items": len(_listings_at(sess, [o.id for o in size_group.options])),
    }
    return {key: count for key, count in usage.items() if count}


def create_size_group(
    workspace_id: int,
    name: str,
    options: List[dict],
    description: Optional[str] = None,
    session: Optional[Session] = None,
) -> SizeGroup:
    """
    Create a size group with its options.

    Args:
        workspace_id: Owning workspace
        name: Group name
        options: Mappings with "name", "multiplier" and optional "is_reference";
            their order becomes the display order
        description: Optional description
        session: Optional session for transactional composition

    Returns:
        Created SizeGroup

    Raises:
        WorkspaceNotFound: If the workspace doesn't exist
        ValidationError: On a blank name, no options, a non-positive multiplier,
            repeated option names or not exactly one reference option
    """
    errors = []
    is_valid, error = validate_name(name, "Size Group Name")
    if not is_valid:
        errors.append(error)
    is_valid, option_errors = validate_size_options(options)
    errors.extend(option_errors)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> SizeGroup:
        cost_aggregator.get_workspace(sess, workspace_id)
        size_group = SizeGroup(workspace_id=workspace_id, name=name.strip(), description=description)
        for position, option in enumerate(options):
            size_group.options.append(
                SizeOption(
                    name=option["name"].strip(),
                    multiplier=quantize_multiplier(option["multiplier"]),
                    is_reference=bool(option.get("is_reference")),
                    sort_order=position,
                )
            )
        sess.add(size_group)
        sess.flush()
        log_operation(
            logger,
            "create_size_group",
            "success",
            size_group_id=size_group.id,
            option_count=len(size_group.options),
        )
        return size_group

    return run_in_session(_impl, session, operation="create_size_group", service_logger=logger)


def update_size_group(
    size_group_id: int,
    name: Optional[str] = None,
    description: Optional[str] = None,
    session: Optional[Session] = None,
) -> SizeGroup:
    """
    Rename or describe a size group. Costs are unaffected.

    Raises:
        SizeGroupNotFound: If the group doesn't exist
        ValidationError: If the name is blank
    """
    if name is not None:
        is_valid, error = validate_name(name, "Size Group Name")
        if not is_valid:
            raise ValidationError([error])

    def _impl(sess: Session) -> SizeGroup:
        size_group = load_size_group(sess, size_group_id)
        if name is not None:
            size_group.name = name.strip()
        if description is not None:
            size_group.description = description
        sess.flush()
        log_operation(logger, "update_size_group", "success", size_group_id=size_group.id)
        return size_group

    return run_in_session(_impl, session, operation="update_size_group", service_logger=logger)


def upsert_size_option(
    size_group_id: int,
    name: str,
    multiplier,
    is_reference: bool = False,
    option_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Add an option to a group, or edit one, and reprice its listings.

    Making an option the reference clears the flag on the group's other
    options. A new option goes after the existing ones.

    Args:
        size_group_id: Owning group
        name: Option name, unique within the group
        multiplier: Factor applied to the product base cost (> 0)
        is_reference: Make this the group's reference option
        option_id: Existing option to edit, or None to add one
        session: Optional session for transactional composition

    Returns:
        MutationResult with the option id, its multiplier and the repriced
        listings

    Raises:
        SizeGroupNotFound, SizeOptionNotFound
        ValidationError: On a blank name, a non-positive multiplier, a repeated
            name, or unmarking the group's only reference option
    """
    errors = []
    for is_valid, error in (
        validate_name(name, "Option Name"),
        validate_multiplier(multiplier, "Multiplier"),
    ):
        if not is_valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> MutationResult:
        size_group = load_size_group(sess, size_group_id)
        if option_id is None:
            option = SizeOption(
                sort_order=max((o.sort_order for o in size_group.options), default=-1) + 1
            )
            size_group.options.append(option)
        else:
            option = _get_option(sess, option_id)
            if option.size_group_id != size_group.id:
                raise ValidationError(
                    [f"Size option {option_id} does not belong to size group {size_group_id}"]
                )
            if option.is_reference and not is_reference:
                raise ValidationError(
                    [f"'{option.name}' is the reference size; mark another option first"]
                )

        stripped = name.strip()
        if any(o.name == stripped for o in size_group.options if o is not option):
            raise ValidationError([f"Option Name: '{stripped}' already exists in the group"])

        if is_reference:
            for other in size_group.options:
                other.is_reference = other is option

        new_multiplier = quantize_multiplier(multiplier)
        multiplier_changed = option.multiplier is None or option.multiplier != new_multiplier
        option.name = stripped
        option.multiplier = new_multiplier
        option.is_reference = is_reference or bool(option.is_reference)
        sess.flush()

        cascade = CascadeResult(source=None)
        if option_id is not None and multiplier_changed:
            for menu_item in _listings_at(sess, [option.id]):
                menu_pricing.reprice_menu_item(sess, menu_item)
                cascade.repriced_menu_items.append(menu_item.id)
            sess.flush()

        log_operation(
            logger,
            "upsert_size_option",
            "success",
            size_group_id=size_group.id,
            size_option_id=option.id,
            multiplier=str(option.multiplier),
            repriced_count=len(cascade.repriced_menu_items),
        )
        return MutationResult(option.id, option.multiplier, cascade)

    return run_in_session(_impl, session, operation="upsert_size_option", service_logger=logger)


def delete_size_option(option_id: int, session: Optional[Session] = None) -> None:
    """
    Remove an option from its group.

    Raises:
        SizeOptionNotFound: If the option doesn't exist
        ItemInUse: If a menu still lists a product at this size
        ValidationError: If the option is the group's reference or last option
    """

    def _impl(sess: Session) -> None:
        option = _get_option(sess, option_id)
        listings = _listings_at(sess, [option.id])
        if listings:
            raise ItemInUse(f"size option '{option.name}'", {"menu_items": len(listings)})
        size_group = option.group
        if len(size_group.options) == 1:
            raise ValidationError([f"'{option.name}' is the last option of its size group"])
        if option.is_reference:
            raise ValidationError(
                [f"'{option.name}' is the reference size; mark another option first"]
            )

        size_group.options.remove(option)
        sess.flush()
        log_operation(
            logger,
            "delete_size_option",
            "success",
            size_option_id=option_id,
            size_group_id=size_group.id,
        )

    run_in_session(_impl, session, operation="delete_size_option", service_logger=logger)


def delete_size_group(size_group_id: int, session: Optional[Session] = None) -> None:
    """
    Delete a size group with its options.

    Raises:
        SizeGroupNotFound: If the group doesn't exist
        ItemInUse: If a product is attached to it or a menu lists one of its sizes
    """

    def _impl(sess: Session) -> None:
        size_group = load_size_group(sess, size_group_id)
        usage = _group_usage(sess, size_group)
        if usage:
            raise ItemInUse(f"size group '{size_group.name}'", usage)
        sess.delete(size_group)
        sess.flush()
        log_operation(logger, "delete_size_group", "success", size_group_id=size_group_id)

    run_in_session(_impl, session, operation="delete_size_group", service_logger=logger)


def get_size_group(size_group_id: int, session: Optional[Session] = None) -> SizeGroup:
    """
    Retrieve a size group by ID with its options loaded.

    Raises:
        SizeGroupNotFound: If the group doesn't exist
    """

    def _impl(sess: Session) -> SizeGroup:
        size_group = (
            sess.query(SizeGroup)
            .options(joinedload(SizeGroup.options))
            .filter(SizeGroup.id == size_group_id)
            .first()
        )
        if size_group is None:
            raise SizeGroupNotFound(size_group_id)
        return size_group

    return run_in_session(_impl, session, operation="get_size_group")


def get_size_groups(workspace_id: int, session: Optional[Session] = None) -> List[SizeGroup]:
    def _impl(sess: Session) -> List[SizeGroup]:
        cost_aggregator.get_workspace(sess, workspace_id)
        return (
            sess.query(SizeGroup)
            .options(joinedload(SizeGroup.options))
            .filter(SizeGroup.workspace_id == workspace_id)
            .order_by(SizeGroup.name)
            .all()
        )

    return run_in_session(_impl, session, operation="get_size_groups")
