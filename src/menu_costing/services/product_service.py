"""
Product service: sellable products and their compositions.

A product's base cost is the sum of its composition lines. Lines may point
at ingredients, variations, recipes or other products; product lines are a
plain count and carry no unit. Lines of other kinds without a unit take the
quantity as already expressed in base units.
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import ItemRef, MenuItem, Product, ProductComposition
from ..utils.validators import validate_name, validate_quantity
from . import cascade_service, cost_aggregator, dependency_graph, size_service
from .composition_utils import check_component
from .database import run_in_session
from .dto import MutationResult
from .dto_utils import quantize_quantity
from .exceptions import CompositionNotFound, ItemInUse, ProductNotFound, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _get_product(sess: Session, product_id: int) -> Product:
    product = sess.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return product


def _get_composition(sess: Session, composition_id: int) -> ProductComposition:
    composition = sess.get(ProductComposition, composition_id)
    if composition is None:
        raise CompositionNotFound(composition_id)
    return composition


def _check_size_group(sess: Session, workspace_id: int, size_group_id: int) -> None:
    size_group = size_service.load_size_group(sess, size_group_id)
    if size_group.workspace_id != workspace_id:
        raise ValidationError([f"Size group {size_group_id} belongs to another workspace"])


def create_product(
    workspace_id: int,
    name: str,
    description: Optional[str] = None,
    size_group_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> Product:
    """
    Create a product without compositions.

    Raises:
        WorkspaceNotFound: If the workspace doesn't exist
        SizeGroupNotFound: If size_group_id is given and doesn't exist
        ValidationError: If the name is blank or the size group belongs to
            another workspace
    """
    is_valid, error = validate_name(name, "Product Name")
    if not is_valid:
        raise ValidationError([error])

    def _impl(sess: Session) -> Product:
        cost_aggregator.get_workspace(sess, workspace_id)
        if size_group_id is not None:
            _check_size_group(sess, workspace_id, size_group_id)
        product = Product(
            workspace_id=workspace_id,
            name=name.strip(),
            description=description,
            size_group_id=size_group_id,
        )
        sess.add(product)
        sess.flush()
        log_operation(logger, "create_product", "success", product_id=product.id)
        return product

    return run_in_session(_impl, session, operation="create_product", service_logger=logger)


def update_product(
    product_id: int,
    name: Optional[str] = None,
    description: Optional[str] = None,
    is_active: Optional[bool] = None,
    session: Optional[Session] = None,
) -> Product:
    """
    Rename, describe or (de)activate a product. Costs are unaffected.

    Raises:
        ProductNotFound: If the product doesn't exist
        ValidationError: If the name is blank
    """
    if name is not None:
        is_valid, error = validate_name(name, "Product Name")
        if not is_valid:
            raise ValidationError([error])

    def _impl(sess: Session) -> Product:
        product = _get_product(sess, product_id)
        if name is not None:
            product.name = name.strip()
        if description is not None:
            product.description = description
        if is_active is not None:
            product.is_active = is_active
        sess.flush()
        log_operation(logger, "update_product", "success", product_id=product.id)
        return product

    return run_in_session(_impl, session, operation="update_product", service_logger=logger)


def set_product_size_group(
    product_id: int, size_group_id: Optional[int], session: Optional[Session] = None
) -> Product:
    """
    Attach a product to a size group, or detach it with None.

    The group can only change while no menu lists the product at a size.

    Raises:
        ProductNotFound, SizeGroupNotFound
        ValidationError: If the group belongs to another workspace or sized
            listings of the product exist
    """

    def _impl(sess: Session) -> Product:
        product = _get_product(sess, product_id)
        if size_group_id is not None:
            _check_size_group(sess, product.workspace_id, size_group_id)
        if size_group_id != product.size_group_id:
            sized_listings = (
                sess.query(MenuItem)
                .filter(MenuItem.product_id == product.id, MenuItem.size_option_id.isnot(None))
                .count()
            )
            if sized_listings:
                raise ValidationError(
                    [
                        f"Product '{product.name}' is listed at {sized_listings} size(s); "
                        "remove those listings before changing its size group"
                    ]
                )
        product.size_group_id = size_group_id
        sess.flush()
        log_operation(
            logger,
            "set_product_size_group",
            "success",
            product_id=product.id,
            size_group_id=size_group_id,
        )
        return product

    return run_in_session(
        _impl, session, operation="set_product_size_group", service_logger=logger
    )


def delete_product(product_id: int, session: Optional[Session] = None) -> None:
    """
    Delete a product with its compositions.

    Raises:
        ProductNotFound: If the product doesn't exist
        ItemInUse: If another product or a menu still uses it
    """

    def _impl(sess: Session) -> None:
        product = _get_product(sess, product_id)
        usage = dependency_graph.find_references(sess, ItemRef.product(product_id))
        if usage:
            raise ItemInUse(f"product '{product.name}'", usage)
        sess.delete(product)
        sess.flush()
        log_operation(logger, "delete_product", "success", product_id=product_id)

    run_in_session(_impl, session, operation="delete_product", service_logger=logger)


def get_product(product_id: int, session: Optional[Session] = None) -> Product:
    """
    Retrieve a product by ID.

    Raises:
        ProductNotFound: If the product doesn't exist
    """
    return run_in_session(
        lambda sess: _get_product(sess, product_id), session, operation="get_product"
    )


def get_compositions(product_id: int, session: Optional[Session] = None) -> List[ProductComposition]:
    def _impl(sess: Session) -> List[ProductComposition]:
        _get_product(sess, product_id)
        return (
            sess.query(ProductComposition)
            .filter(ProductComposition.product_id == product_id)
            .order_by(ProductComposition.id)
            .all()
        )

    return run_in_session(_impl, session, operation="get_compositions")


def upsert_product_composition(
    product_id: int,
    item_ref: ItemRef,
    quantity,
    unit_id: Optional[int] = None,
    composition_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> MutationResult:
    """
    Add or edit a composition line, recompute the product and cascade.

    Args:
        product_id: Owning product
        item_ref: Ingredient, variation, recipe or product used
        quantity: Amount in unit_id, or a count for product references
        unit_id: Unit of quantity; must be None for product references
        composition_id: Existing line to edit, or None to add one
        session: Optional session for transactional composition

    Returns:
        MutationResult with the line id, the product's new base_cost and the cascade

    Raises:
        ProductNotFound, CompositionNotFound, UnitNotFound, or the NotFound
            of the referenced item
        SelfReference: If the product would contain itself
        CircularReference: If the referenced product already uses this one
        IncompatibleMeasurementClass: If the unit's class differs from the item's
        ValidationError: On a non-positive quantity or a unit on a product line
    """
    is_valid, error = validate_quantity(quantity, "Quantity")
    if not is_valid:
        raise ValidationError([error])

    def _impl(sess: Session) -> MutationResult:
        product = _get_product(sess, product_id)
        owner = ItemRef.product(product.id)
        unit = check_component(sess, owner, ProductComposition, item_ref, unit_id)

        if composition_id is None:
            line = ProductComposition()
            product.compositions.append(line)
        else:
            line = _get_composition(sess, composition_id)
            if line.product_id != product.id:
                raise ValidationError(
                    [f"Composition {composition_id} does not belong to product {product_id}"]
                )

        line.set_item_ref(item_ref)
        line.quantity = quantize_quantity(quantity)
        line.unit = unit
        line.calculated_cost = cost_aggregator.item_cost(
            sess, item_ref, line.quantity, unit.id if unit is not None else None
        )
        sess.flush()

        cascade = cascade_service.recompute_and_propagate(sess, owner)
        log_operation(
            logger,
            "upsert_product_composition",
            "success",
            product_id=product.id,
            composition_id=line.id,
            item=str(item_ref),
            base_cost=str(product.base_cost),
            updated_count=len(cascade.updated),
        )
        return MutationResult(line.id, product.base_cost, cascade)

    return run_in_session(
        _impl, session, operation="upsert_product_composition", service_logger=logger
    )


def delete_product_composition(
    composition_id: int, session: Optional[Session] = None
) -> MutationResult:
    """
    Remove a composition line, recompute the product and cascade.

    Raises:
        CompositionNotFound: If the line doesn't exist
    """

    def _impl(sess: Session) -> MutationResult:
        line = _get_composition(sess, composition_id)
        product = line.product
        product.compositions.remove(line)
        sess.delete(line)
        sess.flush()

        cascade = cascade_service.recompute_and_propagate(sess, ItemRef.product(product.id))
        log_operation(
            logger,
            "delete_product_composition",
            "success",
            product_id=product.id,
            composition_id=composition_id,
            base_cost=str(product.base_cost),
        )
        return MutationResult(composition_id, product.base_cost, cascade)

    return run_in_session(
        _impl, session, operation="delete_product_composition", service_logger=logger
    )
