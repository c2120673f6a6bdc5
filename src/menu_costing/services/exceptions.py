"""Service layer exception classes for the costing engine.

Every error aborts only the operation that raised it. Services raise before
committing anything, and the surrounding session_scope() rolls back, so no
cascade ever starts from a rejected mutation.

Exception Hierarchy:
    ServiceError (base)
    ├── NotFound
    │   ├── WorkspaceNotFound, UnitNotFound, IngredientNotFound,
    │   ├── VariationNotFound, EntryNotFound, RecipeNotFound,
    │   ├── RecipeItemNotFound, RecipeStepNotFound, ProductNotFound,
    │   ├── CompositionNotFound, MenuNotFound, MenuFeeNotFound,
    │   ├── MenuItemNotFound, FixedCostNotFound,
    │   └── SizeGroupNotFound, SizeOptionNotFound
    ├── IncompatibleMeasurementClass
    ├── InvalidYieldInput
    ├── InvalidYield
    ├── DivisionByZero
    ├── SelfReference
    ├── CircularReference
    ├── InvalidMargin
    ├── ItemInUse
    ├── BaseUnitImmutable
    ├── ValidationError
    └── DatabaseError
"""

from typing import Dict, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions inherit from this class.
    """

    pass


class NotFound(ServiceError):
    """Raised when a referenced record does not exist."""

    entity = "Record"

    def __init__(self, entity_id: int, entity: Optional[str] = None):
        self.entity_id = entity_id
        if entity is not None:
            self.entity = entity
        super().__init__(f"{self.entity} with ID {entity_id} not found")


class WorkspaceNotFound(NotFound):
    entity = "Workspace"


class UnitNotFound(NotFound):
    entity = "Unit"


class IngredientNotFound(NotFound):
    entity = "Ingredient"


class VariationNotFound(NotFound):
    entity = "Variation"


class EntryNotFound(NotFound):
    entity = "Entry"


class RecipeNotFound(NotFound):
    entity = "Recipe"


class RecipeItemNotFound(NotFound):
    entity = "Recipe item"


class RecipeStepNotFound(NotFound):
    entity = "Recipe step"


class ProductNotFound(NotFound):
    entity = "Product"


class CompositionNotFound(NotFound):
    entity = "Product composition"


class MenuNotFound(NotFound):
    entity = "Menu"


class MenuFeeNotFound(NotFound):
    entity = "Menu fee"


class MenuItemNotFound(NotFound):
    entity = "Menu item"


class FixedCostNotFound(NotFound):
    entity = "Fixed cost"


class SizeGroupNotFound(NotFound):
    entity = "Size group"


class SizeOptionNotFound(NotFound):
    entity = "Size option"


class IncompatibleMeasurementClass(ServiceError):
    """Raised when a unit's measurement class differs from the item it measures."""

    def __init__(self, unit_class: str, expected_class: str, context: str = ""):
        self.unit_class = unit_class
        self.expected_class = expected_class
        suffix = f" ({context})" if context else ""
        super().__init__(
            f"Unit of class '{unit_class}' cannot measure an item of class '{expected_class}'{suffix}"
        )


class InvalidYieldInput(ServiceError):
    """Raised when a variation's input quantity converts to zero or less base units."""

    def __init__(self, input_base_quantity):
        self.input_base_quantity = input_base_quantity
        super().__init__(
            f"Variation input must be greater than zero (got {input_base_quantity} base units)"
        )


class InvalidYield(ServiceError):
    """Raised when a recipe's yield quantity is zero or negative."""

    def __init__(self, recipe_id, yield_quantity):
        self.recipe_id = recipe_id
        self.yield_quantity = yield_quantity
        label = "Recipe" if recipe_id is None else f"Recipe {recipe_id}"
        super().__init__(f"{label} yield must be greater than zero (got {yield_quantity})")


class DivisionByZero(ServiceError):
    """Raised when an ingredient's entries add up to zero base quantity.

    The ingredient's previous cost is left untouched.
    """

    def __init__(self, ingredient_id: int):
        self.ingredient_id = ingredient_id
        super().__init__(
            f"Entries of ingredient {ingredient_id} total zero base quantity; cost left unchanged"
        )


class SelfReference(ServiceError):
    """Raised when a recipe or product would contain itself."""

    def __init__(self, owner_ref):
        self.owner_ref = owner_ref
        super().__init__(f"{owner_ref.kind.value.capitalize()} {owner_ref.id} cannot contain itself")


class CircularReference(ServiceError):
    """Raised when adding a component would close a cycle through other items."""

    def __init__(self, owner_ref, component_ref):
        self.owner_ref = owner_ref
        self.component_ref = component_ref
        super().__init__(
            f"Adding {component_ref} to {owner_ref} would create a circular reference"
        )


class InvalidMargin(ServiceError):
    """Raised when a requested margin leaves no room for cost (margin + fees >= 100%)."""

    def __init__(self, margin, reason: str = ""):
        self.margin = margin
        message = f"Margin {margin}% cannot be reached"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ItemInUse(ServiceError):
    """Raised when deleting an item that other records still reference."""

    def __init__(self, identifier, deps: Dict[str, int]):
        """
        Initialize ItemInUse exception.

        Args:
            identifier: Description of the item being deleted (ItemRef or "unit:3")
            deps: Dependency counts, e.g. {'recipe_items': 2, 'menu_items': 1}
        """
        self.identifier = identifier
        self.deps = deps
        parts = [f"{count} {name.replace('_', ' ')}" for name, count in deps.items() if count]
        deps_msg = ", ".join(parts) if parts else "related records"
        super().__init__(f"Cannot delete {identifier}: used by {deps_msg}")


class BaseUnitImmutable(ServiceError):
    """Raised when editing or deleting a base unit."""

    def __init__(self, unit_id: int):
        self.unit_id = unit_id
        super().__init__(f"Unit {unit_id} is a base unit and cannot be changed or deleted")


class ValidationError(ServiceError):
    """Raised when data validation fails."""

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
