"""Services package - costing logic for the menu costing engine.

Architecture:
- Services: Stateless functions organized by domain
- Transactions: Managed via session_scope(); every public function also
  accepts an optional session for composing several operations
- Exceptions: Consistent error handling via the ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- workspace_service: Labor rate and monthly fixed costs
- unit_service: Measurement units and conversion to base units
- ingredient_service: Ingredients, purchase entries and manual prices
- variation_service: Processed ingredient forms and their yield
- recipe_service: Recipes, recipe items and preparation steps
- product_service: Products and their compositions
- size_service: Size groups and the multipliers of their options
- menu_service: Menus, fees, apportionment, listings and target margin
- simulator_service: What-if ingredient price simulation

Costing core:
- cost_aggregator: Per-line costs and recompute functions keyed by ItemRef
- dependency_graph: Reverse references, cycle checks, topological order
- cascade_service: Propagation after a change, workspace recalculation
- menu_pricing: Margin arithmetic for menu listings

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
"""

from . import (
    cascade_service,
    cost_aggregator,
    database,
    dependency_graph,
    ingredient_service,
    menu_pricing,
    menu_service,
    product_service,
    recipe_service,
    simulator_service,
    size_service,
    unit_service,
    variation_service,
    workspace_service,
)
from .database import (
    init_database,
    read_only_scope,
    reset_database,
    session_scope,
)
from .dto import CascadeResult, ImpactReport, MutationResult, PricingResult
from .exceptions import (
    BaseUnitImmutable,
    CircularReference,
    DatabaseError,
    DivisionByZero,
    IncompatibleMeasurementClass,
    InvalidMargin,
    InvalidYield,
    InvalidYieldInput,
    ItemInUse,
    NotFound,
    SelfReference,
    ServiceError,
    ValidationError,
)

__all__ = [
    # Modules
    "cascade_service",
    "cost_aggregator",
    "database",
    "dependency_graph",
    "ingredient_service",
    "menu_pricing",
    "menu_service",
    "product_service",
    "recipe_service",
    "simulator_service",
    "size_service",
    "unit_service",
    "variation_service",
    "workspace_service",
    # Database
    "init_database",
    "read_only_scope",
    "reset_database",
    "session_scope",
    # Results
    "CascadeResult",
    "ImpactReport",
    "MutationResult",
    "PricingResult",
    # Exceptions
    "BaseUnitImmutable",
    "CircularReference",
    "DatabaseError",
    "DivisionByZero",
    "IncompatibleMeasurementClass",
    "InvalidMargin",
    "InvalidYield",
    "InvalidYieldInput",
    "ItemInUse",
    "NotFound",
    "SelfReference",
    "ServiceError",
    "ValidationError",
]
