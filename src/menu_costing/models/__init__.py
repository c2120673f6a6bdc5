"""
Database models package.

This package contains all SQLAlchemy ORM models for the costing engine.
"""

from .base import Base, BaseModel
from .enums import ApportionmentType, FeeType, MeasurementClass
from .item_ref import ItemKind, ItemRef, ItemReferenceMixin
from .workspace import FixedCost, Workspace
from .unit import Unit
from .ingredient import Ingredient, IngredientVariation
from .entry import Entry
from .recipe import Recipe, RecipeItem, RecipeStep
from .product import Product, ProductComposition
from .size import SizeGroup, SizeOption
from .menu import Menu, MenuFee, MenuItem

__all__ = [
    "Base",
    "BaseModel",
    # Enums and references
    "ApportionmentType",
    "FeeType",
    "MeasurementClass",
    "ItemKind",
    "ItemRef",
    "ItemReferenceMixin",
    # Workspace settings
    "Workspace",
    "FixedCost",
    "Unit",
    # Cost graph
    "Ingredient",
    "IngredientVariation",
    "Entry",
    "Recipe",
    "RecipeItem",
    "RecipeStep",
    "Product",
    "ProductComposition",
    "SizeGroup",
    "SizeOption",
    # Menus
    "Menu",
    "MenuFee",
    "MenuItem",
]
