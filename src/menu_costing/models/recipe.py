"""
Recipe models: Recipe, RecipeItem and RecipeStep.

A recipe aggregates the cost of its items (ingredients, variations or other
recipes), adds labor for its prep time and divides by its yield to get a
cost per portion. Steps are ordered free text with no cost effect.
"""

from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .item_ref import ItemKind, ItemReferenceMixin


class Recipe(BaseModel):
    """
    Recipe with cached cost aggregates.

    Attributes:
        workspace_id: Owning workspace
        name: Recipe name
        yield_quantity: Portions (in yield_unit) one batch produces
        yield_unit_id: Unit the yield is expressed in
        prep_time_minutes: Labor time for one batch (None = no labor)
        total_cost: Cached sum of item costs
        labor_cost: Cached prep_time_minutes / 60 * workspace hourly rate
        cost_per_portion: Cached (total_cost + labor_cost) / yield_quantity

    Relationships:
        items: Ordered composition lines
        steps: Ordered preparation steps
    """

    __tablename__ = "recipes"

    workspace_id = Column(
        Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    yield_quantity = Column(Numeric(18, 6), nullable=False)
    yield_unit_id = Column(Integer, ForeignKey("units.id", ondelete="RESTRICT"), nullable=False)
    prep_time_minutes = Column(Integer, nullable=True)
    total_cost = Column(Numeric(14, 4), nullable=False, default=Decimal("0.0000"))
    labor_cost = Column(Numeric(14, 4), nullable=False, default=Decimal("0.0000"))
    cost_per_portion = Column(Numeric(14, 4), nullable=False, default=Decimal("0.0000"))

    workspace = relationship("Workspace", back_populates="recipes")
    yield_unit = relationship("Unit", foreign_keys=[yield_unit_id])
    items = relationship(
        "RecipeItem",
        back_populates="recipe",
        cascade="all, delete-orphan",
        foreign_keys="RecipeItem.recipe_id",
        order_by="RecipeItem.sort_order",
    )
    steps = relationship(
        "RecipeStep",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeStep.step_number",
    )

    __table_args__ = (
        CheckConstraint("yield_quantity > 0", name="ck_recipe_yield_quantity_positive"),
        CheckConstraint(
            "prep_time_minutes IS NULL OR prep_time_minutes >= 0",
            name="ck_recipe_prep_time_non_negative",
        ),
        Index("idx_recipe_workspace_name", "workspace_id", "name"),
    )


class RecipeItem(ItemReferenceMixin, BaseModel):
    """
    One line of a recipe: a quantity of an ingredient, variation or recipe.

    Exactly one of the component_* columns is set (see item_ref).

    Attributes:
        recipe_id: Owning recipe
        component_ingredient_id / component_variation_id / component_recipe_id:
            The referenced item
        quantity: Amount used, in unit_id
        unit_id: Unit of quantity (same class as the referenced item)
        calculated_cost: Cached cost of this line
        sort_order: Position within the recipe
    """

    __tablename__ = "recipe_items"

    ref_columns = {
        ItemKind.INGREDIENT: "component_ingredient_id",
        ItemKind.VARIATION: "component_variation_id",
        ItemKind.RECIPE: "component_recipe_id",
    }

    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    component_ingredient_id = Column(
        Integer, ForeignKey("ingredients.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    component_variation_id = Column(
        Integer,
        ForeignKey("ingredient_variations.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    component_recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    quantity = Column(Numeric(18, 6), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="RESTRICT"), nullable=False)
    calculated_cost = Column(Numeric(14, 4), nullable=False, default=Decimal("0.0000"))
    sort_order = Column(Integer, nullable=False, default=0)

    recipe = relationship("Recipe", back_populates="items", foreign_keys=[recipe_id])
    unit = relationship("Unit")

    __table_args__ = (
        CheckConstraint(
            "(component_ingredient_id IS NOT NULL AND component_variation_id IS NULL AND "
            "component_recipe_id IS NULL) OR "
            "(component_ingredient_id IS NULL AND component_variation_id IS NOT NULL AND "
            "component_recipe_id IS NULL) OR "
            "(component_ingredient_id IS NULL AND component_variation_id IS NULL AND "
            "component_recipe_id IS NOT NULL)",
            name="ck_recipe_item_exactly_one_component",
        ),
        CheckConstraint("quantity > 0", name="ck_recipe_item_quantity_positive"),
        CheckConstraint(
            "component_recipe_id IS NULL OR component_recipe_id != recipe_id",
            name="ck_recipe_item_no_self_reference",
        ),
        Index("idx_recipe_item_recipe_order", "recipe_id", "sort_order"),
    )

    def __repr__(self) -> str:
        return (
            f"RecipeItem(id={self.id}, recipe_id={self.recipe_id}, "
            f"quantity={self.quantity}, cost={self.calculated_cost})"
        )


class RecipeStep(BaseModel):
    """Ordered preparation instruction of a recipe."""

    __tablename__ = "recipe_steps"

    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_number = Column(Integer, nullable=False)
    instruction = Column(Text, nullable=False)

    recipe = relationship("Recipe", back_populates="steps")

    __table_args__ = (
        CheckConstraint("step_number > 0", name="ck_recipe_step_number_positive"),
    )
