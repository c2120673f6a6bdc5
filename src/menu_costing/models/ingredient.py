"""
Ingredient and IngredientVariation models.

An ingredient carries the leaf costs of the whole graph:
- average_price: currency per price unit (display value)
- base_cost_per_unit: currency per base unit of its measurement class

A variation is a processed form of an ingredient (peeled, deboned) whose
cost per output base unit follows from the ingredient's base cost and the
measured yield.
"""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import MeasurementClass


class Ingredient(BaseModel):
    """
    Raw ingredient with its cost ledger state.

    Attributes:
        workspace_id: Owning workspace
        name: Ingredient name
        measurement_class: Class every quantity of this ingredient is expressed in
        price_unit_id: Unit average_price is quoted in
        average_price: Currency per price unit
        base_cost_per_unit: Currency per base unit (average_price / price unit factor)
        manual_price_override: When True, purchase entries no longer drive the cost
        has_variations: True while at least one variation exists

    Relationships:
        variations: Processed forms of this ingredient
        entries: Purchase history
    """

    __tablename__ = "ingredients"

    workspace_id = Column(
        Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    measurement_class = Column(SQLEnum(MeasurementClass), nullable=False)
    price_unit_id = Column(
        Integer, ForeignKey("units.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    average_price = Column(Numeric(14, 4), nullable=False, default=Decimal("0.0000"))
    base_cost_per_unit = Column(Numeric(18, 8), nullable=False, default=Decimal("0.00000000"))
    manual_price_override = Column(Boolean, nullable=False, default=False)
    has_variations = Column(Boolean, nullable=False, default=False)

    workspace = relationship("Workspace", back_populates="ingredients")
    price_unit = relationship("Unit", foreign_keys=[price_unit_id])
    variations = relationship(
        "IngredientVariation",
        back_populates="ingredient",
        cascade="all, delete-orphan",
        order_by="IngredientVariation.id",
    )
    entries = relationship(
        "Entry",
        back_populates="ingredient",
        cascade="all, delete-orphan",
        order_by="Entry.entry_date",
    )

    __table_args__ = (
        CheckConstraint("average_price >= 0", name="ck_ingredient_average_price_non_negative"),
        CheckConstraint(
            "base_cost_per_unit >= 0", name="ck_ingredient_base_cost_non_negative"
        ),
        Index("idx_ingredient_workspace_name", "workspace_id", "name"),
    )


class IngredientVariation(BaseModel):
    """
    Processed form of an ingredient with a measured yield.

    yield_percentage = output base quantity / input base quantity * 100.
    calculated_cost = ingredient.base_cost_per_unit / (yield_percentage / 100),
    expressed per base unit of the output unit's class.

    Attributes:
        ingredient_id: Parent ingredient
        name: Variation name (e.g., "peeled")
        input_quantity / input_unit_id: Raw amount measured before processing
        output_quantity / output_unit_id: Usable amount after processing
        yield_percentage: Derived yield, may exceed 100
        calculated_cost: Cached cost per output base unit
    """

    __tablename__ = "ingredient_variations"

    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    input_quantity = Column(Numeric(18, 6), nullable=False)
    input_unit_id = Column(Integer, ForeignKey("units.id", ondelete="RESTRICT"), nullable=False)
    output_quantity = Column(Numeric(18, 6), nullable=False)
    output_unit_id = Column(Integer, ForeignKey("units.id", ondelete="RESTRICT"), nullable=False)
    yield_percentage = Column(Numeric(12, 4), nullable=False)
    calculated_cost = Column(Numeric(18, 8), nullable=False, default=Decimal("0.00000000"))

    ingredient = relationship("Ingredient", back_populates="variations")
    input_unit = relationship("Unit", foreign_keys=[input_unit_id])
    output_unit = relationship("Unit", foreign_keys=[output_unit_id])

    __table_args__ = (
        CheckConstraint("input_quantity > 0", name="ck_variation_input_quantity_positive"),
        CheckConstraint("output_quantity > 0", name="ck_variation_output_quantity_positive"),
        CheckConstraint("yield_percentage > 0", name="ck_variation_yield_positive"),
    )

    @property
    def unit_id(self) -> int:
        """A variation is measured in its output unit."""
        return self.output_unit_id
