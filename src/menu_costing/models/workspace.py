"""
Workspace and fixed cost models.

A workspace owns every unit, ingredient, recipe, product and menu. It also
carries the two settings the costing engine reads from outside the item
graph: the hourly labor rate and the monthly fixed costs.
"""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
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


class Workspace(BaseModel):
    """
    Tenant container for costing data.

    Attributes:
        name: Display name
        slug: Unique short identifier
        labor_cost_per_hour: Hourly rate charged for recipe prep time (None = no labor)
    """

    __tablename__ = "workspaces"

    name = Column(String(200), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    labor_cost_per_hour = Column(Numeric(14, 4), nullable=True)

    units = relationship("Unit", back_populates="workspace", cascade="all, delete-orphan")
    ingredients = relationship(
        "Ingredient", back_populates="workspace", cascade="all, delete-orphan"
    )
    recipes = relationship("Recipe", back_populates="workspace", cascade="all, delete-orphan")
    products = relationship("Product", back_populates="workspace", cascade="all, delete-orphan")
    menus = relationship("Menu", back_populates="workspace", cascade="all, delete-orphan")
    size_groups = relationship(
        "SizeGroup", back_populates="workspace", cascade="all, delete-orphan"
    )
    fixed_costs = relationship(
        "FixedCost", back_populates="workspace", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "labor_cost_per_hour IS NULL OR labor_cost_per_hour >= 0",
            name="ck_workspace_labor_cost_non_negative",
        ),
    )


class FixedCost(BaseModel):
    """
    Monthly fixed cost (rent, salaries, utilities) of a workspace.

    Active fixed costs are summed for the proportional-to-sales apportionment
    policy of every menu in the workspace.
    """

    __tablename__ = "fixed_costs"

    workspace_id = Column(
        Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    value = Column(Numeric(14, 4), nullable=False, default=Decimal("0.0000"))
    is_active = Column(Boolean, nullable=False, default=True)

    workspace = relationship("Workspace", back_populates="fixed_costs")

    __table_args__ = (
        CheckConstraint("value >= 0", name="ck_fixed_cost_value_non_negative"),
        Index("idx_fixed_cost_workspace_active", "workspace_id", "is_active"),
    )
