"""
Size models: SizeGroup and its SizeOption rows.

A size group (e.g., "Pizza sizes") is attached to products that are sold in
several sizes. Each option scales the product's base cost by its multiplier
when a menu lists the product at that size. Exactly one option per group is
the reference size, normally with multiplier 1.
"""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class SizeGroup(BaseModel):
    """
    Named set of sizes a product can be sold in.

    Attributes:
        workspace_id: Owning workspace
        name: Group name (e.g., "Drink sizes")
        options: Sizes of the group, in display order
    """

    __tablename__ = "size_groups"

    workspace_id = Column(
        Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    workspace = relationship("Workspace", back_populates="size_groups")
    options = relationship(
        "SizeOption",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="SizeOption.sort_order",
    )

    @property
    def reference_option(self):
        return next((o for o in self.options if o.is_reference), None)

    def __repr__(self) -> str:
        return f"SizeGroup(id={self.id}, name='{self.name}')"


class SizeOption(BaseModel):
    """
    One size of a group.

    Attributes:
        size_group_id: Owning group
        name: Size name (e.g., "Large")
        multiplier: Factor applied to the product base cost
        is_reference: True for the group's reference size
        sort_order: Display position inside the group
    """

    __tablename__ = "size_options"

    size_group_id = Column(
        Integer, ForeignKey("size_groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(100), nullable=False)
    multiplier = Column(Numeric(10, 4), nullable=False, default=Decimal("1.0000"))
    is_reference = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    group = relationship("SizeGroup", back_populates="options")

    __table_args__ = (
        CheckConstraint("multiplier > 0", name="ck_size_option_multiplier_positive"),
        UniqueConstraint("size_group_id", "name", name="uq_size_option_group_name"),
    )

    def __repr__(self) -> str:
        return f"SizeOption(id={self.id}, name='{self.name}', multiplier={self.multiplier})"
