"""
Product models: sellable Product and its ProductComposition lines.

A product's base cost is the plain sum of its composition lines. Lines may
reference ingredients, variations, recipes or other products; product
references carry no unit and their quantity is a bare count.
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
from .item_ref import ItemKind, ItemReferenceMixin


class Product(BaseModel):
    """
    Sellable product.

    Attributes:
        workspace_id: Owning workspace
        name: Product name
        is_active: Inactive products stay costed but are hidden from listings
        base_cost: Cached sum of composition costs
        size_group_id: Optional group of sizes the product is sold in
    """

    __tablename__ = "products"

    workspace_id = Column(
        Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    base_cost = Column(Numeric(14, 4), nullable=False, default=Decimal("0.0000"))
    size_group_id = Column(
        Integer, ForeignKey("size_groups.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    workspace = relationship("Workspace", back_populates="products")
    size_group = relationship("SizeGroup")
    compositions = relationship(
        "ProductComposition",
        back_populates="product",
        cascade="all, delete-orphan",
        foreign_keys="ProductComposition.product_id",
        order_by="ProductComposition.id",
    )

    __table_args__ = (Index("idx_product_workspace_name", "workspace_id", "name"),)


class ProductComposition(ItemReferenceMixin, BaseModel):
    """
    One line of a product.

    Attributes:
        product_id: Owning product
        component_*_id: The referenced item (exactly one set)
        quantity: Amount in unit_id, or a count for product references
        unit_id: Unit of quantity; None for product references
        calculated_cost: Cached cost of this line
    """

    __tablename__ = "product_compositions"

    ref_columns = {
        ItemKind.INGREDIENT: "component_ingredient_id",
        ItemKind.VARIATION: "component_variation_id",
        ItemKind.RECIPE: "component_recipe_id",
        ItemKind.PRODUCT: "component_product_id",
    }

    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
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
    component_product_id = Column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    quantity = Column(Numeric(18, 6), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="RESTRICT"), nullable=True)
    calculated_cost = Column(Numeric(14, 4), nullable=False, default=Decimal("0.0000"))

    product = relationship("Product", back_populates="compositions", foreign_keys=[product_id])
    unit = relationship("Unit")

    __table_args__ = (
        CheckConstraint(
            "(component_ingredient_id IS NOT NULL AND component_variation_id IS NULL AND "
            "component_recipe_id IS NULL AND component_product_id IS NULL) OR "
            "(component_ingredient_id IS NULL AND component_variation_id IS NOT NULL AND "
            "component_recipe_id IS NULL AND component_product_id IS NULL) OR "
            "(component_ingredient_id IS NULL AND component_variation_id IS NULL AND "
            "component_recipe_id IS NOT NULL AND component_product_id IS NULL) OR "
            "(component_ingredient_id IS NULL AND component_variation_id IS NULL AND "
            "component_recipe_id IS NULL AND component_product_id IS NOT NULL)",
            name="ck_product_composition_exactly_one_component",
        ),
        CheckConstraint("quantity > 0", name="ck_product_composition_quantity_positive"),
        CheckConstraint(
            "component_product_id IS NULL OR component_product_id != product_id",
            name="ck_product_composition_no_self_reference",
        ),
        CheckConstraint(
            "component_product_id IS NULL OR unit_id IS NULL",
            name="ck_product_composition_product_has_no_unit",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"ProductComposition(id={self.id}, product_id={self.product_id}, "
            f"quantity={self.quantity}, cost={self.calculated_cost})"
        )
