"""
Menu models: Menu, MenuFee and MenuItem.

A menu lists sellable items at a sale price. Each listing caches its total
cost (item cost + fees + apportioned fixed cost) and the resulting margin.
"""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import ApportionmentType, FeeType
from .item_ref import ItemKind, ItemReferenceMixin


class Menu(BaseModel):
    """
    Menu with its fixed-cost apportionment policy.

    Attributes:
        workspace_id: Owning workspace
        name: Menu name (e.g., "Delivery app")
        apportionment_type: How fixed costs are charged to each sale
        apportionment_value: Percentage, currency amount or monthly unit
            sales estimate, depending on apportionment_type
        target_margin: Optional margin percentage used for price suggestions
        is_active: Inactive menus keep their listings but are not offered
    """

    __tablename__ = "menus"

    workspace_id = Column(
        Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    apportionment_type = Column(
        SQLEnum(ApportionmentType),
        nullable=False,
        default=ApportionmentType.PERCENTAGE_OF_SALE,
    )
    apportionment_value = Column(Numeric(14, 4), nullable=True)
    target_margin = Column(Numeric(9, 4), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    workspace = relationship("Workspace", back_populates="menus")
    fees = relationship(
        "MenuFee", back_populates="menu", cascade="all, delete-orphan", order_by="MenuFee.id"
    )
    items = relationship(
        "MenuItem", back_populates="menu", cascade="all, delete-orphan", order_by="MenuItem.id"
    )

    __table_args__ = (
        CheckConstraint(
            "target_margin IS NULL OR (target_margin >= 0 AND target_margin < 100)",
            name="ck_menu_target_margin_range",
        ),
    )


class MenuFee(BaseModel):
    """
    Fee charged on every sale of a menu (card fee, delivery platform cut).

    Attributes:
        menu_id: Owning menu
        name: Fee name
        fee_type: fixed (currency per sale) or percentage (of the sale price)
        value: Amount or percentage
        is_active: Inactive fees are ignored by pricing
    """

    __tablename__ = "menu_fees"

    menu_id = Column(Integer, ForeignKey("menus.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    fee_type = Column(SQLEnum(FeeType), nullable=False)
    value = Column(Numeric(14, 4), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    menu = relationship("Menu", back_populates="fees")

    __table_args__ = (CheckConstraint("value >= 0", name="ck_menu_fee_value_non_negative"),)


class MenuItem(ItemReferenceMixin, BaseModel):
    """
    Listing of a product, ingredient or recipe on a menu.

    Attributes:
        menu_id: Owning menu
        product_id / ingredient_id / recipe_id: The listed item (exactly one set)
        size_option_id: Size the product is listed at; None lists it unsized
        sale_price: Price charged to the customer
        total_cost: Cached item cost + fees + apportioned fixed cost
        margin_value: Cached sale_price - total_cost
        margin_percentage: Cached margin_value / sale_price * 100
    """

    __tablename__ = "menu_items"

    ref_columns = {
        ItemKind.PRODUCT: "product_id",
        ItemKind.INGREDIENT: "ingredient_id",
        ItemKind.RECIPE: "recipe_id",
    }

    menu_id = Column(Integer, ForeignKey("menus.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    size_option_id = Column(
        Integer, ForeignKey("size_options.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    sale_price = Column(Numeric(14, 4), nullable=False)
    total_cost = Column(Numeric(14, 4), nullable=False, default=Decimal("0.0000"))
    margin_value = Column(Numeric(14, 4), nullable=False, default=Decimal("0.0000"))
    margin_percentage = Column(Numeric(12, 4), nullable=False, default=Decimal("0.0000"))

    menu = relationship("Menu", back_populates="items")
    size_option = relationship("SizeOption")

    __table_args__ = (
        CheckConstraint(
            "(product_id IS NOT NULL AND ingredient_id IS NULL AND recipe_id IS NULL) OR "
            "(product_id IS NULL AND ingredient_id IS NOT NULL AND recipe_id IS NULL) OR "
            "(product_id IS NULL AND ingredient_id IS NULL AND recipe_id IS NOT NULL)",
            name="ck_menu_item_exactly_one_item",
        ),
        CheckConstraint("sale_price >= 0", name="ck_menu_item_sale_price_non_negative"),
        CheckConstraint(
            "size_option_id IS NULL OR product_id IS NOT NULL",
            name="ck_menu_item_size_only_for_product",
        ),
        UniqueConstraint("menu_id", "product_id", "size_option_id", name="uq_menu_item_product_size"),
        UniqueConstraint("menu_id", "ingredient_id", name="uq_menu_item_ingredient"),
        UniqueConstraint("menu_id", "recipe_id", name="uq_menu_item_recipe"),
    )

    def __repr__(self) -> str:
        return (
            f"MenuItem(id={self.id}, menu_id={self.menu_id}, sale_price={self.sale_price}, "
            f"margin={self.margin_percentage})"
        )
