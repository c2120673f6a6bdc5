"""
Entry model: one purchase of an ingredient.

Entries are the history the weighted-average ingredient cost is computed
from. They never write base_cost_per_unit themselves.
"""

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class Entry(BaseModel):
    """
    Purchase record for an ingredient.

    Attributes:
        ingredient_id: Purchased ingredient
        entry_date: When the purchase was made
        quantity: Amount bought, in unit_id
        unit_id: Unit of quantity (same class as the ingredient)
        total_price: Total paid for the whole quantity
        supplier: Optional supplier name
        observation: Optional free-text note
    """

    __tablename__ = "entries"

    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entry_date = Column(Date, nullable=False, index=True)
    quantity = Column(Numeric(18, 6), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="RESTRICT"), nullable=False)
    total_price = Column(Numeric(14, 4), nullable=False)
    supplier = Column(String(200), nullable=True)
    observation = Column(Text, nullable=True)

    ingredient = relationship("Ingredient", back_populates="entries")
    unit = relationship("Unit")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_entry_quantity_positive"),
        CheckConstraint("total_price >= 0", name="ck_entry_total_price_non_negative"),
        Index("idx_entry_ingredient_date", "ingredient_id", "entry_date"),
    )

    @property
    def unit_price(self) -> Decimal:
        """Price per purchased unit (total_price / quantity)."""
        if not self.quantity:
            return Decimal("0.0000")
        return (self.total_price / self.quantity).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)

    def __repr__(self) -> str:
        """String representation of entry."""
        return (
            f"Entry(id={self.id}, ingredient_id={self.ingredient_id}, "
            f"date={self.entry_date}, quantity={self.quantity}, total={self.total_price})"
        )
