"""
Unit model for the costing engine.

Each unit belongs to one measurement class and converts to that class's
base unit by a fixed factor (kg -> g is 1000). Base units have factor 1
and are immutable once created.
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
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import MeasurementClass


class Unit(BaseModel):
    """
    Measurement unit with its conversion factor.

    Attributes:
        workspace_id: Owning workspace
        name: Unit name (e.g., "kilogram")
        abbreviation: Short form shown next to quantities (e.g., "kg")
        measurement_class: weight, volume or count
        conversion_factor: Base units per one of this unit
        is_base: True for the class's base unit (factor 1, immutable)
    """

    __tablename__ = "units"

    workspace_id = Column(
        Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(100), nullable=False)
    abbreviation = Column(String(20), nullable=False)
    measurement_class = Column(SQLEnum(MeasurementClass), nullable=False)
    conversion_factor = Column(Numeric(15, 6), nullable=False, default=Decimal("1.000000"))
    is_base = Column(Boolean, nullable=False, default=False)

    workspace = relationship("Workspace", back_populates="units")

    __table_args__ = (
        CheckConstraint("conversion_factor > 0", name="ck_unit_conversion_factor_positive"),
        UniqueConstraint("workspace_id", "abbreviation", name="uq_unit_workspace_abbreviation"),
        Index("idx_unit_workspace_class", "workspace_id", "measurement_class"),
    )

    def to_base(self, quantity: Decimal) -> Decimal:
        """Convert ``quantity`` of this unit to the class's base unit."""
        return Decimal(str(quantity)) * self.conversion_factor

    def __repr__(self) -> str:
        """Return string representation of Unit."""
        return (
            f"Unit(abbreviation='{self.abbreviation}', "
            f"class='{self.measurement_class.value if self.measurement_class else None}', "
            f"factor={self.conversion_factor})"
        )
