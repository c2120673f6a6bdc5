"""Declarative base and the abstract model every costing table extends."""

import enum
import uuid as uuid_lib
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base, validates

from ..utils.datetime_utils import utc_now

Base = declarative_base()


def _serialize(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    return value


class BaseModel(Base):
    """
    Columns and helpers shared by every costing table.

    Each row has an integer ``id`` used by foreign keys and item references,
    a ``uuid`` for handing records to outside systems, and creation and
    modification timestamps in UTC.
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    # SQLite has no UUID type
    uuid = Column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid_lib.uuid4()), index=True
    )

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self, include_relationships: bool = False) -> Dict[str, Any]:
        """
        Column values as plain data.

        Decimals become strings at their stored scale, enums become their
        values and timestamps ISO-8601 text. With include_relationships,
        loaded one-to-many children are added as lists of dicts.
        """
        data = {column.name: _serialize(getattr(self, column.name)) for column in self.__table__.columns}

        if include_relationships:
            for rel in self.__mapper__.relationships:
                children = getattr(self, rel.key)
                if isinstance(children, list):
                    data[rel.key] = [child.to_dict() for child in children]

        return data

    @validates("uuid")
    def _validate_uuid(self, _key: str, value: Any) -> str:
        return value if value is None else str(value)

    def __repr__(self) -> str:
        shown = []
        if getattr(self, "id", None) is not None:
            shown.append(f"id={self.id}")
        if getattr(self, "name", None) is not None:
            shown.append(f"name='{self.name}'")
        return f"{type(self).__name__}({', '.join(shown)})"
