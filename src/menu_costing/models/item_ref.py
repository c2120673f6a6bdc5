"""
Tagged references to costed items.

Recipe items, product compositions and menu listings all point at one of
several item tables. ItemRef is the typed (kind, id) pair used everywhere
the engine needs to talk about "an item" without caring which table it is in.
Rows store one nullable foreign key per allowed kind; ItemReferenceMixin maps
between those columns and an ItemRef.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class ItemKind(str, Enum):
    """Kind of item a composition line or menu listing can reference."""

    INGREDIENT = "ingredient"
    VARIATION = "variation"
    RECIPE = "recipe"
    PRODUCT = "product"


@dataclass(frozen=True)
class ItemRef:
    """
    Reference to one costed item.

    Attributes:
        kind: Which table the id belongs to
        id: Primary key inside that table
    """

    kind: ItemKind
    id: int

    def __post_init__(self):
        # Accept plain strings ("recipe") from callers such as the CLI
        if not isinstance(self.kind, ItemKind):
            object.__setattr__(self, "kind", ItemKind(self.kind))

    @classmethod
    def ingredient(cls, item_id: int) -> "ItemRef":
        return cls(ItemKind.INGREDIENT, item_id)

    @classmethod
    def variation(cls, item_id: int) -> "ItemRef":
        return cls(ItemKind.VARIATION, item_id)

    @classmethod
    def recipe(cls, item_id: int) -> "ItemRef":
        return cls(ItemKind.RECIPE, item_id)

    @classmethod
    def product(cls, item_id: int) -> "ItemRef":
        return cls(ItemKind.PRODUCT, item_id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class ItemReferenceMixin:
    """
    Adds ItemRef access to a row that stores one foreign key per item kind.

    Subclasses set ``ref_columns`` to the kinds they accept and the column
    holding each kind's id. The table's CHECK constraint guarantees exactly
    one of those columns is set.
    """

    ref_columns: Dict[ItemKind, str] = {}

    @property
    def item_ref(self) -> ItemRef:
        """
        The referenced item.

        Raises:
            ValueError: If zero or several reference columns are set
        """
        set_refs = [
            ItemRef(kind, getattr(self, column))
            for kind, column in self.ref_columns.items()
            if getattr(self, column) is not None
        ]
        if len(set_refs) != 1:
            raise ValueError(f"Expected exactly one item reference, got {len(set_refs)}")
        return set_refs[0]

    def set_item_ref(self, ref: ItemRef) -> None:
        """
        Point this row at ``ref``, clearing the other reference columns.

        Raises:
            ValueError: If this row type cannot reference ``ref.kind``
        """
        if ref.kind not in self.ref_columns:
            raise ValueError(f"{type(self).__name__} cannot reference a {ref.kind.value}")
        for kind, column in self.ref_columns.items():
            setattr(self, column, ref.id if kind == ref.kind else None)

    @classmethod
    def accepts(cls, kind: ItemKind) -> bool:
        return kind in cls.ref_columns

    @classmethod
    def references(cls, ref: ItemRef):
        """SQL filter expression matching rows that reference ``ref``."""
        return getattr(cls, cls.ref_columns[ref.kind]) == ref.id
