"""Data Transfer Objects for the service layer.

Results returned by mutating operations, the menu pricing calculator and the
what-if simulator. All values are Decimals; to_dict() renders them as strings
so reports serialize to JSON without losing scale.
"""

from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..models.item_ref import ItemRef


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, ItemRef):
        return {"kind": value.kind.value, "id": value.id}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


class _DictMixin:
    def to_dict(self) -> Dict[str, Any]:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}


@dataclass
class CascadeResult:
    """Outcome of one propagation run.

    Attributes:
        source: The item whose cost change started the run (None for a
            whole-workspace recalculation)
        updated: Every recomputed item with its new aggregate value, in the
            order it was recomputed
        repriced_menu_items: Ids of menu listings whose margin was recomputed
    """

    source: Optional[ItemRef]
    updated: Dict[ItemRef, Decimal] = field(default_factory=dict)
    repriced_menu_items: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": _plain(self.source) if self.source else None,
            "updated": [
                {"kind": ref.kind.value, "id": ref.id, "value": str(value)}
                for ref, value in self.updated.items()
            ],
            "repriced_menu_items": list(self.repriced_menu_items),
        }


@dataclass
class MutationResult(_DictMixin):
    """Returned by every mutating operation.

    Attributes:
        entity_id: Id of the created/updated/deleted record
        value: The new aggregate value the mutation produced (base cost,
            variation cost, recipe cost per portion, product base cost,
            listing margin), or None when nothing was recomputed
        cascade: Downstream recomputation triggered by the mutation
    """

    entity_id: int
    value: Optional[Decimal] = None
    cascade: Optional[CascadeResult] = None


@dataclass
class PricingResult(_DictMixin):
    """Menu pricing breakdown for one item cost at one sale price."""

    item_cost: Decimal
    sale_price: Decimal
    fees_cost: Decimal
    apportioned_fixed_cost: Decimal
    total_cost: Decimal
    margin_value: Decimal
    margin_percentage: Decimal


@dataclass
class IngredientImpact(_DictMixin):
    """The simulated ingredient before and after the price change."""

    id: int
    name: str
    price_unit: str
    current_price: Decimal
    new_price: Decimal
    current_base_cost: Decimal
    new_base_cost: Decimal
    price_ratio: Decimal


@dataclass
class CostChange(_DictMixin):
    """Simulated cost change of one variation, recipe or product."""

    ref: ItemRef
    name: str
    current_cost: Decimal
    new_cost: Decimal
    difference: Decimal
    percentage_change: Decimal


@dataclass
class MenuItemImpact(_DictMixin):
    """Simulated effect on one menu listing, with a margin-preserving price.

    size_name is the listed size for products sold by size, else None.
    """

    menu_item_id: int
    menu_id: int
    menu_name: str
    item: ItemRef
    item_name: str
    sale_price: Decimal
    current_cost: Decimal
    new_cost: Decimal
    current_margin: Decimal
    new_margin: Decimal
    current_margin_percentage: Decimal
    new_margin_percentage: Decimal
    suggested_price: Decimal
    price_increase: Decimal
    size_name: Optional[str] = None


@dataclass
class ImpactSummary(_DictMixin):
    total_variations_affected: int
    total_recipes_affected: int
    total_products_affected: int
    total_menu_items_affected: int
    average_cost_increase: Decimal
    menu_items_with_negative_margin: int


@dataclass
class ImpactReport(_DictMixin):
    """Full what-if report for one hypothetical ingredient price."""

    ingredient: IngredientImpact
    variations: List[CostChange]
    recipes: List[CostChange]
    products: List[CostChange]
    menu_items: List[MenuItemImpact]
    summary: ImpactSummary
