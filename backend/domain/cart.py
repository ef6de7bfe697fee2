"""Menu entries and running-bill cart lines."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional


class Provenance(str, Enum):
    PRE_BOOKED = "PreBooked"
    ADDED_DURING_SESSION = "AddedDuringSession"
    ALREADY_ORDERED = "AlreadyOrdered"


@dataclass(frozen=True)
class MenuItem:
    """Catalog entry as served by the menu collaborator."""

    menu_item_id: str
    name: str
    price: Any = None
    category: str = "Food"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "MenuItem":
        raw_id = payload.get("id", payload.get("menu_item_id"))
        return cls(
            menu_item_id=str(raw_id),
            name=str(payload.get("name") or f"Item {raw_id}"),
            price=payload.get("price"),
            category=payload.get("category") or "Food",
        )


@dataclass
class CartItem:
    """
    One menu item with a quantity in the running bill.

    ``unit_price`` is kept as reported by the source; the pricing step
    coerces it, so a malformed price still shows up as a zero-cost line.
    """

    menu_item_id: str
    name: str
    unit_price: Any
    quantity: Any
    category: Optional[str] = None
    provenance: Provenance = Provenance.ADDED_DURING_SESSION

    def to_dict(self) -> dict:
        return {
            "menuItemId": self.menu_item_id,
            "name": self.name,
            "unitPrice": self.unit_price,
            "quantity": self.quantity,
            "category": self.category,
            "provenance": self.provenance.value,
        }


class MenuCatalog:
    """Snapshot of the menu fetched once per session view."""

    def __init__(self, items: Iterable[MenuItem] = (), default_categories: Optional[List[str]] = None):
        self._items: Dict[str, MenuItem] = {item.menu_item_id: item for item in items}
        self._default_categories = list(default_categories or ["Food", "Fast Food", "Beverages"])

    @classmethod
    def from_payload(cls, payload: Iterable[Mapping[str, Any]], default_categories: Optional[List[str]] = None) -> "MenuCatalog":
        items = [MenuItem.from_payload(entry) for entry in payload if entry.get("id", entry.get("menu_item_id")) is not None]
        return cls(items, default_categories)

    def get(self, menu_item_id: Any) -> Optional[MenuItem]:
        return self._items.get(str(menu_item_id))

    def items(self) -> List[MenuItem]:
        return list(self._items.values())

    def categories(self) -> List[str]:
        seen: List[str] = []
        for item in self._items.values():
            if item.category not in seen:
                seen.append(item.category)
        return seen or list(self._default_categories)

    def by_category(self, category: str) -> List[MenuItem]:
        return [item for item in self._items.values() if item.category == category]

    def __len__(self) -> int:
        return len(self._items)
