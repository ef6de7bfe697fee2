"""Merges menu-item quantities from the three order sources into one cart."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from application.pricing import coerce_quantity
from domain.cart import CartItem, MenuItem, Provenance

logger = logging.getLogger(__name__)


class OrderReconciler:
    """
    Keyed cart: ``menu_item_id -> CartItem``.

    Sources:
    - PreBooked: items picked on the booking screen (seeded at construction)
    - AddedDuringSession: ``add_item`` / ``remove_item`` while the table runs
    - AlreadyOrdered: orders recorded against the session through another
      channel, merged additively via ``merge_session_orders``

    Quantities are always >= 1; an entry that would reach 0 is removed.
    """

    def __init__(self, pre_booked: Iterable[Mapping[str, Any]] = ()):
        self._items: Dict[str, CartItem] = {}
        for entry in pre_booked:
            self._merge_entry(entry, Provenance.PRE_BOOKED)

    # ================== Queries ==================
    def items(self) -> List[CartItem]:
        return list(self._items.values())

    def get(self, menu_item_id: Any) -> Optional[CartItem]:
        return self._items.get(str(menu_item_id))

    def quantities(self) -> List[Dict[str, Any]]:
        """``[{menuItemId, quantity}]`` as sent to Bill-Create."""
        return [
            {"menuItemId": item.menu_item_id, "quantity": item.quantity}
            for item in self._items.values()
        ]

    def __len__(self) -> int:
        return len(self._items)

    # ================== Mutations ==================
    def add_item(self, menu_item: MenuItem) -> CartItem:
        """+1: create at quantity 1 if absent, else increment."""
        existing = self._items.get(menu_item.menu_item_id)
        if existing:
            existing.quantity += 1
            return existing
        item = CartItem(
            menu_item_id=menu_item.menu_item_id,
            name=menu_item.name,
            unit_price=menu_item.price,
            quantity=1,
            category=menu_item.category,
            provenance=Provenance.ADDED_DURING_SESSION,
        )
        self._items[item.menu_item_id] = item
        return item

    def remove_item(self, menu_item_id: Any) -> Optional[CartItem]:
        """-1: returns the remaining entry, or None once it is gone."""
        key = str(menu_item_id)
        existing = self._items.get(key)
        if not existing:
            return None
        if existing.quantity > 1:
            existing.quantity -= 1
            return existing
        self._items.pop(key, None)
        return None

    def merge_session_orders(self, consolidated_items: Iterable[Mapping[str, Any]]) -> int:
        """
        Add quantities already ordered for the session elsewhere.

        The merge is additive: an AlreadyOrdered line for an item already in
        the cart sums into it. Callers fetch this source once per session.
        Returns the number of lines merged.
        """
        merged = 0
        for entry in consolidated_items:
            if self._merge_entry(entry, Provenance.ALREADY_ORDERED):
                merged += 1
        return merged

    # Helpers --------------------------------------------------------------
    def _merge_entry(self, entry: Mapping[str, Any], provenance: Provenance) -> bool:
        raw_id = entry.get("id", entry.get("menu_item_id", entry.get("menuItemId")))
        if raw_id is None:
            logger.warning("[OrderReconciler] Skipping %s line without an item id: %r", provenance.value, entry)
            return False
        raw_quantity = entry.get("quantity", entry.get("qty"))
        quantity = coerce_quantity(raw_quantity)
        if quantity <= 0:
            # Missing or bad quantity counts as one.
            logger.warning(
                "[OrderReconciler] %s line for item %s has quantity %r, counting 1",
                provenance.value,
                raw_id,
                raw_quantity,
            )
            quantity = 1

        key = str(raw_id)
        existing = self._items.get(key)
        if existing:
            existing.quantity += quantity
            return True
        self._items[key] = CartItem(
            menu_item_id=key,
            name=str(entry.get("name") or f"Item {key}"),
            unit_price=entry.get("price", entry.get("unit_price")),
            quantity=quantity,
            category=entry.get("category"),
            provenance=provenance,
        )
        return True
