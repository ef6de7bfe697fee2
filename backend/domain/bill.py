"""Bill drafts and the finalized bill handed to the Bill-Create collaborator."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class TableRate:
    """Pricing snapshot for one table, normalized once when it is built."""

    price_per_minute: float
    frame_charge: float = 0.0
    price_per_frame: float = 100.0
    raw_price_per_minute: Optional[float] = None
    hourly_converted: bool = False


@dataclass(frozen=True)
class LineItem:
    """A priced cart line. Malformed source fields appear here as 0, never dropped."""

    menu_item_id: str
    name: str
    unit_price: float
    quantity: int
    total: float


@dataclass(frozen=True)
class BillDraft:
    """Ephemeral running bill; recomputed from scratch on every tick and cart change."""

    table_charges: float
    menu_charges: float
    billable_minutes: int
    line_items: List[LineItem] = field(default_factory=list)

    @property
    def total_amount(self) -> float:
        return self.table_charges + self.menu_charges

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tableCharges": self.table_charges,
            "menuCharges": self.menu_charges,
            "totalAmount": self.total_amount,
            "billableMinutes": self.billable_minutes,
            "lineItems": [
                {
                    "menuItemId": item.menu_item_id,
                    "name": item.name,
                    "unitPrice": item.unit_price,
                    "quantity": item.quantity,
                    "total": item.total,
                }
                for item in self.line_items
            ],
        }


@dataclass(frozen=True)
class FinalizedBill:
    """The single artifact sent to Bill-Create for a session."""

    session_id: str
    table_id: Optional[str]
    customer_name: str
    customer_phone: str
    billed_duration_minutes: int
    is_early_checkout: bool
    menu_items: List[Dict[str, Any]]
    frame_charges: float
    price_per_minute: float
    draft: BillDraft

    def to_request(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "tableId": self.table_id,
            "customerName": self.customer_name,
            "customerPhone": self.customer_phone,
            "menuItems": list(self.menu_items),
            "billedDurationMinutes": self.billed_duration_minutes,
            "isEarlyCheckout": self.is_early_checkout,
            "frameCharges": self.frame_charges,
            "pricePerMinute": self.price_per_minute,
        }


@dataclass(frozen=True)
class BillReceipt:
    """What Bill-Create hands back."""

    bill_id: str
    bill_number: str
    raw: Dict[str, Any] = field(default_factory=dict)
