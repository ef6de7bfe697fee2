"""In-process collaborator intended for the prototype stage and tests."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from domain.bill import BillReceipt, FinalizedBill
from domain.errors import CollaboratorError
from domain.session import AuthContext
from .gateway import LoungeGateway


class InMemoryLoungeGateway(LoungeGateway):
    def __init__(
        self,
        menu: Optional[List[Dict[str, Any]]] = None,
        tables: Optional[Dict[str, Dict[str, Any]]] = None,
        session_orders: Optional[Dict[str, List[Dict[str, Any]]]] = None,
    ):
        self._menu: List[Dict[str, Any]] = list(menu or [])
        self._tables: Dict[str, Dict[str, Any]] = dict(tables or {})
        self._session_orders: Dict[str, List[Dict[str, Any]]] = dict(session_orders or {})
        self._bills: Dict[str, Dict[str, Any]] = {}
        self._stopped_sessions: List[str] = []

        # Failure injection / call accounting
        self.fail_menu: bool = False
        self.fail_create_bill: int = 0  # number of upcoming create_bill calls to fail
        self.fail_stop_session: bool = False
        self.create_bill_delay: float = 0.0
        self.create_bill_calls: List[FinalizedBill] = []
        self.session_order_fetches: Dict[str, int] = {}

    # Seeding ----------------------------------------------------------------
    def add_menu_item(self, item: Dict[str, Any]) -> None:
        self._menu.append(item)

    def set_table(self, table_id: str, table: Dict[str, Any]) -> None:
        self._tables[str(table_id)] = table

    def set_session_orders(self, session_id: str, items: List[Dict[str, Any]]) -> None:
        self._session_orders[str(session_id)] = list(items)

    @property
    def bills(self) -> List[Dict[str, Any]]:
        return list(self._bills.values())

    @property
    def stopped_sessions(self) -> List[str]:
        return list(self._stopped_sessions)

    # Collaborator API --------------------------------------------------------
    async def fetch_menu_items(self, auth: AuthContext) -> List[Dict[str, Any]]:
        auth.require()
        if self.fail_menu:
            raise CollaboratorError("fetch menu", "menu service unavailable")
        return [dict(item) for item in self._menu]

    async def fetch_table(self, auth: AuthContext, table_id: str) -> Dict[str, Any]:
        auth.require()
        table = self._tables.get(str(table_id))
        if table is None:
            raise CollaboratorError("fetch table", "Table not found", 404)
        return dict(table)

    async def fetch_session_orders(self, auth: AuthContext, session_id: str) -> Dict[str, Any]:
        auth.require()
        key = str(session_id)
        self.session_order_fetches[key] = self.session_order_fetches.get(key, 0) + 1
        return {"consolidatedItems": [dict(item) for item in self._session_orders.get(key, [])]}

    async def create_bill(self, auth: AuthContext, bill: FinalizedBill) -> BillReceipt:
        auth.require()
        self.create_bill_calls.append(bill)
        await asyncio.sleep(self.create_bill_delay)
        if self.fail_create_bill > 0:
            self.fail_create_bill -= 1
            raise CollaboratorError("create bill", "bill service unavailable", 503)
        bill_id = str(uuid4())
        now = datetime.now(timezone.utc)
        bill_number = f"BILL-{int(now.timestamp() * 1000)}-{bill_id[:9].upper()}"
        self._bills[bill_id] = {
            "id": bill_id,
            "bill_number": bill_number,
            "session_id": bill.session_id,
            "table_charges": bill.draft.table_charges,
            "menu_charges": bill.draft.menu_charges,
            "total_amount": bill.draft.total_amount,
            "session_duration": bill.billed_duration_minutes,
            "is_early_checkout": bill.is_early_checkout,
            "created_at": now,
            "request": bill.to_request(),
        }
        return BillReceipt(bill_id=bill_id, bill_number=bill_number, raw=dict(self._bills[bill_id]))

    async def stop_session(self, auth: AuthContext, session_id: str) -> None:
        auth.require()
        if self.fail_stop_session:
            raise CollaboratorError("stop session", "Session is not active", 400)
        self._stopped_sessions.append(str(session_id))
