"""HTTP implementation of the lounge collaborators over httpx."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.config import AppConfig
from domain.bill import BillReceipt, FinalizedBill
from domain.errors import CollaboratorError
from domain.session import AuthContext
from .gateway import LoungeGateway

logger = logging.getLogger(__name__)


def _wire_id(value: Optional[str]) -> Any:
    """The backend keys sessions and tables by integer ids."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


class HttpLoungeGateway(LoungeGateway):
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config: AppConfig) -> "HttpLoungeGateway":
        gateway_cfg = config.gateway or {}
        return cls(
            base_url=str(gateway_cfg.get("base_url", "http://localhost:3000")),
            timeout=float(gateway_cfg.get("timeout_seconds", 10.0)),
        )

    async def _request(self, operation: str, auth: AuthContext, method: str, path: str, **kwargs) -> Any:
        token = auth.require()
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            raise CollaboratorError(operation, detail, exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            raise CollaboratorError(operation, str(exc) or exc.__class__.__name__) from exc
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise CollaboratorError(operation, "response is not JSON", response.status_code) from exc

    # ================== Collaborator API ==================
    async def fetch_menu_items(self, auth: AuthContext) -> List[Dict[str, Any]]:
        result = await self._request("fetch menu", auth, "GET", "/api/menu")
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            return list(result.get("data") or [])
        return []

    async def fetch_table(self, auth: AuthContext, table_id: str) -> Dict[str, Any]:
        result = await self._request("fetch table", auth, "GET", f"/api/tables/{table_id}")
        if isinstance(result, dict):
            return result.get("data") or result.get("table") or result
        return {}

    async def fetch_session_orders(self, auth: AuthContext, session_id: str) -> Dict[str, Any]:
        result = await self._request("fetch session orders", auth, "GET", f"/api/orders/by-session/{session_id}")
        if not isinstance(result, dict):
            return {"consolidatedItems": []}
        payload = result.get("data") if isinstance(result.get("data"), dict) else result
        return {"consolidatedItems": list(payload.get("consolidatedItems") or [])}

    async def create_bill(self, auth: AuthContext, bill: FinalizedBill) -> BillReceipt:
        body = {
            "customer_name": bill.customer_name,
            "customer_phone": bill.customer_phone,
            "table_id": _wire_id(bill.table_id),
            "session_id": _wire_id(bill.session_id),
            "selected_menu_items": [
                {"menu_item_id": _wire_id(item["menuItemId"]), "quantity": item["quantity"]}
                for item in bill.menu_items
            ],
            "session_duration": bill.billed_duration_minutes,
            "is_early_checkout": bill.is_early_checkout,
            "table_price_per_min": bill.price_per_minute,
            "frame_charges": bill.frame_charges,
        }
        result = await self._request("create bill", auth, "POST", "/api/bills/create", json=body)
        created = (result or {}).get("bill") if isinstance(result, dict) else None
        if not created:
            raise CollaboratorError("create bill", "response has no bill")
        return BillReceipt(
            bill_id=str(created.get("id")),
            bill_number=str(created.get("bill_number") or ""),
            raw=created,
        )

    async def stop_session(self, auth: AuthContext, session_id: str) -> None:
        await self._request(
            "stop session", auth, "POST", "/api/activeTables/stop",
            json={"active_id": _wire_id(session_id)},
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return f"HTTP {response.status_code}"
