"""Routers for table sessions: start, live cart, bill generation, teardown, alerts."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel, Field

from domain.errors import (
    AuthenticationMissingError,
    BillCreationError,
    CollaboratorError,
    InvalidSessionStateError,
    LoungeError,
    MenuItemNotFoundError,
    SessionNotFoundError,
)
from domain.session import AuthContext
from interfaces import deps

router = APIRouter(tags=["sessions"])

session_service = deps.session_service


class StartSessionRequest(BaseModel):
    booking: Dict[str, Any] = Field(..., description="Active-table booking payload")
    table: Optional[Dict[str, Any]] = Field(default=None, description="Table snapshot; fetched when omitted")
    timeOption: Optional[str] = Field(default=None, description="Set Time | Timer | Select Frame")
    frameCount: Optional[int] = Field(default=None, ge=0)
    preBookedItems: List[Dict[str, Any]] = Field(default_factory=list)


class AddItemRequest(BaseModel):
    menuItemId: str = Field(..., min_length=1)


class FrameCountRequest(BaseModel):
    frameCount: int = Field(..., ge=0)


def _auth(authorization: Optional[str]) -> AuthContext:
    return AuthContext.from_header(authorization)


def _http_error(exc: LoungeError) -> HTTPException:
    if isinstance(exc, AuthenticationMissingError):
        return HTTPException(status_code=401, detail=exc.message)
    if isinstance(exc, (SessionNotFoundError, MenuItemNotFoundError)):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, InvalidSessionStateError):
        return HTTPException(status_code=409, detail=exc.message)
    if isinstance(exc, (BillCreationError, CollaboratorError)):
        return HTTPException(status_code=502, detail=exc.message)
    return HTTPException(status_code=400, detail=exc.message)


# ==================== Sessions ====================

@router.post("/sessions")
async def start_session(
    payload: StartSessionRequest,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    try:
        lifecycle = await session_service.start_session(
            _auth(authorization),
            payload.booking,
            table=payload.table,
            time_option=payload.timeOption,
            frame_count=payload.frameCount,
            pre_booked=payload.preBookedItems,
        )
        return session_service.describe(lifecycle.session_id)
    except LoungeError as exc:
        raise _http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/sessions")
def list_sessions() -> Dict[str, Any]:
    return {"sessions": session_service.list_views()}


@router.get("/sessions/{session_id}")
def get_session(session_id: str) -> Dict[str, Any]:
    try:
        return session_service.describe(session_id)
    except LoungeError as exc:
        raise _http_error(exc) from exc


@router.get("/sessions/{session_id}/menu")
def get_menu(session_id: str) -> Dict[str, Any]:
    """Menu snapshot taken when the session started, grouped by category."""
    try:
        catalog = session_service.get(session_id).catalog
    except LoungeError as exc:
        raise _http_error(exc) from exc
    return {
        "categories": [
            {
                "name": category,
                "items": [
                    {"id": item.menu_item_id, "name": item.name, "price": item.price}
                    for item in catalog.by_category(category)
                ],
            }
            for category in catalog.categories()
        ]
    }


@router.post("/sessions/{session_id}/items")
def add_item(session_id: str, payload: AddItemRequest) -> Dict[str, Any]:
    try:
        return session_service.add_item(session_id, payload.menuItemId)
    except LoungeError as exc:
        raise _http_error(exc) from exc


@router.delete("/sessions/{session_id}/items/{menu_item_id}")
def remove_item(session_id: str, menu_item_id: str) -> Dict[str, Any]:
    try:
        return session_service.remove_item(session_id, menu_item_id)
    except LoungeError as exc:
        raise _http_error(exc) from exc


@router.put("/sessions/{session_id}/frames")
def set_frames(session_id: str, payload: FrameCountRequest) -> Dict[str, Any]:
    try:
        return session_service.set_frame_count(session_id, payload.frameCount)
    except LoungeError as exc:
        raise _http_error(exc) from exc


@router.post("/sessions/{session_id}/bill")
async def generate_bill(session_id: str) -> Dict[str, Any]:
    try:
        result = await session_service.request_bill(session_id)
    except LoungeError as exc:
        raise _http_error(exc) from exc
    if result is None:
        raise HTTPException(status_code=409, detail="Bill generation already in progress for this session")
    return {
        "success": True,
        "billId": result.receipt.bill_id,
        "billNumber": result.receipt.bill_number,
        "billedMinutes": result.bill.billed_duration_minutes,
        "isEarlyCheckout": result.bill.is_early_checkout,
        "totalAmount": result.bill.draft.total_amount,
        "sessionStopped": result.session_stopped,
    }


@router.delete("/sessions/{session_id}")
def close_session_view(session_id: str) -> Dict[str, Any]:
    try:
        session_service.teardown(session_id)
    except LoungeError as exc:
        raise _http_error(exc) from exc
    return {"success": True, "sessionId": session_id}


# ==================== Alerts ====================

@router.get("/alerts")
def list_alerts() -> Dict[str, Any]:
    return {"alerts": [outcome.to_dict() for outcome in session_service.list_alerts()]}


@router.post("/alerts/{outcome_id}/ack")
def acknowledge_alert(outcome_id: str) -> Dict[str, Any]:
    if not session_service.acknowledge_alert(outcome_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    return {"success": True, "outcomeId": outcome_id}
