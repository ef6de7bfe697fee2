"""Socket.IO manager - pushes live session state to table screens and the monitor.

    TimeManager -> (event bus) -> SessionService -> (this module) -> screens
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import socketio

from domain.errors import SessionNotFoundError

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins=["http://localhost:5173", "http://localhost:5174"],
    logger=False,
    engineio_logger=False,
)

# sid -> session_id
_subscriptions: Dict[str, str] = {}
_session_views: Optional[Callable[[], List[Dict[str, Any]]]] = None
_session_view: Optional[Callable[[str], Dict[str, Any]]] = None


def set_session_source(
    describe: Callable[[str], Dict[str, Any]],
    list_views: Callable[[], List[Dict[str, Any]]],
) -> None:
    """Where the current view of one / all sessions comes from on subscribe."""
    global _session_view, _session_views
    _session_view = describe
    _session_views = list_views


# ========== Socket.IO events ==========

@sio.event
async def connect(sid: str, environ: dict) -> None:
    logger.info("[Socket.IO] Client connected: %s", sid)


@sio.event
async def disconnect(sid: str) -> None:
    logger.info("[Socket.IO] Client disconnected: %s", sid)
    if sid in _subscriptions:
        session_id = _subscriptions.pop(sid)
        await sio.leave_room(sid, f"session:{session_id}")


@sio.event
async def subscribe_session(sid: str, data: dict) -> None:
    """A table screen follows one session's countdown and running bill."""
    session_id = (data or {}).get("sessionId")
    if not session_id:
        return

    if sid in _subscriptions:
        await sio.leave_room(sid, f"session:{_subscriptions[sid]}")

    _subscriptions[sid] = str(session_id)
    await sio.enter_room(sid, f"session:{session_id}")
    logger.debug("[Socket.IO] %s subscribed to session:%s", sid, session_id)

    if _session_view is not None:
        try:
            view = _session_view(str(session_id))
        except SessionNotFoundError:
            return
        await sio.emit("session_state", view, room=sid)


@sio.event
async def subscribe_monitor(sid: str, data: dict = None) -> None:
    await sio.enter_room(sid, "monitor")
    logger.debug("[Socket.IO] %s subscribed to monitor", sid)
    await push_all_sessions()


@sio.event
async def unsubscribe_monitor(sid: str, data: dict = None) -> None:
    await sio.leave_room(sid, "monitor")


# ========== Push helpers (called by SessionService) ==========

async def push_session_state(view: Dict[str, Any]) -> None:
    session_id = view.get("sessionId")
    await sio.emit("session_state", view, room=f"session:{session_id}")
    await sio.emit("session_state", view, room="monitor")


async def push_all_sessions() -> None:
    if _session_views is None:
        return
    await sio.emit("monitor_update", {"sessions": _session_views()}, room="monitor")


async def push_system_event(event_type: str, session_id: str, message: str) -> None:
    now_ms = int(time.time() * 1000)
    event = {
        "id": f"{now_ms}-{session_id}-{event_type}",
        "time": now_ms,
        "type": event_type,
        "sessionId": session_id,
        "message": message,
    }
    await sio.emit("system_event", event, room=f"session:{session_id}")
    await sio.emit("system_event", event, room="monitor")
