"""FastAPI entry point for the Table Session Billing service."""
import asyncio
import contextlib
import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from interfaces import session_router, debug_router
from interfaces import deps
from infrastructure.socketio_manager import (
    push_session_state,
    push_system_event,
    set_session_source,
    sio,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

# Socket.IO pushes for session views and finalize outcomes
set_session_source(deps.session_service.describe, deps.session_service.list_views)
deps.session_service.set_pushers(push_session_state, push_system_event)

app = FastAPI(title="Table Session Billing")

app.include_router(session_router)
app.include_router(debug_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:5174"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

socket_app = socketio.ASGIApp(sio, other_asgi_app=app)


@app.get("/health", tags=["health"])
def health_check() -> dict:
    """Expose a minimal health endpoint to help dev tooling."""
    return {"status": "ok", "configVersion": deps.settings.version}


# Background tasks ----------------------------------------------
@app.on_event("startup")
async def _start_background_tasks() -> None:  # pragma: no cover - runtime wiring
    """Event consumer loop + clock loop."""
    await deps.event_bus.start()

    async def _clock_loop():
        while True:
            try:
                # On the loop thread: tick publishes with put_nowait
                deps.time_manager.tick()
            except Exception:
                logger.exception("[main] Clock loop error")
            await asyncio.sleep(deps.time_manager.get_tick_interval())

    app.state._clock_task = asyncio.create_task(_clock_loop())
    logger.info("[main] Background tasks started: EventBus + TimeManager clock")


@app.on_event("shutdown")
async def _stop_background_tasks() -> None:  # pragma: no cover - runtime wiring
    clock_task = getattr(app.state, "_clock_task", None)
    if clock_task:
        clock_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await clock_task

    await deps.event_bus.stop()
    await deps.session_service.shutdown()
    await deps.gateway.aclose()
    logger.info("[main] Background tasks stopped")
