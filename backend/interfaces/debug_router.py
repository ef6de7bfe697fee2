"""Debug API - timer inspection and clock speed for demos."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from interfaces import deps

router = APIRouter(prefix="/debug", tags=["debug"])


class TickIntervalRequest(BaseModel):
    seconds: float = Field(..., gt=0, le=60)


@router.get("/system/status")
def system_status() -> Dict[str, Any]:
    return {
        "tick": deps.time_manager.get_tick_counter(),
        "tickInterval": deps.time_manager.get_tick_interval(),
        "timerStats": deps.time_manager.get_timer_stats(),
        "eventBusRunning": deps.event_bus.is_running,
    }


@router.get("/timers")
def list_timers() -> Dict[str, Any]:
    """All registered countdowns, including expired ones not yet cancelled."""
    return {"timers": deps.time_manager.list_timers()}


@router.get("/tick-interval")
def get_tick_interval() -> Dict[str, Any]:
    return {"tickInterval": deps.time_manager.get_tick_interval()}


@router.put("/tick-interval")
def set_tick_interval(payload: TickIntervalRequest) -> Dict[str, Any]:
    """
    Change how often the clock loop recomputes countdowns.

    Countdowns are wall-clock based, so this changes push frequency, not
    how fast a session runs out.
    """
    try:
        deps.time_manager.set_tick_interval(payload.seconds)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"success": True, "tickInterval": deps.time_manager.get_tick_interval()}


@router.post("/config/reload")
def reload_config() -> Dict[str, Any]:
    """Re-read app_config.yaml (pricing defaults, timer thresholds)."""
    fresh = deps.reload_settings_from_disk()
    return {"success": True, "configVersion": fresh.version, "tickInterval": deps.time_manager.get_tick_interval()}
