"""Time manager - owns every session countdown and drives the 1s tick."""
from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from app.config import AppConfig
from application.events import AsyncEventBus, EventType, SessionEvent
from application.session_timer import SessionTimer
from domain.session import utcnow


@dataclass
class CountdownState:
    timer_id: str
    session_id: str
    end_instant: datetime
    remaining_seconds: int = 0
    expired: bool = False
    active: bool = True


@dataclass
class TimeManager:
    """
    Time manager for session countdowns.

    - one countdown per session (registering a new one replaces the old)
    - remaining time is always ``end_instant - now``, never a decremented
      counter, so a suspended process or a skipped tick cannot stretch or
      shrink the booked window
    - ``tick()`` does no I/O: it recomputes, calls the tick callback and
      publishes SESSION_TICK / SESSION_EXPIRED on the event bus
    """
    config: AppConfig
    event_bus: AsyncEventBus
    clock: Callable[[], datetime] = field(default=utcnow)

    _timers: Dict[str, CountdownState] = field(default_factory=dict)
    _session_to_timer: Dict[str, str] = field(default_factory=dict)
    _tick_interval: float = 1.0
    _tick_callback: Optional[Callable[[str, int], None]] = None
    _tick_counter: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def __post_init__(self) -> None:
        self._reload_config()

    def _reload_config(self) -> None:
        timer_cfg = self.config.timer or {}
        self._tick_interval = float(timer_cfg.get("tick_interval", 1.0))

    def update_config(self, config: AppConfig) -> None:
        self.config = config
        self._reload_config()

    # ================== Dependency injection ==================
    def set_tick_callback(self, callback: Callable[[str, int], None]) -> None:
        """(session_id, remaining_seconds) on every tick of a live countdown."""
        self._tick_callback = callback

    # ================== Tick interval ==================
    def set_tick_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError("tick_interval must be positive")
        self._tick_interval = seconds

    def get_tick_interval(self) -> float:
        return self._tick_interval

    # ================== Countdown creation ==================
    def create_countdown(
        self,
        session_id: str,
        *,
        end_instant: Optional[datetime] = None,
        start_time: Optional[datetime] = None,
        booked_duration_seconds: Optional[int] = None,
    ) -> SessionTimer:
        """
        Register a countdown. ``end_instant`` is preferred; otherwise it is
        derived from ``start_time + booked_duration_seconds``.
        """
        if end_instant is None:
            if start_time is None or booked_duration_seconds is None:
                raise ValueError("countdown needs end_instant or start_time + booked_duration_seconds")
            end_instant = start_time + timedelta(seconds=int(booked_duration_seconds))

        handle = SessionTimer.create(session_id, self)
        state = CountdownState(
            timer_id=handle.timer_id,
            session_id=session_id,
            end_instant=end_instant,
        )
        state.remaining_seconds = self._compute_remaining(state)
        with self._lock:
            old_timer_id = self._session_to_timer.get(session_id)
            if old_timer_id:
                self._timers.pop(old_timer_id, None)
            self._timers[handle.timer_id] = state
            self._session_to_timer[session_id] = handle.timer_id
        return handle

    def get_timer_by_session(self, session_id: str) -> Optional[SessionTimer]:
        timer_id = self._session_to_timer.get(session_id)
        if not timer_id or timer_id not in self._timers:
            return None
        return SessionTimer(timer_id=timer_id, session_id=session_id, _time_manager=self)

    # ================== Queries ==================
    def has_timer(self, timer_id: str) -> bool:
        return timer_id in self._timers

    def is_ticking(self, timer_id: str) -> bool:
        state = self._timers.get(timer_id)
        return state is not None and state.active

    def get_remaining_seconds(self, timer_id: str) -> int:
        state = self._timers.get(timer_id)
        if not state:
            return 0
        state.remaining_seconds = self._compute_remaining(state)
        return state.remaining_seconds

    def check_expiry(self, timer_id: str) -> bool:
        """Expiry edge: True only for the first check that finds 0 remaining."""
        with self._lock:
            state = self._timers.get(timer_id)
            if not state or state.expired:
                return False
            state.remaining_seconds = self._compute_remaining(state)
            if state.remaining_seconds > 0:
                return False
            state.expired = True
            state.active = False
            return True

    def cancel_timer(self, timer_id: str) -> None:
        with self._lock:
            state = self._timers.pop(timer_id, None)
            if state and self._session_to_timer.get(state.session_id) == timer_id:
                self._session_to_timer.pop(state.session_id, None)

    # ================== Clock ==================
    def tick(self) -> None:
        """Recompute every live countdown once."""
        for timer_id, state in list(self._timers.items()):
            if not state.active:
                continue
            remaining = self.get_remaining_seconds(timer_id)
            if timer_id not in self._timers:
                continue  # cancelled while iterating
            if self._tick_callback:
                self._tick_callback(state.session_id, remaining)
            self.event_bus.publish_sync(SessionEvent(
                event_type=EventType.SESSION_TICK,
                session_id=state.session_id,
                payload={"remainingSeconds": remaining, "timerId": timer_id},
            ))
            if self.check_expiry(timer_id):
                self.event_bus.publish_sync(SessionEvent(
                    event_type=EventType.SESSION_EXPIRED,
                    session_id=state.session_id,
                    payload={"timerId": timer_id},
                ))
        self._tick_counter += 1

    def _compute_remaining(self, state: CountdownState) -> int:
        delta = (state.end_instant - self.clock()).total_seconds()
        return max(0, math.floor(delta))

    # ================== Debug ==================
    def get_timer_stats(self) -> dict:
        return {
            "total_timers": len(self._timers),
            "ticking": sum(1 for state in self._timers.values() if state.active),
            "tick_interval": self._tick_interval,
            "tick_counter": self._tick_counter,
            "pending_events": self.event_bus.pending_count(),
        }

    def list_timers(self) -> list:
        return [
            {
                "timer_id": state.timer_id,
                "session_id": state.session_id,
                "end_instant": state.end_instant.isoformat(),
                "remaining": state.remaining_seconds,
                "expired": state.expired,
                "active": state.active,
            }
            for state in self._timers.values()
        ]

    def get_tick_counter(self) -> int:
        return self._tick_counter
