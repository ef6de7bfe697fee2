"""Countdown handle for one session. SessionLifecycle queries timing through it."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

if TYPE_CHECKING:
    from application.time_manager import TimeManager


@dataclass
class SessionTimer:
    """
    Handle to a countdown registered with the TimeManager.

    The manager owns the state and the tick; the handle only asks. After
    ``cancel()`` the manager forgets the timer and no further tick or expiry
    is produced for it.
    """
    timer_id: str
    session_id: str
    _time_manager: Optional["TimeManager"] = None

    @classmethod
    def create(cls, session_id: str, time_manager: "TimeManager") -> "SessionTimer":
        return cls(timer_id=str(uuid4()), session_id=session_id, _time_manager=time_manager)

    @property
    def is_valid(self) -> bool:
        """Still registered (not cancelled)."""
        if not self._time_manager:
            return False
        return self._time_manager.has_timer(self.timer_id)

    @property
    def is_running(self) -> bool:
        """Registered and still ticking (expiry not yet emitted)."""
        if not self._time_manager:
            return False
        return self._time_manager.is_ticking(self.timer_id)

    @property
    def remaining_seconds(self) -> int:
        """Seconds left, recomputed from the wall clock on every read."""
        if not self._time_manager:
            return 0
        return self._time_manager.get_remaining_seconds(self.timer_id)

    def check_expiry(self) -> bool:
        """True exactly once: the first time the countdown is seen at 0."""
        if not self._time_manager:
            return False
        return self._time_manager.check_expiry(self.timer_id)

    def cancel(self) -> None:
        if self._time_manager:
            self._time_manager.cancel_timer(self.timer_id)

    def __repr__(self) -> str:
        valid = self.is_valid if self._time_manager else "unbound"
        return f"SessionTimer(id={self.timer_id[:8]}..., session={self.session_id}, valid={valid})"


# Countdown display ------------------------------------------------------------

def format_countdown(total_seconds: int) -> str:
    """``MM:SS``, or ``HH:MM:SS`` past an hour; ``00:00`` once time is up."""
    if total_seconds <= 0:
        return "00:00"
    hours, rest = divmod(int(total_seconds), 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def countdown_status(remaining_seconds: int, warning_seconds: int = 300, critical_seconds: int = 60) -> str:
    if remaining_seconds <= 0:
        return "Time Expired"
    if remaining_seconds <= critical_seconds:
        return "Less than 1 minute!"
    if remaining_seconds <= warning_seconds:
        return "Less than 5 minutes"
    return "Session Running"
