"""Occupied-table session model built from the booking collaborator's payload."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from domain.errors import AuthenticationMissingError


class TimeOption(str, Enum):
    SET_TIME = "Set Time"
    TIMER = "Timer"
    SELECT_FRAME = "Select Frame"

    @classmethod
    def parse(cls, value: Any) -> "TimeOption":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        for option in cls:
            if text.lower() in (option.value.lower(), option.name.lower(), option.value.replace(" ", "").lower()):
                return option
        return cls.SET_TIME


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """One occupied-table booking eligible for exactly one bill."""

    session_id: str
    table_id: Optional[str]
    game_type: Optional[str]
    start_time: datetime
    booked_duration_seconds: int
    time_option: TimeOption = TimeOption.SET_TIME
    frame_count: Optional[int] = None
    end_instant: Optional[datetime] = None
    customer_name: str = "Walk-in Customer"
    customer_phone: str = ""

    @property
    def booked_minutes(self) -> int:
        return math.ceil(self.booked_duration_seconds / 60) if self.booked_duration_seconds > 0 else 0

    @classmethod
    def from_booking(
        cls,
        payload: Mapping[str, Any],
        *,
        time_option: Any = None,
        frame_count: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> "Session":
        """
        Build a session from the booking collaborator's record.

        ``booking_end_time`` is preferred; without it the window is
        ``start_time + duration_minutes``. The booked duration is
        ``duration_minutes`` when present, otherwise whatever was still left
        on the clock when the session was opened.
        """
        now = now or utcnow()
        raw_id = payload.get("active_id") or payload.get("id") or payload.get("session_id")
        if raw_id is None:
            raise ValueError("Booking payload has no session id")

        start_time = parse_instant(payload.get("start_time")) or now
        end_instant = parse_instant(payload.get("booking_end_time"))
        duration_minutes = payload.get("duration_minutes")

        if end_instant is not None:
            if duration_minutes:
                booked = int(float(duration_minutes) * 60)
            else:
                booked = max(0, math.floor((end_instant - now).total_seconds()))
        elif duration_minutes:
            booked = int(float(duration_minutes) * 60)
            end_instant = start_time + timedelta(seconds=booked)
        else:
            raise ValueError("Booking payload needs booking_end_time or duration_minutes")

        option = TimeOption.parse(time_option if time_option is not None else payload.get("time_option"))
        frames = frame_count
        if frames is None and option == TimeOption.SELECT_FRAME:
            frames = int(payload.get("frame_count") or 0)

        return cls(
            session_id=str(raw_id),
            table_id=str(payload["table_id"]) if payload.get("table_id") is not None else None,
            game_type=payload.get("game_type") or payload.get("gameType"),
            start_time=start_time,
            booked_duration_seconds=booked,
            time_option=option,
            frame_count=frames if option == TimeOption.SELECT_FRAME else None,
            end_instant=end_instant,
            customer_name=payload.get("customer_name") or "Walk-in Customer",
            customer_phone=payload.get("customer_phone") or "",
        )


@dataclass(frozen=True)
class AuthContext:
    """Credential handed to the engine at construction; never looked up ad hoc."""

    token: Optional[str] = None

    def require(self) -> str:
        if not self.token:
            raise AuthenticationMissingError()
        return self.token

    @classmethod
    def from_header(cls, authorization: Optional[str]) -> "AuthContext":
        if not authorization:
            return cls(None)
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer":
            return cls(token.strip() or None)
        return cls(authorization.strip() or None)
