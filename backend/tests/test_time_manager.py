"""Countdown tests: wall-clock based, single expiry edge, cancellation."""
from datetime import timedelta

import pytest

from application.events import EventType
from application.session_timer import countdown_status, format_countdown


def _collector(event_bus):
    events = []

    async def handler(event):
        events.append(event)

    event_bus.register_handler(EventType.SESSION_TICK, handler)
    event_bus.register_handler(EventType.SESSION_EXPIRED, handler)
    return events


def test_remaining_follows_wall_clock(time_manager, clock):
    timer = time_manager.create_countdown("s1", end_instant=clock() + timedelta(seconds=90))
    assert timer.remaining_seconds == 90

    # No ticks delivered for 40 seconds (suspended loop, throttled tab, ...)
    clock.advance(40)
    time_manager.tick()
    assert timer.remaining_seconds == 50


def test_end_derived_from_start_and_duration(time_manager, clock):
    timer = time_manager.create_countdown(
        "s1", start_time=clock() - timedelta(minutes=10), booked_duration_seconds=3600,
    )
    assert timer.remaining_seconds == 3000


def test_countdown_needs_an_end(time_manager):
    with pytest.raises(ValueError):
        time_manager.create_countdown("s1")


@pytest.mark.asyncio
async def test_expiry_fires_once(time_manager, event_bus, clock):
    events = _collector(event_bus)
    time_manager.create_countdown("s1", end_instant=clock() + timedelta(seconds=2))

    for _ in range(5):
        clock.advance(1)
        time_manager.tick()
    await event_bus.drain()

    expired = [e for e in events if e.event_type == EventType.SESSION_EXPIRED]
    assert len(expired) == 1
    assert expired[0].session_id == "s1"


@pytest.mark.asyncio
async def test_end_already_past_expires_on_first_tick(time_manager, event_bus, clock):
    events = _collector(event_bus)
    timer = time_manager.create_countdown("s1", end_instant=clock() - timedelta(minutes=5))

    time_manager.tick()
    await event_bus.drain()

    assert timer.remaining_seconds == 0
    assert [e.event_type for e in events] == [EventType.SESSION_TICK, EventType.SESSION_EXPIRED]


@pytest.mark.asyncio
async def test_cancelled_timer_is_silent(time_manager, event_bus, clock):
    events = _collector(event_bus)
    timer = time_manager.create_countdown("s1", end_instant=clock() + timedelta(seconds=2))

    timer.cancel()
    clock.advance(10)
    time_manager.tick()
    await event_bus.drain()

    assert events == []
    assert timer.is_valid is False
    assert time_manager.get_timer_by_session("s1") is None


def test_recreating_a_countdown_replaces_the_old_one(time_manager, clock):
    first = time_manager.create_countdown("s1", end_instant=clock() + timedelta(seconds=60))
    second = time_manager.create_countdown("s1", end_instant=clock() + timedelta(seconds=120))

    assert first.is_valid is False
    assert second.remaining_seconds == 120
    assert time_manager.get_timer_stats()["total_timers"] == 1


def test_tick_callback_receives_remaining(time_manager, clock):
    seen = []
    time_manager.set_tick_callback(lambda session_id, remaining: seen.append((session_id, remaining)))
    time_manager.create_countdown("s1", end_instant=clock() + timedelta(seconds=30))

    clock.advance(12)
    time_manager.tick()

    assert seen == [("s1", 18)]


def test_tick_interval_must_be_positive(time_manager):
    with pytest.raises(ValueError):
        time_manager.set_tick_interval(0)
    time_manager.set_tick_interval(0.25)
    assert time_manager.get_tick_interval() == 0.25


@pytest.mark.parametrize(
    "seconds, expected",
    [(90, "01:30"), (3725, "01:02:05"), (0, "00:00"), (-4, "00:00"), (59, "00:59")],
)
def test_format_countdown(seconds, expected):
    assert format_countdown(seconds) == expected


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "Time Expired"),
        (45, "Less than 1 minute!"),
        (60, "Less than 1 minute!"),
        (300, "Less than 5 minutes"),
        (301, "Session Running"),
    ],
)
def test_countdown_status(seconds, expected):
    assert countdown_status(seconds) == expected
