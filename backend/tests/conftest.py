"""Shared fixtures: a controllable wall clock and in-memory collaborators."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.config import AppConfig
from application.events import AsyncEventBus
from application.pricing import PricingCalculator
from application.session_service import SessionService
from application.telemetry import TelemetryReporter
from application.time_manager import TimeManager
from domain.session import AuthContext
from infrastructure.memory_gateway import InMemoryLoungeGateway
from infrastructure.memory_store import InMemoryOutcomeRepository


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


MENU = [
    {"id": 1, "name": "Masala Tea", "price": 20, "category": "Beverages"},
    {"id": 2, "name": "Fries", "price": 90, "category": "Fast Food"},
    {"id": 3, "name": "Sandwich", "price": 120},
]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc))


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(raw={
        "version": "test",
        "gateway": {"backend": "memory"},
        "storage": {"backend": "memory"},
        "pricing": {
            "default_price_per_minute": 10.0,
            "default_price_per_frame": 100.0,
            "default_frame_charge": 0.0,
            "hourly_rate_threshold": 100.0,
        },
        "timer": {
            "tick_interval": 1.0,
            "warning_seconds": 300,
            "critical_seconds": 60,
            "closed_retention_seconds": 300,
        },
        "menu": {"default_categories": ["Food", "Fast Food", "Beverages"]},
    })


@pytest.fixture
def auth() -> AuthContext:
    return AuthContext("test-token")


@pytest.fixture
def event_bus() -> AsyncEventBus:
    return AsyncEventBus()


@pytest.fixture
def time_manager(config, event_bus, clock) -> TimeManager:
    return TimeManager(config, event_bus, clock=clock)


@pytest.fixture
def gateway() -> InMemoryLoungeGateway:
    gw = InMemoryLoungeGateway(menu=MENU)
    gw.set_table("7", {"id": 7, "pricePerMin": 10, "pricePerFrame": 100, "frameCharge": 0})
    return gw


@pytest.fixture
def repository() -> InMemoryOutcomeRepository:
    return InMemoryOutcomeRepository()


@pytest.fixture
def reporter(repository) -> TelemetryReporter:
    return TelemetryReporter(repository)


@pytest.fixture
def calculator(config) -> PricingCalculator:
    return PricingCalculator(config)


@pytest.fixture
def service(config, gateway, time_manager, event_bus, reporter, calculator) -> SessionService:
    return SessionService(
        config,
        gateway=gateway,
        time_manager=time_manager,
        event_bus=event_bus,
        reporter=reporter,
        calculator=calculator,
    )


@pytest.fixture
def booking(clock):
    """Sixty booked minutes on table 7, starting now."""
    return {
        "id": 42,
        "table_id": 7,
        "game_type": "Snooker",
        "start_time": clock().isoformat(),
        "duration_minutes": 60,
        "customer_name": "Asha",
        "customer_phone": "9800000000",
    }
