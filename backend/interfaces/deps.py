"""Shared singletons for settings, gateway, ledger, clock and the session service.

Backends for the lounge gateway and the outcome ledger are picked from
app_config.yaml (overridable with LOUNGE_GATEWAY / LOUNGE_STORAGE).
"""
from __future__ import annotations

import logging

from app.config import AppConfig, get_settings
from application.events import AsyncEventBus
from application.pricing import PricingCalculator
from application.session_service import SessionService
from application.telemetry import TelemetryReporter
from application.time_manager import TimeManager
from infrastructure.gateway import LoungeGateway
from infrastructure.lounge_client import HttpLoungeGateway
from infrastructure.memory_gateway import InMemoryLoungeGateway
from infrastructure.memory_store import InMemoryOutcomeRepository
from infrastructure.repository import OutcomeRepository
from infrastructure.sqlite_repo import SQLiteOutcomeRepository

logger = logging.getLogger(__name__)

settings = get_settings()


def _create_gateway(config: AppConfig) -> LoungeGateway:
    backend = config.gateway_backend
    if backend == "memory":
        return InMemoryLoungeGateway()
    elif backend == "http":
        return HttpLoungeGateway.from_config(config)
    else:
        raise ValueError(f"Unknown gateway backend: {backend}. Supported: http, memory")


def _create_repository(config: AppConfig) -> OutcomeRepository:
    backend = config.storage_backend
    if backend == "memory":
        return InMemoryOutcomeRepository()
    elif backend == "sqlite":
        return SQLiteOutcomeRepository(config.storage.get("sqlite_path"))
    else:
        raise ValueError(f"Unknown storage backend: {backend}. Supported: sqlite, memory")


gateway = _create_gateway(settings)
repository = _create_repository(settings)
reporter = TelemetryReporter(repository)

event_bus = AsyncEventBus()
time_manager = TimeManager(settings, event_bus)
calculator = PricingCalculator(settings)

session_service = SessionService(
    settings,
    gateway=gateway,
    time_manager=time_manager,
    event_bus=event_bus,
    reporter=reporter,
    calculator=calculator,
)

logger.info("[deps] Gateway backend: %s", settings.gateway_backend)
logger.info("[deps] Storage backend: %s", settings.storage_backend)


def apply_settings(new_settings: AppConfig) -> None:
    """Update global settings reference and refresh dependent singletons."""
    global settings
    settings = new_settings
    time_manager.update_config(new_settings)
    session_service.update_config(new_settings)


def reload_settings_from_disk() -> AppConfig:
    """Force re-read of app_config.yaml and propagate changes."""
    get_settings.cache_clear()
    fresh = get_settings()
    apply_settings(fresh)
    return fresh
