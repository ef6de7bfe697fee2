"""Session service - opens table sessions and routes ticks, expiries and user actions."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set

from app.config import AppConfig
from application.events import AsyncEventBus, EventType, SessionEvent
from application.order_reconciler import OrderReconciler
from application.pricing import PricingCalculator
from application.session_lifecycle import FinalizeResult, SessionLifecycle, SessionState
from application.session_timer import countdown_status, format_countdown
from application.telemetry import TelemetryReporter
from application.time_manager import TimeManager
from domain.cart import MenuCatalog
from domain.errors import LoungeError, SessionNotFoundError
from domain.outcome import FinalizeOutcome
from domain.session import AuthContext, Session
from infrastructure.gateway import LoungeGateway

logger = logging.getLogger(__name__)

StatePusher = Callable[[Dict[str, Any]], Awaitable[None]]
EventPusher = Callable[[str, str, str], Awaitable[None]]


class SessionService:
    def __init__(
        self,
        config: AppConfig,
        gateway: LoungeGateway,
        time_manager: TimeManager,
        event_bus: AsyncEventBus,
        reporter: TelemetryReporter,
        calculator: Optional[PricingCalculator] = None,
    ):
        self.config = config
        self.gateway = gateway
        self.time_manager = time_manager
        self.event_bus = event_bus
        self.reporter = reporter
        self.calculator = calculator or PricingCalculator(config)
        self._sessions: Dict[str, SessionLifecycle] = {}
        self._expiry_tasks: Set[asyncio.Task] = set()
        self._push_state: Optional[StatePusher] = None
        self._push_event: Optional[EventPusher] = None
        self._apply_timer_config()

        self.time_manager.set_tick_callback(self._on_tick)
        self.event_bus.register_handler(EventType.SESSION_TICK, self._handle_tick_event)
        self.event_bus.register_handler(EventType.SESSION_EXPIRED, self._handle_expired_event)

    def _apply_timer_config(self) -> None:
        timer_cfg = self.config.timer or {}
        self.warning_seconds = int(timer_cfg.get("warning_seconds", 300))
        self.critical_seconds = int(timer_cfg.get("critical_seconds", 60))
        self.closed_retention_seconds = float(timer_cfg.get("closed_retention_seconds", 300))

    def update_config(self, config: AppConfig) -> None:
        self.config = config
        self._apply_timer_config()
        self.calculator.update_config(config)

    def set_pushers(self, push_state: StatePusher, push_event: EventPusher) -> None:
        """Live updates for connected screens (Socket.IO)."""
        self._push_state = push_state
        self._push_event = push_event

    # ================== Session start ==================
    async def start_session(
        self,
        auth: AuthContext,
        booking: Mapping[str, Any],
        *,
        table: Optional[Mapping[str, Any]] = None,
        time_option: Any = None,
        frame_count: Optional[int] = None,
        pre_booked: Iterable[Mapping[str, Any]] = (),
        now: Optional[datetime] = None,
    ) -> SessionLifecycle:
        auth.require()
        session = Session.from_booking(booking, time_option=time_option, frame_count=frame_count, now=now)
        self._prune_closed()

        existing = self._sessions.get(session.session_id)
        if existing and existing.state != SessionState.CLOSED:
            return existing

        table_snapshot = dict(table) if table is not None else await self._fetch_table(auth, session)
        rate = self.calculator.build_rate(table_snapshot, session.table_id)
        catalog = await self._fetch_menu(auth)

        lifecycle = SessionLifecycle(
            session=session,
            rate=rate,
            auth=auth,
            gateway=self.gateway,
            time_manager=self.time_manager,
            reporter=self.reporter,
            calculator=self.calculator,
            reconciler=OrderReconciler(pre_booked),
            catalog=catalog,
        )
        self._sessions[session.session_id] = lifecycle
        lifecycle.start()
        await lifecycle.load_session_orders()
        return lifecycle

    async def _fetch_table(self, auth: AuthContext, session: Session) -> Dict[str, Any]:
        if session.table_id is None:
            return {}
        return await self.gateway.fetch_table(auth, session.table_id)

    async def _fetch_menu(self, auth: AuthContext) -> MenuCatalog:
        try:
            payload = await self.gateway.fetch_menu_items(auth)
        except LoungeError as exc:
            logger.warning("[SessionService] Menu unavailable, continuing with an empty menu: %s", exc)
            payload = []
        return MenuCatalog.from_payload(payload, self.config.default_categories)

    # ================== Queries ==================
    def get(self, session_id: str) -> SessionLifecycle:
        lifecycle = self._sessions.get(str(session_id))
        if lifecycle is None:
            raise SessionNotFoundError(str(session_id))
        return lifecycle

    def list_sessions(self) -> List[SessionLifecycle]:
        self._prune_closed()
        return list(self._sessions.values())

    def _prune_closed(self) -> None:
        """Forget CLOSED sessions whose screen was never torn down."""
        now = self.time_manager.clock()
        for session_id, lifecycle in list(self._sessions.items()):
            if lifecycle.closed_at is None:
                continue
            if (now - lifecycle.closed_at).total_seconds() >= self.closed_retention_seconds:
                del self._sessions[session_id]
                lifecycle.teardown()
                logger.info("[SessionService] Dropped closed session %s", session_id)

    def describe(self, session_id: str) -> Dict[str, Any]:
        """Session view; an unacknowledged expiry-path failure is surfaced here."""
        lifecycle = self.get(session_id)
        view = lifecycle.to_dict()
        remaining = view["remainingSeconds"]
        view["countdown"] = format_countdown(remaining)
        view["timerStatus"] = countdown_status(remaining, self.warning_seconds, self.critical_seconds)
        view["categories"] = lifecycle.catalog.categories()
        if view["pendingFailure"] is None:
            stored = self.reporter.repository.get_pending_failure(lifecycle.session_id)
            view["pendingFailure"] = stored.to_dict() if stored else None
        return view

    def list_views(self) -> List[Dict[str, Any]]:
        return [self.describe(lifecycle.session_id) for lifecycle in self.list_sessions()]

    def list_alerts(self) -> List[FinalizeOutcome]:
        return self.reporter.repository.list_alerts()

    def acknowledge_alert(self, outcome_id: str) -> bool:
        return self.reporter.repository.acknowledge(outcome_id)

    # ================== User actions ==================
    def add_item(self, session_id: str, menu_item_id: Any) -> Dict[str, Any]:
        self.get(session_id).add_item(menu_item_id)
        return self.describe(session_id)

    def remove_item(self, session_id: str, menu_item_id: Any) -> Dict[str, Any]:
        self.get(session_id).remove_item(menu_item_id)
        return self.describe(session_id)

    def set_frame_count(self, session_id: str, frame_count: int) -> Dict[str, Any]:
        self.get(session_id).set_frame_count(frame_count)
        return self.describe(session_id)

    async def request_bill(self, session_id: str) -> Optional[FinalizeResult]:
        lifecycle = self.get(session_id)
        result = await lifecycle.request_bill()
        await self._announce(lifecycle, result)
        return result

    def teardown(self, session_id: str) -> None:
        """Screen closed: cancel the countdown and forget the session object."""
        lifecycle = self._sessions.pop(str(session_id), None)
        if lifecycle is None:
            raise SessionNotFoundError(str(session_id))
        lifecycle.teardown()

    async def shutdown(self) -> None:
        self.event_bus.unregister_handler(EventType.SESSION_TICK, self._handle_tick_event)
        self.event_bus.unregister_handler(EventType.SESSION_EXPIRED, self._handle_expired_event)
        for task in list(self._expiry_tasks):
            task.cancel()
        await self.wait_for_expiries()
        for lifecycle in list(self._sessions.values()):
            lifecycle.teardown()
        self._sessions.clear()

    # ================== Clock / event handlers ==================
    def _on_tick(self, session_id: str, remaining_seconds: int) -> None:
        lifecycle = self._sessions.get(session_id)
        if lifecycle is not None:
            lifecycle.on_tick(remaining_seconds)

    async def handle_expiry(self, session_id: str) -> Optional[FinalizeResult]:
        lifecycle = self._sessions.get(session_id)
        if lifecycle is None or lifecycle.torn_down:
            logger.info("[SessionService] Expiry for %s ignored, session no longer live", session_id)
            return None
        result = await lifecycle.handle_expiry()
        await self._announce(lifecycle, result)
        return result

    async def _handle_tick_event(self, event: SessionEvent) -> None:
        if self._push_state is None or event.session_id not in self._sessions:
            return
        await self._push_state(self.describe(event.session_id))

    async def _handle_expired_event(self, event: SessionEvent) -> None:
        # Bill-Create can be slow; ticks and other tables must not wait on it.
        task = asyncio.create_task(self.handle_expiry(event.session_id))
        self._expiry_tasks.add(task)
        task.add_done_callback(self._expiry_done)

    def _expiry_done(self, task: asyncio.Task) -> None:
        self._expiry_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("[SessionService] Expiry finalize failed", exc_info=task.exception())

    async def wait_for_expiries(self) -> None:
        """Wait until every expiry finalize started so far has finished."""
        while True:
            pending = [task for task in self._expiry_tasks if not task.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    async def _announce(self, lifecycle: SessionLifecycle, result: Optional[FinalizeResult]) -> None:
        if self._push_event is None:
            return
        if result is not None:
            message = f"Bill {result.receipt.bill_number} generated ({result.trigger.value.lower()})"
            await self._push_event("bill_generated", lifecycle.session_id, message)
            if not result.session_stopped:
                await self._push_event("table_release_failed", lifecycle.session_id, "Table needs manual release")
        elif lifecycle.pending_failure is not None:
            await self._push_event("bill_failed", lifecycle.session_id, lifecycle.pending_failure.message)
        if self._push_state is not None and lifecycle.session_id in self._sessions:
            await self._push_state(self.describe(lifecycle.session_id))
