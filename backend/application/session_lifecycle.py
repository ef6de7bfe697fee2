"""Session lifecycle - live pricing, cart edits and the exactly-once finalize."""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from application.order_reconciler import OrderReconciler
from application.pricing import PricingCalculator, billable_minutes
from application.session_timer import SessionTimer
from application.telemetry import TelemetryReporter
from application.time_manager import TimeManager
from domain.bill import BillDraft, BillReceipt, FinalizedBill, TableRate
from domain.cart import CartItem, MenuCatalog
from domain.errors import (
    AuthenticationMissingError,
    BillCreationError,
    InvalidSessionStateError,
    LoungeError,
    MenuItemNotFoundError,
    NothingToBillError,
)
from domain.outcome import FinalizeOutcome
from domain.session import AuthContext, Session
from infrastructure.gateway import LoungeGateway

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    BOOKED = "BOOKED"
    RUNNING = "RUNNING"
    FINALIZING = "FINALIZING"
    CLOSED = "CLOSED"


class FinalizeTrigger(str, Enum):
    MANUAL = "MANUAL"
    EXPIRY = "EXPIRY"


@dataclass(frozen=True)
class FinalizeResult:
    bill: FinalizedBill
    receipt: BillReceipt
    trigger: FinalizeTrigger
    session_stopped: bool


class SessionLifecycle:
    """
    State machine for one occupied table: BOOKED -> RUNNING -> FINALIZING -> CLOSED.

    Finalize can be triggered by the user (``request_bill``) or by the
    countdown (``handle_expiry``). Entry to FINALIZING goes through a single
    non-blocking lock acquire, so whichever trigger arrives second is a
    logged no-op and Bill-Create is called once per session.

    Rollback rules:
    - manual trigger with a zero total -> refused, stays RUNNING
    - manual trigger, Bill-Create fails -> back to RUNNING, error raised
    - expiry trigger, Bill-Create fails -> stays FINALIZING with a pending
      failure recorded; the next manual finalize retries
    - Session-Stop fails after the bill exists -> reported, still CLOSED
    """

    def __init__(
        self,
        session: Session,
        rate: TableRate,
        auth: AuthContext,
        gateway: LoungeGateway,
        time_manager: TimeManager,
        reporter: TelemetryReporter,
        calculator: Optional[PricingCalculator] = None,
        reconciler: Optional[OrderReconciler] = None,
        catalog: Optional[MenuCatalog] = None,
    ):
        self.session = session
        self.rate = rate
        self.auth = auth
        self.gateway = gateway
        self.time_manager = time_manager
        self.reporter = reporter
        self.calculator = calculator or PricingCalculator()
        self.reconciler = reconciler or OrderReconciler()
        self.catalog = catalog or MenuCatalog()

        self.state = SessionState.BOOKED
        self.timer: Optional[SessionTimer] = None
        self.result: Optional[FinalizeResult] = None
        self.closed_at: Optional[datetime] = None
        self._draft: Optional[BillDraft] = None
        self._last_remaining: int = 0
        self._finalize_guard = threading.Lock()
        self._session_orders_fetched = False
        self._expiry_failure: Optional[FinalizeOutcome] = None
        self._torn_down = False

    @property
    def session_id(self) -> str:
        return self.session.session_id

    # ================== Booked -> Running ==================
    def start(self) -> None:
        if self.state != SessionState.BOOKED:
            raise InvalidSessionStateError(self.session_id, self.state.value, "start")
        self.timer = self.time_manager.create_countdown(
            self.session_id,
            end_instant=self.session.end_instant,
            start_time=self.session.start_time,
            booked_duration_seconds=self.session.booked_duration_seconds,
        )
        self.state = SessionState.RUNNING
        self.recompute()
        logger.info(
            "[SessionLifecycle] Session %s running, %ss remaining of %ss booked",
            self.session_id, self.remaining_seconds, self.session.booked_duration_seconds,
        )

    async def load_session_orders(self) -> int:
        """Merge orders placed for this session through other channels. Fetched once."""
        if self._session_orders_fetched:
            return 0
        self._session_orders_fetched = True
        try:
            payload = await self.gateway.fetch_session_orders(self.auth, self.session_id)
        except LoungeError as exc:
            logger.warning("[SessionLifecycle] Could not load existing orders for %s: %s", self.session_id, exc)
            return 0
        merged = self.reconciler.merge_session_orders(payload.get("consolidatedItems") or [])
        if merged:
            self.recompute()
        return merged

    # ================== Running -> Running ==================
    @property
    def remaining_seconds(self) -> int:
        if self.timer and self.timer.is_valid:
            self._last_remaining = self.timer.remaining_seconds
        return self._last_remaining

    @property
    def draft(self) -> BillDraft:
        if self._draft is None:
            self.recompute()
        return self._draft

    def recompute(self) -> BillDraft:
        """Preview always prices the whole booked window."""
        minutes = billable_minutes(self.session.booked_duration_seconds, 0, early_checkout=False)
        self._draft = self.calculator.compute(
            self.rate,
            self.session.time_option,
            minutes,
            self.reconciler.items(),
            self.session.frame_count,
        )
        return self._draft

    def on_tick(self, remaining_seconds: int) -> None:
        self._last_remaining = remaining_seconds
        if self.state == SessionState.RUNNING:
            self.recompute()

    def add_item(self, menu_item_id: Any) -> CartItem:
        self._require_running("add items")
        menu_item = self.catalog.get(menu_item_id)
        if menu_item is None:
            raise MenuItemNotFoundError(str(menu_item_id))
        item = self.reconciler.add_item(menu_item)
        self.recompute()
        return item

    def remove_item(self, menu_item_id: Any) -> Optional[CartItem]:
        self._require_running("remove items")
        item = self.reconciler.remove_item(menu_item_id)
        self.recompute()
        return item

    def set_frame_count(self, frame_count: int) -> BillDraft:
        self._require_running("change frames")
        if frame_count < 0:
            raise ValueError("frame count cannot be negative")
        self.session.frame_count = frame_count
        return self.recompute()

    # ================== Running -> Finalizing -> Closed ==================
    async def request_bill(self) -> Optional[FinalizeResult]:
        return await self.finalize(FinalizeTrigger.MANUAL)

    async def handle_expiry(self) -> Optional[FinalizeResult]:
        return await self.finalize(FinalizeTrigger.EXPIRY)

    async def finalize(self, trigger: FinalizeTrigger) -> Optional[FinalizeResult]:
        """
        Produce the session's bill. Returns None when another finalize
        already owns the session (suppressed duplicate) or when an
        expiry-triggered attempt failed and was reported.
        """
        if trigger == FinalizeTrigger.MANUAL and self._expiry_failure is not None:
            self._resume_after_expiry_failure()
        if trigger == FinalizeTrigger.MANUAL and self.state == SessionState.RUNNING:
            self._require_charges()

        if not self._finalize_guard.acquire(blocking=False):
            self.reporter.duplicate_suppressed(self.session_id, trigger.value, self.state.value)
            return None
        if self.state != SessionState.RUNNING:
            self._finalize_guard.release()
            raise InvalidSessionStateError(self.session_id, self.state.value, "finalize")
        self.state = SessionState.FINALIZING

        try:
            self.auth.require()
            bill = self.build_finalized_bill(self.remaining_seconds)
            receipt = await self.gateway.create_bill(self.auth, bill)
        except asyncio.CancelledError:
            self._handle_bill_cancelled(trigger)
            raise
        except Exception as exc:
            self._handle_bill_failure(trigger, exc)
            return None

        if self.timer:
            self.timer.cancel()
        self.reporter.bill_created(self.session_id, trigger.value, receipt.bill_id, receipt.bill_number)

        stopped = True
        try:
            await self.gateway.stop_session(self.auth, self.session_id)
        except LoungeError as exc:
            stopped = False
            self.reporter.stop_failed(
                self.session_id, trigger.value, str(exc), receipt.bill_id, receipt.bill_number,
            )
        except asyncio.CancelledError:
            # The bill exists; close anyway and leave the table for manual release.
            self.reporter.stop_failed(
                self.session_id, trigger.value, "session stop cancelled", receipt.bill_id, receipt.bill_number,
            )
            self._close(bill, receipt, trigger, stopped=False)
            raise

        return self._close(bill, receipt, trigger, stopped)

    def _close(self, bill: FinalizedBill, receipt: BillReceipt, trigger: FinalizeTrigger, stopped: bool) -> FinalizeResult:
        self.state = SessionState.CLOSED
        self.closed_at = self.time_manager.clock()
        self.result = FinalizeResult(bill=bill, receipt=receipt, trigger=trigger, session_stopped=stopped)
        logger.info(
            "[SessionLifecycle] Session %s closed with bill %s (%s, early=%s, %s min)",
            self.session_id, receipt.bill_number, trigger.value,
            bill.is_early_checkout, bill.billed_duration_minutes,
        )
        return self.result

    def build_finalized_bill(self, remaining_seconds: int) -> FinalizedBill:
        """Early checkout bills elapsed minutes; at expiry remaining is 0 and the booked window is billed."""
        early = remaining_seconds > 0
        minutes = billable_minutes(
            self.session.booked_duration_seconds, remaining_seconds, early_checkout=early,
        )
        draft = self.calculator.compute(
            self.rate,
            self.session.time_option,
            minutes,
            self.reconciler.items(),
            self.session.frame_count,
        )
        return FinalizedBill(
            session_id=self.session_id,
            table_id=self.session.table_id,
            customer_name=self.session.customer_name,
            customer_phone=self.session.customer_phone,
            billed_duration_minutes=minutes,
            is_early_checkout=early,
            menu_items=self.reconciler.quantities(),
            frame_charges=self.calculator.frame_charges(
                self.rate, self.session.time_option, self.session.frame_count,
            ),
            price_per_minute=self.rate.price_per_minute,
            draft=draft,
        )

    def _handle_bill_failure(self, trigger: FinalizeTrigger, exc: Exception) -> None:
        if trigger == FinalizeTrigger.MANUAL:
            self.state = SessionState.RUNNING
            self._finalize_guard.release()
            logger.warning("[SessionLifecycle] Manual finalize for %s failed, back to RUNNING: %s", self.session_id, exc)
            if isinstance(exc, AuthenticationMissingError):
                raise exc
            raise BillCreationError(self.session_id, str(exc)) from exc
        # No user on the expiry path: keep the guard, surface on next screen load.
        self._expiry_failure = self.reporter.bill_failed(self.session_id, trigger.value, str(exc))

    def _handle_bill_cancelled(self, trigger: FinalizeTrigger) -> None:
        """Whoever was awaiting Bill-Create went away; leave the session retryable."""
        if trigger == FinalizeTrigger.MANUAL:
            self.state = SessionState.RUNNING
            self._finalize_guard.release()
            logger.warning("[SessionLifecycle] Manual finalize for %s cancelled, back to RUNNING", self.session_id)
            return
        self._expiry_failure = self.reporter.bill_failed(self.session_id, trigger.value, "bill creation cancelled")

    def _resume_after_expiry_failure(self) -> None:
        failure, self._expiry_failure = self._expiry_failure, None
        if failure is None:
            return
        self.reporter.repository.acknowledge(failure.outcome_id)
        self.state = SessionState.RUNNING
        self._finalize_guard.release()
        logger.info("[SessionLifecycle] Retrying finalize for %s after expiry failure", self.session_id)

    # ================== Teardown ==================
    def teardown(self) -> None:
        """Cancel the countdown unconditionally; in-flight calls are not awaited."""
        self._torn_down = True
        if self.timer:
            self.timer.cancel()

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    @property
    def pending_failure(self) -> Optional[FinalizeOutcome]:
        return self._expiry_failure

    # Helpers --------------------------------------------------------------
    def _require_charges(self) -> None:
        self.auth.require()
        if self.build_finalized_bill(self.remaining_seconds).draft.total_amount <= 0:
            raise NothingToBillError(self.session_id)

    def _require_running(self, operation: str) -> None:
        if self.state != SessionState.RUNNING:
            raise InvalidSessionStateError(self.session_id, self.state.value, operation)

    def to_dict(self) -> Dict[str, Any]:
        draft = self.draft
        failure = self._expiry_failure
        return {
            "sessionId": self.session_id,
            "tableId": self.session.table_id,
            "gameType": self.session.game_type,
            "state": self.state.value,
            "timeOption": self.session.time_option.value,
            "frameCount": self.session.frame_count,
            "bookedMinutes": self.session.booked_minutes,
            "remainingSeconds": self.remaining_seconds,
            "timerRunning": bool(self.timer and self.timer.is_running),
            "pricePerMinute": self.rate.price_per_minute,
            "items": [item.to_dict() for item in self.reconciler.items()],
            "bill": draft.to_dict(),
            "pendingFailure": failure.to_dict() if failure else None,
            "billNumber": self.result.receipt.bill_number if self.result else None,
        }
