"""Lifecycle tests: pricing per trigger, exactly-once finalize, rollback rules."""
import asyncio
import threading

import pytest

from application.order_reconciler import OrderReconciler
from application.session_lifecycle import FinalizeTrigger, SessionLifecycle, SessionState
from domain.cart import MenuCatalog
from domain.errors import (
    AuthenticationMissingError,
    BillCreationError,
    InvalidSessionStateError,
    MenuItemNotFoundError,
    NothingToBillError,
)
from domain.outcome import OutcomeKind
from domain.session import AuthContext, Session, TimeOption

from conftest import MENU


@pytest.fixture
def make_lifecycle(booking, clock, auth, gateway, time_manager, reporter, calculator):
    def _make(table=None, pre_booked=(), auth_context=None, start=True, **booking_overrides):
        payload = {**booking, **booking_overrides}
        session = Session.from_booking(payload, now=clock())
        lifecycle = SessionLifecycle(
            session=session,
            rate=calculator.build_rate(table or {"pricePerMin": 10}),
            auth=auth_context or auth,
            gateway=gateway,
            time_manager=time_manager,
            reporter=reporter,
            calculator=calculator,
            reconciler=OrderReconciler(pre_booked),
            catalog=MenuCatalog.from_payload(MENU),
        )
        if start:
            lifecycle.start()
        return lifecycle

    return _make


def _kinds(repository, session_id="42"):
    return [outcome.kind for outcome in repository.list_outcomes(session_id)]


class TestPricing:
    def test_preview_bills_the_booked_window(self, make_lifecycle, clock):
        lifecycle = make_lifecycle()
        clock.advance(600)
        lifecycle.on_tick(lifecycle.remaining_seconds)
        assert lifecycle.draft.table_charges == 600
        assert lifecycle.draft.billable_minutes == 60

    @pytest.mark.asyncio
    async def test_early_checkout_bills_elapsed_minutes(self, make_lifecycle, clock, gateway, time_manager):
        lifecycle = make_lifecycle()
        clock.advance(600)

        result = await lifecycle.request_bill()

        assert result.trigger == FinalizeTrigger.MANUAL
        assert result.bill.is_early_checkout is True
        assert result.bill.billed_duration_minutes == 10
        assert result.bill.draft.table_charges == 100
        assert lifecycle.state == SessionState.CLOSED
        assert gateway.stopped_sessions == ["42"]
        assert time_manager.get_timer_by_session("42") is None

    @pytest.mark.asyncio
    async def test_expiry_bills_the_booked_window(self, make_lifecycle, clock):
        lifecycle = make_lifecycle()
        clock.advance(3600)

        result = await lifecycle.handle_expiry()

        assert result.trigger == FinalizeTrigger.EXPIRY
        assert result.bill.is_early_checkout is False
        assert result.bill.billed_duration_minutes == 60
        assert result.bill.draft.table_charges == 600

    @pytest.mark.asyncio
    async def test_bill_carries_menu_and_frames(self, make_lifecycle, clock, gateway):
        lifecycle = make_lifecycle(
            table={"pricePerMin": 10, "pricePerFrame": 100},
            time_option="Select Frame",
            frame_count=2,
            pre_booked=[{"id": 2, "name": "Fries", "price": 90, "quantity": 1}],
        )
        lifecycle.add_item(1)
        lifecycle.set_frame_count(3)
        clock.advance(1200)

        result = await lifecycle.request_bill()

        bill = gateway.create_bill_calls[0]
        assert bill.frame_charges == 300
        assert bill.menu_items == [{"menuItemId": "2", "quantity": 1}, {"menuItemId": "1", "quantity": 1}]
        assert result.bill.draft.total_amount == 300 + 90 + 20
        assert bill.customer_name == "Asha"

    @pytest.mark.asyncio
    async def test_normalized_rate_is_sent(self, make_lifecycle, gateway, clock):
        lifecycle = make_lifecycle(table={"pricePerMin": 600})
        clock.advance(3600)
        await lifecycle.handle_expiry()
        assert gateway.create_bill_calls[0].price_per_minute == pytest.approx(10.0)


class TestExactlyOnce:
    @pytest.mark.asyncio
    async def test_manual_and_expiry_race_creates_one_bill(self, make_lifecycle, gateway, repository, clock):
        lifecycle = make_lifecycle()
        gateway.create_bill_delay = 0.05
        clock.advance(300)

        results = await asyncio.gather(lifecycle.request_bill(), lifecycle.handle_expiry())

        assert len(gateway.create_bill_calls) == 1
        assert len(gateway.bills) == 1
        assert sum(1 for result in results if result is not None) == 1
        assert OutcomeKind.DUPLICATE_SUPPRESSED in _kinds(repository)
        assert lifecycle.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_finalize_after_close_is_a_logged_no_op(self, make_lifecycle, gateway, repository, caplog):
        lifecycle = make_lifecycle()
        lifecycle.add_item(2)
        await lifecycle.request_bill()

        assert await lifecycle.request_bill() is None
        assert await lifecycle.handle_expiry() is None

        assert len(gateway.create_bill_calls) == 1
        assert _kinds(repository).count(OutcomeKind.DUPLICATE_SUPPRESSED) == 2
        assert "Duplicate finalize suppressed" in caplog.text

    def test_threads_racing_to_finalize(self, make_lifecycle, gateway):
        lifecycle = make_lifecycle()
        lifecycle.add_item(2)
        gateway.create_bill_delay = 0.05
        results = []

        def finalize(trigger):
            results.append(asyncio.run(lifecycle.finalize(trigger)))

        threads = [
            threading.Thread(target=finalize, args=(FinalizeTrigger.MANUAL,)),
            threading.Thread(target=finalize, args=(FinalizeTrigger.EXPIRY,)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(gateway.create_bill_calls) == 1
        assert sum(1 for result in results if result is not None) == 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_manual_failure_rolls_back_to_running(self, make_lifecycle, gateway, clock):
        lifecycle = make_lifecycle()
        gateway.fail_create_bill = 1
        clock.advance(600)

        with pytest.raises(BillCreationError):
            await lifecycle.request_bill()

        assert lifecycle.state == SessionState.RUNNING
        lifecycle.add_item(3)

        result = await lifecycle.request_bill()
        assert result is not None
        assert len(gateway.create_bill_calls) == 2
        assert len(gateway.bills) == 1
        assert lifecycle.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_expiry_failure_is_reported_then_retried_manually(self, make_lifecycle, gateway, repository, clock):
        lifecycle = make_lifecycle()
        gateway.fail_create_bill = 1
        clock.advance(3600)

        assert await lifecycle.handle_expiry() is None

        assert lifecycle.state == SessionState.FINALIZING
        assert lifecycle.pending_failure.kind == OutcomeKind.BILL_FAILED
        assert [alert.kind for alert in repository.list_alerts()] == [OutcomeKind.BILL_FAILED]
        with pytest.raises(InvalidSessionStateError):
            lifecycle.add_item(1)

        result = await lifecycle.request_bill()

        assert result.bill.billed_duration_minutes == 60
        assert lifecycle.state == SessionState.CLOSED
        assert lifecycle.pending_failure is None
        assert repository.list_alerts() == []
        assert len(gateway.bills) == 1

    @pytest.mark.asyncio
    async def test_second_expiry_attempt_is_suppressed_while_failure_pending(self, make_lifecycle, gateway, repository, clock):
        lifecycle = make_lifecycle()
        gateway.fail_create_bill = 1
        clock.advance(3600)
        await lifecycle.handle_expiry()

        assert await lifecycle.handle_expiry() is None
        assert len(gateway.create_bill_calls) == 1
        assert OutcomeKind.DUPLICATE_SUPPRESSED in _kinds(repository)

    @pytest.mark.asyncio
    async def test_stop_failure_still_closes(self, make_lifecycle, gateway, repository):
        lifecycle = make_lifecycle()
        lifecycle.add_item(2)
        gateway.fail_stop_session = True

        result = await lifecycle.request_bill()

        assert result.session_stopped is False
        assert lifecycle.state == SessionState.CLOSED
        assert [alert.kind for alert in repository.list_alerts()] == [OutcomeKind.STOP_FAILED]
        assert repository.list_alerts()[0].bill_number == result.receipt.bill_number

    @pytest.mark.asyncio
    async def test_cancelled_expiry_finalize_is_reported_and_retryable(self, make_lifecycle, gateway, repository, clock):
        lifecycle = make_lifecycle()
        gateway.create_bill_delay = 0.5
        clock.advance(3600)

        task = asyncio.create_task(lifecycle.handle_expiry())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert lifecycle.state == SessionState.FINALIZING
        assert lifecycle.pending_failure.kind == OutcomeKind.BILL_FAILED
        assert [alert.kind for alert in repository.list_alerts()] == [OutcomeKind.BILL_FAILED]
        assert gateway.bills == []

        gateway.create_bill_delay = 0
        result = await lifecycle.request_bill()

        assert result is not None
        assert lifecycle.state == SessionState.CLOSED
        assert len(gateway.bills) == 1

    @pytest.mark.asyncio
    async def test_cancelled_manual_finalize_returns_to_running(self, make_lifecycle, gateway, clock):
        lifecycle = make_lifecycle()
        gateway.create_bill_delay = 0.5
        clock.advance(600)

        task = asyncio.create_task(lifecycle.request_bill())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert lifecycle.state == SessionState.RUNNING
        assert lifecycle.pending_failure is None

        gateway.create_bill_delay = 0
        assert await lifecycle.request_bill() is not None
        assert len(gateway.bills) == 1

    @pytest.mark.asyncio
    async def test_manual_bill_with_no_charges_is_refused(self, make_lifecycle, gateway):
        lifecycle = make_lifecycle()

        with pytest.raises(NothingToBillError):
            await lifecycle.request_bill()

        assert lifecycle.state == SessionState.RUNNING
        assert gateway.create_bill_calls == []

        lifecycle.add_item(1)
        result = await lifecycle.request_bill()
        assert result.bill.draft.total_amount == 20

    @pytest.mark.asyncio
    async def test_expiry_bills_even_a_zero_total(self, make_lifecycle, gateway, clock):
        lifecycle = make_lifecycle(time_option="Select Frame", frame_count=0)
        clock.advance(3600)

        result = await lifecycle.handle_expiry()

        assert result.bill.draft.total_amount == 0
        assert len(gateway.bills) == 1

    @pytest.mark.asyncio
    async def test_missing_auth_fails_before_any_call(self, make_lifecycle, gateway):
        lifecycle = make_lifecycle(auth_context=AuthContext(None))

        with pytest.raises(AuthenticationMissingError):
            await lifecycle.request_bill()

        assert gateway.create_bill_calls == []
        assert lifecycle.state == SessionState.RUNNING


class TestCart:
    def test_cart_edits_reprice(self, make_lifecycle):
        lifecycle = make_lifecycle()
        lifecycle.add_item(2)
        lifecycle.add_item(2)
        assert lifecycle.draft.menu_charges == 180
        lifecycle.remove_item(2)
        assert lifecycle.draft.menu_charges == 90

    def test_unknown_menu_item(self, make_lifecycle):
        lifecycle = make_lifecycle()
        with pytest.raises(MenuItemNotFoundError):
            lifecycle.add_item(999)

    def test_cart_is_locked_before_start(self, make_lifecycle):
        lifecycle = make_lifecycle(start=False)
        assert lifecycle.state == SessionState.BOOKED
        with pytest.raises(InvalidSessionStateError):
            lifecycle.add_item(1)

    @pytest.mark.asyncio
    async def test_cart_is_locked_after_close(self, make_lifecycle):
        lifecycle = make_lifecycle()
        lifecycle.add_item(2)
        await lifecycle.request_bill()
        with pytest.raises(InvalidSessionStateError):
            lifecycle.add_item(1)
        with pytest.raises(InvalidSessionStateError):
            lifecycle.remove_item(1)
        with pytest.raises(InvalidSessionStateError):
            lifecycle.set_frame_count(2)

    def test_negative_frame_count(self, make_lifecycle):
        lifecycle = make_lifecycle(time_option="Select Frame", frame_count=1)
        with pytest.raises(ValueError):
            lifecycle.set_frame_count(-1)

    @pytest.mark.asyncio
    async def test_session_orders_are_fetched_once(self, make_lifecycle, gateway):
        gateway.set_session_orders("42", [{"id": 1, "name": "Masala Tea", "price": 20, "quantity": 3}])
        lifecycle = make_lifecycle(pre_booked=[{"id": 1, "name": "Masala Tea", "price": 20, "quantity": 2}])

        assert await lifecycle.load_session_orders() == 1
        assert await lifecycle.load_session_orders() == 0

        assert gateway.session_order_fetches == {"42": 1}
        assert lifecycle.reconciler.get("1").quantity == 5
        assert lifecycle.draft.menu_charges == 100


class TestTeardown:
    def test_teardown_cancels_the_countdown(self, make_lifecycle, time_manager):
        lifecycle = make_lifecycle()
        lifecycle.teardown()
        assert lifecycle.torn_down is True
        assert time_manager.get_timer_by_session("42") is None

    def test_view_reports_state(self, make_lifecycle):
        view = make_lifecycle(time_option=TimeOption.TIMER).to_dict()
        assert view["state"] == "RUNNING"
        assert view["timeOption"] == "Timer"
        assert view["bookedMinutes"] == 60
        assert view["remainingSeconds"] == 3600
        assert view["timerRunning"] is True

    def test_view_reports_stopped_timer_after_teardown(self, make_lifecycle):
        lifecycle = make_lifecycle()
        lifecycle.teardown()
        assert lifecycle.to_dict()["timerRunning"] is False
