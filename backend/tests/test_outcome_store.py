import pytest

from domain.outcome import FinalizeOutcome, OutcomeKind
from infrastructure.memory_store import InMemoryOutcomeRepository
from infrastructure.sqlite_repo import SQLiteOutcomeRepository


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryOutcomeRepository()
    return SQLiteOutcomeRepository(tmp_path / "outcomes.db")


def test_alerts_cover_failures_only(store):
    store.add_outcome(FinalizeOutcome(session_id="42", kind=OutcomeKind.BILL_CREATED, trigger="MANUAL"))
    store.add_outcome(FinalizeOutcome(session_id="42", kind=OutcomeKind.DUPLICATE_SUPPRESSED, trigger="EXPIRY"))
    store.add_outcome(FinalizeOutcome(session_id="43", kind=OutcomeKind.STOP_FAILED, trigger="EXPIRY", bill_number="B-1"))

    alerts = store.list_alerts()

    assert [(alert.session_id, alert.kind) for alert in alerts] == [("43", OutcomeKind.STOP_FAILED)]
    assert alerts[0].bill_number == "B-1"


def test_pending_failure_until_acknowledged(store):
    failure = FinalizeOutcome(session_id="42", kind=OutcomeKind.BILL_FAILED, trigger="EXPIRY", message="503")
    store.add_outcome(failure)

    pending = store.get_pending_failure("42")
    assert pending.outcome_id == failure.outcome_id
    assert pending.created_at.tzinfo is not None
    assert store.get_pending_failure("43") is None

    assert store.acknowledge(failure.outcome_id) is True
    assert store.get_pending_failure("42") is None
    assert store.list_alerts() == []


def test_acknowledge_unknown_outcome(store):
    assert store.acknowledge("missing") is False
