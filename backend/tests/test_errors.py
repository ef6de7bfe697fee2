from domain.errors import (
    CollaboratorError,
    ErrorCode,
    InvalidSessionStateError,
    NothingToBillError,
    SessionNotFoundError,
)


def test_errors_carry_message_in_args():
    exc = CollaboratorError("create bill", "timeout", 504)
    assert exc.args == ("create bill failed: timeout",)
    assert exc.code == ErrorCode.COLLABORATOR_FAILED
    assert str(exc) == "COLLABORATOR_FAILED: create bill failed: timeout"
    assert exc.status_code == 504


def test_errors_are_hashable_by_identity():
    first = SessionNotFoundError("42")
    second = SessionNotFoundError("42")
    assert len({first, second}) == 2
    assert first != second
    assert hash(first) == hash(first)


def test_state_and_billing_errors():
    exc = InvalidSessionStateError("42", "CLOSED", "add items")
    assert exc.message == "Cannot add items while session is CLOSED"
    assert NothingToBillError("42").code == ErrorCode.NOTHING_TO_BILL
