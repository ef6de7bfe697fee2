"""Domain error codes for the session billing engine."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    AUTH_MISSING = "AUTH_MISSING"
    COLLABORATOR_FAILED = "COLLABORATOR_FAILED"
    BILL_CREATION_FAILED = "BILL_CREATION_FAILED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    MENU_ITEM_NOT_FOUND = "MENU_ITEM_NOT_FOUND"
    INVALID_SESSION_STATE = "INVALID_SESSION_STATE"
    NOTHING_TO_BILL = "NOTHING_TO_BILL"


@dataclass(eq=False)
class LoungeError(Exception):
    """Base error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class AuthenticationMissingError(LoungeError):
    """Raised before any network call when no auth token is available."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.AUTH_MISSING,
            message="Authentication required. Please login again.",
        )


class CollaboratorError(LoungeError):
    """A collaborator call failed to complete (transport or non-2xx)."""

    def __init__(self, operation: str, detail: str, status_code: Optional[int] = None) -> None:
        super().__init__(
            code=ErrorCode.COLLABORATOR_FAILED,
            message=f"{operation} failed: {detail}",
        )
        self.operation = operation
        self.status_code = status_code


class BillCreationError(LoungeError):
    """Manual finalize could not create the bill; the session is back in Running."""

    def __init__(self, session_id: str, detail: str) -> None:
        super().__init__(
            code=ErrorCode.BILL_CREATION_FAILED,
            message=f"Failed to generate bill: {detail}",
        )
        self.session_id = session_id


class SessionNotFoundError(LoungeError):
    def __init__(self, session_id: str) -> None:
        super().__init__(
            code=ErrorCode.SESSION_NOT_FOUND,
            message="Session not found",
        )
        self.session_id = session_id


class MenuItemNotFoundError(LoungeError):
    def __init__(self, menu_item_id: str) -> None:
        super().__init__(
            code=ErrorCode.MENU_ITEM_NOT_FOUND,
            message=f"Menu item {menu_item_id} not found",
        )
        self.menu_item_id = menu_item_id


class InvalidSessionStateError(LoungeError):
    """Raised for operations that are not allowed in the current lifecycle state."""

    def __init__(self, session_id: str, state: str, operation: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_SESSION_STATE,
            message=f"Cannot {operation} while session is {state}",
        )
        self.session_id = session_id
        self.state = state


class NothingToBillError(LoungeError):
    """A manual bill was requested while the session has no charges yet."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            code=ErrorCode.NOTHING_TO_BILL,
            message="No charges to bill yet",
        )
        self.session_id = session_id
