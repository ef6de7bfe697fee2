"""Finalize outcomes kept for audit and for surfacing failures later."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4


class OutcomeKind(str, Enum):
    BILL_CREATED = "BILL_CREATED"
    BILL_FAILED = "BILL_FAILED"
    STOP_FAILED = "STOP_FAILED"
    DUPLICATE_SUPPRESSED = "DUPLICATE_SUPPRESSED"


# Kinds that need someone to look at them
ALERT_KINDS = (OutcomeKind.BILL_FAILED, OutcomeKind.STOP_FAILED)


@dataclass
class FinalizeOutcome:
    session_id: str
    kind: OutcomeKind
    trigger: str
    message: str = ""
    bill_id: Optional[str] = None
    bill_number: Optional[str] = None
    acknowledged: bool = False
    outcome_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def needs_attention(self) -> bool:
        return self.kind in ALERT_KINDS and not self.acknowledged

    def to_dict(self) -> dict:
        return {
            "outcomeId": self.outcome_id,
            "sessionId": self.session_id,
            "kind": self.kind.value,
            "trigger": self.trigger,
            "message": self.message,
            "billId": self.bill_id,
            "billNumber": self.bill_number,
            "acknowledged": self.acknowledged,
            "createdAt": self.created_at.isoformat(),
        }
