"""Error/telemetry reporter: logs finalize outcomes and keeps them in the ledger."""
from __future__ import annotations

import logging
from typing import Optional

from domain.outcome import FinalizeOutcome, OutcomeKind
from infrastructure.repository import OutcomeRepository

logger = logging.getLogger(__name__)


class TelemetryReporter:
    def __init__(self, repository: OutcomeRepository):
        self.repository = repository

    def _record(self, outcome: FinalizeOutcome) -> FinalizeOutcome:
        self.repository.add_outcome(outcome)
        return outcome

    def bill_created(self, session_id: str, trigger: str, bill_id: str, bill_number: str) -> FinalizeOutcome:
        logger.info("[Telemetry] Bill %s created for session %s (%s)", bill_number, session_id, trigger)
        return self._record(FinalizeOutcome(
            session_id=session_id,
            kind=OutcomeKind.BILL_CREATED,
            trigger=trigger,
            bill_id=bill_id,
            bill_number=bill_number,
        ))

    def bill_failed(self, session_id: str, trigger: str, message: str) -> FinalizeOutcome:
        logger.error("[Telemetry] Bill creation failed for session %s (%s): %s", session_id, trigger, message)
        return self._record(FinalizeOutcome(
            session_id=session_id,
            kind=OutcomeKind.BILL_FAILED,
            trigger=trigger,
            message=message,
        ))

    def stop_failed(
        self,
        session_id: str,
        trigger: str,
        message: str,
        bill_id: Optional[str] = None,
        bill_number: Optional[str] = None,
    ) -> FinalizeOutcome:
        logger.warning(
            "[Telemetry] Bill %s created but table release failed for session %s: %s",
            bill_number, session_id, message,
        )
        return self._record(FinalizeOutcome(
            session_id=session_id,
            kind=OutcomeKind.STOP_FAILED,
            trigger=trigger,
            message=message,
            bill_id=bill_id,
            bill_number=bill_number,
        ))

    def duplicate_suppressed(self, session_id: str, trigger: str, state: str) -> FinalizeOutcome:
        logger.warning(
            "[Telemetry] Duplicate finalize suppressed for session %s (%s arrived while %s)",
            session_id, trigger, state,
        )
        return self._record(FinalizeOutcome(
            session_id=session_id,
            kind=OutcomeKind.DUPLICATE_SUPPRESSED,
            trigger=trigger,
            message=f"finalize already in progress or done ({state})",
        ))
