"""Abstract repository interface for the finalize outcome ledger."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from domain.outcome import FinalizeOutcome, OutcomeKind


class OutcomeRepository(ABC):
    """Unified gateway so memory store / SQLite share the same API."""

    @abstractmethod
    def add_outcome(self, outcome: FinalizeOutcome) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_outcomes(self, session_id: Optional[str] = None) -> Iterable[FinalizeOutcome]:
        raise NotImplementedError

    @abstractmethod
    def acknowledge(self, outcome_id: str) -> bool:
        raise NotImplementedError

    def list_alerts(self) -> List[FinalizeOutcome]:
        """Unacknowledged outcomes that need attention, oldest first."""
        return [outcome for outcome in self.list_outcomes() if outcome.needs_attention]

    def get_pending_failure(self, session_id: str) -> Optional[FinalizeOutcome]:
        """Latest unacknowledged bill failure for the session, if any."""
        pending = [
            outcome
            for outcome in self.list_outcomes(session_id)
            if outcome.kind == OutcomeKind.BILL_FAILED and not outcome.acknowledged
        ]
        return pending[-1] if pending else None
