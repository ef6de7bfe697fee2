"""In-memory outcome ledger intended for the prototype stage."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from domain.outcome import FinalizeOutcome
from .repository import OutcomeRepository


class InMemoryOutcomeRepository(OutcomeRepository):
    def __init__(self):
        self._outcomes: Dict[str, FinalizeOutcome] = {}
        self._session_history: Dict[str, List[str]] = {}

    def add_outcome(self, outcome: FinalizeOutcome) -> None:
        self._outcomes[outcome.outcome_id] = outcome
        self._session_history.setdefault(outcome.session_id, []).append(outcome.outcome_id)

    def list_outcomes(self, session_id: Optional[str] = None) -> Iterable[FinalizeOutcome]:
        if session_id is None:
            return list(self._outcomes.values())
        return [self._outcomes[oid] for oid in self._session_history.get(session_id, [])]

    def acknowledge(self, outcome_id: str) -> bool:
        outcome = self._outcomes.get(outcome_id)
        if not outcome:
            return False
        outcome.acknowledged = True
        return True
