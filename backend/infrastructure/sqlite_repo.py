"""SQLite-backed outcome ledger."""
from __future__ import annotations

from datetime import timezone
from pathlib import Path
from typing import Iterable, Optional

from sqlmodel import select

from domain.outcome import FinalizeOutcome, OutcomeKind
from .repository import OutcomeRepository
from .database import SessionLocal, create_db_engine, init_db
from .models import FinalizeOutcomeModel


class SQLiteOutcomeRepository(OutcomeRepository):
    def __init__(self, db_path: Path | str | None = None):
        self.engine = create_db_engine(db_path)
        init_db(self.engine)

    def add_outcome(self, outcome: FinalizeOutcome) -> None:
        with SessionLocal(self.engine) as session, session.begin():
            session.add(self._model_from_outcome(outcome))

    def list_outcomes(self, session_id: Optional[str] = None) -> Iterable[FinalizeOutcome]:
        with SessionLocal(self.engine) as session:
            statement = select(FinalizeOutcomeModel)
            if session_id is not None:
                statement = statement.where(FinalizeOutcomeModel.session_id == session_id)
            statement = statement.order_by(FinalizeOutcomeModel.created_at)
            return [self._outcome_from_model(model) for model in session.exec(statement).all()]

    def acknowledge(self, outcome_id: str) -> bool:
        with SessionLocal(self.engine) as session, session.begin():
            model = session.get(FinalizeOutcomeModel, outcome_id)
            if not model:
                return False
            model.acknowledged = True
            session.add(model)
            return True

    # Mapping ----------------------------------------------------------------
    @staticmethod
    def _model_from_outcome(outcome: FinalizeOutcome) -> FinalizeOutcomeModel:
        return FinalizeOutcomeModel(
            outcome_id=outcome.outcome_id,
            session_id=outcome.session_id,
            kind=outcome.kind.value,
            trigger=outcome.trigger,
            message=outcome.message,
            bill_id=outcome.bill_id,
            bill_number=outcome.bill_number,
            acknowledged=outcome.acknowledged,
            created_at=outcome.created_at,
        )

    @staticmethod
    def _outcome_from_model(model: FinalizeOutcomeModel) -> FinalizeOutcome:
        created_at = model.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return FinalizeOutcome(
            outcome_id=model.outcome_id,
            session_id=model.session_id,
            kind=OutcomeKind(model.kind),
            trigger=model.trigger,
            message=model.message,
            bill_id=model.bill_id,
            bill_number=model.bill_number,
            acknowledged=model.acknowledged,
            created_at=created_at,
        )
