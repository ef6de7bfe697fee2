"""SQLModel ORM tables mirroring the domain entities."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field


class FinalizeOutcomeModel(SQLModel, table=True):
    outcome_id: str = Field(primary_key=True)
    session_id: str = Field(index=True)
    kind: str
    trigger: str
    message: str = ""
    bill_id: Optional[str] = Field(default=None)
    bill_number: Optional[str] = Field(default=None)
    acknowledged: bool = Field(default=False)
    created_at: datetime
