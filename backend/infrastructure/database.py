"""SQLModel database configuration."""
from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "lounge_sessions.db"


def create_db_engine(db_path: Path | str | None = None) -> Engine:
    path = Path(db_path) if db_path else DEFAULT_DB_PATH
    return create_engine(
        f"sqlite:///{path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


def init_db(engine: Engine) -> None:
    """Create tables if they do not exist."""
    from . import models  # noqa: F401  # ensure SQLModel metadata is loaded

    SQLModel.metadata.create_all(engine)


def SessionLocal(engine: Engine) -> Session:
    return Session(engine)
