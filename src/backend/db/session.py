"""
SQLAlchemy engine and session factory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .base import Base


def create_db_engine(url: str = "sqlite:///data/users.db", *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    SQLite engines may be shared across FastAPI's worker threads and run in
    WAL mode. An in-memory URL keeps a single connection so every session
    sees the same database.
    """
    if not url.startswith("sqlite"):
        return _sa_create_engine(url, echo=echo, **kwargs)

    kwargs.setdefault("connect_args", {"check_same_thread": False})
    in_memory = url in ("sqlite://", "sqlite:///:memory:")
    if in_memory:
        kwargs.setdefault("poolclass", StaticPool)

    engine = _sa_create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
        cursor = dbapi_connection.cursor()
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a ``sessionmaker`` bound to *engine*.

    ``expire_on_commit=False`` keeps committed rows readable after the
    session closes, so they can be shaped into responses.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    # Import models so their tables are registered on Base.metadata
    from ..users import models  # noqa: F401

    Base.metadata.create_all(engine)


SQLITE_FILE_PREFIX = "sqlite:///"


def resolve_database_url(url: str, *, repo_root: Path) -> str:
    """Anchor a relative SQLite file path at *repo_root* and create its folder."""
    if not url.startswith(SQLITE_FILE_PREFIX):
        return url
    raw = url[len(SQLITE_FILE_PREFIX):]
    if not raw or raw == ":memory:":
        return url

    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = (repo_root / path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"{SQLITE_FILE_PREFIX}{path}"
