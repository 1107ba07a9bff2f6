"""
Database access: declarative base, engine and session factory.
"""

from .base import Base, TimestampMixin
from .session import create_db_engine, init_db, resolve_database_url, session_factory

__all__ = [
    "Base",
    "TimestampMixin",
    "create_db_engine",
    "init_db",
    "resolve_database_url",
    "session_factory",
]
