"""
Maintenance operations: ID renumbering, staging sweeps and folder pruning.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import APIRouter  # pragma: no cover
    from sqlalchemy.orm import Session, sessionmaker
    from src.backend.fs.staging import StagingArea
    from src.backend.settings.models import AppSettings
    from src.backend.users.manager import UserRecordManager


def create_maintenance_router(
    *,
    sessions: "sessionmaker[Session]",
    manager: "UserRecordManager",
    staging: "StagingArea",
    settings: "AppSettings",
) -> "APIRouter":
    """
    Lazily import FastAPI router to keep non-web imports lightweight.
    """
    from .api import create_maintenance_router as _create_maintenance_router

    return _create_maintenance_router(sessions=sessions, manager=manager, staging=staging, settings=settings)


__all__ = ["create_maintenance_router"]
