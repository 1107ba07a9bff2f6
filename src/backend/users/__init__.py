"""
User directory: records, identifier allocation and the record lifecycle.

Provides:
- UserRecord: SQLAlchemy model for one user row
- IdentifierAllocator: Smallest-unused sequential ID allocation
- UserRecordManager: Create / update / patch / delete with avatar files
- renumber_all: Compact sequential IDs to 1..N
- Users API router
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .allocator import IdentifierAllocator, smallest_unused_id
from .manager import BulkFailure, BulkResult, UserRecordManager
from .models import UserFields, UserPage, UserQuery, UserRecord
from .renumber import renumber_all

if TYPE_CHECKING:
    from fastapi import APIRouter  # pragma: no cover
    from src.backend.settings.models import AppSettings


def create_users_router(
    *,
    manager: UserRecordManager,
    settings: "AppSettings",
    excel_dir: Path,
) -> "APIRouter":
    """
    Lazily import FastAPI router to keep non-web imports lightweight.
    """
    from .api import create_users_router as _create_users_router

    return _create_users_router(manager=manager, settings=settings, excel_dir=excel_dir)


__all__ = [
    "IdentifierAllocator",
    "smallest_unused_id",
    "BulkFailure",
    "BulkResult",
    "UserRecordManager",
    "UserFields",
    "UserPage",
    "UserQuery",
    "UserRecord",
    "renumber_all",
    "create_users_router",
]
