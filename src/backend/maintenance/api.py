"""
API routes for maintenance operations.

None of these run automatically. Renumbering must not overlap with creates
or deletes; callers schedule it for a quiet moment.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, sessionmaker

from src.backend.errors import UserError
from src.backend.fs.staging import StagingArea
from src.backend.settings.models import AppSettings
from src.backend.users.manager import UserRecordManager
from src.backend.users.renumber import renumber_all

logger = logging.getLogger(__name__)


class RenumberOut(BaseModel):
    """Response for renumbering sequential IDs."""
    success: bool = True
    renumbered: int
    mapping: dict[str, int]


class SweepStagingIn(BaseModel):
    """Request body for sweeping staging folders."""
    max_age_s: Optional[int] = Field(default=None, ge=0)


class SweepStagingOut(BaseModel):
    """Response for sweeping staging folders."""
    success: bool = True
    removed: list[str]


class PruneOut(BaseModel):
    """Response for pruning one user's folder."""
    success: bool = True
    key: str
    removed: list[str]


def create_maintenance_router(
    *,
    sessions: sessionmaker[Session],
    manager: UserRecordManager,
    staging: StagingArea,
    settings: AppSettings,
) -> APIRouter:
    """
    Create the maintenance API router.

    Args:
        sessions: Session factory for the user table.
        manager: The user record manager (owns the media store).
        staging: Staging area for pre-creation uploads.
        settings: Application settings (default staging age).

    Returns:
        FastAPI router with maintenance endpoints.
    """
    router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])

    @router.post("/renumber", response_model=RenumberOut)
    def renumber() -> RenumberOut:
        """
        Compact sequential IDs to 1..N, moving media folders along.

        A failure part-way leaves the users processed so far renumbered;
        running again finishes the job.
        """
        try:
            mapping = renumber_all(sessions, manager.media)
        except UserError as exc:
            logger.error("Renumbering stopped: %s", exc)
            raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

        return RenumberOut(
            renumbered=len(mapping),
            mapping={str(old): new for old, new in mapping.items()},
        )

    @router.post("/sweep-staging", response_model=SweepStagingOut)
    def sweep_staging(body: Optional[SweepStagingIn] = None) -> SweepStagingOut:
        max_age_s = settings.staging_max_age_s
        if body is not None and body.max_age_s is not None:
            max_age_s = body.max_age_s
        return SweepStagingOut(removed=staging.sweep(max_age_s))

    @router.post("/users/{key}/prune", response_model=PruneOut)
    def prune_user_folder(key: str) -> PruneOut:
        """Delete files in the user's folder that no avatar slot references."""
        try:
            removed = manager.prune_avatars(key)
        except UserError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
        return PruneOut(key=key, removed=removed)

    return router
