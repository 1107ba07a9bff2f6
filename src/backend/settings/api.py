from __future__ import annotations

import tempfile
from pathlib import Path

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..fs.uploads import MAX_AVATAR_BYTES, MAX_AVATAR_FILES, MAX_SPREADSHEET_BYTES
from .models import AppSettings
from .store import SettingsStore


class UploadsRootIn(BaseModel):
    uploads_root: str = Field(min_length=1)


class UploadLimitsOut(BaseModel):
    max_avatar_bytes: int
    max_avatar_files: int
    max_spreadsheet_bytes: int


class SettingsOut(BaseModel):
    uploads_root: str
    uploads_url_prefix: str
    default_page_limit: int
    max_page_limit: int
    staging_max_age_s: int
    limits: UploadLimitsOut
    # Paths are read once at startup
    restart_required: bool = False


def _public_settings(settings: AppSettings, *, restart_required: bool = False) -> SettingsOut:
    return SettingsOut(
        uploads_root=settings.uploads_root,
        uploads_url_prefix=settings.uploads_url_prefix,
        default_page_limit=settings.default_page_limit,
        max_page_limit=settings.max_page_limit,
        staging_max_age_s=settings.staging_max_age_s,
        limits=UploadLimitsOut(
            max_avatar_bytes=MAX_AVATAR_BYTES,
            max_avatar_files=MAX_AVATAR_FILES,
            max_spreadsheet_bytes=MAX_SPREADSHEET_BYTES,
        ),
        restart_required=restart_required,
    )


def resolve_uploads_root(uploads_root: str, *, repo_root: Path) -> Path:
    raw = uploads_root.strip()
    if not raw:
        raise ValueError("Uploads root must not be empty")

    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = (repo_root / p).resolve()
    return p


def _ensure_dir_writable(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ValueError(f"Cannot create directory: {exc}") from exc

    if not path.is_dir():
        raise ValueError("Uploads root is not a directory")

    try:
        with tempfile.NamedTemporaryFile(prefix=".userdir_write_test_", dir=str(path), delete=True):
            pass
    except PermissionError as exc:
        raise ValueError("Uploads root is not writable") from exc
    except OSError as exc:
        raise ValueError(f"Cannot write to uploads root: {exc}") from exc


def create_settings_router(*, store: SettingsStore, repo_root: Path) -> APIRouter:
    router = APIRouter(prefix="/api/settings", tags=["settings"])

    @router.get("", response_model=SettingsOut)
    def get_settings() -> SettingsOut:
        return _public_settings(store.load())

    @router.post("/uploads-root", response_model=SettingsOut)
    def set_uploads_root(body: UploadsRootIn) -> SettingsOut:
        try:
            root = resolve_uploads_root(body.uploads_root, repo_root=repo_root)
            _ensure_dir_writable(root)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        updated = store.set_value(key="uploads_root", value=str(root))
        return _public_settings(updated, restart_required=True)

    return router
