from __future__ import annotations

import logging
from pathlib import Path, PurePath
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException

from .db import create_db_engine, init_db, resolve_database_url, session_factory
from .fs import MediaStore, StagingArea
from .fs.staging import STAGING_FOLDER_PREFIX
from .maintenance.api import create_maintenance_router
from .settings.api import create_settings_router, resolve_uploads_root
from .settings.store import SettingsStore
from .users.api import create_users_router
from .users.manager import UserRecordManager

logger = logging.getLogger(__name__)

EXCEL_FOLDER = "excel"


class UploadsStaticFiles(StaticFiles):
    """Serves the uploads root except staging folders and in-flight spreadsheets."""

    async def get_response(self, path: str, scope):
        top = PurePath(path).parts[:1]
        if top and (top[0] == EXCEL_FOLDER or top[0].startswith(STAGING_FOLDER_PREFIX)):
            raise HTTPException(status_code=404)
        return await super().get_response(path, scope)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def create_app(data_dir: Optional[Path] = None) -> FastAPI:
    repo_root = _repo_root()
    data_dir = Path(data_dir) if data_dir is not None else repo_root / "data"
    config_path = data_dir / "config.json"

    store = SettingsStore(path=config_path)
    settings = store.load()

    uploads_root = resolve_uploads_root(settings.uploads_root, repo_root=repo_root)
    uploads_root.mkdir(parents=True, exist_ok=True)
    excel_dir = uploads_root / EXCEL_FOLDER

    engine = create_db_engine(resolve_database_url(settings.database_url, repo_root=repo_root))
    init_db(engine)
    sessions = session_factory(engine)

    media = MediaStore(uploads_root, url_prefix=settings.uploads_url_prefix)
    staging = StagingArea(media)
    manager = UserRecordManager(sessions=sessions, media=media, staging=staging)
    logger.info("Serving uploads from %s", uploads_root)

    app = FastAPI(title="user-directory")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(create_users_router(manager=manager, settings=settings, excel_dir=excel_dir))
    app.include_router(
        create_maintenance_router(sessions=sessions, manager=manager, staging=staging, settings=settings)
    )
    app.include_router(create_settings_router(store=store, repo_root=repo_root))

    app.state.settings_store = store
    app.state.settings = settings
    app.state.repo_root = repo_root
    app.state.engine = engine
    app.state.sessions = sessions
    app.state.media = media
    app.state.staging = staging
    app.state.manager = manager

    app.mount(settings.uploads_url_prefix, UploadsStaticFiles(directory=str(uploads_root)), name="uploads")
    return app


app = create_app()
