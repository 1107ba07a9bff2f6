#!/usr/bin/env python3
"""
Compact user sequential IDs to 1..N and move their avatar folders along.

Run while the server is stopped (or otherwise idle): renumbering must not
overlap with creates or deletes.

Settings come from data/config.json (same file the server uses). An
interrupted run leaves every user it finished renumbered; running again
completes the job.

Example:
  python3 -m scripts.renumber_users
  python3 -m scripts.renumber_users --config data/config.json --dry-run
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from src.backend.db import create_db_engine, init_db, resolve_database_url, session_factory
from src.backend.errors import UserError
from src.backend.fs import MediaStore
from src.backend.settings.api import resolve_uploads_root
from src.backend.settings.store import SettingsStore
from src.backend.users.allocator import smallest_unused_id
from src.backend.users.renumber import renumber_all
from src.backend.users.repository import all_users_by_sequential_id

logger = logging.getLogger("renumber_users")

REPO_ROOT = Path(__file__).resolve().parents[1]


def plan(sessions) -> dict[int, int]:
    """The mapping a real run would apply, without touching anything."""
    with sessions() as session:
        users = all_users_by_sequential_id(session)
    return {
        user.sequential_id: position
        for position, user in enumerate(users, start=1)
        if user.sequential_id != position
    }


def run(args: argparse.Namespace) -> int:
    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = REPO_ROOT / config_path
    settings = SettingsStore(path=config_path).load()

    uploads_root = resolve_uploads_root(args.uploads_root or settings.uploads_root, repo_root=REPO_ROOT)
    database_url = resolve_database_url(args.database_url or settings.database_url, repo_root=REPO_ROOT)

    engine = create_db_engine(database_url)
    init_db(engine)
    sessions = session_factory(engine)

    if args.dry_run:
        mapping = plan(sessions)
        for old, new in sorted(mapping.items()):
            logger.info("Would renumber %d -> %d", old, new)
        logger.info("Dry run: %d user(s) would move", len(mapping))
        return 0

    media = MediaStore(uploads_root, url_prefix=settings.uploads_url_prefix)
    try:
        mapping = renumber_all(sessions, media)
    except UserError as exc:
        logger.error("Renumbering stopped: %s", exc)
        return 1

    with sessions() as session:
        next_id = smallest_unused_id(u.sequential_id for u in all_users_by_sequential_id(session))
    logger.info("Done: %d user(s) renumbered; next new user gets %d", len(mapping), next_id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="renumber_users",
        description="Compact user sequential IDs to 1..N, moving avatar folders",
    )
    p.add_argument("--config", default="data/config.json", help="Settings file (default data/config.json)")
    p.add_argument("--uploads-root", default="", help="Override the uploads root from settings")
    p.add_argument("--database-url", default="", help="Override the database URL from settings")
    p.add_argument("--dry-run", action="store_true", help="Only print the planned mapping")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p


def main() -> int:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run(args)


if __name__ == "__main__":
    raise SystemExit(main())
