"""
Sequential ID compaction.

Reassigns IDs 1..N in ascending order of the current IDs and moves each
affected media folder along with its user. IDs only ever move down, so a
destination folder never belongs to a user that has not been processed yet.

Each user is committed on its own. A run interrupted halfway leaves a valid
(if not yet contiguous) state, and running again converges to 1..N.

This is a maintenance operation: it must not run concurrently with creates
or deletes, and nothing calls it automatically.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session, sessionmaker

from src.backend.fs.naming import AVATAR_SLOTS, rebase_filename
from src.backend.fs.storage import MediaStore

from .repository import all_users_by_sequential_id

logger = logging.getLogger(__name__)


def renumber_all(sessions: sessionmaker[Session], media: MediaStore) -> dict[int, int]:
    """
    Compact all sequential IDs to 1..N.

    Args:
        sessions: Session factory for the user table.
        media: Media store owning the per-user folders.

    Returns:
        Mapping of old ID -> new ID for every user that moved (empty when
        the IDs are already contiguous).

    Raises:
        MediaIOError: If a folder cannot be moved; users processed before
            the failure keep their new IDs.
    """
    mapping: dict[int, int] = {}

    with sessions() as session:
        users = all_users_by_sequential_id(session)

        for position, user in enumerate(users, start=1):
            old_id = user.sequential_id
            if old_id == position:
                continue

            media.rename_folder(old_id, position)
            # Same rebasing as the files, so a re-run after a partial move still matches
            for slot in AVATAR_SLOTS:
                value = user.get_avatar(slot)
                if value:
                    user.set_avatar(slot, rebase_filename(value, old_id, position))

            user.sequential_id = position
            session.commit()

            mapping[old_id] = position
            logger.info("Renumbered user %s: %d -> %d", user.key, old_id, position)

    if mapping:
        logger.info("Renumbering complete: %d user(s) moved", len(mapping))
    return mapping
