"""
Staging area for avatars uploaded before their user exists.

Directory structure:
    <uploads_root>/temp_<token>/<token>_<slot>_<suffix>.<ext>

A staging session lives for one create attempt: it is either adopted into
the permanent user folder or discarded.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Optional

from ..errors import MediaIOError
from .naming import AvatarName, AvatarSlot
from .storage import MediaStore, remove_tree_best_effort

logger = logging.getLogger(__name__)

STAGING_FOLDER_PREFIX = "temp_"


class StagingArea:
    """Temporary per-session folders under the uploads root."""

    def __init__(self, media: MediaStore):
        self._media = media
        self._root = media.uploads_root

    @staticmethod
    def begin() -> str:
        """Mint a session token. The folder is created on the first write."""
        return uuid.uuid4().hex

    def folder_for(self, token: str) -> Path:
        if not token or not token.isalnum():
            raise ValueError(f"Invalid staging token: {token!r}")
        return self._root / f"{STAGING_FOLDER_PREFIX}{token}"

    def exists(self, token: str) -> bool:
        return self.folder_for(token).is_dir()

    def stage(
        self,
        token: str,
        slot: AvatarSlot,
        source: BinaryIO,
        extension: Optional[str] = None,
    ) -> str:
        """
        Write one avatar into the session's folder.

        Returns:
            The staged filename (owned by the token).

        Raises:
            MediaIOError: If the file cannot be written.
        """
        return self._media.write_avatar(
            token, slot, source, extension, folder=self.folder_for(token)
        )

    def adopt(self, token: str, user_id: int) -> dict[AvatarSlot, str]:
        """
        Move every staged file into the user's permanent folder.

        The token in each filename is replaced by the user ID; the slot comes
        from the parsed name. A missing staging folder means nothing was
        uploaded and yields an empty mapping.

        Returns:
            Mapping of slot -> permanent filename.

        Raises:
            MediaIOError: If a file cannot be moved.
        """
        staging_folder = self.folder_for(token)
        if not staging_folder.exists():
            return {}

        user_folder = self._media.ensure_folder(user_id)
        adopted: dict[AvatarSlot, str] = {}

        for staged in sorted(staging_folder.iterdir()):
            if not staged.is_file():
                continue
            name = AvatarName.parse(staged.name)
            if name is None or name.owner != token:
                logger.warning("Dropping unexpected file in staging folder: %s", staged)
                continue

            final = name.with_owner(user_id)
            try:
                os.replace(staged, user_folder / final.filename)
            except OSError as exc:
                raise MediaIOError(str(exc), path=staged) from exc
            adopted[name.slot] = final.filename

        remove_tree_best_effort(staging_folder)
        logger.info("Adopted %d staged avatar(s) from %s into %s", len(adopted), staging_folder.name, user_folder.name)
        return adopted

    def discard(self, token: str) -> None:
        """Delete the session's folder and everything in it."""
        folder = self.folder_for(token)
        if not folder.exists():
            return
        remove_tree_best_effort(folder)
        logger.info("Discarded staging folder %s", folder.name)

    def sweep(self, max_age_s: float) -> list[str]:
        """
        Remove staging folders not modified for max_age_s seconds.

        Returns:
            Tokens of the sessions removed.
        """
        if not self._root.exists():
            return []

        cutoff = time.time() - max_age_s
        removed: list[str] = []
        for folder in self._root.iterdir():
            if not folder.is_dir() or not folder.name.startswith(STAGING_FOLDER_PREFIX):
                continue
            try:
                mtime = folder.stat().st_mtime
            except OSError:
                continue
            if mtime > cutoff:
                continue
            remove_tree_best_effort(folder)
            removed.append(folder.name[len(STAGING_FOLDER_PREFIX):])

        if removed:
            logger.info("Swept %d stale staging folder(s)", len(removed))
        return removed
