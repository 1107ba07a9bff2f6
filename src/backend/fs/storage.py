"""
Per-user avatar storage directory management.

Directory structure:
    <uploads_root>/user_<sequentialId>/<owner>_<slot>_<suffix>.<ext>

Folder-level operations (create, list, rename, delete) are used by the user
record manager and the renumbering engine. Deletes are best-effort; writes
raise MediaIOError.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Iterable, Optional

from ..errors import MediaIOError
from .naming import AvatarName, AvatarSlot, OwnerId, is_remote, rebase_filename

logger = logging.getLogger(__name__)

USER_FOLDER_PREFIX = "user_"
COPY_BUFFER_SIZE = 65536  # 64 KB


def atomic_write_stream(final_path: Path, source: BinaryIO) -> int:
    """
    Write a stream to final_path via a temp file and atomic replace.

    Returns:
        Number of bytes written.

    Raises:
        OSError: If the file cannot be written.
    """
    final_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path_str = tempfile.mkstemp(
        dir=str(final_path.parent),
        prefix=f".{final_path.name}.",
        suffix=".tmp",
    )
    tmp_path = Path(tmp_path_str)
    written = 0
    try:
        with os.fdopen(fd, "wb") as f:
            while True:
                chunk = source.read(COPY_BUFFER_SIZE)
                if not chunk:
                    break
                f.write(chunk)
                written += len(chunk)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, final_path)
    finally:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
    return written


def remove_tree_best_effort(folder: Path) -> int:
    """
    Delete every file in folder, then the folder itself.

    Failures are logged and the sweep continues; the folder is left in place
    if anything could not be removed.

    Returns:
        Number of files deleted.
    """
    if not folder.exists():
        return 0

    deleted = 0
    try:
        entries = list(folder.iterdir())
    except OSError as exc:
        logger.warning("Failed to list folder %s: %s", folder, exc)
        return 0

    for entry in entries:
        try:
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()
                deleted += 1
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Failed to delete %s: %s", entry, exc)

    try:
        folder.rmdir()
    except OSError as exc:
        logger.warning("Failed to remove folder %s: %s", folder, exc)

    return deleted


class MediaStore:
    """
    Owns the avatar files of every live user.

    Each user has exactly one folder named from the sequential ID:
        <uploads_root>/user_<id>/
    """

    def __init__(self, uploads_root: Path, *, url_prefix: str = "/uploads"):
        """
        Initialize the media store.

        Args:
            uploads_root: The root directory for all uploaded files.
            url_prefix: Public URL path the uploads root is served under.
        """
        self._uploads_root = Path(uploads_root).resolve()
        self._url_prefix = "/" + url_prefix.strip("/")

    @property
    def uploads_root(self) -> Path:
        """Get the uploads root directory."""
        return self._uploads_root

    @property
    def url_prefix(self) -> str:
        return self._url_prefix

    @staticmethod
    def folder_name(user_id: int) -> str:
        return f"{USER_FOLDER_PREFIX}{user_id}"

    def folder_for(self, user_id: int) -> Path:
        return self._uploads_root / self.folder_name(user_id)

    def ensure_folder(self, user_id: int) -> Path:
        """
        Ensure the user's folder exists, creating it if needed.

        Raises:
            MediaIOError: If the folder cannot be created.
        """
        folder = self.folder_for(user_id)
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MediaIOError(str(exc), path=folder) from exc
        return folder

    def folder_exists(self, user_id: int) -> bool:
        return self.folder_for(user_id).is_dir()

    def list_files(self, user_id: int) -> list[Path]:
        """List the regular files in a user's folder (temp files excluded)."""
        folder = self.folder_for(user_id)
        if not folder.exists():
            return []
        return sorted(
            f for f in folder.iterdir()
            if f.is_file() and not f.name.startswith(".")
        )

    def write_avatar(
        self,
        user_id: OwnerId,
        slot: AvatarSlot,
        source: BinaryIO,
        extension: Optional[str] = None,
        *,
        folder: Optional[Path] = None,
    ) -> str:
        """
        Write an avatar file and return the filename to store on the record.

        Args:
            user_id: Owner embedded in the filename.
            slot: The avatar slot being filled.
            source: Binary stream with the image bytes.
            extension: Original file extension.
            folder: Destination folder; defaults to the user's folder.

        Raises:
            MediaIOError: If the file cannot be written.
        """
        name = AvatarName.new(user_id, slot, extension)
        target_dir = folder if folder is not None else self.folder_for(int(user_id))
        final_path = self._ensure_within_root(target_dir / name.filename)
        try:
            size = atomic_write_stream(final_path, source)
        except OSError as exc:
            raise MediaIOError(str(exc), path=final_path) from exc

        logger.debug("Wrote avatar %s (%d bytes)", final_path, size)
        return name.filename

    def resolve_avatar_path(self, filename: str, user_id: Optional[int] = None) -> Optional[Path]:
        """
        Resolve a stored avatar value to a path under the uploads root.

        Values rooted at the public uploads URL ("/uploads/...") resolve against
        the uploads root; bare names resolve under the user's folder, or the
        uploads root when no user is given. Anything escaping the uploads root
        resolves to None.
        """
        if not filename or is_remote(filename):
            return None

        raw = filename.strip()
        prefix = self._url_prefix + "/"
        if raw.startswith(prefix):
            candidate = self._uploads_root / raw[len(prefix):]
        elif Path(raw).is_absolute():
            candidate = Path(raw)
        elif user_id is not None:
            candidate = self.folder_for(user_id) / raw
        else:
            candidate = self._uploads_root / raw

        try:
            return self._ensure_within_root(candidate)
        except MediaIOError:
            logger.warning("Refusing avatar path outside uploads root: %r", filename)
            return None

    def delete_avatar(self, filename: str, user_id: Optional[int] = None) -> bool:
        """
        Delete one avatar file if present.

        Failure to remove is logged, not raised.

        Returns:
            True if a file was removed.
        """
        path = self.resolve_avatar_path(filename, user_id)
        if path is None or not path.is_file():
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Error deleting file %s: %s", path, exc)
            return False
        logger.info("Deleted file: %s", path)
        return True

    def delete_folder(self, user_id: int) -> int:
        """
        Delete the user's folder and everything in it; no-op if absent.

        Returns:
            Number of files deleted.
        """
        folder = self.folder_for(user_id)
        if not folder.exists():
            return 0
        deleted = remove_tree_best_effort(folder)
        logger.info("Deleted user folder %s (%d files)", folder, deleted)
        return deleted

    def rename_folder(self, old_id: int, new_id: int) -> dict[str, str]:
        """
        Relocate a user's folder from old_id to new_id.

        Files owned by old_id are re-prefixed with new_id; other files move
        unchanged. The destination is created if absent and the old folder is
        removed afterwards.

        Returns:
            Mapping of old filename -> new filename for every moved file.

        Raises:
            MediaIOError: If a file cannot be moved.
        """
        old_folder = self.folder_for(old_id)
        if old_id == new_id or not old_folder.exists():
            return {}

        new_folder = self.ensure_folder(new_id)
        renamed: dict[str, str] = {}

        for old_path in sorted(old_folder.iterdir()):
            if not old_path.is_file():
                continue
            new_name = rebase_filename(old_path.name, old_id, new_id)
            try:
                os.replace(old_path, new_folder / new_name)
            except OSError as exc:
                raise MediaIOError(str(exc), path=old_path) from exc
            renamed[old_path.name] = new_name

        shutil.rmtree(old_folder, ignore_errors=True)
        logger.info("Moved %s -> %s (%d files)", old_folder.name, new_folder.name, len(renamed))
        return renamed

    def prune_folder(self, user_id: int, keep: Iterable[str]) -> list[str]:
        """
        Delete files in the user's folder that are not listed in keep.

        Returns:
            Names of the files removed.
        """
        keep_names = {Path(k).name for k in keep if k}
        removed: list[str] = []
        for path in self.list_files(user_id):
            if path.name in keep_names:
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Failed to prune %s: %s", path, exc)
                continue
            removed.append(path.name)
        return removed

    def _ensure_within_root(self, path: Path) -> Path:
        resolved = path.resolve()
        if resolved != self._uploads_root and self._uploads_root not in resolved.parents:
            raise MediaIOError("path escapes uploads root", path=path)
        return resolved
