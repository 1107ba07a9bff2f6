"""
User record lifecycle: create, update, patch, delete.

The manager keeps each user row and its avatar files consistent:
- new-user avatars are staged, then adopted into user_<id>/ once the row
  and its sequential ID exist
- replacement avatars are written before the row is updated and the old
  files are removed only after the update is committed
- deleting a user removes its whole media folder (best-effort)

Every path either returns the committed record or raises a UserError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from src.backend.errors import ConflictError, MediaIOError, UserError, ValidationError
from src.backend.fs.naming import AvatarSlot
from src.backend.fs.staging import StagingArea
from src.backend.fs.storage import MediaStore
from src.backend.fs.uploads import AvatarUpload

from .allocator import IdentifierAllocator
from .models import UserFields, UserPage, UserQuery, UserRecord
from .repository import conflict_from_integrity, get_user, list_users
from .validation import merge_user_fields, require_user_fields

logger = logging.getLogger(__name__)

# One retry after losing a sequential ID race
ALLOCATION_ATTEMPTS = 2

Avatars = Mapping[AvatarSlot, AvatarUpload]


@dataclass
class BulkFailure:
    index: int
    data: Any
    error: UserError


@dataclass
class BulkResult:
    """Outcome of creating several users independently."""
    total: int
    created: list[tuple[int, UserRecord]] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    @property
    def status_code(self) -> int:
        if not self.failed:
            return 201
        if not self.created:
            return 400
        return 207


class UserRecordManager:
    """
    Orchestrates user rows, the media store and the staging area.

    Usage:
        manager = UserRecordManager(sessions=sessionmaker(engine), media=media, staging=staging)
        record = manager.create({"firstName": "Ada", ...}, avatars, is_new_user=True)
    """

    def __init__(
        self,
        *,
        sessions: sessionmaker[Session],
        media: MediaStore,
        staging: StagingArea,
        allocator: Optional[IdentifierAllocator] = None,
    ):
        self._sessions = sessions
        self._media = media
        self._staging = staging
        self._allocator = allocator or IdentifierAllocator()

    @property
    def media(self) -> MediaStore:
        return self._media

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str) -> UserRecord:
        with self._sessions() as session:
            return get_user(session, key)

    def list_users(self, query: UserQuery) -> UserPage:
        with self._sessions() as session:
            return list_users(session, query)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        data: Mapping[str, Any],
        avatars: Optional[Avatars] = None,
        *,
        is_new_user: bool = False,
    ) -> UserRecord:
        """
        Create a user, adopting any uploaded avatars.

        Args:
            data: API payload (firstName, lastName, email, phone, age, driverLicense).
            avatars: Accepted avatar uploads by slot.
            is_new_user: Must be set when avatars accompany a create.

        Raises:
            ValidationError: Invalid fields, or avatars without is_new_user.
            ConflictError: Duplicate email/phone, or repeated ID collisions.
            MediaIOError: Avatar files could not be staged or adopted.
        """
        avatars = dict(avatars or {})
        if avatars and not is_new_user:
            raise ValidationError.single(
                "isNewUser", "User ID is required. Set isNewUser=true to upload avatars for a new user."
            )

        fields = require_user_fields(data)

        token: Optional[str] = None
        try:
            if avatars:
                token = self._staging.begin()
                for slot, upload in avatars.items():
                    self._staging.stage(token, slot, upload.open(), upload.extension)

            record = self._insert(fields)

            if token is not None:
                try:
                    adopted = self._staging.adopt(token, record.sequential_id)
                except MediaIOError:
                    logger.error(
                        "User %s was created but its avatars could not be adopted from staging %s",
                        record.key, token,
                    )
                    raise
                if adopted:
                    record = self._store_avatars(record.key, adopted)
            return record
        finally:
            # No-op once adopted; cleans up after any rejection
            if token is not None:
                self._staging.discard(token)

    def _insert(self, fields: UserFields) -> UserRecord:
        for attempt in range(1, ALLOCATION_ATTEMPTS + 1):
            with self._sessions() as session:
                record = UserRecord(sequential_id=self._allocator.allocate(session))
                record.apply(fields)
                session.add(record)
                try:
                    session.commit()
                except IntegrityError as exc:
                    conflict = conflict_from_integrity(exc, record)
                    session.rollback()
                    if conflict.field == "sequentialId" and attempt < ALLOCATION_ATTEMPTS:
                        logger.info(
                            "Sequential ID %s was taken concurrently; retrying allocation",
                            record.sequential_id,
                        )
                        continue
                    raise conflict from exc

                logger.info("Created user %s with sequential id %d", record.key, record.sequential_id)
                return record

        raise ConflictError("sequentialId")

    def _store_avatars(self, key: str, filenames: Mapping[AvatarSlot, str]) -> UserRecord:
        with self._sessions() as session:
            record = get_user(session, key)
            for slot, filename in filenames.items():
                record.set_avatar(slot, filename)
            session.commit()
            return record

    def create_many(self, items: Sequence[Any]) -> BulkResult:
        """
        Create each item independently; failures do not stop the batch.

        Items are indexed from 0 in the result.
        """
        result = BulkResult(total=len(items))
        for index, item in enumerate(items):
            if not isinstance(item, Mapping):
                result.failed.append(BulkFailure(
                    index=index,
                    data=item,
                    error=ValidationError.single("user", "Each item must be a JSON object"),
                ))
                continue
            try:
                record = self.create(item)
            except UserError as exc:
                logger.info("Bulk create item %d rejected: %s", index, exc)
                result.failed.append(BulkFailure(index=index, data=item, error=exc))
                continue
            result.created.append((index, record))

        logger.info(
            "Processed %d users: %d created, %d failed",
            result.total, len(result.created), len(result.failed),
        )
        return result

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, key: str, data: Mapping[str, Any], avatars: Optional[Avatars] = None) -> UserRecord:
        """
        Merge data over the stored user and replace any uploaded avatar slots.

        Raises:
            NotFoundError: Unknown key.
            ValidationError: The merged user is invalid.
            ConflictError: Duplicate email/phone.
            MediaIOError: A replacement file could not be written.
        """
        avatars = dict(avatars or {})
        with self._sessions() as session:
            record = get_user(session, key)
            merged = merge_user_fields(UserFields.from_record(record), data)
            fields = require_user_fields(merged)
            return self._commit_changes(session, record, fields, avatars)

    def patch_avatar(self, key: str, avatar_field: Optional[str], avatars: Optional[Avatars]) -> tuple[UserRecord, AvatarSlot]:
        """
        Replace exactly one avatar slot.

        The request must carry one file, and avatar_field must name the slot
        that file was uploaded under.

        Raises:
            NotFoundError: Unknown key.
            ValidationError: Zero or several files, or a mismatched designator.
        """
        avatars = dict(avatars or {})
        with self._sessions() as session:
            record = get_user(session, key)

            if len(avatars) != 1:
                raise ValidationError.single("avatars", "PATCH requires exactly one avatar field to be updated")
            (slot, _upload), = avatars.items()

            designator = AvatarSlot.parse(avatar_field or "")
            if designator is None and avatar_field:
                expected = ", ".join(s.value for s in AvatarSlot)
                raise ValidationError.single("avatarField", f"Invalid avatar field. Must be one of: {expected}")
            if designator != slot:
                raise ValidationError.single(
                    "avatarField", f"avatarField parameter must match the uploaded field: {slot.value}"
                )

            logger.info("PATCH: Replacing %s for user %d", slot.value, record.sequential_id)
            record = self._commit_changes(session, record, UserFields.from_record(record), avatars)
            return record, slot

    def _commit_changes(
        self,
        session: Session,
        record: UserRecord,
        fields: UserFields,
        avatars: Avatars,
    ) -> UserRecord:
        user_id = record.sequential_id
        written = self._write_avatars(user_id, avatars)

        replaced: list[str] = []
        record.apply(fields)
        for slot, filename in written.items():
            previous = record.get_avatar(slot)
            if previous and previous != filename:
                replaced.append(previous)
            record.set_avatar(slot, filename)

        try:
            session.commit()
        except IntegrityError as exc:
            conflict = conflict_from_integrity(exc, record)
            session.rollback()
            self._remove_files(user_id, written.values())
            raise conflict from exc

        self._remove_files(user_id, replaced)
        return record

    def _write_avatars(self, user_id: int, avatars: Avatars) -> dict[AvatarSlot, str]:
        written: dict[AvatarSlot, str] = {}
        if not avatars:
            return written
        try:
            self._media.ensure_folder(user_id)
            for slot, upload in avatars.items():
                written[slot] = self._media.write_avatar(user_id, slot, upload.open(), upload.extension)
        except MediaIOError:
            self._remove_files(user_id, written.values())
            raise
        return written

    def _remove_files(self, user_id: int, filenames: Iterable[str]) -> None:
        for filename in filenames:
            self._media.delete_avatar(filename, user_id)

    # ------------------------------------------------------------------
    # Delete / maintenance
    # ------------------------------------------------------------------

    def delete(self, key: str) -> UserRecord:
        """
        Delete the user row, then its media folder.

        Sequential IDs are not compacted; the freed ID is reused by the next
        create.

        Raises:
            NotFoundError: Unknown key.
        """
        with self._sessions() as session:
            record = get_user(session, key)
            session.delete(record)
            session.commit()

        user_id = record.sequential_id
        # Slot values may point outside the folder (rooted /uploads/... paths)
        self._remove_files(user_id, record.avatars().values())
        self._media.delete_folder(user_id)
        logger.info("Deleted user %s (sequential id %d)", record.key, user_id)
        return record

    def prune_avatars(self, key: str) -> list[str]:
        """Delete files in the user's folder that no avatar slot references."""
        record = self.get(key)
        removed = self._media.prune_folder(record.sequential_id, record.avatars().values())
        if removed:
            logger.info("Pruned %d orphaned file(s) for user %d", len(removed), record.sequential_id)
        return removed
