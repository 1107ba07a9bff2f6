"""
Upload acceptance rules for avatar images and spreadsheets.

- Avatars: fields avatar1..avatar5, one file each, at most 5 files,
  JPEG/PNG/GIF by extension AND MIME type, 5 MiB per file.
- Spreadsheets: one .xlsx/.xls file with a spreadsheet MIME type, 10 MiB.
"""

from __future__ import annotations

import io
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import BinaryIO, Iterable, Optional

from ..errors import FieldError, ValidationError
from .naming import AvatarSlot

MAX_AVATAR_BYTES = 5 * 1024 * 1024
MAX_AVATAR_FILES = 5
MAX_SPREADSHEET_BYTES = 10 * 1024 * 1024

AVATAR_TYPE_PATTERN = re.compile(r"jpeg|jpg|png|gif")
SPREADSHEET_EXTENSIONS = frozenset({".xlsx", ".xls"})
SPREADSHEET_MIME_TYPES = frozenset({
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
})


@dataclass(frozen=True)
class AvatarUpload:
    """An accepted avatar file, held in memory until it is written."""
    slot: AvatarSlot
    original_name: str
    content_type: str
    data: bytes

    @property
    def extension(self) -> str:
        return PurePath(self.original_name).suffix.lower()

    def open(self) -> BinaryIO:
        return io.BytesIO(self.data)


def is_allowed_image(original_name: str, content_type: str) -> bool:
    ext = PurePath(original_name or "").suffix.lower().lstrip(".")
    mime = (content_type or "").lower()
    return bool(ext and AVATAR_TYPE_PATTERN.fullmatch(ext)) and bool(AVATAR_TYPE_PATTERN.search(mime))


def accept_avatar(field_name: str, original_name: str, content_type: str, data: bytes) -> AvatarUpload:
    """
    Check one uploaded file against the avatar rules.

    Raises:
        ValidationError: Unknown field, wrong type, or too large.
    """
    slot = AvatarSlot.parse(field_name)
    if slot is None:
        expected = ", ".join(s.value for s in AvatarSlot)
        raise ValidationError.single(
            field_name, f"Invalid field name: {field_name}. Expected one of: {expected}"
        )
    if not is_allowed_image(original_name, content_type):
        raise ValidationError.single(field_name, "Only image files (JPEG, JPG, PNG, GIF) are allowed!")
    if len(data) > MAX_AVATAR_BYTES:
        raise ValidationError.single(field_name, "File too large. Maximum size is 5MB for images.")
    return AvatarUpload(slot=slot, original_name=original_name, content_type=content_type, data=data)


def collect_avatars(files: Iterable[tuple[str, str, str, bytes]]) -> dict[AvatarSlot, AvatarUpload]:
    """
    Accept a request's files as (field, filename, content_type, data) tuples.

    Raises:
        ValidationError: Too many files, duplicate slots, or a rejected file.
    """
    accepted: dict[AvatarSlot, AvatarUpload] = {}
    errors: list[FieldError] = []
    count = 0
    for field_name, original_name, content_type, data in files:
        count += 1
        if count > MAX_AVATAR_FILES:
            raise ValidationError.single("avatars", "Too many files. Maximum is 5 files for avatars.")
        try:
            upload = accept_avatar(field_name, original_name, content_type, data)
        except ValidationError as exc:
            errors.extend(exc.errors)
            continue
        if upload.slot in accepted:
            errors.append(FieldError(field=field_name, reason="Only one file per avatar field is allowed"))
            continue
        accepted[upload.slot] = upload

    if errors:
        raise ValidationError(errors, message="File upload error")
    return accepted


def check_spreadsheet_upload(original_name: Optional[str], content_type: Optional[str], size: int) -> None:
    """
    Raises:
        ValidationError: Not an Excel file or larger than 10 MiB.
    """
    ext = PurePath(original_name or "").suffix.lower()
    mime = (content_type or "").lower().split(";")[0].strip()
    if ext not in SPREADSHEET_EXTENSIONS or mime not in SPREADSHEET_MIME_TYPES:
        raise ValidationError.single("excelFile", "Only Excel files (.xlsx, .xls) are allowed!")
    if size > MAX_SPREADSHEET_BYTES:
        raise ValidationError.single("excelFile", "File too large. Maximum size is 10MB for Excel files.")
