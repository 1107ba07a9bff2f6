"""
Avatar file naming conventions.

Filename format: <owner>_<slot>_<millis>-<rand><.ext>

- owner: The user's sequential ID, or a staging token before the user exists
- slot: One of avatar1..avatar5
- millis-rand: Collision-resistant suffix (epoch milliseconds + random number)
- ext: Original file extension, lower-cased (e.g. .jpg, .png)

The filename is only a serialization of AvatarName; code that needs the owner
or slot works with the parsed record.
"""

from __future__ import annotations

import random
import re
import time
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class AvatarSlot(str, Enum):
    """The five fixed avatar positions on a user record."""
    AVATAR1 = "avatar1"
    AVATAR2 = "avatar2"
    AVATAR3 = "avatar3"
    AVATAR4 = "avatar4"
    AVATAR5 = "avatar5"

    @classmethod
    def parse(cls, value: str) -> Optional["AvatarSlot"]:
        """Return the slot named by value, or None if it is not a slot name."""
        try:
            return cls(str(value).strip())
        except ValueError:
            return None


AVATAR_SLOTS: tuple[AvatarSlot, ...] = tuple(AvatarSlot)

# Owners are integers or hex tokens, so they never contain "_"
FILENAME_PATTERN = re.compile(
    r'^(?P<owner>[A-Za-z0-9-]+)_(?P<slot>avatar[1-5])_(?P<suffix>\d+-\d+)(?P<ext>\.[A-Za-z0-9]+)?$'
)

OwnerId = Union[int, str]

REMOTE_SCHEMES = ("http://", "https://")


def generate_suffix() -> str:
    """Timestamp plus random value, unique enough for one user's folder."""
    return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"


def normalize_extension(extension: Optional[str]) -> str:
    """Return the extension with a leading dot, lower-cased, or '' if none."""
    if not extension:
        return ""
    ext = extension.strip().lower().lstrip(".")
    if not ext or not ext.isalnum():
        return ""
    return f".{ext}"


@dataclass(frozen=True)
class AvatarName:
    """Structured identity of an avatar file."""
    owner: str
    slot: AvatarSlot
    suffix: str
    extension: str = ""

    @classmethod
    def new(cls, owner: OwnerId, slot: AvatarSlot, extension: Optional[str] = None) -> "AvatarName":
        """
        Build a fresh name for a file about to be written.

        Args:
            owner: Sequential user ID or staging token.
            slot: The avatar slot the file fills.
            extension: File extension (with or without leading dot).

        Returns:
            AvatarName with a newly generated suffix.
        """
        owner_str = str(owner)
        if not owner_str or "_" in owner_str:
            raise ValueError(f"Invalid avatar owner: {owner!r}")
        return cls(
            owner=owner_str,
            slot=AvatarSlot(slot),
            suffix=generate_suffix(),
            extension=normalize_extension(extension),
        )

    @classmethod
    def parse(cls, filename: str) -> Optional["AvatarName"]:
        """
        Parse a filename back into its components.

        Args:
            filename: The filename to parse (can include path).

        Returns:
            AvatarName if the filename matches the convention, None otherwise.
        """
        match = FILENAME_PATTERN.match(Path(filename).name)
        if not match:
            return None
        return cls(
            owner=match.group("owner"),
            slot=AvatarSlot(match.group("slot")),
            suffix=match.group("suffix"),
            extension=(match.group("ext") or "").lower(),
        )

    @property
    def filename(self) -> str:
        return f"{self.owner}_{self.slot.value}_{self.suffix}{self.extension}"

    def with_owner(self, owner: OwnerId) -> "AvatarName":
        """Same slot and suffix under a different owner (adoption, renumbering)."""
        return replace(self, owner=str(owner))

    def __str__(self) -> str:
        return self.filename


def is_remote(value: str) -> bool:
    """True for absolute http(s) URLs, which never name a local file."""
    return value.startswith(REMOTE_SCHEMES)


def rebase_filename(filename: str, old_owner: OwnerId, new_owner: OwnerId) -> str:
    """
    Swap the owner token of a filename if it is owned by old_owner.

    Remote URLs, names that do not follow the convention, and names that
    belong to another owner are returned unchanged.
    """
    if is_remote(filename):
        return filename
    parsed = AvatarName.parse(filename)
    if parsed is None or parsed.owner != str(old_owner):
        return filename
    return parsed.with_owner(new_owner).filename
