"""
Models for the user directory.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.backend.db.base import Base, TimestampMixin
from src.backend.fs.naming import AVATAR_SLOTS, AvatarSlot


def new_key() -> str:
    return uuid.uuid4().hex


# Column name -> API field name, used to report unique-constraint conflicts
UNIQUE_FIELDS = {
    "sequential_id": "sequentialId",
    "email": "email",
    "phone": "phone",
}


class UserRecord(TimestampMixin, Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("sequential_id", name="uq_users_sequential_id"),
        UniqueConstraint("email", name="uq_users_email"),
        UniqueConstraint("phone", name="uq_users_phone"),
    )

    key: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_key)
    sequential_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str] = mapped_column(Text, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    driver_license: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    avatar1: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    avatar2: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    avatar3: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    avatar4: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    avatar5: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    def get_avatar(self, slot: AvatarSlot) -> Optional[str]:
        return getattr(self, AvatarSlot(slot).value)

    def set_avatar(self, slot: AvatarSlot, filename: Optional[str]) -> None:
        setattr(self, AvatarSlot(slot).value, filename)

    def avatars(self) -> dict[AvatarSlot, str]:
        """Populated slots only."""
        result = {}
        for slot in AVATAR_SLOTS:
            value = self.get_avatar(slot)
            if value:
                result[slot] = value
        return result

    def apply(self, fields: "UserFields") -> None:
        self.first_name = fields.first_name
        self.last_name = fields.last_name
        self.email = fields.email
        self.phone = fields.phone
        self.age = fields.age
        self.driver_license = fields.driver_license

    def __repr__(self) -> str:
        return f"UserRecord(key={self.key!r}, sequential_id={self.sequential_id!r}, email={self.email!r})"


@dataclass(frozen=True)
class UserFields:
    """Validated, normalized user fields (no identity, no avatars)."""
    first_name: str
    last_name: str
    email: str
    phone: str
    age: int
    driver_license: Optional[str] = None

    def to_api_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "age": self.age,
        }
        if self.driver_license is not None:
            data["driverLicense"] = self.driver_license
        return data

    @classmethod
    def from_record(cls, record: UserRecord) -> "UserFields":
        return cls(
            first_name=record.first_name,
            last_name=record.last_name,
            email=record.email,
            phone=record.phone,
            age=record.age,
            driver_license=record.driver_license,
        )


SORT_FIELDS = {
    "id": "sequential_id",
    "sequentialId": "sequential_id",
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
    "age": "age",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

FILTER_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
}


@dataclass
class UserQuery:
    """Parameters of a list request."""
    page: int = 1
    limit: int = 10
    sort_by: str = "sequentialId"
    order: str = "asc"
    filters: dict[str, str] = field(default_factory=dict)


@dataclass
class UserPage:
    users: list[UserRecord]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit
