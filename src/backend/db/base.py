"""
Declarative base and timestamp mixin for the user directory tables.
"""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Shared declarative base.

    ``type_annotation_map`` lets Mapped columns use plain Python types:

    * ``str``   -> ``Text``
    * ``int``   -> ``Integer``
    * ``datetime.datetime`` -> ``DateTime``
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime,
    }


class TimestampMixin:
    """Adds ``created_at`` / ``updated_at`` assigned by the store layer."""

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
