"""
Response shaping for user records.

Each route calls shape_user() explicitly with the request origin; the
result is the stored fields plus one absolute URL per populated avatar slot.
"""

from __future__ import annotations

import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.backend.fs.naming import is_remote
from src.backend.fs.storage import MediaStore

from .models import UserRecord


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserOut(CamelModel):
    key: str
    sequential_id: int
    first_name: str
    last_name: str
    email: str
    phone: str
    age: int
    driver_license: Optional[str] = None
    avatar1: Optional[str] = None
    avatar2: Optional[str] = None
    avatar3: Optional[str] = None
    avatar4: Optional[str] = None
    avatar5: Optional[str] = None
    avatar1_url: Optional[str] = None
    avatar2_url: Optional[str] = None
    avatar3_url: Optional[str] = None
    avatar4_url: Optional[str] = None
    avatar5_url: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None


def avatar_url(value: str, *, origin: str, url_prefix: str, user_id: int) -> str:
    """
    Absolute URL for a stored avatar value.

    - absolute http(s) URLs pass through
    - values rooted at the uploads prefix are joined to the origin
    - bare filenames live in the user's folder
    """
    if is_remote(value):
        return value

    base = origin.rstrip("/")
    prefix = "/" + url_prefix.strip("/")
    if value.startswith(prefix + "/"):
        return f"{base}{value}"
    return f"{base}{prefix}/{MediaStore.folder_name(user_id)}/{value}"


def shape_user(record: UserRecord, *, origin: str, url_prefix: str = "/uploads") -> UserOut:
    urls = {
        f"{slot.value}_url": avatar_url(value, origin=origin, url_prefix=url_prefix, user_id=record.sequential_id)
        for slot, value in record.avatars().items()
    }
    return UserOut(
        key=record.key,
        sequential_id=record.sequential_id,
        first_name=record.first_name,
        last_name=record.last_name,
        email=record.email,
        phone=record.phone,
        age=record.age,
        driver_license=record.driver_license,
        avatar1=record.avatar1,
        avatar2=record.avatar2,
        avatar3=record.avatar3,
        avatar4=record.avatar4,
        avatar5=record.avatar5,
        created_at=record.created_at,
        updated_at=record.updated_at,
        **urls,
    )
