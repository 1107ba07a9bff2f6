"""
Persistence helpers for UserRecord rows.

All functions take an open Session; transaction boundaries belong to the
caller.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.backend.errors import ConflictError, NotFoundError

from .models import FILTER_FIELDS, SORT_FIELDS, UNIQUE_FIELDS, UserPage, UserQuery, UserRecord


def conflicting_field(exc: IntegrityError) -> Optional[str]:
    """
    Work out which unique field an IntegrityError is about.

    SQLite reports "UNIQUE constraint failed: users.email", PostgreSQL the
    constraint name "uq_users_email"; both contain the column name.
    """
    message = str(getattr(exc, "orig", None) or exc).lower()
    for column, api_name in UNIQUE_FIELDS.items():
        if column in message:
            return api_name
    return None


def conflict_from_integrity(exc: IntegrityError, record: Optional[UserRecord] = None) -> ConflictError:
    field = conflicting_field(exc) or "record"
    value = None
    if record is not None:
        value = {"email": record.email, "phone": record.phone, "sequentialId": record.sequential_id}.get(field)
    return ConflictError(field, value)


def get_user(session: Session, key: str) -> UserRecord:
    """
    Raises:
        NotFoundError: If no user has this key.
    """
    record = session.get(UserRecord, key)
    if record is None:
        raise NotFoundError(key)
    return record


def all_users_by_sequential_id(session: Session) -> list[UserRecord]:
    return list(session.scalars(select(UserRecord).order_by(UserRecord.sequential_id)))


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_users(session: Session, query: UserQuery) -> UserPage:
    """Filtered, sorted, paginated listing."""
    conditions = []
    for api_name, column_name in FILTER_FIELDS.items():
        needle = (query.filters.get(api_name) or "").strip()
        if not needle:
            continue
        column = getattr(UserRecord, column_name)
        conditions.append(column.ilike(f"%{_escape_like(needle)}%", escape="\\"))

    sort_column = getattr(UserRecord, SORT_FIELDS.get(query.sort_by, "sequential_id"))
    ordering = sort_column.desc() if query.order == "desc" else sort_column.asc()

    stmt = select(UserRecord).where(*conditions).order_by(ordering, UserRecord.sequential_id.asc())
    count_stmt = select(func.count()).select_from(UserRecord).where(*conditions)

    total = session.scalar(count_stmt) or 0
    offset = (query.page - 1) * query.limit
    users = list(session.scalars(stmt.offset(offset).limit(query.limit)))
    return UserPage(users=users, page=query.page, limit=query.limit, total=total)
