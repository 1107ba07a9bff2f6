"""
Sequential ID allocation.

The allocator keeps no counter: the next ID is computed from the IDs of the
live users, so gaps left by deletions are filled before the range grows.
Concurrent allocations can pick the same value; the unique constraint on
``users.sequential_id`` rejects the losing insert and the caller retries.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import UserRecord


def smallest_unused_id(existing: Iterable[int]) -> int:
    """
    Return the smallest positive integer not in existing.

    >>> smallest_unused_id([])
    1
    >>> smallest_unused_id([1, 2, 4])
    3
    >>> smallest_unused_id([1, 2, 3])
    4
    """
    candidate = 1
    for value in sorted({v for v in existing if v is not None and v > 0}):
        if value != candidate:
            break
        candidate += 1
    return candidate


class IdentifierAllocator:
    def live_ids(self, session: Session) -> list[int]:
        return list(
            session.scalars(select(UserRecord.sequential_id).order_by(UserRecord.sequential_id))
        )

    def allocate(self, session: Session) -> int:
        return smallest_unused_id(self.live_ids(session))
