import unittest

from src.backend.errors import ConflictError
from src.backend.users.allocator import IdentifierAllocator, smallest_unused_id
from src.backend.users.manager import UserRecordManager

from user_fixtures import ManagerTestCase, user_payload


class TestSmallestUnusedId(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(smallest_unused_id([]), 1)

    def test_fills_gap(self):
        self.assertEqual(smallest_unused_id({1, 2, 4}), 3)

    def test_extends_contiguous_range(self):
        self.assertEqual(smallest_unused_id({1, 2, 3}), 4)

    def test_ignores_order_duplicates_and_non_positive(self):
        self.assertEqual(smallest_unused_id([3, 1, 1, 0, -2]), 2)


class TestIdentifierAllocator(ManagerTestCase):
    def test_allocates_from_live_rows(self):
        allocator = IdentifierAllocator()
        with self.sessions() as session:
            self.assertEqual(allocator.allocate(session), 1)

        for n in range(1, 4):
            self.manager.create(user_payload(n))

        with self.sessions() as session:
            self.assertEqual(allocator.live_ids(session), [1, 2, 3])
            self.assertEqual(allocator.allocate(session), 4)


class TakenIdAllocator(IdentifierAllocator):
    """Hands out an ID that is already in use for the first `times` calls."""

    def __init__(self, taken: int, times: int):
        self.taken = taken
        self.times = times
        self.calls = 0

    def allocate(self, session):
        self.calls += 1
        if self.calls <= self.times:
            return self.taken
        return super().allocate(session)


class TestAllocationRetry(ManagerTestCase):
    def _manager(self, allocator):
        return UserRecordManager(
            sessions=self.sessions, media=self.media, staging=self.staging, allocator=allocator
        )

    def test_lost_race_is_retried_once(self):
        self.manager.create(user_payload(1))
        allocator = TakenIdAllocator(taken=1, times=1)

        record = self._manager(allocator).create(user_payload(2))

        self.assertEqual(record.sequential_id, 2)
        self.assertEqual(allocator.calls, 2)

    def test_second_collision_is_a_conflict(self):
        self.manager.create(user_payload(1))
        allocator = TakenIdAllocator(taken=1, times=2)

        with self.assertRaises(ConflictError) as ctx:
            self._manager(allocator).create(user_payload(2))

        self.assertEqual(ctx.exception.field, "sequentialId")
        self.assertEqual(allocator.calls, 2)
        with self.sessions() as session:
            self.assertEqual(IdentifierAllocator().live_ids(session), [1])


if __name__ == "__main__":
    unittest.main()
