"""Shared fixtures for the user lifecycle tests."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from src.backend.db import create_db_engine, init_db, session_factory
from src.backend.fs.naming import AvatarSlot
from src.backend.fs.staging import StagingArea
from src.backend.fs.storage import MediaStore
from src.backend.fs.uploads import AvatarUpload
from src.backend.users.manager import UserRecordManager


def user_payload(n: int, **overrides):
    data = {
        "firstName": f"First{n}",
        "lastName": f"Last{n}",
        "email": f"user{n}@example.com",
        "phone": f"555-{n:04d}",
        "age": 30,
        "driverLicense": f"D{n}",
    }
    data.update(overrides)
    return data


def png(slot: AvatarSlot, data: bytes = b"png-bytes") -> AvatarUpload:
    return AvatarUpload(slot=slot, original_name="face.png", content_type="image/png", data=data)


class ManagerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.root = Path(self._tmpdir.name) / "uploads"

        engine = create_db_engine("sqlite://")
        self.addCleanup(engine.dispose)
        init_db(engine)
        self.sessions = session_factory(engine)

        self.media = MediaStore(self.root)
        self.staging = StagingArea(self.media)
        self.manager = UserRecordManager(sessions=self.sessions, media=self.media, staging=self.staging)

    def staging_folders(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.name.startswith("temp_"))
