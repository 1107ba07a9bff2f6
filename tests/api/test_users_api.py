"""
HTTP tests for the users, maintenance and settings routers.
"""

import io
import json
import os
import tempfile
import time
import unittest
from pathlib import Path
from unittest.mock import patch

from fastapi.concurrency import run_in_threadpool
from fastapi.testclient import TestClient
from openpyxl import Workbook

from src.backend.app import create_app

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _form(n: int, **overrides):
    data = {
        "firstName": f"First{n}",
        "lastName": f"Last{n}",
        "email": f"user{n}@example.com",
        "phone": f"555-{n:04d}",
        "age": "30",
        "driverLicense": f"D{n}",
    }
    data.update(overrides)
    return data


def _xlsx(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(["First Name", "Last Name", "Email", "Phone", "Age", "Driver License"])
    for row in rows:
        ws.append(list(row))
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


class UsersApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        tmp = Path(self._tmpdir.name)
        self.uploads = tmp / "uploads"

        data_dir = tmp / "data"
        data_dir.mkdir()
        (data_dir / "config.json").write_text(json.dumps({
            "version": 1,
            "uploads_root": str(self.uploads),
            "database_url": f"sqlite:///{tmp / 'users.db'}",
        }), encoding="utf-8")

        self.app = create_app(data_dir)
        self.addCleanup(self.app.state.engine.dispose)
        self.client = TestClient(self.app)

    def create(self, n: int, **overrides) -> dict:
        resp = self.client.post("/api/users", json=_form(n, **overrides))
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()["data"]


class TestCreateAndRead(UsersApiTestCase):
    def test_create_json_and_get(self):
        resp = self.client.post("/api/users", json=_form(1, age=30))
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["message"], "User created successfully")
        user = body["data"]
        self.assertEqual(user["sequentialId"], 1)
        self.assertEqual(user["age"], 30)

        got = self.client.get(f"/api/users/{user['key']}")
        self.assertEqual(got.status_code, 200)
        self.assertEqual(got.json()["email"], "user1@example.com")

    def test_create_multipart_with_avatar_serves_file(self):
        resp = self.client.post(
            "/api/users",
            data=_form(1, isNewUser="true"),
            files={"avatar2": ("me.png", b"\x89PNG-bytes", "image/png")},
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        user = resp.json()["data"]
        self.assertTrue(user["avatar2"].startswith("1_avatar2_"))
        url = user["avatar2Url"]
        self.assertTrue(url.startswith("http://testserver/uploads/user_1/"))
        self.assertIsNone(user["avatar1Url"])

        served = self.client.get(url.replace("http://testserver", ""))
        self.assertEqual(served.status_code, 200)
        self.assertEqual(served.content, b"\x89PNG-bytes")

    def test_staging_and_excel_folders_are_not_served(self):
        (self.uploads / "temp_abc123").mkdir()
        (self.uploads / "temp_abc123" / "abc123_avatar1_1-2.png").write_bytes(b"staged")
        (self.uploads / "excel").mkdir(exist_ok=True)
        (self.uploads / "excel" / "users_bulk_1-2.xlsx").write_bytes(b"rows")

        self.assertEqual(self.client.get("/uploads/temp_abc123/abc123_avatar1_1-2.png").status_code, 404)
        self.assertEqual(self.client.get("/uploads/excel/users_bulk_1-2.xlsx").status_code, 404)

    def test_avatar_without_new_user_flag(self):
        resp = self.client.post(
            "/api/users",
            data=_form(1),
            files={"avatar1": ("me.png", b"x", "image/png")},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"]["errors"][0]["field"], "isNewUser")

    def test_rejected_file_type(self):
        resp = self.client.post(
            "/api/users",
            data=_form(1, isNewUser="true"),
            files={"avatar1": ("doc.pdf", b"x", "application/pdf")},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"]["message"], "File upload error")
        self.assertEqual(list(self.uploads.glob("user_*")), [])

    def test_validation_errors(self):
        resp = self.client.post("/api/users", json={"firstName": "Ada", "age": 18})
        self.assertEqual(resp.status_code, 400)
        detail = resp.json()["detail"]
        self.assertFalse(detail["success"])
        fields = [e["field"] for e in detail["errors"]]
        self.assertEqual(fields, ["lastName", "email", "phone", "driverLicense"])

    def test_duplicate_email(self):
        self.create(1)
        resp = self.client.post("/api/users", json=_form(2, email="USER1@example.com"))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"]["field"], "email")

    def test_unknown_user(self):
        resp = self.client.get("/api/users/doesnotexist")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"]["message"], "User not found")

    def test_bulk_create_partial(self):
        resp = self.client.post("/api/users", json=[_form(1), _form(2, email="bad")])
        self.assertEqual(resp.status_code, 207)
        body = resp.json()
        self.assertEqual(body["summary"], {"total": 2, "successful": 1, "failed": 1})
        self.assertEqual(body["created"][0]["user"]["sequentialId"], 1)
        self.assertEqual(body["failed"][0]["index"], 1)
        self.assertEqual(body["failed"][0]["errors"][0]["field"], "email")

    def test_list_pagination(self):
        for n in range(1, 4):
            self.create(n)
        resp = self.client.get("/api/users", params={"page": 2, "limit": 2})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["totalUsers"], 3)
        self.assertEqual(body["totalPages"], 2)
        self.assertEqual([u["sequentialId"] for u in body["data"]], [3])

        capped = self.client.get("/api/users", params={"limit": 1000}).json()
        self.assertEqual(capped["limit"], 100)

        filtered = self.client.get("/api/users", params={"email": "user2"}).json()
        self.assertEqual([u["sequentialId"] for u in filtered["data"]], [2])


class TestUpdateAndDelete(UsersApiTestCase):
    def test_put_json(self):
        user = self.create(1)
        resp = self.client.put(f"/api/users/{user['key']}", json={"firstName": "Grace"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["data"]["firstName"], "Grace")
        self.assertEqual(body["filesUploaded"], 0)
        self.assertEqual(body["userFolder"], "user_1")

    def test_put_multipart_replaces_avatar(self):
        user = self.create(1)
        resp = self.client.put(
            f"/api/users/{user['key']}",
            data={"lastName": "Hopper"},
            files={"avatar1": ("a.jpg", b"jpg", "image/jpeg")},
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        data = resp.json()["data"]
        self.assertEqual(data["lastName"], "Hopper")
        self.assertTrue(data["avatar1"].endswith(".jpg"))
        self.assertTrue((self.uploads / "user_1" / data["avatar1"]).is_file())

    def test_patch_avatar(self):
        user = self.create(1)
        resp = self.client.patch(
            f"/api/users/{user['key']}",
            data={"avatarField": "avatar3"},
            files={"avatar3": ("a.gif", b"gif", "image/gif")},
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        body = resp.json()
        self.assertEqual(body["updatedField"], "avatar3")
        self.assertTrue(body["data"]["avatar3"].startswith("1_avatar3_"))

        mismatch = self.client.patch(
            f"/api/users/{user['key']}",
            data={"avatarField": "avatar1"},
            files={"avatar3": ("a.gif", b"gif", "image/gif")},
        )
        self.assertEqual(mismatch.status_code, 400)

    def test_delete(self):
        user = self.create(1)
        self.client.patch(
            f"/api/users/{user['key']}",
            data={"avatarField": "avatar1"},
            files={"avatar1": ("a.png", b"png", "image/png")},
        )
        self.assertTrue((self.uploads / "user_1").is_dir())

        resp = self.client.delete(f"/api/users/{user['key']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["deletedUser"]["sequentialId"], 1)
        self.assertFalse((self.uploads / "user_1").exists())
        self.assertEqual(self.client.get(f"/api/users/{user['key']}").status_code, 404)
        self.assertEqual(self.client.delete(f"/api/users/{user['key']}").status_code, 404)


class TestExcelUpload(UsersApiTestCase):
    def test_upload_partial_success(self):
        content = _xlsx([
            ("Ada", "Lovelace", "ada@example.com", "555-1", 36, "D1"),
            ("Bob", "Brown", None, "555-2", 40, "D2"),
            ("Cy", "Young", "cy@example.com", "555-3", 16, None),
        ])
        resp = self.client.post(
            "/api/users/upload-excel",
            files={"excelFile": ("users.xlsx", content, XLSX_MIME)},
        )
        self.assertEqual(resp.status_code, 207, resp.text)
        body = resp.json()
        self.assertEqual(body["summary"], {"totalRows": 3, "successful": 2, "failed": 1})
        self.assertEqual([u["rowIndex"] for u in body["createdUsers"]], [2, 4])
        self.assertEqual(body["failedUsers"][0]["kind"], "validation")
        self.assertEqual(body["errors"], ["Row 3: Email is required"])
        self.assertEqual(list((self.uploads / "excel").iterdir()), [])

    def test_upload_file_work_runs_in_threadpool(self):
        offloaded = []

        async def recording(func, *args, **kwargs):
            offloaded.append(func.__name__)
            return await run_in_threadpool(func, *args, **kwargs)

        content = _xlsx([("Ada", "Lovelace", "ada@example.com", "555-1", 36, "D1")])
        with patch("src.backend.users.api.run_in_threadpool", new=recording):
            resp = self.client.post(
                "/api/users/upload-excel",
                files={"excelFile": ("users.xlsx", content, XLSX_MIME)},
            )
        self.assertEqual(resp.status_code, 201, resp.text)
        self.assertEqual(offloaded, ["store_spreadsheet_upload", "import_spreadsheet_file"])

    def test_upload_requires_excel_file(self):
        resp = self.client.post(
            "/api/users/upload-excel",
            files={"excelFile": ("users.csv", b"a,b", "text/csv")},
        )
        self.assertEqual(resp.status_code, 400)

        missing = self.client.post("/api/users/upload-excel", data={"other": "x"})
        self.assertEqual(missing.status_code, 400)

    def test_upload_unreadable_workbook(self):
        resp = self.client.post(
            "/api/users/upload-excel",
            files={"excelFile": ("users.xlsx", b"not a zip", XLSX_MIME)},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertTrue(resp.json()["detail"]["message"].startswith("Error processing Excel file"))


class TestMaintenanceAndSettings(UsersApiTestCase):
    def test_renumber(self):
        users = [self.create(n) for n in range(1, 4)]
        self.client.delete(f"/api/users/{users[0]['key']}")

        resp = self.client.post("/api/maintenance/renumber")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["mapping"], {"2": 1, "3": 2})

        again = self.client.post("/api/maintenance/renumber").json()
        self.assertEqual(again["renumbered"], 0)

    def test_prune_and_sweep(self):
        user = self.create(1)
        folder = self.uploads / "user_1"
        folder.mkdir(parents=True)
        (folder / "stray.png").write_bytes(b"x")

        pruned = self.client.post(f"/api/maintenance/users/{user['key']}/prune").json()
        self.assertEqual(pruned["removed"], ["stray.png"])

        stale = self.uploads / "temp_abc123"
        stale.mkdir()
        old = time.time() - 3600
        os.utime(stale, (old, old))
        (self.uploads / "temp_def456").mkdir()
        swept = self.client.post("/api/maintenance/sweep-staging", json={"max_age_s": 60}).json()
        self.assertEqual(swept["removed"], ["abc123"])

    def test_settings(self):
        resp = self.client.get("/api/settings")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["uploads_root"], str(self.uploads))
        self.assertEqual(body["limits"]["max_avatar_files"], 5)

        new_root = Path(self._tmpdir.name) / "elsewhere"
        updated = self.client.post("/api/settings/uploads-root", json={"uploads_root": str(new_root)})
        self.assertEqual(updated.status_code, 200)
        self.assertTrue(updated.json()["restart_required"])
        self.assertTrue(new_root.is_dir())


if __name__ == "__main__":
    unittest.main()
