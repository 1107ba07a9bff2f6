"""
Tests for src/backend/imports/

Covers:
- Reading the first worksheet into rows keyed by header
- Header synonym normalization
- Per-row validation vs. creation failures
- Upload storage and cleanup
"""

import io
import unittest
from pathlib import Path

from openpyxl import Workbook

from src.backend.errors import ParseError
from src.backend.imports.pipeline import (
    FailureKind,
    import_rows,
    import_spreadsheet_file,
    normalize_row,
    store_spreadsheet_upload,
)
from src.backend.imports.spreadsheet import SheetRow, cell_to_text, read_spreadsheet

from user_fixtures import ManagerTestCase

HEADERS = ["First Name", "last_name", "EMAIL", "Phone Number", "Age", "Driver's License"]


def _write_workbook(path: Path, rows, headers=HEADERS) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append(list(row))
    wb.save(path)
    return path


class TestNormalizeRow(unittest.TestCase):
    def test_header_variants(self):
        row = normalize_row({
            "First Name": "Ada",
            "lastName": "Lovelace",
            "E-mail": "",
            "email_address": "ada@example.com",
            "PHONE": "555",
            "age": "36",
            "drivers_license": "D1",
            "Notes": "ignored",
        })
        self.assertEqual(row, {
            "firstName": "Ada",
            "lastName": "Lovelace",
            "email": "ada@example.com",
            "phone": "555",
            "age": "36",
            "driverLicense": "D1",
        })

    def test_first_non_empty_synonym_wins(self):
        row = normalize_row({"Email": "  ", "Email Address": "b@example.com", "email": "c@example.com"})
        self.assertEqual(row, {"email": "b@example.com"})

    def test_cell_to_text(self):
        self.assertEqual(cell_to_text(36.0), "36")
        self.assertEqual(cell_to_text("  x "), "x")
        self.assertIsNone(cell_to_text(""))
        self.assertIsNone(cell_to_text(None))


class TestReadSpreadsheet(ManagerTestCase):
    def test_rows_keyed_by_header_with_sheet_row_numbers(self):
        path = _write_workbook(self.root.parent / "users.xlsx", [
            ("Ada", "Lovelace", "ada@example.com", "555-1", 36, "D1"),
            (None, None, None, None, None, None),
            ("Bob", "Brown", "bob@example.com", "555-2", 12, None),
        ])

        rows = read_spreadsheet(path)

        self.assertEqual([r.row_index for r in rows], [2, 4])
        self.assertEqual(rows[0].cells["Age"], "36")
        self.assertNotIn("Driver's License", rows[1].cells)

    def test_header_only_sheet_is_parse_error(self):
        path = _write_workbook(self.root.parent / "empty.xlsx", [])
        with self.assertRaises(ParseError) as ctx:
            read_spreadsheet(path)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_garbage_file_is_parse_error(self):
        path = self.root.parent / "fake.xlsx"
        path.write_bytes(b"definitely not a workbook")
        with self.assertRaises(ParseError):
            read_spreadsheet(path)


class TestImport(ManagerTestCase):
    def test_row_missing_email_fails_validation_others_created(self):
        path = _write_workbook(self.root.parent / "users.xlsx", [
            ("Ada", "Lovelace", "ada@example.com", "555-1", 36, "D1"),
            ("Bob", "Brown", None, "555-2", 40, "D2"),
            ("Cy", "Young", "cy@example.com", "555-3", 16, None),
        ])

        report = import_spreadsheet_file(self.manager, path)

        self.assertEqual(report.total_rows, 3)
        self.assertEqual(report.succeeded, 2)
        self.assertEqual(report.failed, 1)
        self.assertEqual(report.status_code, 207)

        failure = report.failures[0]
        self.assertEqual(failure.kind, FailureKind.VALIDATION)
        self.assertEqual(failure.row_index, 3)
        self.assertEqual(failure.messages, ["Row 3: Email is required"])

        created = {row: record.email for row, record in report.created}
        self.assertEqual(created, {2: "ada@example.com", 4: "cy@example.com"})
        self.assertFalse(path.exists())

    def test_duplicate_is_creation_failure(self):
        rows = [
            SheetRow(2, {"firstName": "A", "lastName": "B", "email": "a@example.com", "phone": "1", "age": "20", "driverLicense": "D"}),
            SheetRow(3, {"firstName": "C", "lastName": "D", "email": "a@example.com", "phone": "2", "age": "20", "driverLicense": "D"}),
        ]
        report = import_rows(self.manager, rows)

        self.assertEqual(report.succeeded, 1)
        self.assertEqual([f.kind for f in report.failures], [FailureKind.CREATION])
        self.assertEqual(report.creation_failures[0].row_index, 3)

    def test_all_rows_invalid(self):
        report = import_rows(self.manager, [SheetRow(2, {"First Name": "A"})])
        self.assertEqual(report.status_code, 400)
        self.assertEqual(len(report.validation_failures), 1)

    def test_unreadable_upload_is_deleted(self):
        path = self.root.parent / "bad.xlsx"
        path.write_bytes(b"nope")
        with self.assertRaises(ParseError):
            import_spreadsheet_file(self.manager, path)
        self.assertFalse(path.exists())

    def test_store_spreadsheet_upload(self):
        excel_dir = self.root / "excel"
        path = store_spreadsheet_upload(excel_dir, "My Users.XLSX", io.BytesIO(b"data"))
        self.assertEqual(path.parent, excel_dir)
        self.assertTrue(path.name.startswith("users_bulk_"))
        self.assertEqual(path.suffix, ".xlsx")
        self.assertEqual(path.read_bytes(), b"data")


if __name__ == "__main__":
    unittest.main()
