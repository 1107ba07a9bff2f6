"""
Bulk user import from spreadsheet rows.

Each row is normalized onto the canonical API field names, validated with
the same rules as a single create, and created on its own. Validation and
creation failures are collected per row; neither stops the batch.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath
from typing import Any, BinaryIO, Iterable, Mapping, Optional

from src.backend.errors import MediaIOError, UserError, ValidationError
from src.backend.fs.naming import generate_suffix, normalize_extension
from src.backend.fs.storage import atomic_write_stream
from src.backend.users.manager import UserRecordManager
from src.backend.users.models import UserRecord
from src.backend.users.validation import require_user_fields

from .spreadsheet import SheetRow, read_spreadsheet

logger = logging.getLogger(__name__)

# Header spellings compared after lower-casing and dropping non-alphanumerics,
# so "First Name", "firstName", "first_name" and "FirstName" all match.
HEADER_SYNONYMS = {
    "firstname": "firstName",
    "lastname": "lastName",
    "email": "email",
    "emailaddress": "email",
    "phone": "phone",
    "phonenumber": "phone",
    "age": "age",
    "driverlicense": "driverLicense",
    "driverslicense": "driverLicense",
}

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def canonical_field(header: str) -> Optional[str]:
    return HEADER_SYNONYMS.get(_NON_ALNUM.sub("", str(header).lower()))


def normalize_row(cells: Mapping[str, Any]) -> dict[str, Any]:
    """
    Map a row's headers onto canonical fields and drop empty values.

    Unknown headers are ignored. When two headers map to the same field the
    first non-empty one wins.
    """
    normalized: dict[str, Any] = {}
    for header, value in cells.items():
        name = canonical_field(header)
        if name is None or name in normalized:
            continue
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        normalized[name] = value
    return normalized


class FailureKind(str, Enum):
    VALIDATION = "validation"
    CREATION = "creation"


@dataclass
class RowFailure:
    row_index: int
    kind: FailureKind
    data: dict[str, Any]
    error: UserError

    @property
    def messages(self) -> list[str]:
        if isinstance(self.error, ValidationError):
            return [f"Row {self.row_index}: {e.reason}" for e in self.error.errors]
        return [f"Row {self.row_index}: {self.error.message}"]


@dataclass
class ImportReport:
    total_rows: int = 0
    created: list[tuple[int, UserRecord]] = field(default_factory=list)
    failures: list[RowFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.created)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def validation_failures(self) -> list[RowFailure]:
        return [f for f in self.failures if f.kind == FailureKind.VALIDATION]

    @property
    def creation_failures(self) -> list[RowFailure]:
        return [f for f in self.failures if f.kind == FailureKind.CREATION]

    @property
    def status_code(self) -> int:
        if not self.failures:
            return 201
        if not self.created:
            return 400
        return 207


def import_rows(manager: UserRecordManager, rows: Iterable[SheetRow]) -> ImportReport:
    """
    Validate and create one user per row.

    Args:
        manager: The user record manager used for creation.
        rows: Parsed spreadsheet rows.

    Returns:
        ImportReport with per-row successes and failures.
    """
    report = ImportReport()
    valid: list[tuple[int, dict[str, Any]]] = []

    for row in rows:
        report.total_rows += 1
        data = normalize_row(row.cells)
        try:
            require_user_fields(data)
        except ValidationError as exc:
            report.failures.append(RowFailure(row.row_index, FailureKind.VALIDATION, data, exc))
            continue
        valid.append((row.row_index, data))

    for row_index, data in valid:
        try:
            record = manager.create(data)
        except UserError as exc:
            logger.info("Error creating user from row %d: %s", row_index, exc)
            report.failures.append(RowFailure(row_index, FailureKind.CREATION, data, exc))
            continue
        report.created.append((row_index, record))

    logger.info(
        "Import complete: %d rows, %d created, %d validation failures, %d creation failures",
        report.total_rows,
        report.succeeded,
        len(report.validation_failures),
        len(report.creation_failures),
    )
    return report


def store_spreadsheet_upload(excel_dir: Path, original_name: str, source: BinaryIO) -> Path:
    """
    Save an uploaded spreadsheet as excel/users_bulk_<suffix><ext>.

    Raises:
        MediaIOError: If the file cannot be written.
    """
    ext = normalize_extension(PurePath(original_name or "").suffix)
    path = excel_dir / f"users_bulk_{generate_suffix()}{ext}"
    try:
        atomic_write_stream(path, source)
    except OSError as exc:
        raise MediaIOError(str(exc), path=path) from exc
    return path


def import_spreadsheet_file(manager: UserRecordManager, path: Path) -> ImportReport:
    """
    Parse and import a spreadsheet, then delete the file whatever happens.

    Raises:
        ParseError: If the spreadsheet cannot be read or has no data rows.
    """
    try:
        logger.info("Processing Excel file: %s", path.name)
        rows = read_spreadsheet(path)
        return import_rows(manager, rows)
    finally:
        delete_spreadsheet(path)


def delete_spreadsheet(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("Error deleting Excel file %s: %s", path, exc)
        return
    logger.info("Deleted Excel file: %s", path)
