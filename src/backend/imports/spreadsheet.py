"""
Spreadsheet reading for bulk user import.

The first worksheet is read with openpyxl; row 1 holds the headers and every
following non-blank row becomes a SheetRow keyed by header text. Cell values
are converted to strings.
"""

from __future__ import annotations

import datetime
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from src.backend.errors import ParseError

HEADER_ROW = 1


@dataclass(frozen=True)
class SheetRow:
    """One data row: its sheet row number and its cells by header."""
    row_index: int
    cells: dict[str, str]


def cell_to_text(value: Any) -> Optional[str]:
    """String form of a cell value; None for empty cells."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    text = str(value).strip()
    return text or None


def read_spreadsheet(path: Path) -> list[SheetRow]:
    """
    Read data rows from the first worksheet.

    Args:
        path: Path to an .xlsx workbook.

    Returns:
        Data rows in sheet order, blank rows skipped.

    Raises:
        ParseError: If the file is unreadable or has no data rows.
    """
    try:
        with open(path, "rb") as fh:
            workbook = load_workbook(fh, read_only=True, data_only=True)
            try:
                rows = _read_rows(workbook)
            finally:
                workbook.close()
    except ParseError:
        raise
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as exc:
        raise ParseError(f"unreadable workbook ({exc.__class__.__name__})") from exc

    if not rows:
        raise ParseError("Excel file is empty or has no data")
    return rows


def _read_rows(workbook) -> list[SheetRow]:
    if not workbook.worksheets:
        raise ParseError("Excel file is empty or has no data")
    sheet = workbook.worksheets[0]

    headers: list[Optional[str]] = []
    rows: list[SheetRow] = []
    for row_index, values in enumerate(sheet.iter_rows(values_only=True), start=HEADER_ROW):
        if row_index == HEADER_ROW:
            headers = [cell_to_text(v) for v in values]
            continue

        cells: dict[str, str] = {}
        for header, value in zip(headers, values):
            text = cell_to_text(value)
            if header and text is not None:
                cells[header] = text
        if cells:
            rows.append(SheetRow(row_index=row_index, cells=cells))

    return rows
