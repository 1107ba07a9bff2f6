"""
Bulk user import from spreadsheets.

Provides:
- Spreadsheet row reading (spreadsheet.py)
- Header normalization, per-row validation and creation (pipeline.py)
"""

from __future__ import annotations

from .spreadsheet import SheetRow, read_spreadsheet
from .pipeline import (
    FailureKind,
    ImportReport,
    RowFailure,
    import_rows,
    import_spreadsheet_file,
    normalize_row,
    store_spreadsheet_upload,
)

__all__ = [
    "SheetRow",
    "read_spreadsheet",
    "FailureKind",
    "ImportReport",
    "RowFailure",
    "import_rows",
    "import_spreadsheet_file",
    "normalize_row",
    "store_spreadsheet_upload",
]
