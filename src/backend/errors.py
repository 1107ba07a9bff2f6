"""
Error taxonomy shared by the user lifecycle modules.

Every error carries the HTTP status it maps to and a structured detail that
tells the caller how to fix the request. Internal details (paths, driver
messages) are only logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class FieldError:
    """One problem with one input field."""
    field: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "reason": self.reason}

    def __str__(self) -> str:
        return f"{self.field}: {self.reason}"


class UserError(Exception):
    """Base class for errors reported to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict[str, Any]:
        return {"success": False, "message": self.message}


class ValidationError(UserError):
    status_code = 400

    def __init__(self, errors: Iterable[FieldError], message: str = "Validation Error") -> None:
        self.errors = list(errors)
        super().__init__(message)

    @classmethod
    def single(cls, field: str, reason: str) -> "ValidationError":
        return cls([FieldError(field=field, reason=reason)])

    @property
    def fields(self) -> list[str]:
        return [e.field for e in self.errors]

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["errors"] = [e.to_dict() for e in self.errors]
        return detail

    def __str__(self) -> str:
        return f"{self.message}: " + ", ".join(str(e) for e in self.errors)


class ConflictError(UserError):
    """A unique field (email, phone, sequentialId) is already taken."""

    status_code = 400

    def __init__(self, field: str, value: Any = None) -> None:
        self.field = field
        self.value = value
        if value is not None:
            message = f"{field} '{value}' already exists"
        else:
            message = f"{field} already exists"
        super().__init__(message)

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["field"] = self.field
        return detail


class NotFoundError(UserError):
    status_code = 404

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__("User not found")


class MediaIOError(UserError):
    """Filesystem failure while writing, moving or deleting avatar files."""

    status_code = 500

    def __init__(self, reason: str, *, path: Optional[object] = None) -> None:
        self.reason = reason
        self.path = path
        super().__init__(f"Failed to store avatar file: {reason}")

    def to_detail(self) -> dict[str, Any]:
        # The path stays server-side
        return {"success": False, "message": "Failed to store avatar file"}


class ParseError(UserError):
    """Spreadsheet unreadable or empty."""

    status_code = 400

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Error processing Excel file: {reason}")
