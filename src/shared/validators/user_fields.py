"""
User field validation shared by the create, update, bulk and import paths.

Rules:
- firstName, lastName, email, phone, age are required (blank counts as missing)
- age must be a whole number between 0 and 120
- driverLicense is required when age >= 18 and dropped below 18
- email must look like local@domain.tld
- strings are trimmed, email is lower-cased
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

MIN_AGE = 0
MAX_AGE = 120
ADULT_AGE = 18

REQUIRED_TEXT_FIELDS = ("firstName", "lastName", "email", "phone")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_FIELD_LABELS = {
    "firstName": "First name",
    "lastName": "Last name",
    "email": "Email",
    "phone": "Phone",
    "age": "Age",
}


@dataclass
class UserFieldsResult:
    """Validation outcome: cleaned values on success, (field, reason) pairs otherwise."""

    values: dict[str, Any] = field(default_factory=dict)
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        return self.valid


def clean_text(value: Any) -> Optional[str]:
    """Trimmed string, or None for missing/blank values."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_age(value: Any) -> Optional[int]:
    """
    Parse an age value into an int.

    Accepts ints, whole floats ("25.0" as well as 25.0) and numeric strings.
    Returns None when the value is not a whole number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None

    text = clean_text(value)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() else None


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def validate_user_fields(data: Mapping[str, Any]) -> UserFieldsResult:
    """
    Validate a user payload keyed by API field names.

    Args:
        data: Mapping with firstName, lastName, email, phone, age, driverLicense.

    Returns:
        UserFieldsResult with cleaned values or every problem found.
    """
    result = UserFieldsResult()

    for name in REQUIRED_TEXT_FIELDS:
        text = clean_text(data.get(name))
        if text is None:
            result.errors.append((name, f"{_FIELD_LABELS[name]} is required"))
            continue
        result.values[name] = text

    email = result.values.get("email")
    if email is not None:
        email = email.lower()
        result.values["email"] = email
        if not is_valid_email(email):
            result.errors.append(("email", "Invalid email format"))

    raw_age = data.get("age")
    age: Optional[int] = None
    if raw_age is None or (isinstance(raw_age, str) and not raw_age.strip()):
        result.errors.append(("age", "Age is required"))
    else:
        age = parse_age(raw_age)
        if age is None or age < MIN_AGE or age > MAX_AGE:
            result.errors.append(("age", f"Invalid age ({raw_age})"))
            age = None
        else:
            result.values["age"] = age

    license_text = clean_text(data.get("driverLicense"))
    if age is not None:
        if age >= ADULT_AGE:
            if license_text is None:
                result.errors.append(("driverLicense", "Driver License is required for users 18 or older"))
            else:
                result.values["driverLicense"] = license_text
        else:
            result.values["driverLicense"] = None

    return result
