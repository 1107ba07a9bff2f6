from __future__ import annotations

from typing import Any, Mapping

from src.backend.errors import FieldError, ValidationError
from src.shared.validators.user_fields import validate_user_fields

from .models import UserFields


def require_user_fields(data: Mapping[str, Any]) -> UserFields:
    """
    Validate an API payload into UserFields.

    Raises:
        ValidationError: Listing every field problem found.
    """
    result = validate_user_fields(data)
    if not result:
        raise ValidationError(FieldError(field=f, reason=r) for f, r in result.errors)

    values = result.values
    return UserFields(
        first_name=values["firstName"],
        last_name=values["lastName"],
        email=values["email"],
        phone=values["phone"],
        age=values["age"],
        driver_license=values.get("driverLicense"),
    )


def merge_user_fields(current: UserFields, updates: Mapping[str, Any]) -> dict[str, Any]:
    """
    Overlay supplied values on the stored ones.

    Missing or blank values keep the stored value; driverLicense can be
    cleared by sending it explicitly (even empty).
    """
    merged = current.to_api_dict()
    merged.setdefault("driverLicense", None)
    for name in ("firstName", "lastName", "email", "phone", "age"):
        value = updates.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        merged[name] = value
    if "driverLicense" in updates:
        merged["driverLicense"] = updates["driverLicense"]
    return merged
