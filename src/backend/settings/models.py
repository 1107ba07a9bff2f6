from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


DEFAULT_UPLOADS_ROOT = "uploads"
DEFAULT_DATABASE_URL = "sqlite:///data/users.db"
DEFAULT_UPLOADS_URL_PREFIX = "/uploads"
DEFAULT_PAGE_LIMIT = 10
DEFAULT_MAX_PAGE_LIMIT = 100
DEFAULT_STAGING_MAX_AGE_S = 24 * 60 * 60


def _int_or(value: Any, default: int, *, minimum: int = 1) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default


@dataclass
class AppSettings:
    uploads_root: str = DEFAULT_UPLOADS_ROOT
    database_url: str = DEFAULT_DATABASE_URL
    uploads_url_prefix: str = DEFAULT_UPLOADS_URL_PREFIX
    default_page_limit: int = DEFAULT_PAGE_LIMIT
    max_page_limit: int = DEFAULT_MAX_PAGE_LIMIT
    staging_max_age_s: int = DEFAULT_STAGING_MAX_AGE_S
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    def clamp_limit(self, limit: Any) -> int:
        """Page size from a query value, defaulted and capped."""
        return min(_int_or(limit, self.default_page_limit), self.max_page_limit)

    def to_persist_dict(self) -> dict[str, Any]:
        return {
            "version": 1,
            "uploads_root": self.uploads_root,
            "database_url": self.database_url,
            "uploads_url_prefix": self.uploads_url_prefix,
            "default_page_limit": self.default_page_limit,
            "max_page_limit": self.max_page_limit,
            "staging_max_age_s": self.staging_max_age_s,
            "cors_origins": list(self.cors_origins),
        }

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "AppSettings":
        raw_origins = data.get("cors_origins")
        if isinstance(raw_origins, list):
            cors_origins = [str(o) for o in raw_origins if str(o).strip()]
        else:
            cors_origins = ["*"]

        return cls(
            uploads_root=str(data.get("uploads_root") or DEFAULT_UPLOADS_ROOT),
            database_url=str(data.get("database_url") or DEFAULT_DATABASE_URL),
            uploads_url_prefix=str(data.get("uploads_url_prefix") or DEFAULT_UPLOADS_URL_PREFIX),
            default_page_limit=_int_or(data.get("default_page_limit"), DEFAULT_PAGE_LIMIT),
            max_page_limit=_int_or(data.get("max_page_limit"), DEFAULT_MAX_PAGE_LIMIT),
            staging_max_age_s=_int_or(data.get("staging_max_age_s"), DEFAULT_STAGING_MAX_AGE_S, minimum=0),
            cors_origins=cors_origins,
        )
