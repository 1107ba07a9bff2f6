from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable

from .models import AppSettings

logger = logging.getLogger(__name__)


class SettingsStore:
    def __init__(self, *, path: Path) -> None:
        self._path = path
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppSettings:
        with self._lock:
            if not self._path.exists():
                return AppSettings()

            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
                return AppSettings()

            if not isinstance(raw, dict):
                return AppSettings()

            return AppSettings.from_persist_dict(raw)

    def save(self, settings: AppSettings) -> None:
        payload = settings.to_persist_dict()

        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
            tmp_path.replace(self._path)

    def update(self, *, mutator: Callable[[AppSettings], AppSettings]) -> AppSettings:
        with self._lock:
            current = self.load()
            updated = mutator(current)
            if not isinstance(updated, AppSettings):
                raise TypeError("mutator must return AppSettings")
            self.save(updated)
            return updated

    def set_value(self, *, key: str, value: Any) -> AppSettings:
        def mutate(settings: AppSettings) -> AppSettings:
            if not hasattr(settings, key):
                raise KeyError(key)
            setattr(settings, key, value)
            return settings

        return self.update(mutator=mutate)
