"""Key/value settings stores.

Architectural role:
    The settings store is the single source of truth for provider selection,
    credentials, model choice, provider parameters and the saved prompt
    template. It is read on every dependent operation and never cached.

Implementations:
    - `InMemorySettingsStore`: process-local dict (tests, ephemeral sessions).
    - `JsonFileSettingsStore`: flat JSON object on disk, re-read on each `get`.

Failure behavior:
    A missing or unreadable JSON file behaves like an empty store; the read
    failure is logged. Write failures propagate.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class SettingsStore(Protocol):
    """Interface of the external key/value settings store."""

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class InMemorySettingsStore:
    """Dict-backed settings store."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any | None:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value


class JsonFileSettingsStore:
    """Settings persisted as one JSON object in a file."""

    def __init__(self, path: str) -> None:
        self.path = path

    def _load(self) -> dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to read settings file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any | None:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value

        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


def open_settings_store(path: str | None = None) -> SettingsStore:
    """Open the JSON store at `path` (or `VCA_SETTINGS_PATH`), else in-memory."""
    path = path or os.getenv("VCA_SETTINGS_PATH")
    if path:
        return JsonFileSettingsStore(path)
    return InMemorySettingsStore()
