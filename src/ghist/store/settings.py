"""The settings.json singleton."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from ghist.errors import ParseError
from ghist.store.files import file_lock, read_json, write_json

SETTINGS_FILE = "settings.json"
LOCK_NAME = ".settings.lock"


class Settings:
    """Read-modify-write access to ``settings.json``.

    A missing file reads as an empty document.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.path = root / SETTINGS_FILE

    def ensure(self) -> None:
        """Create an empty settings document if there is none yet."""
        with file_lock(self.root / LOCK_NAME):
            if not self.path.exists():
                write_json(self.path, {})

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        data = read_json(self.path)
        if not isinstance(data, dict):
            raise ParseError(self.path, "settings is not a JSON object")
        return data

    def get_milestone_order(self) -> list[str]:
        order = self._read().get("milestone_order")
        if order is None:
            return []
        if not isinstance(order, list) or not all(isinstance(m, str) for m in order):
            raise ParseError(self.path, "milestone_order must be a list of strings")
        return list(order)

    def set_milestone_order(self, order: list[str]) -> list[str]:
        order = list(order)
        with file_lock(self.root / LOCK_NAME):
            data = self._read()
            data["milestone_order"] = order
            write_json(self.path, data)
        return order
