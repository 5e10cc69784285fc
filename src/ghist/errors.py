"""Error types for the ghist store, plus the CLI error log."""

from __future__ import annotations

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class GhistError(Exception):
    """Base class for every error raised by ghist."""


class StoreError(GhistError):
    """Base class for record store failures."""


class NotFoundError(StoreError):
    """The requested ID has no document."""

    def __init__(self, kind: str, id: int) -> None:
        self.kind = kind
        self.id = id
        super().__init__(f"{kind} {id} not found")


class ParseError(StoreError):
    """A document exists but cannot be decoded."""

    def __init__(self, path: Path, reason: str = "") -> None:
        self.path = path
        msg = f"cannot decode {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StoreIOError(StoreError):
    """Filesystem failure while reading, writing or listing documents."""

    def __init__(self, action: str, path: Path, reason: str = "") -> None:
        self.action = action
        self.path = path
        msg = f"{action} {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ValidationError(StoreError, ValueError):
    """Input rejected before anything was written."""


class MigrationError(GhistError):
    """Legacy database could not be read, or its backup rename failed."""


class ProjectNotFoundError(GhistError):
    """No .ghist directory between the start directory and the filesystem root."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting GHIST_DIR."""
    project = os.environ.get("GHIST_DIR")
    if project:
        return Path(project) / ".ghist" / "ghist-errors.log"
    return Path.home() / ".ghist" / "ghist-errors.log"


def log_exception(context: str = "") -> Path:
    """Append the current exception's traceback to ghist-errors.log.

    Args:
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'=' * 60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write(traceback.format_exc())
    except OSError:
        pass  # the error log is best effort
    return log_path
