"""Project discovery and the current_context.json snapshot."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from ghist.errors import ProjectNotFoundError
from ghist.store import Store
from ghist.store.files import write_json

logger = logging.getLogger(__name__)

GHIST_DIR = ".ghist"
CONTEXT_FILE = "current_context.json"
CONTEXT_EVENTS = 10


def find_root(start: Path | str | None = None) -> Path:
    """Walk up from ``start`` to the nearest directory containing .ghist/."""
    p = Path(start or Path.cwd()).resolve()
    while True:
        if (p / GHIST_DIR).is_dir():
            return p
        if p == p.parent:
            raise ProjectNotFoundError(
                f"no {GHIST_DIR} directory found (walked up to filesystem root)"
            )
        p = p.parent


def ghist_dir(project_root: Path) -> Path:
    return project_root / GHIST_DIR


def open_store(start: Path | str | None = None) -> Store:
    """Open the store of the project enclosing ``start`` (default: cwd)."""
    return Store(ghist_dir(find_root(start)))


def init_project(project_root: Path | str | None = None) -> Store:
    """Set up ghist in ``project_root`` (default: cwd).

    Creates .ghist/ with its document layout, migrates a legacy database if
    one is there, and writes the first context snapshot. Running it again on
    an initialized project only refreshes the snapshot.
    """
    root = Path(project_root or Path.cwd()).resolve()
    store = Store(ghist_dir(root))
    write_context(store)
    logger.info("Initialized ghist in %s", store.root)
    return store


def build_context(store: Store) -> dict:
    events = store.events.list_all(CONTEXT_EVENTS)
    summary = store.status_summary(recent=CONTEXT_EVENTS)
    return {
        "tasks": [t.to_dict() for t in store.tasks.list()],
        "recent_events": [e.to_dict() for e in events],
        "summary": summary.to_dict(),
    }


def write_context(store: Store) -> Path:
    """Write the project snapshot agents read at session start."""
    path = store.root / CONTEXT_FILE
    write_json(path, build_context(store))
    logger.debug("Wrote %s", path)
    return path


def parse_github_url(remote: str) -> str:
    """Normalize an SSH or HTTPS GitHub remote to https://github.com/owner/repo."""
    if remote.startswith("git@github.com:"):
        path = remote[len("git@github.com:"):]
        return "https://github.com/" + path.removesuffix(".git")
    if "github.com/" in remote:
        return remote.removesuffix(".git")
    return ""


def detect_github_repo(project_root: Path) -> str:
    """GitHub URL of the origin remote, or "" when there is none."""
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            cwd=project_root,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return ""
    if result.returncode != 0:
        return ""
    return parse_github_url(result.stdout.strip())
