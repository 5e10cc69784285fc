"""Document files: ID allocation, locking, atomic writes and directory scans.

Each entity kind lives in its own directory as ``<id>.json`` documents. Every
read-modify-write sequence on a directory (ID allocation + create, update,
delete, cascades) runs under an exclusive ``flock`` on ``<dir>/.lock`` so that
independent processes sharing the project never pick the same ID or lose an
update.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from uuid import uuid4

from ghist.errors import NotFoundError, ParseError, StoreIOError

logger = logging.getLogger(__name__)

LOCK_NAME = ".lock"
SUFFIX = ".json"


@contextlib.contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on ``path`` for the duration of the block."""
    try:
        fh = path.open("a+", encoding="utf-8")
    except OSError as exc:
        raise StoreIOError("locking", path, str(exc)) from exc
    try:
        fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
        yield
    finally:
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        finally:
            fh.close()


def document_id(path: Path) -> int | None:
    """ID encoded in a document filename, or None for anything else."""
    if path.suffix != SUFFIX:
        return None
    stem = path.stem
    if not stem.isascii() or not stem.isdigit():
        return None
    value = int(stem)
    return value if value > 0 else None


def scan_ids(directory: Path) -> list[int]:
    """All document IDs present in ``directory``, ascending."""
    try:
        entries = list(directory.iterdir())
    except OSError as exc:
        raise StoreIOError("listing", directory, str(exc)) from exc
    ids = [i for i in (document_id(p) for p in entries) if i is not None]
    ids.sort()
    return ids


def next_id(directory: Path) -> int:
    """Smallest integer above every ID present in ``directory`` (1 when empty)."""
    ids = scan_ids(directory)
    return ids[-1] + 1 if ids else 1


def decode_json(path: Path, text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(path, str(exc)) from exc


def read_json(path: Path) -> Any:
    """Decode one JSON file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise StoreIOError("reading", path, str(exc)) from exc
    return decode_json(path, text)


def write_json(path: Path, data: Any) -> None:
    """Write ``data`` as indented JSON, atomically replacing ``path``."""
    tmp_path = path.with_name(f".{path.name}.tmp.{os.getpid()}.{uuid4().hex[:6]}")
    try:
        tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
        tmp_path.replace(path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise StoreIOError("writing", path, str(exc)) from exc


class DocumentDir:
    """One entity kind's directory of ``<id>.json`` documents."""

    def __init__(self, path: Path, kind: str) -> None:
        self.path = path
        self.kind = kind

    def ensure(self) -> None:
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreIOError("creating", self.path, str(exc)) from exc

    def doc_path(self, id: int) -> Path:
        return self.path / f"{id}{SUFFIX}"

    def exists(self, id: int) -> bool:
        return self.doc_path(id).is_file()

    @contextlib.contextmanager
    def locked(self) -> Iterator[None]:
        """Serialize a read-modify-write sequence across processes."""
        with file_lock(self.path / LOCK_NAME):
            yield

    @contextlib.contextmanager
    def allocate(self) -> Iterator[int]:
        """Reserve the next ID; the caller must write it before the block ends."""
        with self.locked():
            new_id = next_id(self.path)
            logger.debug("Allocated %s id %d", self.kind, new_id)
            yield new_id

    def read(self, id: int) -> dict[str, Any]:
        path = self.doc_path(id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NotFoundError(self.kind, id) from exc
        except OSError as exc:
            raise StoreIOError("reading", path, str(exc)) from exc
        data = decode_json(path, text)
        if not isinstance(data, dict):
            raise ParseError(path, "document is not a JSON object")
        return data

    def write(self, id: int, data: dict[str, Any]) -> None:
        write_json(self.doc_path(id), data)

    def remove(self, id: int) -> None:
        path = self.doc_path(id)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise NotFoundError(self.kind, id) from exc
        except OSError as exc:
            raise StoreIOError("deleting", path, str(exc)) from exc

    def ids(self) -> list[int]:
        return scan_ids(self.path)

    def read_all(self) -> Iterator[tuple[int, dict[str, Any]]]:
        """Yield ``(id, document)`` for every document, ascending by ID.

        Documents removed between the scan and the read are skipped.
        """
        for id in self.ids():
            try:
                yield id, self.read(id)
            except NotFoundError:
                continue
