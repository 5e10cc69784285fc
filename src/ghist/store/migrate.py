"""One-shot migration from the legacy ghist.sqlite database to JSON documents.

Safe to re-run: rows whose document already exists are skipped, and once the
database has been renamed to ghist.sqlite.bak there is nothing left to do.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ghist.errors import MigrationError, StoreError
from ghist.models import (
    DEFAULT_EVENT_TYPE,
    DEFAULT_METADATA,
    Event,
    Opportunity,
    Task,
    parse_timestamp,
    task_ref,
)
from ghist.store.files import DocumentDir

logger = logging.getLogger(__name__)

LEGACY_DB = "ghist.sqlite"
BACKUP_SUFFIX = ".bak"


@dataclass
class MigrationReport:
    """What a migration run did."""

    performed: bool = False
    written: dict[str, int] = field(default_factory=dict)
    skipped: dict[str, int] = field(default_factory=dict)
    backup_path: Path | None = None
    cleanup_error: MigrationError | None = None


def _has_table(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
    ).fetchone()
    return row is not None


def _text(row: dict[str, Any], key: str, default: str = "") -> str:
    value = row.get(key)
    return default if value is None else str(value)


def _timestamp(row: dict[str, Any], key: str):
    try:
        return parse_timestamp(row.get(key))
    except ValueError as exc:
        raise MigrationError(f"row {row.get('id')}: bad {key} {row.get(key)!r}") from exc


def _task_from_row(row: dict[str, Any]) -> Task:
    id = int(row["id"])
    return Task(
        id=id,
        title=_text(row, "title"),
        description=_text(row, "description"),
        plan=_text(row, "plan"),
        status=_text(row, "status", "todo") or "todo",
        milestone=_text(row, "milestone"),
        commit_hash=_text(row, "commit_hash"),
        priority=_text(row, "priority"),
        type=_text(row, "type"),
        ref_id=_text(row, "ref_id") or task_ref(id),
        legacy_id=_text(row, "legacy_id"),
        created_at=_timestamp(row, "created_at"),
        updated_at=_timestamp(row, "updated_at"),
    )


def _event_from_row(row: dict[str, Any]) -> Event:
    task_id = row.get("task_id")
    return Event(
        id=int(row["id"]),
        type=_text(row, "type", DEFAULT_EVENT_TYPE) or DEFAULT_EVENT_TYPE,
        message=_text(row, "message"),
        metadata=_text(row, "metadata", DEFAULT_METADATA) or DEFAULT_METADATA,
        task_id=None if task_id is None else int(task_id),
        created_at=_timestamp(row, "created_at"),
    )


def _opportunity_from_row(row: dict[str, Any]) -> Opportunity:
    return Opportunity(
        id=int(row["id"]),
        name=_text(row, "name"),
        notes=_text(row, "notes"),
        created_at=_timestamp(row, "created_at"),
        updated_at=_timestamp(row, "updated_at"),
    )


_KINDS: list[tuple[str, str, Callable[[dict[str, Any]], Any]]] = [
    ("tasks", "task", _task_from_row),
    ("events", "event", _event_from_row),
    ("opportunities", "opportunity", _opportunity_from_row),
]


def _migrate_table(
    conn: sqlite3.Connection,
    table: str,
    docs: DocumentDir,
    convert: Callable[[dict[str, Any]], Any],
    report: MigrationReport,
) -> None:
    if not _has_table(conn, table):
        logger.info("Legacy database has no %s table, skipping", table)
        return

    written = skipped = 0
    # SELECT * so that older schemas without plan, priority, type, ref_id or
    # legacy_id still load; absent columns take their defaults.
    for row in conn.execute(f"SELECT * FROM {table} ORDER BY id"):
        record = convert(dict(row))
        if docs.exists(record.id):
            skipped += 1
            continue
        docs.write(record.id, record.to_dict())
        written += 1
    report.written[table] = written
    report.skipped[table] = skipped


def migrate_legacy_database(root: Path) -> MigrationReport:
    """Convert ``<root>/ghist.sqlite`` into documents, then rename it to .bak.

    Raises MigrationError when a table cannot be read or a document cannot be
    written. A failed rename is reported in ``cleanup_error`` instead, since
    the documents are already on disk.
    """
    report = MigrationReport()
    db_path = root / LEGACY_DB
    if not db_path.is_file():
        return report

    logger.info("Migrating legacy database %s", db_path)
    dirs = {table: DocumentDir(root / table, kind) for table, kind, _ in _KINDS}
    for docs in dirs.values():
        try:
            docs.ensure()
        except StoreError as exc:
            raise MigrationError(f"creating {docs.path}: {exc}") from exc

    try:
        conn = sqlite3.connect(str(db_path))
    except sqlite3.Error as exc:
        raise MigrationError(f"opening {db_path}: {exc}") from exc

    with contextlib.closing(conn):
        conn.row_factory = sqlite3.Row
        for table, kind, convert in _KINDS:
            try:
                _migrate_table(conn, table, dirs[table], convert, report)
            except (sqlite3.Error, StoreError, ValueError, KeyError) as exc:
                raise MigrationError(f"migrating {table}: {exc}") from exc

    report.performed = True
    backup = db_path.with_name(db_path.name + BACKUP_SUFFIX)
    try:
        db_path.rename(backup)
        report.backup_path = backup
    except OSError as exc:
        report.cleanup_error = MigrationError(f"renaming {db_path} to {backup.name}: {exc}")
        return report

    logger.info(
        "Migrated %s to JSON documents (backup kept at %s): %s",
        db_path.name,
        backup.name,
        ", ".join(f"{n} {t}" for t, n in report.written.items()) or "nothing to copy",
    )
    return report
