"""Tests for the legacy SQLite migration."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from ghist.errors import MigrationError
from ghist.models import TaskInput
from ghist.store import Store, migrate_legacy_database

SCHEMA = """
CREATE TABLE tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT DEFAULT '',
    plan TEXT DEFAULT '',
    status TEXT DEFAULT 'todo',
    milestone TEXT DEFAULT '',
    commit_hash TEXT DEFAULT '',
    priority TEXT DEFAULT '',
    type TEXT DEFAULT '',
    ref_id TEXT DEFAULT '',
    legacy_id TEXT DEFAULT '',
    created_at DATETIME,
    updated_at DATETIME
);
CREATE TABLE events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT DEFAULT 'log',
    message TEXT NOT NULL,
    metadata TEXT DEFAULT '{}',
    task_id INTEGER,
    created_at DATETIME
);
CREATE TABLE opportunities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    notes TEXT DEFAULT '',
    created_at DATETIME,
    updated_at DATETIME
);
"""


def make_legacy_db(root: Path, schema: str = SCHEMA) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    db_path = root / "ghist.sqlite"
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(schema)
        conn.commit()
    finally:
        conn.close()
    return db_path


def insert(db_path: Path, sql: str, *params) -> None:
    conn = sqlite3.connect(db_path)
    try:
        conn.execute(sql, params)
        conn.commit()
    finally:
        conn.close()


def read_doc(root: Path, kind: str, id: int) -> dict:
    return json.loads((root / kind / f"{id}.json").read_text(encoding="utf-8"))


@pytest.fixture
def legacy(tmp_path: Path) -> Path:
    root = tmp_path / ".ghist"
    db = make_legacy_db(root)
    insert(
        db,
        "INSERT INTO tasks (id, title, status, milestone, ref_id, created_at, updated_at)"
        " VALUES (?, ?, ?, ?, ?, ?, ?)",
        3, "Migrated", "in_progress", "v1", "GHST-3",
        "2024-01-15T10:30:00Z", "2024-01-16T08:00:00.123456789Z",
    )
    insert(
        db,
        "INSERT INTO tasks (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
        7, "No ref", "2024-02-01T00:00:00+02:00", "2024-02-01T00:00:00+02:00",
    )
    insert(
        db,
        "INSERT INTO events (id, type, message, metadata, task_id, created_at)"
        " VALUES (?, ?, ?, ?, ?, ?)",
        5, "decision", "Chose JSON", '{"why": "diffs"}', 3, "2024-01-15T11:00:00Z",
    )
    insert(
        db,
        "INSERT INTO events (id, message, task_id, created_at) VALUES (?, ?, ?, ?)",
        6, "Unlinked", None, "2024-01-15T12:00:00Z",
    )
    insert(
        db,
        "INSERT INTO opportunities (id, name, notes, created_at, updated_at)"
        " VALUES (?, ?, ?, ?, ?)",
        2, "Plugins", "later", "2024-03-01T09:00:00Z", "2024-03-01T09:00:00Z",
    )
    return root


class TestMigration:
    def test_no_database(self, tmp_path: Path):
        report = migrate_legacy_database(tmp_path)
        assert report.performed is False
        assert not (tmp_path / "tasks").exists()

    def test_migrates_all_kinds(self, legacy: Path):
        report = migrate_legacy_database(legacy)

        assert report.performed is True
        assert report.written == {"tasks": 2, "events": 2, "opportunities": 1}
        assert report.skipped == {"tasks": 0, "events": 0, "opportunities": 0}
        assert report.backup_path == legacy / "ghist.sqlite.bak"
        assert report.cleanup_error is None

        assert not (legacy / "ghist.sqlite").exists()
        assert (legacy / "ghist.sqlite.bak").exists()

        task = read_doc(legacy, "tasks", 3)
        assert task["title"] == "Migrated"
        assert task["status"] == "in_progress"
        assert task["milestone"] == "v1"
        assert task["ref_id"] == "GHST-3"
        assert task["created_at"] == "2024-01-15T10:30:00Z"
        assert task["updated_at"] == "2024-01-16T08:00:00.123456Z"

        event = read_doc(legacy, "events", 5)
        assert event["type"] == "decision"
        assert event["metadata"] == '{"why": "diffs"}'
        assert event["task_id"] == 3

        unlinked = read_doc(legacy, "events", 6)
        assert unlinked["task_id"] is None
        assert unlinked["type"] == "log"
        assert unlinked["metadata"] == "{}"

        assert read_doc(legacy, "opportunities", 2)["notes"] == "later"

    def test_preserves_ids_and_normalizes_offsets(self, legacy: Path):
        migrate_legacy_database(legacy)
        store = Store(legacy)
        task = store.tasks.get(7)
        assert task.ref_id == "GHST-7"
        assert task.status == "todo"
        assert task.created_at == datetime(2024, 1, 31, 22, 0, tzinfo=timezone.utc)

    def test_new_ids_continue_after_migrated(self, legacy: Path):
        store = Store(legacy)
        assert store.tasks.create(TaskInput(title="New")).id == 8
        assert store.events.create("log", "new").id == 7

    def test_rerun_is_noop(self, legacy: Path):
        migrate_legacy_database(legacy)
        before = (legacy / "tasks" / "3.json").read_text()

        report = migrate_legacy_database(legacy)

        assert report.performed is False
        assert (legacy / "tasks" / "3.json").read_text() == before
        assert (legacy / "ghist.sqlite.bak").exists()

    def test_existing_documents_are_kept(self, legacy: Path):
        (legacy / "tasks").mkdir()
        (legacy / "tasks" / "3.json").write_text('{"keep": true}', encoding="utf-8")

        report = migrate_legacy_database(legacy)

        assert report.written["tasks"] == 1
        assert report.skipped["tasks"] == 1
        assert json.loads((legacy / "tasks" / "3.json").read_text()) == {"keep": True}

    def test_missing_table_is_skipped(self, tmp_path: Path):
        root = tmp_path / ".ghist"
        db = make_legacy_db(
            root,
            "CREATE TABLE tasks (id INTEGER PRIMARY KEY, title TEXT,"
            " created_at DATETIME, updated_at DATETIME);",
        )
        insert(
            db,
            "INSERT INTO tasks VALUES (?, ?, ?, ?)",
            1, "Old schema", "2023-05-01 10:00:00", "2023-05-01 10:00:00",
        )

        report = migrate_legacy_database(root)

        assert report.written == {"tasks": 1}
        task = read_doc(root, "tasks", 1)
        assert task["plan"] == ""
        assert task["priority"] == ""
        assert task["ref_id"] == "GHST-1"
        assert task["created_at"] == "2023-05-01T10:00:00Z"

    def test_bad_timestamp_fails(self, tmp_path: Path):
        root = tmp_path / ".ghist"
        db = make_legacy_db(root)
        insert(
            db,
            "INSERT INTO tasks (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
            1, "Broken", "yesterday", "yesterday",
        )

        with pytest.raises(MigrationError):
            migrate_legacy_database(root)
        assert (root / "ghist.sqlite").exists()

    def test_store_open_runs_migration(self, legacy: Path):
        store = Store(legacy)
        assert store.migration.performed is True
        assert [t.id for t in store.tasks.list()] == [3, 7]
        assert [e.id for e in store.events.list_by_task(3)] == [5]
        assert store.opportunities.get(2).name == "Plugins"
        assert (legacy / "settings.json").exists()

    def test_backup_rename_failure_is_not_fatal(self, legacy: Path, monkeypatch, caplog):
        original_rename = Path.rename

        def rename(path: Path, target):
            if path.name == "ghist.sqlite":
                raise PermissionError("read-only directory")
            return original_rename(path, target)

        monkeypatch.setattr(Path, "rename", rename)

        with caplog.at_level("WARNING", logger="ghist.store.store"):
            store = Store(legacy)

        report = store.migration
        assert report.performed is True
        assert isinstance(report.cleanup_error, MigrationError)
        assert "read-only directory" in str(report.cleanup_error)
        assert report.backup_path is None
        assert "Legacy migration incomplete" in caplog.text
        assert [t.id for t in store.tasks.list()] == [3, 7]
        assert (legacy / "ghist.sqlite").exists()
