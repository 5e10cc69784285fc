"""Tests for record types, task references and timestamps."""

from datetime import datetime, timezone

import pytest

from ghist.models import (
    Event,
    Task,
    TaskUpdate,
    format_timestamp,
    parse_task_ref,
    parse_timestamp,
    task_ref,
)


class TestTaskRef:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("19", 19),
            ("1", 1),
            ("GHST-19", 19),
            ("ghst-19", 19),
            ("Ghst-5", 5),
            ("  GHST-42  ", 42),
            ("  7  ", 7),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_task_ref(text) == expected

    @pytest.mark.parametrize("text", ["abc", "GHST-", "GHST-abc", "", "FOO-19", "0", "-3", "GHST-0", "１２"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_task_ref(text)

    def test_format(self):
        assert task_ref(12) == "GHST-12"
        assert parse_task_ref(task_ref(12)) == 12


class TestTimestamps:
    def test_utc_z(self):
        value = parse_timestamp("2024-01-15T10:30:00Z")
        assert value == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_offset_normalized(self):
        value = parse_timestamp("2024-01-15T12:30:00+02:00")
        assert value == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert value.tzinfo == timezone.utc

    def test_nanoseconds_truncated(self):
        value = parse_timestamp("2024-01-15T10:30:00.123456789Z")
        assert value.microsecond == 123456

    def test_short_fraction(self):
        assert parse_timestamp("2024-01-15T10:30:00.5Z").microsecond == 500000

    def test_naive_is_utc(self):
        assert parse_timestamp("2024-01-15 10:30:00").tzinfo == timezone.utc

    @pytest.mark.parametrize("text", ["", "yesterday", None, 1700000000])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_timestamp(text)

    def test_format(self):
        assert format_timestamp(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)) == "2024-01-15T10:30:00Z"
        assert (
            format_timestamp(datetime(2024, 1, 15, 10, 30, 0, 120, tzinfo=timezone.utc))
            == "2024-01-15T10:30:00.000120Z"
        )


class TestDocuments:
    def test_task_defaults_for_missing_fields(self):
        task = Task.from_dict({
            "id": 4,
            "title": "Old document",
            "created_at": "2024-01-15T10:30:00Z",
            "updated_at": "2024-01-15T10:30:00Z",
        })
        assert task.status == "todo"
        assert task.plan == ""
        assert task.ref_id == ""

    def test_task_rejects_bad_types(self):
        with pytest.raises(ValueError):
            Task.from_dict({"id": True, "title": "x", "created_at": "2024-01-15T10:30:00Z"})
        with pytest.raises(ValueError):
            Task.from_dict({"id": 1, "title": 5, "created_at": "2024-01-15T10:30:00Z"})

    def test_event_task_id_null(self):
        event = Event(id=1, message="hello", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        data = event.to_dict()
        assert data["task_id"] is None
        assert Event.from_dict(data) == event

    def test_event_rejects_string_task_id(self):
        with pytest.raises(ValueError):
            Event.from_dict({"id": 1, "message": "m", "task_id": "3", "created_at": "2024-01-01T00:00:00Z"})


class TestTaskUpdate:
    def test_changes_only_set_fields(self):
        update = TaskUpdate(status="done", milestone="")
        assert update.changes() == {"status": "done", "milestone": ""}

    def test_from_dict(self):
        update = TaskUpdate.from_dict({"title": "New", "plan": None, "bogus": 1})
        assert update.changes() == {"title": "New"}

    def test_from_dict_rejects_non_string(self):
        with pytest.raises(ValueError):
            TaskUpdate.from_dict({"status": 3})
