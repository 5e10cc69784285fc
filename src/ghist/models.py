"""Record types stored by ghist and their JSON document shape."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any

REF_PREFIX = "GHST-"

TASK_STATUSES = ("todo", "in_planning", "in_progress", "done", "blocked")
TASK_PRIORITIES = ("", "low", "medium", "high", "urgent")
TASK_TYPES = ("", "bug", "feature", "improvement", "chore")

DEFAULT_EVENT_TYPE = "log"
DEFAULT_METADATA = "{}"

_FRACTION_RE = re.compile(r"\.(\d+)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """RFC 3339 in UTC with a trailing Z."""
    value = value.astimezone(timezone.utc)
    if value.microsecond:
        return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp.

    Accepts a trailing Z, an explicit offset, and fractional seconds of any
    length (nanosecond values are truncated to microseconds). Naive values are
    taken as UTC. Raises ValueError on anything else.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError(f"invalid timestamp: {text!r}")
    s = text.strip()
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    s = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), s, count=1)
    value = datetime.fromisoformat(s)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def task_ref(id: int) -> str:
    return f"{REF_PREFIX}{id}"


def parse_task_ref(text: str) -> int:
    """Parse "19", "GHST-19", "ghst-19" or "  GHST-19  " into 19."""
    s = (text or "").strip()
    if s[: len(REF_PREFIX)].upper() == REF_PREFIX:
        s = s[len(REF_PREFIX):]
    if not s.isdigit() or not s.isascii():
        raise ValueError(f"invalid task id: {text!r}")
    value = int(s)
    if value <= 0:
        raise ValueError(f"invalid task id: {text!r}")
    return value


def _require_str(data: dict, key: str, default: str | None = None) -> str:
    value = data.get(key, default)
    if value is None:
        raise ValueError(f"missing field {key!r}")
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _require_int(data: dict, key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    return value


@dataclass
class Task:
    id: int
    title: str
    description: str = ""
    plan: str = ""
    status: str = "todo"
    milestone: str = ""
    commit_hash: str = ""
    priority: str = ""
    type: str = ""
    ref_id: str = ""
    legacy_id: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = format_timestamp(self.created_at)
        data["updated_at"] = format_timestamp(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        return cls(
            id=_require_int(data, "id"),
            title=_require_str(data, "title"),
            description=_require_str(data, "description", ""),
            plan=_require_str(data, "plan", ""),
            status=_require_str(data, "status", "todo"),
            milestone=_require_str(data, "milestone", ""),
            commit_hash=_require_str(data, "commit_hash", ""),
            priority=_require_str(data, "priority", ""),
            type=_require_str(data, "type", ""),
            ref_id=_require_str(data, "ref_id", ""),
            legacy_id=_require_str(data, "legacy_id", ""),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass
class TaskInput:
    """Fields accepted by task creation."""

    title: str
    description: str = ""
    status: str = ""
    milestone: str = ""
    priority: str = ""
    type: str = ""
    legacy_id: str = ""


@dataclass
class TaskUpdate:
    """Partial task update. None means "leave unchanged"."""

    title: str | None = None
    description: str | None = None
    plan: str | None = None
    status: str | None = None
    milestone: str | None = None
    commit_hash: str | None = None
    priority: str | None = None
    type: str | None = None
    legacy_id: str | None = None

    def changes(self) -> dict[str, str]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskUpdate:
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            if not isinstance(value, str):
                raise ValueError(f"field {key!r} must be a string")
            kwargs[key] = value
        return cls(**kwargs)


@dataclass
class Event:
    id: int
    message: str
    type: str = DEFAULT_EVENT_TYPE
    metadata: str = DEFAULT_METADATA
    task_id: int | None = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "metadata": self.metadata,
            "task_id": self.task_id,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        task_id = data.get("task_id")
        if task_id is not None and (isinstance(task_id, bool) or not isinstance(task_id, int)):
            raise ValueError("field 'task_id' must be an integer or null")
        return cls(
            id=_require_int(data, "id"),
            type=_require_str(data, "type", DEFAULT_EVENT_TYPE),
            message=_require_str(data, "message"),
            metadata=_require_str(data, "metadata", DEFAULT_METADATA),
            task_id=task_id,
            created_at=parse_timestamp(data.get("created_at")),
        )


@dataclass
class Opportunity:
    id: int
    name: str
    notes: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "notes": self.notes,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Opportunity:
        return cls(
            id=_require_int(data, "id"),
            name=_require_str(data, "name"),
            notes=_require_str(data, "notes", ""),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass
class MilestoneInfo:
    name: str
    total: int = 0
    done: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class StatusSummary:
    total_tasks: int
    tasks_by_status: dict[str, int]
    milestones: list[MilestoneInfo]
    recent_events: list[Event]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_tasks": self.total_tasks,
            "tasks_by_status": dict(self.tasks_by_status),
            "milestones": [m.to_dict() for m in self.milestones],
            "recent_events": [e.to_dict() for e in self.recent_events],
        }
