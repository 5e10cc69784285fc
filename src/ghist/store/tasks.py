"""Task documents: CRUD, filtering and per-status/milestone aggregation."""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING

from ghist.errors import ParseError, ValidationError
from ghist.models import (
    TASK_PRIORITIES,
    TASK_STATUSES,
    TASK_TYPES,
    MilestoneInfo,
    Task,
    TaskInput,
    TaskUpdate,
    task_ref,
    utc_now,
)
from ghist.store.files import DocumentDir

if TYPE_CHECKING:
    from ghist.store.events import EventStore

logger = logging.getLogger(__name__)

_CHOICES = {
    "status": TASK_STATUSES,
    "priority": TASK_PRIORITIES,
    "type": TASK_TYPES,
}


def _check_choices(values: dict[str, str]) -> None:
    for name, allowed in _CHOICES.items():
        if name in values and values[name] not in allowed:
            raise ValidationError(
                f"invalid {name} {values[name]!r} (expected one of: "
                f"{', '.join(repr(a) for a in allowed)})"
            )


class TaskStore:
    """Tasks stored as ``tasks/<id>.json``."""

    def __init__(self, docs: DocumentDir, events: EventStore) -> None:
        self.docs = docs
        self._events = events

    def _load(self, id: int) -> Task:
        return self._from_doc(id, self.docs.read(id))

    def _from_doc(self, id: int, data: dict) -> Task:
        try:
            return Task.from_dict(data)
        except ValueError as exc:
            raise ParseError(self.docs.doc_path(id), str(exc)) from exc

    # ── CRUD ─────────────────────────────────────────────────

    def create(self, data: TaskInput) -> Task:
        if not data.title.strip():
            raise ValidationError("title is required")
        status = data.status or "todo"
        _check_choices({"status": status, "priority": data.priority, "type": data.type})

        now = utc_now()
        with self.docs.allocate() as id:
            task = Task(
                id=id,
                title=data.title,
                description=data.description,
                status=status,
                milestone=data.milestone,
                priority=data.priority,
                type=data.type,
                ref_id=task_ref(id),
                legacy_id=data.legacy_id,
                created_at=now,
                updated_at=now,
            )
            self.docs.write(id, task.to_dict())
        logger.info("Created task %s: %s", task.ref_id, task.title)
        return task

    def get(self, id: int) -> Task:
        return self._load(id)

    def list(
        self,
        status: str = "",
        milestone: str = "",
        priority: str = "",
        type: str = "",
    ) -> list[Task]:
        """Tasks matching every non-empty filter, ascending by ID."""
        wanted = {
            k: v
            for k, v in (
                ("status", status),
                ("milestone", milestone),
                ("priority", priority),
                ("type", type),
            )
            if v
        }
        tasks = []
        for id, data in self.docs.read_all():
            task = self._from_doc(id, data)
            if all(getattr(task, k) == v for k, v in wanted.items()):
                tasks.append(task)
        return tasks

    def update(self, id: int, changes: TaskUpdate) -> Task:
        """Apply the supplied fields only.

        An update with no fields returns the stored task untouched, without
        rewriting it or advancing ``updated_at``.
        """
        values = changes.changes()
        if not values:
            return self._load(id)
        if "title" in values and not values["title"].strip():
            raise ValidationError("title cannot be empty")
        _check_choices(values)

        with self.docs.locked():
            task = self._load(id)
            for name, value in values.items():
                setattr(task, name, value)
            task.updated_at = max(utc_now(), task.updated_at)
            self.docs.write(id, task.to_dict())
        logger.debug("Updated task %d (%s)", id, ", ".join(sorted(values)))
        return task

    def delete(self, id: int) -> None:
        """Remove the task, then clear the reference on every event pointing at it."""
        with self.docs.locked():
            self.docs.remove(id)
        logger.info("Deleted task %s", task_ref(id))
        self._events.clear_task_reference(id)

    # ── Aggregation ──────────────────────────────────────────

    def counts_by_status(self) -> dict[str, int]:
        return dict(Counter(task.status for task in self.list()))

    def milestone_info(self) -> list[MilestoneInfo]:
        info: dict[str, MilestoneInfo] = {}
        for task in self.list():
            if not task.milestone:
                continue
            entry = info.setdefault(task.milestone, MilestoneInfo(name=task.milestone))
            entry.total += 1
            if task.status == "done":
                entry.done += 1
        return [info[name] for name in sorted(info)]
