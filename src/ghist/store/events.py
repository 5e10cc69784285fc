"""Event documents: the project timeline."""

from __future__ import annotations

import logging

from ghist.errors import NotFoundError, ParseError, StoreError, ValidationError
from ghist.models import DEFAULT_EVENT_TYPE, DEFAULT_METADATA, Event, utc_now
from ghist.store.files import DocumentDir

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20


def _newest_first(events: list[Event]) -> list[Event]:
    return sorted(events, key=lambda e: (e.created_at, e.id), reverse=True)


class EventStore:
    """Events stored as ``events/<id>.json``."""

    def __init__(self, docs: DocumentDir) -> None:
        self.docs = docs

    def _load(self, id: int) -> Event:
        return self._from_doc(id, self.docs.read(id))

    def _from_doc(self, id: int, data: dict) -> Event:
        try:
            return Event.from_dict(data)
        except ValueError as exc:
            raise ParseError(self.docs.doc_path(id), str(exc)) from exc

    def _all(self) -> list[Event]:
        return [self._from_doc(id, data) for id, data in self.docs.read_all()]

    def create(
        self,
        type: str,
        message: str,
        metadata: str = "",
        task_id: int | None = None,
    ) -> Event:
        if not message.strip():
            raise ValidationError("message is required")
        with self.docs.allocate() as id:
            event = Event(
                id=id,
                type=type or DEFAULT_EVENT_TYPE,
                message=message,
                metadata=metadata or DEFAULT_METADATA,
                task_id=task_id,
                created_at=utc_now(),
            )
            self.docs.write(id, event.to_dict())
        logger.debug("Logged event %d (%s)", id, event.type)
        return event

    def get(self, id: int) -> Event:
        return self._load(id)

    def list_all(self, limit: int = DEFAULT_LIMIT) -> list[Event]:
        """Most recent events first, at most ``limit`` (20 when limit <= 0)."""
        if limit <= 0:
            limit = DEFAULT_LIMIT
        return _newest_first(self._all())[:limit]

    def list_by_task(self, task_id: int) -> list[Event]:
        return _newest_first([e for e in self._all() if e.task_id == task_id])

    def clear_task_reference(self, task_id: int) -> int:
        """Drop ``task_id`` from every event referencing it.

        Best effort: an event that cannot be read or rewritten is logged and
        skipped. Returns the number of events updated.
        """
        cleared = 0
        with self.docs.locked():
            for id in self.docs.ids():
                try:
                    event = self._load(id)
                    if event.task_id != task_id:
                        continue
                    event.task_id = None
                    self.docs.write(id, event.to_dict())
                    cleared += 1
                except NotFoundError:
                    continue
                except (StoreError, OSError) as e:
                    logger.warning(
                        "Could not clear task %d from event %d: %s", task_id, id, e
                    )
        if cleared:
            logger.info("Cleared task %d from %d event(s)", task_id, cleared)
        return cleared
