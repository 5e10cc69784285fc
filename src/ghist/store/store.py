"""Store facade: one project's .ghist directory.

Layout:
    .ghist/
    ├── tasks/<id>.json              # One document per task
    ├── events/<id>.json             # Timeline, independent ID space
    ├── opportunities/<id>.json
    ├── settings.json                # {"milestone_order": [...]}
    ├── current_context.json         # Snapshot for agents (see ghist.project)
    └── ghist.sqlite.bak             # Legacy database, after migration

Opening a store migrates a legacy ghist.sqlite first, then makes sure the
directory layout exists.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ghist.errors import StoreIOError
from ghist.models import StatusSummary
from ghist.store.events import EventStore
from ghist.store.files import DocumentDir
from ghist.store.migrate import MigrationReport, migrate_legacy_database
from ghist.store.opportunities import OpportunityStore
from ghist.store.settings import Settings
from ghist.store.tasks import TaskStore

logger = logging.getLogger(__name__)

TASKS_DIR = "tasks"
EVENTS_DIR = "events"
OPPORTUNITIES_DIR = "opportunities"


class Store:
    """Read/write access to every document kind under ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreIOError("creating", self.root, str(exc)) from exc

        self.migration: MigrationReport = migrate_legacy_database(self.root)
        if self.migration.cleanup_error is not None:
            logger.warning("Legacy migration incomplete: %s", self.migration.cleanup_error)

        event_docs = DocumentDir(self.root / EVENTS_DIR, "event")
        task_docs = DocumentDir(self.root / TASKS_DIR, "task")
        opportunity_docs = DocumentDir(self.root / OPPORTUNITIES_DIR, "opportunity")
        for docs in (task_docs, event_docs, opportunity_docs):
            docs.ensure()

        self.events = EventStore(event_docs)
        self.tasks = TaskStore(task_docs, self.events)
        self.opportunities = OpportunityStore(opportunity_docs)
        self.settings = Settings(self.root)
        self.settings.ensure()

    @property
    def watch_dirs(self) -> list[Path]:
        """Directories whose changes clients care about."""
        return [self.tasks.docs.path, self.events.docs.path]

    def status_summary(self, recent: int = 5) -> StatusSummary:
        counts = self.tasks.counts_by_status()
        return StatusSummary(
            total_tasks=sum(counts.values()),
            tasks_by_status=counts,
            milestones=self.tasks.milestone_info(),
            recent_events=self.events.list_all(recent),
        )
