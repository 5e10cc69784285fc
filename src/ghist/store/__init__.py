"""Per-project document store.

Every record is one JSON file; the filesystem is the source of truth and
nothing is cached between calls, so several processes can share a project.
"""

from ghist.store.migrate import MigrationReport, migrate_legacy_database
from ghist.store.store import Store

__all__ = ["MigrationReport", "Store", "migrate_legacy_database"]
