"""Entry point: python -m ghist [init|serve|status|migrate]

- "init":    Create .ghist/ in the current directory (or GHIST_DIR)
- "serve":   Board API + live updates for the enclosing project
- "status":  Print the project summary (add --json for machine output)
- "migrate": Convert a legacy ghist.sqlite into JSON documents
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

from ghist.config import GhistConfig, load_config
from ghist.errors import GhistError, log_exception
from ghist.models import StatusSummary


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _print_summary(summary: StatusSummary) -> None:
    print("Project Status")
    print("==============\n")
    line = f"Tasks: {summary.total_tasks} total"
    parts = [
        f"{summary.tasks_by_status[s]} {s}"
        for s in ("todo", "in_planning", "in_progress", "done", "blocked")
        if summary.tasks_by_status.get(s)
    ]
    if parts:
        line += f" ({', '.join(parts)})"
    print(line)

    if summary.milestones:
        print("\nMilestones:")
        for m in summary.milestones:
            pct = (m.done * 100) // m.total if m.total else 0
            print(f"  {m.name:<20} {m.done}/{m.total} ({pct}%)")

    if summary.recent_events:
        print("\nRecent Events:")
        for e in summary.recent_events:
            task_info = f" (task #{e.task_id})" if e.task_id is not None else ""
            print(f"  [{e.created_at:%Y-%m-%d %H:%M}] {e.message}{task_info}")


def _run_init(config: GhistConfig) -> None:
    from ghist.project import init_project

    print("Initializing ghist...")
    store = init_project(config.project_dir)
    if store.migration.backup_path is not None:
        print(f"  Migrated legacy database (backup kept at {store.migration.backup_path})")
    print(f"ghist initialized in {store.root}")


def _run_status(config: GhistConfig, as_json: bool) -> None:
    from ghist.project import open_store, write_context

    store = open_store(config.project_dir)
    summary = store.status_summary()
    write_context(store)
    if as_json:
        print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
    else:
        _print_summary(summary)


def _run_migrate(config: GhistConfig) -> None:
    from ghist.project import find_root, ghist_dir
    from ghist.store import migrate_legacy_database

    report = migrate_legacy_database(ghist_dir(find_root(config.project_dir)))
    if not report.performed:
        print("Nothing to migrate.")
        return
    for table, count in report.written.items():
        print(f"  {table}: {count} written, {report.skipped.get(table, 0)} already present")
    if report.cleanup_error:
        print(f"warning: {report.cleanup_error}", file=sys.stderr)
    else:
        print(f"  Backup kept at {report.backup_path}")


def _run_serve(config: GhistConfig) -> None:
    from ghist.daemon import GhistDaemon

    daemon = GhistDaemon(config)
    asyncio.run(daemon.run())


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "status"
    config = load_config()
    _setup_logging(config.log_level)

    try:
        if cmd == "init":
            _run_init(config)
        elif cmd == "serve":
            _run_serve(config)
        elif cmd == "status":
            _run_status(config, "--json" in sys.argv[2:])
        elif cmd == "migrate":
            _run_migrate(config)
        else:
            print("Usage: python -m ghist [init|serve|status|migrate]")
            print("  init     - Create .ghist/ in this directory")
            print("  serve    - Board API + live updates")
            print("  status   - Project summary (--json for JSON)")
            print("  migrate  - Convert ghist.sqlite to JSON documents")
            sys.exit(1)
    except GhistError as e:
        log_path = log_exception(context=cmd)
        print(f"error: {e} (details in {log_path})", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
