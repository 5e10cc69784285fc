"""Server process: board API plus live updates.

Usage: python -m ghist serve

Manages:
- The aiohttp site (API + event stream)
- DirectoryWatcher over tasks/ and events/ feeding the ChangeHub
- PID file in .ghist/ (one server per project)
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from aiohttp import web

from ghist.config import GhistConfig, load_config
from ghist.live import ChangeHub, DirectoryWatcher
from ghist.project import detect_github_repo, find_root, ghist_dir
from ghist.server import GhistServer
from ghist.store import Store

logger = logging.getLogger(__name__)

PID_FILE = "server.pid"


class GhistDaemon:
    """Long-running server for one project."""

    def __init__(self, config: GhistConfig | None = None, store: Store | None = None) -> None:
        self.config = config or load_config()
        if store is None:
            project_root = find_root(self.config.project_dir)
            store = Store(ghist_dir(project_root))
        self.store = store
        self.hub = ChangeHub()
        self.pid_file = self.store.root / PID_FILE
        self._shutdown_event = asyncio.Event()
        self._runner: web.AppRunner | None = None

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.pid_file.exists():
            self.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.pid_file.exists():
            return
        try:
            pid = int(self.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
        except (ProcessLookupError, ValueError):
            # Stale PID file
            self._remove_pid()
            return
        except PermissionError:
            pass  # Alive, owned by another user
        print(f"ghist server already running (pid={pid}). Exiting.", file=sys.stderr)
        sys.exit(1)

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self.stop()

    def stop(self) -> None:
        self._shutdown_event.set()

    # ── Build components ─────────────────────────────────────

    def build_app(self) -> web.Application:
        repo_url = detect_github_repo(self.store.root.parent)
        server = GhistServer(
            self.store,
            self.hub,
            dev=self.config.server.dev,
            repo_url=repo_url,
        )
        return server.create_app()

    async def _start_site(self) -> None:
        # Cancel event-stream handlers as soon as their client disconnects.
        self._runner = web.AppRunner(self.build_app(), handler_cancellation=True)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.server.host, self.config.server.port)
        await site.start()
        logger.info(
            "ghist server listening on http://%s:%d",
            self.config.server.host,
            self.config.server.port,
        )

    # ── Main run loop ────────────────────────────────────────

    async def run(self) -> None:
        self._check_existing()
        self._write_pid()
        self._setup_signals()

        watcher = DirectoryWatcher(self.hub, self.store.watch_dirs, self.config.watch.interval)
        try:
            await self._start_site()
            if self.config.server.dev:
                logger.info("Dev mode: CORS enabled")
            await watcher.run(self._shutdown_event)
        except asyncio.CancelledError:
            pass
        finally:
            if self._runner is not None:
                await self._runner.cleanup()
            self._remove_pid()
            logger.info("ghist server stopped.")
