"""Directory watcher: poll directories and broadcast when they change.

Every interval the watched directories are fingerprinted (name, size and
mtime of each entry). Any difference from the previous sample triggers one
ChangeHub.broadcast(). It cannot tell what changed, only that something did,
and notification latency is bounded by the interval.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from pathlib import Path

from ghist.live.hub import ChangeHub

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.5  # seconds


def dir_fingerprint(dirs: Sequence[Path]) -> str:
    """A string that changes whenever an entry in ``dirs`` is created, deleted or modified.

    Dot-files (the lock file, in-flight temp writes), unreadable directories
    and entries that vanish mid-scan contribute nothing.
    """
    parts: list[str] = []
    for d in dirs:
        try:
            entries = sorted(os.scandir(d), key=lambda e: e.name)
        except OSError:
            continue
        for entry in entries:
            if entry.name.startswith("."):
                continue
            try:
                st = entry.stat()
            except OSError:
                continue
            parts.append(f"{entry.name}:{st.st_size}:{st.st_mtime_ns}|")
    return "".join(parts)


class DirectoryWatcher:
    """Poll ``dirs`` and broadcast on the hub when their fingerprint changes."""

    def __init__(
        self,
        hub: ChangeHub,
        dirs: Sequence[Path],
        interval: float = DEFAULT_INTERVAL,
    ) -> None:
        self.hub = hub
        self.dirs = [Path(d) for d in dirs]
        self.interval = interval
        self._last: str | None = None

    def check(self) -> bool:
        """Take one sample; broadcast and return True if it differs from the last."""
        return self._apply(dir_fingerprint(self.dirs))

    def _apply(self, fp: str) -> bool:
        if self._last is None:
            self._last = fp
            return False
        if fp == self._last:
            return False
        self._last = fp
        self.hub.broadcast()
        return True

    async def run(self, shutdown_event: asyncio.Event | None = None) -> None:
        """Poll until shutdown_event is set (or forever without one)."""
        logger.info(
            "DirectoryWatcher started (%.2fs) on %s",
            self.interval,
            ", ".join(str(d) for d in self.dirs),
        )
        self._last = await asyncio.to_thread(dir_fingerprint, self.dirs)
        while True:
            if shutdown_event:
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self.interval)
                    break
                except asyncio.TimeoutError:
                    pass
            else:
                await asyncio.sleep(self.interval)
            try:
                fp = await asyncio.to_thread(dir_fingerprint, self.dirs)
            except Exception as e:
                logger.error("Fingerprint error: %s", e)
                continue
            if self._apply(fp):
                logger.debug("Change detected, notified %d subscriber(s)", len(self.hub))
        logger.info("DirectoryWatcher stopped.")
