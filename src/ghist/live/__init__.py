"""Live updates for the server process: change hub + directory watcher."""

from ghist.live.hub import ChangeHub, Subscription
from ghist.live.watcher import DirectoryWatcher, dir_fingerprint

__all__ = ["ChangeHub", "DirectoryWatcher", "Subscription", "dir_fingerprint"]
