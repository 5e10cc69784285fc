"""Configuration loading from environment variables and ghist.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_CONFIG_FILENAME = "ghist.toml"
_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class ServerConfig:
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 4777
    dev: bool = False


@dataclass
class WatchConfig:
    """Directory watcher configuration."""

    interval: float = 0.5


@dataclass
class GhistConfig:
    """Top-level ghist configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    project_dir: Path | None = None
    log_level: str = "INFO"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def load_config(config_path: Path | None = None) -> GhistConfig:
    """Load configuration from environment variables and optional ghist.toml.

    Priority: environment variables > ghist.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.ghist/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".ghist" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    server_data = file_data.get("server", {})
    watch_data = file_data.get("watch", {})

    project_dir = os.getenv("GHIST_DIR", file_data.get("project_dir"))

    config = GhistConfig(
        server=ServerConfig(
            host=os.getenv("GHIST_HOST", server_data.get("host", "127.0.0.1")),
            port=int(os.getenv("GHIST_PORT", server_data.get("port", 4777))),
            dev=_env_bool("GHIST_DEV", bool(server_data.get("dev", False))),
        ),
        watch=WatchConfig(
            interval=float(os.getenv("GHIST_POLL_INTERVAL", watch_data.get("interval", 0.5))),
        ),
        project_dir=Path(project_dir) if project_dir else None,
        log_level=os.getenv("GHIST_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
