"""Tests for the server process lifecycle."""

import asyncio
import os
from pathlib import Path

import pytest

from ghist import daemon as daemon_mod
from ghist.config import GhistConfig, ServerConfig, WatchConfig
from ghist.daemon import GhistDaemon
from ghist.store import Store


@pytest.fixture
def config() -> GhistConfig:
    return GhistConfig(server=ServerConfig(port=0), watch=WatchConfig(interval=0.05))


@pytest.fixture
def daemon(tmp_path: Path, config: GhistConfig, monkeypatch) -> GhistDaemon:
    monkeypatch.setattr(daemon_mod, "detect_github_repo", lambda root: "")
    return GhistDaemon(config, store=Store(tmp_path / ".ghist"))


class TestGhistDaemon:
    def test_opens_store_from_project_dir(self, tmp_path: Path, config: GhistConfig):
        (tmp_path / ".ghist").mkdir()
        config.project_dir = tmp_path
        d = GhistDaemon(config)
        assert d.store.root == tmp_path.resolve() / ".ghist"
        assert d.pid_file == d.store.root / "server.pid"

    def test_stale_pid_file_removed(self, daemon: GhistDaemon):
        daemon.pid_file.write_text("not-a-pid")
        daemon._check_existing()
        assert not daemon.pid_file.exists()

    def test_running_server_exits(self, daemon: GhistDaemon):
        daemon.pid_file.write_text(str(os.getpid()))
        with pytest.raises(SystemExit):
            daemon._check_existing()
        assert daemon.pid_file.exists()

    def test_other_users_server_exits(self, daemon: GhistDaemon, monkeypatch, capsys):
        def kill(pid, sig):
            raise PermissionError("operation not permitted")

        monkeypatch.setattr(daemon_mod.os, "kill", kill)
        daemon.pid_file.write_text("4242")
        with pytest.raises(SystemExit) as exc:
            daemon._check_existing()
        assert exc.value.code == 1
        assert "already running (pid=4242)" in capsys.readouterr().err
        assert daemon.pid_file.exists()

    @pytest.mark.asyncio
    async def test_run_and_stop(self, daemon: GhistDaemon):
        task = asyncio.create_task(daemon.run())
        for _ in range(100):
            if daemon.pid_file.exists():
                break
            await asyncio.sleep(0.01)
        assert daemon.pid_file.read_text() == str(os.getpid())

        daemon.stop()
        await asyncio.wait_for(task, timeout=5)
        assert not daemon.pid_file.exists()
