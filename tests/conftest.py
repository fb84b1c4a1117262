"""Shared pytest fixtures for runbox tests."""

import asyncio
import json
import logging
import os
import shutil
import stat
import sys
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from runbox._logging import LIBRARY_LOGGER_NAME
from runbox.config import EngineConfig
from runbox.engine import Engine
from runbox.settings import Settings
from runbox.system_probes import check_docker_available

# ============================================================================
# Skip Markers
# ============================================================================

# Real-container round trips need a CLI and a reachable daemon.
skip_unless_docker = pytest.mark.skipif(
    not asyncio.run(check_docker_available("docker")),
    reason="Requires a reachable Docker daemon",
)

# Fallback javascript runs the host node binary directly.
skip_unless_node = pytest.mark.skipif(
    shutil.which("node") is None,
    reason="Requires node on PATH",
)

# ============================================================================
# Fake Docker CLI
# ============================================================================
# A stand-in `docker` executable so runner and probe tests exercise the real
# subprocess, timeout and cleanup paths without a daemon.
#
# Behavior:
#   version     prints a server version (fails in "daemon_down"; hangs in
#               "hang", and in "hang_with_child" behind a sleeping child)
#   pull        succeeds (fails in "pull_fail", fails once in "pull_flaky")
#   rm          succeeds
#   run         python pipelines run the mounted source with the host
#               interpreter; any other command is echoed to stdout
#
# Every invocation is appended to calls.jsonl as a JSON argv list.

_FAKE_DOCKER_TEMPLATE = '''#!{python}
import json
import subprocess
import sys
import time
from pathlib import Path

STATE = Path({state!r})
VALUE_FLAGS = {{"--name", "--label", "--user", "-v", "--tmpfs", "-w"}}


def mode():
    path = STATE / "mode"
    return path.read_text().strip() if path.exists() else ""


def run(args):
    host_dir = None
    i = 0
    while i < len(args) and args[i].startswith("-"):
        if args[i] == "-v":
            host_dir = args[i + 1].split(":")[0]
        i += 2 if args[i] in VALUE_FLAGS else 1
    command = args[i + 1:]
    if command[:1] == ["python"] and host_dir is not None:
        source = command[1].replace("/sandbox", host_dir, 1)
        return subprocess.run([sys.executable, source]).returncode
    print(" ".join(command))
    return 0


def main():
    args = sys.argv[1:]
    with open(STATE / "calls.jsonl", "a") as f:
        f.write(json.dumps(args) + "\\n")

    command = args[0] if args else ""
    current = mode()
    if command == "version":
        if current == "daemon_down":
            print("Cannot connect to the Docker daemon", file=sys.stderr)
            return 1
        if current == "hang":
            time.sleep(60)
        if current == "hang_with_child":
            # Grandchild inherits stdout, so the pipe outlives this process
            subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
            time.sleep(60)
        print("27.0.3")
        return 0
    if command == "pull":
        if current == "pull_fail":
            print("pull access denied", file=sys.stderr)
            return 1
        if current == "pull_flaky":
            marker = STATE / ("pulled-" + args[1].replace("/", "_").replace(":", "_"))
            if not marker.exists():
                marker.touch()
                print("TLS handshake timeout", file=sys.stderr)
                return 1
        return 0
    if command == "rm":
        return 0
    if command == "run":
        return run(args[1:])
    return 0


sys.exit(main())
'''


class FakeDocker:
    """Handle on a fake docker executable and its recorded invocations."""

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir
        self.path = state_dir / "docker"

    def install(self) -> None:
        self.path.write_text(_FAKE_DOCKER_TEMPLATE.format(python=sys.executable, state=str(self.state_dir)))
        self.path.chmod(self.path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    def set_mode(self, mode: str) -> None:
        (self.state_dir / "mode").write_text(mode)

    def calls(self) -> list[list[str]]:
        log = self.state_dir / "calls.jsonl"
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text().splitlines() if line]

    def calls_to(self, subcommand: str) -> list[list[str]]:
        return [call for call in self.calls() if call and call[0] == subcommand]


@pytest.fixture
def fake_docker(tmp_path: Path) -> FakeDocker:
    """Executable fake `docker` CLI.

    Usage:
        def test_something(fake_docker: FakeDocker) -> None:
            settings = Settings(docker_bin=str(fake_docker.path))
    """
    state_dir = tmp_path / "fake-docker"
    state_dir.mkdir()
    docker = FakeDocker(state_dir)
    docker.install()
    return docker


# ============================================================================
# Settings and Engine Fixtures
# ============================================================================


@pytest.fixture
def sessions_dir(tmp_path: Path) -> Path:
    """Temp root for session directories (created lazily by sessions)."""
    return tmp_path / "sessions"


@pytest.fixture
def sandbox_settings(fake_docker: FakeDocker, sessions_dir: Path) -> Settings:
    """Settings wired to the fake docker CLI."""
    return Settings(docker_bin=str(fake_docker.path), temp_dir=sessions_dir)


@pytest.fixture
def fallback_settings(sessions_dir: Path) -> Settings:
    """Settings that force the fallback runner."""
    return Settings(force_fallback=True, temp_dir=sessions_dir)


@pytest.fixture
def engine_config() -> EngineConfig:
    """EngineConfig with short timeouts and no background pulls."""
    return EngineConfig(timeout_seconds=5, fallback_timeout_seconds=5, prefetch_images=False)


@pytest.fixture
async def sandbox_engine(engine_config: EngineConfig, sandbox_settings: Settings) -> AsyncGenerator[Engine, None]:
    """Started Engine using SandboxRunner against the fake docker CLI."""
    async with Engine(engine_config, sandbox_settings) as engine:
        yield engine


@pytest.fixture
async def fallback_engine(engine_config: EngineConfig, fallback_settings: Settings) -> AsyncGenerator[Engine, None]:
    """Started Engine using FallbackRunner."""
    async with Engine(engine_config, fallback_settings) as engine:
        yield engine


def leftover_artifacts(root: Path) -> list[str]:
    """Everything still present under a sessions root."""
    if not root.exists():
        return []
    return [os.path.relpath(p, root) for p in root.rglob("*")]


# ============================================================================
# Logging Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def _restore_library_logger():
    """Undo configure_logging() calls made by CLI tests."""
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    level = lib_logger.level
    handlers = list(lib_logger.handlers)
    yield
    for handler in list(lib_logger.handlers):
        if handler not in handlers:
            lib_logger.removeHandler(handler)
            handler.close()
    lib_logger.setLevel(level)
