"""Tests for ExecutionSession and artifact cleanup helpers.

Real filesystem under tmp_path, real subprocesses for container removal.
"""

import stat
from pathlib import Path

import pytest

from runbox.exceptions import CleanupError
from runbox.models import ExecutionState
from runbox.resource_cleanup import cleanup_container, cleanup_directory, cleanup_file
from runbox.session import ExecutionSession
from tests.conftest import FakeDocker

# ============================================================================
# ExecutionSession
# ============================================================================


class TestExecutionSession:
    def test_create_has_no_side_effects(self, tmp_path: Path) -> None:
        session = ExecutionSession.create(tmp_path / "root")
        assert session.state == ExecutionState.RECEIVED
        assert session.work_dir == tmp_path / "root" / session.session_id
        assert not session.work_dir.exists()

    def test_ids_unique(self, tmp_path: Path) -> None:
        ids = {ExecutionSession.create(tmp_path).session_id for _ in range(1000)}
        assert len(ids) == 1000

    def test_container_name(self, tmp_path: Path) -> None:
        session = ExecutionSession.create(tmp_path)
        assert session.container_name == f"runbox-{session.session_id}"

    async def test_materialize(self, tmp_path: Path) -> None:
        session = ExecutionSession.create(tmp_path / "root")
        path = await session.materialize("Main.java", "public class Main {}")

        assert path == session.work_dir / "Main.java"
        assert path.read_text() == "public class Main {}"
        assert session.source_path == path
        assert stat.S_IMODE(path.stat().st_mode) == 0o644
        assert stat.S_IMODE(session.work_dir.stat().st_mode) == 0o755

    async def test_materialize_unicode(self, tmp_path: Path) -> None:
        session = ExecutionSession.create(tmp_path)
        path = await session.materialize("x.py", "print('héllo ✓')")
        assert path.read_text(encoding="utf-8") == "print('héllo ✓')"

    async def test_cleanup_removes_directory(self, tmp_path: Path) -> None:
        session = ExecutionSession.create(tmp_path)
        await session.materialize("a.py", "print(1)")
        await session.cleanup()

        assert not session.work_dir.exists()
        assert session.state == ExecutionState.CLEANED_UP

    async def test_cleanup_without_materialize(self, tmp_path: Path) -> None:
        session = ExecutionSession.create(tmp_path)
        await session.cleanup()
        assert session.state == ExecutionState.CLEANED_UP

    async def test_cleanup_failure_raises(self, tmp_path: Path) -> None:
        session = ExecutionSession.create(tmp_path)
        await session.materialize("a.py", "print(1)")
        (session.work_dir / "nested").mkdir()

        with pytest.raises(CleanupError):
            await session.cleanup()


# ============================================================================
# Cleanup Helpers
# ============================================================================


class TestCleanupHelpers:
    async def test_cleanup_file_missing_ok(self, tmp_path: Path) -> None:
        assert await cleanup_file(tmp_path / "missing", "ctx") is True

    async def test_cleanup_file_none_ok(self) -> None:
        assert await cleanup_file(None, "ctx") is True

    async def test_cleanup_directory_missing_ok(self, tmp_path: Path) -> None:
        assert await cleanup_directory(tmp_path / "missing", "ctx") is True

    async def test_cleanup_directory_with_files(self, tmp_path: Path) -> None:
        target = tmp_path / "session"
        target.mkdir()
        (target / "a").write_text("a")
        (target / "b").write_text("b")

        assert await cleanup_directory(target, "ctx") is True
        assert not target.exists()

    async def test_cleanup_container(self, fake_docker: FakeDocker) -> None:
        assert await cleanup_container(str(fake_docker.path), "runbox-abc", "ctx") is True
        assert fake_docker.calls_to("rm") == [["rm", "-f", "runbox-abc"]]

    async def test_cleanup_container_missing_cli(self, tmp_path: Path) -> None:
        assert await cleanup_container(str(tmp_path / "no-docker"), "runbox-abc", "ctx") is False
