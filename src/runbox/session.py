"""ExecutionSession - the scope of one execution request.

A session is minted per request, owns a directory named after its id under
the configured temp root, and is discarded after cleanup. Ids are uuid4 hex
strings and are never reused, so concurrent sessions cannot collide on
file names or container names.

Lifecycle:
    - create() mints the id (no filesystem side effects)
    - materialize() writes the guest source into <temp_dir>/<id>/
    - cleanup() removes everything under <temp_dir>/<id>/
"""

from __future__ import annotations

import asyncio
import os
import stat
from pathlib import Path
from uuid import uuid4

import aiofiles
import aiofiles.os

from runbox import constants
from runbox._logging import get_logger
from runbox.exceptions import CleanupError
from runbox.models import ExecutionState
from runbox.resource_cleanup import cleanup_directory

logger = get_logger(__name__)

# Readable by the unprivileged container user; never writable by it.
_DIR_MODE = stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH
_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH


class ExecutionSession:
    """Ephemeral per-request scope.

    Attributes:
        session_id: Unique id (uuid4 hex)
        work_dir: Session-owned directory (created lazily by materialize())
        state: Current lifecycle state
    """

    def __init__(self, session_id: str, temp_root: Path) -> None:
        self.session_id = session_id
        self.work_dir = temp_root / session_id
        self.state = ExecutionState.RECEIVED
        self.source_path: Path | None = None

    @classmethod
    def create(cls, temp_root: Path) -> ExecutionSession:
        return cls(uuid4().hex, temp_root)

    @property
    def container_name(self) -> str:
        return f"{constants.CONTAINER_NAME_PREFIX}{self.session_id}"

    def transition(self, state: ExecutionState) -> None:
        logger.debug(
            f"session {self.state.value} -> {state.value}",
            extra={"context_id": self.session_id},
        )
        self.state = state

    async def materialize(self, filename: str, code: str) -> Path:
        """Write ``code`` to ``<work_dir>/<filename>`` and return the path."""
        await aiofiles.os.makedirs(self.work_dir, exist_ok=True)
        await asyncio.to_thread(os.chmod, self.work_dir, _DIR_MODE)

        path = self.work_dir / filename
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(code)
        await asyncio.to_thread(os.chmod, path, _FILE_MODE)

        self.source_path = path
        return path

    async def cleanup(self) -> None:
        """Remove every artifact this session created.

        Raises:
            CleanupError: something could not be removed (already logged)
        """
        if not await cleanup_directory(self.work_dir, self.session_id):
            raise CleanupError(
                "Failed to remove session artifacts",
                context={"session_id": self.session_id, "path": str(self.work_dir)},
            )
        self.transition(ExecutionState.CLEANED_UP)
