"""Process management helpers.

Provides a PID-reuse safe wrapper around asyncio subprocesses that can
take down a child's whole process tree.
"""

import asyncio
import contextlib
import os
import signal

import psutil


class ProcessWrapper:
    """PID-reuse safe process wrapper using psutil.

    Wraps asyncio.subprocess.Process with psutil.Process for safer PID monitoring.
    Children are expected to be started with ``start_new_session=True`` so that
    the child's pid is also its process group id.
    """

    def __init__(self, async_proc: asyncio.subprocess.Process) -> None:
        self.async_proc = async_proc
        self.psutil_proc: psutil.Process | None = None

        if async_proc.pid:
            with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                self.psutil_proc = psutil.Process(async_proc.pid)

    @property
    def pid(self) -> int | None:
        """Process ID."""
        return self.async_proc.pid

    @property
    def returncode(self) -> int | None:
        """Process return code (None if still running)."""
        return self.async_proc.returncode

    @property
    def stdout(self):
        """Process stdout stream."""
        return self.async_proc.stdout

    @property
    def stderr(self):
        """Process stderr stream."""
        return self.async_proc.stderr

    async def wait(self) -> int:
        """Wait for process to complete.

        Returns:
            Process exit code
        """
        return await self.async_proc.wait()

    async def feed_stdin(self, data: bytes) -> None:
        """Write ``data`` to stdin and close it.

        A child that exits without reading everything is not an error.
        """
        stdin = self.async_proc.stdin
        if stdin is None:
            return
        with contextlib.suppress(BrokenPipeError, ConnectionResetError):
            stdin.write(data)
            await stdin.drain()
        stdin.close()

    async def kill_tree(self) -> None:
        """SIGKILL the process group and any stragglers that left it.

        Descendants are collected before the kill because they are
        reparented (and become invisible to children()) once the leader dies.
        """
        descendants: list[psutil.Process] = []
        if self.psutil_proc is not None:
            with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                descendants = await asyncio.to_thread(self.psutil_proc.children, recursive=True)

        if self.pid is not None:
            with contextlib.suppress(ProcessLookupError, PermissionError):
                os.killpg(self.pid, signal.SIGKILL)

        if self.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self.async_proc.kill()

        for child in descendants:
            with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                await asyncio.to_thread(child.kill)

    async def wait_with_timeout(self, timeout: float) -> int:
        """Wait for exit, raising TimeoutError after ``timeout`` seconds."""
        await asyncio.wait_for(self.wait(), timeout=timeout)
        return self.returncode  # type: ignore[return-value]
