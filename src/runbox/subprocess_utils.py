"""Subprocess lifecycle utilities.

- BoundedTextBuffer: incremental UTF-8 capture that keeps at most N characters
- run_bounded_process: spawn, drain stdout/stderr concurrently, kill on timeout
- finalize_output: truncation markers and timeout notice -> RunOutput
- log_task_exception: done-callback for fire-and-forget tasks
"""

from __future__ import annotations

import asyncio
import codecs
from dataclasses import dataclass
from typing import TYPE_CHECKING

from runbox import constants
from runbox._logging import get_logger
from runbox.models import RunOutput
from runbox.platform_utils import ProcessWrapper

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

logger = get_logger(__name__)

# How long to wait for a killed child to be reaped
_REAP_TIMEOUT_SECONDS = 2.0


class BoundedTextBuffer:
    """Accumulates decoded text up to ``limit`` characters.

    Leading whitespace is dropped as it arrives and trailing whitespace is
    dropped on render, so the rendered text matches a stripped stream. Data
    past the limit is read and discarded (the pipe must keep draining);
    only non-whitespace overflow counts as truncation.
    """

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._parts: list[str] = []
        self._size = 0
        self._started = False
        self._overflowed = False
        self._closed = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def overflowed(self) -> bool:
        return self._overflowed

    def feed(self, data: bytes) -> None:
        self._append(self._decoder.decode(data))

    def close(self) -> None:
        """Flush any partial multi-byte sequence. Idempotent."""
        if not self._closed:
            self._closed = True
            self._append(self._decoder.decode(b"", final=True))

    def _append(self, text: str) -> None:
        if not self._started:
            text = text.lstrip()
            if not text:
                return
            self._started = True

        room = self._limit - self._size
        if room > 0:
            kept = text[:room]
            self._parts.append(kept)
            self._size += len(kept)
            text = text[room:]

        if text.strip():
            self._overflowed = True

    def render(self, marker: str) -> str:
        """Captured text; exactly ``limit`` chars plus ``marker`` when truncated."""
        text = "".join(self._parts)
        if self._overflowed:
            return text + marker
        return text.rstrip()


@dataclass
class ProcessOutcome:
    """Raw result of run_bounded_process()."""

    stdout: BoundedTextBuffer
    stderr: BoundedTextBuffer
    exit_code: int | None
    timed_out: bool


async def _drain(stream: asyncio.StreamReader | None, buffer: BoundedTextBuffer) -> None:
    if stream is None:
        return
    while chunk := await stream.read(constants.STREAM_READ_CHUNK_BYTES):
        buffer.feed(chunk)


async def run_bounded_process(
    argv: Sequence[str],
    *,
    timeout: float,
    max_output_length: int,
    process_name: str,
    context_id: str | None = None,
    stdin_data: bytes | None = None,
    env: Mapping[str, str] | None = None,
) -> ProcessOutcome:
    """Run ``argv`` to completion or until ``timeout`` expires.

    The child is started in its own session so the whole process group can
    be SIGKILLed on expiry. stdout and stderr are drained concurrently
    (a full 64KB pipe on one stream would otherwise stall the child while
    we block on the other).

    Raises:
        OSError: the executable could not be launched
    """
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=True,
        env=dict(env) if env is not None else None,
    )
    proc = ProcessWrapper(process)
    stdout = BoundedTextBuffer(max_output_length)
    stderr = BoundedTextBuffer(max_output_length)
    timed_out = False

    logger.debug(
        f"{process_name} started",
        extra={"context_id": context_id, "pid": proc.pid},
    )

    try:
        async with asyncio.timeout(timeout):
            async with asyncio.TaskGroup() as tg:
                if stdin_data is not None:
                    tg.create_task(proc.feed_stdin(stdin_data))
                tg.create_task(_drain(proc.stdout, stdout))
                tg.create_task(_drain(proc.stderr, stderr))
            await proc.wait()
    except TimeoutError:
        timed_out = True
        logger.warning(
            f"{process_name} exceeded {timeout:g}s, killing",
            extra={"context_id": context_id, "pid": proc.pid},
        )
        await _kill_and_reap(proc, process_name, context_id)
    except asyncio.CancelledError:
        await _kill_and_reap(proc, process_name, context_id)
        raise
    finally:
        stdout.close()
        stderr.close()

    return ProcessOutcome(stdout=stdout, stderr=stderr, exit_code=proc.returncode, timed_out=timed_out)


async def _kill_and_reap(proc: ProcessWrapper, process_name: str, context_id: str | None) -> None:
    await proc.kill_tree()
    try:
        await proc.wait_with_timeout(_REAP_TIMEOUT_SECONDS)
    except TimeoutError:
        logger.error(
            f"{process_name} did not exit after SIGKILL",
            extra={"context_id": context_id, "pid": proc.pid},
        )


def timeout_notice(timeout: float) -> str:
    return f"Execution timed out ({timeout:g} second limit)"


def finalize_output(outcome: ProcessOutcome, timeout: float) -> RunOutput:
    """Apply truncation markers and the timeout notice.

    The notice is appended after truncation so it always survives.
    """
    output = outcome.stdout.render(constants.OUTPUT_TRUNCATION_MARKER)
    error = outcome.stderr.render(constants.ERROR_TRUNCATION_MARKER)
    if outcome.timed_out:
        notice = timeout_notice(timeout)
        error = f"{error}\n{notice}" if error else notice
    return RunOutput(
        output=output,
        error=error,
        exit_code=outcome.exit_code,
        timed_out=outcome.timed_out,
    )


def log_task_exception(task: asyncio.Task[None]) -> None:
    """Log exceptions from background tasks.

    Callback for asyncio.Task.add_done_callback() so fire-and-forget work
    never fails silently.

    Usage:
        task = asyncio.create_task(some_coroutine())
        task.add_done_callback(log_task_exception)
    """
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task failed",
            extra={"task_name": task.get_name()},
            exc_info=exc,
        )
