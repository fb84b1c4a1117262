"""Resource cleanup utilities for execution sessions.

Cleanup operations that log errors but don't raise.
Used by ExecutionSession and SandboxRunner.
"""

import asyncio
from pathlib import Path

import aiofiles.os

from runbox import constants
from runbox._logging import get_logger

logger = get_logger(__name__)


async def cleanup_file(
    file_path: Path | None,
    context_id: str,
    description: str = "file",
) -> bool:
    """Delete file.

    Silently succeeds if file doesn't exist.

    Args:
        file_path: Path to file to delete (None safe - returns immediately)
        context_id: Context for logging (session id)
        description: Description for logging (e.g., "source file")

    Returns:
        True if file cleaned successfully, False if issues occurred
    """
    if file_path is None:
        return True

    try:
        await aiofiles.os.remove(file_path)
        logger.debug(
            f"{description} deleted",
            extra={"context_id": context_id, "path": str(file_path)},
        )
        return True

    except FileNotFoundError:
        # aiofiles lacks missing_ok
        return True

    except PermissionError as e:
        logger.error(
            f"{description} permission denied",
            extra={"context_id": context_id, "path": str(file_path), "error": str(e)},
        )
        return False

    except OSError as e:
        logger.error(
            f"{description} OS error during deletion",
            extra={"context_id": context_id, "path": str(file_path), "error": str(e), "error_type": type(e).__name__},
        )
        return False


async def cleanup_directory(
    dir_path: Path | None,
    context_id: str,
) -> bool:
    """Delete a session directory and the files directly inside it.

    Session directories are flat; anything nested is reported as a failure
    rather than recursed into.

    Returns:
        True if directory cleaned successfully, False if issues occurred
    """
    if dir_path is None:
        return True

    try:
        entries = await aiofiles.os.listdir(dir_path)
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.error(
            "session directory unreadable",
            extra={"context_id": context_id, "path": str(dir_path), "error": str(e)},
        )
        return False

    ok = True
    for entry in entries:
        ok = await cleanup_file(dir_path / entry, context_id, description="session artifact") and ok

    try:
        await aiofiles.os.rmdir(dir_path)
        logger.debug(
            "session directory removed",
            extra={"context_id": context_id, "path": str(dir_path)},
        )
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(
            "session directory removal error",
            extra={"context_id": context_id, "path": str(dir_path), "error": str(e), "error_type": type(e).__name__},
        )
        ok = False

    return ok


async def cleanup_container(
    docker_bin: str,
    container_name: str,
    context_id: str,
    timeout: float = constants.CONTAINER_REMOVE_TIMEOUT_SECONDS,
) -> bool:
    """Force-remove a container (`docker rm -f`).

    Killing the docker CLI client does not stop the container it started,
    so timed-out runs need this explicitly.

    Returns:
        True if the container is gone (or never existed), False otherwise
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            docker_bin,
            "rm",
            "-f",
            container_name,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        logger.error(
            "container removal timed out",
            extra={"context_id": context_id, "container": container_name, "timeout": timeout},
        )
        return False
    except OSError as e:
        logger.error(
            "container removal failed to launch",
            extra={"context_id": context_id, "container": container_name, "error": str(e)},
        )
        return False

    if proc.returncode != 0:
        message = stderr.decode(errors="replace").strip()
        if "No such container" in message:
            return True
        logger.error(
            "container removal error",
            extra={"context_id": context_id, "container": container_name, "returncode": proc.returncode, "error": message},
        )
        return False

    logger.debug("container removed", extra={"context_id": context_id, "container": container_name})
    return True
