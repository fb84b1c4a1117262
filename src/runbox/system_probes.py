"""Container runtime probes and image pre-fetch.

The health probe runs once when an Engine starts and decides between the
sandboxed and fallback runners. Pre-fetch is best-effort background work:
failures are logged and never affect the probe result.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from runbox import constants
from runbox._logging import get_logger
from runbox.exceptions import ImagePullError, IsolationUnavailableError
from runbox.subprocess_utils import run_bounded_process

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger(__name__)


async def _run_docker(docker_bin: str, *args: str, timeout: float) -> tuple[int, str, str]:
    """Run one docker CLI command; returns (exit code, stdout, stderr).

    Raises:
        OSError: docker_bin could not be launched
        TimeoutError: the command (or anything it spawned) outlived ``timeout``
    """
    outcome = await run_bounded_process(
        [docker_bin, *args],
        timeout=timeout,
        max_output_length=constants.MAX_OUTPUT_LENGTH,
        process_name=f"docker {args[0]}",
    )
    if outcome.timed_out or outcome.exit_code is None:
        raise TimeoutError(f"docker {args[0]} exceeded {timeout:g}s")
    return outcome.exit_code, outcome.stdout.render(""), outcome.stderr.render("")


async def require_docker(docker_bin: str, timeout: float = constants.HEALTH_PROBE_TIMEOUT_SECONDS) -> str:
    """Verify the Docker daemon answers and return its server version.

    `docker version` talks to the daemon, so a present CLI with a stopped
    daemon still fails here.

    Raises:
        IsolationUnavailableError: CLI missing, daemon unreachable, or probe timed out
    """
    try:
        returncode, stdout, stderr = await _run_docker(
            docker_bin, "version", "--format", "{{.Server.Version}}", timeout=timeout
        )
    except TimeoutError as e:
        raise IsolationUnavailableError(
            f"Docker health probe timed out after {timeout:g}s",
            context={"docker_bin": docker_bin},
        ) from e
    except OSError as e:
        raise IsolationUnavailableError(
            f"Docker CLI not available: {e}",
            context={"docker_bin": docker_bin},
        ) from e

    if returncode != 0:
        raise IsolationUnavailableError(
            f"Docker daemon not reachable: {stderr or 'unknown error'}",
            context={"docker_bin": docker_bin, "returncode": returncode},
        )
    return stdout


async def check_docker_available(docker_bin: str, timeout: float = constants.HEALTH_PROBE_TIMEOUT_SECONDS) -> bool:
    """Boolean form of require_docker(); logs the reason on failure."""
    try:
        version = await require_docker(docker_bin, timeout)
    except IsolationUnavailableError as e:
        logger.warning(e.message, extra=e.context)
        return False
    logger.info("Docker is available", extra={"docker_server_version": version})
    return True


async def pull_image(docker_bin: str, image: str, timeout: float = constants.IMAGE_PULL_TIMEOUT_SECONDS) -> None:
    """Pull one image.

    Raises:
        ImagePullError: docker exited non-zero
        TimeoutError: pull exceeded ``timeout``
    """
    logger.info(f"Pulling Docker image: {image}")
    returncode, _, stderr = await _run_docker(docker_bin, "pull", image, timeout=timeout)
    if returncode != 0:
        raise ImagePullError(f"Failed to pull {image}: {stderr}", context={"image": image, "returncode": returncode})
    logger.info(f"Successfully pulled {image}")


async def prefetch_images(
    docker_bin: str,
    images: Iterable[str],
    max_attempts: int = constants.IMAGE_PULL_MAX_ATTEMPTS,
) -> dict[str, bool]:
    """Pull each image with retries; never raises for pull failures.

    Returns:
        Mapping of image -> whether it was pulled
    """
    results: dict[str, bool] = {}
    for image in dict.fromkeys(images):
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_random_exponential(multiplier=1, max=30),
                retry=retry_if_exception_type((ImagePullError, TimeoutError)),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    await pull_image(docker_bin, image)
            results[image] = True
        except (ImagePullError, TimeoutError, OSError) as e:
            logger.error(f"Failed to pull {image}", extra={"image": image, "error": str(e)})
            results[image] = False
    return results
