"""SandboxRunner - one locked-down Docker container per request.

Container restrictions:
    --network=none                   no network
    --memory / --memory-swap         hard memory ceiling, no swap
    --cpus                           fractional CPU share
    --pids-limit                     fork bomb prevention
    --user 1000:1000                 non-root identity
    --cap-drop=ALL                   no capabilities
    --security-opt=no-new-privileges no setuid escalation
    -v <session_dir>:/sandbox:ro     session source, read-only
    --tmpfs /tmp                     size-capped scratch space for compilers

The docker CLI client is started in its own process group. On timeout the
group is SIGKILLed and the container is force-removed by name, since
killing the client alone leaves the container running.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from runbox import constants
from runbox._logging import get_logger, session_logger
from runbox.models import RunOutput
from runbox.resource_cleanup import cleanup_container
from runbox.subprocess_utils import finalize_output, run_bounded_process

if TYPE_CHECKING:
    from runbox.config import EngineConfig
    from runbox.pipelines import LanguageProfile
    from runbox.session import ExecutionSession
    from runbox.settings import Settings

logger = get_logger(__name__)


class SandboxRunner:
    """Executes pipelines inside Docker containers."""

    name = "sandbox"

    def __init__(self, config: EngineConfig, settings: Settings) -> None:
        self._config = config
        self._settings = settings

    @property
    def timeout_seconds(self) -> float:
        return self._config.timeout_seconds

    def build_docker_args(self, pipeline: LanguageProfile, code: str, session: ExecutionSession) -> list[str]:
        """Full argv for `docker run` (docker binary included)."""
        memory = f"{self._config.memory_limit_mb}m"
        return [
            self._settings.docker_bin,
            "run",
            "--rm",
            "--name",
            session.container_name,
            "--label",
            f"{constants.CONTAINER_LABEL}={session.session_id}",
            "--network=none",
            f"--memory={memory}",
            f"--memory-swap={memory}",
            f"--cpus={self._config.cpu_limit:g}",
            f"--pids-limit={self._config.pids_limit}",
            "--user",
            self._settings.container_user,
            "--cap-drop=ALL",
            "--security-opt=no-new-privileges",
            "-v",
            f"{session.work_dir}:{constants.SANDBOX_MOUNT_PATH}:ro",
            "--tmpfs",
            f"{constants.BUILD_DIR}:rw,exec,nosuid,nodev,size={self._settings.tmpfs_size_mb}m",
            "-w",
            constants.BUILD_DIR,
            pipeline.image,
            *pipeline.command(code, session.session_id),
        ]

    async def run(self, pipeline: LanguageProfile, code: str, session: ExecutionSession) -> RunOutput:
        await session.materialize(pipeline.source_filename(code, session.session_id), code)
        argv = self.build_docker_args(pipeline, code, session)
        timeout = self._config.timeout_seconds

        log = session_logger(logger, session.session_id)
        log.debug("Starting container", extra={"image": pipeline.image, "container": session.container_name})

        try:
            outcome = await run_bounded_process(
                argv,
                timeout=timeout,
                max_output_length=self._config.max_output_length,
                context_id=session.session_id,
                process_name="docker",
            )
        except OSError as e:
            log.error("Docker execution failed", extra={"error": str(e)})
            return RunOutput(output="", error=f"Docker execution failed: {e}", exit_code=1)

        if outcome.timed_out:
            await cleanup_container(self._settings.docker_bin, session.container_name, session.session_id)

        return finalize_output(outcome, timeout)
