"""FallbackRunner - execution without a container runtime.

Development-only degraded path, selected when the Docker health probe fails
at startup. Guarantees are much weaker than SandboxRunner:

    python      RestrictedPython context (_restricted_worker.py): guarded
                attribute access, allowlisted builtins and imports, clamped
                sleep, rlimits. The interpreter at RUNBOX_PYTHON_BIN must
                have RestrictedPython installed.
    javascript  the host `node` binary, run directly; only the timeout kill
                stands between guest code and the host
    java, cpp   not supported

Every invocation logs a warning.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from runbox import constants
from runbox._logging import get_logger, session_logger
from runbox.exceptions import FallbackNotSupportedError
from runbox.models import Language, RunOutput
from runbox.subprocess_utils import finalize_output, run_bounded_process

if TYPE_CHECKING:
    from runbox.config import EngineConfig
    from runbox.pipelines import LanguageProfile
    from runbox.session import ExecutionSession
    from runbox.settings import Settings

logger = get_logger(__name__)

RESTRICTED_WORKER_PATH = Path(__file__).with_name("_restricted_worker.py")

SUPPORTED_LANGUAGES: frozenset[Language] = frozenset({Language.PYTHON, Language.JAVASCRIPT})


class FallbackRunner:
    """Runs python and javascript on the host with minimal isolation."""

    name = "fallback"

    def __init__(self, config: EngineConfig, settings: Settings) -> None:
        self._config = config
        self._settings = settings

    @property
    def timeout_seconds(self) -> float:
        return self._config.fallback_timeout_seconds

    def build_command(self, language: Language, code: str) -> tuple[list[str], bytes]:
        """argv and stdin payload for ``language``.

        Raises:
            FallbackNotSupportedError: language has no fallback path
        """
        if language == Language.PYTHON:
            request = {
                "code": code,
                "sleep_cap": constants.FALLBACK_SLEEP_CAP_SECONDS,
                "memory_limit_mb": constants.FALLBACK_MEMORY_LIMIT_MB,
                # CPU rlimit is a backstop; the wall-clock kill fires first
                "cpu_seconds": int(self.timeout_seconds) + 1,
            }
            return [self._settings.python_bin, "-I", str(RESTRICTED_WORKER_PATH)], json.dumps(request).encode()
        if language == Language.JAVASCRIPT:
            return [self._settings.node_bin, "-"], code.encode()
        raise FallbackNotSupportedError(
            f"Fallback execution not supported for {language.value}",
            context={"language": language.value},
        )

    async def run(self, pipeline: LanguageProfile, code: str, session: ExecutionSession) -> RunOutput:
        log = session_logger(logger, session.session_id, language=pipeline.language.value)
        log.warning("Using fallback executor - this is less secure and should only be used for development")
        argv, stdin_data = self.build_command(pipeline.language, code)
        timeout = self.timeout_seconds

        try:
            outcome = await run_bounded_process(
                argv,
                timeout=timeout,
                max_output_length=self._config.max_output_length,
                context_id=session.session_id,
                process_name=f"fallback-{pipeline.language.value}",
                stdin_data=stdin_data,
            )
        except OSError as e:
            log.error("Fallback interpreter failed to start", extra={"error": str(e)})
            return RunOutput(output="", error=f"{pipeline.language.value} execution failed: {e}", exit_code=1)

        return finalize_output(outcome, timeout)
