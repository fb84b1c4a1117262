"""Engine - top-level entry point for code execution.

An Engine is constructed once at startup and shared by every caller. On
start it probes the Docker daemon once and picks the runner for its whole
lifetime: SandboxRunner when the probe succeeds, FallbackRunner otherwise.
Image pre-fetch runs as a background task and never delays start().

Example:
    ```python
    from runbox import Engine

    async with Engine() as engine:
        result = await engine.execute_code("print('hello')", "python")
        result.to_payload()
        # {"output": "hello", "error": "", "executionTime": 812, "status": "Success"}
    ```

Request flow:
    mint session -> validate -> screen -> resolve pipeline -> runner.run()
    -> measure -> cleanup (always) -> ExecutionResult

execute_code() never raises: every failure becomes an ExecutionResult with
status Error.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING, Protocol, Self

from pydantic import ValidationError

from runbox._logging import get_logger, session_logger
from runbox.config import EngineConfig
from runbox.exceptions import (
    CleanupError,
    CodeValidationError,
    InputValidationError,
    SandboxError,
    SecurityViolationError,
)
from runbox.fallback_runner import FallbackRunner
from runbox.models import ExecutionRequest, ExecutionResult, ExecutionState, Language, RunOutput
from runbox.pipelines import LanguageProfile, build_pipelines, resolve_pipeline
from runbox.sandbox_runner import SandboxRunner
from runbox.security import SecurityPolicy, SecurityScreener
from runbox.session import ExecutionSession
from runbox.settings import Settings
from runbox.subprocess_utils import log_task_exception
from runbox.system_probes import check_docker_available, prefetch_images

if TYPE_CHECKING:
    from types import TracebackType

logger = get_logger(__name__)


class Runner(Protocol):
    """What the Engine needs from an execution backend."""

    name: str

    async def run(self, pipeline: LanguageProfile, code: str, session: ExecutionSession) -> RunOutput: ...


class Engine:
    """Sandboxed multi-language execution engine.

    Attributes:
        config: Per-request limits
        settings: Runtime environment (binaries, images, temp dir)
        runner: Backend selected at start() (None before start)
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        settings: Settings | None = None,
        *,
        policy: SecurityPolicy | None = None,
        runner: Runner | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.settings = settings or Settings()
        self.pipelines: dict[Language, LanguageProfile] = build_pipelines(self.settings)
        self.screener = SecurityScreener(policy or SecurityPolicy.default(), self.config.max_code_length)
        self.runner: Runner | None = runner
        self.isolation_available: bool | None = None
        self._prefetch_task: asyncio.Task[None] | None = None
        self._start_lock = asyncio.Lock()
        self._semaphore = (
            asyncio.Semaphore(self.config.max_concurrent_executions)
            if self.config.max_concurrent_executions is not None
            else None
        )

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> Runner:
        """Probe the container runtime and select the runner. Idempotent.

        Returns:
            The runner used for every request on this engine
        """
        async with self._start_lock:
            if self.runner is not None:
                return self.runner

            if self.settings.force_fallback:
                logger.warning("Fallback executor forced by configuration")
                self.isolation_available = False
            else:
                self.isolation_available = await check_docker_available(
                    self.settings.docker_bin, self.settings.health_probe_timeout_seconds
                )

            if self.isolation_available:
                logger.info("Docker is available, using secure Docker execution")
                runner: Runner = SandboxRunner(self.config, self.settings)
                if self.config.prefetch_images:
                    self._start_prefetch()
            else:
                logger.warning("Docker not available, using fallback executor (less secure)")
                runner = FallbackRunner(self.config, self.settings)
            self.runner = runner
            return runner

    async def stop(self) -> None:
        """Cancel background pre-fetch, if still running."""
        if self._prefetch_task is not None:
            self._prefetch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._prefetch_task
            self._prefetch_task = None

    def _start_prefetch(self) -> None:
        images = [profile.image for profile in self.pipelines.values()]

        async def _prefetch() -> None:
            await prefetch_images(self.settings.docker_bin, images)

        self._prefetch_task = asyncio.create_task(_prefetch(), name="runbox-image-prefetch")
        self._prefetch_task.add_done_callback(log_task_exception)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def execute_code(self, code: str | None, language: Language | str | None) -> ExecutionResult:
        """Run ``code`` as ``language`` and return a structured result.

        Never raises (cancellation excepted). ``execution_time_ms`` spans
        from this call to result assembly, container startup included.
        """
        started = time.monotonic()
        session = ExecutionSession.create(self.settings.temp_dir)
        log = session_logger(logger, session.session_id)

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            runner = self.runner or await self.start()

            request, pipeline = self._validate(code, language, session)
            self._screen(request.code, request.language, session)

            session.transition(ExecutionState.EXECUTING)
            if self._semaphore is not None:
                async with self._semaphore:
                    run_output = await runner.run(pipeline, request.code, session)
            else:
                run_output = await runner.run(pipeline, request.code, session)

            session.transition(ExecutionState.TIMED_OUT if run_output.timed_out else ExecutionState.COMPLETED)
            result = ExecutionResult(
                output=run_output.output,
                error=run_output.error,
                execution_time_ms=elapsed_ms(),
            )

        except (InputValidationError, SecurityViolationError) as e:
            session.transition(ExecutionState.REJECTED)
            result = ExecutionResult.failure(e.message, elapsed_ms())

        except SandboxError as e:
            session.transition(ExecutionState.FAILED)
            log.warning(e.message, extra=e.context)
            result = ExecutionResult.failure(e.message, elapsed_ms())

        except Exception as e:
            session.transition(ExecutionState.FAILED)
            log.exception("Error executing code")
            result = ExecutionResult.failure(f"Execution failed: {e}", elapsed_ms())

        finally:
            await self._cleanup(session)

        log.info(
            "Execution finished",
            extra={
                "language": getattr(language, "value", language),
                "status": result.status.value,
                "execution_time_ms": result.execution_time_ms,
            },
        )
        return result

    def _validate(
        self,
        code: str | None,
        language: Language | str | None,
        session: ExecutionSession,
    ) -> tuple[ExecutionRequest, LanguageProfile]:
        if not code or not language:
            raise CodeValidationError("Code and language are required")
        pipeline = resolve_pipeline(language, self.pipelines)
        try:
            request = ExecutionRequest.model_validate(
                {"code": code, "language": pipeline.language},
                context={"max_code_length": self.config.max_code_length},
            )
        except ValidationError as e:
            error = e.errors()[0]
            raise CodeValidationError(error["msg"], context=error.get("ctx", {})) from e
        session.transition(ExecutionState.VALIDATED)
        return request, pipeline

    def _screen(self, code: str, language: Language, session: ExecutionSession) -> None:
        decision = self.screener.screen(code, language)
        if not decision.allowed:
            context = {"language": language.value, "reason": decision.reason}
            if decision.rule is not None:
                context["pattern"] = decision.rule.pattern.pattern
            raise SecurityViolationError("Code contains potentially dangerous operations", context=context)
        session.transition(ExecutionState.SCREENED)

    async def _cleanup(self, session: ExecutionSession) -> None:
        try:
            await session.cleanup()
        except CleanupError as e:
            logger.error(e.message, extra=e.context)
