"""Engine configuration for runbox.

EngineConfig carries the per-request limits enforced by the Engine and its
runners. Runtime environment (binaries, images, paths) lives in Settings.

Example:
    ```python
    from runbox import Engine, EngineConfig

    # Default limits: 100k chars, 128 MiB, 0.5 CPU, 10s, 10k chars per stream
    async with Engine() as engine:
        result = await engine.execute_code("print('hi')", "python")

    # Custom limits
    config = EngineConfig(timeout_seconds=20, max_concurrent_executions=8)
    async with Engine(config) as engine:
        ...
    ```
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from runbox import constants


class EngineConfig(BaseModel):
    """Configuration for Engine.

    Attributes:
        max_code_length: Maximum submission length in characters. Default: 100,000.
        memory_limit_mb: Container memory ceiling in MiB. Default: 128.
        cpu_limit: Container CPU share in cores. Default: 0.5.
        pids_limit: Maximum processes inside a container. Default: 64.
        timeout_seconds: Wall-clock limit for sandboxed runs. Default: 10.
        fallback_timeout_seconds: Wall-clock limit on the fallback path. Default: 5.
        max_output_length: Characters kept per stream before truncation. Default: 10,000.
        max_concurrent_executions: Optional bound on simultaneous runs.
            None (default) admits every request immediately.
        prefetch_images: Pull language images in the background at startup.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    max_code_length: int = Field(
        default=constants.MAX_CODE_LENGTH,
        ge=1,
        description="Maximum submission length in characters",
    )
    memory_limit_mb: int = Field(
        default=constants.DEFAULT_MEMORY_LIMIT_MB,
        ge=6,  # docker rejects --memory below 6m
        description="Container memory ceiling in MiB",
    )
    cpu_limit: float = Field(
        default=constants.DEFAULT_CPU_LIMIT,
        gt=0,
        description="Container CPU share in cores",
    )
    pids_limit: int = Field(
        default=constants.DEFAULT_PIDS_LIMIT,
        ge=1,
        description="Maximum processes inside a container",
    )
    timeout_seconds: float = Field(
        default=constants.DEFAULT_TIMEOUT_SECONDS,
        gt=0,
        le=constants.MAX_TIMEOUT_SECONDS,
        description="Wall-clock limit for sandboxed runs",
    )
    fallback_timeout_seconds: float = Field(
        default=constants.FALLBACK_TIMEOUT_SECONDS,
        gt=0,
        le=constants.MAX_TIMEOUT_SECONDS,
        description="Wall-clock limit on the fallback path",
    )
    max_output_length: int = Field(
        default=constants.MAX_OUTPUT_LENGTH,
        ge=1,
        description="Characters kept per stream before truncation",
    )
    max_concurrent_executions: int | None = Field(
        default=None,
        ge=1,
        description="Optional bound on simultaneous runs (None = unbounded)",
    )
    prefetch_images: bool = Field(
        default=True,
        description="Pull language images in the background at startup",
    )
