"""runbox: sandboxed multi-language code execution.

Runs untrusted python, javascript, java and cpp submissions in locked-down
Docker containers and returns captured output as a structured result.

Quick Start:
    ```python
    from runbox import Engine

    async with Engine() as engine:
        result = await engine.execute_code("print('hello')", "python")
        print(result.output)  # "hello"
    ```

With Configuration:
    ```python
    from runbox import Engine, EngineConfig

    config = EngineConfig(timeout_seconds=20, max_concurrent_executions=8)
    async with Engine(config) as engine:
        result = await engine.execute_code(source, "cpp")
    ```

Security layers:
    1. Static denylist per language (advisory, pattern-based)
    2. Container: no network, memory/CPU/PID caps, non-root user,
       all capabilities dropped, no-new-privileges, read-only source mount
    3. Wall-clock timeout with process-group SIGKILL and container removal

Without a reachable Docker daemon the engine degrades to a host-level
fallback (python and javascript only). That mode is for development.

Requirements:
    - Docker Engine (CLI + running daemon) for sandboxed execution
    - Python 3.12+
"""

from runbox.config import EngineConfig
from runbox.engine import Engine
from runbox.exceptions import (
    CleanupError,
    CodeValidationError,
    FallbackNotSupportedError,
    ImagePullError,
    InputValidationError,
    IsolationUnavailableError,
    SandboxError,
    SecurityViolationError,
    UnsupportedLanguageError,
)
from runbox.models import ExecutionRequest, ExecutionResult, ExecutionStatus, Language
from runbox.settings import Settings

__all__ = [
    "CleanupError",
    "CodeValidationError",
    "Engine",
    "EngineConfig",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionStatus",
    "FallbackNotSupportedError",
    "ImagePullError",
    "InputValidationError",
    "IsolationUnavailableError",
    "Language",
    "SandboxError",
    "SecurityViolationError",
    "Settings",
    "UnsupportedLanguageError",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("runbox")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
