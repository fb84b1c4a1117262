"""Constants for runbox configuration and limits."""

from typing import Final

# ============================================================================
# Input Limits
# ============================================================================

MAX_CODE_LENGTH: Final[int] = 100_000
"""Maximum number of characters accepted for a single submission."""

# ============================================================================
# Container Resource Limits
# ============================================================================

DEFAULT_MEMORY_LIMIT_MB: Final[int] = 128
"""Hard memory ceiling per container in MiB (swap disabled at the same value)."""

DEFAULT_CPU_LIMIT: Final[float] = 0.5
"""Fractional CPU share per container."""

DEFAULT_PIDS_LIMIT: Final[int] = 64
"""Maximum PIDs inside a container (fork bomb prevention)."""

DEFAULT_TMPFS_SIZE_MB: Final[int] = 64
"""Size of the writable /tmp tmpfs used for compiler output."""

DEFAULT_CONTAINER_USER: Final[str] = "1000:1000"
"""uid:gid the guest process runs as (never root)."""

SANDBOX_MOUNT_PATH: Final[str] = "/sandbox"
"""Container path where the session directory is mounted read-only."""

BUILD_DIR: Final[str] = "/tmp"
"""Writable container path for build artifacts (tmpfs)."""

CONTAINER_NAME_PREFIX: Final[str] = "runbox-"
"""Prefix for container names; the session id follows."""

CONTAINER_LABEL: Final[str] = "runbox.session"
"""Docker label carrying the session id."""

# ============================================================================
# Execution Timeouts
# ============================================================================

DEFAULT_TIMEOUT_SECONDS: Final[float] = 10.0
"""Wall-clock limit for sandboxed execution, including container startup."""

FALLBACK_TIMEOUT_SECONDS: Final[float] = 5.0
"""Wall-clock limit on the degraded (no container runtime) path."""

MAX_TIMEOUT_SECONDS: Final[float] = 300.0
"""Upper bound accepted for any configured timeout."""

HEALTH_PROBE_TIMEOUT_SECONDS: Final[float] = 5.0
"""Timeout for the startup `docker version` probe."""

CONTAINER_REMOVE_TIMEOUT_SECONDS: Final[float] = 10.0
"""Timeout for `docker rm -f` after a timed-out run."""

IMAGE_PULL_TIMEOUT_SECONDS: Final[float] = 600.0
"""Timeout for a single background `docker pull`."""

IMAGE_PULL_MAX_ATTEMPTS: Final[int] = 3
"""Retry attempts per image during background pre-fetch."""

# ============================================================================
# Output Capture
# ============================================================================

MAX_OUTPUT_LENGTH: Final[int] = 10_000
"""Characters kept per stream (stdout and stderr independently)."""

OUTPUT_TRUNCATION_MARKER: Final[str] = "\n... (output truncated)"
"""Suffix appended to truncated stdout."""

ERROR_TRUNCATION_MARKER: Final[str] = "\n... (error truncated)"
"""Suffix appended to truncated stderr."""

STREAM_READ_CHUNK_BYTES: Final[int] = 4096
"""Read size when draining child stdout/stderr."""

# ============================================================================
# Fallback Path
# ============================================================================

FALLBACK_SLEEP_CAP_SECONDS: Final[float] = 1.0
"""Longest single time.sleep() allowed inside the restricted Python context."""

FALLBACK_MEMORY_LIMIT_MB: Final[int] = 256
"""RLIMIT_AS applied inside the restricted Python worker."""

# ============================================================================
# Java Entry Point
# ============================================================================

DEFAULT_JAVA_CLASS_NAME: Final[str] = "Main"
"""Class (and file) name used when no `public class <Name>` is found."""
