"""Runtime configuration from environment variables."""

import sys
import tempfile
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from runbox import constants


class Settings(BaseSettings):
    """Runtime configuration from environment variables.

    All settings can be overridden via environment variables with RUNBOX_ prefix.
    Example: RUNBOX_FORCE_FALLBACK=true
    """

    model_config = SettingsConfigDict(
        env_prefix="RUNBOX_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Binaries
    docker_bin: str = "docker"
    node_bin: str = "node"
    python_bin: str = Field(default_factory=lambda: sys.executable)

    # Session artifacts live under <temp_dir>/<session_id>/
    temp_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "runbox")

    # Language images
    image_python: str = "python:3.12-alpine"
    image_javascript: str = "node:20-alpine"
    image_java: str = "eclipse-temurin:17-jdk-alpine"
    image_cpp: str = "gcc:13"

    # Container hardening
    container_user: str = constants.DEFAULT_CONTAINER_USER
    tmpfs_size_mb: int = constants.DEFAULT_TMPFS_SIZE_MB

    # Startup
    health_probe_timeout_seconds: float = constants.HEALTH_PROBE_TIMEOUT_SECONDS

    # Testing/Debug
    force_fallback: bool = False
    """Skip the container runtime even when it is available.
    Useful for exercising the degraded path locally."""
