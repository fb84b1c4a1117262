"""Exception hierarchy for runbox.

All exceptions inherit from SandboxError base class.

Hierarchy:
    SandboxError (base)
    ├── InputValidationError (caller-bug marker base)
    │   ├── CodeValidationError        ← missing, empty or oversized code
    │   └── UnsupportedLanguageError   ← missing or unknown language
    ├── SecurityViolationError         ← denylist match
    ├── IsolationUnavailableError      ← container runtime probe failed
    ├── FallbackNotSupportedError      ← language unavailable without isolation
    ├── ImagePullError                 ← `docker pull` failed (retried, logged only)
    └── CleanupError                   ← artifact removal failed (logged only)

The Engine converts every per-request one of these into an ExecutionResult
with status Error; none escapes execute_code(). ImagePullError only occurs
in background pre-fetch and `runbox pull`.
"""

from __future__ import annotations

from typing import Any


class SandboxError(Exception):
    """Base exception for all sandbox errors with structured context.

    Attributes:
        message: Human-readable error message (safe to show to the caller)
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class InputValidationError(SandboxError):
    """Base for input validation errors.

    Raised before any file is written or process spawned.
    """


class CodeValidationError(InputValidationError):
    """Code is missing, empty, or longer than the configured maximum."""


class UnsupportedLanguageError(InputValidationError):
    """Language is missing or not one of the supported identifiers."""


class SecurityViolationError(SandboxError):
    """Code matched a denylist rule.

    The message never names the rule; the matched pattern is only logged
    and kept in ``context``.
    """


class IsolationUnavailableError(SandboxError):
    """The container runtime did not answer the health probe.

    Only affects runner selection at startup; never raised per request.
    """


class FallbackNotSupportedError(SandboxError):
    """Requested language has no fallback execution path."""


class ImagePullError(SandboxError):
    """`docker pull` exited non-zero.

    Retried by prefetch_images(); never raised per request.
    """


class CleanupError(SandboxError):
    """Session artifact removal failed.

    Logged by the cleanup helpers and never surfaced to the caller.
    """
