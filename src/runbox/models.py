"""Data models for runbox."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, computed_field, field_validator
from pydantic_core import PydanticCustomError

from runbox import constants


class Language(str, Enum):
    """Supported guest languages."""

    PYTHON = "python"
    JAVASCRIPT = "javascript"
    JAVA = "java"
    CPP = "cpp"


class ExecutionStatus(str, Enum):
    """Outcome reported to collaborators."""

    SUCCESS = "Success"
    ERROR = "Error"


class ExecutionState(str, Enum):
    """Per-request lifecycle states.

    RECEIVED -> VALIDATED -> SCREENED -> EXECUTING -> COMPLETED, with
    REJECTED reachable from validation/screening and TIMED_OUT/FAILED from
    EXECUTING.  Every terminal state converges to CLEANED_UP.
    """

    RECEIVED = "received"
    VALIDATED = "validated"
    SCREENED = "screened"
    EXECUTING = "executing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CLEANED_UP = "cleaned_up"


class ExecutionRequest(BaseModel):
    """A single (code, language) submission.

    Code must be non-empty and at most ``max_code_length`` characters. The
    limit defaults to MAX_CODE_LENGTH; pass another through the validation
    context: ``model_validate(data, context={"max_code_length": n})``.
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(min_length=1)
    language: Language

    @field_validator("code")
    @classmethod
    def check_length(cls, code: str, info: ValidationInfo) -> str:
        limit = (info.context or {}).get("max_code_length", constants.MAX_CODE_LENGTH)
        if len(code) > limit:
            raise PydanticCustomError("code_too_large", "Code too large", {"length": len(code), "limit": limit})
        return code


class ExecutionResult(BaseModel):
    """Result handed back to the HTTP / realtime layers.

    ``status`` is derived from ``error`` so the two can never disagree.
    Serialize with ``to_payload()`` for the camelCase wire shape.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    output: str = Field(default="", description="Captured standard output (trimmed, truncated)")
    error: str = Field(default="", description="Captured standard error or rejection message")
    execution_time_ms: int = Field(
        default=0,
        ge=0,
        alias="executionTime",
        description="Milliseconds from request acceptance to result assembly",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> ExecutionStatus:
        return ExecutionStatus.ERROR if self.error else ExecutionStatus.SUCCESS

    @classmethod
    def failure(cls, message: str, execution_time_ms: int = 0) -> "ExecutionResult":
        return cls(output="", error=message, execution_time_ms=execution_time_ms)

    def to_payload(self) -> dict[str, Any]:
        """``{output, error, executionTime, status}`` as plain JSON types."""
        return self.model_dump(by_alias=True, mode="json")


@dataclass(frozen=True)
class RunOutput:
    """What a runner reports for one session."""

    output: str
    error: str
    exit_code: int | None
    timed_out: bool = False
