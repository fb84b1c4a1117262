"""Unit tests for result and request models."""

import pytest
from pydantic import ValidationError

from runbox.models import ExecutionRequest, ExecutionResult, ExecutionStatus, Language


class TestExecutionResult:
    def test_success_when_no_error(self) -> None:
        result = ExecutionResult(output="hello", error="", execution_time_ms=12)
        assert result.status == ExecutionStatus.SUCCESS

    def test_error_when_error_present(self) -> None:
        result = ExecutionResult(output="partial", error="Traceback ...", execution_time_ms=12)
        assert result.status == ExecutionStatus.ERROR

    def test_failure_constructor(self) -> None:
        result = ExecutionResult.failure("Code too large", 3)
        assert result.output == ""
        assert result.error == "Code too large"
        assert result.execution_time_ms == 3
        assert result.status == ExecutionStatus.ERROR

    def test_payload_shape(self) -> None:
        payload = ExecutionResult(output="hi", error="", execution_time_ms=42).to_payload()
        assert payload == {"output": "hi", "error": "", "executionTime": 42, "status": "Success"}

    def test_populate_by_alias(self) -> None:
        result = ExecutionResult.model_validate({"output": "", "error": "x", "executionTime": 7})
        assert result.execution_time_ms == 7
        assert result.to_payload()["status"] == "Error"

    def test_negative_time_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ExecutionResult(execution_time_ms=-1)

    def test_frozen(self) -> None:
        result = ExecutionResult()
        with pytest.raises(ValidationError):
            result.output = "changed"  # type: ignore[misc]


class TestExecutionRequest:
    def test_language_coerced(self) -> None:
        request = ExecutionRequest(code="print(1)", language="python")  # type: ignore[arg-type]
        assert request.language is Language.PYTHON

    def test_unknown_language_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ExecutionRequest(code="x", language="ruby")  # type: ignore[arg-type]

    def test_empty_code_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 1 character"):
            ExecutionRequest(code="", language=Language.PYTHON)

    def test_default_length_limit(self) -> None:
        ExecutionRequest(code="#" * 100_000, language=Language.PYTHON)
        with pytest.raises(ValidationError, match="Code too large"):
            ExecutionRequest(code="#" * 100_001, language=Language.PYTHON)

    def test_length_limit_from_context(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            ExecutionRequest.model_validate(
                {"code": "x" * 11, "language": "python"},
                context={"max_code_length": 10},
            )
        error = exc_info.value.errors()[0]
        assert error["type"] == "code_too_large"
        assert error["ctx"] == {"length": 11, "limit": 10}
