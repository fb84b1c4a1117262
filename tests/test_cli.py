"""Tests for the runbox command-line interface.

Uses click's CliRunner. Execution goes through the fallback runner (no
Docker needed); doctor/pull use the fake docker CLI.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from runbox.cli import (
    EXIT_CLI_ERROR,
    EXIT_EXECUTION_ERROR,
    EXIT_SANDBOX_ERROR,
    EXIT_SUCCESS,
    EXIT_TIMEOUT,
    detect_language,
    exit_code_for,
    format_error,
    main,
)
from runbox.models import ExecutionResult
from tests.conftest import FakeDocker


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def run_env(sessions_dir: Path) -> dict[str, str]:
    """Environment for `runbox run` invocations: fallback path, isolated temp dir."""
    return {"RUNBOX_TEMP_DIR": str(sessions_dir), "RUNBOX_LOG_LEVEL": "ERROR"}


# ============================================================================
# Helpers
# ============================================================================


class TestDetectLanguage:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("script.py", "python"),
            ("app.js", "javascript"),
            ("module.mjs", "javascript"),
            ("Main.java", "java"),
            ("prog.cpp", "cpp"),
            ("prog.CC", "cpp"),
            ("prog.cxx", "cpp"),
            ("notes.txt", None),
            ("print(1)", None),
            ("-", None),
            (None, None),
        ],
    )
    def test_detect(self, source: str | None, expected: str | None) -> None:
        assert detect_language(source) == expected


class TestExitCodeFor:
    def test_success(self) -> None:
        assert exit_code_for(ExecutionResult(output="x")) == EXIT_SUCCESS

    def test_error(self) -> None:
        assert exit_code_for(ExecutionResult(error="Traceback")) == EXIT_EXECUTION_ERROR

    def test_timeout(self) -> None:
        result = ExecutionResult(error="partial\nExecution timed out (10 second limit)")
        assert exit_code_for(result) == EXIT_TIMEOUT


def test_format_error() -> None:
    text = format_error("Docker unavailable", "daemon not running", ["Start Docker"])
    assert "Error: Docker unavailable" in text
    assert "daemon not running" in text
    assert "Start Docker" in text


# ============================================================================
# runbox run
# ============================================================================


class TestRunCommand:
    def test_inline_code(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(main, ["-q", "run", "--force-fallback", "-c", "print('hi')"], env=run_env)
        assert result.exit_code == EXIT_SUCCESS
        assert "hi" in result.output

    def test_source_argument_as_code(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(main, ["-q", "run", "--force-fallback", "print(6 * 7)"], env=run_env)
        assert result.exit_code == EXIT_SUCCESS
        assert "42" in result.output

    def test_file_language_detected(self, cli_runner: CliRunner, run_env: dict[str, str], tmp_path: Path) -> None:
        source = tmp_path / "Main.java"
        source.write_text("public class Main {}")
        result = cli_runner.invoke(main, ["-q", "run", "--force-fallback", str(source)], env=run_env)
        assert result.exit_code == EXIT_EXECUTION_ERROR
        assert "Fallback execution not supported for java" in result.output

    def test_stdin(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(
            main, ["-q", "run", "--force-fallback", "-l", "python", "-"], input="print('piped')", env=run_env
        )
        assert result.exit_code == EXIT_SUCCESS
        assert "piped" in result.output

    def test_json_output(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(main, ["-q", "run", "--force-fallback", "--json", "-c", "print(1)"], env=run_env)
        assert result.exit_code == EXIT_SUCCESS
        payload = json.loads(result.stdout)
        assert payload["output"] == "1"
        assert payload["error"] == ""
        assert payload["status"] == "Success"
        assert isinstance(payload["executionTime"], int)

    def test_execution_error(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(main, ["-q", "run", "--force-fallback", "-c", "raise ValueError('bad')"], env=run_env)
        assert result.exit_code == EXIT_EXECUTION_ERROR
        assert "ValueError: bad" in result.output

    def test_security_rejection(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(main, ["-q", "run", "--force-fallback", "-c", "import os"], env=run_env)
        assert result.exit_code == EXIT_EXECUTION_ERROR
        assert "Code contains potentially dangerous operations" in result.output

    def test_timeout_exit_code(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(
            main,
            ["-q", "run", "--force-fallback", "--timeout", "1", "-c", "while True:\n    pass"],
            env=run_env,
        )
        assert result.exit_code == EXIT_TIMEOUT
        assert "Execution timed out (1 second limit)" in result.output

    def test_no_code(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(main, ["run"], env=run_env)
        assert result.exit_code == EXIT_CLI_ERROR
        assert "No code provided" in result.output

    def test_empty_code(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(main, ["run", "-c", "   "], env=run_env)
        assert result.exit_code == EXIT_CLI_ERROR

    def test_invalid_timeout(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(main, ["run", "--timeout", "0", "-c", "print(1)"], env=run_env)
        assert result.exit_code == EXIT_CLI_ERROR

    def test_unknown_language_choice(self, cli_runner: CliRunner, run_env: dict[str, str]) -> None:
        result = cli_runner.invoke(main, ["run", "-l", "ruby", "-c", "puts 1"], env=run_env)
        assert result.exit_code == EXIT_CLI_ERROR


# ============================================================================
# runbox doctor / pull
# ============================================================================


class TestDoctorCommand:
    def test_available(self, cli_runner: CliRunner, fake_docker: FakeDocker) -> None:
        result = cli_runner.invoke(main, ["doctor"], env={"RUNBOX_DOCKER_BIN": str(fake_docker.path)})
        assert result.exit_code == EXIT_SUCCESS
        assert "27.0.3" in result.output

    def test_unavailable(self, cli_runner: CliRunner, fake_docker: FakeDocker) -> None:
        fake_docker.set_mode("daemon_down")
        result = cli_runner.invoke(main, ["-q", "doctor"], env={"RUNBOX_DOCKER_BIN": str(fake_docker.path)})
        assert result.exit_code == EXIT_SANDBOX_ERROR
        assert "Docker unavailable" in result.output


class TestPullCommand:
    def test_all_ok(self, cli_runner: CliRunner, fake_docker: FakeDocker) -> None:
        result = cli_runner.invoke(main, ["-q", "pull"], env={"RUNBOX_DOCKER_BIN": str(fake_docker.path)})
        assert result.exit_code == EXIT_SUCCESS
        assert "gcc:13: ok" in result.output
        assert len(fake_docker.calls_to("pull")) == 4

    def test_failure(self, cli_runner: CliRunner, fake_docker: FakeDocker) -> None:
        fake_docker.set_mode("pull_fail")
        result = cli_runner.invoke(main, ["-q", "pull", "--attempts", "1"], env={"RUNBOX_DOCKER_BIN": str(fake_docker.path)})
        assert result.exit_code == EXIT_SANDBOX_ERROR
        assert "failed" in result.output
