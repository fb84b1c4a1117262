"""Command-line interface for runbox.

Usage:
    runbox run 'print("hello")'            # Run inline code (python)
    runbox run Main.java                   # Run file, language from extension
    echo "console.log(1)" | runbox run -l javascript -
    runbox doctor                          # Which runner would be used?
    runbox pull                            # Pre-fetch language images
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import NoReturn

import click

from runbox import (
    Engine,
    EngineConfig,
    ExecutionResult,
    IsolationUnavailableError,
    Language,
    Settings,
    __version__,
)
from runbox import constants
from runbox._logging import configure_logging
from runbox.system_probes import prefetch_images, require_docker

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_EXECUTION_ERROR = 1
EXIT_CLI_ERROR = 2
EXIT_TIMEOUT = 124  # Matches `timeout` command
EXIT_SANDBOX_ERROR = 125

_TIMEOUT_MARKER = "Execution timed out ("

# File extension to language mapping
EXTENSION_MAP: dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".java": "java",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
}


def detect_language(source: str | None) -> str | None:
    """Auto-detect language from file extension.

    Args:
        source: File path or stdin marker ("-") or inline code

    Returns:
        Detected language name or None if cannot detect
    """
    if not source or source == "-":
        return None

    path = Path(source)
    if path.suffix:
        return EXTENSION_MAP.get(path.suffix.lower())

    return None


def format_error(title: str, message: str, suggestions: list[str] | None = None) -> str:
    """Format an error message following What → Why → Fix pattern."""
    lines = [
        click.style(f"Error: {title}", fg="red", bold=True),
        "",
        f"  {message}",
    ]

    if suggestions:
        lines.extend(["", "  Suggestions:"])
        lines.extend(f"    • {suggestion}" for suggestion in suggestions)

    return "\n".join(lines)


def exit_code_for(result: ExecutionResult) -> int:
    if not result.error:
        return EXIT_SUCCESS
    if _TIMEOUT_MARKER in result.error:
        return EXIT_TIMEOUT
    return EXIT_EXECUTION_ERROR


async def run_code(
    code: str,
    language: Language,
    config: EngineConfig,
    settings: Settings,
    json_output: bool,
) -> int:
    """Execute code and print the result. Returns the CLI exit code."""
    async with Engine(config, settings) as engine:
        result = await engine.execute_code(code, language)

    if json_output:
        click.echo(json.dumps(result.to_payload(), indent=2))
        return exit_code_for(result)

    if result.output:
        click.echo(result.output)
    if result.error:
        click.echo(click.style(result.error, fg="red"), err=True)
    if sys.stdout.isatty():
        click.echo(
            click.style(f"{result.status.value} in {result.execution_time_ms}ms", fg="green" if not result.error else "red", dim=True),
            err=True,
        )
    return exit_code_for(result)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
@click.version_option(__version__, "-V", "--version", prog_name="runbox")
def main(verbose: bool, quiet: bool) -> None:
    """Run untrusted code in an isolated container sandbox."""
    configure_logging(level="DEBUG" if verbose else "WARNING", quiet=quiet)


@main.command("run")
@click.argument("source", required=False)
@click.option(
    "-l",
    "--language",
    type=click.Choice([lang.value for lang in Language], case_sensitive=False),
    help="Guest language (auto-detected from file extension)",
)
@click.option("-c", "--code", "inline_code", help="Code to execute (alternative to SOURCE)")
@click.option("-t", "--timeout", type=float, default=None, help="Timeout in seconds [default: 10, 5 on fallback]")
@click.option("--json", "json_output", is_flag=True, help="Output the result as JSON")
@click.option("--force-fallback", is_flag=True, help="Skip Docker and use the development fallback")
@click.option("--no-prefetch", is_flag=True, help="Do not pull images in the background")
def run_command(
    source: str | None,
    language: str | None,
    inline_code: str | None,
    timeout: float | None,
    json_output: bool,
    force_fallback: bool,
    no_prefetch: bool,
) -> NoReturn:
    """Execute SOURCE and print its output.

    SOURCE can be:

    \b
      - Inline code:  runbox run 'print("hello")'
      - File path:    runbox run Main.java
      - Stdin:        echo 'print(1)' | runbox run -

    Language is auto-detected from file extension (.py, .js, .java, .cpp)
    or defaults to python for inline code.
    """
    code: str

    if inline_code:
        code = inline_code
    elif source == "-":
        if sys.stdin.isatty():
            raise click.UsageError("No input provided. Pipe code to stdin or use -c flag.")
        code = sys.stdin.read()
    elif source:
        path = Path(source)
        code = path.read_text() if path.exists() and path.is_file() else source
    else:
        raise click.UsageError("No code provided. Provide SOURCE argument or use -c flag.")

    if not code.strip():
        raise click.UsageError("Empty code provided.")

    resolved_language = language.lower() if language else (detect_language(source) or "python")
    lang_enum = Language(resolved_language)

    overrides: dict[str, object] = {}
    if timeout is not None:
        overrides["timeout_seconds"] = timeout
        overrides["fallback_timeout_seconds"] = timeout
    if no_prefetch:
        overrides["prefetch_images"] = False

    try:
        config = EngineConfig(**overrides)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    settings = Settings(force_fallback=True) if force_fallback else Settings()

    exit_code = asyncio.run(run_code(code, lang_enum, config, settings, json_output))
    sys.exit(exit_code)


@main.command("doctor")
def doctor_command() -> NoReturn:
    """Check whether Docker is usable for sandboxed execution."""
    settings = Settings()
    try:
        server_version = asyncio.run(require_docker(settings.docker_bin, settings.health_probe_timeout_seconds))
    except IsolationUnavailableError as exc:
        click.echo(
            format_error(
                "Docker unavailable",
                exc.message,
                [
                    "Install Docker Engine and start the daemon",
                    f"Check that '{settings.docker_bin}' is on PATH (RUNBOX_DOCKER_BIN)",
                    "Without Docker only python and javascript run, via the insecure fallback",
                ],
            ),
            err=True,
        )
        sys.exit(EXIT_SANDBOX_ERROR)

    click.echo(f"Docker server {server_version}: sandboxed execution available")
    sys.exit(EXIT_SUCCESS)


@main.command("pull")
@click.option(
    "--attempts",
    type=click.IntRange(min=1),
    default=constants.IMAGE_PULL_MAX_ATTEMPTS,
    show_default=True,
    help="Pull attempts per image",
)
def pull_command(attempts: int) -> NoReturn:
    """Pull the image for every supported language."""
    settings = Settings()
    images = [settings.image_python, settings.image_javascript, settings.image_java, settings.image_cpp]
    results = asyncio.run(prefetch_images(settings.docker_bin, images, max_attempts=attempts))

    for image, ok in results.items():
        mark = click.style("ok", fg="green") if ok else click.style("failed", fg="red")
        click.echo(f"{image}: {mark}")

    sys.exit(EXIT_SUCCESS if all(results.values()) else EXIT_SANDBOX_ERROR)


if __name__ == "__main__":
    main()
