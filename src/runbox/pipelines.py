"""Per-language build/run pipelines.

Each LanguageProfile knows which image runs the language, how the source
file is named inside the session directory, and which command to run in
the container. Compiled languages chain build and run in one `sh -c` so a
compile failure comes back on stderr like any runtime error.

The source directory is mounted read-only, so compiler output goes to the
container's tmpfs (constants.BUILD_DIR).
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from runbox import constants
from runbox.exceptions import UnsupportedLanguageError
from runbox.models import Language
from runbox.settings import Settings

_JAVA_PUBLIC_CLASS = re.compile(r"public\s+class\s+(\w+)")


def extract_java_class_name(code: str) -> str:
    """Name of the first ``public class`` in ``code``, or ``Main``."""
    match = _JAVA_PUBLIC_CLASS.search(code)
    return match.group(1) if match else constants.DEFAULT_JAVA_CLASS_NAME


@dataclass(frozen=True)
class LanguageProfile:
    """How one language is materialized and executed.

    Command templates are formatted with:
        {source}:    container path of the source file
        {name}:      entry-point name (session id, or Java class name)
        {build_dir}: writable container directory for build output
    """

    language: Language
    image: str
    extension: str
    run_command: str
    build_command: str | None = None
    entry_point: Callable[[str, str], str] | None = None

    def entry_name(self, code: str, session_id: str) -> str:
        if self.entry_point is None:
            return session_id
        return self.entry_point(code, session_id)

    def source_filename(self, code: str, session_id: str) -> str:
        return f"{self.entry_name(code, session_id)}{self.extension}"

    def command(self, code: str, session_id: str) -> list[str]:
        """argv to run inside the container."""
        name = self.entry_name(code, session_id)
        fields = {
            "source": shlex.quote(f"{constants.SANDBOX_MOUNT_PATH}/{name}{self.extension}"),
            "name": shlex.quote(name),
            "build_dir": constants.BUILD_DIR,
        }
        if self.build_command is None:
            return shlex.split(self.run_command.format(**fields))
        script = f"{self.build_command.format(**fields)} && {self.run_command.format(**fields)}"
        return ["sh", "-c", script]


def build_pipelines(settings: Settings) -> dict[Language, LanguageProfile]:
    """Profiles for every supported language using images from ``settings``."""
    return {
        Language.PYTHON: LanguageProfile(
            language=Language.PYTHON,
            image=settings.image_python,
            extension=".py",
            run_command="python {source}",
        ),
        Language.JAVASCRIPT: LanguageProfile(
            language=Language.JAVASCRIPT,
            image=settings.image_javascript,
            extension=".js",
            run_command="node {source}",
        ),
        Language.JAVA: LanguageProfile(
            language=Language.JAVA,
            image=settings.image_java,
            extension=".java",
            build_command="javac -d {build_dir} {source}",
            run_command="java -cp {build_dir} {name}",
            entry_point=lambda code, _session_id: extract_java_class_name(code),
        ),
        Language.CPP: LanguageProfile(
            language=Language.CPP,
            image=settings.image_cpp,
            extension=".cpp",
            build_command="g++ -o {build_dir}/{name} {source}",
            run_command="{build_dir}/{name}",
        ),
    }


def resolve_pipeline(
    language: Language | str | None,
    pipelines: Mapping[Language, LanguageProfile],
) -> LanguageProfile:
    """Look up the profile for ``language``.

    Raises:
        UnsupportedLanguageError: missing, unknown, or unregistered language
    """
    if not language:
        raise UnsupportedLanguageError("Code and language are required")
    try:
        lang = Language(language)
    except ValueError as e:
        raise UnsupportedLanguageError(f"Unsupported language: {language}", context={"language": str(language)}) from e
    profile = pipelines.get(lang)
    if profile is None:
        raise UnsupportedLanguageError(f"Unsupported language: {lang.value}", context={"language": lang.value})
    return profile
