"""Static denylist screening of guest code.

Pattern-based: a fixed set of regular expressions
per language, applied in order before anything is written to disk or
spawned. Novel obfuscations will get through; the container boundary in
sandbox_runner is what actually contains guest code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from runbox._logging import get_logger
from runbox.models import Language

logger = get_logger(__name__)


class RuleCategory(str, Enum):
    """What a denylist rule guards against (log context only)."""

    FILESYSTEM = "filesystem"
    PROCESS = "process"
    NETWORK = "network"
    SYSTEM = "system"
    DYNAMIC_EVAL = "dynamic_eval"


@dataclass(frozen=True)
class SecurityRule:
    """One forbidden source-text pattern."""

    pattern: re.Pattern[str]
    category: RuleCategory

    @classmethod
    def compile(cls, regex: str, category: RuleCategory) -> SecurityRule:
        return cls(pattern=re.compile(regex), category=category)


@dataclass(frozen=True)
class ScreeningDecision:
    """Outcome of screen(). ``rule`` is set only when denied."""

    allowed: bool
    rule: SecurityRule | None = None
    reason: str | None = None


def _language_name(language: Language | str) -> str:
    return language.value if isinstance(language, Language) else str(language)


_FS = RuleCategory.FILESYSTEM
_PROC = RuleCategory.PROCESS
_NET = RuleCategory.NETWORK
_SYS = RuleCategory.SYSTEM
_EVAL = RuleCategory.DYNAMIC_EVAL

_DEFAULT_RULES: dict[Language, tuple[tuple[str, RuleCategory], ...]] = {
    Language.JAVASCRIPT: (
        (r"""require\s*\(\s*['"`]fs['"`]\s*\)""", _FS),
        (r"""require\s*\(\s*['"`]child_process['"`]\s*\)""", _PROC),
        (r"""require\s*\(\s*['"`]http['"`]\s*\)""", _NET),
        (r"""require\s*\(\s*['"`]https['"`]\s*\)""", _NET),
        (r"""require\s*\(\s*['"`]net['"`]\s*\)""", _NET),
        (r"process\.exit", _PROC),
        (r"process\.kill", _PROC),
        (r"eval\s*\(", _EVAL),
        (r"Function\s*\(", _EVAL),
        (r"global\s*\.", _SYS),
    ),
    Language.PYTHON: (
        (r"import\s+os", _SYS),
        (r"import\s+subprocess", _PROC),
        (r"import\s+sys", _SYS),
        (r"import\s+socket", _NET),
        (r"import\s+urllib", _NET),
        (r"import\s+requests", _NET),
        (r"import\s+shutil", _FS),
        (r"from\s+os\s+import", _SYS),
        (r"open\s*\(", _FS),
        (r"exec\s*\(", _EVAL),
        (r"eval\s*\(", _EVAL),
        (r"__import__", _EVAL),
    ),
    Language.JAVA: (
        (r"import\s+java\.io\.", _FS),
        (r"import\s+java\.net\.", _NET),
        (r"import\s+java\.lang\.Runtime", _PROC),
        (r"import\s+java\.lang\.ProcessBuilder", _PROC),
        (r"System\.exit", _PROC),
        (r"Runtime\.getRuntime", _PROC),
        (r"ProcessBuilder", _PROC),
        (r"Files\.", _FS),
        (r"Paths\.", _FS),
    ),
    Language.CPP: (
        (r"#include\s*<fstream>", _FS),
        (r"#include\s*<filesystem>", _FS),
        (r"#include\s*<cstdlib>", _SYS),
        (r"system\s*\(", _PROC),
        (r"exec", _PROC),
        (r"fork\s*\(", _PROC),
        (r"FILE\s*\*", _FS),
        (r"fopen", _FS),
        (r"popen", _PROC),
    ),
}


class SecurityPolicy:
    """Ordered, immutable rule sets keyed by language.

    Built once at startup and shared by every request.
    """

    def __init__(self, rules: dict[Language, tuple[SecurityRule, ...]]) -> None:
        self._rules = dict(rules)

    @classmethod
    def default(cls) -> SecurityPolicy:
        return cls(
            {
                language: tuple(SecurityRule.compile(regex, category) for regex, category in entries)
                for language, entries in _DEFAULT_RULES.items()
            }
        )

    def rules_for(self, language: Language | str) -> tuple[SecurityRule, ...]:
        """Rules for ``language``; empty for anything unrecognised."""
        try:
            return self._rules.get(Language(language), ())
        except ValueError:
            return ()


class SecurityScreener:
    """Gate applied before any execution.

    Enforces the global size limit for every language, then the
    language's denylist. Unknown languages get the size check only.
    """

    def __init__(self, policy: SecurityPolicy, max_code_length: int) -> None:
        self._policy = policy
        self._max_code_length = max_code_length

    def screen(self, code: str, language: Language | str) -> ScreeningDecision:
        if len(code) > self._max_code_length:
            logger.warning(
                "Code exceeds size limit",
                extra={"language": _language_name(language), "length": len(code), "limit": self._max_code_length},
            )
            return ScreeningDecision(allowed=False, reason="size_limit")

        for rule in self._policy.rules_for(language):
            if rule.pattern.search(code):
                logger.warning(
                    f"Dangerous pattern detected: {rule.pattern.pattern}",
                    extra={"language": _language_name(language), "category": rule.category.value},
                )
                return ScreeningDecision(allowed=False, rule=rule, reason="denylist")

        return ScreeningDecision(allowed=True)
