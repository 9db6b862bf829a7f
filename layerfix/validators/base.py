"""Core validation data structures."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Pattern, Protocol, Tuple


@dataclass(frozen=True)
class ValidationResult:
    """Accept/revert decision for one candidate transformation.

    ``check`` names the failing check (``syntax``, ``corruption``,
    ``integrity`` or ``error``) and is ``None`` for accepted candidates.
    """

    accept: bool
    reason: Optional[str] = None
    check: Optional[str] = None

    @property
    def should_revert(self) -> bool:
        return not self.accept

    @classmethod
    def accepted(cls, reason: Optional[str] = None) -> "ValidationResult":
        return cls(accept=True, reason=reason)

    @classmethod
    def reverted(cls, check: str, reason: str) -> "ValidationResult":
        return cls(accept=False, reason=reason, check=check)


@dataclass(frozen=True)
class CorruptionPattern:
    """Named signature whose increased occurrence indicates a broken rewrite."""

    name: str
    regex: Pattern[str]

    def count(self, text: str) -> int:
        return sum(1 for _ in self.regex.finditer(text))

    @classmethod
    def compile(cls, name: str, pattern: str, flags: int = 0) -> "CorruptionPattern":
        return cls(name=name, regex=re.compile(pattern, flags))


DEFAULT_CORRUPTION_PATTERNS: Tuple[CorruptionPattern, ...] = (
    CorruptionPattern.compile("Double function calls", r"onClick=\{[^}]*\([^)]*\)\s*=>\s*\(\)\s*=>"),
    CorruptionPattern.compile("Malformed event handlers", r"onClick=\{[^}]*\)\([^)]*\)$", re.MULTILINE),
    CorruptionPattern.compile("Invalid JSX attributes", r"\w+=\{[^}]*\)[^}]*\}"),
    CorruptionPattern.compile("Broken import statements", r"import\s*\{\s*\n\s*import\s*\{"),
    CorruptionPattern.compile("Duplicate function keywords", r"\bfunction\s+function\s+"),
    CorruptionPattern.compile("Duplicate import keywords", r"\bimport\s+import\b"),
    CorruptionPattern.compile("Malformed arrow functions", r"=>\s*=>"),
    CorruptionPattern.compile("Empty double parentheses", r"\(\s*\(\s*\)\s*\)"),
    CorruptionPattern.compile("Invalid object syntax", r"\{\s*\{\s*[^}]*\}\s*\}"),
)


def load_corruption_patterns(entries: Iterable[Mapping[str, Any]]) -> List[CorruptionPattern]:
    """Compile ``{name, pattern}`` mappings (e.g. from configuration)."""
    patterns = []
    for entry in entries:
        name = str(entry.get("name") or "").strip()
        pattern = entry.get("pattern")
        if not name or not isinstance(pattern, str):
            raise ValueError("Corruption patterns need a 'name' and a string 'pattern'")
        try:
            patterns.append(CorruptionPattern.compile(name, pattern, re.MULTILINE))
        except re.error as exc:
            raise ValueError(f"Invalid corruption pattern '{name}': {exc}") from exc
    return patterns


class Validator(Protocol):
    """Protocol implemented by transformation validators."""

    def validate(self, before: str, after: str) -> ValidationResult:
        """Decide whether ``after`` may replace ``before``."""


__all__ = [
    "CorruptionPattern",
    "DEFAULT_CORRUPTION_PATTERNS",
    "ValidationResult",
    "Validator",
    "load_corruption_patterns",
]
