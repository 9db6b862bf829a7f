"""Accept/revert decisions for candidate layer output."""

from __future__ import annotations

import json
import re
from typing import List, Optional, Sequence, Set, Tuple

from ..logging import get_logger
from ..scanning import iter_code
from .base import DEFAULT_CORRUPTION_PATTERNS, CorruptionPattern, ValidationResult

CRITICAL_IDENTIFIERS: Tuple[str, ...] = ("React", "useState", "useEffect", "Component")
MAX_SIZE_LOSS = 0.8

_BRACKETS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {close: open_ for open_, close in _BRACKETS.items()}
_MALFORMED_SIGNATURES: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("Malformed arrow function syntax", re.compile(r"\bfunction\s*\(\s*\)\s*=>\s*\(\s*\)\s*=>")),
    ("Duplicate import statement", re.compile(r"import\s*\{\s*\}\s*from\s*from")),
)

_IMPORT_STATEMENT = re.compile(r"\bimport\s+[^;'\"]*?\s*from\s+['\"][^'\"]+['\"];?")
_FUNCTION_DECLARATION = re.compile(
    r"\bfunction\s*\*?\s*[A-Za-z_$][\w$]*"
    r"|\b(?:const|let|var)\s+[A-Za-z_$][\w$]*\s*(?::[^=]+)?=\s*(?:async\s+)?(?:\([^)]*\)|[A-Za-z_$][\w$]*)\s*(?::[^=]+)?=>"
    r"|\bclass\s+[A-Za-z_$][\w$]*"
)
_EXPORT_STATEMENT = re.compile(
    r"\bexport\s+(?:default\s+)?(?:async\s+)?(?:function|const|let|var|class|interface|type|enum)\s+[A-Za-z_$][\w$]*"
    r"|\bexport\s*\{[^}]+\}"
)

logger = get_logger("validators.transformation")


class TransformationValidator:
    """Runs syntax, corruption and integrity checks, short-circuiting on the first failure."""

    def __init__(
        self,
        *,
        patterns: Optional[Sequence[CorruptionPattern]] = None,
        critical_identifiers: Sequence[str] = CRITICAL_IDENTIFIERS,
        max_size_loss: float = MAX_SIZE_LOSS,
    ) -> None:
        self.patterns: Tuple[CorruptionPattern, ...] = tuple(
            DEFAULT_CORRUPTION_PATTERNS if patterns is None else patterns
        )
        self.critical_identifiers = tuple(critical_identifiers)
        self.max_size_loss = max_size_loss

    def with_patterns(self, extra: Sequence[CorruptionPattern]) -> "TransformationValidator":
        return TransformationValidator(
            patterns=self.patterns + tuple(extra),
            critical_identifiers=self.critical_identifiers,
            max_size_loss=self.max_size_loss,
        )

    def validate(self, before: str, after: str) -> ValidationResult:
        if before == after:
            return ValidationResult.accepted("no changes")
        try:
            problem = check_syntax(after)
            if problem is not None:
                return ValidationResult.reverted("syntax", f"Syntax error: {problem}")
            corruption = self.detect_corruption(before, after)
            if corruption is not None:
                return ValidationResult.reverted("corruption", f"Corruption detected: {corruption}")
            integrity = self.check_integrity(before, after)
            if integrity is not None:
                return ValidationResult.reverted("integrity", f"Logical issue: {integrity}")
        except Exception as exc:
            logger.debug("Validation raised %s; reverting", exc, exc_info=True)
            return ValidationResult.reverted("error", f"Validation error: {exc}")
        return ValidationResult.accepted()

    def detect_corruption(self, before: str, after: str) -> Optional[str]:
        for pattern in self.patterns:
            if pattern.count(after) > pattern.count(before):
                return pattern.name
        if before and (len(before) - len(after)) / len(before) > self.max_size_loss:
            return "Severe content loss detected"
        return None

    def check_integrity(self, before: str, after: str) -> Optional[str]:
        after_imports = extract_imports(after)
        after_names = set().union(*(_imported_names(statement) for statement in after_imports)) if after_imports else set()
        removed_critical = []
        for statement in extract_imports(before):
            if statement in after_imports:
                continue
            lost = [
                name
                for name in self.critical_identifiers
                if name in _imported_names(statement) and name not in after_names
            ]
            if lost:
                removed_critical.append(statement)
        if removed_critical:
            return f"Critical imports removed: {', '.join(removed_critical)}"

        if extract_functions(before) and not extract_functions(after):
            return "All functions/components were removed"

        after_exports = set(extract_exports(after))
        removed_exports = [export for export in extract_exports(before) if export not in after_exports]
        if removed_exports:
            return f"Exports removed: {', '.join(removed_exports)}"
        return None


def looks_like_json(code: str) -> bool:
    stripped = code.strip()
    return (stripped.startswith("{") and stripped.endswith("}")) or (
        stripped.startswith("[") and stripped.endswith("]")
    )


def check_syntax(code: str) -> Optional[str]:
    """Return a description of the first syntax problem in ``code`` or None."""
    if looks_like_json(code):
        try:
            json.loads(code)
        except json.JSONDecodeError as exc:
            return f"Invalid JSON: {exc.msg} (line {exc.lineno})"
        return None
    issues = bracket_issues(code)
    issues.extend(label for label, pattern in _MALFORMED_SIGNATURES if pattern.search(code))
    if issues:
        return "Syntax issues: " + ", ".join(issues)
    return None


def bracket_issues(code: str) -> List[str]:
    """Check bracket balance outside strings, template literals, comments and regex literals."""
    issues: List[str] = []
    stack: List[Tuple[str, int]] = []
    for index, char in iter_code(code):
        if char in _BRACKETS:
            stack.append((char, index))
        elif char in _CLOSERS:
            if not stack or stack[-1][0] != _CLOSERS[char]:
                issues.append(f"Mismatched {char} at position {index}")
                if len(issues) >= 5:
                    return issues
            else:
                stack.pop()
    if stack:
        issues.append("Unclosed brackets: " + ", ".join(opener for opener, _ in stack[:10]))
    return issues


def _normalise(statement: str) -> str:
    return re.sub(r"\s+", " ", statement.strip())


def extract_imports(code: str) -> List[str]:
    return [_normalise(match.group(0)) for match in _IMPORT_STATEMENT.finditer(code)]


def extract_functions(code: str) -> List[str]:
    return [_normalise(match.group(0)) for match in _FUNCTION_DECLARATION.finditer(code)]


def extract_exports(code: str) -> List[str]:
    return [_normalise(match.group(0)) for match in _EXPORT_STATEMENT.finditer(code)]


def _imported_names(statement: str) -> Set[str]:
    clause = statement.split(" from ", 1)[0]
    clause = re.sub(r"^import\s+(?:type\s+)?", "", clause)
    names = set()
    for token in re.findall(r"[A-Za-z_$][\w$]*", clause):
        if token not in {"as", "type"}:
            names.add(token)
    return names


__all__ = [
    "CRITICAL_IDENTIFIERS",
    "MAX_SIZE_LOSS",
    "TransformationValidator",
    "bracket_issues",
    "check_syntax",
    "extract_exports",
    "extract_functions",
    "extract_imports",
    "looks_like_json",
]
