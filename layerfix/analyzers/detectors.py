"""Textual detectors, one per layer category.

Detectors work on raw text so that syntactically broken files still get a
report.
"""

from __future__ import annotations

import json
import re
from typing import Iterable, List, Optional

from ..layers.components import REACT_HOOKS
from ..layers.configuration import config_kind
from ..layers.hydration import STORAGE_OBJECTS
from ..layers.testing import is_test_file, remove_duplicate_functions
from ..models import DetectedIssue, Severity
from .base import Detector

_ENTITY_PATTERNS = (
    (re.compile(r"&quot;|&#x27;|&#39;|&apos;"), "HTML quote entities", Severity.MEDIUM),
    (re.compile(r"&amp;"), "HTML ampersand entities", Severity.MEDIUM),
    (re.compile(r"&lt;|&gt;"), "HTML bracket entities", Severity.MEDIUM),
    (re.compile(r"&nbsp;"), "Non-breaking space entities", Severity.LOW),
    (re.compile(r"(?<![\w$.])var\s+[A-Za-z_$]"), "Var declarations", Severity.MEDIUM),
    (re.compile(r"<React\.Fragment>"), "Verbose React.Fragment", Severity.LOW),
)
_MAP_TO_JSX = re.compile(r"\.map\(\s*(?:\([^()]*\)|[A-Za-z_$][\w$]*)\s*=>\s*(?:\(\s*)?<([A-Za-z][\w.]*)([^<>]*)>")
_IMG_WITHOUT_ALT = re.compile(r"<img\b(?![^>]*\balt\s*=)[^>]*>")
_HOOK_USE = re.compile(r"(?<![\w$.])(" + "|".join(REACT_HOOKS) + r")\s*\(")
_GUARD = re.compile(r"typeof\s+window\s*!==?\s*['\"]undefined['\"]")
_STORAGE_USE = re.compile(r"(?<![\w$])(?:" + "|".join(STORAGE_OBJECTS) + r")\.")
_WINDOW_USE = re.compile(r"(?<![\w$.])(?:window|document)\.")
_CLIENT_SIGNALS = re.compile(r"(?<![\w$.])use[A-Z]\w*\s*\(|\bon[A-Z]\w*\s*=\s*\{|(?<![\w$.])(?:window|document)\.")
_DIRECTIVE = re.compile(r"^[ \t]*(['\"])use client\1", re.MULTILINE)
_BROKEN_IMPORT = re.compile(r"import\s*\{\s*\n\s*import\s*\{")
_IMPORT_LINE = re.compile(r"^import\s.+$", re.MULTILINE)
_COMMENT_LINE = re.compile(r"^\s*(?://.*|/\*.*?\*/)?\s*$")


def is_react_component(code: str) -> bool:
    return (
        "from 'react'" in code
        or 'from "react"' in code
        or bool(_HOOK_USE.search(code))
        or bool(re.search(r"return\s*\(?\s*<[A-Za-z>]", code))
        or bool(re.search(r"=>\s*\(?\s*<[A-Za-z>]", code))
    )


def is_nextjs_file(code: str, file_path: Optional[str]) -> bool:
    normalised = (file_path or "").replace("\\", "/")
    return (
        "/app/" in f"/{normalised}"
        or "/pages/" in f"/{normalised}"
        or "from 'next/" in code
        or 'from "next/' in code
        or bool(_DIRECTIVE.search(code))
    )


def _issue(
    detector: Detector,
    severity: Severity,
    description: str,
    count: int = 1,
    pattern: Optional[str] = None,
) -> DetectedIssue:
    return DetectedIssue(
        category=detector.category,
        severity=severity,
        description=description,
        occurrence_count=count,
        fixed_by_layer=detector.layer_id,
        pattern=pattern,
    )


class ConfigurationDetector(Detector):
    category = "config"
    layer_id = 1

    def supports(self, code: str, file_path: Optional[str]) -> bool:
        return config_kind(code, file_path) is not None

    def detect(self, code: str, file_path: Optional[str]) -> Iterable[DetectedIssue]:
        kind = config_kind(code, file_path)
        issues: List[DetectedIssue] = []
        if kind == "tsconfig":
            if re.search(r"\"target\"\s*:\s*\"(?:es3|es5|es6|es201[5-9])\"", code, re.IGNORECASE):
                issues.append(_issue(self, Severity.HIGH, "Outdated TypeScript compilation target", pattern="target"))
        elif kind == "next-config":
            if re.search(r"reactStrictMode\s*:\s*false", code):
                issues.append(_issue(self, Severity.HIGH, "React strict mode disabled", pattern="reactStrictMode"))
            if re.search(r"appDir\s*:\s*true", code):
                issues.append(_issue(self, Severity.MEDIUM, "Deprecated experimental.appDir option", pattern="appDir"))
        elif kind == "package-json":
            data = json.loads(code)
            scripts = data.get("scripts") if isinstance(data, dict) else None
            if isinstance(scripts, dict) and "lint" not in scripts:
                issues.append(_issue(self, Severity.LOW, "Missing standard Next.js scripts", pattern="scripts"))
        return issues


class PatternDetector(Detector):
    category = "pattern"
    layer_id = 2

    def detect(self, code: str, file_path: Optional[str]) -> Iterable[DetectedIssue]:
        issues = []
        for regex, name, severity in _ENTITY_PATTERNS:
            count = len(regex.findall(code))
            if count:
                issues.append(_issue(self, severity, f"{name} found ({count} occurrences)", count, pattern=name))
        return issues


class ComponentDetector(Detector):
    category = "component"
    layer_id = 3

    def supports(self, code: str, file_path: Optional[str]) -> bool:
        return is_react_component(code)

    def detect(self, code: str, file_path: Optional[str]) -> Iterable[DetectedIssue]:
        issues = []
        missing_keys = [
            match for match in _MAP_TO_JSX.finditer(code) if not re.search(r"(?<![\w-])key\s*=", match.group(2))
        ]
        if missing_keys:
            issues.append(
                _issue(
                    self,
                    Severity.HIGH,
                    f"Missing key props in {len(missing_keys)} map operations",
                    len(missing_keys),
                    pattern="Missing key props",
                )
            )

        used = set(_HOOK_USE.findall(code))
        imported = set()
        for match in re.finditer(r"import\s+[^;]*?\{([^}]*)\}\s*from\s*['\"]react['\"]", code):
            imported.update(part.split(" as ")[-1].strip() for part in match.group(1).split(","))
        missing = sorted(used - imported)
        if missing:
            issues.append(
                _issue(
                    self,
                    Severity.CRITICAL,
                    f"Missing React hook imports: {', '.join(missing)}",
                    len(missing),
                    pattern="Missing imports",
                )
            )

        images = len(_IMG_WITHOUT_ALT.findall(code))
        if images:
            issues.append(
                _issue(self, Severity.MEDIUM, f"{images} images missing alt attributes", images, pattern="Accessibility")
            )
        return issues


class HydrationDetector(Detector):
    category = "hydration"
    layer_id = 4

    def supports(self, code: str, file_path: Optional[str]) -> bool:
        return not _GUARD.search(code)

    def detect(self, code: str, file_path: Optional[str]) -> Iterable[DetectedIssue]:
        issues = []
        storage = len(_STORAGE_USE.findall(code))
        if storage:
            issues.append(
                _issue(self, Severity.HIGH, f"{storage} unguarded storage access", storage, pattern="SSR safety")
            )
        window = len(_WINDOW_USE.findall(code))
        if window:
            issues.append(
                _issue(
                    self,
                    Severity.MEDIUM,
                    f"{window} unguarded window/document access",
                    window,
                    pattern="Window access safety",
                )
            )
        return issues


class NextJsDetector(Detector):
    category = "nextjs"
    layer_id = 5

    def detect(self, code: str, file_path: Optional[str]) -> Iterable[DetectedIssue]:
        issues = []
        broken = len(_BROKEN_IMPORT.findall(code))
        if broken:
            issues.append(_issue(self, Severity.CRITICAL, "Corrupted import statements", broken, pattern="Broken imports"))

        lines = [re.sub(r"\s+", " ", line.strip().rstrip(";")) for line in _IMPORT_LINE.findall(code)]
        duplicates = len(lines) - len(set(lines))
        if duplicates:
            issues.append(_issue(self, Severity.MEDIUM, "Duplicate import statements", duplicates, pattern="Duplicate imports"))

        directive = _DIRECTIVE.search(code)
        if directive is not None:
            if not all(_COMMENT_LINE.match(line) for line in code[: directive.start()].splitlines()):
                issues.append(_issue(self, Severity.HIGH, "'use client' directive is not the first statement", pattern="Directive placement"))
        elif is_nextjs_file(code, file_path) and _CLIENT_SIGNALS.search(code):
            issues.append(_issue(self, Severity.HIGH, "Client-side code without 'use client' directive", pattern="Missing directive"))
        return issues


class TestingDetector(Detector):
    category = "testing"
    layer_id = 6
    __test__ = False

    def detect(self, code: str, file_path: Optional[str]) -> Iterable[DetectedIssue]:
        issues = []
        _, duplicates = remove_duplicate_functions(code)
        if duplicates:
            issues.append(
                _issue(self, Severity.MEDIUM, "Duplicate function declarations", duplicates, pattern="Duplicate functions")
            )
        if (
            is_test_file(code, file_path)
            and "toBeInTheDocument" in code
            and "@testing-library/jest-dom" not in code
        ):
            issues.append(_issue(self, Severity.MEDIUM, "jest-dom matchers used without import", pattern="Test setup"))
        return issues


def default_detectors() -> List[Detector]:
    return [
        ConfigurationDetector(),
        PatternDetector(),
        ComponentDetector(),
        HydrationDetector(),
        NextJsDetector(),
        TestingDetector(),
    ]


__all__ = [
    "ComponentDetector",
    "ConfigurationDetector",
    "HydrationDetector",
    "NextJsDetector",
    "PatternDetector",
    "TestingDetector",
    "default_detectors",
    "is_nextjs_file",
    "is_react_component",
]
