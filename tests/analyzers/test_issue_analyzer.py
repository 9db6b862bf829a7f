"""Tests for the issue analyzer and its detectors."""

from __future__ import annotations

from typing import Iterable, Optional

import pytest

from layerfix.analyzers import Detector, IssueAnalyzer
from layerfix.analyzers.detectors import ComponentDetector, HydrationDetector, NextJsDetector, PatternDetector
from layerfix.analyzers.issues import calculate_confidence, compute_metrics, estimate_impact
from layerfix.models import DetectedIssue, Severity


def _issue(severity: Severity, category: str = "pattern") -> DetectedIssue:
    return DetectedIssue(
        category=category,
        severity=severity,
        description="x",
        occurrence_count=1,
        fixed_by_layer=2,
    )


def test_clean_code_reports_neutral_confidence_and_no_layers() -> None:
    report = IssueAnalyzer().analyze("const total = add(1, 2);\n")

    assert report.issues == ()
    assert report.recommended_layers == ()
    assert report.confidence == pytest.approx(0.6)
    assert report.estimated_impact.level == "low"
    assert report.risk is not None and report.risk.approach == "aggressive"


def test_entity_issue_recommends_pattern_layer_closure() -> None:
    report = IssueAnalyzer().analyze('const message = "Hello &amp; Welcome";\n')

    assert [issue.category for issue in report.issues] == ["pattern"]
    assert report.issues[0].occurrence_count == 1
    assert report.recommended_layers == (1, 2)


def test_missing_hook_import_is_critical() -> None:
    code = "export function Counter() {\n  const [n] = useState(0);\n  return <p>{n}</p>;\n}\n"

    report = IssueAnalyzer().analyze(code, "src/Counter.tsx")

    hooks = [issue for issue in report.issues if issue.pattern == "Missing imports"]
    assert hooks and hooks[0].severity is Severity.CRITICAL
    assert 3 in report.recommended_layers
    assert report.confidence > 0.6


def test_hydration_issues_escalate_in_nextjs_files() -> None:
    code = "export default function Page() {\n  const v = localStorage.getItem('k');\n  return v;\n}\n"

    plain = IssueAnalyzer().analyze(code, "src/util.js")
    nextjs = IssueAnalyzer().analyze(code, "app/page.js")

    plain_storage = next(issue for issue in plain.issues if issue.pattern == "SSR safety")
    next_storage = next(issue for issue in nextjs.issues if issue.pattern == "SSR safety")
    assert plain_storage.severity is Severity.HIGH
    assert next_storage.severity is Severity.CRITICAL


def test_component_issues_escalate_in_react_code() -> None:
    code = "import React from 'react';\nexport const Logo = () => <img src=\"/logo.png\" />;\n"

    report = IssueAnalyzer().analyze(code)

    images = next(issue for issue in report.issues if issue.pattern == "Accessibility")
    assert images.severity is Severity.HIGH


def test_guarded_storage_is_not_reported() -> None:
    code = "if (typeof window !== 'undefined') { localStorage.setItem('a', '1'); }\n"

    report = IssueAnalyzer().analyze(code)

    assert HydrationDetector().supports(code, None) is False
    assert all(issue.category != "hydration" for issue in report.issues)


def test_failing_detector_is_skipped(layerfix_logs: pytest.LogCaptureFixture) -> None:
    class _Broken(Detector):
        category = "pattern"
        layer_id = 2

        def detect(self, code: str, file_path: Optional[str]) -> Iterable[DetectedIssue]:
            raise RuntimeError("detector exploded")

    report = IssueAnalyzer(detectors=[_Broken(), PatternDetector()]).analyze("var a = 1;\n")

    assert [issue.pattern for issue in report.issues] == ["Var declarations"]
    assert any("detector exploded" in message for message in layerfix_logs.messages)


def test_analyze_rejects_non_string_input() -> None:
    with pytest.raises(TypeError):
        IssueAnalyzer().analyze(b"var a = 1;")  # type: ignore[arg-type]


def test_analysis_is_deterministic() -> None:
    code = "var a = '&quot;';\nitems.map(item => <li>{item}</li>);\nlocalStorage.clear();\n"
    analyzer = IssueAnalyzer()

    assert analyzer.analyze(code, "a.jsx") == analyzer.analyze(code, "a.jsx")


def test_missing_keys_detected_only_without_key_prop() -> None:
    detector = ComponentDetector()

    missing = list(detector.detect("items.map(item => <li>{item}</li>)", None))
    keyed = list(detector.detect("items.map(item => <li key={item.id}>{item}</li>)", None))

    assert [issue.pattern for issue in missing] == ["Missing key props"]
    assert keyed == []


def test_nextjs_detector_flags_misplaced_directive() -> None:
    code = "import React from 'react';\n'use client';\nexport default function A() { return null; }\n"

    issues = list(NextJsDetector().detect(code, "app/a.tsx"))

    assert [issue.pattern for issue in issues] == ["Directive placement"]


def test_confidence_is_capped() -> None:
    issues = [_issue(Severity.CRITICAL) for _ in range(40)]

    assert calculate_confidence(issues) == pytest.approx(0.95)
    assert calculate_confidence([]) == pytest.approx(0.6)


def test_impact_levels_and_fix_time() -> None:
    high = estimate_impact([_issue(Severity.CRITICAL) for _ in range(5)])
    medium = estimate_impact([_issue(Severity.MEDIUM) for _ in range(3)])
    low = estimate_impact([_issue(Severity.LOW)])

    assert (high.level, high.estimated_fix_time) == ("high", "75 seconds")
    assert (medium.level, medium.estimated_fix_time) == ("medium", "30 seconds")
    assert (low.level, low.estimated_fix_time) == ("low", "15 seconds")


def test_metrics_count_functions_imports_and_nesting() -> None:
    code = (
        "import a from 'a';\n"
        "function outer() {\n"
        "  if (a) { return () => { return 1; }; }\n"
        "}\n"
    )

    metrics = compute_metrics(code)

    assert metrics.import_count == 1
    assert metrics.function_count == 1
    assert metrics.nesting_depth == 3
    assert metrics.cyclomatic_complexity == 2
    assert metrics.line_count == 4
