"""Issue analysis: scores a file and recommends a dependency-closed layer set."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from ..dependencies import DependencyResolver
from ..logging import get_logger
from ..models import AnalysisReport, CodeMetrics, DetectedIssue, ImpactEstimate, RiskAssessment, Severity
from ..validators.transformation import extract_functions, extract_imports
from .base import Detector
from .detectors import default_detectors, is_nextjs_file, is_react_component

NEUTRAL_CONFIDENCE = 0.6
MAX_CONFIDENCE = 0.95

_BRANCH = re.compile(r"\b(?:if|for|while|case|catch)\b|&&|\|\||\?(?![.?:])")

logger = get_logger("analyzers.issues")


class IssueAnalyzer:
    """Runs the detector battery over source text. Read-only and deterministic."""

    def __init__(
        self,
        detectors: Optional[Sequence[Detector]] = None,
        resolver: Optional[DependencyResolver] = None,
    ) -> None:
        self.detectors = list(detectors) if detectors is not None else default_detectors()
        self.resolver = resolver or DependencyResolver()

    def analyze(self, code: str, file_path: Optional[str] = None) -> AnalysisReport:
        if not isinstance(code, str):
            raise TypeError(f"code must be str, not {type(code).__name__}")

        issues: List[DetectedIssue] = []
        for detector in self.detectors:
            issues.extend(self._run_detector(detector, code, file_path))
        issues = [_adjust_severity(issue, code, file_path) for issue in issues]

        categories = list(dict.fromkeys(issue.category for issue in issues))
        recommended = self.resolver.minimal_set_for(categories)
        metrics = compute_metrics(code)
        report = AnalysisReport(
            issues=tuple(issues),
            recommended_layers=tuple(recommended),
            confidence=calculate_confidence(issues),
            estimated_impact=estimate_impact(issues),
            reasoning=tuple(self._reasoning(issues, recommended)),
            metrics=metrics,
            risk=assess_risk(issues, metrics),
        )
        logger.info(
            "Analysis of %s: %d issues, recommended layers %s",
            file_path or "<input>",
            len(issues),
            list(recommended) or "none",
        )
        return report

    def _run_detector(self, detector: Detector, code: str, file_path: Optional[str]) -> List[DetectedIssue]:
        try:
            if not detector.supports(code, file_path):
                return []
            return list(detector.detect(code, file_path))
        except Exception as exc:
            logger.debug("Detector %s failed: %s", type(detector).__name__, exc)
            return []

    def _reasoning(self, issues: Sequence[DetectedIssue], recommended: Sequence[int]) -> List[str]:
        by_layer: Dict[int, List[DetectedIssue]] = {}
        for issue in issues:
            by_layer.setdefault(issue.fixed_by_layer, []).append(issue)
        lines = []
        for layer_id in recommended:
            name = self.resolver.descriptor(layer_id).name
            layer_issues = by_layer.get(layer_id)
            if not layer_issues:
                lines.append(f"Layer {layer_id} ({name}): required by later layers")
                continue
            counts = []
            for severity in Severity:
                count = sum(1 for issue in layer_issues if issue.severity is severity)
                if count:
                    counts.append(f"{count} {severity.value}")
            lines.append(f"Layer {layer_id} ({name}): {', '.join(counts)} issue(s)")
        return lines


def _adjust_severity(issue: DetectedIssue, code: str, file_path: Optional[str]) -> DetectedIssue:
    if issue.category == "hydration" and issue.severity is Severity.HIGH and is_nextjs_file(code, file_path):
        return replace(issue, severity=Severity.CRITICAL)
    if issue.category == "component" and issue.severity is Severity.MEDIUM and is_react_component(code):
        return replace(issue, severity=Severity.HIGH)
    return issue


def calculate_confidence(issues: Sequence[DetectedIssue]) -> float:
    total = len(issues)
    if not total:
        return NEUTRAL_CONFIDENCE
    critical = sum(1 for issue in issues if issue.severity is Severity.CRITICAL)
    return min(MAX_CONFIDENCE, NEUTRAL_CONFIDENCE + 0.3 * (critical / total) + min(0.1, total / 50))


def estimate_impact(issues: Sequence[DetectedIssue]) -> ImpactEstimate:
    total = len(issues)
    critical = sum(1 for issue in issues if issue.severity is Severity.CRITICAL)
    medium = sum(1 for issue in issues if issue.severity is Severity.MEDIUM)
    if critical >= 5:
        return ImpactEstimate(
            level="high",
            description=f"{total} total issues, {critical} critical - significant improvements expected",
            estimated_fix_time=f"{max(60, total * 15)} seconds",
        )
    if critical >= 1 or medium >= 3:
        return ImpactEstimate(
            level="medium",
            description=f"{total} total issues, {critical} critical - moderate improvements expected",
            estimated_fix_time=f"{max(30, total * 10)} seconds",
        )
    return ImpactEstimate(
        level="low",
        description=f"{total} total issues, minor improvements expected",
        estimated_fix_time=f"{max(15, total * 5)} seconds",
    )


def compute_metrics(code: str) -> CodeMetrics:
    depth = deepest = 0
    for char in code:
        if char == "{":
            depth += 1
            deepest = max(deepest, depth)
        elif char == "}":
            depth = max(0, depth - 1)
    return CodeMetrics(
        line_count=len(code.splitlines()),
        cyclomatic_complexity=1 + len(_BRANCH.findall(code)),
        nesting_depth=deepest,
        function_count=len(extract_functions(code)),
        import_count=len(extract_imports(code)),
    )


def assess_risk(issues: Sequence[DetectedIssue], metrics: CodeMetrics) -> RiskAssessment:
    factors = []
    critical = sum(1 for issue in issues if issue.severity is Severity.CRITICAL)
    if critical:
        factors.append(f"{critical} critical issue(s) detected")
    if metrics.cyclomatic_complexity > 20:
        factors.append(f"High cyclomatic complexity ({metrics.cyclomatic_complexity})")
    if metrics.nesting_depth > 6:
        factors.append(f"Deep nesting ({metrics.nesting_depth} levels)")
    if metrics.line_count > 500:
        factors.append(f"Large file ({metrics.line_count} lines)")
    if any(issue.category == "hydration" for issue in issues):
        factors.append("Server rendering behaviour will change")

    mitigations = ["Each layer is validated and reverted automatically on failure"]
    if len(factors) >= 3:
        level, approach = "high", "conservative"
        mitigations.extend(["Preview with --dry-run before writing", "Apply one layer at a time"])
    elif factors:
        level, approach = "medium", "standard"
        mitigations.append("Keep backups enabled")
    else:
        level, approach = "low", "aggressive"
    return RiskAssessment(level=level, factors=tuple(factors), mitigations=tuple(mitigations), approach=approach)


__all__ = [
    "IssueAnalyzer",
    "assess_risk",
    "calculate_confidence",
    "compute_metrics",
    "estimate_impact",
]
