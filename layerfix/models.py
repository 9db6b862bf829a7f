"""Core data models shared across layerfix components."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class Severity(str, Enum):
    """Severity buckets used by issue detectors."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MethodUsed(str, Enum):
    """Strategy that produced a layer's candidate output."""

    AST = "ast"
    REGEX = "regex"
    NONE = "none"


@dataclass(frozen=True)
class LayerDescriptor:
    """Static description of one numbered transformation layer."""

    id: int
    name: str
    description: str
    dependencies: FrozenSet[int] = frozenset()
    supports_ast: bool = False
    critical: bool = False


@dataclass(frozen=True)
class DetectedIssue:
    """A single advisory finding produced by an issue detector."""

    category: str
    severity: Severity
    description: str
    occurrence_count: int
    fixed_by_layer: int
    pattern: Optional[str] = None


@dataclass(frozen=True)
class ImpactEstimate:
    level: str
    description: str
    estimated_fix_time: str


@dataclass(frozen=True)
class CodeMetrics:
    line_count: int
    cyclomatic_complexity: int
    nesting_depth: int
    function_count: int
    import_count: int


@dataclass(frozen=True)
class RiskAssessment:
    """Transformation risk derived from issue mix and code metrics."""

    level: str
    factors: Tuple[str, ...]
    mitigations: Tuple[str, ...]
    approach: str


@dataclass(frozen=True)
class AnalysisReport:
    """Deterministic, read-only summary of a source file's detected issues."""

    issues: Tuple[DetectedIssue, ...]
    recommended_layers: Tuple[int, ...]
    confidence: float
    estimated_impact: ImpactEstimate
    reasoning: Tuple[str, ...] = ()
    metrics: Optional[CodeMetrics] = None
    risk: Optional[RiskAssessment] = None

    def categories(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(issue.category for issue in self.issues))

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class LayerResult:
    """Outcome of one attempted layer; appended in execution order."""

    layer_id: int
    name: str
    success: bool
    change_count: int = 0
    improvements: Tuple[str, ...] = ()
    reverted: bool = False
    revert_reason: Optional[str] = None
    error: Optional[str] = None
    execution_time_ms: int = 0
    method_used: MethodUsed = MethodUsed.NONE
    warnings: Tuple[str, ...] = ()
    cached: bool = False

    @property
    def status(self) -> str:
        """Triage label: ``accepted``, ``reverted`` or ``failed``."""
        if self.reverted:
            return "reverted"
        if self.success:
            return "accepted"
        return "failed"


@dataclass(frozen=True)
class PipelineSummary:
    total_changes: int
    successful_layers: int
    failed_layers: int
    reverted_layers: int
    total_execution_time_ms: int


@dataclass(frozen=True)
class PipelineResult:
    """Terminal artifact of one pipeline run.

    ``snapshots[0]`` is the original input and ``snapshots[i]`` is the code
    after the i-th accepted layer; ``snapshot_layers[i - 1]`` names that layer.
    """

    final_code: str
    layer_results: Tuple[LayerResult, ...]
    snapshots: Tuple[str, ...]
    summary: PipelineSummary
    snapshot_layers: Tuple[int, ...] = ()
    warnings: Tuple[str, ...] = ()
    dry_run: bool = False

    @property
    def original_code(self) -> str:
        return self.snapshots[0]

    @property
    def changed(self) -> bool:
        return self.final_code != self.snapshots[0]

    def rollback_to(self, layer_id: int) -> Optional[str]:
        """Return the snapshot produced by ``layer_id``, or None if it was never accepted."""
        for index, accepted in enumerate(self.snapshot_layers, start=1):
            if accepted == layer_id:
                return self.snapshots[index]
        return None

    def to_dict(self, *, include_snapshots: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "final_code": self.final_code,
            "dry_run": self.dry_run,
            "warnings": list(self.warnings),
            "summary": asdict(self.summary),
            "layer_results": [
                {**_jsonable(asdict(result)), "status": result.status}
                for result in self.layer_results
            ],
        }
        if include_snapshots:
            payload["snapshots"] = list(self.snapshots)
            payload["snapshot_layers"] = list(self.snapshot_layers)
        return payload


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value) if isinstance(value, (set, frozenset)) else value
        return [_jsonable(item) for item in items]
    return value


__all__ = [
    "AnalysisReport",
    "CodeMetrics",
    "DetectedIssue",
    "ImpactEstimate",
    "LayerDescriptor",
    "LayerResult",
    "MethodUsed",
    "PipelineResult",
    "PipelineSummary",
    "RiskAssessment",
    "Severity",
]
