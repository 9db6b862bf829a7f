"""Sequential, validated execution of an ordered layer list."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence

from .fallback import ASTFallbackController, ExecutionOutcome
from .layers import LayerRegistry, discover_layers
from .layers.base import PluginError, TransformOptions
from .logging import get_logger
from .models import LayerResult, MethodUsed, PipelineResult, PipelineSummary
from .stores.skip_cache import CacheService
from .validators import TransformationValidator, Validator

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .config import LayerfixConfig

NO_CHANGES = "no changes needed"

logger = get_logger("pipeline")


class CatastrophicError(TypeError):
    """Malformed top-level input; the whole run is aborted."""


@dataclass
class PipelineOptions:
    """Switches for one pipeline run."""

    dry_run: bool = False
    fail_fast: bool = False
    use_cache: bool = True
    use_ast: bool = True
    timeout: float = 30.0
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: "LayerfixConfig", **overrides: Any) -> "PipelineOptions":
        settings = config.pipeline
        values = {
            "dry_run": settings.dry_run,
            "fail_fast": settings.fail_fast,
            "use_cache": settings.use_cache,
            "use_ast": settings.use_ast,
            "timeout": settings.timeout,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def transform_options(self) -> TransformOptions:
        return TransformOptions(use_ast=self.use_ast, dry_run=self.dry_run, timeout=self.timeout, extra=self.extra)


class ExecutionPipeline:
    """Drives layers through the fallback controller and the validator.

    ``snapshots[0]`` is the input; every accepted layer (including skip-cache
    hits) appends one snapshot, so ``len(snapshots) == 1 + accepted``.
    Per-layer failures never escape ``run``.
    """

    def __init__(
        self,
        registry: Optional[LayerRegistry] = None,
        *,
        controller: Optional[ASTFallbackController] = None,
        validator: Optional[Validator] = None,
        cache: Optional[CacheService] = None,
    ) -> None:
        if controller is None:
            controller = ASTFallbackController(registry or discover_layers(), validator or TransformationValidator())
        self.controller = controller
        self.registry = controller.registry
        self.validator = validator or controller.validator
        self.cache = cache

    def run(
        self,
        code: str,
        ordered_layers: Sequence[int],
        options: Optional[PipelineOptions] = None,
        file_path: Optional[str] = None,
    ) -> PipelineResult:
        _check_input(code, ordered_layers)
        options = options or PipelineOptions()
        transform_options = options.transform_options()
        use_cache = options.use_cache and self.cache is not None

        started = time.perf_counter()
        current = code
        snapshots: List[str] = [code]
        snapshot_layers: List[int] = []
        results: List[LayerResult] = []
        warnings: List[str] = []

        for layer_id in ordered_layers:
            name = self._layer_name(layer_id)
            content_hash = self.cache.fingerprint(current) if use_cache else None
            if content_hash is not None and self.cache.should_skip(content_hash, layer_id):
                logger.debug("Layer %d skipped: cached no-op for this content", layer_id)
                results.append(
                    LayerResult(layer_id=layer_id, name=name, success=True, improvements=(NO_CHANGES,), cached=True)
                )
                snapshots.append(current)
                snapshot_layers.append(layer_id)
                continue

            logger.debug("Layer %d (%s) starting", layer_id, name)
            layer_started = time.perf_counter()
            try:
                outcome = self.controller.execute(current, layer_id, transform_options, file_path)
            except Exception as exc:
                elapsed = _elapsed_ms(layer_started)
                method = exc.method if isinstance(exc, PluginError) else MethodUsed.NONE
                logger.error("Layer %d (%s) failed: %s", layer_id, name, exc)
                results.append(
                    LayerResult(
                        layer_id=layer_id,
                        name=name,
                        success=False,
                        error=str(exc),
                        execution_time_ms=elapsed,
                        method_used=method,
                    )
                )
                if options.fail_fast:
                    logger.warning("Stopping after layer %d failure (fail-fast)", layer_id)
                    break
                continue

            warnings.extend(_outcome_warnings(layer_id, outcome))
            verdict = self.validator.validate(current, outcome.code)
            elapsed = _elapsed_ms(layer_started)
            if not verdict.accept:
                logger.warning("Layer %d (%s) reverted: %s", layer_id, name, verdict.reason)
                results.append(
                    LayerResult(
                        layer_id=layer_id,
                        name=name,
                        success=False,
                        reverted=True,
                        revert_reason=verdict.reason,
                        execution_time_ms=elapsed,
                        method_used=outcome.method_used,
                        warnings=tuple(outcome.warnings),
                    )
                )
                continue

            if outcome.code == current:
                if content_hash is not None:
                    self.cache.mark_skippable(content_hash, layer_id)
                change_count = 0
                improvements: Sequence[str] = (NO_CHANGES,)
            else:
                change_count = outcome.changes if outcome.changes is not None else count_changed_lines(current, outcome.code)
                improvements = outcome.improvements or detect_improvements(current, outcome.code, layer_id)
            logger.info("Layer %d (%s) accepted with %d change(s)", layer_id, name, change_count)
            results.append(
                LayerResult(
                    layer_id=layer_id,
                    name=name,
                    success=True,
                    change_count=change_count,
                    improvements=tuple(improvements),
                    execution_time_ms=elapsed,
                    method_used=outcome.method_used,
                    warnings=tuple(outcome.warnings),
                )
            )
            current = outcome.code
            snapshots.append(current)
            snapshot_layers.append(layer_id)

        summary = PipelineSummary(
            total_changes=sum(result.change_count for result in results if result.success),
            successful_layers=sum(1 for result in results if result.success),
            failed_layers=sum(1 for result in results if not result.success and not result.reverted),
            reverted_layers=sum(1 for result in results if result.reverted),
            total_execution_time_ms=_elapsed_ms(started),
        )
        return PipelineResult(
            final_code=current,
            layer_results=tuple(results),
            snapshots=tuple(snapshots),
            summary=summary,
            snapshot_layers=tuple(snapshot_layers),
            warnings=tuple(warnings),
            dry_run=options.dry_run,
        )

    def _layer_name(self, layer_id: int) -> str:
        descriptor = self.registry.descriptors.get(layer_id)
        return descriptor.name if descriptor is not None else f"Layer {layer_id}"


def _check_input(code: object, ordered_layers: object) -> None:
    if not isinstance(code, str):
        raise CatastrophicError(f"code must be str, not {type(code).__name__}")
    if isinstance(ordered_layers, (str, bytes)) or not isinstance(ordered_layers, Sequence):
        raise CatastrophicError("layers must be a sequence of integer layer ids")
    for layer_id in ordered_layers:
        if not isinstance(layer_id, int) or isinstance(layer_id, bool):
            raise CatastrophicError(f"layer ids must be integers, got {layer_id!r}")


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _outcome_warnings(layer_id: int, outcome: ExecutionOutcome) -> List[str]:
    notes = [f"Layer {layer_id}: {warning}" for warning in outcome.warnings]
    if outcome.fallback_used:
        notes.append(f"Layer {layer_id} fell back to regex: {outcome.fallback_reason}")
    return notes


def count_changed_lines(before: str, after: str) -> int:
    """Positional line comparison plus the difference in line counts."""
    if before == after:
        return 0
    before_lines = before.split("\n")
    after_lines = after.split("\n")
    changes = abs(len(before_lines) - len(after_lines))
    changes += sum(1 for old, new in zip(before_lines, after_lines) if old != new)
    return changes


def _count(pattern: str, text: str) -> int:
    return len(re.findall(pattern, text))


def detect_improvements(before: str, after: str, layer_id: int) -> List[str]:
    """Describe what a layer changed, falling back to a generic line count."""
    if before == after:
        return []
    improvements: List[str] = []
    if layer_id == 1:
        if re.search(r"\"target\"\s*:\s*\"es5\"", before, re.IGNORECASE) and '"ES2022"' in after:
            improvements.append("TypeScript target upgraded to ES2022")
        if "reactStrictMode: false" in before and "reactStrictMode: true" in after:
            improvements.append("React strict mode enabled")
    elif layer_id == 2:
        entities = r"&(?:quot|amp|lt|gt|apos|#x27|nbsp);"
        cleaned = _count(entities, before) - _count(entities, after)
        if cleaned > 0:
            improvements.append(f"{cleaned} HTML entities cleaned")
        converted = _count(r"\bvar\s", before) - _count(r"\bvar\s", after)
        if converted > 0:
            improvements.append(f"{converted} var declarations modernised")
    elif layer_id == 3:
        keys = _count(r"\bkey=", after) - _count(r"\bkey=", before)
        if keys > 0:
            improvements.append(f"{keys} missing key props added")
    elif layer_id == 4:
        guards = _count(r"typeof window", after) - _count(r"typeof window", before)
        if guards > 0:
            improvements.append(f"{guards} SSR guards added")
    elif layer_id == 5:
        if "use client" in after and "use client" not in before:
            improvements.append("'use client' directive added")
    elif layer_id == 6:
        if "@testing-library/jest-dom" in after and "@testing-library/jest-dom" not in before:
            improvements.append("jest-dom matchers imported")
    if not improvements:
        improvements.append(f"{count_changed_lines(before, after)} code transformations applied")
    return improvements


__all__ = [
    "CatastrophicError",
    "ExecutionPipeline",
    "NO_CHANGES",
    "PipelineOptions",
    "count_changed_lines",
    "detect_improvements",
]
