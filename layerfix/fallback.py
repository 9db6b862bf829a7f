"""Per-layer strategy selection: AST first, textual fallback second."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .layers import LayerRegistry
from .layers.base import LayerOutput, LayerPlugin, PluginError, TransformOptions, coerce_output
from .logging import get_logger
from .models import MethodUsed
from .parsing import SyntaxTreeError, parse_source
from .validators import TransformationValidator, Validator

logger = get_logger("fallback")


@dataclass(frozen=True)
class ExecutionOutcome:
    """Candidate produced for one layer, plus how it was produced."""

    code: str
    method_used: MethodUsed
    fallback_used: bool = False
    fallback_reason: Optional[str] = None
    changes: Optional[int] = None
    improvements: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class FallbackStats:
    """Thread-safe counters describing how often the AST path succeeds."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.ast_attempts = 0
            self.ast_successes = 0
            self.ast_failures = 0
            self.regex_fallbacks = 0
            self.total_executions = 0

    def record(self, *, ast_attempted: bool, ast_succeeded: bool = False, fell_back: bool = False) -> None:
        with self._lock:
            self.total_executions += 1
            if ast_attempted:
                self.ast_attempts += 1
                if ast_succeeded:
                    self.ast_successes += 1
                else:
                    self.ast_failures += 1
            if fell_back:
                self.regex_fallbacks += 1

    @property
    def ast_success_rate(self) -> float:
        with self._lock:
            return self.ast_successes / self.ast_attempts if self.ast_attempts else 0.0

    @property
    def fallback_rate(self) -> float:
        with self._lock:
            return self.regex_fallbacks / self.total_executions if self.total_executions else 0.0

    def as_dict(self) -> Dict[str, float]:
        with self._lock:
            counters: Dict[str, float] = {
                "ast_attempts": self.ast_attempts,
                "ast_successes": self.ast_successes,
                "ast_failures": self.ast_failures,
                "regex_fallbacks": self.regex_fallbacks,
                "total_executions": self.total_executions,
            }
        counters["ast_success_rate"] = self.ast_success_rate
        counters["fallback_rate"] = self.fallback_rate
        return counters


class ASTFallbackController:
    """Runs one layer, preferring its AST strategy and degrading to regex.

    The AST candidate is pre-checked with the validator so that a result
    which would certainly be reverted gives way to the textual strategy.
    Falling back is reported in the returned ``ExecutionOutcome``; only a
    layer with no usable strategy raises ``PluginError``.
    """

    def __init__(
        self,
        registry: LayerRegistry,
        validator: Optional[Validator] = None,
        stats: Optional[FallbackStats] = None,
    ) -> None:
        self.registry = registry
        self.validator = validator or TransformationValidator()
        self.stats = stats or FallbackStats()

    def execute(
        self,
        code: str,
        layer_id: int,
        options: TransformOptions,
        file_path: Optional[str] = None,
    ) -> ExecutionOutcome:
        descriptor = self.registry.descriptor(layer_id)
        plugin = self.registry.plugin(layer_id)

        if not (descriptor.supports_ast and options.use_ast and plugin.has_ast):
            if not plugin.has_regex:
                self.stats.record(ast_attempted=False)
                raise PluginError(
                    f"Layer {layer_id} ({descriptor.name}) has no textual strategy and AST is unavailable",
                    layer_id=layer_id,
                    method=MethodUsed.NONE,
                )
            output = self._run_regex(plugin, code, layer_id, options, file_path)
            self.stats.record(ast_attempted=False)
            return _outcome(output, MethodUsed.REGEX)

        try:
            output = coerce_output(
                plugin.ast_transform(code, file_path, options), layer_id=layer_id, method=MethodUsed.AST
            )
            reason = self._reject_reason(code, output.code, file_path)
            cause: Optional[BaseException] = None
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
            cause = exc

        if reason is None:
            self.stats.record(ast_attempted=True, ast_succeeded=True)
            logger.debug("Layer %d produced its result via AST", layer_id)
            return _outcome(output, MethodUsed.AST)

        if not plugin.has_regex:
            self.stats.record(ast_attempted=True)
            raise PluginError(
                f"Layer {layer_id} ({descriptor.name}) AST transform failed: {reason}",
                layer_id=layer_id,
                method=MethodUsed.AST,
                cause=cause,
            ) from cause

        logger.warning("Layer %d AST transform failed (%s); falling back to regex", layer_id, reason)
        try:
            output = self._run_regex(plugin, code, layer_id, options, file_path)
        finally:
            self.stats.record(ast_attempted=True, fell_back=True)
        return _outcome(output, MethodUsed.REGEX, fallback_reason=reason)

    def _reject_reason(self, before: str, after: str, file_path: Optional[str]) -> Optional[str]:
        if after == before:
            return None
        try:
            parse_source(after, file_path)
        except SyntaxTreeError as exc:
            return f"AST output does not parse: {exc}"
        verdict = self.validator.validate(before, after)
        if not verdict.accept:
            return f"AST result rejected: {verdict.reason}"
        return None

    def _run_regex(
        self,
        plugin: LayerPlugin,
        code: str,
        layer_id: int,
        options: TransformOptions,
        file_path: Optional[str],
    ) -> LayerOutput:
        try:
            raw = plugin.regex_transform(code, file_path, options)
        except PluginError:
            raise
        except Exception as exc:
            raise PluginError(
                f"Layer {layer_id} regex transform failed: {type(exc).__name__}: {exc}",
                layer_id=layer_id,
                method=MethodUsed.REGEX,
                cause=exc,
            ) from exc
        return coerce_output(raw, layer_id=layer_id, method=MethodUsed.REGEX)


def _outcome(output: LayerOutput, method: MethodUsed, *, fallback_reason: Optional[str] = None) -> ExecutionOutcome:
    return ExecutionOutcome(
        code=output.code,
        method_used=method,
        fallback_used=fallback_reason is not None,
        fallback_reason=fallback_reason,
        changes=output.changes,
        improvements=list(output.improvements),
        warnings=list(output.warnings),
    )


__all__ = ["ASTFallbackController", "ExecutionOutcome", "FallbackStats"]
