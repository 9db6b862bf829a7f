"""Entry points that tie resolution, analysis and the pipeline to source files."""

from __future__ import annotations

import difflib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .analyzers import IssueAnalyzer
from .config import ConfigError, LayerfixConfig, find_config, load_config
from .dependencies import DependencyResolver, ResolvedLayers
from .fallback import ASTFallbackController
from .layers import LayerRegistry, ScriptLayer, discover_layers
from .logging import get_logger
from .models import AnalysisReport, PipelineResult
from .pipeline import ExecutionPipeline, PipelineOptions
from .recovery import RecoveryReport, handle_error
from .source_repository import SourceRepository
from .stores import CacheService, SkipCache
from .validators import TransformationValidator, Validator


class OrchestrationFailure(RuntimeError):
    """A run was aborted as a whole; ``report`` says why and what to try."""

    def __init__(self, report: RecoveryReport) -> None:
        super().__init__(report.message)
        self.report = report


@dataclass
class FileOutcome:
    """Result of fixing a single file on disk."""

    path: Path
    result: Optional[PipelineResult] = None
    analysis: Optional[AnalysisReport] = None
    backup_path: Optional[Path] = None
    written: bool = False
    diff: str = ""
    failure: Optional[RecoveryReport] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "written": self.written,
            "backup_path": str(self.backup_path) if self.backup_path else None,
            "diff": self.diff,
            "result": self.result.to_dict() if self.result else None,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "failure": self.failure.to_dict() if self.failure else None,
        }


class Orchestrator:
    """Coordinates dependency resolution, analysis and pipeline runs."""

    def __init__(
        self,
        registry: LayerRegistry | None = None,
        cache: CacheService | None = None,
        validator: Validator | None = None,
        config: LayerfixConfig | None = None,
        repository: SourceRepository | None = None,
    ) -> None:
        self.config = config or LayerfixConfig(root=Path.cwd().resolve())
        self.logger = get_logger("orchestrator")
        registry = registry or discover_layers()
        scripts = self.config.layers.scripts
        for layer_id, command in scripts.items():
            self.logger.debug("Layer %d served by script: %s", layer_id, " ".join(command))
        if scripts:
            registry = registry.with_overrides(ScriptLayer(layer_id, command) for layer_id, command in scripts.items())
        self.registry = registry
        if validator is None:
            validator = TransformationValidator(max_size_loss=self.config.validation.max_size_loss).with_patterns(
                self.config.validation.corruption_patterns
            )
        self.validator = validator
        if cache is None:
            cache = SkipCache(ttl=self.config.cache.ttl, max_entries=self.config.cache.max_entries)
        self.cache = cache
        self.resolver = DependencyResolver(self.registry.descriptors)
        self.analyzer = IssueAnalyzer(resolver=self.resolver)
        self.controller = ASTFallbackController(self.registry, self.validator)
        self.pipeline = ExecutionPipeline(controller=self.controller, validator=self.validator, cache=self.cache)
        self.repository = repository or SourceRepository.from_config(self.config)

    @classmethod
    def for_path(cls, path: Path | str, **kwargs: Any) -> "Orchestrator":
        """Build an orchestrator from the .layerfix.yml governing ``path``."""
        return cls(config=cls._load_config(Path(path)), **kwargs)

    @staticmethod
    def _load_config(path: Path) -> LayerfixConfig:
        config_file = find_config(path)
        if config_file is None:
            return LayerfixConfig(root=Path.cwd().resolve())
        try:
            return load_config(config_file)
        except ConfigError as exc:
            get_logger("orchestrator").warning("Ignoring invalid configuration: %s", exc)
            return LayerfixConfig(root=config_file.parent)

    def default_options(self, **overrides: Any) -> PipelineOptions:
        return PipelineOptions.from_config(self.config, **overrides)

    def resolve_layers(self, requested: Optional[Iterable[object]] = None) -> ResolvedLayers:
        """Resolve ``requested`` (default: configured layers) minus configured skips."""
        layers = list(self.config.layers.enabled if requested is None else requested)
        skipped = set(self.config.layers.skip)
        resolved = self.resolver.resolve(layer for layer in layers if layer not in skipped)
        for warning in resolved.warnings:
            self.logger.warning(warning)
        ordered = tuple(layer for layer in resolved.ordered if layer not in skipped)
        for note in self.resolver.compatibility_notes(ordered):
            self.logger.info(note)
        return replace(resolved, ordered=ordered)

    def run(
        self,
        code: str,
        layers: Optional[Sequence[object]] = None,
        options: Optional[PipelineOptions] = None,
        file_path: Optional[str] = None,
    ) -> PipelineResult:
        """Resolve dependencies and run the pipeline.

        Raises ``OrchestrationFailure`` instead of returning a partial result
        when the input is malformed or something outside a layer breaks.
        """
        try:
            resolved = self.resolve_layers(layers)
            result = self.pipeline.run(code, resolved.ordered, options or self.default_options(), file_path)
        except Exception as exc:
            report = handle_error(exc, {"file_path": file_path, "layers": repr(layers)})
            self.logger.error("Run aborted (%s): %s", report.category, report.message)
            raise OrchestrationFailure(report) from exc
        if resolved.warnings:
            result = replace(result, warnings=resolved.warnings + result.warnings)
        return result

    def analyze(self, code: str, file_path: Optional[str] = None) -> AnalysisReport:
        try:
            return self.analyzer.analyze(code, file_path)
        except Exception as exc:
            raise OrchestrationFailure(handle_error(exc, {"file_path": file_path})) from exc

    def fix_file(
        self,
        path: Path | str,
        layers: Optional[Sequence[object]] = None,
        options: Optional[PipelineOptions] = None,
    ) -> FileOutcome:
        """Fix one file; writes (after a backup) only when not in dry-run mode."""
        options = options or self.default_options()
        target = self.repository.resolve(path)
        rel_path = self.repository.relative(target)
        try:
            code = self.repository.read(target)
        except (OSError, UnicodeDecodeError) as exc:
            report = handle_error(exc, {"file_path": rel_path})
            self.logger.error("Cannot read %s: %s", rel_path, report.message)
            return FileOutcome(path=target, failure=report)

        try:
            analysis = self.analyze(code, rel_path)
            result = self.run(code, layers, options, file_path=rel_path)
        except OrchestrationFailure as failure:
            return FileOutcome(path=target, failure=failure.report)

        outcome = FileOutcome(path=target, result=result, analysis=analysis)
        if not result.changed:
            return outcome
        outcome.diff = render_diff(result.original_code, result.final_code, rel_path)
        if options.dry_run:
            self.logger.info("Dry run: %s would change", rel_path)
            return outcome

        try:
            outcome.backup_path = self.repository.backup(target)
            self.repository.write(target, result.final_code)
        except OSError as exc:
            outcome.failure = handle_error(exc, {"file_path": rel_path})
            self.logger.error("Cannot write %s: %s", rel_path, exc)
            return outcome
        outcome.written = True
        self.logger.info("Updated %s (%d changes)", rel_path, result.summary.total_changes)
        return outcome

    def fix_paths(
        self,
        paths: Sequence[Path | str],
        layers: Optional[Sequence[object]] = None,
        options: Optional[PipelineOptions] = None,
        workers: Optional[int] = None,
    ) -> List[FileOutcome]:
        """Discover files under ``paths`` and fix them concurrently, in path order."""
        outcomes: List[FileOutcome] = []
        files: List[Path] = []
        for path in paths:
            try:
                found = self.repository.discover(path)
            except OSError as exc:
                outcomes.append(FileOutcome(path=Path(path), failure=handle_error(exc, {"file_path": str(path)})))
                continue
            files.extend(candidate for candidate in found if candidate not in files)

        options = options or self.default_options()
        max_workers = max(1, workers or self.config.workers)
        self.logger.debug("Fixing %d file(s) with %d worker(s)", len(files), max_workers)
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes.extend(executor.map(lambda file: self.fix_file(file, layers, options), files))
        return outcomes


def render_diff(original: str, updated: str, name: str) -> str:
    diff = difflib.unified_diff(
        original.splitlines(keepends=True),
        updated.splitlines(keepends=True),
        fromfile=f"{name} (original)",
        tofile=f"{name} (fixed)",
    )
    return "".join(diff)


__all__ = ["FileOutcome", "OrchestrationFailure", "Orchestrator", "render_diff"]
