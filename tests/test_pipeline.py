"""Tests for the layer execution pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import pytest

from layerfix.config import LayerfixConfig
from layerfix.layers import LayerPlugin, LayerRegistry, PluginError, TransformOptions
from layerfix.models import MethodUsed
from layerfix.pipeline import (
    NO_CHANGES,
    CatastrophicError,
    ExecutionPipeline,
    PipelineOptions,
    count_changed_lines,
    detect_improvements,
)
from layerfix.stores import SkipCache


class _Exploding(LayerPlugin):
    layer_id = 2

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> str:
        raise PluginError("regex blew up", layer_id=2, method=MethodUsed.REGEX)


class _Corrupting(LayerPlugin):
    layer_id = 3

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> str:
        return code + "const f = () => => 1;\n"


class _Counting(LayerPlugin):
    layer_id = 1

    def __init__(self) -> None:
        self.calls = 0

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> Dict[str, object]:
        self.calls += 1
        return {"code": code}


def test_entity_scenario_produces_one_snapshot_per_accepted_layer() -> None:
    code = 'const message = "Hello &amp; Welcome";\n'

    result = ExecutionPipeline().run(code, [1, 2])

    assert result.final_code == 'const message = "Hello & Welcome";\n'
    assert result.snapshots == (code, code, result.final_code)
    assert result.snapshot_layers == (1, 2)
    assert result.layer_results[0].improvements == (NO_CHANGES,)
    assert result.layer_results[1].method_used is MethodUsed.AST
    assert result.summary.successful_layers == 2
    assert result.summary.total_changes == 1


def test_snapshots_track_every_accepted_layer(registry: LayerRegistry) -> None:
    code = "var a = '&quot;';\nitems.map(item => <li>{item}</li>);\nlocalStorage.clear();\n"

    result = ExecutionPipeline(registry).run(code, [1, 2, 3, 4, 5, 6], file_path="src/list.jsx")

    accepted = [layer for layer in result.layer_results if layer.success]
    assert len(result.snapshots) == 1 + len(accepted)
    assert result.snapshots[0] == code
    assert result.snapshots[-1] == result.final_code
    assert "key={item.id ?? item}" in result.final_code
    assert 'typeof window !== "undefined" && localStorage.clear()' in result.final_code


def test_fail_fast_stops_after_first_failure(registry: LayerRegistry) -> None:
    registry.override(_Exploding())
    code = "const a = 1;\n"

    result = ExecutionPipeline(registry).run(code, [1, 2, 3], PipelineOptions(fail_fast=True))

    assert [layer.layer_id for layer in result.layer_results] == [1, 2]
    failed = result.layer_results[1]
    assert failed.success is False and failed.error == "regex blew up"
    assert failed.status == "failed"
    assert result.final_code == result.snapshots[1]
    assert result.summary.failed_layers == 1


def test_failures_are_isolated_without_fail_fast(registry: LayerRegistry) -> None:
    registry.override(_Exploding())

    result = ExecutionPipeline(registry).run("const a = 1;\n", [1, 2, 3])

    assert [layer.status for layer in result.layer_results] == ["accepted", "failed", "accepted"]
    assert len(result.snapshots) == 3


def test_corrupting_layer_is_reverted(registry: LayerRegistry) -> None:
    registry.override(_Corrupting())
    code = "const a = 1;\n"

    result = ExecutionPipeline(registry).run(code, [3])

    layer = result.layer_results[0]
    assert layer.reverted is True
    assert layer.revert_reason == "Corruption detected: Malformed arrow functions"
    assert result.final_code == code
    assert result.snapshots == (code,)
    assert result.summary.reverted_layers == 1
    assert result.summary.failed_layers == 0


def test_skip_cache_short_circuits_known_no_ops(registry: LayerRegistry, clock) -> None:
    counting = _Counting()
    registry.override(counting)
    pipeline = ExecutionPipeline(registry, cache=SkipCache(clock=clock))

    first = pipeline.run("const a = 1;\n", [1])
    second = pipeline.run("const a = 1;\n", [1])

    assert counting.calls == 1
    assert first.layer_results[0].cached is False
    assert second.layer_results[0].cached is True
    assert second.layer_results[0].improvements == (NO_CHANGES,)
    assert len(second.snapshots) == 2

    clock.advance(301)
    pipeline.run("const a = 1;\n", [1])
    assert counting.calls == 2


def test_cache_can_be_disabled_per_run(registry: LayerRegistry) -> None:
    counting = _Counting()
    registry.override(counting)
    pipeline = ExecutionPipeline(registry, cache=SkipCache())

    pipeline.run("x", [1], PipelineOptions(use_cache=False))
    pipeline.run("x", [1], PipelineOptions(use_cache=False))

    assert counting.calls == 2


@pytest.mark.parametrize(
    ("code", "layers"),
    [
        (b"const a = 1;", [1]),
        ("const a = 1;", "12"),
        ("const a = 1;", [1, True]),
        ("const a = 1;", [1, "2"]),
    ],
)
def test_malformed_input_is_catastrophic(code: object, layers: object) -> None:
    with pytest.raises(CatastrophicError):
        ExecutionPipeline().run(code, layers)  # type: ignore[arg-type]


def test_rollback_and_serialisation() -> None:
    result = ExecutionPipeline().run('const a = "&lt;";\n', [1, 2], PipelineOptions(dry_run=True))

    assert result.rollback_to(2) == result.final_code
    assert result.rollback_to(1) == result.original_code
    assert result.rollback_to(4) is None
    assert result.changed is True

    payload = result.to_dict(include_snapshots=True)
    assert payload["dry_run"] is True
    assert payload["snapshot_layers"] == [1, 2]
    assert payload["layer_results"][1]["method_used"] == "ast"
    assert payload["layer_results"][1]["status"] == "accepted"
    assert "snapshots" not in result.to_dict()


def test_options_from_config_prefer_explicit_overrides(tmp_path: Path) -> None:
    options = PipelineOptions.from_config(LayerfixConfig(root=tmp_path), dry_run=True, fail_fast=None)

    assert options.dry_run is True
    assert options.fail_fast is False
    assert options.transform_options().timeout == pytest.approx(30.0)


def test_count_changed_lines() -> None:
    assert count_changed_lines("a\nb", "a\nb") == 0
    assert count_changed_lines("a\nb", "a\nc") == 1
    assert count_changed_lines("a", "a\nb\nc") == 2


def test_detect_improvements_falls_back_to_line_count() -> None:
    assert detect_improvements("var a = 1;", "const a = 1;", 2) == ["1 var declarations modernised"]
    assert detect_improvements("a", "b", 3) == ["1 code transformations applied"]
    assert detect_improvements("a", "a", 3) == []


def test_jsx_apostrophes_do_not_trigger_reverts() -> None:
    code = "const A = () => items.map(i => <p key={i}>Don't</p>);\nvar total = 1;\n"

    result = ExecutionPipeline().run(code, [2], PipelineOptions(use_cache=False))

    [layer] = result.layer_results
    assert layer.success is True and layer.reverted is False
    assert result.final_code == "const A = () => items.map(i => <p key={i}>Don't</p>);\nconst total = 1;\n"
