"""Tests for layer discovery, overrides and script layers."""

from __future__ import annotations

import sys
from typing import Optional

import pytest

from layerfix.layers import (
    LayerOutput,
    LayerPlugin,
    LayerRegistry,
    LayerTimeoutError,
    PluginError,
    ScriptLayer,
    TransformOptions,
    UnknownLayerError,
    discover_layers,
)
from layerfix.layers.base import coerce_output
from layerfix.models import MethodUsed


class _Upper(LayerPlugin):
    layer_id = 2

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> str:
        return code.upper()


def test_discover_layers_registers_all_builtins(registry: LayerRegistry) -> None:
    assert registry.layer_ids == (1, 2, 3, 4, 5, 6)
    assert registry.plugin(3).has_ast is True
    assert registry.plugin(1).has_ast is False
    assert registry.plugin(6).has_regex is True


def test_discover_layers_can_limit_enabled_ids() -> None:
    registry = discover_layers(enabled=[1, 2])

    assert registry.layer_ids == (1, 2)
    with pytest.raises(PluginError):
        registry.plugin(3)


def test_unknown_layer_lookup_raises() -> None:
    registry = discover_layers()

    with pytest.raises(UnknownLayerError):
        registry.descriptor(9)


def test_override_replaces_plugin(registry: LayerRegistry) -> None:
    registry.override(_Upper())

    assert isinstance(registry.plugin(2), _Upper)


def test_with_overrides_returns_copy(registry: LayerRegistry) -> None:
    original = registry.plugin(2)

    copy = registry.with_overrides([_Upper()])

    assert isinstance(copy.plugin(2), _Upper)
    assert registry.plugin(2) is original
    assert copy.descriptors == registry.descriptors


def test_override_rejects_plugins_without_strategies(registry: LayerRegistry) -> None:
    class _Empty(LayerPlugin):
        layer_id = 2

    with pytest.raises(TypeError):
        registry.override(_Empty())


def test_registry_rejects_plugins_for_unknown_layers() -> None:
    with pytest.raises(ValueError, match="unknown layers"):
        LayerRegistry({7: _Upper()})


def test_script_layer_pipes_code_through_command() -> None:
    layer = ScriptLayer(2, [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read().upper())"])

    assert layer.regex_transform("const a = 1;", "a.js", TransformOptions()) == "CONST A = 1;"
    assert layer.has_ast is False


def test_script_layer_exposes_file_path() -> None:
    layer = ScriptLayer(2, [sys.executable, "-c", "import os, sys; sys.stdout.write(os.environ['LAYERFIX_FILE'])"])

    assert layer.regex_transform("", "src/a.js", TransformOptions()) == "src/a.js"


def test_script_layer_failure_raises_plugin_error() -> None:
    layer = ScriptLayer(2, [sys.executable, "-c", "import sys; sys.stderr.write('bad input'); sys.exit(3)"])

    with pytest.raises(PluginError, match="bad input") as excinfo:
        layer.regex_transform("x", None, TransformOptions())
    assert excinfo.value.layer_id == 2


def test_script_layer_timeout() -> None:
    layer = ScriptLayer(2, [sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.2)

    with pytest.raises(LayerTimeoutError):
        layer.regex_transform("x", None, TransformOptions())


def test_script_layer_requires_command() -> None:
    with pytest.raises(ValueError):
        ScriptLayer(2, [])


def test_coerce_output_accepts_mappings_and_rejects_other_types() -> None:
    output = coerce_output(
        {"code": "a", "changes": 2, "warnings": "careful"},
        layer_id=3,
        method=MethodUsed.AST,
    )

    assert output == LayerOutput(code="a", changes=2, improvements=[], warnings=["careful"])
    with pytest.raises(PluginError):
        coerce_output(42, layer_id=3, method=MethodUsed.AST)
    with pytest.raises(PluginError):
        coerce_output({"changes": 1}, layer_id=3, method=MethodUsed.AST)
