"""Tests for AST-first execution with textual fallback."""

from __future__ import annotations

from typing import Optional

import pytest

from layerfix.fallback import ASTFallbackController
from layerfix.layers import LayerPlugin, LayerRegistry, PluginError, TransformOptions
from layerfix.models import MethodUsed


class _AstOnly(LayerPlugin):
    layer_id = 3

    def ast_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> str:
        raise ValueError("no tree for you")


class _DropsExports(LayerPlugin):
    layer_id = 2

    def ast_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> str:
        return code.replace("export ", "")

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> str:
        return code.replace("1", "2")


def test_ast_strategy_is_preferred(registry: LayerRegistry) -> None:
    controller = ASTFallbackController(registry)

    outcome = controller.execute('const a = "&amp;";\n', 2, TransformOptions(), "a.js")

    assert outcome.method_used is MethodUsed.AST
    assert outcome.fallback_used is False
    assert outcome.code == 'const a = "&";\n'
    assert controller.stats.as_dict()["ast_success_rate"] == pytest.approx(1.0)


def test_unparseable_input_falls_back_to_regex(registry: LayerRegistry) -> None:
    controller = ASTFallbackController(registry)

    outcome = controller.execute('const a = "&amp;";\nconst b = (;\n', 2, TransformOptions(), "a.js")

    assert outcome.method_used is MethodUsed.REGEX
    assert outcome.fallback_used is True
    assert outcome.fallback_reason is not None and outcome.fallback_reason.startswith("SyntaxTreeError")
    assert outcome.code == 'const a = "&";\nconst b = (;\n'
    stats = controller.stats.as_dict()
    assert (stats["ast_attempts"], stats["ast_failures"], stats["regex_fallbacks"]) == (1, 1, 1)
    assert stats["fallback_rate"] == pytest.approx(1.0)


def test_disabling_ast_goes_straight_to_regex(registry: LayerRegistry) -> None:
    controller = ASTFallbackController(registry)

    outcome = controller.execute("var a = 1;\n", 2, TransformOptions(use_ast=False), "a.js")

    assert outcome.method_used is MethodUsed.REGEX
    assert outcome.fallback_used is False
    assert controller.stats.ast_attempts == 0


def test_rejected_ast_candidate_yields_to_regex(registry: LayerRegistry) -> None:
    registry.override(_DropsExports())
    controller = ASTFallbackController(registry)

    outcome = controller.execute("export const a = 1;\n", 2, TransformOptions(), "a.js")

    assert outcome.code == "export const a = 2;\n"
    assert outcome.fallback_reason is not None
    assert outcome.fallback_reason.startswith("AST result rejected")


def test_failing_ast_without_regex_raises(registry: LayerRegistry) -> None:
    registry.override(_AstOnly())
    controller = ASTFallbackController(registry)

    with pytest.raises(PluginError) as excinfo:
        controller.execute("const a = 1;\n", 3, TransformOptions(), "a.js")

    assert excinfo.value.method is MethodUsed.AST
    assert isinstance(excinfo.value.cause, ValueError)


def test_layer_without_ast_support_needs_regex(registry: LayerRegistry) -> None:
    registry.override(_AstOnly(), layer_id=1)
    controller = ASTFallbackController(registry)

    with pytest.raises(PluginError, match="no textual strategy"):
        controller.execute("const a = 1;\n", 1, TransformOptions(), "a.js")


def test_regex_exceptions_become_plugin_errors(registry: LayerRegistry) -> None:
    class _Crashes(LayerPlugin):
        layer_id = 6

        def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> str:
            raise KeyError("missing")

    registry.override(_Crashes())

    with pytest.raises(PluginError, match="regex transform failed"):
        ASTFallbackController(registry).execute("x", 6, TransformOptions())
