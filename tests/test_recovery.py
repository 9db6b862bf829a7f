from __future__ import annotations

import json

import pytest

from layerfix.layers import LayerTimeoutError, PluginError, UnknownLayerError
from layerfix.parsing import SyntaxTreeError
from layerfix.recovery import (
    DEPENDENCY,
    FILESYSTEM,
    SYNTAX,
    TIMEOUT,
    TRANSFORMATION,
    VALIDATION,
    categorize_error,
    get_suggestions,
    handle_error,
)


@pytest.mark.parametrize(
    ("error", "category"),
    [
        (SyntaxTreeError("bad tree"), SYNTAX),
        (json.JSONDecodeError("Expecting value", "", 0), SYNTAX),
        (LayerTimeoutError("slow"), TIMEOUT),
        (FileNotFoundError("missing.js"), FILESYSTEM),
        (UnknownLayerError(9, (1, 6)), DEPENDENCY),
        (ModuleNotFoundError("tree_sitter"), DEPENDENCY),
        (PluginError("layer crashed"), TRANSFORMATION),
        (RuntimeError("Unexpected token '<'"), SYNTAX),
        (RuntimeError("Cannot resolve module"), DEPENDENCY),
        (RuntimeError("something odd"), VALIDATION),
    ],
)
def test_categorize_error(error: BaseException, category: str) -> None:
    assert categorize_error(error) == category


def test_handle_error_builds_report_with_context() -> None:
    report = handle_error(FileNotFoundError("src/a.js"), {"file_path": "src/a.js"})

    assert report.category == FILESYSTEM
    assert report.message == "src/a.js"
    assert report.recoverable is True
    assert report.suggestions[0] == "Verify the file path exists"
    assert report.to_dict()["context"] == {"file_path": "src/a.js"}


def test_syntax_errors_are_not_recoverable() -> None:
    report = handle_error(SyntaxTreeError("unbalanced"))

    assert report.recoverable is False
    assert report.message == "unbalanced"


def test_unknown_category_has_generic_suggestion() -> None:
    assert get_suggestions("cosmic-rays") == ["Re-run with --verbose and report the error details"]


def test_empty_message_falls_back_to_type_name() -> None:
    assert handle_error(ValueError()).message == "ValueError"
