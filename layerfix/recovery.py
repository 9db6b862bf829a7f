"""Categorised error reports for failures that abort a whole run."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .layers.base import LayerTimeoutError, PluginError
from .layers.descriptors import UnknownLayerError
from .parsing import SyntaxTreeError

SYNTAX = "syntax"
FILESYSTEM = "filesystem"
DEPENDENCY = "dependency"
TRANSFORMATION = "transformation"
VALIDATION = "validation"
TIMEOUT = "timeout"

_SUGGESTIONS: Dict[str, Tuple[str, ...]] = {
    SYNTAX: (
        "Check for missing semicolons or brackets",
        "Validate JSX syntax and closing tags",
        "Run with --verbose for detailed syntax information",
    ),
    FILESYSTEM: (
        "Verify the file path exists",
        "Check file permissions",
        "Ensure the working directory is correct",
    ),
    DEPENDENCY: (
        "Check the requested layer ids with 'layerfix layers'",
        "Reinstall layerfix to restore missing dependencies",
        "Verify third-party layer plugins are installed",
    ),
    TRANSFORMATION: (
        "Run layers individually to isolate the failing one",
        "Skip the problematic layer via layers.skip in .layerfix.yml",
        "Retry with --no-ast to use the textual strategies",
    ),
    VALIDATION: (
        "Review transformation output for corruption",
        "Use --dry-run to preview changes",
        "Check that the input is a text source file",
    ),
    TIMEOUT: (
        "Increase pipeline.timeout in .layerfix.yml",
        "Check that external layer scripts terminate",
    ),
}


@dataclass(frozen=True)
class RecoveryReport:
    category: str
    message: str
    suggestions: Tuple[str, ...]
    context: Mapping[str, Any] = field(default_factory=dict)
    recoverable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "message": self.message,
            "suggestions": list(self.suggestions),
            "context": dict(self.context),
            "recoverable": self.recoverable,
        }


def categorize_error(error: BaseException) -> str:
    if isinstance(error, (SyntaxTreeError, SyntaxError, json.JSONDecodeError)):
        return SYNTAX
    if isinstance(error, (LayerTimeoutError, TimeoutError)):
        return TIMEOUT
    if isinstance(error, OSError):
        return FILESYSTEM
    if isinstance(error, (ImportError, UnknownLayerError)):
        return DEPENDENCY
    if isinstance(error, PluginError):
        return TRANSFORMATION

    message = str(error).lower()
    if "syntax" in message or "unexpected token" in message:
        return SYNTAX
    if "no such file" in message or "file not found" in message:
        return FILESYSTEM
    if "module not found" in message or "cannot resolve" in message:
        return DEPENDENCY
    if "transform" in message or "parse" in message:
        return TRANSFORMATION
    return VALIDATION


def get_suggestions(category: str) -> List[str]:
    return list(_SUGGESTIONS.get(category, ("Re-run with --verbose and report the error details",)))


def handle_error(error: BaseException, context: Optional[Mapping[str, Any]] = None) -> RecoveryReport:
    category = categorize_error(error)
    return RecoveryReport(
        category=category,
        message=str(error) or type(error).__name__,
        suggestions=tuple(get_suggestions(category)),
        context=dict(context or {}),
        recoverable=category != SYNTAX,
    )


__all__ = [
    "DEPENDENCY",
    "FILESYSTEM",
    "RecoveryReport",
    "SYNTAX",
    "TIMEOUT",
    "TRANSFORMATION",
    "VALIDATION",
    "categorize_error",
    "get_suggestions",
    "handle_error",
]
