"""Base classes for layer plugins."""

from __future__ import annotations

import os
import subprocess
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from ..models import MethodUsed


class PluginError(RuntimeError):
    """A layer transform crashed, timed out or produced unusable output."""

    def __init__(
        self,
        message: str,
        *,
        layer_id: Optional[int] = None,
        method: MethodUsed = MethodUsed.NONE,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.layer_id = layer_id
        self.method = method
        self.cause = cause


class LayerTimeoutError(PluginError):
    """An out-of-process layer ran past its timeout."""


@dataclass
class LayerOutput:
    """Rich plugin result; ``changes`` of None means the pipeline counts lines itself."""

    code: str
    changes: Optional[int] = None
    improvements: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class TransformOptions:
    """Options forwarded to plugin transforms."""

    use_ast: bool = True
    dry_run: bool = False
    timeout: float = 30.0
    extra: Mapping[str, Any] = field(default_factory=dict)


class LayerPlugin(ABC):
    """Contract for one numbered layer.

    Subclasses override ``ast_transform``, ``regex_transform`` or both. A
    strategy that is not overridden is reported as unavailable.
    """

    layer_id: int = 0

    def ast_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> str | LayerOutput:
        raise NotImplementedError

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> str | LayerOutput:
        raise NotImplementedError

    @property
    def has_ast(self) -> bool:
        return type(self).ast_transform is not LayerPlugin.ast_transform

    @property
    def has_regex(self) -> bool:
        return type(self).regex_transform is not LayerPlugin.regex_transform


class ScriptLayer(LayerPlugin):
    """Runs an external command as the textual strategy for a layer.

    The command receives the source on stdin and must print the transformed
    source on stdout. The file path is exported as ``LAYERFIX_FILE``.
    """

    def __init__(self, layer_id: int, command: Sequence[str], *, timeout: Optional[float] = None) -> None:
        if not command:
            raise ValueError("ScriptLayer requires a non-empty command")
        self.layer_id = layer_id
        self.command = list(command)
        self.timeout = timeout

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> str:
        timeout = self.timeout if self.timeout is not None else options.timeout
        env = {"LAYERFIX_FILE": file_path or ""}
        try:
            completed = subprocess.run(
                self.command,
                input=code,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
                env={**os.environ, **env},
            )
        except subprocess.TimeoutExpired as exc:
            raise LayerTimeoutError(
                f"Layer {self.layer_id} script timed out after {timeout:g}s",
                layer_id=self.layer_id,
                method=MethodUsed.REGEX,
                cause=exc,
            ) from exc
        except OSError as exc:
            raise PluginError(
                f"Layer {self.layer_id} script could not start: {exc}",
                layer_id=self.layer_id,
                method=MethodUsed.REGEX,
                cause=exc,
            ) from exc
        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip().splitlines()
            detail = stderr[-1] if stderr else f"exit status {completed.returncode}"
            raise PluginError(
                f"Layer {self.layer_id} script failed: {detail}",
                layer_id=self.layer_id,
                method=MethodUsed.REGEX,
            )
        return completed.stdout


def coerce_output(value: object, *, layer_id: int, method: MethodUsed) -> LayerOutput:
    """Normalise a plugin return value (str, LayerOutput or mapping)."""
    if isinstance(value, LayerOutput):
        if not isinstance(value.code, str):
            raise PluginError(f"Layer {layer_id} returned non-string code", layer_id=layer_id, method=method)
        return value
    if isinstance(value, str):
        return LayerOutput(code=value)
    if isinstance(value, Mapping):
        code = value.get("code")
        if not isinstance(code, str):
            raise PluginError(f"Layer {layer_id} returned a mapping without string 'code'", layer_id=layer_id, method=method)
        changes = value.get("changes")
        improvements = value.get("improvements") or []
        warnings = value.get("warnings") or []
        if isinstance(warnings, str):
            warnings = [warnings]
        return LayerOutput(
            code=code,
            changes=changes if isinstance(changes, int) and not isinstance(changes, bool) else None,
            improvements=[str(item) for item in improvements],
            warnings=[str(item) for item in warnings],
        )
    raise PluginError(
        f"Layer {layer_id} returned unsupported type {type(value).__name__}",
        layer_id=layer_id,
        method=method,
    )


__all__ = [
    "LayerOutput",
    "LayerPlugin",
    "LayerTimeoutError",
    "PluginError",
    "ScriptLayer",
    "TransformOptions",
    "coerce_output",
]
