"""Layer 1: configuration modernisation for tsconfig, next.config and package.json."""

from __future__ import annotations

import json
import re
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from .base import LayerOutput, LayerPlugin, TransformOptions

_LEGACY_TARGETS = {"es3", "es5", "es6", "es2015", "es2016", "es2017", "es2018", "es2019"}
_MODERN_TARGET = "ES2022"
_COMPILER_DEFAULTS: Tuple[Tuple[str, Any], ...] = (
    ("lib", ["dom", "dom.iterable", "esnext"]),
    ("downlevelIteration", True),
    ("allowSyntheticDefaultImports", True),
    ("esModuleInterop", True),
    ("forceConsistentCasingInFileNames", True),
    ("skipLibCheck", True),
)
_NEXT_SCRIPTS = {
    "dev": "next dev",
    "build": "next build",
    "start": "next start",
    "lint": "next lint",
    "type-check": "tsc --noEmit",
}

_STRICT_MODE_FALSE = re.compile(r"reactStrictMode\s*:\s*false")
_APP_DIR_OPTION = re.compile(r"\n?[ \t]*appDir\s*:\s*true\s*,?")
_EMPTY_EXPERIMENTAL = re.compile(r"\n?[ \t]*experimental\s*:\s*\{\s*\}\s*,?")
_NEXT_CONFIG_OPEN = re.compile(r"(const\s+nextConfig\s*(?::\s*[\w.]+\s*)?=\s*\{)")


class ConfigurationLayer(LayerPlugin):
    """Upgrades stale project configuration; other files pass through untouched."""

    layer_id = 1

    def regex_transform(self, code: str, file_path: Optional[str], options: TransformOptions) -> LayerOutput:
        kind = config_kind(code, file_path)
        if kind == "tsconfig":
            return _fix_tsconfig(code)
        if kind == "next-config":
            return _fix_next_config(code)
        if kind == "package-json":
            return _fix_package_json(code)
        return LayerOutput(code=code, changes=0)


def config_kind(code: str, file_path: Optional[str]) -> Optional[str]:
    """Classify ``code`` as ``tsconfig``, ``next-config``, ``package-json`` or None."""
    name = PurePosixPath((file_path or "").replace("\\", "/")).name.lower()
    if name.startswith("tsconfig") and name.endswith(".json"):
        return "tsconfig"
    if name.startswith("next.config."):
        return "next-config"
    if name == "package.json":
        return "package-json"
    if name and not name.endswith((".json", ".js", ".mjs", ".cjs", ".ts")):
        return None
    stripped = code.strip()
    if stripped.startswith("{") and '"compilerOptions"' in code:
        return "tsconfig"
    if "nextConfig" in code and ("module.exports" in code or "export default" in code):
        return "next-config"
    if stripped.startswith("{") and '"scripts"' in code and '"dependencies"' in code:
        return "package-json"
    return None


def _load_json_object(code: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(code)
    except json.JSONDecodeError:
        # tsconfig files often carry comments; leave those alone.
        return None
    return data if isinstance(data, dict) else None


def _dump_json(data: Dict[str, Any], original: str) -> str:
    rendered = json.dumps(data, indent=2, ensure_ascii=False)
    return rendered + "\n" if original.endswith("\n") else rendered


def _fix_tsconfig(code: str) -> LayerOutput:
    data = _load_json_object(code)
    if data is None:
        return LayerOutput(code=code, changes=0)
    options = data.get("compilerOptions")
    if not isinstance(options, dict):
        options = {}
        data["compilerOptions"] = options
    improvements: List[str] = []

    target = options.get("target")
    if not isinstance(target, str) or target.lower() in _LEGACY_TARGETS:
        options["target"] = _MODERN_TARGET
        improvements.append(f"TypeScript target upgraded to {_MODERN_TARGET}")
    added = []
    for key, value in _COMPILER_DEFAULTS:
        if key not in options:
            options[key] = value
            added.append(key)
    if added:
        improvements.append(f"Added compiler options: {', '.join(added)}")

    if not improvements:
        return LayerOutput(code=code, changes=0)
    return LayerOutput(code=_dump_json(data, code), improvements=improvements)


def _fix_next_config(code: str) -> LayerOutput:
    fixed = code
    improvements: List[str] = []

    if _STRICT_MODE_FALSE.search(fixed):
        fixed = _STRICT_MODE_FALSE.sub("reactStrictMode: true", fixed)
        improvements.append("React strict mode enabled")
    elif "reactStrictMode" not in fixed:
        opened, count = _NEXT_CONFIG_OPEN.subn(r"\1\n  reactStrictMode: true,", fixed, count=1)
        if count:
            fixed = opened
            improvements.append("React strict mode enabled")

    without_app_dir = _APP_DIR_OPTION.sub("", fixed)
    if without_app_dir != fixed:
        fixed = _EMPTY_EXPERIMENTAL.sub("", without_app_dir)
        improvements.append("Removed deprecated experimental.appDir option")

    return LayerOutput(code=fixed, improvements=improvements)


def _fix_package_json(code: str) -> LayerOutput:
    data = _load_json_object(code)
    if data is None:
        return LayerOutput(code=code, changes=0)
    dependencies = {
        **(data.get("dependencies") if isinstance(data.get("dependencies"), dict) else {}),
        **(data.get("devDependencies") if isinstance(data.get("devDependencies"), dict) else {}),
    }
    if "next" not in dependencies:
        return LayerOutput(code=code, changes=0)

    scripts = data.get("scripts")
    if not isinstance(scripts, dict):
        scripts = {}
        data["scripts"] = scripts
    added = [name for name in _NEXT_SCRIPTS if name not in scripts]
    if "type-check" in added and "typescript" not in dependencies:
        added.remove("type-check")
    if not added:
        return LayerOutput(code=code, changes=0)
    for name in added:
        scripts[name] = _NEXT_SCRIPTS[name]
    return LayerOutput(
        code=_dump_json(data, code),
        improvements=[f"Added package scripts: {', '.join(added)}"],
    )


__all__ = ["ConfigurationLayer", "config_kind"]
