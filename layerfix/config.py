"""Configuration loading for layerfix (.layerfix.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from .stores.skip_cache import DEFAULT_MAX_ENTRIES, DEFAULT_TTL
from .validators import CorruptionPattern, load_corruption_patterns
from .validators.transformation import MAX_SIZE_LOSS

CONFIG_FILENAME = ".layerfix.yml"

DEFAULT_LAYERS: Tuple[int, ...] = (1, 2, 3, 4)
DEFAULT_INCLUDE: Tuple[str, ...] = ("**/*.js", "**/*.jsx", "**/*.ts", "**/*.tsx", "**/*.json")
DEFAULT_EXCLUDE: Tuple[str, ...] = ("node_modules/", "dist/", ".next/", "build/")
DEFAULT_BACKUP_DIR = ".layerfix/backups"
DEFAULT_WORKERS = 4


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class LayerSettings:
    """Which layers run by default and which are always skipped."""

    enabled: List[int] = field(default_factory=lambda: list(DEFAULT_LAYERS))
    skip: List[int] = field(default_factory=list)
    scripts: Dict[int, List[str]] = field(default_factory=dict)


@dataclass
class PipelineSettings:
    dry_run: bool = False
    fail_fast: bool = False
    use_ast: bool = True
    use_cache: bool = True
    timeout: float = 30.0


@dataclass
class CacheSettings:
    ttl: float = DEFAULT_TTL
    max_entries: int = DEFAULT_MAX_ENTRIES


@dataclass
class FileSettings:
    """Glob filters applied when discovering source files."""

    include: List[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))


@dataclass
class BackupSettings:
    enabled: bool = True
    directory: str = DEFAULT_BACKUP_DIR


@dataclass
class ValidationSettings:
    """Extra corruption signatures appended to the built-in list."""

    corruption_patterns: List[CorruptionPattern] = field(default_factory=list)
    max_size_loss: float = MAX_SIZE_LOSS


@dataclass
class LayerfixConfig:
    """Represents the high-level settings defined in .layerfix.yml."""

    root: Path
    layers: LayerSettings = field(default_factory=LayerSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    files: FileSettings = field(default_factory=FileSettings)
    backups: BackupSettings = field(default_factory=BackupSettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    workers: int = DEFAULT_WORKERS

    @property
    def backup_dir(self) -> Optional[Path]:
        if not self.backups.enabled:
            return None
        return self.root / self.backups.directory


def load_config(config_path: Path) -> LayerfixConfig:
    """Load configuration from disk; a missing file yields the defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return LayerfixConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    defaults = LayerfixConfig(root=root)

    layer_data = _as_dict(data.get("layers"))
    layers = LayerSettings()
    if layer_data:
        enabled = _as_int_list(layer_data.get("enabled"))
        if enabled:
            layers.enabled = enabled
        layers.skip = _as_int_list(layer_data.get("skip"))
        layers.scripts = _as_scripts(layer_data.get("scripts"))

    pipeline_data = _as_dict(data.get("pipeline"))
    pipeline = PipelineSettings()
    if pipeline_data:
        pipeline.dry_run = _or_default(_as_bool(pipeline_data.get("dry_run")), pipeline.dry_run)
        pipeline.fail_fast = _or_default(_as_bool(pipeline_data.get("fail_fast")), pipeline.fail_fast)
        pipeline.use_ast = _or_default(_as_bool(pipeline_data.get("use_ast")), pipeline.use_ast)
        pipeline.use_cache = _or_default(_as_bool(pipeline_data.get("use_cache")), pipeline.use_cache)
        pipeline.timeout = _or_default(_positive(_as_float(pipeline_data.get("timeout"))), pipeline.timeout)

    cache_data = _as_dict(data.get("cache"))
    cache = CacheSettings()
    if cache_data:
        cache.ttl = _or_default(_positive(_as_float(cache_data.get("ttl"))), cache.ttl)
        cache.max_entries = _or_default(_positive(_as_int(cache_data.get("max_entries"))), cache.max_entries)

    file_data = _as_dict(data.get("files"))
    files = FileSettings()
    if file_data:
        files.include = _as_str_list(file_data.get("include")) or files.include
        if "exclude" in file_data:
            files.exclude = _as_str_list(file_data.get("exclude"))

    backup_data = _as_dict(data.get("backups"))
    backups = BackupSettings()
    if backup_data:
        backups.enabled = _or_default(_as_bool(backup_data.get("enabled")), backups.enabled)
        backups.directory = _as_str(backup_data.get("directory")) or backups.directory

    validation_data = _as_dict(data.get("validation"))
    validation = ValidationSettings()
    if validation_data:
        entries = validation_data.get("corruption_patterns") or []
        if not isinstance(entries, list) or not all(isinstance(entry, dict) for entry in entries):
            raise ConfigError("validation.corruption_patterns must be a list of {name, pattern} mappings")
        try:
            validation.corruption_patterns = load_corruption_patterns(entries)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        size_loss = _as_float(validation_data.get("max_size_loss"))
        if size_loss is not None and 0 < size_loss <= 1:
            validation.max_size_loss = size_loss

    workers = _or_default(_positive(_as_int(data.get("workers"))), defaults.workers)

    return LayerfixConfig(
        root=root,
        layers=layers,
        pipeline=pipeline,
        cache=cache,
        files=files,
        backups=backups,
        validation=validation,
        workers=workers,
    )


def find_config(start: Path) -> Optional[Path]:
    """Return the nearest .layerfix.yml at or above ``start``, if any."""
    current = start.expanduser().resolve()
    if not current.is_dir():
        current = current.parent
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.suffix not in {".yml", ".yaml"}:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _or_default(value: Any, default: Any) -> Any:
    return default if value is None else value


def _positive(value: Any) -> Any:
    return value if value is not None and value > 0 else None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


def _as_int_list(value: Any) -> List[int]:
    if isinstance(value, (int, str)):
        value = [value]
    if not isinstance(value, Sequence):
        return []
    result = []
    for item in value:
        number = _as_int(item)
        if number is not None:
            result.append(number)
    return result


def _as_scripts(value: Any) -> Dict[int, List[str]]:
    scripts: Dict[int, List[str]] = {}
    for key, command in _as_dict(value).items():
        layer_id = _as_int(key)
        if layer_id is None:
            continue
        parts = command.split() if isinstance(command, str) else _as_str_list(command)
        if parts:
            scripts[layer_id] = parts
    return scripts


__all__ = [
    "BackupSettings",
    "CONFIG_FILENAME",
    "CacheSettings",
    "ConfigError",
    "FileSettings",
    "LayerSettings",
    "LayerfixConfig",
    "PipelineSettings",
    "ValidationSettings",
    "find_config",
    "load_config",
]
