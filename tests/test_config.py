"""Tests for layerfix.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from layerfix.config import (
    CONFIG_FILENAME,
    ConfigError,
    LayerfixConfig,
    find_config,
    load_config,
)


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, LayerfixConfig)
    assert config.root == tmp_path.resolve()
    assert config.layers.enabled == [1, 2, 3, 4]
    assert config.layers.skip == []
    assert config.pipeline.use_ast is True
    assert config.pipeline.dry_run is False
    assert config.cache.ttl == pytest.approx(300.0)
    assert config.files.exclude == ["node_modules/", "dist/", ".next/", "build/"]
    assert config.backup_dir == tmp_path.resolve() / ".layerfix" / "backups"
    assert config.validation.corruption_patterns == []
    assert config.workers == 4


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / CONFIG_FILENAME
    config_file.write_text(
        """
layers:
  enabled: [1, 2, 3, 4, 5]
  skip: [3]
  scripts:
    6: "node scripts/layer6.js --fast"
    "2": ["python", "fix.py"]
pipeline:
  dry_run: true
  fail_fast: "yes"
  use_ast: false
  timeout: 12
cache:
  ttl: 60
  max_entries: 50
files:
  include: ["src/**/*.tsx"]
  exclude: []
backups:
  enabled: false
validation:
  max_size_loss: 0.5
  corruption_patterns:
    - name: "Debugger left behind"
      pattern: "\\\\bdebugger;"
workers: 2
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.layers.enabled == [1, 2, 3, 4, 5]
    assert config.layers.skip == [3]
    assert config.layers.scripts == {6: ["node", "scripts/layer6.js", "--fast"], 2: ["python", "fix.py"]}

    assert config.pipeline.dry_run is True
    assert config.pipeline.fail_fast is True
    assert config.pipeline.use_ast is False
    assert config.pipeline.use_cache is True
    assert config.pipeline.timeout == pytest.approx(12.0)

    assert config.cache.ttl == pytest.approx(60.0)
    assert config.cache.max_entries == 50

    assert config.files.include == ["src/**/*.tsx"]
    assert config.files.exclude == []

    assert config.backup_dir is None
    assert config.validation.max_size_loss == pytest.approx(0.5)
    [pattern] = config.validation.corruption_patterns
    assert pattern.name == "Debugger left behind"
    assert pattern.count("debugger;\n") == 1
    assert config.workers == 2


def test_invalid_values_fall_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(
        """
layers:
  enabled: "not-a-number"
pipeline:
  timeout: -1
  use_cache: maybe
cache:
  ttl: soon
validation:
  max_size_loss: 4
workers: 0
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.layers.enabled == [1, 2, 3, 4]
    assert config.pipeline.timeout == pytest.approx(30.0)
    assert config.pipeline.use_cache is True
    assert config.cache.ttl == pytest.approx(300.0)
    assert config.validation.max_size_loss == pytest.approx(0.8)
    assert config.workers == 4


def test_empty_file_yields_defaults(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("\n", encoding="utf-8")

    assert load_config(tmp_path).layers.enabled == [1, 2, 3, 4]


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "layers: [unclosed\n",
        "validation:\n  corruption_patterns:\n    - name: broken\n      pattern: '('\n",
        "validation:\n  corruption_patterns: nope\n",
    ],
)
def test_load_config_rejects_malformed_files(tmp_path: Path, content: str) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_file_path_resolves_to_sibling_config(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("workers: 7\n", encoding="utf-8")
    source = tmp_path / "page.tsx"
    source.write_text("export {};\n", encoding="utf-8")

    assert load_config(source).workers == 7


def test_find_config_walks_up_parent_directories(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("workers: 3\n", encoding="utf-8")
    nested = tmp_path / "src" / "app"
    nested.mkdir(parents=True)

    assert find_config(nested) == (tmp_path / CONFIG_FILENAME).resolve()
    assert find_config(nested / "page.tsx") == (tmp_path / CONFIG_FILENAME).resolve()
