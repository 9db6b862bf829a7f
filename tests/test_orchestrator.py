"""Tests for layerfix.orchestrator."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from layerfix.config import CONFIG_FILENAME, LayerfixConfig
from layerfix.layers import ScriptLayer, TestingLayer, discover_layers
from layerfix.orchestrator import OrchestrationFailure, Orchestrator, render_diff
from layerfix.pipeline import PipelineOptions
from layerfix.recovery import FILESYSTEM
from tests._fixtures.source_tree import SourceTreeBuilder


def _orchestrator(root: Path, **config_kwargs) -> Orchestrator:
    return Orchestrator(config=LayerfixConfig(root=root, **config_kwargs))


def test_run_auto_adds_dependencies_and_reports_them(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)

    result = orchestrator.run("items.map(item => <div>{item}</div>)", [3])

    assert [layer.layer_id for layer in result.layer_results] == [1, 2, 3]
    assert result.final_code == "items.map(item => <div key={item.id ?? item}>{item}</div>)"
    assert result.warnings[:2] == (
        "Layer 3 (Components) requires Layer 1 (Configuration). Auto-added.",
        "Layer 3 (Components) requires Layer 2 (Entity Cleanup). Auto-added.",
    )


def test_run_defaults_to_configured_layers_minus_skips(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)
    orchestrator.config.layers.skip = [2]

    assert orchestrator.resolve_layers().ordered == (1, 3, 4)
    assert orchestrator.resolve_layers([5]).ordered == (1, 3, 4, 5)


def test_malformed_input_raises_orchestration_failure(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path)

    with pytest.raises(OrchestrationFailure) as excinfo:
        orchestrator.run(b"const a = 1;", [1])  # type: ignore[arg-type]

    report = excinfo.value.report
    assert "code must be str" in report.message
    assert report.context["layers"] == "[1]"
    assert report.suggestions


def test_analyze_uses_shared_resolver(tmp_path: Path) -> None:
    report = _orchestrator(tmp_path).analyze("localStorage.getItem('k');\n", "app/page.js")

    assert report.recommended_layers[:4] == (1, 2, 3, 4)


def test_fix_file_dry_run_leaves_file_untouched(source_tree: SourceTreeBuilder) -> None:
    source_tree.write({"src/list.jsx": "items.map(item => <li>{item}</li>);\n"})
    orchestrator = _orchestrator(source_tree.path())

    outcome = orchestrator.fix_file("src/list.jsx", options=orchestrator.default_options(dry_run=True))

    assert outcome.ok
    assert outcome.written is False
    assert outcome.backup_path is None
    assert "+items.map(item => <li key={item.id ?? item}>{item}</li>);" in outcome.diff
    assert source_tree.read("src/list.jsx") == "items.map(item => <li>{item}</li>);\n"
    assert outcome.result is not None and outcome.result.dry_run is True


def test_fix_file_writes_after_backup(source_tree: SourceTreeBuilder) -> None:
    source_tree.write({"src/list.jsx": "items.map(item => <li>{item}</li>);\n"})
    orchestrator = _orchestrator(source_tree.path())

    outcome = orchestrator.fix_file("src/list.jsx")

    assert outcome.written is True
    assert source_tree.read("src/list.jsx") == "items.map(item => <li key={item.id ?? item}>{item}</li>);\n"
    assert outcome.backup_path is not None
    assert outcome.backup_path.read_text(encoding="utf-8") == "items.map(item => <li>{item}</li>);\n"
    assert outcome.to_dict()["written"] is True


def test_fix_file_without_changes_does_not_write(source_tree: SourceTreeBuilder) -> None:
    source_tree.write({"src/a.js": "export const a = 1;\n"})
    orchestrator = _orchestrator(source_tree.path())

    outcome = orchestrator.fix_file("src/a.js")

    assert outcome.ok and outcome.written is False
    assert outcome.diff == ""
    assert not (source_tree.path() / ".layerfix").exists()


def test_fix_file_reports_unreadable_files(source_tree: SourceTreeBuilder) -> None:
    orchestrator = _orchestrator(source_tree.path())

    outcome = orchestrator.fix_file("missing.js")

    assert outcome.ok is False
    assert outcome.failure is not None and outcome.failure.category == FILESYSTEM


def test_fix_paths_discovers_and_fixes_concurrently(source_tree: SourceTreeBuilder) -> None:
    source_tree.write(
        {
            "src/a.js": 'const a = "&amp;";\n',
            "src/b.js": "export const b = 2;\n",
            "node_modules/x/index.js": 'const x = "&amp;";\n',
        }
    )
    orchestrator = _orchestrator(source_tree.path())

    outcomes = orchestrator.fix_paths(
        [source_tree.path(), "missing-dir"],
        options=PipelineOptions(dry_run=True),
        workers=2,
    )

    assert [outcome.ok for outcome in outcomes] == [False, True, True]
    assert [outcome.path.name for outcome in outcomes[1:]] == ["a.js", "b.js"]
    assert outcomes[1].result is not None and outcomes[1].result.final_code == 'const a = "&";\n'
    assert source_tree.read("src/a.js") == 'const a = "&amp;";\n'


def test_configured_scripts_serve_layers(tmp_path: Path) -> None:
    command = [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read().replace('TODO', 'DONE'))"]
    orchestrator = _orchestrator(tmp_path)
    config = orchestrator.config
    config.layers.scripts = {6: command}

    orchestrator = Orchestrator(config=config)

    assert isinstance(orchestrator.registry.plugin(6), ScriptLayer)
    result = orchestrator.run("// TODO\n", [6])
    assert result.final_code == "// DONE\n"


def test_configured_scripts_leave_shared_registry_untouched(tmp_path: Path) -> None:
    shared = discover_layers()
    config = LayerfixConfig(root=tmp_path)
    config.layers.scripts = {6: [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read())"]}

    scripted = Orchestrator(registry=shared, config=config)
    plain = Orchestrator(registry=shared, config=LayerfixConfig(root=tmp_path))

    assert isinstance(scripted.registry.plugin(6), ScriptLayer)
    assert isinstance(shared.plugin(6), TestingLayer)
    assert plain.registry is shared


def test_for_path_ignores_invalid_configuration(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("- not\n- a mapping\n", encoding="utf-8")

    orchestrator = Orchestrator.for_path(tmp_path / "src" / "a.js")

    assert orchestrator.config.layers.enabled == [1, 2, 3, 4]
    assert orchestrator.config.root == tmp_path.resolve()


def test_for_path_reads_nearest_configuration(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("layers:\n  enabled: [1, 2]\n", encoding="utf-8")
    (tmp_path / "src").mkdir()

    orchestrator = Orchestrator.for_path(tmp_path / "src")

    assert orchestrator.resolve_layers().ordered == (1, 2)
    assert orchestrator.repository.root == tmp_path.resolve()


def test_render_diff_labels_both_sides() -> None:
    diff = render_diff("a\n", "b\n", "src/a.js")

    assert diff.startswith("--- src/a.js (original)\n+++ src/a.js (fixed)\n")
    assert "-a\n+b\n" in diff
