"""CLI entrypoints for layerfix commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Sequence

from .logging import configure_logging
from .models import AnalysisReport
from .orchestrator import FileOutcome, OrchestrationFailure, Orchestrator


def _add_verbose_option(parser: argparse.ArgumentParser, *, suppress_default: bool = False) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS if suppress_default else False,
        help="Increase log verbosity for troubleshooting.",
    )


def _add_json_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print machine readable JSON instead of a text report.",
    )


def _parse_layers(value: str) -> List[object]:
    layers: List[object] = []
    for token in value.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            layers.append(int(token))
        except ValueError:
            # Kept as-is so the resolver reports it as an invalid id.
            layers.append(token)
    return layers


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="layerfix",
        description="Apply ordered, validated fix layers to JavaScript/TypeScript sources.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    fix_parser = subparsers.add_parser("fix", help="Run fix layers over files or directories.")
    _add_verbose_option(fix_parser, suppress_default=True)
    _add_json_option(fix_parser)
    fix_parser.add_argument("paths", nargs="+", help="Files or directories to fix.")
    fix_parser.add_argument(
        "--layers",
        type=_parse_layers,
        default=None,
        help="Comma separated layer ids, e.g. 1,2,3 (dependencies are added automatically).",
    )
    fix_parser.add_argument("--dry-run", action="store_true", default=None, help="Show diffs without writing files.")
    fix_parser.add_argument(
        "--fail-fast", action="store_true", default=None, help="Stop a file's run at the first failing layer."
    )
    fix_parser.add_argument(
        "--no-ast", dest="use_ast", action="store_false", default=None, help="Use only textual strategies."
    )
    fix_parser.add_argument(
        "--no-cache", dest="use_cache", action="store_false", default=None, help="Disable the no-op skip cache."
    )
    fix_parser.add_argument("--workers", type=int, default=None, help="Number of files processed in parallel.")

    analyze_parser = subparsers.add_parser("analyze", help="Report detected issues and recommended layers.")
    _add_verbose_option(analyze_parser, suppress_default=True)
    _add_json_option(analyze_parser)
    analyze_parser.add_argument("path", help="File to analyze.")

    layers_parser = subparsers.add_parser("layers", help="List the registered layers.")
    _add_verbose_option(layers_parser, suppress_default=True)
    _add_json_option(layers_parser)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for layerfix commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    as_json = bool(getattr(args, "json", False))
    configure_logging(verbose=bool(args.verbose), quiet=as_json)

    if args.command == "fix":
        _run_fix(parser, args, as_json)
    elif args.command == "analyze":
        _run_analyze(parser, args, as_json)
    elif args.command == "layers":
        _run_layers(as_json)
    elif args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run_fix(parser: argparse.ArgumentParser, args: argparse.Namespace, as_json: bool) -> None:
    orchestrator = Orchestrator.for_path(Path(args.paths[0]))
    options = orchestrator.default_options(
        dry_run=args.dry_run,
        fail_fast=args.fail_fast,
        use_ast=args.use_ast,
        use_cache=args.use_cache,
    )
    outcomes = orchestrator.fix_paths(args.paths, args.layers, options, workers=args.workers)

    if as_json:
        print(json.dumps([outcome.to_dict() for outcome in outcomes], indent=2))
    else:
        if not outcomes:
            print("No matching source files found")
        for outcome in outcomes:
            print(_format_outcome(outcome, dry_run=options.dry_run, verbose=bool(args.verbose)))

    failed = [outcome for outcome in outcomes if not outcome.ok]
    if failed:
        parser.exit(1, f"{len(failed)} file(s) failed. Run with --verbose for more details.\n")


def _format_outcome(outcome: FileOutcome, *, dry_run: bool, verbose: bool) -> str:
    name = _relativize(outcome.path)
    if outcome.failure is not None:
        lines = [f"{name}: failed ({outcome.failure.category}) {outcome.failure.message}"]
        lines.extend(f"  - {suggestion}" for suggestion in outcome.failure.suggestions)
        return "\n".join(lines)

    result = outcome.result
    assert result is not None
    if not result.changed:
        state = "unchanged"
    elif dry_run:
        state = "would change (dry-run)"
    else:
        state = "updated"
    lines = [f"{name}: {state}, {result.summary.total_changes} change(s)"]
    for layer in result.layer_results:
        if layer.status == "accepted" and not verbose and not layer.change_count:
            continue
        detail = layer.revert_reason or layer.error or ", ".join(layer.improvements)
        lines.append(f"  Layer {layer.layer_id} ({layer.name}): {layer.status}; {detail}")
    if verbose:
        lines.extend(f"  warning: {warning}" for warning in result.warnings)
    if dry_run and outcome.diff:
        lines.append(outcome.diff.rstrip("\n"))
    return "\n".join(lines)


def _run_analyze(parser: argparse.ArgumentParser, args: argparse.Namespace, as_json: bool) -> None:
    path = Path(args.path)
    orchestrator = Orchestrator.for_path(path)
    try:
        code = orchestrator.repository.read(path)
        report = orchestrator.analyze(code, orchestrator.repository.relative(path))
    except (OSError, UnicodeDecodeError) as exc:
        parser.exit(1, f"Cannot read {args.path}: {exc}\n")
    except OrchestrationFailure as exc:
        parser.exit(1, f"layerfix analyze failed: {exc}\n")

    if as_json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(_format_report(args.path, report))


def _format_report(name: str, report: AnalysisReport) -> str:
    lines = [f"{name}: {len(report.issues)} issue(s), confidence {report.confidence:.2f}"]
    for issue in report.issues:
        lines.append(
            f"  [{issue.severity.value}] {issue.category}: {issue.description} "
            f"(x{issue.occurrence_count}, layer {issue.fixed_by_layer})"
        )
    recommended = ", ".join(str(layer) for layer in report.recommended_layers) or "none"
    lines.append(f"Recommended layers: {recommended}")
    impact = report.estimated_impact
    lines.append(f"Impact: {impact.level} - {impact.description} (about {impact.estimated_fix_time})")
    if report.risk is not None:
        lines.append(f"Risk: {report.risk.level}, suggested approach: {report.risk.approach}")
    return "\n".join(lines)


def _run_layers(as_json: bool) -> None:
    orchestrator = Orchestrator()
    descriptors = [orchestrator.registry.descriptor(layer_id) for layer_id in orchestrator.registry.layer_ids]
    if as_json:
        payload = [
            {
                "id": descriptor.id,
                "name": descriptor.name,
                "description": descriptor.description,
                "dependencies": sorted(descriptor.dependencies),
                "supports_ast": descriptor.supports_ast,
                "critical": descriptor.critical,
            }
            for descriptor in descriptors
        ]
        print(json.dumps(payload, indent=2))
        return
    for descriptor in descriptors:
        deps = ",".join(str(dep) for dep in sorted(descriptor.dependencies)) or "-"
        flags = [flag for flag, on in (("ast", descriptor.supports_ast), ("critical", descriptor.critical)) if on]
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"{descriptor.id}  {descriptor.name:<15} deps: {deps:<10} {descriptor.description}{suffix}")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
