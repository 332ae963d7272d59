"""Entry point: python -m springcheck {review,rules,checklist} [options]"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from . import __version__
from .analyzers import ChangeAnalyzer, SourceTree, UnifiedDiff
from .config import FAIL_ON_CHOICES, load_project_config, resolve_rules_path
from .core.formatter import render_checklist, render_markdown, render_text, report_to_dict
from .core.pipeline import RunResult, StageError, review_changes
from .core.registry import ConfigError, RuleRegistry

SCHEMA_VERSION = "1.0"


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    if args.command is None:
        parser.print_usage(sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_project_config(args.config)
        rules_path = resolve_rules_path(args.rules, config)
        registry = RuleRegistry(rules_path, config.disabled_rules, config.severity_overrides)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.command == "rules":
        return _list_rules(registry, args.category)
    if args.command == "checklist":
        print(render_checklist(registry), end="")
        return 0

    # Collect change-sets
    warnings: list[str] = []
    changes = []
    try:
        for diff in args.diff:
            if diff == "-":
                changes.append(UnifiedDiff(sys.stdin.read(), name="<stdin>", source_root=args.source_root))
            else:
                text = Path(diff).read_text(encoding="utf-8", errors="replace")
                changes.append(UnifiedDiff(text, name=diff, source_root=args.source_root))
        if args.inputs:
            for raw in args.inputs:
                p = Path(raw)
                if p.is_file() and p.suffix != ".java":
                    warnings.append(f"ignoring non-Java input: {raw}")
            changes.append(SourceTree.from_paths(args.inputs, name=", ".join(args.inputs)))
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if not changes:
        print("Nothing to review.", file=sys.stderr)
        print("Usage: python -m springcheck review <sources...> | --diff <file>", file=sys.stderr)
        return 1

    # Run the reviews
    analyzer = ChangeAnalyzer(exclude=config.exclude)
    try:
        results = review_changes(changes, registry, max_workers=config.max_workers, analyzer=analyzer)
    except StageError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    for result in results:
        for failure in result.failures:
            warnings.append(f"{result.change_name}: could not analyze {failure.path}: {failure.reason}")

    # Print warnings to stderr (all modes)
    for w in warnings:
        print(f"warning: {w}", file=sys.stderr)

    # Output
    output_format = "json" if args.json_output else args.format
    if output_format == "json":
        meta: dict = {"schema_version": SCHEMA_VERSION, "tool_version": __version__, "rules_path": str(rules_path)}
        if warnings:
            meta["warnings"] = warnings
        output = {"meta": meta, "runs": [_run_to_dict(r) for r in results]}
        print(json.dumps(output, indent=2, default=str))
    else:
        for result in results:
            _print_run(result, output_format, titled=len(results) > 1)

    # Exit code based on --fail-on threshold
    fail_on = args.fail_on or config.fail_on
    return 1 if any(_fails(r, fail_on) for r in results) else 0


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--rules", type=Path, help="Path to a rules YAML document")
    common.add_argument("--config", type=Path, help="Path to the project configuration (.springcheck.yaml)")
    common.add_argument("--verbose", "-v", action="store_true", help="Log analysis progress to stderr")

    parser = argparse.ArgumentParser(
        prog="springcheck",
        description="Review checklist evaluator for Java / Spring Boot changes",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    review = sub.add_parser("review", parents=[common], help="Review Java sources or unified diffs")
    review.add_argument("inputs", nargs="*", help="Java files or directories reviewed as one change-set")
    review.add_argument(
        "--diff", action="append", default=[], metavar="FILE",
        help="Unified diff to review ('-' for stdin); repeat for several change-sets",
    )
    review.add_argument("--source-root", type=Path, help="Checkout holding the post-change files of the diffs")
    review.add_argument("--format", choices=["text", "markdown", "json"], default="text", help="Output format")
    review.add_argument("--json", action="store_true", dest="json_output", help="Shorthand for --format json")
    review.add_argument(
        "--fail-on",
        choices=list(FAIL_ON_CHOICES),
        help="Bucket that causes a non-zero exit code (default: blocking, or fail_on from the config)",
    )

    rules = sub.add_parser("rules", parents=[common], help="List the loaded rules")
    rules.add_argument("--category", help="Only list rules in this category")

    sub.add_parser("checklist", parents=[common], help="Print the review checklist as Markdown")
    return parser


def _list_rules(registry: RuleRegistry, category: str | None) -> int:
    if category is not None and category not in registry.categories():
        print(f"error: unknown category '{category}' (known: {', '.join(registry.categories())})", file=sys.stderr)
        return 1
    for rule in registry.rules:
        if category is not None and rule.category != category:
            continue
        mode = "automated" if rule.automated else "advisory"
        print(f"{rule.ref:<32} {rule.severity:<10} {mode:<10} {rule.category}: {rule.title}")
    return 0


def _run_to_dict(result: RunResult) -> dict:
    return {
        "change": result.change_name,
        "outcome": result.outcome,
        "facts": [f.to_dict() for f in result.facts],
        "report": report_to_dict(result.report),
        "failures": [f.to_dict() for f in result.failures],
    }


def _print_run(result: RunResult, output_format: str, titled: bool) -> None:
    if output_format == "markdown":
        if titled:
            print(f"# Review: {result.change_name}\n")
        print(render_markdown(result.report))
        return

    if titled:
        print(f"== {result.change_name} ==")
    if result.report.total:
        print(render_text(result.report))
        print()
    if result.outcome == "incomplete":
        print(f"Review incomplete: {len(result.failures)} file(s) could not be analyzed.")
    elif result.outcome == "clean":
        print("Review complete. No issues found for the checks performed.")


def _fails(result: RunResult, fail_on: str) -> bool:
    if fail_on == "blocking":
        return bool(result.report.blocking)
    if fail_on == "suggested":
        return bool(result.report.blocking or result.report.suggested)
    return False


if __name__ == "__main__":
    sys.exit(main())
