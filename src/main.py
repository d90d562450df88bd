"""
Main entry point and run orchestration.
"""

import argparse
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from rules.ir import Severity
from rules.registry import RuleRegistry, init_registry, reset_global_registry
from rules.utils import select_rules
from core.config import Settings
from core.errors import ConfigError, InputError
from core.utils import debug, error, info, set_debug
from lang.profiles import get_profile
from pipeline import collect_source_files, run_analysis
from reporter import OutputMode, build_report, report_findings
from cli.helpers import parse_all_rules, rule_paths_for
from cli.debug import check_parser_impl, dump_fact_schemas, dump_facts_to_dir


def _load_registry(args: argparse.Namespace, settings: Settings) -> RuleRegistry:
    extra = list(settings.extra_rule_paths) + list(args.rules or [])
    paths = rule_paths_for(extra, builtin=not args.no_builtin)
    if not paths:
        raise ConfigError("No rule paths given (--no-builtin without --rules)")
    return parse_all_rules(paths)


def main(args: argparse.Namespace, settings: Settings) -> int:
    """Run the analyze command. Returns the process exit code."""
    registry = init_registry(_load_registry(args, settings))
    min_severity = Severity.from_string(args.min_severity) if args.min_severity else None
    rules = select_rules(
        registry,
        selected=args.detector,
        category=args.category,
        suppress=args.suppress,
    )
    if args.detector:
        info(f"Running {len(rules)} selected detector(s): {', '.join(r.id for r in rules)}")
    elif args.category:
        info(f"Running {len(rules)} detector(s) with category: {args.category}")
    else:
        info(f"Enabled {len(rules)} detectors")

    source_files = collect_source_files(args.input_path, skip_tests=settings.skip_tests)
    if not source_files:
        info(f"No source files found at: {args.input_path}")

    ctx = run_analysis(source_files, rules, settings)

    # A file named explicitly on the command line must be readable; size and
    # timeout guards still only skip it
    if os.path.isfile(args.input_path):
        for diag in ctx.diagnostics:
            if diag.kind == "input-error":
                error(f"Cannot read {diag.file}: {diag.message}")
                return 1

    if args.dump_facts:
        dump_facts_to_dir(ctx, args.dump_facts)

    report = build_report(ctx, len(rules), min_severity)
    output_mode = OutputMode(args.format)

    output_file = None
    if args.output:
        out_dir = os.path.dirname(os.path.abspath(args.output))
        os.makedirs(out_dir, exist_ok=True)
        output_file = open(args.output, "w", encoding="utf-8")
        info(f"Writing results to: {args.output}")

    try:
        report_findings(report, output_mode, output_file)
    finally:
        if output_file:
            output_file.close()

    debug(f"Run finished: {report.summary.findings} finding(s), {len(report.diagnostics)} diagnostic(s)")
    return 0


def list_detectors(args: argparse.Namespace, settings: Settings) -> int:
    registry = _load_registry(args, settings)
    print(f"Available detectors ({len(registry)}):\n")
    for rule in registry.get_all_rules():
        langs = f" ({', '.join(rule.languages)})" if rule.languages else ""
        print(f"  {rule.id} [{rule.severity.value.upper()}] [{rule.category}]{langs}")
        print(f"    {rule.description or rule.title}\n")
    return 0


def list_categories(args: argparse.Namespace, settings: Settings) -> int:
    categories = _load_registry(args, settings).categories()
    print(f"Available categories ({len(categories)}):\n")
    for cat, ids in categories.items():
        print(f"  {cat} ({len(ids)} detectors)")
    return 0


def check_parser(args: argparse.Namespace, settings: Settings) -> int:
    source_files = collect_source_files(args.input_path, skip_tests=settings.skip_tests)
    if not source_files:
        error(f"No source files found at: {args.input_path}")
        return 1
    return check_parser_impl(source_files, settings)


def _add_rule_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-r",
        "--rules",
        action="append",
        metavar="PATH",
        help="Extra .hy detector file or directory (can be specified multiple times)",
    )
    parser.add_argument("--no-builtin", action="store_true", help="Do not load the built-in detectors")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="soliddefend", description="Pattern-based vulnerability detector for smart-contract source"
    )
    parser.add_argument("--debug", action="store_true", help="Verbose debug logging (same as SOLIDDEFEND_DEBUG=1)")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyze a file or directory")
    analyze.add_argument("input_path", help="Source file or directory")
    analyze.add_argument(
        "-d",
        "--detector",
        action="append",
        metavar="ID",
        help="Run only the specified detector(s) (can be specified multiple times)",
    )
    analyze.add_argument("--category", metavar="NAME", help="Run only detectors with the specified category")
    analyze.add_argument(
        "--suppress",
        action="append",
        metavar="ID",
        help="Suppress (skip) the specified detector (can be specified multiple times)",
    )
    analyze.add_argument("-f", "--format", choices=["console", "json"], default="console", help="Output format")
    analyze.add_argument(
        "--min-severity",
        choices=["info", "low", "medium", "high", "critical"],
        default=None,
        help="Minimum severity to report",
    )
    analyze.add_argument("-o", "--output", metavar="FILE", help="Also write the report to FILE")
    analyze.add_argument("--language", metavar="LANG", help="Force a language (solidity, move, rust, generic)")
    analyze.add_argument("-j", "--workers", type=int, default=None, help="Parallel workers (default 1)")
    analyze.add_argument("--max-file-size", type=int, default=None, metavar="BYTES", help="Skip larger files")
    analyze.add_argument("--timeout", type=float, default=None, metavar="SECONDS", help="Per-file time budget")
    analyze.add_argument(
        "--skip-tests",
        action="store_true",
        help="Skip test/example directories (test/, tests/, example/, examples/, mock/, mocks/) and *.t.sol",
    )
    analyze.add_argument("--dump-facts", metavar="DIR", help="Dump all facts to markdown files in DIR (debug)")
    _add_rule_args(analyze)

    detectors = sub.add_parser("list-detectors", help="List all detectors with descriptions")
    _add_rule_args(detectors)

    categories = sub.add_parser("list-categories", help="List all detector categories")
    _add_rule_args(categories)

    sub.add_parser("list-facts", help="Dump all registered facts")

    check = sub.add_parser("check-parser", help="Check parser: report parse errors for every file")
    check.add_argument("input_path", help="Source file or directory")
    check.add_argument("--language", metavar="LANG", help="Force a language (solidity, move, rust, generic)")
    return parser


def cli(argv: Optional[List[str]] = None) -> int:
    # Load environment variables from .env file (if exists)
    load_dotenv()
    args = build_parser().parse_args(argv)
    if args.debug:
        set_debug(True)

    try:
        settings = Settings.from_env().override(
            workers=getattr(args, "workers", None),
            max_file_size=getattr(args, "max_file_size", None),
            file_timeout=getattr(args, "timeout", None),
            language=(getattr(args, "language", None) or "").lower() or None,
            skip_tests=getattr(args, "skip_tests", None) or None,
        )
        if settings.language:
            get_profile(settings.language)

        if args.command == "list-facts":
            dump_fact_schemas()
            return 0
        if args.command == "list-detectors":
            return list_detectors(args, settings)
        if args.command == "list-categories":
            return list_categories(args, settings)
        if args.command == "check-parser":
            return check_parser(args, settings)
        return main(args, settings)
    except ConfigError as e:
        error(str(e))
        return 1
    except InputError as e:
        error(str(e))
        return 1
    finally:
        # The registry lives for one invocation
        reset_global_registry()


if __name__ == "__main__":
    sys.exit(cli())
