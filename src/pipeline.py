"""
Run orchestration.

Each source file is one independent unit of work:

    load -> parse -> extract facts -> evaluate every rule on every contract

Units run on a thread pool when more than one worker is configured. A unit
only touches its own SourceFileContext; results are merged into the
ProjectContext in discovery order, so output never depends on scheduling.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

from analysis.extractor import extract_facts
from core.config import DEFAULT_EXTENSIONS, SKIP_DIRS, Deadline, Settings
from core.context import ProjectContext, SourceFileContext
from core.errors import AnalysisTimeout, FileTooLarge, InputError
from core.utils import debug, error, warn
from lang.nodes import ParseError
from lang.parser import parse_source
from lang.source import load_source
from rules.evaluator import evaluate
from rules.ir import Diagnostic, Finding, RuleDefinition, Severity

PARSE_ERROR_RULE = "parse-error"

# Directories skipped with --skip-tests
TEST_DIRS = {"test", "tests", "example", "examples", "mock", "mocks"}


def _is_test_path(path: Path) -> bool:
    if any(part in TEST_DIRS for part in path.parts[:-1]):
        return True
    return path.name.endswith(".t.sol")


def collect_source_files(input_path: str, skip_tests: bool = False, extensions=DEFAULT_EXTENSIONS) -> List[str]:
    """
    Source files under a path (file or directory), sorted.

    An explicitly named file is always returned whatever its extension.
    Raises InputError when the path does not exist.
    """
    path = Path(input_path)
    if not path.exists():
        raise InputError(input_path, "no such file or directory")
    if path.is_file():
        return [str(path)]

    source_files = []
    for file_path in path.rglob("*"):
        if not file_path.is_file() or file_path.suffix.lower() not in extensions:
            continue
        rel = file_path.relative_to(path)
        if any(part in SKIP_DIRS for part in rel.parts[:-1]):
            continue
        if skip_tests and _is_test_path(rel):
            continue
        source_files.append(str(file_path))
    return sorted(source_files)


def _parse_error_finding(path: str, err: ParseError) -> Finding:
    return Finding(
        rule_id=PARSE_ERROR_RULE,
        severity=Severity.INFO,
        file=path,
        line=max(err.line, 1),
        contract="",
        function=err.function,
        message=f"Parse error: {err.message}",
        title="Parse error",
        category="parser",
    )


def analyze_file(path: str, rules: List[RuleDefinition], settings: Settings) -> SourceFileContext:
    """
    Analyze one file. Never raises for per-file problems: unreadable,
    oversize and timed-out files come back with `skipped` set.
    """
    file_ctx = SourceFileContext(path)
    deadline = Deadline(path, settings.file_timeout)
    try:
        unit = load_source(path, settings.max_file_size, settings.language)
        file_ctx.language = unit.language
        tree = parse_source(unit, deadline=deadline)
        tables = extract_facts(tree, deadline)
    except FileTooLarge as e:
        warn(f"Skipping {path}: {e.reason}")
        file_ctx.skipped = e.reason
        file_ctx.diagnostics.append(Diagnostic("oversize", path, e.reason))
        return file_ctx
    except InputError as e:
        warn(f"Skipping {path}: {e.reason}")
        file_ctx.skipped = e.reason
        file_ctx.diagnostics.append(Diagnostic("input-error", path, e.reason))
        return file_ctx
    except AnalysisTimeout as e:
        warn(f"Skipping {path}: {e}")
        file_ctx.skipped = f"timeout after {e.seconds:g}s"
        file_ctx.diagnostics.append(Diagnostic("timeout", path, str(e)))
        return file_ctx

    file_ctx.tables = tables
    file_ctx.parse_errors = list(tree.errors)
    for err in tree.errors:
        file_ctx.findings.append(_parse_error_finding(path, err))

    for table in tables:
        for rule in rules:
            try:
                file_ctx.findings.extend(evaluate(rule, table, file_ctx.diagnostics))
            except Exception as e:
                error(f"{rule.id} failed on {path}:{table.contract}: {e}")
                file_ctx.diagnostics.append(
                    Diagnostic(
                        kind="evaluation-error",
                        file=path,
                        message=f"{type(e).__name__}: {e}",
                        rule_id=rule.id,
                        contract=table.contract,
                        line=table.line,
                    )
                )

    debug(
        f"{path}: {len(tables)} contract(s), {file_ctx.function_count} function(s), "
        f"{len(file_ctx.findings)} finding(s)"
    )
    return file_ctx


def run_analysis(
    source_files: List[str],
    rules: List[RuleDefinition],
    settings: Settings,
    ctx: Optional[ProjectContext] = None,
) -> ProjectContext:
    """Analyze every file and merge the per-file buffers into one ProjectContext."""
    ctx = ctx or ProjectContext(source_files)
    if not source_files:
        return ctx

    if settings.workers > 1 and len(source_files) > 1:
        debug(f"Analyzing {len(source_files)} files with {settings.workers} workers")
        with ThreadPoolExecutor(max_workers=settings.workers) as pool:
            results = list(pool.map(lambda p: analyze_file(p, rules, settings), source_files))
    else:
        results = [analyze_file(p, rules, settings) for p in source_files]

    for file_ctx in results:
        ctx.merge(file_ctx)
    return ctx
