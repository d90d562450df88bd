import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TextIO

from core.context import ProjectContext
from rules.ir import Diagnostic, Finding, Severity


_USE_COLOR = not os.environ.get("SOLIDDEFEND_NO_COLORS")


class _C:
    """ANSI color codes."""

    RESET = "\033[0m" if _USE_COLOR else ""
    BOLD = "\033[1m" if _USE_COLOR else ""
    DIM = "\033[2m" if _USE_COLOR else ""
    # Colors
    RED = "\033[31m" if _USE_COLOR else ""
    GREEN = "\033[32m" if _USE_COLOR else ""
    YELLOW = "\033[33m" if _USE_COLOR else ""
    CYAN = "\033[36m" if _USE_COLOR else ""
    # Bright variants
    BRIGHT_RED = "\033[91m" if _USE_COLOR else ""


def _severity_color(severity: Severity) -> str:
    """Get color code for severity level."""
    colors = {
        Severity.CRITICAL: f"{_C.BOLD}{_C.BRIGHT_RED}",
        Severity.HIGH: _C.RED,
        Severity.MEDIUM: _C.YELLOW,
        Severity.LOW: _C.CYAN,
        Severity.INFO: _C.DIM,
    }
    return colors.get(severity, "")


class OutputMode(Enum):
    """Report formats."""

    CONSOLE = "console"
    JSON = "json"


# Highest first
SEVERITY_ORDER = (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW, Severity.INFO)


# =============================================================================
# Aggregation
# =============================================================================


def dedup_findings(findings: List[Finding]) -> List[Finding]:
    """Keep the first finding per (rule, file, line, contract, function)."""
    seen = set()
    out = []
    for f in findings:
        key = f.dedup_key
        if key in seen:
            continue
        seen.add(key)
        out.append(f)
    return out


def aggregate(findings: List[Finding], min_severity: Optional[Severity] = None) -> List[Finding]:
    """Dedup, filter by minimum severity and sort: severity desc, file, line, rule, contract, function."""
    result = dedup_findings(sorted(findings, key=lambda f: f.sort_key))
    if min_severity is not None:
        result = [f for f in result if f.severity >= min_severity]
    return result


def bucket_by_severity(findings: List[Finding]) -> Dict[Severity, List[Finding]]:
    buckets: Dict[Severity, List[Finding]] = {sev: [] for sev in SEVERITY_ORDER}
    for f in findings:
        buckets[f.severity].append(f)
    return buckets


@dataclass
class RunSummary:
    files_discovered: int = 0
    files_analyzed: int = 0
    files_skipped: int = 0
    contracts: int = 0
    functions: int = 0
    rules: int = 0
    parse_errors: int = 0
    findings: int = 0
    by_severity: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def build(cls, ctx: ProjectContext, findings: List[Finding], rule_count: int) -> "RunSummary":
        tables = ctx.tables
        return cls(
            files_discovered=len(ctx.source_files),
            files_analyzed=len(ctx.analyzed_files),
            files_skipped=len(ctx.skipped_files),
            contracts=len(tables),
            functions=sum(len(t.functions) for t in tables),
            rules=rule_count,
            parse_errors=ctx.parse_error_count,
            findings=len(findings),
            by_severity={sev.value: len(items) for sev, items in bucket_by_severity(findings).items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files_discovered": self.files_discovered,
            "files_analyzed": self.files_analyzed,
            "files_skipped": self.files_skipped,
            "contracts": self.contracts,
            "functions": self.functions,
            "rules": self.rules,
            "parse_errors": self.parse_errors,
            "findings": self.findings,
            "by_severity": dict(self.by_severity),
        }


@dataclass
class Report:
    findings: List[Finding]
    diagnostics: List[Diagnostic]
    skipped: List[Dict[str, str]]
    summary: RunSummary


def build_report(ctx: ProjectContext, rule_count: int, min_severity: Optional[Severity] = None) -> Report:
    findings = aggregate(ctx.findings, min_severity)
    diagnostics = sorted(ctx.diagnostics, key=lambda d: d.sort_key)
    skipped = [{"file": f.path, "reason": f.skipped or ""} for f in ctx.skipped_files]
    return Report(findings, diagnostics, skipped, RunSummary.build(ctx, findings, rule_count))


# =============================================================================
# Rendering
# =============================================================================


def report_findings(
    report: Report,
    output_mode: OutputMode = OutputMode.CONSOLE,
    output_file: Optional[TextIO] = None,
) -> int:
    """
    Print the report to stdout (and output_file when given).

    Returns: Number of findings reported
    """
    if output_mode == OutputMode.JSON:
        return report_findings_json(report, output_file)

    def _print(msg: str = ""):
        print(msg)
        if output_file:
            # Files never get escape codes
            print(_strip_colors(msg), file=output_file)

    if not report.findings:
        _print("No findings")
    else:
        _print(f"\nFound {len(report.findings)} finding(s):\n")
        for finding in report.findings:
            _report_single_finding(finding, _print)

    if report.skipped:
        _print(f"\n{_C.BOLD}Skipped files:{_C.RESET}")
        for item in report.skipped:
            _print(f"  {item['file']}: {item['reason']}")

    _print_summary(report.summary, _print)
    return len(report.findings)


def _report_single_finding(finding: Finding, _print) -> None:
    sev = finding.severity
    sev_tag = f"{_severity_color(sev)}{sev.value.upper()}{_C.RESET}"
    rule_tag = f"{_C.BOLD}{finding.rule_id}{_C.RESET}"
    where = f"{finding.file}:{finding.line}"
    if finding.function:
        scope = f"{finding.contract}.{finding.function}" if finding.contract else finding.function
    else:
        scope = finding.contract
    scope_tag = f" {scope}" if scope else ""

    _print(f"[{sev_tag}][{rule_tag}][{where}]{scope_tag}")
    _print(f"    {finding.message}")
    if finding.fix_suggestion:
        _print(f"    {_C.GREEN}Fix:{_C.RESET} {finding.fix_suggestion}")
    _print()


def _print_summary(summary: RunSummary, _print) -> None:
    _print(f"\n{_C.BOLD}Summary{_C.RESET}")
    _print(
        f"  files: {summary.files_discovered} discovered, {summary.files_analyzed} analyzed, "
        f"{summary.files_skipped} skipped"
    )
    _print(f"  contracts: {summary.contracts}, functions: {summary.functions}, detectors: {summary.rules}")
    _print(f"  parse errors: {summary.parse_errors}")
    counts = ", ".join(
        f"{_severity_color(sev)}{sev.value}{_C.RESET}: {summary.by_severity.get(sev.value, 0)}" for sev in SEVERITY_ORDER
    )
    _print(f"  findings: {summary.findings} ({counts})")


def _strip_colors(msg: str) -> str:
    for code in (_C.RESET, _C.BOLD, _C.DIM, _C.RED, _C.GREEN, _C.YELLOW, _C.CYAN, _C.BRIGHT_RED):
        if code:
            msg = msg.replace(code, "")
    return msg


def report_to_dict(report: Report) -> Dict[str, Any]:
    return {
        "findings": [f.to_dict() for f in report.findings],
        "summary": report.summary.to_dict(),
        "diagnostics": [d.to_dict() for d in report.diagnostics],
        "skipped": list(report.skipped),
    }


def report_findings_json(report: Report, output_file: Optional[TextIO] = None) -> int:
    """Report findings in JSON format."""
    json_str = json.dumps(report_to_dict(report), indent=2)
    print(json_str)
    if output_file:
        print(json_str, file=output_file)
    return len(report.findings)
