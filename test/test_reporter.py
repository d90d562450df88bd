"""Tests for finding aggregation and report rendering."""
import io
import json

from core.context import ProjectContext, SourceFileContext
from reporter import (
    OutputMode,
    RunSummary,
    aggregate,
    bucket_by_severity,
    build_report,
    dedup_findings,
    report_findings,
    report_to_dict,
)
from rules.ir import Diagnostic, Finding, Severity


FINDING_KEYS = {"rule_id", "severity", "file", "line", "contract", "function", "message", "fix_suggestion"}


def finding(rule_id="r", severity=Severity.MEDIUM, file="a.sol", line=1, contract="C", function="f", message="msg", fix=None):
    return Finding(rule_id, severity, file, line, contract, function, message, fix)


def context_with(findings, skipped=None, diagnostics=()):
    files = sorted({f.file for f in findings} | set(skipped or {}))
    ctx = ProjectContext(files)
    for path in files:
        file_ctx = SourceFileContext(path)
        file_ctx.findings = [f for f in findings if f.file == path]
        file_ctx.diagnostics = [d for d in diagnostics if d.file == path]
        if skipped and path in skipped:
            file_ctx.skipped = skipped[path]
        ctx.merge(file_ctx)
    return ctx


class TestAggregation:
    def test_dedup_keeps_first(self):
        a = finding(message="first")
        b = finding(message="second")
        assert dedup_findings([a, b]) == [a]

    def test_same_line_different_rules_are_kept(self):
        a = finding("r1")
        b = finding("r2")
        assert len(dedup_findings([a, b])) == 2

    def test_sort_order(self):
        low = finding("low", Severity.LOW, "a.sol", 1)
        crit_b = finding("crit", Severity.CRITICAL, "b.sol", 5)
        crit_a = finding("crit", Severity.CRITICAL, "a.sol", 9)
        high_a2 = finding("z-high", Severity.HIGH, "a.sol", 2)
        high_a1 = finding("a-high", Severity.HIGH, "a.sol", 2)
        result = aggregate([low, crit_b, crit_a, high_a2, high_a1])
        assert result == [crit_a, crit_b, high_a1, high_a2, low]

    def test_min_severity(self):
        findings = [finding("a", Severity.LOW), finding("b", Severity.HIGH), finding("c", Severity.INFO)]
        assert [f.rule_id for f in aggregate(findings, Severity.MEDIUM)] == ["b"]
        assert len(aggregate(findings)) == 3

    def test_aggregate_is_order_independent(self):
        findings = [finding(str(i), Severity.MEDIUM, f"{i % 3}.sol", i) for i in range(9)]
        assert aggregate(findings) == aggregate(list(reversed(findings)))

    def test_bucket_by_severity(self):
        buckets = bucket_by_severity([finding("a", Severity.HIGH), finding("b", Severity.HIGH), finding("c", Severity.LOW)])
        assert [f.rule_id for f in buckets[Severity.HIGH]] == ["a", "b"]
        assert buckets[Severity.CRITICAL] == []
        assert list(buckets)[0] is Severity.CRITICAL


class TestSummary:
    def test_counts(self):
        findings = [finding("a", Severity.HIGH, "a.sol"), finding("b", Severity.LOW, "b.sol")]
        ctx = context_with(findings, skipped={"big.sol": "file too large"})
        summary = RunSummary.build(ctx, aggregate(ctx.findings), rule_count=5)
        assert summary.files_discovered == 3
        assert summary.files_analyzed == 2
        assert summary.files_skipped == 1
        assert summary.rules == 5
        assert summary.findings == 2
        assert summary.by_severity == {"critical": 0, "high": 1, "medium": 0, "low": 1, "info": 0}
        assert set(summary.to_dict()) == {
            "files_discovered",
            "files_analyzed",
            "files_skipped",
            "contracts",
            "functions",
            "rules",
            "parse_errors",
            "findings",
            "by_severity",
        }


class TestJson:
    def test_record_keys(self, capsys):
        ctx = context_with(
            [finding("r", Severity.HIGH, fix="do x")],
            diagnostics=[Diagnostic("partial-facts-skipped", "a.sol", "skipped", rule_id="r", contract="C", function="f")],
        )
        report = build_report(ctx, rule_count=1)
        assert report_findings(report, OutputMode.JSON) == 1

        data = json.loads(capsys.readouterr().out)
        assert set(data) == {"findings", "summary", "diagnostics", "skipped"}
        record = data["findings"][0]
        assert set(record) == FINDING_KEYS
        assert record["severity"] == "high"
        assert record["fix_suggestion"] == "do x"
        assert data["diagnostics"][0]["kind"] == "partial-facts-skipped"
        assert data["summary"]["findings"] == 1

    def test_null_function_and_fix(self):
        ctx = context_with([finding(function=None)])
        record = report_to_dict(build_report(ctx, rule_count=1))["findings"][0]
        assert record["function"] is None
        assert record["fix_suggestion"] is None

    def test_skipped_files_listed(self):
        ctx = context_with([], skipped={"bad.sol": "not valid UTF-8"})
        data = report_to_dict(build_report(ctx, rule_count=1))
        assert data["skipped"] == [{"file": "bad.sol", "reason": "not valid UTF-8"}]
        assert data["findings"] == []

    def test_json_written_to_output_file(self, capsys):
        out = io.StringIO()
        report_findings(build_report(context_with([finding()]), rule_count=1), OutputMode.JSON, out)
        assert json.loads(out.getvalue()) == json.loads(capsys.readouterr().out)


class TestConsole:
    def test_no_findings(self, capsys):
        count = report_findings(build_report(context_with([]), rule_count=3))
        out = capsys.readouterr().out
        assert count == 0
        assert "No findings" in out
        assert "Summary" in out

    def test_findings(self, capsys):
        ctx = context_with(
            [
                finding("reentrancy", Severity.HIGH, "Bank.sol", 7, "Bank", "withdraw", "Bank.withdraw writes state", "Use CEI"),
                finding("single-oracle", Severity.MEDIUM, "Feed.sol", 2, "Feed", None, "Feed depends on one oracle"),
            ]
        )
        count = report_findings(build_report(ctx, rule_count=2))
        out = capsys.readouterr().out
        assert count == 2
        assert "Found 2 finding(s):" in out
        assert "[HIGH][reentrancy][Bank.sol:7] Bank.withdraw" in out
        assert "[MEDIUM][single-oracle][Feed.sol:2] Feed" in out
        assert "Fix: Use CEI" in out
        assert out.index("reentrancy") < out.index("single-oracle")

    def test_min_severity_filters_console(self, capsys):
        ctx = context_with([finding("low-one", Severity.LOW), finding("high-one", Severity.HIGH)])
        assert report_findings(build_report(ctx, rule_count=2, min_severity=Severity.HIGH)) == 1
        assert "low-one" not in capsys.readouterr().out

    def test_skipped_section(self, capsys):
        report_findings(build_report(context_with([], skipped={"big.sol": "file too large"}), rule_count=1))
        out = capsys.readouterr().out
        assert "Skipped files:" in out
        assert "big.sol: file too large" in out

    def test_output_file_has_no_escape_codes(self, capsys):
        out = io.StringIO()
        report_findings(build_report(context_with([finding(severity=Severity.CRITICAL)]), rule_count=1), output_file=out)
        text = out.getvalue()
        assert "\033[" not in text
        assert "[CRITICAL][r][a.sol:1] C.f" in text
