"""
Rule evaluator: RuleDefinition x FactTable -> findings.

A rule fires on a scope when:
  * every required keyword group has at least one present keyword
  * every required fact is present
  * the forbidden predicate does not hold
  * every count constraint holds

Rules whose verdict depends on absence (forbidden predicate) or on exact
counts do not run on partially parsed scopes; a diagnostic is recorded
instead.
"""

from typing import List, Optional

from core.facts import FactTable, FunctionFacts
from core.utils import debug
from rules.eval_context import EvalContext
from rules.ir import Diagnostic, Finding, RuleDefinition


def _matches(rule: RuleDefinition, ctx: EvalContext) -> bool:
    for group in rule.required:
        if not ctx.present(group):
            return False
    for name in rule.required_facts:
        if not ctx.has_fact(name):
            return False
    for count in rule.counts:
        if not count.holds(ctx.count(count.group)):
            return False
    if rule.forbidden is not None and ctx.holds(rule.forbidden):
        return False
    return True


def _partial_skip(rule: RuleDefinition, table: FactTable, fn: Optional[FunctionFacts]) -> Diagnostic:
    where = fn.qualified_name if fn is not None else table.contract
    return Diagnostic(
        kind="partial-facts-skipped",
        file=table.path,
        message=f"{rule.id} not evaluated on {where}: body did not parse cleanly",
        rule_id=rule.id,
        contract=table.contract,
        function=fn.name if fn is not None else None,
        line=fn.line if fn is not None else table.line,
    )


def _function_applies(rule: RuleDefinition, fn: FunctionFacts) -> bool:
    if not fn.has_body or fn.kind not in rule.kinds:
        return False
    return not rule.visibility or fn.visibility in rule.visibility


def _finding(rule: RuleDefinition, table: FactTable, line: int, function: Optional[str]) -> Finding:
    return Finding(
        rule_id=rule.id,
        severity=rule.severity,
        file=table.path,
        line=line,
        contract=table.contract,
        function=function,
        message=rule.render_message(table.contract, function),
        fix_suggestion=rule.fix_suggestion or None,
        title=rule.title,
        category=rule.category,
    )


def evaluate_function_rule(
    rule: RuleDefinition, table: FactTable, diagnostics: Optional[List[Diagnostic]] = None
) -> List[Finding]:
    """At most one finding per matching function, at its declaration line."""
    findings = []
    for fn in table.functions:
        if not _function_applies(rule, fn):
            continue
        if fn.partial and rule.needs_full_body:
            if diagnostics is not None:
                diagnostics.append(_partial_skip(rule, table, fn))
            continue
        ctx = EvalContext(table, fn, rule.within)
        if _matches(rule, ctx):
            findings.append(_finding(rule, table, fn.line, fn.name))
    return findings


def evaluate_contract_rule(
    rule: RuleDefinition, table: FactTable, diagnostics: Optional[List[Diagnostic]] = None
) -> List[Finding]:
    """
    At most one finding per contract, at the first occurrence of the first
    required group (or of the first counted group), else the contract line.
    """
    if table.partial and rule.needs_full_body:
        if diagnostics is not None:
            diagnostics.append(_partial_skip(rule, table, None))
        return []
    ctx = EvalContext(table, None, rule.within)
    if not _matches(rule, ctx):
        return []

    line = table.line
    anchor = rule.required[0] if rule.required else (rule.counts[0].group if rule.counts else None)
    if anchor is not None:
        found = ctx.occurrences(anchor)
        if found:
            line = table.line_of(min(found))
    return [_finding(rule, table, line, None)]


def evaluate(rule: RuleDefinition, facts: FactTable, diagnostics: Optional[List[Diagnostic]] = None) -> List[Finding]:
    """Evaluate one rule against one contract's FactTable. Pure apart from appending diagnostics."""
    if not rule.applies_to_language(facts.language):
        return []
    if rule.scope == "contract":
        findings = evaluate_contract_rule(rule, facts, diagnostics)
    else:
        findings = evaluate_function_rule(rule, facts, diagnostics)
    if findings:
        debug(f"{rule.id}: {len(findings)} finding(s) in {facts.path}:{facts.contract}")
    return findings
