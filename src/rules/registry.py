"""
Rule registry: validated, immutable detector set.

The process-wide registry is built once at start-up (init_registry) and is
read-only afterwards, so worker threads share it without locking.
"""

import threading
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional

from core.errors import ConfigError, RuleNotFoundError
from core.facts import FACT_REGISTRY
from core.utils import debug
from lang.profiles import PROFILES
from rules.hy_loader import load_hy_rules
from rules.ir import (
    COUNT_OPS,
    MESSAGE_FIELDS,
    AllOf,
    AnyOf,
    CountOf,
    FactPresent,
    KeywordGroup,
    KeywordPresent,
    Not,
    RuleDefinition,
    Severity,
    message_fields,
    walk_predicate,
)

RULE_SCOPES = ("function", "contract")
MATCH_SCOPES = ("code", "comments", "strings")
FUNCTION_KINDS = ("function", "constructor", "fallback", "receive", "modifier")

BUILTIN_DETECTORS_DIR = Path(__file__).parent / "detectors"


def _check_group(rule: RuleDefinition, group: KeywordGroup) -> None:
    if not isinstance(group, KeywordGroup) or not group.keywords:
        raise ConfigError(f"{rule.id}: empty keyword group")
    for kw in group.keywords:
        if not isinstance(kw, str) or not kw.strip():
            raise ConfigError(f"{rule.id}: empty keyword in group {group}")


def _check_fact(rule: RuleDefinition, name: str) -> None:
    schema = FACT_REGISTRY.get(name)
    if schema is None:
        raise ConfigError(f"{rule.id}: unknown fact '{name}'")
    if rule.scope == "function" and schema.scope == "contract":
        raise ConfigError(f"{rule.id}: contract fact '{name}' used in a function-scope rule")


def _check_count(rule: RuleDefinition, count: CountOf) -> None:
    _check_group(rule, count.group)
    if count.op not in COUNT_OPS:
        raise ConfigError(f"{rule.id}: unknown count operator '{count.op}'")
    if isinstance(count.n, bool) or not isinstance(count.n, int) or count.n < 0:
        raise ConfigError(f"{rule.id}: count bound must be a non-negative integer, got {count.n!r}")


def validate_rule(rule: RuleDefinition) -> None:
    """Raise ConfigError describing the first problem with the rule."""
    if not isinstance(rule.id, str) or not rule.id.strip():
        raise ConfigError(f"Detector with empty id (title: {rule.title!r})")
    if any(ch.isspace() for ch in rule.id):
        raise ConfigError(f"Detector id contains whitespace: {rule.id!r}")
    if not isinstance(rule.severity, Severity) or rule.severity is Severity.INFO:
        raise ConfigError(f"{rule.id}: severity must be one of low, medium, high, critical")
    if rule.scope not in RULE_SCOPES:
        raise ConfigError(f"{rule.id}: unknown scope '{rule.scope}'")
    if not rule.within or any(s not in MATCH_SCOPES for s in rule.within):
        raise ConfigError(f"{rule.id}: matching scopes must be drawn from {', '.join(MATCH_SCOPES)}")

    for group in rule.required:
        _check_group(rule, group)
    for name in rule.required_facts:
        _check_fact(rule, name)
    for count in rule.counts:
        if not isinstance(count, CountOf):
            raise ConfigError(f"{rule.id}: malformed count constraint {count!r}")
        _check_count(rule, count)

    if rule.forbidden is not None:
        for node in walk_predicate(rule.forbidden):
            if isinstance(node, KeywordPresent):
                _check_group(rule, node.group)
            elif isinstance(node, FactPresent):
                _check_fact(rule, node.name)
            elif isinstance(node, CountOf):
                _check_count(rule, node)
            elif isinstance(node, (AllOf, AnyOf)):
                if not node.items:
                    raise ConfigError(f"{rule.id}: empty combinator in forbidden predicate")
            elif not isinstance(node, Not):
                raise ConfigError(f"{rule.id}: malformed forbidden predicate {node!r}")

    if not (rule.required or rule.required_facts or rule.counts):
        raise ConfigError(f"{rule.id}: no positive condition (requires or counts)")

    for lang in rule.languages:
        if lang not in PROFILES:
            raise ConfigError(f"{rule.id}: unknown language '{lang}'")
    if not rule.kinds or any(k not in FUNCTION_KINDS for k in rule.kinds):
        raise ConfigError(f"{rule.id}: function kinds must be drawn from {', '.join(FUNCTION_KINDS)}")

    for template in (rule.message, rule.title):
        try:
            fields = message_fields(template)
        except ValueError as e:
            raise ConfigError(f"{rule.id}: bad message template: {e}") from e
        unknown = fields - MESSAGE_FIELDS
        if unknown:
            raise ConfigError(f"{rule.id}: unknown message placeholder(s): {', '.join(sorted(unknown))}")


class RuleRegistry:
    """Immutable id -> RuleDefinition mapping."""

    def __init__(self, rules: Iterable[RuleDefinition]):
        by_id: Dict[str, RuleDefinition] = {}
        for rule in rules:
            validate_rule(rule)
            if rule.id in by_id:
                first = by_id[rule.id].source or "<unknown>"
                raise ConfigError(f"Duplicate detector id '{rule.id}' ({first} and {rule.source or '<unknown>'})")
            by_id[rule.id] = rule
        self._rules = MappingProxyType(by_id)
        self._sorted = tuple(sorted(by_id.values(), key=lambda r: r.id))

    @classmethod
    def from_files(cls, rule_files: Iterable[str]) -> "RuleRegistry":
        rules: List[RuleDefinition] = []
        for rule_file in rule_files:
            loaded = load_hy_rules(rule_file)
            debug(f"Loaded {len(loaded)} detector(s) from {rule_file}")
            rules.extend(loaded)
        return cls(rules)

    def get_all_rules(self) -> List[RuleDefinition]:
        """All detectors, sorted by id."""
        return list(self._sorted)

    def get_rule(self, rule_id: str) -> RuleDefinition:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise RuleNotFoundError(rule_id) from None

    def categories(self) -> Dict[str, List[str]]:
        """category -> sorted detector ids"""
        out: Dict[str, List[str]] = {}
        for rule in self._sorted:
            out.setdefault(rule.category, []).append(rule.id)
        return dict(sorted(out.items()))

    def __contains__(self, rule_id) -> bool:
        return rule_id in self._rules

    def __iter__(self) -> Iterator[RuleDefinition]:
        return iter(self._sorted)

    def __len__(self) -> int:
        return len(self._sorted)


# =============================================================================
# Process-wide registry
# =============================================================================

_global_registry: Optional[RuleRegistry] = None
_init_lock = threading.Lock()


def init_registry(rules: Iterable[RuleDefinition]) -> RuleRegistry:
    """Build the process-wide registry. A second call is an error."""
    global _global_registry
    with _init_lock:
        if _global_registry is not None:
            raise ConfigError("Rule registry is already initialised")
        registry = rules if isinstance(rules, RuleRegistry) else RuleRegistry(rules)
        _global_registry = registry
        return registry


def get_registry() -> RuleRegistry:
    if _global_registry is None:
        raise ConfigError("Rule registry has not been initialised")
    return _global_registry


def reset_global_registry() -> None:
    """Forget the process-wide registry at the end of a run."""
    global _global_registry
    with _init_lock:
        _global_registry = None
