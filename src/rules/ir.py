"""
Rules IR - Internal Representation for detector rules.

A detector is data: keyword groups, fact requirements and a predicate tree
over them. The evaluator interprets this structure; no rule carries its own
procedural logic.
"""

import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


ID = str


class Severity(Enum):
    """Rule severity levels, ordered from lowest to highest. INFO is reserved for diagnostics."""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_string(cls, s: str) -> "Severity":
        """Parse severity from string (`high`, `High`, `:high`)."""
        s_lower = s.lower().strip().lstrip(":")
        for sev in cls:
            if sev.value == s_lower:
                return sev
        raise ValueError(f"Unknown severity: {s}")

    @property
    def level(self) -> int:
        """Numeric level for comparison (higher = more severe)."""
        levels = {
            Severity.INFO: 0,
            Severity.LOW: 1,
            Severity.MEDIUM: 2,
            Severity.HIGH: 3,
            Severity.CRITICAL: 4,
        }
        return levels[self]

    def __ge__(self, other: "Severity") -> bool:
        return self.level >= other.level

    def __gt__(self, other: "Severity") -> bool:
        return self.level > other.level

    def __le__(self, other: "Severity") -> bool:
        return self.level <= other.level

    def __lt__(self, other: "Severity") -> bool:
        return self.level < other.level


# =============================================================================
# Predicates
# =============================================================================

COUNT_OPS = ("==", "!=", ">=", "<=", ">", "<")


@dataclass(frozen=True)
class KeywordGroup:
    """OR-set of synonyms treated as one logical signal."""

    keywords: Tuple[str, ...]
    substring: bool = False

    def __str__(self):
        words = " | ".join(self.keywords)
        return f"words~({words})" if self.substring else f"words({words})"


@dataclass(frozen=True)
class KeywordPresent:
    group: KeywordGroup

    def __str__(self):
        return str(self.group)


@dataclass(frozen=True)
class FactPresent:
    name: str

    def __str__(self):
        return f"fact({self.name})"


@dataclass(frozen=True)
class AllOf:
    items: Tuple["Predicate", ...]

    def __str__(self):
        return "all-of(" + ", ".join(str(i) for i in self.items) + ")"


@dataclass(frozen=True)
class AnyOf:
    items: Tuple["Predicate", ...]

    def __str__(self):
        return "any-of(" + ", ".join(str(i) for i in self.items) + ")"


@dataclass(frozen=True)
class Not:
    item: "Predicate"

    def __str__(self):
        return f"not({self.item})"


@dataclass(frozen=True)
class CountOf:
    """Exact integer comparison over the combined occurrence count of a synonym group."""

    group: KeywordGroup
    op: str
    n: int

    def holds(self, count: int) -> bool:
        if self.op == "==":
            return count == self.n
        if self.op == "!=":
            return count != self.n
        if self.op == ">=":
            return count >= self.n
        if self.op == "<=":
            return count <= self.n
        if self.op == ">":
            return count > self.n
        if self.op == "<":
            return count < self.n
        raise ValueError(f"Unknown count operator: {self.op}")

    def __str__(self):
        return f"count({self.group}) {self.op} {self.n}"


Predicate = Union[KeywordPresent, FactPresent, AllOf, AnyOf, Not, CountOf]

# A count constraint in the rule body is the same node as a CountOf predicate
CountConstraint = CountOf


def walk_predicate(pred: Predicate):
    """Yield every node of a predicate tree, root first."""
    yield pred
    if isinstance(pred, (AllOf, AnyOf)):
        for item in pred.items:
            yield from walk_predicate(item)
    elif isinstance(pred, Not):
        yield from walk_predicate(pred.item)


# =============================================================================
# Rule definition
# =============================================================================

DEFAULT_KINDS = ("function", "constructor", "fallback", "receive")
MESSAGE_FIELDS = frozenset({"contract", "function", "rule"})


@dataclass(frozen=True)
class RuleDefinition:
    """
    Immutable detector definition.

    Fires on a scope (function or contract) when every required group has a
    present keyword, every required fact is present, the forbidden predicate
    does not hold and every count constraint holds.
    """

    id: ID
    title: str
    severity: Severity
    category: str = "general"
    scope: str = "function"
    within: Tuple[str, ...] = ("code", "comments")
    required: Tuple[KeywordGroup, ...] = ()
    required_facts: Tuple[str, ...] = ()
    forbidden: Optional[Predicate] = None
    counts: Tuple[CountOf, ...] = ()
    languages: Tuple[str, ...] = ()
    visibility: Tuple[str, ...] = ()
    kinds: Tuple[str, ...] = DEFAULT_KINDS
    message: str = ""
    fix_suggestion: str = ""
    description: str = ""
    source: str = field(default="", compare=False)

    @property
    def needs_full_body(self) -> bool:
        """Absence and exact counts cannot be trusted on a partially parsed scope."""
        return self.forbidden is not None or bool(self.counts)

    def applies_to_language(self, language: str) -> bool:
        return not self.languages or language in self.languages

    def render_message(self, contract: str, function: Optional[str]) -> str:
        template = self.message or self.title
        return template.format(contract=contract, function=function or "", rule=self.id)

    def __repr__(self):
        return f"RuleDefinition({self.id}, {self.severity.value}, scope={self.scope})"


def message_fields(template: str):
    """Placeholder names used in a message template. Raises ValueError on bad syntax."""
    return {name for _, name, _, _ in string.Formatter().parse(template) if name is not None}


# =============================================================================
# Findings and diagnostics
# =============================================================================


@dataclass(frozen=True)
class Finding:
    rule_id: ID
    severity: Severity
    file: str
    line: int
    contract: str
    function: Optional[str]
    message: str
    fix_suggestion: Optional[str] = None
    title: str = field(default="", compare=False)
    category: str = field(default="", compare=False)

    @property
    def dedup_key(self) -> Tuple[str, str, int, str, str]:
        return (self.rule_id, self.file, self.line, self.contract, self.function or "")

    @property
    def sort_key(self) -> Tuple[int, str, int, str, str, str]:
        return (-self.severity.level, self.file, self.line, self.rule_id, self.contract, self.function or "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "file": self.file,
            "line": self.line,
            "contract": self.contract,
            "function": self.function,
            "message": self.message,
            "fix_suggestion": self.fix_suggestion,
        }


@dataclass(frozen=True)
class Diagnostic:
    """
    Run note that is not a finding.

    kind: partial-facts-skipped | evaluation-error | input-error | oversize | timeout
    """

    kind: str
    file: str
    message: str
    rule_id: Optional[str] = None
    contract: Optional[str] = None
    function: Optional[str] = None
    line: Optional[int] = None

    @property
    def sort_key(self):
        return (self.file, self.line or 0, self.kind, self.rule_id or "", self.contract or "", self.function or "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "file": self.file,
            "line": self.line,
            "rule_id": self.rule_id,
            "contract": self.contract,
            "function": self.function,
            "message": self.message,
        }
