"""
Declarative rule DSL used by the .hy detector files.

    (import rules.dsl [defdetector words fact any-of all-of none-of count-of])

    (defdetector "tx-origin-auth"
      :title "Authorization through tx.origin"
      :severity :high
      :category "access-control"
      :languages ["solidity"]
      :requires [(words "tx.origin")]
      :unless (words "msg.sender")
      :message "{contract}.{function} authenticates with tx.origin"
      :fix "Compare msg.sender instead")

Everything here builds plain data (rules.ir). Structural validation happens
in the registry so that file-level errors surface as ConfigError at load.
"""

from typing import Any, Iterable, Optional, Sequence, Tuple

from core.errors import ConfigError
from rules.hy_loader import register_rule
from rules.ir import (
    DEFAULT_KINDS,
    AllOf,
    AnyOf,
    CountOf,
    FactPresent,
    KeywordGroup,
    KeywordPresent,
    Not,
    Predicate,
    RuleDefinition,
    Severity,
)


def words(*keywords: str, substring: bool = False) -> KeywordGroup:
    """Synonym group: satisfied when any of the keywords is present."""
    flat = []
    for kw in keywords:
        # Allow (words ["a" "b"]) as well as (words "a" "b")
        if isinstance(kw, (list, tuple)):
            flat.extend(kw)
        else:
            flat.append(kw)
    return KeywordGroup(tuple(flat), substring)


def fact(name: str) -> FactPresent:
    return FactPresent(str(name))


def _predicate(item: Any) -> Predicate:
    if isinstance(item, KeywordGroup):
        return KeywordPresent(item)
    if isinstance(item, str):
        return KeywordPresent(KeywordGroup((item,)))
    if isinstance(item, (KeywordPresent, FactPresent, AllOf, AnyOf, Not, CountOf)):
        return item
    raise ConfigError(f"Not a rule predicate: {item!r}")


def all_of(*items) -> AllOf:
    return AllOf(tuple(_predicate(i) for i in items))


def any_of(*items) -> AnyOf:
    return AnyOf(tuple(_predicate(i) for i in items))


def none_of(*items) -> Not:
    return Not(any_of(*items))


def negate(item) -> Not:
    return Not(_predicate(item))


def count_of(group, op: str, n: int) -> CountOf:
    """Exact comparison on the number of occurrences of a synonym group."""
    if isinstance(group, str):
        group = KeywordGroup((group,))
    if not isinstance(group, KeywordGroup):
        raise ConfigError(f"count-of expects a words group, got {group!r}")
    return CountOf(group, str(op), n)


def _severity(value: Any) -> Severity:
    if isinstance(value, Severity):
        return value
    try:
        return Severity.from_string(str(value))
    except ValueError as e:
        raise ConfigError(str(e)) from e


def _strings(value: Any, what: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    try:
        return tuple(str(v).lstrip(":") for v in value)
    except TypeError:
        raise ConfigError(f"{what} must be a string or a list of strings, got {value!r}")


def _split_requires(requires: Iterable[Any]):
    groups, facts = [], []
    for item in requires:
        if isinstance(item, KeywordGroup):
            groups.append(item)
        elif isinstance(item, KeywordPresent):
            groups.append(item.group)
        elif isinstance(item, FactPresent):
            facts.append(item.name)
        elif isinstance(item, str):
            groups.append(KeywordGroup((item,)))
        else:
            raise ConfigError(f":requires accepts words groups and facts only, got {item!r}")
    return tuple(groups), tuple(facts)


def build_detector(
    rule_id: str,
    title: str = "",
    severity: Any = "medium",
    category: str = "general",
    scope: str = "function",
    within: Optional[Sequence[str]] = None,
    requires: Sequence[Any] = (),
    unless: Any = None,
    counts: Sequence[CountOf] = (),
    languages: Optional[Sequence[str]] = None,
    visibility: Optional[Sequence[str]] = None,
    kinds: Optional[Sequence[str]] = None,
    message: str = "",
    fix: str = "",
    description: str = "",
) -> RuleDefinition:
    """Turn DSL keyword arguments into a RuleDefinition without registering it."""
    if isinstance(requires, (KeywordGroup, FactPresent, str)):
        requires = [requires]
    groups, facts = _split_requires(requires)

    forbidden = None
    if unless is not None:
        # A list means "any of these"
        forbidden = any_of(*unless) if isinstance(unless, (list, tuple)) else _predicate(unless)

    if isinstance(counts, CountOf):
        counts = [counts]
    for c in counts:
        if not isinstance(c, CountOf):
            raise ConfigError(f":counts accepts count-of constraints only, got {c!r}")

    return RuleDefinition(
        id=str(rule_id) if rule_id is not None else "",
        title=title or str(rule_id),
        severity=_severity(severity),
        category=str(category).lstrip(":"),
        scope=str(scope).lstrip(":"),
        within=_strings(within, ":within") if within is not None else ("code", "comments"),
        required=groups,
        required_facts=facts,
        forbidden=forbidden,
        counts=tuple(counts),
        languages=_strings(languages, ":languages"),
        visibility=_strings(visibility, ":visibility"),
        kinds=_strings(kinds, ":kinds") if kinds is not None else DEFAULT_KINDS,
        message=message,
        fix_suggestion=fix,
        description=description,
    )


def defdetector(rule_id: str, **kwargs) -> RuleDefinition:
    """Define a detector and stage it for the loader."""
    rule = build_detector(rule_id, **kwargs)
    register_rule(rule)
    return rule
