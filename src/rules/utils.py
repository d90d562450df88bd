from typing import Iterable, List, Optional

from core.errors import ConfigError
from core.utils import debug
from rules.ir import RuleDefinition
from rules.registry import RuleRegistry


def select_rules(
    registry: RuleRegistry,
    selected: Optional[Iterable[str]] = None,
    category: Optional[str] = None,
    suppress: Optional[Iterable[str]] = None,
) -> List[RuleDefinition]:
    """
    Narrow the registry to the detectors a run should evaluate.

    Unknown ids in `selected` raise RuleNotFoundError; an empty result after
    filtering raises ConfigError. Suppressing an unknown id is not an error.
    """
    rules = registry.get_all_rules()

    if selected:
        wanted = sorted(set(selected))
        rules = [registry.get_rule(rule_id) for rule_id in wanted]

    if category:
        rules = [r for r in rules if r.category == category]
        if not rules:
            raise ConfigError(f"No detectors with category '{category}'. Use list-categories to see available categories.")

    if suppress:
        suppress_set = set(suppress)
        before = len(rules)
        rules = [r for r in rules if r.id not in suppress_set]
        if before != len(rules):
            debug(f"--suppress: skipping {before - len(rules)} detector(s)")

    if not rules:
        raise ConfigError("No detectors left after filtering")
    return sorted(rules, key=lambda r: r.id)
