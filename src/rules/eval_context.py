"""
Evaluation context for detector predicates.

One context wraps the scope a rule is being checked against: a whole
contract, or one function of it. Predicates only ever see the frozen
FactTable through this object.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, TYPE_CHECKING

from rules.ir import AllOf, AnyOf, CountOf, FactPresent, KeywordGroup, KeywordPresent, Not, Predicate

if TYPE_CHECKING:
    from analysis.keywords import KeywordIndex
    from core.facts import FactTable, FunctionFacts


@dataclass(frozen=True)
class EvalContext:
    table: "FactTable"
    function: Optional["FunctionFacts"] = None
    within: Tuple[str, ...] = ("code", "comments")

    @property
    def keywords(self) -> "KeywordIndex":
        return self.function.keywords if self.function is not None else self.table.keywords

    @property
    def partial(self) -> bool:
        return self.function.partial if self.function is not None else self.table.partial

    @property
    def line(self) -> int:
        return self.function.line if self.function is not None else self.table.line

    def occurrences(self, group: KeywordGroup):
        return self.keywords.group_occurrences(group.keywords, self.within, group.substring)

    def present(self, group: KeywordGroup) -> bool:
        return bool(self.occurrences(group))

    def count(self, group: KeywordGroup) -> int:
        """Distinct positions matched by any synonym of the group."""
        return len(self.occurrences(group))

    def has_fact(self, name: str) -> bool:
        if self.function is not None:
            return self.function.has_fact(name)
        return self.table.has_fact(name)

    def holds(self, pred: Predicate) -> bool:
        if isinstance(pred, KeywordPresent):
            return self.present(pred.group)
        if isinstance(pred, FactPresent):
            return self.has_fact(pred.name)
        if isinstance(pred, AllOf):
            return all(self.holds(i) for i in pred.items)
        if isinstance(pred, AnyOf):
            return any(self.holds(i) for i in pred.items)
        if isinstance(pred, Not):
            return not self.holds(pred.item)
        if isinstance(pred, CountOf):
            return pred.holds(self.count(pred.group))
        raise TypeError(f"Unknown predicate node: {pred!r}")
