"""
Fact definitions and registry for SolidDefend.

All facts MUST be defined here. Attempting to create a Fact with an
unregistered name will raise UnregisteredFactError.

Facts are Datalog-style tuples. Function and statement scoped facts carry the
qualified function name ("Contract.function") as their first argument.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Literal, Optional, Tuple

if TYPE_CHECKING:
    from analysis.keywords import KeywordIndex
    from lang.nodes import StateVariable
    from lang.source import SourceUnit

# =============================================================================
# FACT SCHEMA AND REGISTRY
# =============================================================================

Scope = Literal["contract", "function", "statement"]


@dataclass(frozen=True)
class FactSchema:
    """Schema describing a fact type."""

    name: str
    args: Tuple[Tuple[str, type], ...]  # (arg_name, arg_type) pairs
    description: str
    scope: Scope = "function"

    @property
    def arity(self) -> int:
        return len(self.args)


# The registry - single source of truth for all facts
FACT_REGISTRY: Dict[str, FactSchema] = {}


class UnregisteredFactError(Exception):
    """Raised when attempting to create a Fact with unregistered name."""

    pass


def define_fact(
    name: str,
    args: Tuple[Tuple[str, type], ...],
    description: str,
    scope: Scope = "function",
) -> FactSchema:
    """Define a fact type and register it."""
    if name in FACT_REGISTRY:
        raise ValueError(f"Fact '{name}' already registered")
    schema = FactSchema(name, args, description, scope)
    FACT_REGISTRY[name] = schema
    return schema


# =============================================================================
# FACT DEFINITIONS - Contract scope
# =============================================================================

define_fact("Contract", (("contract_name", str), ("kind", str)), "Contract, module, library or impl block", scope="contract")
define_fact("Inherits", (("contract_name", str), ("base", str)), "Contract inherits from / implements base", scope="contract")
define_fact(
    "StateVar",
    (("contract_name", str), ("var_name", str), ("var_type", str)),
    "Contract-level state variable or constant",
    scope="contract",
)

# =============================================================================
# FACT DEFINITIONS - Function scope
# =============================================================================

define_fact("Fun", (("func_name", str),), "Function definition")
define_fact("Visibility", (("func_name", str), ("visibility", str)), "Declared (or default) visibility")
define_fact(
    "FormalArg",
    (("func_name", str), ("param_idx", int), ("param_name", str), ("param_type", str)),
    "Function formal parameter",
)
define_fact("HasModifier", (("func_name", str), ("modifier", str)), "Modifier applied in the function header")
define_fact(
    "HasAccessControlModifier",
    (("func_name", str), ("modifier", str)),
    "Function header carries an access-control modifier (onlyOwner, onlyRole, ...)",
)
define_fact(
    "HasAccessControl",
    (("func_name", str),),
    "Function is guarded: access-control modifier, inline caller check, signer check or capability argument",
)
define_fact("HasLoop", (("func_name", str),), "Function body contains a loop")
define_fact("SelfRecursive", (("func_name", str),), "Function calls itself directly or via this./self.")
define_fact("WritesState", (("func_name", str), ("target", str)), "Function writes persistent state")
define_fact(
    "WriteAfterExternalCall",
    (("func_name", str), ("target", str)),
    "State write that follows an external call in the same body",
)
define_fact(
    "ReplayGuard",
    (("func_name", str), ("guard", str)),
    "Nonce increment or used/executed/processed mapping write",
)
define_fact("AssemblyBlock", (("func_name", str),), "Inline assembly block (opaque region)")
define_fact("UncheckedBlock", (("func_name", str),), "Solidity unchecked { } block")
define_fact("UnsafeBlock", (("func_name", str),), "Rust unsafe { } block")
define_fact("EmitsEvent", (("func_name", str), ("event", str)), "Function emits an event")
define_fact("IsPayable", (("func_name", str),), "Function accepts native value")
define_fact("IsReadOnly", (("func_name", str),), "Function is view/pure")
define_fact("IncompleteBody", (("func_name", str), ("reason", str)), "Body did not parse cleanly")

# =============================================================================
# FACT DEFINITIONS - Statement scope (call sites)
# =============================================================================

define_fact(
    "Delegatecall",
    (("func_name", str), ("target", str), ("line", int)),
    "delegatecall / callcode",
    scope="statement",
)
define_fact(
    "LowLevelCall",
    (("func_name", str), ("kind", str), ("line", int)),
    "Low-level call: call, delegatecall, staticcall, callcode",
    scope="statement",
)
define_fact(
    "UncheckedLowLevelCall",
    (("func_name", str), ("kind", str), ("line", int)),
    "Low-level call or send whose result is discarded",
    scope="statement",
)
define_fact(
    "ValueTransfer",
    (("func_name", str), ("kind", str), ("line", int)),
    "send / transfer of native value",
    scope="statement",
)
define_fact(
    "ExternalCall",
    (("func_name", str), ("callee", str), ("line", int)),
    "Call that leaves the contract (low-level, interface cast, contract-typed receiver, CPI)",
    scope="statement",
)
define_fact(
    "ExternalCallInLoop",
    (("func_name", str), ("callee", str), ("line", int)),
    "External call inside a loop body",
    scope="statement",
)


# =============================================================================
# FACT INSTANCE
# =============================================================================


@dataclass(frozen=True)
class Fact:
    """
    Single Datalog-style fact.

    IMPORTANT: All facts must be registered in FACT_REGISTRY.
    Attempting to create a Fact with an unregistered name raises UnregisteredFactError.
    """

    name: str
    args: Tuple[Any, ...]

    def __post_init__(self):
        """Validate fact is registered and has correct argument count."""
        if self.name not in FACT_REGISTRY:
            raise UnregisteredFactError(
                f"Fact '{self.name}' is not registered. Add it to core/facts.py using define_fact()."
            )
        schema = FACT_REGISTRY[self.name]
        if len(self.args) != schema.arity:
            raise ValueError(f"Fact '{self.name}' expects {schema.arity} args, got {len(self.args)}: {self.args}")

    @property
    def schema(self) -> FactSchema:
        return FACT_REGISTRY[self.name]

    def __str__(self) -> str:
        return f"{self.name}({', '.join(repr(a) for a in self.args)})"


# =============================================================================
# FACT TABLE
# =============================================================================


@dataclass(frozen=True)
class CallSite:
    """
    One call found in a function body.

    kind: low-level | delegatecall | value-transfer | interface | state-receiver |
          cpi | assembly | self-external | internal
    """

    kind: str
    callee: str
    receiver: str
    offset: int
    line: int
    in_loop: bool = False

    @property
    def is_external(self) -> bool:
        return self.kind != "internal"


@dataclass(frozen=True)
class FunctionFacts:
    """Everything the rules may ask about one function."""

    qualified_name: str
    name: str
    kind: str
    visibility: str
    mutability: str
    modifiers: Tuple[str, ...]
    line: int
    keywords: "KeywordIndex"
    facts: Tuple[Fact, ...]
    call_sites: Tuple[CallSite, ...] = ()
    partial: bool = False
    partial_reasons: Tuple[str, ...] = ()
    has_body: bool = True
    fact_names: FrozenSet[str] = field(default=frozenset(), compare=False)

    def __post_init__(self):
        if not self.fact_names:
            object.__setattr__(self, "fact_names", frozenset(f.name for f in self.facts))

    def has_fact(self, name: str) -> bool:
        return name in self.fact_names

    def facts_named(self, name: str) -> List[Fact]:
        return [f for f in self.facts if f.name == name]


@dataclass(frozen=True)
class FactTable:
    """
    Per-contract facts. Built once by the extractor, never mutated, and shared
    by every rule evaluated against the contract.
    """

    unit: "SourceUnit"
    contract: str
    kind: str
    line: int
    keywords: "KeywordIndex"
    facts: Tuple[Fact, ...]
    functions: Tuple[FunctionFacts, ...]
    state_vars: Tuple["StateVariable", ...] = ()
    partial: bool = False
    fact_names: FrozenSet[str] = field(default=frozenset(), compare=False)

    def __post_init__(self):
        if not self.fact_names:
            names = {f.name for f in self.facts}
            for fn in self.functions:
                names |= fn.fact_names
            object.__setattr__(self, "fact_names", frozenset(names))

    @property
    def path(self) -> str:
        return self.unit.path

    @property
    def language(self) -> str:
        return self.unit.language

    def line_of(self, offset: int) -> int:
        return self.unit.line_of(offset)

    def has_fact(self, name: str) -> bool:
        """Fact present anywhere in the contract (contract facts or any function)."""
        return name in self.fact_names

    def all_facts(self) -> List[Fact]:
        out = list(self.facts)
        for fn in self.functions:
            out.extend(fn.facts)
        return out

    def get_function(self, name: str) -> Optional[FunctionFacts]:
        for fn in self.functions:
            if fn.name == name or fn.qualified_name == name:
                return fn
        return None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def get_all_fact_schemas() -> List[FactSchema]:
    """Get all registered fact schemas."""
    return list(FACT_REGISTRY.values())


def get_facts_by_scope(scope: Scope) -> List[FactSchema]:
    """Get all fact schemas for a given scope."""
    return [s for s in FACT_REGISTRY.values() if s.scope == scope]


def fact_exists(facts: List[Fact], name: str, args: Tuple[Any, ...]) -> bool:
    """Check if a fact with exactly these args exists."""
    return any(f.name == name and f.args == args for f in facts)


def add_fact(facts: List[Fact], name: str, args: Tuple[Any, ...]) -> None:
    """Add a fact to the facts list, skipping exact duplicates."""
    fact = Fact(name, args)
    if fact not in facts:
        facts.append(fact)
