"""
Parse tree nodes.

The tree is an arena: ParseTree owns flat lists of contracts, functions and
state variables, and nodes refer to each other by index into those lists.
Nothing points back up the tree, so a tree can be dropped in one step and
shared read-only between workers.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from lang.lexer import Token, TokenKind
from lang.profiles import LanguageProfile
from lang.source import SourceUnit


@dataclass(frozen=True)
class Param:
    name: str
    type_name: str


@dataclass(frozen=True)
class OpaqueRegion:
    """Token range (inclusive, code token indices) left unparsed, e.g. inline assembly."""

    kind: str
    start_tok: int
    end_tok: int


@dataclass(frozen=True)
class ParseError:
    message: str
    offset: int
    line: int
    function: Optional[str] = None


@dataclass
class StateVariable:
    name: str
    type_name: str
    visibility: str
    contract: int
    line: int
    offset: int
    initial_value: Optional[str] = None
    constant: bool = False


@dataclass
class FunctionNode:
    name: str
    kind: str
    contract: int
    line: int
    # Code token indices: first token of the declaration (incl. prefix words) ..
    # last token (closing brace or `;`)
    decl_start_tok: int
    decl_end_tok: int
    visibility: str = "private"
    mutability: str = ""
    modifiers: List[str] = field(default_factory=list)
    qualifiers: List[str] = field(default_factory=list)
    params: List[Param] = field(default_factory=list)
    returns: str = ""
    # Body handle: indices of `{` and `}` in the code token list, None when declared without body
    body_open_tok: Optional[int] = None
    body_close_tok: Optional[int] = None
    opaque_regions: List[OpaqueRegion] = field(default_factory=list)
    partial: bool = False
    partial_reasons: List[str] = field(default_factory=list)

    @property
    def has_body(self) -> bool:
        return self.body_open_tok is not None

    def mark_partial(self, reason: str) -> None:
        self.partial = True
        if reason not in self.partial_reasons:
            self.partial_reasons.append(reason)


@dataclass
class ContractNode:
    name: str
    kind: str
    line: int
    start_tok: int
    end_tok: int
    parent: Optional[int] = None
    bases: List[str] = field(default_factory=list)
    function_ids: List[int] = field(default_factory=list)
    state_var_ids: List[int] = field(default_factory=list)
    child_ids: List[int] = field(default_factory=list)
    # Inclusive code token ranges owned by the contract. One range for a real
    # declaration, one per free item for the synthetic file contract.
    segments: List[Tuple[int, int]] = field(default_factory=list)
    partial: bool = False


@dataclass
class ParseTree:
    unit: SourceUnit
    profile: LanguageProfile
    tokens: List[Token]
    code: List[Token]
    comments: List[Token]
    contracts: List[ContractNode] = field(default_factory=list)
    functions: List[FunctionNode] = field(default_factory=list)
    state_variables: List[StateVariable] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.unit.path

    def contract_functions(self, contract_id: int) -> List[FunctionNode]:
        return [self.functions[i] for i in self.contracts[contract_id].function_ids]

    def contract_state_vars(self, contract_id: int) -> List[StateVariable]:
        return [self.state_variables[i] for i in self.contracts[contract_id].state_var_ids]

    def span_offsets(self, start_tok: int, end_tok: int) -> Tuple[int, int]:
        """Character span covered by an inclusive code token range."""
        if not self.code:
            return (0, 0)
        start_tok = max(0, min(start_tok, len(self.code) - 1))
        end_tok = max(start_tok, min(end_tok, len(self.code) - 1))
        return (self.code[start_tok].start, self.code[end_tok].end)

    def comments_between(self, start: int, end: int) -> List[Token]:
        return [c for c in self.comments if c.start >= start and c.end <= end]

    def leading_comments(self, start_tok: int) -> List[Token]:
        """Comments directly above a declaration (no code in between)."""
        prev_end = self.code[start_tok - 1].end if start_tok > 0 else 0
        decl_start = self.code[start_tok].start if start_tok < len(self.code) else len(self.unit.text)
        return [c for c in self.comments if c.start >= prev_end and c.end <= decl_start]

    def text_of(self, start_tok: int, end_tok: int) -> str:
        """Source text for an inclusive code token range, whitespace-normalized."""
        if start_tok > end_tok:
            return ""
        return join_tokens(self.code[start_tok : end_tok + 1])


_WORD_KINDS = (TokenKind.IDENT, TokenKind.NUMBER, TokenKind.STRING)


def join_tokens(tokens: List[Token]) -> str:
    """Render tokens as compact source text: a space only between words and after commas."""
    parts = []
    prev = None
    for tok in tokens:
        if prev is not None and (prev.text == "," or (prev.kind in _WORD_KINDS and tok.kind in _WORD_KINDS)):
            parts.append(" ")
        parts.append(tok.text)
        prev = tok
    return "".join(parts)
