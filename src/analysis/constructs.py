"""
Structural construct detection over one function body.

Walks the body tokens once and emits function/statement scoped facts:
calls leaving the contract, state writes, loops, recursion, access checks,
replay guards and special blocks. Everything here is token-pattern based;
no types are resolved beyond the declared types of state variables and
parameters.
"""

from typing import Dict, List, Optional, Set, Tuple

from core.config import Deadline
from core.facts import CallSite, Fact, add_fact
from lang.lexer import Token, TokenKind
from lang.nodes import FunctionNode, ParseTree, StateVariable

LOW_LEVEL_CALLS = frozenset({"call", "delegatecall", "staticcall", "callcode"})
DELEGATE_CALLS = frozenset({"delegatecall", "callcode"})
VALUE_TRANSFERS = frozenset({"send", "transfer"})

ASSIGN_OPS = frozenset({"=", "+=", "-=", "*=", "/=", "%=", "|=", "&=", "^=", "<<=", ">>=", "**=", ">>>="})
INC_DEC = frozenset({"++", "--"})

# Modifier names (lowercased) that guard the caller, besides the only* family
ACCESS_MODIFIERS = frozenset(
    {"auth", "requiresauth", "restricted", "owneronly", "adminonly", "authorized", "governanceonly", "ownerorgovernance"}
)

# State names that mark a replay guard when written
REPLAY_MARKERS = ("nonce", "used", "executed", "processed", "consumed", "claimed", "spent", "redeemed")
# Collection methods that record an id as seen
RECORDING_METHODS = frozenset({"insert", "add", "push", "set"})

# Identifiers followed by `(` that are not calls
NOT_CALLS = frozenset(
    {
        "if",
        "while",
        "for",
        "return",
        "require",
        "assert",
        "revert",
        "emit",
        "switch",
        "match",
        "catch",
        "returns",
        "new",
        "mapping",
        "function",
        "try",
        "else",
        "loop",
        "in",
        "type",
        "payable",
        "address",
        "sizeof",
    }
)

SENDER_IDENTIFIERS = ("_msgsender",)


def is_access_modifier(name: str) -> bool:
    simple = name.split(".")[-1].lower()
    return simple.startswith("only") or simple in ACCESS_MODIFIERS


def _is_punct(tok: Token, text: str) -> bool:
    return tok.kind is TokenKind.PUNCT and tok.text == text


def match_forward(code: List[Token], j: int, limit: Optional[int] = None) -> Optional[int]:
    """Index closing the bracket opened at j."""
    limit = len(code) - 1 if limit is None else limit
    depth = 0
    for k in range(j, limit + 1):
        tok = code[k]
        if tok.kind is not TokenKind.PUNCT:
            continue
        if tok.text in ("(", "[", "{"):
            depth += 1
        elif tok.text in (")", "]", "}"):
            depth -= 1
            if depth == 0:
                return k
    return None


def match_backward(code: List[Token], j: int, limit: int = 0) -> Optional[int]:
    """Index opening the bracket closed at j."""
    depth = 0
    for k in range(j, limit - 1, -1):
        tok = code[k]
        if tok.kind is not TokenKind.PUNCT:
            continue
        if tok.text in (")", "]", "}"):
            depth += 1
        elif tok.text in ("(", "[", "{"):
            depth -= 1
            if depth == 0:
                return k
    return None


def contract_typed(type_name: str) -> bool:
    """`IERC20`, `IPool[]`, `mapping(address => IVault)` hold contract references."""
    t = type_name.strip()
    if "=>" in t:
        t = t.rsplit("=>", 1)[1].rstrip(")")
    t = t.split("[")[0].strip()
    t = t.split(".")[-1]
    return bool(t) and t[0].isupper() and t.isidentifier()


class Receiver:
    __slots__ = ("sep", "start", "end", "text", "root", "cast")

    def __init__(self, sep: str, start: int, end: int, text: str, root: str, cast: Optional[str]):
        self.sep = sep
        self.start = start
        self.end = end
        self.text = text
        self.root = root
        self.cast = cast


class BodyScanner:
    """Collects construct facts for one function."""

    def __init__(
        self,
        tree: ParseTree,
        fn: FunctionNode,
        qualified_name: str,
        state_vars: List[StateVariable],
        deadline: Optional[Deadline] = None,
    ):
        self.tree = tree
        self.code = tree.code
        self.profile = tree.profile
        self.fn = fn
        self.qname = qualified_name
        self.deadline = deadline or Deadline.unlimited(tree.path)

        self.facts: List[Fact] = []
        self.call_sites: List[CallSite] = []
        self.writes: List[Tuple[str, int]] = []
        self.loops: List[Tuple[int, int]] = []
        self.has_access_control = False

        self.mutable_state: Set[str] = {v.name for v in state_vars if not v.constant}
        # Receivers that hold contract references: state variables and parameters
        self.contract_receivers: Set[str] = {v.name for v in state_vars if contract_typed(v.type_name)}
        self.contract_receivers |= {p.name for p in fn.params if p.name and contract_typed(p.type_name)}
        self.locals: Set[str] = set()

        if fn.has_body:
            self.lo = fn.body_open_tok + 1
            self.hi = fn.body_close_tok - 1
        else:
            self.lo, self.hi = 0, -1
        self._opaque: Set[int] = set()
        for region in fn.opaque_regions:
            self._opaque.update(range(region.start_tok, region.end_tok + 1))

    # -- entry point ---------------------------------------------------------

    def scan(self) -> "BodyScanner":
        self._header_facts()
        if self.hi >= self.lo:
            self._find_loops()
            for region in self.fn.opaque_regions:
                self._scan_opaque(region.kind, region.start_tok, region.end_tok)
            k = self.lo
            while k <= self.hi:
                self.deadline.check()
                if k not in self._opaque:
                    self._visit(k)
                k += 1
        self._derived_facts()
        return self

    # -- header --------------------------------------------------------------

    def _header_facts(self) -> None:
        fn = self.fn
        q = self.qname
        add_fact(self.facts, "Fun", (q,))
        add_fact(self.facts, "Visibility", (q, fn.visibility))
        for idx, param in enumerate(fn.params):
            add_fact(self.facts, "FormalArg", (q, idx, param.name, param.type_name))
        for mod in fn.modifiers:
            add_fact(self.facts, "HasModifier", (q, mod))
            if is_access_modifier(mod):
                add_fact(self.facts, "HasAccessControlModifier", (q, mod))
                self.has_access_control = True
        if fn.mutability == "payable":
            add_fact(self.facts, "IsPayable", (q,))
        if fn.mutability in ("view", "pure", "constant"):
            add_fact(self.facts, "IsReadOnly", (q,))
        if "unsafe" in fn.qualifiers and "UnsafeBlock" in self.profile.flagged_block_keywords.values():
            add_fact(self.facts, "UnsafeBlock", (q,))
        for reason in fn.partial_reasons:
            add_fact(self.facts, "IncompleteBody", (q, reason))

        suffix = self.profile.capability_type_suffix
        if suffix:
            for param in fn.params:
                words = [w for w in param.type_name.replace("&", " ").replace("::", " ").split() if w != "mut"]
                if words and words[-1].split("<")[0].endswith(suffix):
                    self.has_access_control = True

    # -- body walk -----------------------------------------------------------

    def _find_loops(self) -> None:
        code = self.code
        for k in range(self.lo, self.hi + 1):
            tok = code[k]
            if not tok.is_ident or tok.text not in self.profile.loop_keywords or k in self._opaque:
                continue
            if k > self.lo and code[k - 1].text in (".", "::"):
                continue
            j = k + 1
            depth = 0
            while j <= self.hi:
                t = code[j]
                if t.kind is TokenKind.PUNCT:
                    if t.text in ("(", "["):
                        depth += 1
                    elif t.text in (")", "]"):
                        depth -= 1
                    elif depth <= 0 and t.text in ("{", ";"):
                        break
                j += 1
            if j > self.hi:
                end = self.hi
            elif code[j].text == "{":
                end = match_forward(code, j, self.hi)
                end = self.hi if end is None else end
            else:
                end = j
            self.loops.append((k, end))
        if self.loops:
            add_fact(self.facts, "HasLoop", (self.qname,))

    def _in_loop(self, k: int) -> bool:
        return any(a < k <= b for a, b in self.loops)

    def _visit(self, k: int) -> None:
        code = self.code
        tok = code[k]
        p = self.profile
        if not tok.is_ident:
            return
        w = tok.text
        prev = code[k - 1] if k - 1 >= self.lo else None
        nxt = code[k + 1] if k + 1 <= self.hi else None

        if w in p.flagged_block_keywords and nxt is not None and _is_punct(nxt, "{"):
            add_fact(self.facts, p.flagged_block_keywords[w], (self.qname,))
            return

        if w in p.event_emitters:
            self._event(k)

        if w in p.access_guard_identifiers:
            self.has_access_control = True

        if w == "msg" and nxt is not None and _is_punct(nxt, ".") and k + 2 <= self.hi and code[k + 2].text == "sender":
            if self._near_comparison(k, k + 2):
                self.has_access_control = True
        elif w.lower() in SENDER_IDENTIFIERS and self._near_comparison(k, k + 3):
            self.has_access_control = True

        args = self._call_args(k)
        if args is not None:
            self._call(k, args)
        elif p.evm_calls and w in LOW_LEVEL_CALLS and nxt is not None and _is_punct(nxt, ".") and k + 2 <= self.hi:
            # pre-0.7 syntax: addr.call.value(x)(data)
            if code[k + 2].text in ("value", "gas") and prev is not None and _is_punct(prev, "."):
                self._call(k, None)

        self._state_write(k)

        if "nonce" in w.lower():
            before = prev.text if prev is not None else ""
            after = nxt.text if nxt is not None else ""
            if before in INC_DEC or after in INC_DEC or after == "+=":
                add_fact(self.facts, "ReplayGuard", (self.qname, w))

    def _near_comparison(self, start: int, end: int) -> bool:
        lo = max(self.lo, start - 2)
        hi = min(self.hi, end + 2)
        return any(self.code[i].text in ("==", "!=") for i in range(lo, hi + 1))

    def _event(self, k: int) -> None:
        code = self.code
        j = k + 1
        if j > self.hi:
            return
        if code[j].is_ident:
            add_fact(self.facts, "EmitsEvent", (self.qname, code[j].text))
            return
        if _is_punct(code[j], "!"):
            j += 1
        if j <= self.hi and _is_punct(code[j], "("):
            for i in range(j + 1, min(j + 6, self.hi + 1)):
                if code[i].is_ident:
                    add_fact(self.facts, "EmitsEvent", (self.qname, code[i].text))
                    return

    # -- calls ---------------------------------------------------------------

    def _call_args(self, k: int) -> Optional[int]:
        """If token k names a call, the index of its `(`."""
        code = self.code
        p = self.profile
        name = code[k].text
        j = k + 1
        if j > self.hi or name in NOT_CALLS:
            return None
        tok = code[j]
        if _is_punct(tok, "("):
            return j
        if _is_punct(tok, "{") and p.evm_calls and name in LOW_LEVEL_CALLS | VALUE_TRANSFERS:
            # call options: addr.call{value: x}(data)
            close = match_forward(code, j, self.hi)
            if close is not None and close + 1 <= self.hi and _is_punct(code[close + 1], "("):
                return close + 1
            return None
        if name in p.state_write_calls or name in p.external_call_functions:
            # generic call: borrow_global_mut<T>(addr), foo::<T>(x)
            if _is_punct(tok, "::"):
                j += 1
            if j <= self.hi and _is_punct(code[j], "<"):
                depth = 0
                while j <= self.hi:
                    t = code[j].text
                    if t == "<":
                        depth += 1
                    elif t == ">":
                        depth -= 1
                    elif t == ">>":
                        depth -= 2
                    elif t in ("{", ";"):
                        return None
                    j += 1
                    if depth <= 0:
                        break
                if j <= self.hi and _is_punct(code[j], "("):
                    return j
        return None

    def _receiver(self, k: int) -> Optional[Receiver]:
        code = self.code
        j = k - 1
        if j < self.lo or code[j].text not in (".", "::") or code[j].kind is not TokenKind.PUNCT:
            return None
        sep = code[j].text
        end = j - 1
        i = end
        leftmost = None
        while i >= self.lo:
            t = code[i]
            if t.kind is TokenKind.PUNCT and t.text in (")", "]"):
                opener = match_backward(code, i, self.lo)
                if opener is None:
                    break
                i = opener - 1
                continue
            if t.is_ident:
                leftmost = i
                i -= 1
                if i >= self.lo and code[i].kind is TokenKind.PUNCT and code[i].text in (".", "::"):
                    i -= 1
                    continue
            break
        if leftmost is None:
            return None
        cast = None
        if leftmost + 1 <= end and _is_punct(code[leftmost + 1], "("):
            cast = code[leftmost].text
        return Receiver(sep, leftmost, end, self.tree.text_of(leftmost, end), code[leftmost].text, cast)

    def _arg_count(self, open_idx: int) -> int:
        code = self.code
        close = match_forward(code, open_idx, self.hi)
        if close is None or close == open_idx + 1:
            return 0
        depth = 0
        count = 1
        for i in range(open_idx + 1, close):
            t = code[i]
            if t.kind is not TokenKind.PUNCT:
                continue
            if t.text in ("(", "[", "{"):
                depth += 1
            elif t.text in (")", "]", "}"):
                depth -= 1
            elif t.text == "," and depth == 0:
                count += 1
        return count

    def _call(self, k: int, args: Optional[int]) -> None:
        code = self.code
        p = self.profile
        q = self.qname
        name = code[k].text
        tok = code[k]
        recv = self._receiver(k)
        in_loop = self._in_loop(k)

        if recv is None:
            if name in p.external_call_functions:
                self._external(CallSite("cpi", name, "", tok.start, tok.line, in_loop))
            else:
                if name == self.fn.name:
                    add_fact(self.facts, "SelfRecursive", (q,))
                self.call_sites.append(CallSite("internal", name, "", tok.start, tok.line, in_loop))
            self._guard_call(name)
            self._write_call(name, None, tok.start)
            return

        callee = f"{recv.text}.{name}" if recv.sep == "." else f"{recv.text}::{name}"
        self_ref = recv.root in p.self_references and recv.start == recv.end

        if recv.sep == "::":
            if name in p.external_call_functions:
                self._external(CallSite("cpi", callee, recv.text, tok.start, tok.line, in_loop))
            elif self_ref:
                if name == self.fn.name:
                    add_fact(self.facts, "SelfRecursive", (q,))
                self.call_sites.append(CallSite("internal", name, recv.text, tok.start, tok.line, in_loop))
            self._guard_call(name)
            self._write_call(name, recv, tok.start)
            self._recording_call(name, recv)
            return

        if p.evm_calls and name in LOW_LEVEL_CALLS:
            add_fact(self.facts, "LowLevelCall", (q, name, tok.line))
            if name in DELEGATE_CALLS:
                add_fact(self.facts, "Delegatecall", (q, recv.text, tok.line))
            if args is not None and self._is_discarded(recv.start, args):
                add_fact(self.facts, "UncheckedLowLevelCall", (q, name, tok.line))
            self._external(CallSite("low-level", callee, recv.text, tok.start, tok.line, in_loop))
            return

        if p.evm_calls and name in VALUE_TRANSFERS and args is not None and self._arg_count(args) == 1:
            add_fact(self.facts, "ValueTransfer", (q, name, tok.line))
            if name == "send" and self._is_discarded(recv.start, args):
                add_fact(self.facts, "UncheckedLowLevelCall", (q, name, tok.line))
            self._external(CallSite("value-transfer", callee, recv.text, tok.start, tok.line, in_loop))
            return

        if self_ref:
            if name == self.fn.name:
                add_fact(self.facts, "SelfRecursive", (q,))
            if p.evm_calls:
                # this.f() goes through the external call path
                self._external(CallSite("self-external", callee, recv.text, tok.start, tok.line, in_loop))
            else:
                self.call_sites.append(CallSite("internal", name, recv.text, tok.start, tok.line, in_loop))
            return

        if recv.cast and recv.cast[0].isupper() and p.evm_calls:
            self._external(CallSite("interface", callee, recv.text, tok.start, tok.line, in_loop))
        elif recv.root in self.contract_receivers and p.evm_calls:
            self._external(CallSite("state-receiver", callee, recv.text, tok.start, tok.line, in_loop))

        self._guard_call(name)
        self._write_call(name, recv, tok.start)
        self._recording_call(name, recv)

    def _external(self, site: CallSite) -> None:
        self.call_sites.append(site)
        add_fact(self.facts, "ExternalCall", (self.qname, site.callee, site.line))
        if site.in_loop:
            add_fact(self.facts, "ExternalCallInLoop", (self.qname, site.callee, site.line))

    def _guard_call(self, name: str) -> None:
        if name in self.profile.access_guard_calls:
            self.has_access_control = True

    def _write_call(self, name: str, recv: Optional[Receiver], offset: int) -> None:
        if name in self.profile.state_write_calls:
            self.writes.append((recv.root if recv is not None else name, offset))

    def _recording_call(self, name: str, recv: Receiver) -> None:
        if name in RECORDING_METHODS and any(m in recv.root.lower() for m in REPLAY_MARKERS):
            add_fact(self.facts, "ReplayGuard", (self.qname, recv.root))

    def _is_discarded(self, recv_start: int, args: int) -> bool:
        """`addr.call(...);` as a statement of its own: the success flag is dropped."""
        code = self.code
        close = match_forward(code, args, self.hi)
        if close is None or close + 1 > self.hi or not _is_punct(code[close + 1], ";"):
            return False
        i = recv_start - 1
        if i < self.lo:
            return True
        prev = code[i]
        if prev.kind is TokenKind.PUNCT and prev.text in (";", "{", "}"):
            return True
        if prev.is_ident and prev.text == "else":
            return True
        if _is_punct(prev, ")"):
            opener = match_backward(code, i, self.lo)
            return opener is not None and opener - 1 >= self.lo and code[opener - 1].text in ("if", "while", "for")
        return False

    def _scan_opaque(self, kind: str, start: int, end: int) -> None:
        code = self.code
        if kind in self.profile.opaque_block_keywords:
            add_fact(self.facts, "AssemblyBlock", (self.qname,))
        for k in range(start + 1, min(end, len(code) - 1) + 1):
            tok = code[k]
            if not tok.is_ident or tok.text not in LOW_LEVEL_CALLS:
                continue
            if k + 1 < len(code) and _is_punct(code[k + 1], "("):
                add_fact(self.facts, "LowLevelCall", (self.qname, tok.text, tok.line))
                if tok.text in DELEGATE_CALLS:
                    add_fact(self.facts, "Delegatecall", (self.qname, kind, tok.line))
                self._external(CallSite("assembly", tok.text, kind, tok.start, tok.line, self._in_loop(k)))

    # -- state writes --------------------------------------------------------

    def _state_write(self, k: int) -> None:
        code = self.code
        tok = code[k]
        name = tok.text
        if name not in self.mutable_state or name in self.locals:
            return
        prev = code[k - 1] if k - 1 >= self.lo else None
        if prev is not None:
            if prev.kind is TokenKind.PUNCT and prev.text in (".", "::"):
                return
            if prev.is_ident and prev.text not in ("delete", "return", "else", "emit"):
                # `uint256 balance = ...` declares a local that shadows the state variable
                if prev.text not in self.mutable_state:
                    self.locals.add(name)
                    return

        j = k + 1
        written = False
        while j <= self.hi:
            t = code[j]
            if _is_punct(t, "["):
                close = match_forward(code, j, self.hi)
                if close is None:
                    return
                j = close + 1
                continue
            if _is_punct(t, ".") and j + 1 <= self.hi and code[j + 1].is_ident:
                if code[j + 1].text in ("push", "pop") and j + 2 <= self.hi and _is_punct(code[j + 2], "("):
                    written = True
                    break
                j += 2
                continue
            break

        if not written:
            op = code[j].text if j <= self.hi and code[j].kind is TokenKind.PUNCT else ""
            before = prev.text if prev is not None else ""
            written = op in ASSIGN_OPS or op in INC_DEC or before in INC_DEC or before == "delete"
        if written:
            self.writes.append((name, tok.start))

    # -- derived -------------------------------------------------------------

    def _derived_facts(self) -> None:
        q = self.qname
        for target, _ in self.writes:
            add_fact(self.facts, "WritesState", (q, target))
            if any(m in target.lower() for m in REPLAY_MARKERS):
                add_fact(self.facts, "ReplayGuard", (q, target))

        external = [c.offset for c in self.call_sites if c.is_external]
        if external:
            first = min(external)
            for target, offset in self.writes:
                if offset > first:
                    add_fact(self.facts, "WriteAfterExternalCall", (q, target))

        if self.has_access_control:
            add_fact(self.facts, "HasAccessControl", (q,))


def scan_function(
    tree: ParseTree,
    fn: FunctionNode,
    qualified_name: str,
    state_vars: List[StateVariable],
    deadline: Optional[Deadline] = None,
) -> BodyScanner:
    """Run construct detection on one function."""
    return BodyScanner(tree, fn, qualified_name, state_vars, deadline).scan()


def modifier_guards(scanners: Dict[str, BodyScanner]) -> Set[str]:
    """Names of modifiers (declared in the same contract) whose body performs an access check."""
    return {name for name, s in scanners.items() if s.fn.kind == "modifier" and s.has_access_control}
