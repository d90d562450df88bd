"""
Tolerant declaration parser for brace-delimited, keyword-typed languages.

The parser only recognizes declarations (contracts, functions, state
variables). Function bodies are not parsed into statements: they are kept as
a token range and walked later by the fact extractor. What does not look like
a declaration is skipped up to the next `;` or balanced block, so unknown
syntax never aborts a file.

Recovery inside function bodies:
  - `}` while `(` / `[` are still open closes them and marks the function partial
  - a stray `)` / `]` is ignored and marks the function partial
  - for languages without nested functions, a new declaration starting at a
    statement boundary ends an unterminated body
  - end of file ends an unterminated body
"""

from typing import List, Optional, Tuple

from core.config import Deadline
from lang.lexer import Token, TokenKind, tokenize
from lang.nodes import (
    ContractNode,
    FunctionNode,
    OpaqueRegion,
    Param,
    ParseError,
    ParseTree,
    StateVariable,
    join_tokens,
)
from lang.profiles import PROFILES, LanguageProfile, profile_for_path
from lang.source import SourceUnit, source_from_text


OPENERS = {"(": ")", "[": "]", "{": "}"}
CLOSERS = {")": "(", "]": "[", "}": "{"}

# Solidity data locations are not part of a parameter's type
_DATA_LOCATIONS = frozenset({"memory", "storage", "calldata"})

_STATEMENT_BOUNDARY = (";", "{", "}")


class Parser:
    def __init__(self, unit: SourceUnit, profile: Optional[LanguageProfile] = None, deadline: Optional[Deadline] = None):
        self.unit = unit
        self.profile = profile or PROFILES.get(unit.language) or profile_for_path(unit.path)
        self.deadline = deadline or Deadline.unlimited(unit.path)
        self.code: List[Token] = []
        self.tree: Optional[ParseTree] = None
        self._file_contract: Optional[int] = None

    def parse(self) -> ParseTree:
        tokens, lex_errors = tokenize(self.unit, self.profile, self.deadline)
        self.code = [t for t in tokens if t.kind is not TokenKind.COMMENT]
        comments = [t for t in tokens if t.kind is TokenKind.COMMENT]
        self.tree = ParseTree(self.unit, self.profile, tokens, self.code, comments)
        for e in lex_errors:
            self.tree.errors.append(ParseError(e.message, e.offset, e.line))

        i = 0
        while i < len(self.code):
            i = self._parse_item(i, None)

        self.tree.errors.sort(key=lambda e: (e.offset, e.message))
        return self.tree

    # -- token helpers -------------------------------------------------------

    def _is(self, i: int, text: str) -> bool:
        return i < len(self.code) and self.code[i].text == text

    def _is_punct(self, i: int, text: str) -> bool:
        return i < len(self.code) and self.code[i].kind is TokenKind.PUNCT and self.code[i].text == text

    def _error(self, message: str, i: int, function: Optional[str] = None) -> None:
        if i < len(self.code):
            offset = self.code[i].start
        else:
            offset = max(len(self.unit.text) - 1, 0)
        self.tree.errors.append(ParseError(message, offset, self.unit.line_of(offset), function))

    def _match(self, j: int, stops: Tuple[str, ...] = ()) -> Optional[int]:
        """Index of the bracket closing the opener at j, or None (EOF or a stop token first)."""
        depth = 0
        code = self.code
        for k in range(j, len(code)):
            tok = code[k]
            if tok.kind is not TokenKind.PUNCT:
                continue
            if k > j and tok.text in stops:
                return None
            if tok.text in OPENERS:
                depth += 1
            elif tok.text in CLOSERS:
                depth -= 1
                if depth == 0:
                    return k
        return None

    def _scan_statement(self, i: int) -> Tuple[int, str]:
        """
        Walk to the end of a statement-like construct starting at i.
        Returns (index, terminator) where terminator is ';', '{' or '}' found at
        depth 0, or '' at end of file.
        """
        code = self.code
        depth = 0
        k = i
        while k < len(code):
            tok = code[k]
            if tok.kind is TokenKind.PUNCT:
                w = tok.text
                if depth == 0 and w in _STATEMENT_BOUNDARY:
                    return k, w
                if w in ("(", "["):
                    depth += 1
                elif w in (")", "]") and depth > 0:
                    depth -= 1
            k += 1
        return k, ""

    def _skip_item(self, i: int) -> int:
        """Skip one unknown item: up to `;` or over a balanced `{...}` (plus a trailing `;`)."""
        end, term = self._scan_statement(i)
        if term == ";":
            return end + 1
        if term == "{":
            close = self._match(end)
            if close is None:
                self._error("unterminated block", end)
                return len(self.code)
            return close + 2 if self._is_punct(close + 1, ";") else close + 1
        # `}` belongs to the enclosing container
        return end

    def _skip_generics(self, j: int) -> int:
        if not self._is_punct(j, "<"):
            return j
        depth = 0
        code = self.code
        k = j
        while k < len(code):
            w = code[k].text
            if code[k].kind is TokenKind.PUNCT:
                if w == "<":
                    depth += 1
                elif w == ">":
                    depth -= 1
                elif w == ">>":
                    depth -= 2
                elif w in ("{", ";"):
                    return k
            k += 1
            if depth <= 0:
                return k
        return k

    # -- items ---------------------------------------------------------------

    def _parse_item(self, i: int, contract_id: Optional[int]) -> int:
        self.deadline.check()
        code = self.code
        n = len(code)
        p = self.profile
        tok = code[i]

        if tok.kind is TokenKind.PUNCT:
            if tok.text == "}":
                self._error("unmatched closing brace", i)
                return i + 1
            if tok.text in (";", ","):
                return i + 1

        start = i
        prefix: List[str] = []
        visibility = None
        j = i
        while j < n:
            t = code[j]
            if t.kind is TokenKind.PUNCT and t.text == "#":
                # Rust attributes: #[...] / #![...]
                k = j + 1
                if self._is_punct(k, "!"):
                    k += 1
                if self._is_punct(k, "["):
                    close = self._match(k)
                    if close is None:
                        return n
                    j = close + 1
                    continue
                break
            if t.kind is TokenKind.STRING and prefix and prefix[-1] == "extern":
                j += 1
                continue
            if not t.is_ident:
                break
            w = t.text
            if w in p.visibility_keywords:
                visibility, j = self._read_visibility(j)
                prefix.append(w)
                continue
            if w in p.const_keywords and not self._is_function_prefix(j + 1):
                break
            if w in p.qualifier_keywords:
                prefix.append(w)
                j += 1
                continue
            break

        if j >= n:
            return n

        head = code[j]
        word = head.text if head.is_ident else None

        if word in p.function_keywords and self._looks_like_function(j):
            return self._parse_function(start, j, contract_id, prefix, visibility)
        if word in p.container_keywords:
            return self._parse_container(start, j, contract_id)
        if word in p.skip_block_keywords or word in p.skip_statement_keywords:
            return self._skip_item(j)
        if p.state_var_style == "const" and word in p.const_keywords:
            return self._parse_const(start, j, contract_id, visibility)
        if p.state_var_style == "typed" and word is not None and not prefix:
            return self._parse_typed_var(start, contract_id)
        return self._skip_item(j)

    def _is_function_prefix(self, j: int) -> bool:
        if j >= len(self.code):
            return False
        w = self.code[j].text
        return w in self.profile.function_keywords or w in self.profile.qualifier_keywords

    def _looks_like_function(self, j: int) -> bool:
        code = self.code
        if j + 1 >= len(code):
            return False
        kind = self.profile.function_keywords[code[j].text]
        nxt = code[j + 1]
        if nxt.is_ident:
            return True
        # `function (uint) external f;` is a function-typed variable
        return kind in self.profile.anonymous_function_kinds and nxt.text == "("

    def _read_visibility(self, j: int) -> Tuple[str, int]:
        """Read `pub`, `pub(crate)`, `public(friend)`..."""
        p = self.profile
        visibility = p.visibility_keywords[self.code[j].text]
        j += 1
        if self._is_punct(j, "("):
            close = self._match(j, stops=("{", ";"))
            if close is not None:
                inner = [t.text for t in self.code[j + 1 : close] if t.is_ident]
                if inner:
                    visibility = p.restricted_visibility.get(inner[0], "internal")
                j = close + 1
        return visibility, j

    def _owner(self, contract_id: Optional[int], start: int, end: int) -> int:
        """Contract that owns an item; free items go to the synthetic file contract."""
        if contract_id is not None:
            return contract_id
        if self._file_contract is None:
            node = ContractNode(name=self.unit.stem, kind="file", line=self.code[start].line, start_tok=start, end_tok=end)
            self.tree.contracts.append(node)
            self._file_contract = len(self.tree.contracts) - 1
        node = self.tree.contracts[self._file_contract]
        node.segments.append((start, end))
        node.start_tok = min(node.start_tok, start)
        node.end_tok = max(node.end_tok, end)
        return self._file_contract

    # -- contracts -----------------------------------------------------------

    def _parse_container(self, start: int, kw_idx: int, parent: Optional[int]) -> int:
        code = self.code
        n = len(code)
        p = self.profile
        word = code[kw_idx].text
        kind = p.container_keywords[word]

        end_h, term = self._scan_statement(kw_idx + 1)
        header = code[kw_idx + 1 : end_h]
        name, name_tok, bases = self._container_signature(header, word, kind)
        line = (name_tok or code[kw_idx]).line

        if term == ";":
            if word not in p.file_module_keywords:
                # `mod foo;` declares a module that lives in another file
                return end_h + 1
            cid = self._add_contract(ContractNode(name, kind, line, start, n - 1, parent=parent, bases=bases))
            k = end_h + 1
            while k < n:
                k = self._parse_item(k, cid)
            self.tree.contracts[cid].segments.append((start, n - 1))
            return n

        if term != "{":
            self._error(f"expected '{{' after {word} '{name}'", min(end_h, n - 1))
            return max(end_h, kw_idx + 1)

        cid = self._add_contract(ContractNode(name, kind, line, start, n - 1, parent=parent, bases=bases))
        node = self.tree.contracts[cid]
        k = end_h + 1
        while k < n and not self._is_punct(k, "}"):
            k = self._parse_item(k, cid)
        if k >= n:
            self._error(f"unterminated {kind} '{name}'", kw_idx)
            node.partial = True
            node.end_tok = n - 1
            node.segments.append((start, n - 1))
            return n
        node.end_tok = k
        node.segments.append((start, k))
        return k + 1

    def _add_contract(self, node: ContractNode) -> int:
        self.tree.contracts.append(node)
        cid = len(self.tree.contracts) - 1
        if node.parent is not None:
            self.tree.contracts[node.parent].child_ids.append(cid)
        return cid

    def _container_signature(self, header: List[Token], word: str, kind: str) -> Tuple[str, Optional[Token], List[str]]:
        """Name token and base list from the tokens between the keyword and `{`."""
        p = self.profile
        toks = _strip_generics(header)
        texts = [t.text for t in toks]

        name_part = toks
        bases: List[str] = []
        stop_words = {"where", "for", ":"}
        if p.inheritance_keyword:
            stop_words.add(p.inheritance_keyword)

        if kind == "impl" and "for" in texts:
            k = texts.index("for")
            trait_part = toks[:k]
            name_part = _until(toks[k + 1 :], {"where"})
            trait = _last_ident(trait_part)
            if trait is not None:
                bases.append(trait.text)
        else:
            name_part = _until(toks, stop_words)
            if p.inheritance_keyword and p.inheritance_keyword in texts:
                k = texts.index(p.inheritance_keyword)
                bases = _base_list(_until(toks[k + 1 :], {"where"}))
            elif ":" in texts:
                k = texts.index(":")
                bases = _base_list(_until(toks[k + 1 :], {"where"}))

        name_tok = _last_ident(name_part)
        name = name_tok.text if name_tok is not None else word
        return name, name_tok, bases

    # -- state variables -----------------------------------------------------

    def _parse_typed_var(self, start: int, contract_id: Optional[int]) -> int:
        """`Type [specifiers] name [= value];`"""
        p = self.profile
        code = self.code
        end, term = self._scan_statement(start)
        if term != ";":
            return self._skip_item(start)

        eq = None
        depth = 0
        for k in range(start, end):
            w = code[k].text
            if code[k].kind is not TokenKind.PUNCT:
                continue
            if w in ("(", "["):
                depth += 1
            elif w in (")", "]"):
                depth -= 1
            elif w == "=" and depth == 0:
                eq = k
                break
        lhs_end = eq if eq is not None else end
        if lhs_end - start < 2:
            return end + 1
        name_tok = code[lhs_end - 1]
        if (
            not name_tok.is_ident
            or not code[start].is_ident
            or name_tok.text in p.visibility_keywords
            or name_tok.text in p.state_var_specifiers
        ):
            return end + 1

        words = [t.text for t in code[start:lhs_end] if t.is_ident]
        visibility = p.default_state_visibility
        for w in words:
            if w in p.visibility_keywords:
                visibility = p.visibility_keywords[w]
                break

        type_end = lhs_end - 1
        for k in range(start, lhs_end - 1):
            w = code[k].text
            if code[k].is_ident and (w in p.visibility_keywords or w in p.state_var_specifiers):
                type_end = k
                break

        var = StateVariable(
            name=name_tok.text,
            type_name=self.tree.text_of(start, type_end - 1),
            visibility=visibility,
            contract=-1,
            line=name_tok.line,
            offset=name_tok.start,
            initial_value=self.tree.text_of(eq + 1, end - 1) if eq is not None else None,
            constant="constant" in words or "immutable" in words,
        )
        self._add_state_var(var, contract_id, start, end)
        return end + 1

    def _parse_const(self, start: int, kw_idx: int, contract_id: Optional[int], visibility: Optional[str]) -> int:
        """`const NAME: Type = value;` / `static mut NAME: Type = value;`"""
        code = self.code
        end, term = self._scan_statement(kw_idx)
        if term != ";":
            return self._skip_item(kw_idx)

        j = kw_idx + 1
        mutable = False
        if self._is(j, "mut"):
            mutable = True
            j += 1
        if j >= end or not code[j].is_ident:
            return end + 1
        name_tok = code[j]

        colon = eq = None
        for k in range(j + 1, end):
            if code[k].kind is not TokenKind.PUNCT:
                continue
            if code[k].text == ":" and colon is None:
                colon = k
            elif code[k].text == "=":
                eq = k
                break
        type_name = ""
        if colon is not None:
            type_name = self.tree.text_of(colon + 1, (eq if eq is not None else end) - 1)

        var = StateVariable(
            name=name_tok.text,
            type_name=type_name,
            visibility=visibility or self.profile.default_state_visibility,
            contract=-1,
            line=name_tok.line,
            offset=name_tok.start,
            initial_value=self.tree.text_of(eq + 1, end - 1) if eq is not None else None,
            constant=not mutable,
        )
        self._add_state_var(var, contract_id, start, end)
        return end + 1

    def _add_state_var(self, var: StateVariable, contract_id: Optional[int], start: int, end: int) -> None:
        cid = self._owner(contract_id, start, end)
        var.contract = cid
        self.tree.state_variables.append(var)
        self.tree.contracts[cid].state_var_ids.append(len(self.tree.state_variables) - 1)

    # -- functions -----------------------------------------------------------

    def _parse_function(
        self, start: int, kw_idx: int, contract_id: Optional[int], prefix: List[str], visibility: Optional[str]
    ) -> int:
        p = self.profile
        code = self.code
        n = len(code)
        kind = p.function_keywords[code[kw_idx].text]

        j = kw_idx + 1
        name_tok = code[kw_idx]
        if code[j].is_ident:
            name_tok = code[j]
            name = name_tok.text
            j += 1
        else:
            name = kind

        fn = FunctionNode(
            name=name,
            kind=kind,
            contract=-1,
            line=name_tok.line,
            decl_start_tok=start,
            decl_end_tok=kw_idx,
            visibility=p.default_visibility,
            mutability=p.default_mutability,
        )
        fn.qualifiers = [q for q in prefix if q in p.qualifier_keywords]
        if visibility is not None:
            fn.visibility = visibility
        else:
            for q in fn.qualifiers:
                if q in p.qualifier_visibility:
                    fn.visibility = p.qualifier_visibility[q]
                    break

        j = self._skip_generics(j)
        if self._is_punct(j, "("):
            close = self._match(j, stops=("{", ";"))
            if close is None:
                fn.mark_partial("malformed parameter list")
                self._error(f"malformed parameter list of '{name}'", j, name)
                j, _ = self._scan_statement(j + 1)
            else:
                fn.params = self._parse_params(j + 1, close)
                j = close + 1
        elif kind != "modifier":
            fn.mark_partial("missing parameter list")
            self._error(f"missing parameter list of '{name}'", min(j, n - 1), name)

        j = self._parse_header(j, fn)

        if self._is_punct(j, "{"):
            fn.body_open_tok = j
            close = self._scan_body(j, fn)
            fn.body_close_tok = close
            fn.decl_end_tok = close
            nxt = close + 1
        elif self._is_punct(j, ";"):
            fn.decl_end_tok = j
            nxt = j + 1
        else:
            fn.decl_end_tok = max(j - 1, kw_idx)
            fn.mark_partial("missing body")
            self._error(f"expected body of '{name}'", min(j, n - 1), name)
            nxt = max(j, kw_idx + 1)

        cid = self._owner(contract_id, start, fn.decl_end_tok)
        fn.contract = cid
        self.tree.functions.append(fn)
        self.tree.contracts[cid].function_ids.append(len(self.tree.functions) - 1)
        return nxt

    def _parse_params(self, a: int, b: int) -> List[Param]:
        params = []
        for chunk in _split_top_level(self.code[a:b], (",",)):
            if not chunk:
                continue
            texts = [t.text for t in chunk]
            if ":" in texts:
                k = texts.index(":")
                names = [t for t in chunk[:k] if t.is_ident and t.text not in ("mut", "ref")]
                params.append(Param(names[-1].text if names else "_", join_tokens(chunk[k + 1 :])))
            elif texts[-1] in self.profile.self_references and all(
                t.text in ("&", "mut") or t.text in self.profile.self_references for t in chunk
            ):
                params.append(Param(texts[-1], join_tokens(chunk)))
            elif len(chunk) >= 2 and chunk[-1].is_ident:
                type_toks = [t for t in chunk[:-1] if t.text not in _DATA_LOCATIONS]
                params.append(Param(chunk[-1].text, join_tokens(type_toks)))
            else:
                params.append(Param("", join_tokens(chunk)))
        return params

    def _parse_header(self, j: int, fn: FunctionNode) -> int:
        """Visibility, mutability, modifiers and return type between `)` and the body."""
        p = self.profile
        code = self.code
        n = len(code)
        while j < n:
            t = code[j]
            w = t.text
            if t.kind is TokenKind.PUNCT and w in _STATEMENT_BOUNDARY:
                break
            if w in p.returns_markers and t.kind is not TokenKind.STRING:
                j = self._parse_returns(j, fn)
                continue
            if t.is_ident:
                if w in p.visibility_keywords:
                    fn.visibility, j = self._read_visibility(j)
                    continue
                if w in p.mutability_keywords:
                    fn.mutability = w
                    j += 1
                    continue
                if w in p.specifier_keywords:
                    j += 1
                    if self._is_punct(j, "("):
                        close = self._match(j, stops=("{", ";"))
                        j = close + 1 if close is not None else j + 1
                    continue
                if p.header_modifiers:
                    name = w
                    j += 1
                    while self._is_punct(j, ".") and j + 1 < n and code[j + 1].is_ident:
                        name += "." + code[j + 1].text
                        j += 2
                    fn.modifiers.append(name)
                    if self._is_punct(j, "("):
                        close = self._match(j, stops=("{", ";"))
                        j = close + 1 if close is not None else j + 1
                    continue
            j += 1
        return j

    def _parse_returns(self, j: int, fn: FunctionNode) -> int:
        code = self.code
        n = len(code)
        if code[j].is_ident:
            # Solidity: returns (uint256 a, bool)
            if self._is_punct(j + 1, "("):
                close = self._match(j + 1, stops=("{", ";"))
                if close is not None:
                    fn.returns = self.tree.text_of(j + 2, close - 1)
                    return close + 1
            return j + 1
        # Rust `-> T`, Move `: T`
        k = j + 1
        depth = 0
        while k < n:
            t = code[k]
            if t.kind is TokenKind.PUNCT:
                if depth == 0 and t.text in _STATEMENT_BOUNDARY:
                    break
                if t.text in ("(", "["):
                    depth += 1
                elif t.text in (")", "]"):
                    depth -= 1
            elif t.is_ident and depth == 0 and t.text in ("where", "acquires"):
                break
            k += 1
        fn.returns = self.tree.text_of(j + 1, k - 1)
        return k

    def _scan_body(self, open_idx: int, fn: FunctionNode) -> int:
        """Find the token closing the body that opens at open_idx, repairing what it can."""
        p = self.profile
        code = self.code
        n = len(code)
        stack = ["{"]
        k = open_idx + 1
        while k < n:
            self.deadline.check()
            t = code[k]
            w = t.text
            if t.kind is TokenKind.PUNCT:
                if w in OPENERS:
                    stack.append(w)
                elif w == "}":
                    if stack[-1] != "{":
                        fn.mark_partial("unbalanced brackets")
                        self._error(f"unclosed '{stack[-1]}' in '{fn.name}'", k, fn.name)
                        while stack[-1] != "{":
                            stack.pop()
                    stack.pop()
                    if not stack:
                        return k
                elif w in CLOSERS:
                    if stack[-1] == CLOSERS[w]:
                        stack.pop()
                    else:
                        fn.mark_partial("unbalanced brackets")
                        self._error(f"unexpected '{w}' in '{fn.name}'", k, fn.name)
            elif t.is_ident:
                if w in p.opaque_block_keywords:
                    end = self._opaque_block(k, fn)
                    if end is not None:
                        k = end + 1
                        continue
                elif not p.nested_functions and code[k - 1].text in _STATEMENT_BOUNDARY and self._declaration_starts(k):
                    fn.mark_partial("unterminated body")
                    self._error(f"unterminated body of '{fn.name}'", open_idx, fn.name)
                    return k - 1
            k += 1
        fn.mark_partial("unterminated body")
        self._error(f"unterminated body of '{fn.name}'", open_idx, fn.name)
        return n - 1

    def _opaque_block(self, k: int, fn: FunctionNode) -> Optional[int]:
        """`assembly { ... }`, `assembly "memory-safe" { ... }`, `assembly ("memory-safe") { ... }`"""
        code = self.code
        j = k + 1
        while j < len(code) and code[j].kind is TokenKind.STRING:
            j += 1
        if self._is_punct(j, "("):
            close = self._match(j, stops=("{", ";"))
            if close is None:
                return None
            j = close + 1
        if not self._is_punct(j, "{"):
            return None
        close = self._match(j)
        if close is None:
            fn.mark_partial(f"unterminated {code[k].text} block")
            self._error(f"unterminated {code[k].text} block in '{fn.name}'", k, fn.name)
            close = len(code) - 1
        fn.opaque_regions.append(OpaqueRegion(code[k].text, k, close))
        return close

    def _declaration_starts(self, k: int) -> bool:
        """Whether a function or contract declaration begins at token k."""
        p = self.profile
        code = self.code
        n = len(code)
        j = k
        while j < n and code[j].is_ident and (code[j].text in p.visibility_keywords or code[j].text in p.qualifier_keywords):
            j += 1
            if self._is_punct(j, "("):
                close = self._match(j, stops=("{", ";"))
                if close is None:
                    return False
                j = close + 1
        if j + 1 >= n or not code[j].is_ident:
            return False
        w = code[j].text
        nxt = code[j + 1]
        if w in p.function_keywords:
            if p.function_keywords[w] in p.anonymous_function_kinds:
                return nxt.text == "(" and self._body_follows(j + 1)
            return nxt.is_ident and j + 2 < n and code[j + 2].text in ("(", "<")
        if w in p.container_keywords:
            if not nxt.is_ident or j + 2 >= n:
                return False
            return code[j + 2].text in ("{", "::") or code[j + 2].text == p.inheritance_keyword
        return False

    def _body_follows(self, j: int) -> bool:
        """After `constructor(...)`: the header runs into `{` rather than `;`."""
        close = self._match(j, stops=("{", ";"))
        if close is None:
            return False
        _, term = self._scan_statement(close + 1)
        return term == "{"


# -- token list helpers -------------------------------------------------------


def _strip_generics(toks: List[Token]) -> List[Token]:
    """Drop `<...>` groups that follow an identifier or `::`."""
    out = []
    depth = 0
    prev = None
    for t in toks:
        w = t.text
        if t.kind is TokenKind.PUNCT and w == "<" and (depth > 0 or (prev is not None and (prev.is_ident or prev.text == "::"))):
            depth += 1
        elif depth > 0 and t.kind is TokenKind.PUNCT and w in (">", ">>"):
            depth = max(depth - len(w), 0)
        elif depth == 0:
            out.append(t)
        prev = t
    return out


def _until(toks: List[Token], words) -> List[Token]:
    for k, t in enumerate(toks):
        if t.text in words and t.kind is not TokenKind.STRING:
            return toks[:k]
    return toks


def _last_ident(toks: List[Token]) -> Optional[Token]:
    prev = None
    found = None
    for t in toks:
        # 'a is a lifetime
        if t.is_ident and not (prev is not None and prev.text == "'"):
            found = t
        prev = t
    return found


def _split_top_level(toks: List[Token], separators: Tuple[str, ...]) -> List[List[Token]]:
    """Split on separators outside (), [], {} and <>."""
    chunks: List[List[Token]] = [[]]
    depth = 0
    for t in toks:
        w = t.text
        if t.kind is TokenKind.PUNCT:
            if w in OPENERS or w == "<":
                depth += 1
            elif w in CLOSERS or w == ">":
                depth = max(depth - 1, 0)
            elif w == ">>":
                depth = max(depth - 2, 0)
            elif w in separators and depth == 0:
                chunks.append([])
                continue
        chunks[-1].append(t)
    return chunks


def _base_list(toks: List[Token]) -> List[str]:
    """`A, B(1), C` / `Bar + Baz` -> names, ignoring constructor arguments."""
    bases = []
    for chunk in _split_top_level(toks, (",", "+")):
        head = []
        for t in chunk:
            if t.text == "(":
                break
            head.append(t)
        ident = _last_ident(head)
        if ident is not None:
            bases.append(ident.text)
    return bases


def parse_source(unit: SourceUnit, profile: Optional[LanguageProfile] = None, deadline: Optional[Deadline] = None) -> ParseTree:
    """Parse a loaded source unit. Never raises on bad syntax; see ParseTree.errors."""
    return Parser(unit, profile, deadline).parse()


def parse_text(text: str, path: str = "<memory>", language: Optional[str] = None) -> ParseTree:
    return parse_source(source_from_text(text, path, language))
