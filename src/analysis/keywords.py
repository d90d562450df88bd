"""
Keyword occurrence index.

Words are matched case-insensitively and only as whole tokens: `oracle` matches
the identifier `oracle` and the comment word "Oracle", never `priceOracleAddress`.
A keyword made of several tokens (`tx.origin`, `block.timestamp`) matches the
same token sequence. Substring matching is opt-in per keyword group.

Three matching scopes are indexed separately:
    code      identifiers, numbers and operators outside strings and comments
    comments  words inside comments (including doc comments above a declaration)
    strings   words inside string literals
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from lang.lexer import Token, TokenKind, tokenize
from lang.nodes import ParseTree
from lang.profiles import GENERIC
from lang.source import source_from_text

SCOPES = ("code", "comments", "strings")
DEFAULT_SCOPES = ("code", "comments")

_WORD_RE = re.compile(r"[A-Za-z0-9_$]+|[^\sA-Za-z0-9_$]+")


@dataclass(frozen=True)
class Word:
    text: str  # lowercased
    offset: int


@lru_cache(maxsize=4096)
def _code_parts(keyword: str) -> Tuple[str, ...]:
    tokens, _ = tokenize(source_from_text(keyword, "<keyword>", GENERIC.name), GENERIC)
    return tuple(t.text.lower() for t in tokens if t.kind is not TokenKind.COMMENT)


@lru_cache(maxsize=4096)
def _text_parts(keyword: str) -> Tuple[str, ...]:
    return tuple(m.group(0).lower() for m in _WORD_RE.finditer(keyword))


def split_words(text: str, base: int = 0) -> List[Word]:
    """Split free text (comment or string content) into words with absolute offsets."""
    return [Word(m.group(0).lower(), base + m.start()) for m in _WORD_RE.finditer(text)]


class _ScopeIndex:
    """Ordered words of one scope plus a first-word lookup table."""

    def __init__(self, words: List[Word]):
        self.words = sorted(words, key=lambda w: w.offset)
        self.positions: Dict[str, List[int]] = {}
        for i, w in enumerate(self.words):
            self.positions.setdefault(w.text, []).append(i)

    def __len__(self):
        return len(self.words)

    def find(self, parts: Tuple[str, ...], substring: bool) -> List[int]:
        if not parts:
            return []
        words = self.words
        k = len(parts)
        if not substring:
            out = []
            for i in self.positions.get(parts[0], ()):
                if i + k <= len(words) and all(words[i + j].text == parts[j] for j in range(1, k)):
                    out.append(words[i].offset)
            return out

        out = []
        for i, w in enumerate(words):
            if k == 1:
                if parts[0] in w.text:
                    out.append(w.offset)
                continue
            if i + k > len(words) or not w.text.endswith(parts[0]):
                continue
            if not words[i + k - 1].text.startswith(parts[-1]):
                continue
            if all(words[i + j].text == parts[j] for j in range(1, k - 1)):
                out.append(w.offset)
        return out


class KeywordIndex:
    """Immutable keyword occurrence index over one contract or function."""

    def __init__(self, code: List[Word], comments: List[Word], strings: List[Word]):
        self._scopes = {
            "code": _ScopeIndex(code),
            "comments": _ScopeIndex(comments),
            "strings": _ScopeIndex(strings),
        }

    @classmethod
    def from_ranges(cls, tree: ParseTree, ranges: Sequence[Tuple[int, int]], leading_comments: bool = True) -> "KeywordIndex":
        """
        Index the code tokens of the given inclusive token ranges, the comments
        inside them and (optionally) the comments directly above each range.
        """
        code: List[Word] = []
        strings: List[Word] = []
        seen_comments = set()
        comment_tokens: List[Token] = []
        seen_code = set()

        for start, end in ranges:
            if not tree.code or start > end:
                continue
            for idx in range(start, min(end, len(tree.code) - 1) + 1):
                if idx in seen_code:
                    continue
                seen_code.add(idx)
                tok = tree.code[idx]
                if tok.kind is TokenKind.STRING:
                    strings.extend(_literal_words(tok))
                else:
                    code.append(Word(tok.text.lower(), tok.start))

            lo, hi = tree.span_offsets(start, end)
            candidates = tree.comments_between(lo, hi)
            if leading_comments:
                candidates = tree.leading_comments(start) + candidates
            for c in candidates:
                if c.start not in seen_comments:
                    seen_comments.add(c.start)
                    comment_tokens.append(c)

        comments: List[Word] = []
        for c in comment_tokens:
            comments.extend(_literal_words(c))
        return cls(code, comments, strings)

    @classmethod
    def empty(cls) -> "KeywordIndex":
        return cls([], [], [])

    def occurrences(self, keyword: str, scopes: Iterable[str] = DEFAULT_SCOPES, substring: bool = False) -> FrozenSet[int]:
        """Offsets where keyword occurs in any of the scopes."""
        found = set()
        for scope in scopes:
            parts = _code_parts(keyword) if scope == "code" else _text_parts(keyword)
            found.update(self._scopes[scope].find(parts, substring))
        return frozenset(found)

    def group_occurrences(
        self, keywords: Iterable[str], scopes: Iterable[str] = DEFAULT_SCOPES, substring: bool = False
    ) -> FrozenSet[int]:
        """Union of offsets over a synonym group. A position matched by two synonyms counts once."""
        scopes = tuple(scopes)
        found = set()
        for kw in keywords:
            found |= self.occurrences(kw, scopes, substring)
        return frozenset(found)

    def count(self, keyword: str, scopes: Iterable[str] = DEFAULT_SCOPES, substring: bool = False) -> int:
        return len(self.occurrences(keyword, scopes, substring))

    def contains(self, keyword: str, scopes: Iterable[str] = DEFAULT_SCOPES, substring: bool = False) -> bool:
        return bool(self.occurrences(keyword, scopes, substring))

    def first_occurrence(
        self, keywords: Iterable[str], scopes: Iterable[str] = DEFAULT_SCOPES, substring: bool = False
    ) -> Optional[int]:
        found = self.group_occurrences(keywords, scopes, substring)
        return min(found) if found else None

    def words(self, scope: str) -> List[str]:
        return [w.text for w in self._scopes[scope].words]

    def size(self) -> Dict[str, int]:
        return {scope: len(index) for scope, index in self._scopes.items()}


def _literal_words(tok: Token) -> List[Word]:
    value = tok.value
    if not value:
        return []
    base = tok.start + max(tok.text.find(value), 0)
    return split_words(value, base)
