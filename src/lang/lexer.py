"""
Tokenizer shared by all brace-delimited languages.

Comments and string literals are kept as single tokens so that nothing inside
them is ever mistaken for code. Errors (unterminated string or comment) do not
stop tokenization: the offending token runs to the end of the file and a
LexError is recorded.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from core.config import Deadline
from lang.profiles import LanguageProfile
from lang.source import SourceUnit


class TokenKind(Enum):
    IDENT = "ident"
    NUMBER = "number"
    STRING = "string"
    PUNCT = "punct"
    COMMENT = "comment"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    start: int
    end: int
    line: int

    @property
    def is_ident(self) -> bool:
        return self.kind is TokenKind.IDENT

    @property
    def value(self) -> str:
        """Content of a string literal or comment without its delimiters."""
        if self.kind is TokenKind.STRING:
            text = self.text
            # Rust raw strings: r"..." / r#"..."#
            if text.startswith("r") and len(text) > 1 and text[1] in "#\"":
                hashes = len(text) - len(text[1:].lstrip("#")) - 1
                return text[2 + hashes : len(text) - 1 - hashes] if len(text) >= 3 + 2 * hashes else ""
            quote = text[0]
            body = text[1:]
            return body[:-1] if body.endswith(quote) else body
        if self.kind is TokenKind.COMMENT:
            if self.text.startswith("//"):
                return self.text[2:].lstrip("/!")
            body = self.text[2:]
            return body[:-2] if body.endswith("*/") else body
        return self.text

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.text!r}@{self.line}"


@dataclass(frozen=True)
class LexError:
    message: str
    offset: int
    line: int


# Longest operators first so that the scan is greedy
_OPERATORS = (
    ">>>=",
    "<<=",
    ">>=",
    "...",
    "**=",
    "=>",
    "->",
    "::",
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    "++",
    "--",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
    "&=",
    "|=",
    "^=",
    "<<",
    ">>",
    "**",
    "..",
    ":=",
)

_IDENT_START = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ_$")
_IDENT_CHARS = _IDENT_START | set("0123456789")


def _is_ident_start(c: str) -> bool:
    return c in _IDENT_START or (c > "\x7f" and c.isalpha())


def _is_ident_char(c: str) -> bool:
    return c in _IDENT_CHARS or (c > "\x7f" and c.isalnum())


class Lexer:
    """Single-pass scanner over a SourceUnit."""

    def __init__(self, unit: SourceUnit, profile: LanguageProfile, deadline: Optional[Deadline] = None):
        self.unit = unit
        self.text = unit.text
        self.profile = profile
        self.deadline = deadline or Deadline.unlimited(unit.path)
        self.tokens: List[Token] = []
        self.errors: List[LexError] = []

    def _emit(self, kind: TokenKind, start: int, end: int) -> None:
        self.tokens.append(Token(kind, self.text[start:end], start, end, self.unit.line_of(start)))

    def _error(self, message: str, offset: int) -> None:
        self.errors.append(LexError(message, offset, self.unit.line_of(offset)))

    def tokenize(self) -> Tuple[List[Token], List[LexError]]:
        text = self.text
        n = len(text)
        i = 0
        while i < n:
            self.deadline.check()
            c = text[i]

            if c.isspace():
                i += 1
                continue

            if c == "/" and i + 1 < n and text[i + 1] == "/":
                end = text.find("\n", i)
                end = n if end == -1 else end
                self._emit(TokenKind.COMMENT, i, end)
                i = end
                continue

            if c == "/" and i + 1 < n and text[i + 1] == "*":
                end = self._scan_block_comment(i)
                self._emit(TokenKind.COMMENT, i, end)
                i = end
                continue

            if self.profile.lifetimes and c == "r" and i + 1 < n and text[i + 1] in "#\"":
                end = self._scan_raw_string(i)
                if end is not None:
                    self._emit(TokenKind.STRING, i, end)
                    i = end
                    continue

            if _is_ident_start(c):
                j = i + 1
                while j < n and _is_ident_char(text[j]):
                    j += 1
                self._emit(TokenKind.IDENT, i, j)
                i = j
                continue

            if c.isdigit():
                j = i + 1
                while j < n and (_is_ident_char(text[j]) or (text[j] == "." and j + 1 < n and text[j + 1].isdigit())):
                    j += 1
                self._emit(TokenKind.NUMBER, i, j)
                i = j
                continue

            if c == '"':
                end = self._scan_string(i, '"')
                self._emit(TokenKind.STRING, i, end)
                i = end
                continue

            if c == "'":
                if self.profile.lifetimes and self._is_lifetime(i):
                    # 'a is a lifetime, not a char literal
                    self._emit(TokenKind.PUNCT, i, i + 1)
                    i += 1
                    continue
                end = self._scan_string(i, "'")
                self._emit(TokenKind.STRING, i, end)
                i = end
                continue

            for op in _OPERATORS:
                if text.startswith(op, i):
                    self._emit(TokenKind.PUNCT, i, i + len(op))
                    i += len(op)
                    break
            else:
                self._emit(TokenKind.PUNCT, i, i + 1)
                i += 1

        return self.tokens, self.errors

    def _scan_block_comment(self, start: int) -> int:
        text = self.text
        n = len(text)
        depth = 1
        i = start + 2
        while i < n:
            if text.startswith("*/", i):
                depth -= 1
                i += 2
                if depth == 0:
                    return i
                continue
            if self.profile.nested_block_comments and text.startswith("/*", i):
                depth += 1
                i += 2
                continue
            i += 1
        self._error("unterminated block comment", start)
        return n

    def _scan_string(self, start: int, quote: str) -> int:
        text = self.text
        n = len(text)
        i = start + 1
        while i < n:
            c = text[i]
            if c == "\\":
                i += 2
                continue
            if c == quote:
                return i + 1
            if c == "\n" and quote == "'" and not self.profile.lifetimes:
                break
            i += 1
        self._error("unterminated string literal", start)
        return min(i, n)

    def _scan_raw_string(self, start: int) -> Optional[int]:
        text = self.text
        i = start + 1
        hashes = 0
        while i < len(text) and text[i] == "#":
            hashes += 1
            i += 1
        if i >= len(text) or text[i] != '"':
            return None
        closing = '"' + "#" * hashes
        end = text.find(closing, i + 1)
        if end == -1:
            self._error("unterminated raw string literal", start)
            return len(text)
        return end + len(closing)

    def _is_lifetime(self, i: int) -> bool:
        text = self.text
        if i + 1 >= len(text) or not _is_ident_start(text[i + 1]):
            return False
        # 'a' is a char literal, 'a (no closing quote right after) is a lifetime
        return not (i + 2 < len(text) and text[i + 2] == "'")


def tokenize(unit: SourceUnit, profile: LanguageProfile, deadline: Optional[Deadline] = None):
    """Tokenize a source unit. Returns (tokens, errors)."""
    return Lexer(unit, profile, deadline).tokenize()
