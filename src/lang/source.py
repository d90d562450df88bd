"""
Source loading and offset -> line/column mapping.
"""

import bisect
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from core.errors import FileTooLarge, InputError
from lang.profiles import profile_for_path


@dataclass(frozen=True)
class SourceLocation:
    """Source code location: file, line, column (1-indexed for display)."""

    file: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


def _build_line_offset_table(text: str) -> Tuple[int, ...]:
    """Offsets where each line starts. O(n) once per file."""
    offsets = [0]
    for i, c in enumerate(text):
        if c == "\n":
            offsets.append(i + 1)
    return tuple(offsets)


@dataclass(frozen=True)
class SourceUnit:
    """One input file. Offsets are character offsets into the decoded text."""

    path: str
    text: str
    language: str
    line_offsets: Tuple[int, ...] = field(default=(), repr=False, compare=False)

    def __post_init__(self):
        if not self.line_offsets:
            object.__setattr__(self, "line_offsets", _build_line_offset_table(self.text))

    @property
    def line_count(self) -> int:
        return len(self.line_offsets)

    def line_col(self, offset: int) -> Tuple[int, int]:
        """Convert offset to (line, column), both 1-indexed, clamped into the file."""
        if offset < 0:
            return (1, 1)
        if offset >= len(self.text):
            offset = len(self.text) - 1 if self.text else 0
        line = bisect.bisect_right(self.line_offsets, offset)
        col = offset - self.line_offsets[line - 1] + 1
        return (line, col)

    def line_of(self, offset: int) -> int:
        return self.line_col(offset)[0]

    def location(self, offset: int) -> SourceLocation:
        line, col = self.line_col(offset)
        return SourceLocation(self.path, line, col)

    def line_text(self, line: int) -> str:
        """Text of a 1-indexed line without its newline."""
        if line < 1 or line > len(self.line_offsets):
            return ""
        start = self.line_offsets[line - 1]
        end = self.line_offsets[line] - 1 if line < len(self.line_offsets) else len(self.text)
        return self.text[start:end]

    @property
    def stem(self) -> str:
        return Path(self.path).stem


def source_from_text(text: str, path: str = "<memory>", language: Optional[str] = None) -> SourceUnit:
    """Build a SourceUnit from an in-memory string."""
    lang = language or profile_for_path(path).name
    return SourceUnit(path=path, text=text, language=lang)


def load_source(path: str, max_size: Optional[int] = None, language: Optional[str] = None) -> SourceUnit:
    """
    Read a source file. Raises InputError when the file is missing, unreadable,
    not valid UTF-8, or larger than max_size bytes.
    """
    try:
        size = os.path.getsize(path)
    except OSError as e:
        raise InputError(path, e.strerror or str(e))

    if max_size is not None and size > max_size:
        raise FileTooLarge(path, size, max_size)

    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise InputError(path, f"not valid UTF-8 ({e.reason})")
    except OSError as e:
        raise InputError(path, e.strerror or str(e))

    # Editors on Windows leave a BOM behind
    if text.startswith("\ufeff"):
        text = text[1:]

    return source_from_text(text, path, language)
