"""
Describes the run context: one buffer per analyzed file, merged into the
project context once every file is done.

Worker threads only ever write to their own SourceFileContext; the
ProjectContext is assembled on the main thread after the pool drains.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from core.facts import FactTable
    from lang.nodes import ParseError
    from rules.ir import Diagnostic, Finding


@dataclass
class SourceFileContext:
    path: str
    language: Optional[str] = None
    tables: List["FactTable"] = field(default_factory=list)
    parse_errors: List["ParseError"] = field(default_factory=list)
    findings: List["Finding"] = field(default_factory=list)
    diagnostics: List["Diagnostic"] = field(default_factory=list)
    # Reason the file was not analyzed (unreadable, oversize, timeout)
    skipped: Optional[str] = None

    @property
    def analyzed(self) -> bool:
        return self.skipped is None

    @property
    def function_count(self) -> int:
        return sum(len(t.functions) for t in self.tables)


class ProjectContext:
    """
    Everything known about one run, keyed by file path.

    Files are stored in discovery order (sorted paths), which keeps every
    derived view independent of worker scheduling.
    """

    def __init__(self, source_files: List[str]):
        self.source_files: Dict[str, SourceFileContext] = {path: SourceFileContext(path) for path in source_files}

    def merge(self, file_ctx: SourceFileContext) -> None:
        self.source_files[file_ctx.path] = file_ctx

    @property
    def analyzed_files(self) -> List[SourceFileContext]:
        return [f for f in self.source_files.values() if f.analyzed]

    @property
    def skipped_files(self) -> List[SourceFileContext]:
        return [f for f in self.source_files.values() if not f.analyzed]

    @property
    def findings(self) -> List["Finding"]:
        out: List["Finding"] = []
        for file_ctx in self.source_files.values():
            out.extend(file_ctx.findings)
        return out

    @property
    def diagnostics(self) -> List["Diagnostic"]:
        out: List["Diagnostic"] = []
        for file_ctx in self.source_files.values():
            out.extend(file_ctx.diagnostics)
        return out

    @property
    def tables(self) -> List["FactTable"]:
        out: List["FactTable"] = []
        for file_ctx in self.source_files.values():
            out.extend(file_ctx.tables)
        return out

    @property
    def parse_error_count(self) -> int:
        return sum(len(f.parse_errors) for f in self.source_files.values())
