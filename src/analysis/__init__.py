"""
Fact extraction: parse tree to per-contract FactTables.

keywords    keyword occurrence index (code / comments / strings)
constructs  call sites, state writes, loops and guards of one function body
extractor   assembles the frozen FactTable of every contract
"""

from analysis.extractor import FactExtractor, extract_facts
from analysis.keywords import KeywordIndex

__all__ = ["FactExtractor", "extract_facts", "KeywordIndex"]
