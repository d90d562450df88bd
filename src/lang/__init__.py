"""
Source loading, lexing and tolerant parsing for brace-delimited contract languages.
"""

from lang.source import SourceUnit, load_source, source_from_text
from lang.profiles import LanguageProfile, get_profile, profile_for_path
from lang.parser import parse_source, parse_text

__all__ = [
    "SourceUnit",
    "load_source",
    "source_from_text",
    "LanguageProfile",
    "get_profile",
    "profile_for_path",
    "parse_source",
    "parse_text",
]
