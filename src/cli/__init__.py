"""
CLI utilities: rule loading and debug commands.
"""

from cli.helpers import (
    collect_rule_files,
    rule_paths_for,
    parse_all_rules,
)
from cli.debug import (
    check_parser_impl,
    dump_fact_schemas,
    dump_facts_to_dir,
)

__all__ = [
    "collect_rule_files",
    "rule_paths_for",
    "parse_all_rules",
    "check_parser_impl",
    "dump_fact_schemas",
    "dump_facts_to_dir",
]
