"""
CLI helper functions: rule file collection and rule loading.
"""

from pathlib import Path
from typing import List

from core.errors import ConfigError
from core.utils import debug
from rules.registry import BUILTIN_DETECTORS_DIR, RuleRegistry


def collect_rule_files(rule_path: str) -> List[str]:
    """Collect .hy rule files from a path (file or directory)."""
    path = Path(rule_path)
    if not path.exists():
        return []
    if path.is_file():
        return [str(path)]
    if path.is_dir():
        rule_files = []
        for file_path in path.rglob("*.hy"):
            # Skip private files (starting with _)
            if not file_path.name.startswith("_"):
                rule_files.append(str(file_path))
        return sorted(rule_files)
    return []


def rule_paths_for(extra_paths: List[str], builtin: bool = True) -> List[str]:
    """Built-in detector directory followed by user rule paths, without duplicates."""
    paths = [str(BUILTIN_DETECTORS_DIR)] if builtin else []
    for p in extra_paths:
        if p not in paths:
            paths.append(p)
    return paths


def parse_all_rules(rule_paths: List[str]) -> RuleRegistry:
    """
    Load every .hy detector file under the given paths into a validated registry.

    A path with no rule files, a file that fails to load or an invalid
    detector is a ConfigError: a partial rule set would silently hide findings.
    """
    rule_files: List[str] = []
    for rule_path in rule_paths:
        files = collect_rule_files(rule_path)
        if not files:
            raise ConfigError(f"No rule files found at: {rule_path}")
        for rule_file in files:
            if rule_file not in rule_files:
                rule_files.append(rule_file)

    registry = RuleRegistry.from_files(rule_files)
    debug(f"Loaded {len(registry)} detector(s) from {len(rule_files)} file(s)")
    return registry
