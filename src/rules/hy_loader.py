"""
Hy Rules Loader - Load detector files written in Hy.

Detector files are Hy programs calling the DSL in rules.dsl; each
`defdetector` call stages one RuleDefinition here while the file runs.

Usage:
    from rules.hy_loader import load_hy_rules
    rules = load_hy_rules("rules/detectors/access_control.hy")
"""

from dataclasses import replace
from pathlib import Path
from typing import List

from core.errors import ConfigError
from rules.ir import RuleDefinition


# Staging area - defdetector appends here while a file executes
_registered_rules: List[RuleDefinition] = []


def register_rule(rule: RuleDefinition) -> None:
    """
    Register a rule. Called by defdetector.

    Args:
        rule: RuleDefinition to stage
    """
    _registered_rules.append(rule)


def clear_registry() -> None:
    """Drop every staged rule."""
    _registered_rules.clear()


def _ensure_hy_imported():
    """Ensure Hy is installed and importable."""
    try:
        import hy
        import hy.importer

        return hy
    except ImportError:
        raise ImportError("Hy is not installed. Install with: pip install hy\nRequired version: hy>=1.0.0")


def load_hy_rules(path: str) -> List[RuleDefinition]:
    """
    Load all detectors from a single .hy file.

    Args:
        path: Path to .hy file

    Returns:
        Detectors defined by the file, in definition order, tagged with their source path
    """
    hy = _ensure_hy_imported()

    abs_path = str(Path(path).resolve())
    if not Path(abs_path).is_file():
        raise ConfigError(f"Rule file not found: {path}")

    start = len(_registered_rules)
    try:
        hy.importer.runhy.run_path(abs_path)
    except ConfigError as e:
        del _registered_rules[start:]
        raise ConfigError(f"{path}: {e}") from e
    except Exception as e:
        del _registered_rules[start:]
        raise ConfigError(f"Failed to load Hy rules from {path}: {e}") from e

    new_rules = [replace(rule, source=str(path)) for rule in _registered_rules[start:]]
    del _registered_rules[start:]
    return new_rules
