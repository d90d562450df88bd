"""
Rule engine: IR types, Hy loader, registry and evaluator.

Detectors are written in Hy (Lisp dialect) - see rules/detectors/.
"""

from rules.ir import (
    RuleDefinition,
    KeywordGroup,
    CountOf,
    Finding,
    Diagnostic,
    Severity,
)
from rules.hy_loader import load_hy_rules
from rules.registry import RuleRegistry, init_registry, get_registry
from rules.evaluator import evaluate

__all__ = [
    # IR types
    "RuleDefinition",
    "KeywordGroup",
    "CountOf",
    "Finding",
    "Diagnostic",
    "Severity",
    # Loading and registry
    "load_hy_rules",
    "RuleRegistry",
    "init_registry",
    "get_registry",
    # Evaluation
    "evaluate",
]
