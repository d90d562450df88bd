from core.facts import Fact, FactTable, FunctionFacts, add_fact, fact_exists
from core.context import ProjectContext, SourceFileContext
from core.errors import ConfigError, InputError, AnalysisTimeout, RuleNotFoundError
from core.utils import debug, info, warn, error

__all__ = [
    "Fact",
    "FactTable",
    "FunctionFacts",
    "add_fact",
    "fact_exists",
    "ProjectContext",
    "SourceFileContext",
    "ConfigError",
    "InputError",
    "AnalysisTimeout",
    "RuleNotFoundError",
    "debug",
    "info",
    "warn",
    "error",
]
