"""
Error taxonomy.

ConfigError (and RuleNotFoundError) are fatal and stop the run before analysis.
InputError and AnalysisTimeout (and FileTooLarge) are scoped to one file; the file is skipped and
the batch continues. Parse errors are never raised: they become findings.
"""


class SolidDefendError(Exception):
    """Base class for all analyzer errors."""

    pass


class ConfigError(SolidDefendError):
    """Malformed rule definition, bad rule set or unknown detector requested."""

    pass


class RuleNotFoundError(ConfigError, KeyError):
    """Raised by the registry when a detector id is not registered."""

    def __init__(self, rule_id: str):
        super().__init__(rule_id)
        self.rule_id = rule_id

    def __str__(self):
        return f"Unknown detector: {self.rule_id}"


class InputError(SolidDefendError):
    """Source file cannot be read (missing, permission denied, not UTF-8, too large)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class FileTooLarge(InputError):
    """Source file exceeds the max-file-size guard."""

    def __init__(self, path: str, size: int, limit: int):
        super().__init__(path, f"file is {size} bytes, larger than the {limit} byte limit")
        self.size = size
        self.limit = limit


class AnalysisTimeout(SolidDefendError):
    """Per-file time budget exhausted."""

    def __init__(self, path: str, seconds: float):
        super().__init__(f"{path}: analysis exceeded {seconds:g}s")
        self.path = path
        self.seconds = seconds
