"""
Run configuration: environment variables (optionally from .env) with CLI overrides.
"""

import os
import time
from dataclasses import dataclass, field, replace
from typing import List, Optional

from core.errors import AnalysisTimeout, ConfigError


DEFAULT_MAX_FILE_SIZE = 2 * 1024 * 1024
DEFAULT_FILE_TIMEOUT = 30.0

# Source extensions analyzed when walking a directory
DEFAULT_EXTENSIONS = (".sol", ".move", ".rs")

# Directories never worth walking into
SKIP_DIRS = {".git", "node_modules", "target", "out", "artifacts", "cache", "__pycache__", ".venv"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    workers: int = 1
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    file_timeout: float = DEFAULT_FILE_TIMEOUT  # seconds, 0 disables
    extra_rule_paths: List[str] = field(default_factory=list)
    skip_tests: bool = False
    language: Optional[str] = None  # force a language profile for every file

    @classmethod
    def from_env(cls) -> "Settings":
        """Read SOLIDDEFEND_* variables. Call after load_dotenv()."""
        rules = os.environ.get("SOLIDDEFEND_RULES", "")
        settings = cls(
            workers=_env_int("SOLIDDEFEND_WORKERS", 1),
            max_file_size=_env_int("SOLIDDEFEND_MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE),
            file_timeout=_env_float("SOLIDDEFEND_FILE_TIMEOUT", DEFAULT_FILE_TIMEOUT),
            extra_rule_paths=[p for p in rules.split(os.pathsep) if p],
        )
        settings.validate()
        return settings

    def override(self, **changes) -> "Settings":
        """Return a copy with the non-None CLI values applied."""
        updated = replace(self, **{k: v for k, v in changes.items() if v is not None})
        updated.validate()
        return updated

    def validate(self) -> None:
        if self.workers < 1:
            raise ConfigError(f"workers must be >= 1, got {self.workers}")
        if self.max_file_size < 1:
            raise ConfigError(f"max file size must be positive, got {self.max_file_size}")
        if self.file_timeout < 0:
            raise ConfigError(f"file timeout must be >= 0, got {self.file_timeout}")


class Deadline:
    """Cooperative per-file time budget, polled from the lexer, parser and extractor loops."""

    # Poll the clock once every N ticks
    CHECK_EVERY = 512

    def __init__(self, path: str, seconds: float):
        self.path = path
        self.seconds = seconds
        self._expires = time.monotonic() + seconds if seconds > 0 else None
        self._ticks = 0

    @classmethod
    def unlimited(cls, path: str = "") -> "Deadline":
        return cls(path, 0)

    def check(self) -> None:
        if self._expires is None:
            return
        self._ticks += 1
        if self._ticks % self.CHECK_EVERY:
            return
        if time.monotonic() > self._expires:
            raise AnalysisTimeout(self.path, self.seconds)
