import os
import sys
from pathlib import Path

import pytest


# Ensure the project `src` directory is on sys.path so tests can import
# modules like `lang`, `analysis`, `rules`, `pipeline`, etc.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# Reporter colors are evaluated at import time
os.environ.setdefault("SOLIDDEFEND_NO_COLORS", "1")


@pytest.fixture(autouse=True)
def isolated_registry():
    """Every test starts without a process-wide registry and with an empty staging area."""
    from rules.hy_loader import clear_registry
    from rules.registry import reset_global_registry

    reset_global_registry()
    clear_registry()

    yield

    reset_global_registry()
    clear_registry()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep SOLIDDEFEND_* settings from the developer's shell out of the tests."""
    for name in (
        "SOLIDDEFEND_WORKERS",
        "SOLIDDEFEND_MAX_FILE_SIZE",
        "SOLIDDEFEND_FILE_TIMEOUT",
        "SOLIDDEFEND_RULES",
    ):
        monkeypatch.delenv(name, raising=False)
