import os
import sys

_DEBUG_ENABLED = bool(os.getenv("SOLIDDEFEND_DEBUG"))


def debug(*args, **kwargs):
    if _DEBUG_ENABLED:
        prefix = "\033[1m[DEBUG]\033[0m"
        print(prefix, *args, file=sys.stderr, **kwargs)


def info(*args, **kwargs):
    prefix = "\033[1;34m[INFO]\033[0m"
    print(prefix, *args, file=sys.stderr, **kwargs)


def warn(*args, **kwargs):
    prefix = "\033[1;33m[WARNING]\033[0m"
    print(prefix, *args, file=sys.stderr, **kwargs)


def error(*args, **kwargs):
    prefix = "\033[1;31m[ERROR]\033[0m"
    print(prefix, *args, file=sys.stderr, **kwargs)


def set_debug(enabled: bool) -> None:
    """Toggle debug output at runtime (used by the --debug flag)."""
    global _DEBUG_ENABLED
    _DEBUG_ENABLED = enabled


# Qualified name utilities


def qualify(contract: str, name: str) -> str:
    """Build the display name of a contract member (Contract.member)."""
    return f"{contract}.{name}" if contract else name
