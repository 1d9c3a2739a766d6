"""Terminal capability detection."""

import locale
import os
import sys
from functools import lru_cache

import colorama

__all__ = ["supports_color", "supports_utf8"]

_WINDOWS_COLOR_HINTS = ("ANSICON", "WT_SESSION")


@lru_cache(maxsize=1)
def supports_utf8() -> bool:
    """Check whether stdout can encode UTF-8 box drawing characters."""
    encoding = sys.stdout.encoding or locale.getpreferredencoding(False)
    return encoding.lower().replace("-", "").startswith("utf")


def _windows_supports_color() -> bool:
    if getattr(colorama, "fixed_windows_console", False):
        return True
    if any(hint in os.environ for hint in _WINDOWS_COLOR_HINTS):
        return True
    return os.environ.get("TERM_PROGRAM") == "vscode"


@lru_cache(maxsize=1)
def supports_color() -> bool:
    """Check whether stdout is a terminal that renders ANSI colour codes.

    ``NO_COLOR`` disables colours regardless of the terminal.

    Returns:
        bool: True if colours should be emitted.
    """
    if "NO_COLOR" in os.environ:
        return False
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False
    if sys.platform == "win32":
        return _windows_supports_color()
    return os.environ.get("TERM") != "dumb"
