"""User-facing diagnostics: consistent WARNING / ERROR / status lines."""

from __future__ import annotations

import sys

from factorygen.utils import colorize


def _err(text: str, color: str) -> str:
    return colorize(text, color, stream=sys.stderr)


def highlight(name: object) -> str:
    """Render a class/property name the way every diagnostic does."""
    return _err(str(name), "magenta")


def print_warning(message: str) -> None:
    """Print a non-fatal warning to stderr."""
    print(f"{_err('WARNING', 'yellow')} - {message}", file=sys.stderr)


def print_error(message: str) -> None:
    """Print a data-quality error to stderr. Never raises, never exits."""
    print(f"{_err('ERROR', 'red')}: {message}", file=sys.stderr)


def print_status(message: str) -> None:
    """Print a progress line to stdout."""
    print(message)


__all__ = [
    "highlight",
    "print_error",
    "print_status",
    "print_warning",
]
