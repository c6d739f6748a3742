"""Best-effort mapping from a class or function handle back to its source position.

Used for diagnostics and the generated header only. Every failure degrades to
``None`` rather than raising.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from factorygen.utils import colorize, rel

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "<unknown location>"


@dataclass(frozen=True)
class SourceLocation:
    file: str
    line: int  # 1-based; 0 when only the file is known
    column: int  # 0-based


def _source_file(handle: object) -> str | None:
    try:
        path = inspect.getsourcefile(handle) or inspect.getfile(handle)
    except (TypeError, OSError) as ex:
        logger.debug("No source file for %r: %s", handle, ex)
        return None
    if path.endswith(".pyc"):
        # Compiled module: map the bytecode cache back to the source it came from
        try:
            path = importlib.util.source_from_cache(path)
        except ValueError:
            return None
    return str(Path(path).resolve())


def locate(handle: object) -> SourceLocation | None:
    """Return where *handle* is defined, or None when no reflective location exists."""
    filename = _source_file(handle)
    if filename is None:
        return None
    try:
        lines, lineno = inspect.getsourcelines(handle)
    except (OSError, TypeError, IndexError) as ex:
        logger.debug("No source lines for %r: %s", handle, ex)
        return SourceLocation(filename, 0, 0)
    # Skip decorators so the position points at the def/class keyword itself
    for offset, text in enumerate(lines):
        stripped = text.lstrip()
        if not stripped.startswith("@"):
            return SourceLocation(filename, lineno + offset, len(text) - len(stripped))
    return SourceLocation(filename, lineno, 0)


def format_location(handle: object, *, fallback_file: str | None = None,
                    locator: Callable[[object], SourceLocation | None] | None = None,
                    ansi: bool = True) -> str:
    """Render ``path:line:column`` for diagnostics, relative to the project root."""
    location = (locator or locate)(handle)
    if location is None:
        if fallback_file is None:
            return UNKNOWN_LOCATION
        location = SourceLocation(fallback_file, 0, 0)
    path = rel(location.file)
    if not ansi:
        return f"{path}:{location.line}:{location.column}"
    return (
        colorize(f"{path}:", "cyan", stream=sys.stderr)
        + colorize(str(location.line), "bright_yellow", stream=sys.stderr)
        + ":"
        + colorize(str(location.column), "bright_yellow", stream=sys.stderr)
    )
