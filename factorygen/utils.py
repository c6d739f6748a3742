"""Shared utilities: paths, colors, file discovery, hashing, atomic writes."""

from __future__ import annotations

import hashlib
import os
import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(os.environ.get("FACTORYGEN_ROOT", Path.cwd())).resolve()

# Directory names pruned during traversal
DEFAULT_EXCLUSIONS = frozenset({
    ".git", "__pycache__", ".venv", "venv", ".env",
    ".tox", ".mypy_cache", ".pytest_cache", ".ruff_cache",
    ".eggs",
    ".svn", ".hg", "node_modules",
})

MODULE_EXTENSIONS = (".py",)


# ── Atomic file writes ─────────────────────────────────────


def safe_write_text(filepath: str | Path, content: str) -> None:
    """Atomically write text to a file using temp+rename."""
    p = Path(filepath)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=p.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        os.replace(tmp, str(p))
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


# ── Colors ─────────────────────────────────────────────────

COLORS = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "magenta": "\033[35m",
    "cyan": "\033[36m",
    "bright_yellow": "\033[93m",
}


def color_enabled(stream=None) -> bool:
    if os.environ.get("NO_COLOR") is not None:
        return False
    stream = stream or sys.stdout
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def colorize(text: str, color: str, *, stream=None) -> str:
    if not color_enabled(stream):
        return str(text)
    return f"{COLORS.get(color, '')}{text}{COLORS['reset']}"


# ── Paths ──────────────────────────────────────────────────


def resolve_path(filepath: str | Path) -> str:
    """Resolve a filepath to absolute, handling both relative and absolute."""
    p = Path(filepath)
    if p.is_absolute():
        return str(p.resolve())
    return str((PROJECT_ROOT / p).resolve())


def rel(path: str | Path, start: str | Path | None = None) -> str:
    """Return *path* relative to *start* (default PROJECT_ROOT), with forward slashes."""
    base = Path(start).resolve() if start is not None else PROJECT_ROOT
    try:
        return os.path.relpath(str(Path(path).resolve()), str(base)).replace("\\", "/")
    except ValueError:
        # Windows cross-drive paths have no relative form
        return str(Path(path).resolve()).replace("\\", "/")


def is_within(path: str | Path, root: str | Path) -> bool:
    """True when *path* is *root* itself or lives somewhere below it."""
    resolved = Path(resolve_path(path))
    ancestor = Path(resolve_path(root))
    return resolved == ancestor or ancestor in resolved.parents


def same_path(a: str | Path, b: str | Path) -> bool:
    return resolve_path(a) == resolve_path(b)


# ── File discovery ─────────────────────────────────────────


def _is_excluded_dir(name: str) -> bool:
    return name in DEFAULT_EXCLUSIONS or name.endswith(".egg-info")


def find_source_files(path: str | Path,
                      extensions: tuple[str, ...] = MODULE_EXTENSIONS) -> list[str]:
    """Find all files with given extensions under a path, as sorted absolute paths."""
    root = Path(resolve_path(path))
    files: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        # Prune excluded directories in-place (prevents descending into them)
        dirnames[:] = sorted(d for d in dirnames if not _is_excluded_dir(d))
        for fname in filenames:
            if fname.endswith(extensions):
                files.append(os.path.join(dirpath, fname))
    return sorted(files)


# ── Hashing ────────────────────────────────────────────────


def stable_hash(*parts: str) -> str:
    """SHA-256 hex digest of *parts*, NUL-separated so boundaries can't shift."""
    h = hashlib.sha256()
    for i, part in enumerate(parts):
        if i:
            h.update(b"\0")
        h.update(part.encode("utf-8"))
    return h.hexdigest()
