"""Module loading with an explicit, cache-bypassing reload.

``reload`` always executes the file as it is on disk right now. It never
reuses ``sys.modules`` or a ``.pyc`` from ``__pycache__``, so an edit made
a moment ago is always observed.
"""

from __future__ import annotations

import importlib.machinery
import importlib.util
import linecache
import logging
import sys
from pathlib import Path
from types import ModuleType

logger = logging.getLogger(__name__)


class ModuleLoadError(ImportError):
    """A module could not be imported (syntax error, exception at import time...)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not load module {path}: {reason}", path=path)
        self.reason = reason


class _FreshSourceLoader(importlib.machinery.SourceFileLoader):
    """Source loader that never reads or writes bytecode caches."""

    def get_code(self, fullname):
        source = self.get_data(self.path)
        return self.source_to_code(source, self.path)


def module_name_for(path: str | Path) -> tuple[str, Path]:
    """Derive ``(dotted module name, import root)`` for a source file.

    Walks up through parent directories for as long as they are packages
    (contain ``__init__.py``). ``pkg/sub/mod.py`` inside two packages gives
    ``("pkg.sub.mod", <dir containing pkg>)``; a package's ``__init__.py``
    is named after the package itself.
    """
    p = Path(path).resolve()
    parts = [] if p.name == "__init__.py" else [p.stem]
    directory = p.parent
    while (directory / "__init__.py").is_file():
        parts.insert(0, directory.name)
        directory = directory.parent
    if not parts:
        # A bare __init__.py with no package parent; name it after its directory
        parts = [p.parent.name]
        directory = p.parent.parent
    return ".".join(parts), directory


def _module_file(module: ModuleType | None) -> Path | None:
    filename = getattr(module, "__file__", None)
    if not filename:
        return None
    return Path(filename).resolve()


class ModuleLoader:
    """Load modules by file path; ``reload`` re-executes from source every time."""

    def __init__(self, *, extend_sys_path: bool = True):
        self.extend_sys_path = extend_sys_path
        self._owned: dict[str, ModuleType] = {}

    def load(self, path: str | Path) -> ModuleType:
        """Return the already-imported module for *path*, importing it if needed."""
        resolved = Path(path).resolve()
        name, _root = module_name_for(resolved)
        existing = sys.modules.get(name)
        if _module_file(existing) == resolved:
            return existing
        return self.reload(resolved)

    def reload(self, path: str | Path) -> ModuleType:
        """Execute the current source of *path* as a fresh module object.

        While the module body runs it is registered in ``sys.modules`` so that
        self-references and dataclasses resolve. Afterwards, an entry this
        loader did not create is put back, so the canonical copy of a module
        (typically the one defining a base class) is never replaced by a
        fresh duplicate. Raises ModuleLoadError on any failure, leaving
        ``sys.modules`` as it was, and when another file already holds the
        derived module name.
        """
        resolved = Path(path).resolve()
        name, root = module_name_for(resolved)
        taken_by = _module_file(sys.modules.get(name))
        if taken_by is not None and taken_by != resolved:
            # Generated imports go by module name; they would reach the other file
            raise ModuleLoadError(
                str(resolved), f"module name {name!r} is already taken by {taken_by}"
            )
        if self.extend_sys_path:
            self._ensure_import_root(root)

        loader = _FreshSourceLoader(name, str(resolved))
        search_locations = [str(resolved.parent)] if resolved.name == "__init__.py" else None
        spec = importlib.util.spec_from_file_location(
            name, resolved, loader=loader, submodule_search_locations=search_locations,
        )
        if spec is None:
            raise ModuleLoadError(str(resolved), "no import spec")
        module = importlib.util.module_from_spec(spec)

        previous = sys.modules.get(name)
        foreign = previous is not None and self._owned.get(name) is not previous
        sys.modules[name] = module
        try:
            loader.exec_module(module)
        except Exception as ex:
            self._restore(name, previous)
            logger.debug("Import of %s failed", resolved, exc_info=True)
            raise ModuleLoadError(str(resolved), f"{type(ex).__name__}: {ex}") from ex

        if foreign:
            sys.modules[name] = previous
        else:
            self._owned[name] = module
        linecache.checkcache(str(resolved))
        return module

    def forget(self, path: str | Path) -> None:
        """Drop a module this loader installed (used when its file is deleted)."""
        name, _root = module_name_for(path)
        module = self._owned.pop(name, None)
        if module is not None and sys.modules.get(name) is module:
            del sys.modules[name]

    @staticmethod
    def _restore(name: str, previous: ModuleType | None) -> None:
        if previous is None:
            sys.modules.pop(name, None)
        else:
            sys.modules[name] = previous

    @staticmethod
    def _ensure_import_root(root: Path) -> None:
        entry = str(root)
        if entry not in sys.path:
            sys.path.insert(0, entry)
