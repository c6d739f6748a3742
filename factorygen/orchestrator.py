"""Discovery orchestrator: owns the registries and keeps them in step with the source tree."""

from __future__ import annotations

import inspect
import json
import logging
import os
from collections.abc import Iterable
from pathlib import Path
from types import ModuleType

from factorygen.diagnostics import highlight, print_status, print_warning
from factorygen.loader import ModuleLoader, ModuleLoadError
from factorygen.locations import format_location
from factorygen.registry import DEFAULT_DISCRIMINATOR, FactoryBuilder, Specialisation
from factorygen.utils import find_source_files, is_within, resolve_path, same_path

logger = logging.getLogger(__name__)

_OWN_MODULE = resolve_path(__file__)


def is_subtype_of(handle: type, base_class: type) -> bool:
    """True inheritance only: *base_class* is a proper ancestor in the MRO."""
    return base_class in handle.__mro__[1:]


def exported_names(module: ModuleType) -> list[str]:
    """Names a module exports: ``__all__`` when present, else its public names."""
    names = getattr(module, "__all__", None)
    if names is not None:
        return [n for n in names if isinstance(n, str)]
    return [n for n in vars(module) if not n.startswith("_")]


def read_source_map_sources(module_path: str) -> list[str]:
    """Absolute paths a sidecar ``<module>.map`` source map says *module_path* came from."""
    map_path = f"{module_path}.map"
    if not os.path.isfile(map_path):
        return []
    try:
        data = json.loads(Path(map_path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as ex:
        logger.debug("Unreadable source map %s: %s", map_path, ex)
        return []
    sources = data.get("sources") if isinstance(data, dict) else None
    if not isinstance(sources, list):
        return []
    base = os.path.dirname(module_path)
    return [resolve_path(os.path.join(base, s)) for s in sources if isinstance(s, str)]


class FactoriesBuilder:
    """Registry set plus the scan/update loop that feeds it.

    Not reentrant: feed it one file event at a time.
    """

    def __init__(self, *, loader: ModuleLoader | None = None):
        self._loader = loader or ModuleLoader()
        self._builders: dict[type, FactoryBuilder] = {}
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def builders(self) -> list[FactoryBuilder]:
        return list(self._builders.values())

    def builder_for(self, base_class: type) -> FactoryBuilder:
        return self._builders[base_class]

    def declare(self, base_class: type, out_file: str | Path,
                discriminating_property: str = DEFAULT_DISCRIMINATOR) -> FactoryBuilder:
        """Register *base_class*; its factory module will be written to *out_file*."""
        if not inspect.isclass(base_class):
            raise ValueError(f"Base must be a class, got {base_class!r}")
        if self._is_running:
            print_warning(f"Adding a new FactoryBuilder after calling {highlight('.run')} "
                          f"will not scan for existing files.")
        builder = FactoryBuilder(base_class, out_file, discriminating_property)
        if base_class in self._builders:
            logger.debug("Replacing factory builder for %s", base_class.__name__)
        self._builders[base_class] = builder
        return builder

    # ── Running ─────────────────────────────────────────────

    def run(self, src_path: str | Path, *, ignore_paths: Iterable[str | Path] = ()) -> None:
        """Scan *src_path* once, then generate every factory. A second call does nothing."""
        if self._is_running:
            logger.debug("run() called while already running; ignoring")
            return
        self._is_running = True
        ignore = list(ignore_paths)

        print_status(f"Looking for src files in {src_path}")
        self.scan(src_path, ignore)
        for builder in self.builders:
            builder.generate("Initial build")

    def scan(self, src_path: str | Path, ignore_paths: Iterable[str | Path] = ()) -> None:
        ignore = list(ignore_paths)
        for module_path in find_source_files(src_path):
            self.consider_file(module_path, ignore)

    def update_file(self, module_path: str | Path, ignore_paths: Iterable[str | Path] = (), *,
                    event: str = "written to") -> list[FactoryBuilder]:
        """Re-evaluate one changed file and regenerate whatever it affected."""
        affected = self.consider_file(module_path, ignore_paths)
        for builder in affected:
            builder.generate(f"{highlight(str(module_path))} was {event}")
        return affected

    # ── Per-file consideration ──────────────────────────────

    @staticmethod
    def is_path_ignored(path: str | Path, ignore_paths: Iterable[str | Path]) -> bool:
        return any(is_within(path, root) for root in ignore_paths)

    def _is_factory_builder_output_file(self, module_path: str) -> bool:
        origins = read_source_map_sources(module_path)
        for builder in self._builders.values():
            if same_path(module_path, builder.out_file):
                return True
            if any(same_path(origin, builder.out_file) for origin in origins):
                return True
        return False

    def _should_ignore_file(self, module_path: str, ignore_paths: list[str | Path]) -> bool:
        if module_path == _OWN_MODULE:
            return True
        if self._is_factory_builder_output_file(module_path):
            return True
        return self.is_path_ignored(module_path, ignore_paths)

    def consider_file(self, module_path: str | Path,
                      ignore_paths: Iterable[str | Path] = ()) -> list[FactoryBuilder]:
        """Drop everything *module_path* contributed, then re-add what it exports now.

        Returns the registries whose contents changed, in declaration order.
        """
        path = resolve_path(module_path)
        ignore = list(ignore_paths)
        affected: dict[int, FactoryBuilder] = {}
        for builder in self._builders.values():
            if builder.remove_existing_file_references(path):
                affected[id(builder)] = builder

        if self._should_ignore_file(path, ignore):
            logger.debug("Skipping %s", path)
            return self._in_declaration_order(affected)
        if not os.path.isfile(path):
            self._loader.forget(path)
            return self._in_declaration_order(affected)

        module = self._load_module(path)
        if module is None:
            return self._in_declaration_order(affected)

        for export_name in exported_names(module):
            exported = getattr(module, export_name, None)
            if not self._is_defined_in(exported, module):
                continue
            for base_class, builder in self._builders.items():
                if self._consider_export(path, exported, base_class, builder, export_name):
                    affected[id(builder)] = builder
        return self._in_declaration_order(affected)

    def _in_declaration_order(self, affected: dict[int, FactoryBuilder]) -> list[FactoryBuilder]:
        return [b for b in self._builders.values() if id(b) in affected]

    def _load_module(self, module_path: str) -> ModuleType | None:
        try:
            return self._loader.reload(module_path)
        except ModuleLoadError as ex:
            print_warning(f"Could not load module {module_path}: {ex.reason}")
            return None

    @staticmethod
    def _is_defined_in(exported: object, module: ModuleType) -> bool:
        return inspect.isclass(exported) and exported.__module__ == module.__name__

    def _consider_export(self, module_path: str, exported: type, base_class: type,
                         builder: FactoryBuilder, export_name: str) -> bool:
        if is_subtype_of(exported, base_class):
            if inspect.isabstract(exported):
                logger.debug("Skipping abstract %s in %s", export_name, module_path)
                return False
            builder.add(Specialisation(exported, module_path, export_name))
            return True
        self._check_for_possibly_bad_inheritance(exported, base_class, export_name, module_path)
        return False

    @staticmethod
    def _check_for_possibly_bad_inheritance(exported: type, base_class: type,
                                            export_name: str, module_path: str) -> None:
        base_name = base_class.__name__
        for ancestor in exported.__mro__[1:]:
            if ancestor is base_class or ancestor.__name__ != base_name:
                continue
            print_warning(
                f"{format_location(exported, fallback_file=module_path)} - class "
                f"{highlight(export_name)} inherits from a class called {highlight(ancestor.__name__)}"
                f"({format_location(ancestor)}) but this does not appear to be the same class as "
                f"{highlight(base_name)}({format_location(base_class)})\n"
                f"Possible causes:\n"
                f"1. {highlight(export_name)} is defined in the same file as {highlight(base_name)} - "
                f"this is not supported: reloading that file creates a new {base_name} class "
                f"that the registered one does not recognise.\n"
                f"2. There genuinely is more than one {highlight(ancestor.__name__)} class and "
                f"{highlight(export_name)} is derived from the other one. If this is intentional "
                f"then this warning can be ignored."
            )
