"""Per-base-class registry of discovered subclasses and its factory module generator."""

from __future__ import annotations

import ast
import itertools
import keyword
import logging
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

from factorygen.diagnostics import highlight, print_error, print_status, print_warning
from factorygen.emitter import (
    PlanNode,
    attr,
    box_comment,
    comment,
    constant,
    double_star,
    f_string,
    mk_ann_assign,
    mk_arguments,
    mk_assign,
    mk_call,
    mk_class,
    mk_dict,
    mk_import,
    mk_import_from,
    mk_param,
    mk_static_method,
    name,
    print_module,
    star,
    subscript,
)
from factorygen.loader import module_name_for
from factorygen.locations import SourceLocation, format_location, locate
from factorygen.utils import rel, resolve_path, safe_write_text, stable_hash

logger = logging.getLogger(__name__)

DEFAULT_DISCRIMINATOR = "type_name"
MAPPING_NAME = "TYPE_MAPPINGS"
KEY_TYPE_NAME = "Specialisation"

_MISSING = object()
_LITERAL_TYPES = (str, bytes, int, float, bool, type(None))

_FORWARDING_CAVEAT = """\
The generator does not know each variant's constructor signature, so the
arguments are forwarded unchecked. A mismatch surfaces as a TypeError from
the variant's own __init__."""


@dataclass(frozen=True, eq=False)
class Specialisation:
    """One discovered concrete subclass. Equality is identity."""

    constructor: type
    source_file: str
    export_name: str


def validate_discriminator(prop: str) -> str:
    if not isinstance(prop, str) or not prop.isidentifier() or keyword.iskeyword(prop):
        raise ValueError(
            f"Discriminating property must be a valid Python identifier, got {prop!r}"
        )
    return prop


def literal_key(value: object) -> object:
    """Discriminator value as something a dict literal can hold."""
    if value is _MISSING:
        return None
    if type(value) in _LITERAL_TYPES:
        return value
    # Subclasses such as StrEnum/IntEnum members repr as <Kind.X: ...>
    for literal_type in _LITERAL_TYPES:
        if isinstance(value, literal_type):
            return _as_exact(literal_type, value)
    return str(value)


def _as_exact(literal_type: type, value: object) -> object:
    if literal_type is str:
        return str.__str__(value)
    if literal_type is bytes:
        return bytes(value)
    if literal_type is int:
        return int.__int__(value)
    if literal_type is float:
        return float.__float__(value)
    return value


def unique_name(spec: Specialisation) -> str:
    return f"cls_{stable_hash(spec.source_file, spec.export_name)}"


def origin_module(handle: type, locator: Callable[[object], SourceLocation | None] = locate) -> str:
    """Module a generated file should import *handle* from."""
    module = getattr(handle, "__module__", None)
    if module and module != "__main__":
        return module
    location = locator(handle)
    if location is None:
        raise ValueError(f"Cannot determine an importable module for {handle!r}")
    module_name, _root = module_name_for(location.file)
    return module_name


class FactoryBuilder:
    """Discovered subclasses of one base class, plus the generator for its factory module.

    Records live in an insertion-ordered arena keyed by record id, with a
    secondary index from source file to record ids so a file's records can
    be dropped in one step when the file changes or disappears.
    """

    def __init__(self, base_class: type, out_file: str | Path,
                 discriminating_property: str = DEFAULT_DISCRIMINATOR, *,
                 locator: Callable[[object], SourceLocation | None] = locate):
        self.base_class = base_class
        self.out_file = resolve_path(out_file)
        self.discriminating_property = validate_discriminator(discriminating_property)
        self._locator = locator
        self._records: dict[int, Specialisation] = {}
        self._by_file: dict[str, list[int]] = {}
        self._ids = itertools.count()

    def __repr__(self) -> str:
        return (f"FactoryBuilder({self.base_class.__name__}, {rel(self.out_file)!r}, "
                f"{len(self)} specialisations)")

    # ── Collection ──────────────────────────────────────────

    def __iter__(self) -> Iterator[Specialisation]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, spec: object) -> bool:
        return any(record is spec for record in self._records.values())

    def add(self, spec: Specialisation) -> None:
        """Insert unconditionally; callers invalidate the file first."""
        record_id = next(self._ids)
        self._records[record_id] = spec
        self._by_file.setdefault(resolve_path(spec.source_file), []).append(record_id)

    def invalidate(self, source_file: str | Path) -> bool:
        """Remove every record contributed by *source_file*. True if any were removed."""
        record_ids = self._by_file.pop(resolve_path(source_file), [])
        for record_id in record_ids:
            del self._records[record_id]
        return bool(record_ids)

    remove_existing_file_references = invalidate

    # ── Generation ──────────────────────────────────────────

    @property
    def factory_name(self) -> str:
        return f"{self.base_class.__name__}Factory"

    @property
    def error_name(self) -> str:
        return f"{self.base_class.__name__}FactoryCreateError"

    def discriminator_of(self, spec: Specialisation) -> object:
        return getattr(spec.constructor, self.discriminating_property, _MISSING)

    def generate(self, reason: str) -> str:
        """Render the factory module and write it to ``out_file``."""
        verb = "Regenerating" if os.path.exists(self.out_file) else "Generating"
        print_status(f"{verb} {highlight(self.base_class.__name__)} factory because {reason}")
        text = self.render()
        safe_write_text(self.out_file, text)
        logger.debug("Wrote %s (%d specialisations)", self.out_file, len(self))
        return text

    def render(self) -> str:
        """Build the factory module source. Reports data problems, never raises for them."""
        records = list(self)
        self.warn_for_duplicate_types(records)
        self.check_discriminators(records)
        names = {id(spec): unique_name(spec) for spec in records}
        plan = [
            *self.generate_imports(records, names),
            self.generate_type_mappings(records, names),
            self.generate_type_mappings_type(records),
            self.generate_error_class(),
            self.generate_factory_class(),
        ]
        return print_module(plan, header=self.generate_opening_comment(records))

    def _location(self, spec: Specialisation) -> str:
        return format_location(spec.constructor, fallback_file=spec.source_file,
                               locator=self._locator)

    def warn_for_duplicate_types(self, records: list[Specialisation]) -> None:
        groups: dict[object, list[Specialisation]] = {}
        for spec in records:
            groups.setdefault(literal_key(self.discriminator_of(spec)), []).append(spec)
        for value, specs in groups.items():
            if len(specs) < 2:
                continue
            references = "\n                    ".join(self._location(s) for s in specs)
            print_warning(
                f"Multiple classes use the same value for "
                f"{highlight(self.discriminating_property)} ({value!r}).\n"
                f"  References found: {references}\n"
                f"  The last one ({self._location(specs[-1])}) wins."
            )

    def check_discriminators(self, records: list[Specialisation]) -> None:
        prop = self.discriminating_property
        for spec in records:
            value = self.discriminator_of(spec)
            if value is _MISSING:
                print_error(f"{self._location(spec)} - {highlight(spec.export_name)} "
                            f"is missing discriminating property {prop}")
            elif not isinstance(value, str):
                print_error(f"{self._location(spec)} - {highlight(spec.export_name)}'s "
                            f"discriminating property {prop} is not a string")

    def _base_import(self) -> tuple[ast.stmt, str]:
        """Import for the base class and the expression that names it afterwards."""
        qualname = getattr(self.base_class, "__qualname__", self.base_class.__name__)
        if "<" in qualname:
            # Defined inside a function; the bare name is the best available guess
            qualname = self.base_class.__name__
        top_level = qualname.split(".")[0]
        module = origin_module(self.base_class, self._locator)
        return mk_import_from(module, top_level), qualname

    def generate_imports(self, records: list[Specialisation],
                         names: dict[int, str]) -> list[PlanNode]:
        base_import, _ = self._base_import()
        plan = [PlanNode(mk_import("typing")), PlanNode(base_import)]
        for spec in records:
            module = spec.constructor.__module__
            plan.append(PlanNode(mk_import_from(module, (spec.export_name, names[id(spec)]))))
        return plan

    def generate_type_mappings(self, records: list[Specialisation],
                               names: dict[int, str]) -> PlanNode:
        # Last added wins: a dict keeps the first key position and the last value
        entries: dict[object, str] = {}
        for spec in records:
            entries[literal_key(self.discriminator_of(spec))] = names[id(spec)]
        mapping = mk_dict((constant(key), name(value)) for key, value in entries.items())
        return PlanNode(mk_assign(MAPPING_NAME, mapping), multiline=True)

    def generate_type_mappings_type(self, records: list[Specialisation]) -> PlanNode:
        # Literal[True, 1] names two values even though the mapping holds one key
        typed = dict.fromkeys(
            (type(key), key) for key in (literal_key(self.discriminator_of(s)) for s in records)
        )
        keys = [key for _, key in typed]
        if keys:
            key_type = subscript(attr("typing.Literal"), [constant(k) for k in keys])
        else:
            key_type = attr("typing.Never")
        return PlanNode(mk_ann_assign(KEY_TYPE_NAME, attr("typing.TypeAlias"), key_type))

    def generate_error_class(self) -> PlanNode:
        return PlanNode(mk_class(
            self.error_name,
            bases=["LookupError"],
            docstring=f"Raised when {self.factory_name}.create gets an unknown "
                      f"{self.discriminating_property}.",
        ))

    def generate_factory_class(self) -> PlanNode:
        _, base_ref = self._base_import()
        prop = self.discriminating_property
        arguments = mk_arguments(
            [mk_param(prop, name(KEY_TYPE_NAME))],
            vararg=mk_param("args", attr("typing.Any")),
            kwarg=mk_param("kwargs", attr("typing.Any")),
        )
        lookup = mk_call(attr(f"{MAPPING_NAME}.get"), [name(prop)])
        not_found = ast.If(
            test=ast.Compare(left=name("constr"), ops=[ast.Is()], comparators=[constant(None)]),
            body=[ast.Raise(
                exc=mk_call(name(self.error_name), [
                    f_string((name(prop), "r"), f" is not a valid value for `{prop}`"),
                ]),
                cause=None,
            )],
            orelse=[],
        )
        body: list[ast.stmt] = [
            mk_assign("constr", lookup),
            not_found,
            comment(_FORWARDING_CAVEAT),
            ast.Return(value=mk_call(name("constr"), [star(name("args"))],
                                     [double_star(name("kwargs"))])),
        ]
        create = mk_static_method("create", arguments, attr(base_ref), body)
        return PlanNode(mk_class(self.factory_name, body=[create]))

    def generate_opening_comment(self, records: list[Specialisation]) -> str:
        out_dir = os.path.dirname(self.out_file)
        sources: dict[str, None] = {}
        for spec in records:
            location = self._locator(spec.constructor)
            if location is None:
                sources[f"{rel(spec.source_file, out_dir)} (location unresolved)"] = None
            else:
                sources[rel(location.file, out_dir)] = None
        return box_comment([
            "WARNING: This file is auto-generated by factorygen.",
            "",
            "Any changes made directly in this file may be overwritten the next time the generator runs.",
            "",
            "To modify the behavior of this file, update the source files and rerun the generator instead.",
            "",
            "Sources:",
            *sources,
        ])
