"""Shared command plumbing: config + CLI overrides → a declared FactoriesBuilder."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from factorygen.config import (
    ConfigError,
    extend_sys_path,
    load_config,
    parse_factory_arg,
    parse_factory_specs,
    resolve_base_class,
)
from factorygen.loader import module_name_for
from factorygen.orchestrator import FactoriesBuilder
from factorygen.utils import PROJECT_ROOT, resolve_path


@dataclass
class CommandRuntime:
    config: dict[str, Any]
    builder: FactoriesBuilder
    src_path: str
    ignore_paths: list[str]


def config_path(args: argparse.Namespace) -> Path | None:
    p = getattr(args, "config", None)
    return Path(p) if p else None


def source_import_root(src_path: str) -> str:
    """Directory that must be on sys.path for modules under *src_path* to import."""
    init_file = os.path.join(src_path, "__init__.py")
    if os.path.isfile(init_file):
        _name, root = module_name_for(init_file)
        return str(root)
    return src_path


def build_runtime(args: argparse.Namespace) -> CommandRuntime:
    """Load config, apply command-line overrides and declare every factory."""
    config = load_config(config_path(args))
    for raw in getattr(args, "factory", None) or []:
        config["factories"].append(parse_factory_arg(raw))
    extra_ignores = getattr(args, "ignore", None) or []
    ignore_paths = [resolve_path(p) for p in [*config["ignore_paths"], *extra_ignores]]
    src_path = resolve_path(getattr(args, "path", None) or config["source_root"])

    specs = parse_factory_specs(config)
    if not specs:
        raise ConfigError(
            "No factories declared. Add one with --factory pkg.module:Class=output.py "
            "or `factorygen config set factories ...`"
        )
    extend_sys_path([str(PROJECT_ROOT), *config["python_path"], source_import_root(src_path)])

    builder = FactoriesBuilder()
    for spec in specs:
        builder.declare(resolve_base_class(spec.base), resolve_path(spec.output), spec.discriminator)
    return CommandRuntime(config, builder, src_path, ignore_paths)
