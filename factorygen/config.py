"""Project config (.factorygen/config.json) and factory declarations."""

from __future__ import annotations

import copy
import importlib
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from factorygen.registry import DEFAULT_DISCRIMINATOR, validate_discriminator
from factorygen.utils import PROJECT_ROOT, resolve_path, safe_write_text

CONFIG_FILE = PROJECT_ROOT / ".factorygen" / "config.json"
logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Config content that cannot be turned into factory declarations."""


@dataclass(frozen=True)
class ConfigKey:
    type: type
    default: object
    description: str


CONFIG_SCHEMA: dict[str, ConfigKey] = {
    "source_root": ConfigKey(str, "src", "Directory scanned for modules"),
    "ignore_paths": ConfigKey(list, [], "Directories whose modules are never loaded"),
    "python_path": ConfigKey(
        list, [], "Directories prepended to sys.path before importing base classes"
    ),
    "factories": ConfigKey(
        list,
        [],
        "Factory declarations [{base: 'pkg.module:Class', output, discriminator}]",
    ),
    "poll_interval": ConfigKey(float, 1.0, "Seconds between polls in watch mode"),
}


@dataclass(frozen=True)
class FactorySpec:
    base: str  # "pkg.module:Class"
    output: str
    discriminator: str = DEFAULT_DISCRIMINATOR


def default_config() -> dict[str, Any]:
    """Return a config dict with all keys set to their defaults."""
    return {k: copy.deepcopy(v.default) for k, v in CONFIG_SCHEMA.items()}


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load config from disk, filling missing keys with defaults.

    A missing or unreadable file yields the defaults. Unknown keys are kept.
    """
    p = path or CONFIG_FILE
    config: dict[str, Any] = {}
    if p.exists():
        try:
            loaded = json.loads(p.read_text())
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
            logger.debug("Ignoring unreadable config %s: %s", p, exc)
            loaded = {}
        if isinstance(loaded, dict):
            config = loaded

    for key, schema in CONFIG_SCHEMA.items():
        if key not in config:
            config[key] = copy.deepcopy(schema.default)
    return config


def save_config(config: dict, path: Path | None = None) -> None:
    """Save config to disk atomically."""
    p = path or CONFIG_FILE
    safe_write_text(p, json.dumps(config, indent=2) + "\n")


def parse_factory_arg(raw: str) -> dict[str, str]:
    """Parse ``pkg.module:Class=output.py[@discriminator]`` into a factory entry."""
    base, sep, rest = raw.partition("=")
    if not sep or not base or not rest:
        raise ConfigError(
            f"Expected pkg.module:Class=output.py[@discriminator], got: {raw}"
        )
    output, _, discriminator = rest.partition("@")
    entry = {"base": base.strip(), "output": output.strip()}
    if discriminator:
        entry["discriminator"] = discriminator.strip()
    return entry


def set_config_value(config: dict, key: str, raw: str) -> None:
    """Parse and set a config value from a raw string. List keys append."""
    if key not in CONFIG_SCHEMA:
        raise KeyError(f"Unknown config key: {key}")

    schema = CONFIG_SCHEMA[key]
    if key == "factories":
        entry = parse_factory_arg(raw)
        config.setdefault(key, [])
        if entry not in config[key]:
            config[key].append(entry)
    elif schema.type is float:
        try:
            value = float(raw)
        except ValueError as exc:
            raise ValueError(f"Expected a number for {key}, got: {raw}") from exc
        if value <= 0:
            raise ValueError(f"Expected a positive number for {key}, got: {raw}")
        config[key] = value
    elif schema.type is list:
        config.setdefault(key, [])
        if raw not in config[key]:
            config[key].append(raw)
    else:
        config[key] = raw


def unset_config_value(config: dict, key: str) -> None:
    """Reset a config key to its default value."""
    if key not in CONFIG_SCHEMA:
        raise KeyError(f"Unknown config key: {key}")
    config[key] = copy.deepcopy(CONFIG_SCHEMA[key].default)


def parse_factory_specs(config: dict[str, Any]) -> list[FactorySpec]:
    """Validate the ``factories`` entries of *config*."""
    raw_entries = config.get("factories") or []
    if not isinstance(raw_entries, list):
        raise ConfigError("'factories' must be a list")
    specs: list[FactorySpec] = []
    for idx, entry in enumerate(raw_entries):
        if not isinstance(entry, dict):
            raise ConfigError(f"factories[{idx}] must be an object")
        base = entry.get("base")
        output = entry.get("output")
        discriminator = entry.get("discriminator", DEFAULT_DISCRIMINATOR)
        if not isinstance(base, str) or ":" not in base:
            raise ConfigError(f"factories[{idx}].base must look like 'pkg.module:Class'")
        if not isinstance(output, str) or not output:
            raise ConfigError(f"factories[{idx}].output must be a file path")
        try:
            validate_discriminator(discriminator)
        except ValueError as exc:
            raise ConfigError(f"factories[{idx}].discriminator: {exc}") from exc
        specs.append(FactorySpec(base, output, discriminator))
    return specs


def extend_sys_path(entries: list[str]) -> None:
    """Prepend config ``python_path`` entries (relative to the project root)."""
    for entry in reversed(entries):
        resolved = resolve_path(entry)
        if resolved not in sys.path:
            sys.path.insert(0, resolved)


def resolve_base_class(ref: str) -> type:
    """Import ``pkg.module:Class`` (``Outer.Inner`` allowed after the colon)."""
    module_name, sep, qualname = ref.partition(":")
    if not sep or not module_name or not qualname:
        raise ConfigError(f"Expected 'pkg.module:Class', got: {ref}")
    try:
        obj: object = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"Cannot import {module_name}: {exc}") from exc
    for part in qualname.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            raise ConfigError(f"{module_name} has no attribute {qualname}") from exc
    if not isinstance(obj, type):
        raise ConfigError(f"{ref} is not a class")
    return obj
