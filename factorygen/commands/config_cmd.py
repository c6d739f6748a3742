"""config command: show/set/unset/init project configuration."""

from __future__ import annotations

import argparse
import json
import sys

from factorygen.commands._helpers import config_path
from factorygen.config import (
    CONFIG_FILE,
    CONFIG_SCHEMA,
    default_config,
    load_config,
    save_config,
    set_config_value,
    unset_config_value,
)
from factorygen.diagnostics import print_error
from factorygen.utils import colorize


def cmd_config(args: argparse.Namespace) -> None:
    """Handle config subcommands: show, set, unset, init."""
    action = getattr(args, "config_action", None)
    if action == "set":
        _config_set(args)
    elif action == "unset":
        _config_unset(args)
    elif action == "init":
        _config_init(args)
    else:
        _config_show(args)


def _config_show(args):
    """Print all config keys with current values and descriptions."""
    config = load_config(config_path(args))

    print(colorize("\n  factorygen configuration\n", "bold"))
    for key, schema in CONFIG_SCHEMA.items():
        value = config.get(key, schema.default)
        is_default = value == schema.default

        if key == "factories":
            display = ", ".join(
                f"{f.get('base')} → {f.get('output')}" for f in value if isinstance(f, dict)
            ) or "(empty)"
        elif isinstance(value, list):
            display = ", ".join(str(v) for v in value) if value else "(empty)"
        else:
            display = str(value)

        default_tag = colorize(" (default)", "dim") if is_default else ""
        print(f"  {key:<15} {display}{default_tag}")
        print(colorize(f"  {'':15} {schema.description}", "dim"))
    print()


def _save_or_exit(config: dict, args) -> None:
    try:
        save_config(config, config_path(args))
    except OSError as e:
        print_error(f"could not save config: {e}")
        sys.exit(1)


def _config_set(args):
    config = load_config(config_path(args))
    try:
        set_config_value(config, args.config_key, args.config_value)
    except (KeyError, ValueError) as e:
        print_error(str(e))
        sys.exit(1)
    _save_or_exit(config, args)
    print(colorize(f"  Set {args.config_key} = {json.dumps(config[args.config_key])}", "green"))


def _config_unset(args):
    config = load_config(config_path(args))
    try:
        unset_config_value(config, args.config_key)
    except KeyError as e:
        print_error(str(e))
        sys.exit(1)
    _save_or_exit(config, args)
    print(colorize(f"  Reset {args.config_key} to default", "green"))


def _config_init(args):
    path = config_path(args) or CONFIG_FILE
    if path.exists() and not args.force:
        print_error(f"{path} already exists (use --force to overwrite)")
        sys.exit(1)
    _save_or_exit(default_config(), args)
    print(colorize(f"  Wrote {path}", "green"))
