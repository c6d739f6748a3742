"""CLI entry point: argparse, subcommand routing."""

from __future__ import annotations

import argparse
import sys

from factorygen.config import ConfigError
from factorygen.diagnostics import print_error

USAGE_EXAMPLES = """
workflow:
  build                         Scan the source tree and write every factory module
  watch                         Build, then regenerate factories as files change
  config show                   Show the current configuration
  config set <key> <value>      Set (or append to) a config key

examples:
  factorygen build --factory shapes.base:Shape=src/shapes/shape_factory.py
  factorygen build --path src --ignore src/legacy
  factorygen watch --interval 0.5
  factorygen config set factories "shapes.base:Shape=src/shapes/shape_factory.py@kind"
  factorygen config set ignore_paths src/vendor
"""


class _NoAbbrevArgumentParser(argparse.ArgumentParser):
    """Argparse parser variant that disables long-option abbreviation."""

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("allow_abbrev", False)
        super().__init__(*args, **kwargs)


def _add_scan_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--path", type=str, default=None,
                   help="Source root to scan (default: config source_root)")
    p.add_argument("--ignore", nargs="+", metavar="DIR", default=None,
                   help="Directories whose modules are never loaded")
    p.add_argument("--factory", action="append", metavar="SPEC", default=None,
                   help="Declare a factory: pkg.module:Class=output.py[@discriminator]")


def create_parser() -> argparse.ArgumentParser:
    parser = _NoAbbrevArgumentParser(
        prog="factorygen",
        description="factorygen — generate discriminator-based factory modules",
        epilog=USAGE_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None,
                        help="Config file (default: .factorygen/config.json)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_build = sub.add_parser("build", help="Scan once and write every factory module")
    _add_scan_options(p_build)

    p_watch = sub.add_parser("watch", help="Build, then keep factories current as files change")
    _add_scan_options(p_watch)
    p_watch.add_argument("--interval", type=float, default=None,
                         help="Seconds between polls (default: config poll_interval)")
    p_watch.add_argument("--max-polls", type=int, default=None, help=argparse.SUPPRESS)

    p_config = sub.add_parser("config", help="Show or change configuration")
    config_sub = p_config.add_subparsers(dest="config_action")
    config_sub.add_parser("show", help="Show all config keys")
    p_set = config_sub.add_parser("set", help="Set a config key (list keys append)")
    p_set.add_argument("config_key")
    p_set.add_argument("config_value")
    p_unset = config_sub.add_parser("unset", help="Reset a config key to its default")
    p_unset.add_argument("config_key")
    p_init = config_sub.add_parser("init", help="Write a config file with default values")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing file")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = create_parser()
    args = parser.parse_args(argv)

    # Lazy-load command handlers
    from factorygen.commands.build import cmd_build
    from factorygen.commands.config_cmd import cmd_config
    from factorygen.commands.watch_cmd import cmd_watch

    commands = {
        "build": cmd_build,
        "watch": cmd_watch,
        "config": cmd_config,
    }

    try:
        commands[args.command](args)
    except ConfigError as e:
        print_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(1)


if __name__ == "__main__":
    main()
