"""build command: scan once and write every factory module."""

from __future__ import annotations

import argparse

from factorygen.commands._helpers import build_runtime
from factorygen.diagnostics import print_status
from factorygen.utils import colorize, rel


def cmd_build(args: argparse.Namespace) -> None:
    runtime = build_runtime(args)
    runtime.builder.run(runtime.src_path, ignore_paths=runtime.ignore_paths)
    for builder in runtime.builder.builders:
        print_status(colorize(
            f"  {builder.factory_name}: {len(builder)} specialisations → {rel(builder.out_file)}",
            "green",
        ))
