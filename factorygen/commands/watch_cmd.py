"""watch command: build, then keep factories current as files change."""

from __future__ import annotations

import argparse

from factorygen.commands._helpers import build_runtime
from factorygen.diagnostics import print_status
from factorygen.utils import colorize
from factorygen.watch import PollingWatcher


def cmd_watch(args: argparse.Namespace) -> None:
    runtime = build_runtime(args)
    interval = args.interval if args.interval is not None else runtime.config["poll_interval"]
    watcher = PollingWatcher(
        runtime.builder, runtime.src_path, runtime.ignore_paths, interval=float(interval),
    )
    runtime.builder.run(runtime.src_path, ignore_paths=runtime.ignore_paths)
    watcher.prime()
    print_status(colorize(f"Watching {runtime.src_path} (Ctrl+C to stop)", "dim"))
    watcher.run(max_polls=getattr(args, "max_polls", None))
