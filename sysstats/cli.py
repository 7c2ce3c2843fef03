"""Command-line entry point for sysstats.

Usage:
    sysstats [--system] [--user] [--graphics] [--sequential]
             [--samples=N] [--tdelay=T] [N [T]]
    sysstats --dump-config
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, NoReturn

from sysstats.config import Config, dump_default_config, load_config
from sysstats.dispatcher import SpawnError
from sysstats.scheduler import Scheduler
from sysstats.signals import SignalController


class UsageError(Exception):
    """Invalid or inconsistent command-line arguments."""


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that reports bad input on stderr and exits with status 0."""

    def error(self, message: str) -> NoReturn:
        print(f"sysstats: {message}", file=sys.stderr)
        raise SystemExit(0)


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="sysstats",
        description="Report memory, CPU and user-session usage of this system.",
    )
    parser.add_argument(
        "--system", action="store_true",
        help="Show system usage (memory and CPU)",
    )
    parser.add_argument(
        "--user", action="store_true",
        help="Show logged-in user sessions",
    )
    parser.add_argument(
        "--graphics", action="store_true",
        help="Draw memory-change and CPU-usage graphs",
    )
    parser.add_argument(
        "--sequential", action="store_true",
        help="Append a new block every round instead of refreshing in place",
    )
    parser.add_argument(
        "--samples", type=int, action="append", default=None, metavar="N",
        help="Number of rounds (default: 10)",
    )
    parser.add_argument(
        "--tdelay", type=int, action="append", default=None, metavar="T",
        help="Seconds between rounds (default: 1)",
    )
    parser.add_argument(
        "counts", type=int, nargs="*", metavar="N [T]",
        help="Sample count, then delay, if not given as flags",
    )
    parser.add_argument(
        "--config", type=Path, default=None, metavar="PATH",
        help="Path to TOML config file",
    )
    parser.add_argument(
        "--dump-config", action="store_true",
        help="Print the default configuration as TOML and exit",
    )
    return parser


def _single_value(name: str, values: list[int], default: int) -> int:
    """Collapse repeated values of one setting, rejecting disagreement."""
    if not values:
        return default
    if any(v != values[0] for v in values[1:]):
        raise UsageError(f'The value given to "--{name}" should be consistent!')
    return values[0]


def resolve_config(args: argparse.Namespace, settings: dict[str, Any]) -> Config:
    """Turn parsed arguments plus file settings into a validated Config.

    Raises:
        UsageError: On conflicting, out-of-range or surplus values.
    """
    if len(args.counts) > 2:
        raise UsageError("No more than 2 single integers can be taken as valid arguments.")

    samples = list(args.samples or [])
    tdelay = list(args.tdelay or [])
    if len(args.counts) >= 1:
        samples.append(args.counts[0])
    if len(args.counts) == 2:
        tdelay.append(args.counts[1])

    round_count = _single_value("samples=N", samples, int(settings["samples"]))
    interval = _single_value("tdelay=T", tdelay, int(settings["tdelay"]))
    if round_count <= 0:
        raise UsageError('The value given to "--samples=N" should be a positive integer!')
    if interval < 0:
        raise UsageError('The value given to "--tdelay=T" should not be negative!')

    # Neither flag means both sections
    show_all = not args.system and not args.user
    return Config(
        round_count=round_count,
        interval_seconds=interval,
        collect_memory_cpu=args.system or show_all,
        collect_users=args.user or show_all,
        graphics=args.graphics or bool(settings["graphics"]),
        sequential=args.sequential or bool(settings["sequential"]),
    )


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_intermixed_args(argv)

    if args.dump_config:
        print(dump_default_config(), end="")
        return

    settings = load_config(args.config)
    try:
        config = resolve_config(args, settings)
    except UsageError as e:
        parser.error(str(e))

    controller = SignalController()
    controller.install()
    try:
        status = Scheduler(config, controller).run()
    except SpawnError as e:
        print(f"sysstats: cannot start worker: {e}", file=sys.stderr)
        raise SystemExit(1) from e
    finally:
        controller.restore()
    raise SystemExit(status)


if __name__ == "__main__":
    main()
