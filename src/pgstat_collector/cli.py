# src/pgstat_collector/cli.py
from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Optional

import zstandard as zstd

from pgstat_collector.collector import Collector, snapshot_once
from pgstat_collector.config import (
    DEFAULT_ENV_FILE,
    OUTPUT_FORMATS,
    Settings,
    load_local_env,
    load_settings,
    preview_settings,
)
from pgstat_collector.connection import ConnectionManager
from pgstat_collector.exceptions import CollectorError, ConfigError, OutputError
from pgstat_collector.logging_config import add_logging_args, describe_error, setup_logging
from pgstat_collector.output import read_snapshot_log
from pgstat_collector.shutdown import ShutdownCoordinator

logger = logging.getLogger("pgstat_collector.cli")

EXIT_FATAL = 1
EXIT_CONFIG = 2


# ----------------------------
# Helpers
# ----------------------------
def _settings_from_args(args: argparse.Namespace) -> Settings:
    if args.env_file:
        load_local_env(args.env_file)

    overrides: dict[str, Any] = {
        "poll_interval": getattr(args, "poll_interval", None),
        "max_uptime": getattr(args, "max_uptime", None),
        "out_dir": getattr(args, "out_dir", None),
        "output_format": getattr(args, "format", None),
        "compression_level": getattr(args, "compression_level", None),
        "statement_timeout_ms": args.timeout_ms,
    }
    return load_settings(args.config, overrides=overrides)


# ----------------------------
# Commands
# ----------------------------
def cmd_run(args: argparse.Namespace) -> int:
    """
    Long-running collection until max uptime or SIGINT/SIGTERM.
    """
    settings = _settings_from_args(args)
    logger.info(f"starting collector: {preview_settings(settings)}")

    with ShutdownCoordinator() as coordinator:
        collector = Collector(settings, ConnectionManager(settings), coordinator)
        return collector.run()


def cmd_once(args: argparse.Namespace) -> int:
    """
    Take a single snapshot and print it to stdout. No output file is written.
    """
    settings = _settings_from_args(args)
    sys.stdout.write(snapshot_once(settings))
    sys.stdout.flush()
    return 0


def cmd_cat(args: argparse.Namespace) -> int:
    """
    Decompress one or more snapshot logs to stdout (finished or still growing).
    """
    for path in args.paths:
        try:
            sys.stdout.write(read_snapshot_log(path))
        except (OSError, zstd.ZstdError) as e:
            raise OutputError(f"reading {path}") from e
    sys.stdout.flush()
    return 0


# ----------------------------
# Main / Parser
# ----------------------------
def _add_common_args(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("--config", "-c", default=None, help="Optional YAML settings file")
    sp.add_argument(
        "--env-file",
        default=DEFAULT_ENV_FILE,
        help=f"KEY=VALUE file loaded before reading PSD_* variables (default: {DEFAULT_ENV_FILE}, if present)",
    )
    sp.add_argument("--timeout-ms", type=int, default=None, help="statement_timeout in ms (default: 5000)")
    add_logging_args(sp)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="pgstat-collector",
        description="Periodically snapshot pg_stat_activity into a zstd-compressed log",
    )
    sub = ap.add_subparsers(dest="cmd")

    p_run = sub.add_parser("run", help="Collect snapshots until max uptime or interrupt (default)")
    _add_common_args(p_run)
    p_run.add_argument("--poll-interval", default=None, help="Seconds between snapshots (default: 53)")
    p_run.add_argument("--max-uptime", default=None, help="Seconds before exiting on its own (default: 3600)")
    p_run.add_argument("--out-dir", default=None, help="Directory for the output file (default: .)")
    p_run.add_argument("--format", choices=OUTPUT_FORMATS, default=None, help="Output format (default: text)")
    p_run.add_argument("--compression-level", type=int, default=None, help="zstd level 1-22 (default: 9)")
    p_run.set_defaults(func=cmd_run)

    p_once = sub.add_parser("once", help="Print one aligned snapshot to stdout and exit")
    _add_common_args(p_once)
    p_once.set_defaults(func=cmd_once)

    p_cat = sub.add_parser("cat", help="Decompress snapshot logs to stdout")
    p_cat.add_argument("paths", nargs="+", help="stat-activity-*.zst files")
    add_logging_args(p_cat)
    p_cat.set_defaults(func=cmd_cat)

    return ap


def main(argv: Optional[list[str]] = None) -> int:
    ap = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)

    # No subcommand -> run
    if not argv or argv[0] not in ("run", "once", "cat", "-h", "--help"):
        argv = ["run", *argv]
    args = ap.parse_args(argv)

    setup_logging(level=args.log_level, log_file=args.log_file, quiet=args.quiet, debug=args.debug)

    try:
        return int(args.func(args))
    except ConfigError as e:
        logger.error(f"configuration error: {describe_error(e)}")
        return EXIT_CONFIG
    except CollectorError as e:
        logger.error(f"fatal: {describe_error(e)}")
        return EXIT_FATAL


if __name__ == "__main__":
    raise SystemExit(main())
