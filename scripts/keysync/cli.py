"""CLI entry point: sync, scheduler, inspect-snapshot."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional

from scripts.keysync.config import KeySyncConfig, RunMode, load_config
from scripts.keysync.errors import KeySyncError
from scripts.keysync.logging_config import configure_logging
from scripts.keysync.notify import notify_completion
from scripts.keysync.pipeline import RunResult, run_once
from scripts.keysync.snapshot import load_snapshot

logger = logging.getLogger("keysync.cli")


def execute_run(config: KeySyncConfig) -> Optional[RunResult]:
    """Run the pipeline once and always send the completion notice.

    Returns None when the run hit a fatal error (already logged).
    """
    try:
        return run_once(config)
    except KeySyncError as exc:
        logger.error("Key sync failed: %s", exc)
        return None
    finally:
        notify_completion(config.notification)


def _load(mode: Optional[str]) -> Optional[KeySyncConfig]:
    try:
        return load_config(RunMode(mode) if mode else None)
    except KeySyncError as exc:
        logger.error("Configuration error: %s", exc)
        return None


def cmd_sync(args: argparse.Namespace) -> int:
    """Run one reconciliation."""
    config = _load(args.mode)
    if config is None:
        return 2
    result = execute_run(config)
    if result is None:
        return 1
    logger.info("Sync results: %s", result.summary(), extra={"run_id": result.run_id})
    return 0


def cmd_scheduler(args: argparse.Namespace) -> int:
    """Start the APScheduler-based sync loop."""
    from scripts.keysync.scheduler import start_scheduler

    config = _load(args.mode)
    if config is None:
        return 2
    start_scheduler(config)
    return 0


def cmd_inspect_snapshot(args: argparse.Namespace) -> int:
    """Show the accounts and key counts held in a snapshot file."""
    try:
        keys = load_snapshot(args.path)
    except (OSError, ValueError) as exc:
        logger.error("Cannot read snapshot %s: %s", args.path, exc)
        return 1

    if not keys:
        print("Snapshot holds no accounts.")
        return 0

    fmt = "{:<40}  {:>5}  {}"
    print(fmt.format("ACCOUNT", "KEYS", "FIRST KEY"))
    print("-" * 100)
    for account in sorted(keys):
        lines = keys[account]
        first = lines[0][:48] if lines else ""
        print(fmt.format(account, len(lines), first))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keysync",
        description="Reconcile SSH authorized_keys for running workloads against GitHub",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    mode_kwargs = dict(
        choices=[m.value for m in RunMode],
        default=None,
        help="Terminal stage (default: KEYSYNC_MODE or files)",
    )

    sync_parser = subparsers.add_parser("sync", help="Run one reconciliation")
    sync_parser.add_argument("--mode", "-m", **mode_kwargs)
    sync_parser.set_defaults(func=cmd_sync)

    sched_parser = subparsers.add_parser("scheduler", help="Start scheduled sync loop")
    sched_parser.add_argument("--mode", "-m", **mode_kwargs)
    sched_parser.set_defaults(func=cmd_scheduler)

    inspect_parser = subparsers.add_parser(
        "inspect-snapshot", help="Summarise a key snapshot file"
    )
    inspect_parser.add_argument("path", help="Snapshot JSON path")
    inspect_parser.set_defaults(func=cmd_inspect_snapshot)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main CLI entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    args = build_parser().parse_args(argv)
    sys.exit(args.func(args))
