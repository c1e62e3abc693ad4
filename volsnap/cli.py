# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command-line interface.

One invocation performs one action: backup (the default), --list,
--restore FILE or --clean. Reports go to stdout, structured log events to
stderr.

Exit codes:
    0  success, including backups where individual components failed
    1  unrecoverable error or declined restore confirmation
    2  usage error
"""

import argparse
import asyncio
import sys
from typing import Callable, List, TextIO

import structlog

from volsnap.archive.codec import directory_size
from volsnap.archive.sizes import format_size
from volsnap.backup.manager import (
    CleanResult,
    RunSummary,
    find_expired_files,
    list_backups,
    prune_old_backups,
)
from volsnap.backup.restore import RestoreResult, resolve_restore_target, restore_archive
from volsnap.config import BackupConfig, CompressionScheme, ConsistencyMode
from volsnap.core import BackupResult, run_backup
from volsnap.env import create_config_from_env
from volsnap.exceptions import NotConfirmedError, VolsnapError
from volsnap.lifecycle import ContainerController, LifecycleCoordinator
from volsnap.log import LOG_FORMATS, configure_logging

logger = structlog.get_logger()

EXAMPLES = """\
examples:
  volsnap                                 # Full backup (services paused)
  volsnap --quick                         # Backup without stopping services
  volsnap --component loki                # Backup only Loki
  volsnap --list                          # Show existing backups
  volsnap --restore grafana_20261018_020000.tar.gz
  volsnap --clean                         # Remove backups older than 30 days
  volsnap --clean --retention 7 --dry-run # Preview a 7-day cleanup

environment:
  VOLSNAP_DATA_ROOT, VOLSNAP_BACKUP_DIR, VOLSNAP_COMPONENTS,
  VOLSNAP_COMPRESSION, VOLSNAP_RETENTION_DAYS, VOLSNAP_CONTAINER_NAME,
  VOLSNAP_COMPOSE_FILE, VOLSNAP_COMPOSE_COMMAND, VOLSNAP_SETTLE_SECONDS,
  VOLSNAP_MAX_WORKERS (flags take precedence)
"""


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a whole number of days, got {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="volsnap",
        description="Backup, restore and retention for observability stack data volumes.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "--list", "-l", action="store_true", help="List existing backups"
    )
    actions.add_argument(
        "--restore", "-r", metavar="FILE", help="Restore a component from a backup file"
    )
    actions.add_argument(
        "--clean",
        action="store_true",
        help="Remove backups older than the retention period",
    )

    backup = parser.add_argument_group("backup options")
    backup.add_argument(
        "--quick",
        "-q",
        "--no-stop",
        dest="quick",
        action="store_true",
        help="Do not stop services during backup (faster, less consistent)",
    )
    backup.add_argument(
        "--component",
        "-c",
        dest="components",
        action="append",
        metavar="NAME",
        help="Back up only this component (repeatable)",
    )
    backup.add_argument(
        "--compression",
        choices=[scheme.value for scheme in CompressionScheme],
        help="Compression for new archives (default: gzip)",
    )

    parser.add_argument(
        "--yes", "-y", action="store_true", help="Restore without asking for confirmation"
    )
    parser.add_argument(
        "--retention",
        type=_non_negative_int,
        metavar="DAYS",
        help="Retention period in days (default: 30)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="With --clean, only show what would be removed",
    )
    parser.add_argument("--data-root", metavar="DIR", help="Component data directory")
    parser.add_argument("--backup-dir", metavar="DIR", help="Backup directory")
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default="console",
        help="Log output format (default: console)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    return parser


def load_config(args: argparse.Namespace) -> BackupConfig:
    """Configuration from the environment, overridden by flags."""
    return create_config_from_env(
        data_root=args.data_root,
        backup_root=args.backup_dir,
        compression=args.compression,
        retention_days=args.retention,
    )


def ask_confirmation(prompt: str) -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


# ============================================================================
# Reports
# ============================================================================

def print_backup_result(result: BackupResult, out: TextIO) -> None:
    print(f"Backup {result.run_id} ({result.mode})", file=out)
    for archive in result.archives:
        print(f"  {archive.path.name}: {format_size(archive.size_bytes)}", file=out)
    for failure in result.failures:
        print(f"  FAILED {failure.component}: {failure.error}", file=out)
    print("", file=out)
    if result.manifest_path:
        print(f"Manifest: {result.manifest_path}", file=out)
    print(f"Total backup storage: {format_size(result.storage_bytes)}", file=out)


def print_runs(runs: List[RunSummary], config: BackupConfig, out: TextIO) -> None:
    print("LGTM Backups", file=out)
    print("============", file=out)
    print(f"Location: {config.backup_root}", file=out)
    print("", file=out)

    if not runs:
        print("No backups found.", file=out)
        return

    print("Available backups:", file=out)
    print("", file=out)

    for run in runs:
        marker = "  [expired]" if run.expired else ""
        print(
            f"  {run.run_id} ({run.timestamp:%Y-%m-%d %H:%M:%S}){marker}",
            file=out,
        )
        for archive in run.archives:
            size = format_size(archive.size_bytes) if archive.size_bytes is not None else "?"
            missing = "" if archive.present else ", missing"
            print(f"    - {archive.name} ({size}{missing})", file=out)
        if run.failed:
            print(f"    failed: {' '.join(run.failed)}", file=out)
        print("", file=out)

    print(f"Total backup storage: {format_size(directory_size(config.backup_root))}", file=out)

    expired = find_expired_files(config.backup_root, config.retention_days)
    if expired:
        print("", file=out)
        print(
            f"{len(expired)} files older than {config.retention_days} days "
            "(run --clean to remove)",
            file=out,
        )


def print_restore_result(result: RestoreResult, out: TextIO) -> None:
    print(f"Restored {result.component} from {result.archive_path.name}", file=out)
    if result.safety_archive:
        print(f"Pre-restore backup: {result.safety_archive}", file=out)
    elif result.safety_error:
        print(f"Pre-restore backup FAILED: {result.safety_error}", file=out)


def print_clean_result(result: CleanResult, out: TextIO) -> None:
    verb = "Would remove" if result.dry_run else "Removing"
    for name in result.removed:
        print(f"  {verb}: {name}", file=out)

    if not result.removed_count:
        print("No old backups to clean.", file=out)
    elif result.dry_run:
        print(
            f"Would remove {result.removed_count} files, "
            f"freeing {format_size(result.bytes_freed)}",
            file=out,
        )
    else:
        print(
            f"Removed {result.removed_count} files, freed {format_size(result.bytes_freed)}",
            file=out,
        )
    print(f"Remaining backup storage: {format_size(result.remaining_bytes)}", file=out)


# ============================================================================
# Commands
# ============================================================================

async def run_command(
    args: argparse.Namespace,
    config: BackupConfig,
    coordinator: LifecycleCoordinator,
    confirm: Callable[[str], bool] = ask_confirmation,
    out: TextIO | None = None,
) -> int:
    """Run the action selected by args and return the exit code."""
    out = out or sys.stdout

    if args.list:
        runs = await list_backups(config)
        print_runs(runs, config, out)
        return 0

    if args.clean:
        result = await prune_old_backups(config, dry_run=args.dry_run)
        print_clean_result(result, out)
        return 0

    if args.restore:
        plan = resolve_restore_target(config, args.restore)
        prompt = (
            f"This will OVERWRITE existing data in: {plan.target_dir}\n"
            "Continue? [y/N] "
        )
        # input() blocks, keep it off the event loop
        loop = asyncio.get_running_loop()
        confirmed = args.yes or await loop.run_in_executor(None, confirm, prompt)
        if not confirmed:
            print("Aborted.", file=out)
            logger.warning("restore_declined", archive=plan.archive_path.name)
            return 1

        result = await restore_archive(config, coordinator, plan.archive_path, confirmed=True)
        print_restore_result(result, out)
        return 0

    mode = ConsistencyMode.QUICK if args.quick else ConsistencyMode.CONSISTENT
    result = await run_backup(config, coordinator, components=args.components, mode=mode)
    print_backup_result(result, out)
    return 0


def main(
    argv: List[str] | None = None,
    controller: ContainerController | None = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging("debug" if args.verbose else "info", args.log_format)

    try:
        config = load_config(args)
        coordinator = LifecycleCoordinator.from_config(config, controller)
        return asyncio.run(run_command(args, config, coordinator))
    except NotConfirmedError as e:
        print(f"Aborted: {e.message}", file=sys.stderr)
        return 1
    except VolsnapError as e:
        logger.error("command_failed", error_type=type(e).__name__, error=str(e))
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
