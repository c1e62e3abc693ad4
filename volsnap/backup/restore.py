# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Volsnap Restore Manager - Replace a component's data with an archive.

Restore is destructive, so it is gated on explicit confirmation and, when
the component currently has data, snapshots that data into a pre-restore
safety archive before anything is removed.
"""

import asyncio
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

import structlog

from volsnap.archive.codec import inspect, pack, unpack
from volsnap.archive.naming import archive_filename, make_run_id, parse_archive_name
from volsnap.config import BackupConfig
from volsnap.errors import explain_unknown_components, explain_unparseable_archive_name
from volsnap.exceptions import (
    ArchiveIOError,
    ArchiveNotFoundError,
    BackupError,
    CorruptArchiveError,
    NotConfirmedError,
    RestoreError,
)
from volsnap.lifecycle import LifecycleCoordinator

logger = structlog.get_logger()


@dataclass
class RestorePlan:
    """What a restore would do, resolved from an archive reference."""

    archive_path: Path
    component: str
    target_dir: Path
    run_id: str
    pre_restore: bool = False


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    component: str
    archive_path: Path
    target_dir: Path
    safety_archive: Path | None
    stopped_services: bool
    restarted: bool
    files_restored: int = 0
    bytes_restored: int = 0
    safety_error: str | None = None
    duration_seconds: float = 0.0


def resolve_restore_target(config: BackupConfig, archive: Path | str) -> RestorePlan:
    """
    Resolve an archive reference to a restore plan.

    The reference may be a path (absolute or relative to the working
    directory) or a bare file name inside the backup root. The component
    is derived from the file name.

    Raises:
        ArchiveNotFoundError: No such archive file
        RestoreError: The name does not identify a configured component
    """
    reference = Path(archive)
    candidates = [reference]
    if not reference.is_absolute():
        candidates.append(config.backup_root / reference)

    archive_path = next((path for path in candidates if path.is_file()), None)
    if archive_path is None:
        raise ArchiveNotFoundError(
            f"Backup file not found: {archive}",
            details={"archive": str(archive), "tried": [str(p) for p in candidates]},
        )

    parsed = parse_archive_name(archive_path.name)
    if parsed is None:
        raise RestoreError(
            explain_unparseable_archive_name(archive_path.name),
            details={"archive_path": str(archive_path)},
        )

    if parsed.component not in config.components:
        raise RestoreError(
            explain_unknown_components([parsed.component], config.components),
            details={"archive_path": str(archive_path), "component": parsed.component},
        )

    return RestorePlan(
        archive_path=archive_path,
        component=parsed.component,
        target_dir=config.source_dir(parsed.component),
        run_id=parsed.run_id,
        pre_restore=parsed.pre_restore,
    )


async def _snapshot_before_restore(
    config: BackupConfig,
    plan: RestorePlan,
    moment: datetime,
) -> Path:
    """
    Pack the current component data into a new safety archive.

    An existing safety archive is never replaced: when the name for this
    second is taken (a second restore within the same second, or undoing a
    restore with its own safety archive), the timestamp moves forward until
    the name is free.
    """
    while True:
        safety_path = config.backup_root / archive_filename(
            plan.component,
            make_run_id(moment),
            config.compression,
            pre_restore=True,
        )
        taken = safety_path.exists() or (
            safety_path.resolve() == plan.archive_path.resolve()
        )
        if not taken:
            break
        moment += timedelta(seconds=1)

    artifact = await pack(
        plan.target_dir,
        safety_path,
        config.compression,
        zstd_level=config.zstd_level,
    )

    logger.info(
        "pre_restore_snapshot_written",
        component=plan.component,
        archive=artifact.path.name,
        size_bytes=artifact.size_bytes,
    )

    return artifact.path


def _swap_into_place(staged: Path, target: Path) -> None:
    """Remove the current component directory and move the staged one in."""
    if target.is_symlink() or target.is_file():
        target.unlink()
    elif target.exists():
        shutil.rmtree(target)

    os.replace(staged, target)


async def _extract_and_swap(plan: RestorePlan) -> tuple:
    """
    Unpack into a hidden staging directory next to the target, then swap.

    The current data is only removed once the archive has been fully
    extracted.
    """
    data_root = plan.target_dir.parent
    loop = asyncio.get_running_loop()

    try:
        data_root.mkdir(parents=True, exist_ok=True)
        staging = Path(
            tempfile.mkdtemp(prefix=f".{plan.component}.restore-", dir=data_root)
        )
    except OSError as e:
        raise ArchiveIOError(
            f"Cannot prepare restore of {plan.component}: {e}",
            details={"component": plan.component, "data_root": str(data_root)},
        ) from e

    try:
        contents = await unpack(plan.archive_path, staging)

        try:
            await loop.run_in_executor(
                None, _swap_into_place, staging / plan.component, plan.target_dir
            )
        except OSError as e:
            raise ArchiveIOError(
                f"Failed to replace {plan.target_dir}: {e}",
                details={
                    "component": plan.component,
                    "target_dir": str(plan.target_dir),
                },
            ) from e
    finally:
        await loop.run_in_executor(
            None, lambda: shutil.rmtree(staging, ignore_errors=True)
        )

    return contents.file_count, contents.total_bytes


async def restore_archive(
    config: BackupConfig,
    coordinator: LifecycleCoordinator,
    archive: Path | str,
    confirmed: bool = False,
    now: datetime | None = None,
) -> RestoreResult:
    """
    Restore one component from an archive.

    Steps:
    1. Refuse unless confirmed (nothing is touched)
    2. Resolve the archive and derive its component
    3. Inspect the archive; its single top-level entry must be the component
    4. Stop the service group if it is running
    5. Snapshot the current component data (best effort)
    6. Replace the component directory with the archive contents
    7. Restart the service group if step 4 stopped it

    Args:
        config: Backup configuration
        coordinator: Lifecycle coordinator for the service group
        archive: Archive path or file name inside the backup root
        confirmed: Must be True; callers obtain this from the operator
        now: Time used to name the safety archive (default: now)

    Returns:
        RestoreResult with operation details

    Raises:
        NotConfirmedError: confirmed is False
        ArchiveNotFoundError: No such archive
        CorruptArchiveError: Archive is unreadable, unsafe or holds
            something other than the component
        ControllerUnavailableError: Services could not be stopped or
            restarted
        ArchiveIOError: The component directory could not be replaced
    """
    if not confirmed:
        raise NotConfirmedError(
            f"Restore of {archive} requires confirmation",
            details={"archive": str(archive)},
        )

    start_clock = time.monotonic()
    plan = resolve_restore_target(config, archive)

    logger.info(
        "restore_started",
        component=plan.component,
        archive=plan.archive_path.name,
        target_dir=str(plan.target_dir),
    )

    contents = await inspect(plan.archive_path)
    if contents.top_level != [plan.component]:
        raise CorruptArchiveError(
            f"Archive {plan.archive_path.name} does not contain "
            f"component {plan.component}",
            details={
                "archive_path": str(plan.archive_path),
                "component": plan.component,
                "top_level": contents.top_level,
            },
        )

    stopped_services = False
    if await coordinator.is_running():
        await coordinator.stop()
        stopped_services = True

    safety_archive = None
    safety_error = None

    try:
        if plan.target_dir.exists():
            try:
                safety_archive = await _snapshot_before_restore(
                    config, plan, now or datetime.now()
                )
            except BackupError as e:
                safety_error = str(e)
                logger.warning(
                    "pre_restore_snapshot_failed",
                    component=plan.component,
                    error=str(e),
                )

        files_restored, bytes_restored = await _extract_and_swap(plan)

    except Exception as e:
        # A failing restart below would otherwise hide this error
        logger.error(
            "restore_failed",
            component=plan.component,
            archive=plan.archive_path.name,
            error_type=type(e).__name__,
            error=str(e),
            services_stopped=stopped_services,
        )
        raise

    finally:
        if stopped_services:
            await coordinator.start()

    duration = time.monotonic() - start_clock

    logger.info(
        "restore_completed",
        component=plan.component,
        archive=plan.archive_path.name,
        safety_archive=safety_archive.name if safety_archive else None,
        files=files_restored,
        duration=duration,
    )

    return RestoreResult(
        component=plan.component,
        archive_path=plan.archive_path,
        target_dir=plan.target_dir,
        safety_archive=safety_archive,
        stopped_services=stopped_services,
        restarted=stopped_services,
        files_restored=files_restored,
        bytes_restored=bytes_restored,
        safety_error=safety_error,
        duration_seconds=duration,
    )
