# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Volsnap Backup Manager - Retention, listing and storage statistics.

The backup root is flat: component archives, pre-restore safety archives
and run manifests all live side by side. Only files matching those naming
conventions are ever considered here; anything else in the directory
(including in-progress ``.partial`` temporaries) is left alone.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import List

import structlog

from volsnap.archive.codec import directory_size
from volsnap.archive.naming import is_archive_file, is_manifest_file, parse_archive_name
from volsnap.config import BackupConfig
from volsnap.exceptions import ArchiveIOError, ManifestError
from volsnap.manifest import list_manifest_paths, read_manifest

logger = structlog.get_logger()


@dataclass
class CleanResult:
    """Result of a retention sweep."""

    removed_count: int
    bytes_freed: int
    removed: List[str]
    remaining_bytes: int
    max_age_days: int
    dry_run: bool


@dataclass
class ArchiveInfo:
    """An archive listed by a run manifest."""

    name: str
    size_bytes: int | None
    present: bool
    modified_at: datetime | None = None


@dataclass
class RunSummary:
    """One backup run, as recorded by its manifest."""

    run_id: str
    timestamp: datetime
    components: List[str]
    archives: List[ArchiveInfo] = field(default_factory=list)
    source_sizes: dict = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)
    mode: str | None = None
    expired: bool = False
    manifest_path: Path | None = None


def _cutoff(max_age_days: int, now: datetime | None) -> float:
    return ((now or datetime.now()) - timedelta(days=max_age_days)).timestamp()


def _backup_files(backup_root: Path) -> List[Path]:
    if not backup_root.is_dir():
        return []

    return sorted(
        path
        for path in backup_root.iterdir()
        if path.is_file() and (is_archive_file(path) or is_manifest_file(path))
    )


def find_expired_files(
    backup_root: Path,
    max_age_days: int,
    now: datetime | None = None,
) -> List[Path]:
    """
    Archives and manifests whose last modification is older than
    max_age_days.
    """
    cutoff = _cutoff(max_age_days, now)
    expired = []

    for path in _backup_files(backup_root):
        try:
            if path.stat().st_mtime < cutoff:
                expired.append(path)
        except FileNotFoundError:
            continue

    return expired


async def prune_old_backups(
    config: BackupConfig,
    max_age_days: int | None = None,
    dry_run: bool = False,
    now: datetime | None = None,
) -> CleanResult:
    """
    Delete archives and manifests older than max_age_days.

    Running it twice in a row deletes nothing the second time.

    Args:
        config: Backup configuration
        max_age_days: Age threshold (default: config.retention_days)
        dry_run: If True, only report what would be deleted
        now: Reference time (default: now)

    Returns:
        CleanResult with what was (or would be) removed

    Raises:
        ArchiveIOError: A file could not be deleted
    """
    if max_age_days is None:
        max_age_days = config.retention_days

    logger.info(
        "backup_pruning_started",
        backup_root=str(config.backup_root),
        max_age_days=max_age_days,
        dry_run=dry_run,
    )

    removed: List[str] = []
    bytes_freed = 0

    for path in find_expired_files(config.backup_root, max_age_days, now):
        try:
            file_size = path.stat().st_size
            if not dry_run:
                path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            raise ArchiveIOError(
                f"Failed to delete {path.name}: {e}",
                details={"path": str(path)},
            ) from e

        removed.append(path.name)
        bytes_freed += file_size

        logger.debug(
            "backup_file_pruned" if not dry_run else "backup_file_would_prune",
            path=str(path),
            size=file_size,
        )

    result = CleanResult(
        removed_count=len(removed),
        bytes_freed=bytes_freed,
        removed=removed,
        remaining_bytes=directory_size(config.backup_root),
        max_age_days=max_age_days,
        dry_run=dry_run,
    )

    logger.info(
        "backup_pruning_complete",
        files_deleted=result.removed_count,
        bytes_freed=bytes_freed,
        remaining_bytes=result.remaining_bytes,
        dry_run=dry_run,
    )

    return result


async def list_backups(
    config: BackupConfig,
    now: datetime | None = None,
) -> List[RunSummary]:
    """
    List backup runs, most recent first.

    Runs are read from their manifests. A run is flagged as expired when
    its manifest or any of its archives is older than the retention
    period; this is advisory, nothing is deleted.
    """
    cutoff = _cutoff(config.retention_days, now)
    runs: List[RunSummary] = []

    for manifest_path in list_manifest_paths(config.backup_root):
        try:
            manifest = await read_manifest(manifest_path)
        except ManifestError as e:
            logger.warning(
                "manifest_unreadable",
                path=str(manifest_path),
                error=str(e),
            )
            continue

        mtimes = []
        try:
            mtimes.append(manifest_path.stat().st_mtime)
        except FileNotFoundError:
            pass

        archives = []
        for entry in manifest.files:
            archive_path = config.backup_root / entry.name
            try:
                stat = archive_path.stat()
            except FileNotFoundError:
                archives.append(
                    ArchiveInfo(name=entry.name, size_bytes=entry.size_bytes, present=False)
                )
                continue

            mtimes.append(stat.st_mtime)
            archives.append(
                ArchiveInfo(
                    name=entry.name,
                    size_bytes=stat.st_size,
                    present=True,
                    modified_at=datetime.fromtimestamp(stat.st_mtime),
                )
            )

        runs.append(
            RunSummary(
                run_id=manifest.run_id,
                timestamp=manifest.created_at,
                components=manifest.components,
                archives=archives,
                source_sizes=manifest.source_sizes,
                failed=manifest.failed,
                mode=manifest.mode,
                expired=any(mtime < cutoff for mtime in mtimes),
                manifest_path=manifest_path,
            )
        )

    return runs


async def get_backup_stats(config: BackupConfig, now: datetime | None = None) -> dict:
    """
    Get statistics about the backup root.

    Returns:
        Dictionary with storage statistics
    """
    files = _backup_files(config.backup_root)
    archives = [path for path in files if is_archive_file(path)]
    manifests = [path for path in files if is_manifest_file(path)]
    safety = [path for path in archives if parse_archive_name(path.name).pre_restore]
    expired = find_expired_files(config.backup_root, config.retention_days, now)

    run_ids = sorted(parse_archive_name(path.name).run_id for path in archives)

    return {
        "backup_root": str(config.backup_root),
        "total_bytes": directory_size(config.backup_root),
        "archive_count": len(archives),
        "pre_restore_count": len(safety),
        "manifest_count": len(manifests),
        "expired_count": len(expired),
        "retention_days": config.retention_days,
        "oldest_run": run_ids[0] if run_ids else None,
        "newest_run": run_ids[-1] if run_ids else None,
    }
