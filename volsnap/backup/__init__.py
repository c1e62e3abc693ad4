# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Retention, listing and restore operations.
"""

from volsnap.backup.manager import (
    prune_old_backups,
    list_backups,
    get_backup_stats,
    find_expired_files,
    CleanResult,
    RunSummary,
    ArchiveInfo,
)

from volsnap.backup.restore import (
    restore_archive,
    resolve_restore_target,
    RestorePlan,
    RestoreResult,
)

__all__ = [
    # Manager
    "prune_old_backups",
    "list_backups",
    "get_backup_stats",
    "find_expired_files",
    "CleanResult",
    "RunSummary",
    "ArchiveInfo",
    # Restore
    "restore_archive",
    "resolve_restore_target",
    "RestorePlan",
    "RestoreResult",
]
