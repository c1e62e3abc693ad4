# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Volsnap - Volume snapshots for a containerized observability stack.

Backs up the data directories of Grafana, Prometheus, Loki, Tempo and
Pyroscope as one compressed tarball per component, optionally pausing the
services for consistency, with confirmation-gated restore (pre-restore
safety snapshot included) and age-based retention. Package name: volsnap.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from volsnap.builder import create_config
from volsnap.config import BackupConfig, CompressionScheme, ConsistencyMode

# Core functions
from volsnap.core import run_backup, BackupResult
from volsnap.backup import (
    restore_archive,
    prune_old_backups,
    list_backups,
    get_backup_stats,
)
from volsnap.lifecycle import ComposeController, LifecycleCoordinator

# Environment-based configuration
from volsnap.env import create_config_from_env

__all__ = [
    # Version
    "__version__",
    # Configuration creation (primary user-facing APIs)
    "create_config",
    "create_config_from_env",
    "BackupConfig",
    "CompressionScheme",
    "ConsistencyMode",
    # Orchestration functions
    "run_backup",
    "BackupResult",
    "restore_archive",
    "prune_old_backups",
    "list_backups",
    "get_backup_stats",
    # Service lifecycle
    "ComposeController",
    "LifecycleCoordinator",
]
