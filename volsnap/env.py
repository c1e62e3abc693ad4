# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

These helpers are small wrappers around create_config(). They read a set
of well-known VOLSNAP_* environment variables so that cron jobs and
containers can configure backups without command-line flags.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Mapping

from volsnap.builder import create_config
from volsnap.config import BackupConfig
from volsnap.errors import explain_invalid_number_env, explain_invalid_retention_days
from volsnap.exceptions import ConfigurationError


def _parse_retention_days(value: str | None) -> int | None:
    if not value:
        return None
    try:
        days = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_retention_days(value)) from exc
    if days < 0:
        raise ConfigurationError(explain_invalid_retention_days(value))
    return days


def _parse_components(value: str | None) -> List[str]:
    if not value:
        return []
    return [c.strip() for c in value.split(",") if c.strip()]


def _parse_number(name: str, value: str | None, cast=float) -> Any:
    if not value:
        return None
    try:
        number = cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_number_env(name, value)) from exc
    if number < 0:
        raise ConfigurationError(explain_invalid_number_env(name, value))
    return number


def create_config_from_env(
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> BackupConfig:
    """
    Create a BackupConfig from environment variables.

    Explicit keyword overrides (e.g. from command-line flags) win over the
    environment; None overrides are ignored.

    Optional environment variables:
        - VOLSNAP_DATA_ROOT: Directory holding component data (default: ./container)
        - VOLSNAP_BACKUP_DIR: Backup directory (default: ./backups)
        - VOLSNAP_COMPONENTS: Comma-separated component names
        - VOLSNAP_COMPRESSION: 'gzip' | 'zstd' | 'none' (default: gzip)
        - VOLSNAP_RETENTION_DAYS: Non-negative integer (default: 30)
        - VOLSNAP_CONTAINER_NAME: Container that indicates "running" (default: lgtm)
        - VOLSNAP_COMPOSE_FILE: Compose file for stop/start
        - VOLSNAP_COMPOSE_COMMAND: Compose executable (default: docker-compose)
        - VOLSNAP_SETTLE_SECONDS: Wait after stopping services (default: 2)
        - VOLSNAP_MAX_WORKERS: Components packed concurrently (default: 4)
    """
    env = os.environ if environ is None else environ

    values: Dict[str, Any] = {
        "data_root": env.get("VOLSNAP_DATA_ROOT"),
        "backup_root": env.get("VOLSNAP_BACKUP_DIR"),
        "components": _parse_components(env.get("VOLSNAP_COMPONENTS")),
        "compression": env.get("VOLSNAP_COMPRESSION"),
        "retention_days": _parse_retention_days(env.get("VOLSNAP_RETENTION_DAYS")),
        "container_name": env.get("VOLSNAP_CONTAINER_NAME"),
        "compose_file": env.get("VOLSNAP_COMPOSE_FILE"),
        "compose_command": env.get("VOLSNAP_COMPOSE_COMMAND"),
    }

    settle_seconds = _parse_number(
        "VOLSNAP_SETTLE_SECONDS", env.get("VOLSNAP_SETTLE_SECONDS")
    )
    if settle_seconds is not None:
        values["settle_seconds"] = settle_seconds

    max_workers = _parse_number(
        "VOLSNAP_MAX_WORKERS", env.get("VOLSNAP_MAX_WORKERS"), cast=int
    )
    if max_workers is not None:
        values["max_workers"] = max_workers

    values.update({key: value for key, value in overrides.items() if value is not None})

    return create_config(**values)
