# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Volsnap Core - Backup orchestration.

This module runs a backup: it optionally pauses the service group,
archives every selected component, records the run in a manifest and
resumes the services.
"""

import asyncio
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List

import structlog

from volsnap.archive.codec import directory_size, pack
from volsnap.archive.naming import archive_filename, make_run_id
from volsnap.config import BackupConfig, ConsistencyMode
from volsnap.errors import explain_unknown_components
from volsnap.exceptions import ArchiveIOError, ConfigurationError
from volsnap.lifecycle import LifecycleCoordinator
from volsnap.manifest import build_manifest, write_manifest

logger = structlog.get_logger()


@dataclass
class ArchiveDescriptor:
    """One archive produced by a backup run."""

    component: str
    run_id: str
    scheme: str
    path: Path
    size_bytes: int
    source_bytes: int


@dataclass
class ComponentFailure:
    """A component that could not be archived."""

    component: str
    error: str
    error_type: str


@dataclass
class BackupResult:
    """Result of a backup run."""

    run_id: str
    mode: str
    components: List[str]
    archives: List[ArchiveDescriptor]
    failures: List[ComponentFailure]
    manifest_path: Path | None
    total_archive_bytes: int
    storage_bytes: int
    stopped_services: bool
    duration_seconds: float = 0.0
    succeeded: List[str] = field(default_factory=list)

    @property
    def failed(self) -> List[str]:
        return [failure.component for failure in self.failures]


def resolve_components(
    config: BackupConfig,
    components: Iterable[str] | None = None,
) -> List[str]:
    """
    Resolve a component selection.

    An empty or missing selection means every configured component.
    Duplicates are dropped and the result is sorted by name.

    Raises:
        ConfigurationError: If a selected component is not configured
    """
    selected = sorted(set(components or ()))
    if not selected:
        return sorted(config.components)

    unknown = [name for name in selected if name not in config.components]
    if unknown:
        raise ConfigurationError(
            explain_unknown_components(unknown, config.components),
            details={"unknown": unknown},
        )

    return selected


async def _archive_component(
    config: BackupConfig,
    run_id: str,
    component: str,
    executor: Executor,
    semaphore: asyncio.Semaphore,
) -> ArchiveDescriptor | ComponentFailure:
    """Archive one component, turning any failure into a ComponentFailure."""
    source_dir = config.source_dir(component)
    dest_path = config.backup_root / archive_filename(
        component, run_id, config.compression
    )

    logger.info(
        "component_backup_started",
        component=component,
        source_dir=str(source_dir),
    )

    try:
        async with semaphore:
            artifact = await pack(
                source_dir,
                dest_path,
                config.compression,
                zstd_level=config.zstd_level,
                executor=executor,
            )
    except Exception as e:
        logger.error(
            "component_backup_failed",
            component=component,
            error_type=type(e).__name__,
            error=str(e),
        )
        return ComponentFailure(
            component=component,
            error=str(e),
            error_type=type(e).__name__,
        )

    logger.info(
        "component_packed",
        component=component,
        archive=artifact.path.name,
        source_bytes=artifact.source_bytes,
        size_bytes=artifact.size_bytes,
    )

    return ArchiveDescriptor(
        component=component,
        run_id=run_id,
        scheme=artifact.scheme.value,
        path=artifact.path,
        size_bytes=artifact.size_bytes,
        source_bytes=artifact.source_bytes,
    )


async def run_backup(
    config: BackupConfig,
    coordinator: LifecycleCoordinator,
    components: Iterable[str] | None = None,
    mode: ConsistencyMode | str = ConsistencyMode.CONSISTENT,
    now: datetime | None = None,
) -> BackupResult:
    """
    Run a complete backup.

    This is the main entry point for backups. It:
    1. Resolves the component selection (empty means all)
    2. Stops the service group if running (consistent mode only)
    3. Archives every component concurrently; one failure does not stop
       the others
    4. Writes the run manifest listing the components that succeeded
    5. Restarts the service group if step 2 stopped it, whatever happened
       in step 3

    Args:
        config: Backup configuration
        coordinator: Lifecycle coordinator for the service group
        components: Components to back up (default: all configured)
        mode: CONSISTENT pauses services, QUICK does not
        now: Run start time (default: current local time)

    Returns:
        BackupResult with per-component outcomes

    Raises:
        ConfigurationError: Unknown component selected
        ControllerUnavailableError: Services could not be stopped or
            restarted in consistent mode
    """
    mode = ConsistencyMode(mode)
    selected = resolve_components(config, components)
    started_at = now or datetime.now()
    run_id = make_run_id(started_at)
    start_clock = time.monotonic()

    logger.info(
        "backup_run_started",
        run_id=run_id,
        mode=mode.value,
        components=selected,
        compression=config.compression.value,
    )

    stopped_services = False
    if mode is ConsistencyMode.CONSISTENT:
        if await coordinator.is_running():
            await coordinator.stop()
            stopped_services = True
    else:
        logger.warning(
            "backup_without_pause",
            run_id=run_id,
            message="Backing up with services running (may be inconsistent)",
        )

    try:
        try:
            config.backup_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveIOError(
                f"Cannot create backup directory: {e}",
                details={"backup_root": str(config.backup_root)},
            ) from e

        semaphore = asyncio.Semaphore(config.max_workers)

        with ThreadPoolExecutor(
            max_workers=config.max_workers,
            thread_name_prefix="volsnap-pack",
        ) as executor:
            outcomes = await asyncio.gather(
                *(
                    _archive_component(
                        config, run_id, component, executor, semaphore
                    )
                    for component in selected
                )
            )

        archives = [o for o in outcomes if isinstance(o, ArchiveDescriptor)]
        failures = [o for o in outcomes if isinstance(o, ComponentFailure)]

        manifest = build_manifest(
            run_id=run_id,
            created_at=started_at,
            archives=[(a.component, a.path) for a in archives],
            source_sizes={a.component: a.source_bytes for a in archives},
            mode=mode.value,
            failed=[f.component for f in failures],
        )
        manifest_path = await write_manifest(config.backup_root, manifest)

    except Exception as e:
        # A failing restart below would otherwise hide this error
        logger.error(
            "backup_run_failed",
            run_id=run_id,
            error_type=type(e).__name__,
            error=str(e),
            services_stopped=stopped_services,
        )
        raise

    finally:
        if stopped_services:
            await coordinator.start()

    duration = time.monotonic() - start_clock

    result = BackupResult(
        run_id=run_id,
        mode=mode.value,
        components=selected,
        archives=archives,
        failures=failures,
        manifest_path=manifest_path,
        total_archive_bytes=sum(a.size_bytes for a in archives),
        storage_bytes=directory_size(config.backup_root),
        stopped_services=stopped_services,
        duration_seconds=duration,
        succeeded=[a.component for a in archives],
    )

    logger.info(
        "backup_run_completed",
        run_id=run_id,
        succeeded=result.succeeded,
        failed=result.failed,
        archive_bytes=result.total_archive_bytes,
        storage_bytes=result.storage_bytes,
        duration=duration,
    )

    return result
