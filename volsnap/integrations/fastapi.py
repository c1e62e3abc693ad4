# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Volsnap FastAPI Integration - Admin endpoints for FastAPI applications.

This module exposes the backup, listing, restore and cleanup operations
as protected admin endpoints:
- Bearer-token authentication (VOLSNAP_ADMIN_API_KEY)
- Domain errors mapped onto HTTP status codes
- Health check of the backup root and the container controller
"""

import os
from dataclasses import asdict
from datetime import datetime, UTC
from typing import List

import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from volsnap.backup.manager import get_backup_stats, list_backups, prune_old_backups
from volsnap.backup.restore import restore_archive
from volsnap.config import BackupConfig, ConsistencyMode
from volsnap.core import run_backup
from volsnap.errors import explain_missing_admin_api_key
from volsnap.exceptions import (
    ArchiveNotFoundError,
    ConfigurationError,
    ControllerUnavailableError,
    CorruptArchiveError,
    ManifestNotFoundError,
    NotConfirmedError,
    RestoreError,
    VolsnapError,
)
from volsnap.lifecycle import ContainerController, LifecycleCoordinator

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)

# Most specific first
_STATUS_BY_ERROR = (
    (NotConfirmedError, 409),
    (ArchiveNotFoundError, 404),
    (ManifestNotFoundError, 404),
    (CorruptArchiveError, 422),
    (ControllerUnavailableError, 503),
    (ConfigurationError, 400),
    (RestoreError, 400),
)


class BackupRequest(BaseModel):
    components: List[str] = []
    mode: ConsistencyMode = ConsistencyMode.CONSISTENT


class RestoreRequest(BaseModel):
    archive: str
    confirmed: bool = False


class CleanRequest(BaseModel):
    max_age_days: int | None = None
    dry_run: bool = False


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the VOLSNAP_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("VOLSNAP_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail=explain_missing_admin_api_key(),
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


def error_status(error: VolsnapError) -> int:
    """HTTP status code for a domain error."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def _http_error(error: VolsnapError) -> HTTPException:
    status = error_status(error)
    logger.warning(
        "admin_request_failed",
        status=status,
        error_type=type(error).__name__,
        error=error.message,
    )
    return HTTPException(
        status_code=status,
        detail={
            "error": type(error).__name__,
            "message": error.message,
            "details": error.details,
        },
    )


def register_backup_routes(
    app: FastAPI,
    config: BackupConfig,
    coordinator: LifecycleCoordinator,
    prefix: str = "/admin/backups",
) -> None:
    """
    Register backup admin endpoints on a FastAPI app.

    All endpoints require Bearer token authentication.

    Args:
        app: FastAPI application
        config: Backup configuration
        coordinator: Lifecycle coordinator for the service group
        prefix: URL prefix for endpoints (default: /admin/backups)
    """

    @app.post(f"{prefix}/run", dependencies=[Depends(verify_api_key)])
    async def trigger_backup(request: BackupRequest | None = None) -> dict:
        """
        Run a backup.

        Component failures are reported in the result, not as an error
        status.
        """
        request = request or BackupRequest()
        try:
            result = await run_backup(
                config,
                coordinator,
                components=request.components,
                mode=request.mode,
            )
        except VolsnapError as e:
            raise _http_error(e)
        return {**asdict(result), "failed": result.failed}

    @app.get(f"{prefix}/runs", dependencies=[Depends(verify_api_key)])
    async def list_backup_runs() -> list:
        """
        List backup runs, most recent first.
        """
        runs = await list_backups(config)
        return [asdict(run) for run in runs]

    @app.post(f"{prefix}/restore", dependencies=[Depends(verify_api_key)])
    async def restore_component(request: RestoreRequest) -> dict:
        """
        Restore one component from an archive.

        The request must set confirmed=true; the current data of the
        component is replaced.
        """
        try:
            result = await restore_archive(
                config,
                coordinator,
                request.archive,
                confirmed=request.confirmed,
            )
        except VolsnapError as e:
            raise _http_error(e)
        return asdict(result)

    @app.post(f"{prefix}/clean", dependencies=[Depends(verify_api_key)])
    async def clean_old_backups(request: CleanRequest | None = None) -> dict:
        """
        Delete archives and manifests past the retention period.
        """
        request = request or CleanRequest()
        if request.max_age_days is not None and request.max_age_days < 0:
            raise HTTPException(status_code=400, detail="max_age_days must be >= 0")
        try:
            result = await prune_old_backups(
                config,
                max_age_days=request.max_age_days,
                dry_run=request.dry_run,
            )
        except VolsnapError as e:
            raise _http_error(e)
        return asdict(result)

    @app.get(f"{prefix}/stats", dependencies=[Depends(verify_api_key)])
    async def get_storage_statistics() -> dict:
        """
        Get backup storage statistics.
        """
        return await get_backup_stats(config)

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Verifies the backup root and the container controller.
        """
        backup_root_ok = config.backup_root.is_dir() and os.access(
            config.backup_root, os.W_OK
        )

        controller_ok = False
        controller_error = None
        services_running = None
        try:
            services_running = await coordinator.is_running()
            controller_ok = True
        except ControllerUnavailableError as e:
            controller_error = e.message

        status = "healthy"
        if not backup_root_ok or not controller_ok:
            status = "degraded"
        if not backup_root_ok and not controller_ok:
            status = "unhealthy"

        return {
            "status": status,
            "backup_root_writable": backup_root_ok,
            "controller_reachable": controller_ok,
            "controller_error": controller_error,
            "services_running": services_running,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get(f"{prefix}/config", dependencies=[Depends(verify_api_key)])
    async def get_config() -> dict:
        """
        Get current configuration.
        """
        return {
            "data_root": str(config.data_root),
            "backup_root": str(config.backup_root),
            "components": list(config.components),
            "compression": config.compression.value,
            "retention_days": config.retention_days,
            "container_name": config.container_name,
            "compose_file": str(config.compose_file) if config.compose_file else None,
            "settle_seconds": config.settle_seconds,
            "max_workers": config.max_workers,
        }


def setup_backup_plugin(
    app: FastAPI,
    config: BackupConfig,
    controller: ContainerController | None = None,
    prefix: str = "/admin/backups",
) -> LifecycleCoordinator:
    """
    Set up the backup admin endpoints on an application.

    This is the main entry point for integrating volsnap with a FastAPI
    app. The coordinator is stored on app.state for reuse by the host
    application.

    Args:
        app: FastAPI application
        config: Backup configuration
        controller: Container controller (default: docker / compose CLI)
        prefix: URL prefix for admin endpoints

    Returns:
        The lifecycle coordinator used by the endpoints
    """
    coordinator = LifecycleCoordinator.from_config(config, controller)

    app.state.volsnap_config = config
    app.state.volsnap_coordinator = coordinator

    register_backup_routes(app, config, coordinator, prefix)

    logger.info(
        "backup_plugin_registered",
        prefix=prefix,
        components=list(config.components),
        backup_root=str(config.backup_root),
    )

    return coordinator
