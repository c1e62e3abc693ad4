# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Volsnap Builder - Functional builder pattern for configuration.

This module provides pure functions for building BackupConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict, Iterable

from volsnap.config import DEFAULT_COMPONENTS, BackupConfig, CompressionScheme
from volsnap.errors import explain_invalid_compression, explain_invalid_retention_days
from volsnap.exceptions import ConfigurationError


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "data_root": Path("./container"),
        "backup_root": Path("./backups"),
        "components": DEFAULT_COMPONENTS,
        "compression": CompressionScheme.GZIP,
        "retention_days": 30,
        "zstd_level": 3,
        "container_name": "lgtm",
        "compose_file": None,
        "compose_command": "docker-compose",
        "settle_seconds": 2.0,
        "controller_timeout_seconds": 120.0,
        "max_workers": 4,
    }


def with_data_root(config: ConfigDict, data_root: Path | str) -> ConfigDict:
    """Set the directory holding one data directory per component."""
    return {**config, "data_root": Path(data_root)}


def with_backup_root(config: ConfigDict, backup_root: Path | str) -> ConfigDict:
    """Set the directory receiving archives and manifests."""
    return {**config, "backup_root": Path(backup_root)}


def with_components(config: ConfigDict, components: Iterable[str]) -> ConfigDict:
    """
    Replace the set of known components.

    Args:
        config: Current configuration dictionary
        components: Component names, e.g. ["grafana", "loki"]

    Returns:
        New configuration dictionary with components set
    """
    return {**config, "components": tuple(components)}


def add_component(config: ConfigDict, component: str) -> ConfigDict:
    """Add one component to the known set."""
    if component in config["components"]:
        return config
    return {**config, "components": (*config["components"], component)}


def use_compression(
    config: ConfigDict,
    scheme: CompressionScheme | str,
    zstd_level: int | None = None,
) -> ConfigDict:
    """
    Set the compression scheme for new archives.

    Args:
        config: Current configuration dictionary
        scheme: 'gzip', 'zstd' or 'none'
        zstd_level: zstd level (1-22), only meaningful for zstd

    Returns:
        New configuration dictionary with compression set
    """
    if isinstance(scheme, str):
        try:
            scheme = CompressionScheme(scheme.lower())
        except ValueError as exc:
            raise ConfigurationError(explain_invalid_compression(scheme)) from exc

    updated = {**config, "compression": scheme}
    if zstd_level is not None:
        updated["zstd_level"] = zstd_level
    return updated


def retain_backups_for(config: ConfigDict, days: int) -> ConfigDict:
    """
    Set the retention period in days.

    Archives and manifests older than this are removed by the cleanup.
    """
    if isinstance(days, bool) or not isinstance(days, int) or days < 0:
        raise ConfigurationError(explain_invalid_retention_days(days))
    return {**config, "retention_days": days}


def managed_by_compose(
    config: ConfigDict,
    compose_file: Path | str,
    container_name: str | None = None,
    compose_command: str | None = None,
) -> ConfigDict:
    """
    Stop and start the service group through a compose file.

    Args:
        config: Current configuration dictionary
        compose_file: Path to docker-compose.yml
        container_name: Container whose presence means "running"
        compose_command: e.g. "docker-compose" or "docker compose"
    """
    updated = {**config, "compose_file": Path(compose_file)}
    if container_name:
        updated["container_name"] = container_name
    if compose_command:
        updated["compose_command"] = compose_command
    return updated


def build_config(config_dict: ConfigDict) -> BackupConfig:
    """
    Validate and build an immutable BackupConfig from a configuration dictionary.

    Raises:
        ConfigurationError: If validation fails
    """
    return BackupConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

        config = pipe(
            lambda c: with_data_root(c, "/srv/lgtm/container"),
            lambda c: use_compression(c, "zstd"),
        )(create_empty_config())
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_from_steps(*steps: BuilderFunc) -> BackupConfig:
    """
    Build config by applying a sequence of builder functions.

    Example:
        config = build_from_steps(
            lambda c: with_backup_root(c, "/srv/backups"),
            lambda c: retain_backups_for(c, 14),
        )
    """
    return build_config(pipe(*steps)(create_empty_config()))


def create_config(
    *,
    data_root: str | Path | None = None,
    backup_root: str | Path | None = None,
    components: Iterable[str] | None = None,
    compression: str | CompressionScheme | None = None,
    retention_days: int | None = None,
    compose_file: str | Path | None = None,
    container_name: str | None = None,
    compose_command: str | None = None,
    **kwargs: Any,
) -> BackupConfig:
    """
    Create volsnap configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.

    Args:
        data_root: Directory holding one subdirectory per component
                   (default: "./container")
        backup_root: Directory receiving archives and manifests
                     (default: "./backups")
        components: Known component names (default: grafana, prometheus,
                    loki, tempo, pyroscope)
        compression: "gzip", "zstd" or "none" (default: "gzip")
        retention_days: Cleanup age threshold in days (default: 30)
        compose_file: Compose file used to stop/start the services
        container_name: Container that indicates the group is running
                        (default: "lgtm")
        compose_command: Compose executable (default: "docker-compose")
        **kwargs: Any other BackupConfig field (zstd_level, settle_seconds,
                  controller_timeout_seconds, max_workers)

    Returns:
        Validated, immutable BackupConfig instance

    Example:
        config = create_config(
            data_root="/srv/lgtm/container",
            backup_root="/srv/lgtm/backups",
            compression="zstd",
            compose_file="/srv/lgtm/docker-compose.yml",
        )
    """
    config_dict = create_empty_config()

    if data_root:
        config_dict = with_data_root(config_dict, data_root)

    if backup_root:
        config_dict = with_backup_root(config_dict, backup_root)

    if components:
        config_dict = with_components(config_dict, components)

    if compression:
        config_dict = use_compression(config_dict, compression)

    if retention_days is not None:
        config_dict = retain_backups_for(config_dict, retention_days)

    if compose_file:
        config_dict = managed_by_compose(
            config_dict, compose_file, container_name, compose_command
        )
    else:
        if container_name:
            config_dict["container_name"] = container_name
        if compose_command:
            config_dict["compose_command"] = compose_command

    unknown = [key for key in kwargs if key not in config_dict]
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration option(s): {', '.join(sorted(unknown))}",
            details={"unknown": sorted(unknown)},
        )
    config_dict.update(kwargs)

    return build_config(config_dict)
