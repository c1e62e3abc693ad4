# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Volsnap Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation and passed
explicitly into every orchestrator, so tests can run each one against a
synthetic configuration.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Tuple
import re


class CompressionScheme(str, Enum):
    """Compression applied to component tarballs."""

    GZIP = "gzip"  # .tar.gz
    ZSTD = "zstd"  # .tar.zst
    NONE = "none"  # .tar


class ConsistencyMode(str, Enum):
    """How a backup run coordinates with the running services."""

    CONSISTENT = "consistent"  # Stop services, snapshot, start again
    QUICK = "quick"  # Snapshot while services keep writing


DEFAULT_COMPONENTS: Tuple[str, ...] = (
    "grafana",
    "prometheus",
    "loki",
    "tempo",
    "pyroscope",
)

_COMPONENT_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _validate_component_name(name: str) -> bool:
    """
    Validate a component name.

    Component names become both a directory name under the data root and
    the prefix of archive file names, so they must be a single path segment
    and must not contain anything that would confuse the name parser.
    """
    if not isinstance(name, str) or not name:
        return False
    if not _COMPONENT_NAME_RE.match(name):
        return False
    if name in (".", ".."):
        return False
    return True


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for backup, restore and retention runs.

    This configuration is frozen after creation to prevent accidental
    modifications while an operation is in flight.
    """

    # Parent directory holding one data directory per component
    data_root: Path = field(default_factory=lambda: Path("./container"))

    # Flat directory receiving archives and manifests
    backup_root: Path = field(default_factory=lambda: Path("./backups"))

    # Known stateful components
    components: Tuple[str, ...] = DEFAULT_COMPONENTS

    # Compression for new archives (process-wide, not per call)
    compression: CompressionScheme = CompressionScheme.GZIP

    # Age in days after which archives and manifests are eligible for cleanup
    retention_days: int = 30

    # zstd compression level (1-22)
    zstd_level: int = 3

    # Container name used to decide whether the service group is running
    container_name: str = "lgtm"

    # Compose file driving stop/start of the service group
    compose_file: Path | None = None

    # Compose executable, e.g. "docker-compose" or "docker compose"
    compose_command: str = "docker-compose"

    # Fixed wait after stopping services so in-flight writes can land
    settle_seconds: float = 2.0

    # Upper bound for a single controller command
    controller_timeout_seconds: float = 120.0

    # Maximum components packed concurrently
    max_workers: int = 4

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        # Normalize types without breaking immutability
        object.__setattr__(self, "data_root", Path(self.data_root))
        object.__setattr__(self, "backup_root", Path(self.backup_root))
        if self.compose_file is not None:
            object.__setattr__(self, "compose_file", Path(self.compose_file))
        object.__setattr__(self, "components", tuple(self.components))

        if not isinstance(self.compression, CompressionScheme):
            try:
                object.__setattr__(
                    self, "compression", CompressionScheme(str(self.compression).lower())
                )
            except ValueError:
                errors.append(f"Invalid compression scheme: {self.compression}")

        # Validate components
        if not self.components:
            errors.append("At least one component must be configured")
        for name in self.components:
            if not _validate_component_name(name):
                errors.append(f"Invalid component name: {name!r}")
        if len(set(self.components)) != len(self.components):
            errors.append("Component names must be unique")

        if self.retention_days < 0:
            errors.append(f"retention_days must be >= 0, got {self.retention_days}")

        if not 1 <= self.zstd_level <= 22:
            errors.append(f"zstd_level must be 1-22, got {self.zstd_level}")

        if self.settle_seconds < 0:
            errors.append(f"settle_seconds must be >= 0, got {self.settle_seconds}")

        if self.controller_timeout_seconds <= 0:
            errors.append(
                "controller_timeout_seconds must be > 0, "
                f"got {self.controller_timeout_seconds}"
            )

        if self.max_workers < 1:
            errors.append(f"max_workers must be >= 1, got {self.max_workers}")

        if not self.container_name:
            errors.append("container_name must not be empty")

        if not self.compose_command.strip():
            errors.append("compose_command must not be empty")

        if self.data_root.resolve() == self.backup_root.resolve():
            errors.append("backup_root must differ from data_root")

        # Raise all errors at once
        if errors:
            from volsnap.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def source_dir(self, component: str) -> Path:
        """Return the data directory of a component."""
        return self.data_root / component

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return BackupConfig(**current)
