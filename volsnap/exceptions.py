# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Volsnap Exceptions - Custom exceptions for the volsnap package.
"""


class VolsnapError(Exception):
    """Base exception for all volsnap errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(VolsnapError):
    """Raised when configuration is invalid."""

    pass


class BackupError(VolsnapError):
    """Raised when backup operations fail."""

    pass


class SourceMissingError(BackupError):
    """Raised when a component's data directory does not exist."""

    pass


class CompressionUnavailableError(BackupError):
    """Raised when the configured compression scheme cannot be used."""

    pass


class ArchiveIOError(BackupError):
    """Raised when reading or writing an archive fails at the filesystem level."""

    pass


class RestoreError(VolsnapError):
    """Raised when restore operations fail."""

    pass


class ArchiveNotFoundError(RestoreError):
    """Raised when a requested archive does not exist."""

    pass


class CorruptArchiveError(RestoreError):
    """Raised when an archive cannot be decoded or contains unsafe members."""

    pass


class NotConfirmedError(RestoreError):
    """Raised when a restore is attempted without explicit confirmation."""

    pass


class ManifestError(VolsnapError):
    """Raised when a manifest cannot be read or parsed."""

    pass


class ManifestNotFoundError(ManifestError):
    """Raised when a manifest file does not exist."""

    pass


class ControllerUnavailableError(VolsnapError):
    """Raised when the container controller cannot be queried or commanded."""

    pass
