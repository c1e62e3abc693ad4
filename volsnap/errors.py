# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for volsnap.

These helpers centralize wording for common configuration errors so that
the CLI, the environment loader and the HTTP integration present
consistent, actionable messages.
"""

from typing import Iterable


def explain_invalid_retention_days(value: object) -> str:
    """
    Explain that the retention period is invalid.
    """

    return (
        f"Invalid retention days value: {value!r}. "
        "It must be a non-negative integer number of days "
        "(VOLSNAP_RETENTION_DAYS or --retention)."
    )


def explain_invalid_compression(value: object) -> str:
    """
    Explain that the compression scheme is not one we know.
    """

    return (
        f"Invalid compression scheme: {value!r}. "
        "Expected one of: 'gzip', 'zstd', or 'none'."
    )


def explain_invalid_number_env(name: str, value: str | None) -> str:
    """
    Explain that a numeric environment variable could not be parsed.
    """

    return f"Invalid {name} value: {value!r}. It must be a positive number."


def explain_unknown_components(unknown: Iterable[str], known: Iterable[str]) -> str:
    """
    Explain that the caller selected components that are not configured.
    """

    return (
        f"Unknown component(s): {', '.join(sorted(unknown))}. "
        f"Configured components are: {', '.join(known)}."
    )


def explain_missing_admin_api_key() -> str:
    """
    Explain that the admin API key is missing for the HTTP integration.
    """

    return (
        "VOLSNAP_ADMIN_API_KEY environment variable not set. "
        "Set it to enable the backup admin endpoints."
    )


def explain_unparseable_archive_name(name: str) -> str:
    """
    Explain that a file name does not follow the archive naming convention.
    """

    return (
        f"Cannot derive a component from archive name {name!r}. "
        "Expected <component>_<YYYYMMDD_HHMMSS>.tar[.gz|.zst]."
    )
