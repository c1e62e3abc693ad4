# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Naming - File name conventions of the backup root.

The backup root is a flat directory. Existing tooling and operators rely
on these names, so they are reproduced exactly:

    <component>_<YYYYMMDD_HHMMSS>.tar.gz      gzip archive
    <component>_<YYYYMMDD_HHMMSS>.tar.zst     zstd archive
    <component>_<YYYYMMDD_HHMMSS>.tar         uncompressed archive
    <component>_pre_restore_<YYYYMMDD_HHMMSS>.<ext>   safety archive
    manifest_<YYYYMMDD_HHMMSS>.txt            run manifest
"""

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from volsnap.config import CompressionScheme

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
PRE_RESTORE_MARKER = "_pre_restore"
PARTIAL_SUFFIX = ".partial"

EXTENSIONS = {
    CompressionScheme.GZIP: ".tar.gz",
    CompressionScheme.ZSTD: ".tar.zst",
    CompressionScheme.NONE: ".tar",
}

_ARCHIVE_RE = re.compile(
    r"^(?P<component>.+?)(?P<pre_restore>_pre_restore)?"
    r"_(?P<run_id>\d{8}_\d{6})(?P<ext>\.tar(?:\.gz|\.zst)?)$"
)
_MANIFEST_RE = re.compile(r"^manifest_(?P<run_id>\d{8}_\d{6})\.txt$")


@dataclass(frozen=True)
class ArchiveName:
    """Parsed components of an archive file name."""

    component: str
    run_id: str
    scheme: CompressionScheme
    pre_restore: bool = False


def make_run_id(moment: datetime) -> str:
    """Format a run identifier (second resolution)."""
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_run_id(run_id: str) -> datetime:
    """Parse a run identifier back into a naive local datetime."""
    return datetime.strptime(run_id, TIMESTAMP_FORMAT)


def extension_for(scheme: CompressionScheme) -> str:
    return EXTENSIONS[CompressionScheme(scheme)]


def scheme_for_path(path: Path | str) -> CompressionScheme | None:
    """
    Infer the compression scheme from a file name.

    Returns None when the name has none of the known tar extensions.
    """
    name = Path(path).name
    if name.endswith(".tar.gz"):
        return CompressionScheme.GZIP
    if name.endswith(".tar.zst"):
        return CompressionScheme.ZSTD
    if name.endswith(".tar"):
        return CompressionScheme.NONE
    return None


def archive_filename(
    component: str,
    run_id: str,
    scheme: CompressionScheme,
    pre_restore: bool = False,
) -> str:
    marker = PRE_RESTORE_MARKER if pre_restore else ""
    return f"{component}{marker}_{run_id}{extension_for(scheme)}"


def manifest_filename(run_id: str) -> str:
    return f"manifest_{run_id}.txt"


def partial_path(final_path: Path) -> Path:
    """
    Temporary sibling used while an artifact is being written.

    Hidden and suffixed so that nothing enumerating the backup root can
    mistake it for a finished archive or manifest.
    """
    return final_path.with_name(f".{final_path.name}{PARTIAL_SUFFIX}")


def parse_archive_name(name: str) -> ArchiveName | None:
    """
    Parse an archive file name.

    Args:
        name: File name (a path is reduced to its final segment)

    Returns:
        ArchiveName, or None if the name does not follow the convention
    """
    match = _ARCHIVE_RE.match(Path(name).name)
    if not match:
        return None

    return ArchiveName(
        component=match.group("component"),
        run_id=match.group("run_id"),
        scheme=scheme_for_path(name),
        pre_restore=match.group("pre_restore") is not None,
    )


def parse_manifest_name(name: str) -> str | None:
    """Return the run id of a manifest file name, or None."""
    match = _MANIFEST_RE.match(Path(name).name)
    return match.group("run_id") if match else None


def is_archive_file(path: Path) -> bool:
    return parse_archive_name(path.name) is not None


def is_manifest_file(path: Path) -> bool:
    return parse_manifest_name(path.name) is not None
