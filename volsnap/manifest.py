# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Volsnap Manifest - Human-readable record of each backup run.

Exactly one manifest is written per completed run, after every archive of
that run has been attempted. Manifests are plain text so that operators
can read them without tooling:

    LGTM Backup Manifest
    ====================
    Timestamp: 20261018_020000
    Date: Sun Oct 18 02:00:00 2026
    Mode: consistent
    Components: grafana loki
    Failed: tempo

    Files:
      grafana_20261018_020000.tar.gz: 1.3K (1234 bytes)
      loki_20261018_020000.tar.gz: 12M (12345678 bytes)

    Source sizes:
      grafana: 10K (10240 bytes)
      loki: 48M (50331648 bytes)

The "Failed:" line only appears when a component failed. The reader also
accepts manifests whose sizes carry no "(N bytes)" suffix.
"""

import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import aiofiles
import structlog

from volsnap.archive.codec import artifact_size
from volsnap.archive.naming import (
    manifest_filename,
    parse_manifest_name,
    parse_run_id,
    partial_path,
)
from volsnap.archive.sizes import format_size, parse_size
from volsnap.exceptions import ManifestError, ManifestNotFoundError

logger = structlog.get_logger()

MANIFEST_TITLE = "LGTM Backup Manifest"
DATE_FORMAT = "%a %b %d %H:%M:%S %Y"

_HEADER_RE = re.compile(r"^(?P<key>[A-Za-z ]+):\s*(?P<value>.*)$")
_ENTRY_RE = re.compile(
    r"^\s+(?P<name>[^:]+):\s*(?P<human>\S+)(?:\s+\((?P<bytes>\d+) bytes\))?\s*$"
)


@dataclass
class ManifestFile:
    """One archive listed in a manifest."""

    name: str
    size_bytes: int | None


@dataclass
class Manifest:
    """Parsed or to-be-written manifest of one backup run."""

    run_id: str
    created_at: datetime
    components: List[str]
    files: List[ManifestFile] = field(default_factory=list)
    source_sizes: Dict[str, int | None] = field(default_factory=dict)
    mode: str | None = None
    failed: List[str] = field(default_factory=list)
    path: Path | None = None


def build_manifest(
    run_id: str,
    created_at: datetime,
    archives: Sequence[Tuple[str, Path]],
    source_sizes: Dict[str, int],
    mode: str | None = None,
    failed: Sequence[str] = (),
) -> Manifest:
    """
    Assemble the manifest of a finished run.

    Archive sizes are read from disk, so every listed archive must exist.

    Args:
        run_id: Run identifier (YYYYMMDD_HHMMSS)
        created_at: Run start time
        archives: (component, archive path) pairs of successful components
        source_sizes: Source directory size per successful component
        mode: Consistency mode of the run
        failed: Components that could not be archived
    """
    ordered = sorted(archives, key=lambda item: item[0])

    return Manifest(
        run_id=run_id,
        created_at=created_at,
        components=[component for component, _ in ordered],
        files=[
            ManifestFile(name=path.name, size_bytes=artifact_size(path))
            for _, path in ordered
        ],
        source_sizes={
            component: source_sizes.get(component) for component, _ in ordered
        },
        mode=mode,
        failed=sorted(failed),
    )


def _size_text(size_bytes: int | None) -> str:
    if size_bytes is None:
        return "?"
    return f"{format_size(size_bytes)} ({size_bytes} bytes)"


def render_manifest(manifest: Manifest) -> str:
    """Render a manifest as text."""
    lines = [
        MANIFEST_TITLE,
        "=" * len(MANIFEST_TITLE),
        f"Timestamp: {manifest.run_id}",
        f"Date: {manifest.created_at.strftime(DATE_FORMAT)}",
    ]
    if manifest.mode:
        lines.append(f"Mode: {manifest.mode}")
    lines.append(f"Components: {' '.join(manifest.components)}")
    if manifest.failed:
        lines.append(f"Failed: {' '.join(manifest.failed)}")

    lines += ["", "Files:"]
    for entry in manifest.files:
        lines.append(f"  {entry.name}: {_size_text(entry.size_bytes)}")

    lines += ["", "Source sizes:"]
    for component, size in manifest.source_sizes.items():
        lines.append(f"  {component}: {_size_text(size)}")

    return "\n".join(lines) + "\n"


def parse_manifest(text: str, path: Path | None = None) -> Manifest:
    """
    Parse manifest text.

    Args:
        text: Manifest content
        path: Where the text was read from; its name supplies the run id
              when the Timestamp line is missing

    Raises:
        ManifestError: If no run id can be determined
    """
    headers: Dict[str, str] = {}
    sections: Dict[str, List[Tuple[str, int | None]]] = {"files": [], "sources": []}
    section: str | None = None

    for line in text.splitlines():
        if not line.strip() or set(line.strip()) == {"="}:
            continue

        if line[0].isspace():
            match = _ENTRY_RE.match(line)
            if section and match:
                size = match.group("bytes")
                sections[section].append(
                    (
                        match.group("name").strip(),
                        int(size) if size else parse_size(match.group("human")),
                    )
                )
            continue

        if line.rstrip() == "Files:":
            section = "files"
            continue
        if line.rstrip() == "Source sizes:":
            section = "sources"
            continue

        match = _HEADER_RE.match(line)
        if match:
            headers[match.group("key").strip().lower()] = match.group("value").strip()
            section = None

    run_id = headers.get("timestamp") or (
        parse_manifest_name(path.name) if path is not None else None
    )
    if not run_id:
        raise ManifestError(
            "Manifest has no run timestamp",
            details={"path": str(path) if path else None},
        )

    try:
        created_at = parse_run_id(run_id)
    except ValueError as e:
        raise ManifestError(
            f"Invalid manifest timestamp: {run_id}",
            details={"path": str(path) if path else None},
        ) from e

    return Manifest(
        run_id=run_id,
        created_at=created_at,
        components=headers.get("components", "").split(),
        files=[ManifestFile(name, size) for name, size in sections["files"]],
        source_sizes=dict(sections["sources"]),
        mode=headers.get("mode") or None,
        failed=headers.get("failed", "").split(),
        path=path,
    )


async def write_manifest(backup_root: Path, manifest: Manifest) -> Path:
    """
    Write a manifest to the backup root.

    The file is written atomically (write to temp, then rename) so that a
    manifest either exists completely or not at all.

    Returns:
        Path to the written manifest
    """
    backup_root.mkdir(parents=True, exist_ok=True)
    manifest_path = backup_root / manifest_filename(manifest.run_id)
    temp_path = partial_path(manifest_path)

    try:
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(render_manifest(manifest))

        os.replace(temp_path, manifest_path)
    except OSError as e:
        raise ManifestError(
            f"Failed to write manifest: {e}",
            details={"path": str(manifest_path), "run_id": manifest.run_id},
        ) from e
    finally:
        temp_path.unlink(missing_ok=True)

    manifest.path = manifest_path

    logger.info(
        "manifest_written",
        path=str(manifest_path),
        run_id=manifest.run_id,
        components=manifest.components,
        failed=manifest.failed,
    )

    return manifest_path


async def read_manifest(manifest_path: Path) -> Manifest:
    """
    Read and parse a manifest file.

    Raises:
        ManifestNotFoundError: If the file does not exist
        ManifestError: If the file cannot be read or parsed
    """
    try:
        async with aiofiles.open(manifest_path, "r", encoding="utf-8") as f:
            text = await f.read()
    except FileNotFoundError:
        raise ManifestNotFoundError(
            f"Manifest not found: {manifest_path}",
            details={"path": str(manifest_path)},
        )
    except OSError as e:
        raise ManifestError(
            f"Failed to read manifest: {e}",
            details={"path": str(manifest_path)},
        ) from e

    return parse_manifest(text, Path(manifest_path))


def list_manifest_paths(backup_root: Path) -> List[Path]:
    """
    List manifest files in the backup root, most recent run first.
    """
    if not backup_root.is_dir():
        return []

    manifests = [
        path
        for path in backup_root.iterdir()
        if path.is_file() and parse_manifest_name(path.name)
    ]
    return sorted(manifests, key=lambda p: parse_manifest_name(p.name), reverse=True)
