# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Volsnap Archive Codec - Directory <-> tarball conversion.

This module packs one component directory into a single tar artifact and
unpacks it again. Three schemes are supported:

1. gzip-compressed tar (.tar.gz)
2. zstd-compressed tar (.tar.zst)
3. uncompressed tar (.tar)

The tarball stores the directory under its own name, so unpacking into
the original parent directory reproduces the layout exactly. Artifacts
are written to a hidden temporary sibling and renamed into place, so a
final artifact path either holds a complete archive or nothing at all.

Tar and compression work is blocking; the async entry points run it in
a thread pool.
"""

import asyncio
import os
import stat
import tarfile
import zlib
from concurrent.futures import Executor
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, List

import structlog

from volsnap.archive.naming import partial_path, scheme_for_path
from volsnap.config import CompressionScheme
from volsnap.exceptions import (
    ArchiveIOError,
    ArchiveNotFoundError,
    BackupError,
    CompressionUnavailableError,
    CorruptArchiveError,
    SourceMissingError,
)

logger = structlog.get_logger()

# Default compression settings
DEFAULT_ZSTD_LEVEL = 3  # Roughly the speed/ratio trade-off of the zstd CLI


@dataclass(frozen=True)
class PackedArtifact:
    """A finished archive on disk."""

    path: Path
    scheme: CompressionScheme
    size_bytes: int
    source_bytes: int
    member_count: int


@dataclass
class ArchiveContents:
    """Listing of an archive, read without extracting it."""

    path: Path
    members: List[str] = field(default_factory=list)
    top_level: List[str] = field(default_factory=list)
    file_count: int = 0
    total_bytes: int = 0


def _load_zstd():
    """Import zstandard, reporting a missing install as an unavailable scheme."""
    try:
        import zstandard
    except ImportError as e:
        raise CompressionUnavailableError(
            "zstd compression requires the 'zstandard' package",
            details={"scheme": CompressionScheme.ZSTD.value},
        ) from e
    return zstandard


def _coerce_scheme(scheme: CompressionScheme | str) -> CompressionScheme:
    try:
        return CompressionScheme(scheme)
    except ValueError as e:
        raise CompressionUnavailableError(
            f"Unsupported compression scheme: {scheme}",
            details={"scheme": str(scheme)},
        ) from e


# ============================================================================
# Size introspection
# ============================================================================

def directory_size(path: Path) -> int:
    """
    Apparent size of a directory tree: the sum of its regular file sizes.

    Symlinks are not followed. A missing directory has size 0.
    """
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                st = os.lstat(os.path.join(root, name))
            except FileNotFoundError:
                # Removed while walking a live data directory
                continue
            if stat.S_ISREG(st.st_mode):
                total += st.st_size
    return total


def artifact_size(path: Path) -> int:
    """Size of an archive or manifest file in bytes."""
    return Path(path).stat().st_size


# ============================================================================
# Streams
# ============================================================================

@contextmanager
def _tar_writer(
    raw: BinaryIO,
    scheme: CompressionScheme,
    zstd_level: int,
) -> Iterator[tarfile.TarFile]:
    if scheme is CompressionScheme.ZSTD:
        zstd = _load_zstd()
        cctx = zstd.ZstdCompressor(level=zstd_level)
        with cctx.stream_writer(raw, closefd=False) as compressed:
            with tarfile.open(fileobj=compressed, mode="w|") as tar:
                yield tar
    else:
        mode = "w|gz" if scheme is CompressionScheme.GZIP else "w|"
        with tarfile.open(fileobj=raw, mode=mode) as tar:
            yield tar


@contextmanager
def _tar_reader(path: Path, scheme: CompressionScheme) -> Iterator[tarfile.TarFile]:
    with open(path, "rb") as raw:
        if scheme is CompressionScheme.ZSTD:
            zstd = _load_zstd()
            dctx = zstd.ZstdDecompressor()
            with dctx.stream_reader(raw, closefd=False) as decompressed:
                with tarfile.open(fileobj=decompressed, mode="r|") as tar:
                    yield tar
        else:
            mode = "r|gz" if scheme is CompressionScheme.GZIP else "r|"
            with tarfile.open(fileobj=raw, mode=mode) as tar:
                yield tar


def _reader_scheme(path: Path) -> CompressionScheme:
    scheme = scheme_for_path(path)
    if scheme is None:
        raise CorruptArchiveError(
            f"Unrecognised archive extension: {path.name}",
            details={"artifact_path": str(path)},
        )
    return scheme


# ============================================================================
# Pack
# ============================================================================

def pack_sync(
    source_dir: Path,
    dest_path: Path,
    scheme: CompressionScheme | str,
    zstd_level: int = DEFAULT_ZSTD_LEVEL,
) -> PackedArtifact:
    """
    Pack a directory into a single archive (blocking).

    Args:
        source_dir: Directory to archive; stored under its own name
        dest_path: Final archive path
        scheme: Compression scheme
        zstd_level: zstd level, ignored for other schemes

    Returns:
        PackedArtifact describing the finished archive

    Raises:
        SourceMissingError: source_dir does not exist
        CompressionUnavailableError: the scheme cannot be used
        ArchiveIOError: writing the archive failed
    """
    source_dir = Path(source_dir)
    dest_path = Path(dest_path)

    if not source_dir.is_dir():
        raise SourceMissingError(
            f"Component directory not found: {source_dir}",
            details={"component": source_dir.name, "source_dir": str(source_dir)},
        )

    scheme = _coerce_scheme(scheme)
    if scheme is CompressionScheme.ZSTD:
        _load_zstd()

    details = {
        "component": source_dir.name,
        "source_dir": str(source_dir),
        "artifact_path": str(dest_path),
    }

    try:
        dest_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ArchiveIOError(
            f"Cannot create archive directory for {source_dir.name}: {e}",
            details=details,
        ) from e

    temp_path = partial_path(dest_path)
    member_count = 0

    try:
        source_bytes = directory_size(source_dir)

        with open(temp_path, "wb") as raw:
            with _tar_writer(raw, scheme, zstd_level) as tar:
                tar.add(source_dir, arcname=source_dir.name)
                member_count = len(tar.getmembers())

        # Rename to final path (atomic on most filesystems)
        os.replace(temp_path, dest_path)

    except BackupError:
        raise
    except Exception as e:
        raise ArchiveIOError(
            f"Failed to pack {source_dir.name}: {e}",
            details=details,
        ) from e
    finally:
        temp_path.unlink(missing_ok=True)

    artifact = PackedArtifact(
        path=dest_path,
        scheme=scheme,
        size_bytes=artifact_size(dest_path),
        source_bytes=source_bytes,
        member_count=member_count,
    )

    logger.debug(
        "archive_packed",
        artifact_path=str(dest_path),
        scheme=scheme.value,
        source_bytes=source_bytes,
        size_bytes=artifact.size_bytes,
        members=member_count,
    )

    return artifact


async def pack(
    source_dir: Path,
    dest_path: Path,
    scheme: CompressionScheme | str,
    zstd_level: int = DEFAULT_ZSTD_LEVEL,
    executor: Executor | None = None,
) -> PackedArtifact:
    """
    Pack a directory into a single archive.

    Runs in a thread pool because tar and compression are CPU/IO-bound.
    See pack_sync() for arguments and errors.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        executor,
        partial(pack_sync, source_dir, dest_path, scheme, zstd_level),
    )


# ============================================================================
# Inspect / Unpack
# ============================================================================

def _check_member(member: tarfile.TarInfo, artifact_path: Path) -> None:
    """
    Reject members that would land outside the extraction directory.
    """
    name = PurePosixPath(member.name)

    def unsafe(reason: str) -> CorruptArchiveError:
        return CorruptArchiveError(
            f"Unsafe path in archive: {member.name} ({reason})",
            details={"artifact_path": str(artifact_path), "member": member.name},
        )

    if name.is_absolute() or ".." in name.parts:
        raise unsafe("escapes destination")

    if member.ischr() or member.isblk():
        raise unsafe("device file")

    if member.issym():
        target = PurePosixPath(member.linkname)
        if target.is_absolute():
            raise unsafe("absolute symlink")
        depth = len(name.parent.parts)
        for part in target.parts:
            if part == "..":
                depth -= 1
            elif part != ".":
                depth += 1
            if depth < 0:
                raise unsafe("symlink escapes destination")

    if member.islnk():
        target = PurePosixPath(member.linkname)
        if target.is_absolute() or ".." in target.parts:
            raise unsafe("hard link escapes destination")


def inspect_sync(artifact_path: Path) -> ArchiveContents:
    """
    List an archive's members without extracting it (blocking).

    Every member is checked for path safety along the way.

    Raises:
        ArchiveNotFoundError: the archive does not exist
        CorruptArchiveError: the archive is unreadable or unsafe
        ArchiveIOError: reading failed for another reason
    """
    artifact_path = Path(artifact_path)

    if not artifact_path.is_file():
        raise ArchiveNotFoundError(
            f"Backup file not found: {artifact_path}",
            details={"artifact_path": str(artifact_path)},
        )

    scheme = _reader_scheme(artifact_path)
    contents = ArchiveContents(path=artifact_path)
    top_level = set()

    try:
        with _tar_reader(artifact_path, scheme) as tar:
            for member in tar:
                _check_member(member, artifact_path)
                contents.members.append(member.name)
                top_level.add(PurePosixPath(member.name).parts[0])
                if member.isfile():
                    contents.file_count += 1
                    contents.total_bytes += member.size
    except (CorruptArchiveError, CompressionUnavailableError):
        raise
    except (tarfile.TarError, EOFError, zlib.error) as e:
        raise CorruptArchiveError(
            f"Archive is corrupt: {artifact_path.name}: {e}",
            details={"artifact_path": str(artifact_path)},
        ) from e
    except OSError as e:
        raise ArchiveIOError(
            f"Failed to read archive {artifact_path.name}: {e}",
            details={"artifact_path": str(artifact_path)},
        ) from e
    except Exception as e:
        # zstandard.ZstdError and other decoder failures
        raise CorruptArchiveError(
            f"Archive is corrupt: {artifact_path.name}: {e}",
            details={"artifact_path": str(artifact_path)},
        ) from e

    if not contents.members:
        raise CorruptArchiveError(
            f"Archive is empty: {artifact_path.name}",
            details={"artifact_path": str(artifact_path)},
        )

    contents.top_level = sorted(top_level)
    return contents


def unpack_sync(artifact_path: Path, dest_parent: Path) -> ArchiveContents:
    """
    Extract an archive into a parent directory (blocking).

    The archive is fully inspected first, so nothing is written when it
    turns out to be corrupt or unsafe.

    Args:
        artifact_path: Archive to extract
        dest_parent: Directory receiving the archive's top-level entries

    Returns:
        ArchiveContents of the extracted archive

    Raises:
        ArchiveNotFoundError, CorruptArchiveError, ArchiveIOError
    """
    artifact_path = Path(artifact_path)
    dest_parent = Path(dest_parent)

    contents = inspect_sync(artifact_path)
    scheme = _reader_scheme(artifact_path)

    try:
        dest_parent.mkdir(parents=True, exist_ok=True)
        with _tar_reader(artifact_path, scheme) as tar:
            # Members were checked by inspect_sync(); keep modes as archived
            tar.extractall(dest_parent, filter="fully_trusted")
    except (tarfile.TarError, EOFError, zlib.error) as e:
        raise CorruptArchiveError(
            f"Failed to extract {artifact_path.name}: {e}",
            details={"artifact_path": str(artifact_path), "dest": str(dest_parent)},
        ) from e
    except OSError as e:
        raise ArchiveIOError(
            f"Failed to extract {artifact_path.name}: {e}",
            details={"artifact_path": str(artifact_path), "dest": str(dest_parent)},
        ) from e

    logger.debug(
        "archive_unpacked",
        artifact_path=str(artifact_path),
        dest=str(dest_parent),
        files=contents.file_count,
    )

    return contents


async def inspect(artifact_path: Path, executor: Executor | None = None) -> ArchiveContents:
    """Async wrapper for inspect_sync()."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, inspect_sync, artifact_path)


async def unpack(
    artifact_path: Path,
    dest_parent: Path,
    executor: Executor | None = None,
) -> ArchiveContents:
    """Async wrapper for unpack_sync()."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, unpack_sync, artifact_path, dest_parent)
