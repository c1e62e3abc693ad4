# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Codec - Component tarballs, their names and sizes.
"""

from volsnap.archive.codec import (
    pack,
    pack_sync,
    unpack,
    unpack_sync,
    inspect,
    inspect_sync,
    directory_size,
    artifact_size,
    PackedArtifact,
    ArchiveContents,
)

from volsnap.archive.naming import (
    ArchiveName,
    archive_filename,
    manifest_filename,
    make_run_id,
    parse_archive_name,
    parse_manifest_name,
    parse_run_id,
    scheme_for_path,
)

from volsnap.archive.sizes import format_size, parse_size

__all__ = [
    # Codec
    "pack",
    "pack_sync",
    "unpack",
    "unpack_sync",
    "inspect",
    "inspect_sync",
    "directory_size",
    "artifact_size",
    # Types
    "PackedArtifact",
    "ArchiveContents",
    "ArchiveName",
    # Naming
    "archive_filename",
    "manifest_filename",
    "make_run_id",
    "parse_archive_name",
    "parse_manifest_name",
    "parse_run_id",
    "scheme_for_path",
    # Sizes
    "format_size",
    "parse_size",
]
