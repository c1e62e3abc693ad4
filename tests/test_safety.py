# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Critical Safety Tests for volsnap.

These tests verify the core safety guarantees:
1. Round trip - Unpacking an archive reproduces the directory exactly
2. Manifest - Exactly one manifest per run, listing exactly the successes
3. Partial failure - One failing component never blocks the others
4. Service lifecycle - Services stopped for a backup are ALWAYS restarted
5. Restore safety - Current data is snapshotted before it is replaced
6. Confirmation - An unconfirmed restore changes NOTHING
7. Retention - Cleanup is idempotent and only touches backup files

These tests MUST pass before any production deployment.
"""

import io
import json
from datetime import datetime
from pathlib import Path

import pytest

from conftest import FakeController, age_file, snapshot_tree, write_component
from volsnap.archive.codec import pack, unpack
from volsnap.archive.naming import archive_filename, parse_archive_name
from volsnap.backup.manager import prune_old_backups
from volsnap.backup.restore import restore_archive
from volsnap.config import CompressionScheme, ConsistencyMode
from volsnap.core import run_backup
from volsnap.exceptions import (
    ControllerUnavailableError,
    CorruptArchiveError,
    NotConfirmedError,
)
from volsnap.lifecycle import LifecycleCoordinator
from volsnap.log import configure_logging
from volsnap.manifest import list_manifest_paths, read_manifest

RUN_1 = datetime(2026, 10, 18, 2, 0, 0)
RUN_2 = datetime(2026, 10, 18, 3, 0, 0)
RESTORE_AT = datetime(2026, 10, 18, 4, 0, 0)


# ============================================================================
# Test 1: ROUND TRIP
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("scheme", list(CompressionScheme))
async def test_pack_unpack_round_trip_preserves_tree(temp_dir: Path, scheme):
    """
    CRITICAL: pack then unpack must reproduce paths, bytes and permission
    bits exactly, for every compression scheme.
    """
    source = write_component(
        temp_dir / "data",
        "grafana",
        {
            "grafana.db": b"\x00SQLite format 3\x00" + bytes(range(256)) * 8,
            "plugins/panel/module.js": b"export default {};\n",
            "provisioning/datasources/ds.yaml": b"apiVersion: 1\n",
        },
    )
    (source / "grafana.db").chmod(0o640)
    (source / "plugins/panel/module.js").chmod(0o755)
    (source / "empty-dir").mkdir()

    before = snapshot_tree(source)

    dest = temp_dir / "out" / archive_filename("grafana", "20261018_020000", scheme)
    artifact = await pack(source, dest, scheme)
    assert artifact.path.exists()
    assert artifact.source_bytes == sum(len(c) for c, _ in before.values())

    restore_parent = temp_dir / "restored"
    await unpack(artifact.path, restore_parent)

    assert snapshot_tree(restore_parent / "grafana") == before
    assert (restore_parent / "grafana" / "empty-dir").is_dir()


# ============================================================================
# Test 2: ONE MANIFEST PER RUN
# ============================================================================

@pytest.mark.asyncio
async def test_one_manifest_per_run_listing_exactly_the_successes(
    test_config, coordinator, data_root: Path, backup_root: Path
):
    """
    CRITICAL: Every run writes exactly one manifest, and it lists the
    components that were archived and nothing else.
    """
    write_component(data_root, "grafana")
    write_component(data_root, "loki")
    write_component(data_root, "metrics")

    first = await run_backup(test_config, coordinator, now=RUN_1)
    second = await run_backup(
        test_config, coordinator, components=["loki"], now=RUN_2
    )

    manifests = list_manifest_paths(backup_root)
    assert [p.name for p in manifests] == [
        "manifest_20261018_030000.txt",
        "manifest_20261018_020000.txt",
    ]

    manifest = await read_manifest(first.manifest_path)
    assert manifest.components == ["grafana", "loki", "metrics"]
    assert [f.name for f in manifest.files] == [
        "grafana_20261018_020000.tar.gz",
        "loki_20261018_020000.tar.gz",
        "metrics_20261018_020000.tar.gz",
    ]
    assert manifest.failed == []

    manifest = await read_manifest(second.manifest_path)
    assert manifest.components == ["loki"]
    assert [f.name for f in manifest.files] == ["loki_20261018_030000.tar.gz"]


# ============================================================================
# Test 3: PARTIAL FAILURE ISOLATION
# ============================================================================

@pytest.mark.asyncio
async def test_missing_component_does_not_block_siblings(
    test_config, coordinator, data_root: Path, backup_root: Path
):
    """
    CRITICAL: A component whose directory is missing is reported as
    failed while every other component is still archived.
    """
    write_component(data_root, "grafana")
    write_component(data_root, "metrics")
    # loki directory intentionally absent

    result = await run_backup(test_config, coordinator, now=RUN_1)

    assert result.succeeded == ["grafana", "metrics"]
    assert result.failed == ["loki"]
    assert result.failures[0].error_type == "SourceMissingError"

    assert (backup_root / "grafana_20261018_020000.tar.gz").exists()
    assert (backup_root / "metrics_20261018_020000.tar.gz").exists()
    assert not (backup_root / "loki_20261018_020000.tar.gz").exists()

    text = result.manifest_path.read_text()
    assert "Components: grafana metrics\n" in text
    assert "Failed: loki\n" in text
    assert "loki_" not in text


@pytest.mark.asyncio
async def test_no_partial_files_left_behind(
    test_config, coordinator, data_root: Path, backup_root: Path
):
    """Temporary .partial files never survive a run."""
    write_component(data_root, "grafana")

    await run_backup(test_config, coordinator, now=RUN_1)

    leftovers = [p.name for p in backup_root.iterdir() if p.name.endswith(".partial")]
    assert leftovers == []


# ============================================================================
# Test 4: SERVICE LIFECYCLE
# ============================================================================

@pytest.mark.asyncio
async def test_consistent_backup_restarts_services_even_when_packing_fails(
    test_config, data_root: Path
):
    """
    CRITICAL: Services stopped for a consistent backup are restarted even
    if every component fails.
    """
    controller = FakeController(running=True)
    coordinator = LifecycleCoordinator(controller, "lgtm", settle_seconds=0)

    result = await run_backup(test_config, coordinator, now=RUN_1)

    assert result.succeeded == []
    assert result.stopped_services is True
    assert controller.calls == ["is_running", "stop", "start"]
    assert controller.running is True


@pytest.mark.asyncio
async def test_consistent_backup_leaves_stopped_services_stopped(
    test_config, data_root: Path
):
    """Services that were not running are not started by a backup."""
    write_component(data_root, "grafana")
    controller = FakeController(running=False)
    coordinator = LifecycleCoordinator(controller, "lgtm", settle_seconds=0)

    result = await run_backup(test_config, coordinator, components=["grafana"], now=RUN_1)

    assert result.stopped_services is False
    assert controller.calls == ["is_running"]


@pytest.mark.asyncio
async def test_quick_backup_never_touches_services(test_config, data_root: Path):
    """Quick mode must not query, stop or start the service group."""
    write_component(data_root, "grafana")
    controller = FakeController(running=True)
    coordinator = LifecycleCoordinator(controller, "lgtm", settle_seconds=0)

    result = await run_backup(
        test_config,
        coordinator,
        components=["grafana"],
        mode=ConsistencyMode.QUICK,
        now=RUN_1,
    )

    assert result.succeeded == ["grafana"]
    assert result.mode == "quick"
    assert controller.calls == []


@pytest.mark.asyncio
async def test_unreachable_controller_aborts_consistent_backup(
    test_config, data_root: Path, backup_root: Path
):
    """
    CRITICAL: If services cannot be stopped, nothing is written.
    """
    write_component(data_root, "grafana")
    controller = FakeController(running=True, fail_on="stop")
    coordinator = LifecycleCoordinator(controller, "lgtm", settle_seconds=0)

    with pytest.raises(ControllerUnavailableError):
        await run_backup(test_config, coordinator, now=RUN_1)

    assert not backup_root.exists() or list(backup_root.iterdir()) == []


@pytest.mark.asyncio
async def test_failed_restart_is_reported_after_manifest_is_written(
    test_config, data_root: Path, backup_root: Path
):
    """
    CRITICAL: A restart failure propagates, but the finished run is kept.
    """
    write_component(data_root, "grafana")
    controller = FakeController(running=True, fail_on="start")
    coordinator = LifecycleCoordinator(controller, "lgtm", settle_seconds=0)

    with pytest.raises(ControllerUnavailableError):
        await run_backup(test_config, coordinator, components=["grafana"], now=RUN_1)

    assert controller.calls == ["is_running", "stop", "start"]
    assert (backup_root / "manifest_20261018_020000.txt").exists()
    assert (backup_root / "grafana_20261018_020000.tar.gz").exists()


def _events(stream: io.StringIO) -> list:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


@pytest.mark.asyncio
async def test_backup_error_is_logged_when_restart_also_fails(
    test_config, data_root: Path, temp_dir: Path
):
    """
    CRITICAL: When the restart fails while a backup error is propagating,
    the backup error is still logged.
    """
    stream = io.StringIO()
    configure_logging("info", "json", stream=stream)

    write_component(data_root, "grafana")
    blocked = temp_dir / "blocked"
    blocked.write_text("not a directory")
    config = test_config.with_updates(backup_root=blocked)
    controller = FakeController(running=True, fail_on="start")
    coordinator = LifecycleCoordinator(controller, "lgtm", settle_seconds=0)

    with pytest.raises(ControllerUnavailableError):
        await run_backup(config, coordinator, components=["grafana"], now=RUN_1)

    failed = [e for e in _events(stream) if e["event"] == "backup_run_failed"]
    assert len(failed) == 1
    assert failed[0]["error_type"] == "ArchiveIOError"
    assert failed[0]["services_stopped"] is True


@pytest.mark.asyncio
async def test_restore_error_is_logged_when_restart_also_fails(
    test_config, coordinator, data_root: Path, monkeypatch
):
    stream = io.StringIO()
    configure_logging("info", "json", stream=stream)

    grafana = write_component(data_root, "grafana", {"grafana.db": b"v1"})
    backup = await run_backup(test_config, coordinator, components=["grafana"], now=RUN_1)

    def failing_swap(staged, target):
        raise OSError("No space left on device")

    monkeypatch.setattr("volsnap.backup.restore._swap_into_place", failing_swap)
    controller = FakeController(running=True, fail_on="start")

    with pytest.raises(ControllerUnavailableError):
        await restore_archive(
            test_config,
            LifecycleCoordinator(controller, "lgtm", settle_seconds=0),
            backup.archives[0].path,
            confirmed=True,
            now=RESTORE_AT,
        )

    failed = [e for e in _events(stream) if e["event"] == "restore_failed"]
    assert len(failed) == 1
    assert failed[0]["component"] == "grafana"
    assert "No space left" in failed[0]["error"]
    assert (grafana / "grafana.db").read_bytes() == b"v1"


# ============================================================================
# Test 5: RESTORE SAFETY
# ============================================================================

@pytest.mark.asyncio
async def test_restore_snapshots_current_data_first(
    test_config, coordinator, fake_controller, data_root: Path, backup_root: Path, temp_dir: Path
):
    """
    CRITICAL: The pre-restore safety archive holds exactly the data that
    was replaced, and the component ends up equal to the archive.
    """
    grafana = write_component(data_root, "grafana", {"grafana.db": b"version-1"})
    original = snapshot_tree(grafana)

    backup = await run_backup(test_config, coordinator, components=["grafana"], now=RUN_1)
    archive = backup.archives[0].path

    # Data changes after the backup
    (grafana / "grafana.db").write_bytes(b"version-2")
    (grafana / "new-dashboard.json").write_bytes(b"{}")
    current = snapshot_tree(grafana)

    fake_controller.calls.clear()
    result = await restore_archive(
        test_config, coordinator, archive.name, confirmed=True, now=RESTORE_AT
    )

    assert result.component == "grafana"
    assert result.safety_archive == backup_root / "grafana_pre_restore_20261018_040000.tar.gz"
    assert snapshot_tree(grafana) == original

    await unpack(result.safety_archive, temp_dir / "safety")
    assert snapshot_tree(temp_dir / "safety" / "grafana") == current

    assert fake_controller.calls == ["is_running", "stop", "start"]
    assert result.restarted is True


@pytest.mark.asyncio
async def test_restore_without_existing_data_needs_no_snapshot(
    test_config, coordinator, data_root: Path
):
    """A component with no current data is restored without a safety archive."""
    grafana = write_component(data_root, "grafana", {"grafana.db": b"v1"})
    backup = await run_backup(test_config, coordinator, components=["grafana"], now=RUN_1)

    for path in sorted(grafana.rglob("*"), reverse=True):
        path.unlink()
    grafana.rmdir()

    result = await restore_archive(
        test_config, coordinator, backup.archives[0].path, confirmed=True, now=RESTORE_AT
    )

    assert result.safety_archive is None
    assert (grafana / "grafana.db").read_bytes() == b"v1"


@pytest.mark.asyncio
async def test_undoing_a_restore_within_the_same_second(
    test_config, coordinator, data_root: Path, backup_root: Path, temp_dir: Path
):
    """
    CRITICAL: A safety archive is never overwritten, even when a second
    restore in the same second restores that very safety archive.
    """
    grafana = write_component(data_root, "grafana", {"grafana.db": b"backed-up"})
    backup = await run_backup(test_config, coordinator, components=["grafana"], now=RUN_1)
    (grafana / "grafana.db").write_bytes(b"live")

    first = await restore_archive(
        test_config, coordinator, backup.archives[0].path, confirmed=True, now=RESTORE_AT
    )
    assert (grafana / "grafana.db").read_bytes() == b"backed-up"

    # Undo: restore the safety archive taken a moment ago
    second = await restore_archive(
        test_config, coordinator, first.safety_archive, confirmed=True, now=RESTORE_AT
    )

    assert (grafana / "grafana.db").read_bytes() == b"live"
    assert first.safety_archive.name == "grafana_pre_restore_20261018_040000.tar.gz"
    assert second.safety_archive.name == "grafana_pre_restore_20261018_040001.tar.gz"

    await unpack(first.safety_archive, temp_dir / "first")
    assert (temp_dir / "first" / "grafana" / "grafana.db").read_bytes() == b"live"
    await unpack(second.safety_archive, temp_dir / "second")
    assert (temp_dir / "second" / "grafana" / "grafana.db").read_bytes() == b"backed-up"


@pytest.mark.asyncio
async def test_failed_snapshot_does_not_block_restore(
    test_config, coordinator, fake_controller, data_root: Path, temp_dir: Path
):
    """
    The safety snapshot is best effort: when it cannot be written the
    restore still happens and the failure is reported.
    """
    grafana = write_component(data_root, "grafana", {"grafana.db": b"archived"})
    archive = await pack(
        grafana,
        temp_dir / "offsite" / "grafana_20261018_020000.tar.gz",
        CompressionScheme.GZIP,
    )
    (grafana / "grafana.db").write_bytes(b"current")

    # A plain file where the backup directory should be
    blocked = temp_dir / "blocked"
    blocked.write_text("not a directory")
    config = test_config.with_updates(backup_root=blocked)

    fake_controller.calls.clear()
    result = await restore_archive(
        config, coordinator, archive.path, confirmed=True, now=RESTORE_AT
    )

    assert result.safety_archive is None
    assert result.safety_error is not None
    assert "grafana" in result.safety_error
    assert (grafana / "grafana.db").read_bytes() == b"archived"
    assert fake_controller.calls == ["is_running", "stop", "start"]


@pytest.mark.asyncio
async def test_restore_rejects_archive_of_another_component(
    test_config, coordinator, fake_controller, data_root: Path, backup_root: Path
):
    """
    CRITICAL: An archive renamed to another component's name is refused
    before any data is touched.
    """
    write_component(data_root, "loki", {"index": b"loki-data"})
    grafana = write_component(data_root, "grafana", {"grafana.db": b"keep-me"})

    backup = await run_backup(test_config, coordinator, components=["loki"], now=RUN_1)
    impostor = backup_root / "grafana_20261018_020000.tar.gz"
    backup.archives[0].path.rename(impostor)

    fake_controller.calls.clear()
    with pytest.raises(CorruptArchiveError):
        await restore_archive(test_config, coordinator, impostor, confirmed=True)

    assert (grafana / "grafana.db").read_bytes() == b"keep-me"
    assert fake_controller.calls == []


@pytest.mark.asyncio
async def test_corrupt_archive_leaves_data_untouched(
    test_config, coordinator, data_root: Path, backup_root: Path
):
    """A truncated archive fails the restore without harming current data."""
    grafana = write_component(data_root, "grafana", {"grafana.db": b"keep-me" * 1000})
    backup = await run_backup(test_config, coordinator, components=["grafana"], now=RUN_1)

    archive = backup.archives[0].path
    archive.write_bytes(archive.read_bytes()[:40])

    with pytest.raises(CorruptArchiveError):
        await restore_archive(test_config, coordinator, archive, confirmed=True)

    assert (grafana / "grafana.db").read_bytes() == b"keep-me" * 1000
    assert not list(backup_root.glob("*_pre_restore_*"))


# ============================================================================
# Test 6: CONFIRMATION GATE
# ============================================================================

@pytest.mark.asyncio
async def test_unconfirmed_restore_changes_nothing(
    test_config, coordinator, fake_controller, data_root: Path, backup_root: Path
):
    """
    CRITICAL: Without confirmation, restore must not touch the data, the
    backup directory or the services.
    """
    grafana = write_component(data_root, "grafana", {"grafana.db": b"v1"})
    backup = await run_backup(test_config, coordinator, components=["grafana"], now=RUN_1)
    (grafana / "grafana.db").write_bytes(b"v2")

    data_before = snapshot_tree(data_root)
    backups_before = sorted(p.name for p in backup_root.iterdir())
    fake_controller.calls.clear()

    with pytest.raises(NotConfirmedError):
        await restore_archive(
            test_config, coordinator, backup.archives[0].path, confirmed=False
        )

    assert snapshot_tree(data_root) == data_before
    assert sorted(p.name for p in backup_root.iterdir()) == backups_before
    assert fake_controller.calls == []


# ============================================================================
# Test 7: RETENTION
# ============================================================================

@pytest.mark.asyncio
async def test_retention_is_idempotent_and_spares_fresh_files(
    test_config, backup_root: Path
):
    """
    CRITICAL: Cleanup removes only backup files past retention, and a
    second cleanup removes nothing.
    """
    now = datetime.now()
    backup_root.mkdir()

    old_files = [
        "grafana_20260801_020000.tar.gz",
        "loki_20260801_020000.tar.zst",
        "grafana_pre_restore_20260801_030000.tar.gz",
        "manifest_20260801_020000.txt",
    ]
    fresh_files = [
        "grafana_20261017_020000.tar.gz",
        "manifest_20261017_020000.txt",
    ]
    untouchable = [
        ".grafana_20260801_010000.tar.gz.partial",
        "notes.txt",
    ]

    for name in old_files + untouchable:
        path = backup_root / name
        path.write_bytes(b"x" * 10)
        age_file(path, 45, now)
    for name in fresh_files:
        path = backup_root / name
        path.write_bytes(b"x" * 10)
        age_file(path, 1, now)

    first = await prune_old_backups(test_config, now=now)
    assert sorted(first.removed) == sorted(old_files)
    assert first.removed_count == 4
    assert first.bytes_freed == 40

    second = await prune_old_backups(test_config, now=now)
    assert second.removed_count == 0
    assert second.removed == []

    remaining = sorted(p.name for p in backup_root.iterdir())
    assert remaining == sorted(fresh_files + untouchable)


@pytest.mark.asyncio
async def test_retention_dry_run_deletes_nothing(test_config, backup_root: Path):
    """Dry-run cleanup reports candidates without deleting them."""
    backup_root.mkdir()
    path = backup_root / "loki_20260101_000000.tar.gz"
    path.write_bytes(b"x" * 10)
    age_file(path, 90)

    result = await prune_old_backups(test_config, dry_run=True)

    assert result.dry_run is True
    assert result.removed == ["loki_20260101_000000.tar.gz"]
    assert path.exists()


# ============================================================================
# Test 8: END TO END
# ============================================================================

@pytest.mark.asyncio
async def test_single_component_end_to_end(
    test_config, coordinator, data_root: Path, backup_root: Path
):
    """
    One component with three files totalling 10 KiB: the gzip archive, the
    manifest entry and the restore all line up.
    """
    config = test_config.with_updates(components=("metrics",))
    metrics = write_component(
        data_root,
        "metrics",
        {
            "wal/00000001": b"a" * 4096,
            "wal/00000002": b"b" * 4096,
            "chunks/000001": b"c" * 2048,
        },
    )
    original = snapshot_tree(metrics)

    result = await run_backup(config, coordinator, components=["metrics"], now=RUN_1)

    assert [a.path.name for a in result.archives] == ["metrics_20261018_020000.tar.gz"]
    assert parse_archive_name(result.archives[0].path.name).scheme is CompressionScheme.GZIP
    assert result.archives[0].source_bytes == 10240

    text = result.manifest_path.read_text()
    assert "Components: metrics\n" in text
    assert "  metrics: 10K (10240 bytes)\n" in text
    assert "Failed:" not in text

    # Lose the data, then restore it
    for path in sorted(metrics.rglob("*"), reverse=True):
        path.unlink() if path.is_file() else path.rmdir()
    metrics.rmdir()

    await restore_archive(
        config, coordinator, "metrics_20261018_020000.tar.gz", confirmed=True
    )

    assert snapshot_tree(metrics) == original
