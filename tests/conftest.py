# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for volsnap tests.

Provides temporary data/backup directories, test configuration and a fake
container controller.
"""

import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Generator, List

import pytest
import structlog

# Set test environment variables
os.environ["VOLSNAP_ADMIN_API_KEY"] = "test-api-key-12345"

TEST_COMPONENTS = ("grafana", "loki", "metrics")


class FakeController:
    """
    In-memory ContainerController.

    Records every call so tests can assert on the stop/start sequence.
    """

    def __init__(self, running: bool = True, fail_on: str | None = None):
        self.running = running
        self.fail_on = fail_on
        self.calls: List[str] = []

    async def is_running(self, group: str) -> bool:
        self.calls.append("is_running")
        if self.fail_on == "is_running":
            raise RuntimeError("docker daemon not reachable")
        return self.running

    async def stop(self, group: str) -> None:
        self.calls.append("stop")
        if self.fail_on == "stop":
            raise RuntimeError("stop failed")
        self.running = False

    async def start(self, group: str) -> None:
        self.calls.append("start")
        if self.fail_on == "start":
            raise RuntimeError("start failed")
        self.running = True


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo logging configuration done by CLI tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def data_root(temp_dir: Path) -> Path:
    path = temp_dir / "container"
    path.mkdir()
    return path


@pytest.fixture
def backup_root(temp_dir: Path) -> Path:
    return temp_dir / "backups"


@pytest.fixture
def test_config(data_root: Path, backup_root: Path):
    """Create a test configuration."""
    from volsnap.config import BackupConfig, CompressionScheme

    return BackupConfig(
        data_root=data_root,
        backup_root=backup_root,
        components=TEST_COMPONENTS,
        compression=CompressionScheme.GZIP,
        retention_days=30,
        settle_seconds=0,
    )


@pytest.fixture
def fake_controller() -> FakeController:
    return FakeController(running=True)


@pytest.fixture
def coordinator(fake_controller: FakeController):
    """Lifecycle coordinator over the fake controller, no settle wait."""
    from volsnap.lifecycle import LifecycleCoordinator

    return LifecycleCoordinator(fake_controller, "lgtm", settle_seconds=0)


def write_component(
    data_root: Path,
    component: str,
    files: Dict[str, bytes] | None = None,
) -> Path:
    """Create a component directory with the given relative files."""
    root = data_root / component
    root.mkdir(parents=True, exist_ok=True)
    for relative, content in (files or {"data.bin": b"x" * 100}).items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return root


def snapshot_tree(root: Path) -> Dict[str, tuple]:
    """Relative path -> (content, permission bits) for every regular file."""
    result = {}
    for path in sorted(root.rglob("*")):
        if path.is_file():
            result[str(path.relative_to(root))] = (
                path.read_bytes(),
                path.stat().st_mode & 0o777,
            )
    return result


def age_file(path: Path, days: float, now: datetime | None = None) -> None:
    """Set a file's modification time to `days` before now."""
    moment = (now or datetime.now()) - timedelta(days=days)
    ts = moment.timestamp()
    os.utime(path, (ts, ts))
