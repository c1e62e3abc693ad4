# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Lifecycle Coordinator - Pause and resume the service group around backups.

The container runtime is an external collaborator. This module only needs
three operations from it (is-running, stop, start), expressed as the
ContainerController protocol so that tests can substitute a fake.
ComposeController is the production implementation, shelling out to
docker / docker-compose.
"""

import asyncio
import shlex
from pathlib import Path
from typing import Awaitable, Callable, List, Protocol

import structlog

from volsnap.config import BackupConfig
from volsnap.exceptions import ControllerUnavailableError

logger = structlog.get_logger()


class ContainerController(Protocol):
    """Protocol for the external container lifecycle controller."""

    async def is_running(self, group: str) -> bool:
        """Return True if the service group is currently running."""
        ...

    async def stop(self, group: str) -> None:
        """Stop the service group."""
        ...

    async def start(self, group: str) -> None:
        """Start the service group."""
        ...


class ComposeController:
    """
    ContainerController backed by the docker CLI.

    - is_running: ``docker ps --format {{.Names}}``, exact name match
    - stop/start: ``<compose command> -f <compose file> stop|start`` when a
      compose file is configured, ``docker stop|start <group>`` otherwise
    """

    def __init__(
        self,
        compose_file: Path | None = None,
        compose_command: str = "docker-compose",
        docker_command: str = "docker",
        timeout_seconds: float = 120.0,
    ):
        self.compose_file = Path(compose_file) if compose_file else None
        self.compose_command = compose_command
        self.docker_command = docker_command
        self.timeout_seconds = timeout_seconds

    async def _run(self, args: List[str]) -> str:
        command = " ".join(shlex.quote(a) for a in args)

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ControllerUnavailableError(
                f"Cannot run container controller: {e}",
                details={"command": command},
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise ControllerUnavailableError(
                f"Container controller timed out after {self.timeout_seconds}s",
                details={"command": command},
            ) from e

        if proc.returncode != 0:
            raise ControllerUnavailableError(
                f"Container controller failed with exit code {proc.returncode}",
                details={
                    "command": command,
                    "stderr": stderr.decode(errors="replace").strip(),
                },
            )

        return stdout.decode(errors="replace")

    def _lifecycle_args(self, action: str, group: str) -> List[str]:
        if self.compose_file is not None:
            return [
                *shlex.split(self.compose_command),
                "-f",
                str(self.compose_file),
                action,
            ]
        return [self.docker_command, action, group]

    async def is_running(self, group: str) -> bool:
        output = await self._run([self.docker_command, "ps", "--format", "{{.Names}}"])
        return group in (line.strip() for line in output.splitlines())

    async def stop(self, group: str) -> None:
        await self._run(self._lifecycle_args("stop", group))

    async def start(self, group: str) -> None:
        await self._run(self._lifecycle_args("start", group))


class LifecycleCoordinator:
    """
    Stop/start the service group on behalf of the orchestrators.

    stop() waits a fixed settle period after the stop command returns so
    that services can flush in-flight writes. This is a bounded wait, not
    a guarantee of quiescence.
    """

    def __init__(
        self,
        controller: ContainerController,
        group_name: str,
        settle_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.controller = controller
        self.group_name = group_name
        self.settle_seconds = settle_seconds
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: BackupConfig,
        controller: ContainerController | None = None,
    ) -> "LifecycleCoordinator":
        """
        Build a coordinator from configuration.

        Args:
            config: Backup configuration
            controller: Controller to use (default: ComposeController)
        """
        if controller is None:
            controller = ComposeController(
                compose_file=config.compose_file,
                compose_command=config.compose_command,
                timeout_seconds=config.controller_timeout_seconds,
            )
        return cls(controller, config.container_name, config.settle_seconds)

    async def _call(self, action: str, call: Awaitable):
        try:
            return await call
        except ControllerUnavailableError:
            raise
        except Exception as e:
            raise ControllerUnavailableError(
                f"Container controller {action} failed for {self.group_name}: {e}",
                details={"group": self.group_name, "action": action},
            ) from e

    async def is_running(self) -> bool:
        running = await self._call(
            "is_running", self.controller.is_running(self.group_name)
        )
        logger.debug("service_group_state", group=self.group_name, running=running)
        return bool(running)

    async def stop(self) -> None:
        logger.info("services_stopping", group=self.group_name)
        await self._call("stop", self.controller.stop(self.group_name))

        if self.settle_seconds > 0:
            await self._sleep(self.settle_seconds)

        logger.info(
            "services_stopped",
            group=self.group_name,
            settle_seconds=self.settle_seconds,
        )

    async def start(self) -> None:
        logger.info("services_starting", group=self.group_name)
        await self._call("start", self.controller.start(self.group_name))
        logger.info("services_started", group=self.group_name)
