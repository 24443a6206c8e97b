"""Shared fixtures: an in-memory container engine."""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest

from runbox.core.constants import UNSET_TIMESTAMP
from runbox.core.exceptions import ContainerNotFound, EngineError
from runbox.core.schemas import ContainerLogs, ContainerStatus, RunRequest
from runbox.engine.base import ContainerEngine
from runbox.runners.container_runner import ContainerRunner


def _engine_now() -> str:
    # Engine format: nanosecond fraction, Zulu time
    return f"{datetime.now(timezone.utc):%Y-%m-%dT%H:%M:%S.%f}000Z"


@dataclass
class Script:
    """How a fake container behaves once started."""

    exit_after_polls: int | None = 1  # None: runs until stopped
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""


@dataclass
class FakeContainer:
    id: str
    request: RunRequest
    script: Script
    status: ContainerStatus = ContainerStatus.CREATED
    exit_code: int = 0
    started_at: str = UNSET_TIMESTAMP
    finished_at: str = UNSET_TIMESTAMP
    polls: int = 0


@dataclass
class FakeEngine(ContainerEngine):
    """ContainerEngine keeping containers, images, networks and volumes in memory.

    ``fail_on`` holds method names that raise EngineError.
    """

    scripts: dict[str, Script] = field(default_factory=dict)
    containers: dict[str, FakeContainer] = field(default_factory=dict)
    images: dict[str, str] = field(default_factory=dict)
    networks: dict[str, str] = field(default_factory=dict)
    volumes: set[str] = field(default_factory=set)
    pulled: list[tuple[str, str, float]] = field(default_factory=list)
    pull_succeeds: bool = True
    fail_on: set[str] = field(default_factory=set)
    lookup_delay: float = 0.0  # seconds spent in each get_container_id
    calls: list[str] = field(default_factory=list)
    closed: bool = False

    def __post_init__(self) -> None:
        ContainerEngine.__init__(self)
        self._ids = itertools.count(1)

    def _call(self, method: str) -> None:
        self.calls.append(method)
        if method in self.fail_on:
            raise EngineError(f"{method} failed")

    def _get(self, name: str) -> FakeContainer:
        try:
            return self.containers[name]
        except KeyError:
            raise ContainerNotFound(f"No such container: {name}") from None

    # Containers

    def create_container(self, request: RunRequest) -> str:
        self._call("create_container")
        if request.container_name in self.containers:
            raise EngineError(f"Conflict: {request.container_name} already in use")
        container = FakeContainer(
            id=f"c{next(self._ids)}",
            request=request,
            script=self.scripts.get(request.container_name, Script()),
        )
        self.containers[request.container_name] = container
        return container.id

    def start_container(self, name: str) -> None:
        self._call("start_container")
        container = self._get(name)
        container.status = ContainerStatus.RUNNING
        container.started_at = _engine_now()

    def stop_container(self, name: str, timeout: int = 0) -> None:
        self._call("stop_container")
        container = self._get(name)
        container.status = ContainerStatus.EXITED
        container.exit_code = 137
        container.finished_at = _engine_now()

    def remove_container(self, name: str) -> None:
        self._call("remove_container")
        self._get(name)
        del self.containers[name]

    def get_container_id(self, name: str) -> str | None:
        self._call("get_container_id")
        if self.lookup_delay:
            time.sleep(self.lookup_delay)
        container = self.containers.get(name)
        return container.id if container else None

    def inspect_status(self, name: str) -> ContainerStatus:
        self._call("inspect_status")
        container = self._get(name)
        if container.status == ContainerStatus.RUNNING:
            container.polls += 1
            exit_after = container.script.exit_after_polls
            if exit_after is not None and container.polls >= exit_after:
                container.status = ContainerStatus.EXITED
                container.exit_code = container.script.exit_code
                container.finished_at = _engine_now()
        return container.status

    def inspect_exit_code(self, name: str) -> int:
        self._call("inspect_exit_code")
        return self._get(name).exit_code

    def inspect_timestamps(self, name: str) -> tuple[str, str]:
        self._call("inspect_timestamps")
        container = self._get(name)
        return container.started_at, container.finished_at

    def fetch_logs(self, name: str) -> ContainerLogs:
        self._call("fetch_logs")
        script = self._get(name).script
        return ContainerLogs(stdout=script.stdout, stderr=script.stderr)

    def exec_in_container(self, name: str, cmd: list[str]) -> ContainerLogs:
        self._call("exec_in_container")
        self._get(name)
        return ContainerLogs(stdout=" ".join(cmd))

    # Images

    def pull_image(self, repository: str, tag: str, timeout: float) -> bool:
        self._call("pull_image")
        self.pulled.append((repository, tag, timeout))
        if self.pull_succeeds:
            self.images[f"{repository}:{tag}"] = f"sha256:{len(self.images) + 1}"
        return self.pull_succeeds

    def get_image_id(self, image: str) -> str | None:
        self._call("get_image_id")
        return self.images.get(image)

    def remove_image(self, image: str) -> None:
        self._call("remove_image")
        self.images.pop(image, None)

    # Networks

    def get_network_id(self, name: str) -> str | None:
        self._call("get_network_id")
        return self.networks.get(name)

    def create_network(self, name: str) -> str:
        self._call("create_network")
        self.networks[name] = f"n-{name}"
        return self.networks[name]

    def remove_network(self, name: str) -> None:
        self._call("remove_network")
        if self.networks.pop(name, None) is None:
            raise ContainerNotFound(f"No such network: {name}")

    # Volumes

    def volume_exists(self, name: str) -> bool:
        self._call("volume_exists")
        return name in self.volumes

    def create_volume(self, name: str) -> str:
        self._call("create_volume")
        self.volumes.add(name)
        return name

    def remove_volume(self, name: str) -> None:
        self._call("remove_volume")
        if name not in self.volumes:
            raise ContainerNotFound(f"No such volume: {name}")
        self.volumes.discard(name)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def runner(engine: FakeEngine) -> ContainerRunner:
    """Runner polling every 10ms."""
    return ContainerRunner(engine, poll_interval_seconds=0.01, pull_timeout_seconds=5)
