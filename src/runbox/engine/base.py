"""Container engine interface consumed by the runner.

Every method either returns normally or raises :class:`EngineError`
(:class:`ContainerNotFound` when the target does not exist). Engines hold no
lifecycle policy: duplicate detection, timeouts and cleanup live in
:class:`runbox.runners.container_runner.ContainerRunner`.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod

from runbox.core.schemas import ContainerLogs, ContainerStatus, RunRequest


class ContainerEngine(ABC):
    """Abstract container engine client.

    ``lock`` serializes lifecycle mutations for every runner sharing this
    engine, so a presence check and the create that follows it cannot
    interleave with another caller.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()

    # Containers

    @abstractmethod
    def create_container(self, request: RunRequest) -> str:
        """Create a container from the request and return its id."""

    @abstractmethod
    def start_container(self, name: str) -> None:
        """Start a created container."""

    @abstractmethod
    def stop_container(self, name: str, timeout: int = 0) -> None:
        """Stop a container, killing it after ``timeout`` seconds."""

    @abstractmethod
    def remove_container(self, name: str) -> None:
        """Delete a container."""

    @abstractmethod
    def get_container_id(self, name: str) -> str | None:
        """Return the id of the container with this name, None if absent."""

    @abstractmethod
    def inspect_status(self, name: str) -> ContainerStatus:
        """Return the current status of a container."""

    @abstractmethod
    def inspect_exit_code(self, name: str) -> int:
        """Return the exit code recorded for a container."""

    @abstractmethod
    def inspect_timestamps(self, name: str) -> tuple[str, str]:
        """Return the raw ``(started_at, finished_at)`` timestamps."""

    @abstractmethod
    def fetch_logs(self, name: str) -> ContainerLogs:
        """Return the full stdout/stderr of a container."""

    @abstractmethod
    def exec_in_container(self, name: str, cmd: list[str]) -> ContainerLogs:
        """Run a command inside a running container and return its output."""

    # Images

    @abstractmethod
    def pull_image(self, repository: str, tag: str, timeout: float) -> bool:
        """Pull an image; return False if it did not finish within ``timeout``."""

    @abstractmethod
    def get_image_id(self, image: str) -> str | None:
        """Return the id of a local image tagged exactly ``image``."""

    @abstractmethod
    def remove_image(self, image: str) -> None:
        """Delete a local image."""

    # Networks

    @abstractmethod
    def get_network_id(self, name: str) -> str | None:
        """Return the id of the network with this name, None if absent."""

    @abstractmethod
    def create_network(self, name: str) -> str:
        """Create a bridge network and return its id."""

    @abstractmethod
    def remove_network(self, name: str) -> None:
        """Delete a network."""

    # Volumes

    @abstractmethod
    def volume_exists(self, name: str) -> bool:
        """Return True if a volume with this name exists."""

    @abstractmethod
    def create_volume(self, name: str) -> str:
        """Create a volume and return its name."""

    @abstractmethod
    def remove_volume(self, name: str) -> None:
        """Delete a volume."""

    def close(self) -> None:
        """Release the underlying connection."""
