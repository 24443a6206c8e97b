"""Docker implementation of the container engine interface.

Thin pass-through to docker-py. Docker SDK exceptions are translated into
:class:`EngineError` / :class:`ContainerNotFound` so the runner deals with a
single error family whatever the transport failure was.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Iterator
from typing import Any

import docker
import requests
from docker.errors import DockerException, NotFound

from runbox.core.exceptions import ContainerNotFound, EngineError
from runbox.core.schemas import ContainerLogs, ContainerStatus, RunRequest
from runbox.engine.base import ContainerEngine

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def _engine_errors(action: str) -> Iterator[None]:
    """Translate docker-py and transport errors raised while doing ``action``."""
    try:
        yield
    except NotFound as e:
        raise ContainerNotFound(f"{action}: {e.explanation or e}") from e
    except (DockerException, requests.exceptions.RequestException) as e:
        raise EngineError(f"{action}: {e}") from e


def _decode(payload: bytes | None) -> str:
    return payload.decode("utf-8", errors="replace") if payload else ""


class DockerEngine(ContainerEngine):
    """ContainerEngine backed by a local Docker daemon.

    Example:
        ```python
        engine = DockerEngine()  # docker.from_env()
        engine.login("user", "secret", registry="docker.io")
        ```
    """

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        """Initialize the engine.

        Args:
            client: Existing Docker client; defaults to ``docker.from_env()``

        Raises:
            EngineError: If no Docker daemon can be reached
        """
        super().__init__()
        if client is None:
            with _engine_errors("connect to docker daemon"):
                client = docker.from_env()
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        return self._client

    def login(self, username: str, password: str, registry: str) -> None:
        """Authenticate the client against a registry.

        Raises:
            EngineError: If the registry rejects the credentials
        """
        with _engine_errors(f"login to {registry}"):
            self._client.login(username=username, password=password, registry=registry)
        logger.info(f"Authenticated docker client [registry:{registry}, username:{username}]")

    # Containers

    def create_container(self, request: RunRequest) -> str:
        host_config_kwargs: dict[str, Any] = {
            key: value
            for key, value in request.host_config.model_dump(exclude={"binds", "devices"}).items()
            if value not in (None, [])
        }
        create_kwargs: dict[str, Any] = {"name": request.container_name}
        if request.cmd_args:
            create_kwargs["command"] = request.cmd_args
        if request.entrypoint_args is not None:
            create_kwargs["entrypoint"] = request.entrypoint_args
        if request.env:
            create_kwargs["environment"] = request.env
        if request.container_port > 0:
            # Exposed only, no host port binding
            create_kwargs["ports"] = [request.container_port]
        if request.working_dir is not None:
            create_kwargs["working_dir"] = request.working_dir

        with _engine_errors(f"create container {request.container_name}"):
            host_config = self._client.api.create_host_config(
                binds=request.host_config.binds or None,
                devices=request.devices or None,
                **host_config_kwargs,
            )
            response = self._client.api.create_container(
                request.image, host_config=host_config, **create_kwargs
            )
        return response.get("Id") or ""

    def start_container(self, name: str) -> None:
        with _engine_errors(f"start container {name}"):
            self._client.containers.get(name).start()

    def stop_container(self, name: str, timeout: int = 0) -> None:
        with _engine_errors(f"stop container {name}"):
            self._client.containers.get(name).stop(timeout=timeout)

    def remove_container(self, name: str) -> None:
        with _engine_errors(f"remove container {name}"):
            self._client.containers.get(name).remove()

    def get_container_id(self, name: str) -> str | None:
        try:
            with _engine_errors(f"get container {name}"):
                return self._client.containers.get(name).id
        except ContainerNotFound:
            return None

    def _state(self, name: str) -> dict[str, Any]:
        with _engine_errors(f"inspect container {name}"):
            return self._client.api.inspect_container(name).get("State") or {}

    def inspect_status(self, name: str) -> ContainerStatus:
        return ContainerStatus.from_engine(self._state(name).get("Status"))

    def inspect_exit_code(self, name: str) -> int:
        exit_code = self._state(name).get("ExitCode")
        if exit_code is None:
            raise EngineError(f"No exit code recorded for container {name}")
        return int(exit_code)

    def inspect_timestamps(self, name: str) -> tuple[str, str]:
        state = self._state(name)
        return state.get("StartedAt") or "", state.get("FinishedAt") or ""

    def fetch_logs(self, name: str) -> ContainerLogs:
        with _engine_errors(f"get logs of container {name}"):
            container = self._client.containers.get(name)
            stdout = container.logs(stdout=True, stderr=False)
            stderr = container.logs(stdout=False, stderr=True)
        return ContainerLogs(stdout=_decode(stdout), stderr=_decode(stderr))

    def exec_in_container(self, name: str, cmd: list[str]) -> ContainerLogs:
        with _engine_errors(f"exec in container {name}"):
            result = self._client.containers.get(name).exec_run(
                cmd, stdout=True, stderr=True, demux=True
            )
        stdout, stderr = result.output if result.output else (None, None)
        return ContainerLogs(stdout=_decode(stdout), stderr=_decode(stderr))

    # Images

    def pull_image(self, repository: str, tag: str, timeout: float) -> bool:
        """Pull an image, waiting at most ``timeout`` seconds for it to finish.

        The progress stream is consumed on a daemon thread so a stalled
        registry cannot block the caller past the timeout. An abandoned pull
        keeps running in the background.
        """
        errors: list[Exception] = []

        def consume() -> None:
            try:
                with _engine_errors(f"pull image {repository}:{tag}"):
                    stream = self._client.api.pull(repository, tag=tag, stream=True, decode=True)
                    for event in stream:
                        if "error" in event:
                            raise EngineError(
                                f"pull image {repository}:{tag}: {event['error']}"
                            )
            except Exception as e:
                errors.append(e)

        worker = threading.Thread(target=consume, name=f"pull-{repository}:{tag}", daemon=True)
        worker.start()
        worker.join(timeout=timeout)
        if worker.is_alive():
            logger.warning(f"Pull still running after {timeout}s [image:{repository}:{tag}]")
            return False
        if errors:
            raise errors[0]
        return True

    def get_image_id(self, image: str) -> str | None:
        with _engine_errors(f"list images {image}"):
            images = self._client.images.list(name=image)
        for candidate in images:
            if image in (candidate.tags or []):
                return candidate.id
        return None

    def remove_image(self, image: str) -> None:
        with _engine_errors(f"remove image {image}"):
            self._client.images.remove(image)

    # Networks

    def get_network_id(self, name: str) -> str | None:
        with _engine_errors(f"list networks {name}"):
            networks = self._client.networks.list(names=[name])
        for network in networks:
            if network.name == name:
                return network.id
        return None

    def create_network(self, name: str) -> str:
        with _engine_errors(f"create network {name}"):
            return self._client.networks.create(name, driver="bridge").id or ""

    def remove_network(self, name: str) -> None:
        with _engine_errors(f"remove network {name}"):
            self._client.networks.get(name).remove()

    # Volumes

    def volume_exists(self, name: str) -> bool:
        try:
            with _engine_errors(f"get volume {name}"):
                self._client.volumes.get(name)
        except ContainerNotFound:
            return False
        return True

    def create_volume(self, name: str) -> str:
        with _engine_errors(f"create volume {name}"):
            return self._client.volumes.create(name=name).name

    def remove_volume(self, name: str) -> None:
        with _engine_errors(f"remove volume {name}"):
            self._client.volumes.get(name).remove()

    def close(self) -> None:
        with contextlib.suppress(Exception):
            self._client.close()
