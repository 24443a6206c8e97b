"""Supervised container runner.

This module manages the complete lifecycle of one task container:
- Container creation (duplicate handling, on-demand network)
- Start, then either detach or supervise against a deadline
- Force-stop on timeout
- Log and execution duration collection
- Cleanup

Engine failures never escape :meth:`ContainerRunner.run`; they are logged
and folded into the returned :class:`RunResult`. Only programmer errors
(blank names given to lifecycle primitives) raise ``ValueError``.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timedelta, timezone
from types import TracebackType

from runbox.core.constants import (
    BUILTIN_NETWORK_MODES,
    DEFAULT_PULL_TIMEOUT_SECONDS,
    POLL_INTERVAL_SECONDS,
    STILL_RUNNING_LOG_EVERY,
    UNSET_TIMESTAMP,
)
from runbox.core.exceptions import EngineError, RunTimeoutError
from runbox.core.schemas import ContainerLogs, ContainerStatus, RunRequest, RunResult, RunStatus
from runbox.engine.base import ContainerEngine
from runbox.utils.images import normalize_image_name, split_image_tag

logger = logging.getLogger(__name__)

_TIMESTAMP_RE = re.compile(
    r"^(?P<base>[^.]+?)(?:\.(?P<fraction>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def _parse_engine_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 engine timestamp.

    The engine reports nanoseconds; datetime keeps microseconds, so the
    fraction is truncated to six digits.
    """
    match = _TIMESTAMP_RE.match(value)
    if match is None:
        raise ValueError(f"Invalid engine timestamp: {value!r}")
    fraction = (match["fraction"] or "0")[:6].ljust(6, "0")
    tz = "+00:00" if match["tz"] == "Z" else match["tz"]
    return datetime.fromisoformat(f"{match['base']}.{fraction}{tz}")


def compute_execution_duration(started_at: str, finished_at: str) -> timedelta | None:
    """Compute how long a container ran from its engine timestamps.

    Args:
        started_at: Engine ``StartedAt`` value
        finished_at: Engine ``FinishedAt`` value

    Returns:
        None if the container has not started or not finished yet (the two
        cases are not told apart), otherwise ``finished_at - started_at``.
        Engine timestamps are not precise enough for very short containers,
        so a negative difference is returned as zero.

    Raises:
        ValueError: If a timestamp cannot be parsed
    """
    if not started_at or started_at == UNSET_TIMESTAMP:
        logger.debug("Container has not been started yet")
        return None
    if not finished_at or finished_at == UNSET_TIMESTAMP:
        logger.debug("Container has not been ended yet")
        return None

    duration = _parse_engine_timestamp(finished_at) - _parse_engine_timestamp(started_at)
    if duration < timedelta(0):
        logger.debug("Container has finished faster than engine precision")
        return timedelta(0)
    return duration


def _require_name(value: str | None, what: str = "Container name") -> str:
    if value is None or not value.strip():
        raise ValueError(f"{what} cannot be blank")
    return value


def _is_builtin_network(network_mode: str) -> bool:
    return network_mode in BUILTIN_NETWORK_MODES or network_mode.startswith("container:")


class ContainerRunner:
    """Runs one container at a time per caller, under a time budget.

    Lifecycle mutations (create, start, stop, remove) are serialized through
    the engine lock, shared by every runner on the same engine, so duplicate
    detection and creation of the same name cannot interleave between threads. Waiting is not serialized:
    several callers can supervise different containers concurrently.

    Example:
        ```python
        runner = ContainerRunner(DockerEngine())
        request = build_run_request(
            container_name="task-42",
            image="alpine:latest",
            cmd="sh -c 'echo hello'",
            max_execution_time_ms=60_000,
        )
        result = runner.run(request)
        print(result.final_status, result.exit_code, result.stdout)
        ```
    """

    def __init__(
        self,
        engine: ContainerEngine,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        pull_timeout_seconds: float = DEFAULT_PULL_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the runner.

        Args:
            engine: Container engine client
            poll_interval_seconds: Delay between two status checks while supervising
            pull_timeout_seconds: Default image pull timeout
        """
        self._engine = engine
        self.poll_interval_seconds = poll_interval_seconds
        self.pull_timeout_seconds = pull_timeout_seconds

    @property
    def engine(self) -> ContainerEngine:
        return self._engine

    # Run

    def run(self, request: RunRequest, remove_duplicate: bool = True) -> RunResult:
        """Run a container and, unless detached, supervise it until exit or timeout.

        A request with ``max_execution_time_ms <= 0`` is started and left
        running; the caller then owns its teardown. Otherwise the container is
        force-stopped at the deadline, its logs and duration are collected and
        it is removed. When the force-stop fails the container is kept for
        inspection and only its logs are returned.

        Args:
            request: Description of the run
            remove_duplicate: Replace an existing container with the same name

        Returns:
            RunResult; engine failures are reported through ``final_status``
        """
        name = request.container_name
        logger.info(
            f"Running container [name:{name}, image:{request.image}, cmd:{request.cmd_args}]"
        )

        if not self.create_container(request, remove_duplicate=remove_duplicate):
            logger.error(f"Failed to create container for run [name:{name}]")
            return RunResult(final_status=RunStatus.FAILED)

        if not self.start_container(name):
            logger.error(f"Failed to start container for run [name:{name}]")
            self.remove_container(name)
            return RunResult(final_status=RunStatus.FAILED)

        if request.is_detached:
            # Runs until it exits by itself or is explicitly stopped
            logger.info(f"Container will run in detached mode [name:{name}]")
            return RunResult(final_status=RunStatus.SUCCESS, detached=True)

        deadline = datetime.now(timezone.utc) + timedelta(
            milliseconds=request.max_execution_time_ms
        )
        exit_code = -1
        try:
            exit_code = self.wait_until_exit_or_timeout(name, deadline)
            final_status = RunStatus.SUCCESS if exit_code == 0 else RunStatus.FAILED
            logger.info(
                f"Finished running container [name:{name}, "
                f"isSuccessful:{final_status == RunStatus.SUCCESS}]"
            )
        except RunTimeoutError as e:
            logger.error(str(e))
            final_status = RunStatus.TIMEOUT
            if not self.stop_container(name):
                logs = self.get_logs(name)
                logger.error(f"Failed to force-stop container after timeout [name:{name}]")
                return self._build_result(request, final_status, exit_code, logs, None)

        logs = self.get_logs(name)
        duration = self.get_execution_duration(name)
        if not self.remove_container(name):
            logger.warning(f"Failed to remove container after run [name:{name}]")
        return self._build_result(request, final_status, exit_code, logs, duration)

    def _build_result(
        self,
        request: RunRequest,
        final_status: RunStatus,
        exit_code: int,
        logs: ContainerLogs | None,
        duration: timedelta | None,
    ) -> RunResult:
        if logs is not None and request.display_logs:
            logger.info(f"Container stdout [name:{request.container_name}]:\n{logs.stdout}")
            if logs.stderr:
                logger.info(f"Container stderr [name:{request.container_name}]:\n{logs.stderr}")
        return RunResult(
            final_status=final_status,
            exit_code=exit_code,
            stdout=logs.stdout if logs else "",
            stderr=logs.stderr if logs else "",
            execution_duration=duration,
        )

    def wait_until_exit_or_timeout(self, container_name: str, deadline: datetime) -> int:
        """Poll a container until it exits or the deadline passes.

        Args:
            container_name: Container to wait for
            deadline: Timezone-aware date after which waiting stops

        Returns:
            The container exit code

        Raises:
            ValueError: If the name is blank or the deadline missing or naive
            RunTimeoutError: If the deadline passed before the container exited
        """
        _require_name(container_name)
        if deadline is None:
            raise ValueError("Timeout date cannot be null")
        if deadline.tzinfo is None:
            raise ValueError("Timeout date must be timezone-aware")

        polls = 0
        while True:
            if polls % STILL_RUNNING_LOG_EVERY == 0:
                logger.info(f"Container is running [name:{container_name}]")
            self._sleep()
            polls += 1
            if self.get_status(container_name) == ContainerStatus.EXITED:
                break
            if datetime.now(timezone.utc) > deadline:
                raise RunTimeoutError(container_name)

        exit_code = self.get_exit_code(container_name)
        logger.info(f"Container exited by itself [name:{container_name}, exitCode:{exit_code}]")
        return exit_code

    def _sleep(self) -> None:
        """Sleep one poll interval.

        ``time.sleep`` resumes by itself after a signal whose handler returns
        normally, so ``InterruptedError`` only shows up when a handler raises
        it. It is logged and the wait goes on until the deadline.
        """
        try:
            time.sleep(self.poll_interval_seconds)
        except InterruptedError as e:
            logger.error(f"Sleep was interrupted [exception:{e}]")

    # Containers

    def create_container(self, request: RunRequest, remove_duplicate: bool = True) -> str:
        """Create a container, handling an existing one with the same name.

        Args:
            request: Container creation parameters
            remove_duplicate: Stop and remove an existing container with the same
                name instead of giving up

        Returns:
            The new container id, or an empty string on failure
        """
        if request is None:
            raise ValueError("Run request cannot be null")
        name = request.container_name

        with self._engine.lock:
            if self.is_present(name):
                logger.info(
                    f"Found duplicate container [name:{name}, "
                    f"oldContainerId:{self.get_container_id(name)}, "
                    f"removeDuplicate:{remove_duplicate}]"
                )
                if not remove_duplicate:
                    return ""
                self.stop_container(name)
                self.remove_container(name)

            network = request.host_config.network_mode
            if network and not _is_builtin_network(network) and not self.create_network(network):
                logger.error(
                    f"Failed to create network for the container [name:{name}, network:{network}]"
                )
                return ""

            try:
                container_id = self._engine.create_container(request)
            except EngineError as e:
                logger.error(f"Error creating container [name:{name}]: {e}")
                return ""

        if container_id:
            logger.info(f"Created container [name:{name}, id:{container_id}]")
        return container_id

    def start_container(self, container_name: str) -> bool:
        _require_name(container_name)
        with self._engine.lock:
            try:
                self._engine.start_container(container_name)
            except EngineError as e:
                logger.error(f"Error starting container [name:{container_name}]: {e}")
                return False
        logger.info(f"Started container [name:{container_name}]")
        return True

    def stop_container(self, container_name: str) -> bool:
        """Stop a container immediately, without grace period.

        Returns:
            True if the container is stopped afterwards: it was stopped now,
            was not active, or does not exist. False if the engine failed.
        """
        _require_name(container_name)
        with self._engine.lock:
            if not self.is_present(container_name):
                logger.info(f"No container to stop [name:{container_name}]")
                return True
            if not self.is_active(container_name):
                return True
            try:
                self._engine.stop_container(container_name, timeout=0)
            except EngineError as e:
                logger.error(f"Error stopping container [name:{container_name}]: {e}")
                return False
        logger.info(f"Stopped container [name:{container_name}]")
        return True

    def remove_container(self, container_name: str) -> bool:
        """Remove a container; False if it does not exist or removal failed."""
        _require_name(container_name)
        with self._engine.lock:
            if not self.is_present(container_name):
                logger.info(f"No container to remove [name:{container_name}]")
                return False
            try:
                self._engine.remove_container(container_name)
            except EngineError as e:
                logger.error(f"Error removing container [name:{container_name}]: {e}")
                return False
        logger.info(f"Removed container [name:{container_name}]")
        return True

    def stop_and_remove(self, container_name: str) -> bool:
        """Stop then remove a container.

        Returns:
            True if no container with this name exists afterwards
        """
        self.stop_container(container_name)
        self.remove_container(container_name)
        return not self.is_present(container_name)

    def get_container_id(self, container_name: str) -> str:
        if not container_name or not container_name.strip():
            logger.error(f"Invalid container name [name:{container_name}]")
            return ""
        try:
            return self._engine.get_container_id(container_name) or ""
        except EngineError as e:
            logger.error(f"Error getting container id [name:{container_name}]: {e}")
            return ""

    def is_present(self, container_name: str) -> bool:
        return bool(self.get_container_id(container_name))

    def get_status(self, container_name: str) -> ContainerStatus:
        if not container_name or not container_name.strip():
            return ContainerStatus.UNKNOWN
        try:
            return self._engine.inspect_status(container_name)
        except EngineError as e:
            logger.error(f"Error getting container status [name:{container_name}]: {e}")
            return ContainerStatus.UNKNOWN

    def is_active(self, container_name: str) -> bool:
        """Return True if the container is running or restarting."""
        return self.get_status(container_name).is_active

    def get_exit_code(self, container_name: str) -> int:
        """Return the recorded exit code, -1 if it cannot be read."""
        _require_name(container_name)
        try:
            return self._engine.inspect_exit_code(container_name)
        except EngineError as e:
            logger.error(f"Error getting container exit code [name:{container_name}]: {e}")
            return -1

    def get_logs(self, container_name: str) -> ContainerLogs | None:
        if not container_name or not container_name.strip():
            logger.error(f"Invalid container name [name:{container_name}]")
            return None
        if not self.is_present(container_name):
            logger.error(f"Cannot get logs of inexistent container [name:{container_name}]")
            return None
        try:
            return self._engine.fetch_logs(container_name)
        except EngineError as e:
            logger.error(f"Error getting container logs [name:{container_name}]: {e}")
            return None

    def get_execution_duration(self, container_name: str) -> timedelta | None:
        """Return how long the container ran, None if unknown."""
        if not container_name or not container_name.strip():
            return None
        try:
            started_at, finished_at = self._engine.inspect_timestamps(container_name)
            return compute_execution_duration(started_at, finished_at)
        except (EngineError, ValueError) as e:
            logger.warning(f"Can't get execution duration of container [name:{container_name}]: {e}")
            return None

    def exec(self, container_name: str, *cmd: str) -> ContainerLogs | None:
        """Run a command inside a container and return its output."""
        if not container_name or not container_name.strip():
            return None
        if not self.is_present(container_name):
            logger.error(f"Cannot run exec since container not found [name:{container_name}]")
            return None
        try:
            return self._engine.exec_in_container(container_name, list(cmd))
        except EngineError as e:
            logger.error(f"Error running exec command [name:{container_name}, cmd:{cmd}]: {e}")
            return None

    # Images

    def pull_image(self, image: str, timeout: float | None = None) -> bool:
        """Pull an image, giving up after ``timeout`` seconds.

        The reference must carry an explicit tag or digest.

        Args:
            image: Image reference (e.g. 'alpine:3.19')
            timeout: Seconds to wait; defaults to ``pull_timeout_seconds``

        Returns:
            True if the image was pulled before the timeout
        """
        if not image or not image.strip():
            logger.error(f"Invalid image name [name:{image}]")
            return False
        repository, tag = split_image_tag(image)
        if not repository or not tag:
            logger.error(f"Error parsing image name [name:{image}, repo:{repository}, tag:{tag}]")
            return False
        if timeout is None:
            timeout = self.pull_timeout_seconds

        logger.info(f"Pulling image [name:{image}]")
        try:
            pulled = self._engine.pull_image(repository, tag, timeout)
        except EngineError as e:
            logger.error(f"Error pulling image [name:{image}]: {e}")
            return False
        if not pulled:
            logger.error(f"Image has not been pulled (timeout) [name:{image}, timeout:{timeout}s]")
            return False
        logger.info(f"Pulled image [name:{image}]")
        return True

    def get_image_id(self, image: str) -> str:
        if not image or not image.strip():
            logger.error(f"Invalid image name [name:{image}]")
            return ""
        try:
            return self._engine.get_image_id(normalize_image_name(image)) or ""
        except EngineError as e:
            logger.error(f"Error getting image id [name:{image}]: {e}")
            return ""

    def is_image_present(self, image: str) -> bool:
        return bool(self.get_image_id(image))

    def remove_image(self, image: str) -> bool:
        if not image or not image.strip():
            logger.error("Image name cannot be blank")
            return False
        with self._engine.lock:
            if not self.is_image_present(image):
                logger.info(f"No image to remove [name:{image}]")
                return False
            try:
                self._engine.remove_image(image)
            except EngineError as e:
                logger.error(f"Error removing image [name:{image}]: {e}")
                return False
        logger.info(f"Removed image [name:{image}]")
        return True

    # Networks and volumes

    def get_network_id(self, network_name: str) -> str:
        if not network_name or not network_name.strip():
            logger.error(f"Invalid network name [name:{network_name}]")
            return ""
        try:
            return self._engine.get_network_id(network_name) or ""
        except EngineError as e:
            logger.error(f"Error getting network id [name:{network_name}]: {e}")
            return ""

    def is_network_present(self, network_name: str) -> bool:
        return bool(self.get_network_id(network_name))

    def create_network(self, network_name: str) -> str:
        """Create a bridge network if missing and return its id ('' on failure)."""
        if not network_name or not network_name.strip():
            logger.error(f"Invalid network name [name:{network_name}]")
            return ""
        with self._engine.lock:
            network_id = self.get_network_id(network_name)
            if network_id:
                logger.info(f"Network already present [name:{network_name}]")
                return network_id
            try:
                network_id = self._engine.create_network(network_name)
            except EngineError as e:
                logger.error(f"Error creating network [name:{network_name}]: {e}")
                return ""
        logger.info(f"Created network [name:{network_name}]")
        return network_id

    def remove_network(self, network_name: str) -> bool:
        if not network_name or not network_name.strip():
            logger.error(f"Invalid network name [name:{network_name}]")
            return False
        with self._engine.lock:
            try:
                self._engine.remove_network(network_name)
            except EngineError as e:
                logger.warning(f"Error removing network [name:{network_name}]: {e}")
                return False
        logger.info(f"Removed network [name:{network_name}]")
        return True

    def is_volume_present(self, volume_name: str) -> bool:
        if not volume_name or not volume_name.strip():
            return False
        try:
            return self._engine.volume_exists(volume_name)
        except EngineError as e:
            logger.error(f"Error getting volume [name:{volume_name}]: {e}")
            return False

    def create_volume(self, volume_name: str) -> bool:
        if not volume_name or not volume_name.strip():
            logger.error(f"Invalid volume name [name:{volume_name}]")
            return False
        with self._engine.lock:
            if self.is_volume_present(volume_name):
                logger.info(f"Volume already present [name:{volume_name}]")
                return True
            try:
                created = self._engine.create_volume(volume_name)
            except EngineError as e:
                logger.error(f"Error creating volume [name:{volume_name}]: {e}")
                return False
        if created != volume_name:
            return False
        logger.info(f"Created volume [name:{volume_name}]")
        return True

    def remove_volume(self, volume_name: str) -> bool:
        if not volume_name or not volume_name.strip():
            logger.error(f"Invalid volume name [name:{volume_name}]")
            return False
        with self._engine.lock:
            try:
                self._engine.remove_volume(volume_name)
            except EngineError as e:
                logger.warning(f"Error removing volume [name:{volume_name}]: {e}")
                return False
        logger.info(f"Removed volume [name:{volume_name}]")
        return True

    def close(self) -> None:
        """Release the engine connection."""
        self._engine.close()

    def __enter__(self) -> ContainerRunner:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
