"""Pydantic schemas for runbox.

This module defines the data contracts used throughout the package: the
description of one container run, the outcome it produces and the
configuration file layout.
"""

from __future__ import annotations

import shlex
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from runbox.core.constants import (
    DEFAULT_PULL_TIMEOUT_SECONDS,
    DEFAULT_REGISTRY,
    POLL_INTERVAL_SECONDS,
)
from runbox.core.drivers import DriverMode, devices_for


class ContainerStatus(str, Enum):
    """Container status as reported by the engine."""

    CREATED = "created"
    RUNNING = "running"
    RESTARTING = "restarting"
    EXITED = "exited"
    UNKNOWN = "unknown"  # not found, or a status outside this set

    @classmethod
    def from_engine(cls, value: str | None) -> ContainerStatus:
        """Map a raw engine status string, falling back to UNKNOWN."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_active(self) -> bool:
        return self in (ContainerStatus.RUNNING, ContainerStatus.RESTARTING)


class RunStatus(str, Enum):
    """Final status of a run."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"


class HostConfig(BaseModel):
    """Host-side configuration of a container.

    Only the fields runbox reads are declared; any extra key is forwarded
    untouched to the engine (e.g. ``nano_cpus``, ``cap_add``).
    """

    network_mode: str | None = Field(default=None, description="Network to attach to")
    binds: list[str] = Field(
        default_factory=list, description="Bind mounts as 'host:container[:mode]'"
    )
    devices: list[str] = Field(
        default_factory=list, description="Device specs as 'host[:container[:perms]]'"
    )
    mem_limit: str | None = Field(default=None, description="Memory limit (e.g., '8g')")
    cpuset_cpus: str | None = Field(default=None, description="CPU set (e.g., '0-3')")
    shm_size: str | None = Field(default=None)
    security_opt: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow", frozen=True)


class RunRequest(BaseModel):
    """Immutable description of one container execution.

    Attributes:
        container_name: Unique container name within the engine
        image: Image reference to run
        cmd: Command line, split shell-style into arguments
        entrypoint: Entrypoint override; an empty string clears the image entrypoint
        env: Ordered ``KEY=VALUE`` entries
        host_config: Host configuration (network, binds, declared devices, limits)
        container_port: Port to expose, 0 for none
        working_dir: Working directory inside the container
        max_execution_time_ms: Execution budget; ``<= 0`` runs detached
        driver_mode: Driver mode whose devices are added to the declared ones
        display_logs: Log captured stdout/stderr once the run is over
    """

    container_name: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)
    cmd: str | None = Field(default=None)
    entrypoint: str | None = Field(default=None)
    env: list[str] = Field(default_factory=list)
    host_config: HostConfig = Field(default_factory=HostConfig)
    container_port: int = Field(default=0, ge=0, le=65535)
    working_dir: str | None = Field(default=None)
    max_execution_time_ms: int = Field(default=0)
    driver_mode: DriverMode = Field(default=DriverMode.NONE)
    display_logs: bool = Field(default=False)

    model_config = ConfigDict(frozen=True)

    @field_validator("container_name", "image")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only names."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("driver_mode", mode="before")
    @classmethod
    def default_driver_mode(cls, v: Any) -> Any:
        """Treat a missing driver mode as NONE."""
        return DriverMode.NONE if v is None else v

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: list[str]) -> list[str]:
        for entry in v:
            if "=" not in entry:
                raise ValueError(f"Environment entry must be KEY=VALUE: {entry!r}")
        return v

    @property
    def devices(self) -> list[str]:
        """Declared devices followed by the driver mode devices.

        The merge is additive: nothing is replaced or deduplicated.
        """
        return [*self.host_config.devices, *devices_for(self.driver_mode)]

    @property
    def cmd_args(self) -> list[str]:
        return shlex.split(self.cmd) if self.cmd else []

    @property
    def entrypoint_args(self) -> list[str] | None:
        """Entrypoint as argv, ``[""]`` to clear it, None to keep the image's."""
        if self.entrypoint is None:
            return None
        return shlex.split(self.entrypoint) or [""]

    @property
    def is_detached(self) -> bool:
        return self.max_execution_time_ms <= 0


def build_run_request(
    *,
    host_config: HostConfig | dict[str, Any] | None = None,
    devices: list[str] | None = None,
    driver_mode: DriverMode | str | None = None,
    **fields: Any,
) -> RunRequest:
    """Build a RunRequest from separately declared devices and driver mode.

    Devices from ``host_config`` and ``devices`` are collected in that order;
    the driver mode is stored on its own and expanded by
    :attr:`RunRequest.devices`, so the result does not depend on which of them
    was declared first.

    Raises:
        pydantic.ValidationError: If a required field is missing or blank
    """
    if host_config is None:
        host_config = HostConfig()
    elif isinstance(host_config, dict):
        host_config = HostConfig.model_validate(host_config)

    declared = [*host_config.devices, *(devices or [])]
    host_config = host_config.model_copy(update={"devices": declared})

    return RunRequest(host_config=host_config, driver_mode=driver_mode, **fields)


class ContainerLogs(BaseModel):
    """Captured output of a container or an exec."""

    stdout: str = ""
    stderr: str = ""

    model_config = ConfigDict(frozen=True)


class RunResult(BaseModel):
    """Outcome of :meth:`ContainerRunner.run`.

    ``exit_code`` is -1 whenever it was not obtained: failed create/start,
    timeout, and detached runs. ``detached`` tells the last case apart.
    """

    final_status: RunStatus
    exit_code: int = Field(default=-1)
    stdout: str = Field(default="")
    stderr: str = Field(default="")
    execution_duration: timedelta | None = Field(default=None)
    detached: bool = Field(default=False)

    model_config = ConfigDict(frozen=True)

    @property
    def is_success(self) -> bool:
        return self.final_status == RunStatus.SUCCESS

    def to_summary_dict(self) -> dict[str, Any]:
        """Flat dictionary for display and JSON output."""
        return {
            "final_status": self.final_status.value,
            "exit_code": self.exit_code,
            "detached": self.detached,
            "execution_duration_seconds": (
                self.execution_duration.total_seconds()
                if self.execution_duration is not None
                else None
            ),
            "stdout_bytes": len(self.stdout.encode("utf-8")),
            "stderr_bytes": len(self.stderr.encode("utf-8")),
        }


class EngineConfig(BaseModel):
    """Connection settings for the container engine."""

    registry: str = Field(default=DEFAULT_REGISTRY, min_length=1)
    username: str | None = Field(default=None)
    password: SecretStr | None = Field(default=None)
    poll_interval_seconds: float = Field(default=POLL_INTERVAL_SECONDS, gt=0)
    pull_timeout_seconds: int = Field(default=DEFAULT_PULL_TIMEOUT_SECONDS, ge=1)


class RunConfig(BaseModel):
    """Top-level run configuration.

    This is the layout of the YAML/JSON files accepted by ``runbox run``.
    """

    engine: EngineConfig = Field(default_factory=EngineConfig)
    request: RunRequest
    pull_image: bool = Field(default=True, description="Pull the image if it is missing")
    remove_duplicate: bool = Field(default=True)
    results_dir: Path | None = Field(default=None, description="Directory for run results")
