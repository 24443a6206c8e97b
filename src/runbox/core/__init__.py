"""Core module - configuration, schemas and driver policy."""

from __future__ import annotations

from runbox.core.config import load_config
from runbox.core.constants import DEFAULT_REGISTRY, POLL_INTERVAL_SECONDS, UNSET_TIMESTAMP
from runbox.core.drivers import DriverMode, devices_for, is_driver_mode_active
from runbox.core.exceptions import ContainerNotFound, EngineError, RunboxError, RunTimeoutError
from runbox.core.schemas import (
    ContainerLogs,
    ContainerStatus,
    EngineConfig,
    HostConfig,
    RunConfig,
    RunRequest,
    RunResult,
    RunStatus,
    build_run_request,
)

__all__ = [
    "DEFAULT_REGISTRY",
    "POLL_INTERVAL_SECONDS",
    "UNSET_TIMESTAMP",
    "ContainerLogs",
    "ContainerNotFound",
    "ContainerStatus",
    "DriverMode",
    "EngineConfig",
    "EngineError",
    "HostConfig",
    "RunConfig",
    "RunRequest",
    "RunResult",
    "RunStatus",
    "RunTimeoutError",
    "RunboxError",
    "build_run_request",
    "devices_for",
    "is_driver_mode_active",
    "load_config",
]
