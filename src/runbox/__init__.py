"""runbox - supervised single-container task runner."""

from __future__ import annotations

from runbox.core.drivers import DriverMode
from runbox.core.schemas import (
    ContainerStatus,
    HostConfig,
    RunRequest,
    RunResult,
    RunStatus,
    build_run_request,
)
from runbox.runners.container_runner import ContainerRunner
from runbox.utils.images import normalize_image_name, parse_registry

__version__ = "0.1.0"

__all__ = [
    "ContainerRunner",
    "ContainerStatus",
    "DriverMode",
    "HostConfig",
    "RunRequest",
    "RunResult",
    "RunStatus",
    "build_run_request",
    "normalize_image_name",
    "parse_registry",
    "__version__",
]
