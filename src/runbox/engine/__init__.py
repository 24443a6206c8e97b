"""Engine module - container engine clients."""

from __future__ import annotations

from runbox.engine.base import ContainerEngine
from runbox.engine.docker_engine import DockerEngine
from runbox.engine.pool import EnginePool

__all__ = ["ContainerEngine", "DockerEngine", "EnginePool"]
