"""Exceptions raised inside runbox.

Engine implementations raise :class:`EngineError` for every failed call. The
runner catches these at the call site and converts them into conservative
return values, so they never escape :meth:`ContainerRunner.run`.
"""

from __future__ import annotations


class RunboxError(Exception):
    """Base class for runbox errors."""


class EngineError(RunboxError):
    """A container engine operation failed."""


class ContainerNotFound(EngineError):
    """The container, image or network does not exist."""


class RunTimeoutError(RunboxError):
    """A supervised container reached its deadline before exiting."""

    def __init__(self, container_name: str) -> None:
        super().__init__(f"Container reached timeout [name:{container_name}]")
        self.container_name = container_name
