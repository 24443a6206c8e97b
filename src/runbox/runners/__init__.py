"""Runners module - Container lifecycle management."""

from __future__ import annotations

from runbox.runners.container_runner import ContainerRunner, compute_execution_duration

__all__ = ["ContainerRunner", "compute_execution_duration"]
