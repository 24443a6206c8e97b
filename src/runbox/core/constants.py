"""Shared constants for runbox.

Centralized constants to avoid duplication and ensure consistency across modules.
"""

from __future__ import annotations

# Registry assumed when an image reference carries no explicit host.
DEFAULT_REGISTRY = "docker.io"

# Zero-value date reported by the engine for lifecycle events that did not happen yet.
UNSET_TIMESTAMP = "0001-01-01T00:00:00Z"

# Supervised runs check the container status at this interval.
POLL_INTERVAL_SECONDS = 1.0

DEFAULT_PULL_TIMEOUT_SECONDS = 60

# Emit a "still running" line every N polls while supervising.
STILL_RUNNING_LOG_EVERY = 60

# Network modes that are built into the engine and never created on demand.
BUILTIN_NETWORK_MODES = ("bridge", "host", "none", "default")
