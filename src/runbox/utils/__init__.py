"""Utils module - Shared utilities."""

from __future__ import annotations

from runbox.utils.images import normalize_image_name, parse_registry, split_image_tag
from runbox.utils.logging import setup_logging

__all__ = [
    "normalize_image_name",
    "parse_registry",
    "setup_logging",
    "split_image_tag",
]
