"""Image reference helpers.

An image may be addressed with or without the implicit default registry and
``library`` namespace (``alpine:latest``, ``library/alpine:latest`` and
``docker.io/library/alpine:latest`` are the same image). Presence checks
compare references through :func:`normalize_image_name` so every spelling
matches the tag stored locally.
"""

from __future__ import annotations

import re

from docker.auth import resolve_repository_name
from docker.errors import InvalidRepository
from docker.utils import parse_repository_tag

from runbox.core.constants import DEFAULT_REGISTRY

# Order matters: specific prefixes must win over the bare registry prefix.
_NORMALIZE_PATTERNS = (
    re.compile(rf"^{re.escape(DEFAULT_REGISTRY)}/library/(.+)$"),  # docker.io/library/alpine:latest
    re.compile(r"^library/(.+)$"),  # library/alpine:latest
    re.compile(rf"^{re.escape(DEFAULT_REGISTRY)}/(.+)$"),  # docker.io/alpine/socat:latest
)


def normalize_image_name(image: str) -> str:
    """Strip the default registry and ``library`` prefixes from a reference.

    Only the first matching rule is applied.

    Example:
        >>> normalize_image_name("docker.io/library/alpine:latest")
        'alpine:latest'
        >>> normalize_image_name("nexus.example/app:latest")
        'nexus.example/app:latest'
    """
    for pattern in _NORMALIZE_PATTERNS:
        match = pattern.match(image)
        if match:
            return match.group(1)
    return image


def split_image_tag(image: str) -> tuple[str, str | None]:
    """Split a reference into repository and tag (or digest).

    The tag is None when the reference carries none.
    """
    repository, tag = parse_repository_tag(image)
    return repository, tag


def parse_registry(image: str) -> str:
    """Return the registry host an image reference would be pulled from.

    Examples:
        host.xyz/image:tag           -> host.xyz
        username/image:tag           -> docker.io
        docker.io/username/image:tag -> docker.io

    Raises:
        ValueError: If the reference is not a valid repository name
    """
    repository, _ = split_image_tag(image)
    try:
        registry, _ = resolve_repository_name(repository)
    except InvalidRepository as e:
        raise ValueError(f"Invalid image reference: {image}") from e
    # docker-py already folds index.docker.io into docker.io
    return registry or DEFAULT_REGISTRY
