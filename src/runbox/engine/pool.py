"""Explicitly owned pool of engine connections.

One engine is kept per ``(registry, username)`` pair. The pool is created and
closed by its owner; nothing is cached at module level.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from types import TracebackType

from runbox.core.constants import DEFAULT_REGISTRY
from runbox.engine.docker_engine import DockerEngine

logger = logging.getLogger(__name__)


class EnginePool:
    """Engines keyed by registry and username.

    Example:
        ```python
        with EnginePool() as pool:
            engine = pool.get("docker.io", "user", "secret")
            runner = ContainerRunner(engine)
        ```
    """

    def __init__(self, factory: Callable[[], DockerEngine] = DockerEngine) -> None:
        """Initialize an empty pool.

        Args:
            factory: Builds a new unauthenticated engine
        """
        self._factory = factory
        self._engines: dict[tuple[str, str], DockerEngine] = {}
        self._lock = threading.Lock()

    def get(
        self,
        registry: str = DEFAULT_REGISTRY,
        username: str | None = None,
        password: str | None = None,
    ) -> DockerEngine:
        """Return the engine for this registry and user, opening it if needed.

        Args:
            registry: Registry address (e.g. 'docker.io', 'nexus.example')
            username: Registry user; None for anonymous access
            password: Registry password, required with a username

        Raises:
            ValueError: If the registry is blank or a username comes without password
            EngineError: If the daemon is unreachable or authentication fails
        """
        if not registry or not registry.strip():
            raise ValueError("Registry address must not be blank")
        username = (username or "").strip()
        if username and not password:
            raise ValueError("Registry password must not be blank")

        key = (registry, username)
        with self._lock:
            engine = self._engines.get(key)
            if engine is None:
                engine = self._factory()
                if username:
                    try:
                        engine.login(username, password or "", registry)
                    except Exception:
                        engine.close()
                        raise
                self._engines[key] = engine
                logger.debug(f"Opened engine [registry:{registry}, username:{username or '-'}]")
            return engine

    def __len__(self) -> int:
        return len(self._engines)

    def close(self) -> None:
        """Close every engine and empty the pool."""
        with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            engine.close()

    def __enter__(self) -> EnginePool:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
