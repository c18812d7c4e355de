"""Backend factory with pluggable provider registry.

Built-in backends: remote (hosted API), direct (PostgreSQL + embedding service).
Register custom backends via ``register_backend(name, factory_fn)``.
"""

from __future__ import annotations

import logging
from typing import Callable

from taskmem.backends.interface import Backend
from taskmem.config import Config
from taskmem.core.errors import ConfigError

logger = logging.getLogger(__name__)

# Provider registry: name -> factory function(config) -> Backend
_backends: dict[str, Callable[[Config], Backend]] = {}


def register_backend(name: str, factory: Callable[[Config], Backend]) -> None:
    """Register a custom backend.

    Args:
        name: Backend name (matches TASKMEM_BACKEND env var).
        factory: Callable that takes the full Config and returns a Backend.
    """
    _backends[name] = factory
    logger.info("Registered backend: %s", name)


def get_backend(config: Config) -> Backend:
    """Return the configured backend, not yet started."""
    name = config.backend

    if name in _backends:
        return _backends[name](config)

    if name == "remote":
        from taskmem.backends.remote import RemoteBackend
        return RemoteBackend(config.remote, config.analytics)

    if name == "direct":
        from taskmem.backends.direct import DirectBackend
        from taskmem.embedding import get_embedding_engine
        from taskmem.storage.database import Database
        return DirectBackend(Database(config.db), get_embedding_engine(config.embedding))

    available = sorted(set(["remote", "direct"] + list(_backends.keys())))
    raise ConfigError(f"Unknown backend: {name!r}. Available: {', '.join(available)}")
