"""Embedding providers, selected by TASKMEM_EMBEDDING_BACKEND.

``openai`` ships built in. Other providers plug in through
``register_embedding_provider`` before the backend starts.
"""

from __future__ import annotations

import logging
from typing import Callable

from taskmem.config import EmbeddingConfig
from taskmem.core.errors import ConfigError
from taskmem.embedding.interface import EmbeddingInterface

logger = logging.getLogger(__name__)

EmbeddingFactory = Callable[[EmbeddingConfig], EmbeddingInterface]

_providers: dict[str, EmbeddingFactory] = {}


def _openai(config: EmbeddingConfig) -> EmbeddingInterface:
    from taskmem.embedding.openai_compat import OpenAICompatibleEmbedding
    return OpenAICompatibleEmbedding(config)


BUILTIN_PROVIDERS: dict[str, EmbeddingFactory] = {"openai": _openai}


def register_embedding_provider(name: str, factory: EmbeddingFactory) -> None:
    """Add or replace a provider. Registered names shadow the built-ins."""
    _providers[name] = factory
    logger.info("Embedding provider %r registered", name)


def get_embedding_engine(config: EmbeddingConfig) -> EmbeddingInterface:
    factory = _providers.get(config.backend) or BUILTIN_PROVIDERS.get(config.backend)
    if factory is None:
        names = ", ".join(sorted({*BUILTIN_PROVIDERS, *_providers}))
        raise ConfigError(f"Unknown embedding backend: {config.backend!r}. Available: {names}")
    return factory(config)
