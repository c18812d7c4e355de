"""Configuration management. All settings from environment variables with sensible defaults."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from taskmem.core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.agentcortex.dev"
VALID_BACKENDS = ("remote", "direct")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_BOOL_TRUTHY = {"true", "1", "yes"}


@dataclass(frozen=True)
class RemoteConfig:
    api_key: str = ""
    api_url: str = DEFAULT_API_URL
    timeout: float = 30.0  # seconds per HTTP request


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = "localhost"
    port: int = 5432
    name: str = "taskmem"
    user: str = "taskmem"
    password: str = ""

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"


@dataclass(frozen=True)
class EmbeddingConfig:
    backend: str = "openai"  # "openai" or registered provider name
    dimensions: int = 1536

    # OpenAI-compatible settings (works with OpenAI, Ollama, vLLM, LM Studio, Together)
    openai_base_url: str = "https://api.openai.com"
    openai_model: str = "text-embedding-3-small"
    openai_api_key: str = ""
    timeout: float = 60.0


@dataclass(frozen=True)
class AnalyticsConfig:
    enabled: bool = True
    queue_max: int = 1_000
    flush_interval: float = 1.0  # seconds between queue drains


@dataclass(frozen=True)
class Config:
    backend: str = "remote"  # "remote" or "direct"
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    log_level: str = "INFO"


def _env_number(name: str, default: str, cast):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _env_log_level() -> str:
    level = os.getenv("TASKMEM_LOG_LEVEL", "INFO").strip().upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f"TASKMEM_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
    return level


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _BOOL_TRUTHY


def load_config() -> Config:
    """Load configuration from environment variables."""
    return Config(
        backend=os.getenv("TASKMEM_BACKEND", "remote").strip().lower(),
        remote=RemoteConfig(
            api_key=os.getenv("TASKMEM_API_KEY", ""),
            api_url=os.getenv("TASKMEM_API_URL", DEFAULT_API_URL).rstrip("/"),
            timeout=_env_number("TASKMEM_HTTP_TIMEOUT", "30", float),
        ),
        db=DatabaseConfig(
            host=os.getenv("TASKMEM_DB_HOST", "localhost"),
            port=_env_number("TASKMEM_DB_PORT", "5432", int),
            name=os.getenv("TASKMEM_DB_NAME", "taskmem"),
            user=os.getenv("TASKMEM_DB_USER", "taskmem"),
            password=os.getenv("TASKMEM_DB_PASS", ""),
        ),
        embedding=EmbeddingConfig(
            backend=os.getenv("TASKMEM_EMBEDDING_BACKEND", "openai"),
            dimensions=_env_number("TASKMEM_EMBEDDING_DIMENSIONS", "1536", int),
            openai_base_url=os.getenv("TASKMEM_EMBEDDING_OPENAI_URL", "https://api.openai.com"),
            openai_model=os.getenv("TASKMEM_EMBEDDING_OPENAI_MODEL", "text-embedding-3-small"),
            openai_api_key=os.getenv("TASKMEM_EMBEDDING_OPENAI_KEY", ""),
        ),
        analytics=AnalyticsConfig(
            enabled=_env_bool("TASKMEM_ANALYTICS_ENABLED", True),
        ),
        log_level=_env_log_level(),
    )


def validate_config(config: Config) -> None:
    """Check that everything the selected backend needs is present.

    Raises ConfigError naming every missing environment variable.
    """
    if config.backend not in VALID_BACKENDS:
        raise ConfigError(
            f"Unknown backend: {config.backend!r}. "
            f"Set TASKMEM_BACKEND to one of: {', '.join(VALID_BACKENDS)}"
        )

    missing: list[str] = []
    if config.backend == "remote":
        if not config.remote.api_key:
            missing.append("TASKMEM_API_KEY")
    else:
        if not config.db.password:
            missing.append("TASKMEM_DB_PASS")
        if not config.embedding.openai_api_key and config.embedding.backend == "openai":
            missing.append("TASKMEM_EMBEDDING_OPENAI_KEY")

    if missing:
        raise ConfigError(
            f"Missing required environment variable(s) for the {config.backend} backend: "
            f"{', '.join(missing)}"
        )

    if config.backend == "remote" and config.remote.api_url != DEFAULT_API_URL:
        logger.info("Using API endpoint override: %s", config.remote.api_url)
