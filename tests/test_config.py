"""Tests for environment configuration loading and validation."""

import os
from unittest.mock import patch

import pytest

from taskmem.config import (
    DEFAULT_API_URL,
    Config,
    DatabaseConfig,
    EmbeddingConfig,
    RemoteConfig,
    load_config,
    validate_config,
)
from taskmem.core.errors import ConfigError


class TestLoadConfig:
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = load_config()
        assert config.backend == "remote"
        assert config.remote.api_url == DEFAULT_API_URL
        assert config.remote.api_key == ""
        assert config.remote.timeout == 30.0
        assert config.db.port == 5432
        assert config.embedding.dimensions == 1536
        assert config.analytics.enabled is True
        assert config.log_level == "INFO"

    def test_overrides(self):
        env = {
            "TASKMEM_BACKEND": " Direct ",
            "TASKMEM_API_URL": "http://localhost:8080/",
            "TASKMEM_DB_HOST": "db",
            "TASKMEM_DB_PORT": "6543",
            "TASKMEM_DB_PASS": "secret",
            "TASKMEM_EMBEDDING_DIMENSIONS": "768",
            "TASKMEM_ANALYTICS_ENABLED": "no",
            "TASKMEM_LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_config()
        assert config.backend == "direct"
        assert config.remote.api_url == "http://localhost:8080"
        assert config.db.host == "db"
        assert config.db.port == 6543
        assert config.db.password == "secret"
        assert config.embedding.dimensions == 768
        assert config.analytics.enabled is False
        assert config.log_level == "DEBUG"

    def test_non_numeric_port_is_config_error(self):
        with patch.dict(os.environ, {"TASKMEM_DB_PORT": "five"}, clear=True):
            with pytest.raises(ConfigError, match="TASKMEM_DB_PORT"):
                load_config()

    def test_unknown_log_level_is_config_error(self):
        with patch.dict(os.environ, {"TASKMEM_LOG_LEVEL": "loud"}, clear=True):
            with pytest.raises(ConfigError, match="TASKMEM_LOG_LEVEL"):
                load_config()


class TestValidateConfig:
    def test_remote_requires_api_key(self):
        with pytest.raises(ConfigError, match="TASKMEM_API_KEY"):
            validate_config(Config(backend="remote"))

    def test_remote_with_key_passes(self):
        validate_config(Config(backend="remote", remote=RemoteConfig(api_key="k")))

    def test_direct_lists_every_missing_variable(self):
        with pytest.raises(ConfigError) as exc:
            validate_config(Config(backend="direct"))
        assert "TASKMEM_DB_PASS" in str(exc.value)
        assert "TASKMEM_EMBEDDING_OPENAI_KEY" in str(exc.value)

    def test_direct_complete_passes(self):
        validate_config(Config(
            backend="direct",
            db=DatabaseConfig(password="pw"),
            embedding=EmbeddingConfig(openai_api_key="sk"),
        ))

    def test_unknown_backend(self):
        with pytest.raises(ConfigError, match="Unknown backend"):
            validate_config(Config(backend="sqlite"))


def test_dsn():
    """DatabaseConfig.dsn should be a postgresql:// URL."""
    db = DatabaseConfig(host="h", port=1, name="n", user="u", password="p")
    assert db.dsn == "postgresql://u:p@h:1/n"
