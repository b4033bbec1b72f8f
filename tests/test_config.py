"""Tests for configuration management."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from library_circulation.config import ServerConfig, get_config, reset_config, set_config


@pytest.fixture
def clean_env(monkeypatch):
    """Remove LIBRARY_CIRCULATION_* variables for the duration of a test."""
    for key in list(os.environ):
        if key.startswith("LIBRARY_CIRCULATION_"):
            monkeypatch.delenv(key)
    reset_config()
    yield
    reset_config()


@pytest.mark.usefixtures("clean_env")
class TestServerConfig:
    def test_defaults(self):
        config = ServerConfig(_env_file=None)

        assert config.server_name == "library-circulation"
        assert config.lock_timeout_seconds == 5.0
        assert config.require_authentication is True
        assert config.restrict_returns_to_borrower is False
        assert config.search_index_enabled is True
        assert config.read_page_size == 1500
        assert config.transport == "stdio"
        assert config.database_path.is_absolute()

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LIBRARY_CIRCULATION_LOCK_TIMEOUT_SECONDS", "0.5")
        monkeypatch.setenv("LIBRARY_CIRCULATION_RESTRICT_RETURNS_TO_BORROWER", "true")
        monkeypatch.setenv("LIBRARY_CIRCULATION_LOG_LEVEL", "warning")

        config = ServerConfig(_env_file=None)

        assert config.lock_timeout_seconds == 0.5
        assert config.restrict_returns_to_borrower is True
        assert config.log_level == "WARNING"

    @pytest.mark.parametrize("timeout", [0, -1, 301])
    def test_lock_timeout_bounds(self, timeout):
        with pytest.raises(ValidationError):
            ServerConfig(_env_file=None, lock_timeout_seconds=timeout)

    def test_rejects_unknown_hash_method(self):
        with pytest.raises(ValidationError, match="Unsupported password hash method"):
            ServerConfig(_env_file=None, password_hash_method="md5")

    def test_accepts_pbkdf2_with_parameters(self):
        config = ServerConfig(_env_file=None, password_hash_method="pbkdf2:sha256:1000")
        assert config.password_hash_method == "pbkdf2:sha256:1000"

    def test_rejects_small_page_size(self):
        with pytest.raises(ValidationError):
            ServerConfig(_env_file=None, read_page_size=10)

    def test_database_url_from_path(self, tmp_path: Path):
        config = ServerConfig(_env_file=None, database_path=tmp_path / "lib.db")
        assert config.get_database_url() == f"sqlite:///{tmp_path / 'lib.db'}"

    def test_database_url_override(self):
        config = ServerConfig(_env_file=None, database_url="postgresql://localhost/library")
        assert config.get_database_url() == "postgresql://localhost/library"

    def test_is_development(self):
        assert ServerConfig(_env_file=None, debug=True).is_development
        assert ServerConfig(_env_file=None, log_level="DEBUG").is_development
        assert not ServerConfig(_env_file=None).is_development

    def test_server_info(self):
        info = ServerConfig(_env_file=None, server_version="1.2.3").server_info
        assert info == {"name": "library-circulation", "version": "1.2.3", "transport": "stdio"}


@pytest.mark.usefixtures("clean_env")
class TestConfigSingleton:
    def test_get_config_returns_same_instance(self):
        assert get_config() is get_config()

    def test_set_config_replaces_instance(self):
        config = ServerConfig(_env_file=None, read_page_size=200)
        set_config(config)
        assert get_config() is config

    def test_reset_config(self):
        first = get_config()
        reset_config()
        assert get_config() is not first
