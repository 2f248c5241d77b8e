"""Tests for console configuration."""

import json

import pytest
import yaml
from pydantic import ValidationError

from storefront_admin.config import (
    DEFAULT_RETENTION_DAYS,
    AdminConfig,
    LogLevel,
    configure,
    get_config,
    set_config,
)


class TestAdminConfig:
    """Test configuration defaults and validation."""

    def test_defaults(self):
        config = AdminConfig()

        assert config.default_retention_days == DEFAULT_RETENTION_DAYS == 30
        assert config.log_retention_setting_key == "log_retention_days"
        assert config.default_homepage_slug == "home"
        assert config.log_level == LogLevel.INFO

    def test_invalid_environment(self):
        with pytest.raises(ValidationError):
            AdminConfig(environment="moon")

    def test_environment_normalized(self):
        assert AdminConfig(environment="Staging").environment == "staging"

    def test_retention_must_be_positive(self):
        with pytest.raises(ValidationError):
            AdminConfig(default_retention_days=0)

    def test_homepage_slug_stripped(self):
        assert AdminConfig(default_homepage_slug="/landing/").default_homepage_slug == "landing"

    def test_empty_homepage_slug_rejected(self):
        with pytest.raises(ValidationError):
            AdminConfig(default_homepage_slug="/")

    def test_to_dict_is_json_ready(self):
        data = AdminConfig().to_dict()

        assert data["log_level"] == "INFO"
        json.dumps(data)


class TestConfigSources:
    """Test loading configuration from env and files."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STOREFRONT_DEFAULT_RETENTION_DAYS", "14")
        monkeypatch.setenv("STOREFRONT_CACHE_ENABLED", "no")
        monkeypatch.setenv("STOREFRONT_LOG_LEVEL", "debug")
        monkeypatch.setenv("STOREFRONT_ENVIRONMENT", "test")

        config = AdminConfig.from_env()

        assert config.default_retention_days == 14
        assert config.cache_enabled is False
        assert config.log_level == LogLevel.DEBUG
        assert config.environment == "test"

    def test_from_env_bad_value(self, monkeypatch):
        monkeypatch.setenv("STOREFRONT_DEFAULT_RETENTION_DAYS", "many")

        with pytest.raises(ValidationError):
            AdminConfig.from_env()

    def test_from_yaml_file(self, tmp_path):
        path = tmp_path / "admin.yaml"
        path.write_text(yaml.safe_dump({"default_retention_days": 7, "environment": "test"}))

        config = AdminConfig.from_file(path)

        assert config.default_retention_days == 7

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "admin.json"
        path.write_text(json.dumps({"database_url": "sqlite:///shop.db"}))

        assert AdminConfig.from_file(path).database_url == "sqlite:///shop.db"

    def test_file_must_hold_mapping(self, tmp_path):
        path = tmp_path / "admin.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ValueError, match="mapping"):
            AdminConfig.from_file(path)


class TestGlobalConfig:
    """Test the process-wide configuration."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_set_config(self):
        custom = AdminConfig(default_retention_days=5)
        set_config(custom)

        assert get_config() is custom

    def test_configure_updates(self):
        configure(default_retention_days=9)
        config = configure(default_homepage_slug="start")

        assert config.default_retention_days == 9
        assert config.default_homepage_slug == "start"
        assert get_config() is config
