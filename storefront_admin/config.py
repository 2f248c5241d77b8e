"""
Configuration module for the storefront admin console.

Provides centralized configuration for the trash lifecycle, the permission
gate and the persistence layer.
"""

import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union, get_args, get_origin

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_RETENTION_DAYS = 30


class LogLevel(str, Enum):
    """Logging levels accepted by the console."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class AdminConfig(BaseModel):
    """Central configuration for the admin console.

    Configuration can be loaded from environment variables, from a JSON or
    YAML file, or set programmatically.

    Configuration Sources (in order of precedence):
        1. Programmatic settings (highest priority)
        2. Environment variables (STOREFRONT_ prefix)
        3. Configuration files (JSON or YAML)
        4. Default values (lowest priority)

    Example:
        >>> config = AdminConfig(default_retention_days=14)
        >>> os.environ["STOREFRONT_DATABASE_URL"] = "sqlite:///shop.db"
        >>> config = AdminConfig.from_env()
        >>> config = AdminConfig.from_file("admin.yaml")

    Note:
        The activity log retention is stored in the site settings table under
        ``log_retention_setting_key`` and overrides ``default_retention_days``
        for activity logs only.
    """

    # General settings
    application_name: str = Field(
        "Storefront Admin", description="Name written into activity logs"
    )
    environment: str = Field(
        "production", description="Environment (development, staging, production)"
    )
    log_level: LogLevel = Field(LogLevel.INFO, description="Console logging level")

    # Persistence
    database_url: str = Field(
        "sqlite:///storefront.db", description="SQLAlchemy connection string"
    )
    cache_enabled: bool = Field(
        True, description="Cache list queries until the next mutation"
    )

    # Trash and retention
    default_retention_days: int = Field(
        DEFAULT_RETENTION_DAYS,
        description="Days a trashed record is kept before purge",
        ge=1,
    )
    log_retention_setting_key: str = Field(
        "log_retention_days",
        description="Site setting holding the activity log retention window",
    )

    # Pages
    homepage_setting_key: str = Field(
        "homepage_slug", description="Site setting holding the homepage slug"
    )
    default_homepage_slug: str = Field(
        "home", description="Homepage slug used when the setting is absent"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is valid."""
        valid_environments = {"development", "staging", "production", "test"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Environment must be one of: {', '.join(sorted(valid_environments))}"
            )
        return v.lower()

    @field_validator("default_homepage_slug")
    @classmethod
    def validate_homepage_slug(cls, v: str) -> str:
        """Slugs are stored without surrounding slashes."""
        slug = v.strip().strip("/")
        if not slug:
            raise ValueError("Homepage slug cannot be empty")
        return slug

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_env(cls, prefix: str = "STOREFRONT_") -> "AdminConfig":
        """
        Load configuration from environment variables.

        Args:
            prefix: Prefix for environment variables

        Returns:
            Configuration instance
        """
        config_dict: Dict[str, Any] = {}

        for field_name, field_info in cls.model_fields.items():
            env_var = f"{prefix}{field_name.upper()}"
            if env_var not in os.environ:
                continue
            value = os.environ[env_var]

            field_type = field_info.annotation
            if get_origin(field_type) is Union:
                args = get_args(field_type)
                field_type = next((arg for arg in args if arg is not type(None)), str)

            try:
                if field_type == bool:
                    config_dict[field_name] = value.lower() in (
                        "true",
                        "1",
                        "yes",
                        "on",
                    )
                elif field_type == int:
                    config_dict[field_name] = int(value)
                elif isinstance(field_type, type) and issubclass(field_type, Enum):
                    config_dict[field_name] = field_type(value.upper())
                else:
                    config_dict[field_name] = value
            except (ValueError, TypeError):
                # Let pydantic report the bad value
                config_dict[field_name] = value

        return cls.model_validate(config_dict)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AdminConfig":
        """
        Load configuration from a JSON or YAML file.

        Args:
            path: File path; ``.yaml``/``.yml`` files are parsed as YAML

        Returns:
            Configuration instance
        """
        path = Path(path)
        text = path.read_text(encoding="utf-8")

        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")

        return cls.model_validate(data)


# Global configuration instance
_config: Optional[AdminConfig] = None


def get_config() -> AdminConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration
    """
    global _config

    if _config is None:
        _config = AdminConfig.from_env()

    return _config


def set_config(config: Optional[AdminConfig]) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Configuration to set, or None to reload from the environment
    """
    global _config
    _config = config


def configure(**kwargs: Any) -> AdminConfig:
    """
    Configure the console with keyword arguments.

    Args:
        **kwargs: Configuration parameters

    Returns:
        Updated configuration
    """
    global _config

    if _config is None:
        _config = AdminConfig(**kwargs)
    else:
        config_dict = _config.model_dump()
        config_dict.update(kwargs)
        _config = AdminConfig(**config_dict)

    return _config
