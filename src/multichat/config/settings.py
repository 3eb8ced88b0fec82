"""
Configuration management for Multi Chat.

This module implements hierarchical configuration loading with validation,
following the pattern: CLI args > env vars > user config > defaults.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class APIConfig(BaseModel):
    """Provider API configuration."""

    timeout: int = Field(
        default=60, ge=1, le=600, description="Request timeout in seconds"
    )
    retries: int = Field(default=2, ge=0, le=10, description="Number of retries")
    base_delay: float = Field(
        default=1.0, ge=0.0, le=30.0, description="Initial backoff delay in seconds"
    )
    max_backoff: int = Field(
        default=60, ge=1, description="Maximum backoff time in seconds"
    )


class EngineConfig(BaseModel):
    """Conversation engine configuration."""

    default_model: str = Field(
        default="chatgpt", description="Catalog id assigned to new sessions"
    )
    max_tokens: int | None = Field(
        default=None, ge=1, le=32000, description="Default cap on generated tokens"
    )
    temperature: float | None = Field(
        default=None, ge=0.0, le=2.0, description="Default sampling temperature"
    )
    turn_timeout: float | None = Field(
        default=None, gt=0, description="Deadline for a whole turn in seconds"
    )

    @field_validator("default_model")
    @classmethod
    def validate_default_model(cls, v):
        if not v or not v.strip():
            raise ValueError("Default model cannot be empty")
        return v.strip()


class AppSettings(BaseSettings):
    """Main application settings using environment variables."""

    # Application info
    app_name: str = Field(default="Multi Chat", description="Application name")
    environment: str = Field(
        default="development",
        description="Environment (development/staging/production)",
    )

    # Provider credentials
    openai_api_key: str | None = Field(
        default=None, description="OpenAI API key", repr=False
    )
    anthropic_api_key: str | None = Field(
        default=None, description="Anthropic API key", repr=False
    )
    google_api_key: str | None = Field(
        default=None, description="Google AI API key", repr=False
    )

    # Provider endpoints
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", description="OpenAI base URL"
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com", description="Anthropic base URL"
    )
    google_base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Google AI base URL",
    )
    lmstudio_base_url: str = Field(
        default="http://localhost:1234", description="LM Studio base URL"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Optional model catalog override
    catalog_path: str | None = Field(
        default=None, description="YAML file replacing the built-in model catalog"
    )

    # Configuration sections
    api: APIConfig = Field(default_factory=APIConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        valid_environments = {"development", "staging", "production"}
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of {valid_environments}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_api_keys(self):
        """Require at least one cloud credential outside development."""
        if self.environment != "development" and not self.configured_key_providers():
            raise ValueError(
                "At least one provider API key must be configured in non-development environments"
            )

        return self

    def configured_key_providers(self) -> list[str]:
        """Providers that have an API key configured."""
        return [
            provider
            for provider in ("openai", "anthropic", "google")
            if self.get_api_key(provider)
        ]

    def get_api_key(self, provider: str) -> str | None:
        """Get API key for a specific provider."""
        keys = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "google": self.google_api_key,
        }
        return keys.get(provider.lower())

    def get_base_url(self, provider: str) -> str | None:
        """Get the endpoint for a specific provider."""
        urls = {
            "openai": self.openai_base_url,
            "anthropic": self.anthropic_base_url,
            "google": self.google_base_url,
            "lmstudio": self.lmstudio_base_url,
        }
        return urls.get(provider.lower())


class UserConfigSource(PydanticBaseSettingsSource):
    """
    Settings source backed by a parsed YAML user config.

    Ranked below environment variables and the .env file, so keys inside
    nested sections such as ``api`` can still be overridden by ``API__RETRIES``.
    """

    def __init__(self, settings_cls: type[BaseSettings], user_config: dict[str, Any]):
        super().__init__(settings_cls)
        self.user_config = user_config

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self.user_config.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return {
            field_name: self.user_config[field_name]
            for field_name in self.settings_cls.model_fields
            if field_name in self.user_config
        }


def settings_class_for(user_config: dict[str, Any]) -> type[AppSettings]:
    """Build an AppSettings subclass that reads ``user_config`` under the environment."""
    if not user_config:
        return AppSettings

    class UserConfiguredSettings(AppSettings):
        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,
            file_secret_settings: PydanticBaseSettingsSource,
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            return (
                init_settings,
                env_settings,
                dotenv_settings,
                UserConfigSource(settings_cls, user_config),
                file_secret_settings,
            )

    return UserConfiguredSettings


class ConfigurationManager:
    """Manages hierarchical configuration loading and validation."""

    def __init__(self):
        self._settings: AppSettings | None = None
        self._user_config: dict[str, Any] = {}

    def load_configuration(
        self,
        config_path: Path | None = None,
        override_env: dict[str, str] | None = None,
    ) -> AppSettings:
        """
        Load configuration with hierarchy: CLI/override > env vars > user config > defaults.

        Args:
            config_path: Path to user configuration file
            override_env: Environment variable overrides (simulating CLI args)

        Returns:
            Validated AppSettings instance
        """
        if config_path and config_path.exists():
            self._user_config = self._load_yaml_config(config_path)

        if override_env:
            for key, value in override_env.items():
                os.environ[key] = value

        self._settings = settings_class_for(self._user_config)()
        return self._settings

    def _load_yaml_config(self, config_path: Path) -> dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
                return config or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML configuration: {e}") from e
        except FileNotFoundError:
            return {}
        except Exception as e:
            raise ValueError(f"Failed to load configuration: {e}") from e

    @property
    def settings(self) -> AppSettings:
        """Get current settings (load default if not loaded)."""
        if self._settings is None:
            self._settings = self.load_configuration()
        return self._settings

    def reset(self):
        """Reset the configuration manager (useful for testing)."""
        self._settings = None
        self._user_config = {}


# Global configuration manager instance
config_manager = ConfigurationManager()


def get_settings() -> AppSettings:
    """Get the current application settings."""
    return config_manager.settings


def load_config(config_path: Path | None = None) -> AppSettings:
    """Load configuration from file and environment."""
    return config_manager.load_configuration(config_path)
