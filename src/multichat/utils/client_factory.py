"""
Client factory utilities for creating configured AI model clients.

This module provides convenience functions for creating clients from
application configuration with proper validation and error handling.
"""

import logging
from typing import Any

from ..clients import BaseClient, create_client, get_supported_providers
from ..config.settings import AppSettings, get_settings

logger = logging.getLogger(__name__)

_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
}


class ClientFactoryError(Exception):
    """Error creating client from configuration."""
    pass


def create_client_from_config(
    provider: str,
    config_overrides: dict[str, Any] | None = None,
    settings: AppSettings | None = None,
) -> BaseClient:
    """
    Create a client using application configuration.

    Args:
        provider: Provider name (e.g., "openai")
        config_overrides: Optional configuration overrides
        settings: Settings to read; defaults to the global settings

    Returns:
        Configured client instance

    Raises:
        ClientFactoryError: If client creation fails

    Example:
        >>> client = create_client_from_config("anthropic")
    """
    try:
        settings = settings or get_settings()

        if provider not in get_supported_providers():
            raise ClientFactoryError(f"Unsupported provider: {provider}")

        client_config = _get_provider_config(provider, settings)

        if config_overrides:
            client_config.update(config_overrides)

        client = create_client(provider, **client_config)

        logger.info(f"Created {provider} client successfully")
        return client

    except ClientFactoryError:
        raise
    except Exception as e:
        logger.error(f"Failed to create {provider} client: {e}")
        raise ClientFactoryError(f"Failed to create {provider} client: {e}") from e


def _get_provider_config(provider: str, settings: AppSettings) -> dict[str, Any]:
    """Get configuration for a specific provider."""
    common = {
        "timeout": settings.api.timeout,
        "max_retries": settings.api.retries,
        "base_delay": settings.api.base_delay,
        "max_delay": settings.api.max_backoff,
    }

    if provider in _KEY_ENV_VARS:
        api_key = settings.get_api_key(provider)
        if not api_key:
            raise ClientFactoryError(
                f"{provider.capitalize()} API key not configured. "
                f"Set {_KEY_ENV_VARS[provider]} environment variable."
            )

        return {
            "api_key": api_key,
            "base_url": settings.get_base_url(provider),
            **common,
        }

    elif provider == "lmstudio":
        return {"base_url": settings.lmstudio_base_url, **common}

    else:
        raise ClientFactoryError(f"Unknown provider configuration: {provider}")


def validate_provider_config(provider: str, settings: AppSettings | None = None) -> bool:
    """
    Validate that a provider is properly configured.

    Args:
        provider: Provider name to validate

    Returns:
        True if properly configured, False otherwise
    """
    try:
        _get_provider_config(provider, settings or get_settings())
        return True
    except ClientFactoryError:
        return False


def get_configured_providers(settings: AppSettings | None = None) -> list[str]:
    """Get list of providers that are properly configured."""
    return [
        provider
        for provider in get_supported_providers()
        if validate_provider_config(provider, settings)
    ]
