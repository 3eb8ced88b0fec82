"""
Client implementations for different AI model providers.

This package provides a unified streaming interface to multiple AI model
providers through the BaseClient abstraction.
"""

from .anthropic import AnthropicClient
from .base import (
    AuthenticationError,
    BaseClient,
    ClientError,
    ContentFilterError,
    ModelNotFoundError,
    QuotaExceededError,
    RateLimitError,
    RetryableError,
)
from .gemini import GeminiClient
from .lmstudio import LMStudioClient
from .openai import OpenAIClient

__all__ = [
    "BaseClient",
    "ClientError",
    "AuthenticationError",
    "RateLimitError",
    "QuotaExceededError",
    "ModelNotFoundError",
    "ContentFilterError",
    "RetryableError",
    "OpenAIClient",
    "AnthropicClient",
    "GeminiClient",
    "LMStudioClient",
    "create_client",
    "get_supported_providers",
]


def create_client(provider: str, **kwargs) -> BaseClient:
    """
    Create a client for the specified provider.

    Args:
        provider: Provider name (e.g., "openai", "anthropic")
        **kwargs: Provider-specific configuration

    Returns:
        Configured client instance

    Raises:
        ValueError: If provider is not supported

    Example:
        >>> client = create_client("anthropic", api_key="sk-ant-...")
        >>> async for text in client.stream_chat("claude-3-opus-20240229", history):
        ...     print(text, end="")
    """
    provider = provider.lower().strip()

    if provider == "openai":
        if "api_key" not in kwargs:
            raise ValueError("OpenAI API key is required but not provided")
        return OpenAIClient(**kwargs)
    elif provider == "anthropic":
        if "api_key" not in kwargs:
            raise ValueError("Anthropic API key is required but not provided")
        return AnthropicClient(**kwargs)
    elif provider == "google":
        if "api_key" not in kwargs:
            raise ValueError("Google API key is required but not provided")
        return GeminiClient(**kwargs)
    elif provider == "lmstudio":
        return LMStudioClient(**kwargs)
    else:
        raise ValueError(f"Unsupported provider: {provider}")


def get_supported_providers() -> list[str]:
    """Get list of supported provider names."""
    return ["openai", "anthropic", "google", "lmstudio"]
