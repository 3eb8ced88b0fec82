"""
Anthropic client implementation.

This module provides a concrete implementation of the BaseClient interface
for Anthropic's Messages API.
"""

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from ..core.models import Message
from .base import BaseClient, ClientError, RateLimitError, RetryableError

logger = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
# The Messages API requires an explicit output cap
DEFAULT_MAX_TOKENS = 1024


class AnthropicClient(BaseClient):
    """
    Anthropic client implementing the BaseClient interface.

    Text arrives in ``content_block_delta`` events carrying a ``text_delta``;
    ``message_stop`` ends the reply and ``error`` events abort it.
    """

    def __init__(
        self, api_key: str, base_url: str = DEFAULT_ANTHROPIC_BASE_URL, **kwargs: Any
    ) -> None:
        super().__init__("anthropic", api_key, **kwargs)

        if not api_key:
            raise ValueError("Anthropic API key is required")

        if not api_key.startswith("sk-ant-"):
            logger.warning("Anthropic API key should start with 'sk-ant-'")

        self.base_url = base_url.rstrip("/")

    def _create_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "x-api-key": self.api_key or "",
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
            },
            timeout=httpx.Timeout(self.timeout),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )

    async def stream_chat(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        payload = self._prepare_request(model, messages, max_tokens, temperature)
        response = await self._stream_with_retry("/v1/messages", payload, model)

        try:
            async for event_name, data in self._iter_sse_events(response):
                event = self._decode_event(data, model)
                event_type = event_name or event.get("type")

                if event_type == "content_block_delta":
                    delta = event.get("delta") or {}
                    if delta.get("type") == "text_delta" and delta.get("text"):
                        yield delta["text"]
                elif event_type == "message_stop":
                    break
                elif event_type == "error":
                    self._raise_stream_error(event, model)
        except httpx.HTTPError as e:
            logger.error(f"Anthropic stream interrupted: {e}")
            raise ClientError(
                f"Stream interrupted: {e}",
                provider=self.provider_name,
                model=model,
                details={"error_type": type(e).__name__},
            ) from e
        finally:
            await response.aclose()

    def _prepare_request(
        self,
        model: str,
        messages: Sequence[Message],
        max_tokens: int | None,
        temperature: float | None,
    ) -> dict[str, Any]:
        """Prepare Messages API request from the message history."""
        request: dict[str, Any] = {
            "model": model,
            "messages": [message.to_dict() for message in messages],
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
            "stream": True,
        }

        if temperature is not None:
            request["temperature"] = temperature

        return request

    def _raise_stream_error(self, event: dict[str, Any], model: str) -> None:
        """Raise the client error matching an in-stream ``error`` event."""
        error_info = event.get("error") or {}
        error_type = error_info.get("type", "")
        message = error_info.get("message") or "Provider reported an error mid-stream"

        if error_type == "rate_limit_error":
            raise RateLimitError(message, provider=self.provider_name, model=model)
        if error_type in ("overloaded_error", "api_error"):
            # Fragments may already be delivered, so this is not retried here
            raise RetryableError(message, provider=self.provider_name, model=model)
        raise ClientError(
            message,
            provider=self.provider_name,
            model=model,
            details={"error_type": error_type},
        )
