"""
OpenAI client implementation.

This module provides a concrete implementation of the BaseClient interface
for the OpenAI chat completions API and servers that mirror it.
"""

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from ..core.models import Message
from .base import BaseClient, ClientError

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
STREAM_DONE_SENTINEL = "[DONE]"


class OpenAIClient(BaseClient):
    """
    OpenAI client implementing the BaseClient interface.

    Streams chat completions as server-sent events and yields the
    ``choices[0].delta.content`` of every chunk.
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        provider_name: str = "openai",
        **kwargs: Any,
    ) -> None:
        super().__init__(provider_name, api_key, **kwargs)

        if provider_name == "openai" and not api_key:
            raise ValueError("OpenAI API key is required")

        self.base_url = base_url.rstrip("/")

    def _create_http_client(self) -> httpx.AsyncClient:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "User-Agent": "Multi Chat",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
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
        """
        Stream a chat completion.

        Args:
            model: OpenAI model name (e.g. ``gpt-3.5-turbo``)
            messages: Conversation so far
            max_tokens: Optional cap on generated tokens
            temperature: Optional sampling temperature

        Yields:
            Text deltas in delivery order
        """
        payload = self._prepare_request(model, messages, max_tokens, temperature)
        response = await self._stream_with_retry("/chat/completions", payload, model)

        try:
            async for _, data in self._iter_sse_events(response):
                if data.strip() == STREAM_DONE_SENTINEL:
                    break
                chunk = self._decode_event(data, model)
                text = self._parse_chunk(chunk, model)
                if text:
                    yield text
        except httpx.HTTPError as e:
            logger.error(f"{self.provider_name} stream interrupted: {e}")
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
        """Prepare chat completions request from the message history."""
        request: dict[str, Any] = {
            "model": model,
            "messages": [message.to_dict() for message in messages],
            "stream": True,
        }

        if max_tokens is not None:
            request["max_tokens"] = max_tokens

        if temperature is not None:
            request["temperature"] = temperature

        return request

    def _parse_chunk(self, chunk: Any, model: str) -> str:
        """Extract the text delta from one streamed chunk."""
        if not isinstance(chunk, dict):
            return ""

        error_info = chunk.get("error")
        if error_info:
            message = (
                error_info.get("message")
                if isinstance(error_info, dict)
                else str(error_info)
            )
            raise ClientError(
                message or "Provider reported an error mid-stream",
                provider=self.provider_name,
                model=model,
            )

        choices = chunk.get("choices") or []
        if not choices:
            return ""
        delta = choices[0].get("delta") or {}
        return delta.get("content") or ""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_url='{self.base_url}')"
