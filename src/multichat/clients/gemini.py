"""
Google Gemini client implementation.

This module provides a concrete implementation of the BaseClient interface
for the Gemini ``streamGenerateContent`` endpoint.
"""

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from ..core.models import Message, Role
from .base import BaseClient, ClientError, ContentFilterError

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
BLOCKING_FINISH_REASONS = frozenset({"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT"})


class GeminiClient(BaseClient):
    """
    Gemini client implementing the BaseClient interface.

    Gemini calls the assistant role ``model`` and streams whole
    ``GenerateContentResponse`` objects, one per event.
    """

    def __init__(
        self, api_key: str, base_url: str = DEFAULT_GEMINI_BASE_URL, **kwargs: Any
    ) -> None:
        super().__init__("google", api_key, **kwargs)

        if not api_key:
            raise ValueError("Google API key is required")

        self.base_url = base_url.rstrip("/")

    def _create_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "x-goog-api-key": self.api_key or "",
                "Content-Type": "application/json",
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
        payload = self._prepare_request(messages, max_tokens, temperature)
        response = await self._stream_with_retry(
            f"/v1beta/models/{model}:streamGenerateContent",
            payload,
            model,
            params={"alt": "sse"},
        )

        try:
            async for _, data in self._iter_sse_events(response):
                chunk = self._decode_event(data, model)
                for text in self._parse_chunk(chunk, model):
                    yield text
        except httpx.HTTPError as e:
            logger.error(f"Gemini stream interrupted: {e}")
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
        messages: Sequence[Message],
        max_tokens: int | None,
        temperature: float | None,
    ) -> dict[str, Any]:
        """Prepare generateContent request from the message history."""
        contents = [
            {
                "role": "model" if message.role == Role.ASSISTANT else "user",
                "parts": [{"text": message.content}],
            }
            for message in messages
        ]

        request: dict[str, Any] = {"contents": contents}

        generation_config: dict[str, Any] = {}
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        if temperature is not None:
            generation_config["temperature"] = temperature
        if generation_config:
            request["generationConfig"] = generation_config

        return request

    def _parse_chunk(self, chunk: Any, model: str) -> list[str]:
        """Extract text parts from one streamed response object."""
        if not isinstance(chunk, dict):
            return []

        if chunk.get("error"):
            error_info = chunk["error"]
            raise ClientError(
                error_info.get("message", "Provider reported an error mid-stream"),
                provider=self.provider_name,
                model=model,
                details={"status": error_info.get("status")},
            )

        block_reason = (chunk.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise ContentFilterError(
                f"Prompt blocked: {block_reason}",
                provider=self.provider_name,
                model=model,
            )

        candidates = chunk.get("candidates") or []
        if not candidates:
            return []

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        texts = [part["text"] for part in parts if part.get("text")]

        finish_reason = candidate.get("finishReason")
        if finish_reason in BLOCKING_FINISH_REASONS:
            raise ContentFilterError(
                f"Response stopped: {finish_reason}",
                provider=self.provider_name,
                model=model,
            )

        return texts
