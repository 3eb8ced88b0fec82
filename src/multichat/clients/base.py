"""
Abstract base client interface for model providers.

This module defines the streaming interface that all model provider clients
must implement, ensuring every provider delivers its reply as a plain
sequence of text fragments regardless of its wire format.
"""

import asyncio
import json
import logging
import random
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from ..core.models import Message

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 500, 502, 503, 504, 529})


class ClientError(Exception):
    """Base exception for client errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        model: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.provider = provider
        self.model = model
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [f"{self.provider}: {self.message}"]
        if self.model:
            parts.append(f"Model: {self.model}")
        return " | ".join(parts)


class AuthenticationError(ClientError):
    """Authentication failed with provider."""

    pass


class RateLimitError(ClientError):
    """Rate limit exceeded."""

    def __init__(
        self, message: str, provider: str, retry_after: int | None = None, **kwargs: Any
    ) -> None:
        super().__init__(message, provider, **kwargs)
        self.retry_after = retry_after


class QuotaExceededError(ClientError):
    """Account has run out of credits or quota."""

    pass


class ModelNotFoundError(ClientError):
    """Requested model not found or unavailable."""

    pass


class ContentFilterError(ClientError):
    """Provider refused or cut off the reply on content grounds."""

    pass


class RetryableError(ClientError):
    """Error that can be retried."""

    pass


class BaseClient(ABC):
    """
    Abstract base client for all model providers.

    Subclasses translate an ordered message history into the provider's
    request format and yield the reply as text fragments. Clients hold no
    conversation state between calls.
    """

    def __init__(
        self, provider_name: str, api_key: str | None = None, **kwargs: Any
    ) -> None:
        self.provider_name = provider_name
        self.api_key = api_key

        # Configuration from kwargs
        self.timeout = kwargs.get("timeout", 60)
        self.max_retries = kwargs.get("max_retries", 3)
        self.base_delay = kwargs.get("base_delay", 1.0)
        self.max_delay = kwargs.get("max_delay", 60.0)

        self._http_client: httpx.AsyncClient | None = None

        logger.info(f"Initialized {self.provider_name} client")

    @abstractmethod
    def stream_chat(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream the assistant reply for a conversation.

        Args:
            model: Provider-side model name
            messages: Conversation so far, ending with a user message
            max_tokens: Optional cap on generated tokens
            temperature: Optional sampling temperature

        Yields:
            Text fragments in delivery order

        Raises:
            ClientError: Provider-specific errors
        """

    async def retry_with_backoff(
        self, operation: Any, *args: Any, **kwargs: Any
    ) -> Any:
        """
        Execute operation with exponential backoff retry logic.

        Args:
            operation: Async function to execute
            *args, **kwargs: Arguments to pass to operation

        Returns:
            Result of successful operation

        Raises:
            ClientError: If all retries are exhausted
        """
        last_exception: RetryableError | None = None

        for attempt in range(self.max_retries + 1):
            try:
                return await operation(*args, **kwargs)
            except RetryableError as e:
                last_exception = e
                if attempt == self.max_retries:
                    break

                actual_delay = self._backoff_delay(attempt)

                logger.warning(
                    f"Attempt {attempt + 1} failed for {self.provider_name}: {e}. "
                    f"Retrying in {actual_delay:.2f}s"
                )
                await asyncio.sleep(max(0.0, actual_delay))
            except ClientError:
                # Non-retryable errors
                raise

        # All retries exhausted
        if last_exception is not None:
            raise last_exception
        else:
            raise ClientError(
                "Operation failed without retryable errors", self.provider_name
            )

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with 10% jitter, never above max_delay."""
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        return min(delay * random.uniform(0.9, 1.1), self.max_delay)

    async def _open_stream(
        self,
        path: str,
        payload: dict[str, Any],
        model: str,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Send a streaming POST request and return the open response.

        The caller owns the response and must close it. Non-200 statuses are
        read, closed and mapped onto the error taxonomy.
        """
        http_client = self._get_http_client()
        request = http_client.build_request("POST", path, json=payload, params=params)
        try:
            response = await http_client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise RetryableError(
                f"Request timed out: {e}", provider=self.provider_name, model=model
            ) from e
        except httpx.TransportError as e:
            raise RetryableError(
                f"Provider unreachable: {e}", provider=self.provider_name, model=model
            ) from e

        if response.status_code != 200:
            try:
                await response.aread()
            finally:
                await response.aclose()
            self._handle_http_error(response, model)

        return response

    async def _stream_with_retry(
        self,
        path: str,
        payload: dict[str, Any],
        model: str,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Open a stream, retrying only while no body has been consumed."""
        return await self.retry_with_backoff(
            self._open_stream, path, payload, model, params
        )

    async def _iter_sse_events(
        self, response: httpx.Response
    ) -> AsyncIterator[tuple[str | None, str]]:
        """
        Parse a server-sent events body.

        Yields:
            (event name or None, data payload) for every dispatched event
        """
        event_name: str | None = None
        data_lines: list[str] = []

        async for line in response.aiter_lines():
            if not line:
                if data_lines:
                    yield event_name, "\n".join(data_lines)
                event_name = None
                data_lines = []
                continue
            if line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "event":
                event_name = value
            elif field == "data":
                data_lines.append(value)

        if data_lines:
            yield event_name, "\n".join(data_lines)

    def _decode_event(self, data: str, model: str) -> Any:
        """Decode one JSON event payload."""
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            raise ClientError(
                f"Malformed stream event: {data[:200]}",
                provider=self.provider_name,
                model=model,
            ) from e

    def _handle_http_error(self, response: httpx.Response, model: str | None = None) -> None:
        """Map an HTTP error response to the client error taxonomy."""
        error_message = self._extract_error_message(response)
        details = {"status_code": response.status_code}
        status = response.status_code

        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed: {error_message}",
                provider=self.provider_name,
                model=model,
                details=details,
            )
        elif status == 402:
            raise QuotaExceededError(
                f"Insufficient credits: {error_message}",
                provider=self.provider_name,
                model=model,
                details=details,
            )
        elif status == 404:
            raise ModelNotFoundError(
                f"Model not available: {error_message}",
                provider=self.provider_name,
                model=model,
                details=details,
            )
        elif status == 429:
            retry_after = None
            if "retry-after" in response.headers:
                try:
                    retry_after = int(response.headers["retry-after"])
                except ValueError:
                    pass

            raise RateLimitError(
                f"Rate limit exceeded: {error_message}",
                provider=self.provider_name,
                retry_after=retry_after,
                model=model,
                details=details,
            )
        elif status in RETRYABLE_STATUS_CODES:
            raise RetryableError(
                f"Service temporarily unavailable: {error_message}",
                provider=self.provider_name,
                model=model,
                details=details,
            )
        else:
            raise ClientError(
                f"API error: {error_message}",
                provider=self.provider_name,
                model=model,
                details=details,
            )

    def _extract_error_message(self, response: httpx.Response) -> str:
        """Pull a human-readable message out of an error body."""
        try:
            error_data = response.json()
        except Exception:
            return f"HTTP {response.status_code}: {response.text[:200]}"

        # Gemini wraps streamed errors in a list
        if isinstance(error_data, list) and error_data:
            error_data = error_data[0]
        if isinstance(error_data, dict):
            error_info = error_data.get("error", {})
            if isinstance(error_info, dict) and error_info.get("message"):
                return str(error_info["message"])
            if isinstance(error_info, str) and error_info:
                return error_info
        return f"HTTP {response.status_code}"

    @abstractmethod
    def _create_http_client(self) -> httpx.AsyncClient:
        """Build the provider's configured HTTP client."""

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = self._create_http_client()
        return self._http_client

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "BaseClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.aclose()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider='{self.provider_name}')"
