"""
Tests for the base client: SSE parsing, error mapping and retry logic.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from multichat.clients.base import (
    AuthenticationError,
    BaseClient,
    ClientError,
    ModelNotFoundError,
    QuotaExceededError,
    RateLimitError,
    RetryableError,
)


class DummyClient(BaseClient):
    """Minimal concrete client yielding raw SSE data payloads."""

    def __init__(self, handler, **kwargs):
        kwargs.setdefault("base_delay", 0.0)
        super().__init__("dummy", api_key="test-key", **kwargs)
        self.handler = handler

    def _create_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler), base_url="https://dummy.test"
        )

    async def stream_chat(self, model, messages, *, max_tokens=None, temperature=None):
        response = await self._stream_with_retry("/stream", {"model": model}, model)
        try:
            async for _, data in self._iter_sse_events(response):
                yield data
        finally:
            await response.aclose()


def sse_response(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=body.encode(),
        headers={"content-type": "text/event-stream"},
    )


async def collect(client, model="dummy-model"):
    return [chunk async for chunk in client.stream_chat(model, [])]


class TestClientError:
    def test_str_includes_provider_and_model(self):
        error = ClientError("boom", provider="openai", model="gpt-3.5-turbo")
        assert str(error) == "openai: boom | Model: gpt-3.5-turbo"
        assert error.message == "boom"

    def test_rate_limit_retry_after(self):
        error = RateLimitError("slow down", provider="openai", retry_after=30)
        assert error.retry_after == 30
        assert isinstance(error, ClientError)


class TestSSEParsing:
    @pytest.mark.asyncio
    async def test_data_lines_and_comments(self):
        body = (
            ": keep-alive\n\n"
            "data: one\n\n"
            "event: custom\n"
            "data: two\n\n"
            "data: first line\n"
            "data: second line\n\n"
        )
        client = DummyClient(lambda request: sse_response(body))

        assert await collect(client) == ["one", "two", "first line\nsecond line"]

    @pytest.mark.asyncio
    async def test_event_names(self):
        body = "event: message_start\ndata: {}\n\ndata: plain\n\n"
        client = DummyClient(lambda request: sse_response(body))
        response = await client._open_stream("/stream", {}, "m")

        events = [event async for event in client._iter_sse_events(response)]

        assert events == [("message_start", "{}"), (None, "plain")]

    @pytest.mark.asyncio
    async def test_trailing_event_without_blank_line(self):
        client = DummyClient(lambda request: sse_response("data: last"))
        assert await collect(client) == ["last"]

    def test_decode_event_rejects_malformed_json(self):
        client = DummyClient(lambda request: sse_response(""))
        with pytest.raises(ClientError, match="Malformed stream event"):
            client._decode_event("{not json", "m")


class TestHttpErrorMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error_class",
        [
            (401, AuthenticationError),
            (403, AuthenticationError),
            (402, QuotaExceededError),
            (404, ModelNotFoundError),
            (429, RateLimitError),
            (400, ClientError),
        ],
    )
    async def test_status_mapping(self, status, error_class):
        def handler(request):
            return httpx.Response(status, json={"error": {"message": "nope"}})

        client = DummyClient(handler, max_retries=0)

        with pytest.raises(error_class) as exc_info:
            await collect(client)

        assert "nope" in exc_info.value.message
        assert exc_info.value.details["status_code"] == status

    @pytest.mark.asyncio
    async def test_retry_after_header(self):
        def handler(request):
            return httpx.Response(
                429, json={"error": {"message": "slow"}}, headers={"retry-after": "12"}
            )

        client = DummyClient(handler, max_retries=0)

        with pytest.raises(RateLimitError) as exc_info:
            await collect(client)
        assert exc_info.value.retry_after == 12

    def test_extract_error_message_list_wrapped(self):
        client = DummyClient(lambda request: sse_response(""))
        response = httpx.Response(
            400, content=json.dumps([{"error": {"message": "bad key"}}]).encode()
        )
        assert client._extract_error_message(response) == "bad key"

    def test_extract_error_message_non_json(self):
        client = DummyClient(lambda request: sse_response(""))
        response = httpx.Response(500, content=b"Internal Server Error")
        assert client._extract_error_message(response).startswith("HTTP 500")


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_transient_status_then_succeeds(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503, json={"error": {"message": "busy"}})
            return sse_response("data: ok\n\n")

        client = DummyClient(handler, max_retries=2)

        assert await collect(client) == ["ok"]
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(529, json={"error": {"message": "overloaded"}})

        client = DummyClient(handler, max_retries=2)

        with pytest.raises(RetryableError, match="overloaded"):
            await collect(client)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = DummyClient(handler, max_retries=1)

        with pytest.raises(RetryableError, match="timed out"):
            await collect(client)

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = DummyClient(handler, max_retries=0)

        with pytest.raises(RetryableError, match="Provider unreachable"):
            await collect(client)

    @pytest.mark.asyncio
    async def test_non_retryable_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        client = DummyClient(handler, max_retries=3)

        with pytest.raises(AuthenticationError):
            await collect(client)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_backoff_sleeps_are_bounded(self):
        def handler(request):
            return httpx.Response(503, json={"error": {"message": "busy"}})

        client = DummyClient(handler, max_retries=5, base_delay=1.0, max_delay=4.0)

        with patch(
            "multichat.clients.base.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            with pytest.raises(RetryableError):
                await collect(client)

        delays = [call.args[0] for call in mock_sleep.await_args_list]
        assert len(delays) == 5
        for delay, expected in zip(delays, [1.0, 2.0, 4.0, 4.0, 4.0]):
            assert 0.9 * expected <= delay <= 4.0

    def test_backoff_delay_stays_within_jitter(self):
        client = DummyClient(lambda request: None, base_delay=1.0, max_delay=60.0)

        for attempt in range(10):
            expected = min(2**attempt, 60.0)
            for _ in range(20):
                delay = client._backoff_delay(attempt)
                assert 0.9 * expected <= delay <= min(1.1 * expected, 60.0)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_aclose_releases_http_client(self):
        client = DummyClient(lambda request: sse_response("data: x\n\n"))
        await collect(client)
        assert client._http_client is not None

        await client.aclose()
        assert client._http_client is None

    @pytest.mark.asyncio
    async def test_context_manager(self):
        async with DummyClient(lambda request: sse_response("data: x\n\n")) as client:
            assert await collect(client) == ["x"]
        assert client._http_client is None

    def test_repr(self):
        client = DummyClient(lambda request: sse_response(""))
        assert repr(client) == "DummyClient(provider='dummy')"
