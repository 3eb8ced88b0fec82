"""
Model adapter layer.

Resolves catalog model ids to streaming capabilities. Every capability has
the same shape, ``stream(history) -> fragments``, whichever provider serves
it, so nothing downstream ever branches on the provider.
"""

import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import aclosing
from typing import Protocol

from ..clients import BaseClient
from ..config.model_catalog import ModelCatalog, ModelEntry
from ..config.settings import AppSettings, get_settings
from ..core.models import Message, Role
from ..utils.client_factory import create_client_from_config

logger = logging.getLogger(__name__)


class Capability(Protocol):
    """Anything that can stream an assistant reply for a history."""

    def stream(self, history: Sequence[Message]) -> AsyncIterator[str]: ...


class Resolver(Protocol):
    """Maps a catalog model id to a capability."""

    def adapt(self, model_id: str) -> Capability: ...


def validate_history(history: Sequence[Message]) -> None:
    """History sent upstream must be non-empty and end with the user's turn."""
    if not history:
        raise ValueError("Cannot request a reply for an empty conversation")
    if history[-1].role != Role.USER:
        raise ValueError("Conversation must end with a user message")


class ModelAdapter:
    """Streams replies for one catalog entry through its provider client."""

    def __init__(
        self,
        entry: ModelEntry,
        client: BaseClient,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        self.entry = entry
        self.client = client
        self.max_tokens = max_tokens
        self.temperature = temperature

    @property
    def model_id(self) -> str:
        return self.entry.model_id

    async def stream(self, history: Sequence[Message]) -> AsyncIterator[str]:
        validate_history(history)
        logger.debug(
            f"Streaming {self.entry.provider}/{self.entry.provider_model} "
            f"with {len(history)} messages"
        )
        fragments = self.client.stream_chat(
            self.entry.provider_model,
            list(history),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        async with aclosing(fragments):
            async for fragment in fragments:
                yield fragment

    def __repr__(self) -> str:
        return f"ModelAdapter(model_id='{self.model_id}', provider='{self.entry.provider}')"


ClientBuilder = Callable[..., BaseClient]


class AdapterResolver:
    """
    Resolves model ids through the catalog.

    Provider clients are built on first use and shared by every adapter of
    that provider until ``aclose``.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        settings: AppSettings | None = None,
        client_builder: ClientBuilder = create_client_from_config,
    ) -> None:
        self.catalog = catalog
        self.settings = settings or get_settings()
        self._client_builder = client_builder
        self._clients: dict[str, BaseClient] = {}

    def adapt(self, model_id: str) -> ModelAdapter:
        """
        Build the capability for ``model_id``.

        Raises:
            UnknownModelError: If the id is not in the catalog
            ClientFactoryError: If the provider cannot be configured
        """
        entry = self.catalog.get(model_id)
        client = self._client_for(entry.provider)
        engine = self.settings.engine
        return ModelAdapter(
            entry,
            client,
            max_tokens=entry.max_tokens or engine.max_tokens,
            temperature=entry.temperature if entry.temperature is not None else engine.temperature,
        )

    def _client_for(self, provider: str) -> BaseClient:
        client = self._clients.get(provider)
        if client is None:
            client = self._client_builder(provider, settings=self.settings)
            self._clients[provider] = client
        return client

    async def aclose(self) -> None:
        """Close every provider client created so far."""
        clients, self._clients = self._clients, {}
        for client in clients.values():
            await client.aclose()
