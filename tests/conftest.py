"""
Shared test fixtures and configuration for Multi Chat tests.

This file provides global state management, environment isolation and a
scriptable fake model backend so engine tests never touch the network.
"""

import asyncio
import logging
import os
import warnings
from collections.abc import AsyncIterator, Sequence

import pytest
import pytest_asyncio

from multichat.config.model_catalog import ModelCatalog
from multichat.config.settings import AppSettings, config_manager
from multichat.core.models import Message
from multichat.orchestration import ChatOrchestrator, reset_chat_orchestrator

# Suppress specific warnings that can slow down tests
warnings.filterwarnings("ignore", category=DeprecationWarning)
warnings.filterwarnings("ignore", category=UserWarning, module="pydantic")

# Configure logging for tests
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("multichat").setLevel(logging.WARNING)


@pytest.fixture(autouse=True, scope="function")
def isolated_environment(tmp_path):
    """
    Isolate environment variables for each test to prevent test pollution.

    This ensures that configuration tests don't inherit environment variables
    from the host system, .env files, or other tests.
    """
    sensitive_prefixes = (
        "OPENAI_",
        "ANTHROPIC_",
        "GOOGLE_",
        "LMSTUDIO_",
        "API__",
        "ENGINE__",
    )
    sensitive_env_vars = {
        "LOG_LEVEL",
        "ENVIRONMENT",
        "APP_NAME",
        "CATALOG_PATH",
    }

    original_env = {}
    for var in list(os.environ):
        if var in sensitive_env_vars or var.startswith(sensitive_prefixes):
            original_env[var] = os.environ.pop(var)

    # Change working directory to temp path to avoid loading .env files
    original_cwd = os.getcwd()
    os.chdir(tmp_path)

    yield

    os.chdir(original_cwd)
    for var in list(os.environ):
        if var in sensitive_env_vars or var.startswith(sensitive_prefixes):
            del os.environ[var]
    os.environ.update(original_env)


@pytest.fixture(autouse=True, scope="function")
def reset_global_state():
    """Reset the configuration manager and engine singleton around each test."""
    config_manager.reset()
    reset_chat_orchestrator()

    yield

    config_manager.reset()
    reset_chat_orchestrator()


class ControlledModel:
    """
    Model capability whose reply is fed by the test.

    Items put on the script are delivered in order: strings are yielded as
    fragments, exceptions are raised, and ``None`` ends the reply. A stream
    with nothing scripted waits, which keeps its session busy.
    """

    def __init__(self, model_id: str):
        self.model_id = model_id
        self.items: asyncio.Queue = asyncio.Queue()
        self.histories: list[tuple[Message, ...]] = []
        self.closed = 0
        self.started = asyncio.Event()

    def script(self, *items) -> "ControlledModel":
        for item in items:
            self.items.put_nowait(item)
        return self

    def reply(self, *fragments: str) -> "ControlledModel":
        """Script a complete reply made of ``fragments``."""
        return self.script(*fragments, None)

    async def stream(self, history: Sequence[Message]) -> AsyncIterator[str]:
        self.histories.append(tuple(history))
        self.started.set()
        try:
            while True:
                item = await self.items.get()
                if item is None:
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.closed += 1


class FakeResolver:
    """Resolver handing out one ControlledModel per catalog id."""

    def __init__(self):
        self.models: dict[str, ControlledModel] = {}
        self.failures: dict[str, Exception] = {}
        self.adapted: list[str] = []

    def model(self, model_id: str) -> ControlledModel:
        if model_id not in self.models:
            self.models[model_id] = ControlledModel(model_id)
        return self.models[model_id]

    def fail_with(self, model_id: str, error: Exception) -> None:
        """Make resolving ``model_id`` raise ``error``."""
        self.failures[model_id] = error

    def adapt(self, model_id: str) -> ControlledModel:
        self.adapted.append(model_id)
        if model_id in self.failures:
            raise self.failures[model_id]
        return self.model(model_id)


@pytest.fixture
def fake_resolver():
    """Provide a resolver backed by scriptable fake models."""
    return FakeResolver()


@pytest.fixture
def test_settings():
    """Development settings with no provider credentials."""
    return AppSettings()


@pytest_asyncio.fixture
async def orchestrator(fake_resolver, test_settings):
    """Engine wired to the fake resolver and the built-in catalog."""
    engine = ChatOrchestrator(
        catalog=ModelCatalog(), resolver=fake_resolver, settings=test_settings
    )
    yield engine
    await engine.aclose()


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def drain(queue: asyncio.Queue) -> list:
    """Return everything currently queued without waiting."""
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


@pytest.fixture
def settle_loop():
    """Expose ``settle`` to tests."""
    return settle


@pytest.fixture
def drain_queue():
    """Expose ``drain`` to tests."""
    return drain
