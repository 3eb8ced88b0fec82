"""
Tests for ChatSession and its request/response state machine.
"""

import asyncio

import pytest

from multichat.clients.base import RateLimitError
from multichat.core.models import Message, SessionState
from multichat.orchestration.session import ChatSession
from multichat.orchestration.types import (
    EmptyMessageError,
    SessionBusyError,
    SessionNotFoundError,
)
from multichat.utils.client_factory import ClientFactoryError


@pytest.fixture
def session(fake_resolver):
    return ChatSession("chat-0000000a", "chatgpt", fake_resolver)


@pytest.fixture
def model(fake_resolver):
    return fake_resolver.model("chatgpt")


def states(snapshots):
    return [snapshot.state for snapshot in snapshots]


class TestSend:
    @pytest.mark.asyncio
    async def test_streamed_reply_is_assembled(self, session, model, drain_queue):
        updates = session.subscribe()
        model.reply("He", "llo ", "there")

        outcome = await session.send("hello")

        assert outcome == SessionState.COMPLETED
        assert session.state == SessionState.IDLE
        assert session.history == [Message.user("hello"), Message.assistant("Hello there")]
        assert session.draft is None

        snapshots = drain_queue(updates)
        assert states(snapshots) == [
            SessionState.AWAITING,
            SessionState.STREAMING,
            SessionState.STREAMING,
            SessionState.STREAMING,
            SessionState.COMPLETED,
            SessionState.IDLE,
        ]
        assert [s.draft for s in snapshots[1:4]] == ["He", "Hello ", "Hello there"]
        assert snapshots[-1].history[-1].content == "Hello there"

    @pytest.mark.asyncio
    async def test_send_is_immediately_awaiting(self, session, model):
        task = session.send("hello")

        assert session.state == SessionState.AWAITING
        assert session.history == [Message.user("hello")]

        model.reply("ok")
        await task

    @pytest.mark.asyncio
    async def test_model_receives_full_history(self, session, model):
        model.reply("first answer")
        await session.send("first")
        model.reply("second answer")
        await session.send("second")

        assert model.histories[1] == (
            Message.user("first"),
            Message.assistant("first answer"),
            Message.user("second"),
        )
        assert len(session.history) == 4

    @pytest.mark.asyncio
    async def test_empty_reply_is_committed(self, session, model):
        model.reply()

        assert await session.send("say nothing") == SessionState.COMPLETED
        assert session.history[-1] == Message.assistant("")

    @pytest.mark.asyncio
    async def test_blank_message_rejected(self, session, drain_queue):
        updates = session.subscribe()

        with pytest.raises(EmptyMessageError):
            session.send("   ")

        assert session.history == []
        assert session.state == SessionState.IDLE
        assert drain_queue(updates) == []

    @pytest.mark.asyncio
    async def test_busy_session_rejects_send(self, session, model, settle_loop):
        task = session.send("first")
        await model.started.wait()

        with pytest.raises(SessionBusyError) as exc_info:
            session.send("second")
        assert exc_info.value.state == "awaiting"
        assert session.history == [Message.user("first")]
        assert session.state == SessionState.AWAITING

        model.script("par")
        await settle_loop()
        assert session.state == SessionState.STREAMING
        with pytest.raises(SessionBusyError):
            session.send("third")
        assert session.history == [Message.user("first")]
        assert session.draft == "par"

        model.script("tial", None)
        await task
        assert session.history[-1] == Message.assistant("partial")


class TestFaults:
    @pytest.mark.asyncio
    async def test_immediate_fault(self, session, model, drain_queue):
        updates = session.subscribe()
        model.script(RateLimitError("rate limited", provider="openai"))

        outcome = await session.send("x")

        assert outcome == SessionState.FAILED
        assert states(drain_queue(updates)) == [
            SessionState.AWAITING,
            SessionState.FAILED,
            SessionState.IDLE,
        ]
        assert session.last_fault == "rate limited"
        assert session.history == [Message.user("x")]
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_fault_after_progress_discards_partial(self, session, model):
        model.script("partial ", "answer", RuntimeError("connection reset"))

        await session.send("x")

        assert session.history == [Message.user("x")]
        assert session.draft is None
        assert session.last_fault == "connection reset"

    @pytest.mark.asyncio
    async def test_configuration_fault_surfaces_on_session(self, fake_resolver):
        fake_resolver.fail_with(
            "claude", ClientFactoryError("Anthropic API key not configured.")
        )
        session = ChatSession("chat-0000000b", "claude", fake_resolver)

        assert await session.send("hi") == SessionState.FAILED
        assert session.last_fault == "Anthropic API key not configured."
        assert session.history == [Message.user("hi")]

    @pytest.mark.asyncio
    async def test_next_send_clears_last_fault(self, session, model):
        model.script(RuntimeError("boom"))
        await session.send("one")
        assert session.last_fault == "boom"

        task = session.send("two")
        assert session.last_fault is None

        model.reply("fine")
        await task
        assert session.history == [
            Message.user("one"),
            Message.user("two"),
            Message.assistant("fine"),
        ]

    @pytest.mark.asyncio
    async def test_turn_deadline(self, fake_resolver):
        session = ChatSession(
            "chat-0000000c", "chatgpt", fake_resolver, turn_timeout=0.05
        )

        assert await session.send("anyone there?") == SessionState.FAILED
        assert session.last_fault == "No complete reply within 0.05s"
        assert fake_resolver.model("chatgpt").closed == 1


class TestModelChange:
    @pytest.mark.asyncio
    async def test_set_model_clears_conversation(self, session, model):
        model.reply("hi")
        await session.send("hello")

        session.set_model("claude")

        assert session.model_id == "claude"
        assert session.history == []
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_set_model_cancels_in_flight_turn(
        self, session, model, fake_resolver, settle_loop
    ):
        task = session.send("hello")
        model.script("par")
        await settle_loop()
        assert session.state == SessionState.STREAMING

        session.set_model("gemini")
        await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert model.closed == 1
        assert session.history == []
        assert session.draft is None
        assert session.state == SessionState.IDLE

        # The new model serves the next turn
        gemini = fake_resolver.model("gemini").reply("new")
        await session.send("again")
        assert gemini.histories == [(Message.user("again"),)]


class TestClose:
    @pytest.mark.asyncio
    async def test_close_cancels_and_ends_updates(
        self, session, model, settle_loop, drain_queue
    ):
        updates = session.subscribe()
        task = session.send("hello")
        model.script("par")
        await settle_loop()

        session.close()
        await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert model.closed == 1
        received = drain_queue(updates)
        assert received[-1] is None
        assert received.count(None) == 1
        assert session.closed

    @pytest.mark.asyncio
    async def test_send_after_close(self, session):
        session.close()
        with pytest.raises(SessionNotFoundError):
            session.send("hello")

    @pytest.mark.asyncio
    async def test_wait_without_turn(self, session):
        await session.wait()


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_snapshot_is_detached(self, session, model):
        before = session.snapshot()
        model.reply("ok")
        await session.send("hello")

        assert before.history == ()
        assert before.state == SessionState.IDLE
        assert session.snapshot().history == (
            Message.user("hello"),
            Message.assistant("ok"),
        )

    def test_sync_member_flag(self, session, drain_queue):
        updates = session.subscribe()

        session.set_sync_member(True)
        session.set_sync_member(True)

        snapshots = drain_queue(updates)
        assert len(snapshots) == 1
        assert snapshots[0].sync_member is True

    def test_repr(self, session):
        assert repr(session) == (
            "ChatSession(id='chat-0000000a', model='chatgpt', "
            "state='idle', messages=0)"
        )
