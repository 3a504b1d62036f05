"""
Unit tests for ConversationContextManager and seed history building.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from condoscout.agents.conversation import ConversationContextManager, build_seed_history
from condoscout.constants import EMPTY_REPLY_TEXT, PROVIDER_APOLOGY_TEXT
from condoscout.models.chat import Location, Message, MessageRole, PlaceRecord, ProviderReply


def _msg(msg_id: str, role: MessageRole, text: str, thinking: bool = False) -> Message:
    return Message(id=msg_id, role=role, text=text, is_thinking=thinking)


class TestBuildSeedHistory:
    def test_excludes_welcome_and_thinking(self):
        history = [
            _msg("welcome", MessageRole.MODEL, "Hello"),
            _msg("u1", MessageRole.USER, "condos in Silom"),
            _msg("m1", MessageRole.MODEL, "Here are three"),
            _msg("u2", MessageRole.USER, "cheaper?"),
            _msg("t2", MessageRole.MODEL, "", thinking=True),
        ]
        assert build_seed_history(history) == [
            ("user", "condos in Silom"),
            ("model", "Here are three"),
            ("user", "cheaper?"),
        ]

    def test_thinking_in_the_middle_keeps_order(self):
        history = [
            _msg("u1", MessageRole.USER, "a"),
            _msg("t1", MessageRole.MODEL, "", thinking=True),
            _msg("u2", MessageRole.USER, "b"),
            _msg("m2", MessageRole.MODEL, "c"),
        ]
        assert build_seed_history(history) == [("user", "a"), ("user", "b"), ("model", "c")]

    def test_empty(self):
        assert build_seed_history([]) == []


class TestContextLifecycle:
    def test_starts_without_context(self, contexts: ConversationContextManager):
        assert contexts.context is None

    def test_create_opens_empty_chat(self, contexts, chat_service):
        context = contexts.create_context()
        assert chat_service.opened == [[]]
        assert context.seeded_turns == 0
        assert contexts.context is context

    def test_create_replaces_previous_context(self, contexts):
        first = contexts.create_context()
        second = contexts.create_context()
        assert first is not second
        assert contexts.context is second

    def test_resume_seeds_filtered_history(self, contexts, chat_service):
        history = [
            _msg("welcome", MessageRole.MODEL, "Hello"),
            _msg("u1", MessageRole.USER, "hotels in Siam"),
            _msg("m1", MessageRole.MODEL, "Siam Kempinski"),
        ]
        context = contexts.resume_context(history)
        assert chat_service.opened[-1] == [("user", "hotels in Siam"), ("model", "Siam Kempinski")]
        assert context.seeded_turns == 2


class TestSendTurn:
    @pytest.mark.asyncio
    async def test_returns_text_and_normalized_places(self, contexts, chat_service):
        chat_service.replies = [
            ProviderReply(
                text="Two picks near Asok.",
                grounding_chunks=[
                    {"maps": {"title": "A", "uri": "u1"}},
                    {"maps": {"title": "A", "uri": "u2"}},
                    {"maps": {"title": "B", "uri": "u3"}},
                ],
            )
        ]
        contexts.create_context()
        result = await contexts.send_turn("condos near Asok")

        assert result.text == "Two picks near Asok."
        assert result.places == [PlaceRecord(title="A", uri="u1"), PlaceRecord(title="B", uri="u3")]

    @pytest.mark.asyncio
    async def test_sends_on_live_context_with_location(self, contexts, chat_service):
        context = contexts.create_context()
        location = Location(latitude=13.7563, longitude=100.5018)
        await contexts.send_turn("near me", location)

        chat, text, sent_location = chat_service.sent[0]
        assert chat is context.chat
        assert text == "near me"
        assert sent_location is location

    @pytest.mark.asyncio
    async def test_empty_text_uses_default_reply(self, contexts, chat_service):
        chat_service.replies = [ProviderReply(text=None, grounding_chunks=None)]
        contexts.create_context()
        result = await contexts.send_turn("anything")
        assert result.text == EMPTY_REPLY_TEXT
        assert result.places == []

    @pytest.mark.asyncio
    async def test_provider_error_degrades_to_apology(self, contexts, chat_service):
        chat_service.replies = [ConnectionError("network down")]
        contexts.create_context()
        result = await contexts.send_turn("condos")
        assert result.text == PROVIDER_APOLOGY_TEXT
        assert result.places == []

    @pytest.mark.asyncio
    async def test_malformed_reply_degrades_to_apology(self):
        service = MagicMock()
        service.open_chat.return_value = object()
        # grounding_chunks is not iterable as chunks
        service.send = AsyncMock(return_value=MagicMock(text="hi", grounding_chunks=42))
        manager = ConversationContextManager(service)
        manager.create_context()

        result = await manager.send_turn("condos")
        assert result.text == PROVIDER_APOLOGY_TEXT
        assert result.places == []

    @pytest.mark.asyncio
    async def test_creates_context_when_missing(self, contexts, chat_service):
        result = await contexts.send_turn("hello")
        assert contexts.context is not None
        assert chat_service.opened == [[]]
        assert result.text == "ok"

    @pytest.mark.asyncio
    async def test_turn_stays_on_context_it_started_on(self, contexts, chat_service):
        chat_service.gate = asyncio.Event()
        first = contexts.create_context()
        task = asyncio.create_task(contexts.send_turn("first"))
        await asyncio.sleep(0)

        contexts.resume_context([])
        chat_service.gate.set()
        await task

        assert chat_service.sent[0][0] is first.chat
        assert contexts.context is not first
