"""
Unit tests for TurnOrchestrator: guards, turn lifecycle, failure handling,
and turns racing with session switches.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from condoscout.agents.orchestrator import TurnOrchestrator, TurnPhase
from condoscout.constants import CONNECTION_ERROR_TEXT, PROVIDER_APOLOGY_TEXT
from condoscout.models.chat import Location, MessageRole, PlaceRecord, ProviderReply


@pytest.fixture
def orchestrator(store, contexts, ticker, counter) -> TurnOrchestrator:
    # turn timestamps land after the store's session timestamps
    ticker.now = 50_000
    return TurnOrchestrator(store, contexts, clock=ticker, id_factory=counter)


class TestGuards:
    @pytest.mark.asyncio
    async def test_blank_input_is_noop(self, store, orchestrator):
        session = await store.load(None)
        assert await orchestrator.begin_turn("   \n\t") is None
        assert store.get(session.id).messages == session.messages
        assert orchestrator.in_flight is False

    @pytest.mark.asyncio
    async def test_no_active_session_is_noop(self, orchestrator):
        # store never loaded
        assert await orchestrator.begin_turn("condos") is None
        assert orchestrator.in_flight is False

    @pytest.mark.asyncio
    async def test_second_submission_while_awaiting_is_noop(self, store, orchestrator, chat_service):
        await store.load(None)
        chat_service.gate = asyncio.Event()

        first = asyncio.create_task(orchestrator.submit_turn("condos in Thonglor"))
        await asyncio.sleep(0)
        assert orchestrator.in_flight is True
        length = len(store.active_session.messages)

        assert await orchestrator.submit_turn("hotels too") is None
        assert len(store.active_session.messages) == length

        chat_service.gate.set()
        await first
        assert len(chat_service.sent) == 1

    @pytest.mark.asyncio
    async def test_in_flight_blocks_turns_on_other_sessions(self, store, orchestrator, chat_service):
        await store.load(None)
        chat_service.gate = asyncio.Event()
        first = asyncio.create_task(orchestrator.submit_turn("first"))
        await asyncio.sleep(0)

        other = await store.create_session()
        assert await orchestrator.begin_turn("second") is None
        assert len(store.get(other.id).messages) == 1

        chat_service.gate.set()
        await first


class TestTurnLifecycle:
    @pytest.mark.asyncio
    async def test_begin_appends_user_and_placeholder(self, store, orchestrator):
        session = await store.load(None)
        pending = await orchestrator.begin_turn("  Condos in Ari  ")

        updated = store.get(session.id)
        assert orchestrator.phase == TurnPhase.SUBMITTED
        assert orchestrator.in_flight is True
        assert pending.session_id == session.id
        assert [m.id for m in updated.messages] == ["welcome", "msg-1", "msg-2"]
        assert updated.messages[1].role == MessageRole.USER
        assert updated.messages[1].text == "Condos in Ari"
        assert updated.messages[2].is_thinking is True
        assert updated.title == "Condos in Ari"
        assert updated.last_updated > session.last_updated

    @pytest.mark.asyncio
    async def test_submit_resolves_placeholder(self, store, orchestrator, chat_service):
        session = await store.load(None)
        chat_service.replies = [
            ProviderReply(
                text="Here are two.",
                grounding_chunks=[{"maps": {"title": "Noble Ploenchit", "uri": "u1"}}],
            )
        ]

        message = await orchestrator.submit_turn("condos near Ploenchit")

        assert message.text == "Here are two."
        assert message.places == [PlaceRecord(title="Noble Ploenchit", uri="u1")]
        assert message.is_thinking is False
        stored = store.get(session.id)
        assert stored.messages[-1] == message
        assert orchestrator.in_flight is False
        assert orchestrator.phase == TurnPhase.IDLE

    @pytest.mark.asyncio
    async def test_location_passes_through(self, store, orchestrator, chat_service):
        await store.load(None)
        location = Location(latitude=13.73, longitude=100.56)
        await orchestrator.submit_turn("near me", location)
        assert chat_service.sent[0][2] is location

    @pytest.mark.asyncio
    async def test_title_frozen_after_first_turn(self, store, orchestrator):
        session = await store.load(None)
        await orchestrator.submit_turn("A very long first question about Sukhumvit condos")
        await orchestrator.submit_turn("second")
        assert store.get(session.id).title == "A very long first question abo..."

    @pytest.mark.asyncio
    async def test_resolved_turn_is_persisted(self, store, orchestrator, session_storage):
        await store.load(None)
        await orchestrator.submit_turn("hotels in Siam")
        raw = await session_storage.read(store.namespace)
        assert '"isThinking":true' not in raw
        assert "hotels in Siam" in raw
        assert '"text":"ok"' in raw


class TestFailureHandling:
    @pytest.mark.asyncio
    async def test_provider_failure_resolves_with_apology(self, store, orchestrator, chat_service):
        await store.load(None)
        chat_service.replies = [TimeoutError("deadline exceeded")]

        message = await orchestrator.submit_turn("condos")

        assert message.is_thinking is False
        assert message.text == PROVIDER_APOLOGY_TEXT
        assert message.places == []
        assert orchestrator.in_flight is False

    @pytest.mark.asyncio
    async def test_orchestration_failure_resolves_with_connection_error(self, store, contexts, ticker, counter):
        await store.load(None)
        contexts.send_turn = AsyncMock(side_effect=RuntimeError("boom"))
        orchestrator = TurnOrchestrator(store, contexts, clock=ticker, id_factory=counter)

        message = await orchestrator.submit_turn("condos")

        assert message.text == CONNECTION_ERROR_TEXT
        assert message.places == []
        assert message.is_thinking is False
        assert orchestrator.in_flight is False

    @pytest.mark.asyncio
    async def test_flag_cleared_when_storage_fails(self, store, orchestrator):
        await store.load(None)
        pending = await orchestrator.begin_turn("condos")
        store.replace_session = AsyncMock(side_effect=OSError("disk full"))

        with pytest.raises(OSError):
            await orchestrator.complete_turn(pending)
        assert orchestrator.in_flight is False
        assert orchestrator.phase == TurnPhase.IDLE

    @pytest.mark.asyncio
    async def test_flag_cleared_when_submission_fails(self, store, orchestrator):
        await store.load(None)
        store.replace_session = AsyncMock(side_effect=OSError("disk full"))

        with pytest.raises(OSError):
            await orchestrator.begin_turn("condos")
        assert orchestrator.in_flight is False

    @pytest.mark.asyncio
    async def test_new_turn_accepted_after_failure(self, store, orchestrator, chat_service):
        await store.load(None)
        chat_service.replies = [ConnectionError("down")]
        await orchestrator.submit_turn("first")
        assert await orchestrator.submit_turn("second") is not None


class TestSessionSwitchDuringTurn:
    @pytest.mark.asyncio
    async def test_result_lands_in_originating_session(self, store, orchestrator, chat_service):
        origin = await store.load(None)
        chat_service.gate = asyncio.Event()
        chat_service.replies = [ProviderReply(text="Found three.", grounding_chunks=[])]

        task = asyncio.create_task(orchestrator.submit_turn("condos in Sathorn"))
        await asyncio.sleep(0)
        other = await store.create_session()
        chat_service.gate.set()
        message = await task

        assert store.active_id == other.id
        assert store.get(origin.id).messages[-1] == message
        assert message.text == "Found three."
        assert len(store.get(other.id).messages) == 1

    @pytest.mark.asyncio
    async def test_result_discarded_when_session_deleted(self, store, orchestrator, chat_service):
        origin = await store.load(None)
        chat_service.gate = asyncio.Event()

        task = asyncio.create_task(orchestrator.submit_turn("condos"))
        await asyncio.sleep(0)
        await store.delete_session(origin.id)
        chat_service.gate.set()

        assert await task is None
        assert store.get(origin.id) is None
        assert orchestrator.in_flight is False
