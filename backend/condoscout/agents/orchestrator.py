"""
Turn orchestrator.

Drives one user request end to end:

    Idle → Submitted → AwaitingResponse → Resolved → Idle

Submitted:         user message + thinking placeholder appended, title set on
                   the first turn, session persisted
AwaitingResponse:  ConversationContextManager.send_turn
Resolved:          placeholder replaced with text + places, session persisted

At most one turn per workspace is in flight. Results are written to the
session the turn was submitted from, even if another session has been
selected meanwhile; if that session was deleted the result is discarded.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from condoscout.agents.conversation import ConversationContextManager
from condoscout.agents.reducers import append_turn, apply_turn_result, new_id, now_ms
from condoscout.agents.session_store import SessionStore
from condoscout.constants import CONNECTION_ERROR_TEXT
from condoscout.models.chat import Location, Message, MessageRole, TurnResult

logger = structlog.get_logger(__name__)


class TurnPhase(str, Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    AWAITING_RESPONSE = "awaiting_response"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class PendingTurn:
    """A submitted turn waiting for its reply."""

    session_id: str
    user_message: Message
    placeholder: Message
    location: Location | None = None

    @property
    def text(self) -> str:
        return self.user_message.text


class TurnOrchestrator:
    """Coordinates turns between the session store and the conversation context."""

    def __init__(
        self,
        store: SessionStore,
        contexts: ConversationContextManager,
        *,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self._store = store
        self._contexts = contexts
        self._clock = clock
        self._id_factory = id_factory
        self._phase = TurnPhase.IDLE
        self._in_flight = False

    @property
    def phase(self) -> TurnPhase:
        return self._phase

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def begin_turn(self, text: str, location: Location | None = None) -> PendingTurn | None:
        """
        Submit a turn. Returns None (and changes nothing) when the text is
        blank, another turn is in flight, or no session is active.
        """
        text = text.strip()
        if not text:
            return None
        if self._in_flight:
            logger.info("turn_rejected_in_flight")
            return None
        session = self._store.active_session
        if session is None:
            logger.warning("turn_rejected_no_active_session")
            return None

        self._in_flight = True
        try:
            pending = PendingTurn(
                session_id=session.id,
                user_message=Message(id=self._id_factory(), role=MessageRole.USER, text=text),
                placeholder=Message(
                    id=self._id_factory(),
                    role=MessageRole.MODEL,
                    text="",
                    is_thinking=True,
                ),
                location=location,
            )
            updated = append_turn(session, pending.user_message, pending.placeholder, self._clock())
            await self._store.replace_session(updated)
        except Exception:
            self._in_flight = False
            raise

        self._phase = TurnPhase.SUBMITTED
        logger.info("turn_submitted", session_id=session.id, placeholder_id=pending.placeholder.id)
        return pending

    async def complete_turn(self, pending: PendingTurn) -> Message | None:
        """
        Await the reply for `pending` and resolve its placeholder.

        Returns the resolved model message, or None if the originating
        session no longer exists. The in-flight flag is always cleared.
        """
        try:
            self._phase = TurnPhase.AWAITING_RESPONSE
            try:
                result = await self._contexts.send_turn(pending.text, pending.location)
                resolved = await self._resolve(pending, result)
            except Exception:
                logger.exception("turn_orchestration_failed", session_id=pending.session_id)
                resolved = await self._resolve(
                    pending, TurnResult(text=CONNECTION_ERROR_TEXT, places=[])
                )
            self._phase = TurnPhase.RESOLVED
            return resolved
        finally:
            self._in_flight = False
            self._phase = TurnPhase.IDLE

    async def submit_turn(self, text: str, location: Location | None = None) -> Message | None:
        """begin_turn + complete_turn. None when the submission is rejected."""
        pending = await self.begin_turn(text, location)
        if pending is None:
            return None
        return await self.complete_turn(pending)

    async def _resolve(self, pending: PendingTurn, result: TurnResult) -> Message | None:
        session = self._store.get(pending.session_id)
        if session is None:
            logger.info("turn_result_discarded", session_id=pending.session_id)
            return None

        updated = apply_turn_result(session, pending.placeholder.id, result, self._clock())
        await self._store.replace_session(updated)
        logger.info(
            "turn_resolved",
            session_id=pending.session_id,
            places=len(result.places),
            active=self._store.active_id == pending.session_id,
        )
        return next((m for m in updated.messages if m.id == pending.placeholder.id), None)
