"""
Conversation context management.

A ConversationContext wraps one live chat on the AI service, already bound to
the concierge system prompt and the maps tool. The manager owns exactly one
context at a time and swaps in a new value on every create/resume; a turn in
flight keeps using the context it started on.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from condoscout.constants import EMPTY_REPLY_TEXT, PROVIDER_APOLOGY_TEXT, WELCOME_MESSAGE_ID
from condoscout.models.chat import Location, Message, ProviderReply, TurnResult
from condoscout.services.grounding import normalize_grounding_chunks

logger = structlog.get_logger(__name__)


class ChatService(Protocol):
    """The external AI chat service as seen by the context manager."""

    def open_chat(self, history: Sequence[tuple[str, str]] = ()) -> Any: ...

    async def send(
        self, chat: Any, text: str, location: Location | None = None
    ) -> ProviderReply: ...


@dataclass(frozen=True)
class ConversationContext:
    """One live chat handle plus how many turns it was seeded with."""

    chat: Any
    seeded_turns: int = 0


def build_seed_history(history: Iterable[Message]) -> list[tuple[str, str]]:
    """
    Map stored messages to (role, text) seed turns.

    Thinking placeholders and the synthetic welcome message are not part of
    the model's conversation and are left out. Order is preserved.
    """
    return [
        (m.role.value, m.text)
        for m in history
        if not m.is_thinking and m.id != WELCOME_MESSAGE_ID
    ]


class ConversationContextManager:
    """Owns the single live conversation context of a chat workspace."""

    def __init__(self, service: ChatService) -> None:
        self._service = service
        self._context: ConversationContext | None = None

    @property
    def context(self) -> ConversationContext | None:
        return self._context

    def create_context(self) -> ConversationContext:
        """Discard the current context and open one with empty history."""
        self._context = ConversationContext(chat=self._service.open_chat([]))
        logger.debug("conversation_context_created")
        return self._context

    def resume_context(self, history: Iterable[Message]) -> ConversationContext:
        """Replace the current context with one seeded from `history`."""
        seed = build_seed_history(history)
        self._context = ConversationContext(
            chat=self._service.open_chat(seed),
            seeded_turns=len(seed),
        )
        logger.debug("conversation_context_resumed", seeded_turns=len(seed))
        return self._context

    async def send_turn(self, text: str, location: Location | None = None) -> TurnResult:
        """
        Send `text` as the next user turn.

        Provider failures never raise: they are logged and turned into the
        fixed apology with no places, so every turn resolves to something
        displayable.
        """
        if self._context is None:
            # Callers are expected to create or resume first.
            logger.warning("send_turn_without_context")
            self.create_context()
        context = self._context

        try:
            reply = await self._service.send(context.chat, text, location)
            places = normalize_grounding_chunks(reply.grounding_chunks)
        except Exception:
            logger.exception("chat_service_send_failed", text_length=len(text))
            return TurnResult(text=PROVIDER_APOLOGY_TEXT, places=[])

        logger.info("chat_turn_answered", places=len(places))
        return TurnResult(text=reply.text or EMPTY_REPLY_TEXT, places=places)
