"""
Pure session transforms.

Every function here takes a ChatSession and returns a new one; nothing is
mutated in place, nothing touches storage or the network. The session store
and the turn orchestrator compose these and persist the results.
"""

import time
import uuid

from condoscout.constants import (
    DEFAULT_SESSION_TITLE,
    SESSION_TITLE_ELLIPSIS,
    SESSION_TITLE_MAX_CHARS,
    WELCOME_MESSAGE_ID,
    WELCOME_TEXT,
)
from condoscout.models.chat import ChatSession, Message, MessageRole, TurnResult


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


def welcome_message() -> Message:
    return Message(
        id=WELCOME_MESSAGE_ID,
        role=MessageRole.MODEL,
        text=WELCOME_TEXT,
        places=[],
    )


def new_session(session_id: str, now: int) -> ChatSession:
    """A fresh "New Search" session holding only the welcome message."""
    return ChatSession(
        id=session_id,
        title=DEFAULT_SESSION_TITLE,
        messages=[welcome_message()],
        created_at=now,
        last_updated=now,
    )


def derive_title(text: str) -> str:
    """Session title from the first user turn: 30 characters, then an ellipsis."""
    if len(text) > SESSION_TITLE_MAX_CHARS:
        return text[:SESSION_TITLE_MAX_CHARS] + SESSION_TITLE_ELLIPSIS
    return text


def append_turn(
    session: ChatSession,
    user_message: Message,
    placeholder: Message,
    now: int,
) -> ChatSession:
    """
    Append a user message and its thinking placeholder.

    The title is taken from the user text only if the session has no user
    turn yet; afterwards it never changes.
    """
    title = session.title if session.has_user_turn() else derive_title(user_message.text)
    return session.model_copy(
        update={
            "title": title,
            "last_updated": now,
            "messages": [*session.messages, user_message, placeholder],
        }
    )


def apply_turn_result(
    session: ChatSession,
    placeholder_id: str,
    result: TurnResult,
    now: int | None = None,
) -> ChatSession:
    """
    Resolve the placeholder `placeholder_id` into the final model message.

    Returns the session unchanged when no such message exists (e.g. it was
    already resolved).
    """
    if not any(m.id == placeholder_id for m in session.messages):
        return session

    messages = [
        m.model_copy(
            update={
                "text": result.text,
                "places": list(result.places),
                "is_thinking": False,
            }
        )
        if m.id == placeholder_id
        else m
        for m in session.messages
    ]
    update: dict = {"messages": messages}
    if now is not None:
        update["last_updated"] = now
    return session.model_copy(update=update)


def strip_unresolved(session: ChatSession) -> ChatSession:
    """Drop thinking placeholders, which are never written to storage."""
    if not any(m.is_thinking for m in session.messages):
        return session
    return session.model_copy(
        update={"messages": [m for m in session.messages if not m.is_thinking]}
    )
