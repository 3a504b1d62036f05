"""
Shared test fixtures for the CondoScout backend test suite.
"""

import asyncio
from collections.abc import Iterator, Sequence
from typing import Any

import pytest
import structlog
from fastapi.testclient import TestClient

from condoscout.agents.conversation import ConversationContextManager
from condoscout.agents.session_store import SessionStore
from condoscout.agents.workspace import WorkspaceRegistry
from condoscout.models.chat import ChatSession, Location, Message, MessageRole, ProviderReply
from condoscout.models.identity import GuestIdentity, StorageScope, storage_namespace
from condoscout.services.storage import IdentityRecordStore, MemoryStorage, SessionStorage


class FakeChatService:
    """
    Stand-in for GeminiChatService.

    open_chat() records the seed history and returns a dict handle; send()
    pops the next scripted reply (raising it if it is an exception). When
    `gate` is set, send() waits on it before replying.
    """

    def __init__(self, replies: Sequence[ProviderReply | Exception] = ()) -> None:
        self.replies: list[ProviderReply | Exception] = list(replies)
        self.opened: list[list[tuple[str, str]]] = []
        self.sent: list[tuple[Any, str, Location | None]] = []
        self.gate: asyncio.Event | None = None

    def open_chat(self, history: Sequence[tuple[str, str]] = ()) -> dict:
        seed = list(history)
        self.opened.append(seed)
        return {"chat": len(self.opened), "history": seed}

    async def send(self, chat: Any, text: str, location: Location | None = None) -> ProviderReply:
        self.sent.append((chat, text, location))
        if self.gate is not None:
            await self.gate.wait()
        reply = self.replies.pop(0) if self.replies else ProviderReply(text="ok", grounding_chunks=[])
        if isinstance(reply, Exception):
            raise reply
        return reply


class Ticker:
    """Deterministic clock returning 1000, 2000, 3000, ..."""

    def __init__(self, start: int = 1000, step: int = 1000) -> None:
        self.now = start - step
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


class Counter:
    """Deterministic id factory returning prefix-1, prefix-2, ..."""

    def __init__(self, prefix: str = "id") -> None:
        self.prefix = prefix
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"{self.prefix}-{self.count}"


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set required environment variables for tests so Settings can be instantiated."""
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-test-fake-key")
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SECRET_KEY", raising=False)


@pytest.fixture(autouse=True)
def _configure_structlog_for_tests():
    """Configure structlog for tests using a simple, deterministic setup."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(0),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def chat_service() -> FakeChatService:
    return FakeChatService()


@pytest.fixture
def ticker() -> Ticker:
    return Ticker()


@pytest.fixture
def counter() -> Counter:
    return Counter("msg")


@pytest.fixture
def session_storage() -> SessionStorage:
    """Durable and ephemeral namespaces, both in memory."""
    return SessionStorage(durable=MemoryStorage(), ephemeral=MemoryStorage())


@pytest.fixture
def guest() -> GuestIdentity:
    return GuestIdentity(tab_id="tab-1")


@pytest.fixture
def contexts(chat_service: FakeChatService) -> ConversationContextManager:
    return ConversationContextManager(chat_service)


@pytest.fixture
def store(
    session_storage: SessionStorage,
    guest: GuestIdentity,
    contexts: ConversationContextManager,
) -> SessionStore:
    """An empty session store for a guest, with deterministic clock and ids."""
    return SessionStore(
        session_storage,
        storage_namespace(guest),
        contexts,
        clock=Ticker(),
        id_factory=Counter("session"),
    )


@pytest.fixture
def make_session():
    """Factory for ChatSession objects with a welcome message."""

    def _make(session_id: str, last_updated: int, *extra: Message, title: str = "New Search") -> ChatSession:
        return ChatSession(
            id=session_id,
            title=title,
            messages=[
                Message(id="welcome", role=MessageRole.MODEL, text="Hello", places=[]),
                *extra,
            ],
            created_at=last_updated,
            last_updated=last_updated,
        )

    return _make


@pytest.fixture
def client(chat_service: FakeChatService, session_storage: SessionStorage) -> Iterator[TestClient]:
    """FastAPI TestClient wrapping the main application with in-memory services."""
    # Clear the lru_cache so settings pick up test env vars
    from condoscout.config import get_settings

    get_settings.cache_clear()

    from condoscout.main import app

    app.state.supabase = None
    app.state.registry = WorkspaceRegistry(chat_service, session_storage)
    app.state.identity_records = IdentityRecordStore(
        session_storage.backend_for(StorageScope.DURABLE)
    )
    app.dependency_overrides.clear()

    yield TestClient(app)

    app.dependency_overrides.clear()
