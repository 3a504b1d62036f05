"""
Session store: the list of chat sessions for one identity and which one is active.

Every mutation of the session list is followed by a persist() before the
operation returns. The persisted blob is a JSON array of ChatSession in
camelCase; thinking placeholders are stripped on the way out.
"""

from collections.abc import Callable

import structlog
from pydantic import TypeAdapter, ValidationError

from condoscout.agents.conversation import ConversationContextManager
from condoscout.agents.reducers import new_id, new_session, now_ms, strip_unresolved
from condoscout.models.chat import ChatSession
from condoscout.models.identity import StorageNamespace
from condoscout.services.storage import SessionStorage

logger = structlog.get_logger(__name__)

_SESSIONS_ADAPTER = TypeAdapter(list[ChatSession])


def serialize_sessions(sessions: list[ChatSession]) -> str:
    """Encode sessions as the stored JSON blob."""
    return _SESSIONS_ADAPTER.dump_json(
        [strip_unresolved(s) for s in sessions],
        by_alias=True,
        exclude_none=True,
    ).decode("utf-8")


def parse_sessions(raw: str) -> list[ChatSession]:
    """Decode a stored blob. Raises ValidationError for malformed data."""
    return _SESSIONS_ADAPTER.validate_json(raw)


class SessionStore:
    """
    In-memory sessions kept in step with one storage namespace.

    Args:
        storage: Backend router. None disables persistence.
        namespace: Namespace derived from the identity. None disables persistence.
        contexts: Context manager to create/resume as the active session changes.
        clock: Returns epoch milliseconds.
        id_factory: Returns fresh session ids.
    """

    def __init__(
        self,
        storage: SessionStorage | None,
        namespace: StorageNamespace | None,
        contexts: ConversationContextManager,
        *,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self._storage = storage
        self._namespace = namespace
        self._contexts = contexts
        self._clock = clock
        self._id_factory = id_factory
        self._sessions: list[ChatSession] = []
        self._active_id: str | None = None
        self._issued_ids: set[str] = set()

    @property
    def namespace(self) -> StorageNamespace | None:
        return self._namespace

    @property
    def sessions(self) -> list[ChatSession]:
        return list(self._sessions)

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active_session(self) -> ChatSession | None:
        return self.get(self._active_id) if self._active_id else None

    def get(self, session_id: str) -> ChatSession | None:
        return next((s for s in self._sessions if s.id == session_id), None)

    def _fresh_id(self) -> str:
        taken = self._issued_ids | {s.id for s in self._sessions}
        session_id = self._id_factory()
        while session_id in taken:
            session_id = self._id_factory()
        self._issued_ids.add(session_id)
        return session_id

    async def persist(self) -> None:
        """Write the whole session list to the identity's namespace."""
        if self._storage is None or self._namespace is None:
            return
        await self._storage.write(self._namespace, serialize_sessions(self._sessions))

    async def load(self, raw: str | None) -> ChatSession:
        """
        Replace in-memory state with a stored blob.

        The most recently updated session becomes active and its context is
        resumed. Missing, unreadable or empty data yields one default session.
        """
        self._sessions = []
        self._active_id = None

        sessions: list[ChatSession] = []
        if raw is not None:
            try:
                sessions = parse_sessions(raw)
            except ValidationError as e:
                logger.warning(
                    "stored_sessions_unreadable",
                    namespace=self._namespace.key if self._namespace else None,
                    errors=e.error_count(),
                )

        if not sessions:
            return await self.create_session()

        self._sessions = sessions
        self._issued_ids.update(s.id for s in sessions)
        most_recent = max(sessions, key=lambda s: s.last_updated)
        self._active_id = most_recent.id
        self._contexts.resume_context(most_recent.messages)
        logger.info("sessions_loaded", count=len(sessions), active_session_id=most_recent.id)
        return most_recent

    async def create_session(self) -> ChatSession:
        """Prepend a new default session, make it active and open a fresh context."""
        session = new_session(self._fresh_id(), self._clock())
        self._sessions = [session, *self._sessions]
        self._active_id = session.id
        self._contexts.create_context()
        await self.persist()
        logger.info("session_created", session_id=session.id)
        return session

    async def delete_session(self, session_id: str) -> bool:
        """
        Remove a session. Returns False when the id is unknown.

        Deleting the active session activates the first remaining one, or a
        brand new session when none remain.
        """
        remaining = [s for s in self._sessions if s.id != session_id]
        if len(remaining) == len(self._sessions):
            return False

        self._sessions = remaining
        await self.persist()
        logger.info("session_deleted", session_id=session_id, remaining=len(remaining))

        if self._active_id == session_id:
            if remaining:
                self._active_id = remaining[0].id
                self._contexts.resume_context(remaining[0].messages)
            else:
                self._active_id = None
                await self.create_session()
        return True

    async def select_session(self, session_id: str) -> ChatSession | None:
        """Activate a session and resume its context. None when the id is unknown."""
        session = self.get(session_id)
        if session is None:
            return None
        if session_id == self._active_id:
            return session
        self._active_id = session_id
        self._contexts.resume_context(session.messages)
        logger.info("session_selected", session_id=session_id)
        return session

    async def replace_session(self, session: ChatSession) -> bool:
        """Swap in an updated copy of an existing session. False if it no longer exists."""
        if self.get(session.id) is None:
            return False
        self._sessions = [session if s.id == session.id else s for s in self._sessions]
        await self.persist()
        return True
