"""
Chat workspaces: one session store, context manager and orchestrator per identity.

The registry opens a workspace the first time an identity is seen (loading
its stored sessions) and keeps it until sign-out.
"""

import asyncio
from dataclasses import dataclass

import structlog

from condoscout.agents.conversation import ChatService, ConversationContextManager
from condoscout.agents.orchestrator import TurnOrchestrator
from condoscout.agents.session_store import SessionStore
from condoscout.models.identity import Identity, storage_namespace
from condoscout.services.storage import SessionStorage

logger = structlog.get_logger(__name__)


@dataclass
class ChatWorkspace:
    identity: Identity
    store: SessionStore
    contexts: ConversationContextManager
    orchestrator: TurnOrchestrator


class WorkspaceRegistry:
    """Open chat workspaces keyed by storage namespace."""

    def __init__(self, chat_service: ChatService, storage: SessionStorage) -> None:
        self._chat_service = chat_service
        self._storage = storage
        self._workspaces: dict[str, ChatWorkspace] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._workspaces)

    async def open(self, identity: Identity) -> ChatWorkspace:
        """Return the identity's workspace, loading its sessions on first use."""
        namespace = storage_namespace(identity)
        if namespace is None:
            raise ValueError("identity has no storage namespace")

        async with self._lock:
            workspace = self._workspaces.get(namespace.key)
            if workspace is not None:
                return workspace

            contexts = ConversationContextManager(self._chat_service)
            store = SessionStore(self._storage, namespace, contexts)
            workspace = ChatWorkspace(
                identity=identity,
                store=store,
                contexts=contexts,
                orchestrator=TurnOrchestrator(store, contexts),
            )
            await store.load(await self._storage.read(namespace))
            self._workspaces[namespace.key] = workspace
            logger.info(
                "workspace_opened",
                namespace=namespace.key,
                scope=namespace.scope.value,
                sessions=len(store.sessions),
            )
            return workspace

    def close(self, identity: Identity) -> bool:
        """Forget the identity's workspace. Stored sessions are kept."""
        namespace = storage_namespace(identity)
        if namespace is None:
            return False
        closed = self._workspaces.pop(namespace.key, None) is not None
        if closed:
            logger.info("workspace_closed", namespace=namespace.key)
        return closed
