"""
Chat API endpoints.

Sessions are managed with plain JSON endpoints; a turn is streamed via
Server-Sent Events (SSE).

Endpoints:
    GET    /api/v1/chat/sessions
    POST   /api/v1/chat/sessions
    GET    /api/v1/chat/sessions/{session_id}
    POST   /api/v1/chat/sessions/{session_id}/select
    DELETE /api/v1/chat/sessions/{session_id}
    POST   /api/v1/chat/turns

Turn request body:
    { "message": string, "location": {"latitude": float, "longitude": float} | null }

SSE event types:
    {"type": "thinking", "sessionId": "...", "message": {...placeholder}, "done": false}
    {"type": "message", "sessionId": "...", "message": {...resolved}, "done": true}
    {"type": "error", "sessionId": "...", "message": null, "done": true}
"""

import asyncio
from typing import Annotated, Any, AsyncGenerator

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from condoscout.agents.orchestrator import PendingTurn
from condoscout.agents.workspace import ChatWorkspace, WorkspaceRegistry
from condoscout.auth import CurrentIdentity
from condoscout.models.chat import ChatSession, Location, Message, StreamEvent

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


class TurnRequest(BaseModel):
    """Request body for a chat turn."""

    message: str
    location: Location | None = None


def get_registry(request: Request) -> WorkspaceRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Chat service unavailable")
    return registry


async def get_workspace(
    identity: CurrentIdentity,
    registry: Annotated[WorkspaceRegistry, Depends(get_registry)],
) -> ChatWorkspace:
    """FastAPI dependency: the caller's workspace, opened on first use."""
    return await registry.open(identity)


Workspace = Annotated[ChatWorkspace, Depends(get_workspace)]


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _session_summary(session: ChatSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "title": session.title,
        "createdAt": session.created_at,
        "lastUpdated": session.last_updated,
        "messageCount": len(session.messages),
    }


def _event(event_type: str, session_id: str, message: Message | None, done: bool) -> str:
    return StreamEvent(
        type=event_type,
        session_id=session_id,
        message=_dump(message) if message is not None else None,
        done=done,
    ).model_dump_json(by_alias=True)


def _require_session(workspace: ChatWorkspace, session_id: str) -> ChatSession:
    session = workspace.store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.get("/sessions")
async def list_sessions(workspace: Workspace) -> dict:
    """List the caller's sessions (summaries) and the active session id."""
    return {
        "activeSessionId": workspace.store.active_id,
        "sessions": [_session_summary(s) for s in workspace.store.sessions],
    }


@router.post("/sessions", status_code=201)
async def create_session(workspace: Workspace) -> dict:
    """Start a new search. The new session becomes active."""
    session = await workspace.store.create_session()
    return _dump(session)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, workspace: Workspace) -> dict:
    return _dump(_require_session(workspace, session_id))


@router.post("/sessions/{session_id}/select")
async def select_session(session_id: str, workspace: Workspace) -> dict:
    """Make a session active and resume its conversation with the model."""
    session = await workspace.store.select_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return _dump(session)


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, workspace: Workspace) -> dict:
    """Delete a session. Returns the session that is active afterwards."""
    if not await workspace.store.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"deleted": session_id, "activeSessionId": workspace.store.active_id}


# Completion tasks outlive their SSE response when the client disconnects.
_pending_completions: set[asyncio.Task] = set()


def start_completion(workspace: ChatWorkspace, pending: PendingTurn) -> asyncio.Task:
    """
    Schedule complete_turn for `pending` independently of the response.

    The task runs whether or not the stream is ever iterated, so the
    placeholder is always resolved and the in-flight flag always cleared.
    """
    completion = asyncio.ensure_future(workspace.orchestrator.complete_turn(pending))
    _pending_completions.add(completion)

    def _collect(task: asyncio.Task) -> None:
        _pending_completions.discard(task)
        if task.cancelled():
            logger.warning("turn_completion_cancelled", session_id=pending.session_id)
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "turn_completion_failed",
                session_id=pending.session_id,
                exc_info=error,
            )

    completion.add_done_callback(_collect)
    return completion


async def stream_turn(
    pending: PendingTurn,
    completion: asyncio.Future,
) -> AsyncGenerator[str, None]:
    """
    Generator that streams one turn as SSE.

    `completion` is already running; it is awaited through asyncio.shield so
    a client disconnect does not cancel the provider call and the result is
    still written to the session.
    """
    yield _event("thinking", pending.session_id, pending.placeholder, done=False)

    try:
        message = await asyncio.shield(completion)
    except asyncio.CancelledError:
        logger.info("turn_stream_disconnected", session_id=pending.session_id)
        raise
    except Exception:
        # already logged by the completion callback
        yield _event("error", pending.session_id, None, done=True)
        return

    if message is None:
        yield _event("error", pending.session_id, None, done=True)
        return
    yield _event("message", pending.session_id, message, done=True)


@router.post("/turns", response_class=EventSourceResponse)
async def submit_turn(body: TurnRequest, workspace: Workspace) -> EventSourceResponse:
    """
    Send a message on the active session and stream the concierge's reply.

    Event types:
    - **thinking**: the turn was accepted; carries the placeholder message
    - **message**: the resolved reply with its place cards
    - **error**: the originating session disappeared or storage failed

    Example usage with curl:
    ```
    curl -N -X POST http://localhost:8000/api/v1/chat/turns \\
      -H "Content-Type: application/json" \\
      -H "X-Guest-Session: tab-1" \\
      -d '{"message": "1-bedroom condos near BTS Asok under 30k THB"}'
    ```
    """
    if not body.message or not body.message.strip():
        raise HTTPException(status_code=422, detail="Message cannot be empty.")
    if workspace.orchestrator.in_flight:
        raise HTTPException(status_code=409, detail="A reply is still in progress.")

    structlog.contextvars.bind_contextvars(message_preview=body.message[:50])

    pending = await workspace.orchestrator.begin_turn(body.message, body.location)
    if pending is None:
        raise HTTPException(status_code=409, detail="No active session.")

    return EventSourceResponse(
        stream_turn(pending, start_completion(workspace, pending)),
        media_type="text/event-stream",
    )


@router.get("/health")
async def health_check() -> dict:
    """Health check for the chat service."""
    return {"status": "healthy", "service": "condoscout-chat"}
