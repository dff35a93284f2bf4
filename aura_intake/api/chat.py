"""FastAPI routes for the chat widget: session lifecycle and streamed replies (NDJSON)."""
import json
from contextlib import aclosing
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import StreamingResponse

from aura_intake.api.deps import ChatSessionRegistry, get_session_registry
from aura_intake.core.events import ChatEvent, event_to_dict
from aura_intake.core.session import (
    ChatSession,
    EmptyMessageError,
    SessionBusyError,
    SessionNotReadyError,
)
from aura_intake.models.schemas import ChatMessageOut, ChatMessageRequest, ChatSessionResponse

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _session_or_404(registry: ChatSessionRegistry, session_id: str) -> ChatSession:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return session


def _describe(session_id: str, session: ChatSession) -> ChatSessionResponse:
    return ChatSessionResponse(
        session_id=session_id,
        ready=session.ready,
        busy=session.busy,
        lead_submitted=session.lead_submitted,
        messages=[ChatMessageOut(**m.to_dict()) for m in session.timeline.snapshot()],
    )


async def _ndjson(events: AsyncIterator[ChatEvent]) -> AsyncIterator[str]:
    async with aclosing(events):
        async for event in events:
            yield json.dumps(event_to_dict(event)) + "\n"


@router.post("/sessions", response_model=ChatSessionResponse, status_code=201)
def create_session(registry: ChatSessionRegistry = Depends(get_session_registry)) -> ChatSessionResponse:
    """Open a chat (widget mount). ready=false means the model could not be reached."""
    session_id, session = registry.create()
    return _describe(session_id, session)


@router.get("/sessions/{session_id}", response_model=ChatSessionResponse)
def get_session(session_id: str, registry: ChatSessionRegistry = Depends(get_session_registry)) -> ChatSessionResponse:
    return _describe(session_id, _session_or_404(registry, session_id))


@router.post("/sessions/{session_id}/initialize", response_model=ChatSessionResponse)
def initialize_session(
    session_id: str, registry: ChatSessionRegistry = Depends(get_session_registry)
) -> ChatSessionResponse:
    """Retry connecting the model for a session that is not ready (or rebind it)."""
    session = _session_or_404(registry, session_id)
    try:
        session.initialize()
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _describe(session_id, session)


@router.post("/sessions/{session_id}/messages")
async def send_message(
    session_id: str,
    req: ChatMessageRequest,
    registry: ChatSessionRegistry = Depends(get_session_registry),
) -> StreamingResponse:
    """Send a user message; the reply streams back as one JSON event per line."""
    session = _session_or_404(registry, session_id)
    try:
        events = session.send(req.message)
    except EmptyMessageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionNotReadyError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return StreamingResponse(_ndjson(events), media_type="application/x-ndjson")


@router.delete("/sessions/{session_id}", status_code=204)
def delete_session(session_id: str, registry: ChatSessionRegistry = Depends(get_session_registry)) -> Response:
    """Close a chat (widget unmount). History is not kept."""
    if not registry.drop(session_id):
        raise HTTPException(status_code=404, detail="Chat session not found")
    return Response(status_code=204)
