"""
Assistant Router - HTTP and WebSocket boundary of the admin assistant

Endpoints (prefix /api/assistant):
- POST   /sessions/{session_id}/chat     one full turn, returns the committed message
- WS     /sessions/{session_id}/stream   streamed answer, stream/done/error frames
- GET    /sessions/{session_id}/history  committed transcript
- PUT    /sessions/{session_id}/history  replace transcript (restore)
- DELETE /sessions/{session_id}/history  clear transcript
- PATCH  /sessions/{session_id}/context  merge page context
- GET    /tools                          catalog overview
- GET    /config                         runtime configuration
- PUT    /config                         update runtime configuration

Sessions live in ``app.state.sessions`` (a SessionRegistry built by main.py).
"""

import json
import logging
import re
from contextlib import aclosing
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from errors import AssistantError, ValidationError, error_response, http_status_for
from routers.chat_orchestration import AssistantOrchestrator, ChatMessage, MessageStatus, SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assistant")

# Session ID validation pattern: alphanumeric, hyphens, underscores, max 64 chars
_SESSION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=8000)


class HistoryLoad(BaseModel):
    messages: List[Dict[str, Any]]


class ConfigUpdate(BaseModel):
    """Configuration update request."""

    # Gateway policy
    candidate_models: Optional[List[str]] = None
    min_request_delay: Optional[float] = None
    max_rounds: Optional[int] = None
    round_backoff_base: Optional[float] = None
    # Deadlines
    llm_timeout: Optional[float] = None
    tool_timeout: Optional[float] = None
    # Conversation
    history_window: Optional[int] = None
    # Model parameters
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_output_tokens: Optional[int] = None


def _validate_session_id(session_id: str) -> None:
    """Validate session ID format."""
    if not _SESSION_ID_PATTERN.match(session_id):
        raise ValidationError(
            "Invalid session ID. Must be alphanumeric/hyphens/underscores, max 64 chars.",
            parameter="session_id",
            received=session_id[:80],
        )


def _sessions(app) -> SessionRegistry:
    return app.state.sessions


def _session(request: Request, session_id: str, create: bool = False) -> AssistantOrchestrator:
    _validate_session_id(session_id)
    registry = _sessions(request.app)
    return registry.get_or_create(session_id) if create else registry.get(session_id)


async def assistant_error_handler(request: Request, exc: AssistantError) -> JSONResponse:
    """Map AssistantError to a JSON error body and status code."""
    return JSONResponse(status_code=http_status_for(exc), content=error_response(exc))


# =============================================================================
# API ENDPOINTS
# =============================================================================


@router.post("/sessions/{session_id}/chat")
async def chat(session_id: str, body: ChatRequest, request: Request):
    """Run one turn. A failed turn still returns 200 with an error-status message."""
    orchestrator = _session(request, session_id, create=True)
    message = await orchestrator.chat(body.message)
    return {"session_id": session_id, "message": message.to_dict()}


@router.get("/sessions/{session_id}/history")
async def get_history(session_id: str, request: Request):
    orchestrator = _session(request, session_id)
    return {
        "session_id": session_id,
        "messages": orchestrator.export_conversation(),
        "context": orchestrator.get_context(),
    }


@router.put("/sessions/{session_id}/history")
async def load_history(session_id: str, body: HistoryLoad, request: Request):
    """Replace the transcript with messages exported earlier."""
    try:
        messages = [ChatMessage.from_dict(m) for m in body.messages]
    except (KeyError, ValueError, TypeError) as e:
        raise ValidationError("Invalid message in history", details=str(e), parameter="messages")

    orchestrator = _session(request, session_id, create=True)
    orchestrator.load_conversation(messages)
    return {"success": True, "session_id": session_id, "count": len(messages)}


@router.delete("/sessions/{session_id}/history")
async def clear_history(session_id: str, request: Request):
    orchestrator = _session(request, session_id)
    orchestrator.clear_history()
    return {"success": True, "session_id": session_id}


@router.patch("/sessions/{session_id}/context")
async def update_context(session_id: str, partial: Dict[str, Any], request: Request):
    """Merge page context (currentPage, selectedUser, ...). ``null`` removes a key."""
    orchestrator = _session(request, session_id, create=True)
    return {"session_id": session_id, "context": orchestrator.set_context(partial)}


@router.get("/tools")
async def list_tools(request: Request):
    catalog = _sessions(request.app).catalog
    return {
        "count": len(catalog),
        "tools": [
            {
                "name": tool.name,
                "category": tool.category.value,
                "brief": tool.brief,
                "description": tool.description,
            }
            for tool in catalog.get_all_tools()
        ],
    }


@router.get("/config")
async def get_config(request: Request) -> Dict[str, Any]:
    """Get current runtime configuration."""
    return {"success": True, "config": request.app.state.config.to_dict()}


@router.put("/config")
async def update_config(update: ConfigUpdate, request: Request) -> Dict[str, Any]:
    """
    Update runtime configuration.

    Changes take effect on the next request without restart.
    """
    config = request.app.state.config

    # Filter out None values
    updates = {k: v for k, v in update.model_dump().items() if v is not None}
    if not updates:
        return {"success": True, "updated": [], "ignored": [], "message": "No changes"}

    result = config.update(**updates)
    return {
        "success": True,
        "updated": result["updated"],
        "ignored": result["ignored"],
        "config": config.to_dict(),
    }


@router.websocket("/sessions/{session_id}/stream")
async def stream_chat(websocket: WebSocket, session_id: str):
    """WebSocket endpoint for streamed answers.

    Client sends ``{"message": "..."}``; server answers with
    ``{"type": "stream", "content": chunk, "done": false}`` frames, then
    ``{"type": "done", "message": {...}}`` or ``{"type": "error", ...}``.
    """
    await websocket.accept()

    if not _SESSION_ID_PATTERN.match(session_id):
        await websocket.send_json({"type": "error", "content": "Invalid session ID"})
        await websocket.close(code=1008, reason="Invalid session ID")
        return

    orchestrator = _sessions(websocket.app).get_or_create(session_id)
    logger.info(f"Stream connected: {session_id}")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "content": "Invalid JSON frame"})
                continue

            text = data.get("message") if isinstance(data, dict) else None
            if not isinstance(text, str) or not text.strip():
                await websocket.send_json({"type": "error", "content": "Message must not be empty"})
                continue

            try:
                async with aclosing(orchestrator.chat_stream(text)) as stream:
                    async for chunk in stream:
                        await websocket.send_json({"type": "stream", "content": chunk, "done": False})
            except ValidationError as e:
                await websocket.send_json({"type": "error", "content": e.message})
                continue

            message = orchestrator.get_history()[-1]
            if message.status == MessageStatus.ERROR:
                await websocket.send_json(
                    {"type": "error", "content": message.content, "message": message.to_dict()}
                )
            else:
                await websocket.send_json({"type": "done", "message": message.to_dict()})
    except WebSocketDisconnect:
        logger.info(f"Stream disconnected: {session_id}")
