"""
RevVoice — FastAPI Server

================================================================================
Architecture:
  • SessionStore keeps every conversation in memory, keyed by session id,
    with a background sweeper removing sessions idle for over an hour
  • DialogueTurnService runs one turn per request: language resolution,
    prompt shaping, Gemini completion, bounded reply
  • REST is the primary surface; the WebSocket mirrors start + message for
    clients that prefer a single socket
  • Errors are classified in the service layer and mapped to HTTP here
================================================================================

Endpoints:
  GET    /health                       — liveness + counters
  GET    /api/status                   — models, environment, languages
  POST   /api/chat/start               — create or reuse a session
  POST   /api/chat/message             — submit one utterance
  DELETE /api/chat/session/{sessionId} — end a session
  WS     /ws                           — real-time mirror

Client → Server messages (WS):
  { type: "startSession", sessionId?: "..." }
  { type: "textInput",  sessionId: "...", text: "..." }
  { type: "voiceInput", sessionId: "...", text: "..." }

Server → Client messages (WS):
  { type: "sessionStarted", sessionId, model, fallback }
  { type: "textResponse" | "voiceResponse", text, model }
  { type: "error", message }
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import model_cfg, server_cfg
from .core.errors import (
    CompletionFailed,
    ModelUnavailable,
    RateLimited,
    RevVoiceError,
    SessionNotFound,
    error_body,
)
from .core.health import ServerHealth
from .services.completion import GeminiBackend
from .services.dialogue import DialogueTurnService
from .services.session_store import SessionStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("revvoice")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

dialogue = DialogueTurnService(SessionStore(), GeminiBackend())
server_health = ServerHealth()

_STATUS_CODES = {
    SessionNotFound: 404,
    RateLimited: 429,
    ModelUnavailable: 500,
    CompletionFailed: 500,
}


def _error_response(exc: RevVoiceError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status, content=error_body(exc))


def _internal_error(exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": str(exc)[:200]},
    )


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


# ---------------------------------------------------------------------------
# FastAPI Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 RevVoice Server starting...")
    logger.info(f"   Environment: {server_cfg.environment}")
    logger.info(f"   Primary: {model_cfg.primary_model}  Fallback: {model_cfg.fallback_model}")
    if not model_cfg.has_api_key:
        logger.error("❌ GEMINI_API_KEY not set — sessions will fail to start")
    dialogue.store.start_sweeper()
    yield
    logger.info("🛑 Shutting down...")
    await dialogue.store.stop_sweeper()
    logger.info("🛑 RevVoice Server stopped")


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="RevVoice — Multi-language Voice Assistant",
    version="1.0.0",
    description=(
        "Turn-based voice conversation backend: per-session history, "
        "language-aware prompting and Gemini completions with model fallback."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(server_cfg.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# REST Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return server_health.health(dialogue.store.active_count)


@app.get("/api/status")
async def api_status():
    return server_health.status(dialogue.status())


@app.post("/api/chat/start")
async def chat_start(request: Request):
    body = await _json_body(request)
    try:
        started = dialogue.start_turn(body.get("sessionId") or None)
    except RevVoiceError as e:
        return _error_response(e)
    except Exception as e:
        logger.error(f"Error starting chat session: {e}", exc_info=True)
        return _internal_error(e)

    return {
        "success": True,
        "sessionId": started.session_id,
        "model": started.model,
        "isFallback": started.is_fallback,
        "message": "Chat session started successfully",
    }


@app.post("/api/chat/message")
async def chat_message(request: Request):
    body = await _json_body(request)
    session_id = body.get("sessionId")
    message = body.get("message")
    message_type = body.get("messageType") or "voice"

    if not session_id or not isinstance(message, str) or not message.strip():
        return JSONResponse(
            status_code=400,
            content={
                "error": "Missing required fields",
                "details": "sessionId and message are required",
            },
        )

    try:
        reply = await dialogue.submit_utterance(session_id, message.strip(), message_type)
    except RevVoiceError as e:
        return _error_response(e)
    except Exception as e:
        logger.error(f"[{session_id}] Error processing message: {e}", exc_info=True)
        return _internal_error(e)

    return {
        "success": True,
        "response": reply.response,
        "messageType": reply.message_type,
        "model": reply.model,
        "isFallback": reply.is_fallback,
        "responseTime": reply.response_time_ms,
    }


@app.delete("/api/chat/session/{session_id}")
async def chat_end(session_id: str):
    try:
        dialogue.end_turn(session_id)
    except SessionNotFound:
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    return {"success": True, "message": "Session ended successfully"}


# ---------------------------------------------------------------------------
# WebSocket: real-time mirror of start + message
# ---------------------------------------------------------------------------

async def _handle_ws_message(data: Dict[str, Any]) -> Dict[str, Any]:
    msg_type = data.get("type")
    if not msg_type:
        return {"type": "error", "message": "Message type is required"}

    if msg_type == "startSession":
        try:
            started = dialogue.start_turn(data.get("sessionId") or None)
        except RevVoiceError as e:
            return {"type": "error", "message": e.message}
        return {
            "type": "sessionStarted",
            "sessionId": started.session_id,
            "model": started.model,
            "fallback": started.is_fallback,
        }

    if msg_type in ("textInput", "voiceInput"):
        session_id = data.get("sessionId")
        if not session_id:
            return {"type": "error", "message": "Session ID is required"}
        text = data.get("text")
        if not isinstance(text, str) or not text.strip():
            return {"type": "error", "message": "Text is required"}
        kind = "voice" if msg_type == "voiceInput" else "text"
        try:
            reply = await dialogue.submit_utterance(session_id, text.strip(), kind)
        except RevVoiceError as e:
            return {"type": "error", "message": e.message}
        return {
            "type": "voiceResponse" if kind == "voice" else "textResponse",
            "text": reply.response,
            "model": reply.model,
        }

    return {"type": "error", "message": f"Unknown message type: {msg_type}"}


@app.websocket("/ws")
async def websocket_chat(ws: WebSocket):
    server_health.connection_opened()
    try:
        await ws.accept()
        logger.info("Client connected via WebSocket")

        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await ws.send_json({"type": "error", "message": "Invalid message format"})
                continue
            if not isinstance(data, dict):
                await ws.send_json({"type": "error", "message": "Invalid message format"})
                continue

            try:
                reply = await _handle_ws_message(data)
            except Exception as e:
                logger.error(f"WebSocket message error: {e}", exc_info=True)
                reply = {"type": "error", "message": "Processing error"}
            await ws.send_json(reply)

    except WebSocketDisconnect:
        logger.info("Client disconnected")
    finally:
        server_health.connection_closed()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "revvoice.server:app",
        host=server_cfg.host,
        port=server_cfg.port,
        log_level="info",
    )
