"""FastAPI surface for the bachelor party planner."""
from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env file before any other imports that might need environment variables
load_dotenv()

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from party_planner.api.dependencies import get_chat_service, lifespan
from party_planner.api.schemas import ChatRequest, ChatResponse, CleanupResponse
from party_planner.core.config import ApiSettings

logger = logging.getLogger(__name__)

if os.getenv("SENTRY_DSN"):  # pragma: no cover - runtime configuration
    sentry_sdk.init(
        dsn=os.getenv("SENTRY_DSN"),
        enable_logs=True,
        send_default_pii=True,
        traces_sample_rate=1.0,
    )

app = FastAPI(title="Party Planner API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ApiSettings.from_env().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/chat", response_model=ChatResponse)
async def chat(payload: ChatRequest) -> ChatResponse:
    """Run one conversation turn.

    The conversation is created on first use of ``conversationId``. A
    ``snapshot`` from an earlier response restores the full state, so a
    client may drive the conversation across server restarts.

    Raises:
        HTTPException: 400 for missing fields or a malformed snapshot,
            500 for planner failures

    Example JSON payload:
        ```json
        {
            "conversationId": "abc-123",
            "message": "Austin, first weekend of September, 8 guys, ~$500 each"
        }
        ```
    """

    logger.info("Chat turn for conversation %s", payload.conversation_id)
    service = get_chat_service()
    try:
        return await service.handle_message(
            payload.conversation_id,
            payload.message,
            snapshot=payload.snapshot,
            structured_input=payload.structured_input,
            user_id=payload.user_id,
        )
    except RuntimeError as exc:
        logger.error(f"Runtime error during chat turn: {str(exc)}")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except ValueError as exc:
        logger.error(f"Value error during chat turn: {str(exc)}")
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.error(f"Unexpected error during chat turn: {str(exc)}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str) -> Dict[str, Any]:
    """Return the snapshot of a conversation held in memory."""

    snapshot = get_chat_service().get_snapshot(conversation_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Unknown conversation {conversation_id}")
    return snapshot


@app.post("/conversations/cleanup", response_model=CleanupResponse)
async def cleanup_conversations(max_age_minutes: Optional[int] = None) -> CleanupResponse:
    """Drop conversations idle for longer than ``max_age_minutes``."""

    logger.info("Cleanup conversations request received")
    service = get_chat_service()
    try:
        removed = service.cleanup_old_conversations(max_age_minutes)
    except Exception as exc:
        logger.error(f"Unexpected error during cleanup: {str(exc)}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return CleanupResponse(removed=removed, active_conversations=service.active_conversations)


@app.get("/health")
async def health_check() -> Dict[str, str]:
    """Simple health endpoint used for readiness probes."""

    return {"status": "healthy", "service": "party-planner-api"}


@app.get("/workflow/info")
async def get_workflow_info() -> Dict[str, Any]:
    """Get information about the planner configuration."""

    return {"workflow_info": get_chat_service().workflow_info()}
