"""
Hotel Concierge Server
======================

FastAPI application for the multilingual hotel guest concierge: routes guest
messages, runs the reservation slot-filling flow and answers from the hotel
knowledge base.
"""

import os
from dotenv import load_dotenv

# Load .env from the project root
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
load_dotenv(os.path.join(BASE_DIR, ".env"))

from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from concierge.adapters import build_default_ports
from concierge.config import get_settings
from concierge.langfuse_tracking import flush_langfuse
from concierge.service import ChatService
from concierge.validation import ChatRequest, ResetStateRequest, sanitize_user_input, validate_identifier
from logger_config import bind_conversation, configure_logger, get_logger

# Setup logging
configure_logger()
logger = get_logger(__name__)


# ======================================================
# RESPONSE MODELS
# ======================================================

class ChatResponseModel(BaseModel):
    response: str
    conversation_id: str
    category: Optional[str] = None
    prompt_key: Optional[str] = None
    language: str


class ConversationStateResponse(BaseModel):
    hotel_id: str
    conversation_id: str
    state: Dict[str, Any]


# ======================================================
# CHAT SERVICE
# ======================================================

_chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    """Shared ChatService wired with the production adapters."""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService(build_default_ports())
        logger.info("ChatService ready.")
    return _chat_service


# ======================================================
# FASTAPI APP SETUP
# ======================================================

app = FastAPI(title="Hotel Concierge API")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Hotel Concierge API is running",
        "status": "ok",
        "service": "concierge-backend",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker and Cloud Run."""
    return {
        "status": "healthy",
        "service": "concierge-backend",
        "version": "1.0.0"
    }


@app.get("/health/ready")
async def readiness_check():
    """
    Readiness check - verifies the external services are configured.
    """
    settings = get_settings()
    checks = {
        "openai": bool(settings.openai_api_key),
        "knowledge_index": bool(settings.pinecone_api_key and settings.knowledge_index_name),
        "channel_manager": bool(settings.channel_manager_url),
    }
    return {
        "status": "ready" if all(checks.values()) else "not_ready",
        "service": "concierge-backend",
        "checks": checks,
    }


@app.on_event("startup")
async def startup_event():
    logger.info("Starting Hotel Concierge API...")
    try:
        get_chat_service()
    except Exception as e:
        # The chat endpoints report the failure; health endpoints keep serving.
        logger.error("ChatService initialization failed", error=str(e))
    logger.info("Startup complete!")


@app.on_event("shutdown")
async def shutdown_event():
    """Flush traces and close the channel-manager client."""
    flush_langfuse()
    if _chat_service is not None:
        availability = _chat_service.ports.availability
        if hasattr(availability, "aclose"):
            await availability.aclose()
    logger.info("Shutdown complete")


# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ======================================================
# CHAT API ROUTES
# ======================================================

@app.post("/api/v1/chat/message", response_model=ChatResponseModel)
async def send_message(request: ChatRequest, chat_service: ChatService = Depends(get_chat_service)):
    """
    Process a guest message.

    Input validation and sanitization is performed automatically by Pydantic.
    """
    bind_conversation(request.hotel_id, request.conversation_id, request.channel)

    # Additional sanitization for extra security
    sanitized_message = sanitize_user_input(request.message)

    res = await chat_service.process_message(
        message=sanitized_message,
        hotel_id=request.hotel_id,
        conversation_id=request.conversation_id,
        channel=request.channel,
        language=request.language,
    )
    return ChatResponseModel(
        response=res.response,
        conversation_id=res.conversation_id,
        category=res.category,
        prompt_key=res.prompt_key,
        language=res.language,
    )


@app.get(
    "/api/v1/conversations/{hotel_id}/{conversation_id}/state",
    response_model=ConversationStateResponse,
)
async def get_conversation_state(
    hotel_id: str,
    conversation_id: str,
    chat_service: ChatService = Depends(get_chat_service),
):
    """Return the persisted state of a conversation."""
    try:
        hotel_id = validate_identifier(hotel_id, "hotel_id", 50)
        conversation_id = validate_identifier(conversation_id, "conversation_id", 200)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    state = await chat_service.get_state(hotel_id, conversation_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return ConversationStateResponse(
        hotel_id=hotel_id,
        conversation_id=conversation_id,
        state=state.model_dump(mode="json"),
    )


@app.post("/api/v1/conversations/reset-state")
async def reset_conversation_state(
    request: ResetStateRequest,
    chat_service: ChatService = Depends(get_chat_service),
):
    """Forget a conversation so the next message starts from scratch."""
    bind_conversation(request.hotel_id, request.conversation_id)
    await chat_service.reset(request.hotel_id, request.conversation_id)
    logger.info("Conversation reset")
    return {"status": "ok", "hotel_id": request.hotel_id, "conversation_id": request.conversation_id}
