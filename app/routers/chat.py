"""
Assistant chat endpoints:
- POST /api/chat/conversations: create (optionally anchored to an assessment)
- GET /api/chat/conversations: current user's conversations with previews
- GET /api/chat/conversations/{id}: conversation + ordered messages (404 if missing or not owned)
- POST /api/chat/conversations/{id}/messages: send a message, get the assistant reply
- PATCH /api/chat/conversations/{id}/assessment: re-link to another assessment
- GET /api/chat/status: responder mode and Redis status
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth import get_current_user_id
from app.config import get_settings
from app.core.exceptions import (
    ChatError,
    ConversationNotFoundError,
    GenerationError,
    StorageError,
    ValidationError,
)
from app.database import get_db
from app.schemas.chat import (
    AssessmentLinkRequest,
    AssessmentLinkResponse,
    ChatStatusResponse,
    ConversationCreateRequest,
    ConversationCreateResponse,
    ConversationDetailResponse,
    ConversationListResponse,
    ConversationOut,
    SendMessageRequest,
    SendMessageResponse,
)
from app.services import ai_service
from app.services.chat_service import ChatService
from app.services.responders import resolve_service_mode, select_responders
from app.services.response_orchestrator import ResponseOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

NOT_FOUND_DETAIL = "Conversation not found"


def _http_error(e: ChatError) -> HTTPException:
    """Map core errors to HTTP. Server-side failures are logged with traceback."""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, ConversationNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    if isinstance(e, GenerationError):
        logger.exception("Assistant reply generation failed")
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="AI service temporarily unavailable. Please try again later.",
        )
    if isinstance(e, StorageError):
        logger.exception("Chat storage failure")
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat storage temporarily unavailable. Please try again later.",
        )
    logger.exception("Unhandled chat error")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Chat error")


# ---------- Dependencies: Redis (optional) + ChatService ----------


async def _get_redis_chat_cache_dep():
    """Async dependency: Redis chat cache or None if Redis disabled/down."""
    from app.core.redis import get_redis_client, build_redis_chat_cache
    client = await get_redis_client()
    return build_redis_chat_cache(client) if client else None


def _get_chat_service_dep(
    redis_cache=Depends(_get_redis_chat_cache_dep),
) -> ChatService:
    """ChatService with the responder picked from settings for this request."""
    responder, fallback = select_responders()
    return ChatService(ResponseOrchestrator(responder, fallback), redis_cache=redis_cache)


# ---------- Status ----------


@router.get("/status", response_model=ChatStatusResponse)
async def chat_status():
    """Which responder new messages use, and Redis status (optional)."""
    from app.core.redis import redis_status
    settings = get_settings()
    redis_info = await redis_status()
    return ChatStatusResponse(
        service_mode=resolve_service_mode(settings),
        configured_mode=settings.chat_service_mode,
        ai_available=ai_service.is_ai_configured(),
        fallback_enabled=settings.chat_fallback_to_mock,
        redis=redis_info["redis"],
    )


# ---------- Conversations ----------


@router.post(
    "/conversations",
    response_model=ConversationCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    body: ConversationCreateRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(_get_chat_service_dep),
):
    """Create a conversation. A missing/unreadable assessment does not block creation."""
    try:
        conversation_id = await chat_service.create_conversation(db, user_id, body.assessment_id)
    except ChatError as e:
        raise _http_error(e) from e
    return ConversationCreateResponse(conversation_id=conversation_id)


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(_get_chat_service_dep),
):
    """Current user's conversations, most recently active first."""
    try:
        conversations = await chat_service.list_conversations(db, user_id)
    except ChatError as e:
        raise _http_error(e) from e
    return ConversationListResponse(conversations=[ConversationOut(**c) for c in conversations])


@router.get("/conversations/{conversation_id}", response_model=ConversationDetailResponse)
async def get_conversation(
    conversation_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(_get_chat_service_dep),
):
    """
    Conversation with messages ordered by created_at.
    Ownership: other users' conversations return the same 404 as unknown ids.
    """
    try:
        detail = await chat_service.get_conversation(db, conversation_id, user_id)
    except ChatError as e:
        raise _http_error(e) from e
    if detail is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    return ConversationDetailResponse(**detail)


@router.post("/conversations/{conversation_id}/messages", response_model=SendMessageResponse)
async def send_message(
    conversation_id: str,
    body: SendMessageRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(_get_chat_service_dep),
):
    """
    Send a user message and get the assistant reply.
    Without parent_message_id the reply is grounded on the conversation's assessment;
    with it, on the conversation history.
    """
    try:
        result = await chat_service.send_message(
            db, conversation_id, user_id, body.message, body.parent_message_id
        )
    except ChatError as e:
        raise _http_error(e) from e
    return SendMessageResponse(**result)


@router.patch("/conversations/{conversation_id}/assessment", response_model=AssessmentLinkResponse)
async def update_assessment_links(
    conversation_id: str,
    body: AssessmentLinkRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(_get_chat_service_dep),
):
    """Re-link to another assessment. success=false when the conversation is missing or not owned."""
    try:
        success = await chat_service.update_assessment_links(db, conversation_id, user_id, body.assessment_id)
    except ChatError as e:
        raise _http_error(e) from e
    return AssessmentLinkResponse(success=success)
