from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# ---- Conversations ----

class ConversationCreateRequest(BaseModel):
    assessment_id: str | None = Field(None, description="Optional assessment to anchor the conversation to")


class ConversationCreateResponse(BaseModel):
    conversation_id: str


class AssessmentLinkRequest(BaseModel):
    assessment_id: str = Field(..., min_length=1)


class AssessmentLinkResponse(BaseModel):
    success: bool


class ConversationOut(BaseModel):
    id: str
    assessment_id: str | None = None
    assessment_snapshot: dict[str, Any] | None = None
    pattern: str | None = None
    title: str
    preview: str  # "No messages yet" when empty
    has_messages: bool = False
    message_count: int | None = None
    created_at: datetime
    updated_at: datetime


class ConversationListResponse(BaseModel):
    conversations: list[ConversationOut]


# ---- Messages ----

class MessageOut(BaseModel):
    id: str
    conversation_id: str
    role: str  # "user" | "assistant"
    content: str
    parent_message_id: str | None = None
    created_at: datetime
    metadata: dict[str, Any] | None = None


class ConversationDetailResponse(BaseModel):
    conversation: ConversationOut
    messages: list[MessageOut]


class SendMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    parent_message_id: str | None = Field(
        None, description="Message being replied to; omit for the first message of a conversation"
    )


class SendMessageResponse(BaseModel):
    user_message: MessageOut
    assistant_message: MessageOut


# ---- Status ----

class ChatStatusResponse(BaseModel):
    service_mode: str = Field(..., description="Responder used for new messages: ai | mock")
    configured_mode: str
    ai_available: bool
    fallback_enabled: bool
    redis: str
