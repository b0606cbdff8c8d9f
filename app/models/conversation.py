"""Chat thread between a user and the assistant, optionally anchored to one assessment."""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from app.database import Base

NO_MESSAGES_PREVIEW = "No messages yet"


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    assessment_id = Column(String(36), ForeignKey("assessments.id"), nullable=True, index=True)
    # Point-in-time copy of the assessment classification, taken at link time
    assessment_snapshot = Column(JSON, nullable=True)
    pattern = Column(String(32), nullable=True, index=True)
    title = Column(String(120), nullable=False, default="New Conversation")
    preview = Column(String(255), nullable=False, default=NO_MESSAGES_PREVIEW)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Messages ordered by created_at for correct ordering
    messages = relationship(
        "ChatMessage",
        back_populates="conversation",
        order_by="ChatMessage.created_at",
        lazy="select",
    )
