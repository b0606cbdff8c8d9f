"""
Completed cycle assessment. Written by the intake service; this service only reads it
to snapshot the classification onto a conversation.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON
from app.database import Base


class Assessment(Base):
    __tablename__ = "assessments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    pattern = Column(String(32), nullable=True)  # regular | irregular | heavy | pain | developing
    age = Column(String(16), nullable=True)  # range, e.g. "13-17"
    cycle_length = Column(String(16), nullable=True)
    period_duration = Column(String(16), nullable=True)
    flow_heaviness = Column(String(16), nullable=True)
    pain_level = Column(String(16), nullable=True)
    physical_symptoms = Column(JSON, nullable=True)
    emotional_symptoms = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
