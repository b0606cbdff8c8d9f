"""
Chat persistence: Conversation + ChatMessage primitives over a SQLAlchemy session.
All operations are sync (called from sync code or run_in_executor from async).
Writes take commit=False so callers can group several writes into one transaction.
Every SQLAlchemyError is rolled back and re-raised as StorageError.
"""
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import StorageError
from app.models.chat_message import ChatMessage
from app.models.conversation import Conversation

logger = logging.getLogger(__name__)

CONVERSATION_PATCHABLE_FIELDS = {
    "assessment_id", "assessment_snapshot", "pattern", "title", "preview", "updated_at",
}


@contextmanager
def storage_errors(db: Session, action: str) -> Iterator[None]:
    """Roll back and translate DB failures for the wrapped block."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Storage failure while %s: %s", action, e)
        raise StorageError(f"Storage failure while {action}") from e


def create_conversation(db: Session, record: dict[str, Any], *, commit: bool = True) -> Conversation:
    conv = Conversation(**record)
    with storage_errors(db, "creating conversation"):
        db.add(conv)
        if commit:
            db.commit()
            db.refresh(conv)
        else:
            db.flush()
    return conv


def get_conversation(db: Session, conversation_id: str) -> Conversation | None:
    with storage_errors(db, "reading conversation"):
        return db.query(Conversation).filter(Conversation.id == conversation_id).first()


def update_conversation(
    db: Session,
    conversation_id: str,
    patch: dict[str, Any],
    *,
    commit: bool = True,
) -> Conversation | None:
    """Apply `patch` to the conversation. Returns None if it does not exist."""
    unknown = set(patch) - CONVERSATION_PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot patch conversation fields: {sorted(unknown)}")
    with storage_errors(db, "updating conversation"):
        conv = db.query(Conversation).filter(Conversation.id == conversation_id).first()
        if conv is None:
            return None
        for key, value in patch.items():
            setattr(conv, key, value)
        if commit:
            db.commit()
            db.refresh(conv)
        else:
            db.flush()
    return conv


def create_message(db: Session, record: dict[str, Any], *, commit: bool = True) -> ChatMessage:
    msg = ChatMessage(**record)
    with storage_errors(db, "creating message"):
        db.add(msg)
        if commit:
            db.commit()
            db.refresh(msg)
        else:
            db.flush()
    return msg


def list_messages(db: Session, conversation_id: str, limit: int | None = None) -> list[ChatMessage]:
    """Messages of a conversation, oldest first. With `limit`, the newest `limit` (still oldest first)."""
    with storage_errors(db, "listing messages"):
        q = db.query(ChatMessage).filter(ChatMessage.conversation_id == conversation_id)
        if limit is None:
            return q.order_by(ChatMessage.created_at, ChatMessage.id).all()
        rows = q.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit).all()
        return list(reversed(rows))


def get_message(db: Session, message_id: str) -> ChatMessage | None:
    with storage_errors(db, "reading message"):
        return db.query(ChatMessage).filter(ChatMessage.id == message_id).first()


def list_conversations_for_user(db: Session, user_id: str) -> list[tuple[Conversation, int]]:
    """User's conversations, most recently updated first, with message counts."""
    with storage_errors(db, "listing conversations"):
        counts = (
            db.query(ChatMessage.conversation_id, func.count(ChatMessage.id).label("n"))
            .group_by(ChatMessage.conversation_id)
            .subquery()
        )
        rows = (
            db.query(Conversation, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.conversation_id == Conversation.id)
            .filter(Conversation.user_id == user_id)
            .order_by(Conversation.updated_at.desc())
            .all()
        )
    return [(conv, int(n)) for conv, n in rows]


def commit(db: Session) -> None:
    with storage_errors(db, "committing"):
        db.commit()


class ChatRepository:
    """Thin wrapper for dependency injection; delegates to module functions."""

    @staticmethod
    def create_conversation(db: Session, record: dict[str, Any], *, commit: bool = True) -> Conversation:
        return create_conversation(db, record, commit=commit)

    @staticmethod
    def get_conversation(db: Session, conversation_id: str) -> Conversation | None:
        return get_conversation(db, conversation_id)

    @staticmethod
    def update_conversation(
        db: Session, conversation_id: str, patch: dict[str, Any], *, commit: bool = True
    ) -> Conversation | None:
        return update_conversation(db, conversation_id, patch, commit=commit)

    @staticmethod
    def create_message(db: Session, record: dict[str, Any], *, commit: bool = True) -> ChatMessage:
        return create_message(db, record, commit=commit)

    @staticmethod
    def list_messages(db: Session, conversation_id: str, limit: int | None = None) -> list[ChatMessage]:
        return list_messages(db, conversation_id, limit)

    @staticmethod
    def get_message(db: Session, message_id: str) -> ChatMessage | None:
        return get_message(db, message_id)

    @staticmethod
    def list_conversations_for_user(db: Session, user_id: str) -> list[tuple[Conversation, int]]:
        return list_conversations_for_user(db, user_id)

    @staticmethod
    def commit(db: Session) -> None:
        return commit(db)
