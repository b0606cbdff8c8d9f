"""
Message store: the only writer of chat messages.
- Assigns time-ordered ids (callers never supply one).
- Insert + preview update + updated_at bump commit together; on failure nothing is kept.
  Several inserts can share one transaction through atomic().
- Listing is oldest-first by created_at, id as tie-breaker.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy.orm import Session

from app.core.exceptions import ConversationNotFoundError, ValidationError
from app.models.chat_message import ChatMessage, MessageRole
from app.repositories.chat_repository import ChatRepository, storage_errors
from app.services.preview import update_preview
from app.utils.ids import new_message_id

logger = logging.getLogger(__name__)

_ROLES = {r.value for r in MessageRole}


class MessageStore:
    def __init__(self, repository: ChatRepository | None = None):
        self._repo = repository or ChatRepository()

    @contextmanager
    def atomic(self, db: Session) -> Iterator[None]:
        """Commit every write staged inside the block once; on any error roll all of them back."""
        try:
            yield
        except Exception:
            db.rollback()
            raise
        self._repo.commit(db)

    def insert_message(
        self,
        db: Session,
        conversation_id: str,
        *,
        role: str,
        content: str,
        parent_message_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        commit: bool = True,
    ) -> ChatMessage:
        """
        Insert a message and refresh the conversation preview.
        commit=False only stages both writes; the caller commits them inside atomic().
        """
        if not commit:
            return self._stage(db, conversation_id, role, content, parent_message_id, metadata)
        with self.atomic(db):
            msg = self._stage(db, conversation_id, role, content, parent_message_id, metadata)
        with storage_errors(db, "refreshing message"):
            db.refresh(msg)
        return msg

    def _stage(
        self,
        db: Session,
        conversation_id: str,
        role: str,
        content: str,
        parent_message_id: str | None,
        metadata: dict[str, Any] | None,
    ) -> ChatMessage:
        role = role.value if isinstance(role, MessageRole) else role
        if role not in _ROLES:
            raise ValidationError(f"Invalid message role: {role!r}")
        if not content or not content.strip():
            raise ValidationError("Message content cannot be empty")
        if self._repo.get_conversation(db, conversation_id) is None:
            raise ConversationNotFoundError(conversation_id)

        msg = self._repo.create_message(
            db,
            {
                "id": new_message_id(),
                "conversation_id": conversation_id,
                "role": role,
                "content": content,
                "parent_message_id": parent_message_id,
                "metadata_": metadata,
                "created_at": datetime.utcnow(),
            },
            commit=False,
        )
        update_preview(db, conversation_id, content, repository=self._repo, commit=False)
        logger.info("Message %s (%s) staged for conversation %s", msg.id, role, conversation_id)
        return msg

    def list_messages(self, db: Session, conversation_id: str, limit: int | None = None) -> list[ChatMessage]:
        return self._repo.list_messages(db, conversation_id, limit)

    def get_message(self, db: Session, message_id: str) -> ChatMessage | None:
        return self._repo.get_message(db, message_id)


def message_to_dict(msg: ChatMessage) -> dict[str, Any]:
    """Stable response shape shared by the service layer and routers."""
    return {
        "id": msg.id,
        "conversation_id": msg.conversation_id,
        "role": msg.role,
        "content": msg.content,
        "parent_message_id": msg.parent_message_id,
        "created_at": msg.created_at,
        "metadata": msg.metadata_,
    }
