"""
Ownership guard: conversation.user_id must equal the requesting user.
Missing and foreign conversations both read as "not owned" so callers cannot
discover which conversation ids exist.
"""
from sqlalchemy.orm import Session

from app.models.conversation import Conversation
from app.repositories.chat_repository import ChatRepository


def get_owned_conversation(
    db: Session,
    conversation_id: str,
    owner_id: str,
    repository: ChatRepository | None = None,
) -> Conversation | None:
    """The conversation if owned by owner_id, else None (missing or foreign)."""
    if not conversation_id or not owner_id:
        return None
    repo = repository or ChatRepository()
    conv = repo.get_conversation(db, conversation_id)
    if conv is None or conv.user_id != owner_id:
        return None
    return conv


def is_owner(
    db: Session,
    conversation_id: str,
    owner_id: str,
    repository: ChatRepository | None = None,
) -> bool:
    return get_owned_conversation(db, conversation_id, owner_id, repository) is not None
