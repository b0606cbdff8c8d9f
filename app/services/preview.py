"""
Conversation preview: short summary of the latest message for conversation lists.
Recomputed only by the message store on insert; never written elsewhere.
"""
from datetime import datetime

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.conversation import NO_MESSAGES_PREVIEW
from app.repositories.chat_repository import ChatRepository

ELLIPSIS = "..."


def build_preview(content: str | None, max_chars: int | None = None) -> str:
    """First `max_chars` characters plus '...' when truncated; sentinel for no content."""
    if not content:
        return NO_MESSAGES_PREVIEW
    limit = max_chars or get_settings().chat_preview_max_chars
    if len(content) > limit:
        return content[:limit] + ELLIPSIS
    return content


def is_empty_preview(preview: str | None) -> bool:
    """The sentinel means 'no messages', not real content."""
    return not preview or preview == NO_MESSAGES_PREVIEW


def update_preview(
    db: Session,
    conversation_id: str,
    latest_content: str,
    *,
    repository: ChatRepository | None = None,
    commit: bool = True,
) -> str:
    """Set preview from the latest message and bump updated_at. Returns the stored preview."""
    repo = repository or ChatRepository()
    preview = build_preview(latest_content)
    repo.update_conversation(
        db,
        conversation_id,
        {"preview": preview, "updated_at": datetime.utcnow()},
        commit=commit,
    )
    return preview
