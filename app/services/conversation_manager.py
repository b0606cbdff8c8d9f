"""
Conversation lifecycle: create (optionally anchored to an assessment), re-link assessment, read, list.

Assessment linkage is best effort: if the lookup fails or finds nothing, the conversation is
still created / re-linked without snapshot and pattern, and the failure is only logged.
pattern is only ever written together with the snapshot it comes from.
"""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.core.exceptions import AssessmentLookupError
from app.models.conversation import Conversation, NO_MESSAGES_PREVIEW
from app.repositories.chat_repository import ChatRepository
from app.services.assessment_lookup import AssessmentLookup, DbAssessmentLookup, extract_pattern
from app.services.message_store import message_to_dict
from app.services.message_validation import require_id
from app.services.ownership import get_owned_conversation
from app.services.preview import is_empty_preview

logger = logging.getLogger(__name__)

TITLE_DEFAULT = "New Conversation"
TITLE_ASSESSMENT = "Assessment Conversation"


class ConversationManager:
    def __init__(self, repository: ChatRepository | None = None):
        self._repo = repository or ChatRepository()

    def _fetch_snapshot(
        self,
        lookup: AssessmentLookup,
        assessment_id: str,
        owner_id: str,
    ) -> dict[str, Any] | None:
        try:
            snapshot = lookup.fetch_snapshot(assessment_id, owner_id=owner_id)
        except AssessmentLookupError as e:
            logger.warning("Could not fetch assessment %s: %s", assessment_id, e)
            return None
        if snapshot is None:
            logger.warning("Assessment %s not found for user %s", assessment_id, owner_id)
        return snapshot

    def create_conversation(
        self,
        db: Session,
        owner_id: str,
        assessment_id: str | None = None,
        lookup: AssessmentLookup | None = None,
    ) -> str:
        """Create a conversation and return its id. Raises ValidationError on empty owner_id."""
        owner_id = require_id(owner_id, "owner_id")
        record: dict[str, Any] = {
            "user_id": owner_id,
            "title": TITLE_DEFAULT,
            "preview": NO_MESSAGES_PREVIEW,
        }
        if assessment_id:
            record["assessment_id"] = assessment_id
            record["title"] = TITLE_ASSESSMENT
            snapshot = self._fetch_snapshot(lookup or DbAssessmentLookup(db), assessment_id, owner_id)
            if snapshot is not None:
                record["assessment_snapshot"] = snapshot
                record["pattern"] = extract_pattern(snapshot)

        conv = self._repo.create_conversation(db, record)
        logger.info(
            "Created conversation %s for user %s (assessment=%s, pattern=%s)",
            conv.id, owner_id, assessment_id, conv.pattern,
        )
        return conv.id

    def update_assessment_links(
        self,
        db: Session,
        conversation_id: str,
        owner_id: str,
        assessment_id: str,
        lookup: AssessmentLookup | None = None,
    ) -> bool:
        """
        Point the conversation at another assessment and re-snapshot it.
        False when the conversation is missing or not owned (no exception for those).
        """
        if not assessment_id:
            logger.warning("update_assessment_links called without assessment_id")
            return False
        conv = get_owned_conversation(db, conversation_id, owner_id, self._repo)
        if conv is None:
            logger.warning(
                "Conversation %s not found or not owned by %s; assessment link skipped",
                conversation_id, owner_id,
            )
            return False

        snapshot = self._fetch_snapshot(lookup or DbAssessmentLookup(db), assessment_id, owner_id)
        patch: dict[str, Any] = {
            "assessment_id": assessment_id,
            "assessment_snapshot": snapshot,
            "pattern": extract_pattern(snapshot),
            "updated_at": datetime.utcnow(),
        }
        if conv.title == TITLE_DEFAULT:
            patch["title"] = TITLE_ASSESSMENT
        self._repo.update_conversation(db, conversation_id, patch)
        logger.info(
            "Conversation %s linked to assessment %s (pattern=%s)",
            conversation_id, assessment_id, patch["pattern"],
        )
        return True

    def get_conversation(self, db: Session, conversation_id: str, owner_id: str) -> dict[str, Any] | None:
        """
        {"conversation": {...}, "messages": [...]} or None when missing OR not owned.
        Both cases look the same to the caller.
        """
        conv = get_owned_conversation(db, conversation_id, owner_id, self._repo)
        if conv is None:
            return None
        messages = self._repo.list_messages(db, conversation_id)
        return {
            "conversation": conversation_to_dict(conv, message_count=len(messages)),
            "messages": [message_to_dict(m) for m in messages],
        }

    def list_conversations(self, db: Session, owner_id: str) -> list[dict[str, Any]]:
        """Owner's conversations, most recent first, with preview and message count."""
        owner_id = require_id(owner_id, "owner_id")
        return [
            conversation_to_dict(conv, message_count=count)
            for conv, count in self._repo.list_conversations_for_user(db, owner_id)
        ]


def conversation_to_dict(conv: Conversation, message_count: int | None = None) -> dict[str, Any]:
    return {
        "id": conv.id,
        "user_id": conv.user_id,
        "assessment_id": conv.assessment_id,
        "assessment_snapshot": conv.assessment_snapshot,
        "pattern": conv.pattern,
        "title": conv.title,
        "preview": conv.preview,
        "has_messages": not is_empty_preview(conv.preview),
        "message_count": message_count,
        "created_at": conv.created_at,
        "updated_at": conv.updated_at,
    }
