"""
Chat operations exposed to the routing layer: create, send, read, list, re-link.
- Sync DB and strategy work runs in the default executor.
- Every read or write of a conversation goes through the ownership guard first;
  not-found and not-owned surface identically (None / ConversationNotFoundError).
- Follow-up context: try Redis first; on miss load from DB, warm Redis (Cache-Aside).
  Appends use RPUSHX and never create the key. Two overlapping follow-ups on a cold key can
  leave one exchange out of the cached window: the warm may read the DB before the other
  request commits, and that request's append found no key. The DB stays complete; the cached
  window catches up on the next warm after the key expires.
"""
import asyncio
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.exceptions import ConversationNotFoundError
from app.repositories.chat_repository import ChatRepository
from app.services.assessment_lookup import AssessmentLookup
from app.services.conversation_manager import ConversationManager
from app.services.message_store import MessageStore
from app.services.message_validation import require_id, validate_message_text
from app.services.ownership import get_owned_conversation
from app.services.redis_chat_cache import RedisChatCache
from app.services.response_orchestrator import ResponseOrchestrator

logger = logging.getLogger(__name__)


class ChatService:
    """Facade over conversation manager, orchestrator and message store."""

    def __init__(
        self,
        orchestrator: ResponseOrchestrator,
        redis_cache: RedisChatCache | None = None,
        repository: ChatRepository | None = None,
        lookup: AssessmentLookup | None = None,
    ):
        self._repo = repository or ChatRepository()
        self._store = MessageStore(self._repo)
        self._manager = ConversationManager(self._repo)
        self._orchestrator = orchestrator
        self._cache = redis_cache
        self._lookup = lookup

    async def create_conversation(self, db: Session, owner_id: str, assessment_id: str | None = None) -> str:
        owner_id = require_id(owner_id, "owner_id")
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._manager.create_conversation(db, owner_id, assessment_id, lookup=self._lookup),
        )

    async def get_context_history(self, db: Session, conversation_id: str) -> list[dict] | None:
        """
        Cache-Aside read of the follow-up context window.
        None when Redis is not configured (orchestrator then reads full history from DB).
        """
        if not self._cache:
            return None
        messages = await self._cache.get_last_messages(conversation_id)
        if messages is not None:
            return messages
        loop = asyncio.get_event_loop()
        rows = await loop.run_in_executor(
            None,
            lambda: self._store.list_messages(db, conversation_id, limit=self._cache.limit),
        )
        messages = [{"role": m.role, "content": m.content} for m in rows]
        if messages:
            await self._cache.warm(conversation_id, messages)
        return messages

    async def send_message(
        self,
        db: Session,
        conversation_id: str,
        owner_id: str,
        text: str,
        parent_message_id: str | None = None,
    ) -> dict[str, dict[str, Any]]:
        """
        Store the user message and the generated reply.
        Returns {"user_message": {...}, "assistant_message": {...}}.
        """
        owner_id = require_id(owner_id, "owner_id")
        validate_message_text(text)
        loop = asyncio.get_event_loop()

        conv = await loop.run_in_executor(
            None,
            lambda: get_owned_conversation(db, conversation_id, owner_id, self._repo),
        )
        if conv is None:
            raise ConversationNotFoundError(conversation_id)

        history = None
        if parent_message_id:
            history = await self.get_context_history(db, conversation_id)

        result = await loop.run_in_executor(
            None,
            lambda: self._orchestrator.respond(db, conv, text, parent_message_id, history=history),
        )
        if self._cache:
            await self._cache.append_messages(
                conversation_id,
                [
                    {"role": "user", "content": result["user_message"]["content"]},
                    {"role": "assistant", "content": result["assistant_message"]["content"]},
                ],
            )
        return result

    async def get_conversation(self, db: Session, conversation_id: str, owner_id: str) -> dict[str, Any] | None:
        """Conversation with ordered messages, or None when missing or not owned."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._manager.get_conversation(db, conversation_id, owner_id),
        )

    async def list_conversations(self, db: Session, owner_id: str) -> list[dict[str, Any]]:
        owner_id = require_id(owner_id, "owner_id")
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._manager.list_conversations(db, owner_id),
        )

    async def update_assessment_links(
        self,
        db: Session,
        conversation_id: str,
        owner_id: str,
        assessment_id: str,
    ) -> bool:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._manager.update_assessment_links(
                db, conversation_id, owner_id, assessment_id, lookup=self._lookup
            ),
        )
