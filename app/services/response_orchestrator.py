"""
Turns a user message into a stored user/assistant pair.

INITIAL (no parent_message_id): context is the conversation's assessment snapshot; a missing
snapshot is an integration bug and raises InitialContextMissingError before anything is stored.
FOLLOWUP (parent_message_id given): context is the message history plus the cached pattern.

The reply is generated before either message is inserted, and both messages commit in one
transaction, so a failed generation or a failed write leaves the conversation untouched.
The strategy never switches silently: the fallback responder is used only when configured,
and its replies carry metadata["responseCategory"] == "fallback".
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.exceptions import GenerationError, InitialContextMissingError, ValidationError
from app.models.chat_message import MessageRole
from app.models.conversation import Conversation
from app.services.message_store import MessageStore, message_to_dict
from app.services.responders import (
    STATE_FOLLOWUP,
    STATE_INITIAL,
    GeneratedResponse,
    Responder,
)

logger = logging.getLogger(__name__)

FALLBACK_CATEGORY = "fallback"


class ResponseOrchestrator:
    def __init__(
        self,
        responder: Responder,
        fallback: Responder | None = None,
        store: MessageStore | None = None,
    ):
        self._responder = responder
        self._fallback = fallback
        self._store = store or MessageStore()

    @property
    def responder(self) -> Responder:
        return self._responder

    @staticmethod
    def state_for(parent_message_id: str | None) -> str:
        return STATE_FOLLOWUP if parent_message_id else STATE_INITIAL

    def build_context(
        self,
        db: Session,
        conversation: Conversation,
        parent_message_id: str | None,
        history: list[dict] | None = None,
    ) -> dict[str, Any]:
        state = self.state_for(parent_message_id)
        if state == STATE_INITIAL:
            if not conversation.assessment_snapshot:
                raise InitialContextMissingError(conversation.id)
            return {
                "state": STATE_INITIAL,
                "snapshot": conversation.assessment_snapshot,
                "pattern": conversation.pattern,
            }

        parent = self._store.get_message(db, parent_message_id)
        if parent is None or parent.conversation_id != conversation.id:
            raise ValidationError("parent_message_id does not belong to this conversation")
        if history is None:
            history = [
                {"role": m.role, "content": m.content}
                for m in self._store.list_messages(db, conversation.id)
            ]
        return {
            "state": STATE_FOLLOWUP,
            "history": history,
            "pattern": conversation.pattern,
        }

    def _generate(self, text: str, context: dict[str, Any]) -> GeneratedResponse:
        try:
            return self._responder.generate(text, context)
        except GenerationError as e:
            if self._fallback is None:
                raise
            logger.warning(
                "%s responder failed, answering with %s fallback: %s",
                self._responder.name, self._fallback.name, e,
            )
        response = self._fallback.generate(text, context)
        metadata = dict(response.metadata)
        metadata["responseCategory"] = FALLBACK_CATEGORY
        metadata["fallbackFrom"] = self._responder.name
        return GeneratedResponse(content=response.content, metadata=metadata)

    def respond(
        self,
        db: Session,
        conversation: Conversation,
        user_text: str,
        parent_message_id: str | None = None,
        history: list[dict] | None = None,
    ) -> dict[str, dict[str, Any]]:
        """
        Generate, then store user message and reply in one transaction (both or neither).
        Returns {"user_message", "assistant_message"}.
        """
        context = self.build_context(db, conversation, parent_message_id, history)
        response = self._generate(user_text, context)
        conversation_id = conversation.id
        logger.info(
            "Generated %s reply for conversation %s via %s (%s)",
            context["state"], conversation_id, response.metadata.get("service", self._responder.name),
            response.metadata.get("responseCategory"),
        )

        with self._store.atomic(db):
            user_msg = self._store.insert_message(
                db,
                conversation_id,
                role=MessageRole.USER,
                content=user_text,
                parent_message_id=parent_message_id,
                commit=False,
            )
            assistant_msg = self._store.insert_message(
                db,
                conversation_id,
                role=MessageRole.ASSISTANT,
                content=response.content,
                parent_message_id=parent_message_id if context["state"] == STATE_FOLLOWUP else None,
                metadata=response.metadata,
                commit=False,
            )
        logger.info("Stored exchange %s -> %s in conversation %s", user_msg.id, assistant_msg.id, conversation_id)
        return {
            "user_message": message_to_dict(user_msg),
            "assistant_message": message_to_dict(assistant_msg),
        }

    def generate_response(
        self,
        db: Session,
        conversation: Conversation,
        user_text: str,
        parent_message_id: str | None = None,
        history: list[dict] | None = None,
    ) -> dict[str, Any]:
        """Stored assistant reply: {id, conversation_id, role, content, parent_message_id, created_at, metadata}."""
        return self.respond(db, conversation, user_text, parent_message_id, history)["assistant_message"]
