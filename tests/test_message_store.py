from datetime import datetime
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import ConversationNotFoundError, StorageError, ValidationError
from app.models.chat_message import MessageRole
from app.models.conversation import NO_MESSAGES_PREVIEW
from app.services.message_store import MessageStore, message_to_dict


@pytest.fixture
def store():
    return MessageStore()


class TestInsertMessage:

    def test_insert_sets_id_and_preview(self, db, bare_conversation, store):
        text = "My cramps are really bad on the first day, is that normal for me?"
        msg = store.insert_message(db, bare_conversation.id, role=MessageRole.USER, content=text)

        assert msg.id
        assert msg.conversation_id == bare_conversation.id
        assert msg.role == "user"
        db.refresh(bare_conversation)
        assert bare_conversation.preview == text[:50] + "..."

    def test_metadata_is_stored(self, db, bare_conversation, store):
        msg = store.insert_message(
            db, bare_conversation.id, role="assistant", content="Hi!",
            metadata={"service": "mock", "responseCategory": "general"},
        )
        assert message_to_dict(msg)["metadata"] == {"service": "mock", "responseCategory": "general"}

    def test_unknown_conversation(self, db, user, store):
        with pytest.raises(ConversationNotFoundError):
            store.insert_message(db, "no-such-id", role="user", content="Hello")

    def test_invalid_role(self, db, bare_conversation, store):
        with pytest.raises(ValidationError):
            store.insert_message(db, bare_conversation.id, role="system", content="Hello")

    def test_empty_content(self, db, bare_conversation, store):
        with pytest.raises(ValidationError):
            store.insert_message(db, bare_conversation.id, role="user", content="   ")

    def test_failed_commit_leaves_nothing(self, db, bare_conversation, store):
        conversation_id = bare_conversation.id
        with patch.object(db, "commit", side_effect=SQLAlchemyError("disk full")):
            with pytest.raises(StorageError):
                store.insert_message(db, conversation_id, role="user", content="Hello")

        assert store.list_messages(db, conversation_id) == []
        conv = store._repo.get_conversation(db, conversation_id)
        assert conv.preview == NO_MESSAGES_PREVIEW


class TestListMessages:

    def test_empty(self, db, bare_conversation, store):
        assert store.list_messages(db, bare_conversation.id) == []

    def test_same_timestamp_keeps_insertion_order(self, db, bare_conversation, store):
        fixed = datetime(2024, 5, 1, 12, 0, 0)
        with patch("app.services.message_store.datetime") as mock_dt:
            mock_dt.utcnow.return_value = fixed
            ids = [
                store.insert_message(db, bare_conversation.id, role=role, content=f"message {i}").id
                for i, role in enumerate(["user", "assistant", "user", "assistant"])
            ]

        listed = store.list_messages(db, bare_conversation.id)
        assert [m.id for m in listed] == ids
        assert all(m.created_at == fixed for m in listed)

    def test_limit_returns_newest_oldest_first(self, db, bare_conversation, store):
        for i in range(4):
            store.insert_message(db, bare_conversation.id, role="user", content=f"message {i}")

        listed = store.list_messages(db, bare_conversation.id, limit=2)
        assert [m.content for m in listed] == ["message 2", "message 3"]
