import pytest

from app.core.exceptions import GenerationError, InitialContextMissingError, StorageError, ValidationError
from app.models.conversation import NO_MESSAGES_PREVIEW
from app.repositories.chat_repository import ChatRepository
from app.services.message_store import MessageStore
from app.services.responders import INITIAL_BY_PATTERN, MockResponder, Responder
from app.services.response_orchestrator import FALLBACK_CATEGORY, ResponseOrchestrator


class FailingResponder(Responder):
    name = "ai"

    def __init__(self):
        self.calls = 0

    def generate(self, text, context):
        self.calls += 1
        raise GenerationError("model unavailable")


@pytest.fixture
def orchestrator():
    return ResponseOrchestrator(MockResponder())


class TestInitial:

    def test_reply_grounded_on_assessment(self, db, conversation, orchestrator):
        result = orchestrator.respond(db, conversation, "Hi, what do my results mean?")

        user_msg, reply = result["user_message"], result["assistant_message"]
        assert user_msg["role"] == "user"
        assert user_msg["parent_message_id"] is None
        assert reply["role"] == "assistant"
        assert reply["parent_message_id"] is None
        assert reply["content"] == INITIAL_BY_PATTERN["regular"]
        assert reply["metadata"]["state"] == "initial"
        assert reply["metadata"]["responseCategory"] == "assessment"

        db.refresh(conversation)
        assert conversation.preview == reply["content"][:50] + "..."

    def test_missing_snapshot_stores_nothing(self, db, bare_conversation, orchestrator):
        with pytest.raises(InitialContextMissingError):
            orchestrator.respond(db, bare_conversation, "Hello")

        assert MessageStore().list_messages(db, bare_conversation.id) == []
        db.refresh(bare_conversation)
        assert bare_conversation.preview == NO_MESSAGES_PREVIEW

    def test_generate_response_returns_reply(self, db, conversation, orchestrator):
        reply = orchestrator.generate_response(db, conversation, "Hello")
        assert reply["role"] == "assistant"
        assert reply["conversation_id"] == conversation.id


class TestFollowup:

    def test_reply_parent_is_supplied_parent(self, db, conversation, orchestrator):
        first = orchestrator.respond(db, conversation, "Hi")
        parent_id = first["assistant_message"]["id"]

        result = orchestrator.respond(db, conversation, "What about cramps?", parent_message_id=parent_id)

        assert result["user_message"]["parent_message_id"] == parent_id
        assert result["assistant_message"]["parent_message_id"] == parent_id
        assert result["assistant_message"]["metadata"]["state"] == "followup"
        assert result["assistant_message"]["metadata"]["responseCategory"] == "pain"
        assert result["assistant_message"]["metadata"]["conversationLength"] == 2

    def test_followup_works_without_snapshot(self, db, bare_conversation, orchestrator):
        store = MessageStore()
        parent = store.insert_message(db, bare_conversation.id, role="assistant", content="Hi!")

        result = orchestrator.respond(db, bare_conversation, "thanks", parent_message_id=parent.id)
        assert result["assistant_message"]["metadata"]["responseCategory"] == "acknowledgment"

    def test_supplied_history_is_used(self, db, conversation, orchestrator):
        first = orchestrator.respond(db, conversation, "Hi")
        history = [{"role": "user", "content": "cached"}]

        result = orchestrator.respond(
            db, conversation, "ok", parent_message_id=first["assistant_message"]["id"], history=history
        )
        assert result["assistant_message"]["metadata"]["conversationLength"] == 1

    def test_parent_from_other_conversation(self, db, user, conversation, bare_conversation, orchestrator):
        foreign_parent = MessageStore().insert_message(db, bare_conversation.id, role="user", content="Hi")

        with pytest.raises(ValidationError):
            orchestrator.respond(db, conversation, "Hello", parent_message_id=foreign_parent.id)
        assert MessageStore().list_messages(db, conversation.id) == []

    def test_messages_listed_in_order(self, db, conversation, orchestrator):
        parent = orchestrator.respond(db, conversation, "Hi")["assistant_message"]["id"]
        for text in ("What about cramps?", "thanks"):
            parent = orchestrator.respond(db, conversation, text, parent_message_id=parent)["assistant_message"]["id"]

        messages = MessageStore().list_messages(db, conversation.id)
        assert [m.role for m in messages] == ["user", "assistant"] * 3
        assert [m.content for m in messages][::2] == ["Hi", "What about cramps?", "thanks"]


class TestFallback:

    def test_fallback_is_tagged(self, db, conversation):
        failing = FailingResponder()
        orchestrator = ResponseOrchestrator(failing, fallback=MockResponder())

        reply = orchestrator.generate_response(db, conversation, "Hi")

        assert failing.calls == 1
        assert reply["content"] == INITIAL_BY_PATTERN["regular"]
        assert reply["metadata"]["responseCategory"] == FALLBACK_CATEGORY
        assert reply["metadata"]["fallbackFrom"] == "ai"
        assert reply["metadata"]["service"] == "mock"

    def test_no_fallback_propagates_and_stores_nothing(self, db, conversation):
        orchestrator = ResponseOrchestrator(FailingResponder())

        with pytest.raises(GenerationError):
            orchestrator.respond(db, conversation, "Hi")
        assert MessageStore().list_messages(db, conversation.id) == []


class ReplyWriteFailsRepository(ChatRepository):
    @staticmethod
    def create_message(db, record, *, commit=True):
        if record["role"] == "assistant":
            raise StorageError("Storage failure while creating message")
        return ChatRepository.create_message(db, record, commit=commit)


class TestAtomicExchange:

    def test_failed_reply_write_keeps_neither_message(self, db, conversation):
        store = MessageStore(ReplyWriteFailsRepository())
        orchestrator = ResponseOrchestrator(MockResponder(), store=store)
        conversation_id = conversation.id

        with pytest.raises(StorageError):
            orchestrator.respond(db, conversation, "Hi, explain my results")

        assert MessageStore().list_messages(db, conversation_id) == []
        conv = ChatRepository.get_conversation(db, conversation_id)
        assert conv.preview == NO_MESSAGES_PREVIEW
