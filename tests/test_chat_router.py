"""
HTTP surface: auth, status mapping and ownership through FastAPI's TestClient.
The chat service is overridden to use the mock responder and no Redis.
"""
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.auth import create_access_token
from app.config import get_settings
from app.core.exceptions import GenerationError
from app.database import get_db
from app.main import app
from app.routers import chat
from app.services.chat_service import ChatService
from app.services.responders import INITIAL_BY_PATTERN, MockResponder, Responder
from app.services.response_orchestrator import ResponseOrchestrator


class BrokenResponder(Responder):
    name = "ai"

    def generate(self, text, context):
        raise GenerationError("model unavailable")


@pytest.fixture
def responder():
    return MockResponder()


@pytest.fixture
def client(db, responder):
    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[chat._get_chat_service_dep] = lambda: ChatService(ResponseOrchestrator(responder))
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}


@pytest.fixture
def other_auth(other_user):
    return {"Authorization": f"Bearer {create_access_token(other_user.id)}"}


def _create(client, headers, assessment_id=None):
    res = client.post("/api/chat/conversations", json={"assessment_id": assessment_id}, headers=headers)
    assert res.status_code == 201
    return res.json()["conversation_id"]


class TestAuth:

    def test_missing_token(self, client):
        assert client.get("/api/chat/conversations").status_code == 401

    def test_garbage_token(self, client):
        res = client.get("/api/chat/conversations", headers={"Authorization": "Bearer nope"})
        assert res.status_code == 401

    def test_expired_token(self, client, user):
        settings = get_settings()
        token = jwt.encode(
            {"sub": user.id, "exp": datetime.utcnow() - timedelta(minutes=1), "type": "access"},
            settings.secret_key,
            algorithm=settings.algorithm,
        )
        res = client.get("/api/chat/conversations", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401


class TestConversations:

    def test_create_and_get(self, client, auth, assessment):
        conversation_id = _create(client, auth, assessment.id)

        res = client.get(f"/api/chat/conversations/{conversation_id}", headers=auth)

        assert res.status_code == 200
        body = res.json()
        assert body["conversation"]["pattern"] == "regular"
        assert body["conversation"]["title"] == "Assessment Conversation"
        assert body["conversation"]["preview"] == "No messages yet"
        assert body["conversation"]["has_messages"] is False
        assert body["messages"] == []
        assert "user_id" not in body["conversation"]

    def test_unknown_and_foreign_are_both_404(self, client, auth, other_auth):
        conversation_id = _create(client, auth)

        foreign = client.get(f"/api/chat/conversations/{conversation_id}", headers=other_auth)
        unknown = client.get("/api/chat/conversations/no-such-id", headers=other_auth)

        assert foreign.status_code == unknown.status_code == 404
        assert foreign.json() == unknown.json() == {"detail": "Conversation not found"}

    def test_list(self, client, auth, other_auth):
        conversation_id = _create(client, auth)

        mine = client.get("/api/chat/conversations", headers=auth).json()["conversations"]
        theirs = client.get("/api/chat/conversations", headers=other_auth).json()["conversations"]

        assert [c["id"] for c in mine] == [conversation_id]
        assert mine[0]["message_count"] == 0
        assert theirs == []

    def test_relink_assessment(self, client, auth, other_auth, assessment):
        conversation_id = _create(client, auth)
        url = f"/api/chat/conversations/{conversation_id}/assessment"

        assert client.patch(url, json={"assessment_id": assessment.id}, headers=other_auth).json() == {"success": False}
        assert client.patch(url, json={"assessment_id": assessment.id}, headers=auth).json() == {"success": True}

        body = client.get(f"/api/chat/conversations/{conversation_id}", headers=auth).json()
        assert body["conversation"]["pattern"] == "regular"


class TestSendMessage:

    def test_initial_and_followup(self, client, auth, assessment):
        conversation_id = _create(client, auth, assessment.id)
        url = f"/api/chat/conversations/{conversation_id}/messages"

        first = client.post(url, json={"message": "Hi Dottie"}, headers=auth)
        assert first.status_code == 200
        reply = first.json()["assistant_message"]
        assert reply["content"] == INITIAL_BY_PATTERN["regular"]
        assert reply["parent_message_id"] is None

        second = client.post(
            url, json={"message": "What about cramps?", "parent_message_id": reply["id"]}, headers=auth
        )
        assert second.status_code == 200
        assert second.json()["assistant_message"]["parent_message_id"] == reply["id"]
        assert second.json()["assistant_message"]["metadata"]["responseCategory"] == "pain"

        messages = client.get(f"/api/chat/conversations/{conversation_id}", headers=auth).json()["messages"]
        assert [m["content"] for m in messages][::2] == ["Hi Dottie", "What about cramps?"]

    def test_foreign_conversation(self, client, auth, other_auth, assessment):
        conversation_id = _create(client, auth, assessment.id)
        res = client.post(
            f"/api/chat/conversations/{conversation_id}/messages", json={"message": "Hi"}, headers=other_auth
        )
        assert res.status_code == 404

    def test_blank_message(self, client, auth, assessment):
        conversation_id = _create(client, auth, assessment.id)
        res = client.post(f"/api/chat/conversations/{conversation_id}/messages", json={"message": "   "}, headers=auth)
        assert res.status_code == 400

    def test_too_long_message(self, client, auth, assessment):
        conversation_id = _create(client, auth, assessment.id)
        res = client.post(
            f"/api/chat/conversations/{conversation_id}/messages", json={"message": "ab" * 2001}, headers=auth
        )
        assert res.status_code == 422

    def test_parent_from_other_conversation(self, client, auth, assessment):
        a = _create(client, auth, assessment.id)
        b = _create(client, auth, assessment.id)
        reply = client.post(f"/api/chat/conversations/{a}/messages", json={"message": "Hi"}, headers=auth).json()

        res = client.post(
            f"/api/chat/conversations/{b}/messages",
            json={"message": "Hi", "parent_message_id": reply["assistant_message"]["id"]},
            headers=auth,
        )
        assert res.status_code == 400

    def test_initial_without_assessment_is_server_error(self, client, auth):
        conversation_id = _create(client, auth)
        res = client.post(f"/api/chat/conversations/{conversation_id}/messages", json={"message": "Hi"}, headers=auth)
        assert res.status_code == 500

    @pytest.mark.parametrize("responder", [BrokenResponder()])
    def test_generation_failure_is_502(self, client, auth, assessment):
        conversation_id = _create(client, auth, assessment.id)
        res = client.post(f"/api/chat/conversations/{conversation_id}/messages", json={"message": "Hi"}, headers=auth)
        assert res.status_code == 502

        messages = client.get(f"/api/chat/conversations/{conversation_id}", headers=auth).json()["messages"]
        assert messages == []


def test_status(client):
    with patch("app.services.ai_service.is_ai_configured", return_value=False):
        res = client.get("/api/chat/status")

    assert res.status_code == 200
    body = res.json()
    assert body["ai_available"] is False
    assert body["service_mode"] in ("ai", "mock")
    assert body["redis"] in ("disabled", "unavailable", "ok", "error")
