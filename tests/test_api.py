"""End-to-end tests of the HTTP API with a scripted model backend."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from agentchat.infrastructure.chat_repository import ChatRepository
from agentchat.main import create_app
from agentchat.streaming.codec import iter_decode
from agentchat.streaming.events import TextDeltaEvent, ToolCallEvent
from conftest import make_services, make_settings
from fakes import FakeArtifactGenerator, ScriptedBackend


def chat_body(chat_id: str = "chat-1", text: str = "What's the weather in Paris?", **extra) -> dict:
    return {
        "id": chat_id,
        "messages": [{"id": "u1", "role": "user", "parts": [{"type": "text", "text": text}]}],
        **extra,
    }


def make_client(settings, backend=None, artifact_generator=None) -> TestClient:
    app = create_app(
        settings,
        services_factory=lambda s: make_services(s, backend=backend, artifact_generator=artifact_generator),
    )
    return TestClient(app)


@pytest.fixture()
def backend() -> ScriptedBackend:
    return ScriptedBackend(
        [
            [
                TextDeltaEvent(text="Let me check."),
                ToolCallEvent(tool_call_id="c1", tool_name="get_temperature", args={"city": "Paris"}),
            ],
            [TextDeltaEvent(text="It is 30 degrees.")],
        ]
    )


@pytest.fixture()
def client(settings, backend):
    with make_client(settings, backend) as c:
        yield c


class TestHealth:
    def test_health(self, client: TestClient):
        assert client.get("/health").json() == {"status": "ok"}


class TestChatStream:
    def test_streams_the_data_stream_protocol(self, client: TestClient):
        response = client.post("/api/chat", json=chat_body())

        assert response.status_code == 200
        assert response.headers["x-vercel-ai-data-stream"] == "v1"
        assert response.headers["content-type"].startswith("text/plain")
        lines = response.text.splitlines()
        assert lines[0].startswith("f:")
        assert lines[1] == '0:"Let me check."'
        assert lines[-1].startswith("d:")

        events = list(iter_decode([response.content]))
        assert [e.type for e in events].count("tool-result") == 1
        assert events[-2].content["chatId"] == "chat-1"

    def test_messages_are_readable_after_the_turn(self, client: TestClient):
        client.post("/api/chat", json=chat_body())

        messages = client.get("/api/chats/chat-1/messages").json()
        assert [m["role"] for m in messages] == ["user", "assistant"]
        tool_part = messages[1]["parts"][1]
        assert tool_part["type"] == "tool-invocation"
        assert tool_part["toolCallId"] == "c1"
        assert tool_part["result"]["temperature"] == 30

    def test_chat_appears_in_listing(self, client: TestClient):
        client.post("/api/chat", json=chat_body())

        (summary,) = client.get("/api/chats").json()
        assert summary["id"] == "chat-1"
        assert summary["message_count"] == 2

    def test_missing_user_message_is_rejected_before_streaming(self, client: TestClient):
        body = {"id": "chat-1", "messages": [{"id": "a1", "role": "assistant", "content": "hi"}]}
        response = client.post("/api/chat", json=body)
        assert response.status_code == 400

    def test_unknown_model_is_rejected(self, client: TestClient):
        response = client.post("/api/chat", json=chat_body(selectedChatModel="nope"))
        assert response.status_code == 400
        assert "Unknown model" in response.json()["detail"]

    def test_invalid_visibility_is_rejected(self, client: TestClient):
        response = client.post("/api/chat", json=chat_body(visibility="everyone"))
        assert response.status_code == 422

    def test_someone_elses_chat_is_forbidden(self, client: TestClient):
        client.app.state.services.chats.create_chat("chat-1", "stranger", "Theirs")
        response = client.post("/api/chat", json=chat_body())
        assert response.status_code == 403

    def test_model_preference_cookie_is_used(self, client: TestClient, backend: ScriptedBackend):
        response = client.post("/api/preferences/model", json={"model": "gpt-4o"})
        assert response.status_code == 200
        assert "chat-model=gpt-4o" in response.headers["set-cookie"]

        client.post("/api/chat", json=chat_body())
        assert backend.calls[0]["model_id"] == "gpt-4o"

    def test_unknown_model_preference(self, client: TestClient):
        assert client.post("/api/preferences/model", json={"model": "nope"}).status_code == 400


class TestChatResources:
    def test_title_is_generated_in_the_background(self, settings, backend):
        with make_client(settings, backend) as client:
            client.post("/api/chat", json=chat_body())
        # Shutdown drains background jobs.
        repo = ChatRepository(settings.db_path)
        repo.connect()
        try:
            chat = repo.get_chat("chat-1")
        finally:
            repo.close()
        assert chat.title == "Weather in Paris"
        assert chat.title_generated

    def test_title_endpoint(self, client: TestClient):
        client.post("/api/chat", json=chat_body())
        response = client.post("/api/chats/chat-1/title")
        assert response.status_code == 200
        assert response.json()["title"] == "Weather in Paris"

    def test_unknown_chat(self, client: TestClient):
        assert client.get("/api/chat/nope").status_code == 404

    def test_delete_chat(self, client: TestClient):
        client.post("/api/chat", json=chat_body())
        response = client.delete("/api/chat", params={"id": "chat-1"})
        assert response.json() == {"chat_id": "chat-1", "deleted": True}
        assert client.get("/api/chat/chat-1").status_code == 404

    def test_models(self, client: TestClient):
        models = {m["id"]: m for m in client.get("/api/models").json()}
        assert models["gpt-4o-mini"]["is_default"] is True
        assert models["gpt-4o"]["is_default"] is False


class TestDocuments:
    def test_document_tool_streams_artifact_and_saves_versions(self, settings):
        backend = ScriptedBackend(
            [[ToolCallEvent(tool_call_id="c1", tool_name="create_document", args={"title": "Essay", "kind": "text"})]]
        )
        with make_client(settings, backend, FakeArtifactGenerator(text_chunks=["Once ", "upon"])) as client:
            response = client.post("/api/chat", json=chat_body(text="Write an essay"))
            events = list(iter_decode([response.content]))
            data = [(e.data_type, e.content) for e in events if e.type == "data"]
            assert [t for t, _ in data[:4]] == ["kind", "id", "title", "clear"]
            document_id = data[1][1]
            assert ("text-delta", "Once ") in data

            versions = client.get("/api/document", params={"id": document_id}).json()
            assert [v["content"] for v in versions] == ["Once upon"]

            saved = client.post("/api/document", params={"id": document_id}, json={"content": "Once upon a time"})
            assert saved.json()["version_index"] == 1

            diff = client.get("/api/document/diff", params={"id": document_id, "index": 1}).json()
            assert diff["old_content"] == "Once upon"
            assert diff["new_content"] == "Once upon a time"

    def test_manual_save_can_create(self, client: TestClient):
        response = client.post("/api/document", params={"id": "d1"}, json={"content": "x", "title": "T", "kind": "code"})
        assert response.status_code == 200
        assert response.json()["kind"] == "code"

    def test_missing_document(self, client: TestClient):
        assert client.get("/api/document", params={"id": "nope"}).status_code == 404
        assert client.post("/api/document", params={"id": "nope"}, json={"content": "x"}).status_code == 404

    def test_diff_of_first_version(self, client: TestClient):
        client.post("/api/document", params={"id": "d1"}, json={"content": "x", "title": "T", "kind": "text"})
        assert client.get("/api/document/diff", params={"id": "d1", "index": 0}).status_code == 404


class TestAuth:
    @pytest.fixture()
    def auth_client(self, tmp_path, backend):
        settings = make_settings(tmp_path, auth_enabled=True, jwt_secret="test-secret-with-at-least-32-bytes!", credits_enabled=True)
        with make_client(settings, backend) as c:
            yield c

    def test_anonymous_chat_is_rejected(self, auth_client: TestClient):
        assert auth_client.post("/api/chat", json=chat_body()).status_code == 401
        assert auth_client.get("/api/document", params={"id": "d1"}).status_code == 401

    def test_unknown_email_cannot_log_in(self, auth_client: TestClient):
        assert auth_client.post("/auth/login", json={"email": "mallory@example.com"}).status_code == 401

    def test_login_then_chat(self, auth_client: TestClient):
        login = auth_client.post("/auth/login", json={"email": "alice@example.com"}).json()
        headers = {"Authorization": f"Bearer {login['token']}"}

        response = auth_client.post("/api/chat", json=chat_body(), headers=headers)

        assert response.status_code == 200
        assert auth_client.get("/api/chats", headers=headers).json()[0]["id"] == "chat-1"
        credits = auth_client.app.state.services.credits
        assert credits.balance(login["user_id"]) < 1

    def test_garbage_token_is_rejected(self, auth_client: TestClient):
        headers = {"Authorization": "Bearer not-a-jwt"}
        assert auth_client.get("/api/chats", headers=headers).status_code == 401

    def test_user_without_credits_gets_402(self, tmp_path, backend):
        settings = make_settings(
            tmp_path, auth_enabled=True, jwt_secret="test-secret-with-at-least-32-bytes!", credits_enabled=True, signup_credits=0.0
        )
        with make_client(settings, backend) as client:
            token = client.post("/auth/login", json={"email": "bob@example.com"}).json()["token"]
            response = client.post("/api/chat", json=chat_body(), headers={"Authorization": f"Bearer {token}"})
            assert response.status_code == 402


class TestRateLimit:
    def test_excess_requests_get_429(self, tmp_path, backend):
        settings = make_settings(tmp_path, rate_limit_enabled=True, rate_limit_requests=1)
        with make_client(settings, backend) as client:
            assert client.post("/api/chat", json=chat_body()).status_code == 200
            response = client.post("/api/chat", json=chat_body(chat_id="chat-2"))
            assert response.status_code == 429
            assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_limit_is_per_forwarded_ip(self, tmp_path, backend):
        settings = make_settings(tmp_path, rate_limit_enabled=True, rate_limit_requests=1)
        with make_client(settings, backend) as client:
            first = client.post("/api/chat", json=chat_body(), headers={"X-Forwarded-For": "1.1.1.1"})
            other = client.post("/api/chat", json=chat_body(chat_id="c2"), headers={"X-Forwarded-For": "2.2.2.2, 10.0.0.1"})
            assert first.status_code == 200
            assert other.status_code == 200
