"""
Tests for the chat history, auth status and upload REST routes.
"""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import TEST_SECRET, FakeContext, FakeElement, FakePage
from routes.chat_route import router as chat_router
from routes.session_route import router as session_router
from routes.upload_route import router as upload_router
from services.auth.tokens import create_token
from services.browser.page_pool import PagePool
from services.browser.session_registry import SessionRegistry
from services.realtime.page_scripts import PROMPT_INPUT_SELECTOR, SUBMIT_BUTTON_SELECTOR
from services.realtime.ws_session import ActionDispatcher


@pytest.fixture
def app(config, chat_store):
    app = FastAPI()
    app.state.config = config
    app.state.chat_store = chat_store
    app.include_router(chat_router)
    app.include_router(session_router)
    app.include_router(upload_router)
    return app


@pytest.fixture
def token():
    return create_token("ana@example.com", TEST_SECRET)


def _seed(chat_store, owner, chat_id, text):
    asyncio.run(chat_store.save_chat(owner, chat_id, [{"role": "user", "text": text}]))


class TestChatRoutes:
    def test_list_is_scoped_to_the_token_owner(self, app, chat_store, token):
        _seed(chat_store, "ana@example.com", "mine", "my chat")
        _seed(chat_store, "anonymous", "theirs", "anonymous chat")
        client = TestClient(app)

        response = client.get("/proxy/api/chats", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [chat["id"] for chat in body["chats"]] == ["mine"]

    def test_get_returns_messages(self, app, chat_store, token):
        _seed(chat_store, "ana@example.com", "mine", "my chat")
        client = TestClient(app, cookies={"arena_token": token})

        response = client.get("/proxy/api/chats/mine")

        assert response.status_code == 200
        assert response.json()["chat"]["messages"] == [{"role": "user", "text": "my chat"}]

    def test_missing_chat_is_404(self, app):
        client = TestClient(app)
        assert client.get("/proxy/api/chats/nope").status_code == 404
        assert client.delete("/proxy/api/chats/nope").status_code == 404

    def test_delete(self, app, chat_store):
        _seed(chat_store, "anonymous", "c1", "x")
        client = TestClient(app)

        response = client.delete("/proxy/api/chats/c1")

        assert response.json() == {"success": True}
        assert client.get("/proxy/api/chats/c1").status_code == 404


class TestAuthRoutes:
    def test_status_without_token(self, app):
        response = TestClient(app).get("/auth/api/status")
        assert response.json() == {"userAuthenticated": False}

    def test_status_with_token(self, app, token):
        response = TestClient(app).get("/auth/api/status", headers={"Authorization": f"Bearer {token}"})
        assert response.json() == {"userAuthenticated": True, "user": {"email": "ana@example.com"}}

    def test_submit_prompt_requires_text(self, app):
        app.state.action_dispatcher = object()
        response = TestClient(app).post("/auth/api/submit-prompt", json={"prompt": "  "})
        assert response.status_code == 400

    def test_submit_prompt_without_browser_is_503(self, app):
        response = TestClient(app).post("/auth/api/submit-prompt", json={"prompt": "hello"})
        assert response.status_code == 503

    def test_submit_prompt_returns_new_session_path(self, app, config, chat_store, token):
        page = FakePage()
        page.elements[PROMPT_INPUT_SELECTOR] = FakeElement()
        page.next_url = "https://app.heygen.com/agent/new-chat-1"
        registry = SessionRegistry(PagePool(FakeContext(page_factory=lambda: page)), config.upstream_url + "/home")
        app.state.action_dispatcher = ActionDispatcher(registry, chat_store, config)

        response = TestClient(app).post(
            "/auth/api/submit-prompt",
            json={"prompt": "  A product teaser  "},
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "sessionPath": "/agent/new-chat-1",
            "sessionUrl": "https://app.heygen.com/agent/new-chat-1",
        }
        assert page.visited[-1] == "https://app.heygen.com/home"
        assert page.filled[PROMPT_INPUT_SELECTOR] == "A product teaser"
        assert page.clicked[-1] == SUBMIT_BUTTON_SELECTOR
        assert registry.get("user:ana@example.com").remote_path == "/agent/new-chat-1"

    def test_submit_prompt_failure_is_reported(self, app, config, chat_store):
        page = FakePage()
        registry = SessionRegistry(PagePool(FakeContext(page_factory=lambda: page)), config.upstream_url + "/home")
        dispatcher = ActionDispatcher(registry, chat_store, config)

        async def broken(*_args, **_kwargs):
            raise RuntimeError("composer not found")

        dispatcher.interaction_handler.submit_prompt = broken
        app.state.action_dispatcher = dispatcher

        response = TestClient(app).post("/auth/api/submit-prompt", json={"prompt": "hello"})

        assert response.json() == {"success": False, "error": "composer not found"}


class TestUploadRoute:
    def test_non_images_are_rejected(self, app):
        app.state.action_dispatcher = object()
        response = TestClient(app).post(
            "/proxy/upload-files",
            files={"files": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 415
