"""
Tests for the client session controller wiring polling, reconciliation and autosave.
"""

import asyncio

import pytest
import pytest_asyncio

from client.autosave import AutoSavePersistor
from client.controller import ChatSessionController
from client.polling import MAKE_CHANGES, MESSAGES, VIDEO_URL
from client.session_cache import SessionCache

CAPTION = "https://resource2.heygen.ai/caption_" + "c" * 32 + ".mp4"


class Recorder:
    def __init__(self):
        self.sent = []

    async def __call__(self, payload):
        self.sent.append(payload)

    def actions(self):
        return [payload["action"] for payload in self.sent]


@pytest.fixture
def send():
    return Recorder()


@pytest_asyncio.fixture
async def controller(send, tmp_path):
    controller = ChatSessionController(
        send,
        cache=SessionCache(tmp_path / "cache"),
        loading_timeout=5,
        button_attempts=2,
        autosave=AutoSavePersistor(send, debounce=0.01),
    )
    yield controller
    await controller.close()


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_open_session_loads_and_starts_polling(self, controller, send):
        await controller.open_session("s-1", "/agent/s-1")

        assert send.actions() == ["initial_load"]
        assert controller.orchestrator.is_running(MESSAGES)
        assert controller.orchestrator.is_running(MAKE_CHANGES)
        assert not controller.orchestrator.is_running(VIDEO_URL)
        assert await controller.cache.load_session() is not None

    @pytest.mark.asyncio
    async def test_cached_transcript_is_restored(self, controller):
        await controller.open_session("s-1")
        await controller.handle_message({
            "action": "get_messages",
            "success": True,
            "messages": [{"role": "user", "text": "cached prompt"}],
        })

        await controller.open_session("s-1")

        assert [m.text for m in controller.messages] == ["cached prompt"]

    @pytest.mark.asyncio
    async def test_switching_sessions_resets_state(self, controller):
        await controller.open_session("s-1")
        await controller.handle_message({
            "action": "get_messages",
            "success": True,
            "messages": [{"role": "user", "text": "first chat"}],
        })

        await controller.open_session("s-2")

        assert controller.messages == []
        assert controller.context.session_id == "s-2"

    @pytest.mark.asyncio
    async def test_history_prompt_is_sent_as_envelope(self, controller, send):
        await controller.open_history("chat-9", [
            {"role": "user", "text": "a cat video"},
            {"role": "agent", "text": "Here it is"},
        ])

        await controller.send_prompt("now with a dog")

        request = send.sent[-1]
        assert send.sent[0] == {"action": "navigate", "url": "/home"}
        assert request["action"] == "send_message"
        assert request["currentPath"] == "/home"
        assert request["message"].startswith("This is the context of our previous chat:")
        assert request["message"].endswith("now with a dog")
        assert controller.context.plain_prompt == "now with a dog"
        assert not controller.context.historical


class TestInboundRouting:
    @pytest.mark.asyncio
    async def test_agent_reply_clears_loading(self, controller):
        await controller.open_session("s-1")
        await controller.send_prompt("hello")
        assert controller.loading.active

        await controller.handle_message({
            "action": "get_messages",
            "success": True,
            "messages": [{"role": "user", "text": "hello"}, {"role": "agent", "text": "hi there"}],
        })

        assert not controller.loading.active

    @pytest.mark.asyncio
    async def test_generation_completion_starts_video_resolution(self, controller):
        await controller.open_session("s-1")
        await controller.handle_message({"action": "initial_load", "success": True, "messages": []})
        await controller.handle_message({
            "action": "get_generation_progress", "success": True, "data": {"isGenerating": True},
        })

        await controller.handle_message({
            "action": "get_generation_progress", "success": True, "data": {"isGenerating": False},
        })
        assert controller.orchestrator.is_running(VIDEO_URL)

        await controller.handle_message({
            "action": "get_video_url", "success": True, "data": {"videoUrl": CAPTION, "originalUrl": CAPTION},
        })
        assert not controller.orchestrator.is_running(VIDEO_URL)
        assert controller.messages[-1].video.video_url == CAPTION

    @pytest.mark.asyncio
    async def test_button_misses_stop_the_button_task(self, controller):
        await controller.open_session("s-1")

        for attempt in range(2):
            await controller.handle_message({
                "action": "find_and_click", "success": True, "clicked": False, "request_id": f"{MAKE_CHANGES}:{attempt}",
            })

        assert not controller.orchestrator.is_running(MAKE_CHANGES)

    @pytest.mark.asyncio
    async def test_send_failure_shows_error_and_retry_resends(self, controller, send):
        await controller.open_session("s-1")
        await controller.send_prompt("hello")

        await controller.handle_message({"action": "send_message", "success": False, "error": "Composer not found"})

        assert controller.error == "Composer not found"
        assert not controller.loading.active
        assert await controller.retry() is True
        assert send.sent[-1] == {"action": "send_message", "message": "hello"}
        assert controller.error is None

    @pytest.mark.asyncio
    async def test_quiet_errors_do_not_raise_banner(self, controller):
        await controller.open_session("s-1")

        await controller.handle_message({"action": "get_video_url", "success": False, "error": "No video found on page"})

        assert controller.error is None

    @pytest.mark.asyncio
    async def test_transcript_changes_are_autosaved(self, controller, send):
        await controller.open_session("s-1")

        await controller.handle_message({
            "action": "get_messages",
            "success": True,
            "messages": [{"role": "user", "text": "save me"}],
        })
        await asyncio.sleep(0.05)

        saves = [payload for payload in send.sent if payload["action"] == "save_chat"]
        assert len(saves) == 1
        assert saves[0]["sessionId"] == "s-1"
