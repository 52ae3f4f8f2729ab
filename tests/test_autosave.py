"""
Unit tests for debounced transcript persistence.
"""

import asyncio

import pytest

from client.autosave import (
    STATUS_ERROR,
    STATUS_SAVED,
    STATUS_SAVING,
    AutoSavePersistor,
    transcript_fingerprint,
)
from models.transcript_models import ImageRef, Message, VideoInfo


class Recorder:
    def __init__(self):
        self.sent = []

    async def __call__(self, payload):
        self.sent.append(payload)


def reply(payload, success=True, **extra):
    return {"action": "save_chat", "success": success, "request_id": payload["request_id"], **extra}


def transcript():
    return [Message(role="user", text="Make a teaser"), Message(role="agent", text="On it")]


@pytest.fixture
def send():
    return Recorder()


@pytest.fixture
def persistor(send):
    return AutoSavePersistor(send, debounce=0.01, status_clear_after=0.05)


class TestFingerprint:
    def test_projection_ignores_ids(self):
        a = [Message(role="user", text="hi", id="one")]
        b = [Message(role="user", text="hi", id="two")]
        assert transcript_fingerprint(a) == transcript_fingerprint(b)

    def test_projection_tracks_video_and_image_count(self):
        plain = [Message(role="agent", video=VideoInfo(title="x"))]
        resolved = [Message(role="agent", video=VideoInfo(title="x", video_url="https://v/1.mp4"))]
        with_image = [Message(role="user", text="hi", images=[ImageRef(url="https://cdn/i.png")])]

        assert transcript_fingerprint(plain) != transcript_fingerprint(resolved)
        assert transcript_fingerprint(with_image) != transcript_fingerprint([Message(role="user", text="hi")])


class TestAutoSavePersistor:
    @pytest.mark.asyncio
    async def test_rapid_changes_are_debounced(self, persistor, send):
        messages = transcript()
        persistor.schedule("s-1", messages[:1])
        persistor.schedule("s-1", messages)
        await asyncio.sleep(0.05)

        assert len(send.sent) == 1
        assert send.sent[0]["action"] == "save_chat"
        assert send.sent[0]["sessionId"] == "s-1"
        assert len(send.sent[0]["messages"]) == 2
        assert persistor.status == STATUS_SAVING

    @pytest.mark.asyncio
    async def test_saved_only_after_confirmed_success(self, persistor, send):
        """A failed save leaves the fingerprint unsaved so the next change retries."""
        messages = transcript()
        persistor.schedule("s-1", messages)
        await asyncio.sleep(0.03)

        persistor.handle_response(reply(send.sent[-1], success=False, error="db locked"))

        assert persistor.last_saved_fingerprint is None
        assert persistor.status == STATUS_ERROR
        assert persistor.schedule("s-1", messages) is True
        await asyncio.sleep(0.03)

        persistor.handle_response(reply(send.sent[-1]))

        assert persistor.last_saved_fingerprint == transcript_fingerprint(messages)
        assert persistor.status == STATUS_SAVED
        assert persistor.schedule("s-1", messages) is False
        assert len(send.sent) == 2

    @pytest.mark.asyncio
    async def test_status_clears_after_delay(self, persistor, send):
        persistor.schedule("s-1", transcript())
        await asyncio.sleep(0.03)
        persistor.handle_response(reply(send.sent[-1]))

        await asyncio.sleep(0.1)

        assert persistor.status is None

    @pytest.mark.asyncio
    async def test_history_loading_guard(self, persistor, send):
        persistor.history_loading = True

        assert persistor.schedule("s-1", transcript()) is False
        await asyncio.sleep(0.03)
        assert send.sent == []

    @pytest.mark.asyncio
    async def test_composite_messages_are_stripped(self, persistor, send):
        messages = [
            Message(role="user", text="This is the context of our previous chat:\nUser: a"),
            Message(role="user", text="Make it blue"),
        ]

        persistor.schedule("s-1", messages)
        await asyncio.sleep(0.03)

        assert [m["text"] for m in send.sent[0]["messages"]] == ["Make it blue"]

    @pytest.mark.asyncio
    async def test_nothing_to_save(self, persistor):
        assert persistor.schedule(None, transcript()) is False
        assert persistor.schedule("s-1", []) is False

    @pytest.mark.asyncio
    async def test_mark_saved_skips_loaded_transcript(self, persistor):
        messages = transcript()
        persistor.mark_saved(messages)

        assert persistor.schedule("s-1", messages) is False

    @pytest.mark.asyncio
    async def test_each_save_gets_its_own_request_id(self, persistor, send):
        messages = transcript()
        persistor.schedule("s-1", messages[:1])
        await asyncio.sleep(0.03)
        persistor.schedule("s-1", messages)
        await asyncio.sleep(0.03)

        ids = [payload["request_id"] for payload in send.sent]
        assert len(set(ids)) == 2
        assert all(request_id.startswith("save:s-1:") for request_id in ids)
        assert persistor.in_flight == 2

    @pytest.mark.asyncio
    async def test_overlapping_saves_confirm_only_their_own_fingerprint(self, persistor, send):
        """A success for an older save must not mark a newer failed save as saved."""
        first, second = transcript()[:1], transcript()
        persistor.schedule("s-1", first)
        await asyncio.sleep(0.03)
        persistor.schedule("s-1", second)
        await asyncio.sleep(0.03)
        older, newer = send.sent

        persistor.handle_response(reply(older))
        persistor.handle_response(reply(newer, success=False, error="db locked"))

        assert persistor.last_saved_fingerprint == transcript_fingerprint(first)
        assert persistor.schedule("s-1", second) is True

    @pytest.mark.asyncio
    async def test_late_reply_for_older_save_does_not_roll_back(self, persistor, send):
        first, second = transcript()[:1], transcript()
        persistor.schedule("s-1", first)
        await asyncio.sleep(0.03)
        persistor.schedule("s-1", second)
        await asyncio.sleep(0.03)
        older, newer = send.sent

        persistor.handle_response(reply(newer))
        persistor.handle_response(reply(older))

        assert persistor.last_saved_fingerprint == transcript_fingerprint(second)
        assert persistor.in_flight == 0
