"""Debounced persistence of the transcript through the `save_chat` action."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from models.transcript_models import Message
from utils.text_utils import is_composite

LOGGER = logging.getLogger(__name__)

SAVE_DEBOUNCE_SECONDS = 0.8
STATUS_CLEAR_SECONDS = 3.0

STATUS_SAVING = "saving"
STATUS_SAVED = "saved"
STATUS_ERROR = "error"

Sender = Callable[[Dict[str, Any]], Awaitable[None]]


def transcript_fingerprint(messages: Iterable[Message]) -> str:
    """Minimal serialized projection used to detect transcript changes."""
    projection: List[Dict[str, Any]] = []
    for message in messages:
        video = None
        if message.video is not None:
            video = {
                "videoUrl": message.video.video_url,
                "poster": message.video.preview(),
                "title": message.video.title,
            }
        projection.append({
            "role": message.role,
            "text": message.text,
            "video": video,
            "images": len(message.images),
        })
    return json.dumps(projection, sort_keys=True)


class AutoSavePersistor:
    """Send `save_chat` when the transcript settles on a new fingerprint.

    Every save carries its own `request_id`. The last saved fingerprint only
    advances to the fingerprint a successful reply confirms, and never moves
    back to an older save, so a failed save is retried on the next change.
    """

    def __init__(
        self,
        send: Sender,
        debounce: float = SAVE_DEBOUNCE_SECONDS,
        status_clear_after: float = STATUS_CLEAR_SECONDS,
        on_status: Optional[Callable[[Optional[str]], None]] = None,
    ) -> None:
        self._send = send
        self.debounce = debounce
        self.status_clear_after = status_clear_after
        self._on_status = on_status
        self.last_saved_fingerprint: Optional[str] = None
        self._in_flight: Dict[str, Tuple[int, str]] = {}
        self._sequence = itertools.count(1)
        self._confirmed_sequence = 0
        self.status: Optional[str] = None
        self.history_loading = False
        self._timer: Optional[asyncio.Task] = None
        self._status_timer: Optional[asyncio.TimerHandle] = None

    def reset(self) -> None:
        self.cancel()
        self.last_saved_fingerprint = None
        self._in_flight.clear()
        self._confirmed_sequence = 0
        self._set_status(None)

    def mark_saved(self, messages: Iterable[Message]) -> None:
        """Treat `messages` as already persisted, e.g. right after loading a stored chat."""
        self._in_flight.clear()
        self.last_saved_fingerprint = transcript_fingerprint(messages)

    def schedule(self, session_id: Optional[str], messages: List[Message], title: Optional[str] = None) -> bool:
        """Debounce a save of `messages`; returns False when nothing needs saving."""
        if self.history_loading or not session_id:
            return False
        visible = [m for m in messages if not (m.role == "user" and is_composite(m.text))]
        if not visible:
            return False
        fingerprint = transcript_fingerprint(visible)
        if fingerprint == self.last_saved_fingerprint:
            return False
        self.cancel()
        payload = {
            "action": "save_chat",
            "sessionId": session_id,
            "messages": [message.to_dict() for message in visible],
        }
        if title:
            payload["title"] = title
        self._timer = asyncio.create_task(self._save_later(fingerprint, payload), name="autosave")
        return True

    def cancel(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def handle_response(self, response: Dict[str, Any]) -> None:
        """Consume a `save_chat` reply, matched to its save by `request_id`."""
        entry = self._in_flight.pop(str(response.get("request_id") or ""), None)
        if not response.get("success"):
            LOGGER.warning("Chat save failed: %s", response.get("error"))
            self._set_status(STATUS_ERROR)
            return
        if entry is None:
            LOGGER.debug("save_chat reply without a matching request: %r", response.get("request_id"))
        else:
            sequence, fingerprint = entry
            if sequence > self._confirmed_sequence:
                self._confirmed_sequence = sequence
                self.last_saved_fingerprint = fingerprint
        self._set_status(STATUS_SAVED)

    async def _save_later(self, fingerprint: str, payload: Dict[str, Any]) -> None:
        await asyncio.sleep(self.debounce)
        if self.history_loading:
            return
        sequence = next(self._sequence)
        request_id = f"save:{payload['sessionId']}:{sequence}"
        self._in_flight[request_id] = (sequence, fingerprint)
        self._set_status(STATUS_SAVING)
        try:
            await self._send({**payload, "request_id": request_id})
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.warning("Could not send save_chat: %s", exc)
            self._in_flight.pop(request_id, None)
            self._set_status(STATUS_ERROR)

    def _set_status(self, status: Optional[str]) -> None:
        if self._status_timer is not None:
            self._status_timer.cancel()
            self._status_timer = None
        self.status = status
        if self._on_status is not None:
            self._on_status(status)
        if status in (STATUS_SAVED, STATUS_ERROR):
            self._status_timer = asyncio.get_running_loop().call_later(
                self.status_clear_after, self._set_status, None
            )
