"""Client-side session controller: routes bridge replies into the client components."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from client.autosave import AutoSavePersistor
from client.context import LOADING_SAFETY_TIMEOUT, LoadingIndicator, ReconciliationContext
from client.polling import (
    CONTINUE_UNLIMITED,
    MAKE_CHANGES,
    MESSAGES,
    PROGRESS,
    VIDEO_URL,
    VIDEO_URLS,
    DEFAULT_BUTTON_ATTEMPTS,
    build_orchestrator,
)
from client.reconciliation import (
    MergeOutcome,
    ReconciliationEngine,
    leave_history,
    load_history,
    record_prompt,
    restore_cached,
)
from client.session_cache import SessionCache
from utils.text_utils import build_composite_prompt

LOGGER = logging.getLogger(__name__)

Sender = Callable[[Dict[str, Any]], Awaitable[None]]

LIVE_TASKS = (PROGRESS, MESSAGES, VIDEO_URLS, MAKE_CHANGES, CONTINUE_UNLIMITED)
HISTORY_TASKS = (PROGRESS, MESSAGES)
QUIET_ERRORS = ("No video found on page", "Not on agent session page")


class ChatSessionController:
    """Hold one client session's state and react to every inbound reply."""

    def __init__(
        self,
        send: Sender,
        cache: Optional[SessionCache] = None,
        loading_timeout: float = LOADING_SAFETY_TIMEOUT,
        intervals: Optional[Dict[str, float]] = None,
        button_attempts: int = DEFAULT_BUTTON_ATTEMPTS,
        autosave: Optional[AutoSavePersistor] = None,
    ) -> None:
        self._send = send
        self.cache = cache
        self.context = ReconciliationContext()
        self.engine = ReconciliationEngine(self.context)
        self.loading = LoadingIndicator(timeout=loading_timeout)
        self.autosave = autosave or AutoSavePersistor(send)
        self.orchestrator = build_orchestrator(
            send,
            factories={
                PROGRESS: lambda: {"action": "get_generation_progress"},
                MESSAGES: lambda: {"action": "get_messages"},
                VIDEO_URLS: lambda: {"action": "extract_all_video_urls"},
                VIDEO_URL: lambda: {"action": "get_video_url"},
            },
            intervals=intervals,
            button_attempts=button_attempts,
        )
        self.error: Optional[str] = None
        self._last_request: Optional[Dict[str, Any]] = None

    @property
    def messages(self):
        return self.context.messages

    # -- session lifecycle -------------------------------------------------

    async def open_session(self, session_id: str, remote_path: Optional[str] = None) -> None:
        """Switch to a live upstream session, restoring any cached transcript."""
        self._switch()
        cached: List[Dict[str, Any]] = []
        if self.cache is not None:
            cached = await self.cache.load_messages(session_id)
            await self.cache.save_session(session_id, remote_path)
        restore_cached(self.context, session_id, cached)
        self.autosave.mark_saved(self.context.messages)
        await self._send({"action": "initial_load"})
        self.orchestrator.start_all(LIVE_TASKS)

    async def open_history(self, chat_id: str, messages: List[Dict[str, Any]]) -> None:
        """Show a stored chat; the next prompt continues it in a fresh upstream chat."""
        self._switch()
        self.autosave.history_loading = True
        try:
            load_history(self.context, chat_id, messages)
            self.autosave.mark_saved(self.context.messages)
        finally:
            self.autosave.history_loading = False
        await self._send({"action": "navigate", "url": "/home"})
        self.orchestrator.start_all(HISTORY_TASKS)

    async def close(self) -> None:
        self.orchestrator.stop_all()
        self.autosave.cancel()
        self.loading.clear("closed")

    def _switch(self) -> None:
        self.orchestrator.stop_all()
        self.autosave.reset()
        self.loading.clear("session switch")
        self.error = None
        self._last_request = None

    # -- prompts -----------------------------------------------------------

    async def send_prompt(self, text: str) -> None:
        """Send a prompt; a stored chat is continued through a history-context envelope."""
        text = text.strip()
        if not text:
            raise ValueError("Prompt text is required.")
        if self.context.historical and self.context.messages:
            history = [message.to_dict() for message in self.context.messages]
            request = {
                "action": "send_message",
                "message": build_composite_prompt(history, text),
                "currentPath": "/home",
            }
            record_prompt(self.context, text, composite=True)
            leave_history(self.context)
            self.orchestrator.start_all(LIVE_TASKS)
        else:
            request = {"action": "send_message", "message": text}
            record_prompt(self.context, text)
        self.error = None
        self._last_request = request
        self.loading.begin()
        await self._send(request)
        self._schedule_save()

    async def retry(self) -> bool:
        """Resend the last prompt after an error; False when there is nothing to retry."""
        if self._last_request is None:
            return False
        self.error = None
        self.loading.begin()
        await self._send(self._last_request)
        return True

    def dismiss_error(self) -> None:
        self.error = None

    # -- inbound -----------------------------------------------------------

    async def handle_message(self, response: Dict[str, Any]) -> Optional[MergeOutcome]:
        """Route one bridge reply; returns the merge outcome for transcript actions."""
        action = response.get("action")
        success = bool(response.get("success"))

        if action == "find_and_click":
            task = self.orchestrator.button_for(response.get("request_id"))
            if task is not None:
                task.record_result(success and bool(response.get("clicked")))
            return None
        if action == "save_chat":
            self.autosave.handle_response(response)
            return None
        if action == "authenticate":
            if not success:
                LOGGER.warning("Bridge rejected the client token")
            return None

        if not success:
            self._on_failure(action, response.get("error"))
            return None
        if not self.engine.handles(action):
            return None

        outcome = self.engine.apply(response)
        await self._after_merge(action, outcome)
        return outcome

    def _on_failure(self, action: Optional[str], error: Optional[str]) -> None:
        if error in QUIET_ERRORS:
            LOGGER.debug("%s: %s", action, error)
            return
        LOGGER.warning("Action %s failed: %s", action, error)
        if action in ("send_message", "upload_files", "navigate"):
            self.error = error or "Request failed"
            self.loading.clear("request failed")

    async def _after_merge(self, action: str, outcome: MergeOutcome) -> None:
        if outcome.upstream_error:
            self.error = outcome.upstream_error
            self.loading.clear("upstream error")
        self.loading.observe(outcome.agent_text_increased, outcome.agent_replied)

        if outcome.generation_completed:
            self.orchestrator.start(VIDEO_URL)
        if action == "get_video_url" and outcome.video_resolved:
            self.orchestrator.stop(VIDEO_URL)
            self.loading.clear("video resolved")

        if outcome.changed:
            self._schedule_save()
            if self.cache is not None and self.context.session_id:
                await self.cache.save_messages(self.context.session_id, self.context.messages)

    def _schedule_save(self) -> None:
        self.autosave.schedule(self.context.session_id, self.context.messages)
