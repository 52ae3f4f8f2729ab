"""Per-session client state shared by the reconciliation, polling and autosave layers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set

from models.transcript_models import GenerationProgress, Message

LOGGER = logging.getLogger(__name__)

MAX_TRANSCRIPT_MESSAGES = 200
LOADING_SAFETY_TIMEOUT = 30.0


@dataclass
class ReconciliationContext:
    """Everything the merge rules know about one chat session.

    A fresh context is created (or `reset`) whenever the client switches
    sessions, so no counter or assignment set leaks between chats.
    """

    session_id: Optional[str] = None
    messages: List[Message] = field(default_factory=list)
    assigned_urls: Set[str] = field(default_factory=set)
    video_hashes: Set[str] = field(default_factory=set)
    seen_count: int = 0
    historical_chat_id: Optional[str] = None
    plain_prompt: Optional[str] = None
    last_sent_user_text: Optional[str] = None
    progress: GenerationProgress = field(default_factory=GenerationProgress)
    initial_load_complete: bool = False
    max_messages: int = MAX_TRANSCRIPT_MESSAGES

    @property
    def historical(self) -> bool:
        return self.historical_chat_id is not None

    def reset(self, session_id: Optional[str] = None, historical_chat_id: Optional[str] = None) -> None:
        self.session_id = session_id
        self.messages = []
        self.assigned_urls = set()
        self.video_hashes = set()
        self.seen_count = 0
        self.historical_chat_id = historical_chat_id
        self.plain_prompt = None
        self.last_sent_user_text = None
        self.progress = GenerationProgress()
        self.initial_load_complete = False

    def agent_text_count(self) -> int:
        return sum(1 for message in self.messages if message.is_agent_text)

    def agent_replied(self) -> bool:
        """True when an agent text entry follows the latest user entry."""
        last_user = -1
        last_agent = -1
        for index, message in enumerate(self.messages):
            if message.role == "user":
                last_user = index
            elif message.is_agent_text:
                last_agent = index
        return last_agent > last_user >= 0

    def trim(self) -> None:
        if len(self.messages) > self.max_messages:
            self.messages = self.messages[-self.max_messages:]


class LoadingIndicator:
    """Loading flag raised on send, cleared once by a reply or a safety timer."""

    def __init__(
        self,
        timeout: float = LOADING_SAFETY_TIMEOUT,
        on_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self.timeout = timeout
        self.active = False
        self._on_change = on_change
        self._timer: Optional[asyncio.TimerHandle] = None

    def begin(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(self.timeout, self._expire)
        if not self.active:
            self.active = True
            self._notify()

    def clear(self, reason: str = "") -> bool:
        """Clear the flag; returns False when it was already clear."""
        self._cancel_timer()
        if not self.active:
            return False
        self.active = False
        LOGGER.debug("Loading cleared (%s)", reason or "manual")
        self._notify()
        return True

    def observe(self, agent_text_increased: bool, agent_replied: bool) -> bool:
        if not self.active:
            return False
        if agent_text_increased or agent_replied:
            return self.clear("agent reply")
        return False

    def _expire(self) -> None:
        self._timer = None
        if self.active:
            LOGGER.warning("No agent reply within %.0fs; clearing loading state", self.timeout)
            self.clear("timeout")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.active)
