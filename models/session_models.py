"""Session domain models for browser-backed websocket connections."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ConnectionPhase(str, Enum):
	"""Protocol state of one websocket connection."""

	UNAUTHENTICATED = "unauthenticated"
	IDLE = "idle"
	NAVIGATING = "navigating"
	AWAITING_ACTION = "awaiting_action"


@dataclass
class BrowserSession:
	"""A user's leased upstream page plus the remote chat it is showing."""

	session_key: str
	page: Any
	user_email: Optional[str] = None
	remote_path: Optional[str] = None
	created_at: float = field(default_factory=lambda: time.time())
	last_activity: float = field(default_factory=lambda: time.time())
	lock: asyncio.Lock = field(default_factory=asyncio.Lock)

	def touch(self) -> None:
		self.last_activity = time.time()

	def idle_for(self, now: Optional[float] = None) -> float:
		return (now or time.time()) - self.last_activity


@dataclass
class ConnectionState:
	"""Per-connection protocol tracking."""

	phase: ConnectionPhase = ConnectionPhase.UNAUTHENTICATED
	user_email: Optional[str] = None
	session_key: Optional[str] = None

	@property
	def authenticated(self) -> bool:
		return self.phase is not ConnectionPhase.UNAUTHENTICATED
