"""Per-user browser sessions, each holding one page leased from the pool."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Optional

from models.session_models import BrowserSession
from services.browser.page_pool import PagePool

LOGGER = logging.getLogger(__name__)

HOME_NAVIGATION_TIMEOUT_MS = 60_000


class SessionRegistry:
    """Create, reuse and expire browser sessions keyed by user."""

    def __init__(self, pool: PagePool, home_url: str, idle_seconds: int = 30 * 60) -> None:
        """
        Args:
            pool: Page pool the session pages are leased from.
            home_url: Upstream page a new session starts on.
            idle_seconds: Sessions idle longer than this are released.
        """
        self._pool = pool
        self.home_url = home_url
        self.idle_seconds = idle_seconds
        self._sessions: Dict[str, BrowserSession] = {}
        self._pending: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_key: str) -> BrowserSession:
        """Return a session or raise KeyError if missing."""
        session = self._sessions.get(session_key)
        if session is None:
            raise KeyError(f"Browser session {session_key} not found")
        return session

    async def get_or_create(self, session_key: str, user_email: Optional[str] = None) -> BrowserSession:
        """Return the live session for `session_key`, opening one if needed.

        Concurrent callers for the same key share a single page.
        """
        session = self._sessions.get(session_key)
        if session is not None and not session.page.is_closed():
            session.touch()
            return session
        if session is not None:
            LOGGER.warning("Session %s lost its page; reopening", session_key)
            self._sessions.pop(session_key, None)
            await self._pool.release(session.page)

        task = self._pending.get(session_key)
        if task is None:
            task = asyncio.create_task(self._open(session_key, user_email))
            self._pending[session_key] = task
            task.add_done_callback(lambda _: self._pending.pop(session_key, None))
        return await asyncio.shield(task)

    async def _open(self, session_key: str, user_email: Optional[str]) -> BrowserSession:
        page = await self._pool.acquire()
        try:
            await page.goto(self.home_url, wait_until="domcontentloaded", timeout=HOME_NAVIGATION_TIMEOUT_MS)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.warning("Initial navigation for %s failed: %s", session_key, exc)
        session = BrowserSession(session_key=session_key, page=page, user_email=user_email)
        self._sessions[session_key] = session
        LOGGER.info("Opened browser session %s", session_key)
        return session

    async def release(self, session_key: str) -> bool:
        """Return the session's page to the pool. Returns True if it existed."""
        session = self._sessions.pop(session_key, None)
        if session is None:
            return False
        await self._pool.release(session.page)
        LOGGER.info("Released browser session %s", session_key)
        return True

    async def cleanup_inactive(self, now: Optional[float] = None) -> int:
        """Release sessions idle longer than `idle_seconds` and return the count."""
        now = now or time.time()
        stale = [
            key
            for key, session in self._sessions.items()
            if session.idle_for(now) > self.idle_seconds and not session.lock.locked()
        ]
        for key in stale:
            await self.release(key)
        return len(stale)

    async def run_periodic_cleanup(self, interval_seconds: int = 300) -> None:
        """
        Repeatedly release idle sessions at the given interval until cancelled.

        Args:
            interval_seconds: Seconds to sleep between cleanup runs.
        """
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                removed = await self.cleanup_inactive()
                if removed:
                    LOGGER.info("Released %d idle browser sessions", removed)
            except asyncio.CancelledError:
                break
            except Exception as exc:  # pylint: disable=broad-exception-caught
                LOGGER.error("Session cleanup failed: %s", exc)

    async def close_all(self) -> None:
        for key in list(self._sessions):
            await self.release(key)
