"""Bounded pool of ready upstream pages shared by the proxy and the dispatcher."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Set

LOGGER = logging.getLogger(__name__)


class PoolExhaustedError(RuntimeError):
    """Raised when no page becomes available within the acquire timeout."""


class PagePool:
    """Lend pages from one browser context, one caller per page at a time.

    Idle pages are kept up to `max_size`; pages released beyond that are
    closed. At most `max_pages` pages are leased at once and further callers
    wait up to `acquire_timeout` seconds for a slot.
    """

    def __init__(
        self,
        context: Any,
        max_size: int = 5,
        max_pages: int = 10,
        acquire_timeout: float = 30.0,
    ) -> None:
        if max_size < 1 or max_pages < 1:
            raise ValueError("Pool sizes must be at least 1.")
        self._context = context
        self.max_size = max_size
        self.max_pages = max_pages
        self.acquire_timeout = acquire_timeout
        self._idle: List[Any] = []
        self._leased: Set[Any] = set()
        self._slots = asyncio.Semaphore(max_pages)
        self._closed = False

    @property
    def size(self) -> int:
        """Number of idle pages currently held."""
        return len(self._idle)

    @property
    def leased(self) -> int:
        return len(self._leased)

    async def prewarm(self, count: int) -> None:
        """Create up to `count` idle pages ahead of the first request."""
        while len(self._idle) < min(count, self.max_size):
            self._idle.append(await self._context.new_page())
        LOGGER.info("Page pool pre-warmed with %d pages", len(self._idle))

    async def acquire(self) -> Any:
        """Lease an idle page, or open a new one when none is idle.

        Raises:
            RuntimeError: If the pool has been closed.
            PoolExhaustedError: If every slot stays leased for `acquire_timeout`.
        """
        if self._closed:
            raise RuntimeError("Page pool is closed")
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.acquire_timeout)
        except asyncio.TimeoutError as exc:
            raise PoolExhaustedError(
                f"No page available after {self.acquire_timeout:.0f}s ({self.max_pages} in use)"
            ) from exc

        try:
            page = self._take_idle()
            if page is None:
                page = await self._context.new_page()
        except Exception:
            self._slots.release()
            raise
        self._leased.add(page)
        return page

    async def release(self, page: Any) -> None:
        """Return a page to the pool, closing it when the pool is full."""
        if page in self._leased:
            self._leased.discard(page)
            self._slots.release()
        if page in self._idle:
            return
        if page.is_closed():
            return
        if self._closed or len(self._idle) >= self.max_size:
            await self._close_page(page)
            return
        self._idle.append(page)

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[Any]:
        """Acquire a page for the duration of the block and always release it."""
        page = await self.acquire()
        try:
            yield page
        finally:
            await self.release(page)

    async def close(self) -> None:
        """Close idle pages; leased pages are closed when released."""
        self._closed = True
        idle, self._idle = self._idle, []
        for page in idle:
            await self._close_page(page)

    def _take_idle(self) -> Any:
        while self._idle:
            page = self._idle.pop()
            if not page.is_closed():
                return page
        return None

    @staticmethod
    async def _close_page(page: Any) -> None:
        try:
            await page.close()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.warning("Failed to close pooled page: %s", exc)
