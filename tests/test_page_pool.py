"""
Unit tests for the bounded page pool and the per-user session registry.
"""

import pytest

from conftest import FakeContext
from services.browser.page_pool import PagePool, PoolExhaustedError
from services.browser.session_registry import SessionRegistry


class TestPagePool:
    @pytest.mark.asyncio
    async def test_prewarm_is_capped_by_max_size(self, fake_context):
        """Pre-warming never holds more idle pages than the pool allows."""
        pool = PagePool(fake_context, max_size=2, max_pages=5)
        await pool.prewarm(4)

        assert pool.size == 2
        assert len(fake_context.pages) == 2

    @pytest.mark.asyncio
    async def test_acquire_reuses_idle_page(self, fake_context):
        pool = PagePool(fake_context, max_size=2)
        await pool.prewarm(1)
        warm = fake_context.pages[0]

        page = await pool.acquire()

        assert page is warm
        assert pool.size == 0
        assert pool.leased == 1

    @pytest.mark.asyncio
    async def test_over_release_closes_extra_pages(self, fake_context):
        """Pages released above capacity are closed and the idle set stays bounded."""
        pool = PagePool(fake_context, max_size=2, max_pages=10)
        pages = [await pool.acquire() for _ in range(4)]

        for page in pages:
            await pool.release(page)

        assert pool.size == 2
        assert pool.leased == 0
        assert sum(1 for page in pages if page.closed) == 2

    @pytest.mark.asyncio
    async def test_double_release_does_not_duplicate(self, fake_context):
        pool = PagePool(fake_context, max_size=3)
        page = await pool.acquire()

        await pool.release(page)
        await pool.release(page)

        assert pool.size == 1

    @pytest.mark.asyncio
    async def test_closed_idle_pages_are_skipped(self, fake_context):
        pool = PagePool(fake_context, max_size=2)
        await pool.prewarm(1)
        fake_context.pages[0].closed = True

        page = await pool.acquire()

        assert page is not fake_context.pages[0]
        assert len(fake_context.pages) == 2

    @pytest.mark.asyncio
    async def test_acquire_times_out_when_every_slot_is_leased(self, fake_context):
        pool = PagePool(fake_context, max_size=1, max_pages=1, acquire_timeout=0.05)
        await pool.acquire()

        with pytest.raises(PoolExhaustedError):
            await pool.acquire()

    @pytest.mark.asyncio
    async def test_release_frees_a_slot(self, fake_context):
        pool = PagePool(fake_context, max_size=1, max_pages=1, acquire_timeout=0.05)
        page = await pool.acquire()
        await pool.release(page)

        again = await pool.acquire()

        assert again is page

    @pytest.mark.asyncio
    async def test_lease_releases_on_error(self, fake_context):
        pool = PagePool(fake_context, max_size=1, max_pages=1)

        with pytest.raises(ValueError):
            async with pool.lease():
                raise ValueError("boom")

        assert pool.leased == 0
        assert pool.size == 1

    @pytest.mark.asyncio
    async def test_close_rejects_new_acquires(self, fake_context):
        pool = PagePool(fake_context, max_size=2)
        await pool.prewarm(2)

        await pool.close()

        assert all(page.closed for page in fake_context.pages)
        with pytest.raises(RuntimeError):
            await pool.acquire()

    def test_invalid_sizes_are_rejected(self, fake_context):
        with pytest.raises(ValueError):
            PagePool(fake_context, max_size=0)


class TestSessionRegistry:
    @pytest.mark.asyncio
    async def test_get_or_create_reuses_session(self):
        context = FakeContext()
        registry = SessionRegistry(PagePool(context), "https://app.example.com/home")

        first = await registry.get_or_create("user:a@example.com", "a@example.com")
        second = await registry.get_or_create("user:a@example.com", "a@example.com")

        assert first is second
        assert first.page.visited == ["https://app.example.com/home"]
        assert len(context.pages) == 1

    @pytest.mark.asyncio
    async def test_closed_page_is_reopened(self):
        context = FakeContext()
        registry = SessionRegistry(PagePool(context), "https://app.example.com/home")
        first = await registry.get_or_create("user:a")
        first.page.closed = True

        second = await registry.get_or_create("user:a")

        assert second is not first
        assert not second.page.closed

    @pytest.mark.asyncio
    async def test_crashed_pages_free_their_pool_slot(self):
        """Reopening after a page crash must not keep the dead page leased."""
        pool = PagePool(FakeContext(), max_size=2, max_pages=2, acquire_timeout=0.05)
        registry = SessionRegistry(pool, "https://app.example.com/home")

        for _ in range(3):
            session = await registry.get_or_create("user:a")
            session.page.closed = True

        session = await registry.get_or_create("user:a")

        assert not session.page.closed
        assert pool.leased == 1
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_cleanup_releases_idle_sessions(self):
        context = FakeContext()
        pool = PagePool(context, max_size=2)
        registry = SessionRegistry(pool, "https://app.example.com/home", idle_seconds=10)
        session = await registry.get_or_create("user:a")

        removed = await registry.cleanup_inactive(now=session.last_activity + 60)

        assert removed == 1
        assert len(registry) == 0
        assert pool.leased == 0
        with pytest.raises(KeyError):
            registry.get("user:a")

    @pytest.mark.asyncio
    async def test_cleanup_skips_busy_sessions(self):
        registry = SessionRegistry(PagePool(FakeContext()), "https://app.example.com/home", idle_seconds=10)
        session = await registry.get_or_create("user:a")

        async with session.lock:
            removed = await registry.cleanup_inactive(now=session.last_activity + 60)

        assert removed == 0
