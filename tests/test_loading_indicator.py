"""
Unit tests for the client loading flag and its safety timer.
"""

import asyncio

import pytest

from client.context import LoadingIndicator, ReconciliationContext
from models.transcript_models import Message


class TestLoadingIndicator:
    @pytest.mark.asyncio
    async def test_safety_timeout_clears_exactly_once(self):
        changes = []
        indicator = LoadingIndicator(timeout=0.05, on_change=changes.append)

        indicator.begin()
        await asyncio.sleep(0.1)
        await asyncio.sleep(0.1)

        assert changes == [True, False]
        assert indicator.active is False

    @pytest.mark.asyncio
    async def test_reply_clears_before_timeout(self):
        changes = []
        indicator = LoadingIndicator(timeout=0.05, on_change=changes.append)

        indicator.begin()
        assert indicator.observe(agent_text_increased=True, agent_replied=False) is True
        await asyncio.sleep(0.1)

        assert changes == [True, False]

    @pytest.mark.asyncio
    async def test_begin_again_restarts_the_timer(self):
        changes = []
        indicator = LoadingIndicator(timeout=0.08, on_change=changes.append)

        indicator.begin()
        await asyncio.sleep(0.05)
        indicator.begin()
        await asyncio.sleep(0.05)

        assert indicator.active is True
        assert changes == [True]
        indicator.clear()

    @pytest.mark.asyncio
    async def test_observe_without_reply_keeps_loading(self):
        indicator = LoadingIndicator(timeout=1)
        indicator.begin()

        assert indicator.observe(agent_text_increased=False, agent_replied=False) is False
        assert indicator.active is True
        indicator.clear()

    def test_clear_when_idle_is_a_no_op(self):
        indicator = LoadingIndicator()
        assert indicator.clear() is False


class TestAgentReplied:
    def test_reply_must_follow_latest_user_message(self):
        context = ReconciliationContext()
        context.messages = [Message(role="user", text="a"), Message(role="agent", text="b")]
        assert context.agent_replied() is True

        context.messages.append(Message(role="user", text="c"))
        assert context.agent_replied() is False

    def test_empty_transcript_has_no_reply(self):
        assert ReconciliationContext().agent_replied() is False
