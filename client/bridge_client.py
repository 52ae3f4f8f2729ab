"""Client entry point: one bridge connection driving one session controller."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from client.connection import BridgeConnection
from client.controller import ChatSessionController
from client.session_cache import SessionCache

LOGGER = logging.getLogger(__name__)


class BridgeClient:
    """Own the websocket and the controller fed by it.

    Polling runs only while the connection is open: a connection closed by the
    bridge stops every scheduled task, and `stop()` does the same before
    closing the socket.
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        cache: Optional[SessionCache] = None,
        connection_factory: Callable[..., BridgeConnection] = BridgeConnection,
        **controller_options: Any,
    ) -> None:
        self.connection = connection_factory(url, self._dispatch, token=token)
        self.connection.on_close = self._connection_closed
        self.controller = ChatSessionController(self.connection.send, cache=cache, **controller_options)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def start(self, session_id: Optional[str] = None, remote_path: Optional[str] = None) -> Optional[str]:
        """Connect and open `session_id`, or the session saved in the cache.

        Returns the opened session id, or None when there is nothing to resume.
        """
        await self.connection.connect()
        self._closed.clear()
        if session_id is None and self.controller.cache is not None:
            descriptor = await self.controller.cache.load_session()
            if descriptor:
                session_id = descriptor.get("sessionId")
                remote_path = descriptor.get("remotePath")
        if not session_id:
            return None
        await self.controller.open_session(session_id, remote_path)
        return session_id

    async def stop(self) -> None:
        await self.controller.close()
        await self.connection.close()
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def _dispatch(self, message: Dict[str, Any]) -> None:
        await self.controller.handle_message(message)

    async def _connection_closed(self) -> None:
        LOGGER.info("Bridge connection lost; stopping polling")
        await self.controller.close()
        self._closed.set()
