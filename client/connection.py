"""Websocket transport between the client and the bridge's `/ws` endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlencode

import websockets

LOGGER = logging.getLogger(__name__)

MessageCallback = Callable[[Dict[str, Any]], Awaitable[None]]
CloseCallback = Callable[[], Awaitable[None]]


class ConnectionClosedError(RuntimeError):
    """Raised when sending on a connection that is not open."""


class BridgeConnection:
    """One websocket to the bridge; inbound frames are handed to `on_message`.

    Server heartbeats are consumed here and never reach the callback. When the
    receive loop ends for any reason other than `close()`, `on_close` is awaited.
    """

    def __init__(self, url: str, on_message: MessageCallback, token: Optional[str] = None) -> None:
        self.url = url
        self.token = token
        self._on_message = on_message
        self._ws = None
        self._recv_task: Optional[asyncio.Task] = None
        self.on_close: Optional[CloseCallback] = None

    @property
    def connected(self) -> bool:
        return self._ws is not None and self._recv_task is not None and not self._recv_task.done()

    def _target(self) -> str:
        if not self.token:
            return self.url
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode({'token': self.token})}"

    async def connect(self) -> None:
        self._ws = await websockets.connect(self._target())
        self._recv_task = asyncio.create_task(self._recv_loop(), name="bridge-recv")
        LOGGER.info("Connected to %s", self.url)
        if self.token:
            await self.send({"action": "authenticate", "token": self.token})

    async def close(self) -> None:
        if self._recv_task is not None:
            self._recv_task.cancel()
            self._recv_task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def send(self, payload: Dict[str, Any]) -> None:
        if self._ws is None:
            raise ConnectionClosedError("Bridge connection is not open")
        await self._ws.send(json.dumps(payload))

    async def _recv_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    LOGGER.warning("Dropping non-JSON frame from bridge")
                    continue
                if not isinstance(message, dict) or message.get("action") == "heartbeat":
                    continue
                try:
                    await self._on_message(message)
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    LOGGER.warning("Handler failed for %s: %s", message.get("action"), exc)
        except asyncio.CancelledError:
            raise
        except websockets.ConnectionClosed as exc:
            LOGGER.info("Bridge connection closed: %s", exc)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.warning("Receive loop exited: %s", exc)
        else:
            LOGGER.info("Bridge connection closed by peer")
        self._ws = None
        if self.on_close is not None:
            await self.on_close()
