"""Shared fixtures and Playwright/websocket fakes for the bridge tests."""

import asyncio
import json
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

import pytest

from dal.chat_dal import ChatDAL
from services.chat_store import ChatStore
from utils.config import BridgeConfig
from utils.database_init import AsyncDatabaseInitializer

TEST_SECRET = "test-secret"


class FakeResponse:
    def __init__(self, status: int = 200, body: bytes = b"", headers: Optional[Dict[str, str]] = None):
        self.status = status
        self._body = body
        self.headers = headers or {}

    async def body(self) -> bytes:
        return self._body


class FakeKeyboard:
    def __init__(self):
        self.pressed: List[str] = []

    async def press(self, key: str) -> None:
        self.pressed.append(key)


class FakeElement:
    def __init__(self, text: str = "", visible: bool = True):
        self.text = text
        self.visible = visible
        self.clicked = 0
        self.files: List[Any] = []

    async def is_visible(self) -> bool:
        return self.visible

    async def inner_text(self) -> str:
        return self.text

    async def scroll_into_view_if_needed(self) -> None:
        return None

    async def click(self, timeout: Optional[int] = None) -> None:
        self.clicked += 1

    async def set_input_files(self, files) -> None:
        self.files = list(files)


class FakePage:
    """Minimal async Page stand-in; `evaluate` is answered by `scripts`."""

    def __init__(self, url: str = "about:blank"):
        self.url = url
        self.closed = False
        self.visited: List[str] = []
        self.html = "<html><head><title>HeyGen</title></head><body>HeyGen app.heygen.com</body></html>"
        self.scripts: Dict[str, Callable[[Any], Any]] = {}
        self.elements: Dict[str, FakeElement] = {}
        self.selector_lists: Dict[str, List[FakeElement]] = {}
        self.filled: Dict[str, str] = {}
        self.clicked: List[str] = []
        self.keyboard = FakeKeyboard()
        self.next_url: Optional[str] = None

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True

    async def goto(self, url: str, **_: Any) -> FakeResponse:
        self.visited.append(url)
        self.url = url
        return FakeResponse(200)

    async def content(self) -> str:
        return self.html

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        handler = self.scripts.get(script)
        return handler(arg) if handler else None

    async def query_selector(self, selector: str) -> Optional[FakeElement]:
        return self.elements.get(selector)

    async def query_selector_all(self, selector: str) -> List[FakeElement]:
        return list(self.selector_lists.get(selector, []))

    async def wait_for_selector(self, selector: str, **_: Any) -> Optional[FakeElement]:
        return self.elements.get(selector)

    async def wait_for_timeout(self, _ms: int) -> None:
        return None

    async def wait_for_url(self, _pattern: str, **_: Any) -> None:
        if self.next_url:
            self.url = self.next_url

    async def click(self, selector: str, **_: Any) -> None:
        self.clicked.append(selector)

    async def fill(self, selector: str, value: str) -> None:
        self.filled[selector] = value


class FakeRequestChannel:
    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.response = FakeResponse(200, b'{"ok": true}', {"content-type": "application/json"})

    async def fetch(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        return self.response


class FakeContext:
    """BrowserContext stand-in that records the pages it opens."""

    def __init__(self, page_factory: Optional[Callable[[], FakePage]] = None):
        self.pages: List[FakePage] = []
        self.request = FakeRequestChannel()
        self._factory = page_factory or FakePage

    async def new_page(self) -> FakePage:
        page = self._factory()
        self.pages.append(page)
        return page


class FakeWebSocket:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send_text(self, text: str) -> None:
        self.sent.append(json.loads(text))


class FakeBridgeSocket:
    """Client-side websocket: frames pushed here are received by the client."""

    def __init__(self):
        self.url: Optional[str] = None
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def connect(self, url: str) -> "FakeBridgeSocket":
        self.url = url
        return self

    def push(self, payload: Any) -> None:
        self._inbox.put_nowait(payload if isinstance(payload, str) else json.dumps(payload))

    def hang_up(self) -> None:
        self._inbox.put_nowait(None)

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True
        self.hang_up()

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is None:
            raise StopAsyncIteration
        return item


@pytest.fixture
def config():
    return replace(BridgeConfig(), auth_secret=TEST_SECRET)


@pytest.fixture
def fake_context():
    return FakeContext()


@pytest.fixture
def fake_ws():
    return FakeWebSocket()


@pytest.fixture
def db_initializer(tmp_path):
    return AsyncDatabaseInitializer(tmp_path / "db")


@pytest.fixture
def chat_store(db_initializer):
    return ChatStore(ChatDAL(db_initializer))
