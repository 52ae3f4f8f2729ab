"""Named, cancellable periodic request tasks driving the bridge connection."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

LOGGER = logging.getLogger(__name__)

Sender = Callable[[Dict[str, Any]], Awaitable[None]]
RequestFactory = Callable[[], Optional[Dict[str, Any]]]

PROGRESS = "progress"
MESSAGES = "messages"
VIDEO_URLS = "video_urls"
VIDEO_URL = "video_url"
MAKE_CHANGES = "make_changes"
CONTINUE_UNLIMITED = "continue_unlimited"

DEFAULT_INTERVALS = {
    PROGRESS: 2.0,
    MESSAGES: 5.0,
    VIDEO_URLS: 3.0,
    VIDEO_URL: 1.0,
    MAKE_CHANGES: 2.0,
    CONTINUE_UNLIMITED: 2.0,
}

BUTTON_SELECTORS = {
    MAKE_CHANGES: 'button:has-text("Make changes")',
    CONTINUE_UNLIMITED: 'button:has-text("Continue with Unlimited")',
}

DEFAULT_BUTTON_ATTEMPTS = 30


class ScheduledTask:
    """Send the request built by `factory` every `interval` seconds until stopped.

    A factory returning None skips that tick. Send failures are logged and the
    task keeps running; only `stop` ends it.
    """

    def __init__(self, name: str, interval: float, factory: RequestFactory, send: Sender) -> None:
        self.name = name
        self.interval = interval
        self._factory = factory
        self._send = send
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        self._task = asyncio.create_task(self._run(), name=f"poll:{self.name}")

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            request = self._factory()
            if request is None:
                continue
            try:
                await self._send(request)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-exception-caught
                LOGGER.warning("Poll %s could not send: %s", self.name, exc)


class ButtonTask(ScheduledTask):
    """Poll `find_and_click` for one button, giving up after repeated misses."""

    def __init__(
        self,
        name: str,
        interval: float,
        selector: str,
        send: Sender,
        max_attempts: int = DEFAULT_BUTTON_ATTEMPTS,
        click_timeout_ms: int = 2000,
        on_not_found: Optional[Callable[[str], None]] = None,
    ) -> None:
        super().__init__(name, interval, self._request, send)
        self.selector = selector
        self.max_attempts = max_attempts
        self.click_timeout_ms = click_timeout_ms
        self.misses = 0
        self._sequence = 0
        self._on_not_found = on_not_found

    def start(self) -> None:
        self.misses = 0
        super().start()

    def owns(self, request_id: Optional[str]) -> bool:
        return bool(request_id) and request_id.startswith(f"{self.name}:")

    def record_result(self, clicked: bool) -> None:
        """Feed one `find_and_click` reply; stops after a click or too many misses."""
        if clicked:
            LOGGER.info("Clicked %s", self.selector)
            self.stop()
            return
        self.misses += 1
        if self.misses >= self.max_attempts:
            LOGGER.info("Gave up on %s after %d attempts", self.selector, self.misses)
            self.stop()
            if self._on_not_found is not None:
                self._on_not_found(self.name)

    def _request(self) -> Dict[str, Any]:
        self._sequence += 1
        return {
            "action": "find_and_click",
            "selector": self.selector,
            "timeout": self.click_timeout_ms,
            "request_id": f"{self.name}:{self._sequence}",
        }


class PollingOrchestrator:
    """Own every named task of one connection."""

    def __init__(self, tasks: Iterable[ScheduledTask] = ()) -> None:
        self.tasks: Dict[str, ScheduledTask] = {}
        for task in tasks:
            self.add(task)

    def add(self, task: ScheduledTask) -> ScheduledTask:
        previous = self.tasks.get(task.name)
        if previous is not None:
            previous.stop()
        self.tasks[task.name] = task
        return task

    def get(self, name: str) -> ScheduledTask:
        return self.tasks[name]

    def is_running(self, name: str) -> bool:
        task = self.tasks.get(name)
        return task is not None and task.running

    def start(self, name: str) -> None:
        self.tasks[name].start()

    def stop(self, name: str) -> None:
        task = self.tasks.get(name)
        if task is not None:
            task.stop()

    def start_all(self, names: Optional[Iterable[str]] = None) -> None:
        for name in names if names is not None else list(self.tasks):
            self.start(name)

    def stop_all(self) -> None:
        for task in self.tasks.values():
            task.stop()

    def button_for(self, request_id: Optional[str]) -> Optional[ButtonTask]:
        for task in self.tasks.values():
            if isinstance(task, ButtonTask) and task.owns(request_id):
                return task
        return None


def build_orchestrator(
    send: Sender,
    factories: Dict[str, RequestFactory],
    intervals: Optional[Dict[str, float]] = None,
    button_attempts: int = DEFAULT_BUTTON_ATTEMPTS,
    on_button_not_found: Optional[Callable[[str], None]] = None,
) -> PollingOrchestrator:
    """Create the standard task set; `factories` supplies the non-button requests."""
    periods = dict(DEFAULT_INTERVALS, **(intervals or {}))
    orchestrator = PollingOrchestrator()
    for name, factory in factories.items():
        orchestrator.add(ScheduledTask(name, periods[name], factory, send))
    for name, selector in BUTTON_SELECTORS.items():
        orchestrator.add(ButtonTask(
            name,
            periods[name],
            selector,
            send,
            max_attempts=button_attempts,
            on_not_found=on_button_not_found,
        ))
    return orchestrator
