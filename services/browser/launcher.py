"""Start the shared Chromium instance and its authenticated browser context."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import aiofiles
from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from utils.config import BridgeConfig

LOGGER = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
CONTEXT_OPTIONS: Dict[str, Any] = {
    "viewport": {"width": 1920, "height": 1080},
    "user_agent": USER_AGENT,
    "locale": "en-US",
    "timezone_id": "America/New_York",
    "bypass_csp": True,
    "ignore_https_errors": True,
}


@dataclass
class BrowserHandles:
    """Everything that must be closed on shutdown, outermost last."""

    playwright: Playwright
    browser: Browser
    context: BrowserContext

    async def close(self) -> None:
        for closer in (self.context.close, self.browser.close, self.playwright.stop):
            try:
                await closer()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                LOGGER.warning("Browser shutdown step failed: %s", exc)


async def load_auth_cookies(path: Path) -> List[Dict[str, Any]]:
    """Read upstream cookies from a Playwright storage state or a bare cookie list.

    Raises:
        RuntimeError: If the file is missing, unreadable or holds no cookies.
    """
    if not path.exists():
        raise RuntimeError(
            f"Authentication state not found at {path}. Export the upstream "
            "session cookies before starting the bridge."
        )
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as handle:
            data = json.loads(await handle.read())
    except (OSError, ValueError) as exc:
        raise RuntimeError(f"Failed to read authentication state at {path}") from exc

    cookies = data.get("cookies") if isinstance(data, dict) else data
    if not isinstance(cookies, list) or not cookies:
        raise RuntimeError(f"Authentication state at {path} contains no cookies")
    return cookies


async def launch_browser(config: BridgeConfig) -> BrowserHandles:
    """Launch Chromium and open one context carrying the upstream session cookies."""
    cookies = await load_auth_cookies(config.storage_state_path)

    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(headless=config.headless, args=LAUNCH_ARGS)
        context = await browser.new_context(**CONTEXT_OPTIONS)
        await context.add_cookies(cookies)
    except Exception:
        await playwright.stop()
        raise

    LOGGER.info("Browser context ready with %d upstream cookies", len(cookies))
    return BrowserHandles(playwright=playwright, browser=browser, context=context)
