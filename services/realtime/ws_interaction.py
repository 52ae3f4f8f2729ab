"""Drive the upstream page: navigation, button clicks, uploads and prompts."""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import time
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin, urlparse

from playwright.async_api import Error as PlaywrightError

from models.actions import UploadedFile
from models.session_models import BrowserSession
from services.realtime.page_scripts import (
	FILE_INPUT_SELECTORS,
	PROMPT_INPUT_SELECTOR,
	SUBMIT_BUTTON_SELECTOR,
	dispatch_click_script,
)
from services.realtime.ws_transcript import AGENT_PATH_MARKER
from utils.config import BridgeConfig
from utils.text_utils import is_composite

LOGGER = logging.getLogger(__name__)

NAVIGATION_TIMEOUT_MS = 30_000
SESSION_URL_TIMEOUT_MS = 60_000
_HAS_TEXT = re.compile(r':has-text\((["\'])(.+?)\1\)')


def has_text_label(selector: str) -> Optional[str]:
	"""Return the label of a `:has-text("...")` selector, or None."""
	match = _HAS_TEXT.search(selector)
	return match.group(2) if match else None


def decode_upload(file: UploadedFile) -> bytes:
	"""Decode base64 content, accepting data URLs."""
	content = file.content.split(",", 1)[1] if file.content.startswith("data:") else file.content
	try:
		return base64.b64decode(content, validate=True)
	except (binascii.Error, ValueError) as exc:
		raise ValueError(f"File {file.name} is not valid base64.") from exc


class InteractionHandler:
	"""Serve `navigate`, `find_and_click`, `upload_files` and `send_message`."""

	def __init__(self, config: BridgeConfig) -> None:
		self.config = config

	@property
	def home_url(self) -> str:
		return self.config.upstream_url + "/home"

	def resolve_url(self, url: str) -> str:
		return urljoin(self.config.upstream_url + "/", url)

	async def navigate(self, session: BrowserSession, url: str) -> Optional[Dict[str, Any]]:
		"""Navigate the session page; returns a reply only when refusing."""
		target = self.resolve_url(url)
		if self.config.block_agent_navigation and AGENT_PATH_MARKER in target:
			LOGGER.info("Refused direct navigation to agent page %s", target)
			return {"success": False, "blocked": True, "error": "Direct agent navigation is blocked"}
		page = session.page
		if page.url == target:
			return None
		await page.goto(target, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
		session.remote_path = urlparse(page.url).path
		return None

	async def find_and_click(self, session: BrowserSession, selector: str, timeout_ms: int) -> Dict[str, Any]:
		"""Click the first visible match within `timeout_ms`; not-found is `clicked: False`."""
		page = session.page
		deadline = time.monotonic() + timeout_ms / 1000
		target = await self._find_button(page, selector)
		while target is None and time.monotonic() < deadline:
			await asyncio.sleep(0.25)
			target = await self._find_button(page, selector)
		if target is None:
			return {"clicked": False}

		await target.scroll_into_view_if_needed()
		try:
			await target.click(timeout=5000)
		except PlaywrightError as exc:
			LOGGER.warning("Direct click on %s failed, dispatching DOM click: %s", selector, exc)
			await page.evaluate(dispatch_click_script(), target)
		LOGGER.info("Clicked %s", selector)
		return {"clicked": True}

	async def upload_files(
		self,
		session: BrowserSession,
		files: Sequence[UploadedFile],
		navigate_to_home: bool = False,
	) -> Dict[str, Any]:
		"""Attach base64-encoded files to the upstream prompt box's file input."""
		payloads: List[Dict[str, Any]] = [
			{"name": file.name, "mimeType": file.type, "buffer": decode_upload(file)} for file in files
		]
		return await self.attach_files(session, payloads, navigate_to_home)

	async def attach_files(
		self,
		session: BrowserSession,
		payloads: Sequence[Dict[str, Any]],
		navigate_to_home: bool = False,
	) -> Dict[str, Any]:
		"""Set Playwright file payloads (`name`, `mimeType`, `buffer`) on the composer."""
		if not payloads:
			raise ValueError("No files provided.")
		page = session.page
		if navigate_to_home or AGENT_PATH_MARKER in page.url:
			await self._go_home(session)
		await page.wait_for_selector(PROMPT_INPUT_SELECTOR, state="visible", timeout=10_000)
		file_input = await self._file_input(page)
		if file_input is None:
			raise RuntimeError("File input not found on upstream page")
		await file_input.set_input_files(list(payloads))
		LOGGER.info("Attached %d files", len(payloads))
		return {"filesCount": len(payloads)}

	async def send_message(self, session: BrowserSession, message: str, current_path: Optional[str] = None) -> Dict[str, Any]:
		"""Type a prompt into the upstream composer and submit it.

		Composite prompts and prompts sent from the client's home view start a
		fresh upstream chat.
		"""
		if not message.strip():
			raise ValueError("Message is required.")
		page = session.page
		if current_path == "/home" or is_composite(message):
			await self._go_home(session)
		await page.wait_for_selector(PROMPT_INPUT_SELECTOR, state="visible", timeout=10_000)
		await page.click(PROMPT_INPUT_SELECTOR)
		await page.fill(PROMPT_INPUT_SELECTOR, message)
		await page.wait_for_timeout(500)
		await page.wait_for_selector(SUBMIT_BUTTON_SELECTOR, state="visible", timeout=20_000)
		await page.click(SUBMIT_BUTTON_SELECTOR)
		return {}

	async def submit_prompt(self, session: BrowserSession, prompt: str) -> Dict[str, Any]:
		"""Start a new upstream chat and wait for its agent session URL."""
		await self.send_message(session, prompt, current_path="/home")
		page = session.page
		await page.wait_for_url(f"**{AGENT_PATH_MARKER}**", timeout=SESSION_URL_TIMEOUT_MS)
		session.remote_path = urlparse(page.url).path
		return {"sessionPath": session.remote_path, "sessionUrl": page.url}

	async def _go_home(self, session: BrowserSession) -> None:
		await session.page.goto(self.home_url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
		session.remote_path = "/home"
		await session.page.wait_for_timeout(2000)

	@staticmethod
	async def _find_button(page, selector: str):
		label = has_text_label(selector)
		if label is None:
			element = await page.query_selector(selector)
			return element if element is not None and await element.is_visible() else None
		for button in await page.query_selector_all("button"):
			try:
				text = (await button.inner_text()).strip()
				if label in text and await button.is_visible():
					return button
			except PlaywrightError:
				continue
		return None

	@staticmethod
	async def _file_input(page):
		for selector in FILE_INPUT_SELECTORS:
			element = await page.query_selector(selector)
			if element is not None:
				return element
		return None
