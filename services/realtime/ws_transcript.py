"""Read the upstream chat transcript and generation progress from a session page."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from models.session_models import BrowserSession
from models.transcript_models import GenerationProgress
from services.realtime.page_scripts import (
	CHAT_READY_SELECTOR,
	CLOSE_BUTTON_SELECTOR,
	VIDEO_CARD_SELECTOR,
	card_preview_script,
	generation_progress_script,
	rendered_videos_script,
	transcript_rows_script,
	upstream_error_script,
)
from utils.config import BridgeConfig

LOGGER = logging.getLogger(__name__)

AGENT_PATH_MARKER = "/agent/"
DEFAULT_VIDEO_TITLE = "Your video is ready!"


def _strip_query(url: Optional[str]) -> str:
	return (url or "").split("?", 1)[0]


def rows_to_messages(rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
	"""Keep the chat rows of a DOM scrape as wire messages."""
	messages: List[Dict[str, Any]] = []
	for row in rows:
		if row.get("type") != "message":
			continue
		message: Dict[str, Any] = {"role": row.get("role"), "text": row.get("text") or ""}
		if row.get("images"):
			message["images"] = row["images"]
		messages.append(message)
	return messages


def build_initial_messages(rows: Sequence[Dict[str, Any]], videos: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
	"""Merge DOM-ordered rows with the videos opened from their cards.

	Video cards are matched to extracted videos by thumbnail without query
	string; unmatched cards become pending video messages.
	"""
	by_thumbnail = {_strip_query(video.get("thumbnail")): video for video in videos if video.get("thumbnail")}
	messages: List[Dict[str, Any]] = []
	for row in rows:
		if row.get("type") != "video_placeholder":
			messages.extend(rows_to_messages([row]))
			continue
		thumbnail = row.get("thumbnail") or ""
		match = by_thumbnail.get(_strip_query(thumbnail))
		if match:
			messages.append({
				"role": "agent",
				"text": match.get("subtitle") or "",
				"video": {
					"thumbnail": match.get("thumbnail") or match.get("poster"),
					"videoUrl": match.get("videoUrl"),
					"poster": match.get("poster") or match.get("thumbnail"),
					"title": match.get("title") or DEFAULT_VIDEO_TITLE,
				},
			})
		else:
			messages.append({
				"role": "agent",
				"text": "",
				"video": {
					"thumbnail": thumbnail,
					"videoUrl": None,
					"poster": thumbnail,
					"title": row.get("title") or DEFAULT_VIDEO_TITLE,
				},
			})
	return messages


class TranscriptHandler:
	"""Serve `initial_load`, `get_messages` and `get_generation_progress`."""

	def __init__(self, config: BridgeConfig, video_attempts: int = 3) -> None:
		self.config = config
		self.video_attempts = video_attempts

	async def initial_load(self, session: BrowserSession) -> Dict[str, Any]:
		"""Full transcript scrape, opening every video card to read its source."""
		page = session.page
		if AGENT_PATH_MARKER not in page.url:
			return {"messages": [], "complete": True}
		try:
			await page.wait_for_selector(CHAT_READY_SELECTOR, timeout=3000)
		except PlaywrightTimeoutError:
			LOGGER.debug("Chat rows not rendered yet on %s", page.url)
		videos = await self._open_video_cards(page)
		rows = await page.evaluate(transcript_rows_script())
		messages = build_initial_messages(rows or [], videos)
		LOGGER.info("initial_load: %d messages, %d videos", len(messages), len(videos))
		return {"messages": messages, "complete": True}

	async def get_messages(self, session: BrowserSession) -> Dict[str, Any]:
		"""Incremental scrape plus the upstream error banner, if shown."""
		page = session.page
		rows = await page.evaluate(transcript_rows_script())
		result: Dict[str, Any] = {"messages": rows_to_messages(rows or [])}
		error = await page.evaluate(upstream_error_script())
		if error:
			result["hasError"] = True
			result["error"] = error
		return result

	async def get_generation_progress(self, session: BrowserSession) -> Dict[str, Any]:
		raw = await session.page.evaluate(generation_progress_script())
		return {"data": GenerationProgress.from_dict(raw).to_dict()}

	async def _open_video_cards(self, page) -> List[Dict[str, Any]]:
		extracted: List[Dict[str, Any]] = []
		cards = await page.query_selector_all(VIDEO_CARD_SELECTOR)
		for index, card in enumerate(cards):
			try:
				preview = await card.evaluate(card_preview_script())
				if not preview.get("thumbnail"):
					continue
				await card.click(timeout=3000)
				video = await self._wait_for_video(page)
				if video:
					extracted.append({
						**preview,
						"videoUrl": video["videoUrl"],
						"poster": video.get("poster") or preview["thumbnail"],
					})
				else:
					LOGGER.info("No video source for card %d", index + 1)
			except PlaywrightError as exc:
				LOGGER.warning("Failed to open video card %d: %s", index + 1, exc)
			finally:
				await dismiss_overlay(page)
		return extracted

	async def _wait_for_video(self, page) -> Optional[Dict[str, Any]]:
		for _ in range(self.video_attempts):
			try:
				await page.wait_for_selector("video", timeout=2000)
			except PlaywrightTimeoutError:
				continue
			await page.wait_for_timeout(1000)
			found = await page.evaluate(rendered_videos_script(), self.config.video_host)
			if found:
				return found[0]
		return None


async def dismiss_overlay(page) -> None:
	"""Close a video sidebar or modal, preferring Escape over the close button."""
	try:
		await page.keyboard.press("Escape")
		await page.wait_for_timeout(300)
	except PlaywrightError:
		try:
			button = await page.query_selector(CLOSE_BUTTON_SELECTOR)
			if button is not None:
				await button.click()
		except PlaywrightError as exc:
			LOGGER.debug("Overlay close button failed: %s", exc)
