"""Resolve generated video URLs rendered on the upstream agent page."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from models.session_models import BrowserSession
from services.realtime.page_scripts import VIDEO_CARD_SELECTOR, rendered_videos_script
from services.realtime.ws_transcript import AGENT_PATH_MARKER, DEFAULT_VIDEO_TITLE, dismiss_overlay
from utils.config import BridgeConfig
from utils.video_urls import extract_video_title, is_resolvable_video

LOGGER = logging.getLogger(__name__)


class VideoHandler:
	"""Serve `extract_all_video_urls` and `get_video_url`."""

	def __init__(self, config: BridgeConfig, settle_ms: int = 1000) -> None:
		self.config = config
		self.settle_ms = settle_ms

	async def extract_all_video_urls(self, session: BrowserSession) -> Dict[str, Any]:
		"""Batch-read every resolvable video currently rendered."""
		page = session.page
		if AGENT_PATH_MARKER not in page.url:
			raise RuntimeError("Not on agent session page")
		try:
			await page.wait_for_selector("video", timeout=3000)
			await page.wait_for_timeout(self.settle_ms)
		except PlaywrightTimeoutError:
			LOGGER.debug("No video elements rendered on %s", page.url)
		videos = await self._rendered_videos(page)
		return {"data": {"videos": videos, "totalFound": len(videos)}}

	async def get_video_url(self, session: BrowserSession) -> Dict[str, Any]:
		"""Return the most recent resolvable video, opening the latest card if needed."""
		page = session.page
		videos = await self._rendered_videos(page)
		if not videos:
			cards = await page.query_selector_all(VIDEO_CARD_SELECTOR)
			if cards:
				await cards[-1].click(timeout=3000)
				try:
					await page.wait_for_selector("video", timeout=2000)
					await page.wait_for_timeout(self.settle_ms)
				except PlaywrightTimeoutError:
					LOGGER.debug("Latest video card opened without a video element")
				videos = await self._rendered_videos(page)
				await dismiss_overlay(page)
		if not videos:
			raise RuntimeError("No video found on page")

		latest = videos[-1]
		url = latest["videoUrl"]
		return {
			"data": {
				"videoUrl": url,
				"poster": latest.get("poster") or "",
				"title": extract_video_title(url) or latest.get("title") or DEFAULT_VIDEO_TITLE,
				"originalUrl": url,
			}
		}

	async def _rendered_videos(self, page) -> List[Dict[str, Any]]:
		found = await page.evaluate(rendered_videos_script(), self.config.video_host) or []
		return [video for video in found if is_resolvable_video(video.get("videoUrl"), self.config.video_host)]
