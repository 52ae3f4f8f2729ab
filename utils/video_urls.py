"""Helpers for recognising and identifying generated video URLs."""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import parse_qs, unquote, urlparse

_HASH_PATTERNS = (
    re.compile(r"caption_([a-f0-9]{32})"),
    re.compile(r"transcode/([a-f0-9]{32})/"),
)
_FILENAME_PATTERN = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)
LOADING_ANIMATION_MARKERS = ("liteSharePreviewAnimation", "loading-animation")


def video_hash(url: Optional[str]) -> Optional[str]:
    """Return the 32-hex asset hash embedded in a video URL, if any."""
    if not url:
        return None
    for pattern in _HASH_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def is_loading_animation(url: Optional[str]) -> bool:
    return bool(url) and any(marker in url for marker in LOADING_ANIMATION_MARKERS)


def is_resolvable_video(url: Optional[str], video_host: str) -> bool:
    """True when `url` points at a generated video on `video_host`."""
    if not url or is_loading_animation(url):
        return False
    return urlparse(url).netloc == video_host


def extract_video_title(url: Optional[str]) -> Optional[str]:
    """Read the download filename from a signed URL's content-disposition query.

    The upstream signs URLs with `response-content-disposition=attachment;
    filename*=UTF-8''My%20Video.mp4`; the title is the filename without its
    extension.
    """
    if not url:
        return None
    query = parse_qs(urlparse(url).query)
    values = query.get("response-content-disposition")
    if not values:
        return None
    match = _FILENAME_PATTERN.search(values[0])
    if not match:
        return None
    filename = unquote(match.group(1)).strip()
    title = re.sub(r"\.mp4$", "", filename, flags=re.IGNORECASE).strip()
    return title or None
