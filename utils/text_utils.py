"""Text helpers shared by the dispatcher, chat store and client."""

from __future__ import annotations

import re
from typing import Iterable, Mapping

COMPOSITE_MARKER = "This is the context of our previous chat:"
CURRENT_PROMPT_MARKER = "This is my current prompt:"
PRELOADER_MARKERS = ("is working on your video",)

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """Collapse whitespace runs and trim."""
    return _WHITESPACE.sub(" ", text or "").strip()


def is_composite(text: str | None) -> bool:
    return bool(text) and COMPOSITE_MARKER in text


def is_preloader(text: str | None) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in PRELOADER_MARKERS)


def build_composite_prompt(history: Iterable[Mapping[str, object]], prompt: str) -> str:
    """Embed prior conversation into a single prompt for a fresh upstream chat."""
    lines = []
    for message in history:
        text = normalize_text(str(message.get("text") or ""))
        if not text or is_composite(text):
            continue
        speaker = "User" if message.get("role") == "user" else "Assistant"
        lines.append(f"{speaker}: {text}")
    context = "\n".join(lines)
    return f"{COMPOSITE_MARKER}\n{context}\n\n{CURRENT_PROMPT_MARKER}\n{prompt.strip()}"


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."
