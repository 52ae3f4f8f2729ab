"""Chat persistence rules layered over the CHAT data access layer."""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from dal.chat_dal import ChatDAL
from models.chat_record import ChatRecord
from utils.text_utils import is_composite, truncate
from utils.video_urls import extract_video_title

LOGGER = logging.getLogger(__name__)

TITLE_LIMIT = 60


def generate_chat_title(messages: Sequence[Dict[str, Any]], use_last_user_message: bool = False) -> str:
    """Pick a display title for a chat.

    Priority: the most recent video title, then the first (or last) user
    message truncated to 60 characters, then a dated default.
    """
    for msg in reversed(messages):
        video = msg.get("video")
        if isinstance(video, dict) and video.get("title"):
            return str(video["title"])

    user_texts = [
        str(msg.get("text")).strip()
        for msg in messages
        if msg.get("role") == "user" and str(msg.get("text") or "").strip()
    ]
    if user_texts:
        text = user_texts[-1] if use_last_user_message else user_texts[0]
        return truncate(text, TITLE_LIMIT)
    return f"Chat {datetime.now().strftime('%Y-%m-%d %H:%M')}"


def prepare_messages_for_storage(messages: Sequence[Any]) -> List[Dict[str, Any]]:
    """Drop empty and composite messages and name videos from their signed URLs."""
    cleaned: List[Dict[str, Any]] = []
    for raw in messages:
        if not isinstance(raw, dict):
            LOGGER.warning("Skipping malformed chat message: %r", raw)
            continue
        msg = copy.deepcopy(raw)
        text = str(msg.get("text") or "")
        video = msg.get("video") if isinstance(msg.get("video"), dict) else None
        if msg.get("role") == "user" and is_composite(text):
            continue
        if not text.strip() and video is None and not msg.get("images"):
            continue
        if video is not None:
            derived = extract_video_title(video.get("videoUrl"))
            if derived:
                video["title"] = derived
        cleaned.append(msg)
    return cleaned


class ChatStore:
    """Save, list, load and delete chats for one owner at a time."""

    def __init__(self, dal: ChatDAL) -> None:
        self._dal = dal

    async def save_chat(
        self,
        owner: str,
        chat_id: str,
        messages: Sequence[Any],
        title: Optional[str] = None,
    ) -> ChatRecord:
        """Create or update a chat from a client transcript.

        Raises:
            ValueError: If the chat id is empty or nothing storable remains.
        """
        if not chat_id or not chat_id.strip():
            raise ValueError("sessionId is required.")
        cleaned = prepare_messages_for_storage(messages)
        if not cleaned:
            raise ValueError("No messages to save.")

        existing = await self._dal.get_chat(owner, chat_id)
        resolved_title = (title or "").strip() or generate_chat_title(
            cleaned, use_last_user_message=existing is not None
        )
        record = ChatRecord(
            id=chat_id,
            owner=owner,
            title=resolved_title,
            messages=cleaned,
            created_at=existing.created_at if existing else None,
        )
        stored = await self._dal.upsert_chat(record)
        LOGGER.info("Saved chat %s for %s (%d messages)", chat_id, owner, stored.message_count)
        return stored

    async def list_chats(self, owner: str) -> List[Dict[str, Any]]:
        return [record.summary() for record in await self._dal.list_chats(owner)]

    async def get_chat(self, owner: str, chat_id: str) -> Optional[ChatRecord]:
        return await self._dal.get_chat(owner, chat_id)

    async def delete_chat(self, owner: str, chat_id: str) -> bool:
        return await self._dal.delete_chat(owner, chat_id)
