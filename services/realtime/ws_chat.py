"""Persist client transcripts delivered over the websocket."""
from __future__ import annotations

from typing import Any, Dict

from models.actions import SaveChatAction
from services.chat_store import ChatStore


class ChatMessageHandler:
	"""Save a chat for the authenticated owner."""

	def __init__(self, chat_store: ChatStore) -> None:
		self.chat_store = chat_store

	async def save_chat(self, owner: str, action: SaveChatAction) -> Dict[str, Any]:
		"""Return the stored chat's metadata."""
		record = await self.chat_store.save_chat(owner, action.session_id, action.messages, action.title)
		return {"data": record.summary()}
