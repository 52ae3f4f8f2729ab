from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _iso(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass
class ChatRecord:
    """In-memory representation of a row in the CHAT table.

    Attributes:
        id: Chat id, equal to the client session id that produced it.
        owner: Email (or other user key) owning the chat.
        title: Display title.
        messages: Wire-format message dicts, stored wholesale.
        created_at: Unix timestamp (seconds) of the first save.
        updated_at: Unix timestamp (seconds) of the latest save.
    """

    id: str
    owner: str
    title: str
    messages: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[float] = None
    updated_at: Optional[float] = None

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def has_video(self) -> bool:
        return any(
            isinstance(msg.get("video"), dict) and msg["video"].get("videoUrl")
            for msg in self.messages
        )

    def summary(self) -> Dict[str, Any]:
        """Metadata used by chat listings."""
        return {
            "id": self.id,
            "title": self.title,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "messageCount": self.message_count,
            "hasVideo": self.has_video,
        }

    def to_dict(self) -> Dict[str, Any]:
        payload = self.summary()
        payload["messages"] = self.messages
        return payload
