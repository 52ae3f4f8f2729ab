"""Transcript domain models exchanged between the dispatcher and the client."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from utils.text_utils import normalize_text

ROLES = ("user", "agent")
_ROLE_ALIASES = {"assistant": "agent", "user": "user", "agent": "agent"}


@dataclass
class ImageRef:
	"""Image attached to a user message."""

	url: str
	alt: str = ""

	@classmethod
	def from_dict(cls, data: Mapping[str, Any]) -> "ImageRef":
		if not isinstance(data, Mapping):
			raise ValueError("Image entries must be objects.")
		url = data.get("url") or data.get("src")
		if not isinstance(url, str) or not url:
			raise ValueError("Image entries require a url.")
		return cls(url=url, alt=str(data.get("alt") or ""))

	def to_dict(self) -> Dict[str, Any]:
		return {"url": self.url, "alt": self.alt}


@dataclass
class VideoInfo:
	"""Video attached to an agent message; pending until `video_url` is known."""

	video_url: Optional[str] = None
	poster: Optional[str] = None
	thumbnail: Optional[str] = None
	title: Optional[str] = None

	@property
	def pending(self) -> bool:
		return not self.video_url

	def preview(self) -> Optional[str]:
		return self.poster or self.thumbnail

	def merge(self, other: "VideoInfo") -> None:
		"""Fill fields from `other`, keeping existing values where `other` is empty."""
		self.video_url = other.video_url or self.video_url
		self.poster = other.poster or self.poster
		self.thumbnail = other.thumbnail or self.thumbnail
		self.title = other.title or self.title

	@classmethod
	def from_dict(cls, data: Mapping[str, Any]) -> "VideoInfo":
		if not isinstance(data, Mapping):
			raise ValueError("Video payload must be an object.")
		return cls(
			video_url=_optional_str(data, "videoUrl"),
			poster=_optional_str(data, "poster"),
			thumbnail=_optional_str(data, "thumbnail"),
			title=_optional_str(data, "title"),
		)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"videoUrl": self.video_url,
			"poster": self.poster,
			"thumbnail": self.thumbnail,
			"title": self.title,
		}


@dataclass
class Message:
	"""One transcript entry."""

	role: str
	text: str = ""
	id: Optional[str] = None
	images: List[ImageRef] = field(default_factory=list)
	video: Optional[VideoInfo] = None

	def __post_init__(self) -> None:
		if self.id is None:
			if not self.text.strip() and self.video is not None:
				key = self.video.video_url or self.video.preview() or uuid.uuid4().hex
				self.id = derive_message_id(self.role, f"video:{key}")
			else:
				self.id = derive_message_id(self.role, self.text)

	@property
	def has_text(self) -> bool:
		return bool(self.text.strip())

	@property
	def is_agent_text(self) -> bool:
		return self.role == "agent" and self.has_text and self.video is None

	@classmethod
	def from_dict(cls, data: Mapping[str, Any]) -> "Message":
		"""Parse a wire message; raises ValueError when the shape is invalid."""
		if not isinstance(data, Mapping):
			raise ValueError("Message must be an object.")
		role = _ROLE_ALIASES.get(str(data.get("role") or "").lower())
		if role is None:
			raise ValueError(f"Unsupported message role: {data.get('role')!r}")
		text = data.get("text") or ""
		if not isinstance(text, str):
			raise ValueError("Message text must be a string.")
		raw_images = data.get("images") or []
		if not isinstance(raw_images, list):
			raise ValueError("Message images must be a list.")
		images = [ImageRef.from_dict(item) for item in raw_images]
		video = VideoInfo.from_dict(data["video"]) if data.get("video") else None
		return cls(role=role, text=text, id=_optional_str(data, "id"), images=images, video=video)

	def to_dict(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"id": self.id, "role": self.role, "text": self.text}
		if self.images:
			payload["images"] = [image.to_dict() for image in self.images]
		if self.video is not None:
			payload["video"] = self.video.to_dict()
		return payload


def _optional_str(data: Mapping[str, Any], key: str) -> Optional[str]:
	value = data.get(key)
	if value is None or value == "":
		return None
	if not isinstance(value, str):
		raise ValueError(f"{key} must be a string.")
	return value


def derive_message_id(role: str, text: str) -> str:
	"""Content-derived id used when the upstream does not provide one."""
	digest = hashlib.sha1(f"{role}:{normalize_text(text)}".encode("utf-8")).hexdigest()
	return f"msg_{digest[:12]}"


@dataclass
class GenerationStep:
	text: str
	status: str = "pending"


@dataclass
class GenerationProgress:
	"""Snapshot of the upstream generation card, replaced on every poll."""

	is_generating: bool = False
	percentage: int = 0
	message: str = ""
	current_step: str = ""
	current_status: str = ""
	steps: List[GenerationStep] = field(default_factory=list)

	@classmethod
	def from_dict(cls, data: Mapping[str, Any] | None) -> "GenerationProgress":
		if not isinstance(data, Mapping):
			data = {}
		try:
			percentage = int(data.get("percentage") or 0)
		except (TypeError, ValueError):
			percentage = 0
		raw_steps = data.get("steps")
		steps = [
			GenerationStep(text=str(step.get("text") or ""), status=str(step.get("status") or "pending"))
			for step in (raw_steps if isinstance(raw_steps, list) else [])
			if isinstance(step, Mapping)
		]
		return cls(
			is_generating=bool(data.get("isGenerating")),
			percentage=max(0, min(100, percentage)),
			message=str(data.get("message") or ""),
			current_step=str(data.get("currentStep") or ""),
			current_status=str(data.get("currentStatus") or ""),
			steps=steps,
		)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"isGenerating": self.is_generating,
			"percentage": self.percentage,
			"message": self.message,
			"currentStep": self.current_step,
			"currentStatus": self.current_status,
			"steps": [{"text": step.text, "status": step.status} for step in self.steps],
		}
