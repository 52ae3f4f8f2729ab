"""
Fold polling responses into the client transcript.

Every merge function takes the session's `ReconciliationContext` and a
response payload, mutates the context, and returns a `MergeOutcome` telling
the caller what changed. Merges are synchronous and run to completion on the
client loop.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlsplit

from client.context import ReconciliationContext
from models.transcript_models import GenerationProgress, ImageRef, Message, VideoInfo, derive_message_id
from utils.text_utils import is_composite, is_preloader, normalize_text
from utils.video_urls import extract_video_title, video_hash

LOGGER = logging.getLogger(__name__)

PENDING_VIDEO_TITLE = "Generating your video..."


@dataclass
class MergeOutcome:
    changed: bool = False
    agent_text_before: int = 0
    agent_text_after: int = 0
    agent_replied: bool = False
    upstream_error: Optional[str] = None
    generation_completed: bool = False
    video_resolved: bool = False

    @property
    def agent_text_increased(self) -> bool:
        return self.agent_text_after > self.agent_text_before


# --------------------------------------------------------------------------- #
# Parsing and filtering
# --------------------------------------------------------------------------- #


def parse_messages(raw: Any) -> List[Message]:
    """Parse wire messages, logging and skipping malformed entries."""
    if not isinstance(raw, list):
        if raw is not None:
            LOGGER.warning("Ignoring non-list messages payload: %r", type(raw).__name__)
        return []
    messages: List[Message] = []
    for index, item in enumerate(raw):
        try:
            messages.append(Message.from_dict(item))
        except ValueError as exc:
            LOGGER.warning("Skipping malformed message at %d: %s", index, exc)
    return messages


def _is_visible(message: Message) -> bool:
    if message.role == "user" and is_composite(message.text):
        return False
    if message.role == "agent" and is_preloader(message.text):
        return message.video is not None and not message.video.pending
    return True


def fold_image_only(messages: Iterable[Message]) -> List[Message]:
    """Attach image-only user entries to the user text entry that follows them."""
    folded: List[Message] = []
    carried: List[ImageRef] = []
    for message in messages:
        if message.role == "user" and not message.has_text and message.images and message.video is None:
            carried.extend(message.images)
            continue
        if carried and message.role == "user" and message.has_text:
            message.images = carried + message.images
            carried = []
        folded.append(message)
    if carried:
        folded.append(Message(role="user", images=carried))
    return folded


def filter_incoming(context: ReconciliationContext, messages: List[Message]) -> List[Message]:
    """Drop envelope and preloader entries and reinsert the tracked plain prompt once."""
    visible = [message for message in messages if _is_visible(message)]
    dropped_envelope = any(message.role == "user" and is_composite(message.text) for message in messages)

    if context.plain_prompt and dropped_envelope:
        key = normalize_text(context.plain_prompt)
        if not any(m.role == "user" and normalize_text(m.text) == key for m in visible):
            insert_at = next(
                (i for i, m in enumerate(messages) if m.role == "user" and is_composite(m.text)),
                0,
            )
            # keep the reinsertion at the envelope's position among visible entries
            position = sum(1 for m in messages[:insert_at] if _is_visible(m))
            visible.insert(position, Message(role="user", text=context.plain_prompt))
        context.plain_prompt = None

    return fold_image_only(visible)


# --------------------------------------------------------------------------- #
# Text upsert
# --------------------------------------------------------------------------- #


def _previous_text_entry(messages: List[Message], role: str) -> Optional[Message]:
    """Return the last transcript entry when it is a text entry of `role`."""
    if not messages:
        return None
    last = messages[-1]
    if last.role == role and last.has_text and last.video is None:
        return last
    return None


def _merge_images(target: Message, images: List[ImageRef]) -> bool:
    known = {image.url for image in target.images}
    added = [image for image in images if image.url not in known]
    if not added:
        return False
    target.images = target.images + added
    return True


def upsert_text(context: ReconciliationContext, incoming: Message) -> bool:
    """Apply a text-only entry; returns True when the transcript changed."""
    messages = context.messages
    key = normalize_text(incoming.text)

    for existing in messages:
        if existing.role == incoming.role and existing.video is None and normalize_text(existing.text) == key:
            return _merge_images(existing, incoming.images)

    previous = _previous_text_entry(messages, incoming.role)
    if previous is not None:
        previous_key = normalize_text(previous.text)
        if previous_key.startswith(key):
            # streaming partial of an entry we already hold
            return False
        if key.startswith(previous_key):
            previous.text = incoming.text
            previous.id = incoming.id or derive_message_id(incoming.role, incoming.text)
            _merge_images(previous, incoming.images)
            return True

    messages.append(copy.deepcopy(incoming))
    return True


# --------------------------------------------------------------------------- #
# Video upsert
# --------------------------------------------------------------------------- #


def _strip_query(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}" if parts.netloc else parts.path


def _same_preview(a: VideoInfo, b: VideoInfo) -> bool:
    for left in (a.poster, a.thumbnail):
        for right in (b.poster, b.thumbnail):
            if left and right and _strip_query(left) == _strip_query(right):
                return True
    return False


def _record(context: ReconciliationContext, url: Optional[str]) -> None:
    if not url:
        return
    context.assigned_urls.add(url)
    asset = video_hash(url)
    if asset:
        context.video_hashes.add(asset)


def _is_known(context: ReconciliationContext, url: str) -> bool:
    if url in context.assigned_urls:
        return True
    asset = video_hash(url)
    return bool(asset) and asset in context.video_hashes


def _resolve(context: ReconciliationContext, message: Message, video: VideoInfo) -> None:
    message.video.merge(video)
    if not message.video.title or message.video.title == PENDING_VIDEO_TITLE:
        message.video.title = extract_video_title(video.video_url) or message.video.title
    _record(context, video.video_url)


def upsert_video_descriptor(context: ReconciliationContext, video: VideoInfo) -> bool:
    """Attach a resolved video descriptor using the match priority.

    (a) exact URL, then known-asset skip, (b) preview match against a pending
    entry, (c) first pending entry, (d) most recent video entry, (e) append.
    """
    url = video.video_url
    if not url:
        return False
    messages = context.messages

    for message in messages:
        if message.video is not None and message.video.video_url == url:
            before = message.video.to_dict()
            message.video.merge(video)
            return message.video.to_dict() != before

    if _is_known(context, url):
        return False

    pending = [m for m in messages if m.video is not None and m.video.pending]
    for message in pending:
        if _same_preview(message.video, video):
            _resolve(context, message, video)
            return True

    if pending:
        _resolve(context, pending[0], video)
        return True

    for message in reversed(messages):
        if message.video is None:
            continue
        current = video_hash(message.video.video_url)
        incoming = video_hash(url)
        if current and incoming and current != incoming:
            # a different asset already lives here
            break
        _resolve(context, message, video)
        return True

    messages.append(Message(role="agent", video=VideoInfo(
        video_url=url,
        poster=video.poster,
        thumbnail=video.thumbnail,
        title=video.title or extract_video_title(url),
    )))
    _record(context, url)
    return True


def upsert_video_message(context: ReconciliationContext, incoming: Message) -> bool:
    """Apply a video-bearing entry scraped from the transcript."""
    video = incoming.video
    messages = context.messages

    if video.pending:
        for message in messages:
            if message.video is None:
                continue
            if video.preview() and _same_preview(message.video, video):
                return False
            if not video.preview() and message.video.pending and message.video.title == video.title:
                return False
        for message in messages:
            if not video.preview():
                break
            if message.video is not None and message.video.pending and not message.video.preview():
                # progress placeholder adopts the card's preview
                message.video.merge(video)
                return True
        messages.append(copy.deepcopy(incoming))
        return True

    url = video.video_url
    for message in messages:
        if message.video is not None and message.video.video_url == url:
            before = message.video.to_dict()
            message.video.merge(video)
            return message.video.to_dict() != before

    if _is_known(context, url):
        return False

    for message in messages:
        if message.video is not None and message.video.pending and _same_preview(message.video, video):
            _resolve(context, message, video)
            if incoming.has_text and not message.has_text:
                message.text = incoming.text
            return True

    entry = copy.deepcopy(incoming)
    if not entry.video.title:
        entry.video.title = extract_video_title(url)
    messages.append(entry)
    _record(context, url)
    return True


# --------------------------------------------------------------------------- #
# Response merges
# --------------------------------------------------------------------------- #


def _merge_live(context: ReconciliationContext, incoming: List[Message]) -> bool:
    start = max(context.seen_count - 1, 0)
    if len(incoming) < context.seen_count - 1:
        # upstream transcript shrank; re-examine everything
        start = 0
    changed = False
    for message in incoming[start:]:
        if message.video is not None:
            changed = upsert_video_message(context, message) or changed
        elif message.has_text:
            changed = upsert_text(context, message) or changed
        elif message.images:
            context.messages.append(copy.deepcopy(message))
            changed = True
    context.seen_count = len(incoming)
    return changed


def _merge_historical(context: ReconciliationContext, incoming: List[Message]) -> bool:
    present = {normalize_text(m.text) for m in context.messages if m.has_text}
    just_sent = normalize_text(context.last_sent_user_text)
    changed = False
    for message in incoming:
        if message.video is not None:
            changed = upsert_video_message(context, message) or changed
            continue
        key = normalize_text(message.text)
        if not key or key in present:
            continue
        if message.role == "user" and just_sent and key == just_sent:
            continue
        context.messages.append(copy.deepcopy(message))
        present.add(key)
        changed = True
    return changed


def _merge_transcript(context: ReconciliationContext, raw: Any) -> MergeOutcome:
    outcome = MergeOutcome(agent_text_before=context.agent_text_count())
    incoming = filter_incoming(context, parse_messages(raw))
    if context.historical:
        outcome.changed = _merge_historical(context, incoming)
    else:
        outcome.changed = _merge_live(context, incoming)
    context.trim()
    outcome.agent_text_after = context.agent_text_count()
    outcome.agent_replied = context.agent_replied()
    return outcome


def merge_messages(context: ReconciliationContext, response: Mapping[str, Any]) -> MergeOutcome:
    """Merge a `get_messages` response."""
    outcome = _merge_transcript(context, response.get("messages"))
    if response.get("hasError"):
        outcome.upstream_error = response.get("error") or "The upstream agent reported an error."
    return outcome


def merge_initial_load(context: ReconciliationContext, response: Mapping[str, Any]) -> MergeOutcome:
    """Merge the one-off full scrape taken when a session is opened."""
    outcome = _merge_transcript(context, response.get("messages"))
    # the scrape includes card rows that get_messages omits; recount from the start
    context.seen_count = 0
    context.initial_load_complete = True
    return outcome


def _data(response: Mapping[str, Any]) -> Mapping[str, Any]:
    data = response.get("data")
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        LOGGER.warning("Ignoring non-object %s data: %r", response.get("action"), type(data).__name__)
        return {}
    return data


def _descriptors(raw: Any) -> List[VideoInfo]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        LOGGER.warning("Ignoring non-list videos payload: %r", type(raw).__name__)
        return []
    videos: List[VideoInfo] = []
    for item in raw:
        try:
            video = VideoInfo.from_dict(item)
        except ValueError as exc:
            LOGGER.warning("Skipping malformed video descriptor: %s", exc)
            continue
        if video.video_url:
            videos.append(video)
    return videos


def merge_extracted_videos(context: ReconciliationContext, response: Mapping[str, Any]) -> MergeOutcome:
    """Merge an `extract_all_video_urls` response."""
    data = _data(response)
    outcome = MergeOutcome(agent_text_before=context.agent_text_count())
    for video in _descriptors(data.get("videos")):
        if upsert_video_descriptor(context, video):
            outcome.changed = True
            outcome.video_resolved = True
    context.trim()
    outcome.agent_text_after = context.agent_text_count()
    return outcome


def merge_video_url(context: ReconciliationContext, response: Mapping[str, Any]) -> MergeOutcome:
    """Merge a `get_video_url` response."""
    data = _data(response)
    outcome = MergeOutcome(agent_text_before=context.agent_text_count())
    outcome.agent_text_after = outcome.agent_text_before
    try:
        video = VideoInfo.from_dict(data)
    except ValueError as exc:
        LOGGER.warning("Skipping malformed video url reply: %s", exc)
        return outcome
    url = video.video_url
    if url:
        original = data.get("originalUrl")
        if not isinstance(original, str):
            original = None
        if original and original != url and _is_known(context, original):
            outcome.video_resolved = True
        else:
            outcome.changed = upsert_video_descriptor(context, video)
            outcome.video_resolved = True
            _record(context, original)
    return outcome


def merge_progress(context: ReconciliationContext, response: Mapping[str, Any]) -> MergeOutcome:
    """Merge a `get_generation_progress` response."""
    outcome = MergeOutcome(agent_text_before=context.agent_text_count())
    incoming = GenerationProgress.from_dict(response.get("data"))
    was_generating = context.progress.is_generating

    if incoming.is_generating:
        context.progress = incoming
        if not any(m.video is not None and m.video.pending for m in context.messages):
            context.messages.append(Message(role="agent", video=VideoInfo(title=PENDING_VIDEO_TITLE)))
            outcome.changed = True
    elif was_generating:
        context.progress.is_generating = False
        outcome.generation_completed = context.initial_load_complete
        outcome.changed = True

    outcome.agent_text_after = outcome.agent_text_before
    return outcome


# --------------------------------------------------------------------------- #
# Local edits
# --------------------------------------------------------------------------- #


def record_prompt(context: ReconciliationContext, text: str, composite: bool = False) -> Message:
    """Show a just-sent prompt locally before the upstream echoes it."""
    message = Message(role="user", text=text)
    context.messages.append(message)
    context.last_sent_user_text = text
    if composite:
        context.plain_prompt = text
    context.trim()
    return message


def _adopt(context: ReconciliationContext, raw_messages: Any) -> None:
    messages = [m for m in parse_messages(raw_messages) if _is_visible(m)]
    context.messages = fold_image_only(messages)
    for message in context.messages:
        if message.video is not None:
            _record(context, message.video.video_url)
    context.trim()


def restore_cached(context: ReconciliationContext, session_id: str, raw_messages: Any) -> None:
    """Start a live session from a locally cached transcript."""
    context.reset(session_id=session_id)
    _adopt(context, raw_messages)


def load_history(context: ReconciliationContext, chat_id: str, raw_messages: Any) -> None:
    """Replace the transcript with a stored chat and switch to historical mode."""
    context.reset(session_id=chat_id, historical_chat_id=chat_id)
    _adopt(context, raw_messages)
    context.initial_load_complete = True


def leave_history(context: ReconciliationContext) -> None:
    """Continue a stored chat as a live upstream session."""
    context.historical_chat_id = None
    context.seen_count = 0


_MERGES = {
    "initial_load": merge_initial_load,
    "get_messages": merge_messages,
    "extract_all_video_urls": merge_extracted_videos,
    "get_video_url": merge_video_url,
    "get_generation_progress": merge_progress,
}


class ReconciliationEngine:
    """Route responses to the merge for their action."""

    def __init__(self, context: Optional[ReconciliationContext] = None) -> None:
        self.context = context or ReconciliationContext()

    @staticmethod
    def handles(action: Optional[str]) -> bool:
        return action in _MERGES

    def apply(self, response: Mapping[str, Any]) -> MergeOutcome:
        merge = _MERGES.get(response.get("action"))
        if merge is None or not response.get("success", False):
            return MergeOutcome()
        return merge(self.context, response)

    def snapshot(self) -> List[Dict[str, Any]]:
        return [message.to_dict() for message in self.context.messages]
