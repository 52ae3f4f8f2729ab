"""Dispatch websocket actions to the handlers for one browser-backed connection."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket
from pydantic import ValidationError

from models.actions import (
	ACTION_NAMES,
	AuthenticateAction,
	ExtractVideoUrlsAction,
	FindAndClickAction,
	GenerationProgressAction,
	GetMessagesAction,
	GetVideoUrlAction,
	InitialLoadAction,
	NavigateAction,
	SaveChatAction,
	SendMessageAction,
	UploadFilesAction,
	parse_action,
)
from models.session_models import BrowserSession, ConnectionPhase, ConnectionState
from services.auth.tokens import ANONYMOUS_USER, session_key_for, user_email, verify_token
from services.browser.session_registry import SessionRegistry
from services.chat_store import ChatStore
from services.realtime.ws_chat import ChatMessageHandler
from services.realtime.ws_interaction import InteractionHandler
from services.realtime.ws_transcript import TranscriptHandler
from services.realtime.ws_video import VideoHandler
from utils.config import BridgeConfig

LOGGER = logging.getLogger(__name__)

_NAVIGATING_ACTIONS = (NavigateAction, SendMessageAction, UploadFilesAction)


class ActionDispatcher:
	"""Route websocket actions for a single client connection."""

	def __init__(self, registry: SessionRegistry, chat_store: ChatStore, config: BridgeConfig) -> None:
		self.registry = registry
		self.config = config
		self.transcript_handler = TranscriptHandler(config)
		self.video_handler = VideoHandler(config)
		self.interaction_handler = InteractionHandler(config)
		self.chat_handler = ChatMessageHandler(chat_store)

	def authenticate_token(self, state: ConnectionState, token: Optional[str]) -> bool:
		"""Move the connection to Authenticated when `token` verifies."""
		claims = verify_token(token, self.config.auth_secret)
		email = user_email(claims)
		if email is None:
			return False
		state.user_email = email
		state.session_key = session_key_for(email)
		state.phase = ConnectionPhase.IDLE
		return True

	async def handle(self, websocket: WebSocket, state: ConnectionState, payload: Any) -> None:
		"""Process a single inbound websocket payload."""
		name = payload.get("action") if isinstance(payload, dict) else None
		request_id = payload.get("request_id") if isinstance(payload, dict) else None
		try:
			action = parse_action(payload)
		except ValidationError as exc:
			detail = "Unknown action" if name not in ACTION_NAMES else _validation_detail(exc)
			await self._send_error(websocket, name, request_id, detail)
			return

		if (
			self.config.ws_require_auth
			and not state.authenticated
			and not isinstance(action, AuthenticateAction)
		):
			await self._send_error(websocket, action.action, request_id, "Not authenticated")
			return

		try:
			result = await self._dispatch(state, action)
			if result is not None:
				result.setdefault("success", True)
				result["action"] = action.action
				if request_id is not None:
					result["request_id"] = request_id
				await self._send(websocket, result)
		except Exception as exc:  # pylint: disable=broad-exception-caught
			LOGGER.error("Action %s failed: %s", action.action, exc)
			await self._send_error(websocket, action.action, request_id, str(exc))
		finally:
			if state.authenticated:
				state.phase = ConnectionPhase.IDLE

	async def _dispatch(self, state: ConnectionState, action) -> Optional[Dict[str, Any]]:
		if isinstance(action, AuthenticateAction):
			ok = self.authenticate_token(state, action.token)
			reply: Dict[str, Any] = {"success": ok, "authenticated": ok}
			if ok:
				reply["email"] = state.user_email
			return reply
		if isinstance(action, SaveChatAction):
			return await self.chat_handler.save_chat(state.user_email or ANONYMOUS_USER, action)

		session = await self._session_for(state)
		async with session.lock:
			session.touch()
			if state.authenticated:
				state.phase = (
					ConnectionPhase.NAVIGATING
					if isinstance(action, _NAVIGATING_ACTIONS)
					else ConnectionPhase.AWAITING_ACTION
				)
			return await self._run_page_action(session, action)

	async def _run_page_action(self, session: BrowserSession, action) -> Optional[Dict[str, Any]]:
		if isinstance(action, NavigateAction):
			return await self.interaction_handler.navigate(session, action.url)
		if isinstance(action, InitialLoadAction):
			return await self.transcript_handler.initial_load(session)
		if isinstance(action, GetMessagesAction):
			return await self.transcript_handler.get_messages(session)
		if isinstance(action, GenerationProgressAction):
			return await self.transcript_handler.get_generation_progress(session)
		if isinstance(action, ExtractVideoUrlsAction):
			return await self.video_handler.extract_all_video_urls(session)
		if isinstance(action, GetVideoUrlAction):
			return await self.video_handler.get_video_url(session)
		if isinstance(action, FindAndClickAction):
			return await self.interaction_handler.find_and_click(session, action.selector, action.timeout)
		if isinstance(action, UploadFilesAction):
			return await self.interaction_handler.upload_files(session, action.files, action.navigate_to_home)
		if isinstance(action, SendMessageAction):
			return await self.interaction_handler.send_message(session, action.message, action.current_path)
		raise ValueError(f"Unsupported action: {action.action}")

	async def _session_for(self, state: ConnectionState) -> BrowserSession:
		key = state.session_key or session_key_for(state.user_email)
		state.session_key = key
		return await self.registry.get_or_create(key, state.user_email)

	async def _send_error(self, websocket: WebSocket, action: Optional[str], request_id: Any, detail: str) -> None:
		payload: Dict[str, Any] = {"action": action, "success": False, "error": detail}
		if request_id is not None:
			payload["request_id"] = request_id
		await self._send(websocket, payload)

	async def _send(self, websocket: WebSocket, payload: Dict[str, Any]) -> None:
		await websocket.send_text(json.dumps(payload))


def _validation_detail(exc: ValidationError) -> str:
	errors = exc.errors()
	if not errors:
		return "Invalid action payload"
	first = errors[0]
	parts = [str(part) for part in first.get("loc", ())]
	if parts and parts[0] in ACTION_NAMES:
		# drop the union tag pydantic prefixes to each location
		parts = parts[1:]
	location = ".".join(part for part in parts if part)
	return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
