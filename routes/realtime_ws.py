"""WebSocket endpoint carrying client actions to the upstream browser session."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket
from starlette.websockets import WebSocketDisconnect

from models.session_models import ConnectionState
from services.realtime.ws_session import ActionDispatcher

router = APIRouter()
LOGGER = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 30


def _require_dispatcher(websocket: WebSocket) -> ActionDispatcher:
	dispatcher = getattr(websocket.app.state, "action_dispatcher", None)
	if dispatcher is None:
		raise HTTPException(status_code=500, detail="Automation controller unavailable")
	return dispatcher


async def _heartbeat(websocket: WebSocket, interval: float) -> None:
	"""Ping the client until the socket goes away."""
	while True:
		await asyncio.sleep(interval)
		try:
			await websocket.send_text(json.dumps({"action": "heartbeat"}))
		except Exception as exc:  # pylint: disable=broad-exception-caught
			LOGGER.debug("Heartbeat stopped: %s", exc)
			return


@router.websocket("/ws")
async def action_socket(websocket: WebSocket, dispatcher: ActionDispatcher = Depends(_require_dispatcher)):
	"""Handle one client's action requests, strictly one at a time."""
	await websocket.accept()
	state = ConnectionState()
	token = websocket.cookies.get(dispatcher.config.auth_cookie) or websocket.query_params.get("token")
	if token and dispatcher.authenticate_token(state, token):
		LOGGER.info("Websocket connected for %s", state.user_email)

	heartbeat = asyncio.create_task(_heartbeat(websocket, HEARTBEAT_SECONDS))
	try:
		while True:
			try:
				raw = await websocket.receive_text()
			except (WebSocketDisconnect, RuntimeError):
				break
			except Exception:
				await websocket.send_text(json.dumps({"success": False, "error": "Invalid websocket frame"}))
				continue
			try:
				payload = json.loads(raw)
			except Exception:
				await websocket.send_text(json.dumps({"success": False, "error": "Payload must be JSON"}))
				continue
			await dispatcher.handle(websocket, state, payload)
	finally:
		heartbeat.cancel()
	try:
		await websocket.close()
	except Exception:
		pass
