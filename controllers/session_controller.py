"""Auth status, prompt submission and upload helpers for the REST surface."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, UploadFile

from services.auth.tokens import ANONYMOUS_USER, session_key_for, user_email, verify_token
from services.realtime.ws_session import ActionDispatcher
from services.upload_store import save_upload
from utils.media_validation import read_image_bytes

LOGGER = logging.getLogger(__name__)


def _dispatcher(request: Request) -> ActionDispatcher:
	dispatcher = getattr(request.app.state, "action_dispatcher", None)
	if dispatcher is None:
		raise HTTPException(status_code=503, detail="Automation controller unavailable")
	return dispatcher


def request_email(request: Request) -> Optional[str]:
	"""Return the email carried by the request's token cookie or bearer header."""
	config = request.app.state.config
	token = request.cookies.get(config.auth_cookie)
	header = request.headers.get("authorization") or ""
	if not token and header.lower().startswith("bearer "):
		token = header[7:].strip()
	return user_email(verify_token(token, config.auth_secret))


def request_user(request: Request) -> str:
	return request_email(request) or ANONYMOUS_USER


async def auth_status(request: Request) -> Dict[str, Any]:
	email = request_email(request)
	result: Dict[str, Any] = {"userAuthenticated": email is not None}
	if email is not None:
		result["user"] = {"email": email}
	return result


async def submit_prompt(request: Request, prompt: str) -> Dict[str, Any]:
	"""Start a new upstream chat with `prompt` and return its session path."""
	if not prompt or not prompt.strip():
		raise HTTPException(status_code=400, detail="Prompt is required")
	dispatcher = _dispatcher(request)
	email = request_email(request)
	session = await dispatcher.registry.get_or_create(session_key_for(email), email)
	async with session.lock:
		session.touch()
		try:
			result = await dispatcher.interaction_handler.submit_prompt(session, prompt.strip())
		except Exception as exc:  # pylint: disable=broad-exception-caught
			LOGGER.error("Prompt submission failed: %s", exc)
			return {"success": False, "error": str(exc)}
	return {"success": True, **result}


async def upload_files(request: Request, files: List[UploadFile]) -> Dict[str, Any]:
	"""Store uploaded images and attach them to the user's upstream composer."""
	if not files:
		raise HTTPException(status_code=400, detail="No files provided")
	dispatcher = _dispatcher(request)
	owner = request_user(request)
	payloads = []
	for upload in files:
		data = await read_image_bytes(upload)
		await save_upload(request.app.state.config.upload_dir, owner, upload.filename or "upload", data)
		payloads.append({
			"name": upload.filename or "upload",
			"mimeType": upload.content_type or "application/octet-stream",
			"buffer": data,
		})

	email = request_email(request)
	session = await dispatcher.registry.get_or_create(session_key_for(email), email)
	async with session.lock:
		session.touch()
		try:
			result = await dispatcher.interaction_handler.attach_files(session, payloads)
		except Exception as exc:  # pylint: disable=broad-exception-caught
			LOGGER.error("Upload to upstream failed: %s", exc)
			return {"success": False, "error": str(exc)}
	return {"success": True, **result}
