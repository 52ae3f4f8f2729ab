from typing import Any, Dict

from fastapi import HTTPException, Request

from controllers.session_controller import request_user
from services.chat_store import ChatStore


async def list_chats(request: Request) -> Dict[str, Any]:
    """Return chat metadata for the calling user, newest first."""
    store: ChatStore = request.app.state.chat_store
    chats = await store.list_chats(request_user(request))
    return {"success": True, "chats": chats}


async def get_chat(request: Request, chat_id: str) -> Dict[str, Any]:
    """Return one chat with its full message list.

    Raises:
        HTTPException: 404 if the chat does not exist for this user.
    """
    store: ChatStore = request.app.state.chat_store
    record = await store.get_chat(request_user(request), chat_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"success": True, "chat": record.to_dict()}


async def delete_chat(request: Request, chat_id: str) -> Dict[str, Any]:
    store: ChatStore = request.app.state.chat_store
    deleted = await store.delete_chat(request_user(request), chat_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"success": True}
