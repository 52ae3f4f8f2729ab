from fastapi import APIRouter, HTTPException, Request

from controllers.chat_controller import delete_chat, get_chat, list_chats

router = APIRouter(prefix="/proxy/api/chats")


@router.get("")
async def list_chats_route(request: Request):
	"""Return saved chats for the current user."""
	try:
		return await list_chats(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{chat_id}")
async def get_chat_route(request: Request, chat_id: str):
	try:
		return await get_chat(request, chat_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{chat_id}")
async def delete_chat_route(request: Request, chat_id: str):
	try:
		return await delete_chat(request, chat_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
