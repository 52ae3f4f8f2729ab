"""FastAPI routes for auth status and starting upstream chats."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.session_controller import auth_status, submit_prompt

router = APIRouter(prefix="/auth/api")


class PromptPayload(BaseModel):
	prompt: str


@router.get("/status")
async def auth_status_route(request: Request):
	try:
		return await auth_status(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/submit-prompt")
async def submit_prompt_route(request: Request, payload: PromptPayload):
	try:
		return await submit_prompt(request, payload.prompt)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
