from typing import List

from fastapi import APIRouter, File, HTTPException, Request, UploadFile

from controllers.session_controller import upload_files

router = APIRouter(prefix="/proxy")


@router.post("/upload-files")
async def upload_files_route(request: Request, files: List[UploadFile] = File(...)):
	"""Attach uploaded images to the user's upstream prompt composer."""
	try:
		return await upload_files(request, files)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
