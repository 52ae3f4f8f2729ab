"""Catch-all route forwarding everything else to the upstream application."""

from fastapi import APIRouter, Request

from controllers.proxy_controller import proxy_request

router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@router.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy_route(request: Request, path: str):
    return await proxy_request(request, path)
