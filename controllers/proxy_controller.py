"""Proxy helpers that turn forwarder results into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import Request, Response
from fastapi.responses import HTMLResponse

from services.proxy.forwarder import ProxyForwarder
from services.proxy.rebrand import proxy_error_page

LOGGER = logging.getLogger(__name__)


async def proxy_request(request: Request, path: str) -> Response:
    """Serve one inbound request through the upstream browser context.

    Any failure is reported as a 500 with a minimal HTML body.
    """
    forwarder: ProxyForwarder = request.app.state.proxy_forwarder
    try:
        body = await request.body()
        result = await forwarder.forward(
            request.method,
            path,
            query=request.url.query,
            body=body,
            headers=request.headers,
        )
    except Exception as exc:  # pylint: disable=broad-exception-caught
        LOGGER.error("Proxy error for %s /%s: %s", request.method, path, exc)
        return HTMLResponse(proxy_error_page(str(exc)), status_code=500)

    headers = {"content-type": result.content_type} if result.content_type else None
    return Response(content=result.body, status_code=result.status, headers=headers)
