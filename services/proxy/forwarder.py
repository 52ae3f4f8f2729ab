"""Serve proxied requests through the authenticated browser context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from services.browser.page_pool import PagePool
from services.proxy.classifier import classify_request
from services.proxy.rebrand import rebrand_document
from utils.config import BridgeConfig

LOGGER = logging.getLogger(__name__)

DOCUMENT_TIMEOUT_MS = 30_000
HTML_CONTENT_TYPE = "text/html; charset=utf-8"


@dataclass
class ProxyResult:
    status: int
    body: Union[bytes, str]
    content_type: Optional[str] = None


class ProxyForwarder:
    """Forward static and API calls directly; render documents in a pooled page."""

    def __init__(self, context: Any, pool: PagePool, config: BridgeConfig) -> None:
        self._context = context
        self._pool = pool
        self._config = config

    def target_url(self, path: str, query: str = "") -> str:
        url = self._config.upstream_url + "/" + path.lstrip("/")
        return f"{url}?{query}" if query else url

    async def forward(
        self,
        method: str,
        path: str,
        query: str = "",
        body: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> ProxyResult:
        """Classify the request and serve it through the matching channel."""
        kind = classify_request(method, "/" + path.lstrip("/"))
        url = self.target_url(path, query)
        LOGGER.debug("%s %s -> %s", method, url, kind.value)
        if kind.direct:
            return await self.forward_direct(method, url, body, headers or {})
        return await self.render_document(url)

    async def forward_direct(
        self,
        method: str,
        url: str,
        body: Optional[bytes],
        headers: Mapping[str, str],
    ) -> ProxyResult:
        """Replay the request on the context's request channel without a page."""
        upstream = self._config.upstream_url
        response = await self._context.request.fetch(
            url,
            method=method,
            data=body or None,
            headers={
                "content-type": headers.get("content-type") or "application/json",
                "origin": upstream,
                "referer": upstream + "/",
                "accept": headers.get("accept") or "*/*",
            },
        )
        payload = await response.body()
        return ProxyResult(
            status=response.status,
            body=payload,
            content_type=response.headers.get("content-type"),
        )

    async def render_document(self, url: str) -> ProxyResult:
        """Navigate a leased page to `url` and return its rebranded markup."""
        async with self._pool.lease() as page:
            response = await page.goto(url, wait_until="networkidle", timeout=DOCUMENT_TIMEOUT_MS)
            content = await page.content()
        status = response.status if response is not None else 200
        return ProxyResult(
            status=status,
            body=rebrand_document(content, self._config),
            content_type=HTML_CONTENT_TYPE,
        )
