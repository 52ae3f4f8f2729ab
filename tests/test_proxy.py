"""
Tests for request classification, document rebranding and the proxy route.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import FakeContext
from routes.proxy_route import router as proxy_router
from services.browser.page_pool import PagePool
from services.proxy.classifier import RequestKind, classify_request
from services.proxy.forwarder import ProxyForwarder, ProxyResult
from services.proxy.rebrand import inject_branding, proxy_error_page, rebrand_document, replace_brand_tokens


class TestClassifyRequest:
    @pytest.mark.parametrize("path", ["/static/app.JS", "/styles/main.css", "/img/logo.svg", "/fonts/a.woff2"])
    def test_static_suffixes(self, path):
        assert classify_request("GET", path) is RequestKind.STATIC

    def test_post_is_api(self):
        assert classify_request("POST", "/home") is RequestKind.API

    @pytest.mark.parametrize("path", ["/__api/v1/user", "/v2/api/videos"])
    def test_api_paths(self, path):
        assert classify_request("GET", path) is RequestKind.API

    def test_everything_else_is_rendered(self):
        kind = classify_request("GET", "/agent/123")
        assert kind is RequestKind.DOCUMENT
        assert not kind.direct

    def test_suffix_wins_over_method(self):
        assert classify_request("POST", "/bundle.js") is RequestKind.STATIC


class TestRebrand:
    def test_tokens_are_replaced_case_insensitively(self, config):
        out = replace_brand_tokens("Welcome to HEYGEN at heygen.com", config)
        assert out == "Welcome to VideoAI Pro at localhost:3000"

    def test_payload_goes_before_head_close(self):
        assert inject_branding("<head></head><body></body>", "<x/>") == "<head><x/></head><body></body>"

    def test_payload_falls_back_to_body(self):
        assert inject_branding("<body>hi</body>", "<x/>") == "<body>hi<x/></body>"

    def test_markup_without_anchors_is_unchanged(self):
        assert inject_branding("plain text", "<x/>") == "plain text"

    def test_rebrand_document_injects_assets(self, config):
        out = rebrand_document("<html><head><title>HeyGen</title></head></html>", config)
        assert "<title>VideoAI Pro</title>" in out
        assert 'id="custom-rebrand-styles"' in out
        assert "/custom-assets/custom.css" in out
        assert out.index("custom-rebrand-styles") < out.index("</head>")

    def test_error_page_escapes_message(self):
        assert proxy_error_page("<bad>") == "<h1>Proxy Error</h1><p>&lt;bad&gt;</p>"


class TestProxyForwarder:
    @pytest.mark.asyncio
    async def test_documents_render_in_a_leased_page(self, config):
        context = FakeContext()
        pool = PagePool(context, max_size=1)
        forwarder = ProxyForwarder(context, pool, config)

        result = await forwarder.forward("GET", "home", query="tab=1")

        assert result.status == 200
        assert result.content_type == "text/html; charset=utf-8"
        assert "VideoAI Pro" in result.body
        assert context.pages[0].visited == ["https://app.heygen.com/home?tab=1"]
        assert pool.leased == 0

    @pytest.mark.asyncio
    async def test_api_calls_skip_the_page(self, config):
        context = FakeContext()
        forwarder = ProxyForwarder(context, PagePool(context), config)

        result = await forwarder.forward("POST", "v1/items", body=b"{}", headers={"content-type": "application/json"})

        assert result.body == b'{"ok": true}'
        assert context.pages == []
        call = context.request.calls[0]
        assert call["method"] == "POST"
        assert call["headers"]["origin"] == "https://app.heygen.com"


class _FailingForwarder:
    async def forward(self, *args, **kwargs):
        raise RuntimeError("upstream down")


class _StaticForwarder:
    async def forward(self, method, path, **kwargs):
        return ProxyResult(status=201, body=f"{method} {path}".encode(), content_type="text/plain")


def _proxy_app(forwarder) -> FastAPI:
    app = FastAPI()
    app.state.proxy_forwarder = forwarder
    app.include_router(proxy_router)
    return app


class TestProxyRoute:
    def test_result_is_returned(self):
        client = TestClient(_proxy_app(_StaticForwarder()))
        response = client.put("/some/path")
        assert response.status_code == 201
        assert response.text == "PUT some/path"

    def test_failures_render_error_page(self):
        client = TestClient(_proxy_app(_FailingForwarder()))
        response = client.get("/home")
        assert response.status_code == 500
        assert "<h1>Proxy Error</h1>" in response.text
        assert "upstream down" in response.text
