"""Tests for the Cloudinary HTTP transports."""

from __future__ import annotations

import httpx
import pytest

from cloudimg.cloudinary_api import AsyncCloudinaryTransport, CloudinaryTransport
from cloudimg.errors import (
    CloudImageAuthError,
    CloudImageNetworkError,
    CloudImageNotFoundError,
    CloudImagePermissionError,
    CloudImageRateLimitError,
    CloudImageServerError,
    CloudImageValidationError,
)


def _transport(config, handler) -> CloudinaryTransport:
    return CloudinaryTransport(config, client=httpx.Client(transport=httpx.MockTransport(handler)))


class TestPostSigned:
    def test_url_and_parsed_body(self, config):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"public_id": "x"})

        with _transport(config, handler) as transport:
            body = transport.post_signed("upload", {"public_id": "x"})

        assert body == {"public_id": "x"}
        assert str(seen[0].url) == "https://api.cloudinary.com/v1_1/demo/image/upload"
        assert seen[0].method == "POST"

    def test_empty_body(self, config):
        transport = _transport(config, lambda r: httpx.Response(200))
        assert transport.post_signed("explicit", {"public_id": "x"}) == {}

    def test_bytes_file_is_multipart(self, config):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        _transport(config, handler).post_signed(
            "upload", {"file": b"\xff\xd8\xff", "public_id": "x"}, filename="a.jpg",
        )
        assert seen[0].headers["content-type"].startswith("multipart/form-data")
        assert b'filename="a.jpg"' in seen[0].content

    @pytest.mark.parametrize(
        "status,exc_type",
        [
            (400, CloudImageValidationError),
            (401, CloudImageAuthError),
            (403, CloudImagePermissionError),
            (404, CloudImageNotFoundError),
            (409, CloudImageValidationError),
            (420, CloudImageRateLimitError),
            (429, CloudImageRateLimitError),
            (500, CloudImageServerError),
            (503, CloudImageServerError),
        ],
    )
    def test_status_mapping(self, config, status, exc_type):
        def handler(request):
            return httpx.Response(status, json={"error": {"message": "nope"}})

        with pytest.raises(exc_type) as exc_info:
            _transport(config, handler).post_signed("upload", {"public_id": "x"})
        assert exc_info.value.context["status_code"] == status
        assert exc_info.value.context["api_message"] == "nope"

    def test_retry_after_recorded(self, config):
        def handler(request):
            return httpx.Response(429, headers={"retry-after": "3"}, text="slow down")

        with pytest.raises(CloudImageRateLimitError) as exc_info:
            _transport(config, handler).post_signed("upload", {})
        assert exc_info.value.context["retry_after_seconds"] == 3.0
        assert exc_info.value.context["api_message"] == "slow down"

    def test_network_error_not_retried(self, config, metrics):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        config.metrics = metrics
        with pytest.raises(CloudImageNetworkError) as exc_info:
            _transport(config, handler).post_signed("upload", {})
        assert len(calls) == 1
        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        assert metrics.count("cloudimg.requests_total", status="error") == 1

    @pytest.mark.parametrize(
        "failure",
        [
            httpx.RemoteProtocolError("peer closed connection"),
            httpx.ProxyError("proxy refused the tunnel"),
            httpx.TooManyRedirects("redirect loop"),
            httpx.UnsupportedProtocol("unknown scheme"),
        ],
        ids=["protocol", "proxy", "redirects", "scheme"],
    )
    def test_request_failures_become_network_errors(self, config, failure):
        def handler(request):
            raise failure

        with pytest.raises(CloudImageNetworkError) as exc_info:
            _transport(config, handler).post_signed("upload", {})
        assert exc_info.value.cause is failure

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>maintenance</html>", headers={"content-type": "text/html"}),
            httpx.Response(200, json=["not", "an", "object"]),
        ],
        ids=["html", "json-list"],
    )
    def test_malformed_success_body(self, config, response):
        with pytest.raises(CloudImageServerError) as exc_info:
            _transport(config, lambda r: response).post_signed("upload", {})
        assert exc_info.value.context["status_code"] == 200
        assert exc_info.value.context["path"] == "upload"
        assert "expected a JSON object" in exc_info.value.message

    def test_request_metrics(self, config, metrics):
        config.metrics = metrics
        _transport(config, lambda r: httpx.Response(200, json={})).post_signed("upload", {})
        assert metrics.count("cloudimg.requests_total", status="200", path="upload") == 1
        assert metrics.timings[0]["name"] == "cloudimg.request_duration_ms"

    def test_debug_dump_is_redacted(self, config, capsys):
        config.debug_dump_payload = True
        _transport(config, lambda r: httpx.Response(200, json={"ok": True})).post_signed(
            "upload", {"public_id": "x"},
        )
        err = capsys.readouterr().err
        assert '"response_status": 200' in err
        assert config.api_secret not in err
        assert config.api_key not in err


class TestGetBytes:
    def test_returns_body_and_type(self, config):
        def handler(request):
            return httpx.Response(200, content=b"img", headers={"content-type": "image/png"})

        assert _transport(config, handler).get_bytes("https://res.cloudinary.com/x") == (b"img", "image/png")

    def test_error_status(self, config):
        with pytest.raises(CloudImageNotFoundError):
            _transport(config, lambda r: httpx.Response(404, text="missing")).get_bytes("https://x/y")

    def test_timeout(self, config):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(CloudImageNetworkError) as exc_info:
            _transport(config, handler).get_bytes("https://x/y")
        assert exc_info.value.context["url"] == "https://x/y"


class TestAsyncTransport:
    @pytest.mark.asyncio
    async def test_post_and_get(self, config):
        async def handler(request):
            if request.method == "GET":
                return httpx.Response(200, content=b"px", headers={"content-type": "image/jpeg"})
            return httpx.Response(200, json={"public_id": "y"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with AsyncCloudinaryTransport(config, client=client) as transport:
            assert await transport.post_signed("upload", {"public_id": "y"}) == {"public_id": "y"}
            assert await transport.get_bytes("https://x/y") == (b"px", "image/jpeg")

    @pytest.mark.asyncio
    async def test_error_mapping(self, config):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(401, json={"error": {"message": "bad"}})),
        )
        transport = AsyncCloudinaryTransport(config, client=client)
        with pytest.raises(CloudImageAuthError):
            await transport.post_signed("upload", {})
        await transport.close()

    @pytest.mark.asyncio
    async def test_protocol_error_on_get(self, config):
        def handler(request):
            raise httpx.RemoteProtocolError("peer closed connection", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = AsyncCloudinaryTransport(config, client=client)
        with pytest.raises(CloudImageNetworkError) as exc_info:
            await transport.get_bytes("https://x/y")
        assert isinstance(exc_info.value.cause, httpx.RemoteProtocolError)
        await transport.close()
