"""Sync and async HTTP transports for the Cloudinary upload API.

Each transport handles one request end to end:

1. Sign the form parameters (``api_key``, ``timestamp``, ``signature``).
2. Send the request (multipart when raw file bytes are attached).
3. On ``2xx`` -- return the parsed JSON body (or raw bytes for delivery
   fetches).
4. On any other status -- raise the matching typed error.
5. On any request failure (timeout, connection, protocol, proxy,
   redirect loop) -- raise :class:`CloudImageNetworkError`.
6. On a ``2xx`` whose body is not a JSON object -- raise
   :class:`CloudImageServerError`.

Requests are never retried here; each call hits the network at most once
and retry decisions belong to the caller.
"""

from __future__ import annotations

import json as _json
import sys
import time
from typing import Any

import httpx

from cloudimg.config import CloudImageConfig
from cloudimg.errors import (
    CloudImageAuthError,
    CloudImageNetworkError,
    CloudImageNotFoundError,
    CloudImagePermissionError,
    CloudImageRateLimitError,
    CloudImageServerError,
    CloudImageValidationError,
)
from cloudimg.observability import get_logger, log_fields, resolve_metrics

from .signing import serialize_param, sign_params

log = get_logger("cloudimg.transport")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_retry_after(response: httpx.Response) -> float | None:
    """Extract the ``Retry-After`` header value as a float, or ``None``."""
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


def _api_message(response: httpx.Response) -> str:
    """Return Cloudinary's ``error.message`` or a slice of the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return response.text[:500]


def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    """Raise the :class:`CloudImageError` subclass matching a non-2xx status."""
    status = response.status_code
    message = _api_message(response)
    ctx: dict[str, Any] = {"status_code": status, "api_message": message, "path": path}

    if status == 401:
        raise CloudImageAuthError(
            message=f"Authentication failed on {method} {path}: {message}",
            context=ctx,
        )
    if status == 403:
        raise CloudImagePermissionError(
            message=f"Permission denied on {method} {path}: {message}",
            context=ctx,
        )
    if status == 404:
        raise CloudImageNotFoundError(
            message=f"Resource not found on {method} {path}: {message}",
            context=ctx,
        )
    if status in (420, 429):
        ctx["retry_after_seconds"] = _parse_retry_after(response)
        raise CloudImageRateLimitError(
            message=f"Rate limited on {method} {path}: {message}",
            context=ctx,
        )
    if status >= 500:
        raise CloudImageServerError(
            message=f"Server error {status} on {method} {path}: {message}",
            context=ctx,
        )
    raise CloudImageValidationError(
        message=f"Client error {status} on {method} {path}: {message}",
        context=ctx,
    )


def build_signed_form(
    config: CloudImageConfig,
    params: dict[str, Any],
    timestamp: int | None = None,
) -> dict[str, str]:
    """Return the form fields for a signed upload-API call.

    ``None`` and empty values are dropped; every remaining value is
    serialised exactly as it was signed.
    """
    fields: dict[str, Any] = {
        k: v for k, v in params.items() if v is not None and v != ""
    }
    fields["timestamp"] = int(time.time()) if timestamp is None else timestamp
    signature = sign_params(fields, config.api_secret)
    form = {k: serialize_param(v) for k, v in fields.items() if k != "file"}
    if isinstance(fields.get("file"), str):
        form["file"] = fields["file"]
    form["api_key"] = config.api_key
    form["signature"] = signature
    return form


def _network_error(method: str, url: str, exc: Exception, metrics: Any) -> CloudImageNetworkError:
    metrics.increment(
        "cloudimg.requests_total",
        tags={"method": method, "path": url, "status": "error"},
    )
    log.warning(
        "Request network error",
        extra=log_fields(op="request", method=method, path=url, error=str(exc)),
    )
    return CloudImageNetworkError(
        message=f"Network error on {method} {url}: {exc}",
        context={"url": url},
        cause=exc,
    )


def _record_response(
    metrics: Any,
    method: str,
    path: str,
    response: httpx.Response,
    elapsed_ms: float,
) -> None:
    tags = {"method": method, "path": path, "status": str(response.status_code)}
    metrics.increment("cloudimg.requests_total", tags=tags)
    metrics.timing("cloudimg.request_duration_ms", elapsed_ms, tags=tags)


def _emit_debug_dump(
    config: CloudImageConfig,
    method: str,
    url: str,
    form: dict[str, Any] | None,
    response: httpx.Response,
) -> None:
    """Write a redacted dump of the request/response to stderr if enabled."""
    if not config.debug_dump_payload:
        return
    from cloudimg.utils.redact import redact

    try:
        resp_body: Any = response.json()
    except ValueError:
        resp_body = f"<{len(response.content)}_bytes>"
    dump: dict[str, Any] = {
        "method": method,
        "url": url,
        "request_form": form,
        "response_status": response.status_code,
        "response_body": resp_body,
    }
    safe_dump = redact(dump, secrets=(config.api_key, config.api_secret))
    print(_json.dumps(safe_dump, indent=2, default=str), file=sys.stderr)


def _multipart(file: Any, filename: str | None) -> dict[str, Any] | None:
    if isinstance(file, (bytes, bytearray)):
        return {"file": (filename or "upload", bytes(file))}
    return None


def _parse_json(response: httpx.Response, method: str, path: str) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError as exc:
        raise _malformed_body(response, method, path, "not JSON", exc) from exc
    if not isinstance(body, dict):
        raise _malformed_body(response, method, path, f"a JSON {type(body).__name__}", None)
    return body


def _malformed_body(
    response: httpx.Response,
    method: str,
    path: str,
    found: str,
    exc: Exception | None,
) -> CloudImageServerError:
    return CloudImageServerError(
        message=f"Malformed response to {method} {path}: expected a JSON object, got {found}",
        context={
            "status_code": response.status_code,
            "path": path,
            "content_type": response.headers.get("content-type"),
            "body_preview": response.text[:200],
        },
        cause=exc,
    )


# ---------------------------------------------------------------------------
# Sync transport
# ---------------------------------------------------------------------------

class CloudinaryTransport:
    """Synchronous HTTP transport for the Cloudinary API and delivery CDN.

    Parameters
    ----------
    config:
        A :class:`CloudImageConfig` controlling endpoints, credentials and
        timeouts.
    client:
        Optional pre-built ``httpx.Client`` (tests inject one backed by
        ``httpx.MockTransport``).
    """

    def __init__(
        self,
        config: CloudImageConfig,
        client: httpx.Client | None = None,
    ) -> None:
        self._config = config
        self._metrics = resolve_metrics(config.metrics)
        self._base = f"{config.api_base_url.rstrip('/')}/{config.cloud_name}"
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(config.timeout_seconds),
            proxy=config.http_proxy,
            follow_redirects=True,
        )

    def post_signed(
        self,
        action: str,
        params: dict[str, Any],
        resource_type: str = "image",
        filename: str | None = None,
    ) -> dict[str, Any]:
        """POST a signed form to ``{api}/{cloud}/{resource_type}/{action}``.

        A ``file`` parameter holding bytes is sent as a multipart part;
        a string ``file`` (remote URL) is sent as a plain form field and
        fetched by Cloudinary.

        Raises
        ------
        CloudImageAuthError, CloudImagePermissionError, CloudImageNotFoundError,
        CloudImageRateLimitError, CloudImageServerError, CloudImageValidationError
            On the matching non-2xx status.
        CloudImageNetworkError
            On timeouts, connection, protocol and redirect failures.
        CloudImageServerError
            On a ``2xx`` whose body is not a JSON object.
        """
        url = f"{self._base}/{resource_type}/{action}"
        form = build_signed_form(self._config, params)
        files = _multipart(params.get("file"), filename)

        t0 = time.monotonic()
        try:
            response = self._client.post(url, data=form, files=files)
        except httpx.RequestError as exc:
            raise _network_error("POST", url, exc, self._metrics) from exc
        elapsed_ms = (time.monotonic() - t0) * 1000

        _record_response(self._metrics, "POST", action, response, elapsed_ms)
        _emit_debug_dump(self._config, "POST", url, form, response)

        if not 200 <= response.status_code < 300:
            _raise_for_status(response, "POST", action)
        return _parse_json(response, "POST", action)

    def get_bytes(self, url: str) -> tuple[bytes, str | None]:
        """GET *url* and return ``(body, content_type)``."""
        t0 = time.monotonic()
        try:
            response = self._client.get(url)
        except httpx.RequestError as exc:
            raise _network_error("GET", url, exc, self._metrics) from exc
        elapsed_ms = (time.monotonic() - t0) * 1000

        _record_response(self._metrics, "GET", "delivery", response, elapsed_ms)
        if not 200 <= response.status_code < 300:
            _raise_for_status(response, "GET", url)
        return response.content, response.headers.get("content-type")

    def close(self) -> None:
        """Close the underlying HTTP client and release resources."""
        self._client.close()

    def __enter__(self) -> CloudinaryTransport:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Async transport
# ---------------------------------------------------------------------------

class AsyncCloudinaryTransport:
    """Asynchronous HTTP transport for the Cloudinary API and delivery CDN.

    Mirrors :class:`CloudinaryTransport` on top of ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        config: CloudImageConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._metrics = resolve_metrics(config.metrics)
        self._base = f"{config.api_base_url.rstrip('/')}/{config.cloud_name}"
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            proxy=config.http_proxy,
            follow_redirects=True,
        )

    async def post_signed(
        self,
        action: str,
        params: dict[str, Any],
        resource_type: str = "image",
        filename: str | None = None,
    ) -> dict[str, Any]:
        """POST a signed form (async).

        See :meth:`CloudinaryTransport.post_signed`.
        """
        url = f"{self._base}/{resource_type}/{action}"
        form = build_signed_form(self._config, params)
        files = _multipart(params.get("file"), filename)

        t0 = time.monotonic()
        try:
            response = await self._client.post(url, data=form, files=files)
        except httpx.RequestError as exc:
            raise _network_error("POST", url, exc, self._metrics) from exc
        elapsed_ms = (time.monotonic() - t0) * 1000

        _record_response(self._metrics, "POST", action, response, elapsed_ms)
        _emit_debug_dump(self._config, "POST", url, form, response)

        if not 200 <= response.status_code < 300:
            _raise_for_status(response, "POST", action)
        return _parse_json(response, "POST", action)

    async def get_bytes(self, url: str) -> tuple[bytes, str | None]:
        """GET *url* and return ``(body, content_type)`` (async)."""
        t0 = time.monotonic()
        try:
            response = await self._client.get(url)
        except httpx.RequestError as exc:
            raise _network_error("GET", url, exc, self._metrics) from exc
        elapsed_ms = (time.monotonic() - t0) * 1000

        _record_response(self._metrics, "GET", "delivery", response, elapsed_ms)
        if not 200 <= response.status_code < 300:
            _raise_for_status(response, "GET", url)
        return response.content, response.headers.get("content-type")

    async def close(self) -> None:
        """Close the underlying async HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncCloudinaryTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
