"""Shared test fixtures for the cloudimg test suite."""

from __future__ import annotations

import asyncio
import json
import re
import threading
import time
from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest

from cloudimg.config import CloudImageConfig
from cloudimg.image import InMemoryRecordStore
from cloudimg.models import UploadRecord

# Smallest JPEG-looking body: SOI marker plus a few bytes.
PLACEHOLDER_BYTES = b"\xff\xd8\xff\xe0placeholder"

_MULTIPART_FIELD_RE = re.compile(rb'name="([^"]+)"\r\n\r\n(.*?)\r\n--', re.DOTALL)


def make_config(**overrides: Any) -> CloudImageConfig:
    """Return a CloudImageConfig with dummy credentials."""
    defaults: dict[str, Any] = dict(
        cloud_name="demo",
        api_key="123456789012345",
        api_secret="test_secret_abcd1234",
    )
    defaults.update(overrides)
    return CloudImageConfig(**defaults)


@pytest.fixture
def config() -> CloudImageConfig:
    """Default test configuration with dummy credentials."""
    return make_config()


class FakeCloudinary:
    """An in-process stand-in for the Cloudinary upload API and CDN.

    Serves ``POST .../image/upload``, ``POST .../image/explicit`` and
    ``GET`` on the delivery host, recording every request.

    Parameters
    ----------
    width, height:
        Dimensions reported for every uploaded asset.
    fail_on:
        Substrings; an upload whose ``file`` or ``public_id`` contains one
        gets a 500 response.
    broken_on:
        Substring -> fault for uploads: ``"html"`` answers 200 with an
        HTML page, ``"list"`` answers 200 with a JSON array and
        ``"protocol"`` drops the connection.
    breakpoints:
        Widths reported when automatic breakpoints are requested.
    """

    def __init__(
        self,
        width: int = 4032,
        height: int = 3024,
        fail_on: tuple[str, ...] = (),
        breakpoints: tuple[int, ...] = (),
        placeholder_status: int = 200,
        delay: float = 0.0,
    ) -> None:
        self.width = width
        self.height = height
        self.fail_on = fail_on
        self.broken_on: dict[str, str] = {}
        self.placeholder_protocol_error = False
        self.breakpoints = breakpoints
        self.placeholder_status = placeholder_status
        self.delay = delay
        self.uploads: list[dict[str, Any]] = []
        self.explicit_calls: list[dict[str, Any]] = []
        self.fetches: list[str] = []
        # Set by async tests to hold uploads in flight.
        self.upload_started: asyncio.Event | None = None
        self.release_upload: asyncio.Event | None = None
        self._lock = threading.Lock()

    # -- request parsing ------------------------------------------------

    @staticmethod
    def form(request: httpx.Request) -> dict[str, Any]:
        content = request.content
        if request.headers.get("content-type", "").startswith("multipart/form-data"):
            fields: dict[str, Any] = {
                name.decode(): value.decode()
                for name, value in _MULTIPART_FIELD_RE.findall(content)
            }
            fields["has_file_part"] = b'name="file"; filename=' in content
            return fields
        return dict(parse_qsl(content.decode()))

    # -- routes -----------------------------------------------------------

    def _upload(self, request: httpx.Request) -> httpx.Response:
        form = self.form(request)
        with self._lock:
            self.uploads.append(form)
            count = len(self.uploads)
        target = f"{form.get('file', '')} {form.get('public_id', '')}"
        if any(marker in target for marker in self.fail_on):
            return httpx.Response(500, json={"error": {"message": "upload exploded"}})
        for marker, fault in self.broken_on.items():
            if marker in target:
                return self._fault(fault, request)

        public_id = form["public_id"]
        if form.get("folder"):
            public_id = f"{form['folder']}/{public_id}"
        body: dict[str, Any] = {
            "public_id": public_id,
            "version": 1700000000 + count,
            "width": self.width,
            "height": self.height,
            "format": "jpg",
            "secure_url": f"https://res.cloudinary.com/demo/image/upload/{public_id}.jpg",
        }
        if "responsive_breakpoints" in form:
            body["responsive_breakpoints"] = [
                {"breakpoints": [{"width": w} for w in self.breakpoints]},
            ]
        return httpx.Response(200, json=body)

    @staticmethod
    def _fault(fault: str, request: httpx.Request) -> httpx.Response:
        if fault == "html":
            return httpx.Response(
                200, text="<html>Service maintenance</html>", headers={"content-type": "text/html"},
            )
        if fault == "list":
            return httpx.Response(200, json=[{"public_id": "nope"}])
        raise httpx.RemoteProtocolError("peer closed connection", request=request)

    def _explicit(self, request: httpx.Request) -> httpx.Response:
        form = self.form(request)
        with self._lock:
            self.explicit_calls.append(form)
        return httpx.Response(200, json={
            "public_id": form["public_id"],
            "responsive_breakpoints": [
                {"breakpoints": [{"width": w} for w in self.breakpoints]},
            ],
        })

    def _delivery(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.fetches.append(str(request.url))
        if self.placeholder_protocol_error:
            raise httpx.RemoteProtocolError("peer closed connection", request=request)
        if self.placeholder_status != 200:
            return httpx.Response(self.placeholder_status, text="gone")
        return httpx.Response(
            200, content=PLACEHOLDER_BYTES, headers={"content-type": "image/jpeg"},
        )

    def route(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return self._delivery(request)
        if request.url.path.endswith("/image/upload"):
            return self._upload(request)
        if request.url.path.endswith("/image/explicit"):
            return self._explicit(request)
        return httpx.Response(404, json={"error": {"message": "no route"}})

    # -- handlers -----------------------------------------------------------

    def sync_handler(self, request: httpx.Request) -> httpx.Response:
        if self.delay and request.method == "POST":
            time.sleep(self.delay)
        return self.route(request)

    async def async_handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path.endswith("/image/upload"):
            if self.upload_started is not None:
                self.upload_started.set()
            if self.release_upload is not None:
                await self.release_upload.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
        return self.route(request)

    def sync_client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.sync_handler))

    def async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.async_handler))

    @property
    def upload_count(self) -> int:
        with self._lock:
            return len(self.uploads)

    def last_upload_json(self, key: str) -> Any:
        return json.loads(self.uploads[-1][key])


class RecordingMetricsHook:
    """A metrics backend that records all calls for assertion."""

    def __init__(self) -> None:
        self.increments: list[dict[str, Any]] = []
        self.timings: list[dict[str, Any]] = []
        self.gauges: list[dict[str, Any]] = []

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        self.increments.append({"name": name, "value": value, "tags": tags or {}})

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        self.timings.append({"name": name, "ms": ms, "tags": tags or {}})

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        self.gauges.append({"name": name, "value": value, "tags": tags or {}})

    def count(self, name: str, **tags: str) -> int:
        """Sum of increments of *name* whose tags include *tags*."""
        return sum(
            call["value"]
            for call in self.increments
            if call["name"] == name and tags.items() <= call["tags"].items()
        )


class FlakyStore(InMemoryRecordStore):
    """An in-memory store whose next writes fail like a full disk."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.put_if_absent_failures = failures
        self.put_failures = 0

    def put_if_absent(self, record: UploadRecord) -> bool:
        if self.put_if_absent_failures:
            self.put_if_absent_failures -= 1
            raise OSError("No space left on device")
        return super().put_if_absent(record)

    def put(self, record: UploadRecord) -> None:
        if self.put_failures:
            self.put_failures -= 1
            raise OSError("No space left on device")
        super().put(record)


@pytest.fixture
def flaky_store() -> FlakyStore:
    """A store whose first ``put_if_absent`` fails."""
    return FlakyStore()


@pytest.fixture
def metrics() -> RecordingMetricsHook:
    return RecordingMetricsHook()


@pytest.fixture
def cloudinary() -> FakeCloudinary:
    """A fresh fake Cloudinary service per test."""
    return FakeCloudinary()


@pytest.fixture
def jpeg_file(tmp_path):
    """A small file with a JPEG signature."""
    path = tmp_path / "Hero Shot.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0" + b"\x00" * 64)
    return path
