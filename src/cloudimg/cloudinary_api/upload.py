"""Upload API wrappers for Cloudinary.

Provides :class:`UploadAPI` (sync) and :class:`AsyncUploadAPI` (async)
wrappers for the three remote operations the pipeline needs:

1. **Upload** -- store an asset (raw bytes or a remote URL Cloudinary
   fetches itself), optionally asking for automatic breakpoints.
2. **Explicit breakpoints** -- compute responsive breakpoints for an
   asset that is already stored, without uploading again.
3. **Fetch bytes** -- download a delivery URL (the placeholder image).
"""

from __future__ import annotations

import json
from typing import Any

from .transport import AsyncCloudinaryTransport, CloudinaryTransport


def breakpoint_request(
    min_width: int,
    max_width: int,
    max_images: int,
    bytes_step: int = 20000,
    create_derived: bool = False,
) -> list[dict[str, Any]]:
    """Build the ``responsive_breakpoints`` request parameter."""
    return [{
        "create_derived": create_derived,
        "bytes_step": bytes_step,
        "min_width": min_width,
        "max_width": max_width,
        "max_images": max_images,
    }]


def _upload_params(
    file: bytes | str,
    public_id: str,
    folder: str | None,
    overwrite: bool,
    responsive_breakpoints: list[dict[str, Any]] | None,
) -> dict[str, Any]:
    params: dict[str, Any] = {
        "file": file,
        "public_id": public_id,
        "folder": folder,
        "overwrite": overwrite,
    }
    if responsive_breakpoints is not None:
        params["responsive_breakpoints"] = _json_param(responsive_breakpoints)
    return params


def _explicit_params(
    public_id: str,
    responsive_breakpoints: list[dict[str, Any]],
) -> dict[str, Any]:
    return {
        "public_id": public_id,
        "type": "upload",
        "responsive_breakpoints": _json_param(responsive_breakpoints),
    }


def _json_param(value: list[dict[str, Any]]) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


class UploadAPI:
    """Synchronous wrapper for the Cloudinary upload API.

    Parameters
    ----------
    transport:
        A configured :class:`CloudinaryTransport` instance.
    """

    def __init__(self, transport: CloudinaryTransport) -> None:
        self._transport = transport

    def upload(
        self,
        file: bytes | str,
        public_id: str,
        folder: str | None = None,
        overwrite: bool = False,
        responsive_breakpoints: list[dict[str, Any]] | None = None,
        filename: str | None = None,
    ) -> dict[str, Any]:
        """Upload an asset.

        Parameters
        ----------
        file:
            Raw file bytes, or an ``http(s)`` URL for Cloudinary to fetch.
        public_id:
            Public id to store the asset under (within *folder*).
        folder:
            Optional destination folder.
        overwrite:
            Replace an existing asset with the same public id.
        responsive_breakpoints:
            Optional request built with :func:`breakpoint_request`.
        filename:
            Name of the multipart part when *file* is bytes.

        Returns
        -------
        dict
            The upload response, including ``public_id``, ``version``,
            ``width``, ``height``, ``format`` and ``secure_url``.
        """
        params = _upload_params(file, public_id, folder, overwrite, responsive_breakpoints)
        return self._transport.post_signed("upload", params, filename=filename)

    def explicit_breakpoints(
        self,
        public_id: str,
        responsive_breakpoints: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Ask Cloudinary to compute breakpoints for a stored asset.

        Returns
        -------
        dict
            The explicit response; breakpoints are under
            ``responsive_breakpoints[0].breakpoints``.
        """
        params = _explicit_params(public_id, responsive_breakpoints)
        return self._transport.post_signed("explicit", params)

    def fetch_bytes(self, url: str) -> tuple[bytes, str | None]:
        """Download a delivery URL; returns ``(body, content_type)``."""
        return self._transport.get_bytes(url)


class AsyncUploadAPI:
    """Asynchronous wrapper for the Cloudinary upload API.

    Mirrors :class:`UploadAPI` but all methods are coroutines.
    """

    def __init__(self, transport: AsyncCloudinaryTransport) -> None:
        self._transport = transport

    async def upload(
        self,
        file: bytes | str,
        public_id: str,
        folder: str | None = None,
        overwrite: bool = False,
        responsive_breakpoints: list[dict[str, Any]] | None = None,
        filename: str | None = None,
    ) -> dict[str, Any]:
        """Upload an asset (async).

        See :meth:`UploadAPI.upload` for parameter documentation.
        """
        params = _upload_params(file, public_id, folder, overwrite, responsive_breakpoints)
        return await self._transport.post_signed("upload", params, filename=filename)

    async def explicit_breakpoints(
        self,
        public_id: str,
        responsive_breakpoints: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Ask Cloudinary to compute breakpoints for a stored asset (async)."""
        params = _explicit_params(public_id, responsive_breakpoints)
        return await self._transport.post_signed("explicit", params)

    async def fetch_bytes(self, url: str) -> tuple[bytes, str | None]:
        """Download a delivery URL (async)."""
        return await self._transport.get_bytes(url)
