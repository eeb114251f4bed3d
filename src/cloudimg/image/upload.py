"""Upload one asset and turn the response into :class:`UploadMetadata`.

Local files are sent as multipart bytes; remote assets are sent as their
URL and fetched by Cloudinary itself.  Any failure, whether a typed API
error, a network error or a malformed response, is raised as
:class:`CloudImageUploadError` carrying the identifier and the cause.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any

from cloudimg.config import CloudImageConfig
from cloudimg.errors import CloudImageAssetError, CloudImageError, CloudImageUploadError
from cloudimg.models import AssetSource, AssetSourceType, UploadMetadata
from cloudimg.observability import get_logger, log_fields, resolve_metrics

log = get_logger("cloudimg.upload")


def _upload_error(
    source: AssetSource,
    identifier: str,
    public_id: str,
    exc: Exception,
) -> CloudImageUploadError:
    reason = exc.message if isinstance(exc, CloudImageError) else f"{type(exc).__name__}: {exc}"
    return CloudImageUploadError(
        message=f"Upload of {source.location} failed: {reason}",
        context={
            "identifier": identifier,
            "public_id": public_id,
            "location": source.location,
        },
        cause=exc,
    )


def _read_local(source: AssetSource) -> bytes:
    try:
        return Path(source.location).read_bytes()
    except OSError as exc:
        raise CloudImageAssetError(
            message=f"Cannot read asset file {source.location}: {exc}",
            context={"location": source.location},
            cause=exc,
        ) from exc


def _upload_kwargs(
    source: AssetSource,
    public_id: str,
    config: CloudImageConfig,
    overwrite: bool,
    responsive_breakpoints: list[dict[str, Any]] | None,
) -> dict[str, Any]:
    return {
        "public_id": public_id,
        "folder": config.upload_folder,
        "overwrite": overwrite,
        "responsive_breakpoints": responsive_breakpoints,
        "filename": Path(source.location).name
        if source.source_type == AssetSourceType.LOCAL_FILE else None,
    }


def _finish(
    response: dict[str, Any],
    source: AssetSource,
    identifier: str,
    public_id: str,
    metrics: Any,
    started: float,
) -> UploadMetadata:
    try:
        metadata = UploadMetadata.from_response(response)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        metrics.increment("cloudimg.upload_failure_total")
        raise _upload_error(source, identifier, public_id, exc) from exc

    metrics.increment("cloudimg.upload_success_total")
    log.info(
        "Asset uploaded",
        extra=log_fields(
            op="upload",
            identifier=identifier,
            public_id=metadata.public_id,
            version=metadata.version,
            width=metadata.width,
            height=metadata.height,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        ),
    )
    return metadata


def upload_asset(
    upload_api,
    source: AssetSource,
    identifier: str,
    public_id: str,
    config: CloudImageConfig,
    overwrite: bool = False,
    responsive_breakpoints: list[dict[str, Any]] | None = None,
) -> UploadMetadata:
    """Upload *source* and return the metadata Cloudinary reports.

    Parameters
    ----------
    upload_api:
        An :class:`~cloudimg.cloudinary_api.UploadAPI` instance.
    source:
        The asset to upload.
    identifier:
        Its upload identifier (error context only).
    public_id:
        Public id to store it under, inside ``config.upload_folder``.
    config:
        Client configuration.
    overwrite:
        Replace an asset already stored under *public_id*.
    responsive_breakpoints:
        Optional automatic-breakpoint request.

    Returns
    -------
    UploadMetadata

    Raises
    ------
    CloudImageUploadError
        On any remote failure or unusable response.
    CloudImageAssetError
        If a local file cannot be read.
    """
    metrics = resolve_metrics(config.metrics)
    file: bytes | str = (
        _read_local(source)
        if source.source_type == AssetSourceType.LOCAL_FILE
        else source.location
    )
    started = time.monotonic()
    try:
        response = upload_api.upload(
            file,
            **_upload_kwargs(source, public_id, config, overwrite, responsive_breakpoints),
        )
    except CloudImageError as exc:
        metrics.increment("cloudimg.upload_failure_total")
        raise _upload_error(source, identifier, public_id, exc) from exc
    return _finish(response, source, identifier, public_id, metrics, started)


async def async_upload_asset(
    upload_api,
    source: AssetSource,
    identifier: str,
    public_id: str,
    config: CloudImageConfig,
    overwrite: bool = False,
    responsive_breakpoints: list[dict[str, Any]] | None = None,
) -> UploadMetadata:
    """Upload *source* and return its metadata (async).

    See :func:`upload_asset`.  Local files are read in the default
    executor.
    """
    metrics = resolve_metrics(config.metrics)
    if source.source_type == AssetSourceType.LOCAL_FILE:
        loop = asyncio.get_running_loop()
        file: bytes | str = await loop.run_in_executor(None, _read_local, source)
    else:
        file = source.location
    started = time.monotonic()
    try:
        response = await upload_api.upload(
            file,
            **_upload_kwargs(source, public_id, config, overwrite, responsive_breakpoints),
        )
    except CloudImageError as exc:
        metrics.increment("cloudimg.upload_failure_total")
        raise _upload_error(source, identifier, public_id, exc) from exc
    return _finish(response, source, identifier, public_id, metrics, started)
