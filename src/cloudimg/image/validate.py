"""Local asset validation: existence, MIME type and size checks.

Runs before a local file is identified or uploaded, so that files
Cloudinary would reject never cost a request.  The MIME type is sniffed
from the first bytes of the file and only falls back to the extension
when no signature matches.
"""

from __future__ import annotations

import mimetypes
from pathlib import Path

from cloudimg.config import CloudImageConfig
from cloudimg.errors import (
    CloudImageAssetNotFoundError,
    CloudImageAssetSizeError,
    CloudImageAssetTypeError,
)

_SNIFF_BYTES = 32

# Map of magic bytes to MIME types for sniffing.
_MAGIC_BYTES: list[tuple[bytes, str]] = [
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"RIFF", "image/webp"),  # RIFF....WEBP (check further)
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
    (b"<svg", "image/svg+xml"),
    (b"<?xml", "image/svg+xml"),
    (b"BM", "image/bmp"),
]


def sniff_mime(data: bytes) -> str | None:
    """Detect an image MIME type from the leading bytes of *data*."""
    # ISO-BMFF: ....ftypavif
    if data[4:8] == b"ftyp" and data[8:12] in (b"avif", b"avis"):
        return "image/avif"
    for magic, mime in _MAGIC_BYTES:
        if data[:len(magic)] == magic:
            if magic == b"RIFF" and data[8:12] != b"WEBP":
                continue
            return mime
    return None


def validate_local_asset(path: str | Path, config: CloudImageConfig) -> tuple[str, int]:
    """Validate a local file before upload.

    Parameters
    ----------
    path:
        Path of the file.
    config:
        Supplies ``allowed_mimes`` and ``max_upload_bytes``.

    Returns
    -------
    tuple[str, int]
        ``(mime_type, size_bytes)``.

    Raises
    ------
    CloudImageAssetNotFoundError
        If *path* is not an existing regular file.
    CloudImageAssetTypeError
        If the detected MIME type is not in ``config.allowed_mimes``.
    CloudImageAssetSizeError
        If the file exceeds ``config.max_upload_bytes``.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise CloudImageAssetNotFoundError(
            message=f"Asset file not found: {path}",
            context={"location": str(path)},
        )

    try:
        size = file_path.stat().st_size
        with file_path.open("rb") as fh:
            head = fh.read(_SNIFF_BYTES)
    except OSError as exc:
        raise CloudImageAssetNotFoundError(
            message=f"Asset file is not readable: {path}",
            context={"location": str(path)},
            cause=exc,
        ) from exc

    mime_type = sniff_mime(head) or mimetypes.guess_type(file_path.name)[0]
    if not mime_type:
        mime_type = "application/octet-stream"

    if mime_type not in config.allowed_mimes:
        raise CloudImageAssetTypeError(
            message=f"Asset MIME type {mime_type!r} is not allowed",
            context={
                "location": str(path),
                "detected_mime": mime_type,
                "allowed_mimes": list(config.allowed_mimes),
            },
        )

    if size > config.max_upload_bytes:
        raise CloudImageAssetSizeError(
            message=(
                f"Asset size {size} bytes exceeds "
                f"maximum {config.max_upload_bytes} bytes"
            ),
            context={
                "location": str(path),
                "size_bytes": size,
                "max_bytes": config.max_upload_bytes,
            },
        )

    return mime_type, size
