"""Asset source detection.

Classifies a raw asset location (as declared by the host) into one of the
:class:`AssetSourceType` variants so the pipeline knows whether to read a
file or let Cloudinary fetch a URL.
"""

from __future__ import annotations

import re
from pathlib import Path
from urllib.parse import urlparse

from cloudimg.errors import CloudImageAssetError, ErrorCode
from cloudimg.models import AssetSource, AssetSourceType

# ``scheme:`` prefix of a URI other than a Windows drive letter.
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]+:")


def detect_asset_source(location: str) -> AssetSourceType:
    """Detect whether *location* is a remote URL, a local file, or unknown.

    Parameters
    ----------
    location:
        A filesystem path or a URL.

    Returns
    -------
    AssetSourceType
        ``REMOTE_URL`` for ``http(s)`` URLs with a host, ``UNKNOWN`` for
        blank strings and other URI schemes (``data:``, ``ftp:`` ...),
        ``LOCAL_FILE`` otherwise.
    """
    if not location or not location.strip():
        return AssetSourceType.UNKNOWN

    location = location.strip()
    parsed = urlparse(location)
    if parsed.scheme in ("http", "https"):
        return AssetSourceType.REMOTE_URL if parsed.netloc else AssetSourceType.UNKNOWN

    if parsed.scheme == "file":
        return AssetSourceType.LOCAL_FILE

    if _SCHEME_RE.match(location) and not Path(location).is_absolute():
        return AssetSourceType.UNKNOWN

    return AssetSourceType.LOCAL_FILE


def as_asset_source(item: AssetSource | str | Path) -> AssetSource:
    """Return *item* as an :class:`AssetSource`.

    Strings are classified with :func:`detect_asset_source`; ``file://``
    URLs become local paths.

    Raises
    ------
    CloudImageAssetError
        If the location cannot be classified.
    """
    if isinstance(item, AssetSource):
        return item
    if isinstance(item, Path):
        return AssetSource.local(item)

    kind = detect_asset_source(item)
    if kind == AssetSourceType.REMOTE_URL:
        return AssetSource.remote(item)
    if kind == AssetSourceType.LOCAL_FILE:
        location = item.strip()
        if location.startswith("file:"):
            location = urlparse(location).path
        return AssetSource.local(location)
    raise CloudImageAssetError(
        code=ErrorCode.ASSET_ERROR,
        message=f"Cannot classify asset location {item!r}",
        context={"location": item},
    )
