"""Upload identifiers, public ids and node ids.

The *upload identifier* is the dedup key of the cache gate.  It must be
stable across runs for the same content:

* local files -- the MD5 digest of the file content;
* remote assets -- the declared id when the host gives one, else the
  normalised URL; namespaced by the upload folder when one is configured.

The *public id* is derived from the identifier so the same content is
always stored under the same name.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from urllib.parse import unquote, urlsplit, urlunsplit

from cloudimg.models import AssetSource, AssetSourceType
from cloudimg.utils import content_digest, md5_hash, short_digest

_DEFAULT_PORTS = {"http": 80, "https": 443}
_SLUG_UNSAFE_RE = re.compile(r"[^a-z0-9_-]+")
_SLUG_MAX = 60


def normalize_url(url: str) -> str:
    """Return a canonical form of *url* for use as a dedup key.

    Lower-cases the scheme and host, drops the default port, the fragment
    and a trailing slash of the path.  Query strings are kept: they can
    select different content.

    Examples
    --------
    >>> normalize_url("HTTPS://Example.COM:443/Photos/Hero.jpg/#top")
    'https://example.com/Photos/Hero.jpg'
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if parts.port is not None and parts.port != _DEFAULT_PORTS.get(scheme):
        host = f"{host}:{parts.port}"
    if parts.username:
        credentials = parts.username + (f":{parts.password}" if parts.password else "")
        host = f"{credentials}@{host}"
    path = parts.path.rstrip("/")
    return urlunsplit((scheme, host, path, parts.query, ""))


def resolve_identifier(source: AssetSource, upload_folder: str | None = None) -> str:
    """Return the upload identifier of *source*.

    Local files without a precomputed ``content_digest`` are read to
    compute one.
    """
    if source.source_type == AssetSourceType.LOCAL_FILE:
        return source.content_digest or content_digest(source.location)

    key = source.declared_id or normalize_url(source.location)
    folder = (upload_folder or "").strip("/")
    return f"{folder}/{key}" if folder else key


def slugify(name: str) -> str:
    """Return a public-id-safe slug of *name* (may be empty)."""
    slug = _SLUG_UNSAFE_RE.sub("-", name.lower()).strip("-_")
    return slug[:_SLUG_MAX].rstrip("-_")


def _display_name(source: AssetSource) -> str:
    if source.declared_id:
        return source.declared_id
    if source.name:
        return source.name
    if source.source_type == AssetSourceType.REMOTE_URL:
        return PurePosixPath(unquote(urlsplit(source.location).path)).stem
    return PurePosixPath(source.location).stem


def public_id_for(source: AssetSource, identifier: str) -> str:
    """Return the public id *source* is uploaded under.

    ``<slug-of-name>-<12 hex chars of the identifier digest>``, or just the
    digest when the name has no usable characters.  The upload folder is
    not part of it; Cloudinary prefixes the folder itself.
    """
    digest = short_digest(identifier)
    slug = slugify(_display_name(source))
    return f"{slug}-{digest}" if slug else digest


def node_id(identifier: str) -> str:
    """Return the stable host node id of the asset with *identifier*."""
    return f"cloudinary-{md5_hash(identifier)}"
