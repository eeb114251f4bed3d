"""Digest helpers for upload identifiers and node ids.

MD5 is used because it is what content-addressed build pipelines already
record as a file's content digest; these hashes only need to be stable,
they are **not** used for security purposes.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

_READ_CHUNK = 1024 * 1024


def md5_hash(data: str) -> str:
    """Return the hex-encoded MD5 digest of *data* (UTF-8 encoded).

    Examples
    --------
    >>> md5_hash("hello")
    '5d41402abc4b2a76b9719d911017c592'
    """
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def content_digest(source: bytes | str | Path) -> str:
    """Return the hex MD5 digest of raw bytes or of a file's content.

    Files are read in 1 MiB chunks so large originals are never fully
    loaded just to be identified.
    """
    if isinstance(source, bytes):
        return hashlib.md5(source).hexdigest()
    digest = hashlib.md5()
    with Path(source).open("rb") as fh:
        for chunk in iter(lambda: fh.read(_READ_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def short_digest(data: str, length: int = 12) -> str:
    """Return the first *length* hex characters of :func:`md5_hash`."""
    return md5_hash(data)[:length]
