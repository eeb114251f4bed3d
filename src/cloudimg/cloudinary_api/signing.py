"""Cloudinary API request signing.

Authenticated upload-API calls carry ``api_key``, ``timestamp`` and a
``signature``: the SHA-1 hex digest of the sorted, ``&``-joined
``key=value`` pairs of every signed parameter followed by the API secret.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

# Parameters sent with the request but never part of the signature.
_UNSIGNED_PARAMS: frozenset[str] = frozenset({
    "file",
    "api_key",
    "cloud_name",
    "resource_type",
    "signature",
})


def serialize_param(value: Any) -> str:
    """Render a parameter value the way it is both signed and sent."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(serialize_param(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"), sort_keys=True)
    return str(value)


def string_to_sign(params: dict[str, Any]) -> str:
    """Return the canonical ``a=1&b=2`` string for *params*."""
    pairs = [
        f"{key}={serialize_param(value)}"
        for key, value in sorted(params.items())
        if key not in _UNSIGNED_PARAMS and value is not None and value != ""
    ]
    return "&".join(pairs)


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    """Return the hex SHA-1 signature of *params* for *api_secret*.

    Examples
    --------
    >>> import hashlib
    >>> sig = sign_params({"public_id": "sample", "timestamp": 1315060510}, "abcd")
    >>> sig == hashlib.sha1(b"public_id=sample&timestamp=1315060510abcd").hexdigest()
    True
    """
    payload = string_to_sign(params) + api_secret
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()
