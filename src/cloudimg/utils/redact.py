"""Credential / payload redaction for safe logging.

Before an upload API request or response is written to a debug dump the
:func:`redact` function must be applied.  It enforces the following rules:

* Values under **sensitive keys** (``api_secret``, ``api_key``,
  ``signature``, anything containing ``token``/``secret``/``password``)
  are masked, showing at most the last four characters.
* Any known **secret string** is scrubbed wherever it appears.
* **Base64 data URIs** are replaced with ``<data_uri:N_bytes>``.
* **Raw bytes** (the ``file`` field of a local upload) become
  ``<binary:N_bytes>``.
"""

from __future__ import annotations

import base64
import binascii
import copy
import re
from collections.abc import Iterable
from typing import Any

_DATA_URI_RE = re.compile(
    r"data:[a-zA-Z0-9_.+-]+/[a-zA-Z0-9_.+-]+;base64,[A-Za-z0-9+/=]+"
)

# Substrings: if any appears in a key name (case-insensitive) the value is
# redacted.
_SENSITIVE_KEY_PATTERNS: frozenset[str] = frozenset({
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
    "cookie",
    "signature",
    "api_key",
    "api-key",
})


def _mask(value: str) -> str:
    if len(value) >= 8:
        return f"<redacted:...{value[-4:]}>"
    return "<redacted>"


def _scrub(value: str, secrets: tuple[str, ...]) -> str:
    for secret in secrets:
        if secret and secret in value:
            value = value.replace(secret, "<redacted>")
    return value


def _estimate_data_uri_bytes(uri: str) -> int:
    """Return the approximate decoded byte length of a data URI."""
    b64_part = uri.split(";base64,", 1)[-1]
    try:
        return len(base64.b64decode(b64_part, validate=True))
    except (binascii.Error, ValueError):
        return len(b64_part) * 3 // 4


def _redact_value(value: Any, secrets: tuple[str, ...]) -> Any:
    if isinstance(value, dict):
        return _redact_dict(value, secrets)
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, secrets) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return f"<binary:{len(value)}_bytes>"
    if isinstance(value, str):
        if _DATA_URI_RE.search(value):
            value = _DATA_URI_RE.sub(
                lambda m: f"<data_uri:{_estimate_data_uri_bytes(m.group(0))}_bytes>",
                value,
            )
        return _scrub(value, secrets)
    return value


def _redact_dict(d: dict, secrets: tuple[str, ...]) -> dict:
    result: dict = {}
    for key, value in d.items():
        key_lower = key.lower() if isinstance(key, str) else ""
        if any(pat in key_lower for pat in _SENSITIVE_KEY_PATTERNS):
            result[key] = _mask(value) if isinstance(value, str) else "<redacted>"
        else:
            result[key] = _redact_value(value, secrets)
    return result


def redact(payload: dict, secrets: Iterable[str] | None = None) -> dict:
    """Return a deep copy of *payload* with sensitive data redacted.

    Parameters
    ----------
    payload:
        The dictionary to sanitize (an upload form, response body, or
        set of headers).
    secrets:
        Exact strings (API key, API secret) to scrub from every string
        value in the tree.

    Returns
    -------
    dict
        A new dictionary; the original *payload* is never mutated.

    Examples
    --------
    >>> redact({"api_secret": "abcdefgh1234"})
    {'api_secret': '<redacted:...1234>'}
    """
    safe = copy.deepcopy(payload)
    return _redact_dict(safe, tuple(s for s in (secrets or ()) if s))
