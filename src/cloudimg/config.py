"""Configuration for cloudimg.

:class:`CloudImageConfig` is a dataclass that captures every tuneable knob
exposed by the package.  Instances are passed to both
:class:`CloudImageClient` and :class:`AsyncCloudImageClient`, and are
validated once at construction time so that a broken setup fails before
any asset is processed.

Two module-level constants hold defaults shared with the delivery layer:

* :data:`DEFAULT_TRANSFORMATIONS` -- format/quality auto-negotiation
  directives prepended to every delivery URL.
* :data:`DEFAULT_UPLOAD_MIMES` -- MIME types accepted for local uploads.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any

from cloudimg.errors import CloudImageConfigurationError

# ---------------------------------------------------------------------------
# Default constants
# ---------------------------------------------------------------------------

DEFAULT_TRANSFORMATIONS: list[str] = ["f_auto", "q_auto"]
"""Directives applied first in every delivery URL."""

DEFAULT_UPLOAD_MIMES: list[str] = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    "image/bmp",
    "image/tiff",
    "image/avif",
]
"""MIME types accepted for local-file uploads."""

_SECRET_FIELDS = frozenset({"api_key", "api_secret"})


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------

@dataclass
class CloudImageConfig:
    """Complete configuration for a cloudimg client.

    ``cloud_name``, ``api_key`` and ``api_secret`` are required; every
    other parameter has a default.

    Parameters
    ----------
    cloud_name:
        Cloudinary cloud name.  **Required.**
    api_key:
        Cloudinary API key.  **Required.**  Passed through to request
        signing only; never logged.
    api_secret:
        Cloudinary API secret.  **Required.**  Never logged.
    upload_folder:
        Optional folder that uploaded assets are placed in.  Remote asset
        identifiers are namespaced by it.
    fluid_min_width:
        Smallest breakpoint width generated for fluid descriptors.
    fluid_max_width:
        Largest display width of fluid descriptors (capped at the original
        width).
    create_derived:
        Ask Cloudinary to eagerly create the derived images when it
        computes breakpoints.
    breakpoints_max_images:
        Maximum number of breakpoints in a fluid source set.
    use_cloudinary_breakpoints:
        Let Cloudinary compute breakpoints (``responsive_breakpoints``)
        instead of the local linear planner.
    overwrite_existing:
        Upload again even when a cached upload record exists.
    fixed_default_width:
        Display width of fixed descriptors when the caller gives none.
    base64_width:
        Width of the blurred placeholder image embedded as a data URI.
    default_transformations:
        Directives applied before any caller-supplied transformation.
    api_base_url:
        Root of the Cloudinary upload API.
    delivery_base_url:
        Root of the Cloudinary delivery (CDN) URLs.
    breakpoints_bytes_step:
        Minimum file-size difference between service-computed breakpoints.
    max_concurrent:
        Maximum number of assets processed at the same time.
    timeout_seconds:
        HTTP request timeout in seconds.
    http_proxy:
        Optional HTTP/HTTPS proxy URL.
    allowed_mimes:
        MIME types accepted for local uploads.
    max_upload_bytes:
        Maximum size of a local file upload.  Default is 10 MiB.
    debug_dump_payload:
        Write the (redacted) API request/response to *stderr*.
    """

    # ── Credentials ────────────────────────────────────────────────────
    cloud_name: str = ""

    api_key: str = ""

    api_secret: str = ""

    # ── Upload ─────────────────────────────────────────────────────────
    upload_folder: str | None = None

    overwrite_existing: bool = False

    # ── Breakpoints ────────────────────────────────────────────────────
    fluid_min_width: int = 50

    fluid_max_width: int = 1000

    breakpoints_max_images: int = 20

    use_cloudinary_breakpoints: bool = False

    create_derived: bool = False

    breakpoints_bytes_step: int = 20000

    # ── Descriptors ────────────────────────────────────────────────────
    fixed_default_width: int = 400

    base64_width: int = 30

    default_transformations: list[str] = field(
        default_factory=lambda: list(DEFAULT_TRANSFORMATIONS),
    )

    # ── Endpoints ──────────────────────────────────────────────────────
    api_base_url: str = "https://api.cloudinary.com/v1_1"

    delivery_base_url: str = "https://res.cloudinary.com"

    # ── Local assets ───────────────────────────────────────────────────
    allowed_mimes: list[str] = field(
        default_factory=lambda: list(DEFAULT_UPLOAD_MIMES),
    )

    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB

    # ── Concurrency & HTTP ─────────────────────────────────────────────
    max_concurrent: int = 4

    timeout_seconds: float = 30.0

    http_proxy: str | None = None

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    # ── Debug ──────────────────────────────────────────────────────────
    debug_dump_payload: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        from urllib.parse import urlparse

        for name in ("cloud_name", "api_key", "api_secret"):
            if not getattr(self, name):
                raise CloudImageConfigurationError(
                    message=f"{name} is required",
                    context={"field": name},
                )

        for name in ("api_base_url", "delivery_base_url"):
            parsed = urlparse(getattr(self, name))
            if parsed.scheme == "http" and parsed.hostname not in (
                "localhost",
                "127.0.0.1",
                "::1",
            ):
                raise CloudImageConfigurationError(
                    message=(
                        f"{name} uses insecure HTTP for non-local host "
                        f"'{parsed.hostname}'. Use HTTPS, or target localhost "
                        "for testing."
                    ),
                    context={"field": name, "value": getattr(self, name)},
                )

        # Numeric parameter validation -- catch invalid values at config
        # time instead of letting them surface as confusing runtime errors.
        positive_ints = (
            "fluid_min_width",
            "fluid_max_width",
            "breakpoints_max_images",
            "fixed_default_width",
            "base64_width",
            "max_concurrent",
            "max_upload_bytes",
        )
        for name in positive_ints:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise CloudImageConfigurationError(
                    message=f"{name} must be an integer >= 1, got {value!r}",
                    context={"field": name, "value": value},
                )
        if self.fluid_min_width > self.fluid_max_width:
            raise CloudImageConfigurationError(
                message=(
                    f"fluid_min_width ({self.fluid_min_width}) must not exceed "
                    f"fluid_max_width ({self.fluid_max_width})"
                ),
                context={"field": "fluid_min_width", "value": self.fluid_min_width},
            )
        if self.breakpoints_bytes_step < 0:
            raise CloudImageConfigurationError(
                message=f"breakpoints_bytes_step must be >= 0, got {self.breakpoints_bytes_step}",
                context={"field": "breakpoints_bytes_step", "value": self.breakpoints_bytes_step},
            )
        if self.timeout_seconds <= 0:
            raise CloudImageConfigurationError(
                message=f"timeout_seconds must be > 0, got {self.timeout_seconds}",
                context={"field": "timeout_seconds", "value": self.timeout_seconds},
            )

    def __repr__(self) -> str:
        """Mask the credentials to prevent accidental leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name in _SECRET_FIELDS:
                masked = f"...{val[-4:]}" if len(val) >= 8 else "****"
                parts.append(f"{f.name}='{masked}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"CloudImageConfig({', '.join(parts)})"
