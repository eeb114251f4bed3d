"""Fixed and fluid responsive-image descriptors.

A descriptor bundles everything a progressive-image component needs to
render one asset: the aspect ratio of the original, a tiny blurred
placeholder embedded as a ``data:`` URI, a fallback ``src`` and the
``srcset`` candidates.

Only the placeholder needs network I/O.  It is fetched through a caller
supplied *fetch* callable (``UploadAPI.fetch_bytes`` or its async twin)
returning ``(body, content_type)``.  A failed fetch fails the whole build
with :class:`CloudImagePlaceholderFetchError`; a descriptor is never
returned without its placeholder.

All dimension checks happen before the first request is made.
"""

from __future__ import annotations

import base64
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from cloudimg.errors import CloudImageError, CloudImagePlaceholderFetchError
from cloudimg.models import ImageDescriptor, SrcSetEntry, TransformationSpec, UploadMetadata
from cloudimg.observability import resolve_metrics

from .breakpoints import plan_breakpoints
from .dimensions import validate_dimension
from .url import DEFAULT_DELIVERY_BASE_URL, build_url, width_transform

Fetch = Callable[[str], tuple[bytes, str | None]]
AsyncFetch = Callable[[str], Awaitable[tuple[bytes, str | None]]]

DEFAULT_FIXED_WIDTH = 400
DEFAULT_BASE64_WIDTH = 30
_DEFAULT_PLACEHOLDER_TYPE = "image/jpeg"


def fluid_sizes(max_width: int) -> str:
    """Return the ``sizes`` hint of a fluid image capped at *max_width*."""
    return f"(max-width: {max_width}px) 100vw, {max_width}px"


def to_data_uri(body: bytes, content_type: str | None) -> str:
    """Encode *body* as a base64 ``data:`` URI.

    Parameters on the content type (``; charset=...``) are dropped and a
    missing type defaults to ``image/jpeg``.

    Examples
    --------
    >>> to_data_uri(b"abc", "image/png; charset=binary")
    'data:image/png;base64,YWJj'
    """
    mime = (content_type or "").split(";", 1)[0].strip() or _DEFAULT_PLACEHOLDER_TYPE
    return f"data:{mime};base64,{base64.b64encode(body).decode('ascii')}"


# ---------------------------------------------------------------------------
# Planning (pure)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _Plan:
    """Everything of a descriptor except its placeholder."""

    kind: str
    public_id: str
    aspect_ratio: float
    src: str
    src_set: tuple[SrcSetEntry, ...]
    width: int
    height: int
    placeholder_url: str
    sizes: str | None = None
    presentation_width: int | None = None
    presentation_height: int | None = None

    def finish(self, placeholder: str) -> ImageDescriptor:
        return ImageDescriptor(
            kind=self.kind,
            aspect_ratio=self.aspect_ratio,
            base64=placeholder,
            src=self.src,
            src_set=self.src_set,
            width=self.width,
            height=self.height,
            sizes=self.sizes,
            presentation_width=self.presentation_width,
            presentation_height=self.presentation_height,
        )


def _aspect_ratio(meta: UploadMetadata) -> float:
    width = validate_dimension("original_width", meta.width)
    height = validate_dimension("original_height", meta.height)
    return height / width


def _url_builder(
    meta: UploadMetadata,
    spec: TransformationSpec,
    cloud_name: str,
    delivery_base_url: str,
) -> Callable[[int], str]:
    def url_at(width: int) -> str:
        return build_url(
            meta.public_id,
            cloud_name,
            defaults=spec.defaults,
            transformations=spec.transformations,
            chained=spec.chained,
            width_directive=width_transform(width),
            version=meta.version,
            delivery_base_url=delivery_base_url,
        )

    return url_at


def _plan_fixed(
    meta: UploadMetadata,
    spec: TransformationSpec,
    width: int | None = None,
    base64_width: int = DEFAULT_BASE64_WIDTH,
    *,
    cloud_name: str,
    delivery_base_url: str = DEFAULT_DELIVERY_BASE_URL,
    default_width: int = DEFAULT_FIXED_WIDTH,
) -> _Plan:
    aspect_ratio = _aspect_ratio(meta)
    requested = validate_dimension("width", default_width if width is None else width)
    base64_width = validate_dimension("base64_width", base64_width)

    display = min(requested, meta.width)
    retina = min(2 * display, meta.width)
    url_at = _url_builder(meta, spec, cloud_name, delivery_base_url)
    src = url_at(display)
    return _Plan(
        kind="fixed",
        public_id=meta.public_id,
        aspect_ratio=aspect_ratio,
        src=src,
        src_set=(
            SrcSetEntry(width=display, url=src, density="1x"),
            SrcSetEntry(width=retina, url=url_at(retina), density="2x"),
        ),
        width=display,
        height=round(display * aspect_ratio),
        placeholder_url=url_at(base64_width),
    )


def _plan_fluid(
    meta: UploadMetadata,
    spec: TransformationSpec,
    max_width: int | None = None,
    breakpoints: Sequence[int] | None = None,
    base64_width: int = DEFAULT_BASE64_WIDTH,
    *,
    cloud_name: str,
    delivery_base_url: str = DEFAULT_DELIVERY_BASE_URL,
    min_width: int = 50,
    max_images: int = 20,
) -> _Plan:
    aspect_ratio = _aspect_ratio(meta)
    requested = meta.width if max_width is None else validate_dimension("max_width", max_width)
    base64_width = validate_dimension("base64_width", base64_width)
    effective_max = min(requested, meta.width)

    if breakpoints is None:
        widths: Sequence[int] = plan_breakpoints(meta.width, min_width, effective_max, max_images)
    else:
        widths = sorted({validate_dimension("breakpoint", w) for w in breakpoints})
        if not widths:
            widths = (effective_max,)

    url_at = _url_builder(meta, spec, cloud_name, delivery_base_url)
    height = round(effective_max * aspect_ratio)
    return _Plan(
        kind="fluid",
        public_id=meta.public_id,
        aspect_ratio=aspect_ratio,
        src=url_at(effective_max),
        src_set=tuple(SrcSetEntry(width=w, url=url_at(w)) for w in widths),
        width=effective_max,
        height=height,
        placeholder_url=url_at(base64_width),
        sizes=fluid_sizes(effective_max),
        presentation_width=effective_max,
        presentation_height=height,
    )


# ---------------------------------------------------------------------------
# Placeholder fetch
# ---------------------------------------------------------------------------

def _placeholder_error(plan: _Plan, exc: Exception | None, reason: str) -> CloudImagePlaceholderFetchError:
    return CloudImagePlaceholderFetchError(
        message=f"Could not fetch placeholder for {plan.public_id!r}: {reason}",
        context={"url": plan.placeholder_url, "public_id": plan.public_id},
        cause=exc,
    )


def _encode_placeholder(plan: _Plan, body: bytes, content_type: str | None, metrics: Any) -> str:
    if not body:
        metrics.increment("cloudimg.placeholder_fetch_total", tags={"status": "error"})
        raise _placeholder_error(plan, None, "empty response body")
    metrics.increment("cloudimg.placeholder_fetch_total", tags={"status": "ok"})
    return to_data_uri(body, content_type)


def _fetch_placeholder(plan: _Plan, fetch: Fetch, metrics: Any) -> str:
    try:
        body, content_type = fetch(plan.placeholder_url)
    except CloudImageError as exc:
        metrics.increment("cloudimg.placeholder_fetch_total", tags={"status": "error"})
        raise _placeholder_error(plan, exc, exc.message) from exc
    return _encode_placeholder(plan, body, content_type, metrics)


async def _async_fetch_placeholder(plan: _Plan, fetch: AsyncFetch, metrics: Any) -> str:
    try:
        body, content_type = await fetch(plan.placeholder_url)
    except CloudImageError as exc:
        metrics.increment("cloudimg.placeholder_fetch_total", tags={"status": "error"})
        raise _placeholder_error(plan, exc, exc.message) from exc
    return _encode_placeholder(plan, body, content_type, metrics)


# ---------------------------------------------------------------------------
# Public builders
# ---------------------------------------------------------------------------

def build_fixed(
    meta: UploadMetadata,
    spec: TransformationSpec,
    fetch: Fetch,
    width: int | None = None,
    base64_width: int = DEFAULT_BASE64_WIDTH,
    *,
    cloud_name: str,
    delivery_base_url: str = DEFAULT_DELIVERY_BASE_URL,
    default_width: int = DEFAULT_FIXED_WIDTH,
    metrics: Any | None = None,
) -> ImageDescriptor:
    """Build a fixed-width descriptor.

    Parameters
    ----------
    meta:
        Metadata of the stored original.
    spec:
        Transformations applied to every URL of the descriptor.
    fetch:
        Callable downloading a delivery URL, returning
        ``(body, content_type)``.
    width:
        Display width; defaults to *default_width*.  Capped at the
        original width.
    base64_width:
        Width of the placeholder image.
    cloud_name, delivery_base_url:
        Where delivery URLs point.

    Returns
    -------
    ImageDescriptor
        ``src_set`` holds a ``1x`` entry at the display width and a ``2x``
        entry at twice that width, capped at the original width.

    Raises
    ------
    CloudImageInvalidDimensionError
        Before any request, on a bad width or original dimension.
    CloudImagePlaceholderFetchError
        When the placeholder cannot be fetched.
    """
    plan = _plan_fixed(
        meta, spec, width, base64_width,
        cloud_name=cloud_name,
        delivery_base_url=delivery_base_url,
        default_width=default_width,
    )
    return plan.finish(_fetch_placeholder(plan, fetch, resolve_metrics(metrics)))


def build_fluid(
    meta: UploadMetadata,
    spec: TransformationSpec,
    fetch: Fetch,
    max_width: int | None = None,
    breakpoints: Sequence[int] | None = None,
    base64_width: int = DEFAULT_BASE64_WIDTH,
    *,
    cloud_name: str,
    delivery_base_url: str = DEFAULT_DELIVERY_BASE_URL,
    min_width: int = 50,
    max_images: int = 20,
    metrics: Any | None = None,
) -> ImageDescriptor:
    """Build a fluid descriptor.

    Parameters
    ----------
    meta:
        Metadata of the stored original.
    spec:
        Transformations applied to every URL of the descriptor.
    fetch:
        Callable downloading a delivery URL.
    max_width:
        Largest display width; defaults to, and is capped at, the original
        width.
    breakpoints:
        Widths of the ``srcset`` candidates.  When omitted they are
        planned locally between *min_width* and the effective maximum,
        at most *max_images* of them.
    base64_width:
        Width of the placeholder image.

    Returns
    -------
    ImageDescriptor
        ``src`` points at the effective maximum width and ``sizes`` is
        ``"(max-width: Mpx) 100vw, Mpx"``.

    Raises
    ------
    CloudImageInvalidDimensionError
        Before any request, on a bad width or original dimension.
    CloudImagePlaceholderFetchError
        When the placeholder cannot be fetched.
    """
    plan = _plan_fluid(
        meta, spec, max_width, breakpoints, base64_width,
        cloud_name=cloud_name,
        delivery_base_url=delivery_base_url,
        min_width=min_width,
        max_images=max_images,
    )
    return plan.finish(_fetch_placeholder(plan, fetch, resolve_metrics(metrics)))


async def async_build_fixed(
    meta: UploadMetadata,
    spec: TransformationSpec,
    fetch: AsyncFetch,
    width: int | None = None,
    base64_width: int = DEFAULT_BASE64_WIDTH,
    *,
    cloud_name: str,
    delivery_base_url: str = DEFAULT_DELIVERY_BASE_URL,
    default_width: int = DEFAULT_FIXED_WIDTH,
    metrics: Any | None = None,
) -> ImageDescriptor:
    """Build a fixed-width descriptor (async).

    See :func:`build_fixed`; *fetch* is awaited.
    """
    plan = _plan_fixed(
        meta, spec, width, base64_width,
        cloud_name=cloud_name,
        delivery_base_url=delivery_base_url,
        default_width=default_width,
    )
    return plan.finish(await _async_fetch_placeholder(plan, fetch, resolve_metrics(metrics)))


async def async_build_fluid(
    meta: UploadMetadata,
    spec: TransformationSpec,
    fetch: AsyncFetch,
    max_width: int | None = None,
    breakpoints: Sequence[int] | None = None,
    base64_width: int = DEFAULT_BASE64_WIDTH,
    *,
    cloud_name: str,
    delivery_base_url: str = DEFAULT_DELIVERY_BASE_URL,
    min_width: int = 50,
    max_images: int = 20,
    metrics: Any | None = None,
) -> ImageDescriptor:
    """Build a fluid descriptor (async).

    See :func:`build_fluid`; *fetch* is awaited.
    """
    plan = _plan_fluid(
        meta, spec, max_width, breakpoints, base64_width,
        cloud_name=cloud_name,
        delivery_base_url=delivery_base_url,
        min_width=min_width,
        max_images=max_images,
    )
    return plan.finish(await _async_fetch_placeholder(plan, fetch, resolve_metrics(metrics)))
