"""Breakpoint planning for fluid descriptors.

A plan is the ascending tuple of widths a fluid ``srcset`` is built for.
Two modes exist:

* **local** -- ``max_count`` widths, equally spaced between the effective
  minimum and maximum (both included);
* **service-computed** -- widths chosen by Cloudinary from the image
  content (``responsive_breakpoints``), sanitised into the same shape.

Upscaling is never requested: no width exceeds the original.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from cloudimg.cloudinary_api.upload import breakpoint_request
from cloudimg.errors import CloudImageInvalidDimensionError
from cloudimg.models import breakpoint_widths

from .dimensions import validate_dimension


def _effective_bounds(original_width: int, min_width: int, max_width: int) -> tuple[int, int]:
    effective_max = min(max_width, original_width)
    effective_min = min(min_width, effective_max)
    return effective_min, effective_max


def _validate_count(max_count: Any) -> int:
    if isinstance(max_count, bool) or not isinstance(max_count, int) or max_count < 1:
        raise CloudImageInvalidDimensionError(
            message=f"max_count must be an integer >= 1, got {max_count!r}",
            context={"field": "max_count", "value": max_count},
        )
    return max_count


def _linear_widths(effective_min: int, effective_max: int, max_count: int) -> tuple[int, ...]:
    if max_count == 1 or effective_min == effective_max:
        return (effective_max,)
    step = (effective_max - effective_min) / (max_count - 1)
    widths = [round(effective_min + i * step) for i in range(max_count - 1)]
    widths.append(effective_max)
    # Rounding can collapse neighbours on narrow ranges.
    return tuple(sorted(set(widths)))


def _service_widths(
    widths: Iterable[int] | None,
    effective_min: int,
    effective_max: int,
    max_count: int,
) -> tuple[int, ...]:
    clamped = sorted({
        min(max(int(w), effective_min), effective_max)
        for w in widths or ()
        if w and w > 0
    })
    if not clamped:
        return (effective_max,)
    if len(clamped) > max_count:
        clamped = clamped[: max_count - 1] + [clamped[-1]]
    return tuple(clamped)


def plan_breakpoints(
    original_width: int,
    min_width: int,
    max_width: int,
    max_count: int,
    service_computed: bool = False,
    service_widths: Sequence[int] | None = None,
) -> tuple[int, ...]:
    """Return the ascending breakpoint widths for a fluid descriptor.

    Parameters
    ----------
    original_width:
        Width of the stored original.
    min_width, max_width:
        Requested bounds; the maximum is capped at *original_width* and
        the minimum at the effective maximum.
    max_count:
        Upper bound on the number of widths.
    service_computed:
        Use *service_widths* (widths chosen by Cloudinary) instead of the
        local linear spacing.
    service_widths:
        Widths returned by the service; clamped into bounds, de-duplicated
        and sorted.

    Returns
    -------
    tuple[int, ...]
        Strictly ascending widths, at most *max_count* of them.

    Raises
    ------
    CloudImageInvalidDimensionError
        On a non-positive or non-finite width, or ``max_count < 1``.

    Examples
    --------
    >>> plan_breakpoints(4032, 50, 1000, 4)
    (50, 367, 683, 1000)
    >>> plan_breakpoints(30, 50, 1000, 20)
    (30,)
    """
    original_width = validate_dimension("original_width", original_width)
    min_width = validate_dimension("min_width", min_width)
    max_width = validate_dimension("max_width", max_width)
    max_count = _validate_count(max_count)

    if original_width <= min_width:
        return (original_width,)

    effective_min, effective_max = _effective_bounds(original_width, min_width, max_width)
    if service_computed:
        return _service_widths(service_widths, effective_min, effective_max, max_count)
    return _linear_widths(effective_min, effective_max, max_count)


def _explicit_request(
    original_width: int,
    min_width: int,
    max_width: int,
    max_count: int,
    bytes_step: int,
    create_derived: bool,
) -> list[dict[str, Any]]:
    effective_min, effective_max = _effective_bounds(original_width, min_width, max_width)
    return breakpoint_request(
        min_width=effective_min,
        max_width=effective_max,
        max_images=max_count,
        bytes_step=bytes_step,
        create_derived=create_derived,
    )


def request_service_widths(
    upload_api: Any,
    public_id: str,
    original_width: int,
    min_width: int,
    max_width: int,
    max_count: int,
    bytes_step: int = 20000,
    create_derived: bool = False,
) -> tuple[int, ...]:
    """Ask Cloudinary for the breakpoints of a stored asset.

    Issues one ``explicit`` call bounded by the effective width range and
    returns the widths exactly as reported, possibly empty.  Callers that
    persist them replan with :func:`plan_breakpoints` on every use.
    """
    response = upload_api.explicit_breakpoints(
        public_id,
        _explicit_request(original_width, min_width, max_width, max_count, bytes_step, create_derived),
    )
    return tuple(breakpoint_widths(response))


async def async_request_service_widths(
    upload_api: Any,
    public_id: str,
    original_width: int,
    min_width: int,
    max_width: int,
    max_count: int,
    bytes_step: int = 20000,
    create_derived: bool = False,
) -> tuple[int, ...]:
    """Ask Cloudinary for the breakpoints of a stored asset (async)."""
    response = await upload_api.explicit_breakpoints(
        public_id,
        _explicit_request(original_width, min_width, max_width, max_count, bytes_step, create_derived),
    )
    return tuple(breakpoint_widths(response))


def fetch_breakpoints(
    upload_api: Any,
    public_id: str,
    original_width: int,
    min_width: int,
    max_width: int,
    max_count: int,
    bytes_step: int = 20000,
    create_derived: bool = False,
) -> tuple[int, ...]:
    """Plan breakpoints with Cloudinary choosing the widths.

    Issues one ``explicit`` call bounded by the effective width range,
    unless the plan collapses to the original width, in which case no
    request is made.
    """
    original_width = validate_dimension("original_width", original_width)
    min_width = validate_dimension("min_width", min_width)
    max_width = validate_dimension("max_width", max_width)
    max_count = _validate_count(max_count)
    if original_width <= min_width:
        return (original_width,)

    widths = request_service_widths(
        upload_api, public_id, original_width, min_width, max_width, max_count,
        bytes_step, create_derived,
    )
    return plan_breakpoints(
        original_width, min_width, max_width, max_count,
        service_computed=True,
        service_widths=widths,
    )


async def async_fetch_breakpoints(
    upload_api: Any,
    public_id: str,
    original_width: int,
    min_width: int,
    max_width: int,
    max_count: int,
    bytes_step: int = 20000,
    create_derived: bool = False,
) -> tuple[int, ...]:
    """Plan breakpoints with Cloudinary choosing the widths (async).

    See :func:`fetch_breakpoints`.
    """
    original_width = validate_dimension("original_width", original_width)
    min_width = validate_dimension("min_width", min_width)
    max_width = validate_dimension("max_width", max_width)
    max_count = _validate_count(max_count)
    if original_width <= min_width:
        return (original_width,)

    widths = await async_request_service_widths(
        upload_api, public_id, original_width, min_width, max_width, max_count,
        bytes_step, create_derived,
    )
    return plan_breakpoints(
        original_width, min_width, max_width, max_count,
        service_computed=True,
        service_widths=widths,
    )
