"""Delivery URL construction.

A delivery URL addresses one transformed variant of a stored asset::

    https://res.cloudinary.com/<cloud>/image/upload/<stage1>/<chained...>/v<version>/<public_id>

Stage one joins, in this order, the default directives, the caller's
transformations and the per-width directive with commas.  Every chained
directive follows as a separate ``/`` stage.  Directive strings are not
validated: Cloudinary is the judge of their syntax.
"""

from __future__ import annotations

from collections.abc import Sequence

DEFAULT_DELIVERY_BASE_URL = "https://res.cloudinary.com"


def width_transform(width: int) -> str:
    """Return the directive that scales a variant to *width* pixels."""
    return f"w_{width}"


def build_url(
    public_id: str,
    cloud_name: str,
    defaults: Sequence[str] = (),
    transformations: Sequence[str] = (),
    chained: Sequence[str] = (),
    width_directive: str | None = None,
    version: int | str | None = None,
    *,
    delivery_base_url: str = DEFAULT_DELIVERY_BASE_URL,
    resource_type: str = "image",
    delivery_type: str = "upload",
) -> str:
    """Build a fully qualified delivery URL.

    Parameters
    ----------
    public_id:
        Public id of the stored asset (may contain ``/`` folders).
    cloud_name:
        Cloudinary cloud name.
    defaults:
        Directives applied first (format/quality negotiation).
    transformations:
        Caller directives of the first stage.
    chained:
        Caller directives, each emitted as its own stage after stage one.
    width_directive:
        Width directive (see :func:`width_transform`) appended to stage one.
    version:
        Asset version; emitted as ``v<version>`` when given.

    Returns
    -------
    str
        The delivery URL.  Identical inputs always give the identical
        string.
    """
    first_stage = [*defaults, *transformations]
    if width_directive:
        first_stage.append(width_directive)

    segments = [delivery_base_url.rstrip("/"), cloud_name, resource_type, delivery_type]
    if first_stage:
        segments.append(",".join(first_stage))
    segments.extend(stage for stage in chained if stage)
    if version is not None and version != "":
        segments.append(f"v{version}")
    segments.append(public_id)
    return "/".join(segments)
