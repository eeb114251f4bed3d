"""Delivery-side computations: URLs, breakpoint plans and descriptors.

Exports
-------
build_url / width_transform
    Build a delivery URL for one transformed variant.
plan_breakpoints
    Local linear breakpoint planning.
fetch_breakpoints / async_fetch_breakpoints
    Breakpoints computed by Cloudinary.
request_service_widths / async_request_service_widths
    The raw widths Cloudinary reports for a stored asset.
build_fixed / build_fluid (and ``async_`` twins)
    Assemble fixed and fluid descriptors with their placeholder.
validate_dimension
    Reject non-positive or non-finite pixel values.
"""

from .breakpoints import (
    async_fetch_breakpoints,
    async_request_service_widths,
    fetch_breakpoints,
    plan_breakpoints,
    request_service_widths,
)
from .descriptors import (
    async_build_fixed,
    async_build_fluid,
    build_fixed,
    build_fluid,
    fluid_sizes,
    to_data_uri,
)
from .dimensions import validate_dimension
from .url import DEFAULT_DELIVERY_BASE_URL, build_url, width_transform

__all__ = [
    "DEFAULT_DELIVERY_BASE_URL",
    "async_build_fixed",
    "async_build_fluid",
    "async_fetch_breakpoints",
    "async_request_service_widths",
    "build_fixed",
    "build_fluid",
    "build_url",
    "fetch_breakpoints",
    "fluid_sizes",
    "plan_breakpoints",
    "request_service_widths",
    "to_data_uri",
    "validate_dimension",
    "width_transform",
]
