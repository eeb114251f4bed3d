"""Validation of pixel dimensions before any URL is built."""

from __future__ import annotations

import math
from typing import Any

from cloudimg.errors import CloudImageInvalidDimensionError


def validate_dimension(name: str, value: Any) -> int:
    """Return *value* as a positive ``int`` or raise.

    Integral floats (``400.0``) are accepted.

    Raises
    ------
    CloudImageInvalidDimensionError
        If *value* is not a number, not finite, not integral or below 1.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CloudImageInvalidDimensionError(
            message=f"{name} must be a number, got {type(value).__name__}",
            context={"field": name, "value": value},
        )
    if isinstance(value, float) and not math.isfinite(value):
        raise CloudImageInvalidDimensionError(
            message=f"{name} must be finite, got {value!r}",
            context={"field": name, "value": value},
        )
    if isinstance(value, float) and not value.is_integer():
        raise CloudImageInvalidDimensionError(
            message=f"{name} must be a whole number of pixels, got {value!r}",
            context={"field": name, "value": value},
        )
    pixels = int(value)
    if pixels < 1:
        raise CloudImageInvalidDimensionError(
            message=f"{name} must be >= 1, got {value!r}",
            context={"field": name, "value": value},
        )
    return pixels
