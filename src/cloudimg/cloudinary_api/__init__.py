"""cloudimg.cloudinary_api -- Cloudinary transport and endpoint wrappers.

This sub-package provides:

* :mod:`.signing` -- request signature computation.
* :mod:`.transport` -- HTTP transports with signing, typed errors and metrics.
* :mod:`.upload` -- upload / explicit / delivery-fetch wrappers.
"""

from __future__ import annotations

from .signing import sign_params, string_to_sign
from .transport import AsyncCloudinaryTransport, CloudinaryTransport, build_signed_form
from .upload import AsyncUploadAPI, UploadAPI, breakpoint_request

__all__ = [
    "AsyncCloudinaryTransport",
    "AsyncUploadAPI",
    "CloudinaryTransport",
    "UploadAPI",
    "breakpoint_request",
    "build_signed_form",
    "sign_params",
    "string_to_sign",
]
