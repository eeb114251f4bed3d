"""Full error hierarchy for cloudimg.

Every public error class inherits from CloudImageError. Each carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

Error codes are defined as a :class:`str` enum so that they serialise
naturally to JSON and can be matched with simple ``==`` comparisons.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error the package can raise."""

    CONFIGURATION_INVALID = "CONFIGURATION_INVALID"
    INVALID_DIMENSION = "INVALID_DIMENSION"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    PLACEHOLDER_FETCH_FAILED = "PLACEHOLDER_FETCH_FAILED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    CANCELLED = "CANCELLED"
    STORE_ERROR = "STORE_ERROR"
    ASSET_ERROR = "ASSET_ERROR"
    ASSET_NOT_FOUND = "ASSET_NOT_FOUND"
    ASSET_TYPE_ERROR = "ASSET_TYPE_ERROR"
    ASSET_SIZE_ERROR = "ASSET_SIZE_ERROR"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class CloudImageError(Exception):
    """Base exception for all cloudimg errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"

    def __reduce__(self) -> tuple[Any, ...]:
        return (_rebuild_error, (type(self), self.code, self.message, self.context, self.cause))


def _rebuild_error(
    cls: type[CloudImageError],
    code: str,
    message: str,
    context: dict[str, Any],
    cause: Exception | None,
) -> CloudImageError:
    err = cls.__new__(cls)
    CloudImageError.__init__(err, code=code, message=message, context=context, cause=cause)
    return err


# ---------------------------------------------------------------------------
# Core pipeline errors
# ---------------------------------------------------------------------------

class CloudImageConfigurationError(CloudImageError, ValueError):
    """The configuration is missing a required value or holds an invalid one.

    Raised at construction time, before any asset is processed.

    Context keys: ``field``, ``value``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.CONFIGURATION_INVALID,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageInvalidDimensionError(CloudImageError, ValueError):
    """A width, height or breakpoint count is non-positive or non-finite.

    Always raised before any network I/O.

    Context keys: ``field``, ``value``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.INVALID_DIMENSION,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageUploadError(CloudImageError):
    """The remote upload of one asset failed.

    Fatal for that asset only; batch ingestion keeps going.

    Context keys: ``identifier``, ``public_id``, ``location``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.UPLOAD_FAILED,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImagePlaceholderFetchError(CloudImageError):
    """The low-resolution placeholder image could not be retrieved.

    The descriptor build fails instead of returning a descriptor without
    its ``base64`` field.

    Context keys: ``url``, ``public_id``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.PLACEHOLDER_FETCH_FAILED,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageCancelledError(CloudImageError):
    """The run was cancelled before this asset reached its upload step.

    No upload was issued and no record was written for the asset.

    Context keys: ``location``, ``identifier``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.CANCELLED,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageStoreError(CloudImageError):
    """The upload record store could not be read or written.

    Raised by the cache gate around every store call.  A failed write
    leaves the store as it was before the call.

    Context keys: ``identifier``, ``operation``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.STORE_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# API / transport errors
# ---------------------------------------------------------------------------

class CloudImageValidationError(CloudImageError):
    """Cloudinary returned 400 (or another unmapped 4xx) for the request.

    Context keys: ``status_code``, ``api_message``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageAuthError(CloudImageError):
    """Cloudinary returned 401: bad API key, secret or signature."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.AUTH_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImagePermissionError(CloudImageError):
    """Cloudinary returned 403 for the requested operation."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.PERMISSION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageNotFoundError(CloudImageError):
    """Cloudinary returned 404 (unknown cloud name, public id or URL)."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageRateLimitError(CloudImageError):
    """Cloudinary returned 420 or 429: usage limits exceeded.

    Context keys: ``status_code``, ``retry_after_seconds``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.RATE_LIMITED,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageServerError(CloudImageError):
    """Cloudinary returned a 5xx response."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.SERVER_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageNetworkError(CloudImageError):
    """A transport-level failure occurred (timeout, DNS, connection reset).

    Context keys: ``url``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.NETWORK_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Local asset errors
# ---------------------------------------------------------------------------

class CloudImageAssetError(CloudImageError):
    """Base class for problems with a local asset before upload.

    Context varies by subclass.
    """

    def __init__(
        self,
        code: str = ErrorCode.ASSET_ERROR,
        message: str = "Asset error",
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageAssetNotFoundError(CloudImageAssetError):
    """The referenced local file does not exist.

    Context keys: ``location``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.ASSET_NOT_FOUND,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageAssetTypeError(CloudImageAssetError):
    """The detected MIME type is not in the configured allowlist.

    Context keys: ``location``, ``detected_mime``, ``allowed_mimes``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.ASSET_TYPE_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class CloudImageAssetSizeError(CloudImageAssetError):
    """The file exceeds the configured maximum upload size.

    Context keys: ``location``, ``size_bytes``, ``max_bytes``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.ASSET_SIZE_ERROR,
            message=message,
            context=context,
            cause=cause,
        )
