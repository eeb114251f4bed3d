"""cloudimg: Cloudinary responsive images with cost-aware upload caching.

Public re-exports
-----------------

* **Clients:** :class:`CloudImageClient`, :class:`AsyncCloudImageClient`
* **Configuration:** :class:`CloudImageConfig`
* **Errors:** Every :class:`CloudImageError` subclass and :class:`ErrorCode`
* **Models:** Sources, upload records, descriptors and output nodes
* **Host collaborators:** record stores and node sinks

Usage::

    from cloudimg import CloudImageClient

    client = CloudImageClient(cloud_name="demo", api_key="...", api_secret="...")
    node = client.ingest_remote_asset(
        "https://example.com/hero.jpg",
        parent_id="post-1",
        relationship="heroImage",
    )
    print(node.fixed.to_dict())
"""

from __future__ import annotations

from cloudimg.async_client import AsyncCloudImageClient

# ── Clients ────────────────────────────────────────────────────────────
from cloudimg.client import CloudImageClient

# ── Configuration ───────────────────────────────────────────────────────
from cloudimg.config import (
    DEFAULT_TRANSFORMATIONS,
    DEFAULT_UPLOAD_MIMES,
    CloudImageConfig,
)

# ── Delivery ────────────────────────────────────────────────────────────
from cloudimg.delivery import build_fixed, build_fluid, build_url, plan_breakpoints

# ── Errors ──────────────────────────────────────────────────────────────
from cloudimg.errors import (
    CloudImageAssetError,
    CloudImageAssetNotFoundError,
    CloudImageAssetSizeError,
    CloudImageAssetTypeError,
    CloudImageAuthError,
    CloudImageCancelledError,
    CloudImageConfigurationError,
    CloudImageError,
    CloudImageInvalidDimensionError,
    CloudImageNetworkError,
    CloudImageNotFoundError,
    CloudImagePermissionError,
    CloudImagePlaceholderFetchError,
    CloudImageRateLimitError,
    CloudImageServerError,
    CloudImageStoreError,
    CloudImageUploadError,
    CloudImageValidationError,
    ErrorCode,
)

# ── Host collaborators ──────────────────────────────────────────────────
from cloudimg.image import (
    AsyncUploadCacheGate,
    InMemoryNodeSink,
    InMemoryRecordStore,
    JsonFileRecordStore,
    NodeSink,
    RecordStore,
    UploadCacheGate,
)

# ── Models ──────────────────────────────────────────────────────────────
from cloudimg.models import (
    AssetSource,
    AssetSourceType,
    CloudinaryAssetNode,
    Decision,
    DecisionAction,
    ImageDescriptor,
    IngestionFailure,
    IngestionReport,
    SrcSetEntry,
    TransformationSpec,
    UploadMetadata,
    UploadRecord,
    UploadState,
)

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    # Clients
    "CloudImageClient",
    "AsyncCloudImageClient",
    # Configuration
    "CloudImageConfig",
    "DEFAULT_TRANSFORMATIONS",
    "DEFAULT_UPLOAD_MIMES",
    # Delivery
    "build_url",
    "plan_breakpoints",
    "build_fixed",
    "build_fluid",
    # Cache gate
    "UploadCacheGate",
    "AsyncUploadCacheGate",
    # Host collaborators
    "RecordStore",
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    "NodeSink",
    "InMemoryNodeSink",
    # Error base + code enum
    "CloudImageError",
    "ErrorCode",
    # Pipeline errors
    "CloudImageConfigurationError",
    "CloudImageInvalidDimensionError",
    "CloudImageUploadError",
    "CloudImagePlaceholderFetchError",
    "CloudImageCancelledError",
    "CloudImageStoreError",
    # API / transport errors
    "CloudImageValidationError",
    "CloudImageAuthError",
    "CloudImagePermissionError",
    "CloudImageNotFoundError",
    "CloudImageRateLimitError",
    "CloudImageServerError",
    "CloudImageNetworkError",
    # Asset errors
    "CloudImageAssetError",
    "CloudImageAssetNotFoundError",
    "CloudImageAssetTypeError",
    "CloudImageAssetSizeError",
    # Models: sources and records
    "AssetSource",
    "AssetSourceType",
    "UploadMetadata",
    "UploadRecord",
    "UploadState",
    "Decision",
    "DecisionAction",
    # Models: descriptors
    "TransformationSpec",
    "SrcSetEntry",
    "ImageDescriptor",
    # Models: output
    "CloudinaryAssetNode",
    "IngestionFailure",
    "IngestionReport",
]
