"""Public data models for cloudimg.

This module contains every record, enum, and result type referenced by
the public API surface.  Records that describe facts (sources, upload
metadata, descriptors) are frozen so they can be shared between
concurrent tasks and used as dict keys.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class AssetSourceType(str, Enum):
    """Classification of an asset location."""

    LOCAL_FILE = "local_file"
    """The asset is a file on the local filesystem."""

    REMOTE_URL = "remote_url"
    """The asset is referenced by an ``http://`` or ``https://`` URL."""

    UNKNOWN = "unknown"
    """The location could not be classified."""


class UploadState(str, Enum):
    """Per-identifier lifecycle tracked by the upload cache gate."""

    UNKNOWN = "unknown"
    """No upload record exists for the identifier."""

    UPLOADING = "uploading"
    """An upload for the identifier is in flight."""

    UPLOADED = "uploaded"
    """A successful upload has been recorded."""


class DecisionAction(str, Enum):
    """Outcome of :meth:`UploadCacheGate.should_upload`."""

    SKIP = "skip"
    """Reuse the cached metadata; no remote call."""

    PROCEED = "proceed"
    """Perform the remote upload."""


# ---------------------------------------------------------------------------
# Asset sources
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AssetSource:
    """An asset to ingest: a local file or a remote URL.

    Attributes
    ----------
    source_type:
        Local file or remote URL.
    location:
        Absolute file path or URL.
    content_digest:
        Digest of the file content (local files).  Computed from the file
        bytes when not supplied by the host.
    declared_id:
        Caller-chosen stable identifier for a remote asset.
    name:
        Human-readable name, used as the stem of generated public ids.
    """

    source_type: AssetSourceType
    location: str
    content_digest: str | None = None
    declared_id: str | None = None
    name: str | None = None

    @classmethod
    def local(
        cls,
        path: str | Path,
        content_digest: str | None = None,
    ) -> AssetSource:
        resolved = Path(path).expanduser().resolve()
        return cls(
            source_type=AssetSourceType.LOCAL_FILE,
            location=str(resolved),
            content_digest=content_digest,
            name=resolved.stem,
        )

    @classmethod
    def remote(cls, url: str, declared_id: str | None = None) -> AssetSource:
        return cls(
            source_type=AssetSourceType.REMOTE_URL,
            location=url.strip(),
            declared_id=declared_id,
        )


# ---------------------------------------------------------------------------
# Upload results and cache records
# ---------------------------------------------------------------------------

def breakpoint_widths(payload: dict[str, Any]) -> list[int]:
    """Return every breakpoint width listed in an upload/explicit response.

    Entries that are not objects with a numeric ``width`` are ignored.
    """
    widths: list[int] = []
    for group in payload.get("responsive_breakpoints") or []:
        if not isinstance(group, dict):
            continue
        for bp in group.get("breakpoints") or []:
            width = bp.get("width") if isinstance(bp, dict) else None
            if isinstance(width, (int, float)) and not isinstance(width, bool) and math.isfinite(width):
                widths.append(int(width))
    return widths


@dataclass(frozen=True)
class UploadMetadata:
    """What Cloudinary reports about an uploaded asset.

    Attributes
    ----------
    public_id:
        Identifier under which the asset's variants are addressed.
    width, height:
        Pixel dimensions of the original.
    format:
        Stored format (``"jpg"``, ``"png"`` ...).
    secure_url:
        HTTPS URL of the original.
    version:
        Cloudinary version number, embedded as ``v<version>`` in URLs.
    breakpoints:
        Widths computed by Cloudinary when automatic breakpoints were
        requested, else ``None``.
    """

    public_id: str
    width: int
    height: int
    format: str
    secure_url: str
    version: int | None = None
    breakpoints: tuple[int, ...] | None = None

    @classmethod
    def from_response(cls, payload: dict[str, Any]) -> UploadMetadata:
        """Build metadata from an upload or explicit API response body."""
        # Present, even empty, only when breakpoints were requested.
        breakpoints: tuple[int, ...] | None = None
        if payload.get("responsive_breakpoints") is not None:
            breakpoints = tuple(breakpoint_widths(payload))
        version = payload.get("version")
        return cls(
            public_id=payload["public_id"],
            width=int(payload["width"]),
            height=int(payload["height"]),
            format=payload.get("format", ""),
            secure_url=payload.get("secure_url", ""),
            version=int(version) if version is not None else None,
            breakpoints=breakpoints,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "public_id": self.public_id,
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "secure_url": self.secure_url,
            "version": self.version,
            "breakpoints": list(self.breakpoints) if self.breakpoints is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UploadMetadata:
        breakpoints = data.get("breakpoints")
        return cls(
            public_id=data["public_id"],
            width=data["width"],
            height=data["height"],
            format=data.get("format", ""),
            secure_url=data.get("secure_url", ""),
            version=data.get("version"),
            breakpoints=tuple(breakpoints) if breakpoints is not None else None,
        )


@dataclass(frozen=True)
class UploadRecord:
    """A cached fact: *identifier* was uploaded successfully.

    Written only after the remote call returned success, and never
    partially.
    """

    identifier: str
    remote_version: int | None
    last_uploaded_at: datetime
    metadata: UploadMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "remote_version": self.remote_version,
            "last_uploaded_at": self.last_uploaded_at.isoformat(),
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UploadRecord:
        return cls(
            identifier=data["identifier"],
            remote_version=data.get("remote_version"),
            last_uploaded_at=datetime.fromisoformat(data["last_uploaded_at"]),
            metadata=UploadMetadata.from_dict(data["metadata"]),
        )


@dataclass(frozen=True)
class Decision:
    """Result of consulting the upload cache gate for one identifier."""

    action: DecisionAction
    existing: UploadRecord | None = None

    @classmethod
    def skip(cls, record: UploadRecord) -> Decision:
        return cls(action=DecisionAction.SKIP, existing=record)

    @classmethod
    def proceed(cls) -> Decision:
        return cls(action=DecisionAction.PROCEED)

    @property
    def should_upload(self) -> bool:
        return self.action == DecisionAction.PROCEED


# ---------------------------------------------------------------------------
# Transformations and descriptors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransformationSpec:
    """Directive lists applied, in this order, to every delivery URL.

    Attributes
    ----------
    defaults:
        Format/quality negotiation directives, applied first.
    transformations:
        Caller directives of the first stage.  Aspect-ratio crops belong
        here: only this stage is combined with the per-width directive.
    chained:
        Caller directives, each applied as its own chained stage.
    """

    defaults: tuple[str, ...] = ("f_auto", "q_auto")
    transformations: tuple[str, ...] = ()
    chained: tuple[str, ...] = ()

    @classmethod
    def of(
        cls,
        transformations: list[str] | tuple[str, ...] | None = None,
        chained: list[str] | tuple[str, ...] | None = None,
        defaults: list[str] | tuple[str, ...] | None = None,
    ) -> TransformationSpec:
        """Build from optional lists, keeping the default ``defaults``."""
        if defaults is None:
            defaults = cls.defaults
        return cls(
            defaults=tuple(defaults),
            transformations=tuple(transformations or ()),
            chained=tuple(chained or ()),
        )


@dataclass(frozen=True)
class SrcSetEntry:
    """One candidate of a ``srcset``: a URL and the width it was built at."""

    width: int
    url: str
    density: str | None = None

    def descriptor(self) -> str:
        """Return the ``srcset`` candidate string (``"<url> 400w"``)."""
        if self.density is not None:
            return f"{self.url} {self.density}"
        return f"{self.url} {self.width}w"


@dataclass(frozen=True)
class ImageDescriptor:
    """A ``fixed`` or ``fluid`` responsive-image descriptor.

    Attributes
    ----------
    kind:
        ``"fixed"`` or ``"fluid"``.
    aspect_ratio:
        ``height / width`` of the original asset.
    base64:
        Low-resolution placeholder as a ``data:`` URI.
    src:
        Fallback URL (the requested width for fixed, the largest width
        for fluid).
    src_set:
        Ordered candidates.
    width, height:
        Display size (fixed) or largest breakpoint size (fluid).
    sizes:
        ``sizes`` attribute value (fluid only).
    presentation_width, presentation_height:
        Maximum display size (fluid only).
    """

    kind: str
    aspect_ratio: float
    base64: str
    src: str
    src_set: tuple[SrcSetEntry, ...]
    width: int
    height: int
    sizes: str | None = None
    presentation_width: int | None = None
    presentation_height: int | None = None

    @property
    def src_set_string(self) -> str:
        return ",\n".join(entry.descriptor() for entry in self.src_set)

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase shape a progressive-image component reads."""
        out: dict[str, Any] = {
            "aspectRatio": self.aspect_ratio,
            "base64": self.base64,
            "src": self.src,
            "srcSet": self.src_set_string,
            "width": self.width,
            "height": self.height,
        }
        if self.kind == "fluid":
            out["sizes"] = self.sizes
            out["presentationWidth"] = self.presentation_width
            out["presentationHeight"] = self.presentation_height
        return out


# ---------------------------------------------------------------------------
# Output records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CloudinaryAssetNode:
    """The record handed to the host data layer for one ingested asset.

    Attributes
    ----------
    id:
        Stable node id derived from the upload identifier.
    parent_id:
        Host id of the node this asset belongs to.
    relationship:
        Name of the field linking the parent to this node.
    identifier:
        The upload identifier used for dedup.
    uploaded:
        ``True`` when this run performed the remote upload, ``False``
        when cached metadata was reused.
    """

    id: str
    parent_id: str
    relationship: str
    identifier: str
    public_id: str
    cloud_name: str
    version: int | None
    original_width: int
    original_height: int
    original_format: str
    secure_url: str
    fixed: ImageDescriptor
    fluid: ImageDescriptor
    uploaded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parent": self.parent_id,
            "relationship": self.relationship,
            "identifier": self.identifier,
            "publicId": self.public_id,
            "cloudName": self.cloud_name,
            "version": self.version,
            "originalWidth": self.original_width,
            "originalHeight": self.original_height,
            "originalFormat": self.original_format,
            "secureUrl": self.secure_url,
            "fixed": self.fixed.to_dict(),
            "fluid": self.fluid.to_dict(),
        }


@dataclass
class IngestionFailure:
    """One asset of a batch that could not be ingested.

    Attributes
    ----------
    identifier:
        Upload identifier, or ``None`` when the failure happened before it
        could be computed.
    location:
        Path or URL of the asset.
    error:
        The exception raised for this asset.
    """

    identifier: str | None
    location: str
    error: Exception


@dataclass
class IngestionReport:
    """Result of a batch ingestion.

    Attributes
    ----------
    nodes:
        Successfully ingested assets, in input order.
    failures:
        Per-asset failures; siblings are unaffected.
    cancelled:
        Locations of assets skipped because the run was cancelled before
        they reached the upload step.
    uploads_performed:
        Number of remote upload calls issued during the batch.
    """

    nodes: list[CloudinaryAssetNode] = field(default_factory=list)
    failures: list[IngestionFailure] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    uploads_performed: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled
