"""Non-I/O steps shared by :class:`CloudImageClient` and
:class:`AsyncCloudImageClient`.

Everything here is synchronous and cheap except :func:`prepare_asset`,
which stats and (for local files without a known digest) hashes the file;
the async client runs it in an executor.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Union

from cloudimg.cloudinary_api import breakpoint_request
from cloudimg.config import CloudImageConfig
from cloudimg.delivery import plan_breakpoints, validate_dimension
from cloudimg.errors import CloudImageAssetError, CloudImageAssetNotFoundError, ErrorCode
from cloudimg.image import public_id_for, resolve_identifier, validate_local_asset
from cloudimg.models import (
    AssetSource,
    AssetSourceType,
    CloudinaryAssetNode,
    IngestionFailure,
    IngestionReport,
    TransformationSpec,
    UploadMetadata,
)


@dataclass(frozen=True)
class PreparedAsset:
    """An asset whose identifier and public id are known."""

    source: AssetSource
    identifier: str
    public_id: str


@dataclass(frozen=True)
class Cancelled:
    """Outcome of an asset skipped because the run was cancelled."""

    location: str


Outcome = Union[CloudinaryAssetNode, IngestionFailure, Cancelled]


def prepare_asset(source: AssetSource, config: CloudImageConfig) -> PreparedAsset:
    """Validate *source* and derive its identifier and public id.

    Raises
    ------
    CloudImageAssetError
        For unclassifiable sources and local files that fail validation.
    """
    if source.source_type == AssetSourceType.LOCAL_FILE:
        validate_local_asset(source.location, config)
    elif source.source_type != AssetSourceType.REMOTE_URL:
        raise CloudImageAssetError(
            code=ErrorCode.ASSET_ERROR,
            message=f"Unsupported asset source {source.location!r}",
            context={"location": source.location},
        )

    try:
        identifier = resolve_identifier(source, config.upload_folder)
    except OSError as exc:
        raise CloudImageAssetNotFoundError(
            message=f"Cannot read asset file {source.location}: {exc}",
            context={"location": source.location},
            cause=exc,
        ) from exc
    return PreparedAsset(source, identifier, public_id_for(source, identifier))


def transformation_spec(
    config: CloudImageConfig,
    transformations: Sequence[str] | None = None,
    chained: Sequence[str] | None = None,
    defaults: Sequence[str] | None = None,
) -> TransformationSpec:
    """Build a TransformationSpec whose defaults fall back to ``config.default_transformations``."""
    return TransformationSpec.of(
        transformations=list(transformations or ()),
        chained=list(chained or ()),
        defaults=config.default_transformations if defaults is None else list(defaults),
    )


def fluid_max_width(config: CloudImageConfig, requested: Any | None) -> int:
    if requested is None:
        return config.fluid_max_width
    return validate_dimension("fluid_max_width", requested)


def upload_breakpoint_request(
    config: CloudImageConfig,
    max_width: int,
) -> list[dict[str, Any]] | None:
    """Return the breakpoint request sent with an upload, if any."""
    if not config.use_cloudinary_breakpoints:
        return None
    return breakpoint_request(
        min_width=min(config.fluid_min_width, max_width),
        max_width=max_width,
        max_images=config.breakpoints_max_images,
        bytes_step=config.breakpoints_bytes_step,
        create_derived=config.create_derived,
    )


def needs_explicit_breakpoints(config: CloudImageConfig, metadata: UploadMetadata) -> bool:
    """Whether service breakpoints must be requested for *metadata*.

    An original no wider than ``config.fluid_min_width`` plans to its own
    width and never needs them.
    """
    return (
        config.use_cloudinary_breakpoints
        and metadata.breakpoints is None
        and metadata.width > config.fluid_min_width
    )


def known_breakpoints(
    config: CloudImageConfig,
    metadata: UploadMetadata,
    max_width: int,
) -> tuple[int, ...] | None:
    """Return the fluid plan implied by *metadata*.

    ``None`` means the descriptor assembler plans the widths locally.
    """
    if not config.use_cloudinary_breakpoints or metadata.breakpoints is None:
        return None
    return plan_breakpoints(
        metadata.width,
        config.fluid_min_width,
        max_width,
        config.breakpoints_max_images,
        service_computed=True,
        service_widths=metadata.breakpoints,
    )


def standalone_metadata(
    public_id: str,
    original_width: Any,
    original_height: Any,
    version: int | None = None,
) -> UploadMetadata:
    """Metadata for an asset that is already stored, as the caller describes it."""
    return UploadMetadata(
        public_id=public_id,
        width=validate_dimension("original_width", original_width),
        height=validate_dimension("original_height", original_height),
        format="",
        secure_url="",
        version=version,
    )


def location_of(item: AssetSource | Any) -> str:
    return item.location if isinstance(item, AssetSource) else str(item)


def build_report(outcomes: Iterable[Outcome]) -> IngestionReport:
    """Fold per-asset outcomes, in input order, into a report."""
    report = IngestionReport()
    for outcome in outcomes:
        if isinstance(outcome, CloudinaryAssetNode):
            report.nodes.append(outcome)
            if outcome.uploaded:
                report.uploads_performed += 1
        elif isinstance(outcome, Cancelled):
            report.cancelled.append(outcome.location)
        else:
            report.failures.append(outcome)
    return report
