"""Synchronous cloudimg client.

:class:`CloudImageClient` mirrors :class:`AsyncCloudImageClient` with
blocking I/O.  Batches run on a ``concurrent.futures`` thread pool; the
cache gate's per-identifier lock keeps uploads exactly-once across
worker threads.

Usage::

    from cloudimg import CloudImageClient

    with CloudImageClient(cloud_name="demo", api_key="...", api_secret="...") as client:
        report = client.ingest_many(
            ["photos/a.jpg", "https://example.com/b.png"],
            parent_id="gallery-1",
            relationship="images",
        )
"""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import httpx

from cloudimg import pipeline
from cloudimg.cloudinary_api import CloudinaryTransport, UploadAPI
from cloudimg.config import CloudImageConfig
from cloudimg.delivery import (
    build_fixed,
    build_fluid,
    fetch_breakpoints,
    request_service_widths,
    validate_dimension,
)
from cloudimg.errors import (
    CloudImageAssetError,
    CloudImageCancelledError,
    CloudImageError,
    ErrorCode,
)
from cloudimg.image import (
    InMemoryNodeSink,
    NodeSink,
    RecordStore,
    UploadCacheGate,
    as_asset_source,
    build_asset_node,
    detect_asset_source,
    upload_asset,
)
from cloudimg.models import (
    AssetSource,
    AssetSourceType,
    CloudinaryAssetNode,
    ImageDescriptor,
    IngestionFailure,
    IngestionReport,
    TransformationSpec,
    UploadMetadata,
)
from cloudimg.observability import get_logger, log_fields, resolve_metrics
from cloudimg.pipeline import Cancelled, Outcome, PreparedAsset

log = get_logger("cloudimg.client")


class CloudImageClient:
    """Synchronous responsive-image ingestion client.

    Parameters
    ----------
    config:
        A ready :class:`CloudImageConfig`.  When omitted, one is built
        from *kwargs*; when given, *kwargs* override its fields.
    store:
        Upload record store.  Defaults to an in-memory store.
    node_sink:
        Receives the node of every ingested asset.
    http_client:
        Optional pre-built ``httpx.Client``.
    **kwargs:
        Forwarded to :class:`CloudImageConfig`.
    """

    def __init__(
        self,
        config: CloudImageConfig | None = None,
        *,
        store: RecordStore | None = None,
        node_sink: NodeSink | None = None,
        http_client: httpx.Client | None = None,
        **kwargs: Any,
    ) -> None:
        if config is None:
            config = CloudImageConfig(**kwargs)
        elif kwargs:
            config = dataclasses.replace(config, **kwargs)
        self._config = config
        self._metrics = resolve_metrics(config.metrics)
        self._transport = CloudinaryTransport(config, client=http_client)
        self._uploads = UploadAPI(self._transport)
        self._gate = UploadCacheGate(store, metrics=config.metrics)
        self.node_sink: NodeSink = node_sink if node_sink is not None else InMemoryNodeSink()
        self._cancelled = threading.Event()
        self._in_flight = 0
        self._in_flight_lock = threading.Lock()

    @property
    def config(self) -> CloudImageConfig:
        return self._config

    @property
    def gate(self) -> UploadCacheGate:
        return self._gate

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(
        self,
        source: AssetSource | str | Path,
        parent_id: str,
        relationship: str,
        overwrite_existing: bool | None = None,
        transformation_spec: TransformationSpec | None = None,
        fixed_width: int | None = None,
        fluid_max_width: int | None = None,
    ) -> CloudinaryAssetNode:
        """Ingest one asset and hand its node to the node sink.

        See :meth:`AsyncCloudImageClient.ingest` for parameters and
        errors.
        """
        source = as_asset_source(source)
        overwrite = self._config.overwrite_existing if overwrite_existing is None else overwrite_existing
        spec = transformation_spec or pipeline.transformation_spec(self._config)
        if fixed_width is not None:
            fixed_width = validate_dimension("fixed_width", fixed_width)
        max_width = pipeline.fluid_max_width(self._config, fluid_max_width)

        self._raise_if_cancelled(source.location)
        asset = pipeline.prepare_asset(source, self._config)

        try:
            metadata, uploaded = self._settle(asset, overwrite, max_width)
            node = self._describe(
                asset, metadata, uploaded, parent_id, relationship, spec, fixed_width, max_width,
            )
        except CloudImageError as exc:
            exc.context.setdefault("identifier", asset.identifier)
            raise

        self.node_sink.create_node(parent_id, relationship, node)
        log.info(
            "Asset ingested",
            extra=log_fields(
                op="ingest",
                identifier=asset.identifier,
                public_id=metadata.public_id,
                node_id=node.id,
                uploaded=uploaded,
            ),
        )
        return node

    def ingest_remote_asset(
        self,
        url: str,
        parent_id: str,
        relationship: str,
        overwrite_existing: bool | None = None,
        declared_id: str | None = None,
        **options: Any,
    ) -> CloudinaryAssetNode:
        """Ingest an asset that Cloudinary fetches from *url*."""
        if detect_asset_source(url) != AssetSourceType.REMOTE_URL:
            raise CloudImageAssetError(
                code=ErrorCode.ASSET_ERROR,
                message=f"Not an http(s) URL: {url!r}",
                context={"location": url},
            )
        return self.ingest(
            AssetSource.remote(url, declared_id=declared_id),
            parent_id,
            relationship,
            overwrite_existing=overwrite_existing,
            **options,
        )

    def ingest_local_file(
        self,
        path: str | Path,
        parent_id: str,
        relationship: str,
        overwrite_existing: bool | None = None,
        content_digest: str | None = None,
        **options: Any,
    ) -> CloudinaryAssetNode:
        """Ingest a local file, uploading its bytes."""
        return self.ingest(
            AssetSource.local(path, content_digest=content_digest),
            parent_id,
            relationship,
            overwrite_existing=overwrite_existing,
            **options,
        )

    def ingest_many(
        self,
        sources: Iterable[AssetSource | str | Path],
        parent_id: str,
        relationship: str,
        **options: Any,
    ) -> IngestionReport:
        """Ingest many assets on ``config.max_concurrent`` worker threads.

        Returns
        -------
        IngestionReport
            Nodes and failures in input order, plus the locations of
            assets skipped by :meth:`cancel`.
        """
        with ThreadPoolExecutor(
            max_workers=self._config.max_concurrent,
            thread_name_prefix="cloudimg",
        ) as pool:
            futures = [
                pool.submit(self._ingest_one, item, parent_id, relationship, options)
                for item in sources
            ]
            outcomes = [future.result() for future in futures]

        report = pipeline.build_report(outcomes)
        log.info(
            "Batch ingested",
            extra=log_fields(
                op="ingest_many",
                nodes=len(report.nodes),
                failures=len(report.failures),
                cancelled=len(report.cancelled),
                uploads=report.uploads_performed,
            ),
        )
        return report

    def cancel(self) -> None:
        """Cancel the current and future runs of this client.

        Safe to call from any thread.  Uploads already in flight complete
        and are recorded; assets that have not reached their upload step
        are reported as cancelled.
        """
        self._cancelled.set()
        log.info("Ingestion cancelled", extra=log_fields(op="cancel"))

    # ------------------------------------------------------------------
    # Standalone descriptors
    # ------------------------------------------------------------------

    def get_fixed_image_object(
        self,
        public_id: str,
        original_width: int,
        original_height: int,
        transformations: Sequence[str] | None = None,
        chained: Sequence[str] | None = None,
        defaults: Sequence[str] | None = None,
        width: int | None = None,
        base64_width: int | None = None,
        version: int | None = None,
        cloud_name: str | None = None,
    ) -> ImageDescriptor:
        """Build a fixed descriptor for an asset that is already stored.

        Nothing is cached: every call rebuilds the URLs and fetches the
        placeholder again.
        """
        metadata = pipeline.standalone_metadata(public_id, original_width, original_height, version)
        return build_fixed(
            metadata,
            pipeline.transformation_spec(self._config, transformations, chained, defaults),
            self._uploads.fetch_bytes,
            width,
            self._config.base64_width if base64_width is None else base64_width,
            cloud_name=cloud_name or self._config.cloud_name,
            delivery_base_url=self._config.delivery_base_url,
            default_width=self._config.fixed_default_width,
            metrics=self._config.metrics,
        )

    def get_fluid_image_object(
        self,
        public_id: str,
        original_width: int,
        original_height: int,
        transformations: Sequence[str] | None = None,
        chained: Sequence[str] | None = None,
        defaults: Sequence[str] | None = None,
        max_width: int | None = None,
        base64_width: int | None = None,
        version: int | None = None,
        cloud_name: str | None = None,
        breakpoints: Sequence[int] | None = None,
    ) -> ImageDescriptor:
        """Build a fluid descriptor for an asset that is already stored.

        See :meth:`AsyncCloudImageClient.get_fluid_image_object`.
        """
        metadata = pipeline.standalone_metadata(public_id, original_width, original_height, version)
        width_cap = pipeline.fluid_max_width(self._config, max_width)
        if breakpoints is None and pipeline.needs_explicit_breakpoints(self._config, metadata):
            breakpoints = self._service_breakpoints(metadata, width_cap)
        return build_fluid(
            metadata,
            pipeline.transformation_spec(self._config, transformations, chained, defaults),
            self._uploads.fetch_bytes,
            width_cap,
            breakpoints,
            self._config.base64_width if base64_width is None else base64_width,
            cloud_name=cloud_name or self._config.cloud_name,
            delivery_base_url=self._config.delivery_base_url,
            min_width=self._config.fluid_min_width,
            max_images=self._config.breakpoints_max_images,
            metrics=self._config.metrics,
        )

    # ------------------------------------------------------------------
    # Resource management
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the HTTP transport."""
        self._transport.close()

    def __enter__(self) -> CloudImageClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _raise_if_cancelled(self, location: str, identifier: str | None = None) -> None:
        if self._cancelled.is_set():
            raise CloudImageCancelledError(
                message=f"Ingestion cancelled before uploading {location}",
                context={"location": location, "identifier": identifier},
            )

    def _track_in_flight(self, delta: int) -> None:
        with self._in_flight_lock:
            self._in_flight += delta
            current = self._in_flight
        self._metrics.gauge("cloudimg.assets_in_flight", current)

    def _ingest_one(
        self,
        item: AssetSource | str | Path,
        parent_id: str,
        relationship: str,
        options: dict[str, Any],
    ) -> Outcome:
        location = pipeline.location_of(item)
        if self._cancelled.is_set():
            return Cancelled(location)
        self._track_in_flight(1)
        try:
            return self.ingest(item, parent_id, relationship, **options)
        except CloudImageCancelledError:
            return Cancelled(location)
        except CloudImageError as exc:
            log.warning(
                "Asset ingestion failed",
                extra=log_fields(
                    op="ingest_many",
                    location=location,
                    identifier=exc.context.get("identifier"),
                    code=str(exc.code),
                    error=exc.message,
                ),
            )
            return IngestionFailure(
                identifier=exc.context.get("identifier"),
                location=location,
                error=exc,
            )
        finally:
            self._track_in_flight(-1)

    def _settle(
        self,
        asset: PreparedAsset,
        overwrite: bool,
        max_width: int,
    ) -> tuple[UploadMetadata, bool]:
        """Decide, upload and record under the identifier lock.

        Service breakpoints missing from the record are fetched here too,
        once, and written back so later runs skip the request.
        """
        with self._gate.lock(asset.identifier):
            self._raise_if_cancelled(asset.source.location, asset.identifier)
            decision = self._gate.should_upload(asset.identifier, overwrite)
            if decision.existing is not None and not decision.should_upload:
                metadata, uploaded = decision.existing.metadata, False
            else:
                self._gate.begin_upload(asset.identifier)
                try:
                    metadata = upload_asset(
                        self._uploads,
                        asset.source,
                        asset.identifier,
                        asset.public_id,
                        self._config,
                        overwrite=overwrite,
                        responsive_breakpoints=pipeline.upload_breakpoint_request(self._config, max_width),
                    )
                    metadata = self._gate.record_upload(asset.identifier, metadata).metadata
                except BaseException:
                    self._gate.abort_upload(asset.identifier)
                    raise
                uploaded = True

            if pipeline.needs_explicit_breakpoints(self._config, metadata):
                widths = request_service_widths(
                    self._uploads,
                    metadata.public_id,
                    metadata.width,
                    self._config.fluid_min_width,
                    max_width,
                    self._config.breakpoints_max_images,
                    bytes_step=self._config.breakpoints_bytes_step,
                    create_derived=self._config.create_derived,
                )
                metadata = self._gate.record_breakpoints(asset.identifier, widths).metadata
            return metadata, uploaded

    def _service_breakpoints(self, metadata: UploadMetadata, max_width: int) -> tuple[int, ...]:
        return fetch_breakpoints(
            self._uploads,
            metadata.public_id,
            metadata.width,
            self._config.fluid_min_width,
            max_width,
            self._config.breakpoints_max_images,
            bytes_step=self._config.breakpoints_bytes_step,
            create_derived=self._config.create_derived,
        )

    def _describe(
        self,
        asset: PreparedAsset,
        metadata: UploadMetadata,
        uploaded: bool,
        parent_id: str,
        relationship: str,
        spec: TransformationSpec,
        fixed_width: int | None,
        max_width: int,
    ) -> CloudinaryAssetNode:
        breakpoints = pipeline.known_breakpoints(self._config, metadata, max_width)

        fixed = build_fixed(
            metadata,
            spec,
            self._uploads.fetch_bytes,
            fixed_width,
            self._config.base64_width,
            cloud_name=self._config.cloud_name,
            delivery_base_url=self._config.delivery_base_url,
            default_width=self._config.fixed_default_width,
            metrics=self._config.metrics,
        )
        fluid = build_fluid(
            metadata,
            spec,
            self._uploads.fetch_bytes,
            max_width,
            breakpoints,
            self._config.base64_width,
            cloud_name=self._config.cloud_name,
            delivery_base_url=self._config.delivery_base_url,
            min_width=self._config.fluid_min_width,
            max_images=self._config.breakpoints_max_images,
            metrics=self._config.metrics,
        )
        return build_asset_node(
            parent_id,
            relationship,
            asset.identifier,
            metadata,
            self._config.cloud_name,
            fixed,
            fluid,
            uploaded,
        )
