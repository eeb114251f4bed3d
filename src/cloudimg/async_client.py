"""Asynchronous cloudimg client.

:class:`AsyncCloudImageClient` is the asset ingestion orchestrator: for
each asset it resolves the upload identifier, asks the cache gate whether
an upload is needed, uploads when it is, and derives the fixed and fluid
descriptors handed to the host as a :class:`CloudinaryAssetNode`.

Usage::

    import asyncio
    from cloudimg import AsyncCloudImageClient

    async def main():
        async with AsyncCloudImageClient(
            cloud_name="demo", api_key="123456789012345", api_secret="xxx",
        ) as client:
            node = await client.ingest_remote_asset(
                "https://example.com/hero.jpg",
                parent_id="post-1",
                relationship="heroImage",
            )
            print(node.fluid.src_set_string)

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import dataclasses
import threading
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import httpx

from cloudimg import pipeline
from cloudimg.cloudinary_api import AsyncCloudinaryTransport, AsyncUploadAPI
from cloudimg.config import CloudImageConfig
from cloudimg.delivery import (
    async_build_fixed,
    async_build_fluid,
    async_fetch_breakpoints,
    async_request_service_widths,
    validate_dimension,
)
from cloudimg.errors import (
    CloudImageAssetError,
    CloudImageCancelledError,
    CloudImageError,
    ErrorCode,
)
from cloudimg.image import (
    AsyncUploadCacheGate,
    InMemoryNodeSink,
    NodeSink,
    RecordStore,
    as_asset_source,
    async_upload_asset,
    build_asset_node,
    detect_asset_source,
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


class AsyncCloudImageClient:
    """Asynchronous responsive-image ingestion client.

    Parameters
    ----------
    config:
        A ready :class:`CloudImageConfig`.  When omitted, one is built
        from *kwargs*; when given, *kwargs* override its fields.
    store:
        Upload record store shared by every ingestion of this client.
        Defaults to an in-memory store.
    node_sink:
        Receives the node of every ingested asset.  Defaults to an
        :class:`InMemoryNodeSink`, exposed as :attr:`node_sink`.
    http_client:
        Optional pre-built ``httpx.AsyncClient``.
    **kwargs:
        Forwarded to :class:`CloudImageConfig`.
    """

    def __init__(
        self,
        config: CloudImageConfig | None = None,
        *,
        store: RecordStore | None = None,
        node_sink: NodeSink | None = None,
        http_client: httpx.AsyncClient | None = None,
        **kwargs: Any,
    ) -> None:
        if config is None:
            config = CloudImageConfig(**kwargs)
        elif kwargs:
            config = dataclasses.replace(config, **kwargs)
        self._config = config
        self._metrics = resolve_metrics(config.metrics)
        self._transport = AsyncCloudinaryTransport(config, client=http_client)
        self._uploads = AsyncUploadAPI(self._transport)
        self._gate = AsyncUploadCacheGate(store, metrics=config.metrics)
        self.node_sink: NodeSink = node_sink if node_sink is not None else InMemoryNodeSink()
        self._cancelled = threading.Event()
        # Settle tasks still running after their caller was cancelled.
        self._detached: set[asyncio.Task[Any]] = set()

    @property
    def config(self) -> CloudImageConfig:
        return self._config

    @property
    def gate(self) -> AsyncUploadCacheGate:
        return self._gate

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(
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

        Parameters
        ----------
        source:
            The asset, or a path / URL to classify.
        parent_id:
            Host id of the node the asset belongs to.
        relationship:
            Field name linking the parent to the new node.
        overwrite_existing:
            Upload even when a record exists.  Defaults to
            ``config.overwrite_existing``.
        transformation_spec:
            Directives applied to every descriptor URL.  Defaults to
            ``config.default_transformations`` alone.
        fixed_width:
            Display width of the fixed descriptor.
        fluid_max_width:
            Maximum display width of the fluid descriptor.

        Returns
        -------
        CloudinaryAssetNode

        Raises
        ------
        CloudImageInvalidDimensionError
            On a bad width, before any I/O.
        CloudImageAssetError
            If the source is unusable.
        CloudImageUploadError
            If the upload failed; nothing was recorded.
        CloudImagePlaceholderFetchError
            If a placeholder could not be fetched.
        CloudImageCancelledError
            If :meth:`cancel` was called before the upload step.
        """
        source = as_asset_source(source)
        overwrite = self._config.overwrite_existing if overwrite_existing is None else overwrite_existing
        spec = transformation_spec or pipeline.transformation_spec(self._config)
        if fixed_width is not None:
            fixed_width = validate_dimension("fixed_width", fixed_width)
        max_width = pipeline.fluid_max_width(self._config, fluid_max_width)

        self._raise_if_cancelled(source.location)
        loop = asyncio.get_running_loop()
        asset = await loop.run_in_executor(None, pipeline.prepare_asset, source, self._config)

        try:
            # An upload that has started is never abandoned half-way.
            settle = asyncio.ensure_future(self._settle(asset, overwrite, max_width))
            try:
                metadata, uploaded = await asyncio.shield(settle)
            except asyncio.CancelledError:
                self._detach(settle, asset)
                raise
            node = await self._describe(
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

    async def ingest_remote_asset(
        self,
        url: str,
        parent_id: str,
        relationship: str,
        overwrite_existing: bool | None = None,
        declared_id: str | None = None,
        **options: Any,
    ) -> CloudinaryAssetNode:
        """Ingest an asset that Cloudinary fetches from *url*.

        *declared_id*, when given, replaces the normalised URL as the
        dedup key.  Remaining *options* are those of :meth:`ingest`.
        """
        if detect_asset_source(url) != AssetSourceType.REMOTE_URL:
            raise CloudImageAssetError(
                code=ErrorCode.ASSET_ERROR,
                message=f"Not an http(s) URL: {url!r}",
                context={"location": url},
            )
        return await self.ingest(
            AssetSource.remote(url, declared_id=declared_id),
            parent_id,
            relationship,
            overwrite_existing=overwrite_existing,
            **options,
        )

    async def ingest_local_file(
        self,
        path: str | Path,
        parent_id: str,
        relationship: str,
        overwrite_existing: bool | None = None,
        content_digest: str | None = None,
        **options: Any,
    ) -> CloudinaryAssetNode:
        """Ingest a local file, uploading its bytes.

        *content_digest*, when the host already knows it, saves hashing
        the file.
        """
        return await self.ingest(
            AssetSource.local(path, content_digest=content_digest),
            parent_id,
            relationship,
            overwrite_existing=overwrite_existing,
            **options,
        )

    async def ingest_many(
        self,
        sources: Iterable[AssetSource | str | Path],
        parent_id: str,
        relationship: str,
        **options: Any,
    ) -> IngestionReport:
        """Ingest many assets concurrently.

        At most ``config.max_concurrent`` assets are in flight.  The
        failure of one asset is recorded in the report and never affects
        the others.

        Returns
        -------
        IngestionReport
            Nodes and failures in input order, plus the locations of
            assets skipped by :meth:`cancel`.
        """
        semaphore = asyncio.Semaphore(self._config.max_concurrent)
        in_flight = 0

        async def _one(item: AssetSource | str | Path) -> Outcome:
            nonlocal in_flight
            location = pipeline.location_of(item)
            async with semaphore:
                if self._cancelled.is_set():
                    return Cancelled(location)
                in_flight += 1
                self._metrics.gauge("cloudimg.assets_in_flight", in_flight)
                try:
                    return await self.ingest(item, parent_id, relationship, **options)
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
                    in_flight -= 1
                    self._metrics.gauge("cloudimg.assets_in_flight", in_flight)

        outcomes = await asyncio.gather(*(_one(item) for item in sources))
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

        Assets that have not reached their upload step are reported as
        cancelled.  Uploads already in flight complete (or fail) and are
        recorded normally.
        """
        self._cancelled.set()
        log.info("Ingestion cancelled", extra=log_fields(op="cancel"))

    # ------------------------------------------------------------------
    # Standalone descriptors
    # ------------------------------------------------------------------

    async def get_fixed_image_object(
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
        return await async_build_fixed(
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

    async def get_fluid_image_object(
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

        *max_width* defaults to ``config.fluid_max_width``.  Without
        explicit *breakpoints* the widths are planned locally, or asked
        from Cloudinary when ``config.use_cloudinary_breakpoints`` is set.
        Nothing is cached.
        """
        metadata = pipeline.standalone_metadata(public_id, original_width, original_height, version)
        width_cap = pipeline.fluid_max_width(self._config, max_width)
        if breakpoints is None and pipeline.needs_explicit_breakpoints(self._config, metadata):
            breakpoints = await self._service_breakpoints(metadata, width_cap)
        return await async_build_fluid(
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

    async def close(self) -> None:
        """Wait for detached uploads, then close the HTTP transport."""
        if self._detached:
            await asyncio.gather(*self._detached, return_exceptions=True)
        await self._transport.close()

    async def __aenter__(self) -> AsyncCloudImageClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _raise_if_cancelled(self, location: str, identifier: str | None = None) -> None:
        if self._cancelled.is_set():
            raise CloudImageCancelledError(
                message=f"Ingestion cancelled before uploading {location}",
                context={"location": location, "identifier": identifier},
            )

    def _detach(self, settle: asyncio.Task[Any], asset: PreparedAsset) -> None:
        """Keep *settle* alive after its caller was cancelled and log its outcome."""
        if settle.done() and settle.cancelled():
            return
        self._detached.add(settle)

        def _settled(task: asyncio.Task[Any]) -> None:
            self._detached.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is None:
                log.info(
                    "Detached upload settled",
                    extra=log_fields(op="ingest", identifier=asset.identifier, uploaded=task.result()[1]),
                )
            else:
                log.warning(
                    "Detached upload failed",
                    extra=log_fields(
                        op="ingest",
                        identifier=asset.identifier,
                        error=f"{type(exc).__name__}: {exc}",
                    ),
                )

        settle.add_done_callback(_settled)

    async def _settle(
        self,
        asset: PreparedAsset,
        overwrite: bool,
        max_width: int,
    ) -> tuple[UploadMetadata, bool]:
        """Decide, upload and record under the identifier lock.

        Service breakpoints missing from the record are fetched here too,
        once, and written back so later runs skip the request.
        """
        async with self._gate.lock(asset.identifier):
            self._raise_if_cancelled(asset.source.location, asset.identifier)
            decision = await self._gate.should_upload(asset.identifier, overwrite)
            if decision.existing is not None and not decision.should_upload:
                metadata, uploaded = decision.existing.metadata, False
            else:
                self._gate.begin_upload(asset.identifier)
                try:
                    metadata = await async_upload_asset(
                        self._uploads,
                        asset.source,
                        asset.identifier,
                        asset.public_id,
                        self._config,
                        overwrite=overwrite,
                        responsive_breakpoints=pipeline.upload_breakpoint_request(self._config, max_width),
                    )
                    metadata = (await self._gate.record_upload(asset.identifier, metadata)).metadata
                except BaseException:
                    self._gate.abort_upload(asset.identifier)
                    raise
                uploaded = True

            if pipeline.needs_explicit_breakpoints(self._config, metadata):
                widths = await async_request_service_widths(
                    self._uploads,
                    metadata.public_id,
                    metadata.width,
                    self._config.fluid_min_width,
                    max_width,
                    self._config.breakpoints_max_images,
                    bytes_step=self._config.breakpoints_bytes_step,
                    create_derived=self._config.create_derived,
                )
                metadata = (await self._gate.record_breakpoints(asset.identifier, widths)).metadata
            return metadata, uploaded

    async def _service_breakpoints(self, metadata: UploadMetadata, max_width: int) -> tuple[int, ...]:
        return await async_fetch_breakpoints(
            self._uploads,
            metadata.public_id,
            metadata.width,
            self._config.fluid_min_width,
            max_width,
            self._config.breakpoints_max_images,
            bytes_step=self._config.breakpoints_bytes_step,
            create_derived=self._config.create_derived,
        )

    async def _describe(
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

        fixed, fluid = await asyncio.gather(
            async_build_fixed(
                metadata,
                spec,
                self._uploads.fetch_bytes,
                fixed_width,
                self._config.base64_width,
                cloud_name=self._config.cloud_name,
                delivery_base_url=self._config.delivery_base_url,
                default_width=self._config.fixed_default_width,
                metrics=self._config.metrics,
            ),
            async_build_fluid(
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
            ),
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

