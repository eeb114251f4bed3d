"""The upload cache gate.

Every remote upload is billed, so before one is issued the gate is asked
whether it is needed at all:

* a record exists and overwriting is off -> **skip**, reuse the cached
  metadata, no remote call;
* otherwise -> **proceed**; the caller uploads and, only on success,
  hands the result back through :meth:`UploadCacheGate.record_upload`.

Concurrent tasks ingesting the same content must not both upload it.
Callers therefore hold :meth:`UploadCacheGate.lock` for the identifier
around the whole decide -> upload -> record sequence.  The lock is scoped
to one identifier; unrelated assets never wait on each other, and its
entry is dropped once nobody holds or waits on it.

Store failures surface as :class:`CloudImageStoreError`.  A failed write
ends the upload lifecycle of the identifier, so a later attempt can start
afresh.
"""

from __future__ import annotations

import asyncio
import dataclasses
import threading
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from typing import Any, TypeVar

from cloudimg.errors import CloudImageError, CloudImageStoreError
from cloudimg.models import Decision, UploadMetadata, UploadRecord, UploadState
from cloudimg.observability import get_logger, log_fields, resolve_metrics

from .state import UploadStateMachine
from .store import InMemoryRecordStore, RecordStore

log = get_logger("cloudimg.gate")

T = TypeVar("T")


class _GateCore:
    """Decision and bookkeeping shared by the sync and async gates."""

    def __init__(self, store: RecordStore | None = None, metrics: Any | None = None) -> None:
        self.store: RecordStore = store if store is not None else InMemoryRecordStore()
        self._metrics = resolve_metrics(metrics)
        self._machines: dict[str, UploadStateMachine] = {}
        self._machines_lock = threading.Lock()
        # identifier -> (lock, number of holders and waiters)
        self._locks: dict[str, tuple[Any, int]] = {}

    # -- per-identifier locks ---------------------------------------------

    def _acquire_slot(self, identifier: str, factory: Callable[[], Any]) -> Any:
        with self._machines_lock:
            lock, users = self._locks.get(identifier, (None, 0))
            if lock is None:
                lock = factory()
            self._locks[identifier] = (lock, users + 1)
            return lock

    def _release_slot(self, identifier: str) -> None:
        with self._machines_lock:
            lock, users = self._locks[identifier]
            if users <= 1:
                del self._locks[identifier]
            else:
                self._locks[identifier] = (lock, users - 1)

    # -- store access -------------------------------------------------------

    def _store_call(self, operation: str, identifier: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return fn(*args)
        except CloudImageError:
            raise
        except Exception as exc:
            self._metrics.increment("cloudimg.store_errors_total", tags={"operation": operation})
            log.error(
                "Record store failure",
                extra=log_fields(
                    op=operation,
                    identifier=identifier,
                    error=f"{type(exc).__name__}: {exc}",
                ),
            )
            raise CloudImageStoreError(
                message=f"Record store {operation} failed for {identifier}: {exc}",
                context={"identifier": identifier, "operation": operation},
                cause=exc,
            ) from exc

    def _get(self, identifier: str) -> UploadRecord | None:
        return self._store_call("get", identifier, self.store.get, identifier)

    # -- decisions and lifecycle -------------------------------------------

    def _decide(self, identifier: str, overwrite_existing: bool) -> Decision:
        existing = self._get(identifier)
        if existing is not None and not overwrite_existing:
            self._metrics.increment("cloudimg.upload_skipped_total")
            log.debug(
                "Upload skipped; cached record reused",
                extra=log_fields(
                    op="should_upload",
                    identifier=identifier,
                    public_id=existing.metadata.public_id,
                ),
            )
            return Decision.skip(existing)
        log.debug(
            "Upload required",
            extra=log_fields(
                op="should_upload",
                identifier=identifier,
                overwrite=overwrite_existing,
                cached=existing is not None,
            ),
        )
        return Decision.proceed()

    def _stored_state(self, identifier: str) -> UploadState:
        if self._get(identifier) is not None:
            return UploadState.UPLOADED
        return UploadState.UNKNOWN

    def begin_upload(self, identifier: str) -> None:
        """Mark *identifier* as ``UPLOADING``.

        Raises
        ------
        ValueError
            If an upload for *identifier* is already in flight.
        """
        with self._machines_lock:
            if identifier in self._machines:
                raise ValueError(f"An upload for {identifier} is already in flight")
        machine = UploadStateMachine(identifier, self._stored_state(identifier))
        machine.begin()
        with self._machines_lock:
            if identifier in self._machines:
                raise ValueError(f"An upload for {identifier} is already in flight")
            self._machines[identifier] = machine

    def abort_upload(self, identifier: str) -> None:
        """Leave ``UPLOADING`` after a failed upload; nothing is recorded."""
        with self._machines_lock:
            machine = self._machines.pop(identifier, None)
        if machine is not None:
            machine.fail()

    def _write(self, machine: UploadStateMachine, record: UploadRecord) -> None:
        identifier = record.identifier
        if machine.previous == UploadState.UNKNOWN:
            inserted = self._store_call("put_if_absent", identifier, self.store.put_if_absent, record)
            if not inserted:
                # Written by another process sharing the store; replace it
                # with the result of the upload that just happened.
                self._store_call("put", identifier, self.store.put, record)
        else:
            self._store_call("put", identifier, self.store.put, record)

    def _record(self, identifier: str, metadata: UploadMetadata) -> UploadRecord:
        with self._machines_lock:
            machine = self._machines.get(identifier)
        if machine is None:
            raise ValueError(f"No upload in flight for {identifier}")

        record = UploadRecord(
            identifier=identifier,
            remote_version=metadata.version,
            last_uploaded_at=datetime.now(timezone.utc),
            metadata=metadata,
        )
        try:
            self._write(machine, record)
        except BaseException:
            self.abort_upload(identifier)
            raise

        machine.succeed()
        with self._machines_lock:
            self._machines.pop(identifier, None)
        log.info(
            "Upload recorded",
            extra=log_fields(
                op="record_upload",
                identifier=identifier,
                public_id=metadata.public_id,
                version=metadata.version,
            ),
        )
        return record

    def _record_breakpoints(self, identifier: str, breakpoints: tuple[int, ...]) -> UploadRecord:
        existing = self._get(identifier)
        if existing is None:
            raise CloudImageStoreError(
                message=f"No upload record for {identifier} to attach breakpoints to",
                context={"identifier": identifier, "operation": "record_breakpoints"},
            )
        record = dataclasses.replace(
            existing,
            metadata=dataclasses.replace(existing.metadata, breakpoints=tuple(breakpoints)),
        )
        self._store_call("put", identifier, self.store.put, record)
        log.info(
            "Breakpoints recorded",
            extra=log_fields(
                op="record_breakpoints",
                identifier=identifier,
                public_id=record.metadata.public_id,
                breakpoints=len(record.metadata.breakpoints or ()),
            ),
        )
        return record

    def state(self, identifier: str) -> UploadState:
        """Return the lifecycle state of *identifier*."""
        with self._machines_lock:
            machine = self._machines.get(identifier)
        if machine is not None:
            return machine.state
        return self._stored_state(identifier)


class UploadCacheGate(_GateCore):
    """Upload cache gate for thread-based callers.

    Parameters
    ----------
    store:
        Record store; defaults to a fresh :class:`InMemoryRecordStore`.
    metrics:
        Optional :class:`~cloudimg.observability.MetricsHook`.
    """

    @contextmanager
    def lock(self, identifier: str) -> Iterator[None]:
        """Hold the lock serialising uploads of *identifier*."""
        lock = self._acquire_slot(identifier, threading.Lock)
        try:
            with lock:
                yield
        finally:
            self._release_slot(identifier)

    def should_upload(self, identifier: str, overwrite_existing: bool = False) -> Decision:
        """Decide whether *identifier* must be uploaded.

        Parameters
        ----------
        identifier:
            The upload identifier of the asset.
        overwrite_existing:
            Upload even when a record exists.

        Returns
        -------
        Decision
            ``skip`` carrying the stored record, or ``proceed``.

        Raises
        ------
        CloudImageStoreError
            If the store cannot be read.
        """
        return self._decide(identifier, overwrite_existing)

    def record_upload(self, identifier: str, metadata: UploadMetadata) -> UploadRecord:
        """Persist the result of a successful upload.

        The only writer of upload records.  Must follow
        :meth:`begin_upload` for the same identifier.  Success or failure,
        the upload of *identifier* is no longer in flight afterwards.
        """
        return self._record(identifier, metadata)

    def record_breakpoints(self, identifier: str, breakpoints: tuple[int, ...]) -> UploadRecord:
        """Attach Cloudinary's breakpoint widths to the stored record."""
        return self._record_breakpoints(identifier, breakpoints)


class AsyncUploadCacheGate(_GateCore):
    """Upload cache gate for asyncio callers.

    Store access runs in the default executor, so a file-backed store
    never blocks the event loop.
    """

    @asynccontextmanager
    async def lock(self, identifier: str) -> AsyncIterator[None]:
        """Hold the lock serialising uploads of *identifier*."""
        lock = self._acquire_slot(identifier, asyncio.Lock)
        try:
            async with lock:
                yield
        finally:
            self._release_slot(identifier)

    async def should_upload(self, identifier: str, overwrite_existing: bool = False) -> Decision:
        """Decide whether *identifier* must be uploaded (async).

        See :meth:`UploadCacheGate.should_upload`.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._decide, identifier, overwrite_existing)

    async def record_upload(self, identifier: str, metadata: UploadMetadata) -> UploadRecord:
        """Persist the result of a successful upload (async)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._record, identifier, metadata)

    async def record_breakpoints(self, identifier: str, breakpoints: tuple[int, ...]) -> UploadRecord:
        """Attach Cloudinary's breakpoint widths to the stored record (async)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._record_breakpoints, identifier, breakpoints)
