"""Upload record stores.

The record store is the only state shared between concurrently ingested
assets.  It is injected into the cache gate rather than held as a global,
so a host can back it with its own cache and tests can swap it freely.

Two implementations are provided:

* :class:`InMemoryRecordStore` -- a lock-guarded dict, for one process
  run;
* :class:`JsonFileRecordStore` -- one JSON document on disk, rewritten
  atomically, so a later run can skip uploads done by an earlier one.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from cloudimg.models import UploadRecord
from cloudimg.observability import get_logger, log_fields

log = get_logger("cloudimg.store")

_FORMAT_VERSION = 1


@runtime_checkable
class RecordStore(Protocol):
    """Key-value store of :class:`UploadRecord` keyed by identifier.

    Implementations must be safe to call from several threads.
    """

    def get(self, identifier: str) -> UploadRecord | None:
        """Return the record for *identifier*, or ``None``."""
        ...

    def put(self, record: UploadRecord) -> None:
        """Insert or replace the record of ``record.identifier``."""
        ...

    def put_if_absent(self, record: UploadRecord) -> bool:
        """Insert *record* unless one exists; return whether it was inserted."""
        ...

    def delete(self, identifier: str) -> None:
        """Remove the record for *identifier* if present."""
        ...

    def clear(self) -> None:
        """Remove every record."""
        ...


class InMemoryRecordStore:
    """Thread-safe in-process :class:`RecordStore`."""

    def __init__(self, records: dict[str, UploadRecord] | None = None) -> None:
        self._records: dict[str, UploadRecord] = dict(records or {})
        self._lock = threading.Lock()

    def get(self, identifier: str) -> UploadRecord | None:
        with self._lock:
            return self._records.get(identifier)

    def put(self, record: UploadRecord) -> None:
        with self._lock:
            self._records[record.identifier] = record

    def put_if_absent(self, record: UploadRecord) -> bool:
        with self._lock:
            if record.identifier in self._records:
                return False
            self._records[record.identifier] = record
            return True

    def delete(self, identifier: str) -> None:
        with self._lock:
            self._records.pop(identifier, None)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._records


class JsonFileRecordStore(InMemoryRecordStore):
    """A :class:`RecordStore` persisted to a single JSON file.

    The file is loaded once at construction and rewritten after every
    mutation through a temporary file and :func:`os.replace`, so a crash
    never leaves a half-written document behind.

    Parameters
    ----------
    path:
        Location of the JSON document.  Missing parent directories are
        created on first write.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> dict[str, UploadRecord]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            document: dict[str, Any] = json.load(fh)
        records = {
            identifier: UploadRecord.from_dict(data)
            for identifier, data in document.get("records", {}).items()
        }
        log.debug(
            "Record store loaded",
            extra=log_fields(op="store_load", path=str(self.path), records=len(records)),
        )
        return records

    def _flush(self) -> None:
        """Write every record to disk.  Caller holds ``self._lock``."""
        document = {
            "version": _FORMAT_VERSION,
            "records": {
                identifier: record.to_dict()
                for identifier, record in sorted(self._records.items())
            },
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _commit(self, previous: dict[str, UploadRecord]) -> None:
        """Flush, restoring *previous* in memory if the write fails.

        Caller holds ``self._lock``.
        """
        try:
            self._flush()
        except BaseException:
            self._records = previous
            raise

    def put(self, record: UploadRecord) -> None:
        with self._lock:
            previous = dict(self._records)
            self._records[record.identifier] = record
            self._commit(previous)

    def put_if_absent(self, record: UploadRecord) -> bool:
        with self._lock:
            if record.identifier in self._records:
                return False
            previous = dict(self._records)
            self._records[record.identifier] = record
            self._commit(previous)
            return True

    def delete(self, identifier: str) -> None:
        with self._lock:
            if identifier not in self._records:
                return
            previous = dict(self._records)
            del self._records[identifier]
            self._commit(previous)

    def clear(self) -> None:
        with self._lock:
            previous = dict(self._records)
            self._records.clear()
            self._commit(previous)
