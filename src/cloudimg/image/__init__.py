"""Asset pipeline: detection, validation, identity, caching and upload.

Exports
-------
detect_asset_source / as_asset_source
    Classify a location as remote URL, local file, or unknown.
validate_local_asset
    Validate a local file's existence, MIME type and size.
resolve_identifier / public_id_for / node_id / normalize_url
    Derive the stable keys of an asset.
UploadCacheGate / AsyncUploadCacheGate
    Decide whether an upload is needed; the only writer of upload records.
UploadStateMachine
    Track the upload lifecycle of one identifier.
RecordStore / InMemoryRecordStore / JsonFileRecordStore
    Upload record persistence.
NodeSink / InMemoryNodeSink / build_asset_node
    Output nodes for the host data layer.
upload_asset / async_upload_asset
    Upload one asset and parse the response.
"""

from .detect import as_asset_source, detect_asset_source
from .gate import AsyncUploadCacheGate, UploadCacheGate
from .identity import node_id, normalize_url, public_id_for, resolve_identifier
from .nodes import InMemoryNodeSink, NodeSink, build_asset_node
from .state import UploadStateMachine
from .store import InMemoryRecordStore, JsonFileRecordStore, RecordStore
from .upload import async_upload_asset, upload_asset
from .validate import validate_local_asset

__all__ = [
    "AsyncUploadCacheGate",
    "InMemoryNodeSink",
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    "NodeSink",
    "RecordStore",
    "UploadCacheGate",
    "UploadStateMachine",
    "as_asset_source",
    "async_upload_asset",
    "build_asset_node",
    "detect_asset_source",
    "node_id",
    "normalize_url",
    "public_id_for",
    "resolve_identifier",
    "upload_asset",
    "validate_local_asset",
]
