"""Output nodes handed to the host data layer.

The host owns its node graph; this package only builds a
:class:`CloudinaryAssetNode` per ingested asset and passes it to a
:class:`NodeSink` together with the parent id and relationship name.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Protocol, runtime_checkable

from cloudimg.models import CloudinaryAssetNode, ImageDescriptor, UploadMetadata

from .identity import node_id


@runtime_checkable
class NodeSink(Protocol):
    """Receives the nodes derived from ingested assets."""

    def create_node(self, parent_id: str, relationship: str, node: CloudinaryAssetNode) -> None:
        """Attach *node* to *parent_id* under *relationship*."""
        ...


class InMemoryNodeSink:
    """A :class:`NodeSink` collecting nodes per parent id.

    Creating a node whose id already exists under the same parent and
    relationship replaces it, so re-runs do not duplicate children.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, dict[tuple[str, str], CloudinaryAssetNode]] = defaultdict(dict)
        self._lock = threading.Lock()

    def create_node(self, parent_id: str, relationship: str, node: CloudinaryAssetNode) -> None:
        with self._lock:
            self._nodes[parent_id][(relationship, node.id)] = node

    def children(self, parent_id: str, relationship: str | None = None) -> list[CloudinaryAssetNode]:
        """Return the nodes of *parent_id*, optionally for one relationship."""
        with self._lock:
            items = list(self._nodes.get(parent_id, {}).items())
        return [
            node for (rel, _), node in items
            if relationship is None or rel == relationship
        ]

    def __len__(self) -> int:
        with self._lock:
            return sum(len(nodes) for nodes in self._nodes.values())


def build_asset_node(
    parent_id: str,
    relationship: str,
    identifier: str,
    metadata: UploadMetadata,
    cloud_name: str,
    fixed: ImageDescriptor,
    fluid: ImageDescriptor,
    uploaded: bool,
) -> CloudinaryAssetNode:
    """Build the node describing one ingested asset.

    Parameters
    ----------
    parent_id:
        Host id of the node the asset belongs to.
    relationship:
        Field name linking the parent to the new node.
    identifier:
        Upload identifier; the node id is derived from it.
    metadata:
        Upload metadata (fresh or cached).
    cloud_name:
        Cloud the asset is stored in.
    fixed, fluid:
        The descriptors built for the asset.
    uploaded:
        Whether this run performed the upload.

    Returns
    -------
    CloudinaryAssetNode
    """
    return CloudinaryAssetNode(
        id=node_id(identifier),
        parent_id=parent_id,
        relationship=relationship,
        identifier=identifier,
        public_id=metadata.public_id,
        cloud_name=cloud_name,
        version=metadata.version,
        original_width=metadata.width,
        original_height=metadata.height,
        original_format=metadata.format,
        secure_url=metadata.secure_url,
        fixed=fixed,
        fluid=fluid,
        uploaded=uploaded,
    )
