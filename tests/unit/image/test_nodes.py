"""Tests for asset node construction and the in-memory node sink."""

from __future__ import annotations

from cloudimg.image import InMemoryNodeSink, NodeSink, build_asset_node, node_id
from cloudimg.models import ImageDescriptor, SrcSetEntry, UploadMetadata


def _descriptor(kind: str) -> ImageDescriptor:
    return ImageDescriptor(
        kind=kind, aspect_ratio=0.5, base64="data:image/jpeg;base64,AA==",
        src="https://x/w_10/a", src_set=(SrcSetEntry(10, "https://x/w_10/a"),),
        width=10, height=5,
    )


def _node(parent="post-1", identifier="id-1", relationship="heroImage", uploaded=True):
    meta = UploadMetadata(
        public_id="a", width=20, height=10, format="png",
        secure_url="https://res.cloudinary.com/demo/image/upload/a.png", version=9,
    )
    return build_asset_node(
        parent, relationship, identifier, meta, "demo",
        _descriptor("fixed"), _descriptor("fluid"), uploaded,
    )


def test_build_asset_node():
    node = _node()
    assert node.id == node_id("id-1")
    assert node.parent_id == "post-1"
    assert node.relationship == "heroImage"
    assert node.public_id == "a"
    assert node.version == 9
    assert (node.original_width, node.original_height, node.original_format) == (20, 10, "png")
    assert node.uploaded is True

    data = node.to_dict()
    assert data["parent"] == "post-1"
    assert data["publicId"] == "a"
    assert data["fixed"]["aspectRatio"] == 0.5
    assert "uploaded" not in data


class TestInMemoryNodeSink:
    def test_protocol(self):
        assert isinstance(InMemoryNodeSink(), NodeSink)

    def test_children_per_parent_and_relationship(self):
        sink = InMemoryNodeSink()
        sink.create_node("post-1", "heroImage", _node())
        sink.create_node("post-1", "gallery", _node(identifier="id-2", relationship="gallery"))
        sink.create_node("post-2", "heroImage", _node(parent="post-2"))

        assert len(sink) == 3
        assert len(sink.children("post-1")) == 2
        assert [n.identifier for n in sink.children("post-1", "gallery")] == ["id-2"]
        assert sink.children("missing") == []

    def test_same_node_replaced(self):
        sink = InMemoryNodeSink()
        sink.create_node("post-1", "heroImage", _node(uploaded=True))
        sink.create_node("post-1", "heroImage", _node(uploaded=False))
        assert len(sink) == 1
        assert sink.children("post-1")[0].uploaded is False
