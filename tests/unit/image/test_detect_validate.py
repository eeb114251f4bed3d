"""Tests for asset source detection and local asset validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from cloudimg.errors import (
    CloudImageAssetError,
    CloudImageAssetNotFoundError,
    CloudImageAssetSizeError,
    CloudImageAssetTypeError,
    ErrorCode,
)
from cloudimg.image import as_asset_source, detect_asset_source, validate_local_asset
from cloudimg.image.validate import sniff_mime
from cloudimg.models import AssetSource, AssetSourceType


class TestDetectAssetSource:
    @pytest.mark.parametrize(
        "location,expected",
        [
            ("https://example.com/a.jpg", AssetSourceType.REMOTE_URL),
            ("http://example.com/a.jpg", AssetSourceType.REMOTE_URL),
            ("https:///nohost.jpg", AssetSourceType.UNKNOWN),
            ("file:///tmp/a.jpg", AssetSourceType.LOCAL_FILE),
            ("/var/images/a.jpg", AssetSourceType.LOCAL_FILE),
            ("images/a.jpg", AssetSourceType.LOCAL_FILE),
            ("a.jpg", AssetSourceType.LOCAL_FILE),
            ("data:image/png;base64,AAAA", AssetSourceType.UNKNOWN),
            ("ftp://example.com/a.jpg", AssetSourceType.UNKNOWN),
            ("", AssetSourceType.UNKNOWN),
            ("   ", AssetSourceType.UNKNOWN),
        ],
    )
    def test_classification(self, location, expected):
        assert detect_asset_source(location) == expected


class TestAsAssetSource:
    def test_passthrough(self):
        source = AssetSource.remote("https://example.com/a.jpg")
        assert as_asset_source(source) is source

    def test_url_string(self):
        source = as_asset_source("https://example.com/a.jpg")
        assert source.source_type == AssetSourceType.REMOTE_URL
        assert source.location == "https://example.com/a.jpg"

    def test_path_object(self, jpeg_file):
        source = as_asset_source(jpeg_file)
        assert source.source_type == AssetSourceType.LOCAL_FILE
        assert source.location == str(jpeg_file.resolve())
        assert source.name == "Hero Shot"

    def test_file_url(self, tmp_path):
        target = tmp_path / "pic.png"
        source = as_asset_source(f"file://{target}")
        assert source.source_type == AssetSourceType.LOCAL_FILE
        assert Path(source.location) == target.resolve()

    def test_unclassifiable(self):
        with pytest.raises(CloudImageAssetError) as exc_info:
            as_asset_source("data:image/png;base64,AAAA")
        assert exc_info.value.code == ErrorCode.ASSET_ERROR


class TestSniffMime:
    @pytest.mark.parametrize(
        "head,expected",
        [
            (b"\x89PNG\r\n\x1a\n" + b"\x00" * 8, "image/png"),
            (b"\xff\xd8\xff\xe0", "image/jpeg"),
            (b"GIF89a", "image/gif"),
            (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
            (b"RIFF\x00\x00\x00\x00WAVEfmt ", None),
            (b"II*\x00", "image/tiff"),
            (b"<svg xmlns='http://www.w3.org/2000/svg'>", "image/svg+xml"),
            (b"BM\x00\x00", "image/bmp"),
            (b"\x00\x00\x00\x1cftypavif", "image/avif"),
            (b"%PDF-1.7", None),
        ],
    )
    def test_signatures(self, head, expected):
        assert sniff_mime(head) == expected


class TestValidateLocalAsset:
    def test_valid_jpeg(self, jpeg_file, config):
        mime, size = validate_local_asset(jpeg_file, config)
        assert mime == "image/jpeg"
        assert size == jpeg_file.stat().st_size

    def test_missing_file(self, tmp_path, config):
        with pytest.raises(CloudImageAssetNotFoundError) as exc_info:
            validate_local_asset(tmp_path / "missing.jpg", config)
        assert exc_info.value.context["location"].endswith("missing.jpg")

    def test_directory_is_not_a_file(self, tmp_path, config):
        with pytest.raises(CloudImageAssetNotFoundError):
            validate_local_asset(tmp_path, config)

    def test_disallowed_type(self, tmp_path, config):
        doc = tmp_path / "doc.pdf"
        doc.write_bytes(b"%PDF-1.7 rest")
        with pytest.raises(CloudImageAssetTypeError) as exc_info:
            validate_local_asset(doc, config)
        assert exc_info.value.context["detected_mime"] == "application/pdf"
        assert "image/jpeg" in exc_info.value.context["allowed_mimes"]

    def test_extension_fallback(self, tmp_path, config):
        image = tmp_path / "unknown-bytes.png"
        image.write_bytes(b"not really a png")
        assert validate_local_asset(image, config)[0] == "image/png"

    def test_too_large(self, jpeg_file, config):
        config.max_upload_bytes = 10
        with pytest.raises(CloudImageAssetSizeError) as exc_info:
            validate_local_asset(jpeg_file, config)
        assert exc_info.value.context["max_bytes"] == 10
        assert exc_info.value.context["size_bytes"] == jpeg_file.stat().st_size

    def test_restricted_allowlist(self, jpeg_file, config):
        config.allowed_mimes = ["image/png"]
        with pytest.raises(CloudImageAssetTypeError):
            validate_local_asset(jpeg_file, config)
