"""Tests for CloudImageConfig validation."""

from __future__ import annotations

import pytest

from cloudimg.config import DEFAULT_TRANSFORMATIONS, CloudImageConfig
from cloudimg.errors import CloudImageConfigurationError, ErrorCode

CREDS = dict(cloud_name="demo", api_key="123456789012345", api_secret="test_secret_abcd1234")


def test_defaults():
    config = CloudImageConfig(**CREDS)
    assert config.fluid_min_width == 50
    assert config.fluid_max_width == 1000
    assert config.breakpoints_max_images == 20
    assert config.fixed_default_width == 400
    assert config.base64_width == 30
    assert config.use_cloudinary_breakpoints is False
    assert config.overwrite_existing is False
    assert config.default_transformations == ["f_auto", "q_auto"]


def test_default_transformations_not_shared():
    a = CloudImageConfig(**CREDS)
    a.default_transformations.append("dpr_2.0")
    assert CloudImageConfig(**CREDS).default_transformations == DEFAULT_TRANSFORMATIONS


@pytest.mark.parametrize("missing", ["cloud_name", "api_key", "api_secret"])
def test_missing_credentials(missing):
    kwargs = {**CREDS, missing: ""}
    with pytest.raises(CloudImageConfigurationError) as exc_info:
        CloudImageConfig(**kwargs)
    assert exc_info.value.code == ErrorCode.CONFIGURATION_INVALID
    assert exc_info.value.context["field"] == missing


@pytest.mark.parametrize(
    "field,value",
    [
        ("fluid_min_width", 0),
        ("fluid_max_width", -1),
        ("breakpoints_max_images", 0),
        ("fixed_default_width", 2.5),
        ("base64_width", True),
        ("max_concurrent", 0),
        ("max_upload_bytes", 0),
        ("breakpoints_bytes_step", -1),
        ("timeout_seconds", 0),
    ],
)
def test_invalid_numbers(field, value):
    with pytest.raises(CloudImageConfigurationError) as exc_info:
        CloudImageConfig(**CREDS, **{field: value})
    assert exc_info.value.context["field"] == field


def test_min_above_max_rejected():
    with pytest.raises(CloudImageConfigurationError, match="must not exceed"):
        CloudImageConfig(**CREDS, fluid_min_width=500, fluid_max_width=400)


@pytest.mark.parametrize("field", ["api_base_url", "delivery_base_url"])
def test_insecure_remote_http_rejected(field):
    with pytest.raises(CloudImageConfigurationError, match="insecure HTTP"):
        CloudImageConfig(**CREDS, **{field: "http://cdn.example.com"})


def test_local_http_allowed():
    config = CloudImageConfig(**CREDS, api_base_url="http://localhost:8080/v1_1")
    assert config.api_base_url.startswith("http://localhost")


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        CloudImageConfig()


def test_repr_masks_credentials():
    text = repr(CloudImageConfig(**CREDS))
    assert "test_secret_abcd1234" not in text
    assert "123456789012345" not in text
    assert "api_secret='...1234'" in text
    assert "cloud_name='demo'" in text
