"""Tests for cloudimg.delivery.descriptors."""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock, MagicMock

import pytest

from cloudimg.delivery.descriptors import (
    async_build_fixed,
    async_build_fluid,
    build_fixed,
    build_fluid,
    fluid_sizes,
    to_data_uri,
)
from cloudimg.errors import (
    CloudImageInvalidDimensionError,
    CloudImageNetworkError,
    CloudImagePlaceholderFetchError,
)
from cloudimg.models import TransformationSpec, UploadMetadata

BASE = "https://res.cloudinary.com/demo/image/upload"
PLACEHOLDER = b"tiny-jpeg"


def _meta(width=4032, height=3024, version=7) -> UploadMetadata:
    return UploadMetadata(
        public_id="blog/hero",
        width=width,
        height=height,
        format="jpg",
        secure_url=f"{BASE}/blog/hero.jpg",
        version=version,
    )


def _fetch(body=PLACEHOLDER, content_type="image/jpeg"):
    return MagicMock(return_value=(body, content_type))


SPEC = TransformationSpec.of()


class TestFixed:
    def test_default_width_and_retina(self):
        fetch = _fetch()
        d = build_fixed(_meta(), SPEC, fetch, cloud_name="demo")

        assert d.kind == "fixed"
        assert d.width == 400
        assert d.height == 300
        assert d.aspect_ratio == pytest.approx(0.75)
        assert d.src == f"{BASE}/f_auto,q_auto,w_400/v7/blog/hero"
        assert [(e.width, e.density) for e in d.src_set] == [(400, "1x"), (800, "2x")]
        assert d.src_set[1].url == f"{BASE}/f_auto,q_auto,w_800/v7/blog/hero"
        assert d.src_set_string == (
            f"{BASE}/f_auto,q_auto,w_400/v7/blog/hero 1x,\n"
            f"{BASE}/f_auto,q_auto,w_800/v7/blog/hero 2x"
        )

    def test_placeholder_is_data_uri_of_tiny_variant(self):
        fetch = _fetch()
        d = build_fixed(_meta(), SPEC, fetch, cloud_name="demo")

        fetch.assert_called_once_with(f"{BASE}/f_auto,q_auto,w_30/v7/blog/hero")
        assert d.base64 == "data:image/jpeg;base64," + base64.b64encode(PLACEHOLDER).decode()

    def test_width_capped_at_original(self):
        d = build_fixed(_meta(width=300, height=150), SPEC, _fetch(), width=400, cloud_name="demo")
        assert d.width == 300
        assert d.height == 150
        assert [e.width for e in d.src_set] == [300, 300]

    def test_retina_capped_at_original(self):
        d = build_fixed(_meta(width=600, height=600), SPEC, _fetch(), width=400, cloud_name="demo")
        assert [e.width for e in d.src_set] == [400, 600]

    def test_transformations_in_every_url(self):
        spec = TransformationSpec.of(transformations=["ar_1:1", "c_fill"], chained=["e_grayscale"])
        fetch = _fetch()
        d = build_fixed(_meta(), spec, fetch, width=200, cloud_name="demo")

        assert d.src == f"{BASE}/f_auto,q_auto,ar_1:1,c_fill,w_200/e_grayscale/v7/blog/hero"
        assert all("/e_grayscale/" in e.url for e in d.src_set)
        assert "/e_grayscale/" in fetch.call_args.args[0]

    def test_to_dict_shape(self):
        d = build_fixed(_meta(), SPEC, _fetch(), cloud_name="demo").to_dict()
        assert set(d) == {"aspectRatio", "base64", "src", "srcSet", "width", "height"}

    def test_no_version_segment_when_unknown(self):
        d = build_fixed(_meta(version=None), SPEC, _fetch(), cloud_name="demo")
        assert d.src == f"{BASE}/f_auto,q_auto,w_400/blog/hero"

    def test_metrics_counted(self, metrics):
        build_fixed(_meta(), SPEC, _fetch(), cloud_name="demo", metrics=metrics)
        assert metrics.count("cloudimg.placeholder_fetch_total", status="ok") == 1


class TestFluid:
    def test_local_plan(self):
        d = build_fluid(_meta(), SPEC, _fetch(), max_width=1000, cloud_name="demo")

        widths = [e.width for e in d.src_set]
        assert widths == list(range(50, 1001, 50))
        assert d.src == f"{BASE}/f_auto,q_auto,w_1000/v7/blog/hero"
        assert d.width == 1000
        assert d.height == 750
        assert d.sizes == "(max-width: 1000px) 100vw, 1000px"
        assert d.presentation_width == 1000
        assert d.presentation_height == 750
        assert d.src_set[0].descriptor() == f"{BASE}/f_auto,q_auto,w_50/v7/blog/hero 50w"

    def test_max_width_defaults_to_original(self):
        d = build_fluid(_meta(width=800, height=400), SPEC, _fetch(), cloud_name="demo", max_images=3)
        assert d.src_set[-1].width == 800
        assert d.sizes == fluid_sizes(800)

    def test_max_width_capped_at_original(self):
        d = build_fluid(_meta(width=640, height=480), SPEC, _fetch(), max_width=1000, cloud_name="demo")
        assert d.width == 640
        assert d.src_set[-1].width == 640

    def test_given_breakpoints_sorted_and_deduplicated(self):
        d = build_fluid(
            _meta(), SPEC, _fetch(), max_width=1000, breakpoints=[800, 320, 800, 1000],
            cloud_name="demo",
        )
        assert [e.width for e in d.src_set] == [320, 800, 1000]

    def test_small_original_single_candidate(self):
        d = build_fluid(_meta(width=30, height=30), SPEC, _fetch(), cloud_name="demo")
        assert [e.width for e in d.src_set] == [30]
        assert d.width == 30

    def test_to_dict_shape(self):
        d = build_fluid(_meta(), SPEC, _fetch(), max_width=1000, cloud_name="demo").to_dict()
        assert d["sizes"] == "(max-width: 1000px) 100vw, 1000px"
        assert d["presentationWidth"] == 1000
        assert d["srcSet"].count("w,\n") == 19


class TestFailures:
    @pytest.mark.parametrize(
        "meta",
        [_meta(width=0), _meta(height=-5), _meta(width=float("nan"))],
    )
    def test_bad_original_rejected_before_fetch(self, meta):
        fetch = _fetch()
        with pytest.raises(CloudImageInvalidDimensionError):
            build_fixed(meta, SPEC, fetch, cloud_name="demo")
        with pytest.raises(CloudImageInvalidDimensionError):
            build_fluid(meta, SPEC, fetch, cloud_name="demo")
        fetch.assert_not_called()

    @pytest.mark.parametrize("kwargs", [dict(width=0), dict(base64_width=-1), dict(width=12.5)])
    def test_bad_fixed_width_rejected(self, kwargs):
        fetch = _fetch()
        with pytest.raises(CloudImageInvalidDimensionError):
            build_fixed(_meta(), SPEC, fetch, cloud_name="demo", **kwargs)
        fetch.assert_not_called()

    def test_bad_breakpoint_rejected(self):
        fetch = _fetch()
        with pytest.raises(CloudImageInvalidDimensionError):
            build_fluid(_meta(), SPEC, fetch, breakpoints=[100, 0], cloud_name="demo")
        fetch.assert_not_called()

    def test_fetch_failure_is_placeholder_error(self, metrics):
        fetch = MagicMock(side_effect=CloudImageNetworkError(message="boom", context={"url": "x"}))
        with pytest.raises(CloudImagePlaceholderFetchError) as exc_info:
            build_fixed(_meta(), SPEC, fetch, cloud_name="demo", metrics=metrics)

        err = exc_info.value
        assert err.context["public_id"] == "blog/hero"
        assert err.context["url"].endswith("/f_auto,q_auto,w_30/v7/blog/hero")
        assert isinstance(err.cause, CloudImageNetworkError)
        assert metrics.count("cloudimg.placeholder_fetch_total", status="error") == 1

    def test_empty_body_is_placeholder_error(self):
        with pytest.raises(CloudImagePlaceholderFetchError):
            build_fluid(_meta(), SPEC, _fetch(body=b""), cloud_name="demo")


class TestAsync:
    @pytest.mark.asyncio
    async def test_async_builders_match_sync(self):
        fetch = AsyncMock(return_value=(PLACEHOLDER, "image/jpeg"))
        fixed = await async_build_fixed(_meta(), SPEC, fetch, cloud_name="demo")
        fluid = await async_build_fluid(_meta(), SPEC, fetch, max_width=1000, cloud_name="demo")

        assert fixed == build_fixed(_meta(), SPEC, _fetch(), cloud_name="demo")
        assert fluid == build_fluid(_meta(), SPEC, _fetch(), max_width=1000, cloud_name="demo")
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_async_fetch_failure(self):
        fetch = AsyncMock(side_effect=CloudImageNetworkError(message="down"))
        with pytest.raises(CloudImagePlaceholderFetchError):
            await async_build_fluid(_meta(), SPEC, fetch, cloud_name="demo")


class TestDataUri:
    def test_default_type(self):
        assert to_data_uri(b"\x00", None) == "data:image/jpeg;base64,AA=="

    def test_parameters_stripped(self):
        assert to_data_uri(b"abc", "image/webp; q=1").startswith("data:image/webp;base64,")
