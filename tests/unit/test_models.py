"""Unit tests for capture and watermark domain models."""

from __future__ import annotations

import pytest
from PIL import Image
from pydantic import ValidationError

from pdfbuddy.models.capture import (
    STATE_DESCRIPTIONS,
    STATE_TRANSITIONS,
    CaptureRequest,
    CaptureResult,
    CaptureState,
    CaptureStatus,
    ContentFilters,
    Orientation,
)
from pdfbuddy.models.raster import PageSlice, StitchedImage
from pdfbuddy.models.watermark import DEFAULT_TEXT_WATERMARK, Template, WatermarkConfig


class TestOrientation:
    @pytest.mark.parametrize(
        "size, expected",
        [
            ((800, 600), Orientation.LANDSCAPE),
            ((600, 800), Orientation.PORTRAIT),
            ((500, 500), Orientation.PORTRAIT),
            ((501, 500), Orientation.LANDSCAPE),
        ],
    )
    def test_strictly_wider_is_landscape(self, size, expected) -> None:
        assert Orientation.of(*size) is expected


class TestCaptureRequest:
    def test_defaults(self) -> None:
        req = CaptureRequest(tab_id="tab-1")
        assert req.page_layout == "auto"
        assert req.capture_full_page is True
        assert req.content_filters == ContentFilters()
        assert req.watermark is None
        assert req.use_last_watermark is False
        assert len(req.request_id) == 12

    def test_accepts_camel_case_payload(self) -> None:
        req = CaptureRequest.model_validate(
            {
                "tab_id": "tab-7",
                "pageLayout": "landscape",
                "captureFullPage": False,
                "contentFilters": {"includeImages": False, "includeNav": True},
                "watermark": {"text": "DRAFT", "fontSize": 30},
            }
        )
        assert req.tab_id == "tab-7"
        assert req.page_layout == "landscape"
        assert req.capture_full_page is False
        assert req.content_filters.include_images is False
        assert req.content_filters.include_nav is True
        assert req.watermark.text == "DRAFT"
        assert req.watermark.font_size == 30

    def test_is_immutable(self) -> None:
        req = CaptureRequest(tab_id="tab-1")
        with pytest.raises(ValidationError):
            req.page_layout = "portrait"

    def test_filters_default_keep_images_only(self) -> None:
        f = ContentFilters()
        assert (f.include_images, f.include_banners, f.include_ads, f.include_nav) == (True, False, False, False)


class TestStateMachine:
    def test_forward_path_returns_to_idle(self) -> None:
        state, seen = CaptureState.IDLE, []
        for _ in range(len(STATE_TRANSITIONS)):
            state = STATE_TRANSITIONS[state]
            seen.append(state)
            if state is CaptureState.IDLE:
                break
        assert seen == [
            CaptureState.PREPARING,
            CaptureState.CAPTURING,
            CaptureState.STITCHING,
            CaptureState.PLANNING,
            CaptureState.WATERMARKING,
            CaptureState.ASSEMBLING,
            CaptureState.DOWNLOADING,
            CaptureState.IDLE,
        ]

    def test_every_state_has_a_description(self) -> None:
        assert set(STATE_DESCRIPTIONS) == set(CaptureState)

    def test_result_success(self) -> None:
        assert CaptureResult(request_id="r", status=CaptureStatus.COMPLETED).success
        assert not CaptureResult(request_id="r", status=CaptureStatus.FAILED).success


class TestRaster:
    def test_stitched_orientation(self) -> None:
        stitched = StitchedImage(Image.new("RGB", (1024, 3000)))
        assert stitched.orientation is Orientation.PORTRAIT
        assert (stitched.width, stitched.height) == (1024, 3000)

    def test_slice_crop(self) -> None:
        stitched = StitchedImage(Image.new("RGB", (100, 300)))
        piece = PageSlice(source=stitched, offset=250, height=50, index=1)
        assert piece.crop().size == (100, 50)
        assert piece.width == 100


class TestWatermarkModels:
    def test_storage_uses_camel_case(self) -> None:
        stored = DEFAULT_TEXT_WATERMARK.to_storage()
        assert stored["fontSize"] == 48
        assert stored["fontFamily"] == "Arial"
        assert stored["rotation"] == -45
        assert "font_size" not in stored

    def test_storage_round_trip(self) -> None:
        cfg = WatermarkConfig(text="DRAFT", color="#808080", position="topRight")
        assert WatermarkConfig.model_validate(cfg.to_storage()) == cfg

    def test_template_camel_keys(self) -> None:
        tpl = Template(name="Draft", config=DEFAULT_TEXT_WATERMARK)
        dumped = tpl.model_dump(mode="json", by_alias=True)
        assert {"id", "name", "config", "createdAt", "updatedAt"} <= set(dumped)
        assert Template.model_validate(dumped).id == tpl.id
