"""Unit tests for watermark placement, gating and rendering."""

from __future__ import annotations

import base64
import math
from contextlib import contextmanager
from io import BytesIO

import pytest
from PIL import Image

from pdfbuddy.exceptions import EntitlementError, WatermarkError
from pdfbuddy.models.watermark import DEFAULT_TEXT_WATERMARK, WatermarkConfig, WatermarkPosition
from pdfbuddy.watermark.engine import (
    IMAGE_WATERMARK_FEATURE,
    POSITION_TABLE,
    Placement,
    StaticFeatureGate,
    WatermarkEngine,
    image_watermark_size,
    load_watermark_image,
    place,
    settings_feature_gate,
)
from pdfbuddy.watermark.surfaces import PillowSurface, parse_color, pdf_font_name


def _logo_data_url(size=(40, 20), color=(0, 0, 255, 255)) -> str:
    buf = BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()


class RecordingSurface:
    """Records every call and tracks scope depth."""

    def __init__(self, width=800, height=600, fail_on: str | None = None) -> None:
        self.width = width
        self.height = height
        self.calls: list[tuple] = []
        self.depth = 0
        self.fail_on = fail_on

    @contextmanager
    def scoped_state(self):
        self.depth += 1
        self.calls.append(("save",))
        try:
            yield self
        finally:
            self.depth -= 1
            self.calls.append(("restore",))

    def _record(self, name, *args):
        if name == self.fail_on:
            raise RuntimeError(f"{name} exploded")
        self.calls.append((name, *args))

    def set_alpha(self, alpha):
        self._record("alpha", alpha)

    def set_fill_color(self, color):
        self._record("fill", color)

    def set_font(self, family, size):
        self._record("font", family, size)

    def translate(self, dx, dy):
        self._record("translate", dx, dy)

    def rotate(self, radians):
        self._record("rotate", radians)

    def draw_text(self, text, align="center"):
        self._record("text", text, align)

    def draw_image(self, image, width, height):
        self._record("image", width, height)


class TestPlacement:
    def test_confidential_on_800x600(self) -> None:
        p = place(DEFAULT_TEXT_WATERMARK, 800, 600)
        assert (p.x, p.y) == (400, 300)
        assert p.rotation_radians == pytest.approx(-45 * math.pi / 180)
        assert p.align == "center"

    def test_is_pure(self) -> None:
        assert place(DEFAULT_TEXT_WATERMARK, 612, 792) == place(DEFAULT_TEXT_WATERMARK, 612, 792)

    @pytest.mark.parametrize("position", list(WatermarkPosition))
    def test_position_table(self, position) -> None:
        fx, fy, align = POSITION_TABLE[position]
        p = place(WatermarkConfig(position=position, rotation=0), 1000, 500)
        assert p == Placement(1000 * fx, 500 * fy, 0.0, align)

    def test_image_box_is_thirty_percent(self) -> None:
        assert image_watermark_size(1000, 1000, 200, 100) == pytest.approx((300, 150))
        assert image_watermark_size(1000, 1000, 200, 100, scale=2) == pytest.approx((600, 300))


class TestEntitlements:
    def test_image_watermark_requires_feature(self) -> None:
        config = WatermarkConfig(type="image", image_data=_logo_data_url())
        with pytest.raises(EntitlementError) as exc_info:
            WatermarkEngine().check(config)
        assert exc_info.value.feature == IMAGE_WATERMARK_FEATURE

    def test_entitled_image_without_data(self) -> None:
        engine = WatermarkEngine(StaticFeatureGate([IMAGE_WATERMARK_FEATURE]))
        with pytest.raises(WatermarkError):
            engine.check(WatermarkConfig(type="image"))

    def test_text_is_always_allowed(self) -> None:
        WatermarkEngine().check(DEFAULT_TEXT_WATERMARK)

    def test_gate_from_settings(self, monkeypatch) -> None:
        from pdfbuddy.settings import get_settings

        monkeypatch.setenv("PDFBUDDY_LICENSE__FEATURES", '["image_watermark"]')
        get_settings.cache_clear()
        assert settings_feature_gate().has_feature(IMAGE_WATERMARK_FEATURE)


class TestRender:
    def test_text_call_sequence(self) -> None:
        surface = RecordingSurface()
        WatermarkEngine().render(DEFAULT_TEXT_WATERMARK, surface)
        assert surface.calls == [
            ("save",),
            ("alpha", 0.5),
            ("fill", "#FF0000"),
            ("font", "Arial", 48),
            ("translate", 400, 300),
            ("rotate", pytest.approx(-math.pi / 4)),
            ("text", "CONFIDENTIAL", "center"),
            ("restore",),
        ]
        assert surface.depth == 0

    def test_state_restored_when_drawing_fails(self) -> None:
        surface = RecordingSurface(fail_on="text")
        with pytest.raises(WatermarkError) as exc_info:
            WatermarkEngine().render(DEFAULT_TEXT_WATERMARK, surface)
        assert surface.depth == 0
        assert surface.calls[-1] == ("restore",)
        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_image_render_sizes_box(self) -> None:
        surface = RecordingSurface(1000, 1000)
        engine = WatermarkEngine(StaticFeatureGate([IMAGE_WATERMARK_FEATURE]))
        engine.render(WatermarkConfig(type="image", image_data=_logo_data_url((200, 100))), surface)
        assert ("image", pytest.approx(300), pytest.approx(150)) in surface.calls

    def test_undecodable_image(self) -> None:
        with pytest.raises(WatermarkError):
            load_watermark_image("data:image/png;base64,aGVsbG8=")


class TestPillowSurface:
    def test_preview_draws_pixels(self) -> None:
        preview = WatermarkEngine().preview(WatermarkConfig(text="DRAFT", opacity=1.0, rotation=0), (400, 200))
        assert preview.size == (400, 200)
        colors = {c for _, c in preview.convert("RGB").getcolors(maxcolors=100_000)}
        assert colors != {(255, 255, 255)}

    def test_image_watermark_is_centered(self) -> None:
        engine = WatermarkEngine(StaticFeatureGate([IMAGE_WATERMARK_FEATURE]))
        config = WatermarkConfig(type="image", image_data=_logo_data_url((100, 100)), opacity=1.0)
        preview = engine.preview(config, (200, 200)).convert("RGB")
        assert preview.getpixel((100, 100)) == (0, 0, 255)
        assert preview.getpixel((5, 5)) == (255, 255, 255)

    def test_scoped_state_restores_transform(self) -> None:
        surface = PillowSurface(Image.new("RGB", (10, 10)))
        with surface.scoped_state():
            surface.translate(5, 5)
            surface.rotate(1.0)
        assert surface._origin() == (0.0, 0.0)
        assert surface._state["angle"] == 0.0


class TestColours:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("#FF0000", (255, 0, 0, 1.0)),
            ("rgb(0, 128, 255)", (0, 128, 255, 1.0)),
            ("rgba(1,2,3,0.25)", (1, 2, 3, 0.25)),
            ("grey", (128, 128, 128, 1.0)),
            ("transparent", (0, 0, 0, 0.0)),
        ],
    )
    def test_parse_color(self, value, expected) -> None:
        assert parse_color(value) == expected

    def test_pdf_font_mapping(self) -> None:
        assert pdf_font_name("Georgia") == "Times-Roman"
        assert pdf_font_name("Courier New") == "Courier"
        assert pdf_font_name("Unknown") == "Helvetica"
