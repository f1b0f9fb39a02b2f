"""Unit tests for fail-open watermark validation."""

from __future__ import annotations

import base64
import math
from io import BytesIO

import pytest
from PIL import Image

from pdfbuddy.models.watermark import WatermarkConfig, WatermarkPosition, WatermarkType
from pdfbuddy.watermark.validation import (
    IMAGE_MAX_BYTES,
    SECURE_DEFAULTS,
    in_range,
    is_valid_color,
    normalize_font_family,
    normalize_image_data,
    normalize_position,
    sanitize_text,
    sanitize_watermark_fields,
    validate_watermark_config,
)


def _png_data_url(size=(4, 4)) -> str:
    buf = BytesIO()
    Image.new("RGBA", size, (0, 0, 255, 255)).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()


class TestSanitizeText:
    def test_strips_markup_and_entities(self) -> None:
        assert sanitize_text("<b>DRAFT</b>") == "DRAFT"
        assert sanitize_text("&lt;script&gt;alert(1)&lt;/script&gt;Secret") == "alert(1)Secret"

    def test_collapses_whitespace_and_control_chars(self) -> None:
        assert sanitize_text("  TOP\x00\n  SECRET\t ") == "TOP SECRET"

    def test_truncates_to_100(self) -> None:
        assert len(sanitize_text("x" * 250)) == 100

    @pytest.mark.parametrize("value", [None, 42, "", "   ", "<br/>"])
    def test_nothing_printable_returns_none(self, value) -> None:
        assert sanitize_text(value) is None

    def test_idempotent(self) -> None:
        once = sanitize_text("A &amp;amp; <i>B</i>")
        assert sanitize_text(once) == once


class TestFieldValidators:
    @pytest.mark.parametrize(
        "color",
        ["#fff", "#FF0000", "rgb(0, 128, 255)", "rgba(0,0,0,0.5)", "red", "Grey", "transparent"],
    )
    def test_valid_colors(self, color) -> None:
        assert is_valid_color(color)

    @pytest.mark.parametrize("color", ["notacolor", "#12", "#GGGGGG", "rgb(300,0,0)", "rgba(0,0,0,2)", 5, None])
    def test_invalid_colors(self, color) -> None:
        assert not is_valid_color(color)

    def test_font_family_is_canonicalised(self) -> None:
        assert normalize_font_family("'times new roman'") == "Times New Roman"
        assert normalize_font_family("Wingdings") is None

    @pytest.mark.parametrize(
        "raw, expected",
        [("center", "center"), ("topleft", "topLeft"), ("bottom_right", "bottomRight"), ("top-right", "topRight")],
    )
    def test_position_spellings(self, raw, expected) -> None:
        assert normalize_position(raw) == expected

    def test_in_range_rejects_bools_and_nan(self) -> None:
        assert in_range(0.5, (0, 1))
        assert not in_range(True, (0, 1))
        assert not in_range(math.nan, (0, 1))
        assert not in_range("0.5", (0, 1))

    def test_image_data_accepts_bare_base64(self) -> None:
        url = _png_data_url()
        bare = url.split(",", 1)[1]
        assert normalize_image_data(bare) == url

    def test_image_data_rejects_bad_payloads(self) -> None:
        assert normalize_image_data("data:text/html;base64,PGI+") is None
        assert normalize_image_data("data:image/png;base64,!!!") is None
        assert normalize_image_data("") is None

    def test_image_data_rejects_oversized(self) -> None:
        payload = base64.b64encode(b"\0" * (IMAGE_MAX_BYTES + 1)).decode()
        assert normalize_image_data(f"data:image/png;base64,{payload}") is None


class TestValidateWatermarkConfig:
    def test_invalid_fields_fall_back_to_secure_defaults(self) -> None:
        cfg = validate_watermark_config(
            {"opacity": 2, "color": "notacolor", "rotation": 200, "position": "invalid"}
        )
        assert cfg.opacity == 0.5
        assert cfg.color == "#FF0000"
        assert cfg.rotation == 0
        assert cfg.position is WatermarkPosition.CENTER

    @pytest.mark.parametrize("raw", [None, "CONFIDENTIAL", 42, ["text"]])
    def test_non_mapping_yields_default_text_watermark(self, raw) -> None:
        cfg = validate_watermark_config(raw)
        assert cfg.type is WatermarkType.TEXT
        assert cfg.text == SECURE_DEFAULTS["text"]

    def test_missing_or_unknown_type_defaults_to_text(self) -> None:
        assert validate_watermark_config({"type": "hologram"}).type is WatermarkType.TEXT

    def test_valid_config_passes_through(self) -> None:
        raw = {
            "type": "text",
            "text": "DRAFT",
            "color": "#808080",
            "fontSize": 36,
            "fontFamily": "Georgia",
            "rotation": -45,
            "position": "bottomRight",
            "opacity": 0.25,
        }
        cfg = validate_watermark_config(raw)
        assert (cfg.text, cfg.color, cfg.font_size, cfg.font_family) == ("DRAFT", "#808080", 36, "Georgia")
        assert cfg.rotation == -45
        assert cfg.position is WatermarkPosition.BOTTOM_RIGHT
        assert cfg.opacity == 0.25

    def test_font_size_bounds(self) -> None:
        assert validate_watermark_config({"font_size": 8}).font_size == 8
        assert validate_watermark_config({"font_size": 73}).font_size == 48
        assert validate_watermark_config({"font_size": True}).font_size == 48

    def test_invalid_image_data_becomes_none(self) -> None:
        cfg = validate_watermark_config({"type": "image", "imageData": "not-base64!"})
        assert cfg.type is WatermarkType.IMAGE
        assert cfg.image_data is None

    def test_accepts_existing_model(self) -> None:
        original = WatermarkConfig(text="KEEP", position="topLeft")
        assert validate_watermark_config(original) == original

    def test_sanitize_never_raises_on_garbage(self) -> None:
        out = sanitize_watermark_fields({"text": object(), "opacity": object(), "scale": "big"})
        assert out["text"] == "CONFIDENTIAL"
        assert out["opacity"] == 0.5
        assert out["scale"] == 1.0

    def test_replacement_is_logged(self, caplog) -> None:
        with caplog.at_level("INFO", logger="pdfbuddy.watermark.validation"):
            validate_watermark_config({"color": "nope"})
        assert "color" in caplog.text
