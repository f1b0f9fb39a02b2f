"""Fail-open validation for watermark configurations.

Watermark fields are cosmetic, so an out-of-domain value is never an
error: each field is checked independently and replaced by its secure
default when it falls outside the allowed domain.
"""

from __future__ import annotations

import base64
import binascii
import html
import logging
import re
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pdfbuddy.models.watermark import WatermarkConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Domains and secure defaults
# ---------------------------------------------------------------------------

TEXT_MIN_LENGTH = 1
TEXT_MAX_LENGTH = 100
FONT_SIZE_RANGE = (8, 72)
ROTATION_RANGE = (-180, 180)
OPACITY_RANGE = (0.0, 1.0)
SCALE_RANGE = (0.1, 5.0)
IMAGE_MAX_BYTES = 5 * 1024 * 1024

SECURE_DEFAULTS: dict[str, Any] = {
    "type": "text",
    "text": "CONFIDENTIAL",
    "position": "center",
    "opacity": 0.5,
    "color": "#FF0000",
    "font_size": 48,
    "font_family": "Arial",
    "rotation": 0,
    "scale": 1.0,
}

POSITIONS = ("center", "topLeft", "topRight", "bottomLeft", "bottomRight")

FONT_FAMILIES = (
    "Arial",
    "Helvetica",
    "Times New Roman",
    "Times",
    "Courier New",
    "Courier",
    "Verdana",
    "Georgia",
    "Palatino",
    "Garamond",
    "Bookman",
    "Tahoma",
    "Trebuchet MS",
    "Arial Black",
    "Impact",
    "Comic Sans MS",
)

NAMED_COLORS = (
    "black",
    "white",
    "red",
    "green",
    "blue",
    "yellow",
    "purple",
    "orange",
    "gray",
    "grey",
    "cyan",
    "magenta",
    "pink",
    "brown",
    "transparent",
)

IMAGE_MIME_TYPES = ("image/png", "image/jpeg", "image/gif", "image/webp")

_HEX_COLOR = re.compile(r"^#([0-9a-f]{3}){1,2}$", re.IGNORECASE)
_RGB_COLOR = re.compile(r"^rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)$", re.IGNORECASE)
_RGBA_COLOR = re.compile(
    r"^rgba\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d*\.?\d+)\s*\)$", re.IGNORECASE
)
_DATA_URL = re.compile(r"^data:(?P<mime>[a-z]+/[a-z0-9.+-]+);base64,(?P<data>[A-Za-z0-9+/=\s]*)$", re.IGNORECASE)
_HTML_TAG = re.compile(r"<[^>]*>")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")

# Accepted spellings for the position field (camelCase, snake_case, kebab-case).
_POSITION_ALIASES = {p.lower(): p for p in POSITIONS} | {
    "top_left": "topLeft",
    "top-left": "topLeft",
    "top_right": "topRight",
    "top-right": "topRight",
    "bottom_left": "bottomLeft",
    "bottom-left": "bottomLeft",
    "bottom_right": "bottomRight",
    "bottom-right": "bottomRight",
}


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == value


def sanitize_text(value: Any) -> str | None:
    """Return *value* stripped of markup and control characters.

    Entities are decoded and tags removed until the text stops changing, so
    both ``<b>`` and ``&lt;b&gt;`` are stripped and a second pass is a no-op.
    Returns ``None`` when nothing printable remains.
    """
    if not isinstance(value, str):
        return None
    text, previous = value, None
    while text != previous:
        previous = text
        text = _HTML_TAG.sub("", html.unescape(text))
    text = _CONTROL_CHARS.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()
    if len(text) < TEXT_MIN_LENGTH:
        return None
    return text[:TEXT_MAX_LENGTH]


def is_valid_color(value: Any) -> bool:
    """Return True for hex, ``rgb()``/``rgba()`` or allow-listed named colours."""
    if not isinstance(value, str):
        return False
    color = value.strip()
    if _HEX_COLOR.match(color):
        return True
    m = _RGB_COLOR.match(color)
    if m:
        return all(0 <= int(c) <= 255 for c in m.groups())
    m = _RGBA_COLOR.match(color)
    if m:
        r, g, b, a = m.groups()
        return all(0 <= int(c) <= 255 for c in (r, g, b)) and 0.0 <= float(a) <= 1.0
    return color.lower() in NAMED_COLORS


def normalize_font_family(value: Any) -> str | None:
    """Return the canonical allow-listed spelling of *value*, or ``None``."""
    if not isinstance(value, str):
        return None
    wanted = value.replace('"', "").replace("'", "").strip().lower()
    for font in FONT_FAMILIES:
        if font.lower() == wanted:
            return font
    return None


def normalize_position(value: Any) -> str | None:
    """Map accepted spellings of a position to its canonical name."""
    if not isinstance(value, str):
        return None
    return _POSITION_ALIASES.get(value.strip().lower())


def in_range(value: Any, bounds: tuple[float, float]) -> bool:
    """Return True when *value* is a real number within the inclusive *bounds*."""
    lo, hi = bounds
    return _is_number(value) and lo <= value <= hi


def normalize_image_data(value: Any) -> str | None:
    """Validate a base64 image payload and return it as a data URL.

    Accepts a ``data:image/...;base64,`` URL or bare base64 (assumed PNG).
    Returns ``None`` for unsupported types, undecodable payloads, or
    payloads above ``IMAGE_MAX_BYTES``.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    m = _DATA_URL.match(raw)
    if m:
        mime, b64 = m.group("mime").lower(), m.group("data")
    elif raw.startswith("data:"):
        return None
    else:
        mime, b64 = "image/png", raw
    if mime not in IMAGE_MIME_TYPES:
        return None
    b64 = _WHITESPACE.sub("", b64)
    try:
        decoded = base64.b64decode(b64, validate=True)
    except (binascii.Error, ValueError):
        return None
    if not decoded or len(decoded) > IMAGE_MAX_BYTES:
        return None
    return f"data:{mime};base64,{b64}"


# ---------------------------------------------------------------------------
# Whole-config validation
# ---------------------------------------------------------------------------

# Persisted configs use camelCase keys; accept both.
_KEY_ALIASES = {
    "fontSize": "font_size",
    "fontFamily": "font_family",
    "imageData": "image_data",
}


def sanitize_watermark_fields(raw: Any) -> dict[str, Any]:
    """Return a dict of field values with every invalid field replaced.

    Never raises. Non-mapping input yields the default text watermark.
    """
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        if raw is not None:
            logger.warning("Watermark config of type %s replaced with defaults", type(raw).__name__)
        return dict(SECURE_DEFAULTS)

    data = {_KEY_ALIASES.get(k, k): v for k, v in raw.items()}
    replaced: list[str] = []

    def pick(name: str, value: Any, ok: bool) -> Any:
        if ok:
            return value
        if name in data:
            replaced.append(name)
        return SECURE_DEFAULTS[name]

    wm_type = data.get("type")
    wm_type = getattr(wm_type, "value", wm_type)
    out: dict[str, Any] = {"type": pick("type", wm_type, wm_type in ("text", "image"))}

    text = sanitize_text(data.get("text"))
    out["text"] = pick("text", text, text is not None)

    position = normalize_position(getattr(data.get("position"), "value", data.get("position")))
    out["position"] = pick("position", position, position is not None)

    out["opacity"] = pick("opacity", data.get("opacity"), in_range(data.get("opacity"), OPACITY_RANGE))
    color = data.get("color")
    out["color"] = pick("color", color.strip() if isinstance(color, str) else color, is_valid_color(color))
    out["font_size"] = pick("font_size", data.get("font_size"), in_range(data.get("font_size"), FONT_SIZE_RANGE))
    font = normalize_font_family(data.get("font_family"))
    out["font_family"] = pick("font_family", font, font is not None)
    out["rotation"] = pick("rotation", data.get("rotation"), in_range(data.get("rotation"), ROTATION_RANGE))
    out["scale"] = pick("scale", data.get("scale"), in_range(data.get("scale"), SCALE_RANGE))

    image_data = normalize_image_data(data.get("image_data"))
    if data.get("image_data") and image_data is None:
        replaced.append("image_data")
    out["image_data"] = image_data

    if replaced:
        logger.info("Watermark fields replaced with secure defaults: %s", ", ".join(sorted(replaced)))
    return out


def validate_watermark_config(raw: Any) -> WatermarkConfig:
    """Validate *raw* (dict, model, or anything) into a safe ``WatermarkConfig``."""
    from pdfbuddy.models.watermark import WatermarkConfig

    return WatermarkConfig.model_validate(sanitize_watermark_fields(raw))
