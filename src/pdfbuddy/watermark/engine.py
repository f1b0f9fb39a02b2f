"""Watermark engine: placement geometry, entitlement gating and rendering."""

from __future__ import annotations

import base64
import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from io import BytesIO
from typing import Protocol, runtime_checkable

from PIL import Image

from pdfbuddy.exceptions import EntitlementError, WatermarkError
from pdfbuddy.models.watermark import WatermarkConfig, WatermarkPosition, WatermarkType
from pdfbuddy.watermark.surfaces import PillowSurface, WatermarkSurface

logger = logging.getLogger(__name__)

IMAGE_WATERMARK_FEATURE = "image_watermark"
UNLIMITED_TEMPLATES_FEATURE = "unlimited_templates"

# Fraction of the surface each image watermark may occupy per axis, before scale.
IMAGE_BOX_FRACTION = 0.3

# position -> (x fraction, y fraction, text alignment)
POSITION_TABLE: dict[WatermarkPosition, tuple[float, float, str]] = {
    WatermarkPosition.CENTER: (0.5, 0.5, "center"),
    WatermarkPosition.TOP_LEFT: (0.1, 0.1, "left"),
    WatermarkPosition.TOP_RIGHT: (0.9, 0.1, "right"),
    WatermarkPosition.BOTTOM_LEFT: (0.1, 0.9, "left"),
    WatermarkPosition.BOTTOM_RIGHT: (0.9, 0.9, "right"),
}


@dataclass(frozen=True)
class Placement:
    """Where and how a watermark is anchored on a surface."""

    x: float
    y: float
    rotation_radians: float
    align: str = "center"


def place(config: WatermarkConfig, width: float, height: float) -> Placement:
    """Compute the anchor point and rotation for *config* on a ``width x height`` surface.

    Pure: identical inputs always give identical placements.
    """
    fx, fy, align = POSITION_TABLE.get(config.position, POSITION_TABLE[WatermarkPosition.CENTER])
    return Placement(
        x=width * fx,
        y=height * fy,
        rotation_radians=config.rotation * math.pi / 180,
        align=align,
    )


def image_watermark_size(
    surface_width: float, surface_height: float, image_width: int, image_height: int, scale: float = 1.0
) -> tuple[float, float]:
    """Fit the image into 30% of the surface per axis (times *scale*), keeping aspect."""
    box_w = surface_width * IMAGE_BOX_FRACTION * scale
    box_h = surface_height * IMAGE_BOX_FRACTION * scale
    ratio = min(box_w / image_width, box_h / image_height)
    return image_width * ratio, image_height * ratio


def load_watermark_image(image_data: str) -> Image.Image:
    """Decode a validated ``data:image/...;base64,`` URL into an RGBA image."""
    try:
        _, _, payload = image_data.partition(",")
        with Image.open(BytesIO(base64.b64decode(payload or image_data))) as img:
            img.load()
            return img.convert("RGBA")
    except Exception as e:
        raise WatermarkError("Watermark image could not be decoded", cause=e) from e


# ---------------------------------------------------------------------------
# Entitlements
# ---------------------------------------------------------------------------


@runtime_checkable
class FeatureGate(Protocol):
    """Answers whether a premium feature is available."""

    def has_feature(self, name: str) -> bool: ...


class StaticFeatureGate:
    """A fixed set of granted features."""

    def __init__(self, features: Iterable[str] = ()) -> None:
        self.features = frozenset(features)

    def has_feature(self, name: str) -> bool:
        return name in self.features

    def __repr__(self) -> str:
        return f"StaticFeatureGate({sorted(self.features)!r})"


def settings_feature_gate(settings=None) -> StaticFeatureGate:
    """Build a gate from ``license.features`` in settings."""
    if settings is None:
        from pdfbuddy.settings import get_settings

        settings = get_settings()
    return StaticFeatureGate(settings.license.features)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class WatermarkEngine:
    """Render watermark configs onto surfaces.

    Args:
        feature_gate: Entitlement query; image watermarks require
            ``image_watermark``. Defaults to no premium features.
    """

    def __init__(self, feature_gate: FeatureGate | None = None) -> None:
        self.feature_gate = feature_gate or StaticFeatureGate()

    def check(self, config: WatermarkConfig) -> None:
        """Raise if *config* cannot be rendered under the current entitlements.

        Raises:
            EntitlementError: image watermark without the feature.
            WatermarkError: image watermark without image data.
        """
        if config.type is WatermarkType.IMAGE:
            if not self.feature_gate.has_feature(IMAGE_WATERMARK_FEATURE):
                raise EntitlementError(IMAGE_WATERMARK_FEATURE)
            if not config.image_data:
                raise WatermarkError("Image watermark has no usable image data")

    def render(self, config: WatermarkConfig, surface: WatermarkSurface) -> Placement:
        """Draw *config* onto *surface* and return the placement used."""
        self.check(config)
        placement = place(config, surface.width, surface.height)
        try:
            if config.type is WatermarkType.IMAGE:
                self._render_image(config, surface, placement)
            else:
                self._render_text(config, surface, placement)
        except WatermarkError:
            raise
        except Exception as e:
            raise WatermarkError("Failed to apply watermark", cause=e) from e
        return placement

    def _render_text(self, config: WatermarkConfig, surface: WatermarkSurface, placement: Placement) -> None:
        with surface.scoped_state():
            surface.set_alpha(config.opacity)
            surface.set_fill_color(config.color)
            surface.set_font(config.font_family, config.font_size)
            surface.translate(placement.x, placement.y)
            surface.rotate(placement.rotation_radians)
            surface.draw_text(config.text, placement.align)

    def _render_image(self, config: WatermarkConfig, surface: WatermarkSurface, placement: Placement) -> None:
        image = load_watermark_image(config.image_data)
        w, h = image_watermark_size(surface.width, surface.height, image.width, image.height, config.scale)
        with surface.scoped_state():
            surface.set_alpha(config.opacity)
            surface.translate(placement.x, placement.y)
            surface.rotate(placement.rotation_radians)
            surface.draw_image(image, w, h)

    def preview(self, config: WatermarkConfig, size: tuple[int, int] = (800, 600)) -> Image.Image:
        """Render *config* on a blank white raster of *size*."""
        surface = PillowSurface(Image.new("RGB", size, "white"))
        self.render(config, surface)
        return surface.image

