"""Drawing surfaces the watermark engine renders onto.

Both surfaces expose the same small, canvas-like API in top-down
coordinates (origin at the top-left, y growing downwards, positive
rotation turning clockwise on screen). Every state change made inside
``scoped_state()`` is undone when the block exits, including on error,
so a watermark never leaks transform, alpha or fill into later drawing.
"""

from __future__ import annotations

import math
import re
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, Protocol

from PIL import Image, ImageColor, ImageDraw, ImageFont

if TYPE_CHECKING:
    from reportlab.pdfgen.canvas import Canvas

_RGBA = re.compile(r"^rgba\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d*\.?\d+)\s*\)$", re.IGNORECASE)

# Allow-listed families mapped onto the PDF standard fonts.
PDF_FONTS: dict[str, str] = {
    "Arial": "Helvetica",
    "Helvetica": "Helvetica",
    "Verdana": "Helvetica",
    "Tahoma": "Helvetica",
    "Trebuchet MS": "Helvetica",
    "Comic Sans MS": "Helvetica",
    "Arial Black": "Helvetica-Bold",
    "Impact": "Helvetica-Bold",
    "Times New Roman": "Times-Roman",
    "Times": "Times-Roman",
    "Georgia": "Times-Roman",
    "Palatino": "Times-Roman",
    "Garamond": "Times-Roman",
    "Bookman": "Times-Roman",
    "Courier New": "Courier",
    "Courier": "Courier",
}

# Vertical offset from the middle of the text to its baseline, as a fraction of the font size.
_MIDDLE_TO_BASELINE = 0.35


def parse_color(value: str) -> tuple[int, int, int, float]:
    """Return ``(r, g, b, alpha)`` for a validated colour string."""
    color = value.strip()
    if color.lower() == "transparent":
        return 0, 0, 0, 0.0
    m = _RGBA.match(color)
    if m:
        r, g, b, a = m.groups()
        return int(r), int(g), int(b), float(a)
    r, g, b = ImageColor.getrgb(color)[:3]
    return r, g, b, 1.0


def pdf_font_name(family: str) -> str:
    return PDF_FONTS.get(family, "Helvetica")


class WatermarkSurface(Protocol):
    """Minimal 2D drawing API with scoped state."""

    width: float
    height: float

    def scoped_state(self): ...

    def set_alpha(self, alpha: float) -> None: ...

    def set_fill_color(self, color: str) -> None: ...

    def set_font(self, family: str, size: float) -> None: ...

    def translate(self, dx: float, dy: float) -> None: ...

    def rotate(self, radians: float) -> None: ...

    def draw_text(self, text: str, align: str = "center") -> None: ...

    def draw_image(self, image: Image.Image, width: float, height: float) -> None: ...


# ---------------------------------------------------------------------------
# ReportLab (PDF page)
# ---------------------------------------------------------------------------


class ReportLabSurface:
    """A rectangular region of a reportlab canvas.

    ReportLab's native space is y-up from the bottom-left. Each top-down
    operation is mapped onto its y-up mirror image, so text and images
    come out upright and turn the same way as on the raster surface.

    Args:
        canvas: The page canvas.
        width: Region width in points.
        height: Region height in points.
        origin: Bottom-left corner of the region in canvas coordinates.
    """

    def __init__(self, canvas: Canvas, width: float, height: float, origin: tuple[float, float] = (0.0, 0.0)) -> None:
        self.canvas = canvas
        self.width = width
        self.height = height
        self.origin = origin
        self._depth = 0
        self._alpha = 1.0
        self._font_size = 12.0

    @contextmanager
    def scoped_state(self) -> Iterator["ReportLabSurface"]:
        saved = (self._alpha, self._font_size)
        self.canvas.saveState()
        self._depth += 1
        try:
            if self._depth == 1:
                x0, y0 = self.origin
                self.canvas.translate(x0, y0 + self.height)
            yield self
        finally:
            self._depth -= 1
            self.canvas.restoreState()
            self._alpha, self._font_size = saved

    def _require_scope(self) -> None:
        if self._depth == 0:
            raise RuntimeError("drawing on a ReportLabSurface requires scoped_state()")

    def set_alpha(self, alpha: float) -> None:
        self._require_scope()
        self._alpha = alpha
        self.canvas.setFillAlpha(alpha)
        self.canvas.setStrokeAlpha(alpha)

    def set_fill_color(self, color: str) -> None:
        self._require_scope()
        r, g, b, a = parse_color(color)
        self.canvas.setFillColorRGB(r / 255, g / 255, b / 255)
        if a < 1.0:
            self.canvas.setFillAlpha(self._alpha * a)

    def set_font(self, family: str, size: float) -> None:
        self._require_scope()
        self._font_size = size
        self.canvas.setFont(pdf_font_name(family), size)

    def translate(self, dx: float, dy: float) -> None:
        self._require_scope()
        self.canvas.translate(dx, -dy)

    def rotate(self, radians: float) -> None:
        self._require_scope()
        self.canvas.rotate(-math.degrees(radians))

    def draw_text(self, text: str, align: str = "center") -> None:
        self._require_scope()
        baseline = -_MIDDLE_TO_BASELINE * self._font_size
        if align == "left":
            self.canvas.drawString(0, baseline, text)
        elif align == "right":
            self.canvas.drawRightString(0, baseline, text)
        else:
            self.canvas.drawCentredString(0, baseline, text)

    def draw_image(self, image: Image.Image, width: float, height: float) -> None:
        """Draw *image* scaled to ``width x height`` and centred on the origin."""
        from reportlab.lib.utils import ImageReader

        self._require_scope()
        self.canvas.drawImage(ImageReader(image), -width / 2, -height / 2, width, height, mask="auto")


# ---------------------------------------------------------------------------
# Pillow (raster)
# ---------------------------------------------------------------------------


class PillowSurface:
    """Draw onto a copy of a Pillow image.

    Each primitive is rendered onto its own transparent layer, rotated
    about the current origin and alpha-composited onto the image. Read
    the result from ``image``.
    """

    def __init__(self, image: Image.Image) -> None:
        self.image = image.convert("RGBA")
        self.width = self.image.width
        self.height = self.image.height
        self._state = self._initial_state()
        self._stack: list[dict] = []

    @staticmethod
    def _initial_state() -> dict:
        return {
            # Affine (a, b, c, d, e, f): x' = a*x + c*y + e, y' = b*x + d*y + f
            "matrix": (1.0, 0.0, 0.0, 1.0, 0.0, 0.0),
            "angle": 0.0,
            "alpha": 1.0,
            "fill": (0, 0, 0, 1.0),
            "font": ("Arial", 12.0),
        }

    @contextmanager
    def scoped_state(self) -> Iterator["PillowSurface"]:
        self._stack.append(dict(self._state))
        try:
            yield self
        finally:
            self._state = self._stack.pop()

    def set_alpha(self, alpha: float) -> None:
        self._state["alpha"] = alpha

    def set_fill_color(self, color: str) -> None:
        self._state["fill"] = parse_color(color)

    def set_font(self, family: str, size: float) -> None:
        self._state["font"] = (family, size)

    def translate(self, dx: float, dy: float) -> None:
        a, b, c, d, e, f = self._state["matrix"]
        self._state["matrix"] = (a, b, c, d, e + a * dx + c * dy, f + b * dx + d * dy)

    def rotate(self, radians: float) -> None:
        a, b, c, d, e, f = self._state["matrix"]
        cos, sin = math.cos(radians), math.sin(radians)
        self._state["matrix"] = (a * cos + c * sin, b * cos + d * sin, c * cos - a * sin, d * cos - b * sin, e, f)
        self._state["angle"] += radians

    def _origin(self) -> tuple[float, float]:
        _, _, _, _, e, f = self._state["matrix"]
        return e, f

    def _composite(self, layer: Image.Image) -> None:
        """Rotate *layer* about its centre and composite it centred on the origin."""
        angle = math.degrees(self._state["angle"])
        if angle:
            layer = layer.rotate(-angle, resample=Image.BICUBIC, expand=True)
        x, y = self._origin()
        overlay = Image.new("RGBA", self.image.size, (0, 0, 0, 0))
        overlay.paste(layer, (round(x - layer.width / 2), round(y - layer.height / 2)), layer)
        self.image = Image.alpha_composite(self.image, overlay)

    def _font(self) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
        _, size = self._state["font"]
        return ImageFont.load_default(size=max(1, round(size)))

    def draw_text(self, text: str, align: str = "center") -> None:
        font = self._font()
        probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
        left, top, right, bottom = probe.textbbox((0, 0), text, font=font)
        tw, th = right - left, bottom - top

        # Square-ish layer with the anchor at its centre so rotation pivots on the anchor.
        layer = Image.new("RGBA", (2 * tw + 4, 2 * th + 4), (0, 0, 0, 0))
        cx, cy = layer.width / 2, layer.height / 2
        if align == "left":
            x = cx
        elif align == "right":
            x = cx - tw
        else:
            x = cx - tw / 2
        r, g, b, a = self._state["fill"]
        fill = (r, g, b, round(255 * a * self._state["alpha"]))
        ImageDraw.Draw(layer).text((x - left, cy - th / 2 - top), text, font=font, fill=fill)
        self._composite(layer)

    def draw_image(self, image: Image.Image, width: float, height: float) -> None:
        """Draw *image* scaled to ``width x height`` and centred on the origin."""
        layer = image.convert("RGBA").resize((max(1, round(width)), max(1, round(height))), Image.LANCZOS)
        alpha = self._state["alpha"]
        if alpha < 1.0:
            layer.putalpha(layer.getchannel("A").point(lambda v: round(v * alpha)))
        self._composite(layer)
