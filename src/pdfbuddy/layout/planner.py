"""Layout planner: choose orientation and split tall images into pages.

The effective page height in pixels is the printable page height scaled
to the image's pixel width, so every full slice has exactly the aspect
ratio of the printable area and is placed on its page without
letterboxing. Only the last slice may be shorter.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from pdfbuddy.exceptions import PlanningError
from pdfbuddy.models.capture import Orientation, PageLayout
from pdfbuddy.models.raster import PageSlice, StitchedImage

logger = logging.getLogger(__name__)

POINTS_PER_INCH = 72.0
LETTER_IN = (8.5, 11.0)


@dataclass(frozen=True)
class LayoutPlan:
    """Page geometry plus the ordered slices to place on those pages."""

    orientation: Orientation
    page_width_pt: float
    page_height_pt: float
    margin_pt: float
    slices: tuple[PageSlice, ...]
    warnings: list[str] = field(default_factory=list, compare=False)

    @property
    def printable_width_pt(self) -> float:
        return self.page_width_pt - 2 * self.margin_pt

    @property
    def printable_height_pt(self) -> float:
        return self.page_height_pt - 2 * self.margin_pt

    @property
    def page_count(self) -> int:
        return len(self.slices)


def parse_layout(layout: str | PageLayout | None) -> PageLayout:
    """Return *layout* as a ``PageLayout``.

    Raises:
        PlanningError: for anything other than auto, portrait or landscape.
    """
    if layout is None:
        return PageLayout.AUTO
    value = getattr(layout, "value", layout)
    try:
        return PageLayout(str(value).strip().lower())
    except ValueError as e:
        raise PlanningError(f"Unsupported page layout {value!r}", cause=e) from e


def resolve_orientation(image: StitchedImage, layout: str | PageLayout | None = PageLayout.AUTO) -> Orientation:
    """Forced layouts win; ``auto`` follows the image's own orientation."""
    resolved = parse_layout(layout)
    if resolved is PageLayout.PORTRAIT:
        return Orientation.PORTRAIT
    if resolved is PageLayout.LANDSCAPE:
        return Orientation.LANDSCAPE
    return image.orientation


def effective_page_height_px(image_width: int, printable_width: float, printable_height: float) -> int:
    """Height in image pixels of one printable page at the image's width."""
    if printable_width <= 0 or printable_height <= 0:
        raise PlanningError("Printable area must be positive; check paper size and margins")
    return max(1, math.floor(image_width * printable_height / printable_width))


def paginate(image: StitchedImage, page_height_px: int) -> list[PageSlice]:
    """Split *image* into ``ceil(H / P)`` contiguous slices."""
    if page_height_px <= 0:
        raise PlanningError(f"Page height must be positive, got {page_height_px}")
    count = max(1, math.ceil(image.height / page_height_px))
    slices = []
    for index in range(count):
        offset = index * page_height_px
        height = min(page_height_px, image.height - offset)
        slices.append(PageSlice(source=image, offset=offset, height=height, index=index))
    return slices


class LayoutPlanner:
    """Plan pages for a stitched image on a fixed paper size.

    Args:
        paper_size_in: Portrait (width, height) of the paper in inches.
        margin_in: Uniform margin in inches.
    """

    def __init__(self, paper_size_in: tuple[float, float] = LETTER_IN, margin_in: float = 0.0) -> None:
        self.paper_size_in = paper_size_in
        self.margin_in = margin_in

    @classmethod
    def from_settings(cls, settings=None) -> "LayoutPlanner":
        if settings is None:
            from pdfbuddy.settings import get_settings

            settings = get_settings()
        return cls(settings.layout.paper_size_in, settings.layout.margin_in)

    def page_size_pt(self, orientation: Orientation) -> tuple[float, float]:
        w, h = (d * POINTS_PER_INCH for d in self.paper_size_in)
        short, long = min(w, h), max(w, h)
        return (long, short) if orientation is Orientation.LANDSCAPE else (short, long)

    def plan(self, image: StitchedImage, layout: str | PageLayout | None = PageLayout.AUTO) -> LayoutPlan:
        """Decide orientation and slices for *image*.

        An unsupported *layout* is not an error for the capture: it is
        logged and planning continues as ``auto``.
        """
        warnings: list[str] = []
        try:
            orientation = resolve_orientation(image, layout)
        except PlanningError as e:
            logger.warning("%s; falling back to auto", e.message)
            warnings.append(f"{e.message}; used auto")
            orientation = image.orientation

        page_w, page_h = self.page_size_pt(orientation)
        margin = self.margin_in * POINTS_PER_INCH
        page_px = effective_page_height_px(image.width, page_w - 2 * margin, page_h - 2 * margin)
        slices = paginate(image, page_px)
        logger.debug(
            "Planned %d %s page(s) for %dx%d image (page height %dpx)",
            len(slices), orientation.value, image.width, image.height, page_px,
        )
        return LayoutPlan(
            orientation=orientation,
            page_width_pt=page_w,
            page_height_pt=page_h,
            margin_pt=margin,
            slices=tuple(slices),
            warnings=warnings,
        )
