"""Raster artifacts flowing between the scroll capturer, planner and assembler."""

from __future__ import annotations

from dataclasses import dataclass

from PIL import Image

from pdfbuddy.models.capture import Orientation


@dataclass
class RasterTile:
    """One viewport screenshot taken at a scroll offset."""

    x: int
    y: int
    width: int
    height: int
    image: Image.Image


@dataclass
class StitchedImage:
    """The full captured area as a single raster."""

    image: Image.Image
    tiles_captured: int = 1
    tiles_failed: int = 0

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def orientation(self) -> Orientation:
        return Orientation.of(self.width, self.height)


@dataclass(frozen=True)
class PageSlice:
    """One printable page's worth of a stitched image."""

    source: StitchedImage
    offset: int
    height: int
    index: int

    @property
    def width(self) -> int:
        return self.source.width

    def crop(self) -> Image.Image:
        """Return the slice's pixels as a new image."""
        return self.source.image.crop((0, self.offset, self.source.width, self.offset + self.height))
