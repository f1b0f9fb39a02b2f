"""Scroll capturer: turn a tall page into one stitched raster.

The page is scrolled one viewport height at a time and the visible
viewport is captured at each offset. Tiles are pasted onto a white canvas
one viewport wide and one page tall, at the offset the browser actually
scrolled to (the last step is usually clamped short of a full viewport).
Scrolling is vertical only, so horizontal overflow is not captured. A
tile that fails to capture or decode is skipped and leaves a blank band.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Protocol

from PIL import Image

from pdfbuddy.exceptions import CaptureError
from pdfbuddy.models.raster import RasterTile, StitchedImage
from pdfbuddy.page.messaging import GET_PAGE_METRICS, SCROLL_TO, PageChannel, request

logger = logging.getLogger(__name__)

# Guards against pages reporting absurd extents (infinite scroll, bugs).
MAX_TILES = 200


class CaptureHost(PageChannel, Protocol):
    async def capture(self, tab_id: str) -> bytes: ...


@dataclass
class TileSet:
    """Tiles captured from one page, not yet stitched."""

    width: int
    height: int
    tiles: list[RasterTile] = field(default_factory=list)
    failed: int = 0


@dataclass(frozen=True)
class PageMetrics:
    """Page and viewport extents in CSS pixels."""

    page_width: int
    page_height: int
    viewport_width: int
    viewport_height: int

    @property
    def fits_viewport(self) -> bool:
        return self.page_height <= self.viewport_height

    @property
    def capture_width(self) -> int:
        """Width covered by vertical scrolling; horizontal overflow is cut."""
        return min(self.page_width, self.viewport_width)


def decode_tile(data: bytes) -> Image.Image:
    """Decode encoded image bytes into an RGB image."""
    with Image.open(BytesIO(data)) as img:
        img.load()
        return img.convert("RGB")


def scroll_offsets(page_height: int, viewport_height: int) -> list[int]:
    """Return the scroll offsets ``0, vh, 2vh, ...`` strictly below *page_height*."""
    if viewport_height <= 0:
        raise ValueError("viewport_height must be positive")
    return list(range(0, max(page_height, 1), viewport_height))


class ScrollCapturer:
    """Capture a tab as a ``StitchedImage``.

    Args:
        host: Provides ``capture(tab_id)`` and the page channel.
        default_viewport: Viewport assumed when the page cannot be measured.
        scroll_pause_ms: Delay after each scroll so the page can repaint.
        message_timeout_ms: Timeout for each page round trip.
    """

    def __init__(
        self,
        host: CaptureHost,
        *,
        default_viewport: tuple[int, int] = (1024, 768),
        scroll_pause_ms: int = 150,
        message_timeout_ms: int = 10_000,
    ) -> None:
        self.host = host
        self.default_viewport = default_viewport
        self.scroll_pause_ms = scroll_pause_ms
        self.message_timeout_ms = message_timeout_ms

    async def measure(self, tab_id: str) -> PageMetrics:
        """Ask the page for its extents, falling back to the default viewport."""
        vw, vh = self.default_viewport
        response = await request(self.host, tab_id, GET_PAGE_METRICS, timeout_ms=self.message_timeout_ms)
        if not response.success:
            logger.info("Page metrics unavailable for tab %s; assuming a single %dx%d viewport", tab_id, vw, vh)
            return PageMetrics(vw, vh, vw, vh)
        data = response.data
        viewport_width = int(data.get("viewportWidth") or vw)
        viewport_height = int(data.get("viewportHeight") or vh)
        return PageMetrics(
            page_width=max(int(data.get("pageWidth") or 0), 1),
            page_height=max(int(data.get("pageHeight") or 0), 1),
            viewport_width=max(viewport_width, 1),
            viewport_height=max(viewport_height, 1),
        )

    async def capture(self, tab_id: str, full_page: bool = True) -> StitchedImage:
        """Capture *tab_id* and stitch the result into one image."""
        return self.stitch(await self.capture_tiles(tab_id, full_page))

    async def capture_tiles(self, tab_id: str, full_page: bool = True) -> TileSet:
        """Capture the visible viewport, or every viewport of the page when *full_page*.

        Raises:
            CaptureError: when the single viewport capture fails, or when
                no tile at all could be captured.
        """
        if full_page:
            metrics = await self.measure(tab_id)
            if not metrics.fits_viewport:
                return await self._capture_scrolling(tab_id, metrics)
        return await self._capture_viewport(tab_id)

    def stitch(self, tile_set: TileSet) -> StitchedImage:
        """Paste tiles onto a white canvas at their scroll offsets.

        A single tile covering the whole extent is returned unchanged.
        """
        tiles = tile_set.tiles
        if len(tiles) == 1 and tile_set.failed == 0 and (tiles[0].width, tiles[0].height) == (
            tile_set.width,
            tile_set.height,
        ):
            return StitchedImage(image=tiles[0].image, tiles_captured=1)
        canvas = Image.new("RGB", (tile_set.width, tile_set.height), "white")
        for tile in tiles:
            canvas.paste(tile.image, (tile.x, tile.y))
        logger.info(
            "Stitched %dx%d from %d tile(s) (%d failed)",
            canvas.width, canvas.height, len(tiles), tile_set.failed,
        )
        return StitchedImage(image=canvas, tiles_captured=len(tiles), tiles_failed=tile_set.failed)

    async def _capture_viewport(self, tab_id: str) -> TileSet:
        try:
            image = decode_tile(await self.host.capture(tab_id))
        except Exception as e:
            raise CaptureError("Could not capture the visible page", cause=e) from e
        logger.debug("Captured single viewport %dx%d for tab %s", image.width, image.height, tab_id)
        tile = RasterTile(x=0, y=0, width=image.width, height=image.height, image=image)
        return TileSet(width=image.width, height=image.height, tiles=[tile])

    async def _capture_scrolling(self, tab_id: str, metrics: PageMetrics) -> TileSet:
        offsets = scroll_offsets(metrics.page_height, metrics.viewport_height)
        if len(offsets) > MAX_TILES:
            logger.warning("Page of %dpx needs %d tiles; capping at %d", metrics.page_height, len(offsets), MAX_TILES)
            offsets = offsets[:MAX_TILES]
        tile_set = TileSet(
            width=metrics.capture_width,
            height=min(metrics.page_height, offsets[-1] + metrics.viewport_height),
        )
        last_error: BaseException | None = None
        try:
            for n, offset in enumerate(offsets, start=1):
                try:
                    tile_set.tiles.append(await self._capture_tile(tab_id, offset))
                except Exception as e:
                    tile_set.failed += 1
                    last_error = e
                    logger.warning("Tile %d/%d at y=%d failed, leaving it blank: %s", n, len(offsets), offset, e)
        finally:
            await request(self.host, tab_id, SCROLL_TO, {"x": 0, "y": 0}, timeout_ms=self.message_timeout_ms)

        if not tile_set.tiles:
            raise CaptureError("Could not capture any part of the page", cause=last_error)
        logger.debug("Captured %d/%d tiles for tab %s", len(tile_set.tiles), len(offsets), tab_id)
        return tile_set

    async def _capture_tile(self, tab_id: str, offset: int) -> RasterTile:
        response = await request(self.host, tab_id, SCROLL_TO, {"x": 0, "y": offset}, timeout_ms=self.message_timeout_ms)
        if not response.success:
            raise CaptureError(f"scroll to y={offset} failed: {response.error}")
        y = int(response.data.get("y", offset))
        if self.scroll_pause_ms:
            await asyncio.sleep(self.scroll_pause_ms / 1000)
        image = decode_tile(await self.host.capture(tab_id))
        return RasterTile(x=0, y=y, width=image.width, height=image.height, image=image)
