"""PDF assembler: one page per slice, watermarked, merged into one document.

Each slice is authored as its own single-page reportlab document. The
first becomes the primary ``pypdf.PdfWriter`` and the pages of every
later document are appended to it in slice order. Failures abort the
whole assembly; there is never a partial document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from io import BytesIO

from pypdf import PdfReader, PdfWriter

from pdfbuddy.exceptions import AssemblyError, WatermarkError
from pdfbuddy.layout.planner import LayoutPlan
from pdfbuddy.models.capture import Orientation
from pdfbuddy.models.raster import PageSlice
from pdfbuddy.models.watermark import WatermarkConfig
from pdfbuddy.watermark.engine import WatermarkEngine
from pdfbuddy.watermark.surfaces import ReportLabSurface

logger = logging.getLogger(__name__)

PRODUCER = "PDF Buddy"


@dataclass(frozen=True)
class ImageBox:
    """Placement of the raster on its page, in points from the bottom-left corner."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class RenderedPage:
    index: int
    width_pt: float
    height_pt: float
    image_box: ImageBox
    watermarked: bool = False


@dataclass
class AssembledPdf:
    """The finished document and a description of every page in it."""

    writer: PdfWriter
    orientation: Orientation
    pages: list[RenderedPage] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def to_bytes(self) -> bytes:
        buf = BytesIO()
        self.writer.write(buf)
        return buf.getvalue()


def fit_box(
    image_width: float, image_height: float, area_x: float, area_y: float, area_width: float, area_height: float
) -> ImageBox:
    """Scale the image uniformly to fit the area and centre it there."""
    if image_width <= 0 or image_height <= 0:
        raise AssemblyError(f"Cannot place an empty {image_width}x{image_height} image")
    if image_width / image_height > area_width / area_height:
        width, height = area_width, area_width * image_height / image_width
    else:
        width, height = area_height * image_width / image_height, area_height
    return ImageBox(
        x=area_x + (area_width - width) / 2,
        y=area_y + (area_height - height) / 2,
        width=width,
        height=height,
    )


class PdfAssembler:
    """Compose planned slices into an ``AssembledPdf``.

    Args:
        engine: Watermark engine used for every page.
    """

    def __init__(self, engine: WatermarkEngine | None = None) -> None:
        self.engine = engine or WatermarkEngine()

    def assemble(
        self, plan: LayoutPlan, watermark: WatermarkConfig | None = None, title: str | None = None
    ) -> AssembledPdf:
        """Build the document for *plan*, stamping *watermark* on every page.

        Raises:
            WatermarkError: the watermark could not be applied.
            AssemblyError: any other failure while composing pages.
        """
        if not plan.slices:
            raise AssemblyError("Nothing to assemble: the layout plan has no pages")

        pages: list[RenderedPage] = []
        primary: PdfWriter | None = None
        try:
            for page_slice in sorted(plan.slices, key=lambda s: s.index):
                data, rendered = self._render_page(page_slice, plan, watermark)
                pages.append(rendered)
                if primary is None:
                    primary = PdfWriter(clone_from=PdfReader(BytesIO(data)))
                else:
                    for page in PdfReader(BytesIO(data)).pages:
                        primary.add_page(page)
            metadata = {"/Producer": PRODUCER}
            if title:
                metadata["/Title"] = title
            primary.add_metadata(metadata)
        except (WatermarkError, AssemblyError):
            raise
        except Exception as e:
            raise AssemblyError("Failed to assemble the PDF", cause=e) from e

        logger.info("Assembled %d page(s), watermark=%s", len(pages), bool(watermark))
        return AssembledPdf(writer=primary, orientation=plan.orientation, pages=pages)

    def _render_page(
        self, page_slice: PageSlice, plan: LayoutPlan, watermark: WatermarkConfig | None
    ) -> tuple[bytes, RenderedPage]:
        from reportlab.lib.utils import ImageReader
        from reportlab.pdfgen.canvas import Canvas

        page_w, page_h, margin = plan.page_width_pt, plan.page_height_pt, plan.margin_pt
        box = fit_box(
            page_slice.width, page_slice.height, margin, margin, plan.printable_width_pt, plan.printable_height_pt
        )

        buf = BytesIO()
        canvas = Canvas(buf, pagesize=(page_w, page_h), pageCompression=1)
        canvas.drawImage(ImageReader(page_slice.crop()), box.x, box.y, box.width, box.height)
        if watermark is not None:
            self.engine.render(watermark, ReportLabSurface(canvas, page_w, page_h))
        canvas.showPage()
        canvas.save()

        rendered = RenderedPage(
            index=page_slice.index,
            width_pt=page_w,
            height_pt=page_h,
            image_box=box,
            watermarked=watermark is not None,
        )
        return buf.getvalue(), rendered
