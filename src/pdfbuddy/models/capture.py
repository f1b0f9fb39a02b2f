"""Domain models for a single user-initiated save operation."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from pdfbuddy.models.watermark import WatermarkConfig


class PageLayout(str, Enum):
    """Requested document layout."""

    AUTO = "auto"
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class Orientation(str, Enum):
    """Resolved orientation of an image or page."""

    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"

    @classmethod
    def of(cls, width: int | float, height: int | float) -> "Orientation":
        """Return ``LANDSCAPE`` when strictly wider than tall, else ``PORTRAIT``."""
        return cls.LANDSCAPE if width > height else cls.PORTRAIT


class ContentFilters(BaseModel):
    """Which semantic element categories the user wants to keep."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    include_images: bool = Field(True, alias="includeImages")
    include_banners: bool = Field(False, alias="includeBanners")
    include_ads: bool = Field(False, alias="includeAds")
    include_nav: bool = Field(False, alias="includeNav")


class CaptureRequest(BaseModel):
    """One save operation. Immutable for the lifetime of the capture."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    request_id: str = Field(default_factory=lambda: uuid4().hex[:12])
    tab_id: str
    page_layout: str = Field(PageLayout.AUTO.value, alias="pageLayout")
    capture_full_page: bool = Field(True, alias="captureFullPage")
    content_filters: ContentFilters = Field(default_factory=ContentFilters, alias="contentFilters")
    watermark: WatermarkConfig | None = None
    use_last_watermark: bool = Field(False, alias="useLastWatermark")
    filename: str | None = None


class CaptureState(str, Enum):
    """States of the capture orchestrator."""

    IDLE = "idle"
    PREPARING = "preparing"
    CAPTURING = "capturing"
    STITCHING = "stitching"
    PLANNING = "planning"
    WATERMARKING = "watermarking"
    ASSEMBLING = "assembling"
    DOWNLOADING = "downloading"
    ERROR = "error"


# Human-readable progress text emitted on entry to each state.
STATE_DESCRIPTIONS: dict[CaptureState, str] = {
    CaptureState.IDLE: "Ready",
    CaptureState.PREPARING: "Preparing page for PDF generation...",
    CaptureState.CAPTURING: "Capturing page...",
    CaptureState.STITCHING: "Filtering and stitching captured tiles...",
    CaptureState.PLANNING: "Planning page layout...",
    CaptureState.WATERMARKING: "Preparing watermark...",
    CaptureState.ASSEMBLING: "Assembling PDF...",
    CaptureState.DOWNLOADING: "Saving PDF...",
    CaptureState.ERROR: "Failed to generate PDF",
}

# Normal forward transitions; ERROR is additionally reachable from every non-idle state.
STATE_TRANSITIONS: dict[CaptureState, CaptureState] = {
    CaptureState.IDLE: CaptureState.PREPARING,
    CaptureState.PREPARING: CaptureState.CAPTURING,
    CaptureState.CAPTURING: CaptureState.STITCHING,
    CaptureState.STITCHING: CaptureState.PLANNING,
    CaptureState.PLANNING: CaptureState.WATERMARKING,
    CaptureState.WATERMARKING: CaptureState.ASSEMBLING,
    CaptureState.ASSEMBLING: CaptureState.DOWNLOADING,
    CaptureState.DOWNLOADING: CaptureState.IDLE,
    CaptureState.ERROR: CaptureState.IDLE,
}


class CaptureStatus(str, Enum):
    """Outcome of a capture request."""

    COMPLETED = "completed"
    FAILED = "failed"


class CaptureResult(BaseModel):
    """What the orchestrator reports back for one request."""

    request_id: str
    status: CaptureStatus
    filename: str = ""
    download_id: str = ""
    page_count: int = 0
    watermarked: bool = False
    warnings: list[str] = Field(default_factory=list)
    states: list[CaptureState] = Field(default_factory=list)
    error: str = ""
    error_stage: str = ""
    cause: str = ""

    @property
    def success(self) -> bool:
        """Return True when a complete PDF was delivered."""
        return self.status == CaptureStatus.COMPLETED
