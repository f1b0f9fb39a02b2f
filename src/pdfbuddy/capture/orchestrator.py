"""Capture orchestrator: one user-initiated save, end to end.

Sequences the pipeline through a strict state machine::

    idle → preparing → capturing → stitching → planning
         → watermarking → assembling → downloading → idle

``error`` is reachable from every non-idle state and always returns to
``idle``. A progress event is emitted on entry to every state. Either a
complete PDF reaches the downloader or nothing does.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from datetime import date

from pdfbuddy.browser.host import BrowserHost, Downloader
from pdfbuddy.capture.scroll import ScrollCapturer
from pdfbuddy.exceptions import CaptureInProgressError, DeliveryError, PDFBuddyError
from pdfbuddy.layout.planner import LayoutPlan, LayoutPlanner
from pdfbuddy.models.capture import (
    STATE_DESCRIPTIONS,
    STATE_TRANSITIONS,
    CaptureRequest,
    CaptureResult,
    CaptureState,
    CaptureStatus,
)
from pdfbuddy.models.watermark import DEFAULT_TEXT_WATERMARK, WatermarkConfig
from pdfbuddy.monitoring.event_bus import EventBus, EventType
from pdfbuddy.page.preparer import prepare_page, restore_page
from pdfbuddy.pdf.assembler import AssembledPdf, PdfAssembler
from pdfbuddy.store.last_watermark import LastWatermarkStore
from pdfbuddy.watermark.engine import WatermarkEngine
from pdfbuddy.watermark.validation import sanitize_text

logger = logging.getLogger(__name__)

FILENAME_MAX_LENGTH = 100
_INVALID_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')
_WHITESPACE = re.compile(r"\s+")


def build_filename(title: str | None, today: date | None = None) -> str:
    """Derive ``<title>_<YYYY-MM-DD>.pdf`` from a page title.

    Filesystem-invalid characters and whitespace become ``_``, the stem is
    capped at 100 characters, and an empty title becomes ``Untitled``.
    """
    stem = sanitize_text(title) or "Untitled"
    stem = _WHITESPACE.sub("_", _INVALID_FILENAME_CHARS.sub("_", stem))[:FILENAME_MAX_LENGTH]
    return f"{stem}_{(today or date.today()).isoformat()}.pdf"


class CaptureOrchestrator:
    """Run capture requests against one browser host.

    Only one request is in flight at a time; a concurrent ``run`` raises
    ``CaptureInProgressError`` instead of queueing.

    Args:
        host: Viewport capture, page channel and page title.
        downloader: Receives the finished PDF bytes.
        event_bus: Receives ``state_changed``, ``progress`` and lifecycle events.
        last_watermark: Slot updated after every watermarked capture.
        engine: Watermark engine (carries the entitlement gate).
        planner: Layout planner; defaults to the configured paper.
        capturer: Scroll capturer; defaults to one built from settings.
        today: Date source for filenames.
    """

    def __init__(
        self,
        host: BrowserHost,
        downloader: Downloader,
        *,
        event_bus: EventBus | None = None,
        last_watermark: LastWatermarkStore | None = None,
        engine: WatermarkEngine | None = None,
        planner: LayoutPlanner | None = None,
        capturer: ScrollCapturer | None = None,
        settings=None,
        today: Callable[[], date] = date.today,
    ) -> None:
        if settings is None:
            from pdfbuddy.settings import get_settings

            settings = get_settings()
        self.host = host
        self.downloader = downloader
        self.event_bus = event_bus or EventBus()
        self.last_watermark = last_watermark
        self.engine = engine or WatermarkEngine()
        self.planner = planner or LayoutPlanner.from_settings(settings)
        self.capturer = capturer or ScrollCapturer(
            host,
            default_viewport=(settings.browser.viewport_width, settings.browser.viewport_height),
            scroll_pause_ms=settings.capture.scroll_pause_ms,
            message_timeout_ms=settings.capture.message_timeout_ms,
        )
        self.assembler = PdfAssembler(self.engine)
        self._settle_timeout_ms = settings.capture.settle_timeout_ms
        self._message_timeout_ms = settings.capture.message_timeout_ms
        self._today = today

        self._state = CaptureState.IDLE
        self._active_request: str | None = None
        self._trail: list[CaptureState] = []

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._active_request is not None

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _transition(self, new_state: CaptureState, request_id: str, **extra) -> None:
        old_state = self._state
        expected = STATE_TRANSITIONS.get(old_state)
        if new_state is not CaptureState.ERROR and new_state is not expected:
            logger.warning("Non-standard transition: %s → %s", old_state.value, new_state.value)
        logger.info("[%s] State: %s → %s", request_id, old_state.value, new_state.value)
        self._state = new_state
        self._trail.append(new_state)
        await self.event_bus.emit(
            EventType.STATE_CHANGED,
            {"old_state": old_state.value, "new_state": new_state.value},
            request_id=request_id,
        )
        stage = extra.pop("stage", None) or STATE_DESCRIPTIONS[new_state]
        await self.event_bus.progress(
            stage, done=new_state is CaptureState.IDLE, request_id=request_id, state=new_state.value, **extra
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, request: CaptureRequest) -> CaptureResult:
        """Execute *request* and report the outcome.

        Pipeline failures do not raise: they come back as a ``failed``
        result carrying the user-facing message and the raw cause.

        Raises:
            CaptureInProgressError: another request is still running.
        """
        if self._active_request is not None:
            raise CaptureInProgressError(self._active_request)
        self._active_request = request.request_id
        self._trail = []
        try:
            return await self._run(request)
        finally:
            self._active_request = None
            self._state = CaptureState.IDLE

    async def _run(self, request: CaptureRequest) -> CaptureResult:
        rid = request.request_id
        warnings: list[str] = []
        await self.event_bus.emit(
            EventType.CAPTURE_STARTED,
            {"tab_id": request.tab_id, "full_page": request.capture_full_page, "layout": request.page_layout},
            request_id=rid,
        )
        try:
            await self._transition(CaptureState.PREPARING, rid)
            report = await prepare_page(
                self.host,
                request.tab_id,
                request.content_filters,
                settle_timeout_ms=self._settle_timeout_ms,
                message_timeout_ms=self._message_timeout_ms,
            )
            warnings.extend(report.warnings)
            if report.error is not None:
                warnings.append(report.error.message)

            await self._transition(CaptureState.CAPTURING, rid)
            try:
                tiles = await self.capturer.capture_tiles(request.tab_id, request.capture_full_page)
            finally:
                if report.prepared:
                    await restore_page(self.host, request.tab_id, message_timeout_ms=self._message_timeout_ms)

            await self._transition(CaptureState.STITCHING, rid)
            stitched = self.capturer.stitch(tiles)
            if stitched.tiles_failed:
                warnings.append(f"{stitched.tiles_failed} tile(s) could not be captured and were left blank")

            await self._transition(CaptureState.PLANNING, rid)
            plan = self.planner.plan(stitched, request.page_layout)
            warnings.extend(plan.warnings)

            await self._transition(CaptureState.WATERMARKING, rid)
            watermark = self._resolve_watermark(request)
            if watermark is not None:
                self.engine.check(watermark)

            await self._transition(CaptureState.ASSEMBLING, rid, pages=plan.page_count)
            title = await self._page_title(request.tab_id)
            pdf, data = await asyncio.to_thread(self._assemble, plan, watermark, title)

            await self._transition(CaptureState.DOWNLOADING, rid)
            filename = request.filename or build_filename(title, self._today())
            try:
                download_id = await self.downloader.download(data, filename)
            except Exception as e:
                raise DeliveryError(f"Could not save {filename}: {e}", cause=e) from e

            if watermark is not None:
                self._remember_watermark(watermark, warnings)

            await self._transition(CaptureState.IDLE, rid, stage="PDF saved")
            result = CaptureResult(
                request_id=rid,
                status=CaptureStatus.COMPLETED,
                filename=filename,
                download_id=download_id,
                page_count=pdf.page_count,
                watermarked=watermark is not None,
                warnings=warnings,
                states=list(self._trail),
            )
            await self.event_bus.emit(EventType.CAPTURE_COMPLETED, result.model_dump(mode="json"), request_id=rid)
            logger.info("[%s] Saved %s (%d page(s))", rid, filename, pdf.page_count)
            return result

        except Exception as e:
            return await self._fail(request, e, warnings)

    async def _fail(self, request: CaptureRequest, exc: Exception, warnings: list[str]) -> CaptureResult:
        rid = request.request_id
        failed_in = self._state
        if isinstance(exc, PDFBuddyError):
            message, cause, stage = exc.message, exc.cause_text, exc.stage
        else:
            message = f"Unexpected error while {failed_in.value}"
            cause, stage = f"{type(exc).__name__}: {exc}", failed_in.value
        logger.error("[%s] Capture failed in %s: %s (%s)", rid, failed_in.value, message, cause or "no cause")

        await self._transition(CaptureState.ERROR, rid, stage=message)
        await self.event_bus.emit(
            EventType.ERROR,
            {"message": message, "cause": cause, "stage": stage, "state": failed_in.value},
            request_id=rid,
        )
        await self._transition(CaptureState.IDLE, rid, error=message)
        result = CaptureResult(
            request_id=rid,
            status=CaptureStatus.FAILED,
            warnings=warnings,
            states=list(self._trail),
            error=message,
            error_stage=stage,
            cause=cause,
        )
        await self.event_bus.emit(EventType.CAPTURE_COMPLETED, result.model_dump(mode="json"), request_id=rid)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_watermark(self, request: CaptureRequest) -> WatermarkConfig | None:
        if request.watermark is not None:
            return request.watermark
        if request.use_last_watermark:
            last = self.last_watermark.get() if self.last_watermark is not None else None
            return last or DEFAULT_TEXT_WATERMARK
        return None

    def _assemble(
        self, plan: LayoutPlan, watermark: WatermarkConfig | None, title: str
    ) -> tuple[AssembledPdf, bytes]:
        """Compose and serialise the document; runs off the event loop."""
        pdf = self.assembler.assemble(plan, watermark, title)
        return pdf, pdf.to_bytes()

    def _remember_watermark(self, watermark: WatermarkConfig, warnings: list[str]) -> None:
        # The PDF is already delivered at this point.
        if self.last_watermark is None:
            return
        try:
            self.last_watermark.set(watermark)
        except Exception as e:
            logger.warning("Could not remember the last watermark: %s", e)
            warnings.append(f"Last watermark not saved: {e}")

    async def _page_title(self, tab_id: str) -> str:
        try:
            return await self.host.page_title(tab_id)
        except Exception as e:
            logger.info("Page title unavailable for tab %s: %s", tab_id, e)
            return ""
