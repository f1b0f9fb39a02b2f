"""Page preparer: make a live page screenshot-ready.

Preparation is best-effort. Every step runs inside the page under its
own guard, and a failed or undelivered preparation message is logged as
a non-fatal preparation error. ``prepare_page`` always returns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pdfbuddy.exceptions import PreparationError
from pdfbuddy.models.capture import ContentFilters
from pdfbuddy.page.filters import compose_hide_list
from pdfbuddy.page.messaging import PREPARE_PAGE, RESTORE_PAGE, PageChannel, request

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_TIMEOUT_MS = 3_000

# Headroom on top of the image-settle wait for the rest of the script.
_SCRIPT_OVERHEAD_MS = 2_000


@dataclass
class PreparationReport:
    """What happened while preparing a page."""

    prepared: bool = False
    delivered: bool = False
    hidden_selectors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: PreparationError | None = None


async def prepare_page(
    channel: PageChannel,
    tab_id: str,
    filters: ContentFilters | None = None,
    *,
    settle_timeout_ms: int = DEFAULT_SETTLE_TIMEOUT_MS,
    message_timeout_ms: int = 10_000,
) -> PreparationReport:
    """Expand, un-lazy and de-clutter the page in *tab_id*.

    Args:
        channel: Page channel of the host.
        tab_id: Tab to prepare.
        filters: Content categories to keep; ``None`` uses the defaults.
        settle_timeout_ms: Upper bound on waiting for images.
        message_timeout_ms: Upper bound on the whole round trip.

    Returns:
        A ``PreparationReport``; never raises.
    """
    hidden = compose_hide_list(filters)
    report = PreparationReport(hidden_selectors=hidden)
    timeout = max(message_timeout_ms, settle_timeout_ms + _SCRIPT_OVERHEAD_MS)

    response = await request(
        channel,
        tab_id,
        PREPARE_PAGE,
        {"hideSelectors": hidden, "settleTimeoutMs": settle_timeout_ms},
        timeout_ms=timeout,
    )
    report.delivered = response.delivered
    report.warnings = [str(w) for w in response.data.get("warnings", [])]

    if not response.success:
        report.error = PreparationError(f"Page preparation skipped: {response.error or 'unknown error'}")
        logger.warning("%s (tab %s); capturing the page as-is", report.error.message, tab_id)
        return report

    report.prepared = True
    for warning in report.warnings:
        logger.info("Preparation step degraded on tab %s: %s", tab_id, warning)
    logger.debug("Prepared tab %s, hiding %d selectors", tab_id, len(hidden))
    return report


async def restore_page(channel: PageChannel, tab_id: str, *, message_timeout_ms: int = 10_000) -> bool:
    """Undo preparation using the snapshot taken by ``prepare_page``.

    Returns:
        True when the page reported a successful restore.
    """
    response = await request(channel, tab_id, RESTORE_PAGE, timeout_ms=message_timeout_ms)
    if not response.success:
        logger.debug("Restore skipped on tab %s: %s", tab_id, response.error)
    return response.success
