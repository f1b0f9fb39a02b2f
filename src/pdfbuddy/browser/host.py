"""Host capabilities consumed by the capture pipeline.

The pipeline only talks to the browser through three narrow protocols
(viewport capture, page messaging, download). ``PlaywrightHost`` backs the
first two with a headless Chromium session, and ``DirectoryDownloader``
writes finished PDFs to a local directory.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pdfbuddy.page.messaging import NoListenerError, PageChannel, PageMessage, PageResponse
from pdfbuddy.page.scripts import SCRIPTS_BY_ACTION

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

    from pdfbuddy.settings import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class ViewportCapturer(Protocol):
    """Screenshot the visible viewport of a tab as encoded image bytes."""

    async def capture(self, tab_id: str) -> bytes: ...


@runtime_checkable
class Downloader(Protocol):
    """Persist a finished document and return an identifier for it."""

    async def download(self, data: bytes, filename: str) -> str: ...


@runtime_checkable
class BrowserHost(ViewportCapturer, PageChannel, Protocol):
    """Everything the orchestrator needs from the browser for one tab."""

    async def page_title(self, tab_id: str) -> str: ...


# ---------------------------------------------------------------------------
# Playwright
# ---------------------------------------------------------------------------


class PlaywrightHost:
    """A Chromium session whose pages are addressed by tab id.

    Screenshots are taken at CSS scale so tile sizes match the page
    metrics reported by the in-page scripts.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        if settings is None:
            from pdfbuddy.settings import get_settings

            settings = get_settings()
        self._headless = settings.browser.headless
        self._timeout_ms = settings.browser.timeout_ms
        self._viewport = {"width": settings.browser.viewport_width, "height": settings.browser.viewport_height}
        self._user_agent = settings.browser.user_agent or None

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._pages: dict[str, Page] = {}
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Launch Chromium and open a browser context."""
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self._headless)
        self._context = await self._browser.new_context(viewport=self._viewport, user_agent=self._user_agent)
        logger.info("Browser started (headless=%s, viewport=%sx%s)", self._headless, *self._viewport.values())

    async def stop(self) -> None:
        """Close every page and shut the browser down."""
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
            if self._playwright:
                await self._playwright.stop()
        except Exception as e:
            logger.warning("Browser stop error (non-fatal): %s", e)
        finally:
            self._pages.clear()
            self._context = self._browser = self._playwright = None
        logger.info("Browser stopped")

    async def __aenter__(self) -> "PlaywrightHost":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    async def open_tab(self, url: str) -> str:
        """Navigate a new page to *url* and return its tab id."""
        if self._context is None:
            raise RuntimeError("Browser not started. Call start() first.")
        page = await self._context.new_page()
        await page.goto(url, wait_until="load", timeout=self._timeout_ms)
        tab_id = f"tab-{next(self._ids)}"
        self._pages[tab_id] = page
        logger.info("Opened %s as %s", url, tab_id)
        return tab_id

    async def close_tab(self, tab_id: str) -> None:
        page = self._pages.pop(tab_id, None)
        if page is not None:
            await page.close()

    def _page(self, tab_id: str) -> Page:
        try:
            return self._pages[tab_id]
        except KeyError:
            raise NoListenerError(f"unknown tab {tab_id!r}") from None

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def capture(self, tab_id: str) -> bytes:
        """Return a PNG of the visible viewport of *tab_id*."""
        page = self._page(tab_id)
        return await page.screenshot(type="png", scale="css", full_page=False, timeout=self._timeout_ms)

    async def send(self, tab_id: str, message: PageMessage) -> PageResponse:
        """Run the script registered for ``message.action`` inside the page."""
        script = SCRIPTS_BY_ACTION.get(message.action)
        if script is None:
            raise NoListenerError(f"no handler for action {message.action!r}")
        page = self._page(tab_id)
        result = await page.evaluate(script, message.payload)
        if not isinstance(result, dict):
            return PageResponse(success=False, error=f"unexpected reply {result!r}")
        return PageResponse(
            success=bool(result.get("success")),
            data=result.get("data") or {},
            error=str(result.get("error") or ""),
        )

    async def page_title(self, tab_id: str) -> str:
        return await self._page(tab_id).title()


# ---------------------------------------------------------------------------
# Downloads
# ---------------------------------------------------------------------------


class DirectoryDownloader:
    """Write documents into a directory, never overwriting existing files.

    A name that is already taken gets a ``" (n)"`` suffix before the
    extension. The returned download id is the absolute path written.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _target(self, filename: str) -> Path:
        name = Path(filename).name or "download.pdf"
        candidate = self.directory / name
        stem, suffix = candidate.stem, candidate.suffix
        n = 1
        while candidate.exists():
            candidate = self.directory / f"{stem} ({n}){suffix}"
            n += 1
        return candidate

    def _write(self, data: bytes, filename: str) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self._target(filename)
        with open(target, "xb") as f:
            f.write(data)
        logger.info("Saved %d bytes to %s", len(data), target)
        return str(target.resolve())

    async def download(self, data: bytes, filename: str) -> str:
        return await asyncio.to_thread(self._write, data, filename)
