"""PDF Buddy test configuration: shared fixtures for unit tests."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from pdfbuddy.page.messaging import NoListenerError, PageMessage, PageResponse

# Distinct, non-white tile colours so stitched bands can be told apart.
TILE_PALETTE = [
    (220, 20, 60),
    (30, 144, 255),
    (50, 205, 50),
    (255, 165, 0),
    (138, 43, 226),
    (0, 128, 128),
]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache(monkeypatch, tmp_path: Path):
    """Clear the settings cache and keep storage and downloads inside tmp_path."""
    import pdfbuddy.store.kv as kv
    from pdfbuddy.settings.config import get_settings

    monkeypatch.setenv("PDFBUDDY_STORAGE__BACKEND", "memory")
    monkeypatch.setenv("PDFBUDDY_STORAGE__SQLITE_PATH", str(tmp_path / "pdfbuddy.db"))
    monkeypatch.setenv("PDFBUDDY_OUTPUT__DOWNLOAD_DIR", str(tmp_path / "downloads"))
    monkeypatch.delenv("PDFBUDDY_ENV", raising=False)
    monkeypatch.delenv("PDFBUDDY_LICENSE__FEATURES", raising=False)
    get_settings.cache_clear()
    kv._singleton = None
    yield
    get_settings.cache_clear()
    kv._singleton = None


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


# ---------------------------------------------------------------------------
# Fake browser host
# ---------------------------------------------------------------------------


def png_bytes(size: tuple[int, int], color=(255, 255, 255)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


class FakeHost:
    """In-process stand-in for a browser tab.

    Scrolling clamps like a real browser, and every viewport capture is a
    solid colour taken from ``TILE_PALETTE`` in capture order.

    Args:
        page_size: Full page extent (width, height).
        viewport: Visible viewport (width, height).
        fail_captures: 1-based capture numbers that raise.
        listener: When False every page message raises ``NoListenerError``.
        prepare_ok: Whether ``preparePage`` reports success.
        title: Page title.
    """

    def __init__(
        self,
        page_size: tuple[int, int] = (1024, 3000),
        viewport: tuple[int, int] = (1024, 768),
        *,
        fail_captures: tuple[int, ...] = (),
        listener: bool = True,
        prepare_ok: bool = True,
        title: str = "Example Domain",
    ) -> None:
        self.page_width, self.page_height = page_size
        self.viewport_width, self.viewport_height = viewport
        self.fail_captures = set(fail_captures)
        self.listener = listener
        self.prepare_ok = prepare_ok
        self.title = title
        self.scroll_y = 0
        self.captures = 0
        self.messages: list[PageMessage] = []
        self.captured_offsets: list[int] = []

    @property
    def actions(self) -> list[str]:
        return [m.action for m in self.messages]

    async def send(self, tab_id: str, message: PageMessage) -> PageResponse:
        self.messages.append(message)
        if not self.listener:
            raise NoListenerError("content script not loaded")
        if message.action == "preparePage":
            if not self.prepare_ok:
                return PageResponse(success=False, error="document.body is null")
            return PageResponse(success=True, data={"warnings": []})
        if message.action == "restorePage":
            return PageResponse(success=True)
        if message.action == "getPageMetrics":
            return PageResponse(
                success=True,
                data={
                    "pageWidth": self.page_width,
                    "pageHeight": self.page_height,
                    "viewportWidth": self.viewport_width,
                    "viewportHeight": self.viewport_height,
                },
            )
        if message.action == "scrollTo":
            wanted = int(message.payload.get("y", 0))
            self.scroll_y = max(0, min(wanted, self.page_height - self.viewport_height))
            return PageResponse(success=True, data={"x": 0, "y": self.scroll_y})
        return PageResponse(success=False, error=f"unknown action {message.action}")

    async def capture(self, tab_id: str) -> bytes:
        self.captures += 1
        if self.captures in self.fail_captures:
            raise RuntimeError(f"capture {self.captures} failed")
        self.captured_offsets.append(self.scroll_y)
        color = TILE_PALETTE[(self.captures - 1) % len(TILE_PALETTE)]
        return png_bytes((self.viewport_width, self.viewport_height), color)

    async def page_title(self, tab_id: str) -> str:
        return self.title


class RecordingDownloader:
    """Keeps downloads in memory."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.downloads: list[tuple[str, bytes]] = []

    async def download(self, data: bytes, filename: str) -> str:
        if self.fail:
            raise PermissionError("downloads directory is read-only")
        self.downloads.append((filename, data))
        return f"download-{len(self.downloads)}"


@pytest.fixture()
def fake_host() -> FakeHost:
    """A 1024x3000 page in a 1024x768 viewport."""
    return FakeHost()


@pytest.fixture()
def downloader() -> RecordingDownloader:
    return RecordingDownloader()


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that require a real browser")


@pytest.fixture()
def make_host():
    """Return the ``FakeHost`` class for tests that need custom page shapes."""
    return FakeHost


@pytest.fixture()
def make_downloader():
    return RecordingDownloader


@pytest.fixture()
def tile_palette() -> list[tuple[int, int, int]]:
    return TILE_PALETTE
