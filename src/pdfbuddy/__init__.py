"""PDF Buddy: capture web pages as paginated, optionally watermarked PDFs."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("pdfbuddy")
except Exception:
    __version__ = "0.0.0"
