"""Settings package: re-exports the cached loader."""

from pdfbuddy.settings.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
