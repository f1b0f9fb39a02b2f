"""Unit tests for PDF Buddy settings.

Covers default loading, env var overrides, path resolution and
validation of the layout section.
"""

from __future__ import annotations

import os

import pytest
from pydantic import ValidationError


class TestSettings:
    """Core settings loading and override mechanics."""

    def test_default_settings_load(self):
        """Settings load from settings.default.toml without overrides."""
        from pdfbuddy.settings import get_settings

        s = get_settings()
        assert s.env == "local"
        assert s.browser.viewport_width == 1024
        assert s.browser.viewport_height == 768
        assert s.capture.settle_timeout_ms == 3000
        assert s.capture.message_timeout_ms == 10000
        assert s.layout.paper == "letter"
        assert s.storage.max_free_templates == 3

    def test_get_settings_is_cached(self):
        from pdfbuddy.settings import get_settings

        assert get_settings() is get_settings()

    def test_env_override_nested(self, monkeypatch):
        """PDFBUDDY_LAYOUT__PAPER overrides the TOML default."""
        monkeypatch.setenv("PDFBUDDY_LAYOUT__PAPER", "a4")
        from pdfbuddy.settings.config import Settings

        s = Settings()
        assert s.layout.paper == "a4"
        assert s.layout.paper_size_in == (8.27, 11.69)

    def test_conftest_forces_memory_storage(self):
        from pdfbuddy.settings.config import Settings

        assert Settings().storage.backend == "memory"

    def test_paths_resolved_relative_to_project_root(self, monkeypatch):
        monkeypatch.setenv("PDFBUDDY_OUTPUT__DOWNLOAD_DIR", "relative/downloads")
        from pdfbuddy.settings.config import Settings

        s = Settings()
        assert os.path.isabs(s.output.download_dir)
        assert s.output.download_dir.endswith(os.path.join("relative", "downloads"))
        assert os.path.isabs(s.storage.sqlite_path)

    def test_license_features_from_env(self, monkeypatch):
        monkeypatch.setenv("PDFBUDDY_LICENSE__FEATURES", '["image_watermark"]')
        from pdfbuddy.settings.config import Settings

        assert Settings().license.features == ["image_watermark"]


class TestLayoutSettings:
    """Validation of paper and margins."""

    def test_unknown_paper_rejected(self):
        from pdfbuddy.settings.config import LayoutSettings

        with pytest.raises(ValidationError):
            LayoutSettings(paper="tabloid")

    def test_paper_is_normalised(self):
        from pdfbuddy.settings.config import LayoutSettings

        assert LayoutSettings(paper=" Letter ").paper == "letter"

    @pytest.mark.parametrize("margin", [-0.1, 4.0])
    def test_margin_out_of_range(self, margin):
        from pdfbuddy.settings.config import LayoutSettings

        with pytest.raises(ValidationError):
            LayoutSettings(margin_in=margin)
