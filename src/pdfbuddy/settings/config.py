"""Configuration loader for PDF Buddy using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (PDFBUDDY_* with __ for nesting)
  3. settings.local.toml
  4. settings.<env>.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("PDFBUDDY_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "PDFBUDDY_ENV"
DEFAULT_ENV = "local"

# Paper sizes in inches (width, height), portrait.
PAPER_SIZES_IN: dict[str, tuple[float, float]] = {
    "letter": (8.5, 11.0),
    "a4": (8.27, 11.69),
    "legal": (8.5, 14.0),
}


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class BrowserSettings(BaseSettings):
    """Playwright browser settings."""

    model_config = SettingsConfigDict(env_prefix="PDFBUDDY_BROWSER__")

    headless: bool = True
    timeout_ms: int = 30_000
    viewport_width: int = 1024
    viewport_height: int = 768
    user_agent: str = ""


class CaptureSettings(BaseSettings):
    """Page preparation and scroll-capture timing."""

    model_config = SettingsConfigDict(env_prefix="PDFBUDDY_CAPTURE__")

    settle_timeout_ms: int = 3_000
    message_timeout_ms: int = 10_000
    scroll_pause_ms: int = 150


class LayoutSettings(BaseSettings):
    """Print page geometry used by the layout planner and PDF assembler."""

    model_config = SettingsConfigDict(env_prefix="PDFBUDDY_LAYOUT__")

    paper: str = "letter"  # letter | a4 | legal
    margin_in: float = 0.0

    @field_validator("paper")
    @classmethod
    def _known_paper(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in PAPER_SIZES_IN:
            raise ValueError(f"Unknown paper size {v!r}; expected one of {sorted(PAPER_SIZES_IN)}")
        return v

    @field_validator("margin_in")
    @classmethod
    def _non_negative_margin(cls, v: float) -> float:
        if v < 0 or v >= 4:
            raise ValueError("margin_in must be within [0, 4)")
        return v

    @property
    def paper_size_in(self) -> tuple[float, float]:
        """Return the portrait (width, height) of the configured paper in inches."""
        return PAPER_SIZES_IN[self.paper]


class OutputSettings(BaseSettings):
    """Where finished PDFs are written."""

    model_config = SettingsConfigDict(env_prefix="PDFBUDDY_OUTPUT__")

    download_dir: str = "data/downloads"


class StorageSettings(BaseSettings):
    """Persistence for templates and the last-used watermark."""

    model_config = SettingsConfigDict(env_prefix="PDFBUDDY_STORAGE__")

    backend: str = "sqlite"  # sqlite | memory
    sqlite_path: str = "data/pdfbuddy.db"
    max_free_templates: int = 3


class LicenseSettings(BaseSettings):
    """Granted premium features (e.g. ``image_watermark``, ``unlimited_templates``)."""

    model_config = SettingsConfigDict(env_prefix="PDFBUDDY_LICENSE__")

    features: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root PDF Buddy settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="PDFBUDDY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False
    log_level: str = "INFO"

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    capture: CaptureSettings = Field(default_factory=CaptureSettings)
    layout: LayoutSettings = Field(default_factory=LayoutSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    license: LicenseSettings = Field(default_factory=LicenseSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Normalize relative paths against project_root."""
        root = self.project_root
        if not Path(self.output.download_dir).is_absolute():
            self.output.download_dir = str(root / self.output.download_dir)
        if not Path(self.storage.sqlite_path).is_absolute():
            self.storage.sqlite_path = str(root / self.storage.sqlite_path)
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
