"""Watermark configuration and template models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WatermarkType(str, Enum):
    """Kinds of watermark the engine can render."""

    TEXT = "text"
    IMAGE = "image"


class WatermarkPosition(str, Enum):
    """Anchor positions, expressed as fractions of the surface size."""

    CENTER = "center"
    TOP_LEFT = "topLeft"
    TOP_RIGHT = "topRight"
    BOTTOM_LEFT = "bottomLeft"
    BOTTOM_RIGHT = "bottomRight"


class WatermarkConfig(BaseModel):
    """A validated watermark configuration.

    Construction is fail-open: any field outside its domain is replaced by
    a secure default (see ``pdfbuddy.watermark.validation``) instead of
    raising, so a config loaded from storage or typed by a user is always
    renderable.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: WatermarkType = WatermarkType.TEXT
    text: str = "CONFIDENTIAL"
    color: str = "#FF0000"
    font_size: float = Field(48, alias="fontSize")
    font_family: str = Field("Arial", alias="fontFamily")
    rotation: float = 0
    image_data: str | None = Field(None, alias="imageData")
    scale: float = 1.0
    position: WatermarkPosition = WatermarkPosition.CENTER
    opacity: float = 0.5

    @model_validator(mode="before")
    @classmethod
    def _fail_open(cls, data: Any) -> dict[str, Any]:
        from pdfbuddy.watermark.validation import sanitize_watermark_fields

        return sanitize_watermark_fields(data)

    def to_storage(self) -> dict[str, Any]:
        """Serialize using the camelCase keys of the persisted layout."""
        return self.model_dump(mode="json", by_alias=True)


DEFAULT_TEXT_WATERMARK = WatermarkConfig(
    type=WatermarkType.TEXT,
    text="CONFIDENTIAL",
    position=WatermarkPosition.CENTER,
    opacity=0.5,
    color="#FF0000",
    font_size=48,
    font_family="Arial",
    rotation=-45,
)


class Template(BaseModel):
    """A named, persisted watermark configuration."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid4().hex[:8])
    name: str
    config: WatermarkConfig
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat(), alias="createdAt")
    updated_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat(), alias="updatedAt")
