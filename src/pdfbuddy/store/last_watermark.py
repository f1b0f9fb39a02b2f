"""The single "last used watermark" slot.

Advisory convenience state: every successful watermarked capture
overwrites it and concurrent writers resolve last-write-wins.
"""

from __future__ import annotations

import logging

from pdfbuddy.models.watermark import WatermarkConfig
from pdfbuddy.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

LAST_WATERMARK_KEY = "lastWatermark"


class LastWatermarkStore:
    """Get/set the most recently applied ``WatermarkConfig``."""

    def __init__(self, store: KeyValueStore, key: str = LAST_WATERMARK_KEY) -> None:
        self._store = store
        self._key = key

    def get(self) -> WatermarkConfig | None:
        """Return the stored config, re-validated, or ``None`` if never set."""
        raw = self._store.get(self._key)
        if raw is None:
            return None
        return WatermarkConfig.model_validate(raw)

    def set(self, config: WatermarkConfig) -> None:
        self._store.set(self._key, config.to_storage())
        logger.debug("Last watermark updated (%s)", config.type.value)

    def clear(self) -> None:
        self._store.delete(self._key)
