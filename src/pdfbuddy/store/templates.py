"""Named watermark templates.

Templates are kept as one JSON list under a single store key. Free
licenses are limited to ``max_free_templates`` entries; the
``unlimited_templates`` feature lifts the limit. Every config is
validated on the way in, so stored templates are always renderable.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from pdfbuddy.exceptions import TemplateError
from pdfbuddy.models.watermark import DEFAULT_TEXT_WATERMARK, Template, WatermarkConfig
from pdfbuddy.store.kv import KeyValueStore
from pdfbuddy.watermark.engine import UNLIMITED_TEMPLATES_FEATURE, FeatureGate, StaticFeatureGate
from pdfbuddy.watermark.validation import validate_watermark_config

logger = logging.getLogger(__name__)

TEMPLATES_KEY = "watermark_templates"
MAX_FREE_TEMPLATES = 3
MAX_NAME_LENGTH = 50

DEFAULT_TEMPLATES: tuple[tuple[str, WatermarkConfig], ...] = (
    ("Confidential", DEFAULT_TEXT_WATERMARK.model_copy(update={"text": "CONFIDENTIAL", "color": "#FF0000"})),
    ("Draft", DEFAULT_TEXT_WATERMARK.model_copy(update={"text": "DRAFT", "color": "#808080"})),
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise TemplateError("Template name must not be empty")
    return " ".join(name.split())[:MAX_NAME_LENGTH]


class TemplateManager:
    """CRUD, import and export for watermark templates.

    Args:
        store: Backing key-value store.
        feature_gate: Entitlements; ``unlimited_templates`` lifts the limit.
        max_free_templates: Limit for licenses without that feature.
    """

    def __init__(
        self,
        store: KeyValueStore,
        feature_gate: FeatureGate | None = None,
        max_free_templates: int = MAX_FREE_TEMPLATES,
    ) -> None:
        self._store = store
        self._gate = feature_gate or StaticFeatureGate()
        self.max_free_templates = max_free_templates

    # ------------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------------

    def _load(self) -> list[Template]:
        templates: list[Template] = []
        for raw in self._store.get(TEMPLATES_KEY, []) or []:
            try:
                templates.append(Template.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping unreadable stored template: %s", e.errors()[0]["msg"])
        return templates

    def _dump(self, templates: list[Template]) -> None:
        self._store.set(TEMPLATES_KEY, [t.model_dump(mode="json", by_alias=True) for t in templates])

    @property
    def unlimited(self) -> bool:
        return self._gate.has_feature(UNLIMITED_TEMPLATES_FEATURE)

    def _check_capacity(self, current: int, adding: int = 1) -> None:
        if not self.unlimited and current + adding > self.max_free_templates:
            raise TemplateError(
                f"Free licenses are limited to {self.max_free_templates} templates. "
                "Upgrade to premium for unlimited templates."
            )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def list(self) -> list[Template]:
        return self._load()

    def count(self) -> int:
        return len(self._load())

    def get(self, template_id: str) -> Template | None:
        return next((t for t in self._load() if t.id == template_id), None)

    def find(self, id_or_name: str) -> Template | None:
        """Look a template up by id, then by case-insensitive name."""
        templates = self._load()
        wanted = id_or_name.strip().lower()
        for t in templates:
            if t.id == id_or_name:
                return t
        return next((t for t in templates if t.name.lower() == wanted), None)

    def save(self, name: str, config: Any) -> Template:
        """Create a template.

        Raises:
            TemplateError: empty name or template limit reached.
        """
        templates = self._load()
        self._check_capacity(len(templates))
        template = Template(name=_clean_name(name), config=validate_watermark_config(config))
        templates.append(template)
        self._dump(templates)
        logger.info("Saved template %s (%s)", template.name, template.id)
        return template

    def update(self, template_id: str, name: str | None = None, config: Any = None) -> Template:
        """Rename and/or reconfigure an existing template.

        Raises:
            TemplateError: unknown id or empty name.
        """
        templates = self._load()
        for i, existing in enumerate(templates):
            if existing.id != template_id:
                continue
            changes: dict[str, Any] = {"updated_at": _now()}
            if name is not None:
                changes["name"] = _clean_name(name)
            if config is not None:
                changes["config"] = validate_watermark_config(config)
            templates[i] = existing.model_copy(update=changes)
            self._dump(templates)
            return templates[i]
        raise TemplateError(f"Template with ID {template_id} not found")

    def delete(self, template_id: str) -> bool:
        """Remove a template; returns False when the id is unknown."""
        templates = self._load()
        remaining = [t for t in templates if t.id != template_id]
        if len(remaining) == len(templates):
            return False
        self._dump(remaining)
        logger.info("Deleted template %s", template_id)
        return True

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_json(self) -> str:
        return json.dumps([t.model_dump(mode="json", by_alias=True) for t in self._load()], indent=2)

    def import_json(self, payload: str) -> int:
        """Append templates from a JSON list; returns how many were imported.

        Entries without a name or config are skipped. Imported templates
        receive fresh ids and timestamps.

        Raises:
            TemplateError: malformed JSON, not a list, or limit exceeded.
        """
        try:
            entries = json.loads(payload)
        except json.JSONDecodeError as e:
            raise TemplateError("Template file is not valid JSON", cause=e) from e
        if not isinstance(entries, list):
            raise TemplateError("Template file must contain a JSON list")

        templates = self._load()
        self._check_capacity(len(templates), len(entries))
        imported = 0
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("name") or not entry.get("config"):
                logger.info("Skipping template entry without name or config")
                continue
            try:
                templates.append(Template(name=_clean_name(entry["name"]), config=validate_watermark_config(entry["config"])))
            except TemplateError as e:
                logger.info("Skipping template entry: %s", e.message)
                continue
            imported += 1
        self._dump(templates)
        logger.info("Imported %d template(s)", imported)
        return imported

    def seed_defaults(self) -> list[Template]:
        """Create the built-in templates when none exist yet."""
        if self._load():
            return []
        seeded = [self.save(name, config) for name, config in DEFAULT_TEMPLATES]
        logger.info("Seeded %d default templates", len(seeded))
        return seeded


def build_template_manager(store: KeyValueStore | None = None, settings=None) -> TemplateManager:
    """Return a ``TemplateManager`` wired to the configured store and license."""
    if settings is None:
        from pdfbuddy.settings import get_settings

        settings = get_settings()
    if store is None:
        from pdfbuddy.store.kv import build_store

        store = build_store()
    return TemplateManager(
        store,
        feature_gate=StaticFeatureGate(settings.license.features),
        max_free_templates=settings.storage.max_free_templates,
    )
