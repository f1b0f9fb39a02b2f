"""Event bus: decouples the capture orchestrator from its consumers.

* Type-safe event types via ``EventType``.
* Multiple sink pattern: one bus emits to every registered ``EventSink``
  (logger, JSONL stream, in-memory buffer, CLI progress display).
* A failing sink is logged and skipped; it never breaks emission or the
  capture that emitted the event.
* Snapshot of the latest state so a late-joining consumer can render the
  current progress immediately.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


class EventType(str, Enum):
    """All event types emitted during a capture."""

    # Lifecycle
    CAPTURE_STARTED = "capture_started"
    CAPTURE_COMPLETED = "capture_completed"

    # State machine
    STATE_CHANGED = "state_changed"

    # Progress / info
    PROGRESS = "progress"
    LOG = "log"
    ERROR = "error"


class Event(BaseModel):
    """Structured event emitted by the event bus."""

    event_type: EventType
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: str = ""
    data: dict[str, Any] = Field(default_factory=dict)

    def to_jsonl(self) -> str:
        """Serialize to a single JSON line (no trailing newline)."""
        return self.model_dump_json()


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


@runtime_checkable
class EventSink(Protocol):
    """Protocol for event consumers."""

    async def handle_event(self, event: Event) -> None:
        """Process a single event."""
        ...


class LoggingSink:
    """Emit events to the Python logger at DEBUG level."""

    def __init__(self, logger_name: str = "pdfbuddy.events") -> None:
        self._logger = logging.getLogger(logger_name)

    async def handle_event(self, event: Event) -> None:
        self._logger.debug(
            "[%s] %s: %s",
            event.request_id or "?",
            event.event_type.value,
            json.dumps(event.data, default=str)[:200],
        )


class InMemorySink:
    """Collect events in a list; useful for testing."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def handle_event(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[Event]:
        """Return collected events of one type, in emission order."""
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()

    @property
    def count(self) -> int:
        return len(self.events)


class JsonlSink:
    """Write events as JSONL lines to a file-like object.

    Works with ``sys.stdout``, ``sys.stderr``, or an open file handle.
    """

    def __init__(self, stream: Any) -> None:
        self._stream = stream

    async def handle_event(self, event: Event) -> None:
        self._stream.write(event.to_jsonl() + "\n")
        if hasattr(self._stream, "flush"):
            self._stream.flush()


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------


class EventBus:
    """Central event dispatcher for orchestrator-to-consumer communication.

    Args:
        request_id: Default request id attached to events that do not set one.
    """

    def __init__(self, request_id: str = "") -> None:
        self._request_id = request_id
        self._sinks: list[EventSink] = []
        self._latest_state: str = ""
        self._latest_stage: str = ""
        self._latest_error: str = ""

    def add_sink(self, sink: EventSink) -> None:
        """Register an event sink."""
        self._sinks.append(sink)

    def remove_sink(self, sink: EventSink) -> None:
        """Remove a previously registered sink."""
        self._sinks = [s for s in self._sinks if s is not sink]

    @property
    def sink_count(self) -> int:
        return len(self._sinks)

    async def emit(
        self,
        event_type: EventType | str,
        data: dict[str, Any] | None = None,
        *,
        request_id: str = "",
    ) -> None:
        """Emit an event to all registered sinks.

        Args:
            event_type: The event type (``EventType`` enum or raw string;
                unknown strings become ``log``).
            data: Optional payload data.
            request_id: Overrides the bus default for this event.
        """
        if isinstance(event_type, str):
            try:
                event_type = EventType(event_type)
            except ValueError:
                event_type = EventType.LOG

        payload = data or {}
        self._update_snapshot(event_type, payload)
        event = Event(event_type=event_type, request_id=request_id or self._request_id, data=payload)

        for sink in self._sinks:
            try:
                await sink.handle_event(event)
            except Exception as exc:
                logger.warning("EventBus sink error (%s): %s", type(sink).__name__, exc)

    async def progress(self, stage: str, done: bool = False, *, request_id: str = "", **extra: Any) -> None:
        """Emit a ``progress`` event with a human-readable *stage*."""
        await self.emit(EventType.PROGRESS, {"stage": stage, "done": done, **extra}, request_id=request_id)

    def _update_snapshot(self, event_type: EventType, data: dict[str, Any]) -> None:
        if event_type == EventType.STATE_CHANGED:
            self._latest_state = data.get("new_state", "")
        elif event_type == EventType.PROGRESS:
            self._latest_stage = data.get("stage", "")
        elif event_type == EventType.ERROR:
            self._latest_error = data.get("message", "")
        elif event_type == EventType.CAPTURE_STARTED:
            self._latest_error = ""

    def get_snapshot(self) -> dict[str, Any]:
        """Return the latest state for a late-joining consumer."""
        return {"state": self._latest_state, "stage": self._latest_stage, "error": self._latest_error}
