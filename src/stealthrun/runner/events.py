"""Event bus — decouples the session monitor from progress consumers (CLI, logs, tests).

* Type-safe event types via ``EventType`` enum.
* Multiple sink pattern: a single bus emits to all registered
  ``EventSink`` implementations (JSONL stream, logger, in-memory buffer).
* Snapshot caching so a late-attaching observer can read the latest
  session state and progress without replaying events.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


class EventType(str, Enum):
    """All event types emitted during a session."""

    # Session lifecycle
    SESSION_STARTED = "session_started"
    SESSION_PAUSED = "session_paused"
    SESSION_RESUMED = "session_resumed"
    SESSION_STOPPING = "session_stopping"
    SESSION_FINISHED = "session_finished"

    # Steps
    STEP_STARTED = "step_started"
    STEP_RETRYING = "step_retrying"
    STEP_FINISHED = "step_finished"

    # Progress / info
    LOG = "log"
    PROGRESS = "progress"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Event payload model
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """Structured event emitted by the event bus."""

    event_type: EventType
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    session_id: str = ""
    data: dict[str, Any] = Field(default_factory=dict)

    def to_jsonl(self) -> str:
        """Serialize to a single JSON line (no trailing newline)."""
        return self.model_dump_json()


# ---------------------------------------------------------------------------
# Sink protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class EventSink(Protocol):
    """Protocol for event consumers."""

    async def handle_event(self, event: Event) -> None:
        """Process a single event."""
        ...


# ---------------------------------------------------------------------------
# Built-in sinks
# ---------------------------------------------------------------------------


class LoggingSink:
    """Emit events to the Python logger at DEBUG level."""

    def __init__(self, logger_name: str = "stealthrun.events") -> None:
        self._logger = logging.getLogger(logger_name)

    async def handle_event(self, event: Event) -> None:
        self._logger.debug(
            "[%s] %s: %s",
            event.session_id or "?",
            event.event_type.value,
            json.dumps(event.data, default=str)[:200],
        )


class InMemorySink:
    """Collect events in a list — useful for testing."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def handle_event(self, event: Event) -> None:
        self.events.append(event)

    def clear(self) -> None:
        self.events.clear()

    @property
    def count(self) -> int:
        return len(self.events)

    def of_type(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]


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
    """Central event dispatcher for monitor-to-consumer communication.

    A failing sink is logged and skipped; it never interrupts the session.

    Args:
        session_id: Default session ID attached to all events.
    """

    def __init__(self, session_id: str = "") -> None:
        self.session_id = session_id
        self._sinks: list[EventSink] = []

        # Snapshot for late observers
        self._latest_state: str = ""
        self._latest_step: str = ""
        self._progress: float = 0.0
        self._started_at: float = time.monotonic()

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, sink: EventSink) -> None:
        self._sinks = [s for s in self._sinks if s is not sink]

    @property
    def sink_count(self) -> int:
        return len(self._sinks)

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------

    async def emit(self, event_type: EventType | str, data: dict[str, Any] | None = None) -> None:
        """Emit an event to all registered sinks.

        Args:
            event_type: The event type (``EventType`` enum or raw string).
            data: Optional payload data.
        """
        # Normalise string → enum
        if isinstance(event_type, str):
            try:
                event_type = EventType(event_type)
            except ValueError:
                event_type = EventType.LOG

        payload = data or {}
        self._update_snapshot(event_type, payload)

        event = Event(event_type=event_type, session_id=self.session_id, data=payload)

        for sink in self._sinks:
            try:
                await sink.handle_event(event)
            except Exception as exc:
                logger.warning("EventBus sink error (%s): %s", type(sink).__name__, exc)

    def _update_snapshot(self, event_type: EventType, data: dict[str, Any]) -> None:
        if event_type == EventType.SESSION_STARTED:
            self._latest_state = "running"
            self._started_at = time.monotonic()
        elif event_type == EventType.SESSION_PAUSED:
            self._latest_state = "paused"
        elif event_type == EventType.SESSION_RESUMED:
            self._latest_state = "running"
        elif event_type == EventType.SESSION_FINISHED:
            self._latest_state = data.get("status", "")
        elif event_type == EventType.STEP_STARTED:
            self._latest_step = data.get("step_id", "")
        elif event_type == EventType.PROGRESS:
            self._progress = float(data.get("progress", self._progress))

    def get_snapshot(self) -> dict[str, Any]:
        """Return the latest known session state."""
        return {
            "session_id": self.session_id,
            "state": self._latest_state,
            "step_id": self._latest_step,
            "progress": self._progress,
            "uptime_sec": round(time.monotonic() - self._started_at, 1),
        }
