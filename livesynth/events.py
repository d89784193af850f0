"""Session event channel for progress reporting.

The controller publishes structured events for every session milestone:
lifecycle transitions, applied chunks, and preview outcomes. Consumers
(the terminal display, an editor bridge, tests) register explicitly and
unregister through the handle add_listener() returns.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Events kept for late subscribers
_HISTORY_LIMIT = 500


class EventType(StrEnum):
    """Types of session events."""

    SESSION_STARTED = "session_started"
    STREAMING_STARTED = "streaming_started"
    CHUNK_APPLIED = "chunk_applied"
    SESSION_PAUSED = "session_paused"
    SESSION_RESUMED = "session_resumed"
    SESSION_COMPLETED = "session_completed"
    SESSION_FAILED = "session_failed"
    SESSION_STOPPED = "session_stopped"
    PREVIEW_RENDERED = "preview_rendered"
    PREVIEW_FAILED = "preview_failed"


class SessionEvent(BaseModel):
    """A single session event."""

    type: EventType = Field(description="Event type")
    session_id: str = Field(default="", description="Session the event belongs to")
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp when the event occurred",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event payload — varies by event type",
    )


# Type alias for event listener callbacks
EventListener = Callable[[SessionEvent], Any]


class SessionEventEmitter:
    """Broadcasts session events to registered listeners.

    Listeners can be sync or async callables. Listener exceptions are
    logged and never reach the controller.
    """

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []
        self._history: deque[SessionEvent] = deque(maxlen=_HISTORY_LIMIT)

    @property
    def history(self) -> list[SessionEvent]:
        """Most recent events, oldest first."""
        return list(self._history)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener and return a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            self.remove_listener(listener)

        return _unsubscribe

    def remove_listener(self, listener: EventListener) -> None:
        """Remove a previously registered listener."""
        self._listeners = [ln for ln in self._listeners if ln is not listener]

    def clear_history(self) -> None:
        self._history.clear()

    async def emit(self, event_type: EventType, session_id: str = "", **data: Any) -> None:
        """Emit a session event to all registered listeners.

        Sync listeners are called directly; async listeners are awaited.
        """
        event = SessionEvent(type=event_type, session_id=session_id, data=data)
        self._history.append(event)

        for listener in list(self._listeners):
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Event listener error for %s", event_type)
