"""livesynth — streaming code synthesis with a sandboxed live preview."""

__version__ = "0.1.0"

from .controller import StreamingController
from .events import EventType, SessionEvent, SessionEventEmitter
from .schemas.session import SessionStatus, SessionView

__all__ = [
    "EventType",
    "SessionEvent",
    "SessionEventEmitter",
    "SessionStatus",
    "SessionView",
    "StreamingController",
]
