"""livesynth schema definitions.

All Pydantic v2 models used by the controller, sources and preview layer.
"""

from livesynth.schemas.config import ModelConfig, StreamingConfig
from livesynth.schemas.preview import CompileResult, PreviewArtifact
from livesynth.schemas.session import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    SessionStatus,
    SessionView,
    StreamingSession,
)
from livesynth.schemas.streaming import (
    CodeChunk,
    SourceCompleted,
    SourceEvent,
    SourceFailed,
)

__all__ = [
    "ACTIVE_STATUSES",
    "CodeChunk",
    "CompileResult",
    "ModelConfig",
    "PreviewArtifact",
    "SessionStatus",
    "SessionView",
    "SourceCompleted",
    "SourceEvent",
    "SourceFailed",
    "StreamingConfig",
    "StreamingSession",
    "TERMINAL_STATUSES",
]
