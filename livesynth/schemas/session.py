"""Streaming session schemas.

StreamingSession is the mutable record the controller owns for one
generate-to-terminal lifecycle. SessionView is the immutable snapshot
handed to everything outside the controller.
"""

from __future__ import annotations

import uuid
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from livesynth.buffer import BufferAccumulator
from livesynth.schemas.preview import PreviewArtifact


class SessionStatus(StrEnum):
    """Lifecycle state of a generation session."""

    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = frozenset(
    {SessionStatus.REQUESTING, SessionStatus.STREAMING, SessionStatus.PAUSED}
)
TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED})


class StreamingSession(BaseModel):
    """One end-to-end generation-and-streaming lifecycle instance.

    Mutated exclusively by the StreamingController. The buffer only grows
    while the session is streaming and is discarded with the session.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    prompt: str = Field(description="The validated generation prompt")
    status: SessionStatus = Field(default=SessionStatus.IDLE)
    buffer: BufferAccumulator = Field(default_factory=BufferAccumulator)
    cursor_index: int = Field(default=0, ge=0, description="Chunks applied so far")
    total_lines_estimate: int | None = Field(
        default=None, description="Known upfront or after completion"
    )
    started_at: float | None = Field(default=None)
    completed_at: float | None = Field(default=None)
    last_error: str | None = Field(default=None, description="Set only when failed")
    preview_artifact: PreviewArtifact | None = Field(default=None)
    preview_error: str | None = Field(
        default=None, description="Latest preview failure; never changes status"
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def progress_fraction(self) -> float | None:
        """Fraction of the expected output applied, or None if indeterminate."""
        if self.status == SessionStatus.COMPLETED:
            return 1.0
        if self.total_lines_estimate:
            return min(1.0, self.cursor_index / self.total_lines_estimate)
        return None

    def to_view(self) -> SessionView:
        return SessionView(
            session_id=self.session_id,
            status=self.status,
            buffer_text=self.buffer.text,
            progress_fraction=self.progress_fraction(),
            cursor_index=self.cursor_index,
            total_lines_estimate=self.total_lines_estimate,
            started_at=self.started_at,
            completed_at=self.completed_at,
            last_error=self.last_error,
            preview_error=self.preview_error,
            preview_artifact=self.preview_artifact,
        )


class SessionView(BaseModel):
    """Read-only session snapshot exposed to the surrounding application."""

    model_config = ConfigDict(frozen=True)

    session_id: str | None = None
    status: SessionStatus = SessionStatus.IDLE
    buffer_text: str = ""
    progress_fraction: float | None = Field(
        default=None, description="0.0-1.0, or None when indeterminate"
    )
    cursor_index: int = 0
    total_lines_estimate: int | None = None
    started_at: float | None = None
    completed_at: float | None = None
    last_error: str | None = None
    preview_error: str | None = None
    preview_artifact: PreviewArtifact | None = None

    @property
    def is_indeterminate(self) -> bool:
        return self.progress_fraction is None


IDLE_VIEW = SessionView()
