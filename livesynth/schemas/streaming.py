"""Streaming schemas for incremental code delivery.

Defines the events a GenerationSource yields: CodeChunk for each
increment of code text, followed by exactly one terminal signal —
SourceCompleted or SourceFailed.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CodeChunk(BaseModel):
    """A single unit of incrementally produced code text."""

    model_config = ConfigDict(frozen=True)

    sequence_number: int = Field(
        ge=1, description="Monotonically increasing position within the session"
    )
    text: str = Field(description="Code text carried by this chunk")


class SourceCompleted(BaseModel):
    """Completion signal: the source has no more chunks to deliver."""

    model_config = ConfigDict(frozen=True)

    total_lines: int = Field(ge=0, description="Total lines the source produced")
    elapsed_time: float = Field(
        default=0.0, ge=0.0, description="Seconds from subscribe to completion"
    )


class SourceFailed(BaseModel):
    """Error signal: the source gave up. Terminal for the session."""

    model_config = ConfigDict(frozen=True)

    message: str = Field(description="Human-readable failure reason")


# Everything a GenerationSource may yield
SourceEvent = CodeChunk | SourceCompleted | SourceFailed
