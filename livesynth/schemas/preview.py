"""Preview schemas: compiler results and rendered artifacts."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CompileResult(BaseModel):
    """Outcome of one CompilerBridge.compile() call."""

    model_config = ConfigDict(frozen=True)

    success: bool = Field(description="Whether compilation produced an artifact")
    compiled_artifact: str | None = Field(
        default=None, description="Opaque compiled output (set on success)"
    )
    error_message: str | None = Field(
        default=None, description="Failure reason (set on failure)"
    )
    dependencies: list[str] = Field(
        default_factory=list, description="Runtime libraries the artifact needs"
    )

    @model_validator(mode="after")
    def _check_outcome(self) -> CompileResult:
        if self.success and self.compiled_artifact is None:
            raise ValueError("successful CompileResult requires compiled_artifact")
        if not self.success and not self.error_message:
            raise ValueError("failed CompileResult requires error_message")
        return self

    @classmethod
    def ok(cls, artifact: str, dependencies: list[str] | None = None) -> CompileResult:
        return cls(success=True, compiled_artifact=artifact, dependencies=dependencies or [])

    @classmethod
    def failed(cls, message: str) -> CompileResult:
        return cls(success=False, error_message=message)


class PreviewArtifact(BaseModel):
    """A compiled result paired with the buffer length it was built from."""

    model_config = ConfigDict(frozen=True)

    compiled_code: str = Field(description="Opaque compiled artifact")
    generated_at: float = Field(
        default_factory=time.time, description="Unix timestamp of compilation"
    )
    source_snapshot_length: int = Field(
        ge=0, description="Buffer length (in chunks) the artifact was compiled from"
    )
