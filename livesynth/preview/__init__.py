"""Preview layer: compiler bridge and sandboxed preview hosts."""

from livesynth.preview.compiler import (
    CompilerBridge,
    TemplateCompiler,
    extract_component_code,
)
from livesynth.preview.host import (
    MemoryPreviewHost,
    PreviewHost,
    SandboxedFilePreviewHost,
)

__all__ = [
    "CompilerBridge",
    "MemoryPreviewHost",
    "PreviewHost",
    "SandboxedFilePreviewHost",
    "TemplateCompiler",
    "extract_component_code",
]
