"""Sandbox preview hosts.

A PreviewHost presents a compiled artifact in a context isolated from
host privileges. Every render is a fresh instance that replaces the
previous one; nothing is patched in place. Failures raise RenderError,
which the controller keeps out of the session's generation status.
"""

from __future__ import annotations

import asyncio
import html
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from livesynth.errors import RenderError
from livesynth.schemas.preview import PreviewArtifact

logger = logging.getLogger(__name__)

_TEMPLATES_DIR = Path(__file__).parent / "templates"

# Scripts may run, but without allow-same-origin the frame gets an opaque
# origin: no cookies, storage or parent DOM, and no top-level navigation.
SANDBOX_FLAGS = "allow-scripts"

PREVIEW_CSP = "; ".join([
    "default-src 'none'",
    "script-src https://unpkg.com https://cdn.tailwindcss.com 'unsafe-inline' 'unsafe-eval'",
    "style-src 'unsafe-inline' https:",
    "img-src data: https:",
    "font-src https: data:",
    "connect-src 'none'",
    "frame-src 'self'",
    "base-uri 'none'",
    "form-action 'none'",
])

_INDEX_NAME = "index.html"


class PreviewHost(ABC):
    """Executes a compiled artifact in an isolated context."""

    @abstractmethod
    async def render(self, artifact: PreviewArtifact) -> None:
        """Present *artifact* as a fresh instance.

        Raises:
            RenderError: If the artifact could not be presented.
        """

    async def clear(self) -> None:
        """Remove whatever is currently rendered."""


class MemoryPreviewHost(PreviewHost):
    """Keeps rendered artifacts in memory.

    Used when embedding the controller in another application that does
    its own presentation, and in tests. Setting ``fail_with`` makes the
    next renders raise RenderError with that message.
    """

    def __init__(self) -> None:
        self.rendered: list[PreviewArtifact] = []
        self.current: PreviewArtifact | None = None
        self.fail_with: str | None = None

    @property
    def render_count(self) -> int:
        return len(self.rendered)

    async def render(self, artifact: PreviewArtifact) -> None:
        if self.fail_with:
            raise RenderError(self.fail_with)
        self.rendered.append(artifact)
        self.current = artifact

    async def clear(self) -> None:
        self.current = None


class SandboxedFilePreviewHost(PreviewHost):
    """Writes each artifact into a sandboxed shell page on disk.

    The artifact document is embedded through ``srcdoc`` in an iframe
    restricted to SANDBOX_FLAGS, under a Content-Security-Policy that
    forbids network connections. Each render goes to its own numbered
    file and is then atomically swapped into ``index.html``.
    """

    def __init__(self, output_dir: Path | str, *, keep: int = 3) -> None:
        self._output_dir = Path(output_dir)
        self._keep = max(1, keep)
        self._render_number = 0
        # Bumped by clear(); writes started under an older generation are dropped
        self._generation = 0
        self._io_lock = threading.Lock()
        env = Environment(
            loader=FileSystemLoader(str(_TEMPLATES_DIR)),
            keep_trailing_newline=True,
            autoescape=False,
        )
        self._shell = env.get_template("shell.html.j2")

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def index_path(self) -> Path:
        return self._output_dir / _INDEX_NAME

    @property
    def render_count(self) -> int:
        return self._render_number

    async def render(self, artifact: PreviewArtifact) -> None:
        self._render_number += 1
        number = self._render_number
        page = self._shell.render(
            csp=PREVIEW_CSP,
            sandbox=SANDBOX_FLAGS,
            srcdoc=html.escape(artifact.compiled_code, quote=True),
            render_number=number,
            snapshot_length=artifact.source_snapshot_length,
            generated_at=datetime.fromtimestamp(artifact.generated_at).strftime("%H:%M:%S"),
        )
        try:
            await asyncio.to_thread(self._write, self._generation, number, page)
        except OSError as e:
            raise RenderError(f"Could not write preview #{number}: {e}") from e
        logger.debug("Preview #%d written to %s", number, self.index_path)

    async def clear(self) -> None:
        self._generation += 1
        try:
            await asyncio.to_thread(self._remove_all)
        except OSError as e:
            logger.warning("Could not clear preview directory %s: %s", self._output_dir, e)

    def _write(self, generation: int, number: int, page: str) -> None:
        with self._io_lock:
            if generation != self._generation:
                logger.debug("Dropped preview #%d written after clear()", number)
                return
            self._output_dir.mkdir(parents=True, exist_ok=True)
            render_path = self._output_dir / f"render-{number:04d}.html"
            render_path.write_text(page, encoding="utf-8")

            staging = self._output_dir / f".{_INDEX_NAME}.tmp"
            staging.write_text(page, encoding="utf-8")
            os.replace(staging, self.index_path)

            self._prune(number)

    def _prune(self, newest: int) -> None:
        for path in self._output_dir.glob("render-*.html"):
            try:
                index = int(path.stem.split("-", 1)[1])
            except (IndexError, ValueError):
                continue
            if index <= newest - self._keep:
                path.unlink(missing_ok=True)

    def _remove_all(self) -> None:
        with self._io_lock:
            if not self._output_dir.exists():
                return
            for path in self._output_dir.glob("render-*.html"):
                path.unlink(missing_ok=True)
            self.index_path.unlink(missing_ok=True)
