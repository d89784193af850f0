"""Tests for the sandbox preview hosts."""

from __future__ import annotations

import asyncio
import html
import threading
import time

import pytest

from livesynth.errors import RenderError
from livesynth.preview.host import (
    PREVIEW_CSP,
    SANDBOX_FLAGS,
    MemoryPreviewHost,
    SandboxedFilePreviewHost,
)
from livesynth.schemas.preview import PreviewArtifact

DOCUMENT = '<!DOCTYPE html><html><body><div id="root"></div><script>alert("x")</script></body></html>'


def _artifact(code: str = DOCUMENT, length: int = 3) -> PreviewArtifact:
    return PreviewArtifact(compiled_code=code, source_snapshot_length=length)


class TestSandboxedFilePreviewHost:
    @pytest.mark.asyncio()
    async def test_render_writes_sandboxed_shell(self, tmp_path):
        host = SandboxedFilePreviewHost(tmp_path / "preview")
        await host.render(_artifact())

        page = host.index_path.read_text(encoding="utf-8")
        assert f'sandbox="{SANDBOX_FLAGS}"' in page
        assert "allow-same-origin" not in page
        assert PREVIEW_CSP in page
        assert "connect-src 'none'" in page
        assert html.escape(DOCUMENT, quote=True) in page
        # The artifact is never inlined as live markup in the outer page
        assert '<script>alert("x")</script>' not in page
        assert "3 chunks" in page

    @pytest.mark.asyncio()
    async def test_each_render_is_a_fresh_file(self, tmp_path):
        host = SandboxedFilePreviewHost(tmp_path, keep=5)
        await host.render(_artifact("<p>one</p>", 1))
        await host.render(_artifact("<p>two</p>", 2))

        assert host.render_count == 2
        assert (tmp_path / "render-0001.html").exists()
        assert (tmp_path / "render-0002.html").exists()
        index = host.index_path.read_text(encoding="utf-8")
        assert "&lt;p&gt;two&lt;/p&gt;" in index
        assert "&lt;p&gt;one" not in index

    @pytest.mark.asyncio()
    async def test_old_renders_are_pruned(self, tmp_path):
        host = SandboxedFilePreviewHost(tmp_path, keep=2)
        for length in range(1, 5):
            await host.render(_artifact(f"<p>{length}</p>", length))

        names = sorted(p.name for p in tmp_path.glob("render-*.html"))
        assert names == ["render-0003.html", "render-0004.html"]
        assert not list(tmp_path.glob(".*.tmp"))

    @pytest.mark.asyncio()
    async def test_clear_removes_preview_files(self, tmp_path):
        host = SandboxedFilePreviewHost(tmp_path)
        await host.render(_artifact())
        await host.clear()
        assert not host.index_path.exists()
        assert not list(tmp_path.glob("render-*.html"))

    @pytest.mark.asyncio()
    async def test_write_finishing_after_clear_is_dropped(self, tmp_path):
        host = SandboxedFilePreviewHost(tmp_path)
        write = host._write
        started = threading.Event()

        def _slow_write(generation, number, page):
            started.set()
            time.sleep(0.2)
            write(generation, number, page)

        host._write = _slow_write
        task = asyncio.create_task(host.render(_artifact()))
        while not started.is_set():
            await asyncio.sleep(0.005)

        task.cancel()
        await host.clear()
        await asyncio.sleep(0.4)

        assert not host.index_path.exists()
        assert not list(tmp_path.glob("render-*.html"))

    @pytest.mark.asyncio()
    async def test_render_after_clear_is_written(self, tmp_path):
        host = SandboxedFilePreviewHost(tmp_path)
        await host.render(_artifact())
        await host.clear()
        await host.render(_artifact(length=5))
        assert "5 chunks" in host.index_path.read_text(encoding="utf-8")

    @pytest.mark.asyncio()
    async def test_clear_without_directory_is_fine(self, tmp_path):
        host = SandboxedFilePreviewHost(tmp_path / "missing")
        await host.clear()

    @pytest.mark.asyncio()
    async def test_unwritable_directory_raises_render_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        host = SandboxedFilePreviewHost(blocker)

        with pytest.raises(RenderError, match="Could not write preview #1"):
            await host.render(_artifact())


class TestMemoryPreviewHost:
    @pytest.mark.asyncio()
    async def test_keeps_rendered_artifacts(self):
        host = MemoryPreviewHost()
        first, second = _artifact("a", 1), _artifact("b", 2)
        await host.render(first)
        await host.render(second)
        assert host.rendered == [first, second]
        assert host.current == second
        assert host.render_count == 2

    @pytest.mark.asyncio()
    async def test_fail_with_raises_render_error(self):
        host = MemoryPreviewHost()
        host.fail_with = "iframe crashed"
        with pytest.raises(RenderError, match="iframe crashed"):
            await host.render(_artifact())
        assert host.rendered == []

    @pytest.mark.asyncio()
    async def test_clear_drops_current(self):
        host = MemoryPreviewHost()
        await host.render(_artifact())
        await host.clear()
        assert host.current is None
