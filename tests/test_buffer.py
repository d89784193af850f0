"""Tests for the append-only buffer accumulator."""

from __future__ import annotations

import dataclasses

import pytest

from livesynth.buffer import EMPTY_SNAPSHOT, BufferAccumulator, BufferSnapshot


class TestBufferAccumulator:
    def test_starts_empty(self):
        buf = BufferAccumulator()
        assert len(buf) == 0
        assert buf.text == ""
        assert buf.snapshot() == EMPTY_SNAPSHOT

    def test_append_returns_new_length(self):
        buf = BufferAccumulator()
        assert buf.append("import React from 'react';\n") == 1
        assert buf.append("\n") == 2
        assert len(buf) == 2

    def test_text_preserves_arrival_order(self):
        buf = BufferAccumulator()
        for piece in ["a", "b", "c"]:
            buf.append(piece)
        assert buf.text == "abc"
        assert buf.char_count == 3

    def test_snapshot_pairs_text_with_length(self):
        buf = BufferAccumulator()
        buf.append("line 1\n")
        buf.append("line 2\n")
        snap = buf.snapshot()
        assert snap.text == "line 1\nline 2\n"
        assert snap.length == 2
        assert snap.char_count == len(snap.text)

    def test_earlier_snapshot_unaffected_by_later_appends(self):
        buf = BufferAccumulator()
        buf.append("first\n")
        before = buf.snapshot()
        buf.append("second\n")
        after = buf.snapshot()
        assert before.text == "first\n"
        assert before.length == 1
        assert after.text == "first\nsecond\n"
        assert after.length == 2

    def test_empty_chunk_still_counts(self):
        buf = BufferAccumulator()
        buf.append("x")
        buf.append("")
        assert buf.snapshot().length == 2
        assert buf.text == "x"

    def test_clear_drops_everything(self):
        buf = BufferAccumulator()
        buf.append("x")
        buf.snapshot()
        buf.clear()
        assert len(buf) == 0
        assert buf.snapshot() == EMPTY_SNAPSHOT
        buf.append("y")
        assert buf.text == "y"


class TestBufferSnapshot:
    def test_snapshot_is_frozen(self):
        snap = BufferSnapshot(text="abc", length=1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            snap.length = 2  # type: ignore[misc]
