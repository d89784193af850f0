"""Live terminal display for a streaming synthesis session.

Provides a multi-panel Rich Live display that shows the buffer growing
chunk by chunk with syntax highlighting, a progress bar (indeterminate
while the total is unknown), the preview status and an activity log.
Keypresses are read on a daemon thread and marshalled onto the event
loop, where they become controller commands.
"""

from __future__ import annotations

import asyncio
import logging
import platform
import sys
import threading
import time
from collections import deque

from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from livesynth.controller import StreamingController
from livesynth.errors import StateError
from livesynth.events import EventListener, EventType, SessionEvent
from livesynth.schemas.session import SessionStatus

logger = logging.getLogger(__name__)

_STATUS_MARKUP: dict[SessionStatus, str] = {
    SessionStatus.IDLE: "[dim]○ idle[/dim]",
    SessionStatus.REQUESTING: "[bold cyan]◌ requesting[/bold cyan]",
    SessionStatus.STREAMING: "[bold cyan]◉ streaming[/bold cyan]",
    SessionStatus.PAUSED: "[bold yellow]‖ paused[/bold yellow]",
    SessionStatus.COMPLETED: "[bold green]● completed[/bold green]",
    SessionStatus.FAILED: "[bold red]✗ failed[/bold red]",
}

# Lines of the buffer tail shown in the output panel
_TAIL_LINES = 400


# ── Keyboard handler ──────────────────────────────────────────────


def _is_interactive() -> bool:
    """Check if stdin is an interactive terminal."""
    try:
        return sys.stdin.isatty()
    except (AttributeError, ValueError):
        return False


def _read_key() -> str:
    """Read a single keypress from the terminal.

    Returns the character, or special strings for arrow keys and
    control sequences. Uses msvcrt on Windows, tty/termios on Unix.
    """
    if not _is_interactive():
        return ""

    if platform.system() == "Windows":
        import msvcrt

        ch = msvcrt.getwch()
        if ch == "\x03":  # Ctrl+C
            return "ctrl+c"
        if ch == " ":
            return "space"
        # Arrow keys on Windows: first char is \x00 or \xe0
        if ch in ("\x00", "\xe0"):
            ch2 = msvcrt.getwch()
            if ch2 == "H":
                return "up"
            if ch2 == "P":
                return "down"
            return ""
        return ch
    else:
        import termios
        import tty

        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)
        try:
            tty.setraw(fd)
            ch = sys.stdin.read(1)
            if ch == "\x03":
                return "ctrl+c"
            if ch == "\x1b":
                ch2 = sys.stdin.read(1)
                if ch2 == "[":
                    ch3 = sys.stdin.read(1)
                    if ch3 == "A":
                        return "up"
                    if ch3 == "B":
                        return "down"
                    return ""
                return "escape"
            if ch == " ":
                return "space"
            return ch
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


class KeyboardHandler:
    """Daemon thread that reads keypresses and forwards them to the display.

    Controls:
    - Space: pause/resume the session
    - s or Ctrl+C: stop the session
    - j/k or Up/Down: scroll the output panel
    """

    def __init__(self, display: StreamingSessionDisplay) -> None:
        self._display = display
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        """Start the keyboard handler daemon thread."""
        if not _is_interactive():
            return
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="keyboard-handler"
        )
        self._thread.start()

    def stop(self) -> None:
        """Signal the keyboard handler to stop."""
        self._stop_event.set()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                key = _read_key()
            except (EOFError, OSError):
                break
            if key:
                self._display.handle_key(key)


# ── Main display ──────────────────────────────────────────────────


class StreamingSessionDisplay:
    """Multi-panel streaming display for one controller.

    Rich Layout structure:
    - status (size=5): state, progress bar, chunk count, elapsed, preview
    - main (ratio=1):
      - output (ratio=3): syntax-highlighted buffer tail
      - activity (ratio=1, min=30): timestamped event log
    - help (size=1): keyboard shortcut help bar
    """

    def __init__(
        self,
        console: Console,
        controller: StreamingController,
        *,
        source_name: str = "",
        language: str = "tsx",
    ) -> None:
        self._console = console
        self._controller = controller
        self._source_name = source_name
        self._language = language

        self._start_time = time.monotonic()
        self._status = SessionStatus.IDLE
        self._code = ""
        self._chunks = 0
        self._total_lines: int | None = None
        self._renders = 0
        self._preview_error: str | None = None
        self._activity_log: deque[tuple[float, str]] = deque(maxlen=50)
        self._scroll_offset = 0

        self._lock = threading.Lock()
        self._stop_requested = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._commands: set[asyncio.Task] = set()

        self._live: Live | None = None
        self._keyboard: KeyboardHandler | None = None
        self._unsubscribe = None

    @property
    def stop_requested(self) -> threading.Event:
        """Set when the user asked to stop the session."""
        return self._stop_requested

    def __enter__(self) -> StreamingSessionDisplay:
        """Attach to the controller, start Rich Live and the keyboard handler."""
        self._start_time = time.monotonic()
        self._loop = asyncio.get_running_loop()
        self._unsubscribe = self._controller.emitter.add_listener(self.create_listener())
        self._live = Live(
            self._build_layout(),
            console=self._console,
            refresh_per_second=8,
            transient=True,
        )
        self._live.__enter__()
        self._keyboard = KeyboardHandler(self)
        self._keyboard.start()
        return self

    def __exit__(self, *args: object) -> None:
        if self._keyboard:
            self._keyboard.stop()
            self._keyboard = None
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._live:
            self._live.__exit__(*args)
            self._live = None

    def create_listener(self) -> EventListener:
        """Create an event listener for the controller's emitter."""

        def _handle(event: SessionEvent) -> None:
            with self._lock:
                self._handle_event(event)
            self._refresh()

        return _handle

    # ── Keys and commands ─────────────────────────────────────────

    def handle_key(self, key: str) -> None:
        """Handle one keypress; safe to call from any thread."""
        if key == "space":
            self._request("toggle")
        elif key in ("s", "ctrl+c"):
            self._stop_requested.set()
            self._request("stop")
        elif key in ("j", "down"):
            with self._lock:
                self._scroll_offset = max(0, self._scroll_offset - 3)
            self._refresh()
        elif key in ("k", "up"):
            with self._lock:
                self._scroll_offset += 3
            self._refresh()

    def _request(self, command: str) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._run_command, command)

    def _run_command(self, command: str) -> None:
        """Turn a command into a controller call (runs on the event loop)."""
        controller = self._controller
        if command == "stop":
            coro = controller.stop()
        elif controller.status == SessionStatus.STREAMING:
            coro = controller.pause()
        elif controller.status == SessionStatus.PAUSED:
            coro = controller.resume()
        else:
            return

        task = asyncio.get_running_loop().create_task(coro)
        self._commands.add(task)
        task.add_done_callback(self._command_done)

    def _command_done(self, task: asyncio.Task) -> None:
        self._commands.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, StateError):
            # Lost a race with a transition; nothing to do
            with self._lock:
                self._log(f"[dim]{error}[/dim]")
        elif error is not None:
            logger.error("Controller command failed: %s", error)

    # ── Event handling ────────────────────────────────────────────

    def _handle_event(self, event: SessionEvent) -> None:
        """Handle a session event (called under lock)."""
        etype = event.type
        data = event.data

        if etype == EventType.SESSION_STARTED:
            self._status = SessionStatus.REQUESTING
            self._code = ""
            self._chunks = 0
            self._renders = 0
            self._preview_error = None
            self._scroll_offset = 0
            self._total_lines = data.get("total_lines")
            source = data.get("source") or self._source_name
            self._log(f"Requesting from [bold]{source}[/bold]")

        elif etype == EventType.STREAMING_STARTED:
            self._status = SessionStatus.STREAMING
            if data.get("total_lines") is not None:
                self._total_lines = data["total_lines"]
            self._log("[cyan]Streaming[/cyan] started")

        elif etype == EventType.CHUNK_APPLIED:
            self._code += data.get("text", "")
            self._chunks = data.get("cursor_index", self._chunks + 1)

        elif etype == EventType.SESSION_PAUSED:
            self._status = SessionStatus.PAUSED
            self._log(f"[yellow]Paused[/yellow] at chunk {data.get('cursor_index', self._chunks)}")

        elif etype == EventType.SESSION_RESUMED:
            self._status = SessionStatus.STREAMING
            queued = data.get("queued", 0)
            suffix = f" ({queued} queued)" if queued else ""
            self._log(f"[cyan]Resumed[/cyan]{suffix}")

        elif etype == EventType.SESSION_COMPLETED:
            self._status = SessionStatus.COMPLETED
            self._total_lines = data.get("total_lines", self._total_lines)
            self._log(
                f"[green]Completed[/green] "
                f"({data.get('chunks', self._chunks)} chunks, "
                f"{data.get('elapsed_time', 0.0):.1f}s)"
            )

        elif etype == EventType.SESSION_FAILED:
            self._status = SessionStatus.FAILED
            self._log(f"[red]Failed:[/red] {data.get('error', 'unknown error')}")

        elif etype == EventType.SESSION_STOPPED:
            self._status = SessionStatus.IDLE
            self._log("[yellow]Stopped[/yellow]")

        elif etype == EventType.PREVIEW_RENDERED:
            self._renders += 1
            self._preview_error = None
            self._log(
                f"[magenta]Preview[/magenta] #{self._renders} "
                f"at {data.get('snapshot_length', 0)} chunks"
            )

        elif etype == EventType.PREVIEW_FAILED:
            self._preview_error = data.get("error", "")
            self._log(f"[dim]Preview failed: {self._preview_error}[/dim]")

    def _log(self, message: str) -> None:
        """Add a timestamped entry to the activity log."""
        elapsed = time.monotonic() - self._start_time
        self._activity_log.append((elapsed, message))

    def _refresh(self) -> None:
        """Update the Live display."""
        if self._live:
            with self._lock:
                layout = self._build_layout()
            self._live.update(layout)

    # ── Layout builders ───────────────────────────────────────────

    def _build_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="status", size=5),
            Layout(name="main", ratio=1),
            Layout(name="help", size=1),
        )
        layout["main"].split_row(
            Layout(name="output", ratio=3),
            Layout(name="activity", ratio=1, minimum_size=30),
        )
        layout["status"].update(self._build_status_panel())
        layout["main"]["output"].update(self._build_output_panel())
        layout["main"]["activity"].update(self._build_activity_panel())
        layout["help"].update(self._build_help_bar())
        return layout

    def _progress_fraction(self) -> float | None:
        if self._status == SessionStatus.COMPLETED:
            return 1.0
        if self._total_lines:
            return min(1.0, self._chunks / self._total_lines)
        return None

    def _build_status_panel(self) -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(width=24)
        table.add_column(ratio=1)
        table.add_column(justify="right", width=36)

        fraction = self._progress_fraction()
        if fraction is None:
            bar = ProgressBar(total=None, width=40)
            progress = f"{self._chunks} chunks"
        else:
            bar = ProgressBar(total=100, completed=fraction * 100, width=40)
            progress = f"{self._chunks}/{self._total_lines or self._chunks} lines"

        elapsed = time.monotonic() - self._start_time
        minutes = int(elapsed // 60)
        seconds = int(elapsed % 60)
        if self._preview_error:
            preview = "[red]error[/red]"
        elif self._renders:
            preview = f"[green]#{self._renders}[/green]"
        else:
            preview = "[dim]—[/dim]"

        table.add_row(
            Text.from_markup(_STATUS_MARKUP[self._status]),
            Group(bar, Text(progress, style="dim")),
            Text.from_markup(
                f"[dim]Elapsed:[/dim] {minutes}:{seconds:02d}  [dim]Preview:[/dim] {preview}"
            ),
        )

        title = "[bold blue]livesynth[/bold blue]"
        if self._source_name:
            title += f" — {self._source_name}"
        return Panel(table, title=title, border_style="blue")

    def _build_output_panel(self) -> Panel:
        if not self._code.strip():
            return Panel(
                Text("Waiting for output...", style="dim", justify="center"),
                title="[bold]Output[/bold]",
                border_style="dim",
            )

        lines = self._code.splitlines()
        if self._scroll_offset:
            end = max(1, len(lines) - self._scroll_offset)
            lines = lines[:end]
        first = max(0, len(lines) - _TAIL_LINES)
        syntax = Syntax(
            "\n".join(lines[first:]),
            self._language,
            theme="monokai",
            line_numbers=True,
            start_line=first + 1,
            word_wrap=False,
        )
        return Panel(syntax, title="[bold]Output[/bold]", border_style="green")

    def _build_activity_panel(self) -> Panel:
        text = Text()
        entries = list(self._activity_log)[-20:]
        for elapsed, message in entries:
            minutes = int(elapsed // 60)
            seconds = int(elapsed % 60)
            text.append(f"  {minutes:02d}:{seconds:02d}  ", style="dim")
            text.append_text(Text.from_markup(message))
            text.append("\n")
        if not entries:
            text.append("  Waiting for events...", style="dim")
        return Panel(text, title="[bold]Activity[/bold]", border_style="dim")

    def _build_help_bar(self) -> Text:
        return Text.from_markup(
            " [dim][Space] Pause/Resume  [s] Stop  [↑↓] Scroll  [Ctrl+C] Stop[/dim]"
        )
