"""livesynth CLI — Typer + Rich terminal interface.

Commands: generate, replay, demo, models, config.
All output is Rich-powered with color-coded panels and tables.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path

# Ensure stdout/stderr use UTF-8 on Windows to avoid UnicodeEncodeError
# when Rich renders Unicode symbols (●, ✗, ◉) through a codepage
# like cp1252.
if sys.platform == "win32":
    for _stream_name in ("stdout", "stderr"):
        _stream = getattr(sys, _stream_name, None)
        if _stream and hasattr(_stream, "reconfigure"):
            try:
                _stream.reconfigure(encoding="utf-8")
            except (OSError, ValueError):
                pass

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from livesynth import __version__
from livesynth.controller import StreamingController
from livesynth.errors import LiveSynthError
from livesynth.events import EventType, SessionEvent
from livesynth.preview import SandboxedFilePreviewHost, TemplateCompiler
from livesynth.schemas.config import StreamingConfig
from livesynth.schemas.session import SessionStatus, SessionView
from livesynth.sources import (
    GenerationSource,
    LiteLLMSource,
    PlaybackClock,
    SimulatedSource,
    load_models,
    load_streaming_config,
    resolve_model,
)

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="livesynth",
    help="Stream generated React components into a sandboxed live preview.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

models_app = typer.Typer(
    name="models",
    help="Inspect the model registry.",
    no_args_is_help=True,
)
app.add_typer(models_app, name="models")

config_app = typer.Typer(
    name="config",
    help="Show streaming configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"livesynth {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """livesynth — live streaming synthesis with a sandboxed preview."""


# ── Helpers ──────────────────────────────────────────────────────


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # LiteLLM is chatty at DEBUG
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def _load_registry():
    """Load the model registry, exit on error."""
    try:
        return load_models()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading models:[/red] {e}")
        raise typer.Exit(1) from None


def _load_config(window: float | None = None) -> StreamingConfig:
    """Load streaming config and apply CLI overrides, exit on error."""
    try:
        config = load_streaming_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None
    if window is not None:
        if window <= 0:
            console.print(f"[red]Invalid --window:[/red] {window} (must be positive)")
            raise typer.Exit(1)
        config = config.model_copy(update={"quiescence_window": window})
    return config


def _format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {int(seconds % 60):02d}s"


def _print_event(event: SessionEvent) -> None:
    """Plain progress output used with --no-display."""
    data = event.data
    if event.type == EventType.SESSION_STARTED:
        console.print(f"[dim]Requesting from {data.get('source', '?')}...[/dim]")
    elif event.type == EventType.PREVIEW_RENDERED:
        console.print(f"[magenta]Preview updated[/magenta] [dim]({data.get('snapshot_length', 0)} chunks)[/dim]")
    elif event.type == EventType.PREVIEW_FAILED:
        console.print(f"[dim]Preview failed: {data.get('error', '')}[/dim]")
    elif event.type == EventType.SESSION_FAILED:
        console.print(f"[red]Generation failed:[/red] {data.get('error', '')}")


async def _stream(
    controller: StreamingController,
    prompt: str,
    *,
    source_name: str,
    show_display: bool,
) -> SessionView:
    """Run one session to its end (or until the user stops it)."""
    if show_display:
        from livesynth.cli_streaming_display import StreamingSessionDisplay

        with StreamingSessionDisplay(console, controller, source_name=source_name):
            await controller.generate(prompt)
            return await controller.join()

    unsubscribe = controller.emitter.add_listener(_print_event)
    try:
        await controller.generate(prompt)
        return await controller.join()
    finally:
        unsubscribe()


def _run_session(
    source: GenerationSource,
    prompt: str,
    config: StreamingConfig,
    *,
    preview_dir: str,
    no_preview: bool,
    no_display: bool,
    output: Path | None,
) -> None:
    """Wire the controller for *source*, stream, and print the outcome."""
    host: SandboxedFilePreviewHost | None = None
    if no_preview:
        config = config.model_copy(update={"preview_enabled": False})
    else:
        host = SandboxedFilePreviewHost(Path(preview_dir or config.preview_dir))

    controller = StreamingController(source, TemplateCompiler(), host, config=config)
    show_display = not no_display and console.is_terminal

    try:
        view = asyncio.run(
            _stream(controller, prompt, source_name=source.name, show_display=show_display)
        )
    except LiveSynthError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")
        raise typer.Exit(130) from None

    _display_result(view, host, output)


def _display_result(
    view: SessionView,
    host: SandboxedFilePreviewHost | None,
    output: Path | None,
) -> None:
    if view.status == SessionStatus.IDLE:
        console.print("[yellow]Session stopped.[/yellow] Nothing was kept.")
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="bold")
    table.add_column("Value")

    style = "green" if view.status == SessionStatus.COMPLETED else "red"
    table.add_row("Status", f"[{style}]{view.status.value}[/{style}]")
    table.add_row("Chunks", str(view.cursor_index))
    table.add_row("Lines", str(len(view.buffer_text.splitlines())))
    if view.started_at and view.completed_at:
        table.add_row("Duration", _format_duration(view.completed_at - view.started_at))
    if view.last_error:
        table.add_row("Error", f"[red]{view.last_error}[/red]")
    if view.preview_error:
        table.add_row("Preview", f"[yellow]{view.preview_error}[/yellow]")
    elif host is not None and view.preview_artifact is not None:
        table.add_row("Preview", str(host.index_path))

    console.print(Panel(table, title="[bold]livesynth[/bold]", border_style=style))

    if output is not None and view.buffer_text:
        output.write_text(view.buffer_text, encoding="utf-8")
        console.print(f"[dim]Source written to {output}[/dim]")

    if view.status == SessionStatus.FAILED:
        raise typer.Exit(1)


# ── livesynth generate ───────────────────────────────────────────


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="What to build — a component description"),
    model: str = typer.Option(
        "", "--model", "-m",
        help="Model registry key (default: configured default model)",
    ),
    simulate: bool = typer.Option(
        False, "--simulate",
        help="Fetch the full completion first, then type it out line by line",
    ),
    style: str = typer.Option("", "--style", help="Design style hint for the prompt"),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the final source to this file",
    ),
    preview_dir: str = typer.Option("", "--preview-dir", help="Preview output directory"),
    no_preview: bool = typer.Option(False, "--no-preview", help="Disable the live preview"),
    no_display: bool = typer.Option(False, "--no-display", help="Plain output instead of the live display"),
    window: float | None = typer.Option(None, "--window", help="Debounce window in seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output"),
) -> None:
    """Generate a component with an LLM and preview it while it streams."""
    _configure_logging(verbose)
    config = _load_config(window)
    registry = _load_registry()

    try:
        key, model_cfg = resolve_model(registry, model or None, config)
    except KeyError:
        console.print(f"[red]Model not found:[/red] '{model or config.default_model}'")
        console.print(f"[dim]Available: {', '.join(sorted(registry))}[/dim]")
        raise typer.Exit(1) from None
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    if not os.environ.get(model_cfg.api_key_env):
        console.print(
            f"[red]API key not set:[/red] {model_cfg.api_key_env}\n"
            f"Set it with: export {model_cfg.api_key_env}=your-key"
        )
        raise typer.Exit(1)

    live = LiteLLMSource(model_cfg, timeout=config.generation_timeout, design_style=style)
    source: GenerationSource = live
    if simulate:
        source = SimulatedSource(live.complete, interval=config.playback_interval)

    console.print(f"[dim]Model:[/dim] [bold]{model_cfg.display_name}[/bold] [dim]({key})[/dim]")
    _run_session(
        source, prompt, config,
        preview_dir=preview_dir, no_preview=no_preview,
        no_display=no_display, output=output,
    )


# ── livesynth replay ─────────────────────────────────────────────


@app.command()
def replay(
    file: Path = typer.Argument(..., help="Component source file to replay"),
    interval: float | None = typer.Option(None, "--interval", help="Seconds between lines"),
    prompt: str = typer.Option("", "--prompt", help="Prompt recorded for the session"),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the final source to this file",
    ),
    preview_dir: str = typer.Option("", "--preview-dir", help="Preview output directory"),
    no_preview: bool = typer.Option(False, "--no-preview", help="Disable the live preview"),
    no_display: bool = typer.Option(False, "--no-display", help="Plain output instead of the live display"),
    window: float | None = typer.Option(None, "--window", help="Debounce window in seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output"),
) -> None:
    """Replay an existing source file through the playback clock."""
    _configure_logging(verbose)
    config = _load_config(window)

    if not file.is_file():
        console.print(f"[red]File not found:[/red] {file}")
        raise typer.Exit(1)
    code = file.read_text(encoding="utf-8")
    if not code.strip():
        console.print(f"[red]File is empty:[/red] {file}")
        raise typer.Exit(1)

    try:
        clock = PlaybackClock.from_text(code, interval or config.playback_interval)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    _run_session(
        clock, prompt or f"Replay of {file.name}", config,
        preview_dir=preview_dir, no_preview=no_preview,
        no_display=no_display, output=output,
    )


# ── livesynth demo ───────────────────────────────────────────────


@app.command()
def demo(
    interval: float | None = typer.Option(None, "--interval", help="Seconds between lines"),
    preview_dir: str = typer.Option("", "--preview-dir", help="Preview output directory"),
    no_display: bool = typer.Option(False, "--no-display", help="Plain output instead of the live display"),
) -> None:
    """Replay a bundled pricing card. No API key needed."""
    from livesynth.demo import DEMO_PROMPT, demo_clock, print_intro

    config = _load_config()
    print_intro(console)
    try:
        clock = demo_clock(interval or config.playback_interval)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    _run_session(
        clock, DEMO_PROMPT, config,
        preview_dir=preview_dir, no_preview=False,
        no_display=no_display, output=None,
    )


# ── livesynth models ─────────────────────────────────────────────


@models_app.command("list")
def models_list() -> None:
    """Show all registered models as a table."""
    registry = _load_registry()

    table = Table(title="Registered Models", show_lines=True)
    table.add_column("Key", style="bold cyan")
    table.add_column("Display Name")
    table.add_column("Provider", style="dim")
    table.add_column("Context", justify="right")
    table.add_column("Max Tokens", justify="right")
    table.add_column("API Key")

    for key, cfg in sorted(registry.items()):
        key_status = "[green]set[/green]" if os.environ.get(cfg.api_key_env) else "[red]not set[/red]"
        table.add_row(
            key,
            cfg.display_name,
            cfg.provider,
            f"{cfg.context_window:,}",
            f"{cfg.max_tokens:,}",
            key_status,
        )

    console.print(table)
    console.print(f"\n[dim]{len(registry)} models registered[/dim]")


# ── livesynth config ─────────────────────────────────────────────


@config_app.command("show")
def config_show() -> None:
    """Show current streaming configuration."""
    config = _load_config()

    table = Table(title="Streaming Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Quiescence Window", f"{config.quiescence_window}s")
    table.add_row("Playback Interval", f"{config.playback_interval}s")
    table.add_row("Min Prompt Length", str(config.min_prompt_length))
    table.add_row("Generation Timeout", f"{config.generation_timeout}s")
    table.add_row("Default Model", config.default_model or "(first registered)")
    table.add_row("Preview Enabled", str(config.preview_enabled))
    table.add_row("Preview Directory", config.preview_dir)

    console.print(table)
