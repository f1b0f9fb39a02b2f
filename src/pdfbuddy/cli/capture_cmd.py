"""CLI command that captures a URL as a PDF."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from pdfbuddy.cli.template_cmd import watermark_from_options

console = Console()


class ProgressSink:
    """Mirror ``progress`` events onto a rich progress task."""

    def __init__(self, progress: Progress, task_id) -> None:
        self._progress = progress
        self._task_id = task_id

    async def handle_event(self, event) -> None:
        if event.event_type.value == "progress":
            self._progress.update(self._task_id, description=event.data.get("stage", ""))


def capture(
    url: str = typer.Argument(..., help="Page to capture."),
    layout: str = typer.Option("auto", "--layout", "-l", help="auto, portrait or landscape."),
    full_page: bool = typer.Option(True, "--full-page/--viewport", help="Scroll and capture the whole page."),
    images: bool = typer.Option(True, "--images/--no-images", help="Keep images."),
    banners: bool = typer.Option(False, "--banners/--no-banners", help="Keep banners and promos."),
    ads: bool = typer.Option(False, "--ads/--no-ads", help="Keep advertisements."),
    nav: bool = typer.Option(False, "--nav/--no-nav", help="Keep navigation menus."),
    watermark: Optional[str] = typer.Option(None, "--watermark", "-w", help="Text watermark."),
    image: Optional[Path] = typer.Option(None, "--image-watermark", exists=True, dir_okay=False, help="Image watermark file (premium)."),
    color: Optional[str] = typer.Option(None, "--color", help="Watermark colour."),
    font_size: Optional[float] = typer.Option(None, "--font-size", help="Font size 8-72."),
    font_family: Optional[str] = typer.Option(None, "--font", help="Font family."),
    rotation: Optional[float] = typer.Option(None, "--rotation", help="Rotation in degrees."),
    position: Optional[str] = typer.Option(None, "--position", help="center, topLeft, topRight, bottomLeft, bottomRight."),
    opacity: Optional[float] = typer.Option(None, "--opacity", help="Opacity 0..1."),
    scale: Optional[float] = typer.Option(None, "--scale", help="Image watermark scale."),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Use a saved template (id or name)."),
    last_watermark: bool = typer.Option(False, "--last-watermark", help="Reuse the last applied watermark."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Download directory."),
    filename: Optional[str] = typer.Option(None, "--filename", help="Override the generated file name."),
    events: bool = typer.Option(False, "--events", help="Emit JSONL events to stderr."),
) -> None:
    """Capture URL as a PDF, optionally watermarked."""
    from pdfbuddy.models.capture import CaptureRequest, ContentFilters
    from pdfbuddy.settings import get_settings
    from pdfbuddy.store.templates import build_template_manager

    settings = get_settings()
    config = None
    if template:
        found = build_template_manager(settings=settings).find(template)
        if found is None:
            console.print(f"[red]✗[/red] No template matching {template!r}")
            raise typer.Exit(code=1)
        config = found.config
    elif watermark is not None or image is not None:
        config = watermark_from_options(
            watermark, image, color=color, font_size=font_size, font_family=font_family,
            rotation=rotation, position=position, opacity=opacity, scale=scale,
        )

    request = CaptureRequest(
        tab_id="pending",
        page_layout=layout,
        capture_full_page=full_page,
        content_filters=ContentFilters(
            include_images=images, include_banners=banners, include_ads=ads, include_nav=nav
        ),
        watermark=config,
        use_last_watermark=last_watermark and config is None,
        filename=filename,
    )
    download_dir = output or Path(settings.output.download_dir)

    console.print(Panel(f"[bold]Capturing:[/bold] {url}", title="PDF Buddy", border_style="blue"))
    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
        task = progress.add_task("Opening page...", total=None)
        try:
            result = asyncio.run(_run_capture(url, request, download_dir, ProgressSink(progress, task), events))
        except Exception as e:
            progress.stop()
            console.print(f"\n[red]✗[/red] Could not load {url}: {e}")
            raise typer.Exit(code=1)
        progress.update(task, completed=True)

    for warning in result.warnings:
        console.print(f"[yellow]⚠[/yellow] {warning}")
    if result.success:
        console.print(f"\n[green]✓[/green] Saved {result.page_count} page(s): {result.download_id}")
        if result.watermarked:
            console.print("  Watermark applied")
    else:
        console.print(f"\n[red]✗[/red] {result.error}")
        if result.cause:
            console.print(f"  [dim]{result.cause}[/dim]")
        raise typer.Exit(code=1)


async def _run_capture(url, request, download_dir: Path, progress_sink: ProgressSink, events: bool):
    from pdfbuddy.browser.host import DirectoryDownloader, PlaywrightHost
    from pdfbuddy.capture.orchestrator import CaptureOrchestrator
    from pdfbuddy.monitoring.event_bus import EventBus, JsonlSink, LoggingSink
    from pdfbuddy.settings import get_settings
    from pdfbuddy.store.kv import build_store
    from pdfbuddy.store.last_watermark import LastWatermarkStore
    from pdfbuddy.watermark.engine import WatermarkEngine, settings_feature_gate

    settings = get_settings()
    bus = EventBus(request.request_id)
    bus.add_sink(LoggingSink())
    bus.add_sink(progress_sink)
    if events:
        bus.add_sink(JsonlSink(sys.stderr))

    async with PlaywrightHost(settings) as host:
        tab_id = await host.open_tab(url)
        orchestrator = CaptureOrchestrator(
            host,
            DirectoryDownloader(download_dir),
            event_bus=bus,
            last_watermark=LastWatermarkStore(build_store()),
            engine=WatermarkEngine(settings_feature_gate(settings)),
            settings=settings,
        )
        return await orchestrator.run(request.model_copy(update={"tab_id": tab_id}))
