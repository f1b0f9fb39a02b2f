"""CLI commands for inspecting and validating PDF Buddy settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate PDF Buddy configuration.")
console = Console()


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings."""
    from pdfbuddy.settings import get_settings

    settings = get_settings()
    console.print_json(json.dumps(settings.model_dump(mode="json"), indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from pdfbuddy.settings import get_settings

    try:
        settings = get_settings()
        console.print("[green]✓[/green] Settings are valid.")
        console.print(f"  Environment: {settings.env}")
        console.print(f"  Paper: {settings.layout.paper} (margin {settings.layout.margin_in}in)")
        console.print(f"  Viewport: {settings.browser.viewport_width}x{settings.browser.viewport_height}")
        console.print(f"  Downloads: {settings.output.download_dir}")
        console.print(f"  Storage: {settings.storage.backend}")
    except Exception as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1)
