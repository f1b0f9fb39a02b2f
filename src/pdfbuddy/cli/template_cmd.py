"""CLI commands for managing watermark templates."""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

template_app = typer.Typer(help="Create, list and share watermark templates.")
console = Console()


def image_file_to_data_url(path: Path) -> str:
    """Read an image file into a ``data:`` URL, detecting the type with Pillow."""
    from PIL import Image

    with Image.open(path) as img:
        fmt = (img.format or "PNG").lower()
    return f"data:image/{fmt};base64,{base64.b64encode(path.read_bytes()).decode('ascii')}"


def watermark_from_options(
    text: Optional[str] = None,
    image: Optional[Path] = None,
    *,
    color: Optional[str] = None,
    font_size: Optional[float] = None,
    font_family: Optional[str] = None,
    rotation: Optional[float] = None,
    position: Optional[str] = None,
    opacity: Optional[float] = None,
    scale: Optional[float] = None,
):
    """Build a validated ``WatermarkConfig`` from CLI options.

    Options left unset take the default text watermark's values; invalid
    values fall back to secure defaults rather than failing.
    """
    from pdfbuddy.models.watermark import DEFAULT_TEXT_WATERMARK
    from pdfbuddy.watermark.validation import validate_watermark_config

    raw: dict[str, Any] = DEFAULT_TEXT_WATERMARK.model_dump()
    if image is not None:
        raw.update(type="image", image_data=image_file_to_data_url(image), rotation=0)
    if text is not None:
        raw["text"] = text
    overrides = {
        "color": color,
        "font_size": font_size,
        "font_family": font_family,
        "rotation": rotation,
        "position": position,
        "opacity": opacity,
        "scale": scale,
    }
    raw.update({k: v for k, v in overrides.items() if v is not None})
    return validate_watermark_config(raw)


def _manager():
    from pdfbuddy.store.templates import build_template_manager

    return build_template_manager()


@template_app.command("list")
def list_templates() -> None:
    """List saved templates."""
    templates = _manager().list()
    if not templates:
        console.print("[yellow]No templates saved.[/yellow] Run 'pdfbuddy template seed' to add the defaults.")
        return
    table = Table(title="Watermark templates")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Text / image")
    table.add_column("Position")
    table.add_column("Updated", style="dim")
    for t in templates:
        cfg = t.config
        content = cfg.text if cfg.type.value == "text" else "(image)"
        table.add_row(t.id, t.name, cfg.type.value, content, cfg.position.value, t.updated_at[:10])
    console.print(table)


@template_app.command("seed")
def seed_templates() -> None:
    """Create the built-in Confidential and Draft templates if none exist."""
    seeded = _manager().seed_defaults()
    if seeded:
        console.print(f"[green]✓[/green] Added {', '.join(t.name for t in seeded)}")
    else:
        console.print("Templates already exist; nothing to seed.")


@template_app.command("save")
def save_template(
    name: str = typer.Argument(..., help="Template name."),
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Watermark text."),
    image: Optional[Path] = typer.Option(None, "--image", exists=True, dir_okay=False, help="Image watermark file (premium)."),
    color: Optional[str] = typer.Option(None, "--color", help="Hex, rgb()/rgba() or named colour."),
    font_size: Optional[float] = typer.Option(None, "--font-size", help="Font size 8-72."),
    font_family: Optional[str] = typer.Option(None, "--font", help="Font family."),
    rotation: Optional[float] = typer.Option(None, "--rotation", help="Rotation in degrees, -180..180."),
    position: Optional[str] = typer.Option(None, "--position", help="center, topLeft, topRight, bottomLeft, bottomRight."),
    opacity: Optional[float] = typer.Option(None, "--opacity", help="Opacity 0..1."),
    scale: Optional[float] = typer.Option(None, "--scale", help="Image watermark scale 0.1..5."),
) -> None:
    """Save a new template."""
    from pdfbuddy.exceptions import TemplateError

    config = watermark_from_options(
        text, image, color=color, font_size=font_size, font_family=font_family,
        rotation=rotation, position=position, opacity=opacity, scale=scale,
    )
    try:
        template = _manager().save(name, config)
    except TemplateError as e:
        console.print(f"[red]✗[/red] {e.message}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Saved template {template.name!r} ({template.id})")


@template_app.command("delete")
def delete_template(ref: str = typer.Argument(..., help="Template id or name.")) -> None:
    """Delete a template."""
    manager = _manager()
    template = manager.find(ref)
    if template is None or not manager.delete(template.id):
        console.print(f"[red]✗[/red] No template matching {ref!r}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Deleted {template.name!r}")


@template_app.command("export")
def export_templates(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout."),
) -> None:
    """Export all templates as JSON."""
    payload = _manager().export_json()
    if output is None:
        typer.echo(payload)
        return
    output.write_text(payload, encoding="utf-8")
    console.print(f"[green]✓[/green] Exported templates to {output}")


@template_app.command("import")
def import_templates(file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file from 'export'.")) -> None:
    """Import templates from a JSON file."""
    from pdfbuddy.exceptions import TemplateError

    try:
        count = _manager().import_json(file.read_text(encoding="utf-8"))
    except TemplateError as e:
        console.print(f"[red]✗[/red] {e.message}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Imported {count} template(s)")


@template_app.command("preview")
def preview_template(
    ref: str = typer.Argument(..., help="Template id or name."),
    output: Path = typer.Option(Path("watermark-preview.png"), "--output", "-o", help="PNG file to write."),
    width: int = typer.Option(800, "--width", min=16),
    height: int = typer.Option(600, "--height", min=16),
) -> None:
    """Render a template onto a blank page as a PNG."""
    from pdfbuddy.exceptions import WatermarkError
    from pdfbuddy.watermark.engine import WatermarkEngine, settings_feature_gate

    template = _manager().find(ref)
    if template is None:
        console.print(f"[red]✗[/red] No template matching {ref!r}")
        raise typer.Exit(code=1)
    try:
        image = WatermarkEngine(settings_feature_gate()).preview(template.config, (width, height))
    except WatermarkError as e:
        console.print(f"[red]✗[/red] {e.message}")
        raise typer.Exit(code=1)
    image.save(output, format="PNG")
    console.print(f"[green]✓[/green] Preview written to {output}")
