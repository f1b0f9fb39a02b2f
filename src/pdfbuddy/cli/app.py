"""Unified CLI entry point for PDF Buddy.

Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> env vars (PDFBUDDY_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import typer

from pdfbuddy.cli.capture_cmd import capture
from pdfbuddy.cli.settings_cmd import settings_app
from pdfbuddy.cli.template_cmd import template_app

try:
    from importlib.metadata import version

    VERSION = version("pdfbuddy")
except Exception:
    VERSION = "unknown"

CONFIG_PRECEDENCE = (
    "settings.default.toml -> settings.<env>.toml -> settings.local.toml"
    " -> env vars (PDFBUDDY_* with double underscores) -> CLI flags"
)

APP_HELP = (
    "pdfbuddy: save web pages as paginated, optionally watermarked PDFs. "
    f"Config precedence: {CONFIG_PRECEDENCE}."
)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s — %(message)s"

app = typer.Typer(add_completion=True, help=APP_HELP)

app.command("capture")(capture)
app.add_typer(template_app, name="template")
app.add_typer(settings_app, name="settings")


def configure_logging(level: str | None = None) -> None:
    """Configure root logging on stderr with the house format."""
    if level is None:
        from pydantic import ValidationError

        from pdfbuddy.settings import get_settings

        try:
            level = get_settings().log_level
        except ValidationError:
            # Reported by the command that loads settings.
            level = "INFO"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override log level (DEBUG, INFO, WARNING...)."),
) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"pdfbuddy {VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()
    configure_logging(log_level)


if __name__ == "__main__":
    app()
