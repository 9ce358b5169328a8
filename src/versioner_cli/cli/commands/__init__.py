"""CLI command modules for the versioner CLI."""

from __future__ import annotations

import typer

from . import track
from .version import version


def register_commands(app: typer.Typer) -> None:
    """Attach all subcommands to *app*."""
    app.add_typer(track.app, name="track")
    app.command()(version)


__all__ = ["register_commands"]
