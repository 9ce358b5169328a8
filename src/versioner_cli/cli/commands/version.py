"""``versioner version`` command."""

from __future__ import annotations

import typer

from versioner_cli.version import BUILD_DATE, COMMIT, get_version


def version() -> None:
    """Print the CLI version and build information."""
    typer.echo(f"versioner {get_version()}")
    typer.echo(f"  commit: {COMMIT}")
    typer.echo(f"  built:  {BUILD_DATE}")
