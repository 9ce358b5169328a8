"""
Versioner CLI - record build and deployment events from CI/CD pipelines.

Usage:
    versioner track build --product api --version 1.2.3
    versioner track deployment --product api --environment prod --version 1.2.3
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from versioner_cli.cli.commands import register_commands
from versioner_cli.cli.helpers import GlobalOptions, configure_logging

app = typer.Typer(
    name="versioner",
    help="Track builds and deployments with Versioner",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def callback(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", help="Config file (default: ~/.versioner/config.yaml or ./config.yaml)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output (shows HTTP requests/responses)"),
    api_url: Optional[str] = typer.Option(None, "--api-url", help="Versioner API URL"),
    api_key: Optional[str] = typer.Option(
        None, "--api-key", help="Versioner API key (prefer the VERSIONER_API_KEY env var)"
    ),
) -> None:
    """Global options shared by every command."""
    configure_logging(verbose=verbose, debug=debug)
    if api_key:
        typer.secho(
            "⚠️  Warning: passing the API key on the command line may expose it in logs and process lists. "
            "Use the VERSIONER_API_KEY environment variable instead.",
            fg=typer.colors.YELLOW,
            err=True,
        )
    ctx.obj = GlobalOptions(
        config_file=config,
        verbose=verbose or debug,
        debug=debug,
        api_url=api_url,
        api_key=api_key,
    )


register_commands(app)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
