"""Shared console, logging and option plumbing for CLI commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

err_console = Console(stderr=True)

PACKAGE_LOGGER = "versioner_cli"


@dataclass
class GlobalOptions:
    """Options given before the subcommand (``versioner --debug track ...``)."""

    config_file: Optional[Path] = None
    verbose: bool = False
    debug: bool = False
    api_url: Optional[str] = None
    api_key: Optional[str] = None


def configure_logging(*, verbose: bool = False, debug: bool = False) -> None:
    """Route package logs to stderr through rich.

    WARNING by default, INFO with ``--verbose`` and DEBUG with ``--debug``.
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    if not any(isinstance(handler, RichHandler) for handler in package_logger.handlers):
        handler = RichHandler(
            console=err_console,
            show_time=False,
            show_path=False,
            markup=False,
            rich_tracebacks=debug,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)
