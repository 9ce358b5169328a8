"""CLI helpers exposed for other modules."""

from .helpers import GlobalOptions, configure_logging, err_console

__all__ = ["GlobalOptions", "configure_logging", "err_console"]
