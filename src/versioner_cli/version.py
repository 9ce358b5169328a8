"""Build-time version information for the versioner CLI."""

from __future__ import annotations

# Overwritten by the release pipeline.
VERSION = "dev"
COMMIT = "unknown"
BUILD_DATE = "unknown"


def get_version() -> str:
    """Return the semantic version, or ``"dev"`` for local builds."""
    return VERSION or "dev"


def get_user_agent() -> str:
    """Return the User-Agent header sent with every API request."""
    return f"versioner-cli/{get_version()}"
