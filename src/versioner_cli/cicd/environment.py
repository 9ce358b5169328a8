"""Read-only access to environment variables for CI/CD detection."""

from __future__ import annotations

import os
from typing import Mapping, Protocol


class EnvironmentReader(Protocol):
    """Anything that can look up an environment variable by name."""

    def get(self, name: str) -> str:
        """Return the value of *name*, or an empty string when unset."""
        ...


class ProcessEnvironment:
    """EnvironmentReader over the live ``os.environ``."""

    def get(self, name: str) -> str:
        return os.environ.get(name, "")


class MappingEnvironment:
    """EnvironmentReader over a fixed snapshot of variables."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values = dict(values or {})

    def get(self, name: str) -> str:
        return self._values.get(name, "")

    def __repr__(self) -> str:
        return f"MappingEnvironment({len(self._values)} vars)"
