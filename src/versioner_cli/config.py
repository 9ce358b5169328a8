"""Layered configuration: VERSIONER_* environment variables over a YAML file.

Values are resolved per key in the order

    command-line flag > VERSIONER_<KEY> env var > config file > fallback

The config file is ``--config`` when given, otherwise the first of
``~/.versioner/config.yaml`` and ``./config.yaml`` that exists.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.versioner.io"
ENV_PREFIX = "VERSIONER_"
CONFIG_FILENAME = "config.yaml"

_TRUTHY_VALUES = {"1", "true", "yes", "on"}
_FALSY_VALUES = {"0", "false", "no", "off"}

_DEFAULTS: dict[str, Any] = {
    "api_url": DEFAULT_API_URL,
    "fail_on_api_error": True,
}


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


def parse_bool(value: Any) -> Optional[bool]:
    """Interpret *value* as a boolean, or return None when it is not one."""
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in _TRUTHY_VALUES:
        return True
    if text in _FALSY_VALUES:
        return False
    return None


def default_config_paths() -> list[Path]:
    return [Path.home() / ".versioner" / CONFIG_FILENAME, Path.cwd() / CONFIG_FILENAME]


@dataclass(slots=True)
class VersionerConfig:
    """Configuration values from the environment and an optional YAML file."""

    file_values: dict[str, Any] = field(default_factory=dict)
    source: Optional[Path] = None
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))

    def _env_value(self, key: str) -> Optional[str]:
        value = self.environ.get(ENV_PREFIX + key.upper())
        return value if value else None

    def get_string(self, key: str, default: str = "") -> str:
        env_value = self._env_value(key)
        if env_value is not None:
            return env_value
        file_value = self.file_values.get(key)
        if file_value not in (None, ""):
            return str(file_value)
        fallback = _DEFAULTS.get(key, default)
        return fallback if isinstance(fallback, str) else default

    def get_bool(self, key: str, default: bool = False) -> bool:
        for raw in (self._env_value(key), self.file_values.get(key)):
            if raw is None:
                continue
            parsed = parse_bool(raw)
            if parsed is None:
                raise ConfigError(f"Invalid boolean for {key}: {raw!r}")
            return parsed
        fallback = _DEFAULTS.get(key, default)
        return fallback if isinstance(fallback, bool) else default

    def resolve(self, flag_value: Optional[str], key: str, fallback: str = "") -> str:
        """Return *flag_value* if set, else the configured value, else *fallback*."""
        if flag_value:
            return flag_value
        configured = self.get_string(key)
        return configured or fallback

    @property
    def api_url(self) -> str:
        return self.get_string("api_url", DEFAULT_API_URL)

    @property
    def api_key(self) -> str:
        return self.get_string("api_key")

    @property
    def ui_url(self) -> str:
        return self.get_string("ui_url")

    @property
    def fail_on_api_error(self) -> bool:
        return self.get_bool("fail_on_api_error", True)


def _read_yaml(path: Path) -> dict[str, Any]:
    yaml = YAML(typ="safe")
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.load(handle) or {}
    except (OSError, YAMLError) as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError(f"{path} must contain a mapping of settings")
    return {str(key): value for key, value in payload.items()}


def load_config(
    config_file: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> VersionerConfig:
    """Load configuration from *config_file* (or the default locations) and the environment.

    An explicit *config_file* must exist. Missing default files are ignored.
    """
    env = dict(os.environ) if environ is None else dict(environ)

    if config_file is not None:
        if not config_file.exists():
            raise ConfigError(f"Config file not found: {config_file}")
        return VersionerConfig(file_values=_read_yaml(config_file), source=config_file, environ=env)

    for candidate in default_config_paths():
        if candidate.is_file():
            logger.info("Using config file: %s", candidate)
            return VersionerConfig(file_values=_read_yaml(candidate), source=candidate, environ=env)

    return VersionerConfig(environ=env)
