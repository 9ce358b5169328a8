"""CI/CD environment auto-detection."""

from .detector import (
    DetectedValues,
    System,
    detect,
    detect_system,
    extra_metadata,
    normalize_git_url,
)
from .environment import EnvironmentReader, MappingEnvironment, ProcessEnvironment

__all__ = [
    "DetectedValues",
    "EnvironmentReader",
    "MappingEnvironment",
    "ProcessEnvironment",
    "System",
    "detect",
    "detect_system",
    "extra_metadata",
    "normalize_git_url",
]
