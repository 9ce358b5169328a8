"""GitHub Actions integration."""

from .annotations import (
    write_error_annotation,
    write_generic_error_annotation,
    write_success_summary,
)

__all__ = [
    "write_error_annotation",
    "write_generic_error_annotation",
    "write_success_summary",
]
