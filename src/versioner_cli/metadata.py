"""Parsing and merging of ``extra_metadata`` documents.

User metadata arrives as a JSON string on the command line. It is bounded in
size, must decode to a JSON object, and is merged over the metadata that the
CI/CD detector gathered automatically. User-supplied keys always win.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

MAX_METADATA_SIZE = 100 * 1024


class MetadataError(ValueError):
    """Raised when user-supplied metadata cannot be accepted."""


class MetadataSizeExceeded(MetadataError):
    """Raised when the raw metadata document is larger than MAX_METADATA_SIZE."""

    def __init__(self, size: int, limit: int = MAX_METADATA_SIZE) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"extra_metadata exceeds maximum size of {limit} bytes (got {size} bytes)"
        )


class MalformedMetadata(MetadataError):
    """Raised when the raw metadata is not a JSON object."""


def parse_extra_metadata(raw: str) -> dict[str, Any] | None:
    """Parse a JSON object string into a metadata dictionary.

    An empty string means "no document" and yields ``None``; ``"{}"`` yields
    an empty dictionary. The size ceiling is enforced before decoding.

    Raises:
        MetadataSizeExceeded: *raw* is larger than ``MAX_METADATA_SIZE`` bytes.
        MalformedMetadata: *raw* is not valid JSON or not a JSON object.
    """
    if raw == "":
        return None

    size = len(raw.encode("utf-8"))
    if size > MAX_METADATA_SIZE:
        raise MetadataSizeExceeded(size)

    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedMetadata(f"invalid JSON for extra_metadata: {exc}") from exc

    if document is None:
        raise MalformedMetadata("extra_metadata must be a JSON object, not null")
    if not isinstance(document, dict):
        raise MalformedMetadata(
            f"extra_metadata must be a JSON object, not {type(document).__name__}"
        )
    return document


def merge_metadata(
    detected: Mapping[str, Any] | None,
    user: Mapping[str, Any] | None,
) -> Mapping[str, Any] | None:
    """Merge auto-detected metadata with user metadata.

    When one side is absent or empty the other side is returned unchanged.
    Otherwise a new dictionary holds every detected entry overwritten by
    every user entry, so user-supplied values win on key collisions.
    """
    if not detected:
        return user
    if not user:
        return detected

    merged: dict[str, Any] = dict(detected)
    merged.update(user)
    return merged
