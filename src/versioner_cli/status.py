"""Canonical lifecycle status vocabulary for build and deployment events.

The API accepts five canonical values. CI systems and humans use many more
spellings, so user input is normalized against a fixed alias table before it
is reported. Unknown values are passed through unchanged and left for the
API to judge.
"""

from __future__ import annotations

PENDING = "pending"
STARTED = "started"
COMPLETED = "completed"
FAILED = "failed"
ABORTED = "aborted"

CANONICAL_STATUSES: tuple[str, ...] = (PENDING, STARTED, COMPLETED, FAILED, ABORTED)

STATUS_ALIASES: dict[str, str] = {
    # pending
    "queued": PENDING,
    "scheduled": PENDING,
    # started
    "in_progress": STARTED,
    "init": STARTED,
    "building": STARTED,
    "deploying": STARTED,
    # completed
    "success": COMPLETED,
    "complete": COMPLETED,
    "finished": COMPLETED,
    "built": COMPLETED,
    "deployed": COMPLETED,
    # failed
    "fail": FAILED,
    "failure": FAILED,
    "error": FAILED,
    # aborted
    "abort": ABORTED,
    "cancelled": ABORTED,
    "cancel": ABORTED,
    "skipped": ABORTED,
}


def _lookup(value: str) -> str | None:
    key = value.strip().lower()
    if key in CANONICAL_STATUSES:
        return key
    return STATUS_ALIASES.get(key)


def normalize(value: str) -> tuple[str, bool]:
    """Map *value* onto its canonical status.

    Returns:
        ``(canonical, was_aliased)``. ``was_aliased`` is True only when an
        alias was translated to a different canonical value. Unrecognized
        input is returned exactly as given with ``was_aliased=False``.
    """
    canonical = _lookup(value)
    if canonical is None:
        return value, False
    return canonical, canonical != value.strip().lower()


def is_valid(value: str) -> bool:
    """Return True when *value* is a canonical status or a known alias."""
    return _lookup(value) is not None


def get_canonical(value: str) -> str:
    canonical, _ = normalize(value)
    return canonical
