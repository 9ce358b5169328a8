"""Results of a single event submission.

Every call to :meth:`SubmissionClient.submit` produces exactly one of
``Recorded``, ``NotRecorded``, ``Rejected`` or ``Failed``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from .errors import PolicyRejection, SubmissionError

NOT_RECORDED_STATUS = "not_recorded"


@dataclass(frozen=True)
class Recorded:
    """The API accepted the event."""

    resource_id: str
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotRecorded:
    """Soft-fail placeholder: the event was dropped but the caller should carry on."""

    reason: str
    status: str = NOT_RECORDED_STATUS


@dataclass(frozen=True)
class Rejected:
    """A deployment policy refused the event (HTTP 409, 423 or 428)."""

    status_code: int
    message: str
    error_code: str = ""
    error_type: str = ""
    rule_name: str = ""
    retry_after: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    raw_body: str = ""
    structured: bool = False

    @classmethod
    def from_error(cls, error: PolicyRejection) -> "Rejected":
        preflight = error.preflight_details()
        if preflight is None:
            # Unknown envelope: keep the classification, drop the structure.
            message = error.detail if isinstance(error.detail, str) else error.raw_body
            return cls(
                status_code=error.status_code,
                message=message,
                raw_body=error.raw_body,
            )
        return cls(
            status_code=error.status_code,
            message=preflight.message,
            error_code=preflight.code,
            error_type=preflight.error_type,
            rule_name=preflight.rule_name,
            retry_after=preflight.retry_after,
            details=dict(preflight.details),
            raw_body=error.raw_body,
            structured=True,
        )


@dataclass(frozen=True)
class Failed:
    """The event could not be delivered and soft-fail is disabled."""

    cause: SubmissionError

    @property
    def reason(self) -> str:
        return str(self.cause)


SubmissionOutcome = Union[Recorded, NotRecorded, Rejected, Failed]
