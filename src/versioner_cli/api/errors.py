"""Failure taxonomy for event submission.

Transport failures and server-side failures (5xx, 429) are retried by the
client. Other 4xx responses are final. 409, 423 and 428 are deployment
policy rejections: they are final and are never soft-failed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

POLICY_STATUS_CODES = frozenset({409, 423, 428})
TOO_MANY_REQUESTS = 429


class SubmissionError(Exception):
    """Base class for every failure of a submission attempt."""

    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.attempts = 0


class TransportFailure(SubmissionError):
    """The request never produced an HTTP response (network, timeout, deadline)."""

    retryable = True


class ResponseDecodeError(SubmissionError):
    """A response body could not be read or decoded."""


@dataclass(frozen=True)
class PreflightDetails:
    """Structured fields of a policy rejection envelope."""

    error_type: str = ""
    message: str = ""
    code: str = ""
    retry_after: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def rule_name(self) -> str:
        name = self.details.get("rule_name")
        return name if isinstance(name, str) else ""


class APIError(SubmissionError):
    """The API answered with a non-2xx status code."""

    def __init__(self, status_code: int, detail: Any, raw_body: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        self.raw_body = raw_body
        super().__init__(self._render(detail))

    @staticmethod
    def _render(detail: Any) -> str:
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list):
            if detail:
                return f"validation error: {detail}"
            return "validation error"
        return f"API error: {detail}"

    @property
    def is_preflight_error(self) -> bool:
        return self.status_code in POLICY_STATUS_CODES

    def preflight_details(self) -> PreflightDetails | None:
        """Extract the structured rejection fields, or None if the detail is not an object."""
        if not isinstance(self.detail, dict):
            return None

        def _text(key: str) -> str:
            value = self.detail.get(key)
            return value if isinstance(value, str) else ""

        details = self.detail.get("details")
        return PreflightDetails(
            error_type=_text("error"),
            message=_text("message"),
            code=_text("code"),
            retry_after=_text("retry_after"),
            details=details if isinstance(details, dict) else {},
        )


class ServerFailure(APIError):
    """5xx or 429 response; retried until the attempt budget is spent."""

    retryable = True


class ClientFailure(APIError):
    """4xx response other than 429 and the policy codes (auth, validation, not found)."""


class PolicyRejection(APIError):
    """409/423/428 response: the deployment was refused by a server-side rule."""


def api_error_from_response(status_code: int, body: str) -> APIError:
    """Build the APIError subclass matching *status_code* from a raw response body.

    The ``detail`` field of a JSON body is kept as-is. A body that is not a
    JSON object with a ``detail`` field keeps the raw text as its detail.
    """
    detail: Any = body
    try:
        decoded = json.loads(body) if body else None
    except json.JSONDecodeError:
        decoded = None
    if isinstance(decoded, dict) and "detail" in decoded:
        detail = decoded["detail"]

    if status_code in POLICY_STATUS_CODES:
        cls: type[APIError] = PolicyRejection
    elif status_code >= 500 or status_code == TOO_MANY_REQUESTS:
        cls = ServerFailure
    else:
        cls = ClientFailure
    return cls(status_code, detail, raw_body=body)
