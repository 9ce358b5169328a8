"""Versioner events API: payload models, submission client and outcomes."""

from .client import MAX_ATTEMPTS, RETRY_DELAYS, RetryState, SubmissionClient
from .errors import (
    APIError,
    ClientFailure,
    PolicyRejection,
    PreflightDetails,
    ResponseDecodeError,
    ServerFailure,
    SubmissionError,
    TransportFailure,
)
from .models import (
    BuildEventCreate,
    BuildResponse,
    DeploymentEventCreate,
    DeploymentResponse,
)
from .outcome import (
    NOT_RECORDED_STATUS,
    Failed,
    NotRecorded,
    Recorded,
    Rejected,
    SubmissionOutcome,
)

__all__ = [
    "APIError",
    "BuildEventCreate",
    "BuildResponse",
    "ClientFailure",
    "DeploymentEventCreate",
    "DeploymentResponse",
    "Failed",
    "MAX_ATTEMPTS",
    "NOT_RECORDED_STATUS",
    "NotRecorded",
    "PolicyRejection",
    "PreflightDetails",
    "RETRY_DELAYS",
    "Recorded",
    "Rejected",
    "ResponseDecodeError",
    "RetryState",
    "ServerFailure",
    "SubmissionClient",
    "SubmissionError",
    "SubmissionOutcome",
    "TransportFailure",
]
