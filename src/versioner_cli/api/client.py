"""HTTP client for submitting build and deployment events.

Each submission makes up to four attempts. Transport failures, 5xx and 429
responses are retried after fixed 1s/2s/4s pauses; any other response ends
the loop. The final state is classified into a SubmissionOutcome:

- 2xx                 -> Recorded
- 409 / 423 / 428     -> Rejected (always, regardless of fail_on_api_error)
- anything else       -> Failed, or NotRecorded when fail_on_api_error is off
"""

from __future__ import annotations

import logging
import ssl
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx
import truststore

from versioner_cli.version import get_user_agent

from .errors import (
    PolicyRejection,
    ResponseDecodeError,
    SubmissionError,
    TransportFailure,
    api_error_from_response,
)
from .models import BuildEventCreate, DeploymentEventCreate, EventCreate
from .outcome import Failed, NotRecorded, Recorded, Rejected, SubmissionOutcome

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
RETRY_DELAYS: tuple[float, ...] = (1.0, 2.0, 4.0)
MAX_ATTEMPTS = len(RETRY_DELAYS) + 1


@dataclass
class RetryState:
    """Attempt bookkeeping for one submission call."""

    attempts: int = 0
    delays: list[float] = field(default_factory=list)
    last_error: Optional[SubmissionError] = None


class SubmissionClient:
    """Sends events to the Versioner API with retries and outcome classification."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        fail_on_api_error: bool = True,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        debug: bool = False,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.fail_on_api_error = fail_on_api_error
        self.timeout = timeout
        self.debug = debug
        self.user_agent = get_user_agent()
        self._http_client = http_client
        self._sleep = sleep

    def _get_http_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._http_client is None:
            ssl_context = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            self._http_client = httpx.Client(timeout=self.timeout, verify=ssl_context)
        return self._http_client

    def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> "SubmissionClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    # -- Public API -------------------------------------------------------

    def create_build_event(
        self, event: BuildEventCreate, *, deadline: Optional[float] = None
    ) -> SubmissionOutcome:
        return self.submit(event, deadline=deadline)

    def create_deployment_event(
        self, event: DeploymentEventCreate, *, deadline: Optional[float] = None
    ) -> SubmissionOutcome:
        return self.submit(event, deadline=deadline)

    def submit(
        self,
        event: EventCreate,
        *,
        deadline: Optional[float] = None,
        state: Optional[RetryState] = None,
    ) -> SubmissionOutcome:
        """Deliver *event* to its endpoint and classify the result.

        Args:
            event: Build or deployment event; its class decides the endpoint.
            deadline: Optional ``time.monotonic()`` instant after which no
                further attempt or backoff is started.
            state: Optional RetryState to record attempts into. A fresh one
                is created per call when omitted.

        Returns:
            Exactly one of Recorded, NotRecorded, Rejected or Failed.
        """
        if state is None:
            state = RetryState()

        try:
            response = self._send_with_retry(event.endpoint, event.to_payload(), state, deadline)
            body = self._decode_success(response)
        except PolicyRejection as exc:
            logger.debug("Policy rejection (HTTP %d): %s", exc.status_code, exc.raw_body)
            return Rejected.from_error(exc)
        except SubmissionError as exc:
            return self._handle_failure(exc)

        resource_id = body.get("id")
        return Recorded(resource_id="" if resource_id is None else str(resource_id), fields=body)

    # -- Internals --------------------------------------------------------

    def _handle_failure(self, error: SubmissionError) -> SubmissionOutcome:
        """Apply the fail_on_api_error policy to a non-policy failure."""
        if self.fail_on_api_error:
            return Failed(cause=error)
        logger.warning("Event not recorded (fail_on_api_error disabled): %s", error)
        return NotRecorded(reason=str(error))

    def _send_with_retry(
        self,
        path: str,
        payload: dict[str, Any],
        state: RetryState,
        deadline: Optional[float],
    ) -> httpx.Response:
        for attempt in range(MAX_ATTEMPTS):
            if attempt > 0:
                delay = RETRY_DELAYS[attempt - 1]
                if deadline is not None and time.monotonic() + delay >= deadline:
                    raise self._exhausted(state, TransportFailure("deadline exceeded before retry"))
                logger.warning(
                    "Request failed (attempt %d/%d), retrying in %.0fs: %s",
                    attempt,
                    MAX_ATTEMPTS,
                    delay,
                    state.last_error,
                )
                self._sleep(delay)
                state.delays.append(delay)

            timeout = self._attempt_timeout(deadline)
            if timeout is None:
                raise self._exhausted(state, TransportFailure("deadline exceeded"))

            state.attempts += 1
            try:
                response = self._perform_request("POST", path, payload, timeout)
            except httpx.TransportError as exc:
                state.last_error = TransportFailure(f"request failed: {exc}")
                continue
            except httpx.RequestError as exc:
                # Undecodable body or redirect loop: a response arrived but is unusable.
                raise self._exhausted(state, ResponseDecodeError(f"failed to read response: {exc}")) from exc

            if response.is_success:
                return response

            error = api_error_from_response(response.status_code, response.text)
            if not error.retryable:
                error.attempts = state.attempts
                raise error
            state.last_error = error

        last_error = state.last_error or TransportFailure("no attempt was made")
        logger.error("Request failed after %d attempts: %s", state.attempts, last_error)
        raise self._exhausted(state, last_error)

    @staticmethod
    def _exhausted(state: RetryState, error: SubmissionError) -> SubmissionError:
        error.attempts = state.attempts
        return error

    def _attempt_timeout(self, deadline: Optional[float]) -> Optional[float]:
        """Per-attempt timeout, capped by the remaining deadline; None once it has passed."""
        if deadline is None:
            return self.timeout
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        return min(self.timeout, remaining)

    def _perform_request(
        self, method: str, path: str, payload: dict[str, Any], timeout: float
    ) -> httpx.Response:
        """Perform a single HTTP request."""
        url = f"{self.base_url}{path}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "User-Agent": self.user_agent,
        }

        if self.debug:
            logger.debug("→ %s %s", method, url)
            logger.debug("→ Headers: %s", {**headers, "Authorization": "Bearer ***"})
            logger.debug("→ Request body: %s", payload)

        response = self._get_http_client().request(
            method, url, json=payload, headers=headers, timeout=timeout
        )

        if self.debug:
            logger.debug("← Status: %d", response.status_code)
        return response

    @staticmethod
    def _decode_success(response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise ResponseDecodeError(f"failed to parse response: {exc}") from exc
        if not isinstance(body, dict):
            raise ResponseDecodeError("failed to parse response: expected a JSON object")
        return body
