"""Tests for API error classification and rejection parsing."""

from __future__ import annotations

import json

import pytest

from versioner_cli.api import (
    BuildResponse,
    ClientFailure,
    DeploymentResponse,
    PolicyRejection,
    Rejected,
    ServerFailure,
)
from versioner_cli.api.errors import api_error_from_response


class TestApiErrorFromResponse:
    """Tests for api_error_from_response()."""

    @pytest.mark.parametrize(
        ("status_code", "expected"),
        [
            (409, PolicyRejection),
            (423, PolicyRejection),
            (428, PolicyRejection),
            (429, ServerFailure),
            (500, ServerFailure),
            (503, ServerFailure),
            (400, ClientFailure),
            (401, ClientFailure),
            (422, ClientFailure),
            (302, ClientFailure),
        ],
    )
    def test_classification(self, status_code, expected):
        error = api_error_from_response(status_code, "")
        assert type(error) is expected

    def test_retryable_flags(self):
        assert api_error_from_response(502, "").retryable is True
        assert api_error_from_response(429, "").retryable is True
        assert api_error_from_response(404, "").retryable is False
        assert api_error_from_response(428, "").retryable is False

    def test_string_detail(self):
        error = api_error_from_response(401, json.dumps({"detail": "Invalid API key"}))

        assert error.detail == "Invalid API key"
        assert str(error) == "Invalid API key"

    def test_validation_list_detail(self):
        body = json.dumps({"detail": [{"loc": ["body", "version"], "msg": "field required"}]})

        error = api_error_from_response(422, body)

        assert str(error).startswith("validation error: ")
        assert "field required" in str(error)

    def test_non_json_body_is_kept_raw(self):
        error = api_error_from_response(502, "Bad Gateway")

        assert error.detail == "Bad Gateway"
        assert error.raw_body == "Bad Gateway"

    def test_json_without_detail_keeps_raw_body(self):
        error = api_error_from_response(500, '{"error": "boom"}')
        assert error.detail == '{"error": "boom"}'


class TestPreflightDetails:
    def test_structured_envelope(self):
        body = json.dumps(
            {
                "detail": {
                    "error": "ScheduleBlocked",
                    "message": "No deploys on Fridays",
                    "code": "NO_DEPLOY_WINDOW",
                    "retry_after": "2025-01-06T09:00:00Z",
                    "details": {"rule_name": "Friday freeze"},
                }
            }
        )

        error = api_error_from_response(423, body)
        preflight = error.preflight_details()

        assert error.is_preflight_error
        assert preflight.error_type == "ScheduleBlocked"
        assert preflight.code == "NO_DEPLOY_WINDOW"
        assert preflight.rule_name == "Friday freeze"

    def test_missing_optional_fields_default_to_empty(self):
        error = api_error_from_response(409, json.dumps({"detail": {"message": "busy"}}))
        preflight = error.preflight_details()

        assert preflight.code == ""
        assert preflight.retry_after == ""
        assert preflight.details == {}
        assert preflight.rule_name == ""

    def test_non_object_detail_has_no_preflight_details(self):
        error = api_error_from_response(409, "conflict")
        assert error.preflight_details() is None


class TestRejectedFromError:
    def test_unstructured_rejection_keeps_classification(self):
        error = api_error_from_response(428, "<html>precondition</html>")

        rejected = Rejected.from_error(error)

        assert rejected.status_code == 428
        assert rejected.message == "<html>precondition</html>"
        assert rejected.structured is False
        assert rejected.error_code == ""


class TestResponseModels:
    def test_build_response_coerces_ids(self):
        response = BuildResponse.model_validate({"id": 17, "product_id": None, "status": "completed"})

        assert response.id == "17"
        assert response.product_id == ""

    def test_deployment_response_ignores_unknown_fields(self):
        response = DeploymentResponse.model_validate(
            {"id": "d-1", "environment_id": "e-1", "extra": "ignored"}
        )

        assert response.environment_id == "e-1"
