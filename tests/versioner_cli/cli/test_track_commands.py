"""CLI tests for ``versioner track build`` and ``versioner track deployment``."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest
from typer.testing import CliRunner

from versioner_cli import app
from versioner_cli.api import Recorded, SubmissionClient
from versioner_cli.cli import exit_codes
from versioner_cli.cli.commands import track

runner = CliRunner()

API_ENV = {"VERSIONER_API_KEY": "test-key", "VERSIONER_API_URL": "https://api.versioner.test"}
SHA = "0123456789abcdef0123456789abcdef01234567"


class FakeApi:
    """MockTransport handler that records requests and replays scripted responses."""

    def __init__(self):
        self.responses: list = [httpx.Response(201, json={"id": "evt-1", "product_id": "p-1", "version_id": "v-1"})]
        self.requests: list[httpx.Request] = []

    def reply(self, *responses) -> None:
        self.responses = list(responses)

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(step, Exception):
            raise step
        return step


@pytest.fixture
def api(monkeypatch):
    """Route the CLI's API client to an in-memory fake with no retry pauses."""
    fake = FakeApi()

    def build_client(options, config, fail_on_api_error):
        return SubmissionClient(
            options.api_url or config.api_url,
            options.api_key or config.api_key,
            fail_on_api_error=fail_on_api_error,
            http_client=httpx.Client(transport=httpx.MockTransport(fake)),
            sleep=lambda _delay: None,
        )

    monkeypatch.setattr(track, "_build_client", build_client)
    return fake


def invoke(args, **env):
    return runner.invoke(app, args, env={**API_ENV, **env})


class TestTrackBuild:
    """Tests for the build command."""

    def test_success(self, api):
        result = invoke(["track", "build", "--product", "api", "--version", "1.2.3"])

        assert result.exit_code == exit_codes.SUCCESS, result.output
        assert "Build event tracked successfully" in result.output
        assert "Event ID: evt-1" in result.output
        assert api.payloads == [{"product_name": "api", "version": "1.2.3", "status": "completed"}]
        assert str(api.requests[0].url) == "https://api.versioner.test/build-events/"
        assert api.requests[0].headers["Authorization"] == "Bearer test-key"

    def test_all_fields_are_sent(self, api):
        result = invoke(
            [
                "track", "build",
                "--product", "api",
                "--version", "1.2.3",
                "--status", "started",
                "--source-system", "jenkins",
                "--build-number", "77",
                "--scm-sha", SHA,
                "--scm-branch", "main",
                "--scm-repository", "acme/api",
                "--build-url", "https://ci.example.com/77",
                "--invoke-id", "run-77",
                "--built-by", "jdoe",
                "--built-by-email", "jdoe@example.com",
                "--built-by-name", "J Doe",
                "--started-at", "2025-01-01T10:00:00Z",
                "--extra-metadata", '{"team": "core"}',
            ]
        )

        assert result.exit_code == 0, result.output
        payload = api.payloads[0]
        assert payload["source_system"] == "jenkins"
        assert payload["scm_branch"] == "main"
        assert payload["built_by_name"] == "J Doe"
        assert payload["started_at"] == "2025-01-01T10:00:00Z"
        assert payload["extra_metadata"] == {"team": "core"}

    def test_missing_api_key(self, api):
        result = runner.invoke(app, ["track", "build", "--product", "api", "--version", "1"])

        assert result.exit_code == exit_codes.GENERAL_ERROR
        assert "API key is required" in result.output
        assert api.requests == []

    def test_missing_product(self, api):
        result = invoke(["track", "build", "--version", "1.2.3"])

        assert result.exit_code == exit_codes.GENERAL_ERROR
        assert "--product is required" in result.output
        assert api.requests == []

    def test_missing_version(self, api):
        result = invoke(["track", "build", "--product", "api"])

        assert result.exit_code == exit_codes.GENERAL_ERROR
        assert "--version is required" in result.output

    def test_values_from_environment(self, api):
        result = invoke(["track", "build"], VERSIONER_PRODUCT="env-product", VERSIONER_VERSION="9.9.9")

        assert result.exit_code == 0, result.output
        assert api.payloads[0]["product_name"] == "env-product"
        assert api.payloads[0]["version"] == "9.9.9"

    def test_invalid_metadata(self, api):
        result = invoke(["track", "build", "--product", "api", "--version", "1", "--extra-metadata", "[1]"])

        assert result.exit_code == exit_codes.GENERAL_ERROR
        assert "must be a JSON object" in result.output
        assert api.requests == []

    def test_invalid_timestamp(self, api):
        result = invoke(["track", "build", "--product", "api", "--version", "1", "--completed-at", "yesterday"])

        assert result.exit_code == exit_codes.GENERAL_ERROR
        assert "invalid completed-at timestamp" in result.output

    def test_naive_timestamp_is_utc(self, api):
        result = invoke(["track", "build", "--product", "api", "--version", "1", "--completed-at", "2025-03-04T05:06:07"])

        assert result.exit_code == 0, result.output
        assert api.payloads[0]["completed_at"] == "2025-03-04T05:06:07Z"

    def test_verbose_reports_status_alias(self, api):
        result = invoke(["--verbose", "track", "build", "--product", "api", "--version", "1", "--status", "building"])

        assert result.exit_code == 0, result.output
        assert "Status 'building' will be normalized to 'started'" in result.output
        assert "Product ID: p-1" in result.output
        assert api.payloads[0]["status"] == "building"

    def test_api_key_flag_warns(self, api):
        result = runner.invoke(app, ["--api-key", "flag-key", "track", "build", "--product", "api", "--version", "1"])

        assert result.exit_code == 0, result.output
        assert "may expose it in logs" in result.output
        assert api.requests[0].headers["Authorization"] == "Bearer flag-key"

    def test_rejection_names_the_build(self, api):
        api.reply(httpx.Response(409, json={"detail": {"message": "Build already running", "code": "CONFLICT"}}))

        result = invoke(["track", "build", "--product", "api", "--version", "1"])

        assert result.exit_code == exit_codes.PREFLIGHT_REJECTED
        assert "Build Conflict" in result.output
        assert "Another build is in progress" in result.output
        assert "Deployment" not in result.output

    def test_verbose_tolerates_malformed_response_body(self, api):
        api.reply(httpx.Response(201, json={"id": "evt-7", "completed_at": "not-a-date"}))

        result = invoke(["--verbose", "track", "build", "--product", "api", "--version", "1"])

        assert result.exit_code == exit_codes.SUCCESS, result.output
        assert "Event ID: evt-7" in result.output
        assert "Product ID" not in result.output


class TestGithubActionsDetection:
    def test_detected_values_and_summary(self, api, tmp_path):
        summary = tmp_path / "summary.md"

        result = invoke(
            ["track", "build", "--extra-metadata", '{"team": "core"}'],
            GITHUB_ACTIONS="true",
            GITHUB_REPOSITORY="acme/payments-api",
            GITHUB_SHA=SHA,
            GITHUB_REF_NAME="main",
            GITHUB_WORKFLOW="CI",
            GITHUB_STEP_SUMMARY=str(summary),
            VERSIONER_UI_URL="https://app.versioner.test",
        )

        assert result.exit_code == 0, result.output
        payload = api.payloads[0]
        assert payload["product_name"] == "payments-api"
        assert payload["version"] == "01234567"
        assert payload["source_system"] == "github"
        assert payload["scm_sha"] == SHA
        assert payload["extra_metadata"] == {"vi_gh_workflow": "CI", "team": "core"}
        text = summary.read_text(encoding="utf-8")
        assert "## 🚀 Versioner Summary" in text
        assert "manage/versions?view=evt-1" in text

    def test_flags_override_detected_values(self, api):
        result = invoke(
            ["track", "build", "--product", "override", "--version", "2.0.0"],
            GITHUB_ACTIONS="true",
            GITHUB_REPOSITORY="acme/payments-api",
            GITHUB_SHA=SHA,
        )

        assert result.exit_code == 0, result.output
        assert api.payloads[0]["product_name"] == "override"
        assert api.payloads[0]["version"] == "2.0.0"


class TestTrackDeployment:
    """Tests for the deployment command."""

    SOAK_REJECTION = {
        "detail": {
            "error": "PreconditionFailed",
            "message": "Version must soak in staging for 24h",
            "code": "INSUFFICIENT_SOAK_TIME",
            "retry_after": "2025-01-01T12:00:00Z",
            "details": {"rule_name": "Staging soak"},
        }
    }

    def test_success(self, api):
        result = invoke(["track", "deployment", "--product", "api", "--environment", "prod", "--version", "1.2.3"])

        assert result.exit_code == 0, result.output
        assert "Deployment event tracked successfully" in result.output
        assert api.requests[0].url.path == "/deployment-events/"
        assert api.payloads[0] == {
            "product_name": "api",
            "version": "1.2.3",
            "environment_name": "prod",
            "status": "success",
        }

    def test_missing_environment(self, api):
        result = invoke(["track", "deployment", "--product", "api", "--version", "1"])

        assert result.exit_code == exit_codes.GENERAL_ERROR
        assert "--environment is required" in result.output

    def test_environment_from_config_file(self, api, tmp_path):
        config = tmp_path / "versioner.yaml"
        config.write_text("environment: staging\nproduct: from-config\n", encoding="utf-8")

        result = invoke(["--config", str(config), "track", "deployment", "--version", "1"])

        assert result.exit_code == 0, result.output
        assert api.payloads[0]["environment_name"] == "staging"
        assert api.payloads[0]["product_name"] == "from-config"

    def test_missing_config_file(self, api, tmp_path):
        result = invoke(["--config", str(tmp_path / "absent.yaml"), "track", "deployment"])

        assert result.exit_code == exit_codes.GENERAL_ERROR
        assert "Config file not found" in result.output

    def test_preflight_rejection(self, api):
        api.reply(httpx.Response(428, json=self.SOAK_REJECTION))

        result = invoke(
            ["track", "deployment", "--product", "api", "--environment", "prod", "--version", "1", "--status", "started"]
        )

        assert result.exit_code == exit_codes.PREFLIGHT_REJECTED
        assert "Deployment Precondition Failed" in result.output
        assert "Rule: Staging soak" in result.output
        assert "Retry after: 2025-01-01T12:00:00Z" in result.output
        assert "Wait for soak time to complete" in result.output
        assert len(api.requests) == 1

    def test_rejection_is_not_soft_failed(self, api):
        api.reply(httpx.Response(409, json={"detail": {"message": "Deployment already running", "code": "CONFLICT"}}))

        result = invoke(
            [
                "track", "deployment",
                "--product", "api", "--environment", "prod", "--version", "1",
                "--no-fail-on-api-error",
            ]
        )

        assert result.exit_code == exit_codes.PREFLIGHT_REJECTED
        assert "Deployment Conflict" in result.output
        assert "Deployment already running" in result.output

    def test_rejection_annotates_github_run(self, api, tmp_path):
        summary = tmp_path / "summary.md"
        api.reply(httpx.Response(423, json={"detail": {"message": "Friday freeze", "details": {"rule_name": "No Fridays"}}}))

        result = invoke(
            ["track", "deployment", "--product", "api", "--environment", "prod", "--version", "1"],
            GITHUB_ACTIONS="true",
            GITHUB_STEP_SUMMARY=str(summary),
        )

        assert result.exit_code == exit_codes.PREFLIGHT_REJECTED
        assert "::error title=Deployment Blocked: No Fridays::Friday freeze" in result.output
        assert "Deployment Blocked by Schedule" in summary.read_text(encoding="utf-8")

    def test_api_error(self, api):
        api.reply(httpx.Response(401, json={"detail": "Invalid API key"}))

        result = invoke(["track", "deployment", "--product", "api", "--environment", "prod", "--version", "1"])

        assert result.exit_code == exit_codes.API_ERROR
        assert "Invalid API key" in result.output
        assert len(api.requests) == 1

    def test_api_error_soft_fail(self, api):
        api.reply(httpx.Response(401, json={"detail": "Invalid API key"}))

        result = invoke(
            [
                "track", "deployment",
                "--product", "api", "--environment", "prod", "--version", "1",
                "--no-fail-on-api-error",
            ]
        )

        assert result.exit_code == exit_codes.SUCCESS, result.output
        assert "was not recorded" in result.output

    def test_soft_fail_from_environment(self, api):
        api.reply(httpx.Response(500, json={"detail": "boom"}))

        result = invoke(
            ["track", "deployment", "--product", "api", "--environment", "prod", "--version", "1"],
            VERSIONER_FAIL_ON_API_ERROR="false",
        )

        assert result.exit_code == exit_codes.SUCCESS, result.output
        assert len(api.requests) == 4

    def test_network_error(self, api):
        api.reply(httpx.ConnectError("connection refused"))

        result = invoke(["track", "deployment", "--product", "api", "--environment", "prod", "--version", "1"])

        assert result.exit_code == exit_codes.GENERAL_ERROR
        assert "connection refused" in result.output
        assert len(api.requests) == 4

    def test_skip_preflight_checks(self, api):
        result = invoke(
            [
                "track", "deployment",
                "--product", "api", "--environment", "prod", "--version", "1",
                "--skip-preflight-checks",
            ]
        )

        assert result.exit_code == 0, result.output
        assert "DEPRECATION WARNING" in result.output
        assert api.payloads[0]["skip_preflight_checks"] is True


class TestVersionCommand:
    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert result.output.startswith("versioner ")


class TestClientConstruction:
    def test_global_options_reach_the_client(self):
        with patch("versioner_cli.cli.commands.track.SubmissionClient") as client_cls:
            client = client_cls.return_value
            client.__enter__.return_value = client
            client.base_url = "https://custom.example"
            client.create_build_event.return_value = Recorded(resource_id="evt-5")

            result = runner.invoke(
                app,
                ["--debug", "--api-url", "https://custom.example", "track", "build", "--product", "api", "--version", "1"],
                env={"VERSIONER_API_KEY": "env-key"},
            )

        assert result.exit_code == 0, result.output
        client_cls.assert_called_once_with(
            "https://custom.example", "env-key", fail_on_api_error=True, debug=True
        )
        assert "Event ID: evt-5" in result.output
