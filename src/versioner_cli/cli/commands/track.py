"""``versioner track`` commands for build and deployment events."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import NoReturn, Optional

import typer
from pydantic import ValidationError

from versioner_cli.api import (
    APIError,
    BuildEventCreate,
    BuildResponse,
    DeploymentEventCreate,
    DeploymentResponse,
    Failed,
    NotRecorded,
    Recorded,
    Rejected,
    SubmissionClient,
    SubmissionOutcome,
)
from versioner_cli.cicd import DetectedValues, System, detect
from versioner_cli.cli import exit_codes
from versioner_cli.cli.helpers import GlobalOptions
from versioner_cli.config import ConfigError, VersionerConfig, load_config
from versioner_cli.github import (
    write_error_annotation,
    write_generic_error_annotation,
    write_success_summary,
)
from versioner_cli.metadata import MetadataError, merge_metadata, parse_extra_metadata
from versioner_cli.status import normalize

logger = logging.getLogger(__name__)

app = typer.Typer(help="Track build and deployment events with the Versioner API")


class TrackError(RuntimeError):
    """Raised for invalid command input; reported with exit code 1."""


# ---------------------------------------------------------------------------
# Shared plumbing
# ---------------------------------------------------------------------------


def _global_options(ctx: typer.Context) -> GlobalOptions:
    return ctx.obj if isinstance(ctx.obj, GlobalOptions) else GlobalOptions()


def _fail(message: str, code: int = exit_codes.GENERAL_ERROR) -> NoReturn:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code)


def _parse_timestamp(value: str, option: str) -> Optional[datetime]:
    if not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise TrackError(f"invalid {option} timestamp: {value!r} (expected ISO 8601)") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _build_client(options: GlobalOptions, config: VersionerConfig, fail_on_api_error: bool) -> SubmissionClient:
    return SubmissionClient(
        options.api_url or config.api_url,
        options.api_key or config.api_key,
        fail_on_api_error=fail_on_api_error,
        debug=options.debug,
    )


def _resolve_fail_on_api_error(flag: Optional[bool], config: VersionerConfig) -> bool:
    if flag is not None:
        return flag
    return config.fail_on_api_error


def _resolve_metadata(detected: DetectedValues, raw: str) -> Optional[dict]:
    user_metadata = parse_extra_metadata(raw)
    merged = merge_metadata(detected.extra_metadata(), user_metadata)
    return dict(merged) if merged else None


def _report_status_alias(status_value: str, options: GlobalOptions) -> None:
    canonical, was_aliased = normalize(status_value)
    if options.verbose and was_aliased:
        typer.echo(f"ℹ Status '{status_value}' will be normalized to '{canonical}' by the API", err=True)


def _echo_event_summary(kind: str, detected: DetectedValues, api_url: str, fields: dict[str, str]) -> None:
    typer.echo(f"Tracking {kind} event:", err=True)
    if detected.system is not System.UNKNOWN:
        typer.echo(f"  ℹ Auto-detected CI system: {detected.system}", err=True)
    for label, value in fields.items():
        if value:
            typer.echo(f"  {label}: {value}", err=True)
    typer.echo(f"  API URL: {api_url}", err=True)
    typer.echo("", err=True)


def _load(ctx: typer.Context) -> tuple[GlobalOptions, VersionerConfig]:
    options = _global_options(ctx)
    try:
        config = load_config(options.config_file)
    except ConfigError as exc:
        _fail(str(exc))
    if not (options.api_key or config.api_key):
        _fail("API key is required. Set VERSIONER_API_KEY environment variable or use --api-key flag")
    return options, config


# ---------------------------------------------------------------------------
# Outcome rendering
# ---------------------------------------------------------------------------


def render_rejection(rejection: Rejected, action: str = "Deployment") -> None:
    """Print a policy rejection with enough detail to act on it."""
    err = {"err": True}
    noun = action.lower()

    if not rejection.structured:
        typer.echo(f"❌ {action} Failed (HTTP {rejection.status_code})\n", **err)
        typer.echo(rejection.message, **err)
        return

    message = rejection.message
    retry_after = rejection.retry_after
    emergency_hint = "\nTo skip checks (emergency only), add:\n  --skip-preflight-checks"

    if rejection.status_code == 409:
        typer.echo(f"⚠️  {action} Conflict\n", **err)
        typer.echo(message, **err)
        typer.echo(f"Another {noun} is in progress. Please wait and retry.", **err)
    elif rejection.status_code == 423:
        typer.echo(f"🔒 {action} Blocked by Schedule\n", **err)
        if rejection.rule_name:
            typer.echo(f"Rule: {rejection.rule_name}", **err)
        typer.echo(message, **err)
        if retry_after:
            typer.echo(f"\nRetry after: {retry_after}", **err)
        typer.echo(emergency_hint, **err)
    elif rejection.status_code == 428:
        typer.echo(f"❌ {action} Precondition Failed\n", **err)
        typer.echo(f"Error: {rejection.error_code}", **err)
        if rejection.rule_name:
            typer.echo(f"Rule: {rejection.rule_name}", **err)
        typer.echo(message, **err)

        code = rejection.error_code
        if code == "FLOW_VIOLATION":
            typer.echo("\nDeploy to required environments first, then retry.", **err)
        elif code == "INSUFFICIENT_SOAK_TIME":
            if retry_after:
                typer.echo(f"\nRetry after: {retry_after}", **err)
            typer.echo("\nWait for soak time to complete, then retry.", **err)
            typer.echo(emergency_hint, **err)
        elif code in ("QUALITY_APPROVAL_REQUIRED", "APPROVAL_REQUIRED"):
            typer.echo(f"\nApproval required before {noun} can proceed.", **err)
            typer.echo("Obtain approval via Versioner UI, then retry.", **err)
        else:
            if retry_after:
                typer.echo(f"\nRetry after: {retry_after}", **err)
            typer.echo("\nResolve the issue described above, then retry.", **err)
            typer.echo(emergency_hint, **err)

    if rejection.details:
        typer.echo("\nDetails:", **err)
        typer.echo(json.dumps(rejection.details, indent=2, default=str), **err)


def _response_ids(action: str, fields: dict) -> dict[str, str]:
    """Resource ids from a recorded event's response body; empty if the body is malformed."""
    try:
        if action == "Deployment":
            response = DeploymentResponse.model_validate(fields)
            return {
                "Product ID": response.product_id,
                "Version ID": response.version_id,
                "Environment ID": response.environment_id,
            }
        build = BuildResponse.model_validate(fields)
    except ValidationError as exc:
        logger.debug("Could not parse %s response body: %s", action.lower(), exc)
        return {}
    return {"Product ID": build.product_id, "Version ID": build.version_id}


def _finish(
    outcome: SubmissionOutcome,
    *,
    action: str,
    status: str,
    version: str,
    environment: str = "",
    scm_sha: str = "",
    ui_url: str = "",
    verbose: bool = False,
) -> None:
    """Print *outcome* and exit with the matching exit code."""
    if isinstance(outcome, Rejected):
        write_error_annotation(outcome, action)
        render_rejection(outcome, action)
        raise typer.Exit(exit_codes.PREFLIGHT_REJECTED)

    if isinstance(outcome, Failed):
        if isinstance(outcome.cause, APIError):
            write_generic_error_annotation(action, "API Error", outcome.reason)
            typer.secho(f"API error: {outcome.reason}", fg=typer.colors.RED, err=True)
            raise typer.Exit(exit_codes.API_ERROR)
        write_generic_error_annotation(action, "Network Error", outcome.reason)
        typer.secho(f"Error: {outcome.reason}", fg=typer.colors.RED, err=True)
        raise typer.Exit(exit_codes.GENERAL_ERROR)

    if isinstance(outcome, NotRecorded):
        typer.secho(
            f"⚠️  {action} event was not recorded ({outcome.reason}); continuing because fail_on_api_error is disabled",
            fg=typer.colors.YELLOW,
            err=True,
        )
        return

    if not isinstance(outcome, Recorded):
        raise TypeError(f"unexpected submission outcome: {outcome!r}")

    typer.echo(f"✓ {action} event tracked successfully")
    typer.echo(f"  Event ID: {outcome.resource_id}")
    if verbose:
        for label, value in _response_ids(action, outcome.fields).items():
            typer.echo(f"  {label}: {value}")

    write_success_summary(
        action,
        status=status,
        version=version,
        environment=environment,
        scm_sha=scm_sha,
        ui_url=ui_url,
        resource_id=outcome.resource_id,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("build")
def build_command(
    ctx: typer.Context,
    product: str = typer.Option("", "--product", help="Product/application name (required)"),
    version: str = typer.Option("", "--version", help="Version string (required)"),
    status: str = typer.Option(
        "completed", "--status", help="Build status (pending, started, completed, failed, aborted)"
    ),
    source_system: str = typer.Option("", "--source-system", help="Source system (github, jenkins, gitlab, etc.)"),
    build_number: str = typer.Option("", "--build-number", help="Build number from CI system"),
    scm_sha: str = typer.Option("", "--scm-sha", help="Git commit SHA (40-character hash)"),
    scm_branch: str = typer.Option("", "--scm-branch", help="Git branch name"),
    scm_repository: str = typer.Option("", "--scm-repository", help="Source control repository (e.g., owner/repo)"),
    build_url: str = typer.Option("", "--build-url", help="Link to CI/CD build run"),
    invoke_id: str = typer.Option("", "--invoke-id", help="Invocation/run ID from CI system"),
    built_by: str = typer.Option("", "--built-by", help="User identifier (username, email, or ID)"),
    built_by_email: str = typer.Option("", "--built-by-email", help="User email"),
    built_by_name: str = typer.Option("", "--built-by-name", help="User display name"),
    started_at: str = typer.Option("", "--started-at", help="Build start timestamp (ISO 8601 format)"),
    completed_at: str = typer.Option("", "--completed-at", help="Build completion timestamp (ISO 8601 format)"),
    extra_metadata: str = typer.Option("", "--extra-metadata", help="Additional metadata as JSON object (max 100KB)"),
    fail_on_api_error: Optional[bool] = typer.Option(
        None,
        "--fail-on-api-error/--no-fail-on-api-error",
        help="Fail if the API is unreachable or returns auth/validation errors (default: true)",
    ),
) -> None:
    """Track a CI/CD build lifecycle event."""
    options, config = _load(ctx)
    detected = detect()

    try:
        product_name = config.resolve(product, "product", detected.product)
        version_value = config.resolve(version, "version", detected.version)
        if not product_name:
            raise TrackError("--product is required")
        if not version_value:
            raise TrackError("--version is required")

        _report_status_alias(status, options)

        event = BuildEventCreate(
            product_name=product_name,
            version=version_value,
            status=status,
            source_system=config.resolve(source_system, "source_system", _system_name(detected)),
            build_number=config.resolve(build_number, "build_number", detected.build_number),
            scm_sha=config.resolve(scm_sha, "scm_sha", detected.scm_sha),
            scm_branch=config.resolve(scm_branch, "scm_branch", detected.scm_branch),
            scm_repository=config.resolve(scm_repository, "scm_repository", detected.scm_repository),
            build_url=config.resolve(build_url, "build_url", detected.build_url),
            invoke_id=config.resolve(invoke_id, "invoke_id", detected.invoke_id),
            built_by=config.resolve(built_by, "built_by", detected.built_by),
            built_by_email=config.resolve(built_by_email, "built_by_email", detected.built_by_email),
            built_by_name=config.resolve(built_by_name, "built_by_name", detected.built_by_name),
            started_at=_parse_timestamp(started_at, "started-at"),
            completed_at=_parse_timestamp(completed_at, "completed-at"),
            extra_metadata=_resolve_metadata(detected, extra_metadata),
        )
        fail_flag = _resolve_fail_on_api_error(fail_on_api_error, config)
    except (TrackError, MetadataError, ConfigError) as exc:
        _fail(str(exc))

    client = _build_client(options, config, fail_flag)
    if options.verbose:
        _echo_event_summary(
            "build",
            detected,
            client.base_url,
            {
                "Product": event.product_name,
                "Version": event.version,
                "Status": event.status,
                "Source System": event.source_system,
                "Repository": event.scm_repository,
                "Commit SHA": event.scm_sha,
            },
        )

    with client:
        outcome = client.create_build_event(event)

    _finish(
        outcome,
        action="Build",
        status=event.status,
        version=event.version,
        scm_sha=event.scm_sha,
        ui_url=config.ui_url,
        verbose=options.verbose,
    )


@app.command("deployment")
def deployment_command(
    ctx: typer.Context,
    product: str = typer.Option("", "--product", help="Product/application name (required)"),
    environment: str = typer.Option("", "--environment", help="Environment name (required)"),
    version: str = typer.Option("", "--version", help="Version string (required)"),
    status: str = typer.Option(
        "success", "--status", help="Deployment status (pending, started, completed, failed, aborted)"
    ),
    source_system: str = typer.Option("", "--source-system", help="Source system (github, jenkins, gitlab, etc.)"),
    build_number: str = typer.Option("", "--build-number", help="Build number from CI system"),
    scm_sha: str = typer.Option("", "--scm-sha", help="Git commit SHA (40-character hash)"),
    scm_repository: str = typer.Option("", "--scm-repository", help="Source control repository (e.g., owner/repo)"),
    deploy_url: str = typer.Option("", "--deploy-url", help="Link to deployment run/logs"),
    invoke_id: str = typer.Option("", "--invoke-id", help="Invocation/run ID from CI system"),
    deployed_by: str = typer.Option("", "--deployed-by", help="User identifier (username, email, or ID)"),
    deployed_by_email: str = typer.Option("", "--deployed-by-email", help="User email"),
    deployed_by_name: str = typer.Option("", "--deployed-by-name", help="User display name"),
    completed_at: str = typer.Option("", "--completed-at", help="Deployment completion timestamp (ISO 8601 format)"),
    extra_metadata: str = typer.Option("", "--extra-metadata", help="Additional metadata as JSON object (max 100KB)"),
    fail_on_api_error: Optional[bool] = typer.Option(
        None,
        "--fail-on-api-error/--no-fail-on-api-error",
        help="Fail if the API is unreachable or returns auth/validation errors (default: true)",
    ),
    skip_preflight_checks: bool = typer.Option(
        False, "--skip-preflight-checks", help="Skip preflight checks (emergency use only)"
    ),
) -> None:
    """Track a deployment lifecycle event.

    When status=started the API runs preflight checks: concurrent deployments
    (409), no-deploy windows (423), and flow, soak time or approval
    requirements (428).

    Exit codes: 0 success, 1 general error, 4 API error, 5 preflight check failure.
    """
    options, config = _load(ctx)
    detected = detect()

    try:
        product_name = config.resolve(product, "product", detected.product)
        environment_name = config.resolve(environment, "environment")
        version_value = config.resolve(version, "version", detected.version)
        if not product_name:
            raise TrackError("--product is required")
        if not environment_name:
            raise TrackError("--environment is required")
        if not version_value:
            raise TrackError("--version is required")

        _report_status_alias(status, options)

        event = DeploymentEventCreate(
            product_name=product_name,
            version=version_value,
            environment_name=environment_name,
            status=status,
            source_system=config.resolve(source_system, "source_system", _system_name(detected)),
            build_number=config.resolve(build_number, "build_number", detected.build_number),
            scm_sha=config.resolve(scm_sha, "scm_sha", detected.scm_sha),
            scm_repository=config.resolve(scm_repository, "scm_repository", detected.scm_repository),
            deploy_url=config.resolve(deploy_url, "deploy_url", detected.build_url),
            invoke_id=config.resolve(invoke_id, "invoke_id", detected.invoke_id),
            deployed_by=config.resolve(deployed_by, "deployed_by", detected.built_by),
            deployed_by_email=config.resolve(deployed_by_email, "deployed_by_email", detected.built_by_email),
            deployed_by_name=config.resolve(deployed_by_name, "deployed_by_name", detected.built_by_name),
            completed_at=_parse_timestamp(completed_at, "completed-at"),
            extra_metadata=_resolve_metadata(detected, extra_metadata),
            skip_preflight_checks=skip_preflight_checks,
        )
        fail_flag = _resolve_fail_on_api_error(fail_on_api_error, config)
    except (TrackError, MetadataError, ConfigError) as exc:
        _fail(str(exc))

    if skip_preflight_checks:
        typer.secho(
            "⚠️  DEPRECATION WARNING: --skip-preflight-checks is deprecated\n"
            "    Use server-side rule status control instead (disabled/report_only/enabled)\n"
            "    This flag will be removed in a future version\n",
            fg=typer.colors.YELLOW,
            err=True,
        )

    client = _build_client(options, config, fail_flag)
    if options.verbose:
        _echo_event_summary(
            "deployment",
            detected,
            client.base_url,
            {
                "Product": event.product_name,
                "Environment": event.environment_name,
                "Version": event.version,
                "Status": event.status,
                "Source System": event.source_system,
                "Repository": event.scm_repository,
                "Commit SHA": event.scm_sha,
            },
        )

    with client:
        outcome = client.create_deployment_event(event)

    _finish(
        outcome,
        action="Deployment",
        status=event.status,
        version=event.version,
        environment=event.environment_name,
        scm_sha=event.scm_sha,
        ui_url=config.ui_url,
        verbose=options.verbose,
    )


def _system_name(detected: DetectedValues) -> str:
    return "" if detected.system is System.UNKNOWN else detected.system.value
