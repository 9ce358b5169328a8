"""GitHub Actions error annotations and job summaries.

Everything here is a no-op outside GitHub Actions. Writing the step summary
is best effort: a failure to write is logged and never fails the command.
"""

from __future__ import annotations

import json
import logging
import os
import sys

from versioner_cli.api.outcome import Rejected

logger = logging.getLogger(__name__)

_STATUS_ICONS = {
    "started": "⏳",
    "in_progress": "⏳",
    "completed": "✅",
    "success": "✅",
    "failed": "❌",
    "aborted": "🚫",
    "cancelled": "🚫",
    "pending": "⏸️",
}

_GENERIC_CAUSES = {
    "API Error": [
        "Invalid API key or authentication failure",
        "Validation error (check required fields)",
        "API service unavailable",
        "Rate limiting or quota exceeded",
    ],
    "Network Error": [
        "Network connectivity issues",
        "DNS resolution failure",
        "API endpoint unreachable",
        "Timeout or connection refused",
    ],
}


def in_github_actions() -> bool:
    return os.getenv("GITHUB_ACTIONS") == "true"


def escape_workflow_command(message: str) -> str:
    """Escape ``%``, CR and LF for a workflow command payload."""
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def format_status(status: str) -> str:
    icon = _STATUS_ICONS.get(status)
    return f"{icon} {status}" if icon else status


def format_title(status_code: int, error_code: str, rule_name: str, action: str = "Deployment") -> str:
    """Short annotation title for a policy rejection of a build or deployment."""
    if status_code == 409:
        return f"{action} Conflict"
    if status_code == 423:
        return f"{action} Blocked: {rule_name}" if rule_name else f"{action} Blocked by Schedule"
    if status_code == 428:
        return f"{error_code}: {rule_name}" if rule_name else error_code
    return f"{action} Rejected"


def _append_summary(markdown: str) -> None:
    summary_path = os.getenv("GITHUB_STEP_SUMMARY")
    if not summary_path:
        return
    try:
        with open(summary_path, "a", encoding="utf-8") as handle:
            handle.write(markdown)
    except OSError as exc:
        logger.debug("Could not write GitHub step summary to %s: %s", summary_path, exc)


def _emit_error_command(title: str, message: str) -> None:
    sys.stdout.write(f"::error title={title}::{escape_workflow_command(message)}\n")
    sys.stdout.flush()


def _rejection_guidance(rejection: Rejected, action: str) -> list[str]:
    noun = action.lower()
    retry_after = rejection.retry_after
    if rejection.status_code == 409:
        return [f"Wait for the current {noun} to complete", f"Retry this {noun}"]
    if rejection.status_code == 423:
        lines = []
        if retry_after:
            lines += [f"Wait until `{retry_after}`", "Retry automatically after the no-deploy window"]
        return lines + ["Or use `--skip-preflight-checks` for emergencies"]
    if rejection.status_code == 428:
        code = rejection.error_code
        if code == "FLOW_VIOLATION":
            return ["Deploy to required environments first", f"Then retry this {noun}"]
        if code == "INSUFFICIENT_SOAK_TIME":
            lines = ["Wait for the soak time requirement to be met"]
            if retry_after:
                lines.append(f"Can deploy at: `{retry_after}`")
            return lines + ["Or use `--skip-preflight-checks` for emergencies"]
        if code in ("QUALITY_APPROVAL_REQUIRED", "APPROVAL_REQUIRED"):
            return ["Obtain required approval via Versioner UI", f"Then retry this {noun}"]
        return [
            "Resolve the issue described above",
            f"Then retry this {noun}",
            "Or use `--skip-preflight-checks` for emergencies",
        ]
    return []


def build_rejection_summary(rejection: Rejected, action: str = "Deployment") -> str:
    """Markdown job summary for a policy rejection."""
    headings = {
        409: f"### ⚠️ {action} Conflict\n\n",
        423: f"### 🔒 {action} Blocked by Schedule\n\n",
        428: f"### ❌ {action} Precondition Failed\n\n",
    }
    parts = [f"## ❌ Versioner {action} Rejected\n\n", headings.get(rejection.status_code, "")]
    parts.append(f"- **Error Code:** `{rejection.error_code}`\n")
    if rejection.rule_name:
        parts.append(f"- **Rule:** {rejection.rule_name}\n")
    parts.append(f"- **Message:** {rejection.message}\n")
    if rejection.retry_after:
        parts.append(f"- **Retry After:** `{rejection.retry_after}`\n")
    parts.append("\n**Action Required:**\n")
    parts.extend(f"- {line}\n" for line in _rejection_guidance(rejection, action))
    if rejection.details:
        parts.append("\n**Details:**\n```json\n")
        parts.append(json.dumps(rejection.details, indent=2, default=str))
        parts.append("\n```\n")
    return "".join(parts)


def write_error_annotation(rejection: Rejected, action: str = "Deployment") -> None:
    """Annotate the workflow run and job summary with a policy rejection."""
    if not in_github_actions():
        return
    title = format_title(rejection.status_code, rejection.error_code, rejection.rule_name, action)
    _emit_error_command(title, rejection.message)
    _append_summary(build_rejection_summary(rejection, action))


def write_generic_error_annotation(action: str, error_type: str, message: str) -> None:
    """Annotate the workflow run with an API or network failure."""
    if not in_github_actions() or not os.getenv("GITHUB_STEP_SUMMARY"):
        return

    _emit_error_command(f"Versioner {action} Failed", message)

    causes = _GENERIC_CAUSES.get(error_type, ["Check error message above for details"])
    lines = [
        f"## ❌ Versioner {action} Failed\n\n",
        f"### {error_type}\n\n",
        f"**Error:** {message}\n\n",
        "**Possible Causes:**\n",
        *(f"- {cause}\n" for cause in causes),
        "\n**Action Required:**\n",
        "- Verify your `VERSIONER_API_KEY` is set correctly\n",
        "- Check network connectivity to Versioner API\n",
        "- Review error message for specific guidance\n",
        "- Contact support if issue persists\n",
    ]
    _append_summary("".join(lines))


def write_success_summary(
    action: str,
    *,
    status: str,
    version: str,
    environment: str = "",
    scm_sha: str = "",
    ui_url: str = "",
    resource_id: str = "",
) -> None:
    """Append a summary of a recorded event to the job summary."""
    if not in_github_actions():
        return

    lines = ["## 🚀 Versioner Summary\n\n", f"- **Action:** {action}\n"]
    if environment:
        lines.append(f"- **Environment:** {environment}\n")
    lines.append(f"- **Status:** {format_status(status)}\n")
    lines.append(f"- **Version:** `{version}`\n")
    if scm_sha:
        lines.append(f"- **Git SHA:** `{scm_sha}`\n")

    view_paths = {
        "Deployment": "manage/deployments",
        "Build": "manage/versions",
    }
    view_path = view_paths.get(action)
    if ui_url and resource_id and view_path:
        lines.append(f"\n[View in Versioner →]({ui_url.rstrip('/')}/{view_path}?view={resource_id})\n")

    _append_summary("".join(lines))
