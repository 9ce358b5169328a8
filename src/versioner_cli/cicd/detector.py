"""CI/CD system detection from environment variables.

Provides:
- System enum of supported CI/CD systems
- DetectedValues frozen dataclass holding the inferred event fields
- detect() which checks marker variables in a fixed priority order
- extra_metadata() which collects ``vi_``-prefixed per-system metadata
- normalize_git_url() for systems that expose a raw git remote URL
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .environment import EnvironmentReader, ProcessEnvironment

logger = logging.getLogger(__name__)

SHORT_SHA_LENGTH = 8


class System(str, Enum):
    """CI/CD systems the detector knows about."""

    GITHUB = "github"
    GITLAB = "gitlab"
    JENKINS = "jenkins"
    CIRCLECI = "circleci"
    BITBUCKET = "bitbucket"
    AZURE_DEVOPS = "azure-devops"
    TRAVIS = "travis"
    RUNDECK = "rundeck"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DetectedValues:
    """Event fields inferred from the CI/CD environment.

    Fields that could not be inferred are empty strings. Instances are built
    once per invocation by :func:`detect` and never mutated.
    """

    system: System = System.UNKNOWN
    product: str = ""
    version: str = ""
    scm_repository: str = ""
    scm_sha: str = ""
    scm_branch: str = ""
    build_number: str = ""
    build_url: str = ""
    invoke_id: str = ""
    built_by: str = ""
    built_by_email: str = ""
    built_by_name: str = ""
    env: EnvironmentReader | None = field(default=None, repr=False, compare=False)

    def extra_metadata(self) -> dict[str, str]:
        """Return the ``vi_`` metadata bag for the detected system."""
        return extra_metadata(self)


# ---------------------------------------------------------------------------
# System identification
# ---------------------------------------------------------------------------

# Order matters: the first matching marker wins.
_SYSTEM_MARKERS: tuple[tuple[System, Callable[[EnvironmentReader], bool]], ...] = (
    (System.GITHUB, lambda env: env.get("GITHUB_ACTIONS") == "true"),
    (System.GITLAB, lambda env: env.get("GITLAB_CI") == "true"),
    (System.JENKINS, lambda env: env.get("JENKINS_URL") != ""),
    (System.CIRCLECI, lambda env: env.get("CIRCLECI") == "true"),
    (System.BITBUCKET, lambda env: env.get("BITBUCKET_BUILD_NUMBER") != ""),
    (System.AZURE_DEVOPS, lambda env: env.get("TF_BUILD") == "True"),
    (System.TRAVIS, lambda env: env.get("TRAVIS") == "true"),
    (System.RUNDECK, lambda env: env.get("RD_JOB_ID") != ""),
)


def detect_system(env: EnvironmentReader) -> System:
    """Return the first system whose marker variable is set."""
    for system, matches in _SYSTEM_MARKERS:
        if matches(env):
            return system
    return System.UNKNOWN


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_git_url(url: str) -> str:
    """Turn a git remote URL into a ``host/owner/repo`` identifier.

    Strips ``https://``, ``http://`` and ``git@`` prefixes and a trailing
    ``.git``, then converts the SSH ``host:owner/repo`` separator.
    """
    for prefix in ("https://", "http://", "git@"):
        if url.startswith(prefix):
            url = url[len(prefix):]
    if url.endswith(".git"):
        url = url[: -len(".git")]
    return url.replace(":", "/", 1)


def _last_segment(repository: str) -> str:
    if not repository:
        return ""
    segment = repository.rstrip("/").split("/")[-1]
    if segment.endswith(".git"):
        segment = segment[: -len(".git")]
    return segment


def _short_sha(sha: str) -> str:
    return sha[:SHORT_SHA_LENGTH]


def _format_url(template: str, **parts: str) -> str:
    """Fill *template* only when every component is present."""
    if not all(parts.values()):
        return ""
    return template.format(**parts)


def _first_set(env: EnvironmentReader, *names: str) -> str:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return ""


# ---------------------------------------------------------------------------
# Per-system extraction
# ---------------------------------------------------------------------------


def _detect_github(env: EnvironmentReader) -> dict[str, str]:
    repository = env.get("GITHUB_REPOSITORY")
    sha = env.get("GITHUB_SHA")
    run_id = env.get("GITHUB_RUN_ID")
    return {
        "scm_repository": repository,
        "scm_sha": sha,
        "scm_branch": env.get("GITHUB_REF_NAME"),
        "invoke_id": run_id,
        "build_number": env.get("GITHUB_RUN_NUMBER"),
        "built_by": env.get("GITHUB_ACTOR"),
        "build_url": _format_url(
            "{server}/{repo}/actions/runs/{run_id}",
            server=env.get("GITHUB_SERVER_URL"),
            repo=repository,
            run_id=run_id,
        ),
        "product": _last_segment(repository),
        "version": _short_sha(sha),
    }


def _detect_gitlab(env: EnvironmentReader) -> dict[str, str]:
    repository = env.get("CI_PROJECT_PATH")
    sha = env.get("CI_COMMIT_SHA")
    return {
        "scm_repository": repository,
        "scm_sha": sha,
        "scm_branch": env.get("CI_COMMIT_REF_NAME"),
        "invoke_id": env.get("CI_PIPELINE_ID"),
        "build_number": env.get("CI_PIPELINE_IID"),
        "build_url": env.get("CI_PIPELINE_URL"),
        "built_by": env.get("GITLAB_USER_LOGIN"),
        "built_by_email": env.get("GITLAB_USER_EMAIL"),
        "built_by_name": env.get("GITLAB_USER_NAME"),
        "product": _last_segment(repository),
        "version": _short_sha(sha),
    }


def _detect_jenkins(env: EnvironmentReader) -> dict[str, str]:
    git_url = env.get("GIT_URL")
    repository = normalize_git_url(git_url) if git_url else ""
    build_number = env.get("BUILD_NUMBER")
    return {
        "scm_repository": repository,
        "scm_sha": env.get("GIT_COMMIT"),
        "scm_branch": env.get("GIT_BRANCH"),
        "build_number": build_number,
        "invoke_id": env.get("BUILD_ID"),
        "build_url": env.get("BUILD_URL"),
        "built_by": env.get("BUILD_USER"),
        "built_by_email": env.get("BUILD_USER_EMAIL"),
        "product": _last_segment(repository),
        "version": build_number,
    }


def _detect_circleci(env: EnvironmentReader) -> dict[str, str]:
    username = env.get("CIRCLE_PROJECT_USERNAME")
    reponame = env.get("CIRCLE_PROJECT_REPONAME")
    sha = env.get("CIRCLE_SHA1")
    return {
        "scm_repository": f"{username}/{reponame}" if username and reponame else "",
        "scm_sha": sha,
        "scm_branch": _first_set(env, "CIRCLE_BRANCH", "CIRCLE_TAG"),
        "build_number": env.get("CIRCLE_BUILD_NUM"),
        "invoke_id": env.get("CIRCLE_WORKFLOW_ID"),
        "build_url": env.get("CIRCLE_BUILD_URL"),
        "built_by": env.get("CIRCLE_USERNAME"),
        "product": reponame,
        "version": _short_sha(sha),
    }


def _detect_bitbucket(env: EnvironmentReader) -> dict[str, str]:
    repository = env.get("BITBUCKET_REPO_FULL_NAME")
    sha = env.get("BITBUCKET_COMMIT")
    build_number = env.get("BITBUCKET_BUILD_NUMBER")
    return {
        "scm_repository": repository,
        "scm_sha": sha,
        "scm_branch": _first_set(env, "BITBUCKET_BRANCH", "BITBUCKET_TAG"),
        "build_number": build_number,
        "invoke_id": env.get("BITBUCKET_PIPELINE_UUID"),
        "build_url": _format_url(
            "https://bitbucket.org/{repo}/pipelines/results/{build_number}",
            repo=repository,
            build_number=build_number,
        ),
        "product": env.get("BITBUCKET_REPO_SLUG") or _last_segment(repository),
        "version": _short_sha(sha),
    }


def _detect_azure(env: EnvironmentReader) -> dict[str, str]:
    repository = env.get("BUILD_REPOSITORY_NAME")
    build_number = env.get("BUILD_BUILDNUMBER")
    return {
        "scm_repository": repository,
        "scm_sha": env.get("BUILD_SOURCEVERSION"),
        "scm_branch": env.get("BUILD_SOURCEBRANCHNAME"),
        "build_number": build_number,
        "invoke_id": env.get("BUILD_BUILDID"),
        "build_url": env.get("BUILD_BUILDURI"),
        "built_by": env.get("BUILD_REQUESTEDFOR"),
        "built_by_email": env.get("BUILD_REQUESTEDFOREMAIL"),
        "product": _last_segment(repository),
        "version": build_number,
    }


def _detect_travis(env: EnvironmentReader) -> dict[str, str]:
    repository = env.get("TRAVIS_REPO_SLUG")
    sha = env.get("TRAVIS_COMMIT")
    return {
        "scm_repository": repository,
        "scm_sha": sha,
        "scm_branch": _first_set(env, "TRAVIS_BRANCH", "TRAVIS_TAG"),
        "build_number": env.get("TRAVIS_BUILD_NUMBER"),
        "invoke_id": env.get("TRAVIS_BUILD_ID"),
        "build_url": env.get("TRAVIS_BUILD_WEB_URL"),
        "product": _last_segment(repository),
        "version": _short_sha(sha),
    }


def _detect_rundeck(env: EnvironmentReader) -> dict[str, str]:
    # Rundeck has no SCM integration; the job and execution identify the run.
    exec_id = env.get("RD_JOB_EXECID")
    return {
        "build_number": exec_id,
        "invoke_id": exec_id,
        "built_by": _first_set(env, "RD_JOB_USERNAME", "RD_JOB_USER_NAME"),
        "build_url": _format_url(
            "{server}/project/{project}/execution/show/{exec_id}",
            server=env.get("RD_JOB_SERVERURL"),
            project=env.get("RD_JOB_PROJECT"),
            exec_id=exec_id,
        ),
        "product": env.get("RD_JOB_NAME"),
        "version": exec_id,
    }


_EXTRACTORS: dict[System, Callable[[EnvironmentReader], dict[str, str]]] = {
    System.GITHUB: _detect_github,
    System.GITLAB: _detect_gitlab,
    System.JENKINS: _detect_jenkins,
    System.CIRCLECI: _detect_circleci,
    System.BITBUCKET: _detect_bitbucket,
    System.AZURE_DEVOPS: _detect_azure,
    System.TRAVIS: _detect_travis,
    System.RUNDECK: _detect_rundeck,
}


def detect(env: EnvironmentReader | None = None) -> DetectedValues:
    """Identify the CI/CD system and extract its event fields.

    Args:
        env: Environment to read. Defaults to the live process environment.

    Returns:
        DetectedValues for the first matching system, or an empty
        ``System.UNKNOWN`` result when no marker is present.
    """
    if env is None:
        env = ProcessEnvironment()

    system = detect_system(env)
    extractor = _EXTRACTORS.get(system)
    if extractor is None:
        return DetectedValues(system=System.UNKNOWN, env=env)

    fields = extractor(env)
    logger.debug("Detected CI/CD system %s", system)
    return DetectedValues(system=system, env=env, **fields)


# ---------------------------------------------------------------------------
# Extra metadata
# ---------------------------------------------------------------------------

# Metadata key -> environment variable, per system.
_METADATA_VARIABLES: dict[System, tuple[tuple[str, str], ...]] = {
    System.GITHUB: (
        ("vi_gh_workflow", "GITHUB_WORKFLOW"),
        ("vi_gh_job", "GITHUB_JOB"),
        ("vi_gh_run_attempt", "GITHUB_RUN_ATTEMPT"),
        ("vi_gh_event_name", "GITHUB_EVENT_NAME"),
        ("vi_gh_ref", "GITHUB_REF"),
        ("vi_gh_head_ref", "GITHUB_HEAD_REF"),
        ("vi_gh_base_ref", "GITHUB_BASE_REF"),
    ),
    System.GITLAB: (
        ("vi_gl_pipeline_id", "CI_PIPELINE_ID"),
        ("vi_gl_pipeline_url", "CI_PIPELINE_URL"),
        ("vi_gl_job_id", "CI_JOB_ID"),
        ("vi_gl_job_name", "CI_JOB_NAME"),
        ("vi_gl_job_url", "CI_JOB_URL"),
        ("vi_gl_pipeline_source", "CI_PIPELINE_SOURCE"),
    ),
    System.JENKINS: (
        ("vi_jenkins_job_name", "JOB_NAME"),
        ("vi_jenkins_build_url", "BUILD_URL"),
        ("vi_jenkins_node_name", "NODE_NAME"),
        ("vi_jenkins_executor_number", "EXECUTOR_NUMBER"),
    ),
    System.CIRCLECI: (
        ("vi_circle_workflow_id", "CIRCLE_WORKFLOW_ID"),
        ("vi_circle_workflow_job_id", "CIRCLE_WORKFLOW_JOB_ID"),
        ("vi_circle_job_name", "CIRCLE_JOB"),
        ("vi_circle_node_index", "CIRCLE_NODE_INDEX"),
    ),
    System.BITBUCKET: (
        ("vi_bb_pipeline_uuid", "BITBUCKET_PIPELINE_UUID"),
        ("vi_bb_step_uuid", "BITBUCKET_STEP_UUID"),
        ("vi_bb_workspace", "BITBUCKET_WORKSPACE"),
        ("vi_bb_repo_slug", "BITBUCKET_REPO_SLUG"),
    ),
    System.AZURE_DEVOPS: (
        ("vi_azure_build_id", "BUILD_BUILDID"),
        ("vi_azure_definition_name", "BUILD_DEFINITIONNAME"),
        ("vi_azure_agent_name", "AGENT_NAME"),
        ("vi_azure_team_project", "SYSTEM_TEAMPROJECT"),
    ),
    System.TRAVIS: (
        ("vi_travis_build_id", "TRAVIS_BUILD_ID"),
        ("vi_travis_job_id", "TRAVIS_JOB_ID"),
        ("vi_travis_job_number", "TRAVIS_JOB_NUMBER"),
        ("vi_travis_event_type", "TRAVIS_EVENT_TYPE"),
    ),
    System.RUNDECK: (
        ("vi_rd_job_id", "RD_JOB_ID"),
        ("vi_rd_job_execid", "RD_JOB_EXECID"),
        ("vi_rd_job_serverurl", "RD_JOB_SERVERURL"),
        ("vi_rd_job_project", "RD_JOB_PROJECT"),
        ("vi_rd_job_name", "RD_JOB_NAME"),
        ("vi_rd_job_group", "RD_JOB_GROUP"),
        ("vi_rd_job_url", "RD_JOB_URL"),
    ),
}


def extra_metadata(detected: DetectedValues) -> dict[str, str]:
    """Collect system-specific metadata for the detected system.

    Only variables with a non-empty value are included. An unknown system
    yields an empty dictionary.
    """
    env = detected.env if detected.env is not None else ProcessEnvironment()
    metadata: dict[str, str] = {}
    for key, variable in _METADATA_VARIABLES.get(detected.system, ()):
        value = env.get(variable)
        if value:
            metadata[key] = value
    return metadata
