"""Shared fixtures for versioner CLI tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

# Marker variables that would make the detector think it runs inside CI.
CI_MARKER_VARIABLES = (
    "GITHUB_ACTIONS",
    "GITHUB_STEP_SUMMARY",
    "GITLAB_CI",
    "JENKINS_URL",
    "CIRCLECI",
    "BITBUCKET_BUILD_NUMBER",
    "TF_BUILD",
    "TRAVIS",
    "RD_JOB_ID",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Run every test outside CI, without VERSIONER_* settings or config files."""
    for name in CI_MARKER_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("VERSIONER_"):
            monkeypatch.delenv(name, raising=False)

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir
