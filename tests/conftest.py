"""Shared fixtures for the Speck-It script tests."""

import logging
import shutil
import subprocess
from pathlib import Path

import pytest

from speckit_scripts import repository
from speckit_scripts.speckit_logging import observability_hooks, performance_monitor

AGENT_TEMPLATE = """# [PROJECT NAME] Development Guidelines

Auto-generated from all feature plans. Last updated: [DATE]

## Active Technologies

[EXTRACTED FROM ALL PLAN.MD FILES]

## Project Structure

```text
[ACTUAL STRUCTURE FROM PLANS]
```

## Commands

[ONLY COMMANDS FOR ACTIVE TECHNOLOGIES]

## Code Style

[LANGUAGE-SPECIFIC, ONLY FOR LANGUAGES IN USE]

## Recent Changes

[LAST 3 FEATURES AND WHAT THEY ADDED]

<!-- MANUAL ADDITIONS START -->
<!-- MANUAL ADDITIONS END -->
"""

SPEC_TEMPLATE = "# Feature Specification: [FEATURE NAME]\n"
PLAN_TEMPLATE = """# Implementation Plan: [FEATURE]

## Technical Context

**Language/Version**: [NEEDS CLARIFICATION]
**Primary Dependencies**: [NEEDS CLARIFICATION]
**Storage**: N/A
**Project Type**: single
"""


def write_plan(feature_dir: Path, **fields: str) -> Path:
    """Write a plan.md carrying the given technical-context fields."""
    labels = {
        "language": "Language/Version",
        "dependencies": "Primary Dependencies",
        "storage": "Storage",
        "project_type": "Project Type",
    }
    lines = ["# Implementation Plan", "", "## Technical Context", ""]
    for name, value in fields.items():
        lines.append(f"**{labels[name]}**: {value}")
    feature_dir.mkdir(parents=True, exist_ok=True)
    plan = feature_dir / "plan.md"
    plan.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return plan


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate tests from the caller's feature and project root settings."""
    monkeypatch.delenv(repository.FEATURE_ENV, raising=False)
    monkeypatch.delenv(repository.PROJECT_ROOT_ENV, raising=False)
    monkeypatch.delenv("SPECKIT_LOG_LEVEL", raising=False)
    monkeypatch.delenv("SPECKIT_LOG_FILE", raising=False)
    yield
    observability_hooks.clear_hooks()
    performance_monitor.clear()
    speckit_logger = logging.getLogger("speckit")
    for handler in speckit_logger.handlers:
        handler.close()
    speckit_logger.handlers.clear()
    speckit_logger.setLevel(logging.NOTSET)


@pytest.fixture
def no_git(monkeypatch):
    """Behave as if git were not installed."""
    monkeypatch.setattr(repository.GitRepository, "available", staticmethod(lambda: False))


@pytest.fixture
def project(tmp_path, no_git):
    """A git-less project with the Spec Kit templates installed."""
    templates = tmp_path / ".specify" / "templates"
    templates.mkdir(parents=True)
    (templates / "agent-file-template.md").write_text(AGENT_TEMPLATE, encoding="utf-8")
    (templates / "spec-template.md").write_text(SPEC_TEMPLATE, encoding="utf-8")
    (templates / "plan-template.md").write_text(PLAN_TEMPLATE, encoding="utf-8")
    return tmp_path.resolve()


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=True)
    return result.stdout.strip()


@pytest.fixture
def git_project(tmp_path):
    """A real git repository with one commit on ``main`` and the templates installed."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    root = tmp_path / "repo"
    root.mkdir()
    _git(root, "init")
    _git(root, "symbolic-ref", "HEAD", "refs/heads/main")
    _git(root, "config", "user.email", "dev@example.com")
    _git(root, "config", "user.name", "Speck-It Tests")
    _git(root, "config", "commit.gpgsign", "false")

    templates = root / ".specify" / "templates"
    templates.mkdir(parents=True)
    (templates / "agent-file-template.md").write_text(AGENT_TEMPLATE, encoding="utf-8")
    (templates / "spec-template.md").write_text(SPEC_TEMPLATE, encoding="utf-8")
    (templates / "plan-template.md").write_text(PLAN_TEMPLATE, encoding="utf-8")
    _git(root, "add", ".")
    _git(root, "commit", "-m", "Add Spec Kit templates")
    return root.resolve()


@pytest.fixture
def git():
    """Run git in a directory and return its stdout."""
    return _git


@pytest.fixture
def plan_writer():
    return write_plan


@pytest.fixture
def agent_template():
    return AGENT_TEMPLATE
