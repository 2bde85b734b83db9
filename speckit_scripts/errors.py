"""Exceptions raised by the Speck-It scripts."""

from __future__ import annotations

from typing import Iterable


class SpeckitError(RuntimeError):
    """Base class for all Speck-It script failures."""


class PreconditionError(SpeckitError):
    """A required input is missing; raised before anything is written."""


class FeatureBranchError(PreconditionError):
    """The current branch does not look like a feature branch."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(
            f"Not on a feature branch. Current branch: {branch}. "
            "Feature branches should be named like: 001-feature-name"
        )


class PrerequisiteError(PreconditionError):
    """A workflow document required by the next step does not exist."""

    def __init__(self, message: str, *, hint: str | None = None):
        self.hint = hint
        super().__init__(message if not hint else f"{message} {hint}")


class TemplateMissingError(PreconditionError):
    """A template needed to create a new file is not installed."""

    def __init__(self, template_path):
        self.template_path = template_path
        super().__init__(f"Template not found at {template_path}")


class UnknownAgentError(SpeckitError, ValueError):
    """The requested agent key is not in the registry."""

    def __init__(self, agent_key: str, valid_keys: Iterable[str]):
        self.agent_key = agent_key
        self.valid_keys = tuple(valid_keys)
        super().__init__(
            f"Unknown agent type '{agent_key}'. Expected: {', '.join(self.valid_keys)}"
        )


class GitError(SpeckitError):
    """Raised when a git command fails or the repository cannot be used."""
