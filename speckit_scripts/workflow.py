"""Workflow management for the Speck-It scripts.

Wraps :class:`~speckit_scripts.workspace.Workspace` with the dictionary
responses used by the MCP server: every result names the suggested next
step, and failures come back as ``error``/``suggestion`` payloads instead of
exceptions.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .agent_context import AGENT_REGISTRY
from .errors import (
    FeatureBranchError,
    GitError,
    PrerequisiteError,
    SpeckitError,
    TemplateMissingError,
    UnknownAgentError,
)
from .speckit_logging import log_error_with_context, log_workflow_step
from .workspace import Workspace

logger = logging.getLogger("speckit.workflow")

# Suggested follow-up for each script, in workflow order.
NEXT_STEPS = {
    "create_feature": "setup_plan",
    "setup_plan": "update_agent_context",
    "update_agent_context": "check_prerequisites",
    "check_prerequisites": "implement",
}


def _error_response(operation: str, error: Exception, **extra: Any) -> Dict[str, Any]:
    if isinstance(error, FeatureBranchError):
        suggestion = "Switch to a feature branch (e.g. 001-feature-name) or run create_feature first"
        next_step = "create_feature"
    elif isinstance(error, PrerequisiteError):
        suggestion = error.hint or "Create the missing document before continuing"
        message = str(error)
        if "tasks.md" in message:
            next_step = "check_prerequisites"
        elif "plan.md" in message:
            next_step = "setup_plan"
        else:
            next_step = "create_feature"
    elif isinstance(error, TemplateMissingError):
        suggestion = "Install the Spec Kit templates under .specify/templates/"
        next_step = operation
    elif isinstance(error, UnknownAgentError):
        suggestion = f"Use one of: {', '.join(error.valid_keys)}"
        next_step = "list_agents"
    elif isinstance(error, GitError):
        suggestion = "Check that git is installed and the repository is not in a conflicted state"
        next_step = operation
    else:
        suggestion = "Check the arguments and that the project root is writable"
        next_step = operation

    return {
        "error": str(error),
        "suggestion": suggestion,
        "next_suggested_step": next_step,
        "message": f"Error: {error}",
        **extra,
    }


class WorkflowManager:
    """Runs the Speck-It scripts for one project root."""

    def __init__(self, root: Path | str | None = None):
        self.workspace = Workspace(root)

    def create_feature(
        self,
        description: str,
        short_name: Optional[str] = None,
        number: Optional[int] = None,
    ) -> Dict[str, Any]:
        try:
            created = self.workspace.create_feature(description, short_name=short_name, number=number)
        except (SpeckitError, ValueError, OSError) as e:
            return _error_response("create_feature", e)

        log_workflow_step("create_feature", feature_id=created.branch_name)
        return {
            **created.to_dict(),
            "branch_created": created.branch_created,
            "next_suggested_step": NEXT_STEPS["create_feature"],
            "workflow_tip": "Next: Fill in spec.md, then run setup_plan to create the implementation plan",
            "message": f"Feature {created.branch_name} created with spec at {created.spec_file}",
        }

    def setup_plan(self) -> Dict[str, Any]:
        try:
            setup = self.workspace.setup_plan()
        except (SpeckitError, OSError) as e:
            return _error_response("setup_plan", e)

        log_workflow_step("setup_plan", feature_id=setup.paths.current_branch)
        return {
            **setup.to_dict(),
            "template_used": setup.template_used,
            "next_suggested_step": NEXT_STEPS["setup_plan"],
            "workflow_tip": "Next: Complete the Technical Context in plan.md, then run update_agent_context",
            "message": f"Implementation plan ready at {setup.paths.impl_plan}",
        }

    def check_prerequisites(
        self,
        require_tasks: bool = False,
        include_tasks: bool = False,
        paths_only: bool = False,
    ) -> Dict[str, Any]:
        try:
            report = self.workspace.check_prerequisites(
                require_tasks=require_tasks,
                include_tasks=include_tasks,
                paths_only=paths_only,
            )
        except (SpeckitError, OSError) as e:
            return _error_response("check_prerequisites", e)

        response = report.to_dict()
        if not paths_only:
            response["next_suggested_step"] = NEXT_STEPS["check_prerequisites"]
            response["message"] = (
                f"Available docs: {', '.join(report.available_docs)}"
                if report.available_docs
                else "No optional design documents found"
            )
        return response

    def update_agent_context(self, agent_type: Optional[str] = None) -> Dict[str, Any]:
        try:
            summary = self.workspace.update_agent_context(agent_type)
        except (SpeckitError, UnicodeError, OSError) as e:
            logger.error(f"Agent context update failed: {e}")
            log_error_with_context(e, {"operation": "update_agent_context", "agent": agent_type})
            return _error_response("update_agent_context", e)

        log_workflow_step("update_agent_context", feature_id=summary.branch, success=summary.success)
        response = summary.to_dict()
        if summary.success:
            response["next_suggested_step"] = NEXT_STEPS["update_agent_context"]
            response["message"] = f"Updated {len(summary.results)} agent context file(s)"
        else:
            failed = ", ".join(result.target.key for result in summary.failures)
            response["next_suggested_step"] = "update_agent_context"
            response["message"] = f"Agent context update failed for: {failed}"
        return response

    @staticmethod
    def list_agents() -> Dict[str, Any]:
        agents = [target.to_dict() for target in AGENT_REGISTRY.values()]
        return {"agents": agents, "count": len(agents)}
