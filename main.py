"""MCP server exposing the Speck-It workflow scripts as tools."""

from __future__ import annotations

from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from speckit_scripts.agent_context import AGENT_REGISTRY
from speckit_scripts.errors import PreconditionError
from speckit_scripts.repository import resolve_project_root
from speckit_scripts.speckit_logging import setup_logging_from_env
from speckit_scripts.workflow import WorkflowManager

mcp = FastMCP("speck-it-scripts")


def _manager(root: Optional[str]) -> WorkflowManager:
    return WorkflowManager(resolve_project_root(root))


def _unresolved_root(error: PreconditionError) -> Dict[str, Any]:
    return {
        "error": str(error),
        "suggestion": "Provide the 'root' argument or set the SPECKIT_PROJECT_ROOT environment variable",
        "next_suggested_step": None,
        "message": f"Error: {error}",
    }


@mcp.tool()
def create_feature(
    description: str,
    short_name: Optional[str] = None,
    number: Optional[int] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 1: Create a numbered feature branch (e.g. 003-user-auth) and its specs/<branch>/spec.md.
    spec.md is copied from .specify/templates/spec-template.md when installed."""

    try:
        manager = _manager(root)
    except PreconditionError as e:
        return _unresolved_root(e)
    return manager.create_feature(description, short_name=short_name, number=number)


@mcp.tool()
def setup_plan(root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 2: Create plan.md for the current feature branch from the plan template.
    Prerequisites: must be on a feature branch created via create_feature."""

    try:
        manager = _manager(root)
    except PreconditionError as e:
        return _unresolved_root(e)
    return manager.setup_plan()


@mcp.tool()
def update_agent_context(agent_type: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 3: Merge the plan's language, dependencies and storage into AI agent context files.
    Without agent_type every existing agent file is updated (CLAUDE.md is created when none exist).
    Prerequisites: plan.md must exist (created via setup_plan)."""

    try:
        manager = _manager(root)
    except PreconditionError as e:
        return _unresolved_root(e)
    return manager.update_agent_context(agent_type)


@mcp.tool()
def check_prerequisites(
    require_tasks: bool = False,
    include_tasks: bool = False,
    paths_only: bool = False,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Validate that the current feature has its plan (and optionally tasks) and list available design docs."""

    try:
        manager = _manager(root)
    except PreconditionError as e:
        return _unresolved_root(e)
    return manager.check_prerequisites(
        require_tasks=require_tasks,
        include_tasks=include_tasks,
        paths_only=paths_only,
    )


@mcp.tool()
def list_agents() -> Dict[str, Any]:
    """List the agent keys accepted by update_agent_context and the files they write."""

    return WorkflowManager.list_agents()


@mcp.resource("speck-it://agents")
def resource_agents() -> str:
    """Resource view of the agent registry."""

    lines = ["Speck-It Agent Context Files"]
    for target in AGENT_REGISTRY.values():
        lines.append(f"- {target.key}: {target.name} -> {target.relative_path}")
    return "\n".join(lines)


if __name__ == "__main__":
    setup_logging_from_env()
    mcp.run(transport="stdio")
