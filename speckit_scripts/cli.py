"""CLI commands for the Speck-It spec-driven development scripts."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional

import typer

from .agent_context import AGENT_REGISTRY
from .errors import SpeckitError
from .models import AgentSyncSummary
from .repository import resolve_project_root
from .speckit_logging import setup_logging, setup_logging_from_env
from .workspace import Workspace

APP_HELP = "Spec-driven development helpers: feature branches, plans and agent context files."

app = typer.Typer(help=APP_HELP, no_args_is_help=True)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr."),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write JSON logs to this file."),
) -> None:
    """Configure logging before any command runs."""
    if verbose or log_file:
        setup_logging("DEBUG" if verbose else "INFO", log_file)
    else:
        setup_logging_from_env()


def _workspace(root: Optional[Path]) -> Workspace:
    return Workspace(resolve_project_root(root))


def _emit_json(payload: Dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False))


def _fail(error: Exception) -> NoReturn:
    typer.echo(f"ERROR: {error}", err=True)
    raise typer.Exit(code=1) from error


ROOT_OPTION = typer.Option(None, "--root", help="Project root (defaults to the enclosing repository).")


@app.command("create-feature")
def create_feature(
    description: str = typer.Argument(..., help="Feature description."),
    short_name: Optional[str] = typer.Option(None, "--short-name", help="Custom short name for the branch."),
    number: Optional[int] = typer.Option(None, "--number", help="Branch number to use instead of the next free one."),
    as_json: bool = typer.Option(False, "--json", help="Output JSON."),
    root: Optional[Path] = ROOT_OPTION,
) -> None:
    """Create a numbered feature branch and its spec.md scaffold."""
    try:
        created = _workspace(root).create_feature(description, short_name=short_name, number=number)
    except (SpeckitError, ValueError, OSError) as error:
        _fail(error)

    if as_json:
        _emit_json(created.to_dict())
        return
    typer.echo(f"BRANCH_NAME: {created.branch_name}")
    typer.echo(f"SPEC_FILE: {created.spec_file}")
    typer.echo(f"FEATURE_NUM: {created.feature_num}")
    if created.truncated_from:
        typer.echo(f"Warning: branch name truncated from {created.truncated_from}")


@app.command("setup-plan")
def setup_plan(
    as_json: bool = typer.Option(False, "--json", help="Output JSON."),
    root: Optional[Path] = ROOT_OPTION,
) -> None:
    """Create plan.md for the current feature from the plan template."""
    try:
        setup = _workspace(root).setup_plan()
    except (SpeckitError, OSError) as error:
        _fail(error)

    if as_json:
        _emit_json(setup.to_dict())
        return
    for key, value in setup.to_dict().items():
        typer.echo(f"{key}: {value}")


@app.command("check-prerequisites")
def check_prerequisites(
    require_tasks: bool = typer.Option(False, "--require-tasks", help="Require tasks.md to exist."),
    include_tasks: bool = typer.Option(False, "--include-tasks", help="Include tasks.md in AVAILABLE_DOCS."),
    paths_only: bool = typer.Option(False, "--paths-only", help="Only output path variables, no validation."),
    as_json: bool = typer.Option(False, "--json", help="Output JSON."),
    root: Optional[Path] = ROOT_OPTION,
) -> None:
    """Check that the current feature has the documents the next step needs."""
    try:
        report = _workspace(root).check_prerequisites(
            require_tasks=require_tasks,
            include_tasks=include_tasks,
            paths_only=paths_only,
        )
    except (SpeckitError, OSError) as error:
        _fail(error)

    if as_json:
        _emit_json(report.to_dict())
        return
    if paths_only:
        for key, value in report.to_dict().items():
            typer.echo(f"{key}: {value}")
        return

    typer.echo(f"FEATURE_DIR:{report.paths.feature_dir}")
    typer.echo("AVAILABLE_DOCS:")
    for doc in ("research.md", "data-model.md", "contracts/", "quickstart.md"):
        mark = "✓" if doc in report.available_docs else "✗"
        typer.echo(f"  {mark} {doc}")
    if include_tasks:
        mark = "✓" if "tasks.md" in report.available_docs else "✗"
        typer.echo(f"  {mark} tasks.md")


def _print_summary(summary: AgentSyncSummary) -> None:
    typer.echo(f"Feature: {summary.branch}")
    fields = summary.fields
    changes = []
    if fields.language:
        changes.append(f"Added language: {fields.language}")
    if fields.dependencies:
        changes.append(f"Added framework: {fields.dependencies}")
    if fields.storage:
        changes.append(f"Added database: {fields.storage}")
    if changes:
        typer.echo("Changes made:")
        for change in changes:
            typer.echo(f"  - {change}")

    for result in summary.results:
        if result.success:
            typer.echo(f"{result.action.capitalize()} {result.target.name} context file: {result.path}")
        else:
            typer.echo(f"Failed to update {result.target.name} context file {result.path}: {result.error}", err=True)


@app.command("update-agent-context")
def update_agent_context(
    agent: Optional[str] = typer.Argument(None, help="Agent key; defaults to every existing agent file."),
    as_json: bool = typer.Option(False, "--json", help="Output JSON."),
    root: Optional[Path] = ROOT_OPTION,
) -> None:
    """Refresh agent context files from the current feature's plan.md."""
    try:
        summary = _workspace(root).update_agent_context(agent)
    except (SpeckitError, UnicodeError, OSError) as error:
        _fail(error)

    if as_json:
        _emit_json(summary.to_dict())
    else:
        _print_summary(summary)
    if not summary.success:
        raise typer.Exit(code=1)


@app.command("list-agents")
def list_agents() -> None:
    """List the supported agent keys and the files they map to."""
    for target in AGENT_REGISTRY.values():
        typer.echo(f"{target.key:<14} {target.name:<24} {target.relative_path}")


if __name__ == "__main__":
    app()
