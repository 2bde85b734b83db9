"""Workspace management for the Speck-It workflow scripts.

This module creates feature branches and their spec directories, prepares
implementation plans, checks that the documents a step depends on exist,
and hands off to :mod:`speckit_scripts.agent_context` to refresh agent files.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import List, Optional

from .agent_context import AgentContextUpdater, Timestamp
from .errors import GitError, PrerequisiteError
from .models import AgentSyncSummary, CreatedFeature, FeaturePaths, PlanSetup, PrerequisiteReport
from .repository import (
    SPECS_DIRNAME,
    GitRepository,
    check_feature_branch,
    feature_number,
    find_repo_root,
    get_feature_paths,
    template_path,
)
from .speckit_logging import (
    log_error_with_context,
    log_feature_created,
    log_operation,
    log_performance,
    log_plan_setup,
    observability_hooks,
)

logger = logging.getLogger("speckit.workspace")

SPEC_TEMPLATE_NAME = "spec-template.md"
PLAN_TEMPLATE_NAME = "plan-template.md"

# GitHub rejects branch names longer than 244 bytes.
MAX_BRANCH_LENGTH = 244

_STOP_WORDS = frozenset(
    """
    i a an the to for of in on at by with from is are was were be been being
    have has had do does did will would should could can may might must shall
    this that these those my your our their want need add get set
    """.split()
)


class Workspace:
    """Manage the spec-driven development artifacts of one repository."""

    def __init__(self, root: Path | str | None = None):
        self.root = find_repo_root(root)
        self.specs_dir = self.root / SPECS_DIRNAME
        logger.debug(f"Workspace initialized at {self.root}")

    def _git(self) -> Optional[GitRepository]:
        try:
            return GitRepository.discover(self.root)
        except GitError:
            return None

    def feature_paths(self) -> FeaturePaths:
        return get_feature_paths(self.root)

    # ------------------------------------------------------------------
    # Feature creation
    # ------------------------------------------------------------------

    def next_feature_number(self, repo: Optional[GitRepository] = None) -> int:
        """Return one more than the highest number used by a spec dir or branch."""
        highest = 0
        if self.specs_dir.is_dir():
            for directory in self.specs_dir.iterdir():
                number = feature_number(directory.name) if directory.is_dir() else None
                if number is not None:
                    highest = max(highest, number)

        if repo is not None:
            if not repo.fetch_all():
                logger.debug("git fetch failed; numbering from local branches only")
            for branch in [*repo.local_branches(), *repo.remote_branches()]:
                number = feature_number(branch)
                if number is not None:
                    highest = max(highest, number)
        return highest + 1

    def _clean_branch_name(self, value: str) -> str:
        slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
        return slug

    def generate_branch_name(self, description: str) -> str:
        """Build a short branch suffix from the meaningful words of ``description``."""
        words = re.sub(r"[^a-z0-9]", " ", description.lower()).split()
        meaningful: List[str] = []
        for word in words:
            if word in _STOP_WORDS:
                continue
            if len(word) >= 3:
                meaningful.append(word)
            elif re.search(rf"\b{re.escape(word.upper())}\b", description):
                # short words written as acronyms (UI, DB) are kept
                meaningful.append(word)

        if meaningful:
            limit = 4 if len(meaningful) == 4 else 3
            return "-".join(meaningful[:limit])

        fallback = [part for part in self._clean_branch_name(description).split("-") if part]
        return "-".join(fallback[:3]) or "feature"

    @log_performance("create_feature")
    def create_feature(
        self,
        description: str,
        *,
        short_name: Optional[str] = None,
        number: Optional[int] = None,
    ) -> CreatedFeature:
        """Create the feature branch, its spec directory and ``spec.md``."""
        try:
            if not description or not description.strip():
                raise ValueError("Feature description cannot be empty")
            if number is not None and number < 1:
                raise ValueError(f"Feature number must be positive, got: {number}")

            repo = self._git()
            if short_name and self._clean_branch_name(short_name):
                suffix = self._clean_branch_name(short_name)
            else:
                suffix = self.generate_branch_name(description)

            feature_num = f"{number if number is not None else self.next_feature_number(repo):03d}"
            branch_name = f"{feature_num}-{suffix}"

            truncated_from: Optional[str] = None
            if len(branch_name.encode("utf-8")) > MAX_BRANCH_LENGTH:
                truncated_from = branch_name
                max_suffix = MAX_BRANCH_LENGTH - len(feature_num) - 1
                branch_name = f"{feature_num}-{suffix[:max_suffix].rstrip('-')}"
                logger.warning(
                    f"Branch name exceeded GitHub's {MAX_BRANCH_LENGTH}-byte limit; "
                    f"truncated to {len(branch_name)} bytes"
                )

            with log_operation("create_feature", branch=branch_name, has_git=repo is not None):
                branch_created = False
                if repo is not None:
                    repo.create_branch(branch_name)
                    branch_created = True
                else:
                    logger.warning(f"Git repository not detected; skipped branch creation for {branch_name}")

                feature_dir = self.specs_dir / branch_name
                feature_dir.mkdir(parents=True, exist_ok=True)
                spec_file = feature_dir / "spec.md"
                self._copy_template(SPEC_TEMPLATE_NAME, spec_file)

            log_feature_created(branch_name, str(spec_file), feature_num=feature_num)
            logger.info(f"Created feature '{branch_name}' with spec at {spec_file}")

            return CreatedFeature(
                branch_name=branch_name,
                spec_file=spec_file,
                feature_num=feature_num,
                branch_created=branch_created,
                truncated_from=truncated_from,
            )

        except Exception as e:
            log_error_with_context(e, {
                "operation": "create_feature",
                "short_name": short_name,
                "number": number,
            })
            raise

    def _copy_template(self, template_name: str, destination: Path) -> bool:
        """Copy a template to ``destination``; an empty file when not installed."""
        source = template_path(self.root, template_name)
        if source.is_file():
            shutil.copyfile(source, destination)
            return True
        logger.debug(f"Template {source} not found; creating empty {destination.name}")
        destination.touch()
        return False

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    @log_performance("setup_plan")
    def setup_plan(self) -> PlanSetup:
        """Create ``plan.md`` for the current feature from the plan template."""
        paths = self.feature_paths()
        check_feature_branch(paths.current_branch, paths.has_git)

        with log_operation("setup_plan", branch=paths.current_branch):
            paths.feature_dir.mkdir(parents=True, exist_ok=True)
            template_used = self._copy_template(PLAN_TEMPLATE_NAME, paths.impl_plan)
            if template_used:
                logger.info(f"Copied plan template to {paths.impl_plan}")
            else:
                logger.warning(f"Plan template not found; created empty {paths.impl_plan}")

        log_plan_setup(paths.current_branch, str(paths.impl_plan), template_used=template_used)
        return PlanSetup(paths=paths, template_used=template_used)

    # ------------------------------------------------------------------
    # Prerequisite checks
    # ------------------------------------------------------------------

    def check_prerequisites(
        self,
        *,
        require_tasks: bool = False,
        include_tasks: bool = False,
        paths_only: bool = False,
    ) -> PrerequisiteReport:
        """Validate the current feature's documents and list optional ones."""
        paths = self.feature_paths()
        if paths_only:
            return PrerequisiteReport(paths=paths, paths_only=True)

        check_feature_branch(paths.current_branch, paths.has_git)

        if not paths.feature_dir.is_dir():
            raise PrerequisiteError(
                f"Feature directory not found: {paths.feature_dir}",
                hint="Run create-feature first to create the feature structure.",
            )
        if not paths.impl_plan.is_file():
            raise PrerequisiteError(
                f"plan.md not found in {paths.feature_dir}",
                hint="Run setup-plan first to create the implementation plan.",
            )
        if require_tasks and not paths.tasks.is_file():
            raise PrerequisiteError(
                f"tasks.md not found in {paths.feature_dir}",
                hint="Generate the task list first.",
            )

        docs: List[str] = []
        if paths.research.is_file():
            docs.append("research.md")
        if paths.data_model.is_file():
            docs.append("data-model.md")
        if paths.contracts_dir.is_dir() and any(paths.contracts_dir.iterdir()):
            docs.append("contracts/")
        if paths.quickstart.is_file():
            docs.append("quickstart.md")
        if include_tasks and paths.tasks.is_file():
            docs.append("tasks.md")

        observability_hooks.log_workflow_event(
            "prerequisites_checked",
            feature_id=paths.current_branch,
            available_docs=docs,
        )
        return PrerequisiteReport(paths=paths, available_docs=docs)

    # ------------------------------------------------------------------
    # Agent context
    # ------------------------------------------------------------------

    def update_agent_context(
        self,
        agent_key: Optional[str] = None,
        *,
        timestamp: Timestamp = None,
    ) -> AgentSyncSummary:
        updater = AgentContextUpdater(paths=self.feature_paths())
        return updater.run(agent_key, timestamp=timestamp)
