"""Data models for the Speck-It workflow scripts.

This module contains the records passed between the scripts: the fields
pulled out of a plan document, the agent registry entries, the resolved
feature paths and the results reported by each script.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass(frozen=True, slots=True)
class PlanFields:
    """Technical choices extracted from a feature's ``plan.md``.

    Absent fields (missing label or placeholder value) are ``None``.
    """

    language: Optional[str] = None
    dependencies: Optional[str] = None
    storage: Optional[str] = None
    project_type: Optional[str] = None

    @property
    def tech_stack(self) -> Optional[str]:
        """Single-line summary of language and primary dependencies."""
        if self.language and self.dependencies:
            return f"{self.language} + {self.dependencies}"
        return self.language or self.dependencies or None

    def is_empty(self) -> bool:
        return not any((self.language, self.dependencies, self.storage, self.project_type))

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "language": self.language,
            "dependencies": self.dependencies,
            "storage": self.storage,
            "project_type": self.project_type,
        }


@dataclass(frozen=True, slots=True)
class AgentTarget:
    """One downstream context file consumed by an AI coding assistant."""

    key: str
    name: str
    relative_path: str

    def path_in(self, repo_root: Path) -> Path:
        return repo_root / self.relative_path

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "name": self.name, "path": self.relative_path}


@dataclass(slots=True)
class FeaturePaths:
    """Filesystem locations of the current feature's documents."""

    repo_root: Path
    current_branch: str
    has_git: bool
    feature_dir: Path

    @property
    def specs_dir(self) -> Path:
        return self.repo_root / "specs"

    @property
    def feature_spec(self) -> Path:
        return self.feature_dir / "spec.md"

    @property
    def impl_plan(self) -> Path:
        return self.feature_dir / "plan.md"

    @property
    def tasks(self) -> Path:
        return self.feature_dir / "tasks.md"

    @property
    def research(self) -> Path:
        return self.feature_dir / "research.md"

    @property
    def data_model(self) -> Path:
        return self.feature_dir / "data-model.md"

    @property
    def quickstart(self) -> Path:
        return self.feature_dir / "quickstart.md"

    @property
    def contracts_dir(self) -> Path:
        return self.feature_dir / "contracts"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "REPO_ROOT": str(self.repo_root),
            "BRANCH": self.current_branch,
            "HAS_GIT": self.has_git,
            "FEATURE_DIR": str(self.feature_dir),
            "FEATURE_SPEC": str(self.feature_spec),
            "IMPL_PLAN": str(self.impl_plan),
            "TASKS": str(self.tasks),
        }


@dataclass(slots=True)
class CreatedFeature:
    """Outcome of creating a new feature branch and spec scaffold."""

    branch_name: str
    spec_file: Path
    feature_num: str
    branch_created: bool = False
    truncated_from: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "BRANCH_NAME": self.branch_name,
            "SPEC_FILE": str(self.spec_file),
            "FEATURE_NUM": self.feature_num,
        }


@dataclass(slots=True)
class PlanSetup:
    """Outcome of preparing the implementation plan file."""

    paths: FeaturePaths
    template_used: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "FEATURE_SPEC": str(self.paths.feature_spec),
            "IMPL_PLAN": str(self.paths.impl_plan),
            "SPECS_DIR": str(self.paths.feature_dir),
            "BRANCH": self.paths.current_branch,
            "HAS_GIT": self.paths.has_git,
        }


@dataclass(slots=True)
class PrerequisiteReport:
    """Which optional design documents exist next to the plan."""

    paths: FeaturePaths
    available_docs: List[str] = field(default_factory=list)
    paths_only: bool = False

    def to_dict(self) -> Dict[str, Any]:
        if self.paths_only:
            return self.paths.to_dict()
        return {
            "FEATURE_DIR": str(self.paths.feature_dir),
            "AVAILABLE_DOCS": list(self.available_docs),
        }


@dataclass(slots=True)
class SyncResult:
    """Result of creating or updating a single agent context file."""

    target: AgentTarget
    path: Path
    action: str  # 'created', 'updated', 'failed'
    success: bool
    added_entries: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent": self.target.key,
            "name": self.target.name,
            "path": str(self.path),
            "action": self.action,
            "success": self.success,
            "added_entries": list(self.added_entries),
            "error": self.error,
        }


@dataclass(slots=True)
class AgentSyncSummary:
    """Aggregate outcome of an agent context run over one or more targets."""

    branch: str
    plan_path: Path
    fields: PlanFields
    results: List[SyncResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)

    @property
    def failures(self) -> List[SyncResult]:
        return [result for result in self.results if not result.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "BRANCH": self.branch,
            "IMPL_PLAN": str(self.plan_path),
            "fields": self.fields.to_dict(),
            "results": [result.to_dict() for result in self.results],
            "success": self.success,
        }
