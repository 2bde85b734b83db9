"""Repository discovery, git helpers and feature path resolution.

Git is optional: every script also works in a plain directory that carries a
``.specify/`` marker, in which case the current feature comes from the
``SPECIFY_FEATURE`` environment variable or the newest ``specs/NNN-*`` folder.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import FeatureBranchError, GitError, PreconditionError
from .models import FeaturePaths

logger = logging.getLogger("speckit.repository")

FEATURE_ENV = "SPECIFY_FEATURE"
PROJECT_ROOT_ENV = "SPECKIT_PROJECT_ROOT"
PROJECT_MARKERS = (".git", ".specify")
SPECS_DIRNAME = "specs"
TEMPLATES_DIR = Path(".specify") / "templates"
DEFAULT_BRANCH = "main"

FEATURE_BRANCH_PATTERN = re.compile(r"^(?P<number>\d{3})-")


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    @staticmethod
    def available() -> bool:
        return shutil.which("git") is not None

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Locate the work tree containing ``start`` via ``git rev-parse``."""
        path = Path(start or Path.cwd()).resolve()
        if not cls.available():
            raise GitError("git executable not found")
        probe = cls(path)
        result = probe._run_git(["rev-parse", "--show-toplevel"], check=False)
        if result.returncode != 0 or not result.stdout.strip():
            raise GitError(f"Unable to locate a git repository from {path}")
        return cls(result.stdout.strip())

    def _run_git(self, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
        command = ["git", *args]
        try:
            process = subprocess.run(
                command,
                cwd=self.root,
                capture_output=True,
                text=False,
                check=False,
            )
        except OSError as error:
            raise GitError(f"git {' '.join(args)} could not be started: {error}") from error
        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        result = subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)
        if check and result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {message}")
        return result

    def git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Execute ``git`` with ``args`` relative to the repository root."""
        return self._run_git(list(args), check=check)

    # -------------------------------------------------------------- branches
    def current_branch(self) -> str | None:
        """Return the current branch name or ``None`` when detached."""
        result = self._run_git(["rev-parse", "--abbrev-ref", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        branch = result.stdout.strip()
        if not branch or branch == "HEAD":
            return None
        return branch

    def local_branches(self) -> List[str]:
        result = self._run_git(["branch", "--format=%(refname:short)"], check=False)
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def remote_branches(self) -> List[str]:
        """Return remote branch names with the remote prefix stripped."""
        result = self._run_git(["branch", "-r", "--format=%(refname:short)"], check=False)
        if result.returncode != 0:
            return []
        names: List[str] = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line or line.endswith("/HEAD"):
                continue
            names.append(line.split("/", 1)[1] if "/" in line else line)
        return names

    def fetch_all(self) -> bool:
        result = self._run_git(["fetch", "--all", "--prune"], check=False)
        return result.returncode == 0

    def create_branch(self, name: str) -> None:
        self._run_git(["checkout", "-b", name])


def _git_repository(start: Path) -> Optional[GitRepository]:
    try:
        return GitRepository.discover(start)
    except GitError:
        return None


def has_git(start: Path | str | None = None) -> bool:
    return _git_repository(Path(start or Path.cwd()).resolve()) is not None


def find_repo_root(start: Path | str | None = None) -> Path:
    """Return the project root containing ``start``.

    Uses git when available, otherwise walks up looking for a project
    marker. Falls back to ``start`` itself.
    """
    path = Path(start or Path.cwd()).resolve()
    repo = _git_repository(path)
    if repo is not None:
        return repo.root
    for candidate in (path, *path.parents):
        for marker in PROJECT_MARKERS:
            if (candidate / marker).exists():
                return candidate
    logger.debug(f"No project marker found above {path}; using it as the root")
    return path


def resolve_project_root(root: Path | str | None = None) -> Path:
    """Pick the project root from an explicit argument, the environment, or discovery."""
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise PreconditionError(f"Provided root '{root}' does not exist.")
        return find_repo_root(resolved)

    env_root = os.getenv(PROJECT_ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise PreconditionError(
                f"Environment variable {PROJECT_ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return find_repo_root(env_path)

    return find_repo_root(Path.cwd())


def feature_number(name: str) -> Optional[int]:
    match = FEATURE_BRANCH_PATTERN.match(name)
    return int(match.group("number")) if match else None


def _latest_feature_dir(specs_dir: Path) -> Optional[str]:
    if not specs_dir.is_dir():
        return None
    latest: Optional[str] = None
    highest = 0
    for directory in sorted(specs_dir.iterdir()):
        if not directory.is_dir():
            continue
        number = feature_number(directory.name)
        if number is not None and number > highest:
            highest = number
            latest = directory.name
    return latest


def current_branch(repo_root: Path) -> str:
    """Name of the feature being worked on.

    Order: ``SPECIFY_FEATURE``, the checked-out git branch, the newest
    numbered spec directory, then ``main``.
    """
    override = os.getenv(FEATURE_ENV)
    if override:
        return override

    repo = _git_repository(repo_root)
    if repo is not None:
        branch = repo.current_branch()
        if branch:
            return branch

    latest = _latest_feature_dir(repo_root / SPECS_DIRNAME)
    if latest:
        return latest
    return DEFAULT_BRANCH


def check_feature_branch(branch: str, has_git_repo: bool) -> None:
    """Raise :class:`FeatureBranchError` unless ``branch`` is ``NNN-name``."""
    if not has_git_repo:
        logger.warning("Git repository not detected; skipped branch validation")
        return
    if not FEATURE_BRANCH_PATTERN.match(branch):
        raise FeatureBranchError(branch)


def find_feature_dir_by_prefix(repo_root: Path, branch: str) -> Path:
    """Map a branch to its spec directory by numeric prefix.

    ``004-fix-typo`` and ``004-add-tests`` both resolve to the one
    ``specs/004-*`` directory, so several branches can work on one spec.
    """
    specs_dir = repo_root / SPECS_DIRNAME
    match = FEATURE_BRANCH_PATTERN.match(branch)
    if not match:
        return specs_dir / branch

    prefix = match.group("number")
    matches: List[str] = []
    if specs_dir.is_dir():
        matches = sorted(
            path.name for path in specs_dir.iterdir()
            if path.is_dir() and path.name.startswith(f"{prefix}-")
        )

    if not matches:
        return specs_dir / branch
    if len(matches) == 1:
        return specs_dir / matches[0]
    raise PreconditionError(
        f"Multiple spec directories found with prefix '{prefix}': {', '.join(matches)}. "
        "Please ensure only one spec directory exists per numeric prefix."
    )


def get_feature_paths(repo_root: Path | str | None = None) -> FeaturePaths:
    root = find_repo_root(repo_root)
    branch = current_branch(root)
    return FeaturePaths(
        repo_root=root,
        current_branch=branch,
        has_git=has_git(root),
        feature_dir=find_feature_dir_by_prefix(root, branch),
    )


def template_path(repo_root: Path, name: str) -> Path:
    return repo_root / TEMPLATES_DIR / name
