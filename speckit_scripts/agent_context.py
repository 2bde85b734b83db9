"""Agent context files: creation from a template and in-place merging.

Each AI coding assistant reads its own instructions file (``CLAUDE.md``,
``.github/copilot-instructions.md``, ...). After a plan is written, the
feature's technologies and a short change note are merged into whichever of
those files exist, or a new one is rendered from
``.specify/templates/agent-file-template.md``.

The merge is a single pass over the existing lines. It only touches the
``## Active Technologies`` and ``## Recent Changes`` sections and the
``Last updated`` date, so running it again with the same plan leaves the
file unchanged.
"""

from __future__ import annotations

import logging
import os
import re
import stat
import tempfile
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .errors import PrerequisiteError, TemplateMissingError, UnknownAgentError
from .models import AgentSyncSummary, AgentTarget, FeaturePaths, PlanFields, SyncResult
from .plan_fields import parse_plan_data
from .repository import check_feature_branch, get_feature_paths, template_path
from .speckit_logging import (
    log_agent_file_synced,
    log_error_with_context,
    log_operation,
    log_performance,
)

logger = logging.getLogger("speckit.agent_context")

AGENT_TEMPLATE_NAME = "agent-file-template.md"
DEFAULT_AGENT = "claude"

TECHNOLOGIES_HEADING = "## Active Technologies"
RECENT_CHANGES_HEADING = "## Recent Changes"

# Older change notes kept below a newly added one.
MAX_RETAINED_CHANGES = 2

_AGENTS = (
    AgentTarget("claude", "Claude Code", "CLAUDE.md"),
    AgentTarget("gemini", "Gemini CLI", "GEMINI.md"),
    AgentTarget("copilot", "GitHub Copilot", ".github/copilot-instructions.md"),
    AgentTarget("cursor-agent", "Cursor IDE", ".cursor/rules/specify-rules.mdc"),
    AgentTarget("qwen", "Qwen Code", "QWEN.md"),
    AgentTarget("opencode", "opencode", "AGENTS.md"),
    AgentTarget("codex", "Codex CLI", "AGENTS.md"),
    AgentTarget("windsurf", "Windsurf", ".windsurf/rules/specify-rules.md"),
    AgentTarget("kilocode", "Kilo Code", ".kilocode/rules/specify-rules.md"),
    AgentTarget("auggie", "Auggie CLI", ".augment/rules/specify-rules.md"),
    AgentTarget("roo", "Roo Code", ".roo/rules/specify-rules.md"),
    AgentTarget("codebuddy", "CodeBuddy CLI", "CODEBUDDY.md"),
    AgentTarget("qoder", "Qoder CLI", "QODER.md"),
    AgentTarget("amp", "Amp", "AGENTS.md"),
    AgentTarget("shai", "SHAI", "SHAI.md"),
    AgentTarget("q", "Amazon Q Developer CLI", "AGENTS.md"),
    AgentTarget("bob", "IBM Bob", "AGENTS.md"),
)

AGENT_REGISTRY: Dict[str, AgentTarget] = {agent.key: agent for agent in _AGENTS}

# headings and HTML comments (e.g. the manual-additions markers) close a section
_SECTION_END_PATTERN = re.compile(r"^(?:#+\s|<!--)")
_ENTRY_PATTERN = re.compile(r"^- ")
_LAST_UPDATED_PATTERN = re.compile(r"(?P<label>Last updated(?:\*\*)?:\s*)\d{4}-\d{2}-\d{2}")

_PLACEHOLDER_PROJECT = "[PROJECT NAME]"
_PLACEHOLDER_DATE = "[DATE]"
_PLACEHOLDER_TECHNOLOGIES = "[EXTRACTED FROM ALL PLAN.MD FILES]"
_PLACEHOLDER_STRUCTURE = "[ACTUAL STRUCTURE FROM PLANS]"
_PLACEHOLDER_COMMANDS = "[ONLY COMMANDS FOR ACTIVE TECHNOLOGIES]"
_PLACEHOLDER_CONVENTIONS = "[LANGUAGE-SPECIFIC, ONLY FOR LANGUAGES IN USE]"
_PLACEHOLDER_CHANGES = "[LAST 3 FEATURES AND WHAT THEY ADDED]"

_LANGUAGE_COMMANDS = (
    (("python",), "cd src && pytest && ruff check ."),
    (("rust",), "cargo test && cargo clippy"),
    (("javascript", "typescript"), "npm test && npm run lint"),
)

WEB_STRUCTURE = ("backend/", "frontend/", "tests/")
DEFAULT_STRUCTURE = ("src/", "tests/")

Timestamp = Union[date, datetime, str, None]


# ----------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------

def get_agent_target(agent_key: str) -> AgentTarget:
    """Look up ``agent_key``, failing with the list of valid keys."""
    target = AGENT_REGISTRY.get(agent_key)
    if target is None:
        raise UnknownAgentError(agent_key, AGENT_REGISTRY)
    return target


def unique_targets(targets: Iterable[AgentTarget]) -> List[AgentTarget]:
    """Drop targets whose file is already covered by an earlier key."""
    seen: set[str] = set()
    ordered: List[AgentTarget] = []
    for target in targets:
        if target.relative_path in seen:
            continue
        seen.add(target.relative_path)
        ordered.append(target)
    return ordered


def existing_targets(repo_root: Path) -> List[AgentTarget]:
    return unique_targets(t for t in _AGENTS if t.path_in(repo_root).is_file())


# ----------------------------------------------------------------------
# Content helpers
# ----------------------------------------------------------------------

def format_date(timestamp: Timestamp = None) -> str:
    if timestamp is None:
        return date.today().isoformat()
    if isinstance(timestamp, datetime):
        return timestamp.date().isoformat()
    if isinstance(timestamp, date):
        return timestamp.isoformat()
    return str(timestamp)


def get_project_structure(project_type: Optional[str]) -> str:
    if project_type and "web" in project_type.lower():
        return "\n".join(WEB_STRUCTURE)
    return "\n".join(DEFAULT_STRUCTURE)


def get_commands_for_language(language: Optional[str]) -> str:
    lowered = (language or "").lower()
    for needles, commands in _LANGUAGE_COMMANDS:
        if any(needle in lowered for needle in needles):
            return commands
    if language:
        return f"# Add commands for {language}"
    return "# Add commands for your project"


def get_language_conventions(language: Optional[str]) -> str:
    if language:
        return f"{language}: Follow standard conventions"
    return "Follow standard conventions"


@dataclass(slots=True)
class ContextEntries:
    """Lines a run wants to add to an agent context file."""

    technologies: List[str] = field(default_factory=list)
    change: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.technologies and self.change is None

    def all_lines(self) -> List[str]:
        lines = list(self.technologies)
        if self.change:
            lines.append(self.change)
        return lines


def build_context_entries(fields: PlanFields, branch: str, existing_content: str = "") -> ContextEntries:
    """Compute the technology and change lines missing from ``existing_content``."""
    stack = fields.tech_stack
    entries = ContextEntries()

    if stack and stack not in existing_content:
        entries.technologies.append(f"- {stack} ({branch})")
    if fields.storage and fields.storage not in existing_content:
        entries.technologies.append(f"- {fields.storage} ({branch})")

    change: Optional[str] = None
    if stack:
        change = f"- {branch}: Added {stack}"
    elif fields.storage:
        change = f"- {branch}: Added {fields.storage}"
    existing_lines = {line.rstrip() for line in existing_content.splitlines()}
    if change and change not in existing_lines:
        entries.change = change

    return entries


def refresh_last_updated(line: str, today: str) -> str:
    return _LAST_UPDATED_PATTERN.sub(lambda m: f"{m.group('label')}{today}", line)


# ----------------------------------------------------------------------
# Document parsing and merging
# ----------------------------------------------------------------------

class Section(Enum):
    OUTSIDE = "outside"
    TECHNOLOGIES = "technologies"
    RECENT_CHANGES = "recent_changes"


@dataclass(slots=True)
class ContextDocument:
    """Entry lines of the two managed sections of a context file."""

    technologies: List[str] = field(default_factory=list)
    recent_changes: List[str] = field(default_factory=list)
    has_technologies: bool = False
    has_recent_changes: bool = False


def _section_for_heading(line: str) -> Optional[Section]:
    stripped = line.rstrip()
    if stripped == TECHNOLOGIES_HEADING:
        return Section.TECHNOLOGIES
    if stripped == RECENT_CHANGES_HEADING:
        return Section.RECENT_CHANGES
    return None


def parse_context_document(content: str) -> ContextDocument:
    document = ContextDocument()
    section = Section.OUTSIDE
    for line in content.splitlines():
        heading = _section_for_heading(line)
        if heading is Section.TECHNOLOGIES:
            document.has_technologies = True
            section = heading
            continue
        if heading is Section.RECENT_CHANGES:
            document.has_recent_changes = True
            section = heading
            continue
        if _SECTION_END_PATTERN.match(line):
            section = Section.OUTSIDE
            continue
        if _ENTRY_PATTERN.match(line):
            if section is Section.TECHNOLOGIES:
                document.technologies.append(line.rstrip())
            elif section is Section.RECENT_CHANGES:
                document.recent_changes.append(line.rstrip())
    return document


class ContextMerger:
    """Single forward pass merging new entries into an existing context file.

    Technology entries go at the end of the technologies list, right before
    the blank line or heading that closes it. The change entry goes at the
    front of the recent changes list, and older change entries beyond
    ``max_retained`` are dropped.
    """

    def __init__(self, entries: ContextEntries, today: str, *, max_retained: int = MAX_RETAINED_CHANGES):
        self.entries = entries
        self.today = today
        # without a new entry the section keeps its full capacity
        self.retain_limit = max_retained if entries.change else max_retained + 1

        self.section = Section.OUTSIDE
        self.output: List[str] = []
        self.tech_added = False
        self.change_added = False
        self.tech_has_content = False
        self.kept_changes = 0
        self.has_technologies = False
        self.has_recent_changes = False

    def _emit(self, line: str) -> None:
        self.output.append(line)

    def _flush_technologies(self) -> None:
        if not self.tech_added and self.entries.technologies:
            self.output.extend(self.entries.technologies)
        self.tech_added = True

    def _flush_change(self) -> None:
        if not self.change_added and self.entries.change:
            self._emit(self.entries.change)
        self.change_added = True

    def _in_technologies(self, line: str) -> bool:
        """Handle a technologies line; False once the section has closed."""
        if _SECTION_END_PATTERN.match(line) or not line.strip():
            if not line.strip() and not self.tech_has_content:
                self._emit(line)
                return True
            self._flush_technologies()
            self.section = Section.OUTSIDE
            return False
        self.tech_has_content = True
        self._emit(refresh_last_updated(line, self.today))
        return True

    def _in_recent_changes(self, line: str) -> bool:
        if _SECTION_END_PATTERN.match(line):
            self._flush_change()
            self.section = Section.OUTSIDE
            return False
        if not line.strip() and not self.change_added:
            self._emit(line)
            return True
        self._flush_change()
        if _ENTRY_PATTERN.match(line):
            if self.kept_changes < self.retain_limit:
                self._emit(line)
                self.kept_changes += 1
            return True
        self._emit(refresh_last_updated(line, self.today))
        return True

    def _outside(self, line: str) -> None:
        heading = _section_for_heading(line)
        if heading is Section.TECHNOLOGIES:
            self._emit(line)
            self.has_technologies = True
            self.section = Section.TECHNOLOGIES
            return
        if heading is Section.RECENT_CHANGES:
            self._emit(line)
            self.has_recent_changes = True
            self.section = Section.RECENT_CHANGES
            return
        self._emit(refresh_last_updated(line, self.today))

    def feed(self, line: str) -> None:
        if self.section is Section.TECHNOLOGIES and self._in_technologies(line):
            return
        if self.section is Section.RECENT_CHANGES and self._in_recent_changes(line):
            return
        self._outside(line)

    def finish(self) -> List[str]:
        if self.section is Section.TECHNOLOGIES:
            self._flush_technologies()
        elif self.section is Section.RECENT_CHANGES:
            self._flush_change()

        if not self.has_technologies and self.entries.technologies:
            self.output.extend(["", TECHNOLOGIES_HEADING, *self.entries.technologies])
            self.tech_added = True
        if not self.has_recent_changes and self.entries.change:
            self.output.extend(["", RECENT_CHANGES_HEADING, self.entries.change])
            self.change_added = True
        return self.output


def merge_context(
    content: str,
    entries: ContextEntries,
    today: str,
    *,
    max_retained: int = MAX_RETAINED_CHANGES,
) -> str:
    """Return ``content`` with ``entries`` merged in and the date refreshed."""
    newline = "\r\n" if "\r\n" in content else "\n"
    merger = ContextMerger(entries, today, max_retained=max_retained)
    for line in content.splitlines():
        merger.feed(line)
    merged = newline.join(merger.finish())
    if content.endswith("\n") or not content:
        merged += newline
    return merged


def render_new_context(
    template_text: str,
    fields: PlanFields,
    *,
    branch: str,
    project_name: str,
    today: str,
) -> str:
    """Fill the agent file template for a brand new context file."""
    stack = fields.tech_stack
    substitutions = {
        _PLACEHOLDER_PROJECT: project_name,
        _PLACEHOLDER_DATE: today,
        _PLACEHOLDER_TECHNOLOGIES: f"- {stack} ({branch})" if stack else "",
        _PLACEHOLDER_STRUCTURE: get_project_structure(fields.project_type),
        _PLACEHOLDER_COMMANDS: get_commands_for_language(fields.language),
        _PLACEHOLDER_CONVENTIONS: get_language_conventions(fields.language),
        _PLACEHOLDER_CHANGES: f"- {branch}: Added {stack}" if stack else "",
    }
    rendered = template_text
    for placeholder, value in substitutions.items():
        rendered = rendered.replace(placeholder, value)
    return rendered


def _target_mode(path: Path) -> int:
    """Permission bits the written file should carry."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def _write_atomic(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = _target_mode(path)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        # mkstemp creates 0600 files
        os.chmod(temp_name, mode)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


# ----------------------------------------------------------------------
# Single file synchronisation
# ----------------------------------------------------------------------

def sync_agent_file(
    target_path: Path | str,
    fields: PlanFields,
    timestamp: Timestamp = None,
    *,
    branch: str,
    project_name: str,
    template: Path | str | None = None,
    target: Optional[AgentTarget] = None,
    max_retained: int = MAX_RETAINED_CHANGES,
) -> SyncResult:
    """Create or update one agent context file.

    Raises :class:`TemplateMissingError` when the file has to be created and
    no template is available. Read and write failures are reported in the
    returned :class:`SyncResult` instead of raised.
    """
    path = Path(target_path)
    target = target or AgentTarget(path.name, path.name, str(path))
    today = format_date(timestamp)

    if not path.exists():
        template_file = Path(template) if template else None
        if template_file is None or not template_file.is_file():
            raise TemplateMissingError(template_file)
        try:
            template_text = template_file.read_text(encoding="utf-8")
            content = render_new_context(
                template_text, fields, branch=branch, project_name=project_name, today=today
            )
            _write_atomic(path, content)
        except (OSError, UnicodeError) as error:
            return _failed(target, path, "create", error)
        document = parse_context_document(content)
        added = document.technologies + document.recent_changes
        logger.info(f"Created new {target.name} context file at {path}")
        log_agent_file_synced(branch, target.key, "created", path=str(path))
        return SyncResult(target=target, path=path, action="created", success=True, added_entries=added)

    try:
        with path.open(encoding="utf-8", newline="") as handle:
            existing = handle.read()
        entries = build_context_entries(fields, branch, existing)
        merged = merge_context(existing, entries, today, max_retained=max_retained)
        if merged != existing:
            _write_atomic(path, merged)
    except (OSError, UnicodeError) as error:
        return _failed(target, path, "update", error)

    logger.info(f"Updated existing {target.name} context file at {path}")
    log_agent_file_synced(branch, target.key, "updated", path=str(path), added=len(entries.all_lines()))
    return SyncResult(
        target=target, path=path, action="updated", success=True, added_entries=entries.all_lines()
    )


def _failed(target: AgentTarget, path: Path, operation: str, error: Exception) -> SyncResult:
    log_error_with_context(error, {
        "operation": f"{operation}_agent_file",
        "agent": target.key,
        "path": str(path),
    })
    return SyncResult(target=target, path=path, action="failed", success=False, error=str(error))


# ----------------------------------------------------------------------
# Batch orchestration
# ----------------------------------------------------------------------

class AgentContextUpdater:
    """Refresh every relevant agent context file from the current plan."""

    def __init__(self, repo_root: Path | str | None = None, *, paths: Optional[FeaturePaths] = None):
        self.paths = paths or get_feature_paths(repo_root)

    @property
    def template(self) -> Path:
        return template_path(self.paths.repo_root, AGENT_TEMPLATE_NAME)

    def select_targets(self, agent_key: Optional[str] = None) -> List[AgentTarget]:
        if agent_key:
            return [get_agent_target(agent_key)]
        found = existing_targets(self.paths.repo_root)
        if found:
            return found
        logger.info("No existing agent files found, creating default Claude file...")
        return [AGENT_REGISTRY[DEFAULT_AGENT]]

    def validate_environment(self, targets: Iterable[AgentTarget]) -> None:
        """Check every precondition before anything is written."""
        check_feature_branch(self.paths.current_branch, self.paths.has_git)
        if not self.paths.impl_plan.is_file():
            raise PrerequisiteError(
                f"No plan.md found at {self.paths.impl_plan}.",
                hint="Make sure you're working on a feature with a corresponding spec directory.",
            )
        missing = [t for t in targets if not t.path_in(self.paths.repo_root).exists()]
        if missing and not self.template.is_file():
            raise TemplateMissingError(self.template)
        if not self.template.is_file():
            logger.warning(f"Template file not found at {self.template}")

    @log_performance("update_agent_context")
    def run(self, agent_key: Optional[str] = None, timestamp: Timestamp = None) -> AgentSyncSummary:
        targets = self.select_targets(agent_key)
        self.validate_environment(targets)

        branch = self.paths.current_branch
        with log_operation("update_agent_context", branch=branch, agent=agent_key or "all"):
            fields = parse_plan_data(self.paths.impl_plan)
            summary = AgentSyncSummary(branch=branch, plan_path=self.paths.impl_plan, fields=fields)
            for target in targets:
                path = target.path_in(self.paths.repo_root)
                logger.info(f"Updating {target.name} context file: {path}")
                result = sync_agent_file(
                    path,
                    fields,
                    timestamp,
                    branch=branch,
                    project_name=self.paths.repo_root.name,
                    template=self.template,
                    target=target,
                )
                summary.results.append(result)

        if summary.success:
            logger.info("Agent context update completed successfully")
        else:
            failed = ", ".join(result.target.key for result in summary.failures)
            logger.error(f"Agent context update completed with errors: {failed}")
        return summary
