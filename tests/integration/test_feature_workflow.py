"""Integration tests running the scripts in order against a real git repository."""

from datetime import date

import pytest

from speckit_scripts.agent_context import parse_context_document
from speckit_scripts.errors import FeatureBranchError
from speckit_scripts.workflow import WorkflowManager
from speckit_scripts.workspace import Workspace

TODAY = date(2025, 3, 1)


class TestFeatureWorkflow:
    """End-to-end run of create-feature, setup-plan and update-agent-context."""

    def test_full_workflow(self, git_project, git, plan_writer):
        workspace = Workspace(git_project)

        created = workspace.create_feature("Add user authentication system")
        assert created.branch_name == "001-user-authentication-system"
        assert git(git_project, "rev-parse", "--abbrev-ref", "HEAD") == created.branch_name

        setup = workspace.setup_plan()
        assert setup.template_used
        assert setup.paths.has_git

        # the untouched plan template only carries placeholders
        summary = workspace.update_agent_context(timestamp=TODAY)
        assert summary.success
        assert summary.fields.tech_stack is None
        claude = git_project / "CLAUDE.md"
        document = parse_context_document(claude.read_text(encoding="utf-8"))
        assert document.technologies == []
        assert document.recent_changes == []

        plan_writer(created.spec_file.parent, language="Python 3.12", dependencies="FastAPI", project_type="web")
        summary = workspace.update_agent_context(timestamp=TODAY)
        assert summary.results[0].added_entries == [
            "- Python 3.12 + FastAPI (001-user-authentication-system)",
            "- 001-user-authentication-system: Added Python 3.12 + FastAPI",
        ]
        first = claude.read_bytes()

        summary = workspace.update_agent_context(timestamp=TODAY)
        assert summary.results[0].added_entries == []
        assert claude.read_bytes() == first

        report = workspace.check_prerequisites()
        assert report.available_docs == []

        second = workspace.create_feature("Export reports")
        assert second.branch_name == "002-export-reports"
        plan_writer(second.spec_file.parent, language="Python 3.12", dependencies="FastAPI", storage="PostgreSQL")

        workspace.update_agent_context(timestamp=date(2025, 3, 2))

        content = claude.read_text(encoding="utf-8")
        document = parse_context_document(content)
        assert document.technologies == [
            "- Python 3.12 + FastAPI (001-user-authentication-system)",
            "- PostgreSQL (002-export-reports)",
        ]
        assert document.recent_changes == [
            "- 002-export-reports: Added Python 3.12 + FastAPI",
            "- 001-user-authentication-system: Added Python 3.12 + FastAPI",
        ]
        assert "Last updated: 2025-03-02" in content

    def test_agent_update_requires_feature_branch(self, git_project, plan_writer):
        plan_writer(git_project / "specs" / "001-api", language="Go 1.22")

        with pytest.raises(FeatureBranchError, match="Current branch: main"):
            Workspace(git_project).update_agent_context()

        assert not (git_project / "CLAUDE.md").exists()

    def test_feature_override_on_non_feature_branch(self, git_project, plan_writer, monkeypatch):
        plan_writer(git_project / "specs" / "001-api", language="Go 1.22")
        monkeypatch.setenv("SPECIFY_FEATURE", "001-api-hotfix")

        response = WorkflowManager(git_project).update_agent_context("copilot")

        assert response["success"] is True
        assert response["BRANCH"] == "001-api-hotfix"
        copilot = (git_project / ".github" / "copilot-instructions.md").read_text(encoding="utf-8")
        assert "- Go 1.22 (001-api-hotfix)" in copilot

    def test_numbering_sees_remote_branches(self, git_project, git, tmp_path):
        clone = tmp_path / "clone"
        git(tmp_path, "clone", str(git_project), str(clone))
        git(git_project, "branch", "012-upstream")

        created = Workspace(clone).create_feature("Audit log")

        assert created.branch_name == "013-audit-log"
