"""Contract tests for the agent context file format.

Agent context files are read by external assistants, so these tests pin the
observable behaviour: extraction of plan fields, duplicate suppression,
bounded change history and the no-write guarantee on failed preconditions.
"""

from datetime import date

import pytest

from speckit_scripts.agent_context import parse_context_document, sync_agent_file
from speckit_scripts.errors import PreconditionError
from speckit_scripts.models import PlanFields
from speckit_scripts.plan_fields import SENTINEL_VALUES, parse_plan_data

TODAY = date(2025, 6, 1)


def _sync(path, fields, branch, template=None):
    return sync_agent_file(path, fields, TODAY, branch=branch, project_name="demo", template=template)


class TestPlanExtractionContract:
    """Plan fields seen by the synchronizer."""

    def test_dependencies_placeholder_is_absent(self, tmp_path, plan_writer):
        plan = plan_writer(tmp_path, language="Go 1.22", dependencies="N/A")

        fields = parse_plan_data(plan)

        assert fields.language == "Go 1.22"
        assert fields.dependencies is None
        assert fields.tech_stack == "Go 1.22"

    @pytest.mark.parametrize("sentinel", sorted(SENTINEL_VALUES))
    def test_sentinel_language_never_reaches_the_stack(self, tmp_path, plan_writer, sentinel):
        plan = plan_writer(tmp_path, language=sentinel, dependencies="Gin")

        fields = parse_plan_data(plan)

        assert fields.tech_stack == "Gin"
        assert sentinel not in fields.tech_stack


class TestSynchronizerContract:
    """Observable behaviour of one context file across runs."""

    def test_existing_stack_is_not_duplicated(self, tmp_path):
        context = tmp_path / "CLAUDE.md"
        original = (
            "# demo\n\nLast updated: 2025-06-01\n\n"
            "## Active Technologies\n- Go 1.22 + Gin (003-foo)\n\n"
            "## Recent Changes\n- 003-foo: Added Go 1.22 + Gin\n"
        )
        context.write_text(original, encoding="utf-8")

        result = _sync(context, PlanFields(language="Go 1.22", dependencies="Gin"), "003-foo")

        assert result.added_entries == []
        assert context.read_text(encoding="utf-8") == original

    def test_missing_template_is_a_precondition_failure(self, tmp_path):
        context = tmp_path / "CLAUDE.md"

        with pytest.raises(PreconditionError):
            _sync(context, PlanFields(language="Go 1.22"), "003-foo", template=tmp_path / "absent.md")

        assert not context.exists()

    def test_third_change_keeps_two_previous(self, tmp_path):
        context = tmp_path / "CLAUDE.md"
        context.write_text(
            "## Recent Changes\n- 002-bar: Added Python 3.12\n- 001-baz: Added Rust 1.79\n",
            encoding="utf-8",
        )

        _sync(context, PlanFields(language="Go 1.22"), "003-foo")

        document = parse_context_document(context.read_text(encoding="utf-8"))
        assert document.recent_changes == [
            "- 003-foo: Added Go 1.22",
            "- 002-bar: Added Python 3.12",
            "- 001-baz: Added Rust 1.79",
        ]

    def test_history_stays_bounded(self, tmp_path, agent_template):
        template = tmp_path / "agent-file-template.md"
        template.write_text(agent_template, encoding="utf-8")
        context = tmp_path / "CLAUDE.md"

        for number, language in enumerate(["Go", "Rust", "Zig", "Elixir", "Kotlin"], start=1):
            _sync(context, PlanFields(language=language), f"{number:03d}-{language.lower()}", template=template)
            document = parse_context_document(context.read_text(encoding="utf-8"))
            assert len(document.recent_changes) <= 3

        assert document.recent_changes[0] == "- 005-kotlin: Added Kotlin"
        assert len(document.technologies) == 5

    def test_created_file_round_trips(self, tmp_path, agent_template):
        template = tmp_path / "agent-file-template.md"
        template.write_text(agent_template, encoding="utf-8")
        context = tmp_path / "AGENTS.md"
        fields = PlanFields(language="Rust 1.79", dependencies="Axum")

        _sync(context, fields, "004-api", template=template)
        first = context.read_bytes()
        _sync(context, fields, "004-api", template=template)

        document = parse_context_document(context.read_text(encoding="utf-8"))
        assert document.technologies == ["- Rust 1.79 + Axum (004-api)"]
        assert document.recent_changes == ["- 004-api: Added Rust 1.79 + Axum"]
        assert context.read_bytes() == first
