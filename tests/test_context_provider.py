"""
Tests for ContextProvider
"""

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from supervision.context_provider import (
    ContextProvider, assess_risk_level, extract_requirements, identify_frameworks, identify_project_type,
)
from tests.test_utils import SAMPLE_PRD, TempWorkspace, create_project_files


def test_extract_requirements():
    requirements = extract_requirements(SAMPLE_PRD)

    assert requirements == [
        "Users must be able to add todo items",
        "Users should be able to mark items complete",
        "Persist todos in local storage between sessions",
    ]


def test_extract_requirements_limits_and_filters():
    text = "\n".join(f"{i}. Requirement number {i} is here" for i in range(1, 30))
    text += "\n- short\n* The API should return JSON errors"

    requirements = extract_requirements(text)

    assert len(requirements) == 20
    assert requirements[0] == "Requirement number 1 is here"
    assert "short" not in requirements
    assert extract_requirements(None) == []
    assert extract_requirements("") == []


@pytest.mark.parametrize("text,expected", [
    ("A React dashboard with reusable components", "react"),
    ("REST API backend for orders", "api"),
    ("Marketing website for a bakery", "webapp"),
    ("An Android app for runners", "mobile"),
    ("Database migration tooling", "database"),
    ("A command line utility", "general"),
])
def test_identify_project_type(text, expected):
    assert identify_project_type(text) == expected


def test_identify_frameworks():
    assert identify_frameworks("Use Express with a Vue.js frontend and Next.js docs") == {"express", "vue", "next.js"}
    assert identify_frameworks("plain python script") == set()


def test_assess_risk_level():
    assert assess_risk_level("rename a variable") == pytest.approx(0.1)
    assert assess_risk_level("update config") == pytest.approx(0.4)
    assert assess_risk_level("delete the database") == pytest.approx(1.0)


def test_initialize_from_text():
    with TempWorkspace() as workspace:
        create_project_files(workspace, prd=False, tests_dir=True, components=True, lint_config=True)
        provider = ContextProvider(workspace)

        context = provider.initialize(SAMPLE_PRD)

        assert len(context.requirements) == 3
        assert context.project_type == "react"
        assert context.frameworks == {"react"}
        assert context.has_tests
        assert context.has_component_dir
        assert context.has_lint_config
        assert context.working_directory == str(workspace.resolve())
        assert context.structure["src"] == "directory"


def test_initialize_reads_prd_from_disk():
    with TempWorkspace() as workspace:
        create_project_files(workspace)
        context = ContextProvider(workspace).initialize()

        assert context.requirements_text == SAMPLE_PRD
        assert len(context.requirements) == 3


def test_missing_files_are_not_fatal():
    with TempWorkspace() as workspace:
        provider = ContextProvider(workspace)
        context = provider.initialize()

        assert context.requirements == []
        assert context.instruction_text is None
        assert context.project_type == "general"
        assert not context.has_tests
        summary = provider.get_context_summary()
        assert summary["has_claude_md"] is False
        assert summary["has_requirements"] is False


def test_instruction_requirements_are_merged():
    with TempWorkspace() as workspace:
        (workspace / "CLAUDE.md").write_text(
            "# Instructions\n"
            "- Users must be able to add todo items\n"
            "- All code must have unit tests\n"
        )
        context = ContextProvider(workspace).initialize(SAMPLE_PRD)

        assert context.requirements.count("Users must be able to add todo items") == 1
        assert "All code must have unit tests" in context.requirements
        assert context.instruction_text.startswith("# Instructions")


def test_ensure_instruction_file_creates_claude_md():
    with TempWorkspace() as workspace:
        provider = ContextProvider(workspace)
        provider.initialize(SAMPLE_PRD)

        assert provider.ensure_instruction_file() is True

        content = (workspace / "CLAUDE.md").read_text()
        assert "## Overview" in content
        assert "1. Users must be able to add todo items" in content
        assert "**Type**: react" in content
        assert "**Framework**: react" in content
        assert str(workspace.resolve()) in content
        assert provider.context.instruction_created
        assert provider.get_context_summary()["has_claude_md"]


def test_ensure_instruction_file_keeps_existing():
    with TempWorkspace() as workspace:
        (workspace / "CLAUDE.md").write_text("# Existing instructions\n")
        provider = ContextProvider(workspace)
        provider.initialize(SAMPLE_PRD)

        assert provider.ensure_instruction_file() is False
        assert (workspace / "CLAUDE.md").read_text() == "# Existing instructions\n"


def test_ensure_instruction_file_write_failure(monkeypatch):
    with TempWorkspace() as workspace:
        provider = ContextProvider(workspace)
        provider.initialize(SAMPLE_PRD)

        def fail(*args, **kwargs):
            raise PermissionError("read-only")

        monkeypatch.setattr(Path, "write_text", fail)

        assert provider.ensure_instruction_file() is True
        assert not (workspace / "CLAUDE.md").exists()
        assert "Users must be able to add todo items" in provider.context.instruction_text


def test_check_conditions():
    with TempWorkspace() as workspace:
        create_project_files(workspace, tests_dir=True)
        provider = ContextProvider(workspace)
        provider.initialize()

        assert provider.check_conditions(["has_test_directory"])
        assert not provider.check_conditions(["has_component_directory"])
        assert provider.check_conditions(["some_unknown_condition"])
        assert provider.check_conditions([])
        assert not provider.check_conditions(["always_review_deletions"])
        assert not provider.check_conditions(["database_changes_require_approval"])
        assert provider.check_conditions(["config_change_safe"], "update config for lint")
        assert not provider.check_conditions(["config_change_safe"], "update config to delete database")


def test_satisfied_conditions():
    with TempWorkspace() as workspace:
        provider = ContextProvider(workspace)
        provider.initialize()

        satisfied = provider.satisfied_conditions(["has_test_directory", "follows_naming_convention", "unknown"])

        assert satisfied == ["follows_naming_convention", "unknown"]


def test_refresh_picks_up_new_directories():
    with TempWorkspace() as workspace:
        provider = ContextProvider(workspace)
        provider.initialize(SAMPLE_PRD)
        assert not provider.context.has_tests

        (workspace / "tests").mkdir()
        context = provider.refresh()

        assert context.has_tests
        assert len(context.requirements) == 3
