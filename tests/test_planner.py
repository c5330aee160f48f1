from __future__ import annotations

import json

import pytest

from scarlet.planner import (
    BRANCH_SLUG_MAX_LENGTH,
    FALLBACK_SLUG,
    GUIDELINES,
    plan_from_document,
    slugify_name,
    title_from_filename,
)


def test_heading_title_with_prd_label() -> None:
    plan = plan_from_document("# PRD: Add OAuth 2.0 (RFC 6749) Support!\n\nDetails.\n", "docs/prd/oauth.md")
    assert plan.title == "Add OAuth 2.0 (RFC 6749) Support!"
    assert plan.branch_name == "add-oauth-2-0-rfc-6749-support"


def test_heading_without_label_and_not_on_first_line() -> None:
    content = "Preamble text\n\n## Not this one\n# Real Title\n"
    plan = plan_from_document(content, "docs/prd/x.md")
    assert plan.title == "Real Title"
    assert plan.branch_name == "real-title"


def test_filename_fallback_strips_date_prefix() -> None:
    plan = plan_from_document("Just some words, no heading.\n", "docs/prd/2024-01-15-widget-update.md")
    assert plan.title == "widget update"
    assert plan.branch_name == "widget-update"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("docs/prd/2024-01-15-widget-update.md", "widget update"),
        ("docs/prd/nested/login-flow.markdown", "login flow"),
        ("plain.md", "plain"),
        ("docs\\prd\\windows-style.md", "windows style"),
    ],
)
def test_title_from_filename(path: str, expected: str) -> None:
    assert title_from_filename(path) == expected


def test_structured_document_uses_title_and_requirement_list() -> None:
    content = json.dumps({"title": "Payments API", "requirements": ["Accept cards", "Issue refunds"]})
    plan = plan_from_document(content, "docs/prd/payments.md")
    assert plan.title == "Payments API"
    assert plan.branch_name == "payments-api"
    assert "- Accept cards\n- Issue refunds" in plan.instructions


def test_structured_document_falls_back_to_name_and_description() -> None:
    content = json.dumps({"name": "Search Index", "description": "Build a search index."})
    plan = plan_from_document(content, "docs/prd/search.md")
    assert plan.title == "Search Index"
    assert "Build a search index." in plan.instructions


def test_structured_document_without_title_uses_filename() -> None:
    content = json.dumps({"description": "Something"})
    plan = plan_from_document(content, "docs/prd/2024-02-01-audit-log.md")
    assert plan.title == "audit log"
    assert plan.branch_name == "audit-log"


def test_json_array_is_treated_as_free_text() -> None:
    plan = plan_from_document('["not", "an", "object"]', "docs/prd/array-doc.md")
    assert plan.title == "array doc"


def test_branch_slug_is_truncated_without_trailing_hyphen() -> None:
    title = "Implement the " + "extremely long feature name " * 6
    plan = plan_from_document(f"# {title}\n", "docs/prd/long.md")
    assert len(plan.branch_name) <= BRANCH_SLUG_MAX_LENGTH
    assert not plan.branch_name.endswith("-")
    assert plan.branch_name.startswith("implement-the-extremely-long-feature-name")


def test_symbol_only_heading_uses_filename_for_branch() -> None:
    plan = plan_from_document("# \U0001F680\U0001F680\n", "docs/prd/rocket-launch.md")
    assert plan.title == "\U0001F680\U0001F680"
    assert plan.branch_name == "rocket-launch"


def test_unsluggable_title_and_filename_fall_back() -> None:
    plan = plan_from_document("# ***\n", "docs/prd/___.md")
    assert plan.branch_name == FALLBACK_SLUG


def test_instructions_reference_path_requirements_and_guidelines() -> None:
    content = "# PRD: Add Widget\n\nThe widget must spin.\n"
    plan = plan_from_document(content, "docs/prd/add-widget.md")
    assert plan.instructions.startswith("## Task: Add Widget\n")
    assert "`docs/prd/add-widget.md`" in plan.instructions
    assert "The widget must spin." in plan.instructions
    for guideline in GUIDELINES:
        assert f"- {guideline}" in plan.instructions


def test_plan_is_deterministic() -> None:
    content = "# PRD: Add Widget\n\nBody\n"
    assert plan_from_document(content, "docs/prd/a.md") == plan_from_document(content, "docs/prd/a.md")


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Hello World", "hello-world"),
        ("  --Already--Slugged--  ", "already-slugged"),
        ("Ünïcode Títle", "n-code-t-tle"),
        ("", ""),
    ],
)
def test_slugify_name(name: str, expected: str) -> None:
    assert slugify_name(name) == expected


def test_slugify_respects_custom_max_length() -> None:
    assert slugify_name("abc def ghi", max_length=4) == "abc"
