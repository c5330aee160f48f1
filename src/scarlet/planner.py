"""Turn one specification document into a Plan: title, branch slug and agent brief.

Everything here is pure string processing; no filesystem or network access.
"""

from __future__ import annotations

import json
import re
from pathlib import PurePosixPath
from typing import Any

from .models import Plan

BRANCH_SLUG_MAX_LENGTH = 60
FALLBACK_SLUG = "untitled"

_HEADING_RE = re.compile(r"^#\s+(?:PRD:\s*)?(.+)$", re.MULTILINE)
_DATE_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}-")
_EXTENSION_RE = re.compile(r"\.\w+$")

GUIDELINES = (
    "Follow existing code conventions in this repository",
    "Write tests for new functionality",
    "Keep changes focused on the PRD requirements",
)


def slugify_name(name: str, *, max_length: int = BRANCH_SLUG_MAX_LENGTH) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:max_length].rstrip("-")


def title_from_filename(path: str) -> str:
    """Derive a title from a path like ``docs/prd/2024-01-15-widget-update.md``."""
    base = PurePosixPath(path.replace("\\", "/")).name
    base = _EXTENSION_RE.sub("", base)
    base = _DATE_PREFIX_RE.sub("", base)
    return base.replace("-", " ")


def _requirements_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, list) and value:
        return "\n".join(f"- {item}" for item in value)
    return None


def _parse_structured(content: str) -> tuple[str, str] | None:
    try:
        parsed = json.loads(content)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(parsed, dict):
        return None

    title = ""
    for key in ("title", "name"):
        candidate = parsed.get(key)
        if isinstance(candidate, str) and candidate.strip():
            title = candidate.strip()
            break
    requirements = (
        _requirements_text(parsed.get("description"))
        or _requirements_text(parsed.get("requirements"))
        or content
    )
    return title, requirements


def _parse_free_text(content: str) -> tuple[str, str]:
    match = _HEADING_RE.search(content)
    title = match.group(1).strip() if match else ""
    return title, content


def build_instructions(title: str, requirements: str, path: str) -> str:
    lines = [
        f"## Task: {title}",
        "",
        f"Implement the requirements described in the PRD at `{path}`.",
        "",
        "## Requirements",
        "",
        requirements,
        "",
        "## Guidelines",
    ]
    lines.extend(f"- {guideline}" for guideline in GUIDELINES)
    return "\n".join(lines)


def plan_from_document(content: str, path: str) -> Plan:
    """Build the deterministic unit of work for one specification document.

    Title resolution order: a JSON object's ``title``/``name``, then the first
    top-level markdown heading (an optional ``PRD:`` label is dropped), then the
    filename with any ``YYYY-MM-DD-`` prefix removed.

    Args:
        content: Raw document text.
        path: Document path relative to the repository root.

    Returns:
        The Plan handed to the orchestrator.
    """
    structured = _parse_structured(content)
    title, requirements = structured if structured is not None else _parse_free_text(content)

    if not title:
        title = title_from_filename(path)

    branch_name = slugify_name(title) or slugify_name(title_from_filename(path)) or FALLBACK_SLUG
    return Plan(
        title=title,
        branch_name=branch_name,
        instructions=build_instructions(title, requirements, path),
    )
