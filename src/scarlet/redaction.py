"""Scrub credentials out of agent output before it is persisted or logged."""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_REPORT_LIMIT = 8192


@dataclass(frozen=True)
class RedactionRule:
    pattern: re.Pattern[str]
    replacement: str


REDACTION_RULES: tuple[RedactionRule, ...] = (
    RedactionRule(re.compile(r"gh[pousr]_[A-Za-z0-9_]{20,}"), "[REDACTED_GITHUB_TOKEN]"),
    RedactionRule(re.compile(r"github_pat_[A-Za-z0-9_]{20,}"), "[REDACTED_GITHUB_PAT]"),
    RedactionRule(re.compile(r"(Authorization:\s*Bearer\s+)\S+", re.IGNORECASE), r"\1[REDACTED]"),
    RedactionRule(
        re.compile(r"(api[_-]?key\s*[:=]\s*)(['\"]?)[^'\"\s]+\2", re.IGNORECASE),
        r"\1\2[REDACTED]\2",
    ),
    RedactionRule(
        re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"),
        "[REDACTED_PRIVATE_KEY]",
    ),
    RedactionRule(re.compile(r"xox[baprs]-[A-Za-z0-9-]{10,}"), "[REDACTED_SLACK_TOKEN]"),
)


def redact_sensitive(text: str | None) -> str:
    result = text or ""
    for rule in REDACTION_RULES:
        result = rule.pattern.sub(rule.replacement, result)
    return result


def truncate_for_report(text: str | None, max_chars: int = DEFAULT_REPORT_LIMIT) -> str:
    value = text or ""
    if len(value) <= max_chars:
        return value
    return f"{value[:max_chars]}\n... [truncated {len(value) - max_chars} chars]"


def contains_likely_secret(text: str | None) -> bool:
    value = text or ""
    return any(rule.pattern.search(value) for rule in REDACTION_RULES)


def sanitize_report(text: str | None, max_chars: int = DEFAULT_REPORT_LIMIT) -> str:
    """Redact, then truncate: the form agent logs take inside a failed record."""
    return truncate_for_report(redact_sensitive(text), max_chars)
