from __future__ import annotations

import re

from .config import (
    CLAIM_PHRASES,
    FORMATTER_KEYWORDS,
    LINTER_KEYWORDS,
    TEST_FRAMEWORK_KEYWORDS,
)
from .models import ContributionGuidelines


_STEPS_RE = re.compile(r"\d+\.|[-*]\s")
_CODE_BLOCK_RE = re.compile(r"```")
_EXPECTATION_RE = re.compile(r"expect|should|must|want", re.IGNORECASE)

_BRANCH_RE = re.compile(
    r"branch[^\n]*(?:named?|format|convention)[^\n]*[`\"]([^`\"]+)[`\"]", re.IGNORECASE,
)
_COMMIT_RE = re.compile(r"commit message[^\n]*[`\"]([^`\"]+)[`\"]", re.IGNORECASE)


def find_claim(comments: list[dict]) -> str | None:
    """Login of the first commenter whose text claims the issue, else None."""
    for comment in comments:
        body = (comment.get("body") or "").lower()
        if any(phrase in body for phrase in CLAIM_PHRASES):
            return (comment.get("user") or {}).get("login") or "unknown"
    return None


def is_claimed(comments: list[dict]) -> bool:
    return find_claim(comments) is not None


def analyze_requirements(body: str | None) -> bool:
    """
    Heuristic clarity gate for an issue body.
    Needs at least 50 chars and two of: steps, code block, expectation
    wording, more than 200 chars.
    """
    if not body or len(body) < 50:
        return False
    indicators = (
        bool(_STEPS_RE.search(body)),
        bool(_CODE_BLOCK_RE.search(body)),
        bool(_EXPECTATION_RE.search(body)),
        len(body) > 200,
    )
    return sum(indicators) >= 2


def _first_keyword(lower: str, table: tuple[tuple[str, str], ...]) -> str | None:
    for keyword, name in table:
        if keyword in lower:
            return name
    return None


def parse_contribution_guidelines(content: str, source_path: str = "") -> ContributionGuidelines:
    lower = content.lower()
    guidelines = ContributionGuidelines(raw_content=content, source_path=source_path)

    if "branch" in lower:
        m = _BRANCH_RE.search(content)
        if m:
            guidelines.branch_naming_convention = m.group(1)

    if "conventional commit" in lower:
        guidelines.commit_message_format = "conventional commits"
    elif "commit message" in lower:
        m = _COMMIT_RE.search(content)
        if m:
            guidelines.commit_message_format = m.group(1)

    guidelines.test_framework = _first_keyword(lower, TEST_FRAMEWORK_KEYWORDS)
    guidelines.linter = _first_keyword(lower, LINTER_KEYWORDS)
    guidelines.formatter = _first_keyword(lower, FORMATTER_KEYWORDS)

    # whole word only: "declare", "class"
    if re.search(r"\bcla\b", lower) or "contributor license agreement" in lower:
        guidelines.cla_required = True

    return guidelines
