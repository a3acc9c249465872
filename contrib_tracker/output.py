from __future__ import annotations

import json
from pathlib import Path

from .config import DATA_DIR, REPORT_FILENAME
from .models import IssueCandidate
from .utils import now_iso, parse_iso

_REC_MARK = {"approve": "Y", "skip": "N"}


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[:width - 3] + "..."


def render_report(candidates: list[IssueCandidate], generated_at: str | None = None) -> str:
    """Markdown table of candidates, best viability first."""
    rows = sorted(candidates, key=lambda c: c.viability_score, reverse=True)
    lines = [
        "# Found Issues",
        "",
        f"> Generated at: {generated_at or now_iso()}",
        "",
        "| Score | Repo | Issue | Title | Labels | Updated | Recommendation |",
        "|-------|------|-------|-------|--------|---------|----------------|",
    ]
    for c in rows:
        issue = c.issue
        labels = _truncate(", ".join(issue.labels[:3]), 30)
        title = _truncate(issue.title, 50).replace("|", "\\|")
        updated = parse_iso(issue.updated_at)
        lines.append(
            f"| {c.viability_score} | {issue.repo} | [#{issue.number}]({issue.url}) | {title} "
            f"| {labels} | {updated.date().isoformat() if updated else ''} "
            f"| {_REC_MARK.get(c.recommendation, '?')} |"
        )
    lines += [
        "",
        "## Legend",
        "",
        "- **Score**: Viability score (0-100)",
        "- **Recommendation**: Y = approve, N = skip, ? = needs_review",
        "",
    ]
    return "\n".join(lines)


def write_report(candidates: list[IssueCandidate], path: str | Path | None = None) -> Path:
    p = Path(path) if path else DATA_DIR / REPORT_FILENAME
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(render_report(candidates), encoding="utf-8")
    return p


def write_json(path: str | Path, candidates: list[IssueCandidate]) -> None:
    p = Path(path)
    p.write_text(json.dumps([c.to_dict() for c in candidates], indent=2) + "\n", encoding="utf-8")
