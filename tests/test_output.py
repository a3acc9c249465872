"""Tests for the markdown report and the event log."""

import json
import re
from datetime import timedelta

import pytest

from contrib_tracker.events import EventLog
from contrib_tracker.models import (
    IssueCandidate,
    IssueVettingResult,
    ProjectHealth,
    TrackedIssue,
)
from contrib_tracker.output import render_report, write_json, write_report
from contrib_tracker.utils import utcnow


def _candidate(number, score, recommendation="approve", title="Fix the thing", labels=("bug",)):
    issue = TrackedIssue(
        url=f"https://github.com/acme/widgets/issues/{number}",
        repo="acme/widgets",
        number=number,
        title=title,
        labels=list(labels),
        updated_at="2026-03-04T10:00:00Z",
    )
    return IssueCandidate(
        issue=issue,
        vetting_result=IssueVettingResult(),
        project_health=ProjectHealth(repo="acme/widgets"),
        recommendation=recommendation,
        viability_score=score,
    )


def _rows(report):
    return [line for line in report.splitlines() if line.startswith("| ") and "acme/widgets" in line]


class TestReport:
    def test_rows_sorted_by_score(self):
        report = render_report(
            [_candidate(1, 40, "skip"), _candidate(2, 90), _candidate(3, 65, "needs_review")],
            generated_at="2026-03-05T00:00:00Z",
        )
        rows = _rows(report)
        assert [r.split(" | ")[0] for r in rows] == ["| 90", "| 65", "| 40"]
        assert [r.rstrip(" |")[-1] for r in rows] == ["Y", "?", "N"]
        assert "> Generated at: 2026-03-05T00:00:00Z" in report
        assert "[#2](https://github.com/acme/widgets/issues/2)" in rows[0]
        assert "2026-03-04" in rows[0]

    def test_truncation(self):
        report = render_report([
            _candidate(
                1, 50,
                title="A" * 80,
                labels=("good first issue", "help wanted", "documentation", "ignored"),
            ),
        ])
        row = _rows(report)[0]
        assert "A" * 47 + "..." in row
        assert "A" * 48 not in row
        assert "ignored" not in row
        assert "good first issue, help want..." in row

    def test_legend(self):
        report = render_report([])
        assert "## Legend" in report
        assert "Y = approve, N = skip, ? = needs_review" in report

    def test_write_report_and_json(self, tmp_path):
        path = write_report([_candidate(1, 70)], tmp_path / "out" / "issues.md")
        assert path.read_text(encoding="utf-8").startswith("# Found Issues")

        json_path = tmp_path / "issues.json"
        write_json(json_path, [_candidate(1, 70)])
        data = json.loads(json_path.read_text(encoding="utf-8"))
        assert data[0]["viabilityScore"] == 70
        assert data[0]["issue"]["url"].endswith("/issues/1")


class TestEventLog:
    def test_ids_and_types(self):
        log = EventLog([])
        event = log.append("pr_tracked", {"url": "u"})
        assert re.fullmatch(r"evt_\d+_[a-z0-9]{6}", event.id)
        assert len(log) == 1
        with pytest.raises(ValueError):
            log.append("pr_exploded")
        assert len(log) == 1

    def test_in_range(self):
        log = EventLog([])
        log.append("daily_check")
        now = utcnow()
        assert len(log.in_range(now - timedelta(minutes=1))) == 1
        assert log.in_range(now + timedelta(minutes=1)) == []
