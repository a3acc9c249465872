"""Pure reducers from raw PR signals to one actionable status.

Nothing here talks to the network. ``pr_monitor`` fetches the raw payloads and
hands them to these functions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable

from .config import (
    BOT_LOGIN_SUFFIXES,
    COMMENT_PREVIEW_CHARS,
    KNOWN_BOTS,
    MAINTAINER_ACTION_HINTS,
    SPURIOUS_STATUS_MARKERS,
    STATUS_PRIORITY,
)
from .models import ChecklistStats, CIResult, MaintainerComment, TrackedPR

_CHECKBOX_RE = re.compile(r"^\s*[-*]\s+\[([ xX])\]", re.MULTILINE)

_FAILING_CONCLUSIONS = {"failure", "timed_out", "cancelled", "action_required", "startup_failure"}
_PASSING_CONCLUSIONS = {"success", "neutral", "skipped"}


# ── CI aggregation ───────────────────────────────────────────


def _status_state(state: str | None) -> str:
    if state == "success":
        return "passing"
    if state in ("failure", "error"):
        return "failing"
    if state == "pending":
        return "pending"
    return "unknown"


def _check_run_state(run: dict) -> str:
    if run.get("status") != "completed":
        return "pending"
    conclusion = run.get("conclusion")
    if conclusion in _FAILING_CONCLUSIONS:
        return "failing"
    if conclusion in _PASSING_CONCLUSIONS:
        return "passing"
    return "unknown"


def _is_spurious(status: dict) -> bool:
    description = (status.get("description") or "").lower()
    return any(marker in description for marker in SPURIOUS_STATUS_MARKERS)


def _latest_by(items: Iterable[dict], key: str, stamp: str) -> list[dict]:
    latest: dict[str, dict] = {}
    for item in items:
        name = item.get(key) or ""
        current = latest.get(name)
        if current is None or (item.get(stamp) or "") > (current.get(stamp) or ""):
            latest[name] = item
    return list(latest.values())


def aggregate_ci(combined_status: dict | None, check_runs: list[dict] | None) -> CIResult:
    """
    Collapse commit statuses and check runs into one CI state.

    Statuses are de-duplicated per context and check runs per name, keeping
    the newest of each. Precedence: failing > pending > passing > unknown.
    No effective signal at all counts as passing.
    """
    states: list[tuple[str, str]] = []

    statuses = (combined_status or {}).get("statuses") or []
    for status in _latest_by(statuses, "context", "updated_at"):
        if _is_spurious(status):
            continue
        states.append((status.get("context") or "", _status_state(status.get("state"))))

    for run in _latest_by(check_runs or [], "name", "started_at"):
        states.append((run.get("name") or "", _check_run_state(run)))

    if not states:
        return CIResult(status="passing")

    failing = [name for name, state in states if state == "failing"]
    if failing:
        return CIResult(status="failing", failing_check_names=sorted(failing))
    found = {state for _, state in states}
    for state in ("pending", "passing"):
        if state in found:
            return CIResult(status=state)
    return CIResult(status="unknown")


# ── Reviews, conflicts ───────────────────────────────────────


def review_decision(reviews: list[dict]) -> str:
    latest: dict[str, str] = {}
    for review in reviews:
        login = (review.get("user") or {}).get("login")
        state = review.get("state")
        if login and state and state != "COMMENTED":
            latest[login] = state
    states = set(latest.values())
    if "CHANGES_REQUESTED" in states:
        return "changes_requested"
    if "APPROVED" in states:
        return "approved"
    return "review_required"


def has_merge_conflict(mergeable: bool | None, mergeable_state: str | None) -> bool:
    return mergeable is False or mergeable_state == "dirty"


# ── Comments ─────────────────────────────────────────────────


def is_bot(user: dict | None) -> bool:
    if not user:
        return True
    if user.get("type") == "Bot":
        return True
    login = (user.get("login") or "").lower()
    return login.endswith(BOT_LOGIN_SUFFIXES) or login in KNOWN_BOTS


def _timeline(comments: list[dict], reviews: list[dict]) -> list[tuple[str, dict, str]]:
    entries = []
    for c in comments:
        entries.append((c.get("created_at") or "", c.get("user") or {}, c.get("body") or ""))
    for r in reviews:
        # a bare approval or rejection carries no message to answer
        if r.get("state") == "PENDING" or not r.get("submitted_at") or not (r.get("body") or "").strip():
            continue
        entries.append((r["submitted_at"], r.get("user") or {}, r.get("body") or ""))
    entries.sort(key=lambda e: e[0])
    return entries


def find_unresponded_comment(
    comments: list[dict], reviews: list[dict], username: str,
) -> MaintainerComment | None:
    """Latest non-bot comment or review from someone else after the user's last one."""
    me = username.lower()
    cutoff = ""
    pending: MaintainerComment | None = None
    for at, user, body in _timeline(comments, reviews):
        login = user.get("login") or ""
        if login.lower() == me:
            cutoff = at
            pending = None
            continue
        if is_bot(user) or at <= cutoff:
            continue
        pending = MaintainerComment(
            author=login, body=body[:COMMENT_PREVIEW_CHARS], created_at=at,
        )
    return pending


def action_hints(comment: MaintainerComment | None) -> list[str]:
    """Ordered hints about what the maintainer is asking for."""
    if comment is None:
        return []
    text = comment.body.lower()
    return [
        hint for hint, keywords in MAINTAINER_ACTION_HINTS
        if any(k in text for k in keywords)
    ]


# ── Checklist ────────────────────────────────────────────────


def analyze_checklist(body: str | None) -> ChecklistStats | None:
    """Task-list counts from a PR description, or None when it has none."""
    marks = _CHECKBOX_RE.findall(body or "")
    if not marks:
        return None
    return ChecklistStats(checked=sum(1 for m in marks if m in "xX"), total=len(marks))


def checklist_incomplete(stats: ChecklistStats | None) -> bool:
    return stats is not None and stats.total > 0 and stats.checked < stats.total


# ── Status decision ──────────────────────────────────────────


@dataclass
class PRSignals:
    ci_status: str = "unknown"
    has_merge_conflict: bool = False
    has_unresponded_comment: bool = False
    checklist: ChecklistStats | None = None
    review_decision: str = "review_required"
    days_since_activity: int = 0

    @classmethod
    def from_pr(cls, pr: TrackedPR) -> "PRSignals":
        return cls(
            ci_status=pr.ci_status,
            has_merge_conflict=pr.has_merge_conflict,
            has_unresponded_comment=pr.has_unresponded_comment,
            checklist=pr.checklist_stats,
            review_decision=pr.review_decision,
            days_since_activity=pr.days_since_activity,
        )


Rule = Callable[[PRSignals, int, int], bool]

# First matching rule wins. Arguments: signals, dormant days, approaching days.
STATUS_RULES: tuple[tuple[str, Rule], ...] = (
    ("needs_response", lambda s, d, a: s.has_unresponded_comment),
    ("failing_ci", lambda s, d, a: s.ci_status == "failing"),
    ("merge_conflict", lambda s, d, a: s.has_merge_conflict),
    ("incomplete_checklist", lambda s, d, a: checklist_incomplete(s.checklist)),
    ("dormant", lambda s, d, a: s.days_since_activity >= d),
    ("approaching_dormant", lambda s, d, a: s.days_since_activity >= a),
    (
        "waiting_on_maintainer",
        lambda s, d, a: s.review_decision == "approved" and s.ci_status in ("passing", "unknown"),
    ),
    ("waiting", lambda s, d, a: s.ci_status == "pending"),
)


def classify(signals: PRSignals, dormant_days: int, approaching_days: int) -> str:
    for status, rule in STATUS_RULES:
        if rule(signals, dormant_days, approaching_days):
            return status
    return "healthy"


def status_rank(status: str) -> int:
    try:
        return STATUS_PRIORITY.index(status)
    except ValueError:
        return len(STATUS_PRIORITY)


def sort_by_status_priority(prs: list[TrackedPR]) -> list[TrackedPR]:
    """Most urgent first; ties keep oldest activity first."""
    return sorted(prs, key=lambda p: (status_rank(p.status), -p.days_since_activity, p.url))
