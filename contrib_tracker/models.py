"""Entities persisted in the state document and the ephemeral results built from remote data.

Persisted records serialise to camelCase JSON keys (``activePRs``, ``repoScores``,
``mergedPRCount`` ...) so documents written by earlier schema revisions stay readable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from typing import Any, Callable

from .config import BASE_REPO_SCORE
from .utils import now_iso

_CAMEL_SPLIT = re.compile(r"_([a-z])")


def _camel(name: str) -> str:
    return _CAMEL_SPLIT.sub(lambda m: m.group(1).upper(), name)


class _Record:
    """Dataclass mixin: camelCase dict conversion with per-class overrides."""

    _aliases: dict[str, str] = {}
    _nested: dict[str, Callable[[Any], Any]] = {}

    @classmethod
    def _key(cls, name: str) -> str:
        return cls._aliases.get(name) or _camel(name)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            out[self._key(f.name)] = _dump(getattr(self, f.name))
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        if not isinstance(data, dict):
            raise TypeError(f"{cls.__name__} expects an object, got {type(data).__name__}")
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            key = cls._key(f.name)
            if key not in data:
                continue
            value = data[key]
            convert = cls._nested.get(f.name)
            kwargs[f.name] = convert(value) if convert and value is not None else value
        return cls(**kwargs)


def _dump(value: Any) -> Any:
    if isinstance(value, _Record):
        return value.to_dict()
    if isinstance(value, list):
        return [_dump(v) for v in value]
    if isinstance(value, dict):
        return {k: _dump(v) for k, v in value.items()}
    return value


# ── Pull requests ────────────────────────────────────────────


@dataclass
class ChecklistStats(_Record):
    checked: int = 0
    total: int = 0


@dataclass
class MaintainerComment(_Record):
    author: str = ""
    body: str = ""
    created_at: str = ""


@dataclass
class CIResult:
    status: str  # failing | pending | passing | unknown
    failing_check_names: list[str] = field(default_factory=list)


@dataclass
class TrackedPR(_Record):
    url: str
    repo: str = ""
    number: int = 0
    title: str = ""
    id: int = 0

    # lifecycle on the host: open | draft | merged | closed
    state: str = "open"
    # classified status, see config.STATUS_PRIORITY
    status: str = "healthy"

    created_at: str = ""
    updated_at: str = ""
    last_checked: str = ""
    last_activity_at: str = ""
    merged_at: str | None = None
    closed_at: str | None = None
    days_since_activity: int = 0

    ci_status: str = "unknown"
    failing_check_names: list[str] = field(default_factory=list)
    has_merge_conflict: bool = False
    review_decision: str = "unknown"
    has_unresponded_comment: bool = False
    has_unread_comments: bool = False
    last_maintainer_comment: MaintainerComment | None = None
    checklist_stats: ChecklistStats | None = None
    maintainer_action_hints: list[str] = field(default_factory=list)

    review_comment_count: int = 0
    commit_count: int = 0
    linked_issue_number: int | None = None

    _nested = {
        "last_maintainer_comment": MaintainerComment.from_dict,
        "checklist_stats": ChecklistStats.from_dict,
    }


@dataclass
class FetchFailure:
    url: str
    error: str
    is_dormant: bool = False


# ── Issues ───────────────────────────────────────────────────


@dataclass
class ContributionGuidelines(_Record):
    branch_naming_convention: str | None = None
    commit_message_format: str | None = None
    test_framework: str | None = None
    linter: str | None = None
    formatter: str | None = None
    cla_required: bool = False
    raw_content: str = ""
    source_path: str = ""


@dataclass
class VettingChecks(_Record):
    no_existing_pr: bool = True
    not_claimed: bool = True
    project_active: bool = True
    clear_requirements: bool = False
    contribution_guidelines_found: bool = False

    _aliases = {"no_existing_pr": "noExistingPR"}


@dataclass
class IssueVettingResult(_Record):
    passed_all_checks: bool = False
    checks: VettingChecks = field(default_factory=VettingChecks)
    contribution_guidelines: ContributionGuidelines | None = None
    notes: list[str] = field(default_factory=list)

    _nested = {
        "checks": VettingChecks.from_dict,
        "contribution_guidelines": ContributionGuidelines.from_dict,
    }


@dataclass
class TrackedIssue(_Record):
    url: str
    repo: str = ""
    number: int = 0
    title: str = ""
    id: int = 0
    # candidate | claimed | in_progress | pr_submitted
    status: str = "candidate"
    labels: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    vetted: bool = False
    vetting_result: IssueVettingResult | None = None
    linked_pr_number: int | None = None

    _aliases = {"linked_pr_number": "linkedPRNumber"}
    _nested = {"vetting_result": IssueVettingResult.from_dict}


@dataclass
class ProjectHealth:
    repo: str
    last_commit_at: str = ""
    days_since_last_commit: int = 999
    open_issues_count: int = 0
    ci_status: str = "unknown"  # passing | failing | unknown
    is_active: bool = False
    check_failed: bool = False
    failure_reason: str = ""


@dataclass
class IssueCandidate:
    issue: TrackedIssue
    vetting_result: IssueVettingResult
    project_health: ProjectHealth
    recommendation: str  # approve | needs_review | skip
    viability_score: int
    search_priority: str = "normal"  # starred | high_score | normal
    reasons_to_approve: list[str] = field(default_factory=list)
    reasons_to_skip: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "issue": self.issue.to_dict(),
            "recommendation": self.recommendation,
            "viabilityScore": self.viability_score,
            "searchPriority": self.search_priority,
            "reasonsToApprove": list(self.reasons_to_approve),
            "reasonsToSkip": list(self.reasons_to_skip),
            "projectHealth": {
                "repo": self.project_health.repo,
                "lastCommitAt": self.project_health.last_commit_at,
                "daysSinceLastCommit": self.project_health.days_since_last_commit,
                "openIssuesCount": self.project_health.open_issues_count,
                "ciStatus": self.project_health.ci_status,
                "isActive": self.project_health.is_active,
            },
        }


# ── Repository trust ─────────────────────────────────────────


@dataclass
class RepoSignals(_Record):
    has_active_maintainers: bool = True
    is_responsive: bool = False
    has_hostile_comments: bool = False


@dataclass
class RepoScore(_Record):
    repo: str
    score: int = BASE_REPO_SCORE
    merged_pr_count: int = 0
    closed_without_merge_count: int = 0
    avg_response_days: float | None = None
    last_merged_at: str | None = None
    last_evaluated_at: str = field(default_factory=now_iso)
    signals: RepoSignals = field(default_factory=RepoSignals)

    _aliases = {"merged_pr_count": "mergedPRCount"}
    _nested = {"signals": RepoSignals.from_dict}


# ── Events, config, document ─────────────────────────────────


@dataclass
class StateEvent(_Record):
    id: str
    type: str
    at: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentConfig(_Record):
    setup_complete: bool = False
    setup_completed_at: str | None = None
    max_active_prs: int = 10
    dormant_threshold_days: int = 30
    approaching_dormant_days: int = 25
    max_issue_age_days: int = 90
    languages: list[str] = field(default_factory=lambda: ["typescript", "javascript"])
    labels: list[str] = field(default_factory=lambda: ["good first issue", "help wanted"])
    exclude_repos: list[str] = field(default_factory=list)
    trusted_projects: list[str] = field(default_factory=list)
    github_username: str = ""
    min_repo_score_threshold: int = 4
    starred_repos: list[str] = field(default_factory=list)
    starred_repos_last_fetched: str | None = None

    _aliases = {"max_active_prs": "maxActivePRs"}


def _pr_list(items: list) -> list[TrackedPR]:
    return [TrackedPR.from_dict(i) for i in items]


def _issue_list(items: list) -> list[TrackedIssue]:
    return [TrackedIssue.from_dict(i) for i in items]


def _score_map(items: dict) -> dict[str, RepoScore]:
    # insertion order of the persisted object is kept
    return {repo: RepoScore.from_dict({"repo": repo, **obj}) for repo, obj in items.items()}


def _event_list(items: list) -> list[StateEvent]:
    return [StateEvent.from_dict(i) for i in items]


@dataclass
class DailyDigest(_Record):
    generated_at: str = ""
    open_prs: list[TrackedPR] = field(default_factory=list)
    prs_needing_response: list[TrackedPR] = field(default_factory=list)
    ci_failing_prs: list[TrackedPR] = field(default_factory=list)
    merge_conflict_prs: list[TrackedPR] = field(default_factory=list)
    incomplete_checklist_prs: list[TrackedPR] = field(default_factory=list)
    approaching_dormant: list[TrackedPR] = field(default_factory=list)
    dormant_prs: list[TrackedPR] = field(default_factory=list)
    waiting_on_maintainer_prs: list[TrackedPR] = field(default_factory=list)
    healthy_prs: list[TrackedPR] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)

    _aliases = {
        "open_prs": "openPRs",
        "prs_needing_response": "prsNeedingResponse",
        "ci_failing_prs": "ciFailingPRs",
        "merge_conflict_prs": "mergeConflictPRs",
        "incomplete_checklist_prs": "incompleteChecklistPRs",
        "dormant_prs": "dormantPRs",
        "waiting_on_maintainer_prs": "waitingOnMaintainerPRs",
        "healthy_prs": "healthyPRs",
    }
    _nested = {
        name: _pr_list
        for name in (
            "open_prs", "prs_needing_response", "ci_failing_prs", "merge_conflict_prs",
            "incomplete_checklist_prs", "approaching_dormant", "dormant_prs",
            "waiting_on_maintainer_prs", "healthy_prs",
        )
    }


@dataclass
class StateDocument(_Record):
    version: int
    active_prs: list[TrackedPR] = field(default_factory=list)
    dormant_prs: list[TrackedPR] = field(default_factory=list)
    merged_prs: list[TrackedPR] = field(default_factory=list)
    closed_prs: list[TrackedPR] = field(default_factory=list)
    active_issues: list[TrackedIssue] = field(default_factory=list)
    repo_scores: dict[str, RepoScore] = field(default_factory=dict)
    events: list[StateEvent] = field(default_factory=list)
    config: AgentConfig = field(default_factory=AgentConfig)
    last_run_at: str = field(default_factory=now_iso)
    last_digest_at: str | None = None
    last_digest: DailyDigest | None = None

    _aliases = {
        "active_prs": "activePRs",
        "dormant_prs": "dormantPRs",
        "merged_prs": "mergedPRs",
        "closed_prs": "closedPRs",
    }
    _nested = {
        "active_prs": _pr_list,
        "dormant_prs": _pr_list,
        "merged_prs": _pr_list,
        "closed_prs": _pr_list,
        "active_issues": _issue_list,
        "repo_scores": _score_map,
        "events": _event_list,
        "config": AgentConfig.from_dict,
        "last_digest": DailyDigest.from_dict,
    }

    PR_BUCKETS = ("active_prs", "dormant_prs", "merged_prs", "closed_prs")
