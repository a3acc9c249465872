"""State manager: an explicit handle over one loaded state document.

Every mutation goes through here so the bucket invariant holds: a PR url lives
in exactly one of active / dormant / merged / closed at any time.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from datetime import timedelta
from typing import Any

from .config import LOW_TRUST_THRESHOLD, STARRED_STALE_HOURS
from .events import EventLog
from .models import AgentConfig, RepoScore, RepoSignals, StateDocument, TrackedIssue, TrackedPR
from .scoring import high_scoring_repos, low_scoring_repos, rescore
from .state import StateStore
from .utils import now_iso, parse_iso, utcnow

log = logging.getLogger(__name__)

_CONFIG_KEYS = {f.name for f in fields(AgentConfig)}
_SCORE_KEYS = {"merged_pr_count", "closed_without_merge_count", "avg_response_days", "last_merged_at"}
_SIGNAL_KEYS = {f.name for f in fields(RepoSignals)}


class ConfigurationError(ValueError):
    pass


class StateManager:
    """Load, mutate and persist the tracker state."""

    def __init__(self, doc: StateDocument, store: StateStore | None = None):
        self.doc = doc
        self.store = store
        self.events = EventLog(doc.events)

    @classmethod
    def open(cls, store: StateStore | None = None) -> "StateManager":
        store = store or StateStore()
        return cls(store.load(), store)

    def save(self) -> None:
        if self.store is None:
            raise RuntimeError("StateManager has no store to save to")
        self.store.save(self.doc)

    @property
    def config(self) -> AgentConfig:
        return self.doc.config

    # ── Configuration ────────────────────────────────────────────

    def update_config(self, **changes: Any) -> AgentConfig:
        unknown = set(changes) - _CONFIG_KEYS
        if unknown:
            raise KeyError(f"Unknown config key(s): {', '.join(sorted(unknown))}")
        for key, value in changes.items():
            setattr(self.doc.config, key, value)
        return self.doc.config

    def require_username(self) -> str:
        username = self.doc.config.github_username
        if not username:
            raise ConfigurationError(
                "No GitHub username configured. Run: contrib-tracker config username <login>"
            )
        return username

    def mark_setup_complete(self) -> None:
        self.doc.config.setup_complete = True
        self.doc.config.setup_completed_at = now_iso()

    def add_trusted_project(self, repo: str) -> None:
        if repo not in self.doc.config.trusted_projects:
            self.doc.config.trusted_projects.append(repo)
            log.debug("Added trusted project %s", repo)

    # ── Starred repositories ─────────────────────────────────────

    def set_starred_repos(self, repos: list[str]) -> None:
        self.doc.config.starred_repos = list(repos)
        self.doc.config.starred_repos_last_fetched = now_iso()

    def starred_repos_stale(self) -> bool:
        fetched = parse_iso(self.doc.config.starred_repos_last_fetched)
        if fetched is None:
            return True
        return utcnow() - fetched > timedelta(hours=STARRED_STALE_HOURS)

    # ── Pull requests ────────────────────────────────────────────

    def _bucket(self, name: str) -> list[TrackedPR]:
        return getattr(self.doc, name)

    def _locate(self, url: str) -> tuple[str, int] | None:
        for name in StateDocument.PR_BUCKETS:
            for i, pr in enumerate(self._bucket(name)):
                if pr.url == url:
                    return name, i
        return None

    def find_pr(self, url: str) -> TrackedPR | None:
        hit = self._locate(url)
        return self._bucket(hit[0])[hit[1]] if hit else None

    def bucket_of(self, url: str) -> str | None:
        hit = self._locate(url)
        return hit[0] if hit else None

    def add_active_pr(self, pr: TrackedPR) -> bool:
        """Start tracking a PR. False when its url is already tracked anywhere."""
        if self._locate(pr.url) is not None:
            log.debug("PR already tracked: %s", pr.url)
            return False
        self.doc.active_prs.append(pr)
        self.events.append("pr_tracked", {"url": pr.url, "repo": pr.repo})
        return True

    def _update_in(self, bucket: str, url: str, changes: dict[str, Any]) -> TrackedPR | None:
        for pr in self._bucket(bucket):
            if pr.url == url:
                for key, value in changes.items():
                    setattr(pr, key, value)
                return pr
        return None

    def update_active_pr(self, url: str, **changes: Any) -> TrackedPR | None:
        return self._update_in("active_prs", url, changes)

    def update_dormant_pr(self, url: str, **changes: Any) -> TrackedPR | None:
        return self._update_in("dormant_prs", url, changes)

    def _move(self, url: str, source: str, target: str) -> TrackedPR | None:
        bucket = self._bucket(source)
        for i, pr in enumerate(bucket):
            if pr.url == url:
                moved = bucket.pop(i)
                self._bucket(target).append(moved)
                log.info("Moved %s from %s to %s", url, source, target)
                return moved
        return None

    def move_pr_to_merged(self, url: str, source: str = "active_prs") -> TrackedPR | None:
        pr = self._move(url, source, "merged_prs")
        if pr is None:
            return None
        pr.state = "merged"
        pr.merged_at = pr.merged_at or now_iso()
        self.events.append("pr_merged", {"url": url, "repo": pr.repo})
        self.increment_merged_count(pr.repo)
        self.add_trusted_project(pr.repo)
        return pr

    def move_pr_to_closed(self, url: str, source: str = "active_prs") -> TrackedPR | None:
        pr = self._move(url, source, "closed_prs")
        if pr is None:
            return None
        pr.state = "closed"
        pr.closed_at = pr.closed_at or now_iso()
        self.events.append("pr_closed", {"url": url, "repo": pr.repo})
        self.increment_closed_count(pr.repo)
        return pr

    def move_pr_to_dormant(self, url: str) -> TrackedPR | None:
        pr = self._move(url, "active_prs", "dormant_prs")
        if pr is not None:
            pr.status = "dormant"
            self.events.append(
                "pr_dormant", {"url": url, "repo": pr.repo, "days": pr.days_since_activity},
            )
        return pr

    def reactivate_pr(self, url: str) -> TrackedPR | None:
        return self._move(url, "dormant_prs", "active_prs")

    def untrack_pr(self, url: str) -> bool:
        for name in ("active_prs", "dormant_prs"):
            bucket = self._bucket(name)
            for i, pr in enumerate(bucket):
                if pr.url == url:
                    del bucket[i]
                    log.info("Untracked %s", url)
                    return True
        return False

    def mark_pr_read(self, url: str) -> bool:
        pr = self.find_pr(url)
        if pr is None:
            return False
        pr.has_unread_comments = False
        return True

    def mark_all_prs_read(self) -> int:
        count = 0
        for pr in self.doc.active_prs + self.doc.dormant_prs:
            if pr.has_unread_comments:
                pr.has_unread_comments = False
                count += 1
        return count

    # ── Issues ───────────────────────────────────────────────────

    def find_issue(self, url: str) -> TrackedIssue | None:
        return next((i for i in self.doc.active_issues if i.url == url), None)

    def add_issue(self, issue: TrackedIssue) -> bool:
        if self.find_issue(issue.url) is not None:
            return False
        self.doc.active_issues.append(issue)
        return True

    def update_issue(self, url: str, **changes: Any) -> TrackedIssue | None:
        issue = self.find_issue(url)
        if issue is not None:
            for key, value in changes.items():
                setattr(issue, key, value)
        return issue

    def remove_issue(self, url: str) -> bool:
        issue = self.find_issue(url)
        if issue is None:
            return False
        self.doc.active_issues.remove(issue)
        return True

    def link_issue_to_pr(self, issue_url: str, pr_number: int) -> TrackedIssue | None:
        return self.update_issue(issue_url, linked_pr_number=pr_number, status="pr_submitted")

    def tracked_issue_urls(self) -> set[str]:
        return {i.url for i in self.doc.active_issues}

    # ── Repository scores ────────────────────────────────────────

    def get_repo_score(self, repo: str) -> RepoScore | None:
        return self.doc.repo_scores.get(repo)

    def _score_entry(self, repo: str) -> RepoScore:
        entry = self.doc.repo_scores.get(repo)
        if entry is None:
            entry = self.doc.repo_scores[repo] = RepoScore(repo=repo)
        return entry

    def update_repo_score(self, repo: str, **partial: Any) -> RepoScore:
        """Apply a partial update of counts and signals, then recompute the score.

        ``score`` itself is not accepted: it is always derived.
        """
        unknown = set(partial) - _SCORE_KEYS - _SIGNAL_KEYS
        if unknown:
            raise KeyError(f"Unknown repo score field(s): {', '.join(sorted(unknown))}")
        entry = self._score_entry(repo)
        for key, value in partial.items():
            target = entry.signals if key in _SIGNAL_KEYS else entry
            setattr(target, key, value)
        rescore(entry)
        log.debug("Repo %s score -> %d", repo, entry.score)
        return entry

    def increment_merged_count(self, repo: str) -> RepoScore:
        entry = self._score_entry(repo)
        entry.merged_pr_count += 1
        entry.last_merged_at = now_iso()
        return rescore(entry)

    def increment_closed_count(self, repo: str) -> RepoScore:
        entry = self._score_entry(repo)
        entry.closed_without_merge_count += 1
        return rescore(entry)

    def mark_repo_hostile(self, repo: str) -> RepoScore:
        entry = self._score_entry(repo)
        entry.signals.has_hostile_comments = True
        return rescore(entry)

    def high_scoring_repos(self, threshold: int | None = None) -> list[str]:
        if threshold is None:
            threshold = self.doc.config.min_repo_score_threshold
        return high_scoring_repos(self.doc.repo_scores, threshold)

    def low_scoring_repos(self, threshold: int = LOW_TRUST_THRESHOLD) -> list[str]:
        return low_scoring_repos(self.doc.repo_scores, threshold)

    # ── Statistics ───────────────────────────────────────────────

    def stats(self) -> dict[str, Any]:
        merged = len(self.doc.merged_prs)
        closed = len(self.doc.closed_prs)
        finished = merged + closed
        rate = merged / finished * 100 if finished else 0.0
        return {
            "activePRs": len(self.doc.active_prs),
            "dormantPRs": len(self.doc.dormant_prs),
            "mergedPRs": merged,
            "closedPRs": closed,
            "activeIssues": len(self.doc.active_issues),
            "trustedProjects": len(self.doc.config.trusted_projects),
            "mergeRate": f"{rate:.1f}%",
            "totalTracked": len(self.doc.active_prs) + len(self.doc.dormant_prs) + finished,
            "needsResponse": sum(
                1 for pr in self.doc.active_prs if pr.status == "needs_response"
            ),
        }
