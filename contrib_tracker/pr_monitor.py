"""PR monitor: fetch the user's PRs, classify them and reconcile the state buckets."""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime

from .classifier import (
    PRSignals,
    action_hints,
    aggregate_ci,
    analyze_checklist,
    classify,
    find_unresponded_comment,
    has_merge_conflict,
    review_decision,
    sort_by_status_priority,
)
from .config import CRITICAL_STATUSES
from .fanout import bounded_fanout
from .github_client import GitHubAPIError, NotFoundError
from .models import CIResult, DailyDigest, FetchFailure, TrackedPR
from .tracker import StateManager
from .utils import days_between, now_iso, parse_github_url, parse_iso, repo_from_api_url, utcnow

log = logging.getLogger(__name__)

_LINKED_ISSUE_RE = re.compile(
    r"\b(?:close[sd]?|fix(?:e[sd])?|resolve[sd]?)\s+#(\d+)", re.IGNORECASE,
)


@dataclass
class PRUpdate:
    url: str
    type: str  # tracked | merged | closed | dormant | reactivated
    message: str


def linked_issue_number(body: str | None) -> int | None:
    m = _LINKED_ISSUE_RE.search(body or "")
    return int(m.group(1)) if m else None


class PRMonitor:
    def __init__(self, client, manager: StateManager):
        self.client = client
        self.manager = manager

    # ── Single PR ────────────────────────────────────────────────

    async def _ci(self, owner: str, repo: str, sha: str) -> CIResult:
        try:
            combined = await self.client.get_combined_status(owner, repo, sha)
            runs = await self.client.list_check_runs(owner, repo, sha)
        except NotFoundError:
            log.debug("No CI data for %s/%s@%s", owner, repo, sha[:7])
            return CIResult(status="unknown")
        return aggregate_ci(combined, runs)

    async def fetch_pr(self, url: str, now: datetime | None = None) -> TrackedPR:
        """Fetch one PR and classify it. The PR itself must exist."""
        ref = parse_github_url(url)
        if ref is None or ref.kind != "pull":
            raise ValueError(f"Invalid PR URL: {url}")
        owner, repo, number = ref.owner, ref.repo, ref.number
        config = self.manager.config
        now = now or utcnow()

        pull = await self.client.get_pull(owner, repo, number)
        if pull.get("merged"):
            state = "merged"
        elif pull.get("state") == "closed":
            state = "closed"
        else:
            state = "draft" if pull.get("draft") else "open"

        updated_at = pull.get("updated_at") or ""
        updated = parse_iso(updated_at)
        pr = TrackedPR(
            url=url,
            repo=ref.full_name,
            number=number,
            title=pull.get("title", ""),
            id=pull.get("id", 0),
            state=state,
            created_at=pull.get("created_at") or "",
            updated_at=updated_at,
            last_checked=now.isoformat(),
            last_activity_at=updated_at,
            merged_at=pull.get("merged_at"),
            closed_at=pull.get("closed_at"),
            days_since_activity=days_between(updated, now) if updated else 0,
            review_comment_count=pull.get("review_comments", 0),
            commit_count=pull.get("commits", 0),
            linked_issue_number=linked_issue_number(pull.get("body")),
        )
        if state in ("merged", "closed"):
            return pr

        reviews = await self.client.list_reviews(owner, repo, number)
        comments = await self.client.list_issue_comments(owner, repo, number)
        ci = await self._ci(owner, repo, (pull.get("head") or {}).get("sha", ""))

        comment = find_unresponded_comment(comments, reviews, config.github_username)
        pr.ci_status = ci.status
        pr.failing_check_names = ci.failing_check_names
        pr.has_merge_conflict = has_merge_conflict(pull.get("mergeable"), pull.get("mergeable_state"))
        pr.review_decision = review_decision(reviews)
        pr.has_unresponded_comment = comment is not None
        pr.has_unread_comments = comment is not None
        pr.last_maintainer_comment = comment
        pr.maintainer_action_hints = action_hints(comment)
        pr.checklist_stats = analyze_checklist(pull.get("body"))
        pr.status = classify(
            PRSignals.from_pr(pr), config.dormant_threshold_days, config.approaching_dormant_days,
        )
        return pr

    # ── Batch fetch ──────────────────────────────────────────────

    async def _fetch_all(self, urls: list[str], dormant: set[str] = frozenset()):
        prs: list[TrackedPR] = []
        failures: list[FetchFailure] = []

        def on_error(url: str, exc: Exception) -> None:
            log.warning("Error checking PR %s: %s", url, exc)
            failures.append(FetchFailure(url=url, error=str(exc), is_dormant=url in dormant))

        await bounded_fanout(
            urls, self.fetch_pr,
            on_result=lambda url, pr: prs.append(pr),
            on_error=on_error,
        )
        if urls and len(failures) == len(urls):
            sample = "; ".join(f.error for f in failures[:3])
            raise GitHubAPIError(f"All {len(failures)} PR checks failed. Sample errors: {sample}")
        return prs, failures

    async def fetch_user_open_prs(self) -> tuple[list[TrackedPR], list[FetchFailure]]:
        """All open PRs authored by the configured user, most urgent first."""
        username = self.manager.require_username()
        data = await self.client.search_issues(
            f"is:pr is:open author:{username}", per_page=100, max_pages=3, sort="updated",
        )
        urls = [item["html_url"] for item in data.get("items", []) if item.get("html_url")]
        log.info("Found %d open PRs for @%s", len(urls), username)
        prs, failures = await self._fetch_all(urls)
        return sort_by_status_priority(prs), failures

    # ── Reconcile with state ─────────────────────────────────────

    def _store_open(self, pr: TrackedPR, updates: list[PRUpdate]) -> None:
        existing = self.manager.find_pr(pr.url)
        if existing is not None:
            # a comment already seen stays read
            prev = existing.last_maintainer_comment
            if prev is not None and pr.last_maintainer_comment is not None:
                if prev.created_at == pr.last_maintainer_comment.created_at:
                    pr.has_unread_comments = existing.has_unread_comments

        bucket = self.manager.bucket_of(pr.url)
        if bucket is None:
            self.manager.add_active_pr(pr)
            updates.append(PRUpdate(pr.url, "tracked", f"Tracking {pr.repo}#{pr.number}"))
            bucket = "active_prs"
        elif bucket == "dormant_prs" and pr.status != "dormant":
            self.manager.reactivate_pr(pr.url)
            updates.append(PRUpdate(pr.url, "reactivated", f"Dormant PR reactivated: {pr.repo}#{pr.number}"))
            bucket = "active_prs"

        fresh = {k: v for k, v in vars(pr).items() if k != "url"}
        if bucket == "dormant_prs":
            self.manager.update_dormant_pr(pr.url, **fresh)
        elif bucket == "active_prs":
            self.manager.update_active_pr(pr.url, **fresh)
            if pr.status == "dormant":
                self.manager.move_pr_to_dormant(pr.url)
                updates.append(PRUpdate(
                    pr.url, "dormant", f"PR dormant: {pr.repo}#{pr.number} ({pr.days_since_activity} days)",
                ))

    def _store_finished(self, pr: TrackedPR, updates: list[PRUpdate]) -> None:
        source = self.manager.bucket_of(pr.url)
        if source not in ("active_prs", "dormant_prs"):
            return
        if pr.state == "merged":
            self.manager.move_pr_to_merged(pr.url, source)
            updates.append(PRUpdate(pr.url, "merged", f"PR merged: {pr.repo}#{pr.number}"))
        elif pr.state == "closed":
            self.manager.move_pr_to_closed(pr.url, source)
            updates.append(PRUpdate(pr.url, "closed", f"PR closed: {pr.repo}#{pr.number}"))

    async def sync_open_prs(self) -> tuple[list[TrackedPR], list[PRUpdate], list[FetchFailure]]:
        """
        Refresh tracked PRs from the host:
        - open PRs are (re)classified into the active or dormant bucket
        - tracked PRs missing from the open set are re-fetched and moved to
          merged or closed when they finished
        """
        prs, failures = await self.fetch_user_open_prs()
        updates: list[PRUpdate] = []
        for pr in prs:
            self._store_open(pr, updates)

        open_urls = {pr.url for pr in prs}
        dormant = {pr.url for pr in self.manager.doc.dormant_prs}
        gone = [
            pr.url for pr in self.manager.doc.active_prs + self.manager.doc.dormant_prs
            if pr.url not in open_urls
        ]
        if gone:
            try:
                finished, more = await self._fetch_all(gone, dormant)
            except GitHubAPIError as exc:
                log.warning("Could not refresh %d PRs no longer open: %s", len(gone), exc)
                finished, more = [], [FetchFailure(url, str(exc), url in dormant) for url in gone]
            failures.extend(more)
            for pr in finished:
                self._store_finished(pr, updates)
        return prs, updates, failures

    # ── Merged counts ────────────────────────────────────────────

    async def fetch_user_merged_pr_counts(self) -> dict[str, int]:
        username = self.manager.require_username()
        data = await self.client.search_issues(
            f"is:pr is:merged author:{username}", per_page=100, max_pages=10,
        )
        counts = Counter(
            repo_from_api_url(item.get("repository_url", "")) for item in data.get("items", [])
        )
        return dict(counts)

    def apply_merged_counts(self, counts: dict[str, int]) -> None:
        for repo, count in counts.items():
            self.manager.update_repo_score(repo, merged_pr_count=count)
        for repo in list(self.manager.doc.repo_scores):
            if repo not in counts:
                self.manager.update_repo_score(repo, merged_pr_count=0)

    # ── Digest, capacity ─────────────────────────────────────────

    def generate_digest(self, prs: list[TrackedPR]) -> DailyDigest:
        by_status: dict[str, list[TrackedPR]] = {}
        for pr in sort_by_status_priority(prs):
            by_status.setdefault(pr.status, []).append(pr)

        attention = sum(
            len(by_status.get(s, []))
            for s in ("needs_response", "failing_ci", "merge_conflict", "incomplete_checklist")
        )
        stats = self.manager.stats()
        merged_all_time = sum(rs.merged_pr_count for rs in self.manager.doc.repo_scores.values())
        return DailyDigest(
            generated_at=now_iso(),
            open_prs=list(prs),
            prs_needing_response=by_status.get("needs_response", []),
            ci_failing_prs=by_status.get("failing_ci", []),
            merge_conflict_prs=by_status.get("merge_conflict", []),
            incomplete_checklist_prs=by_status.get("incomplete_checklist", []),
            approaching_dormant=by_status.get("approaching_dormant", []),
            dormant_prs=by_status.get("dormant", []),
            waiting_on_maintainer_prs=by_status.get("waiting_on_maintainer", []),
            healthy_prs=by_status.get("healthy", []) + by_status.get("waiting", []),
            summary={
                "totalActivePRs": len(prs),
                "totalNeedingAttention": attention,
                "totalMergedAllTime": merged_all_time,
                "mergeRate": stats["mergeRate"],
            },
        )

    def record_digest(self, digest: DailyDigest) -> None:
        self.manager.doc.last_digest = digest
        self.manager.doc.last_digest_at = digest.generated_at
        self.manager.events.append("daily_check", dict(digest.summary))

    def assess_capacity(self, prs: list[TrackedPR]) -> dict:
        limit = self.manager.config.max_active_prs
        critical = [pr for pr in prs if pr.status in CRITICAL_STATUSES]
        has_capacity = len(prs) < limit and not critical
        if len(prs) >= limit:
            reason = f"At PR limit ({len(prs)}/{limit}); finish or close existing PRs first"
        elif critical:
            reason = f"{len(critical)} PR(s) need attention before starting new work"
        else:
            reason = f"Capacity available ({len(prs)}/{limit} active PRs)"
        return {
            "hasCapacity": has_capacity,
            "activePRCount": len(prs),
            "maxActivePRs": limit,
            "criticalIssues": [pr.url for pr in critical],
            "reason": reason,
        }
