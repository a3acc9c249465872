"""Issue vetting: concurrent checks on one issue, recommendation and viability."""

from __future__ import annotations

import asyncio
import logging

from .cache import CacheStore
from .config import GUIDELINE_FILES, HIGH_PRIORITY_REPO_SCORE, INACTIVE_AFTER_DAYS, MAX_CLAIM_COMMENTS
from .github_client import GitHubAPIError, NotFoundError
from .models import (
    ContributionGuidelines,
    IssueCandidate,
    IssueVettingResult,
    ProjectHealth,
    TrackedIssue,
    VettingChecks,
)
from .scoring import viability_score
from .text_rules import analyze_requirements, is_claimed, parse_contribution_guidelines
from .tracker import StateManager
from .utils import days_between, parse_github_url, parse_iso

log = logging.getLogger(__name__)

_MISS = object()


def _label_names(labels: list) -> list[str]:
    return [l if isinstance(l, str) else (l.get("name") or "") for l in labels or []]


async def _in_slot(slots: asyncio.Semaphore | None, coro):
    if slots is None:
        return await coro
    async with slots:
        return await coro


def recommend(checks: VettingChecks, reasons_to_skip: list[str]) -> str:
    if checks.no_existing_pr and checks.not_claimed and checks.project_active and checks.clear_requirements:
        return "approve"
    if len(reasons_to_skip) > 2:
        return "skip"
    return "needs_review"


class IssueVetter:
    """Runs the vetting checks against the remote host for one issue at a time."""

    def __init__(self, client, manager: StateManager, guidelines_cache: CacheStore | None = None):
        self.client = client
        self.manager = manager
        self.guidelines_cache = guidelines_cache if guidelines_cache is not None else CacheStore()

    # ── Checks ───────────────────────────────────────────────────

    async def check_no_existing_pr(self, owner: str, repo: str, number: int) -> bool:
        try:
            found = await self.client.search_issues(f"repo:{owner}/{repo} is:pr {number}", per_page=5)
            timeline = await self.client.list_issue_timeline(owner, repo, number)
        except GitHubAPIError as exc:
            log.warning(
                "Could not check for existing PRs on %s/%s#%d (%s), assuming none",
                owner, repo, number, exc,
            )
            return True
        linked = [
            e for e in timeline
            if e.get("event") == "cross-referenced"
            and ((e.get("source") or {}).get("issue") or {}).get("pull_request")
        ]
        return found.get("total_count", 0) == 0 and not linked

    async def check_not_claimed(self, owner: str, repo: str, number: int, comment_count: int) -> bool:
        if comment_count == 0:
            return True
        try:
            comments = await self.client.list_issue_comments(owner, repo, number)
        except GitHubAPIError as exc:
            log.warning(
                "Could not check claim status on %s/%s#%d (%s), assuming not claimed",
                owner, repo, number, exc,
            )
            return True
        return not is_claimed(comments[-MAX_CLAIM_COMMENTS:])

    async def check_project_health(self, owner: str, repo: str) -> ProjectHealth:
        full_name = f"{owner}/{repo}"
        try:
            repo_data = await self.client.get_repo(owner, repo)
            commits = await self.client.list_commits(owner, repo, per_page=1)
        except GitHubAPIError as exc:
            log.warning("Project health check failed for %s: %s", full_name, exc)
            return ProjectHealth(repo=full_name, check_failed=True, failure_reason=str(exc))

        last_commit_at = ""
        if commits:
            last_commit_at = ((commits[0].get("commit") or {}).get("author") or {}).get("date") or ""
        last_commit_at = last_commit_at or repo_data.get("pushed_at") or ""
        last = parse_iso(last_commit_at)
        days = days_between(last) if last else 999

        ci_status = "unknown"
        try:
            if await self.client.count_workflows(owner, repo) > 0:
                ci_status = "passing"
        except GitHubAPIError as exc:
            log.warning("Could not list workflows for %s: %s", full_name, exc)

        return ProjectHealth(
            repo=full_name,
            last_commit_at=last_commit_at,
            days_since_last_commit=days,
            open_issues_count=repo_data.get("open_issues_count", 0),
            ci_status=ci_status,
            is_active=days < INACTIVE_AFTER_DAYS,
        )

    async def fetch_guidelines(self, owner: str, repo: str) -> ContributionGuidelines | None:
        key = f"{owner}/{repo}"
        cached = self.guidelines_cache.get(key, _MISS)
        if cached is not _MISS:
            return cached

        guidelines = None
        for path in GUIDELINE_FILES:
            try:
                content = await self.client.get_file_content(owner, repo, path)
            except NotFoundError:
                continue
            except GitHubAPIError as exc:
                log.warning("Unexpected error fetching %s from %s: %s", path, key, exc)
                continue
            if content is not None:
                guidelines = parse_contribution_guidelines(content, source_path=path)
                break

        # negative results are cached too
        self.guidelines_cache.set(key, guidelines)
        return guidelines

    # ── Vetting ──────────────────────────────────────────────────

    def search_priority(self, repo: str) -> str:
        if repo in self.manager.config.starred_repos:
            return "starred"
        entry = self.manager.get_repo_score(repo)
        if entry is not None and entry.score >= HIGH_PRIORITY_REPO_SCORE:
            return "high_score"
        return "normal"

    async def vet_issue(self, url: str, slots: asyncio.Semaphore | None = None) -> IssueCandidate:
        """
        Vet one issue. ``slots`` is shared by concurrent callers so that their
        remote lookups together stay within its limit.
        """
        ref = parse_github_url(url)
        if ref is None or ref.kind != "issues":
            raise ValueError(f"Invalid issue URL: {url}")
        owner, repo, number = ref.owner, ref.repo, ref.number
        full_name = ref.full_name

        gh_issue = await _in_slot(slots, self.client.get_issue(owner, repo, number))

        no_pr, not_claimed, health, guidelines = await asyncio.gather(
            _in_slot(slots, self.check_no_existing_pr(owner, repo, number)),
            _in_slot(slots, self.check_not_claimed(owner, repo, number, gh_issue.get("comments", 0))),
            _in_slot(slots, self.check_project_health(owner, repo)),
            _in_slot(slots, self.fetch_guidelines(owner, repo)),
        )
        clear = analyze_requirements(gh_issue.get("body"))

        checks = VettingChecks(
            no_existing_pr=no_pr,
            not_claimed=not_claimed,
            project_active=health.is_active,
            clear_requirements=clear,
            contribution_guidelines_found=guidelines is not None,
        )
        notes = []
        if not no_pr:
            notes.append("Existing PR found for this issue")
        if not not_claimed:
            notes.append("Issue appears to be claimed by someone")
        if not health.is_active:
            notes.append("Project may be inactive")
        if health.check_failed:
            notes.append(f"Project health check failed: {health.failure_reason}")
        if not clear:
            notes.append("Issue requirements are unclear")
        if guidelines is None:
            notes.append("No CONTRIBUTING.md found")

        result = IssueVettingResult(
            passed_all_checks=no_pr and not_claimed and health.is_active and clear,
            checks=checks,
            contribution_guidelines=guidelines,
            notes=notes,
        )

        reasons_to_skip = []
        if not no_pr:
            reasons_to_skip.append("Has existing PR")
        if not not_claimed:
            reasons_to_skip.append("Already claimed")
        if not health.is_active:
            reasons_to_skip.append("Inactive project")
        if not clear:
            reasons_to_skip.append("Unclear requirements")

        reasons_to_approve = []
        if no_pr:
            reasons_to_approve.append("No existing PR")
        if not_claimed:
            reasons_to_approve.append("Not claimed")
        if health.is_active:
            reasons_to_approve.append("Active project")
        if clear:
            reasons_to_approve.append("Clear requirements")
        if guidelines is not None:
            reasons_to_approve.append("Has contribution guidelines")
        if full_name in self.manager.config.trusted_projects:
            reasons_to_approve.append("Trusted project (previous PR merged)")

        entry = self.manager.get_repo_score(full_name)
        score = viability_score(
            repo_score=entry.score if entry is not None else None,
            has_existing_pr=not no_pr,
            is_claimed=not not_claimed,
            clear_requirements=clear,
            has_guidelines=guidelines is not None,
            issue_updated_at=gh_issue.get("updated_at", ""),
        )

        issue = TrackedIssue(
            url=url,
            repo=full_name,
            number=number,
            title=gh_issue.get("title", ""),
            id=gh_issue.get("id", 0),
            labels=_label_names(gh_issue.get("labels")),
            created_at=gh_issue.get("created_at", ""),
            updated_at=gh_issue.get("updated_at", ""),
            vetted=True,
            vetting_result=result,
        )
        return IssueCandidate(
            issue=issue,
            vetting_result=result,
            project_health=health,
            recommendation=recommend(checks, reasons_to_skip),
            viability_score=score,
            search_priority=self.search_priority(full_name),
            reasons_to_approve=reasons_to_approve,
            reasons_to_skip=reasons_to_skip,
        )
