"""Issue search: prioritized phases over starred, trusted and GitHub-wide repos.

Phases:
  1. Starred repos (first 10)
  2. Repos at or above the trust threshold, minus those already searched
  3. General search, minus repos covered by phases 1-2

Repo-scoped phases OR up to five ``repo:`` qualifiers per query.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from .config import (
    HIGH_SCORE_REPOS_LIMIT,
    MAX_CONCURRENT_REQUESTS,
    RECOMMENDATION_ORDER,
    SEARCH_BATCH_SIZE,
    SEARCH_PRIORITY_ORDER,
    STARRED_MAX_PAGES,
    STARRED_REPOS_LIMIT,
)
from .fanout import bounded_fanout
from .github_client import GitHubAPIError
from .models import IssueCandidate
from .tracker import StateManager
from .utils import days_between, parse_iso, repo_from_api_url, utcnow
from .vetting import IssueVetter

log = logging.getLogger(__name__)


def build_base_query(languages: list[str], labels: list[str]) -> str:
    parts = ["is:issue", "is:open"]
    parts += [f'label:"{label}"' for label in labels]
    parts += [f"language:{lang}" for lang in languages]
    parts.append("no:assignee")
    return " ".join(parts)


def batch_repos(repos: list[str], size: int = SEARCH_BATCH_SIZE) -> list[list[str]]:
    return [repos[i:i + size] for i in range(0, len(repos), size)]


def sort_candidates(candidates: list[IssueCandidate]) -> list[IssueCandidate]:
    return sorted(
        candidates,
        key=lambda c: (
            SEARCH_PRIORITY_ORDER.get(c.search_priority, len(SEARCH_PRIORITY_ORDER)),
            RECOMMENDATION_ORDER.get(c.recommendation, len(RECOMMENDATION_ORDER)),
        ),
    )


class IssueSearch:
    """Fills up to ``max_results`` vetted candidates, one phase at a time."""

    def __init__(self, client, manager: StateManager, vetter: IssueVetter | None = None):
        self.client = client
        self.manager = manager
        self.vetter = vetter or IssueVetter(client, manager)

    # ── Starred repos ────────────────────────────────────────────

    async def fetch_starred_repos(self) -> list[str]:
        try:
            repos = await self.client.list_starred_repos(max_pages=STARRED_MAX_PAGES)
        except GitHubAPIError as exc:
            cached = self.manager.config.starred_repos
            log.warning(
                "Failed to fetch starred repositories (%s); using %d cached repos",
                exc, len(cached),
            )
            return list(cached)
        log.info("Fetched %d starred repositories", len(repos))
        self.manager.set_starred_repos(repos)
        return repos

    async def starred_repos(self) -> list[str]:
        if self.manager.starred_repos_stale():
            return await self.fetch_starred_repos()
        return list(self.manager.config.starred_repos)

    # ── Search ───────────────────────────────────────────────────

    async def search_issues(
        self,
        max_results: int = 10,
        *,
        languages: list[str] | None = None,
        labels: list[str] | None = None,
        now: datetime | None = None,
    ) -> list[IssueCandidate]:
        config = self.manager.config
        base_query = build_base_query(languages or config.languages, labels or config.labels)
        now = now or utcnow()

        starred = await self.starred_repos()
        starred_set = set(starred)
        high = self.manager.high_scoring_repos()
        high_set = set(high)
        low = set(self.manager.low_scoring_repos())
        excluded = set(config.exclude_repos)
        tracked = self.manager.tracked_issue_urls()
        seen_urls: set[str] = set()
        max_age = config.max_issue_age_days

        def keep(item: dict) -> bool:
            url = item.get("html_url", "")
            if url in tracked or url in seen_urls or "pull_request" in item:
                return False
            repo = repo_from_api_url(item.get("repository_url", ""))
            if repo in excluded or repo in low:
                return False
            updated = parse_iso(item.get("updated_at"))
            return updated is None or days_between(updated, now) <= max_age

        candidates: list[IssueCandidate] = []
        # shared by every vetting task so outstanding lookups stay bounded
        slots = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)

        def remaining() -> int:
            return max_results - len(candidates)

        async def vet_many(urls: list[str], limit: int, priority: str) -> list[IssueCandidate]:
            found: list[IssueCandidate] = []

            def on_result(url: str, candidate: IssueCandidate) -> None:
                if len(found) < limit and url not in seen_urls:
                    candidate.search_priority = priority
                    seen_urls.add(url)
                    found.append(candidate)

            def on_error(url: str, exc: Exception) -> None:
                log.warning("Error vetting issue %s: %s", url, exc)

            await bounded_fanout(
                urls, lambda url: self.vetter.vet_issue(url, slots),
                limit=MAX_CONCURRENT_REQUESTS,
                on_result=on_result, on_error=on_error,
                should_stop=lambda: len(found) >= limit,
            )
            return found

        async def search_in_repos(repos: list[str], priority: str) -> None:
            for batch in batch_repos(repos):
                if remaining() <= 0:
                    break
                query = f"{base_query} ({' OR '.join(f'repo:{r}' for r in batch)})"
                try:
                    data = await self.client.search_issues(
                        query, per_page=min(30, remaining() * 3), sort="created",
                    )
                except GitHubAPIError as exc:
                    log.warning("Search failed for batch [%s]: %s", ", ".join(batch), exc)
                    continue
                items = [i for i in data.get("items", []) if keep(i)]
                need = remaining()
                urls = [i["html_url"] for i in items[:need * 2]]
                candidates.extend(await vet_many(urls, need, priority))

        if starred and remaining() > 0:
            log.info("Phase 1: searching %d starred repos", min(len(starred), STARRED_REPOS_LIMIT))
            await search_in_repos(starred[:STARRED_REPOS_LIMIT], "starred")

        if remaining() > 0:
            pool = [r for r in high if r not in starred_set][:HIGH_SCORE_REPOS_LIMIT]
            if pool:
                log.info("Phase 2: searching %d high-scoring repos", len(pool))
                await search_in_repos(pool, "high_score")

        if remaining() > 0:
            log.info("Phase 3: general issue search")
            need = remaining()
            try:
                data = await self.client.search_issues(base_query, per_page=need * 3, sort="created")
            except GitHubAPIError as exc:
                log.warning("General issue search failed: %s", exc)
            else:
                seen_repos = {c.issue.repo for c in candidates}
                items = []
                for item in data.get("items", []):
                    if not keep(item):
                        continue
                    repo = repo_from_api_url(item.get("repository_url", ""))
                    if repo in starred_set or repo in high_set or repo in seen_repos:
                        continue
                    items.append(item)
                urls = [i["html_url"] for i in items[:need * 2]]
                candidates.extend(await vet_many(urls, need, "normal"))

        log.debug("Guidelines cache: %s", self.vetter.guidelines_cache.stats())
        if not candidates:
            raise LookupError(
                "No issue candidates found across all search phases. "
                "Try adjusting languages or labels."
            )
        return sort_candidates(candidates)[:max_results]
