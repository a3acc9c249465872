"""Async GitHub REST client: the remote host every engine talks to.

Owns transport, auth headers, pagination and rate-limit backoff. Callers only
see parsed JSON or one of the typed errors below.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any

import aiohttp

from .config import MAX_CONCURRENT_REQUESTS

log = logging.getLogger(__name__)

API = "https://api.github.com"
UA = "contrib-tracker"
DEFAULT_PER_PAGE = 100
MAX_RETRIES = 3


class GitHubAPIError(Exception):
    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class AuthenticationError(GitHubAPIError):
    pass


class RateLimitError(GitHubAPIError):
    pass


class NotFoundError(GitHubAPIError):
    pass


class GitHubClient:
    """Async GitHub client with retry and rate-limit handling."""

    def __init__(
        self,
        token: str | None,
        *,
        base_url: str = API,
        concurrency: int = MAX_CONCURRENT_REQUESTS,
        timeout: int = 30,
    ):
        if not token:
            raise AuthenticationError(
                "GitHub authentication required. Set GITHUB_TOKEN or run 'gh auth login'."
            )
        self.token = token
        self.base_url = base_url
        self._timeout = timeout
        self._sem = asyncio.Semaphore(concurrency)
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "GitHubClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": UA,
                "X-GitHub-Api-Version": "2022-11-28",
            })
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    # ── Transport ────────────────────────────────────────────────

    @staticmethod
    def _backoff_seconds(headers: dict, attempt: int) -> float:
        retry_after = headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        reset = headers.get("X-RateLimit-Reset")
        if reset and headers.get("X-RateLimit-Remaining") == "0":
            try:
                return max(1.0, float(reset) - time.time() + 1)
            except ValueError:
                pass
        return float(2 ** attempt)

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON resource, retrying rate limits and transport errors."""
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        session = await self._ensure_session()

        async with self._sem:
            for attempt in range(MAX_RETRIES + 1):
                try:
                    async with session.get(
                        url, params=params, timeout=aiohttp.ClientTimeout(total=self._timeout)
                    ) as resp:
                        status = resp.status
                        headers = dict(resp.headers)
                        if status in (403, 429) and (
                            status == 429 or headers.get("X-RateLimit-Remaining") == "0"
                            or "Retry-After" in headers
                        ):
                            if attempt < MAX_RETRIES:
                                wait = self._backoff_seconds(headers, attempt)
                                log.warning("Rate limited on %s, waiting %.0fs", path, wait)
                                await asyncio.sleep(wait)
                                continue
                            raise RateLimitError(f"GitHub rate limit exceeded for {path}", status)
                        if status == 401:
                            raise AuthenticationError("Invalid or expired GitHub token", status)
                        if status == 404:
                            raise NotFoundError(f"Not found: {path}", status)
                        if status >= 400:
                            text = await resp.text()
                            raise GitHubAPIError(f"GitHub API error {status}: {text[:300]}", status)
                        return await resp.json(content_type=None)
                except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    if attempt == MAX_RETRIES:
                        raise GitHubAPIError(f"Request failed after {MAX_RETRIES} retries: {exc}") from exc
                    log.debug("Request to %s failed (%s), retrying", path, exc)
                    await asyncio.sleep(2 ** attempt)

        raise GitHubAPIError("Max retries exceeded")

    async def _paginate(
        self, path: str, params: dict[str, Any] | None = None, max_pages: int = 10,
    ) -> list[dict]:
        params = dict(params or {})
        params.setdefault("per_page", DEFAULT_PER_PAGE)
        items: list[dict] = []
        for page in range(1, max_pages + 1):
            params["page"] = page
            data = await self._request(path, params)
            if isinstance(data, dict):
                data = data.get("items") or data.get("check_runs") or []
            if not data:
                break
            items.extend(data)
            if len(data) < params["per_page"]:
                break
        return items

    # ── Pull requests ────────────────────────────────────────────

    async def get_pull(self, owner: str, repo: str, number: int) -> dict:
        return await self._request(f"/repos/{owner}/{repo}/pulls/{number}")

    async def list_reviews(self, owner: str, repo: str, number: int) -> list[dict]:
        return await self._paginate(f"/repos/{owner}/{repo}/pulls/{number}/reviews", max_pages=3)

    async def list_issue_comments(
        self, owner: str, repo: str, number: int, max_pages: int = 5,
    ) -> list[dict]:
        return await self._paginate(
            f"/repos/{owner}/{repo}/issues/{number}/comments", max_pages=max_pages,
        )

    async def get_combined_status(self, owner: str, repo: str, sha: str) -> dict:
        return await self._request(f"/repos/{owner}/{repo}/commits/{sha}/status")

    async def list_check_runs(self, owner: str, repo: str, sha: str) -> list[dict]:
        data = await self._request(
            f"/repos/{owner}/{repo}/commits/{sha}/check-runs", {"per_page": DEFAULT_PER_PAGE},
        )
        return list((data or {}).get("check_runs") or [])

    # ── Issues & search ──────────────────────────────────────────

    async def search_issues(
        self,
        query: str,
        *,
        per_page: int = 30,
        max_pages: int = 1,
        sort: str | None = None,
        order: str = "desc",
    ) -> dict:
        """Search issues/PRs. Returns {"total_count": int, "items": [...]}."""
        per_page = max(1, min(per_page, 100))
        params: dict[str, Any] = {"q": query, "per_page": per_page, "order": order}
        if sort:
            params["sort"] = sort
        total = 0
        items: list[dict] = []
        for page in range(1, max_pages + 1):
            params["page"] = page
            data = await self._request("/search/issues", params) or {}
            total = data.get("total_count", total)
            batch = data.get("items") or []
            items.extend(batch)
            if len(batch) < per_page:
                break
        return {"total_count": total, "items": items}

    async def get_issue(self, owner: str, repo: str, number: int) -> dict:
        return await self._request(f"/repos/{owner}/{repo}/issues/{number}")

    async def list_issue_timeline(self, owner: str, repo: str, number: int) -> list[dict]:
        return await self._paginate(f"/repos/{owner}/{repo}/issues/{number}/timeline", max_pages=1)

    # ── Repositories ─────────────────────────────────────────────

    async def get_repo(self, owner: str, repo: str) -> dict:
        return await self._request(f"/repos/{owner}/{repo}")

    async def list_commits(self, owner: str, repo: str, per_page: int = 1) -> list[dict]:
        data = await self._request(f"/repos/{owner}/{repo}/commits", {"per_page": per_page})
        return data or []

    async def count_workflows(self, owner: str, repo: str) -> int:
        data = await self._request(f"/repos/{owner}/{repo}/actions/workflows", {"per_page": 1})
        return int((data or {}).get("total_count", 0))

    async def get_file_content(self, owner: str, repo: str, path: str) -> str | None:
        """Decoded text of a file, or None when the path is a directory."""
        data = await self._request(f"/repos/{owner}/{repo}/contents/{path}")
        if not isinstance(data, dict) or "content" not in data:
            return None
        return base64.b64decode(data["content"]).decode("utf-8", errors="replace")

    async def list_starred_repos(self, max_pages: int = 5) -> list[str]:
        starred = await self._paginate("/user/starred", max_pages=max_pages)
        names: list[str] = []
        for item in starred:
            # plain repository, or {"repo": {...}} with the star+json media type
            name = item.get("full_name") or (item.get("repo") or {}).get("full_name")
            if name:
                names.append(name)
        return names
