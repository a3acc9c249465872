"""Shared fixtures: an in-process stand-in for the GitHub client."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from contrib_tracker.github_client import NotFoundError
from contrib_tracker.state import fresh_document
from contrib_tracker.tracker import StateManager


def iso_days_ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def issue_item(repo: str, number: int, days_old: int = 1) -> dict:
    """A search result item for an issue."""
    return {
        "html_url": f"https://github.com/{repo}/issues/{number}",
        "repository_url": f"https://api.github.com/repos/{repo}",
        "number": number,
        "updated_at": iso_days_ago(days_old),
    }


CLEAR_BODY = (
    "Steps to reproduce:\n"
    "1. Open the settings page\n"
    "2. Click save twice\n\n"
    "```\nTypeError: cannot read property 'id' of undefined\n```\n\n"
    "Expected: the form should save once and show a confirmation message to the user."
)


class FakeHost:
    """Coroutine-compatible fake of GitHubClient backed by plain dicts.

    Keys are ``"owner/repo#number"`` for PRs and issues, ``"owner/repo"`` for
    repositories. ``errors`` maps a method name to an exception raised on
    every call; ``error_keys`` maps (method, key) to an exception.
    """

    def __init__(self):
        self.pulls = {}
        self.reviews = {}
        self.comments = {}
        self.statuses = {}
        self.check_runs = {}
        self.issues = {}
        self.timelines = {}
        self.repos = {}
        self.commits = {}
        self.workflows = {}
        self.files = {}
        self.starred = []
        self.search_results = []  # (substring, items) checked in order
        self.errors = {}
        self.error_keys = {}
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _enter(self, method, key=None):
        self.calls.append((method, key))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
        finally:
            self.in_flight -= 1
        if method in self.errors:
            raise self.errors[method]
        if (method, key) in self.error_keys:
            raise self.error_keys[(method, key)]

    def calls_to(self, method):
        return [key for m, key in self.calls if m == method]

    async def get_pull(self, owner, repo, number):
        key = f"{owner}/{repo}#{number}"
        await self._enter("get_pull", key)
        if key not in self.pulls:
            raise NotFoundError(f"Not found: {key}", 404)
        return self.pulls[key]

    async def list_reviews(self, owner, repo, number):
        key = f"{owner}/{repo}#{number}"
        await self._enter("list_reviews", key)
        return list(self.reviews.get(key, []))

    async def list_issue_comments(self, owner, repo, number, max_pages=5):
        key = f"{owner}/{repo}#{number}"
        await self._enter("list_issue_comments", key)
        return list(self.comments.get(key, []))

    async def get_combined_status(self, owner, repo, sha):
        await self._enter("get_combined_status", sha)
        if sha not in self.statuses and sha not in self.check_runs:
            raise NotFoundError(f"No commit {sha}", 404)
        return self.statuses.get(sha, {"statuses": []})

    async def list_check_runs(self, owner, repo, sha):
        await self._enter("list_check_runs", sha)
        return list(self.check_runs.get(sha, []))

    async def search_issues(self, query, *, per_page=30, max_pages=1, sort=None, order="desc"):
        await self._enter("search_issues", query)
        for needle, items in self.search_results:
            if needle in query:
                return {"total_count": len(items), "items": list(items)[:per_page * max_pages]}
        return {"total_count": 0, "items": []}

    async def get_issue(self, owner, repo, number):
        key = f"{owner}/{repo}#{number}"
        await self._enter("get_issue", key)
        if key not in self.issues:
            raise NotFoundError(f"Not found: {key}", 404)
        return self.issues[key]

    async def list_issue_timeline(self, owner, repo, number):
        key = f"{owner}/{repo}#{number}"
        await self._enter("list_issue_timeline", key)
        return list(self.timelines.get(key, []))

    async def get_repo(self, owner, repo):
        key = f"{owner}/{repo}"
        await self._enter("get_repo", key)
        if key not in self.repos:
            raise NotFoundError(f"Not found: {key}", 404)
        return self.repos[key]

    async def list_commits(self, owner, repo, per_page=1):
        key = f"{owner}/{repo}"
        await self._enter("list_commits", key)
        return list(self.commits.get(key, []))[:per_page]

    async def count_workflows(self, owner, repo):
        key = f"{owner}/{repo}"
        await self._enter("count_workflows", key)
        return self.workflows.get(key, 0)

    async def get_file_content(self, owner, repo, path):
        key = f"{owner}/{repo}/{path}"
        await self._enter("get_file_content", key)
        if key not in self.files:
            raise NotFoundError(f"Not found: {key}", 404)
        return self.files[key]

    async def list_starred_repos(self, max_pages=5):
        await self._enter("list_starred_repos")
        return list(self.starred)

    # ── Builders ─────────────────────────────────────────────────

    def add_active_repo(self, repo: str, commit_days_ago: int = 2):
        self.repos[repo] = {"full_name": repo, "open_issues_count": 12, "pushed_at": iso_days_ago(commit_days_ago)}
        self.commits[repo] = [{"commit": {"author": {"date": iso_days_ago(commit_days_ago)}}}]
        self.workflows[repo] = 1

    def add_issue(self, repo: str, number: int, *, body: str = CLEAR_BODY, comments=(), days_old: int = 3):
        key = f"{repo}#{number}"
        self.issues[key] = {
            "id": number * 10,
            "title": f"Issue {number} in {repo}",
            "body": body,
            "comments": len(comments),
            "labels": [{"name": "good first issue"}, "help wanted"],
            "created_at": iso_days_ago(days_old + 5),
            "updated_at": iso_days_ago(days_old),
        }
        self.comments[key] = list(comments)
        if repo not in self.repos:
            self.add_active_repo(repo)

    def add_pull(self, repo: str, number: int, *, sha: str = None, days_idle: int = 1, **fields):
        key = f"{repo}#{number}"
        sha = sha or f"sha{number}"
        pull = {
            "id": number,
            "title": f"PR {number}",
            "state": "open",
            "merged": False,
            "draft": False,
            "mergeable": True,
            "mergeable_state": "clean",
            "body": "",
            "head": {"sha": sha},
            "created_at": iso_days_ago(days_idle + 3),
            "updated_at": iso_days_ago(days_idle),
            "review_comments": 0,
            "commits": 1,
        }
        pull.update(fields)
        self.pulls[key] = pull
        self.statuses.setdefault(sha, {"statuses": []})
        return f"https://github.com/{repo}/pull/{number}"


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def manager():
    m = StateManager(fresh_document())
    m.update_config(github_username="alice")
    return m
