from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

_GITHUB_ITEM = re.compile(r"^https://github\.com/([^/]+)/([^/]+)/(pull|issues)/(\d+)")
_OWNER = re.compile(r"^[a-zA-Z0-9_-]+$")
_REPO = re.compile(r"^[a-zA-Z0-9_.-]+$")


@dataclass(frozen=True)
class GitHubRef:
    owner: str
    repo: str
    number: int
    kind: str  # pull | issues

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_github_url(url: str) -> GitHubRef | None:
    """Parse a github.com pull request or issue URL; None if it is neither."""
    m = _GITHUB_ITEM.match(url or "")
    if not m:
        return None
    owner, repo, kind, number = m.groups()
    if not _OWNER.match(owner) or not _REPO.match(repo):
        return None
    return GitHubRef(owner=owner, repo=repo, number=int(number), kind=kind)


def split_repo(full_name: str) -> tuple[str, str]:
    if "/" not in full_name:
        raise ValueError(f"Repository '{full_name}' must use owner/repo format.")
    owner, name = full_name.split("/", maxsplit=1)
    return owner.strip(), name.strip()


def repo_from_api_url(url: str) -> str:
    """'https://api.github.com/repos/o/r' -> 'o/r'."""
    return "/".join(url.rstrip("/").split("/")[-2:])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return utcnow().isoformat()


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def days_between(start: datetime, end: datetime | None = None) -> int:
    """Whole days elapsed from start to end (floored)."""
    end = end or utcnow()
    return int((end - start).total_seconds() // 86400)
