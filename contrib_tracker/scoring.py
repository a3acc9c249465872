from __future__ import annotations

from datetime import datetime

from .config import BASE_REPO_SCORE, MAX_REPO_SCORE, MIN_REPO_SCORE
from .models import RepoScore
from .utils import days_between, now_iso, parse_iso


def calculate_score(repo_score: RepoScore) -> int:
    """
    Repository trust on a 1-10 scale:
    - base 5
    - +2 per merged PR, at most +4
    - -1 per PR closed without merge, at most -3
    - +1 if maintainers are responsive, -2 if comments were hostile
    """
    score = BASE_REPO_SCORE
    score += min(repo_score.merged_pr_count * 2, 4)
    score -= min(repo_score.closed_without_merge_count, 3)
    if repo_score.signals.is_responsive:
        score += 1
    if repo_score.signals.has_hostile_comments:
        score -= 2
    return max(MIN_REPO_SCORE, min(MAX_REPO_SCORE, score))


def rescore(repo_score: RepoScore) -> RepoScore:
    """Recompute the stored score and stamp the evaluation time."""
    repo_score.score = calculate_score(repo_score)
    repo_score.last_evaluated_at = now_iso()
    return repo_score


def high_scoring_repos(scores: dict[str, RepoScore], threshold: int) -> list[str]:
    """Repos scoring at or above threshold, best first."""
    hits = [rs for rs in scores.values() if rs.score >= threshold]
    return [rs.repo for rs in sorted(hits, key=lambda rs: rs.score, reverse=True)]


def low_scoring_repos(scores: dict[str, RepoScore], threshold: int) -> list[str]:
    """Repos scoring at or below threshold, worst first."""
    hits = [rs for rs in scores.values() if rs.score <= threshold]
    return [rs.repo for rs in sorted(hits, key=lambda rs: rs.score)]


def freshness_bonus(days_since_update: int) -> int:
    if days_since_update <= 14:
        return 15
    if days_since_update <= 30:
        return round(15 * (1 - (days_since_update - 14) / 16))
    return 0


def viability_score(
    *,
    repo_score: int | None,
    has_existing_pr: bool,
    is_claimed: bool,
    clear_requirements: bool,
    has_guidelines: bool,
    issue_updated_at: str,
    now: datetime | None = None,
) -> int:
    """
    0-100 estimate of how worthwhile an issue is:
    - base 50, plus twice the repo trust score when known
    - +15 clear requirements, +10 contribution guidelines
    - up to +15 freshness, fading out between 14 and 30 days since update
    - -30 when a PR already exists, -20 when someone claimed it
    """
    score = 50
    if repo_score is not None:
        score += repo_score * 2
    if clear_requirements:
        score += 15
    updated = parse_iso(issue_updated_at)
    if updated is not None:
        score += freshness_bonus(days_between(updated, now))
    if has_guidelines:
        score += 10
    if has_existing_pr:
        score -= 30
    if is_claimed:
        score -= 20
    return max(0, min(100, score))
