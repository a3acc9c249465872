from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from contrib_tracker.models import RepoScore, RepoSignals
from contrib_tracker.scoring import (
    calculate_score,
    freshness_bonus,
    high_scoring_repos,
    low_scoring_repos,
    rescore,
    viability_score,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _days_ago(days: int) -> str:
    return (NOW - timedelta(days=days)).isoformat()


class TrustScoreTest(unittest.TestCase):
    def test_score_boundaries(self) -> None:
        hostile = RepoScore(repo="a/b", signals=RepoSignals(has_hostile_comments=True))
        self.assertEqual(calculate_score(hostile), 3)

        trusted = RepoScore(
            repo="a/b", merged_pr_count=10, signals=RepoSignals(is_responsive=True),
        )
        self.assertEqual(calculate_score(trusted), 10)

    def test_penalties_are_capped_and_clamped(self) -> None:
        rs = RepoScore(
            repo="a/b", closed_without_merge_count=9, signals=RepoSignals(has_hostile_comments=True),
        )
        # 5 - 3 - 2 = 0, clamped up to 1
        self.assertEqual(calculate_score(rs), 1)

    def test_one_merge_adds_two(self) -> None:
        self.assertEqual(calculate_score(RepoScore(repo="a/b", merged_pr_count=1)), 7)

    def test_rescore_is_idempotent(self) -> None:
        rs = RepoScore(repo="a/b", merged_pr_count=1, closed_without_merge_count=2)
        first = rescore(rs).score
        self.assertEqual(rescore(rs).score, first)
        self.assertEqual(first, 5)

    def test_projections_are_sorted(self) -> None:
        scores = {
            name: RepoScore(repo=name, score=value)
            for name, value in (("a/one", 6), ("a/two", 9), ("a/three", 2), ("a/four", 3))
        }
        self.assertEqual(high_scoring_repos(scores, 6), ["a/two", "a/one"])
        self.assertEqual(low_scoring_repos(scores, 3), ["a/three", "a/four"])


class ViabilityScoreTest(unittest.TestCase):
    def _score(self, **overrides) -> int:
        params = dict(
            repo_score=8,
            has_existing_pr=False,
            is_claimed=False,
            clear_requirements=True,
            has_guidelines=True,
            issue_updated_at=_days_ago(5),
            now=NOW,
        )
        params.update(overrides)
        return viability_score(**params)

    def test_strong_candidate_is_clamped(self) -> None:
        # 50 + 16 + 15 + 15 + 10
        self.assertEqual(self._score(), 100)

    def test_fresh_trusted_issue_with_guidelines(self) -> None:
        # 50 + 16 + 15 + 10
        self.assertEqual(self._score(clear_requirements=False), 91)

    def test_unknown_repo_score_adds_nothing(self) -> None:
        self.assertEqual(self._score(repo_score=None, clear_requirements=False), 75)

    def test_penalties(self) -> None:
        self.assertEqual(self._score(has_existing_pr=True, is_claimed=True), 56)

    def test_clamped_to_range(self) -> None:
        low = self._score(
            repo_score=None, clear_requirements=False, has_guidelines=False,
            has_existing_pr=True, is_claimed=True, issue_updated_at=_days_ago(90),
        )
        self.assertEqual(low, 0)
        self.assertLessEqual(self._score(repo_score=10), 100)

    def test_freshness_decay(self) -> None:
        self.assertEqual(freshness_bonus(0), 15)
        self.assertEqual(freshness_bonus(14), 15)
        self.assertEqual(freshness_bonus(22), 8)
        self.assertEqual(freshness_bonus(30), 0)
        self.assertEqual(freshness_bonus(31), 0)


if __name__ == "__main__":
    unittest.main()
