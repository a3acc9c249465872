"""Tests for the persistent state store."""

import json

import pytest

from contrib_tracker.config import STATE_VERSION
from contrib_tracker.models import RepoScore, TrackedPR
from contrib_tracker.state import (
    StateCorruptionError,
    StateStore,
    fresh_document,
    parse_document,
    validate_raw,
)


def _v1_document():
    return {
        "version": 1,
        "activePRs": [{"url": "https://github.com/a/b/pull/1", "repo": "a/b", "number": 1}],
        "dormantPRs": [],
        "mergedPRs": [{"url": "https://github.com/m/x/pull/4", "repo": "m/x", "number": 4}],
        "closedPRs": [
            {"url": "https://github.com/c/y/pull/5", "repo": "c/y", "number": 5},
            {"url": "https://github.com/k/z/pull/6", "repo": "k/z", "number": 6},
        ],
        "activeIssues": [],
        "repoScores": {"k/z": {"score": 2, "mergedPRCount": 0, "closedWithoutMergeCount": 3}},
        "events": [],
        "config": {"githubUsername": "alice"},
    }


class TestValidation:
    def test_rejects_non_object(self):
        with pytest.raises(StateCorruptionError):
            validate_raw([1, 2])

    def test_rejects_string_version(self):
        with pytest.raises(StateCorruptionError):
            validate_raw({"version": "2", "config": {}})

    def test_float_version_accepted(self):
        raw = {"version": 2.0, "config": {}}
        validate_raw(raw)
        assert raw["version"] == 2
        assert isinstance(raw["version"], int)
        with pytest.raises(StateCorruptionError):
            validate_raw({"version": float("nan"), "config": {}})
        with pytest.raises(StateCorruptionError):
            validate_raw({"version": True, "config": {}})

    def test_rejects_null_config(self):
        with pytest.raises(StateCorruptionError):
            validate_raw({"version": 2, "config": None})

    def test_rejects_events_not_list(self):
        with pytest.raises(StateCorruptionError):
            validate_raw({"version": 2, "config": {}, "events": {}})

    def test_v1_requires_legacy_arrays(self):
        raw = _v1_document()
        del raw["closedPRs"]
        with pytest.raises(StateCorruptionError):
            validate_raw(raw)

    def test_missing_scores_and_events_default(self):
        raw = {"version": 2, "config": {}}
        validate_raw(raw)
        assert raw["repoScores"] == {}
        assert raw["events"] == []


class TestMigration:
    def test_v1_to_v2(self):
        doc = parse_document(_v1_document())
        assert doc.version == STATE_VERSION
        assert doc.active_prs == []
        assert [pr.url for pr in doc.merged_prs] == ["https://github.com/m/x/pull/4"]
        assert len(doc.closed_prs) == 2
        assert doc.repo_scores["m/x"].score == 5
        assert doc.repo_scores["c/y"].score == 5
        # existing entries are kept as they were
        assert doc.repo_scores["k/z"].score == 2
        assert doc.repo_scores["k/z"].closed_without_merge_count == 3
        assert doc.config.github_username == "alice"

    def test_current_version_untouched(self):
        raw = fresh_document().to_dict()
        raw["activePRs"] = [{"url": "https://github.com/a/b/pull/1"}]
        doc = parse_document(raw)
        assert len(doc.active_prs) == 1


class TestStoreLoad:
    def test_missing_file_gives_fresh_document(self, tmp_path):
        doc = StateStore(tmp_path).load()
        assert doc.version == STATE_VERSION
        assert doc.active_prs == []
        assert doc.config.max_active_prs == 10

    def test_round_trip(self, tmp_path):
        store = StateStore(tmp_path)
        doc = fresh_document()
        doc.active_prs.append(TrackedPR(url="https://github.com/a/b/pull/1", repo="a/b", number=1))
        doc.repo_scores["a/b"] = RepoScore(repo="a/b", merged_pr_count=1, score=7)
        doc.config.github_username = "alice"
        store.save(doc)

        loaded = store.load()
        expected = doc.to_dict()
        actual = loaded.to_dict()
        expected.pop("lastRunAt")
        actual.pop("lastRunAt")
        assert actual == expected

    def test_persisted_keys_are_camel_case(self, tmp_path):
        store = StateStore(tmp_path)
        store.save(fresh_document())
        raw = json.loads(store.path.read_text())
        assert {"activePRs", "repoScores", "events", "config", "lastRunAt"} <= set(raw)
        assert "maxActivePRs" in raw["config"]

    def test_corrupt_main_restores_valid_backup(self, tmp_path):
        store = StateStore(tmp_path)
        good = fresh_document()
        good.config.github_username = "from-backup"
        store.backup_dir.mkdir(parents=True)
        (store.backup_dir / "state-2026-01-01T00-00-00-000000Z.json").write_text(
            json.dumps(good.to_dict())
        )
        (store.backup_dir / "state-2026-02-01T00-00-00-000000Z.json").write_text("{ not json")
        store.path.write_text("{ also not json")

        doc = store.load()
        assert doc.config.github_username == "from-backup"
        # rewritten as the new main file
        rewritten = json.loads(store.path.read_text())
        assert rewritten["config"]["githubUsername"] == "from-backup"

    def test_newest_valid_backup_wins(self, tmp_path):
        store = StateStore(tmp_path)
        store.backup_dir.mkdir(parents=True)
        for stamp, name in (("2026-01-01", "old"), ("2026-03-01", "new")):
            doc = fresh_document()
            doc.config.github_username = name
            (store.backup_dir / f"state-{stamp}T00-00-00-000000Z.json").write_text(
                json.dumps(doc.to_dict())
            )
        store.path.write_text(json.dumps({"version": "broken"}))
        assert store.load().config.github_username == "new"

    def test_stale_backup_is_migrated(self, tmp_path):
        store = StateStore(tmp_path)
        store.backup_dir.mkdir(parents=True)
        (store.backup_dir / "state-2026-01-01T00-00-00-000000Z.json").write_text(
            json.dumps(_v1_document())
        )
        store.path.write_text("")
        doc = store.load()
        assert doc.version == STATE_VERSION
        assert "m/x" in doc.repo_scores

    def test_float_version_main_file_loads_without_restore(self, tmp_path):
        store = StateStore(tmp_path)
        raw = fresh_document().to_dict()
        raw["version"] = float(STATE_VERSION)
        raw["config"]["githubUsername"] = "main"
        store.path.write_text(json.dumps(raw))
        doc = store.load()
        assert doc.version == STATE_VERSION
        assert doc.config.github_username == "main"

    def test_restore_survives_failed_rewrite(self, tmp_path, monkeypatch):
        store = StateStore(tmp_path)
        good = fresh_document()
        good.config.github_username = "from-backup"
        store.backup_dir.mkdir(parents=True)
        (store.backup_dir / "state-2026-01-01T00-00-00-000000Z.json").write_text(
            json.dumps(good.to_dict())
        )
        store.path.write_text("{ not json")

        def read_only(doc):
            raise PermissionError("read-only file system")

        monkeypatch.setattr(store, "_write_atomic", read_only)
        assert store.load().config.github_username == "from-backup"

    def test_no_valid_backup_gives_fresh(self, tmp_path):
        store = StateStore(tmp_path)
        store.backup_dir.mkdir(parents=True)
        (store.backup_dir / "state-2026-01-01T00-00-00-000000Z.json").write_text("[]")
        store.path.write_text("garbage")
        doc = store.load()
        assert doc.version == STATE_VERSION
        assert doc.config.github_username == ""


class TestStoreSave:
    def test_first_save_creates_no_backup(self, tmp_path):
        store = StateStore(tmp_path)
        store.save(fresh_document())
        assert store.path.exists()
        assert store.list_backups() == []

    def test_save_backs_up_previous_main(self, tmp_path):
        store = StateStore(tmp_path)
        first = fresh_document()
        first.config.github_username = "before"
        store.save(first)
        second = fresh_document()
        second.config.github_username = "after"
        store.save(second)

        backups = store.list_backups()
        assert len(backups) == 1
        assert json.loads(backups[0].read_text())["config"]["githubUsername"] == "before"
        assert json.loads(store.path.read_text())["config"]["githubUsername"] == "after"

    def test_retains_ten_most_recent_backups(self, tmp_path):
        store = StateStore(tmp_path)
        store.backup_dir.mkdir(parents=True)
        for day in range(1, 15):
            (store.backup_dir / f"state-2026-01-{day:02d}T00-00-00-000000Z.json").write_text("{}")
        store.cleanup_backups()
        names = [p.name for p in store.list_backups()]
        assert len(names) == 10
        assert names[0] == "state-2026-01-14T00-00-00-000000Z.json"
        assert names[-1] == "state-2026-01-05T00-00-00-000000Z.json"

    def test_repeated_saves_stay_within_retention(self, tmp_path):
        store = StateStore(tmp_path)
        for _ in range(13):
            store.save(fresh_document())
        assert len(store.list_backups()) <= 10

    def test_cleanup_failure_does_not_block_write(self, tmp_path, monkeypatch):
        store = StateStore(tmp_path)
        store.save(fresh_document())

        def broken_listing():
            raise OSError("permission denied")

        monkeypatch.setattr(store, "list_backups", broken_listing)
        doc = fresh_document()
        doc.config.github_username = "still-written"
        store.save(doc)
        assert json.loads(store.path.read_text())["config"]["githubUsername"] == "still-written"

    def test_no_temp_file_left_behind(self, tmp_path):
        store = StateStore(tmp_path)
        store.save(fresh_document())
        assert not list(tmp_path.glob("*.tmp"))
