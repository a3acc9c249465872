"""Persistent state store: one versioned JSON document plus rotating backups.

``load()`` never raises. It falls back from the main file to the newest valid
backup, and from there to a fresh document. ``save()`` snapshots the previous
main file into ``backups/`` before replacing it atomically.
"""

from __future__ import annotations

import json
import logging
import math
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import (
    BACKUP_DIRNAME,
    BACKUP_PREFIX,
    BACKUP_RETENTION,
    DATA_DIR,
    STATE_FILENAME,
    STATE_VERSION,
)
from .models import AgentConfig, RepoScore, StateDocument
from .utils import now_iso

log = logging.getLogger(__name__)

LEGACY_PR_ARRAYS = ("activePRs", "dormantPRs", "mergedPRs", "closedPRs")


class StateCorruptionError(ValueError):
    pass


def fresh_document() -> StateDocument:
    return StateDocument(version=STATE_VERSION, config=AgentConfig())


def validate_raw(raw: Any) -> None:
    """Structural check of a parsed document; raises StateCorruptionError."""
    if not isinstance(raw, dict):
        raise StateCorruptionError("state is not a JSON object")
    # documents written before these fields existed
    raw.setdefault("repoScores", {})
    raw.setdefault("events", [])

    version = raw.get("version")
    if not isinstance(version, (int, float)) or isinstance(version, bool) or not math.isfinite(version):
        raise StateCorruptionError("version must be a number")
    raw["version"] = version = int(version)
    if not isinstance(raw["repoScores"], dict):
        raise StateCorruptionError("repoScores must be an object")
    if not isinstance(raw["events"], list):
        raise StateCorruptionError("events must be an array")
    if not isinstance(raw.get("config"), dict):
        raise StateCorruptionError("config must be an object")
    if version < 2:
        for key in LEGACY_PR_ARRAYS:
            if not isinstance(raw.get(key), list):
                raise StateCorruptionError(f"v1 state requires array '{key}'")


def migrate_raw(raw: dict[str, Any]) -> bool:
    """Bring a validated document up to STATE_VERSION in place. True if changed."""
    version = raw["version"]
    if version >= STATE_VERSION:
        return False

    if version < 2:
        # v2 re-fetches open PRs on every run; history and scores are kept
        scores: dict[str, Any] = raw["repoScores"]
        for pr in list(raw.get("mergedPRs") or []) + list(raw.get("closedPRs") or []):
            repo = pr.get("repo") if isinstance(pr, dict) else None
            if repo and repo not in scores:
                scores[repo] = RepoScore(repo=repo).to_dict()
        raw["activePRs"] = []
        log.info("Migrated state v%d -> v2 (%d repo scores)", version, len(scores))

    raw["version"] = STATE_VERSION
    return True


def parse_document(raw: Any) -> StateDocument:
    """Validate, migrate and convert a parsed JSON value."""
    validate_raw(raw)
    migrate_raw(raw)
    try:
        return StateDocument.from_dict(raw)
    except (TypeError, ValueError, KeyError, AttributeError) as exc:
        raise StateCorruptionError(f"malformed state: {exc}") from exc


class StateStore:
    """Load / save the state document under a data directory."""

    def __init__(self, base_dir: Path | str | None = None):
        self.base_dir = Path(base_dir) if base_dir else DATA_DIR
        self.path = self.base_dir / STATE_FILENAME
        self.backup_dir = self.base_dir / BACKUP_DIRNAME

    # ── Load ─────────────────────────────────────────────────────

    def _read(self, path: Path) -> StateDocument:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StateCorruptionError(f"cannot read {path.name}: {exc}") from exc
        return parse_document(raw)

    def load(self) -> StateDocument:
        if not self.path.exists():
            log.info("No existing state at %s, initializing", self.path)
            return fresh_document()

        try:
            doc = self._read(self.path)
            log.debug(
                "Loaded state: %d active PRs, %d merged", len(doc.active_prs), len(doc.merged_prs),
            )
            return doc
        except StateCorruptionError as exc:
            log.warning("State file is invalid (%s), attempting to restore from backup", exc)

        restored = self._restore_from_backup()
        if restored is not None:
            return restored
        log.warning("No valid backup found, starting fresh")
        return fresh_document()

    def list_backups(self) -> list[Path]:
        """Backup files, newest first (names embed a sortable timestamp)."""
        if not self.backup_dir.exists():
            return []
        files = [
            p for p in self.backup_dir.iterdir()
            if p.name.startswith(BACKUP_PREFIX) and p.suffix == ".json"
        ]
        return sorted(files, key=lambda p: p.name, reverse=True)

    def _restore_from_backup(self) -> StateDocument | None:
        for backup in self.list_backups():
            try:
                doc = self._read(backup)
            except StateCorruptionError as exc:
                log.warning("Backup %s is corrupted (%s), trying next", backup.name, exc)
                continue
            log.warning("Restored state from backup %s", backup.name)
            try:
                self._write_atomic(doc)
            except OSError as exc:
                log.warning("Could not rewrite %s from backup: %s", self.path.name, exc)
            return doc
        return None

    # ── Save ─────────────────────────────────────────────────────

    def save(self, doc: StateDocument) -> None:
        doc.last_run_at = now_iso()
        self.base_dir.mkdir(parents=True, exist_ok=True)

        if self.path.exists():
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            backup = self.backup_dir / f"{BACKUP_PREFIX}{_timestamp()}.json"
            shutil.copyfile(self.path, backup)
            self.cleanup_backups()

        self._write_atomic(doc)
        log.debug("State saved to %s", self.path)

    def _write_atomic(self, doc: StateDocument) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(doc.to_dict(), indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

    def cleanup_backups(self, keep: int = BACKUP_RETENTION) -> None:
        try:
            stale = self.list_backups()[keep:]
        except OSError as exc:
            log.warning("Could not list backups: %s", exc)
            return
        for path in stale:
            try:
                path.unlink()
            except OSError as exc:
                log.warning("Could not delete old backup %s: %s", path.name, exc)


def _timestamp() -> str:
    # 2026-10-19T20-31-05-123456Z: sorts lexically in creation order
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
