"""Configuration constants for the contribution tracker."""

import os
from pathlib import Path

# ── Local storage ────────────────────────────────────────────

DATA_DIR = Path(os.environ.get("CONTRIB_TRACKER_HOME") or Path.home() / ".contrib_tracker")
STATE_FILENAME = "state.json"
BACKUP_DIRNAME = "backups"
BACKUP_PREFIX = "state-"
BACKUP_RETENTION = 10
REPORT_FILENAME = "found-issues.md"

STATE_VERSION = 2

# ── Remote fan-out ───────────────────────────────────────────

MAX_CONCURRENT_REQUESTS = 5
SEARCH_BATCH_SIZE = 5
STARRED_REPOS_LIMIT = 10
HIGH_SCORE_REPOS_LIMIT = 10
STARRED_MAX_PAGES = 5
STARRED_STALE_HOURS = 24

# ── Trust model ──────────────────────────────────────────────

BASE_REPO_SCORE = 5
MIN_REPO_SCORE = 1
MAX_REPO_SCORE = 10
LOW_TRUST_THRESHOLD = 3
HIGH_PRIORITY_REPO_SCORE = 7

# ── Issue vetting ────────────────────────────────────────────

INACTIVE_AFTER_DAYS = 30
MAX_CLAIM_COMMENTS = 100
GUIDELINES_TTL = 3600       # 1 hour
GUIDELINES_CACHE_SIZE = 100
COMMENT_PREVIEW_CHARS = 200

CLAIM_PHRASES = (
    "i'm working on this",
    "i am working on this",
    "i'll take this",
    "i will take this",
    "working on it",
    "i'd like to work on",
    "i would like to work on",
    "can i work on",
    "may i work on",
    "assigned to me",
    "i'm on it",
    "i'll submit a pr",
    "i will submit a pr",
    "working on a fix",
    "working on a pr",
)

GUIDELINE_FILES = (
    "CONTRIBUTING.md",
    ".github/CONTRIBUTING.md",
    "docs/CONTRIBUTING.md",
    "contributing.md",
)

# First match wins within each group.
TEST_FRAMEWORK_KEYWORDS = (
    ("jest", "Jest"),
    ("rspec", "RSpec"),
    ("pytest", "pytest"),
    ("mocha", "Mocha"),
)
LINTER_KEYWORDS = (
    ("eslint", "ESLint"),
    ("rubocop", "RuboCop"),
    ("ruff", "Ruff"),
    ("flake8", "flake8"),
)
FORMATTER_KEYWORDS = (
    ("prettier", "Prettier"),
    ("black", "Black"),
)

# ── PR classification ────────────────────────────────────────

STATUS_PRIORITY = (
    "needs_response",
    "failing_ci",
    "ci_blocked",
    "ci_not_running",
    "merge_conflict",
    "needs_rebase",
    "missing_required_files",
    "incomplete_checklist",
    "approaching_dormant",
    "dormant",
    "waiting",
    "waiting_on_maintainer",
    "healthy",
)

# Statuses whose description marks a spurious failure rather than a real one.
SPURIOUS_STATUS_MARKERS = (
    "authorization required",
)

BOT_LOGIN_SUFFIXES = ("[bot]", "-bot")
KNOWN_BOTS = (
    "dependabot",
    "renovate",
    "codecov",
    "github-actions",
    "netlify",
    "vercel",
    "changeset-bot",
)

MAINTAINER_ACTION_HINTS = (
    ("demo_requested", ("screenshot", "demo", "recording", "gif", "video")),
    ("tests_requested", ("add test", "add a test", "unit test", "test coverage", "tests for", "missing test")),
    ("changes_requested", ("please change", "could you change", "can you change", "please update", "please fix", "should be changed")),
    ("docs_requested", ("documentation", "update the docs", "add docs", "readme", "changelog")),
    ("rebase_requested", ("rebase", "merge conflict", "resolve conflict", "out of date with")),
)

ACTION_HINT_LABELS = {
    "demo_requested": "demo/screenshot requested",
    "tests_requested": "tests requested",
    "changes_requested": "code changes requested",
    "docs_requested": "documentation requested",
    "rebase_requested": "rebase requested",
}

CRITICAL_STATUSES = ("needs_response", "failing_ci", "merge_conflict")

# ── Issue search ─────────────────────────────────────────────

SEARCH_PRIORITY_ORDER = {"starred": 0, "high_score": 1, "normal": 2}
RECOMMENDATION_ORDER = {"approve": 0, "needs_review": 1, "skip": 2}
