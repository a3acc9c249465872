from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

from rich.logging import RichHandler

from .discovery import IssueSearch
from .display import (
    console,
    display_candidate,
    display_candidates,
    display_config,
    display_digest,
    display_repo_score,
    display_stats,
)
from .github_client import GitHubAPIError, GitHubClient
from .output import write_json, write_report
from .pr_monitor import PRMonitor
from .tracker import ConfigurationError, StateManager
from .utils import split_repo
from .vetting import IssueVetter

log = logging.getLogger(__name__)

# config keys taking an integer value
_NUMERIC_KEYS = {
    "max-active-prs": "max_active_prs",
    "dormant-days": "dormant_threshold_days",
    "approaching-days": "approaching_dormant_days",
    "max-issue-age": "max_issue_age_days",
    "min-repo-score": "min_repo_score_threshold",
}
_LIST_KEYS = {
    "add-language": "languages",
    "add-label": "labels",
    "exclude-repo": "exclude_repos",
}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _resolve_token(args) -> str | None:
    return args.token or os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")


# ── Remote commands ──────────────────────────────────────────


async def _daily(client: GitHubClient, manager: StateManager, args) -> int:
    monitor = PRMonitor(client, manager)
    prs, updates, failures = await monitor.sync_open_prs()
    try:
        monitor.apply_merged_counts(await monitor.fetch_user_merged_pr_counts())
    except GitHubAPIError as exc:
        log.warning("Could not sync merged PR counts: %s", exc)

    digest = monitor.generate_digest(prs)
    monitor.record_digest(digest)
    capacity = monitor.assess_capacity(prs)

    if args.json:
        console.print_json(json.dumps({
            "digest": digest.to_dict(),
            "capacity": capacity,
            "updates": [vars(u) for u in updates],
            "failures": [vars(f) for f in failures],
        }))
    else:
        for u in updates:
            console.print(f"  [cyan]{u.message}[/cyan]")
        display_digest(digest, capacity, failures)
    return 0


async def _vet(client: GitHubClient, manager: StateManager, args) -> int:
    candidate = await IssueVetter(client, manager).vet_issue(args.url)
    if args.json:
        console.print_json(json.dumps(candidate.to_dict()))
    else:
        display_candidate(candidate)
    return 0


async def _search(client: GitHubClient, manager: StateManager, args) -> int:
    search = IssueSearch(client, manager)
    candidates = await search.search_issues(args.max)
    report = write_report(candidates)
    display_candidates(candidates)
    console.print(f"\nReport written to [cyan]{report}[/cyan]")
    if args.json:
        write_json(args.json, candidates)
        console.print(f"Results exported to [cyan]{args.json}[/cyan]")
    return 0


async def _track(client: GitHubClient, manager: StateManager, args) -> int:
    pr = await PRMonitor(client, manager).fetch_pr(args.url)
    if manager.add_active_pr(pr):
        console.print(f"[green]Tracking {pr.repo}#{pr.number}[/green] ({pr.status})")
    else:
        console.print(f"[yellow]Already tracked: {args.url}[/yellow]")
    return 0


_REMOTE = {"daily": _daily, "vet": _vet, "search": _search, "track": _track}


async def _run_remote(handler, token: str | None, manager: StateManager, args) -> int:
    async with GitHubClient(token) as client:
        return await handler(client, manager, args)


# ── Local commands ───────────────────────────────────────────


def _config(manager: StateManager, args) -> int:
    if args.key is None:
        display_config(manager.config)
        return 0
    if args.value is None:
        console.print("[red]A value is required[/red]")
        return 2

    if args.key == "username":
        manager.update_config(github_username=args.value)
    elif args.key in _LIST_KEYS:
        field = _LIST_KEYS[args.key]
        current = list(getattr(manager.config, field))
        if args.value not in current:
            current.append(args.value)
        manager.update_config(**{field: current})
    elif args.key in _NUMERIC_KEYS:
        try:
            value = int(args.value)
        except ValueError:
            console.print(f"[red]{args.key} expects a number[/red]")
            return 2
        manager.update_config(**{_NUMERIC_KEYS[args.key]: value})
    else:
        console.print(f"[red]Unknown config key: {args.key}[/red]")
        return 2
    console.print(f"[green]Set {args.key} = {args.value}[/green]")
    return 0


def _score(manager: StateManager, args) -> int:
    split_repo(args.repo)
    partial = {}
    if args.merged is not None:
        partial["merged_pr_count"] = args.merged
    if args.closed is not None:
        partial["closed_without_merge_count"] = args.closed
    if args.responsive is not None:
        partial["is_responsive"] = args.responsive
    if args.hostile:
        partial["has_hostile_comments"] = True

    if partial:
        entry = manager.update_repo_score(args.repo, **partial)
    else:
        entry = manager.get_repo_score(args.repo)
        if entry is None:
            console.print(f"[yellow]No score recorded for {args.repo}[/yellow]")
            return 1
    display_repo_score(entry)
    return 0


def _untrack(manager: StateManager, args) -> int:
    if manager.untrack_pr(args.url):
        console.print(f"[green]Untracked {args.url}[/green]")
        return 0
    console.print(f"[yellow]Not an active or dormant PR: {args.url}[/yellow]")
    return 1


def _read(manager: StateManager, args) -> int:
    if args.url:
        if not manager.mark_pr_read(args.url):
            console.print(f"[yellow]Not tracked: {args.url}[/yellow]")
            return 1
        return 0
    console.print(f"Marked {manager.mark_all_prs_read()} PR(s) read")
    return 0


def _stats(manager: StateManager, args) -> int:
    stats = manager.stats()
    if args.json:
        console.print_json(json.dumps(stats))
    else:
        display_stats(stats)
    return 0


_LOCAL = {"config": _config, "score": _score, "untrack": _untrack, "read": _read, "stats": _stats}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contrib-tracker",
        description="Track your open-source pull requests and find issues worth working on.",
    )
    parser.add_argument("--token", default=None, help="GitHub token (or set GITHUB_TOKEN / GH_TOKEN)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("daily", help="Refresh and classify your open PRs")
    p.add_argument("--json", action="store_true", help="Print JSON instead of tables")

    p = sub.add_parser("vet", help="Vet a single issue")
    p.add_argument("url")
    p.add_argument("--json", action="store_true", help="Print JSON instead of a panel")

    p = sub.add_parser("search", help="Search for issues to work on")
    p.add_argument("--max", type=int, default=10, help="Maximum candidates (default: 10)")
    p.add_argument("--json", default=None, help="Also export candidates to this JSON file")

    p = sub.add_parser("config", help="Show or change configuration")
    p.add_argument("key", nargs="?")
    p.add_argument("value", nargs="?")

    p = sub.add_parser("score", help="Show or update a repository's trust score")
    p.add_argument("repo", help="owner/repo")
    p.add_argument("--merged", type=int, default=None)
    p.add_argument("--closed", type=int, default=None)
    p.add_argument("--responsive", action=argparse.BooleanOptionalAction, default=None)
    p.add_argument("--hostile", action="store_true")

    p = sub.add_parser("track", help="Start tracking a PR")
    p.add_argument("url")

    p = sub.add_parser("untrack", help="Stop tracking a PR")
    p.add_argument("url")

    p = sub.add_parser("read", help="Mark PR comments as read")
    p.add_argument("url", nargs="?")

    p = sub.add_parser("stats", help="Contribution statistics")
    p.add_argument("--json", action="store_true")
    return parser


def main() -> int:
    """CLI entry point."""
    try:
        return _main_inner()
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        return 130


def _main_inner() -> int:
    args = build_parser().parse_args()
    _setup_logging(args.verbose)
    manager = StateManager.open()

    try:
        if args.command in _LOCAL:
            code = _LOCAL[args.command](manager, args)
        else:
            if args.command == "daily":
                manager.require_username()
            code = asyncio.run(
                _run_remote(_REMOTE[args.command], _resolve_token(args), manager, args)
            )
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        return 2
    except (GitHubAPIError, ValueError, LookupError, KeyError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        return 1

    manager.save()
    return code


if __name__ == "__main__":
    sys.exit(main())
