"""Rich terminal output for digests, candidates and state."""

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text
from rich import box

from .config import ACTION_HINT_LABELS
from .models import AgentConfig, DailyDigest, FetchFailure, IssueCandidate, RepoScore, TrackedPR

console = Console()

STATUS_STYLE = {
    "needs_response": "bold red",
    "failing_ci": "red",
    "merge_conflict": "red",
    "incomplete_checklist": "yellow",
    "approaching_dormant": "yellow",
    "dormant": "dim",
    "waiting": "cyan",
    "waiting_on_maintainer": "cyan",
    "healthy": "green",
}

REC_STYLE = {"approve": "bold green", "needs_review": "yellow", "skip": "red"}


def score_color(score: int) -> str:
    if score >= 70:
        return "green"
    if score >= 50:
        return "yellow"
    return "red"


def _pr_notes(pr: TrackedPR) -> str:
    notes = []
    if pr.last_maintainer_comment:
        notes.append(f"@{pr.last_maintainer_comment.author}: {pr.last_maintainer_comment.body[:60]}")
    if pr.failing_check_names:
        notes.append("failing: " + ", ".join(pr.failing_check_names[:3]))
    if pr.checklist_stats and pr.status == "incomplete_checklist":
        notes.append(f"checklist {pr.checklist_stats.checked}/{pr.checklist_stats.total}")
    notes += [ACTION_HINT_LABELS.get(h, h) for h in pr.maintainer_action_hints]
    return "\n".join(notes)


def display_prs(prs: list[TrackedPR], title: str = "Open Pull Requests"):
    table = Table(title=title, box=box.ROUNDED, show_lines=True)
    table.add_column("PR", style="cyan", max_width=40)
    table.add_column("Title", max_width=40)
    table.add_column("Status", width=22)
    table.add_column("CI", width=8)
    table.add_column("Review", width=18)
    table.add_column("Idle", justify="right", width=5)
    table.add_column("Notes", max_width=50)

    for pr in prs:
        table.add_row(
            f"{pr.repo}#{pr.number}",
            pr.title[:40],
            Text(pr.status, style=STATUS_STYLE.get(pr.status, "")),
            pr.ci_status,
            pr.review_decision,
            f"{pr.days_since_activity}d",
            _pr_notes(pr),
        )
    console.print()
    console.print(table)


def display_digest(digest: DailyDigest, capacity: dict, failures: list[FetchFailure] = ()):
    display_prs(digest.open_prs)

    s = digest.summary
    console.print(
        f"\n  Active: {s.get('totalActivePRs', 0)}, "
        f"[red]{s.get('totalNeedingAttention', 0)} need attention[/red], "
        f"merged all time: {s.get('totalMergedAllTime', 0)}, "
        f"merge rate: {s.get('mergeRate', '0.0%')}"
    )
    style = "green" if capacity.get("hasCapacity") else "yellow"
    console.print(f"  [{style}]{capacity.get('reason', '')}[/{style}]")

    if failures:
        console.print()
        console.print(Text(f"{len(failures)} PR(s) could not be checked:", style="bold yellow"))
        for f in failures:
            label = " (dormant)" if f.is_dormant else ""
            console.print(f"  - {f.url}{label}: {f.error}", style="yellow")


def display_candidate(candidate: IssueCandidate):
    """Detail panel for one vetted issue."""
    issue = candidate.issue
    rec = candidate.recommendation

    title = Text()
    title.append(f"{issue.repo}#{issue.number}: ", style="bold")
    title.append(issue.title, style="bold cyan")
    title.append(f"  [{rec.upper()}]", style=REC_STYLE.get(rec, ""))
    console.print()
    console.print(Panel(title, box=box.DOUBLE))

    info = Table(show_header=False, box=box.SIMPLE, padding=(0, 2))
    info.add_column("Key", style="bold", width=24)
    info.add_column("Value")
    info.add_row("URL", issue.url)
    info.add_row("Labels", ", ".join(issue.labels) or "-")
    info.add_row("Created", issue.created_at[:10])
    info.add_row(
        "Viability",
        Text(str(candidate.viability_score), style=f"bold {score_color(candidate.viability_score)}"),
    )
    info.add_row("Priority", candidate.search_priority)
    info.add_row("", "")

    checks = candidate.vetting_result.checks
    for name, passed in (
        ("No existing PR", checks.no_existing_pr),
        ("Not claimed", checks.not_claimed),
        ("Project active", checks.project_active),
        ("Clear requirements", checks.clear_requirements),
        ("Guidelines found", checks.contribution_guidelines_found),
    ):
        info.add_row(name, Text("yes" if passed else "no", style="green" if passed else "red"))
    info.add_row("", "")

    health = candidate.project_health
    info.add_row("Last commit", f"{health.days_since_last_commit} days ago")
    info.add_row("Open issues", str(health.open_issues_count))
    info.add_row("CI", health.ci_status)
    console.print(info)

    for heading, items, style in (
        ("Reasons to approve:", candidate.reasons_to_approve, "green"),
        ("Reasons to skip:", candidate.reasons_to_skip, "red"),
        ("Notes:", candidate.vetting_result.notes, "yellow"),
    ):
        if items:
            console.print(Text(heading, style=f"bold {style}"))
            for item in items:
                console.print(f"  - {item}", style=style)


def display_candidates(candidates: list[IssueCandidate], title: str = "Issue Candidates"):
    table = Table(title=title, box=box.ROUNDED, show_lines=True)
    table.add_column("#", width=4, justify="right")
    table.add_column("Repository", style="cyan", max_width=30)
    table.add_column("Issue", max_width=45)
    table.add_column("Priority", width=10)
    table.add_column("Score", justify="right", width=6)
    table.add_column("Rec", width=12)

    for i, c in enumerate(candidates, 1):
        table.add_row(
            str(i),
            c.issue.repo,
            f"#{c.issue.number}: {c.issue.title[:38]}",
            c.search_priority,
            Text(str(c.viability_score), style=score_color(c.viability_score)),
            Text(c.recommendation, style=REC_STYLE.get(c.recommendation, "")),
        )
    console.print()
    console.print(table)


def display_config(config: AgentConfig):
    table = Table(title="Configuration", show_header=False, box=box.SIMPLE)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in config.to_dict().items():
        if isinstance(value, list):
            value = ", ".join(value) if len(value) <= 10 else f"{len(value)} entries"
        table.add_row(key, str(value))
    console.print(table)


def display_repo_score(score: RepoScore):
    console.print(
        f"[cyan]{score.repo}[/cyan]: score [bold]{score.score}[/bold] "
        f"(merged {score.merged_pr_count}, closed {score.closed_without_merge_count}, "
        f"responsive={score.signals.is_responsive}, hostile={score.signals.has_hostile_comments})"
    )


def display_stats(stats: dict):
    table = Table(title="Contribution Stats", show_header=False, box=box.SIMPLE)
    table.add_column("Key", style="bold")
    table.add_column("Value", justify="right")
    for key, value in stats.items():
        table.add_row(key, str(value))
    console.print(table)
