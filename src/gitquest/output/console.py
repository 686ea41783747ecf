"""Rich console output for stats reports."""

from typing import Any

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from gitquest.models.activity import ActivityItem


class Console:
    """Wrapper for rich console output."""

    def __init__(self, verbose: bool = False, quiet: bool = False):
        self.console = RichConsole()
        self.verbose = verbose
        self.quiet = quiet

    def print(self, *args, **kwargs):
        """Print to console (respects quiet mode)."""
        if not self.quiet:
            self.console.print(*args, **kwargs)

    def print_error(self, message: str):
        self.console.print(f"[red]Error:[/red] {message}")

    def print_warning(self, message: str):
        self.console.print(f"[yellow]Warning:[/yellow] {message}")

    def print_success(self, message: str):
        if not self.quiet:
            self.console.print(f"[green]{message}[/green]")

    def create_progress(self) -> Progress:
        """Create a progress bar context."""
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self.console,
            disable=self.quiet,
        )

    def print_header(self, username: str, time_range: str):
        if self.quiet:
            return

        self.console.print()
        self.console.print(
            Panel(
                f"[bold blue]GitQuest Stats[/bold blue]\n[dim]User: {username} | Range: {time_range}[/dim]",
                expand=False,
            )
        )
        self.console.print()

    def _metric_table(self, title: str, rows: list[tuple[str, str]]) -> Table:
        table = Table(title=title, show_header=False, expand=False)
        table.add_column("Metric", style="dim")
        table.add_column("Value")
        for label, value in rows:
            table.add_row(label, value)
        return table

    def print_stats(self, report: dict[str, Any]):
        """Print a report built by ``build_report``."""
        if self.quiet:
            return

        self.print_header(report.get("username", ""), report.get("time_range", "all"))

        totals = report.get("totals", {})
        self.console.print(
            self._metric_table(
                "Contributions",
                [
                    ("Commits", str(totals.get("commits", 0))),
                    (
                        "Pull Requests",
                        f"{totals.get('pull_requests', 0)} "
                        f"({totals.get('merged_pull_requests', 0)} merged, "
                        f"{totals.get('open_pull_requests', 0)} open)",
                    ),
                    ("Reviews", str(totals.get("reviews", 0))),
                    ("Total", str(totals.get("contributions", 0))),
                ],
            )
        )
        self.console.print()

        repos = report.get("repositories", {})
        self.console.print(
            self._metric_table(
                "Repositories",
                [
                    ("Discovered", str(repos.get("count", 0))),
                    ("Private / Public", f"{repos.get('private', 0)} / {repos.get('public', 0)}"),
                    ("Stars", str(repos.get("stars", 0))),
                    ("With Contributions", str(repos.get("impacted", 0))),
                ],
            )
        )
        skipped = repos.get("skipped") or []
        if skipped:
            self.print_warning(f"{len(skipped)} repositories skipped: {', '.join(skipped[:5])}")
        self.console.print()

        streak = report.get("streak", {})
        self.console.print(
            self._metric_table(
                "Streak",
                [
                    ("Current Streak", f"{streak.get('current', 0)} days"),
                    ("Longest Streak", f"{streak.get('longest', 0)} days"),
                    ("Active Days", str(streak.get("active_days", 0))),
                    ("Last Activity", streak.get("last_activity") or "-"),
                ],
            )
        )
        self.console.print()

        impact = report.get("code_impact", {})
        by_repo = list(impact.get("by_repo", {}).items())
        if by_repo:
            impact_table = Table(title="Code Impact (estimated)", expand=False)
            impact_table.add_column("Repository")
            impact_table.add_column("Lines Changed", justify="right")
            for repo, lines in by_repo[:5]:
                impact_table.add_row(repo, f"~{lines:,}")
            self.console.print(impact_table)
            self.console.print()

        achievements = report.get("achievements") or []
        if achievements:
            self.console.print(f"[bold]Achievements:[/bold] {', '.join(achievements)}")

        self.console.print(f"[dim]Generated at {report.get('generated_at', '')}[/dim]")

    def print_activity(self, items: list[ActivityItem]):
        """Print a recent-activity timeline."""
        if self.quiet:
            return
        if not items:
            self.console.print("[dim]No recent activity found[/dim]")
            return

        table = Table(title="Recent Activity", expand=False)
        table.add_column("Date", style="dim")
        table.add_column("Type")
        table.add_column("Repository")
        table.add_column("Title")

        for item in items:
            kind = "PR" if item.type == "pr" else "commit"
            if item.state:
                kind = f"{kind} ({item.state})"
            table.add_row(item.date.strftime("%Y-%m-%d %H:%M"), kind, item.repo, item.title[:60])

        self.console.print(table)

    def print_output_path(self, path: str):
        if not self.quiet:
            self.console.print(f"\n[green]Report saved to:[/green] {path}")
