"""CLI interface for GitQuest."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from gitquest import __version__
from gitquest.aggregator import StatsAggregator
from gitquest.config import get_config
from gitquest.exceptions import GitQuestError
from gitquest.output.console import Console as OutputConsole
from gitquest.output.json_writer import build_report, serialize_for_json, write_json_report
from gitquest.progress import ProgressEvent
from gitquest.timerange import TimeRange
from gitquest.utils.rate_limiter import format_reset_time, format_time_remaining

app = typer.Typer(
    name="gitquest",
    help="Gamified GitHub contribution stats",
    add_completion=False,
)

console = Console()

RANGE_HELP = "Time range: today, week, month, year or all"


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"gitquest version {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool, debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=debug)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def _parse_range(value: str) -> TimeRange:
    try:
        return TimeRange(value.lower())
    except ValueError:
        console.print(f"[red]Invalid time range: {value}. {RANGE_HELP}[/red]")
        raise typer.Exit(1)


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """GitQuest - gamified GitHub contribution stats."""
    pass


@app.command()
def stats(
    username: str = typer.Argument(..., help="GitHub username"),
    time_range: str = typer.Option("all", "--range", "-r", help=RANGE_HELP),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the JSON report to this file",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    debug: bool = typer.Option(False, "--debug", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Minimal output"),
):
    """Compute contribution stats for a GitHub user.

    Examples:
        gitquest stats octocat
        gitquest stats octocat --range month --json
    """
    _configure_logging(verbose, debug)
    selected = _parse_range(time_range)

    try:
        ok = asyncio.run(
            _run_stats(
                username=username,
                time_range=selected,
                as_json=as_json,
                output_path=output,
                verbose=verbose,
                quiet=quiet or as_json,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(1)
    except GitQuestError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not ok:
        raise typer.Exit(1)


async def _run_stats(
    username: str,
    time_range: TimeRange,
    as_json: bool,
    output_path: Optional[Path],
    verbose: bool,
    quiet: bool,
) -> bool:
    """Run the aggregation and render it. Returns False on failure."""
    output_console = OutputConsole(verbose=verbose, quiet=quiet)
    config = get_config()

    if not config.is_authenticated:
        output_console.print_warning(
            "No GitHub token found. Private repositories and streaks are unavailable.\n"
            "Set GITQUEST_TOKEN or GITHUB_TOKEN for complete stats."
        )

    async with StatsAggregator(config=config) as aggregator:
        with output_console.create_progress() as progress:
            task = progress.add_task("Starting...", total=None)

            def on_progress(event: ProgressEvent) -> None:
                description = event.detail or event.stage.value
                if event.total:
                    progress.update(
                        task, description=description, completed=event.completed, total=event.total
                    )
                else:
                    progress.update(task, description=description)

            result = await aggregator.aggregate(username, time_range, on_progress=on_progress)

    if not result.ok:
        kind = "timed out" if result.timed_out else "failed"
        output_console.print_error(f"Stats {kind}: {result.error}")
        return False

    report = build_report(result.stats, result.failed_repos)
    if as_json:
        typer.echo(json.dumps(report, indent=2, default=str))
    else:
        output_console.print_stats(report)

    if output_path is not None:
        written = write_json_report(report, output_path, username)
        output_console.print_output_path(str(written))
    return True


@app.command()
def activity(
    username: str = typer.Argument(..., help="GitHub username"),
    time_range: str = typer.Option("all", "--range", "-r", help=RANGE_HELP),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of items"),
    as_json: bool = typer.Option(False, "--json", help="Print the timeline as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    debug: bool = typer.Option(False, "--debug", help="Debug logging"),
):
    """Show a user's most recent commits and pull requests."""
    _configure_logging(verbose, debug)
    selected = _parse_range(time_range)

    async def run():
        async with StatsAggregator() as aggregator:
            return await aggregator.recent_activity(username, selected, limit=limit)

    try:
        items = asyncio.run(run())
    except GitQuestError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(serialize_for_json(items), indent=2))
    else:
        OutputConsole(verbose=verbose).print_activity(items)


@app.command()
def check_token():
    """Check the GitHub token and what it can access."""
    config = get_config()

    if not config.is_authenticated:
        console.print("[yellow]No GitHub token configured[/yellow]")
        console.print()
        console.print("To configure a token:")
        console.print("  export GITQUEST_TOKEN=your_token_here")
        console.print()
        console.print("Scopes needed for full stats: read:user, user:email, repo, read:org")
        raise typer.Exit(1)

    async def run():
        async with StatsAggregator(config=config) as aggregator:
            return await aggregator.verify_token()

    try:
        report = asyncio.run(run())
    except GitQuestError as e:
        console.print(f"[red]Token check failed: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Token belongs to {report.login}[/green]")
    if report.name:
        console.print(f"Name: {report.name}")
    console.print(f"Private repositories visible: {'yes' if report.has_private_repos else 'no'}")
    if report.repositories:
        console.print(f"Recent repositories: {', '.join(report.repositories)}")
    console.print(
        f"Organizations: {', '.join(report.organizations) if report.organizations else 'none'}"
    )
    remaining = report.rate_limit.get("remaining")
    if remaining is not None:
        reset_in = report.rate_limit.get("reset_in")
        reset_time = report.rate_limit.get("reset_time")
        console.print(
            f"Rate limit: {remaining}/{report.rate_limit.get('limit')} remaining"
            + (
                f", resets in {format_time_remaining(reset_in)} at {format_reset_time(reset_time)}"
                if reset_in and reset_time
                else ""
            )
        )


if __name__ == "__main__":
    app()
