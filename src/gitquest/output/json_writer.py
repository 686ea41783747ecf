"""JSON output writer for stats reports."""

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel

from gitquest.achievements import evaluate_achievements
from gitquest.models.activity import ActivityItem
from gitquest.models.stats import AggregateStats


def serialize_for_json(obj: Any) -> Any:
    """Convert objects to JSON-serializable format."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    elif isinstance(obj, dict):
        return {k: serialize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_for_json(item) for item in obj]
    return obj


def build_report(
    stats: AggregateStats,
    failed_repos: Optional[list[str]] = None,
    activity: Optional[list[ActivityItem]] = None,
) -> dict[str, Any]:
    """Build a stats report.

    Args:
        stats: Aggregated stats
        failed_repos: Repositories skipped after repeated failures
        activity: Recent activity timeline, if collected

    Returns:
        Dictionary ready for JSON serialization
    """
    top_impact = sorted(stats.impact_by_repo.items(), key=lambda x: x[1], reverse=True)

    report = {
        "username": stats.username,
        "time_range": stats.time_range.value,
        "generated_at": stats.generated_at.isoformat(),
        "totals": {
            "commits": stats.commits,
            "pull_requests": stats.pull_requests,
            "open_pull_requests": stats.open_pull_requests,
            "merged_pull_requests": stats.merged_pull_requests,
            "reviews": stats.reviews,
            "contributions": stats.contributions,
        },
        "repositories": {
            "count": stats.repos,
            "private": stats.private_repos,
            "public": stats.public_repos,
            "stars": stats.stars,
            "impacted": stats.repositories_impacted,
            "skipped": list(failed_repos or []),
        },
        "streak": {
            "current": stats.current_streak,
            "longest": stats.longest_streak,
            "active_days": stats.active_days,
            "last_activity": stats.last_activity.isoformat() if stats.last_activity else None,
        },
        "code_impact": {
            "estimated_lines_changed": stats.estimated_lines_changed,
            "is_estimate": stats.lines_changed_is_estimate,
            "by_repo": dict(top_impact),
        },
        # Achievements a fresh account would earn from these stats
        "achievements": [a.name for a in evaluate_achievements(stats)],
    }
    if activity is not None:
        report["activity"] = serialize_for_json(activity)
    return report


def write_json_report(
    report: dict[str, Any],
    output_path: Optional[Path] = None,
    username: Optional[str] = None,
) -> Path:
    """Write a report to a JSON file.

    Args:
        report: Report dictionary
        output_path: Output file path (optional)
        username: Username for default filename

    Returns:
        Path to written file
    """
    if output_path is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        username = username or report.get("username", "unknown")
        output_path = Path("output") / f"{username}_{timestamp}.json"

    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False, default=str)

    return output_path
