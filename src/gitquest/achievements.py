"""Achievement catalogue and rules."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from gitquest.models.stats import AggregateStats

POINTS_PER_LEVEL = 100


@dataclass(frozen=True)
class Achievement:
    key: str
    name: str
    description: str
    icon: str
    points: int
    # Decides from a stats record and the social-connection flag
    rule: Callable[[AggregateStats, bool], bool]

    def is_earned(self, stats: AggregateStats, social_connected: bool = False) -> bool:
        return self.rule(stats, social_connected)


ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement(
        "first_commit", "First Blood", "Made your first commit", "git-commit", 10,
        lambda stats, _: stats.commits > 0,
    ),
    Achievement(
        "streak_7_days", "Code Warrior", "Maintained a 7-day coding streak", "flame", 50,
        lambda stats, _: stats.streak >= 7,
    ),
    Achievement(
        "pr_master", "PR Master", "Merged 10 pull requests", "git-pull-request", 100,
        lambda stats, _: stats.pull_requests >= 10,
    ),
    Achievement(
        "social_butterfly", "Social Butterfly", "Connected GitHub and Twitter accounts",
        "share", 25,
        lambda _, social_connected: social_connected,
    ),
    Achievement(
        "code_mountaineer", "Code Mountaineer", "Changed over 10,000 lines of code", "code", 150,
        lambda stats, _: stats.contributions >= 10000,
    ),
    Achievement(
        "repo_collector", "Repo Collector",
        "Created or contributed to 5 or more repositories", "folder", 75,
        lambda stats, _: stats.repos >= 5,
    ),
    Achievement(
        "star_gazer", "Star Gazer", "Received 10 or more stars on your repositories", "star", 100,
        lambda stats, _: stats.stars >= 10,
    ),
    Achievement(
        "century_club", "Century Club", "Made 100 or more commits", "git-commit", 200,
        lambda stats, _: stats.commits >= 100,
    ),
)


def get_achievement(name: str) -> Achievement | None:
    """Look up an achievement by display name or key."""
    for achievement in ACHIEVEMENTS:
        if name in (achievement.name, achievement.key):
            return achievement
    return None


def evaluate_achievements(
    stats: AggregateStats,
    awarded: Iterable[str] = (),
    social_connected: bool = False,
) -> list[Achievement]:
    """Achievements newly earned by ``stats``.

    Already awarded names are skipped, so evaluating the same record twice
    never awards anything twice.
    """
    awarded = set(awarded)
    return [
        achievement
        for achievement in ACHIEVEMENTS
        if achievement.name not in awarded and achievement.is_earned(stats, social_connected)
    ]


def level_for_points(points: int) -> int:
    return max(points, 0) // POINTS_PER_LEVEL + 1
