"""Team match history helpers shared by the goal and outcome models."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TeamMatch:
    """A completed match seen from one team's perspective."""

    team_id: int
    played_at: datetime
    is_home: bool
    goals_for: int
    goals_against: int

    @property
    def result(self) -> str:
        """'W', 'D' or 'L' for the team."""
        if self.goals_for > self.goals_against:
            return "W"
        if self.goals_for == self.goals_against:
            return "D"
        return "L"


@dataclass(frozen=True)
class GoalRates:
    """Per-match goals scored and conceded over a window."""

    scored: float
    conceded: float
    matches: int


def recent_window(matches: Sequence[TeamMatch], limit: int) -> list[TeamMatch]:
    """The ``limit`` most recent matches, oldest first."""
    newest_first = sorted(matches, key=lambda m: m.played_at, reverse=True)[:limit]
    return list(reversed(newest_first))


def goal_rates(matches: Sequence[TeamMatch]) -> GoalRates:
    """Average goals for/against per match."""
    if not matches:
        return GoalRates(scored=0.0, conceded=0.0, matches=0)
    count = len(matches)
    return GoalRates(
        scored=sum(m.goals_for for m in matches) / count,
        conceded=sum(m.goals_against for m in matches) / count,
        matches=count,
    )
