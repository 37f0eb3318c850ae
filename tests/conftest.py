"""Pytest configuration and fixtures for PitchEdge tests.

The engine and result sync talk to their provider and store through
protocols, so the fakes below keep everything in memory. Nothing here
imports pitchedge.models (that would build a database engine).
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest

from pitchedge.config import EngineRules
from pitchedge.services.betting.outcomes import Outcome
from pitchedge.services.betting.results import PendingPrediction
from pitchedge.services.engine.types import (
    BlockReason,
    CycleDiagnostics,
    CycleStatus,
    Decision,
    FixtureInfo,
    PredictionRow,
)
from pitchedge.services.modeling.history import TeamMatch
from pitchedge.services.odds.averages import OddsAverageData, OddsPointData
from pitchedge.services.odds.normalizer import Market, Selection

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def make_history(
    team_id: int,
    scores: Sequence[tuple[int, int]],
    end: datetime = NOW,
) -> list[TeamMatch]:
    """Matches newest first, one week apart, from (goals_for, goals_against)."""
    return [
        TeamMatch(
            team_id=team_id,
            played_at=end - timedelta(days=7 * (i + 1)),
            is_home=i % 2 == 0,
            goals_for=gf,
            goals_against=ga,
        )
        for i, (gf, ga) in enumerate(scores)
    ]


def make_fixture(fixture_id: int, kickoff: datetime | None = None, league_id: int = 8) -> FixtureInfo:
    return FixtureInfo(
        id=fixture_id,
        league_id=league_id,
        home_team_id=fixture_id * 10 + 1,
        away_team_id=fixture_id * 10 + 2,
        kickoff_at=kickoff or NOW + timedelta(hours=24),
        home_team_name=f"Home {fixture_id}",
        away_team_name=f"Away {fixture_id}",
    )


def make_odds(
    fixture_id: int,
    prices: Mapping[tuple[Market, float | None, Selection], float],
    bookmakers: Sequence[int] = (2, 5),
    observed_at: datetime = NOW,
) -> list[OddsPointData]:
    """The same prices quoted by every bookmaker."""
    return [
        OddsPointData(
            fixture_id=fixture_id,
            bookmaker_id=bookmaker_id,
            market=market,
            selection=selection,
            line=line,
            price=price,
            observed_at=observed_at,
        )
        for bookmaker_id in bookmakers
        for (market, line, selection), price in prices.items()
    ]


# League-average form (1.3 scored and conceded per match, 2W 2L 6D).
# Against FULL_MARKET_PRICES only OVER 1.5 clears every gate.
AVERAGE_HISTORY = [
    (2, 1), (1, 2), (1, 1), (2, 1), (1, 2),
    (1, 1), (1, 1), (2, 2), (1, 1), (1, 1),
]

FULL_MARKET_PRICES = {
    (Market.ONE_X_TWO, None, Selection.HOME): 1.60,
    (Market.ONE_X_TWO, None, Selection.DRAW): 4.50,
    (Market.ONE_X_TWO, None, Selection.AWAY): 7.00,
    (Market.BTTS, None, Selection.YES): 2.10,
    (Market.BTTS, None, Selection.NO): 1.70,
    (Market.OU, 1.5, Selection.OVER): 1.55,
    (Market.OU, 1.5, Selection.UNDER): 2.40,
    (Market.OU, 2.5, Selection.OVER): 2.00,
    (Market.OU, 2.5, Selection.UNDER): 1.80,
    (Market.OU, 3.5, Selection.OVER): 3.20,
    (Market.OU, 3.5, Selection.UNDER): 1.30,
}


class FakeProvider:
    """In-memory fixture provider."""

    def __init__(
        self,
        fixtures: Sequence[FixtureInfo] = (),
        histories: Mapping[int, list[TeamMatch]] | None = None,
        odds: Sequence[OddsPointData] = (),
        league_avg: float = 2.6,
    ):
        self.fixtures = list(fixtures)
        self.histories = dict(histories or {})
        self.odds = list(odds)
        self.league_avg = league_avg
        self.fail_discovery = False
        self.fail_history_for: set[int] = set()

    async def list_upcoming_fixtures(self, window_hours: int = 72) -> list[FixtureInfo]:
        if self.fail_discovery:
            raise RuntimeError("provider down")
        return list(self.fixtures)

    async def get_team_recent_matches(self, team_id: int, limit: int = 10) -> list[TeamMatch]:
        if team_id in self.fail_history_for:
            raise RuntimeError(f"history unavailable for team {team_id}")
        return self.histories.get(team_id, [])[:limit]

    async def get_league_average_goals(self, league_id: int) -> float:
        return self.league_avg

    async def get_odds_for_fixtures(self, fixture_ids: Sequence[int]) -> list[OddsPointData]:
        wanted = set(fixture_ids)
        return [p for p in self.odds if p.fixture_id in wanted]


@dataclass
class StoredPrediction:
    id: int
    cycle_id: int
    row: PredictionRow
    decision: Decision
    reason: BlockReason | None
    outcome: str | None = None
    has_bet: bool = False

    @property
    def fixture_id(self) -> int:
        return self.row.fixture_id

    @property
    def protected(self) -> bool:
        return self.has_bet or self.outcome is not None


@dataclass
class StoredCycle:
    status: CycleStatus = CycleStatus.RUNNING
    fixtures_found: int = 0
    diagnostics: CycleDiagnostics | None = None
    error: str | None = None


@dataclass
class InMemoryEngineStore:
    """Engine store with the same supersession rules as the SQL store."""

    fixtures: dict[int, FixtureInfo] = field(default_factory=dict)
    cached_fixtures: list[FixtureInfo] = field(default_factory=list)
    odds_points: dict[tuple, OddsPointData] = field(default_factory=dict)
    odds_averages: list[OddsAverageData] = field(default_factory=list)
    predictions: list[StoredPrediction] = field(default_factory=list)
    cycles: dict[int, StoredCycle] = field(default_factory=dict)
    fail_replace_for: set[int] = field(default_factory=set)
    fail_progress: bool = False

    def create_cycle(self) -> int:
        cycle_id = len(self.cycles) + 1
        self.cycles[cycle_id] = StoredCycle()
        return cycle_id

    async def get_cached_fixtures(
        self, start: datetime, end: datetime, limit: int
    ) -> list[FixtureInfo]:
        found = [f for f in self.cached_fixtures if start <= f.kickoff_at <= end]
        return sorted(found, key=lambda f: f.kickoff_at)[:limit]

    async def upsert_fixture(self, fixture: FixtureInfo) -> None:
        self.fixtures[fixture.id] = fixture

    async def save_odds_points(self, points: Sequence[OddsPointData]) -> int:
        inserted = 0
        for point in points:
            if point.conflict_key not in self.odds_points:
                self.odds_points[point.conflict_key] = point
                inserted += 1
        return inserted

    async def load_odds_points(self, fixture_id: int, since: datetime) -> list[OddsPointData]:
        return [
            p
            for p in self.odds_points.values()
            if p.fixture_id == fixture_id and p.observed_at >= since
        ]

    async def save_odds_averages(self, averages: Sequence[OddsAverageData]) -> None:
        self.odds_averages.extend(averages)

    async def replace_fixture_predictions(
        self, cycle_id: int, fixture_id: int, rows: Sequence[PredictionRow]
    ) -> int:
        if fixture_id in self.fail_replace_for:
            raise RuntimeError("database unavailable")
        superseded = 0
        for stored in self.predictions:
            if (
                stored.fixture_id == fixture_id
                and stored.decision == Decision.PUBLISH
                and not stored.protected
            ):
                stored.decision = Decision.BLOCK
                stored.reason = BlockReason.REPLACED_BY_NEW_RUN
                superseded += 1
        for row in rows:
            self.predictions.append(
                StoredPrediction(
                    id=len(self.predictions) + 1,
                    cycle_id=cycle_id,
                    row=row,
                    decision=row.decision,
                    reason=row.reason,
                )
            )
        return superseded

    async def update_cycle_progress(self, cycle_id: int, fixtures_found: int) -> None:
        if self.fail_progress:
            raise RuntimeError("database unavailable")
        self.cycles[cycle_id].fixtures_found = fixtures_found

    async def finish_cycle(
        self,
        cycle_id: int,
        status: CycleStatus,
        diagnostics: CycleDiagnostics,
        error: str | None = None,
    ) -> None:
        cycle = self.cycles[cycle_id]
        if cycle.status != CycleStatus.RUNNING:
            return
        cycle.status = status
        cycle.diagnostics = diagnostics
        cycle.error = error

    def published(self, fixture_id: int | None = None) -> list[StoredPrediction]:
        return [
            p
            for p in self.predictions
            if p.decision == Decision.PUBLISH
            and (fixture_id is None or p.fixture_id == fixture_id)
        ]


class InMemorySettlementStore:
    """Settlement store that records what result sync applied."""

    def __init__(self, pending: Sequence[tuple[PendingPrediction, datetime]] = ()):
        self.pending = list(pending)
        self.applied: dict[int, tuple[int, int, dict[int, Outcome]]] = {}
        self.bets_per_prediction: dict[int, int] = {}
        self.fail_for: set[int] = set()
        self.cutoff: datetime | None = None

    async def pending_predictions(self, kicked_off_before: datetime) -> list[PendingPrediction]:
        self.cutoff = kicked_off_before
        return [
            p
            for p, kickoff in self.pending
            if kickoff < kicked_off_before and p.fixture_id not in self.applied
        ]

    async def apply_fixture_result(
        self,
        fixture_id: int,
        home_goals: int,
        away_goals: int,
        outcomes: Mapping[int, Outcome],
    ) -> int:
        if fixture_id in self.fail_for:
            raise RuntimeError("deadlock detected")
        self.applied[fixture_id] = (home_goals, away_goals, dict(outcomes))
        return sum(self.bets_per_prediction.get(pid, 0) for pid in outcomes)


@pytest.fixture
def rules():
    """Engine rules with the shipped defaults."""
    return EngineRules()


@pytest.fixture
def clock():
    """Fixed clock for engine cycles."""
    return lambda: NOW
