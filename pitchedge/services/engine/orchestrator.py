"""Prediction engine cycle orchestrator.

One cycle: discover fixtures, evaluate each fixture's candidates, apply the
daily quota across fixtures, then persist per fixture (supersede + insert).

Fixtures are processed one at a time; only the two history lookups of a
fixture run concurrently.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

import structlog

from pitchedge.config import EngineRules, get_engine_rules
from pitchedge.services.engine.candidates import (
    apply_daily_limit,
    block_daily_limit,
    build_candidates,
    evaluate_candidate,
    insufficient_history_row,
    select_fixture_winner,
)
from pitchedge.services.engine.types import (
    CycleDiagnostics,
    CycleStatus,
    FixtureInfo,
    PredictionRow,
)
from pitchedge.services.modeling.elo import match_probabilities, rating_from_history
from pitchedge.services.modeling.history import TeamMatch, goal_rates, recent_window
from pitchedge.services.modeling.poisson import (
    expected_goals,
    scoreline_probabilities,
    scoreline_probabilities_with_penalty,
    strength_ratios,
)
from pitchedge.services.odds.averages import (
    OddsAverageData,
    OddsKey,
    OddsPointData,
    compute_odds_averages,
    deduplicate_points,
)

logger = structlog.get_logger(__name__)


class FixtureProvider(Protocol):
    """Sports-data provider the engine reads from."""

    async def list_upcoming_fixtures(self, window_hours: int = 72) -> list[FixtureInfo]: ...

    async def get_team_recent_matches(self, team_id: int, limit: int = 10) -> list[TeamMatch]: ...

    async def get_league_average_goals(self, league_id: int) -> float: ...

    async def get_odds_for_fixtures(self, fixture_ids: Sequence[int]) -> list[OddsPointData]: ...


class EngineStore(Protocol):
    """Persistence port for the engine."""

    async def get_cached_fixtures(
        self, start: datetime, end: datetime, limit: int
    ) -> list[FixtureInfo]: ...

    async def upsert_fixture(self, fixture: FixtureInfo) -> None: ...

    async def save_odds_points(self, points: Sequence[OddsPointData]) -> int: ...

    async def load_odds_points(self, fixture_id: int, since: datetime) -> list[OddsPointData]: ...

    async def save_odds_averages(self, averages: Sequence[OddsAverageData]) -> None: ...

    async def replace_fixture_predictions(
        self, cycle_id: int, fixture_id: int, rows: Sequence[PredictionRow]
    ) -> int: ...

    async def update_cycle_progress(self, cycle_id: int, fixtures_found: int) -> None: ...

    async def finish_cycle(
        self,
        cycle_id: int,
        status: CycleStatus,
        diagnostics: CycleDiagnostics,
        error: str | None = None,
    ) -> None: ...


@dataclass
class FixtureEvaluation:
    """Rows produced for one fixture, held until the quota is applied."""

    fixture: FixtureInfo
    rows: list[PredictionRow]
    winner: PredictionRow | None = None


class PredictionEngine:
    """
    Runs engine cycles.

    The provider and store are injected; the engine holds no state across
    cycles.
    """

    def __init__(
        self,
        provider: FixtureProvider,
        store: EngineStore,
        rules: EngineRules | None = None,
        clock=None,
    ):
        self.provider = provider
        self.store = store
        self.rules = rules or get_engine_rules()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def run_cycle(self, cycle_id: int) -> CycleDiagnostics:
        """
        Execute one cycle and record its terminal status.

        Per-fixture errors are logged and the fixture is skipped. Anything
        else marks the cycle FAILED and is re-raised.
        """
        diagnostics = CycleDiagnostics()
        logger.info("cycle_started", cycle_id=cycle_id)

        try:
            now = self._clock()
            fixtures = await self._discover_fixtures(now)
            diagnostics.fixtures_found = len(fixtures)
            fixtures = fixtures[: self.rules.max_fixtures_per_cycle]
            await self.store.update_cycle_progress(cycle_id, diagnostics.fixtures_found)

            if not fixtures:
                logger.info("no_fixtures_to_process", cycle_id=cycle_id)

            evaluations: list[FixtureEvaluation] = []
            for fixture in fixtures:
                try:
                    evaluations.append(await self.evaluate_fixture(fixture))
                except Exception as e:
                    diagnostics.fixtures_failed += 1
                    logger.error(
                        "fixture_failed",
                        cycle_id=cycle_id,
                        fixture_id=fixture.id,
                        error=str(e),
                    )
                    continue
                diagnostics.fixtures_processed += 1

            self._apply_daily_limit(evaluations)

            for evaluation in evaluations:
                try:
                    superseded = await self.store.replace_fixture_predictions(
                        cycle_id, evaluation.fixture.id, evaluation.rows
                    )
                except Exception as e:
                    diagnostics.fixtures_processed -= 1
                    diagnostics.fixtures_failed += 1
                    logger.error(
                        "fixture_write_failed",
                        cycle_id=cycle_id,
                        fixture_id=evaluation.fixture.id,
                        error=str(e),
                    )
                    continue
                diagnostics.predictions_superseded += superseded
                for row in evaluation.rows:
                    diagnostics.record(row)

            await self.store.finish_cycle(cycle_id, CycleStatus.SUCCESS, diagnostics)

        except Exception as e:
            logger.exception("cycle_failed", cycle_id=cycle_id, error=str(e))
            await self.store.finish_cycle(
                cycle_id, CycleStatus.FAILED, diagnostics, error=str(e)
            )
            raise

        logger.info("cycle_completed", cycle_id=cycle_id, **diagnostics.to_dict())
        return diagnostics

    async def _discover_fixtures(self, now: datetime) -> list[FixtureInfo]:
        """
        Upcoming fixtures inside [now - buffer, now + lookahead].

        Falls back to locally cached fixtures when the provider fails or
        returns nothing in the window.
        """
        start = now - timedelta(hours=self.rules.kickoff_buffer_hours)
        end = now + timedelta(hours=self.rules.lookahead_hours)

        try:
            upstream = await self.provider.list_upcoming_fixtures(self.rules.lookahead_hours)
        except Exception as e:
            logger.warning("fixture_discovery_failed", error=str(e))
            upstream = []

        fixtures = [f for f in upstream if start <= f.kickoff_at <= end]
        if fixtures:
            return fixtures

        logger.info("fixture_discovery_fallback", window_start=start.isoformat())
        cached = await self.store.get_cached_fixtures(
            start, end, self.rules.max_fixtures_per_cycle
        )
        logger.info("cached_fixtures_loaded", count=len(cached))
        return cached

    async def evaluate_fixture(self, fixture: FixtureInfo) -> FixtureEvaluation:
        """Evaluate every candidate of one fixture and pick its winner."""
        rules = self.rules
        await self.store.upsert_fixture(fixture)

        home_history, away_history = await asyncio.gather(
            self.provider.get_team_recent_matches(fixture.home_team_id, rules.history_matches),
            self.provider.get_team_recent_matches(fixture.away_team_id, rules.history_matches),
        )

        if len(home_history) < rules.history_matches or len(away_history) < rules.history_matches:
            logger.info(
                "insufficient_history",
                fixture_id=fixture.id,
                home_matches=len(home_history),
                away_matches=len(away_history),
            )
            return FixtureEvaluation(fixture=fixture, rows=[insufficient_history_row(fixture.id)])

        prices = await self._refresh_odds(fixture.id)
        league_avg = await self.provider.get_league_average_goals(fixture.league_id)

        home_window = recent_window(home_history, rules.history_matches)
        away_window = recent_window(away_history, rules.history_matches)

        lambda_home, lambda_away = expected_goals(
            league_avg,
            *strength_ratios(goal_rates(home_window), goal_rates(away_window), league_avg),
        )
        if rules.btts_low_scoring_penalty:
            goals = scoreline_probabilities_with_penalty(
                lambda_home, lambda_away, league_avg / 2, rules.poisson_max_goals
            )
        else:
            goals = scoreline_probabilities(lambda_home, lambda_away, rules.poisson_max_goals)

        outcome = match_probabilities(
            rating_from_history(home_window),
            rating_from_history(away_window),
            rules.base_draw_rate,
        )

        rows = [
            evaluate_candidate(fixture.id, candidate, prices.get(candidate.key), rules)
            for candidate in build_candidates(outcome, goals, rules.ou_lines)
        ]
        winner, rows = select_fixture_winner(rows, rules.prob_tie_tolerance)

        logger.debug(
            "fixture_evaluated",
            fixture_id=fixture.id,
            lambda_home=round(lambda_home, 3),
            lambda_away=round(lambda_away, 3),
            priced=len(prices),
            winner=f"{winner.market}/{winner.selection}" if winner else None,
        )
        return FixtureEvaluation(fixture=fixture, rows=rows, winner=winner)

    async def _refresh_odds(self, fixture_id: int) -> dict[OddsKey, float]:
        """Ingest fresh odds points and recompute the fixture's averages."""
        rules = self.rules
        fresh = deduplicate_points(await self.provider.get_odds_for_fixtures([fixture_id]))
        if fresh:
            inserted = await self.store.save_odds_points(fresh)
            logger.debug("odds_points_saved", fixture_id=fixture_id, inserted=inserted)

        # Window ends after ingestion so the points just fetched are inside it
        now = self._clock()
        since = now - timedelta(hours=rules.avg_odds_window_hours)
        stored = await self.store.load_odds_points(fixture_id, since)
        averages = compute_odds_averages(
            fixture_id,
            deduplicate_points([*stored, *fresh]),
            now=now,
            window_hours=rules.avg_odds_window_hours,
            bookmaker_whitelist=rules.bookmaker_whitelist,
            ou_lines=rules.ou_lines,
            source=rules.odds_source,
        )
        if averages:
            await self.store.save_odds_averages(averages)
        return {avg.key: avg.avg_odds for avg in averages}

    def _apply_daily_limit(self, evaluations: list[FixtureEvaluation]) -> None:
        winners = {
            e.fixture.id: (e.fixture.kickoff_at, e.winner)
            for e in evaluations
            if e.winner is not None
        }
        over_limit = apply_daily_limit(winners, self.rules.daily_pick_limit)
        for evaluation in evaluations:
            if evaluation.fixture.id in over_limit:
                evaluation.rows = block_daily_limit(evaluation.rows)
                evaluation.winner = None
        if over_limit:
            logger.info("daily_limit_applied", blocked=len(over_limit))
