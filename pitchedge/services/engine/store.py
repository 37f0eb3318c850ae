"""PostgreSQL implementation of the engine store."""

from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pitchedge.models.domain import (
    Bet,
    EngineCycle,
    Fixture,
    OddsAverage,
    OddsPoint,
    Prediction,
)
from pitchedge.services.engine.types import (
    BlockReason,
    CycleDiagnostics,
    CycleStatus,
    Decision,
    FixtureInfo,
    PredictionRow,
)
from pitchedge.services.odds.averages import OddsAverageData, OddsPointData
from pitchedge.services.odds.normalizer import Market, Selection

logger = structlog.get_logger(__name__)


def _dec(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(round(value, 6)))


def _float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


class SqlEngineStore:
    """
    Engine persistence over an async session factory.

    Every public method runs in its own transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_cached_fixtures(
        self, start: datetime, end: datetime, limit: int
    ) -> list[FixtureInfo]:
        """Scheduled fixtures already known locally, by kickoff."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Fixture)
                .where(
                    Fixture.status == "scheduled",
                    Fixture.kickoff_at >= start,
                    Fixture.kickoff_at <= end,
                )
                .order_by(Fixture.kickoff_at)
                .limit(limit)
            )
            return [
                FixtureInfo(
                    id=f.id,
                    league_id=f.league_id,
                    home_team_id=f.home_team_id,
                    away_team_id=f.away_team_id,
                    kickoff_at=f.kickoff_at,
                    home_team_name=f.home_team_name,
                    away_team_name=f.away_team_name,
                )
                for f in result.scalars()
            ]

    async def upsert_fixture(self, fixture: FixtureInfo) -> None:
        """Insert or refresh a scheduled fixture; known team names are kept."""
        stmt = insert(Fixture).values(
            id=fixture.id,
            league_id=fixture.league_id,
            home_team_id=fixture.home_team_id,
            away_team_id=fixture.away_team_id,
            home_team_name=fixture.home_team_name,
            away_team_name=fixture.away_team_name,
            kickoff_at=fixture.kickoff_at,
            status="scheduled",
        )
        set_ = {
            "league_id": fixture.league_id,
            "kickoff_at": fixture.kickoff_at,
        }
        if fixture.home_team_name:
            set_["home_team_name"] = fixture.home_team_name
        if fixture.away_team_name:
            set_["away_team_name"] = fixture.away_team_name
        stmt = stmt.on_conflict_do_update(index_elements=["id"], set_=set_)

        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def save_odds_points(self, points: Sequence[OddsPointData]) -> int:
        """Append odds points; already-seen observations are skipped."""
        if not points:
            return 0
        stmt = insert(OddsPoint).values(
            [
                {
                    "fixture_id": p.fixture_id,
                    "bookmaker_id": p.bookmaker_id,
                    "market": p.market.value,
                    "selection": p.selection.value,
                    "line": _dec(p.line),
                    "odds_decimal": _dec(p.price),
                    "observed_at": p.observed_at,
                    "source": p.source,
                }
                for p in points
            ]
        )
        stmt = stmt.on_conflict_do_nothing(constraint="uq_odds_point")

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def load_odds_points(self, fixture_id: int, since: datetime) -> list[OddsPointData]:
        """Stored observations for a fixture since ``since``."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(OddsPoint).where(
                    OddsPoint.fixture_id == fixture_id,
                    OddsPoint.observed_at >= since,
                )
            )
            return [
                OddsPointData(
                    fixture_id=row.fixture_id,
                    bookmaker_id=row.bookmaker_id,
                    market=Market(row.market),
                    selection=Selection(row.selection),
                    line=_float(row.line),
                    price=float(row.odds_decimal),
                    observed_at=row.observed_at,
                    source=row.source,
                )
                for row in result.scalars()
            ]

    async def save_odds_averages(self, averages: Sequence[OddsAverageData]) -> None:
        """Upsert averages keyed by fixture, market, line, selection, source and window."""
        async with self.session_factory() as session:
            for avg in averages:
                stmt = insert(OddsAverage).values(
                    fixture_id=avg.fixture_id,
                    market=avg.market.value,
                    selection=avg.selection.value,
                    line=_dec(avg.line),
                    avg_odds=_dec(avg.avg_odds),
                    bookmaker_count=avg.bookmaker_count,
                    source=avg.source,
                    window_end=avg.window_end,
                )
                stmt = stmt.on_conflict_do_update(
                    constraint="uq_odds_average",
                    set_={
                        "avg_odds": _dec(avg.avg_odds),
                        "bookmaker_count": avg.bookmaker_count,
                        "computed_at": datetime.now(timezone.utc),
                    },
                )
                await session.execute(stmt)
            await session.commit()

    async def _protected_prediction_ids(self, session: AsyncSession, fixture_id: int) -> set[int]:
        """Predictions of a fixture that have a bet or an outcome."""
        with_bets = select(Bet.prediction_id).where(
            Bet.fixture_id == fixture_id, Bet.prediction_id.is_not(None)
        )
        result = await session.execute(
            select(Prediction.id).where(
                Prediction.fixture_id == fixture_id,
                or_(Prediction.outcome.is_not(None), Prediction.id.in_(with_bets)),
            )
        )
        return set(result.scalars())

    async def replace_fixture_predictions(
        self, cycle_id: int, fixture_id: int, rows: Sequence[PredictionRow]
    ) -> int:
        """
        Supersede a fixture's unprotected PUBLISH rows and insert new rows.

        Both steps share one transaction, so the fixture never has two
        unprotected PUBLISH rows.

        Returns:
            Number of rows superseded
        """
        async with self.session_factory() as session:
            async with session.begin():
                protected = await self._protected_prediction_ids(session, fixture_id)

                stmt = update(Prediction).where(
                    Prediction.fixture_id == fixture_id,
                    Prediction.decision == Decision.PUBLISH.value,
                )
                if protected:
                    stmt = stmt.where(Prediction.id.not_in(protected))
                result = await session.execute(
                    stmt.values(
                        decision=Decision.BLOCK.value,
                        reason=BlockReason.REPLACED_BY_NEW_RUN.value,
                    )
                )
                superseded = result.rowcount or 0

                session.add_all(
                    Prediction(
                        cycle_id=cycle_id,
                        fixture_id=row.fixture_id,
                        market=row.market,
                        line=_dec(row.line),
                        selection=row.selection,
                        model_probability=_dec(row.model_probability),
                        final_probability=_dec(row.final_probability),
                        avg_odds=_dec(row.avg_odds),
                        implied_probability=_dec(row.implied_probability),
                        edge=_dec(row.edge),
                        expected_value=_dec(row.expected_value),
                        decision=row.decision.value,
                        reason=row.reason.value if row.reason else None,
                    )
                    for row in rows
                )

        if superseded:
            logger.info(
                "predictions_superseded",
                fixture_id=fixture_id,
                count=superseded,
                protected=len(protected),
            )
        return superseded

    async def create_cycle(self) -> int:
        """Insert a RUNNING cycle and return its id."""
        async with self.session_factory() as session:
            cycle = EngineCycle(
                status=CycleStatus.RUNNING.value,
                started_at=datetime.now(timezone.utc),
            )
            session.add(cycle)
            await session.commit()
            return cycle.id

    async def update_cycle_progress(self, cycle_id: int, fixtures_found: int) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(EngineCycle)
                .where(EngineCycle.id == cycle_id)
                .values(fixtures_found=fixtures_found)
            )
            await session.commit()

    async def finish_cycle(
        self,
        cycle_id: int,
        status: CycleStatus,
        diagnostics: CycleDiagnostics,
        error: str | None = None,
    ) -> None:
        """Write the terminal status and diagnostics of a RUNNING cycle."""
        async with self.session_factory() as session:
            await session.execute(
                update(EngineCycle)
                .where(
                    EngineCycle.id == cycle_id,
                    EngineCycle.status == CycleStatus.RUNNING.value,
                )
                .values(
                    status=status.value,
                    finished_at=datetime.now(timezone.utc),
                    fixtures_found=diagnostics.fixtures_found,
                    fixtures_processed=diagnostics.fixtures_processed,
                    fixtures_failed=diagnostics.fixtures_failed,
                    predictions_published=diagnostics.predictions_published,
                    predictions_blocked=diagnostics.predictions_blocked,
                    predictions_superseded=diagnostics.predictions_superseded,
                    block_reasons=diagnostics.block_reasons,
                    error=error[:2000] if error else None,
                )
            )
            await session.commit()
