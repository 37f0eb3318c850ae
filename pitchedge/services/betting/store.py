"""PostgreSQL settlement store for result sync."""

from collections.abc import Mapping
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pitchedge.models.domain import Bet, Fixture, Prediction
from pitchedge.services.betting.bankroll import BetStatus
from pitchedge.services.betting.outcomes import RESULT_FOR_OUTCOME, Outcome
from pitchedge.services.betting.results import PendingPrediction
from pitchedge.services.betting.service import BettingService
from pitchedge.services.engine.types import Decision


class SqlSettlementStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def pending_predictions(self, kicked_off_before: datetime) -> list[PendingPrediction]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Prediction)
                .join(Fixture, Prediction.fixture_id == Fixture.id)
                .where(
                    Prediction.decision == Decision.PUBLISH.value,
                    Prediction.outcome.is_(None),
                    Fixture.kickoff_at < kicked_off_before,
                )
            )
            return [
                PendingPrediction(
                    id=p.id,
                    fixture_id=p.fixture_id,
                    market=p.market,
                    selection=p.selection,
                    line=float(p.line) if p.line is not None else None,
                )
                for p in result.scalars()
            ]

    async def apply_fixture_result(
        self,
        fixture_id: int,
        home_goals: int,
        away_goals: int,
        outcomes: Mapping[int, Outcome],
    ) -> int:
        """Score, outcomes and bet settlements for one fixture, in one transaction."""
        now = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(Fixture)
                    .where(Fixture.id == fixture_id)
                    .values(home_score=home_goals, away_score=away_goals, status="finished")
                )

                service = BettingService(session)
                settled = 0
                for prediction_id, outcome in outcomes.items():
                    await session.execute(
                        update(Prediction)
                        .where(Prediction.id == prediction_id)
                        .values(outcome=outcome.value, settled_at=now)
                    )
                    open_bets = await session.execute(
                        select(Bet.id).where(
                            Bet.prediction_id == prediction_id,
                            Bet.status == BetStatus.OPEN.value,
                        )
                    )
                    for bet_id in open_bets.scalars().all():
                        await service.settle_bet(bet_id, RESULT_FOR_OUTCOME[outcome])
                        settled += 1
        return settled
