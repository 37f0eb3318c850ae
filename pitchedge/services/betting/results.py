"""Result sync.

Finds published predictions whose fixture kicked off more than two hours
ago and has no outcome yet, fetches final scores from the provider in
batches, and settles predictions and their open bets.
"""

from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import structlog

from pitchedge.services.betting.outcomes import Outcome, determine_outcome
from pitchedge.services.sportmonks.schemas import SmFixture

logger = structlog.get_logger(__name__)

BATCH_SIZE = 50
SETTLEMENT_DELAY = timedelta(hours=2)


@dataclass(frozen=True)
class PendingPrediction:
    """A published prediction still waiting for its outcome."""

    id: int
    fixture_id: int
    market: str
    selection: str
    line: float | None


@dataclass
class SyncReport:
    fixtures_updated: int = 0
    predictions_settled: int = 0
    bets_settled: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fixtures_updated": self.fixtures_updated,
            "predictions_settled": self.predictions_settled,
            "bets_settled": self.bets_settled,
            "errors": list(self.errors),
        }


class ResultProvider(Protocol):
    async def get_fixtures_by_ids(self, fixture_ids: Sequence[int]) -> list[SmFixture]: ...


class SettlementStore(Protocol):
    async def pending_predictions(self, kicked_off_before: datetime) -> list[PendingPrediction]: ...

    async def apply_fixture_result(
        self,
        fixture_id: int,
        home_goals: int,
        away_goals: int,
        outcomes: Mapping[int, Outcome],
    ) -> int:
        """Store the score, prediction outcomes and bet settlements atomically; returns bets settled."""
        ...


async def sync_results(
    provider: ResultProvider,
    store: SettlementStore,
    now: datetime | None = None,
) -> SyncReport:
    """
    Settle everything that can be settled.

    Provider failures are reported per batch and store failures per
    fixture; neither stops the rest of the sync.
    """
    now = now or datetime.now(timezone.utc)
    report = SyncReport()

    pending = await store.pending_predictions(now - SETTLEMENT_DELAY)
    if not pending:
        logger.info("no_unsettled_predictions")
        return report

    by_fixture: dict[int, list[PendingPrediction]] = defaultdict(list)
    for prediction in pending:
        by_fixture[prediction.fixture_id].append(prediction)
    fixture_ids = sorted(by_fixture)
    logger.info("result_sync_started", predictions=len(pending), fixtures=len(fixture_ids))

    for start in range(0, len(fixture_ids), BATCH_SIZE):
        batch = fixture_ids[start : start + BATCH_SIZE]
        try:
            fixtures = await provider.get_fixtures_by_ids(batch)
        except Exception as e:
            batch_no = start // BATCH_SIZE + 1
            logger.error("result_batch_failed", batch=batch_no, error=str(e))
            report.errors.append(f"Provider error (batch {batch_no}): {e}")
            continue

        for fixture in fixtures:
            predictions = by_fixture.get(fixture.id)
            if not predictions:
                continue
            if not fixture.is_finished:
                logger.debug("fixture_not_finished", fixture_id=fixture.id, state_id=fixture.state_id)
                continue
            score = fixture.final_score()
            if score is None:
                logger.warning("fixture_missing_scores", fixture_id=fixture.id)
                continue

            home, away = score
            outcomes = {}
            for p in predictions:
                outcome = determine_outcome(p.market, p.selection, p.line, home, away)
                if outcome is not None:
                    outcomes[p.id] = outcome

            try:
                bets = await store.apply_fixture_result(fixture.id, home, away, outcomes)
            except Exception as e:
                logger.error("fixture_settlement_failed", fixture_id=fixture.id, error=str(e))
                report.errors.append(f"Failed to settle fixture {fixture.id}: {e}")
                continue

            report.fixtures_updated += 1
            report.predictions_settled += len(outcomes)
            report.bets_settled += bets
            logger.info(
                "fixture_settled",
                fixture_id=fixture.id,
                score=f"{home}-{away}",
                predictions=len(outcomes),
                bets=bets,
            )

    logger.info("result_sync_complete", **report.to_dict())
    return report
