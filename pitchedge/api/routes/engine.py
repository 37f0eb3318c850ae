"""Engine trigger and monitoring endpoints."""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pitchedge.api.dependencies import get_db, verify_cron_secret
from pitchedge.models import async_session_factory
from pitchedge.models.domain import EngineCycle, OddsAverage, Prediction
from pitchedge.services.engine.types import CycleStatus
from pitchedge.tasks.results import run_result_sync

router = APIRouter(prefix="/api", tags=["engine"])
logger = structlog.get_logger(__name__)


class CycleTriggerResponse(BaseModel):
    cycle_id: int
    task_id: str
    status: str


class CycleResponse(BaseModel):
    """Engine cycle with its diagnostics."""

    id: int
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    fixtures_found: int
    fixtures_processed: int
    fixtures_failed: int
    predictions_published: int
    predictions_blocked: int
    predictions_superseded: int
    block_reasons: dict[str, int] | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class SyncResultsResponse(BaseModel):
    fixtures_updated: int
    predictions_settled: int
    bets_settled: int
    errors: list[str]


@router.post(
    "/engine/run",
    response_model=CycleTriggerResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def trigger_engine_cycle(db: AsyncSession = Depends(get_db)) -> CycleTriggerResponse:
    """Create a RUNNING cycle and hand it to the worker."""
    cycle = EngineCycle(
        status=CycleStatus.RUNNING.value,
        started_at=datetime.now(timezone.utc),
    )
    db.add(cycle)
    await db.commit()

    from pitchedge.tasks import celery_app

    try:
        result = celery_app.send_task(
            "pitchedge.tasks.engine.run_engine_cycle", args=[cycle.id]
        )
    except Exception as e:
        cycle.status = CycleStatus.FAILED.value
        cycle.finished_at = datetime.now(timezone.utc)
        cycle.error = f"Dispatch failed: {e}"
        await db.commit()
        logger.error("engine_trigger_failed", cycle_id=cycle.id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to dispatch engine cycle: {e}")

    logger.info("engine_cycle_triggered", cycle_id=cycle.id, task_id=result.id)
    return CycleTriggerResponse(cycle_id=cycle.id, task_id=result.id, status="submitted")


@router.get("/engine/cycles", response_model=list[CycleResponse])
async def list_cycles(
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Most recent engine cycles first."""
    result = await db.execute(
        select(EngineCycle).order_by(EngineCycle.started_at.desc()).limit(limit)
    )
    return [CycleResponse.model_validate(c) for c in result.scalars()]


@router.get("/engine/cycles/{cycle_id}", response_model=CycleResponse)
async def get_cycle(cycle_id: int, db: AsyncSession = Depends(get_db)):
    cycle = await db.get(EngineCycle, cycle_id)
    if cycle is None:
        raise HTTPException(status_code=404, detail=f"Cycle {cycle_id} not found")
    return CycleResponse.model_validate(cycle)


@router.get("/engine/coverage")
async def engine_coverage(db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """
    Odds and prediction coverage.

    Counts odds averages per market/line and predictions per
    market/line/decision, for spotting markets the provider stopped
    pricing.
    """
    odds_rows = await db.execute(
        select(OddsAverage.market, OddsAverage.line, func.count())
        .group_by(OddsAverage.market, OddsAverage.line)
        .order_by(OddsAverage.market, OddsAverage.line)
    )
    prediction_rows = await db.execute(
        select(Prediction.market, Prediction.line, Prediction.decision, func.count())
        .group_by(Prediction.market, Prediction.line, Prediction.decision)
        .order_by(Prediction.market, Prediction.line, Prediction.decision)
    )
    return {
        "odds_averages": [
            {"market": m, "line": float(l) if l is not None else None, "count": c}
            for m, l, c in odds_rows.all()
        ],
        "predictions": [
            {
                "market": m,
                "line": float(l) if l is not None else None,
                "decision": d,
                "count": c,
            }
            for m, l, d, c in prediction_rows.all()
        ],
    }


@router.post(
    "/results/sync",
    response_model=SyncResultsResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def trigger_result_sync() -> SyncResultsResponse:
    """Settle finished fixtures now and report what was settled."""
    report = await run_result_sync(async_session_factory)
    return SyncResultsResponse(**report.to_dict())
