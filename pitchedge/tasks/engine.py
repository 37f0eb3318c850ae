"""Prediction engine cycle task.

Runs one engine cycle against SportMonks and the database. A Redis lock
keeps cycles single-flight across workers and manual triggers.
"""

import asyncio
from typing import Any

import redis.asyncio as redis
import structlog
from redis.exceptions import LockError

from pitchedge.config import get_settings
from pitchedge.models.base import get_task_session_factory
from pitchedge.services.engine import CycleDiagnostics, CycleStatus, PredictionEngine
from pitchedge.services.engine.store import SqlEngineStore
from pitchedge.services.sportmonks import SportMonksClient
from pitchedge.tasks import celery_app

logger = structlog.get_logger(__name__)

ENGINE_LOCK_KEY = "pitchedge:engine-cycle"
ENGINE_LOCK_TIMEOUT = 1800


@celery_app.task(bind=True, soft_time_limit=1680, time_limit=1800)
def run_engine_cycle(self, cycle_id: int | None = None):
    """
    Scheduled: Every 3 hours (also dispatched by POST /api/engine/run)
    Timeout: 30 minutes

    1. Create the cycle row unless the trigger already did
    2. Take the engine lock (a second concurrent cycle is marked FAILED)
    3. Run the cycle; it records its own terminal status
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_run_engine_cycle_async(self, cycle_id))
    finally:
        loop.close()


async def _run_engine_cycle_async(task, cycle_id: int | None) -> dict[str, Any]:
    settings = get_settings()

    async with get_task_session_factory() as session_factory:
        store = SqlEngineStore(session_factory)
        if cycle_id is None:
            cycle_id = await store.create_cycle()

        redis_client = redis.from_url(settings.redis_url)
        lock = redis_client.lock(ENGINE_LOCK_KEY, timeout=ENGINE_LOCK_TIMEOUT)
        try:
            if not await lock.acquire(blocking=False):
                logger.warning("engine_cycle_already_running", cycle_id=cycle_id)
                await store.finish_cycle(
                    cycle_id,
                    CycleStatus.FAILED,
                    CycleDiagnostics(),
                    error="Another engine cycle is already running",
                )
                return {"cycle_id": cycle_id, "status": CycleStatus.FAILED.value, "skipped": True}

            try:
                async with SportMonksClient() as client:
                    engine = PredictionEngine(client, store)
                    diagnostics = await engine.run_cycle(cycle_id)
            except Exception as e:
                # No-op if the engine already recorded FAILED
                await store.finish_cycle(
                    cycle_id, CycleStatus.FAILED, CycleDiagnostics(), error=str(e)
                )
                logger.error(
                    "engine_cycle_task_failed",
                    cycle_id=cycle_id,
                    error=str(e),
                    task_id=task.request.id,
                )
                return {"cycle_id": cycle_id, "status": CycleStatus.FAILED.value, "error": str(e)}
            finally:
                try:
                    await lock.release()
                except LockError:
                    logger.warning("engine_lock_expired", cycle_id=cycle_id)

            return {
                "cycle_id": cycle_id,
                "status": CycleStatus.SUCCESS.value,
                **diagnostics.to_dict(),
            }
        finally:
            await redis_client.aclose()
