"""Result sync task.

Settles published predictions (and the bets placed on them) once their
fixtures have finished. Runs every 30 minutes; each run is audited in
job_runs.
"""

import asyncio
from datetime import datetime, timezone

import structlog

from pitchedge.models.base import get_task_session_factory
from pitchedge.models.domain import JobRun
from pitchedge.services.betting.results import SyncReport, sync_results
from pitchedge.services.betting.store import SqlSettlementStore
from pitchedge.services.sportmonks import SportMonksClient
from pitchedge.tasks import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(bind=True, soft_time_limit=540, time_limit=600)
def sync_results_task(self):
    """
    Scheduled: Every 30 minutes
    Timeout: 10 minutes
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_sync_results_async(self))
    finally:
        loop.close()


async def run_result_sync(session_factory) -> SyncReport:
    """Result sync against SportMonks and the database."""
    async with SportMonksClient() as client:
        return await sync_results(client, SqlSettlementStore(session_factory))


async def _sync_results_async(task):
    """Async implementation of result sync."""
    started_at = datetime.now(timezone.utc)
    job_status = "running"
    error_message = None
    report = SyncReport()

    async with get_task_session_factory() as session_factory:
        async with session_factory() as session:
            job_run = JobRun(
                job_name="sync_results",
                started_at=started_at,
                status="running",
            )
            session.add(job_run)
            await session.commit()

            try:
                report = await run_result_sync(session_factory)
                job_status = "success"
                logger.info(
                    "sync_results_task_complete",
                    fixtures=report.fixtures_updated,
                    predictions=report.predictions_settled,
                    bets=report.bets_settled,
                    errors=len(report.errors),
                    duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
                )

            except Exception as e:
                job_status = "failed"
                error_message = str(e)
                logger.error(
                    "sync_results_task_failed",
                    error=str(e),
                    task_id=task.request.id,
                )

            finally:
                job_run.completed_at = datetime.now(timezone.utc)
                job_run.status = job_status
                job_run.error_message = error_message
                job_run.records_processed = report.predictions_settled
                job_run.job_metadata = report.to_dict()
                await session.commit()

    return report.to_dict()
