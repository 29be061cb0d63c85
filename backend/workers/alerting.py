"""Batch low-stock alert run as a Celery task."""

from __future__ import annotations

import asyncio
from datetime import datetime

import structlog

from workers.celery_app import celery_app

logger = structlog.get_logger()


@celery_app.task(
    name="workers.alerting.process_all_enabled",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
    acks_late=True,
)
def process_all_enabled(self):
    """
    Run the alert cycle for every enabled merchant not yet processed today.

    Per-merchant failures are isolated inside the engine; only a failure to
    reach the database at all bubbles up here and is retried.
    """
    from alerts.content import build_content_generator
    from alerts.engine import AlertingEngine
    from core.config import get_settings
    from db.session import create_session_factory

    run_id = self.request.id or "manual"
    logger.info("alerting.batch_task_started", run_id=run_id)

    async def _run() -> int:
        settings = get_settings()
        engine, session_factory = create_session_factory(settings.database_url)
        try:
            async with session_factory() as db:
                return await AlertingEngine(db, build_content_generator()).process_all_enabled()
        finally:
            await engine.dispose()

    try:
        created = asyncio.run(_run())
    except Exception as exc:  # noqa: BLE001
        logger.error("alerting.batch_task_failed", run_id=run_id, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)

    summary = {
        "status": "success",
        "alerts_created": created,
        "finished_at": datetime.now().isoformat(),
        "run_id": run_id,
    }
    logger.info("alerting.batch_task_complete", **summary)
    return summary
