"""
Worker jobs for deadline scans.

Jobs are plain synchronous callables so rq can import and run them; each one
owns an event loop for the duration of the scan.
"""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from typing import Any

import structlog
from rq import Queue, get_current_job

from firmwatch.core.config import get_settings
from firmwatch.domain.services.audit import AuditRecorder
from firmwatch.domain.services.scan import ScanService
from firmwatch.infrastructure.db.session import dispose_engine, get_session_factory

logger = structlog.get_logger()

SCHEDULED_SCAN_FUNC = "firmwatch.workers.jobs.scheduled_scan_job"


def run_scan_job(as_of: str | None = None) -> dict[str, Any]:
    """Entry point for a one-off scan.

    Args:
        as_of: Optional ISO date to evaluate deadlines against; defaults to
            today in the configured deadline timezone.

    Returns:
        Dictionary with the scan date, totals and failed entity types.
    """
    today = date.fromisoformat(as_of) if as_of else None
    return asyncio.run(_run_scan_async(today))


def scheduled_scan_job(interval_seconds: int | None = None) -> dict[str, Any]:
    """Run a scan, then queue the next one ``interval_seconds`` from now."""
    interval = interval_seconds or get_settings().scan_interval_seconds
    try:
        return run_scan_job()
    finally:
        job = get_current_job()
        if job is not None:
            queue = Queue(job.origin, connection=job.connection)
            schedule_next_scan(queue, interval)


def schedule_next_scan(queue: Queue, interval_seconds: int) -> Any:
    job = queue.enqueue_in(
        timedelta(seconds=interval_seconds),
        SCHEDULED_SCAN_FUNC,
        interval_seconds,
    )
    logger.info("scan_scheduled", queue=queue.name, in_seconds=interval_seconds, job_id=job.id)
    return job


def ensure_scan_scheduled(queue: Queue, interval_seconds: int) -> bool:
    """Start the recurring scan chain unless one is already pending.

    A chain job may be waiting in the queue, scheduled for later, or running
    on a worker; any of those keeps the chain alive.

    Returns True when a new chain was started.
    """
    job_ids = [
        *queue.get_job_ids(),
        *queue.scheduled_job_registry.get_job_ids(),
        *queue.started_job_registry.get_job_ids(),
    ]
    for job in queue.job_class.fetch_many(job_ids, connection=queue.connection):
        if job is not None and job.func_name == SCHEDULED_SCAN_FUNC:
            logger.info("scan_already_scheduled", job_id=job.id)
            return False

    queue.enqueue(SCHEDULED_SCAN_FUNC, interval_seconds)
    logger.info("scan_chain_started", queue=queue.name, interval_seconds=interval_seconds)
    return True


async def _run_scan_async(today: date | None) -> dict[str, Any]:
    session_factory = get_session_factory()
    scanner = ScanService(session_factory, audit=AuditRecorder(session_factory))
    try:
        summary = await scanner.run(today)
    finally:
        await dispose_engine()

    result = {
        "scan_date": summary.scan_date.isoformat(),
        "totals": summary.totals(),
        "failed_types": summary.failed_types,
    }
    logger.info("scan_job_completed", **result)
    return result
